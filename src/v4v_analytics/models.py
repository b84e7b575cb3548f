"""Wallet transaction record."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from v4v_analytics.units import msats_to_sats

_KNOWN_FIELDS = ("payment_hash", "amount", "description", "settled_at", "created_at")


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


@dataclass(frozen=True)
class Transaction:
    """An incoming Lightning payment as reported by the wallet (NIP-47 shape).

    ``amount`` is in millisatoshis. Keys the wallet sends beyond the ones
    modelled here are kept in ``extra`` so cached snapshots round-trip them.
    """

    payment_hash: str
    amount: int
    description: str | None = None
    settled_at: int | None = None
    created_at: int | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def timestamp(self) -> int | None:
        """Settlement time, falling back to creation time."""
        return self.settled_at or self.created_at

    @property
    def sats(self) -> int:
        return msats_to_sats(self.amount)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Transaction:
        """Build from a wallet/cache dict.

        Raises:
            ValueError: If ``payment_hash`` is missing, a number is malformed,
                or ``description`` is not a string.
        """
        if not isinstance(data, dict):
            raise ValueError(f"transaction must be an object, got {type(data).__name__}")
        payment_hash = data.get("payment_hash")
        if not payment_hash:
            raise ValueError("transaction missing payment_hash")
        try:
            amount = int(data.get("amount") or 0)
            settled_at = _optional_int(data.get("settled_at"))
            created_at = _optional_int(data.get("created_at"))
        except (TypeError, ValueError) as e:
            raise ValueError(f"transaction {payment_hash}: {e}") from e
        description = data.get("description")
        if description is not None and not isinstance(description, str):
            raise ValueError(f"transaction {payment_hash}: description must be a string")

        return cls(
            payment_hash=str(payment_hash),
            amount=amount,
            description=description,
            settled_at=settled_at,
            created_at=created_at,
            extra={k: v for k, v in data.items() if k not in _KNOWN_FIELDS},
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra)
        data["payment_hash"] = self.payment_hash
        data["amount"] = self.amount
        if self.description is not None:
            data["description"] = self.description
        if self.settled_at is not None:
            data["settled_at"] = self.settled_at
        if self.created_at is not None:
            data["created_at"] = self.created_at
        return data
