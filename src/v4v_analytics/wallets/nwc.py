"""NWC (Nostr Wallet Connect) wallet adapter.

Requires optional dependency: pip install v4v-analytics[nwc]
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import json
import logging
import os
import secrets
import time
from collections.abc import Callable
from typing import Any
from urllib.parse import parse_qs, urlparse

from v4v_analytics.exceptions import WalletError, WalletTimeoutError
from v4v_analytics.wallets import WalletBase

logger = logging.getLogger(__name__)

NWC_REQUEST_KIND = 23194
NWC_RESPONSE_KIND = 23195

_INSTALL_HINT = "NWC wallet requires extra dependencies. Install with: pip install v4v-analytics[nwc]"


class NwcWallet(WalletBase):
    """Read payment history via Nostr Wallet Connect (NIP-47).

    Connection string format: nostr+walletconnect://<pubkey>?relay=<relay>&secret=<secret>

    One relay websocket is opened on the first request and reused until
    close(). Compatible with Alby Hub, CoinOS and other NWC wallets.
    """

    def __init__(self, connection_string: str, timeout: float = 120.0):
        parsed = urlparse(connection_string)
        self._wallet_pubkey = parsed.hostname or parsed.netloc
        params = parse_qs(parsed.query)
        self._relay = params.get("relay", [None])[0]
        self._secret = params.get("secret", [None])[0]
        self._timeout = timeout
        self._ws: Any = None
        self._privkey: Any = None

        if not self._wallet_pubkey:
            raise ValueError("NWC connection string missing wallet pubkey")
        if not self._relay:
            raise ValueError("NWC connection string missing relay URL")
        if not self._secret:
            raise ValueError("NWC connection string missing secret")

    async def list_transactions(
        self, type: str = "incoming", limit: int = 10, offset: int = 0
    ) -> dict[str, Any]:
        result = await self._request(
            "list_transactions", {"type": type, "limit": limit, "offset": offset}
        )
        return {"transactions": result.get("transactions") or []}

    async def close(self) -> None:
        if self._ws is not None:
            ws, self._ws = self._ws, None
            await ws.close()
            logger.debug("Closed NWC relay connection")

    async def _connect(self) -> Any:
        if self._ws is None:
            websockets = _import_websockets()
            logger.debug("Connecting to NWC relay %s", self._relay)
            try:
                self._ws = await websockets.connect(self._relay)
            except (websockets.exceptions.WebSocketException, OSError) as e:
                raise WalletError(f"could not connect to relay {self._relay}: {e}") from e
        return self._ws

    def _signing_key(self) -> Any:
        if self._privkey is None:
            try:
                import secp256k1
            except ImportError as e:
                raise ImportError(_INSTALL_HINT) from e
            self._privkey = secp256k1.PrivateKey(bytes.fromhex(self._secret))
        return self._privkey

    async def _request(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        """Send one NIP-47 request and wait for its reply."""
        privkey = self._signing_key()
        pubkey_hex = privkey.pubkey.serialize(compressed=True).hex()[2:]

        content = json.dumps({"method": method, "params": params})
        event = {
            "kind": NWC_REQUEST_KIND,
            "created_at": int(time.time()),
            "tags": [["p", self._wallet_pubkey]],
            "content": _nip04_encrypt(self._secret, self._wallet_pubkey, content),
            "pubkey": pubkey_hex,
        }
        event["id"] = _compute_event_id(event)
        event["sig"] = privkey.schnorr_sign(bytes.fromhex(event["id"]), None, raw=True).hex()

        return await self._exchange(
            await self._connect(),
            event,
            method,
            lambda ciphertext: _nip04_decrypt(self._secret, self._wallet_pubkey, ciphertext),
        )

    async def _exchange(
        self,
        ws: Any,
        event: dict[str, Any],
        method: str,
        decrypt: Callable[[str], str],
    ) -> dict[str, Any]:
        """Subscribe to the reply, publish the request, and wait.

        The subscription is closed whether or not a reply arrives. A broken
        relay connection is dropped so the next request reconnects.
        """
        websockets = _import_websockets()
        sub_id = secrets.token_hex(8)
        sub_filter = {
            "kinds": [NWC_RESPONSE_KIND],
            "authors": [self._wallet_pubkey],
            "#e": [event["id"]],
        }
        try:
            await ws.send(json.dumps(["REQ", sub_id, sub_filter]))
            await ws.send(json.dumps(["EVENT", event]))
            logger.debug("Sent NWC %s request %s", method, event["id"][:12])
            try:
                return await self._await_reply(ws, sub_id, method, decrypt)
            finally:
                await ws.send(json.dumps(["CLOSE", sub_id]))
        except (websockets.exceptions.WebSocketException, OSError) as e:
            if self._ws is ws:
                self._ws = None
            raise WalletError(f"relay connection failed during {method}: {e}") from e

    async def _await_reply(
        self,
        ws: Any,
        sub_id: str,
        method: str,
        decrypt: Callable[[str], str],
    ) -> dict[str, Any]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        while (remaining := deadline - loop.time()) > 0:
            try:
                raw = await asyncio.wait_for(ws.recv(), timeout=min(5, remaining))
                msg = json.loads(raw)
            except (asyncio.TimeoutError, json.JSONDecodeError):
                continue

            if not isinstance(msg, list) or len(msg) < 3:
                continue
            if msg[0] != "EVENT" or msg[1] != sub_id:
                continue

            result = json.loads(decrypt(msg[2]["content"]))
            if result.get("error"):
                code = result["error"].get("code", "unknown")
                message = result["error"].get("message", "unknown error")
                raise WalletError(message, code=code)
            return result.get("result") or {}

        raise WalletTimeoutError(method, self._timeout)


def _import_websockets() -> Any:
    try:
        import websockets
        import websockets.exceptions
    except ImportError as e:
        raise ImportError(_INSTALL_HINT) from e
    return websockets


def _shared_secret(secret_hex: str, peer_pubkey_hex: str) -> bytes:
    """ECDH x-coordinate shared by our secret and the wallet's x-only pubkey."""
    try:
        from cryptography.hazmat.primitives.asymmetric import ec
    except ImportError as e:
        raise ImportError(_INSTALL_HINT) from e

    peer_bytes = bytes.fromhex(
        ("02" + peer_pubkey_hex) if len(peer_pubkey_hex) == 64 else peer_pubkey_hex
    )
    peer_key = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), peer_bytes)
    private_key = ec.derive_private_key(int(secret_hex, 16), ec.SECP256K1())
    return private_key.exchange(ec.ECDH(), peer_key)


def _nip04_encrypt(secret_hex: str, recipient_pubkey_hex: str, plaintext: str) -> str:
    """NIP-04 encryption: AES-256-CBC keyed by the ECDH shared x-coordinate."""
    from cryptography.hazmat.primitives import padding
    from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

    key = _shared_secret(secret_hex, recipient_pubkey_hex)
    iv = os.urandom(16)
    padder = padding.PKCS7(128).padder()
    padded = padder.update(plaintext.encode()) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ct = encryptor.update(padded) + encryptor.finalize()
    return f"{base64.b64encode(ct).decode()}?iv={base64.b64encode(iv).decode()}"


def _nip04_decrypt(secret_hex: str, sender_pubkey_hex: str, ciphertext: str) -> str:
    """NIP-04 decryption."""
    from cryptography.hazmat.primitives import padding
    from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

    key = _shared_secret(secret_hex, sender_pubkey_hex)
    ct_b64, _, iv_b64 = ciphertext.partition("?iv=")
    decryptor = Cipher(
        algorithms.AES(key), modes.CBC(base64.b64decode(iv_b64))
    ).decryptor()
    padded = decryptor.update(base64.b64decode(ct_b64)) + decryptor.finalize()
    unpadder = padding.PKCS7(128).unpadder()
    return (unpadder.update(padded) + unpadder.finalize()).decode()


def _compute_event_id(event: dict[str, Any]) -> str:
    """NIP-01 event ID."""
    serialized = json.dumps(
        [
            0,
            event["pubkey"],
            event["created_at"],
            event["kind"],
            event["tags"],
            event["content"],
        ],
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(serialized.encode()).hexdigest()
