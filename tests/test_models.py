"""Tests for the Transaction record."""

import pytest

from v4v_analytics.models import Transaction


class TestTransaction:
    def test_from_dict(self):
        t = Transaction.from_dict(
            {
                "payment_hash": "abc",
                "amount": 21_000,
                "description": "example.com/post",
                "settled_at": 200,
                "created_at": 100,
                "type": "incoming",
            }
        )
        assert t.payment_hash == "abc"
        assert t.sats == 21
        assert t.timestamp == 200
        assert t.extra == {"type": "incoming"}

    def test_timestamp_falls_back_to_created_at(self):
        t = Transaction.from_dict({"payment_hash": "abc", "amount": 0, "created_at": 100})
        assert t.timestamp == 100

    def test_missing_hash_rejected(self):
        with pytest.raises(ValueError, match="payment_hash"):
            Transaction.from_dict({"amount": 1000})

    def test_non_dict_rejected(self):
        with pytest.raises(ValueError):
            Transaction.from_dict(["abc", 1000])

    def test_bad_number_rejected(self):
        with pytest.raises(ValueError, match="abc"):
            Transaction.from_dict({"payment_hash": "abc", "amount": "lots"})

    def test_non_string_description_rejected(self):
        with pytest.raises(ValueError, match="description"):
            Transaction.from_dict({"payment_hash": "abc", "amount": 1000, "description": 123})

    def test_to_dict_keeps_extra_fields(self):
        data = {"payment_hash": "abc", "amount": 5000, "settled_at": 1, "preimage": "ff"}
        assert Transaction.from_dict(data).to_dict() == data
