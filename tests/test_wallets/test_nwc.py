"""Tests for NWC wallet adapter."""

import asyncio
import json

import pytest

from v4v_analytics.config import V4VConfig
from v4v_analytics.exceptions import ConfigurationError, WalletError, WalletTimeoutError
from v4v_analytics.wallets import create_wallet
from v4v_analytics.wallets.nwc import NwcWallet, _compute_event_id

CONN = "nostr+walletconnect://abc123pubkey?relay=wss://relay.example.com&secret=deadbeef1234"


class FakeRelay:
    """Websocket stand-in: replays queued frames, then blocks."""

    def __init__(self, frames=(), recv_error=None):
        self.frames = [json.dumps(f) if not isinstance(f, str) else f for f in frames]
        self.recv_error = recv_error
        self.sent: list[str] = []
        self.closed = False

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def recv(self) -> str:
        if self.frames:
            return self.frames.pop(0)
        if self.recv_error:
            raise self.recv_error
        await asyncio.sleep(3600)

    def sent_types(self) -> list[str]:
        return [json.loads(m)[0] for m in self.sent]

    async def close(self) -> None:
        self.closed = True


def plaintext(content: str) -> str:
    return content


def reply(sub_id: str, payload: dict) -> list:
    return ["EVENT", sub_id, {"content": json.dumps(payload)}]


class TestConnectionString:
    def test_parses_connection_string(self):
        wallet = NwcWallet(connection_string=CONN)
        assert wallet._wallet_pubkey == "abc123pubkey"
        assert wallet._relay == "wss://relay.example.com"
        assert wallet._secret == "deadbeef1234"

    def test_missing_relay_raises(self):
        with pytest.raises(ValueError, match="missing relay"):
            NwcWallet(connection_string="nostr+walletconnect://abc123pubkey?secret=deadbeef1234")

    def test_missing_secret_raises(self):
        with pytest.raises(ValueError, match="missing secret"):
            NwcWallet(connection_string="nostr+walletconnect://abc123pubkey?relay=wss://relay.example.com")

    def test_missing_pubkey_raises(self):
        with pytest.raises(ValueError, match="missing wallet pubkey"):
            NwcWallet(connection_string="nostr+walletconnect://?relay=wss://relay.example.com&secret=deadbeef1234")

    def test_custom_timeout(self):
        assert NwcWallet(connection_string=CONN, timeout=60.0)._timeout == 60.0


class TestCreateWallet:
    def test_requires_connection_string(self):
        with pytest.raises(ConfigurationError):
            create_wallet(V4VConfig(site_url="example.com"))

    def test_uses_configured_timeout(self):
        wallet = create_wallet(V4VConfig(nwc_connection_string=CONN, nwc_timeout=30))
        assert isinstance(wallet, NwcWallet)
        assert wallet._timeout == 30

    def test_timeout_override(self):
        wallet = create_wallet(V4VConfig(nwc_connection_string=CONN), timeout=15)
        assert wallet._timeout == 15


class TestAwaitReply:
    @pytest.mark.asyncio
    async def test_returns_result(self):
        relay = FakeRelay(
            [
                ["EOSE", "sub1"],
                "not json",
                reply("other", {"result": {"transactions": ["wrong"]}}),
                reply("sub1", {"result": {"transactions": [{"payment_hash": "a"}]}}),
            ]
        )
        wallet = NwcWallet(CONN)
        result = await wallet._await_reply(relay, "sub1", "list_transactions", plaintext)
        assert result == {"transactions": [{"payment_hash": "a"}]}

    @pytest.mark.asyncio
    async def test_error_reply_raises(self):
        relay = FakeRelay([reply("sub1", {"error": {"code": "INTERNAL", "message": "busy"}})])
        with pytest.raises(WalletError, match="busy") as exc_info:
            await NwcWallet(CONN)._await_reply(relay, "sub1", "list_transactions", plaintext)
        assert exc_info.value.code == "INTERNAL"
        assert exc_info.value.is_transient

    @pytest.mark.asyncio
    async def test_timeout(self):
        wallet = NwcWallet(CONN, timeout=0.05)
        with pytest.raises(WalletTimeoutError, match="reply timeout") as exc_info:
            await wallet._await_reply(FakeRelay(), "sub1", "list_transactions", plaintext)
        assert exc_info.value.is_transient
        assert exc_info.value.method == "list_transactions"

    @pytest.mark.asyncio
    async def test_close_releases_socket(self):
        wallet = NwcWallet(CONN)
        relay = FakeRelay()
        wallet._ws = relay
        async with wallet:
            pass
        assert relay.closed
        assert wallet._ws is None
        await wallet.close()


class TestEventEncoding:
    def test_event_id_is_stable_sha256(self):
        event = {
            "pubkey": "ab" * 32,
            "created_at": 1_700_000_000,
            "kind": 23194,
            "tags": [["p", "cd" * 32]],
            "content": "hello",
        }
        event_id = _compute_event_id(event)
        assert len(event_id) == 64
        assert event_id == _compute_event_id(dict(event))
        assert event_id != _compute_event_id({**event, "content": "other"})

    def test_nip04_roundtrip(self):
        ec = pytest.importorskip("cryptography.hazmat.primitives.asymmetric.ec")
        from v4v_analytics.wallets.nwc import _nip04_decrypt, _nip04_encrypt

        def pubkey_hex(secret_hex):
            key = ec.derive_private_key(int(secret_hex, 16), ec.SECP256K1())
            return format(key.public_key().public_numbers().x, "064x")

        alice, bob = "11" * 32, "22" * 32
        ciphertext = _nip04_encrypt(alice, pubkey_hex(bob), "list_transactions")
        assert "?iv=" in ciphertext
        assert _nip04_decrypt(bob, pubkey_hex(alice), ciphertext) == "list_transactions"


class TestExchange:
    EVENT = {"id": "ab" * 32, "kind": 23194, "content": "..."}

    @pytest.mark.asyncio
    async def test_closes_subscription_after_reply(self, monkeypatch):
        pytest.importorskip("websockets")
        monkeypatch.setattr("secrets.token_hex", lambda n: "sub1")
        relay = FakeRelay([reply("sub1", {"result": {"transactions": []}})])

        result = await NwcWallet(CONN)._exchange(relay, self.EVENT, "list_transactions", plaintext)
        assert result == {"transactions": []}
        assert relay.sent_types() == ["REQ", "EVENT", "CLOSE"]

    @pytest.mark.asyncio
    async def test_closes_subscription_after_timeout(self):
        pytest.importorskip("websockets")
        relay = FakeRelay()
        with pytest.raises(WalletTimeoutError):
            await NwcWallet(CONN, timeout=0.05)._exchange(relay, self.EVENT, "list_transactions", plaintext)
        assert relay.sent_types() == ["REQ", "EVENT", "CLOSE"]
        assert json.loads(relay.sent[2])[1] == json.loads(relay.sent[0])[1]

    @pytest.mark.asyncio
    async def test_closes_subscription_after_error_reply(self, monkeypatch):
        pytest.importorskip("websockets")
        monkeypatch.setattr("secrets.token_hex", lambda n: "sub1")
        relay = FakeRelay([reply("sub1", {"error": {"code": "RESTRICTED", "message": "no"}})])
        with pytest.raises(WalletError, match="RESTRICTED"):
            await NwcWallet(CONN)._exchange(relay, self.EVENT, "list_transactions", plaintext)
        assert relay.sent_types()[-1] == "CLOSE"


class TestRelayErrors:
    @pytest.mark.asyncio
    async def test_dropped_connection_is_wallet_error(self):
        websockets = pytest.importorskip("websockets")
        relay = FakeRelay(recv_error=websockets.exceptions.ConnectionClosedError(None, None))
        wallet = NwcWallet(CONN)
        wallet._ws = relay

        with pytest.raises(WalletError, match="relay connection failed"):
            await wallet._exchange(relay, TestExchange.EVENT, "list_transactions", plaintext)
        assert wallet._ws is None

    @pytest.mark.asyncio
    async def test_invalid_relay_uri_is_wallet_error(self, monkeypatch):
        websockets = pytest.importorskip("websockets")

        async def connect(uri):
            raise websockets.exceptions.InvalidURI(uri, "not a websocket URI")

        monkeypatch.setattr(websockets, "connect", connect)
        with pytest.raises(WalletError, match="could not connect to relay"):
            await NwcWallet(CONN)._connect()

    @pytest.mark.asyncio
    async def test_refused_connection_is_wallet_error(self, monkeypatch):
        websockets = pytest.importorskip("websockets")

        async def connect(uri):
            raise ConnectionRefusedError("refused")

        monkeypatch.setattr(websockets, "connect", connect)
        wallet = NwcWallet(CONN)
        with pytest.raises(WalletError, match="refused"):
            await wallet._connect()
        assert wallet._ws is None
