from __future__ import annotations

import asyncio
import re
from datetime import datetime, timedelta, timezone

import pytest

from caxton.services.analytics import Analytics
from caxton.services.pairing import (
    CodeNotFound,
    DispatchFailed,
    InMemoryCodeStore,
    InvalidToken,
    MissingAppName,
    MissingCode,
    MissingFields,
    MissingPushToken,
    PairingProtocol,
    SQLiteCodeStore,
    TokenCodec,
    generate_code,
)

CODE_RE = re.compile(r"^[a-z]{5}$")


@pytest.fixture
def store() -> InMemoryCodeStore:
    return InMemoryCodeStore()


@pytest.fixture
def protocol(crypto, store, dispatcher) -> PairingProtocol:
    return PairingProtocol(store=store, codec=TokenCodec(crypto), dispatcher=dispatcher, analytics=Analytics())


def test_generate_code_shape():
    for _ in range(200):
        assert CODE_RE.match(generate_code())


@pytest.mark.anyio
async def test_issue_code_persists_row(protocol, store):
    code = await protocol.issue_code("push123")
    assert CODE_RE.match(code)
    rows = [row for row in store.rows if row.code == code]
    assert len(rows) == 1
    assert rows[0].pushtoken == "push123"
    assert protocol.analytics.snapshot() == {"Code requested by phone app version:unspecified": 1}


@pytest.mark.anyio
async def test_issue_code_requires_pushtoken(protocol):
    with pytest.raises(MissingPushToken):
        await protocol.issue_code("")


@pytest.mark.anyio
async def test_redeem_unknown_code(protocol):
    with pytest.raises(CodeNotFound) as excinfo:
        await protocol.redeem_code("nosir", "demo")
    assert excinfo.value.status_code == 404


@pytest.mark.anyio
async def test_redeem_requires_code_and_appname(protocol):
    with pytest.raises(MissingCode):
        await protocol.redeem_code(None, "demo")
    with pytest.raises(MissingAppName) as excinfo:
        await protocol.redeem_code("abcde", "")
    assert excinfo.value.message == "No appname provided"


@pytest.mark.anyio
async def test_redeem_mints_envelope_and_consumes_code(protocol, store):
    code = await protocol.issue_code("push123")
    envelope = await protocol.redeem_code(code, "demo")
    assert protocol.codec.open(envelope) == {"token": "push123", "appname": "demo"}
    assert await store.find_by_code(code) is None
    with pytest.raises(CodeNotFound):
        await protocol.redeem_code(code, "demo")


@pytest.mark.anyio
async def test_redeem_sends_pairing_confirmation(protocol, dispatcher):
    code = await protocol.issue_code("push123")
    await protocol.redeem_code(code, "demo")
    await protocol.drain()
    assert len(dispatcher.sent) == 1
    token, content = dispatcher.sent[0]
    assert token == "push123"
    assert content.type == "token-received"
    assert content.appname == "Caxton"
    assert content.message == "App demo is now paired!"
    assert content.as_dict()["paired_appname"] == "demo"
    assert content.as_dict()["code"] == code


@pytest.mark.anyio
async def test_confirmation_failure_does_not_fail_redeem(protocol, dispatcher):
    dispatcher.fail = True
    code = await protocol.issue_code("push123")
    envelope = await protocol.redeem_code(code, "demo")
    await protocol.drain()
    assert protocol.codec.unwrap(envelope, "demo") == "push123"


@pytest.mark.anyio
async def test_verify_and_send_dispatches_with_defaults(protocol, dispatcher):
    envelope = protocol.codec.mint("push123", "demo")
    await protocol.verify_and_send(envelope, "demo", "http://example.com")
    token, content = dispatcher.user_sends()[0]
    assert token == "push123"
    assert content.url == "http://example.com"
    assert content.message == "http://example.com"
    assert content.tag == "caxton"
    assert content.sound == "buzz.mp3"


@pytest.mark.anyio
async def test_verify_and_send_passes_overrides(protocol, dispatcher):
    envelope = protocol.codec.mint("push123", "demo")
    await protocol.verify_and_send(
        envelope, "demo", "http://example.com", message="this is the message", tag="atag", sound="b2.mp3"
    )
    _, content = dispatcher.user_sends()[0]
    assert (content.message, content.tag, content.sound) == ("this is the message", "atag", "b2.mp3")


@pytest.mark.anyio
async def test_verify_and_send_rejects_other_app(protocol, dispatcher):
    envelope = protocol.codec.mint("push123", "1")
    with pytest.raises(InvalidToken):
        await protocol.verify_and_send(envelope, "2", "http://example.com")
    assert dispatcher.sent == []


@pytest.mark.anyio
async def test_verify_and_send_rejects_garbage(protocol):
    with pytest.raises(InvalidToken):
        await protocol.verify_and_send("no sirree", "demo", "http://example.com")


@pytest.mark.anyio
@pytest.mark.parametrize(
    "envelope, app_name, url",
    [(None, "demo", "http://example.com"), ("x", None, "http://example.com"), ("x", "demo", None)],
)
async def test_verify_and_send_requires_fields(protocol, envelope, app_name, url):
    with pytest.raises(MissingFields):
        await protocol.verify_and_send(envelope, app_name, url)


@pytest.mark.anyio
async def test_dispatch_failure_is_reported(protocol, dispatcher):
    dispatcher.fail = True
    envelope = protocol.codec.mint("push123", "demo")
    with pytest.raises(DispatchFailed) as excinfo:
        await protocol.verify_and_send(envelope, "demo", "http://example.com")
    assert excinfo.value.status_code == 500
    assert protocol.analytics.snapshot()["Push:demo"] == 1


@pytest.mark.anyio
async def test_sweep_expired_uses_protocol_lifetime(crypto, dispatcher):
    now = [datetime(2026, 1, 1, tzinfo=timezone.utc)]
    store = InMemoryCodeStore(clock=lambda: now[0])
    protocol = PairingProtocol(
        store=store, codec=TokenCodec(crypto), dispatcher=dispatcher, lifetime=timedelta(minutes=15)
    )
    await protocol.issue_code("push123")
    now[0] += timedelta(minutes=20)
    assert await protocol.sweep_expired() == 1
    assert store.rows == []


@pytest.mark.anyio
async def test_concurrent_redemptions_yield_one_envelope(crypto, dispatcher, tmp_path):
    store = SQLiteCodeStore(tmp_path / "codes.sqlite")
    protocol = PairingProtocol(store=store, codec=TokenCodec(crypto), dispatcher=dispatcher)
    try:
        code = await protocol.issue_code("push123")
        results = await asyncio.gather(
            *(protocol.redeem_code(code, f"app{i}") for i in range(8)), return_exceptions=True
        )
        await protocol.drain()
    finally:
        store.close()
    envelopes = [result for result in results if isinstance(result, str)]
    assert len(envelopes) == 1
    assert all(isinstance(result, CodeNotFound) for result in results if not isinstance(result, str))
    assert protocol.codec.unwrap(envelopes[0]) == "push123"
    assert len(dispatcher.sent) == 1
