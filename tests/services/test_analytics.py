from __future__ import annotations

from urllib.parse import parse_qs

import httpx
import pytest

from caxton.services.analytics import Analytics


def test_events_counted_without_tracking_id():
    analytics = Analytics()
    analytics.event("Push", "demo")
    analytics.event("Push", "demo")
    analytics.event("Token created for appname", "demo")
    assert analytics.snapshot() == {"Push:demo": 2, "Token created for appname:demo": 1}


@pytest.mark.anyio
async def test_events_forwarded_when_tracking_id_set():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(parse_qs(request.content.decode()))
        return httpx.Response(200)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    analytics = Analytics("UA-331575-5", client=client)
    analytics.event("Incoming XMLRPC", "IFTTT")
    await analytics.aclose()
    assert seen[0]["tid"] == ["UA-331575-5"]
    assert seen[0]["ec"] == ["Incoming XMLRPC"]
    assert seen[0]["ea"] == ["IFTTT"]


@pytest.mark.anyio
async def test_forwarding_failure_is_swallowed():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    analytics = Analytics("UA-1", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    analytics.event("Push", "demo")
    await analytics.aclose()
    assert analytics.snapshot() == {"Push:demo": 1}
