"""Delivery of notifications to the push gateway."""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol
from urllib.parse import quote

import httpx

__all__ = [
    "DEFAULT_APP_ID",
    "DEFAULT_PUSH_URL",
    "DispatchError",
    "HttpPushDispatcher",
    "NotificationContent",
    "NotificationDispatcher",
    "build_payload",
]

logger = logging.getLogger(__name__)

DEFAULT_PUSH_URL = "https://push.ubuntu.com/notify"
DEFAULT_APP_ID = "org.kryogenix.caxton_Caxton"
ACTION_SCHEME = "caxton"


class DispatchError(RuntimeError):
    """Raised when the gateway rejects a notification or cannot be reached."""

    def __init__(self, message: str, *, status_code: int | None = None, body: Any | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


@dataclass(slots=True)
class NotificationContent:
    """What the device shows; also delivered verbatim as ``data.message``."""

    appname: str
    message: str
    url: str | None = None
    tag: str | None = None
    sound: str | None = None
    type: str = "user"
    count: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        extra = data.pop("extra")
        data = {key: value for key, value in data.items() if value is not None}
        data.update(extra)
        return data


class NotificationDispatcher(Protocol):
    async def send(self, token: str, content: NotificationContent) -> None: ...


def _expire_on(now: datetime, ttl: timedelta) -> str:
    moment = (now + ttl).astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_payload(
    token: str,
    content: NotificationContent,
    *,
    app_id: str = DEFAULT_APP_ID,
    ttl: timedelta = timedelta(days=1),
    now: datetime | None = None,
) -> dict[str, Any]:
    """Translate a notification into the gateway's JSON body."""
    actions = [f"{ACTION_SCHEME}:{quote(content.url, safe='')}"] if content.url else []
    notification: dict[str, Any] = {
        "card": {
            "summary": content.appname,
            "body": content.message,
            "popup": True,
            "persist": True,
            "actions": actions,
        },
        "sound": content.sound,
        "tag": content.tag,
        "vibrate": {"duration": 200, "pattern": [200, 100], "repeat": 2},
    }
    if content.count:
        notification["emblem-counter"] = {"count": content.count, "visible": True}
    return {
        "appid": app_id,
        "expire_on": _expire_on(now or datetime.now(tz=timezone.utc), ttl),
        "token": token,
        "data": {"message": content.as_dict(), "notification": notification},
    }


class HttpPushDispatcher:
    """Posts notifications to the gateway. Failures are reported, never retried."""

    def __init__(
        self,
        *,
        push_url: str = DEFAULT_PUSH_URL,
        app_id: str = DEFAULT_APP_ID,
        ttl: timedelta = timedelta(days=1),
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.push_url = push_url
        self.app_id = app_id
        self.ttl = ttl
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def send(self, token: str, content: NotificationContent) -> None:
        payload = build_payload(token, content, app_id=self.app_id, ttl=self.ttl)
        logger.debug("requesting push with token %s", token)
        try:
            resp = await self._client.post(self.push_url, json=payload)
        except httpx.HTTPError as exc:
            raise DispatchError(f"push gateway unreachable: {exc}") from exc
        body = _response_body(resp)
        if resp.status_code < 200 or resp.status_code >= 300:
            raise DispatchError(
                f"push gateway returned {resp.status_code}",
                status_code=resp.status_code,
                body=body,
            )
        logger.info("push delivered (type=%s, app=%s)", content.type, content.appname)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _response_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text
