"""Pairing protocol: issue codes, redeem them for envelopes, verify envelopes on send.

A code moves from *active* to either *redeemed* (its row is taken out of the
store by the first successful redemption) or *expired* (its row is swept once
it is older than the code lifetime).  Envelopes carry no expiry of their own;
the only time bound is the one on the code they were minted from.
"""
from __future__ import annotations

import asyncio
import logging
import secrets
from datetime import timedelta

from caxton.services.analytics import Analytics
from caxton.services.push import DispatchError, NotificationContent, NotificationDispatcher

from .codec import TokenCodec
from .errors import (
    CodeNotFound,
    DispatchFailed,
    EnvelopeError,
    InvalidToken,
    MissingAppName,
    MissingCode,
    MissingFields,
    MissingPushToken,
)
from .models import CODE_ALPHABET, CODE_LENGTH, CODE_LIFETIME
from .store import CodeStore

__all__ = ["PairingProtocol", "generate_code", "DEFAULT_TAG", "DEFAULT_SOUND", "PAIRING_APP_NAME"]

logger = logging.getLogger(__name__)

DEFAULT_TAG = "caxton"
DEFAULT_SOUND = "buzz.mp3"
PAIRING_APP_NAME = "Caxton"


def generate_code(length: int = CODE_LENGTH) -> str:
    """Sample ``length`` letters independently; collisions with live codes are not checked."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


class PairingProtocol:
    def __init__(
        self,
        *,
        store: CodeStore,
        codec: TokenCodec,
        dispatcher: NotificationDispatcher,
        analytics: Analytics | None = None,
        lifetime: timedelta = CODE_LIFETIME,
    ) -> None:
        self.store = store
        self.codec = codec
        self.dispatcher = dispatcher
        self.analytics = analytics or Analytics()
        self.lifetime = lifetime
        self._background: set[asyncio.Task] = set()

    async def issue_code(self, pushtoken: str | None, *, app_version: str | None = None) -> str:
        if not pushtoken:
            raise MissingPushToken()
        code = generate_code()
        await self.store.insert(pushtoken, code)
        logger.info("issued pairing code %s", code)
        self.analytics.event("Code requested by phone app version", app_version or "unspecified")
        return code

    async def redeem_code(self, code: str | None, app_name: str | None) -> str:
        if not code:
            raise MissingCode()
        if not app_name:
            raise MissingAppName()
        row = await self.store.take_by_code(code)
        if row is None:
            raise CodeNotFound()
        envelope = self.codec.mint(row.pushtoken, app_name)
        logger.info("code %s redeemed by app %r", code, app_name)
        self._spawn(self._confirm_pairing(row.pushtoken, code, app_name))
        self.analytics.event("Token created for appname", app_name)
        return envelope

    async def verify_and_send(
        self,
        envelope: str | None,
        app_name: str | None,
        url: str | None,
        *,
        message: str | None = None,
        tag: str | None = None,
        sound: str | None = None,
    ) -> None:
        if not envelope or not url or not app_name:
            raise MissingFields()
        try:
            token = self.codec.unwrap(envelope, app_name)
        except EnvelopeError as exc:
            logger.warning("rejected envelope for app %r: %s", app_name, exc)
            raise InvalidToken() from exc
        content = NotificationContent(
            appname=app_name,
            url=url,
            message=message or url,
            tag=tag or DEFAULT_TAG,
            sound=sound or DEFAULT_SOUND,
            type="user",
        )
        try:
            await self.dispatcher.send(token, content)
        except DispatchError as exc:
            self.analytics.event("Push", app_name)
            raise DispatchFailed(detail=exc.body) from exc

    async def sweep_expired(self) -> int:
        removed = await self.store.sweep_older_than(self.lifetime)
        if removed:
            logger.info("swept %d expired pairing codes", removed)
        return removed

    async def drain(self) -> None:
        """Wait for outstanding confirmation pushes."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _confirm_pairing(self, pushtoken: str, code: str, app_name: str) -> None:
        content = NotificationContent(
            appname=PAIRING_APP_NAME,
            message=f"App {app_name} is now paired!",
            type="token-received",
            extra={"code": code, "paired_appname": app_name},
        )
        try:
            await self.dispatcher.send(pushtoken, content)
        except DispatchError as exc:
            logger.warning("pairing confirmation for code %s not delivered: %s", code, exc)
        except Exception:
            logger.exception("pairing confirmation for code %s failed", code)
