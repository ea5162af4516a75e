from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

__all__ = ["PairingCode", "CODE_ALPHABET", "CODE_LENGTH", "CODE_LIFETIME"]

CODE_ALPHABET = "abcdefghijklmnopqrstuvwxyz"
CODE_LENGTH = 5
CODE_LIFETIME = timedelta(minutes=15)


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True, slots=True)
class PairingCode:
    """A stored ``(pushtoken, code, created)`` row."""

    id: int
    pushtoken: str
    code: str
    created: datetime

    def is_expired(self, *, lifetime: timedelta = CODE_LIFETIME, moment: datetime | None = None) -> bool:
        if moment is None:
            moment = _utcnow()
        return moment - self.created > lifetime
