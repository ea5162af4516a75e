from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple

import pytest

from caxton.services.crypto import CryptoContext
from caxton.services.push import DispatchError, NotificationContent


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(scope="session")
def crypto() -> CryptoContext:
    return CryptoContext.generate(2048)


@dataclass
class FakeDispatcher:
    sent: List[Tuple[str, NotificationContent]] = field(default_factory=list)
    fail: bool = False

    async def send(self, token: str, content: NotificationContent) -> None:
        if self.fail:
            raise DispatchError("gateway down", status_code=503, body={"error": "unavailable"})
        self.sent.append((token, content))

    def user_sends(self) -> List[Tuple[str, NotificationContent]]:
        return [(token, content) for token, content in self.sent if content.type == "user"]


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()
