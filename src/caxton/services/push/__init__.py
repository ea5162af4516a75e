from .dispatcher import (
    DEFAULT_APP_ID,
    DEFAULT_PUSH_URL,
    DispatchError,
    HttpPushDispatcher,
    NotificationContent,
    NotificationDispatcher,
    build_payload,
)

__all__ = [
    "DEFAULT_APP_ID",
    "DEFAULT_PUSH_URL",
    "DispatchError",
    "HttpPushDispatcher",
    "NotificationContent",
    "NotificationDispatcher",
    "build_payload",
]
