"""이벤트 핸들러 패키지."""

from .notification_handler import run_notification_consumer

__all__ = ["run_notification_consumer"]
