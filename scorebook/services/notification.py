import logging

logger = logging.getLogger(__name__)


class NotificationService:
    """Notification dispatch is handled elsewhere; this only records the intent."""

    def notify(self, user_id: str, title: str, message: str, link: str = None) -> None:
        logger.debug(f"Notification for {user_id}: {title} - {message} ({link})")
