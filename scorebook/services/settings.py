"""
Per-captain approval settings
"""
from sqlalchemy.orm import Session

from scorebook.config import settings as app_settings
from scorebook.errors import ValidationError
from scorebook.models.user import CaptainSettings


class SettingsService:
    def __init__(self, session: Session):
        self.session = session

    def get_settings(self, user_id: str) -> CaptainSettings:
        """Get captain settings, creating the defaults on first use"""
        captain_settings = self.session.query(CaptainSettings).filter_by(user_id=user_id).first()
        if captain_settings is None:
            captain_settings = CaptainSettings(
                user_id=user_id,
                auto_approve_enabled=True,
                timeout_minutes=app_settings.DEFAULT_APPROVAL_TIMEOUT_MINUTES,
                notify_on_auto_approve=True,
            )
            self.session.add(captain_settings)
            self.session.flush()
        return captain_settings

    def update_settings(
        self,
        user_id: str,
        auto_approve_enabled: bool = None,
        timeout_minutes: int = None,
        notify_on_auto_approve: bool = None,
    ) -> CaptainSettings:
        low, high = app_settings.MIN_APPROVAL_TIMEOUT_MINUTES, app_settings.MAX_APPROVAL_TIMEOUT_MINUTES
        if timeout_minutes is not None and not low <= timeout_minutes <= high:
            raise ValidationError(f"Timeout minutes must be between {low} and {high}")

        captain_settings = self.get_settings(user_id)
        if auto_approve_enabled is not None:
            captain_settings.auto_approve_enabled = auto_approve_enabled
        if timeout_minutes is not None:
            captain_settings.timeout_minutes = timeout_minutes
        if notify_on_auto_approve is not None:
            captain_settings.notify_on_auto_approve = notify_on_auto_approve
        self.session.commit()
        return captain_settings

    def notify_on_auto_approve(self, user_id: str) -> bool:
        """Read-only check; a captain without settings gets the default"""
        captain_settings = self.session.query(CaptainSettings).filter_by(user_id=user_id).first()
        return True if captain_settings is None else captain_settings.notify_on_auto_approve
