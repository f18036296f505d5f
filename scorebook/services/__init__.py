from scorebook.services.directory import DirectoryService
from scorebook.services.audit import AuditService
from scorebook.services.notification import NotificationService
from scorebook.services.settings import SettingsService
from scorebook.services.stats import StatsService

__all__ = [
    "DirectoryService",
    "AuditService",
    "NotificationService",
    "SettingsService",
    "StatsService",
]
