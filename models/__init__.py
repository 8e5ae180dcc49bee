from models.account import Account, AuthSession
from models.application import DriverApplication
from models.config import AppConfig
from models.message import ActivityLog, Message
from models.notification import PushToken, ScheduledNotification

__all__ = [
    "Account",
    "ActivityLog",
    "AppConfig",
    "AuthSession",
    "DriverApplication",
    "Message",
    "PushToken",
    "ScheduledNotification",
]
