"""Cloud messaging: message types, sends and topic management."""

from ._errors import (
    InternalServerError,
    InvalidApnsCredentialsError,
    QuotaExceededError,
    SenderIdMismatchError,
    ServerUnavailableError,
    ThirdPartyAuthError,
    TooManyTopicsError,
    UnknownMessagingError,
    UnregisteredError,
)
from .client import MessagingClient
from .encoder import MessageEncoder, validate_message
from .models import (
    AndroidConfig,
    AndroidFCMOptions,
    AndroidNotification,
    APNSConfig,
    APNSFCMOptions,
    APNSPayload,
    Aps,
    ApsAlert,
    BatchResponse,
    CriticalSound,
    FCMOptions,
    LightSettings,
    Message,
    MulticastMessage,
    Notification,
    SendResponse,
    WebpushConfig,
    WebpushFCMOptions,
    WebpushNotification,
    WebpushNotificationAction,
)
from .topic_mgt import TopicManagementResponse, TopicManager

__all__ = [
    "APNSConfig",
    "APNSFCMOptions",
    "APNSPayload",
    "AndroidConfig",
    "AndroidFCMOptions",
    "AndroidNotification",
    "Aps",
    "ApsAlert",
    "BatchResponse",
    "CriticalSound",
    "FCMOptions",
    "InternalServerError",
    "InvalidApnsCredentialsError",
    "LightSettings",
    "Message",
    "MessageEncoder",
    "MessagingClient",
    "MulticastMessage",
    "Notification",
    "QuotaExceededError",
    "SendResponse",
    "SenderIdMismatchError",
    "ServerUnavailableError",
    "ThirdPartyAuthError",
    "TooManyTopicsError",
    "TopicManagementResponse",
    "TopicManager",
    "UnknownMessagingError",
    "UnregisteredError",
    "WebpushConfig",
    "WebpushFCMOptions",
    "WebpushNotification",
    "WebpushNotificationAction",
    "validate_message",
]
