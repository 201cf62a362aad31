"""Message types for the messaging service.

Models are plain typed containers. Field-level rules that span several
fields (exactly one target, loc-key/loc-args coupling, reserved custom-data
keys) are enforced by :func:`firebase_admin_sdk.messaging.encoder.validate_message`,
which runs before every send.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..errors import FirebaseError


class _Model(BaseModel):
    model_config = ConfigDict(extra="forbid")


class Notification(_Model):
    """Basic notification shown on every platform."""

    title: str | None = None
    body: str | None = None
    image: str | None = None


class LightSettings(_Model):
    """LED settings for an Android notification.

    ``color`` is ``#RRGGBB`` or ``#RRGGBBAA``.
    """

    color: str
    light_on_duration_millis: int
    light_off_duration_millis: int


class AndroidNotification(_Model):
    title: str | None = None
    body: str | None = None
    icon: str | None = None
    color: str | None = None
    sound: str | None = None
    tag: str | None = None
    click_action: str | None = None
    body_loc_key: str | None = None
    body_loc_args: list[str] | None = None
    title_loc_key: str | None = None
    title_loc_args: list[str] | None = None
    channel_id: str | None = None
    image: str | None = None
    ticker: str | None = None
    sticky: bool | None = None
    event_timestamp: datetime | None = None
    local_only: bool | None = None
    # one of min, low, default, high, max
    priority: str | None = None
    vibrate_timings_millis: list[int] | None = None
    default_vibrate_timings: bool | None = None
    default_sound: bool | None = None
    light_settings: LightSettings | None = None
    default_light_settings: bool | None = None
    # one of private, public, secret
    visibility: str | None = None
    notification_count: int | None = None


class AndroidFCMOptions(_Model):
    analytics_label: str | None = None


class AndroidConfig(_Model):
    """Android specific options.

    ``priority`` is ``normal`` or ``high``. ``ttl`` is how long the message
    is kept while the device is offline.
    """

    collapse_key: str | None = None
    priority: str | None = None
    ttl: timedelta | None = None
    restricted_package_name: str | None = None
    data: dict[str, str] | None = None
    notification: AndroidNotification | None = None
    fcm_options: AndroidFCMOptions | None = None
    direct_boot_ok: bool | None = None


class WebpushNotificationAction(_Model):
    action: str
    title: str
    icon: str | None = None


class WebpushNotification(_Model):
    """Web notification, following the Notification API of browsers.

    ``custom_data`` is merged into the notification object on the wire and
    must not repeat a standard field.
    """

    title: str | None = None
    body: str | None = None
    icon: str | None = None
    actions: list[WebpushNotificationAction] | None = None
    badge: str | None = None
    data: Any = None
    # one of ltr, rtl, auto
    direction: str | None = None
    image: str | None = None
    language: str | None = None
    renotify: bool | None = None
    require_interaction: bool | None = None
    silent: bool | None = None
    tag: str | None = None
    timestamp_millis: int | None = None
    vibrate: list[int] | None = None
    custom_data: dict[str, Any] | None = None


class WebpushFCMOptions(_Model):
    link: str | None = None


class WebpushConfig(_Model):
    headers: dict[str, str] | None = None
    data: dict[str, str] | None = None
    notification: WebpushNotification | None = None
    fcm_options: WebpushFCMOptions | None = None


class CriticalSound(_Model):
    """Sound of a critical alert; ``volume`` is between 0 and 1."""

    name: str
    critical: bool = False
    volume: float | None = None


class ApsAlert(_Model):
    title: str | None = None
    subtitle: str | None = None
    body: str | None = None
    loc_key: str | None = None
    loc_args: list[str] | None = None
    title_loc_key: str | None = None
    title_loc_args: list[str] | None = None
    subtitle_loc_key: str | None = None
    subtitle_loc_args: list[str] | None = None
    action_loc_key: str | None = None
    launch_image: str | None = None
    custom_data: dict[str, Any] | None = None


class Aps(_Model):
    """The ``aps`` dictionary of an APNs payload.

    ``alert`` is either a plain string or an :class:`ApsAlert`, and ``sound``
    either a sound name or a :class:`CriticalSound`. A ``badge`` of 0 is
    sent and clears the badge.
    """

    alert: str | ApsAlert | None = None
    badge: int | None = None
    sound: str | CriticalSound | None = None
    content_available: bool = False
    category: str | None = None
    thread_id: str | None = None
    mutable_content: bool = False
    custom_data: dict[str, Any] | None = None


class APNSPayload(_Model):
    aps: Aps
    custom_data: dict[str, Any] | None = None


class APNSFCMOptions(_Model):
    analytics_label: str | None = None
    image: str | None = None


class APNSConfig(_Model):
    headers: dict[str, str] | None = None
    payload: APNSPayload | None = None
    fcm_options: APNSFCMOptions | None = None


class FCMOptions(_Model):
    analytics_label: str | None = None


class Message(_Model):
    """A message for one target: a registration token, a topic or a condition."""

    data: dict[str, str] | None = None
    notification: Notification | None = None
    android: AndroidConfig | None = None
    webpush: WebpushConfig | None = None
    apns: APNSConfig | None = None
    fcm_options: FCMOptions | None = None
    token: str | None = None
    topic: str | None = None
    condition: str | None = None


class MulticastMessage(_Model):
    """One payload fanned out to up to 500 registration tokens."""

    tokens: list[str]
    data: dict[str, str] | None = None
    notification: Notification | None = None
    android: AndroidConfig | None = None
    webpush: WebpushConfig | None = None
    apns: APNSConfig | None = None
    fcm_options: FCMOptions | None = None

    def to_messages(self) -> list[Message]:
        shared = {name: getattr(self, name) for name in type(self).model_fields if name != "tokens"}
        return [Message(token=token, **shared) for token in self.tokens]


class SendResponse(BaseModel):
    """Outcome of one message in a batch."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    message_id: str | None = None
    exception: FirebaseError | None = None

    @property
    def success(self) -> bool:
        return self.exception is None


class BatchResponse(BaseModel):
    """Outcomes of a batch, in the order of the input messages."""

    model_config = ConfigDict(frozen=True)

    responses: list[SendResponse] = Field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.responses if r.success)

    @property
    def failure_count(self) -> int:
        return len(self.responses) - self.success_count
