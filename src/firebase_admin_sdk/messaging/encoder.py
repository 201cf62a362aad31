"""Wire encoding of messages.

Every leaf type has a hand-written encoder and decoder. ``validate_message``
is the single validation pass; it runs before encoding and after decoding,
so anything :meth:`MessageEncoder.encode` emits decodes back to an equal
message.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, NoReturn, TypeVar
from urllib.parse import urlparse

from ..errors import InvalidArgumentError
from .models import (
    AndroidConfig,
    AndroidFCMOptions,
    AndroidNotification,
    APNSConfig,
    APNSFCMOptions,
    APNSPayload,
    Aps,
    ApsAlert,
    CriticalSound,
    FCMOptions,
    LightSettings,
    Message,
    Notification,
    WebpushConfig,
    WebpushFCMOptions,
    WebpushNotification,
    WebpushNotificationAction,
)

T = TypeVar("T")

TOPIC_PREFIX = "/topics/"
TOPIC_RE = re.compile(r"^(/topics/)?(private/)?[a-zA-Z0-9\-_.~%]+$")
ANALYTICS_LABEL_RE = re.compile(r"^[a-zA-Z0-9\-_.~%]{1,50}$")
COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")
LIGHT_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}([0-9a-fA-F]{2})?$")
DURATION_RE = re.compile(r"^(\d+)(?:\.(\d{1,9}))?s$")

ANDROID_PRIORITIES = frozenset({"normal", "high"})
NOTIFICATION_PRIORITIES = frozenset({"min", "low", "default", "high", "max"})
VISIBILITIES = frozenset({"private", "public", "secret"})
WEBPUSH_DIRECTIONS = frozenset({"ltr", "rtl", "auto"})

APS_KEYS = frozenset({
    "alert", "badge", "sound", "content-available", "category", "thread-id", "mutable-content",
})
APS_ALERT_KEYS = frozenset({
    "title", "subtitle", "body", "loc-key", "loc-args", "title-loc-key", "title-loc-args",
    "subtitle-loc-key", "subtitle-loc-args", "action-loc-key", "launch-image",
})
WEBPUSH_NOTIFICATION_KEYS = frozenset({
    "title", "body", "icon", "actions", "badge", "data", "dir", "image", "lang", "renotify",
    "requireInteraction", "silent", "tag", "timestamp", "vibrate",
})


# Helpers


def _clean(values: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def _opt(value: T | None, fn: Callable[[T], Any]) -> Any:
    return None if value is None else fn(value)


def _int_flag(value: bool) -> int | None:
    return 1 if value else None


def format_duration(value: timedelta) -> str:
    """Render a non-negative duration as ``<secs>s`` or ``<secs>.<9 digits>s``."""
    micros = (value.days * 86400 + value.seconds) * 1_000_000 + value.microseconds
    secs, rem = divmod(micros, 1_000_000)
    if rem:
        return f"{secs}.{rem * 1000:09d}s"
    return f"{secs}s"


def parse_duration(value: str) -> timedelta:
    match = DURATION_RE.match(value)
    if not match:
        raise InvalidArgumentError(f"malformed duration string: {value!r}")
    nanos = int(match.group(2).ljust(9, "0")) if match.group(2) else 0
    return timedelta(seconds=int(match.group(1)), microseconds=nanos // 1000)


def _millis_duration(millis: int) -> str:
    return format_duration(timedelta(milliseconds=millis))


def _duration_millis(value: str) -> int:
    return parse_duration(value) // timedelta(milliseconds=1)


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _color_to_rgba(color: str) -> dict[str, float]:
    alpha = int(color[7:9], 16) if len(color) == 9 else 255
    return {
        "red": int(color[1:3], 16) / 255,
        "green": int(color[3:5], 16) / 255,
        "blue": int(color[5:7], 16) / 255,
        "alpha": alpha / 255,
    }


def _rgba_to_color(rgba: dict[str, float]) -> str:
    channels = [round(rgba.get(c, 0.0) * 255) for c in ("red", "green", "blue")]
    color = "#" + "".join(f"{c:02X}" for c in channels)
    alpha = round(rgba.get("alpha", 1.0) * 255)
    if alpha != 255:
        color += f"{alpha:02X}"
    return color


def strip_topic_prefix(topic: str) -> str:
    return topic[len(TOPIC_PREFIX):] if topic.startswith(TOPIC_PREFIX) else topic


# Validation


def _fail(message: str) -> NoReturn:
    raise InvalidArgumentError(message)


def _check_string_map(name: str, values: dict[str, Any] | None) -> None:
    if values is None:
        return
    for key, value in values.items():
        if not isinstance(key, str) or not isinstance(value, str):
            _fail(f"{name} must be a map of string keys to string values")


def _check_absolute_url(name: str, url: str | None, schemes: tuple[str, ...] = ("http", "https")) -> None:
    if url is None:
        return
    parsed = urlparse(url)
    if parsed.scheme not in schemes or not parsed.netloc:
        _fail(f"{name} must be a valid URL: {url!r}")


def _check_analytics_label(label: str | None) -> None:
    if label is not None and not ANALYTICS_LABEL_RE.match(label):
        _fail("malformed analytics_label")


def _check_loc(args: list[str] | None, key: str | None, args_name: str, key_name: str) -> None:
    if args and not key:
        _fail(f"{key_name} is required when specifying {args_name}")


def _check_no_overlap(name: str, custom: dict[str, Any] | None, reserved: frozenset[str]) -> None:
    if not custom:
        return
    overlap = sorted(reserved.intersection(custom))
    if overlap:
        _fail(f"multiple specifications for {overlap[0]!r} in {name}")


def _validate_android_notification(n: AndroidNotification) -> None:
    if n.color is not None and not COLOR_RE.match(n.color):
        _fail("color must be in the form #RRGGBB")
    _check_loc(n.title_loc_args, n.title_loc_key, "title_loc_args", "title_loc_key")
    _check_loc(n.body_loc_args, n.body_loc_key, "body_loc_args", "body_loc_key")
    _check_absolute_url("image", n.image)
    if n.priority is not None and n.priority not in NOTIFICATION_PRIORITIES:
        _fail(f"priority must be one of {sorted(NOTIFICATION_PRIORITIES)}")
    if n.visibility is not None and n.visibility not in VISIBILITIES:
        _fail(f"visibility must be one of {sorted(VISIBILITIES)}")
    if n.vibrate_timings_millis and any(v < 0 for v in n.vibrate_timings_millis):
        _fail("vibrate_timings_millis must not contain negative durations")
    if n.notification_count is not None and n.notification_count < 0:
        _fail("notification_count must not be negative")
    light = n.light_settings
    if light is not None:
        if not LIGHT_COLOR_RE.match(light.color):
            _fail("light_settings.color must be in the form #RRGGBB or #RRGGBBAA")
        if light.light_on_duration_millis < 0:
            _fail("light_on_duration_millis must not be negative")
        if light.light_off_duration_millis < 0:
            _fail("light_off_duration_millis must not be negative")


def _validate_android(config: AndroidConfig) -> None:
    if config.priority is not None and config.priority not in ANDROID_PRIORITIES:
        _fail("priority must be 'normal' or 'high'")
    if config.ttl is not None and config.ttl < timedelta(0):
        _fail("ttl duration must not be negative")
    _check_string_map("android.data", config.data)
    if config.notification is not None:
        _validate_android_notification(config.notification)
    if config.fcm_options is not None:
        _check_analytics_label(config.fcm_options.analytics_label)


def _validate_aps(aps: Aps) -> None:
    alert = aps.alert
    if isinstance(alert, ApsAlert):
        _check_loc(alert.loc_args, alert.loc_key, "loc_args", "loc_key")
        _check_loc(alert.title_loc_args, alert.title_loc_key, "title_loc_args", "title_loc_key")
        _check_loc(
            alert.subtitle_loc_args, alert.subtitle_loc_key, "subtitle_loc_args", "subtitle_loc_key"
        )
        _check_no_overlap("aps.alert", alert.custom_data, APS_ALERT_KEYS)
    sound = aps.sound
    if isinstance(sound, CriticalSound):
        if not sound.name:
            _fail("critical sound name must be non-empty")
        if sound.volume is not None and not 0 <= sound.volume <= 1:
            _fail("critical sound volume must be in the interval [0, 1]")
    _check_no_overlap("aps", aps.custom_data, APS_KEYS)


def _validate_apns(config: APNSConfig) -> None:
    _check_string_map("apns.headers", config.headers)
    if config.payload is not None:
        _validate_aps(config.payload.aps)
        _check_no_overlap("apns.payload", config.payload.custom_data, frozenset({"aps"}))
    if config.fcm_options is not None:
        _check_analytics_label(config.fcm_options.analytics_label)
        _check_absolute_url("apns.fcm_options.image", config.fcm_options.image)


def _validate_webpush(config: WebpushConfig) -> None:
    _check_string_map("webpush.headers", config.headers)
    _check_string_map("webpush.data", config.data)
    n = config.notification
    if n is not None:
        if n.direction is not None and n.direction not in WEBPUSH_DIRECTIONS:
            _fail("direction must be 'ltr', 'rtl' or 'auto'")
        _check_no_overlap("webpush.notification", n.custom_data, WEBPUSH_NOTIFICATION_KEYS)
    if config.fcm_options is not None and config.fcm_options.link is not None:
        _check_absolute_url("webpush.fcm_options.link", config.fcm_options.link, ("https",))


def validate_message(message: Message) -> None:
    """Check ``message`` against the service's rules.

    Raises:
        InvalidArgumentError: On the first violated rule.
    """
    if not isinstance(message, Message):
        _fail("message must be a Message instance")
    targets = [t for t in (message.token, message.topic, message.condition) if t]
    if len(targets) != 1:
        _fail("exactly one of token, topic or condition must be specified")
    if message.topic and not TOPIC_RE.match(message.topic):
        _fail(f"malformed topic name: {message.topic!r}")
    _check_string_map("data", message.data)
    if message.notification is not None:
        _check_absolute_url("notification.image", message.notification.image)
    if message.android is not None:
        _validate_android(message.android)
    if message.apns is not None:
        _validate_apns(message.apns)
    if message.webpush is not None:
        _validate_webpush(message.webpush)
    if message.fcm_options is not None:
        _check_analytics_label(message.fcm_options.analytics_label)


# Encoding


def _encode_notification(n: Notification) -> dict[str, Any]:
    return _clean({"title": n.title, "body": n.body, "image": n.image})


def _encode_light_settings(light: LightSettings) -> dict[str, Any]:
    return {
        "color": _color_to_rgba(light.color),
        "light_on_duration": _millis_duration(light.light_on_duration_millis),
        "light_off_duration": _millis_duration(light.light_off_duration_millis),
    }


def _encode_android_notification(n: AndroidNotification) -> dict[str, Any]:
    return _clean({
        "title": n.title,
        "body": n.body,
        "icon": n.icon,
        "color": n.color,
        "sound": n.sound,
        "tag": n.tag,
        "click_action": n.click_action,
        "body_loc_key": n.body_loc_key,
        "body_loc_args": n.body_loc_args,
        "title_loc_key": n.title_loc_key,
        "title_loc_args": n.title_loc_args,
        "channel_id": n.channel_id,
        "image": n.image,
        "ticker": n.ticker,
        "sticky": n.sticky,
        "event_time": _opt(n.event_timestamp, _format_timestamp),
        "local_only": n.local_only,
        "notification_priority": _opt(n.priority, lambda p: f"PRIORITY_{p.upper()}"),
        "vibrate_timings": _opt(n.vibrate_timings_millis, lambda v: [_millis_duration(t) for t in v]),
        "default_vibrate_timings": n.default_vibrate_timings,
        "default_sound": n.default_sound,
        "light_settings": _opt(n.light_settings, _encode_light_settings),
        "default_light_settings": n.default_light_settings,
        "visibility": _opt(n.visibility, str.upper),
        "notification_count": n.notification_count,
    })


def _encode_android(config: AndroidConfig) -> dict[str, Any]:
    return _clean({
        "collapse_key": config.collapse_key,
        "priority": config.priority,
        "ttl": _opt(config.ttl, format_duration),
        "restricted_package_name": config.restricted_package_name,
        "data": config.data,
        "notification": _opt(config.notification, _encode_android_notification),
        "fcm_options": _opt(
            config.fcm_options, lambda o: _clean({"analytics_label": o.analytics_label})
        ),
        "direct_boot_ok": config.direct_boot_ok,
    })


def _encode_aps_alert(alert: ApsAlert) -> dict[str, Any]:
    result = _clean({
        "title": alert.title,
        "subtitle": alert.subtitle,
        "body": alert.body,
        "loc-key": alert.loc_key,
        "loc-args": alert.loc_args,
        "title-loc-key": alert.title_loc_key,
        "title-loc-args": alert.title_loc_args,
        "subtitle-loc-key": alert.subtitle_loc_key,
        "subtitle-loc-args": alert.subtitle_loc_args,
        "action-loc-key": alert.action_loc_key,
        "launch-image": alert.launch_image,
    })
    result.update(alert.custom_data or {})
    return result


def _encode_sound(sound: str | CriticalSound) -> Any:
    if isinstance(sound, str):
        return sound
    return _clean({
        "critical": _int_flag(sound.critical),
        "name": sound.name,
        "volume": sound.volume,
    })


def _encode_aps(aps: Aps) -> dict[str, Any]:
    alert = aps.alert
    result = _clean({
        "alert": alert if isinstance(alert, str) else _opt(alert, _encode_aps_alert),
        "badge": aps.badge,
        "sound": _opt(aps.sound, _encode_sound),
        "content-available": _int_flag(aps.content_available),
        "category": aps.category,
        "thread-id": aps.thread_id,
        "mutable-content": _int_flag(aps.mutable_content),
    })
    result.update(aps.custom_data or {})
    return result


def _encode_apns(config: APNSConfig) -> dict[str, Any]:
    payload = None
    if config.payload is not None:
        payload = {"aps": _encode_aps(config.payload.aps), **(config.payload.custom_data or {})}
    return _clean({
        "headers": config.headers,
        "payload": payload,
        "fcm_options": _opt(
            config.fcm_options,
            lambda o: _clean({"analytics_label": o.analytics_label, "image": o.image}),
        ),
    })


def _encode_webpush_notification(n: WebpushNotification) -> dict[str, Any]:
    result = _clean({
        "title": n.title,
        "body": n.body,
        "icon": n.icon,
        "actions": _opt(
            n.actions,
            lambda actions: [
                _clean({"action": a.action, "title": a.title, "icon": a.icon}) for a in actions
            ],
        ),
        "badge": n.badge,
        "data": n.data,
        "dir": n.direction,
        "image": n.image,
        "lang": n.language,
        "renotify": n.renotify,
        "requireInteraction": n.require_interaction,
        "silent": n.silent,
        "tag": n.tag,
        "timestamp": n.timestamp_millis,
        "vibrate": n.vibrate,
    })
    result.update(n.custom_data or {})
    return result


def _encode_webpush(config: WebpushConfig) -> dict[str, Any]:
    return _clean({
        "headers": config.headers,
        "data": config.data,
        "notification": _opt(config.notification, _encode_webpush_notification),
        "fcm_options": _opt(config.fcm_options, lambda o: _clean({"link": o.link})),
    })


# Decoding


def _decode_light_settings(data: dict[str, Any]) -> LightSettings:
    return LightSettings(
        color=_rgba_to_color(data.get("color", {})),
        light_on_duration_millis=_duration_millis(data["light_on_duration"]),
        light_off_duration_millis=_duration_millis(data["light_off_duration"]),
    )


def _decode_android_notification(data: dict[str, Any]) -> AndroidNotification:
    priority = data.get("notification_priority")
    return AndroidNotification(
        title=data.get("title"),
        body=data.get("body"),
        icon=data.get("icon"),
        color=data.get("color"),
        sound=data.get("sound"),
        tag=data.get("tag"),
        click_action=data.get("click_action"),
        body_loc_key=data.get("body_loc_key"),
        body_loc_args=data.get("body_loc_args"),
        title_loc_key=data.get("title_loc_key"),
        title_loc_args=data.get("title_loc_args"),
        channel_id=data.get("channel_id"),
        image=data.get("image"),
        ticker=data.get("ticker"),
        sticky=data.get("sticky"),
        event_timestamp=_opt(data.get("event_time"), _parse_timestamp),
        local_only=data.get("local_only"),
        priority=_opt(priority, lambda p: p.removeprefix("PRIORITY_").lower()),
        vibrate_timings_millis=_opt(
            data.get("vibrate_timings"), lambda v: [_duration_millis(t) for t in v]
        ),
        default_vibrate_timings=data.get("default_vibrate_timings"),
        default_sound=data.get("default_sound"),
        light_settings=_opt(data.get("light_settings"), _decode_light_settings),
        default_light_settings=data.get("default_light_settings"),
        visibility=_opt(data.get("visibility"), str.lower),
        notification_count=data.get("notification_count"),
    )


def _decode_android(data: dict[str, Any]) -> AndroidConfig:
    return AndroidConfig(
        collapse_key=data.get("collapse_key"),
        priority=data.get("priority"),
        ttl=_opt(data.get("ttl"), parse_duration),
        restricted_package_name=data.get("restricted_package_name"),
        data=data.get("data"),
        notification=_opt(data.get("notification"), _decode_android_notification),
        fcm_options=_opt(
            data.get("fcm_options"), lambda o: AndroidFCMOptions(analytics_label=o.get("analytics_label"))
        ),
        direct_boot_ok=data.get("direct_boot_ok"),
    )


def _decode_aps_alert(data: dict[str, Any]) -> ApsAlert:
    custom = {k: v for k, v in data.items() if k not in APS_ALERT_KEYS}
    return ApsAlert(
        title=data.get("title"),
        subtitle=data.get("subtitle"),
        body=data.get("body"),
        loc_key=data.get("loc-key"),
        loc_args=data.get("loc-args"),
        title_loc_key=data.get("title-loc-key"),
        title_loc_args=data.get("title-loc-args"),
        subtitle_loc_key=data.get("subtitle-loc-key"),
        subtitle_loc_args=data.get("subtitle-loc-args"),
        action_loc_key=data.get("action-loc-key"),
        launch_image=data.get("launch-image"),
        custom_data=custom or None,
    )


def _decode_sound(data: Any) -> str | CriticalSound:
    if isinstance(data, str):
        return data
    return CriticalSound(
        name=data.get("name", ""),
        critical=bool(data.get("critical")),
        volume=data.get("volume"),
    )


def _decode_aps(data: dict[str, Any]) -> Aps:
    alert = data.get("alert")
    custom = {k: v for k, v in data.items() if k not in APS_KEYS}
    return Aps(
        alert=alert if isinstance(alert, str) else _opt(alert, _decode_aps_alert),
        badge=data.get("badge"),
        sound=_opt(data.get("sound"), _decode_sound),
        content_available=data.get("content-available") == 1,
        category=data.get("category"),
        thread_id=data.get("thread-id"),
        mutable_content=data.get("mutable-content") == 1,
        custom_data=custom or None,
    )


def _decode_apns(data: dict[str, Any]) -> APNSConfig:
    payload = None
    if data.get("payload") is not None:
        raw = data["payload"]
        custom = {k: v for k, v in raw.items() if k != "aps"}
        payload = APNSPayload(aps=_decode_aps(raw.get("aps", {})), custom_data=custom or None)
    return APNSConfig(
        headers=data.get("headers"),
        payload=payload,
        fcm_options=_opt(
            data.get("fcm_options"),
            lambda o: APNSFCMOptions(analytics_label=o.get("analytics_label"), image=o.get("image")),
        ),
    )


def _decode_webpush_notification(data: dict[str, Any]) -> WebpushNotification:
    custom = {k: v for k, v in data.items() if k not in WEBPUSH_NOTIFICATION_KEYS}
    return WebpushNotification(
        title=data.get("title"),
        body=data.get("body"),
        icon=data.get("icon"),
        actions=_opt(
            data.get("actions"),
            lambda actions: [WebpushNotificationAction(**a) for a in actions],
        ),
        badge=data.get("badge"),
        data=data.get("data"),
        direction=data.get("dir"),
        image=data.get("image"),
        language=data.get("lang"),
        renotify=data.get("renotify"),
        require_interaction=data.get("requireInteraction"),
        silent=data.get("silent"),
        tag=data.get("tag"),
        timestamp_millis=data.get("timestamp"),
        vibrate=data.get("vibrate"),
        custom_data=custom or None,
    )


def _decode_webpush(data: dict[str, Any]) -> WebpushConfig:
    return WebpushConfig(
        headers=data.get("headers"),
        data=data.get("data"),
        notification=_opt(data.get("notification"), _decode_webpush_notification),
        fcm_options=_opt(data.get("fcm_options"), lambda o: WebpushFCMOptions(link=o.get("link"))),
    )


class MessageEncoder:
    """Converts messages to and from their JSON wire form."""

    @staticmethod
    def encode(message: Message) -> dict[str, Any]:
        """Validate ``message`` and return its wire dict, topic prefix stripped."""
        validate_message(message)
        return _clean({
            "data": message.data,
            "notification": _opt(message.notification, _encode_notification),
            "android": _opt(message.android, _encode_android),
            "webpush": _opt(message.webpush, _encode_webpush),
            "apns": _opt(message.apns, _encode_apns),
            "fcm_options": _opt(
                message.fcm_options, lambda o: _clean({"analytics_label": o.analytics_label})
            ),
            "token": message.token,
            "topic": _opt(message.topic, strip_topic_prefix),
            "condition": message.condition,
        })

    @staticmethod
    def decode(data: dict[str, Any]) -> Message:
        """Build a message from its wire dict and validate it."""
        if not isinstance(data, dict):
            raise InvalidArgumentError("message data must be a JSON object")
        notification = data.get("notification")
        message = Message(
            data=data.get("data"),
            notification=_opt(notification, lambda n: Notification(**n)),
            android=_opt(data.get("android"), _decode_android),
            webpush=_opt(data.get("webpush"), _decode_webpush),
            apns=_opt(data.get("apns"), _decode_apns),
            fcm_options=_opt(
                data.get("fcm_options"), lambda o: FCMOptions(analytics_label=o.get("analytics_label"))
            ),
            token=data.get("token"),
            topic=data.get("topic"),
            condition=data.get("condition"),
        )
        validate_message(message)
        return message
