"""Settings for email action links."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict

from ..errors import InvalidArgumentError
from ._validators import is_absolute_url


class LinkType(StrEnum):
    EMAIL_SIGNIN = "EMAIL_SIGNIN"
    VERIFY_EMAIL = "VERIFY_EMAIL"
    PASSWORD_RESET = "PASSWORD_RESET"


class ActionCodeSettings(BaseModel):
    """Continue URL and optional mobile app settings for an action link."""

    model_config = ConfigDict(frozen=True)

    url: str
    handle_code_in_app: bool = False
    dynamic_link_domain: str | None = None
    ios_bundle_id: str | None = None
    android_package_name: str | None = None
    android_minimum_version: str | None = None
    android_install_app: bool = False

    def to_dict(self) -> dict[str, Any]:
        if not self.url:
            raise InvalidArgumentError("action code settings url must not be empty")
        if not is_absolute_url(self.url):
            raise InvalidArgumentError(f"malformed url string: {self.url!r}")
        if (self.android_minimum_version or self.android_install_app) and not self.android_package_name:
            raise InvalidArgumentError(
                "Android package name is required when specifying other Android settings"
            )

        payload: dict[str, Any] = {
            "continueUrl": self.url,
            "canHandleCodeInApp": self.handle_code_in_app,
        }
        optional = {
            "dynamicLinkDomain": self.dynamic_link_domain,
            "iOSBundleId": self.ios_bundle_id,
            "androidPackageName": self.android_package_name,
            "androidMinimumVersion": self.android_minimum_version,
        }
        payload.update({k: v for k, v in optional.items() if v})
        if self.android_install_app:
            payload["androidInstallApp"] = True
        return payload


def build_action_link_request(
    link_type: LinkType,
    email: str,
    settings: ActionCodeSettings | None,
) -> dict[str, Any]:
    """Build the ``accounts:sendOobCode`` body that returns the link instead of mailing it."""
    if not isinstance(email, str) or not email:
        raise InvalidArgumentError("email must not be empty")
    if link_type is LinkType.EMAIL_SIGNIN and settings is None:
        raise InvalidArgumentError(
            "action code settings must not be None when generating sign-in links"
        )
    payload: dict[str, Any] = {
        "requestType": link_type.value,
        "email": email,
        "returnOobLink": True,
    }
    if settings is not None:
        payload.update(settings.to_dict())
    return payload
