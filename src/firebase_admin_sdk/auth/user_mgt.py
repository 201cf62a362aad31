"""User records and the user management service.

All operations validate their arguments locally and then call the identity
toolkit REST API under ``projects/{project_id}`` (or
``projects/{project_id}/tenants/{tenant_id}`` for tenant-scoped clients).
"""

from __future__ import annotations

import json
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable, Sequence

from pydantic import BaseModel, ConfigDict, Field

from ..errors import InvalidArgumentError, UnknownError
from ..http import Request, with_query_params
from ..models import BulkResult, ErrorInfo
from ..telemetry import trace_operation
from . import _validators
from ._errors import UserNotFoundError

if TYPE_CHECKING:
    from ..core.cancellation import CancellationToken
    from ..core.http_executor import AsyncHTTPExecutor

ID_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"
DEFAULT_PROVIDER_ID = "firebase"
MAX_LIST_USERS_RESULTS = 1000
MAX_GET_USERS_IDENTIFIERS = 100
MAX_DELETE_USERS = 1000
_REDACTED_HASH = "UkVEQUNURUQ="


class _DeleteAttribute:
    """Marker that clears an optional user attribute on update."""

    _instance: _DeleteAttribute | None = None

    def __new__(cls) -> _DeleteAttribute:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DELETE_ATTRIBUTE"


DELETE_ATTRIBUTE = _DeleteAttribute()


def _millis(value: Any) -> int | None:
    if value in (None, ""):
        return None
    return int(value)


def _rfc3339_millis(value: str | None) -> int | None:
    if not value:
        return None
    return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp() * 1000)


class UserMetadata(BaseModel):
    """Timestamps of a user account, in milliseconds since the epoch."""

    model_config = ConfigDict(frozen=True)

    creation_timestamp: int | None = None
    last_sign_in_timestamp: int | None = None
    last_refresh_timestamp: int | None = None


class UserInfo(BaseModel):
    """Profile of one identity provider linked to a user."""

    model_config = ConfigDict(frozen=True)

    uid: str
    provider_id: str
    display_name: str | None = None
    email: str | None = None
    phone_number: str | None = None
    photo_url: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserInfo:
        return cls(
            uid=data.get("rawId", ""),
            provider_id=data.get("providerId", ""),
            display_name=data.get("displayName") or None,
            email=data.get("email") or None,
            phone_number=data.get("phoneNumber") or None,
            photo_url=data.get("photoUrl") or None,
        )


class MultiFactorInfo(BaseModel):
    """A second factor enrolled by a user."""

    model_config = ConfigDict(frozen=True)

    uid: str
    factor_id: str
    display_name: str | None = None
    enrollment_timestamp: int | None = None


class PhoneMultiFactorInfo(MultiFactorInfo):
    factor_id: str = "phone"
    phone_number: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PhoneMultiFactorInfo:
        return cls(
            uid=data.get("mfaEnrollmentId", ""),
            display_name=data.get("displayName") or None,
            phone_number=data.get("phoneInfo", ""),
            enrollment_timestamp=_rfc3339_millis(data.get("enrolledAt")),
        )


class UserRecord(BaseModel):
    """A user account."""

    model_config = ConfigDict(frozen=True)

    uid: str
    display_name: str | None = None
    email: str | None = None
    phone_number: str | None = None
    photo_url: str | None = None
    provider_id: str = DEFAULT_PROVIDER_ID
    email_verified: bool = False
    disabled: bool = False
    tokens_valid_after_millis: int | None = None
    user_metadata: UserMetadata = Field(default_factory=UserMetadata)
    custom_claims: dict[str, Any] | None = None
    provider_data: list[UserInfo] = Field(default_factory=list)
    tenant_id: str | None = None
    multi_factor: list[MultiFactorInfo] = Field(default_factory=list)

    @staticmethod
    def _fields_from_dict(data: dict[str, Any]) -> dict[str, Any]:
        claims = None
        if data.get("customAttributes"):
            parsed = json.loads(data["customAttributes"])
            claims = parsed or None
        valid_since = data.get("validSince")
        return {
            "uid": data.get("localId", ""),
            "display_name": data.get("displayName") or None,
            "email": data.get("email") or None,
            "phone_number": data.get("phoneNumber") or None,
            "photo_url": data.get("photoUrl") or None,
            "email_verified": bool(data.get("emailVerified", False)),
            "disabled": bool(data.get("disabled", False)),
            "tokens_valid_after_millis": int(valid_since) * 1000 if valid_since else None,
            "user_metadata": UserMetadata(
                creation_timestamp=_millis(data.get("createdAt")),
                last_sign_in_timestamp=_millis(data.get("lastLoginAt")),
                last_refresh_timestamp=_rfc3339_millis(data.get("lastRefreshAt")),
            ),
            "custom_claims": claims,
            "provider_data": [UserInfo.from_dict(p) for p in data.get("providerUserInfo", [])],
            "tenant_id": data.get("tenantId") or None,
            "multi_factor": [
                PhoneMultiFactorInfo.from_dict(m)
                for m in data.get("mfaInfo", [])
                if m.get("phoneInfo")
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserRecord:
        return cls(**cls._fields_from_dict(data))


class ExportedUserRecord(UserRecord):
    """A user record as listed, including password hash and salt when readable."""

    password_hash: str | None = None
    password_salt: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExportedUserRecord:
        password_hash = data.get("passwordHash")
        if password_hash == _REDACTED_HASH:
            password_hash = None
        return cls(
            **cls._fields_from_dict(data),
            password_hash=password_hash or None,
            password_salt=data.get("salt") or None,
        )


class UidIdentifier(BaseModel):
    model_config = ConfigDict(frozen=True)

    uid: str

    def matches(self, record: UserRecord) -> bool:
        return record.uid == self.uid

    def populate(self, request: dict[str, list[Any]]) -> None:
        _validators.validate_uid(self.uid)
        request.setdefault("localId", []).append(self.uid)


class EmailIdentifier(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: str

    def matches(self, record: UserRecord) -> bool:
        return record.email == self.email

    def populate(self, request: dict[str, list[Any]]) -> None:
        _validators.validate_email(self.email, required=True)
        request.setdefault("email", []).append(self.email)


class PhoneIdentifier(BaseModel):
    model_config = ConfigDict(frozen=True)

    phone_number: str

    def matches(self, record: UserRecord) -> bool:
        return record.phone_number == self.phone_number

    def populate(self, request: dict[str, list[Any]]) -> None:
        _validators.validate_phone(self.phone_number, required=True)
        request.setdefault("phoneNumber", []).append(self.phone_number)


class ProviderIdentifier(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider_id: str
    provider_uid: str

    def matches(self, record: UserRecord) -> bool:
        return any(
            info.provider_id == self.provider_id and info.uid == self.provider_uid
            for info in record.provider_data
        )

    def populate(self, request: dict[str, list[Any]]) -> None:
        _validators.validate_provider_id(self.provider_id)
        _validators.validate_provider_uid(self.provider_uid)
        request.setdefault("federatedUserId", []).append(
            {"providerId": self.provider_id, "rawId": self.provider_uid}
        )


UserIdentifier = UidIdentifier | EmailIdentifier | PhoneIdentifier | ProviderIdentifier


class GetUsersResult(BaseModel):
    """Users found by :meth:`UserManager.get_users`, plus the identifiers that were not."""

    model_config = ConfigDict(frozen=True)

    users: list[UserRecord] = Field(default_factory=list)
    not_found: list[UserIdentifier] = Field(default_factory=list)


class DeleteUsersResult(BulkResult):
    pass


class UserImportResult(BulkResult):
    pass


PageFetcher = Callable[[str | None, int, "CancellationToken | None"], Awaitable["ListUsersPage"]]


class ListUsersPage:
    """One page of users, able to fetch the following pages.

    Use either :meth:`get_next_page` or :meth:`iterate_all` on a given page;
    interleaving the two walks on the same page object is not supported.
    """

    def __init__(
        self,
        fetch: PageFetcher,
        users: list[ExportedUserRecord],
        next_page_token: str | None,
        max_results: int,
    ) -> None:
        self._fetch = fetch
        self.users = users
        self.next_page_token = next_page_token or ""
        self.max_results = max_results

    @property
    def has_next_page(self) -> bool:
        return bool(self.next_page_token)

    async def get_next_page(
        self, *, cancel: CancellationToken | None = None
    ) -> ListUsersPage | None:
        if not self.has_next_page:
            return None
        return await self._fetch(self.next_page_token, self.max_results, cancel)

    async def iterate_all(
        self, *, cancel: CancellationToken | None = None
    ) -> AsyncIterator[ExportedUserRecord]:
        """Yield every user from this page onwards, fetching pages lazily."""
        page: ListUsersPage | None = self
        while page is not None:
            for user in page.users:
                yield user
            page = await page.get_next_page(cancel=cancel)


def _is_set(value: Any) -> bool:
    return value is not None


def _clears(value: Any) -> bool:
    return value is DELETE_ATTRIBUTE or value == ""


class UserManager:
    """Identity toolkit user operations for one project or tenant."""

    def __init__(
        self,
        executor: AsyncHTTPExecutor,
        base_url: str,
        *,
        tenant_id: str | None = None,
    ) -> None:
        self._executor = executor
        self.base_url = base_url
        self.tenant_id = tenant_id

    async def _post(
        self,
        path: str,
        payload: dict[str, Any],
        cancel: CancellationToken | None,
    ) -> dict[str, Any]:
        return await self._executor.execute_json(
            Request("POST", f"{self.base_url}{path}", json=payload), cancel=cancel
        )

    def _record(self, data: dict[str, Any], cls: type[UserRecord] = UserRecord) -> Any:
        record = cls.from_dict(data)
        if self.tenant_id and record.tenant_id is None:
            record = record.model_copy(update={"tenant_id": self.tenant_id})
        return record

    async def _lookup(
        self,
        query: dict[str, Any],
        description: str,
        cancel: CancellationToken | None,
    ) -> UserRecord:
        with trace_operation("auth.get_user"):
            data = await self._post("/accounts:lookup", query, cancel)
        users = data.get("users") or []
        if not users:
            raise UserNotFoundError(f"no user record found for the provided {description}")
        return self._record(users[0])

    async def get_user(self, uid: str, *, cancel: CancellationToken | None = None) -> UserRecord:
        _validators.validate_uid(uid)
        return await self._lookup({"localId": [uid]}, f"uid: {uid!r}", cancel)

    async def get_user_by_email(
        self, email: str, *, cancel: CancellationToken | None = None
    ) -> UserRecord:
        _validators.validate_email(email, required=True)
        return await self._lookup({"email": [email]}, f"email: {email!r}", cancel)

    async def get_user_by_phone_number(
        self, phone_number: str, *, cancel: CancellationToken | None = None
    ) -> UserRecord:
        _validators.validate_phone(phone_number, required=True)
        return await self._lookup(
            {"phoneNumber": [phone_number]}, f"phone number: {phone_number!r}", cancel
        )

    async def get_user_by_provider_uid(
        self,
        provider_id: str,
        uid: str,
        *,
        cancel: CancellationToken | None = None,
    ) -> UserRecord:
        _validators.validate_provider_id(provider_id)
        _validators.validate_provider_uid(uid)
        if provider_id == "phone":
            return await self.get_user_by_phone_number(uid, cancel=cancel)
        if provider_id == "email":
            return await self.get_user_by_email(uid, cancel=cancel)
        return await self._lookup(
            {"federatedUserId": [{"providerId": provider_id, "rawId": uid}]},
            f"federated user: {provider_id}/{uid}",
            cancel,
        )

    async def get_users(
        self,
        identifiers: Sequence[UserIdentifier],
        *,
        cancel: CancellationToken | None = None,
    ) -> GetUsersResult:
        """Look up several users at once.

        Duplicate identifiers are collapsed. Users in the result are unordered.
        """
        unique = list(dict.fromkeys(identifiers))
        if not unique:
            return GetUsersResult()
        if len(unique) > MAX_GET_USERS_IDENTIFIERS:
            raise InvalidArgumentError(
                f"identifiers must have no more than {MAX_GET_USERS_IDENTIFIERS} entries"
            )

        request: dict[str, list[Any]] = {}
        for identifier in unique:
            if not isinstance(identifier, (UidIdentifier, EmailIdentifier, PhoneIdentifier, ProviderIdentifier)):
                raise InvalidArgumentError(f"unsupported identifier: {identifier!r}")
            identifier.populate(request)

        with trace_operation("auth.get_users", attributes={"count": len(unique)}):
            data = await self._post("/accounts:lookup", request, cancel)
        users = [self._record(u) for u in data.get("users") or []]
        not_found = [i for i in unique if not any(i.matches(u) for u in users)]
        return GetUsersResult(users=users, not_found=not_found)

    async def list_users(
        self,
        page_token: str | None = None,
        max_results: int = MAX_LIST_USERS_RESULTS,
        *,
        cancel: CancellationToken | None = None,
    ) -> ListUsersPage:
        if page_token is not None and (not isinstance(page_token, str) or not page_token):
            raise InvalidArgumentError("page token must be a non-empty string")
        if (
            isinstance(max_results, bool)
            or not isinstance(max_results, int)
            or not 1 <= max_results <= MAX_LIST_USERS_RESULTS
        ):
            raise InvalidArgumentError(
                f"max_results must be an integer between 1 and {MAX_LIST_USERS_RESULTS}"
            )
        return await self._fetch_page(page_token, max_results, cancel)

    async def _fetch_page(
        self,
        page_token: str | None,
        max_results: int,
        cancel: CancellationToken | None,
    ) -> ListUsersPage:
        params = {"maxResults": str(max_results)}
        if page_token:
            params["nextPageToken"] = page_token
        with trace_operation("auth.list_users"):
            data = await self._executor.execute_json(
                Request(
                    "GET",
                    f"{self.base_url}/accounts:batchGet",
                    options=[with_query_params(params)],
                ),
                cancel=cancel,
            )
        users = [self._record(u, ExportedUserRecord) for u in data.get("users") or []]
        return ListUsersPage(self._fetch_page, users, data.get("nextPageToken"), max_results)

    async def create_user(
        self,
        *,
        uid: str | None = None,
        display_name: str | None = None,
        email: str | None = None,
        email_verified: bool | None = None,
        phone_number: str | None = None,
        photo_url: str | None = None,
        password: str | None = None,
        disabled: bool | None = None,
        cancel: CancellationToken | None = None,
    ) -> str:
        """Create a user and return its uid."""
        payload = {
            "localId": _validators.validate_uid(uid, required=False),
            "displayName": _validators.validate_display_name(display_name),
            "email": _validators.validate_email(email),
            "emailVerified": email_verified,
            "phoneNumber": _validators.validate_phone(phone_number),
            "photoUrl": _validators.validate_photo_url(photo_url),
            "password": _validators.validate_password(password),
            "disabled": disabled,
        }
        payload = {k: v for k, v in payload.items() if v is not None}
        with trace_operation("auth.create_user"):
            data = await self._post("/accounts", payload, cancel)
        new_uid = data.get("localId")
        if not new_uid:
            raise UnknownError("failed to create new user: response did not contain a uid")
        return new_uid

    async def update_user(
        self,
        uid: str,
        *,
        display_name: Any = None,
        email: str | None = None,
        email_verified: bool | None = None,
        phone_number: Any = None,
        photo_url: Any = None,
        password: str | None = None,
        disabled: bool | None = None,
        custom_claims: Any = None,
        valid_since: int | None = None,
        cancel: CancellationToken | None = None,
    ) -> None:
        """Update a user.

        Passing ``DELETE_ATTRIBUTE`` or an empty string for ``display_name``,
        ``photo_url`` or ``phone_number`` removes the attribute. Passing
        ``DELETE_ATTRIBUTE`` or ``{}`` for ``custom_claims`` clears them.
        """
        _validators.validate_uid(uid)
        payload: dict[str, Any] = {"localId": uid}
        delete_attributes: list[str] = []

        if _clears(display_name):
            delete_attributes.append("DISPLAY_NAME")
        elif _is_set(display_name):
            payload["displayName"] = _validators.validate_display_name(display_name)

        if _clears(photo_url):
            delete_attributes.append("PHOTO_URL")
        elif _is_set(photo_url):
            payload["photoUrl"] = _validators.validate_photo_url(photo_url)

        if _clears(phone_number):
            payload["deleteProvider"] = ["phone"]
        elif _is_set(phone_number):
            payload["phoneNumber"] = _validators.validate_phone(phone_number)

        if delete_attributes:
            payload["deleteAttribute"] = delete_attributes

        if custom_claims is DELETE_ATTRIBUTE:
            payload["customAttributes"] = "{}"
        elif _is_set(custom_claims):
            payload["customAttributes"] = _validators.validate_custom_claims(custom_claims)

        if email is not None:
            payload["email"] = _validators.validate_email(email)
        if password is not None:
            payload["password"] = _validators.validate_password(password)
        if email_verified is not None:
            payload["emailVerified"] = bool(email_verified)
        if disabled is not None:
            payload["disableUser"] = bool(disabled)
        if valid_since is not None:
            payload["validSince"] = str(int(valid_since))

        if len(payload) == 1:
            raise InvalidArgumentError("update parameters must not be empty")

        with trace_operation("auth.update_user"):
            data = await self._post("/accounts:update", payload, cancel)
        if data.get("localId") not in (None, uid):
            raise UnknownError(f"failed to update user: {uid}")

    async def set_custom_user_claims(
        self,
        uid: str,
        custom_claims: dict[str, Any] | None,
        *,
        cancel: CancellationToken | None = None,
    ) -> None:
        claims = DELETE_ATTRIBUTE if not custom_claims else custom_claims
        await self.update_user(uid, custom_claims=claims, cancel=cancel)

    async def revoke_refresh_tokens(
        self, uid: str, *, cancel: CancellationToken | None = None
    ) -> None:
        await self.update_user(uid, valid_since=int(time.time()), cancel=cancel)

    async def delete_user(self, uid: str, *, cancel: CancellationToken | None = None) -> None:
        _validators.validate_uid(uid)
        with trace_operation("auth.delete_user"):
            await self._post("/accounts:delete", {"localId": uid}, cancel)

    async def delete_users(
        self,
        uids: Sequence[str],
        *,
        cancel: CancellationToken | None = None,
    ) -> DeleteUsersResult:
        """Delete up to 1000 users; missing users count as deleted."""
        if not uids:
            return DeleteUsersResult()
        if len(uids) > MAX_DELETE_USERS:
            raise InvalidArgumentError(f"uids must have no more than {MAX_DELETE_USERS} entries")
        for uid in uids:
            _validators.validate_uid(uid)

        with trace_operation("auth.delete_users", attributes={"count": len(uids)}):
            data = await self._post(
                "/accounts:batchDelete", {"localIds": list(uids), "force": True}, cancel
            )
        errors = [
            ErrorInfo(index=e.get("index", 0), reason=e.get("message", ""))
            for e in data.get("errors") or []
        ]
        return DeleteUsersResult(
            success_count=len(uids) - len(errors),
            failure_count=len(errors),
            errors=errors,
        )

    async def upload_accounts(
        self,
        payload: dict[str, Any],
        *,
        cancel: CancellationToken | None = None,
    ) -> UserImportResult:
        """Send a prepared ``accounts:batchCreate`` body."""
        total = len(payload.get("users", []))
        with trace_operation("auth.import_users", attributes={"count": total}):
            data = await self._post("/accounts:batchCreate", payload, cancel)
        errors = [
            ErrorInfo(index=e.get("index", 0), reason=e.get("message", ""))
            for e in data.get("error") or []
        ]
        return UserImportResult(
            success_count=total - len(errors),
            failure_count=len(errors),
            errors=errors,
        )

    async def generate_email_action_link(
        self,
        payload: dict[str, Any],
        *,
        cancel: CancellationToken | None = None,
    ) -> str:
        with trace_operation("auth.generate_email_action_link"):
            data = await self._post("/accounts:sendOobCode", payload, cancel)
        link = data.get("oobLink")
        if not link:
            raise UnknownError("failed to generate email action link")
        return link
