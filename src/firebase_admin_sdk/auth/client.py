"""Auth client: token minting and verification plus user management.

An :class:`AuthClient` is bound to one app. :meth:`AuthClient.tenant_client`
returns a :class:`TenantAwareAuthClient` that shares the app's HTTP client,
signer and key caches but scopes every user operation to one tenant.
"""

from __future__ import annotations

import time
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Callable, Sequence

from ..core.http_executor import AsyncHTTPExecutor
from ..credentials import (
    AccessToken,
    ApplicationDefault,
    ImplicitCredential,
    ServiceAccountCredential,
)
from ..errors import InvalidArgumentError
from ..telemetry import get_logger
from . import _validators
from ._errors import UserDisabledError, auth_error_parser
from .action_code import ActionCodeSettings, LinkType, build_action_link_request
from .signer import CryptoSigner, EmulatorSigner, IAMSigner, ServiceAccountSigner
from .token_gen import TokenGenerator
from .token_verifier import (
    TokenVerifier,
    VerifiedToken,
    new_id_token_verifier,
    new_session_cookie_verifier,
)
from .user_import import ImportUserRecord, UserImportHash, build_import_request
from .user_mgt import (
    ID_TOOLKIT_URL,
    MAX_LIST_USERS_RESULTS,
    DeleteUsersResult,
    GetUsersResult,
    ListUsersPage,
    UserIdentifier,
    UserImportResult,
    UserManager,
    UserRecord,
)

if TYPE_CHECKING:
    from ..app import App
    from ..core.cancellation import CancellationToken
    from ..credentials import Credential
    from .key_cache import PublicKeyCache

EMULATOR_TOKEN = "owner"
TENANT_ID_MISMATCH = "tenant-id-mismatch"


def id_toolkit_url(emulator_host: str | None = None) -> str:
    """Root of the identity toolkit v1 API, redirected when an emulator is configured."""
    if emulator_host:
        return f"http://{emulator_host}/identitytoolkit.googleapis.com/v1"
    return ID_TOOLKIT_URL


def emulator_credential() -> ImplicitCredential:
    """Credential sending the fixed bearer token the auth emulator accepts."""
    return ImplicitCredential(lambda: AccessToken(token=EMULATOR_TOKEN))


def select_signer(
    credential: Credential,
    executor: AsyncHTTPExecutor,
    *,
    service_account_id: str | None = None,
    emulator_mode: bool = False,
) -> CryptoSigner:
    """Pick the signer for custom tokens.

    Emulator mode signs with ``alg=none``. A service account key signs
    locally. Anything else signs remotely through IAM, with the signing
    account given explicitly or discovered from the metadata server.
    """
    if emulator_mode:
        return EmulatorSigner()
    source = credential.delegate if isinstance(credential, ApplicationDefault) else credential
    if isinstance(source, ServiceAccountCredential):
        return ServiceAccountSigner(source.private_key, source.service_account_email)
    return IAMSigner(
        executor,
        service_account_id=service_account_id or credential.service_account_email,
    )


class AuthClient:
    """Mints and verifies tokens and manages users for one project."""

    tenant_id: str | None = None

    def __init__(
        self,
        executor: AsyncHTTPExecutor,
        *,
        project_id: str | None,
        signer: CryptoSigner,
        id_token_keys: PublicKeyCache,
        session_cookie_keys: PublicKeyCache,
        emulator_host: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._executor = executor
        self._signer = signer
        self._id_token_keys = id_token_keys
        self._session_cookie_keys = session_cookie_keys
        self._emulator_host = emulator_host
        self._clock = clock
        self.project_id = project_id

        emulator_mode = emulator_host is not None
        self._id_token_verifier = new_id_token_verifier(
            id_token_keys, project_id, emulator_mode=emulator_mode, clock=clock
        )
        self._cookie_verifier = new_session_cookie_verifier(
            session_cookie_keys, project_id, emulator_mode=emulator_mode, clock=clock
        )
        project_url = f"{id_toolkit_url(emulator_host)}/projects/{project_id}"
        self._token_generator = TokenGenerator(signer, executor, project_url, clock=clock)
        self._users = UserManager(
            executor, self._users_base_url(project_url), tenant_id=self.tenant_id
        )
        self._logger = get_logger()

    @classmethod
    def from_app(cls, app: App) -> AuthClient:
        """Build the auth client for ``app``, reusing its HTTP client and key caches."""
        config = app.config
        credential = emulator_credential() if config.emulator_mode else app.credential
        executor = AsyncHTTPExecutor(
            app.http_client,
            config.retry,
            credential=credential,
            error_fn=auth_error_parser,
        )
        signer = select_signer(
            app.credential,
            executor,
            service_account_id=config.service_account_id,
            emulator_mode=config.emulator_mode,
        )
        return cls(
            executor,
            project_id=app.project_id,
            signer=signer,
            id_token_keys=app.id_token_keys,
            session_cookie_keys=app.session_cookie_keys,
            emulator_host=config.emulator_host,
        )

    def _users_base_url(self, project_url: str) -> str:
        return project_url

    @property
    def emulator_mode(self) -> bool:
        return self._emulator_host is not None

    def _user_manager(self) -> UserManager:
        if not self.project_id:
            raise InvalidArgumentError(
                "project id not available; set GOOGLE_CLOUD_PROJECT or initialize the app "
                "with a project id to manage users"
            )
        return self._users

    def tenant_client(self, tenant_id: str) -> TenantAwareAuthClient:
        """Return a client whose operations are scoped to ``tenant_id``."""
        return TenantAwareAuthClient(
            _validators.validate_tenant_id(tenant_id),
            self._executor,
            project_id=self.project_id,
            signer=self._signer,
            id_token_keys=self._id_token_keys,
            session_cookie_keys=self._session_cookie_keys,
            emulator_host=self._emulator_host,
            clock=self._clock,
        )

    # Tokens

    async def create_custom_token(
        self,
        uid: str,
        developer_claims: dict[str, Any] | None = None,
        *,
        cancel: CancellationToken | None = None,
    ) -> str:
        return await self._token_generator.create_custom_token(
            uid, developer_claims, tenant_id=self.tenant_id, cancel=cancel
        )

    async def verify_id_token(
        self,
        id_token: str,
        *,
        check_revoked: bool = False,
        clock_skew_seconds: int = 0,
        cancel: CancellationToken | None = None,
    ) -> VerifiedToken:
        """Verify a client ID token.

        With ``check_revoked`` the user is also looked up, and the token is
        rejected when the user is disabled or its refresh tokens were revoked
        after the token was issued.

        Raises:
            InvalidIdTokenError: The token is malformed, wrongly signed or for
                another project.
            ExpiredIdTokenError: The token has expired.
            RevokedIdTokenError: The token was revoked.
            UserDisabledError: The user is disabled.
            CertificateFetchError: The public keys could not be fetched.
        """
        return await self._verify(
            self._id_token_verifier, id_token, check_revoked, clock_skew_seconds, cancel
        )

    async def verify_session_cookie(
        self,
        session_cookie: str,
        *,
        check_revoked: bool = False,
        clock_skew_seconds: int = 0,
        cancel: CancellationToken | None = None,
    ) -> VerifiedToken:
        """Verify a session cookie, like :meth:`verify_id_token`."""
        return await self._verify(
            self._cookie_verifier, session_cookie, check_revoked, clock_skew_seconds, cancel
        )

    async def _verify(
        self,
        verifier: TokenVerifier,
        token: str,
        check_revoked: bool,
        clock_skew_seconds: int,
        cancel: CancellationToken | None,
    ) -> VerifiedToken:
        verified = await verifier.verify(
            token, clock_skew_seconds=clock_skew_seconds, cancel=cancel
        )
        self._check_tenant(verified, verifier)
        if check_revoked:
            await self._check_revoked(verified, verifier, cancel)
        return verified

    def _check_tenant(self, token: VerifiedToken, verifier: TokenVerifier) -> None:
        pass

    async def _check_revoked(
        self,
        token: VerifiedToken,
        verifier: TokenVerifier,
        cancel: CancellationToken | None,
    ) -> None:
        user = await self.get_user(token.uid, cancel=cancel)
        if user.disabled:
            raise UserDisabledError("user has been disabled")
        valid_after = user.tokens_valid_after_millis
        if valid_after and token.issued_at * 1000 < valid_after:
            raise verifier.revoked_error(f"{verifier.short_name} has been revoked")

    async def create_session_cookie(
        self,
        id_token: str,
        expires_in: timedelta | int,
        *,
        cancel: CancellationToken | None = None,
    ) -> str:
        self._user_manager()
        return await self._token_generator.create_session_cookie(
            id_token, expires_in, cancel=cancel
        )

    async def revoke_refresh_tokens(
        self, uid: str, *, cancel: CancellationToken | None = None
    ) -> None:
        """Invalidate every refresh token issued to ``uid`` before now."""
        await self._user_manager().revoke_refresh_tokens(uid, cancel=cancel)
        self._logger.info("Refresh tokens revoked", uid=uid, tenant_id=self.tenant_id)

    # Users

    async def get_user(self, uid: str, *, cancel: CancellationToken | None = None) -> UserRecord:
        return await self._user_manager().get_user(uid, cancel=cancel)

    async def get_user_by_email(
        self, email: str, *, cancel: CancellationToken | None = None
    ) -> UserRecord:
        return await self._user_manager().get_user_by_email(email, cancel=cancel)

    async def get_user_by_phone_number(
        self, phone_number: str, *, cancel: CancellationToken | None = None
    ) -> UserRecord:
        return await self._user_manager().get_user_by_phone_number(phone_number, cancel=cancel)

    async def get_user_by_provider_uid(
        self, provider_id: str, uid: str, *, cancel: CancellationToken | None = None
    ) -> UserRecord:
        return await self._user_manager().get_user_by_provider_uid(
            provider_id, uid, cancel=cancel
        )

    async def get_users(
        self,
        identifiers: Sequence[UserIdentifier],
        *,
        cancel: CancellationToken | None = None,
    ) -> GetUsersResult:
        return await self._user_manager().get_users(identifiers, cancel=cancel)

    async def list_users(
        self,
        page_token: str | None = None,
        max_results: int = MAX_LIST_USERS_RESULTS,
        *,
        cancel: CancellationToken | None = None,
    ) -> ListUsersPage:
        return await self._user_manager().list_users(page_token, max_results, cancel=cancel)

    async def create_user(
        self, *, cancel: CancellationToken | None = None, **properties: Any
    ) -> UserRecord:
        """Create a user and return the stored record.

        Accepts ``uid``, ``display_name``, ``email``, ``email_verified``,
        ``phone_number``, ``photo_url``, ``password`` and ``disabled``.
        """
        users = self._user_manager()
        uid = await users.create_user(**properties, cancel=cancel)
        return await users.get_user(uid, cancel=cancel)

    async def update_user(
        self, uid: str, *, cancel: CancellationToken | None = None, **properties: Any
    ) -> UserRecord:
        """Update a user and return the stored record.

        See :meth:`UserManager.update_user` for the accepted properties and
        the ``DELETE_ATTRIBUTE`` clearing convention.
        """
        users = self._user_manager()
        await users.update_user(uid, **properties, cancel=cancel)
        return await users.get_user(uid, cancel=cancel)

    async def set_custom_user_claims(
        self,
        uid: str,
        custom_claims: dict[str, Any] | None,
        *,
        cancel: CancellationToken | None = None,
    ) -> None:
        await self._user_manager().set_custom_user_claims(uid, custom_claims, cancel=cancel)

    async def delete_user(self, uid: str, *, cancel: CancellationToken | None = None) -> None:
        await self._user_manager().delete_user(uid, cancel=cancel)

    async def delete_users(
        self, uids: Sequence[str], *, cancel: CancellationToken | None = None
    ) -> DeleteUsersResult:
        result = await self._user_manager().delete_users(uids, cancel=cancel)
        self._logger.info(
            "Users deleted",
            success_count=result.success_count,
            failure_count=result.failure_count,
        )
        return result

    async def import_users(
        self,
        users: Sequence[ImportUserRecord],
        hash_alg: UserImportHash | None = None,
        *,
        cancel: CancellationToken | None = None,
    ) -> UserImportResult:
        """Import up to 1000 users.

        Per-user failures are reported in the result, not raised.
        """
        payload = build_import_request(users, hash_alg)
        result = await self._user_manager().upload_accounts(payload, cancel=cancel)
        self._logger.info(
            "Users imported",
            success_count=result.success_count,
            failure_count=result.failure_count,
        )
        return result

    # Email action links

    async def _action_link(
        self,
        link_type: LinkType,
        email: str,
        settings: ActionCodeSettings | None,
        cancel: CancellationToken | None,
    ) -> str:
        payload = build_action_link_request(link_type, email, settings)
        return await self._user_manager().generate_email_action_link(payload, cancel=cancel)

    async def generate_password_reset_link(
        self,
        email: str,
        action_code_settings: ActionCodeSettings | None = None,
        *,
        cancel: CancellationToken | None = None,
    ) -> str:
        return await self._action_link(
            LinkType.PASSWORD_RESET, email, action_code_settings, cancel
        )

    async def generate_email_verification_link(
        self,
        email: str,
        action_code_settings: ActionCodeSettings | None = None,
        *,
        cancel: CancellationToken | None = None,
    ) -> str:
        return await self._action_link(LinkType.VERIFY_EMAIL, email, action_code_settings, cancel)

    async def generate_sign_in_with_email_link(
        self,
        email: str,
        action_code_settings: ActionCodeSettings,
        *,
        cancel: CancellationToken | None = None,
    ) -> str:
        return await self._action_link(LinkType.EMAIL_SIGNIN, email, action_code_settings, cancel)


class TenantAwareAuthClient(AuthClient):
    """Auth client scoped to one tenant.

    Custom tokens carry the tenant id, verified tokens must belong to the
    tenant, and user operations run under ``projects/{pid}/tenants/{tid}``.
    """

    def __init__(self, tenant_id: str, *args: Any, **kwargs: Any) -> None:
        self.tenant_id = tenant_id
        super().__init__(*args, **kwargs)

    def _users_base_url(self, project_url: str) -> str:
        return f"{project_url}/tenants/{self.tenant_id}"

    def tenant_client(self, tenant_id: str) -> TenantAwareAuthClient:
        raise InvalidArgumentError("tenant clients cannot be nested")

    def _check_tenant(self, token: VerifiedToken, verifier: TokenVerifier) -> None:
        if token.tenant_id != self.tenant_id:
            raise verifier.invalid_error(
                f"invalid tenant id: {token.tenant_id!r}; expected {self.tenant_id!r}",
                kind=TENANT_ID_MISMATCH,
            )

    async def create_session_cookie(
        self,
        id_token: str,
        expires_in: timedelta | int,
        *,
        cancel: CancellationToken | None = None,
    ) -> str:
        raise InvalidArgumentError("session cookies are not supported for tenant clients")
