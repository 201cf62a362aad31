"""Token minting and verification, and user management."""

from ._errors import (
    CertificateFetchError,
    ConfigurationNotFoundError,
    EmailAlreadyExistsError,
    ExpiredIdTokenError,
    ExpiredSessionCookieError,
    InsufficientPermissionError,
    InvalidContinueUriError,
    InvalidDynamicLinkDomainError,
    InvalidEmailError,
    InvalidIdTokenError,
    InvalidPasswordError,
    InvalidPhoneNumberError,
    InvalidSessionCookieError,
    PhoneNumberAlreadyExistsError,
    RevokedIdTokenError,
    RevokedSessionCookieError,
    TenantNotFoundError,
    TokenSignError,
    UidAlreadyExistsError,
    UserDisabledError,
    UserNotFoundError,
)
from .action_code import ActionCodeSettings
from .client import AuthClient, TenantAwareAuthClient
from .key_cache import PublicKeyCache
from .signer import CryptoSigner, EmulatorSigner, IAMSigner, ServiceAccountSigner
from .token_verifier import VerifiedToken
from .user_import import ImportUserRecord, UserImportHash, UserProvider
from .user_mgt import (
    DELETE_ATTRIBUTE,
    DeleteUsersResult,
    EmailIdentifier,
    ExportedUserRecord,
    GetUsersResult,
    ListUsersPage,
    MultiFactorInfo,
    PhoneIdentifier,
    PhoneMultiFactorInfo,
    ProviderIdentifier,
    UidIdentifier,
    UserImportResult,
    UserInfo,
    UserMetadata,
    UserRecord,
)

ProviderUserInfo = UserInfo

__all__ = [
    "DELETE_ATTRIBUTE",
    "ActionCodeSettings",
    "AuthClient",
    "CertificateFetchError",
    "ConfigurationNotFoundError",
    "CryptoSigner",
    "DeleteUsersResult",
    "EmailAlreadyExistsError",
    "EmailIdentifier",
    "EmulatorSigner",
    "ExpiredIdTokenError",
    "ExpiredSessionCookieError",
    "ExportedUserRecord",
    "GetUsersResult",
    "IAMSigner",
    "ImportUserRecord",
    "InsufficientPermissionError",
    "InvalidContinueUriError",
    "InvalidDynamicLinkDomainError",
    "InvalidEmailError",
    "InvalidIdTokenError",
    "InvalidPasswordError",
    "InvalidPhoneNumberError",
    "InvalidSessionCookieError",
    "ListUsersPage",
    "MultiFactorInfo",
    "PhoneIdentifier",
    "PhoneMultiFactorInfo",
    "PhoneNumberAlreadyExistsError",
    "ProviderIdentifier",
    "ProviderUserInfo",
    "PublicKeyCache",
    "RevokedIdTokenError",
    "RevokedSessionCookieError",
    "ServiceAccountSigner",
    "TenantAwareAuthClient",
    "TenantNotFoundError",
    "TokenSignError",
    "UidAlreadyExistsError",
    "UidIdentifier",
    "UserDisabledError",
    "UserImportHash",
    "UserImportResult",
    "UserInfo",
    "UserMetadata",
    "UserNotFoundError",
    "UserProvider",
    "UserRecord",
    "VerifiedToken",
]
