"""Bulk user import: records to import and password hash descriptors."""

from __future__ import annotations

import base64
from typing import Any, Self, Sequence

from pydantic import BaseModel, ConfigDict, Field

from ..errors import InvalidArgumentError
from . import _validators
from .user_mgt import UserMetadata

MAX_IMPORT_USERS = 1000


def b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _check_range(name: str, value: Any, low: int, high: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        raise InvalidArgumentError(f"{name} must be an integer between {low} and {high}")
    return value


def _check_key(key: Any) -> bytes:
    if not isinstance(key, (bytes, bytearray)) or not key:
        raise InvalidArgumentError("signer key not specified")
    return bytes(key)


class UserImportHash:
    """Describes how the server should interpret imported password hashes.

    Instances are created with the classmethod factories, which validate
    algorithm parameters eagerly.
    """

    def __init__(self, name: str, data: dict[str, Any] | None = None) -> None:
        self.name = name
        self._data = data or {}

    def to_dict(self) -> dict[str, Any]:
        return {"hashAlgorithm": self.name, **self._data}

    def __repr__(self) -> str:
        return f"UserImportHash({self.name!r})"

    @classmethod
    def _hmac(cls, name: str, key: bytes) -> Self:
        return cls(name, {"signerKey": b64url(_check_key(key))})

    @classmethod
    def hmac_sha512(cls, key: bytes) -> Self:
        return cls._hmac("HMAC_SHA512", key)

    @classmethod
    def hmac_sha256(cls, key: bytes) -> Self:
        return cls._hmac("HMAC_SHA256", key)

    @classmethod
    def hmac_sha1(cls, key: bytes) -> Self:
        return cls._hmac("HMAC_SHA1", key)

    @classmethod
    def hmac_md5(cls, key: bytes) -> Self:
        return cls._hmac("HMAC_MD5", key)

    @classmethod
    def _basic(cls, name: str, rounds: int, low: int, high: int) -> Self:
        return cls(name, {"rounds": _check_range("rounds", rounds, low, high)})

    @classmethod
    def md5(cls, rounds: int) -> Self:
        return cls._basic("MD5", rounds, 0, 8192)

    @classmethod
    def sha1(cls, rounds: int) -> Self:
        return cls._basic("SHA1", rounds, 1, 8192)

    @classmethod
    def sha256(cls, rounds: int) -> Self:
        return cls._basic("SHA256", rounds, 1, 8192)

    @classmethod
    def sha512(cls, rounds: int) -> Self:
        return cls._basic("SHA512", rounds, 1, 8192)

    @classmethod
    def pbkdf_sha1(cls, rounds: int) -> Self:
        return cls._basic("PBKDF_SHA1", rounds, 0, 120000)

    @classmethod
    def pbkdf2_sha256(cls, rounds: int) -> Self:
        return cls._basic("PBKDF2_SHA256", rounds, 0, 120000)

    @classmethod
    def scrypt(
        cls,
        key: bytes,
        rounds: int,
        memory_cost: int,
        salt_separator: bytes | None = None,
    ) -> Self:
        """Firebase's modified scrypt, parameterized by the project's hash config."""
        return cls("SCRYPT", {
            "signerKey": b64url(_check_key(key)),
            "rounds": _check_range("rounds", rounds, 1, 8),
            "memoryCost": _check_range("memory_cost", memory_cost, 1, 14),
            "saltSeparator": b64url(salt_separator or b""),
        })

    @classmethod
    def standard_scrypt(
        cls,
        memory_cost: int,
        parallelization: int,
        block_size: int,
        derived_key_length: int,
    ) -> Self:
        for name, value in (
            ("memory_cost", memory_cost),
            ("parallelization", parallelization),
            ("block_size", block_size),
            ("derived_key_length", derived_key_length),
        ):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvalidArgumentError(f"{name} must be a non-negative integer")
        return cls("STANDARD_SCRYPT", {
            "memoryCost": memory_cost,
            "parallelization": parallelization,
            "blockSize": block_size,
            "dkLen": derived_key_length,
        })

    @classmethod
    def bcrypt(cls) -> Self:
        return cls("BCRYPT")


class UserProvider(BaseModel):
    """A federated identity attached to an imported user."""

    model_config = ConfigDict(frozen=True)

    uid: str
    provider_id: str
    email: str | None = None
    display_name: str | None = None
    photo_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        _validators.validate_provider_uid(self.uid)
        _validators.validate_provider_id(self.provider_id)
        payload = {
            "rawId": self.uid,
            "providerId": self.provider_id,
            "email": _validators.validate_email(self.email),
            "displayName": self.display_name,
            "photoUrl": _validators.validate_photo_url(self.photo_url),
        }
        return {k: v for k, v in payload.items() if v is not None}


class ImportUserRecord(BaseModel):
    """A user account to import."""

    model_config = ConfigDict(frozen=True)

    uid: str
    email: str | None = None
    email_verified: bool | None = None
    display_name: str | None = None
    phone_number: str | None = None
    photo_url: str | None = None
    disabled: bool | None = None
    user_metadata: UserMetadata | None = None
    provider_data: list[UserProvider] = Field(default_factory=list)
    custom_claims: dict[str, Any] | None = None
    password_hash: bytes | None = None
    password_salt: bytes | None = None

    def to_dict(self) -> dict[str, Any]:
        """Validate and serialize to the upload wire format."""
        payload: dict[str, Any] = {
            "localId": _validators.validate_uid(self.uid),
            "email": _validators.validate_email(self.email),
            "emailVerified": self.email_verified,
            "displayName": _validators.validate_display_name(self.display_name),
            "phoneNumber": _validators.validate_phone(self.phone_number),
            "photoUrl": _validators.validate_photo_url(self.photo_url),
            "disabled": self.disabled,
        }
        if self.user_metadata is not None:
            payload["createdAt"] = self.user_metadata.creation_timestamp
            payload["lastLoginAt"] = self.user_metadata.last_sign_in_timestamp
        if self.provider_data:
            payload["providerUserInfo"] = [p.to_dict() for p in self.provider_data]
        if self.custom_claims:
            payload["customAttributes"] = _validators.validate_custom_claims(self.custom_claims)
        if self.password_hash is not None:
            payload["passwordHash"] = b64url(self.password_hash)
        if self.password_salt is not None:
            payload["salt"] = b64url(self.password_salt)
        return {k: v for k, v in payload.items() if v is not None}


def build_import_request(
    users: Sequence[ImportUserRecord],
    hash_alg: UserImportHash | None = None,
) -> dict[str, Any]:
    """Build the ``accounts:batchCreate`` request body.

    Raises:
        InvalidArgumentError: For an empty or oversized list, an invalid user,
            or users with password hashes but no ``hash_alg``.
    """
    if not users:
        raise InvalidArgumentError("users list must not be empty")
    if len(users) > MAX_IMPORT_USERS:
        raise InvalidArgumentError(
            f"users list must not contain more than {MAX_IMPORT_USERS} elements"
        )
    if any(not isinstance(u, ImportUserRecord) for u in users):
        raise InvalidArgumentError("users must be ImportUserRecord instances")

    payload: dict[str, Any] = {"users": [u.to_dict() for u in users]}
    if any("passwordHash" in u for u in payload["users"]):
        if hash_alg is None:
            raise InvalidArgumentError(
                "hash algorithm option is required to import users with passwords"
            )
    if hash_alg is not None:
        if not isinstance(hash_alg, UserImportHash):
            raise InvalidArgumentError("hash_alg must be a UserImportHash")
        payload.update(hash_alg.to_dict())
    return payload
