"""Unit tests for user management.

Tests lookups, paging, writes, bulk operations, user import and email
action links against a mock identity toolkit backend.
"""

from __future__ import annotations

import base64

import httpx
import pytest

from firebase_admin_sdk.auth import (
    DELETE_ATTRIBUTE,
    ActionCodeSettings,
    EmailAlreadyExistsError,
    EmailIdentifier,
    ImportUserRecord,
    PhoneIdentifier,
    ProviderIdentifier,
    UidIdentifier,
    UserImportHash,
    UserNotFoundError,
    UserProvider,
)
from firebase_admin_sdk.auth.user_import import build_import_request
from firebase_admin_sdk.errors import InvalidArgumentError
from support import ID_TOOLKIT, request_json, user_response

LOOKUP = f"{ID_TOOLKIT}/accounts:lookup"
BATCH_GET = f"{ID_TOOLKIT}/accounts:batchGet"
CREATE = f"{ID_TOOLKIT}/accounts"
UPDATE = f"{ID_TOOLKIT}/accounts:update"
DELETE = f"{ID_TOOLKIT}/accounts:delete"
BATCH_DELETE = f"{ID_TOOLKIT}/accounts:batchDelete"
BATCH_CREATE = f"{ID_TOOLKIT}/accounts:batchCreate"
SEND_OOB = f"{ID_TOOLKIT}/accounts:sendOobCode"


class TestGetUser:
    """Tests for single-user lookups."""

    @pytest.mark.asyncio
    async def test_get_user(self, app, backend) -> None:
        backend.add(
            LOOKUP,
            user_response(
                "alice",
                email="alice@example.com",
                emailVerified=True,
                displayName="Alice",
                customAttributes='{"admin": true}',
                validSince="1700000000",
                createdAt="1600000000000",
                lastRefreshAt="2024-01-01T00:00:00Z",
                providerUserInfo=[{"rawId": "g-1", "providerId": "google.com"}],
            ),
        )

        user = await app.auth.get_user("alice")

        assert user.uid == "alice"
        assert user.email == "alice@example.com"
        assert user.email_verified
        assert user.display_name == "Alice"
        assert user.custom_claims == {"admin": True}
        assert user.tokens_valid_after_millis == 1_700_000_000_000
        assert user.user_metadata.creation_timestamp == 1_600_000_000_000
        assert user.user_metadata.last_refresh_timestamp == 1_704_067_200_000
        assert user.provider_data[0].provider_id == "google.com"
        assert request_json(backend.calls(LOOKUP)[0]) == {"localId": ["alice"]}
        assert backend.calls(LOOKUP)[0].headers["Authorization"] == "Bearer mock-access-token"

    @pytest.mark.asyncio
    async def test_user_not_found(self, app, backend) -> None:
        backend.add(LOOKUP, httpx.Response(200, json={}))

        with pytest.raises(UserNotFoundError) as exc_info:
            await app.auth.get_user("ghost")

        assert exc_info.value.kind == "user-not-found"

    @pytest.mark.asyncio
    async def test_lookup_by_email_and_phone(self, app, backend) -> None:
        backend.add(LOOKUP, user_response("alice"))

        await app.auth.get_user_by_email("alice@example.com")
        await app.auth.get_user_by_phone_number("+15555550100")

        bodies = [request_json(r) for r in backend.calls(LOOKUP)]
        assert bodies == [{"email": ["alice@example.com"]}, {"phoneNumber": ["+15555550100"]}]

    @pytest.mark.asyncio
    async def test_lookup_by_provider_uid(self, app, backend) -> None:
        backend.add(LOOKUP, user_response("alice"))

        await app.auth.get_user_by_provider_uid("google.com", "g-1")
        await app.auth.get_user_by_provider_uid("phone", "+15555550100")

        bodies = [request_json(r) for r in backend.calls(LOOKUP)]
        assert bodies[0] == {"federatedUserId": [{"providerId": "google.com", "rawId": "g-1"}]}
        assert bodies[1] == {"phoneNumber": ["+15555550100"]}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("method", "arg"),
        [
            ("get_user", ""),
            ("get_user_by_email", "no-at-sign"),
            ("get_user_by_phone_number", "5555550100"),
        ],
    )
    async def test_invalid_arguments_fail_before_request(self, app, backend, method, arg) -> None:
        with pytest.raises(InvalidArgumentError):
            await getattr(app.auth, method)(arg)

        assert backend.calls(LOOKUP) == []


class TestGetUsers:
    """Tests for bulk lookups."""

    @pytest.mark.asyncio
    async def test_found_and_not_found(self, app, backend) -> None:
        backend.add(
            LOOKUP,
            httpx.Response(
                200,
                json={
                    "users": [
                        {"localId": "alice"},
                        {"localId": "bob", "email": "bob@example.com"},
                        {
                            "localId": "carol",
                            "providerUserInfo": [{"rawId": "g-3", "providerId": "google.com"}],
                        },
                    ]
                },
            ),
        )
        identifiers = [
            UidIdentifier(uid="alice"),
            EmailIdentifier(email="bob@example.com"),
            ProviderIdentifier(provider_id="google.com", provider_uid="g-3"),
            PhoneIdentifier(phone_number="+15555550100"),
            UidIdentifier(uid="alice"),
        ]

        result = await app.auth.get_users(identifiers)

        assert {u.uid for u in result.users} == {"alice", "bob", "carol"}
        assert result.not_found == [PhoneIdentifier(phone_number="+15555550100")]
        assert request_json(backend.calls(LOOKUP)[0]) == {
            "localId": ["alice"],
            "email": ["bob@example.com"],
            "federatedUserId": [{"providerId": "google.com", "rawId": "g-3"}],
            "phoneNumber": ["+15555550100"],
        }

    @pytest.mark.asyncio
    async def test_empty_identifiers(self, app, backend) -> None:
        result = await app.auth.get_users([])

        assert result.users == [] and result.not_found == []
        assert backend.calls(LOOKUP) == []

    @pytest.mark.asyncio
    async def test_too_many_identifiers(self, app) -> None:
        with pytest.raises(InvalidArgumentError, match="100"):
            await app.auth.get_users([UidIdentifier(uid=f"u{i}") for i in range(101)])


class TestListUsers:
    """Tests for paging through users."""

    @pytest.mark.asyncio
    async def test_pages(self, app, backend) -> None:
        backend.add(
            BATCH_GET,
            httpx.Response(
                200,
                json={
                    "users": [{"localId": "u1", "passwordHash": "aGFzaA==", "salt": "c2FsdA=="}],
                    "nextPageToken": "token-2",
                },
            ),
            httpx.Response(200, json={"users": [{"localId": "u2", "passwordHash": "UkVEQUNURUQ="}]}),
        )

        page = await app.auth.list_users(max_results=1)

        assert [u.uid for u in page.users] == ["u1"]
        assert page.users[0].password_hash == "aGFzaA=="
        assert page.users[0].password_salt == "c2FsdA=="
        assert page.has_next_page
        second = await page.get_next_page()
        assert second is not None
        assert [u.uid for u in second.users] == ["u2"]
        assert second.users[0].password_hash is None
        assert not second.has_next_page
        assert await second.get_next_page() is None

        requests = backend.calls(BATCH_GET)
        assert requests[0].method == "GET"
        assert requests[0].url.params["maxResults"] == "1"
        assert "nextPageToken" not in requests[0].url.params
        assert requests[1].url.params["nextPageToken"] == "token-2"

    @pytest.mark.asyncio
    async def test_iterate_all(self, app, backend) -> None:
        backend.add(
            BATCH_GET,
            httpx.Response(200, json={"users": [{"localId": "u1"}, {"localId": "u2"}], "nextPageToken": "t2"}),
            httpx.Response(200, json={"users": [{"localId": "u3"}], "nextPageToken": "t3"}),
            httpx.Response(200, json={"users": []}),
        )

        page = await app.auth.list_users()
        uids = [user.uid async for user in page.iterate_all()]

        assert uids == ["u1", "u2", "u3"]
        assert len(backend.calls(BATCH_GET)) == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_results", [0, 1001, True])
    async def test_max_results_bounds(self, app, max_results) -> None:
        with pytest.raises(InvalidArgumentError, match="max_results"):
            await app.auth.list_users(max_results=max_results)

    @pytest.mark.asyncio
    async def test_empty_page_token(self, app) -> None:
        with pytest.raises(InvalidArgumentError, match="page token"):
            await app.auth.list_users(page_token="")


class TestUserWrites:
    """Tests for creating, updating and deleting users."""

    @pytest.mark.asyncio
    async def test_create_user(self, app, backend) -> None:
        backend.add(CREATE, httpx.Response(200, json={"localId": "new-uid"}))
        backend.add(LOOKUP, user_response("new-uid", email="new@example.com"))

        user = await app.auth.create_user(
            email="new@example.com", password="secret123", display_name="New", disabled=False
        )

        assert user.uid == "new-uid"
        assert user.email == "new@example.com"
        assert request_json(backend.calls(CREATE)[0]) == {
            "email": "new@example.com",
            "password": "secret123",
            "displayName": "New",
            "disabled": False,
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "properties",
        [
            {"password": "short"},
            {"email": "not-an-email"},
            {"phone_number": "5555550100"},
            {"photo_url": "not a url"},
            {"uid": "u" * 129},
        ],
    )
    async def test_create_user_validation(self, app, backend, properties) -> None:
        with pytest.raises(InvalidArgumentError):
            await app.auth.create_user(**properties)

        assert backend.calls(CREATE) == []

    @pytest.mark.asyncio
    async def test_create_user_duplicate_email(self, app, backend) -> None:
        backend.add(
            CREATE,
            httpx.Response(400, json={"error": {"code": 400, "message": "DUPLICATE_EMAIL"}}),
        )

        with pytest.raises(EmailAlreadyExistsError) as exc_info:
            await app.auth.create_user(email="taken@example.com")

        assert exc_info.value.kind == "email-already-exists"
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_update_user_payload(self, app, backend) -> None:
        backend.add(UPDATE, httpx.Response(200, json={"localId": "alice"}))
        backend.add(LOOKUP, user_response("alice"))

        await app.auth.update_user(
            "alice",
            display_name=DELETE_ATTRIBUTE,
            photo_url="",
            phone_number=DELETE_ATTRIBUTE,
            email="alice@example.com",
            email_verified=True,
            disabled=True,
            custom_claims={"tier": "gold"},
        )

        assert request_json(backend.calls(UPDATE)[0]) == {
            "localId": "alice",
            "deleteAttribute": ["DISPLAY_NAME", "PHOTO_URL"],
            "deleteProvider": ["phone"],
            "email": "alice@example.com",
            "emailVerified": True,
            "disableUser": True,
            "customAttributes": '{"tier":"gold"}',
        }

    @pytest.mark.asyncio
    async def test_update_user_requires_changes(self, app) -> None:
        with pytest.raises(InvalidArgumentError, match="must not be empty"):
            await app.auth.update_user("alice")

    @pytest.mark.asyncio
    async def test_set_and_clear_custom_claims(self, app, backend) -> None:
        backend.add(UPDATE, httpx.Response(200, json={"localId": "alice"}))

        await app.auth.set_custom_user_claims("alice", {"admin": True})
        await app.auth.set_custom_user_claims("alice", None)

        bodies = [request_json(r) for r in backend.calls(UPDATE)]
        assert bodies[0]["customAttributes"] == '{"admin":true}'
        assert bodies[1]["customAttributes"] == "{}"

    @pytest.mark.asyncio
    async def test_custom_claims_reserved(self, app, backend) -> None:
        with pytest.raises(InvalidArgumentError, match="reserved"):
            await app.auth.set_custom_user_claims("alice", {"iss": "me"})

        assert backend.calls(UPDATE) == []

    @pytest.mark.asyncio
    async def test_revoke_refresh_tokens(self, app, backend) -> None:
        backend.add(UPDATE, httpx.Response(200, json={"localId": "alice"}))

        await app.auth.revoke_refresh_tokens("alice")

        body = request_json(backend.calls(UPDATE)[0])
        assert body["localId"] == "alice"
        assert body["validSince"].isdigit()

    @pytest.mark.asyncio
    async def test_delete_user(self, app, backend) -> None:
        backend.add(DELETE, httpx.Response(200, json={"kind": "identitytoolkit#DeleteAccountResponse"}))

        await app.auth.delete_user("alice")

        assert request_json(backend.calls(DELETE)[0]) == {"localId": "alice"}

    @pytest.mark.asyncio
    async def test_delete_missing_user(self, app, backend) -> None:
        backend.add(
            DELETE,
            httpx.Response(400, json={"error": {"message": "USER_NOT_FOUND"}}),
        )

        with pytest.raises(UserNotFoundError):
            await app.auth.delete_user("ghost")

    @pytest.mark.asyncio
    async def test_delete_users(self, app, backend) -> None:
        backend.add(
            BATCH_DELETE,
            httpx.Response(200, json={"errors": [{"index": 1, "localId": "u2", "message": "NOT_DISABLED"}]}),
        )

        result = await app.auth.delete_users(["u1", "u2", "u3"])

        assert result.success_count == 2
        assert result.failure_count == 1
        assert result.errors[0].index == 1
        assert result.errors[0].reason == "NOT_DISABLED"
        assert request_json(backend.calls(BATCH_DELETE)[0]) == {
            "localIds": ["u1", "u2", "u3"],
            "force": True,
        }

    @pytest.mark.asyncio
    async def test_delete_users_limits(self, app, backend) -> None:
        assert (await app.auth.delete_users([])).success_count == 0
        with pytest.raises(InvalidArgumentError):
            await app.auth.delete_users([f"u{i}" for i in range(1001)])
        assert backend.calls(BATCH_DELETE) == []


class TestImportUsers:
    """Tests for bulk user import."""

    @pytest.mark.asyncio
    async def test_import_with_scrypt(self, app, backend) -> None:
        backend.add(BATCH_CREATE, httpx.Response(200, json={}))
        backend.add(LOOKUP, user_response("u1", email="u1@example.com"))
        hash_alg = UserImportHash.scrypt(
            key=b"signer-key", rounds=8, memory_cost=14, salt_separator=b"sep"
        )
        user = ImportUserRecord(
            uid="u1",
            email="u1@example.com",
            password_hash=b"password-hash",
            password_salt=b"salt",
        )

        result = await app.auth.import_users([user], hash_alg)

        assert result.success_count == 1
        assert result.failure_count == 0
        assert (await app.auth.get_user("u1")).email == "u1@example.com"
        body = request_json(backend.calls(BATCH_CREATE)[0])
        assert body["hashAlgorithm"] == "SCRYPT"
        assert body["rounds"] == 8
        assert body["memoryCost"] == 14
        assert base64.urlsafe_b64decode(body["signerKey"] + "==") == b"signer-key"
        assert body["users"] == [
            {
                "localId": "u1",
                "email": "u1@example.com",
                "passwordHash": "cGFzc3dvcmQtaGFzaA",
                "salt": "c2FsdA",
            }
        ]

    @pytest.mark.asyncio
    async def test_partial_failure(self, app, backend) -> None:
        backend.add(
            BATCH_CREATE,
            httpx.Response(200, json={"error": [{"index": 0, "message": "invalid email"}]}),
        )
        users = [ImportUserRecord(uid="u1"), ImportUserRecord(uid="u2")]

        result = await app.auth.import_users(users)

        assert result.success_count == 1
        assert result.failure_count == 1
        assert result.errors[0].index == 0

    def test_hash_required_with_passwords(self) -> None:
        with pytest.raises(InvalidArgumentError, match="hash algorithm"):
            build_import_request([ImportUserRecord(uid="u1", password_hash=b"h")])

    def test_user_list_bounds(self) -> None:
        with pytest.raises(InvalidArgumentError):
            build_import_request([])
        with pytest.raises(InvalidArgumentError):
            build_import_request([ImportUserRecord(uid=f"u{i}") for i in range(1001)])

    def test_provider_data_and_claims(self) -> None:
        user = ImportUserRecord(
            uid="u1",
            custom_claims={"admin": True},
            provider_data=[UserProvider(uid="g-1", provider_id="google.com", email="u1@example.com")],
        )

        body = build_import_request([user], UserImportHash.bcrypt())

        assert body["hashAlgorithm"] == "BCRYPT"
        assert body["users"][0]["customAttributes"] == '{"admin":true}'
        assert body["users"][0]["providerUserInfo"] == [
            {"rawId": "g-1", "providerId": "google.com", "email": "u1@example.com"}
        ]

    @pytest.mark.parametrize(
        "factory",
        [
            lambda: UserImportHash.scrypt(b"k", rounds=9, memory_cost=14),
            lambda: UserImportHash.scrypt(b"k", rounds=8, memory_cost=15),
            lambda: UserImportHash.scrypt(b"", rounds=8, memory_cost=14),
            lambda: UserImportHash.sha256(rounds=0),
            lambda: UserImportHash.pbkdf2_sha256(rounds=120001),
            lambda: UserImportHash.hmac_sha256(b""),
            lambda: UserImportHash.standard_scrypt(-1, 1, 8, 64),
        ],
    )
    def test_hash_parameter_validation(self, factory) -> None:
        with pytest.raises(InvalidArgumentError):
            factory()

    def test_hash_serialization(self) -> None:
        assert UserImportHash.hmac_sha256(b"key").to_dict() == {
            "hashAlgorithm": "HMAC_SHA256",
            "signerKey": "a2V5",
        }
        assert UserImportHash.standard_scrypt(1024, 16, 8, 64).to_dict() == {
            "hashAlgorithm": "STANDARD_SCRYPT",
            "memoryCost": 1024,
            "parallelization": 16,
            "blockSize": 8,
            "dkLen": 64,
        }


class TestEmailActionLinks:
    """Tests for generating email action links."""

    @pytest.mark.asyncio
    async def test_password_reset_link(self, app, backend) -> None:
        backend.add(SEND_OOB, httpx.Response(200, json={"oobLink": "https://example.com/reset"}))
        settings = ActionCodeSettings(
            url="https://example.com/continue",
            handle_code_in_app=True,
            android_package_name="com.example",
            android_install_app=True,
        )

        link = await app.auth.generate_password_reset_link("alice@example.com", settings)

        assert link == "https://example.com/reset"
        assert request_json(backend.calls(SEND_OOB)[0]) == {
            "requestType": "PASSWORD_RESET",
            "email": "alice@example.com",
            "returnOobLink": True,
            "continueUrl": "https://example.com/continue",
            "canHandleCodeInApp": True,
            "androidPackageName": "com.example",
            "androidInstallApp": True,
        }

    @pytest.mark.asyncio
    async def test_verification_link_without_settings(self, app, backend) -> None:
        backend.add(SEND_OOB, httpx.Response(200, json={"oobLink": "https://example.com/verify"}))

        await app.auth.generate_email_verification_link("alice@example.com")

        assert request_json(backend.calls(SEND_OOB)[0]) == {
            "requestType": "VERIFY_EMAIL",
            "email": "alice@example.com",
            "returnOobLink": True,
        }

    @pytest.mark.asyncio
    async def test_sign_in_link_requires_settings(self, app, backend) -> None:
        with pytest.raises(InvalidArgumentError, match="action code settings"):
            await app.auth.generate_sign_in_with_email_link("alice@example.com", None)

        assert backend.calls(SEND_OOB) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "settings",
        [
            ActionCodeSettings(url="not-a-url"),
            ActionCodeSettings(url="https://example.com", android_install_app=True),
        ],
    )
    async def test_invalid_settings(self, app, settings) -> None:
        with pytest.raises(InvalidArgumentError):
            await app.auth.generate_sign_in_with_email_link("alice@example.com", settings)


class TestTenantUserManagement:
    """Tests for tenant-scoped user operations."""

    @pytest.mark.asyncio
    async def test_tenant_urls(self, app, backend) -> None:
        lookup = f"{ID_TOOLKIT}/tenants/tenant-1/accounts:lookup"
        backend.add(lookup, user_response("alice"))

        user = await app.auth.tenant_client("tenant-1").get_user("alice")

        assert user.tenant_id == "tenant-1"
        assert len(backend.calls(lookup)) == 1
        assert backend.calls(LOOKUP) == []

    @pytest.mark.asyncio
    async def test_invalid_tenant_id(self, app) -> None:
        with pytest.raises(InvalidArgumentError):
            app.auth.tenant_client("")
