"""Tests for the environment variable endpoints: framing, status mapping, auth."""

import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

from httpx import ASGITransport, AsyncClient

from appdeck.api.app import create_application
from appdeck.api.dependencies import AuthenticatedUser
from appdeck.db.models import EnvironmentVariable
from appdeck.errors import DuplicateKeyError, NotFoundError, UnauthorizedError
from appdeck.services.env_var_service import (
    MASK_PLACEHOLDER,
    BulkImportResult,
    EnvironmentVariableView,
)

APP_ID = uuid.UUID("0190a7c0-0000-7000-8000-000000000001")
VAR_ID = uuid.UUID("0190a7c0-0000-7000-8000-000000000002")
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


def _make_app_with_auth(user: AuthenticatedUser | None = None):
    """Create an app with auth and database dependencies overridden."""
    app = create_application()

    if user is not None:
        from appdeck.api.dependencies import get_current_user

        async def override_auth():
            return user

        app.dependency_overrides[get_current_user] = override_auth

    from appdeck.db.session import get_db

    async def override_db():
        return AsyncMock()

    app.dependency_overrides[get_db] = override_db

    return app


def _owner() -> AuthenticatedUser:
    return AuthenticatedUser(user_id="owner-1", auth_method="api_token")


def _view(**overrides) -> EnvironmentVariableView:
    fields = dict(
        id=VAR_ID,
        app_id=APP_ID,
        key="DB_URL",
        value=MASK_PLACEHOLDER,
        decrypted_value="postgres://x",
        is_encrypted=True,
        environment="production",
        description=None,
        created_at=NOW,
        updated_at=NOW,
    )
    fields.update(overrides)
    return EnvironmentVariableView(**fields)


def _record(**overrides) -> EnvironmentVariable:
    fields = dict(
        id=VAR_ID,
        app_id=APP_ID,
        key="API_URL",
        value="https://api.example.com",
        is_encrypted=False,
        environment="all",
        description="public endpoint",
        created_at=NOW,
        updated_at=NOW,
    )
    fields.update(overrides)
    return EnvironmentVariable(**fields)


def _body(**attributes) -> dict:
    return {"data": {"type": "env-vars", "attributes": attributes}}


class TestListEnvVars:
    @patch("appdeck.services.env_var_service.list_env_vars", new_callable=AsyncMock)
    async def test_returns_masked_documents(self, mock_list):
        mock_list.return_value = [_view()]
        app = _make_app_with_auth(_owner())

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get(f"/api/v1/apps/app-{APP_ID}/env-vars")

        assert response.status_code == 200
        [doc] = response.json()["data"]
        assert doc["id"] == f"env-{VAR_ID}"
        assert doc["type"] == "env-vars"
        assert doc["attributes"]["value"] == MASK_PLACEHOLDER
        assert doc["attributes"]["decrypted-value"] == "postgres://x"
        assert doc["attributes"]["is-encrypted"] is True
        assert doc["attributes"]["created-at"] == "2026-03-10T12:00:00Z"
        assert doc["relationships"]["app"]["data"]["id"] == f"app-{APP_ID}"

    @patch("appdeck.services.env_var_service.list_env_vars", new_callable=AsyncMock)
    async def test_passes_environment_filter(self, mock_list):
        mock_list.return_value = []
        app = _make_app_with_auth(_owner())

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get(
                f"/api/v1/apps/{APP_ID}/env-vars", params={"environment": "staging"}
            )

        assert response.status_code == 200
        args, kwargs = mock_list.call_args
        assert args[1] == APP_ID
        assert args[2] == "owner-1"
        assert kwargs["environment"] == "staging"

    @patch("appdeck.services.env_var_service.list_env_vars", new_callable=AsyncMock)
    async def test_unauthorized_maps_to_403(self, mock_list):
        mock_list.side_effect = UnauthorizedError()
        app = _make_app_with_auth(_owner())

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get(f"/api/v1/apps/app-{APP_ID}/env-vars")

        assert response.status_code == 403
        assert response.json() == {"detail": "Unauthorized"}

    async def test_malformed_app_id_is_404(self):
        app = _make_app_with_auth(_owner())

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/api/v1/apps/app-nope/env-vars")

        assert response.status_code == 404

    @patch("appdeck.api.dependencies.validate_api_token", new_callable=AsyncMock)
    async def test_invalid_token_is_401(self, mock_validate):
        mock_validate.return_value = None
        app = _make_app_with_auth()

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get(
                f"/api/v1/apps/app-{APP_ID}/env-vars",
                headers={"Authorization": "Bearer bogus.adk.token"},
            )

        assert response.status_code == 401


class TestCreateEnvVar:
    @patch("appdeck.services.env_var_service.create_env_var", new_callable=AsyncMock)
    async def test_created(self, mock_create):
        mock_create.return_value = _record()
        app = _make_app_with_auth(_owner())

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post(
                f"/api/v1/apps/app-{APP_ID}/env-vars",
                json=_body(key="API_URL", value="https://api.example.com", environment="all"),
            )

        assert response.status_code == 201
        attrs = response.json()["data"]["attributes"]
        assert attrs["key"] == "API_URL"
        assert attrs["value"] == "https://api.example.com"
        assert attrs["decrypted-value"] == "https://api.example.com"
        assert attrs["description"] == "public endpoint"
        kwargs = mock_create.call_args.kwargs
        assert kwargs["is_encrypted"] is False
        assert kwargs["description"] is None

    @patch("appdeck.services.env_var_service.create_env_var", new_callable=AsyncMock)
    async def test_duplicate_maps_to_409(self, mock_create):
        mock_create.side_effect = DuplicateKeyError("API_URL", "all")
        app = _make_app_with_auth(_owner())

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post(
                f"/api/v1/apps/app-{APP_ID}/env-vars",
                json=_body(key="API_URL", value="x", environment="all"),
            )

        assert response.status_code == 409
        assert "API_URL" in response.json()["detail"]
        assert "all" in response.json()["detail"]

    async def test_wrong_attribute_type_is_422(self):
        app = _make_app_with_auth(_owner())

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post(
                f"/api/v1/apps/app-{APP_ID}/env-vars",
                json=_body(key="API_URL", value="x", environment="all", **{"is-encrypted": "yes"}),
            )

        assert response.status_code == 422

    async def test_missing_data_object_is_422(self):
        app = _make_app_with_auth(_owner())

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post(
                f"/api/v1/apps/app-{APP_ID}/env-vars", json={"key": "API_URL"}
            )

        assert response.status_code == 422


class TestBulkImport:
    @patch("appdeck.services.env_var_service.bulk_import", new_callable=AsyncMock)
    async def test_returns_actions(self, mock_bulk):
        mock_bulk.return_value = [
            BulkImportResult(key="A", action="created"),
            BulkImportResult(key="B", action="updated"),
        ]
        app = _make_app_with_auth(_owner())

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post(
                f"/api/v1/apps/app-{APP_ID}/env-vars/bulk-import",
                json={
                    "data": [
                        {"attributes": {"key": "A", "value": "1", "environment": "all"}},
                        {
                            "attributes": {
                                "key": "B",
                                "value": "2",
                                "environment": "production",
                                "is-encrypted": True,
                            }
                        },
                    ]
                },
            )

        assert response.status_code == 200
        assert response.json()["data"] == [
            {"key": "A", "action": "created"},
            {"key": "B", "action": "updated"},
        ]
        entries = mock_bulk.call_args.args[3]
        assert [e.key for e in entries] == ["A", "B"]
        assert entries[1].is_encrypted is True

    @patch("appdeck.services.env_var_service.bulk_import", new_callable=AsyncMock)
    async def test_empty_batch(self, mock_bulk):
        mock_bulk.return_value = []
        app = _make_app_with_auth(_owner())

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post(
                f"/api/v1/apps/app-{APP_ID}/env-vars/bulk-import", json={"data": []}
            )

        assert response.status_code == 200
        assert response.json() == {"data": []}

    async def test_data_must_be_array(self):
        app = _make_app_with_auth(_owner())

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post(
                f"/api/v1/apps/app-{APP_ID}/env-vars/bulk-import", json={"data": {}}
            )

        assert response.status_code == 422


class TestSingleEnvVar:
    @patch("appdeck.services.env_var_service.get_env_var", new_callable=AsyncMock)
    async def test_get(self, mock_get):
        mock_get.return_value = _view()
        app = _make_app_with_auth(_owner())

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get(f"/api/v1/env-vars/env-{VAR_ID}")

        assert response.status_code == 200
        assert response.json()["data"]["attributes"]["decrypted-value"] == "postgres://x"
        assert mock_get.call_args.args[1] == VAR_ID

    @patch("appdeck.services.env_var_service.get_env_var", new_callable=AsyncMock)
    async def test_get_missing_is_404(self, mock_get):
        mock_get.side_effect = NotFoundError("Environment variable", VAR_ID)
        app = _make_app_with_auth(_owner())

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get(f"/api/v1/env-vars/env-{VAR_ID}")

        assert response.status_code == 404
        assert response.json() == {"detail": "Environment variable not found"}

    @patch("appdeck.services.env_var_service.update_env_var", new_callable=AsyncMock)
    async def test_patch_passes_only_given_fields(self, mock_update):
        mock_update.return_value = _record(value="new")
        app = _make_app_with_auth(_owner())

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.patch(
                f"/api/v1/env-vars/env-{VAR_ID}", json=_body(value="new")
            )

        assert response.status_code == 200
        kwargs = mock_update.call_args.kwargs
        assert kwargs["value"] == "new"
        assert kwargs["key"] is None
        assert kwargs["is_encrypted"] is None
        assert kwargs["environment"] is None

    @patch("appdeck.services.env_var_service.delete_env_var", new_callable=AsyncMock)
    async def test_delete(self, mock_delete):
        app = _make_app_with_auth(_owner())

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.delete(f"/api/v1/env-vars/env-{VAR_ID}")

        assert response.status_code == 204
        mock_delete.assert_awaited_once()
