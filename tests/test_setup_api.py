"""
Tests for billing_api/routers/setup.py and billing_api/services/supabase_service.py
The Supabase client is mocked; no network calls are made.
"""
from unittest.mock import MagicMock, patch

import pytest

from billing_api.crud import integration_config_crud, user_crud
from billing_api.models.user import UserRole
from billing_api.schemas.billing import UserCreate
from billing_api.services.supabase_service import (
    HINT_MISSING,
    HINT_RLS,
    HINT_UNKNOWN,
    classify_error,
    render_schema_sql,
    sql_editor_url,
    supabase_service,
)

CREDENTIALS = {"projectUrl": "https://abcd1234.supabase.co", "anonKey": "anon-key"}


class _PostgrestError(Exception):
    def __init__(self, code, message):
        super().__init__(message)
        self.code = code
        self.message = message


def _client(failures: dict = None):
    """Mock supabase Client whose table(name) probe raises failures[name] if present."""
    failures = failures or {}
    client = MagicMock()

    def table(name):
        query = MagicMock()
        execute = query.select.return_value.limit.return_value.execute
        if name in failures:
            execute.side_effect = failures[name]
        else:
            execute.return_value = MagicMock(data=[])
        return query

    client.table.side_effect = table
    return client


class TestHelpers:
    @pytest.mark.parametrize("code,message,expected", [
        ("42501", "permission denied for table users", HINT_RLS),
        ("42P17", "infinite recursion detected in policy", HINT_RLS),
        ("42P01", 'relation "users" does not exist', HINT_MISSING),
        ("PGRST205", "Could not find the table 'public.users'", HINT_MISSING),
        (None, "connection reset", HINT_UNKNOWN),
    ])
    def test_classify_error(self, code, message, expected):
        assert classify_error(code, message) == expected

    def test_sql_editor_url(self):
        assert sql_editor_url("https://abcd1234.supabase.co") == "https://app.supabase.com/project/abcd1234/sql/new"
        assert sql_editor_url("http://localhost:54321") == "https://app.supabase.com/project/your-project/sql/new"

    def test_render_schema_sql(self):
        sql = render_schema_sql()
        for table in ("users", "user_settings", "subscriptions", "payments", "activity_logs", "integration_configs", "webhook_events"):
            assert f"CREATE TABLE IF NOT EXISTS {table}" in sql
        assert "JSONB" in sql
        assert "UNIQUE" in sql


class TestCheckTables:
    async def test_anon_key_sees_tables(self, client):
        with patch("billing_api.services.supabase_service.create_client", return_value=_client()) as create:
            response = await client.post("/api/setup/check-tables", json=CREDENTIALS)

        body = response.json()
        assert body["tablesFound"] is True
        assert body["permissionIssue"] is False
        assert body["errorDetails"] is None
        create.assert_called_once_with("https://abcd1234.supabase.co", "anon-key")

    async def test_rls_blocks_anon_then_service_key_works(self, client):
        anon = _client({"integration_configs": _PostgrestError("42501", "permission denied for table integration_configs")})
        service = _client()
        with patch("billing_api.services.supabase_service.create_client", side_effect=[anon, service]):
            response = await client.post("/api/setup/check-tables", json={**CREDENTIALS, "serviceRoleKey": "service-key"})

        body = response.json()
        assert body["tablesFound"] is True
        assert body["permissionIssue"] is True
        steps = [d["step"] for d in body["diagnostics"]]
        assert "Testing with Service Role Key" in steps

    async def test_missing_tables_returns_sql(self, client):
        missing = _client({"users": _PostgrestError("42P01", 'relation "public.users" does not exist')})
        with patch("billing_api.services.supabase_service.create_client", return_value=missing):
            response = await client.post("/api/setup/check-tables", json=CREDENTIALS)

        body = response.json()
        assert body["tablesFound"] is False
        assert body["errorDetails"]["hint"] == HINT_MISSING
        assert "CREATE TABLE IF NOT EXISTS users" in body["sql"]
        assert body["sqlEditorUrl"].endswith("/abcd1234/sql/new")

    async def test_credentials_required(self, client):
        response = await client.post("/api/setup/check-tables", json={"projectUrl": "https://x.supabase.co"})
        assert response.status_code == 400

    def test_service_checks_all_tables(self):
        client = _client()
        with patch("billing_api.services.supabase_service.create_client", return_value=client):
            result = supabase_service.check_tables("https://x.supabase.co", "anon")
        assert [c.args[0] for c in client.table.call_args_list] == ["integration_configs", "users", "subscriptions", "payments"]
        assert result["recommendation"] == "Tables are accessible! You can proceed."


class TestStatus:
    async def test_not_configured(self, degraded_client):
        response = await degraded_client.get("/api/setup/status")
        assert response.json()["needsSetup"] is True
        assert response.json()["setupComplete"] is False

    async def test_needs_admin(self, client):
        body = (await client.get("/api/setup/status")).json()
        assert body["setupComplete"] is False
        assert body["needsAdmin"] is True

    async def test_complete_when_admin_exists(self, client, db):
        await user_crud.create(db, obj_in=UserCreate(email="admin@example.com", role=UserRole.ADMIN))
        body = (await client.get("/api/setup/status")).json()
        assert body["setupComplete"] is True
        assert body["adminExists"] is True


class TestDatabaseSetup:
    async def test_creates_tables_and_persists_config(self, client, db):
        response = await client.post("/api/setup/database", json={**CREDENTIALS, "serviceRoleKey": "service-key"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert "webhook_events" in body["tables"]

        row = await integration_config_crud.get(db, "supabase")
        assert row.config["enabled"] is True
        assert row.config["customSettings"]["projectUrl"] == "https://abcd1234.supabase.co"
        assert row.config["customSettings"]["serviceRoleKey"] == "service-key"

    async def test_without_data_store_returns_sql(self, degraded_client):
        response = await degraded_client.post("/api/setup/database", json=CREDENTIALS)

        assert response.status_code == 400
        body = response.json()
        assert body["needsTable"] is True
        assert "CREATE TABLE IF NOT EXISTS integration_configs" in body["sql"]
        assert body["sqlEditorUrl"] == "https://app.supabase.com/project/abcd1234/sql/new"

    async def test_credentials_required(self, client):
        response = await client.post("/api/setup/database", json={"anonKey": "k"})
        assert response.status_code == 400
        assert response.json() == {"error": "Project URL and Anon Key are required"}
