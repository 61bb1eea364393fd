from supabase import create_client, Client
from typing import Any, Dict, List, Optional
import asyncio
import logging
import re

from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateIndex, CreateTable

logger = logging.getLogger(__name__)

PROBE_TABLES = ("integration_configs", "users", "subscriptions", "payments")

HINT_RLS = "RLS blocking access"
HINT_MISSING = "Table does not exist"
HINT_UNKNOWN = "Unknown error"


def classify_error(code: Optional[str], message: Optional[str]) -> str:
    """Map a PostgREST/Postgres error onto the hint shown by the setup wizard"""
    message = (message or "").lower()
    if code in ("42501", "42P17") or "permission" in message or "rls" in message or "infinite recursion" in message:
        return HINT_RLS
    if code in ("PGRST116", "PGRST205", "42P01") or "does not exist" in message or "could not find the table" in message:
        return HINT_MISSING
    return HINT_UNKNOWN


def project_ref(project_url: str) -> str:
    match = re.match(r"https://([^.]+)\.supabase\.co", project_url or "")
    return match.group(1) if match else "your-project"


def sql_editor_url(project_url: str) -> str:
    return f"https://app.supabase.com/project/{project_ref(project_url)}/sql/new"


def render_schema_sql() -> str:
    """Postgres DDL for every managed table, for pasting into the Supabase SQL editor"""
    from billing_api.models import Base

    dialect = postgresql.dialect()
    statements: List[str] = []
    for table in Base.metadata.sorted_tables:
        ddl = str(CreateTable(table, if_not_exists=True).compile(dialect=dialect)).strip()
        statements.append(f"{ddl};")
        for index in sorted(table.indexes, key=lambda i: i.name or ""):
            statements.append(f"{str(CreateIndex(index, if_not_exists=True).compile(dialect=dialect)).strip()};")
    return "\n\n".join(statements) + "\n"


class SupabaseService:
    """Table diagnostics against a hosted Supabase project through its REST API"""

    def _client(self, project_url: str, key: str) -> Client:
        return create_client(project_url, key)

    def _probe(self, client: Client, table: str) -> Optional[Dict[str, Any]]:
        """None when the table answers a one-row select, otherwise the error details"""
        try:
            client.table(table).select("id").limit(1).execute()
            return None
        except Exception as e:
            code = getattr(e, "code", None)
            message = getattr(e, "message", None) or str(e)
            return {"code": code, "message": message, "hint": classify_error(code, message)}

    def _probe_all(self, project_url: str, key: str, label: str, diagnostics: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        diagnostics.append({"step": f"Testing with {label}"})
        try:
            client = self._client(project_url, key)
        except Exception as e:
            error = {"code": None, "message": str(e), "hint": HINT_UNKNOWN}
            diagnostics.append({"step": f"{label}: client creation failed", "error": error["message"]})
            return error

        for table in PROBE_TABLES:
            error = self._probe(client, table)
            if error:
                diagnostics.append({
                    "step": f"{label}: {table} table check failed",
                    "error": error["message"],
                    "code": error["code"],
                    "hint": error["hint"],
                })
                return error
            diagnostics.append({"step": f"{label}: {table} table accessible", "success": True})
        return None

    def check_tables(self, project_url: str, anon_key: str, service_role_key: Optional[str] = None) -> Dict[str, Any]:
        diagnostics: List[Dict[str, Any]] = []

        error = self._probe_all(project_url, anon_key, "Anon Key", diagnostics)
        tables_found = error is None
        permission_issue = bool(error) and error["hint"] == HINT_RLS

        if service_role_key and not tables_found:
            service_error = self._probe_all(project_url, service_role_key, "Service Role Key", diagnostics)
            if service_error is None:
                tables_found = True
            else:
                error = service_error
                permission_issue = permission_issue or service_error["hint"] == HINT_RLS

        if tables_found:
            recommendation = "Tables are accessible! You can proceed."
        elif permission_issue and service_role_key:
            recommendation = "Tables exist but RLS is blocking. Fix the policies in the Supabase SQL Editor."
        elif permission_issue:
            recommendation = "Tables exist but RLS is blocking. Add Service Role Key to proceed."
        else:
            recommendation = "Tables may not exist. Run the SQL schema in Supabase SQL Editor."

        result: Dict[str, Any] = {
            "tablesFound": tables_found,
            "permissionIssue": permission_issue,
            "diagnostics": diagnostics,
            "errorDetails": None if tables_found else error,
            "recommendation": recommendation,
        }
        if not tables_found and error and error["hint"] == HINT_MISSING:
            result["sql"] = render_schema_sql()
            result["sqlEditorUrl"] = sql_editor_url(project_url)
        return result

    async def check_tables_async(self, project_url: str, anon_key: str, service_role_key: Optional[str] = None) -> Dict[str, Any]:
        # supabase-py's sync client blocks; keep it off the event loop
        return await asyncio.to_thread(self.check_tables, project_url, anon_key, service_role_key)


# Create a singleton instance
supabase_service = SupabaseService()
