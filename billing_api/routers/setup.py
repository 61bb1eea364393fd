from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from billing_api.core.database import get_optional_db, init_db, list_missing_tables
from billing_api.crud import user_crud
from billing_api.services.config_store import DatabaseConfigStore
from billing_api.services.supabase_service import render_schema_sql, sql_editor_url, supabase_service

logger = logging.getLogger(__name__)

router = APIRouter()


class SupabaseCredentials(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    project_url: Optional[str] = Field(default=None, alias="projectUrl")
    anon_key: Optional[str] = Field(default=None, alias="anonKey")
    service_role_key: Optional[str] = Field(default=None, alias="serviceRoleKey")
    database_url: Optional[str] = Field(default=None, alias="databaseUrl")


def _require_credentials(body: SupabaseCredentials) -> Optional[JSONResponse]:
    if not body.project_url or not body.anon_key:
        return JSONResponse(status_code=400, content={"error": "Project URL and Anon Key are required"})
    return None


@router.get("/status")
async def setup_status(db: Optional[AsyncSession] = Depends(get_optional_db)):
    """Whether the database, its tables and an admin user exist"""
    if db is None:
        return {
            "setupComplete": False,
            "needsSetup": True,
            "message": "Supabase not configured",
        }

    try:
        missing = await list_missing_tables(db)
        if missing:
            return {
                "setupComplete": False,
                "needsTables": True,
                "missingTables": missing,
                "message": "Database tables not created yet",
            }

        admin_exists = await user_crud.admin_exists(db)
    except Exception as e:
        logger.error("Setup status check failed: %s", e)
        return {
            "setupComplete": False,
            "message": "Failed to connect to database",
            "error": str(e),
        }

    if admin_exists:
        return {"setupComplete": True, "adminExists": True, "message": "Setup already completed"}
    return {"setupComplete": False, "adminExists": False, "needsAdmin": True, "message": "Admin user not found"}


@router.post("/database")
async def setup_database(
    body: SupabaseCredentials,
    db: Optional[AsyncSession] = Depends(get_optional_db)
):
    """Create missing tables and store the Supabase integration config"""
    invalid = _require_credentials(body)
    if invalid:
        return invalid

    if db is None:
        return JSONResponse(
            status_code=400,
            content={
                "needsTable": True,
                "sql": render_schema_sql(),
                "error": "Database connection not configured. Set DATABASE_URL or create the tables manually.",
                "instructions": "Copy the SQL below and run it in Supabase SQL Editor",
                "sqlEditorUrl": sql_editor_url(body.project_url),
            },
        )

    try:
        tables = await init_db(bind=db.bind)
        entry = await DatabaseConfigStore(db).save("supabase", {
            "enabled": True,
            "customSettings": {
                "projectUrl": body.project_url,
                "anonKey": body.anon_key,
                "serviceRoleKey": body.service_role_key or "",
                "databaseUrl": body.database_url or "",
            },
        })
    except Exception as e:
        logger.error("Database setup failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to set up database: {str(e)}"
        )

    logger.info("Database setup complete (%d tables)", len(tables))
    return {
        "success": True,
        "message": "Database configured successfully",
        "persisted": True,
        "integration": entry["id"],
        "tables": tables,
    }


@router.post("/check-tables")
async def check_tables(body: SupabaseCredentials):
    """Probe the hosted project's tables with the anon key, then the service-role key"""
    invalid = _require_credentials(body)
    if invalid:
        return invalid

    try:
        return await supabase_service.check_tables_async(
            body.project_url,
            body.anon_key,
            body.service_role_key or None,
        )
    except Exception as e:
        logger.error("Table check error: %s", e)
        return JSONResponse(
            status_code=500,
            content={
                "tablesFound": False,
                "error": "Failed to check tables",
                "details": str(e),
                "diagnostics": [{"step": "Exception occurred", "error": str(e)}],
            },
        )
