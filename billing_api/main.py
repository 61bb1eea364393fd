from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
from dotenv import load_dotenv

from billing_api.core.config import settings
from billing_api.core.database import is_database_configured
from billing_api.routers import creem, integrations, setup, user_subscription, webhooks

load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)

app = FastAPI(
    title="SaaS Billing API",
    description="Creem webhook ingestion and subscription reconciliation for the SaaS dashboard",
    version="1.0.0",
    redirect_slashes=False
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "development" else [settings.frontend_url],
    allow_credentials=False if settings.environment == "development" else True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Health check endpoint
@app.get("/health")
async def health_check():
    return JSONResponse(content={
        "status": "healthy",
        "service": "SaaS Billing API",
        "version": "1.0.0",
        "database": is_database_configured(),
    })

# Include routers
app.include_router(webhooks.router, prefix="/api/webhooks", tags=["Webhooks"])
app.include_router(setup.router, prefix="/api/setup", tags=["Setup"])
app.include_router(integrations.router, prefix="/api/settings/integrations", tags=["Integrations"])
app.include_router(user_subscription.router, prefix="/api/user", tags=["User Subscription"])
app.include_router(creem.router, prefix="/api/creem", tags=["Creem"])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
