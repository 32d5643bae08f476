"""AI Coach & Mentor relay: FastAPI application entry point."""

import logging

from fastapi import FastAPI

from coach.config.cors import SecurityHeadersMiddleware, configure_cors
from coach.config.settings import get_settings
from coach.middleware.error_handler import register_error_handlers
from coach.middleware.request_id import RequestIDMiddleware
from coach.relay.routes import router as relay_router

logging.basicConfig(
    level=get_settings().LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="AI Coach & Mentor Relay",
    description=(
        "Relay between the AI Coach & Mentor chat client and the generation API.\n\n"
        "## Authentication\n"
        "`POST /api/v1/relay` requires `Authorization: Bearer <token>` with an access token "
        "issued by the configured Entra ID tenant, unless `RELAY_REQUIRE_AUTH` is disabled.\n\n"
        "## Errors\n"
        "Relay failures are returned as `{\"error\": \"...\"}` with the upstream status code."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Health", "description": "Health check endpoints"},
        {"name": "Relay", "description": "Forward chat turns to the generation API"},
    ],
)

# --- Middleware (order matters: outermost first) ---
app.add_middleware(RequestIDMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
configure_cors(app)

# --- Error handlers ---
register_error_handlers(app)

# --- Routes ---
app.include_router(relay_router)


@app.get("/health", tags=["Health"], summary="Health check", description="Returns OK if the service is running.")
async def health_check():
    return {"status": "ok"}
