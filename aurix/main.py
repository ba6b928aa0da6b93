# aurix/main.py
import logging

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from aurix.api import demo, escalations, sessions, tools, webhooks
from aurix.api.errors import install_error_handlers
from aurix.config import get_settings
from aurix.core.lifecycle import get_lifecycle_registry
from aurix.db.db import connect_db, disconnect_db, get_database
from aurix.state.session_store import connect_redis, disconnect_redis, using_redis
from aurix.storage.records_store import seed_demo_data
from aurix.utils.logging import configure_logging
from aurix.utils.security import verify_webhook

settings = get_settings()

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger("aurix")

app = FastAPI(
    title="AURIX Voice Agent",
    version="0.1.0",
    description="Voice customer-success agent: call timeline, compliance-gated workflows, live console feed",
)

# CORS - relaxed for dev
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.ENV == "dev" else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)

app.include_router(webhooks.router, prefix="/webhook", tags=["webhook"], dependencies=[Depends(verify_webhook)])
app.include_router(tools.router, prefix="/api/tools", tags=["tools"], dependencies=[Depends(verify_webhook)])
app.include_router(sessions.router, prefix="/api/sessions", tags=["sessions"])
app.include_router(escalations.router, prefix="/api/escalations", tags=["escalations"])
app.include_router(demo.router, prefix="/api", tags=["demo"])


# Simple health endpoints
@app.get("/", tags=["health"])
async def root():
    return JSONResponse({"status": "ok", "service": "aurix-voice-agent", "env": settings.ENV})


@app.get("/health", tags=["health"])
async def health():
    db_ok = get_database().is_connected
    return JSONResponse(
        {"status": "ok" if db_ok else "degraded", "db": db_ok, "redis": using_redis()},
        status_code=200 if db_ok else 503,
    )


@app.on_event("startup")
async def on_startup():
    logger.info("Starting AURIX voice agent (env=%s, llm=%s)", settings.ENV, settings.LLM_MODE)
    try:
        await connect_db(settings.DB_URL)
        app.state.db_connected = True
    except Exception as exc:
        # keep serving: routes answer 503 until the event log is reachable
        app.state.db_connected = False
        logger.error("Failed to connect to database: %s", exc)

    app.state.redis_connected = await connect_redis(settings.REDIS_URL)

    if app.state.db_connected and settings.SEED_DEMO_DATA:
        await seed_demo_data()

    base = settings.PUBLIC_BASE_URL.rstrip("/")
    logger.info("Twilio voice URL: %s/webhook/twilio/voice (status callback: %s/webhook/twilio/status)", base, base)


@app.on_event("shutdown")
async def on_shutdown():
    logger.info("Shutting down AURIX voice agent")
    await get_lifecycle_registry().shutdown()
    await disconnect_db()
    await disconnect_redis()


# If run directly: start uvicorn programmatically (handy for `python -m aurix.main`)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "aurix.main:app",
        host=settings.APP_HOST,
        port=settings.APP_PORT,
        reload=settings.ENV == "dev",
        log_level=settings.LOG_LEVEL,
    )
