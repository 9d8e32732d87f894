import asyncio
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from norboy_bot.config import settings
from norboy_bot.database import init_db
from norboy_bot.dependencies import get_advisor_service, get_pipeline
from norboy_bot.logging_config import get_logger, setup_logging
from norboy_bot.routers import admin, webhook

setup_logging(settings.log_level)

app = FastAPI(
    title="NORBOY Bot",
    description="Inbound message control plane for the NORBOY election assistant",
    version="0.1.0",
)

cors_env = os.environ.get("CORS_ALLOW_ORIGINS", "*")
cors_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhook.router)
app.include_router(admin.router)

release_logger = get_logger("release_worker")
_release_task: asyncio.Task | None = None


def _is_release_loop_enabled() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return settings.release_loop_enabled


async def _release_loop() -> None:
    while True:
        try:
            await asyncio.sleep(max(settings.release_loop_interval_seconds, 1))
            released = await get_advisor_service().release_out_of_hours()
            if released:
                release_logger.info("Out-of-hours conversations released", extra={"context": {"released": released}})
        except asyncio.CancelledError:
            break
        except Exception as exc:
            release_logger.error("Release loop failed", extra={"context": {"error": str(exc)}})


@app.on_event("startup")
async def startup() -> None:
    global _release_task
    init_db()
    if not _is_release_loop_enabled():
        return
    if _release_task is None or _release_task.done():
        _release_task = asyncio.create_task(_release_loop())
        release_logger.info("Release loop started")


@app.on_event("shutdown")
async def shutdown() -> None:
    global _release_task
    if _release_task is not None:
        _release_task.cancel()
        try:
            await _release_task
        except asyncio.CancelledError:
            pass
        _release_task = None
    await get_pipeline().drain()


@app.get("/health")
async def health():
    return {"status": "ok"}
