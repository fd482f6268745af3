"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from classnotify.config import get_settings
from classnotify.dependencies import get_code_issuer, get_task_queue
from classnotify.logging_config import configure_logging
from classnotify.routers import health, notifications, preferences, verification


logger = logging.getLogger(__name__)


async def run_sweep() -> None:
    removed = await get_code_issuer().sweep()
    logger.info(
        "Verification sweep | rate_limit_records=%d | challenges=%d",
        removed["rate_limit_records"],
        removed["challenges"],
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    settings = get_settings()

    queue = get_task_queue()
    await queue.start()

    scheduler = AsyncIOScheduler()
    scheduler.add_job(run_sweep, "interval", minutes=settings.sweep_interval_minutes, id="verification-sweep")
    scheduler.start()
    logger.info("Sweep scheduled every %d minutes", settings.sweep_interval_minutes)
    try:
        yield
    finally:
        scheduler.shutdown(wait=False)
        await queue.stop(drain=True)


app = FastAPI(title="Classroom Notification API", lifespan=lifespan)


def _describe_validation_error(exc: RequestValidationError) -> str:
    missing = [
        ".".join(str(part) for part in err["loc"] if part != "body")
        for err in exc.errors()
        if err.get("type") == "missing"
    ]
    if missing:
        fields = ", ".join(name for name in missing if name)
        return f"Missing required fields: {fields}" if fields else "Missing required fields"
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return f"Invalid value for {location}: {first.get('msg', 'invalid input')}" if location else "Invalid request"


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": _describe_validation_error(exc)})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    """Simple health probe for liveness checks."""
    return {"status": "ok"}


app.include_router(health.router)
app.include_router(notifications.router)
app.include_router(verification.router)
app.include_router(preferences.router)


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("classnotify.main:app", host=settings.app_host, port=settings.app_port, reload=settings.debug)
