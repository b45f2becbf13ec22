import logging
from pathlib import Path

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .db import init_db
from .logging_config import setup_logging
from .routes import api_router
from .seed import seed_data

setup_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Clinic Scheduler API")
BASE_DIR = Path(__file__).resolve().parent
STATIC_DIR = BASE_DIR / "static"

GENERIC_ERROR = "Sorry, I encountered an error processing your request."


@app.on_event("startup")
def on_startup() -> None:
    settings.require_inference_credentials()
    init_db()
    seed_data()
    logger.info(
        "startup_complete model=%s timeout_s=%s",
        settings.inference_model_id,
        settings.inference_timeout_seconds,
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    missing = any(error["type"] in ("missing", "string_too_short") for error in errors)
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "message": "Missing required fields." if missing else "Invalid request.",
            "errors": errors,
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error path=%s error=%s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"success": False, "message": GENERIC_ERROR})


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


app.include_router(api_router, prefix="/api")
app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")


@app.get("/", include_in_schema=False)
def ui() -> FileResponse:
    return FileResponse(STATIC_DIR / "index.html")


def run() -> None:
    try:
        settings.require_inference_credentials()
    except RuntimeError as exc:
        logger.error("startup_refused error=%s", exc)
        raise SystemExit(1) from exc
    uvicorn.run("clinic_scheduler.main:app", host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
