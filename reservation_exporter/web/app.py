"""FastAPI web application for the Reservation Exporter dashboard."""
import asyncio
import json
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import aiofiles
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse, StreamingResponse
from fastapi.templating import Jinja2Templates

from ..activity_log import ActivityLog
from ..browser_automation import ReservationExportAutomation
from ..config_loader import build_scraper_config, load_environment, load_settings
from ..mailbox import MailboxSession
from ..main import configure_logging

logger = structlog.get_logger()

# Setup paths
BASE_DIR = Path(__file__).parent
TEMPLATES_DIR = BASE_DIR / "templates"
CONFIG_DIR = Path.cwd() / "config"
INPUT_FILE = Path.cwd() / "input" / "reservations.xlsx"
OUTPUT_DIR = Path.cwd() / "output"

# Log maintenance and push intervals
CLEANUP_INTERVAL_SECONDS = 15 * 60
STREAM_POLL_SECONDS = 1.0

env = load_environment()
activity_log = ActivityLog(Path(env["activity_log_path"]))
mailbox = MailboxSession.from_environment(env)

# One export at a time; the portal session is not shareable
run_lock = asyncio.Lock()


async def cleanup_loop(interval_seconds: float = CLEANUP_INTERVAL_SECONDS) -> None:
    """Trim the activity log to the retention window every interval."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            activity_log.trim()
        except OSError as e:
            logger.error("activity_log_cleanup_failed", error=str(e))


@asynccontextmanager
async def lifespan(_app: FastAPI):
    activity_log.ensure_exists()
    configure_logging(activity_log=activity_log)
    activity_log.trim()
    task = asyncio.create_task(cleanup_loop())
    try:
        yield
    finally:
        task.cancel()


app = FastAPI(title="Reservation Exporter", version="1.0.0", lifespan=lifespan)

# CORS configuration
allowed_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


async def read_log_document() -> dict:
    """Read the raw log document without blocking the event loop."""
    if not activity_log.path.exists():
        return {"logs": []}
    async with aiofiles.open(activity_log.path, "r", encoding="utf-8") as f:
        content = await f.read()
    try:
        document = json.loads(content)
    except json.JSONDecodeError:
        return {"logs": []}
    return document if isinstance(document, dict) else {"logs": []}


@app.get("/", response_class=HTMLResponse)
async def index(request: Request):
    """Render the live log dashboard."""
    return templates.TemplateResponse(request, "dashboard.html", {"title": app.title})


@app.get("/auth")
async def auth():
    """Redirect to the Gmail consent screen."""
    return RedirectResponse(mailbox.authorization_url())


@app.get("/oauth2callback")
async def oauth2callback(code: Optional[str] = None):
    """Exchange the consent code for a token and persist it."""
    if not code:
        return PlainTextResponse("Authorization code not found.", status_code=400)
    try:
        await asyncio.to_thread(mailbox.exchange_code, code)
    except Exception as e:
        logger.error("oauth_exchange_failed", error=str(e))
        return PlainTextResponse(f"Error retrieving access token: {e}", status_code=500)
    logger.info("gmail_authorized")
    return RedirectResponse(env["frontend_redirect_uri"])


@app.get("/api/expedia")
async def run_export(
    email: Optional[str] = None,
    password: Optional[str] = None,
    propertyName: Optional[str] = None,
):
    """Run one export with the given portal credentials."""
    if not email or not password:
        return JSONResponse(
            {"success": False, "message": "Email and password are required"},
            status_code=400,
        )
    try:
        authorized = await asyncio.to_thread(mailbox.load_credentials)
    except Exception as e:
        logger.error("mailbox_credentials_failed", error=str(e), error_type=type(e).__name__)
        return JSONResponse({"success": False, "message": str(e)}, status_code=500)
    if not authorized:
        return JSONResponse(
            {"success": False, "message": "Gmail is not authorized. Visit /auth first."},
            status_code=401,
        )
    if run_lock.locked():
        return JSONResponse(
            {"success": False, "message": "An export is already running"},
            status_code=429,
        )

    async with run_lock:
        try:
            settings_path = CONFIG_DIR / "settings.yaml"
            settings = load_settings(settings_path if settings_path.exists() else None)
            config = build_scraper_config(settings, INPUT_FILE, OUTPUT_DIR, headless=True)

            automation = ReservationExportAutomation(
                config,
                email=email,
                password=password,
                code_provider=mailbox.fetch_verification_code,
                property_filter=propertyName,
                progress_callback=lambda message: logger.info("run_progress", message=message),
            )
            result = await automation.run_async()
        except Exception as e:
            logger.error("export_failed", error=str(e), error_type=type(e).__name__)
            return JSONResponse({"success": False, "message": str(e)}, status_code=500)

    message = (
        f"Exported {len(result.records)} reservations to {result.output_path.name}"
        if result.output_path
        else "Run complete; no reservations found"
    )
    return {"success": True, "message": message}


@app.get("/api/data")
async def get_data():
    """Log entries from the last hour."""
    try:
        logs = await asyncio.to_thread(activity_log.recent)
    except OSError as e:
        logger.error("activity_log_read_failed", error=str(e))
        return JSONResponse({"error": "Error reading logs"}, status_code=500)
    return {"logs": logs}


@app.get("/stream")
async def stream_logs(request: Request):
    """SSE endpoint: the log document on connect and after every change."""
    async def event_generator():
        last_mtime = activity_log.mtime()
        yield f"data: {json.dumps(await read_log_document())}\n\n"

        while not await request.is_disconnected():
            await asyncio.sleep(STREAM_POLL_SECONDS)
            mtime = activity_log.mtime()
            if mtime is not None and mtime != last_mtime:
                last_mtime = mtime
                yield f"data: {json.dumps(await read_log_document())}\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        }
    )
