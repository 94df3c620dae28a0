import uuid
from dotenv import load_dotenv

# Load env vars BEFORE imports that might use them
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from invoice_inbox.core.config import LOG_DIR, LOG_LEVEL, LOG_LEVELS, PORT
from invoice_inbox.domain.errors import InboxError
from invoice_inbox.utils.logging_config import setup_logging, get_logger, parse_logger_levels, request_id_ctx

# --- Logging Configuration ---
setup_logging(
    log_dir=LOG_DIR,
    log_file="inbox.log",
    level=LOG_LEVEL,
    logger_levels=parse_logger_levels(LOG_LEVELS),
)
logger = get_logger("api")

from invoice_inbox.services.database import connect_db, close_db
from invoice_inbox.api.routes import tags, invoices, messages

app = FastAPI(title="Invoice Triage Inbox API")

# --- Middleware ---
@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """
    Generates a unique Request ID for every request.
    Injects it into ContextVar for logging and returns it as X-Request-ID.
    """
    req_id = str(uuid.uuid4())
    token = request_id_ctx.set(req_id)
    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = req_id
        return response
    except Exception:
        logger.exception("Middleware Error")
        raise
    finally:
        request_id_ctx.reset(token)

# --- Exception Handlers ---
def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})

@app.exception_handler(InboxError)
async def inbox_error_handler(request: Request, exc: InboxError):
    """
    Domain errors carry their own status code and are reported verbatim.
    """
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
    return error_response(exc.status_code, exc.message)

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if any(error.get("type") == "json_invalid" for error in errors):
        message = "JSON invalide"
    else:
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
        message = f"Champ invalide : {location}" if location else "Requête invalide"
    logger.warning(f"{request.method} {request.url.path} rejected (400): {message}")
    return error_response(400, message)

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return error_response(404, "Route inconnue")
    return error_response(exc.status_code, str(exc.detail))

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Catches all unhandled exceptions.
    Logs full traceback with Request ID; the client only sees a generic message.
    """
    logger.exception(f"Unhandled Exception: {exc}")
    return error_response(500, "Erreur interne du serveur")

# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("startup")
def startup_event():
    connect_db()

@app.on_event("shutdown")
def shutdown_event():
    close_db()

# --- Routers ---
app.include_router(tags.router)
app.include_router(invoices.router)
app.include_router(messages.router)

if __name__ == "__main__":
    uvicorn.run("invoice_inbox.api.server:app", host="0.0.0.0", port=PORT, reload=True)
