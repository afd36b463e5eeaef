import datetime
import json
import logging
import os
import uuid
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from hearth.core.config import get_app_version, get_record_store_kind
from hearth.modules.characters.router import router as characters_router
from hearth.modules.chats.router import router as chats_router
from hearth.modules.events.router import router as events_router
from hearth.modules.notes.router import router as notes_router
from hearth.modules.prompting.router import router as prompting_router
from hearth.modules.settings.router import router as settings_router

app = FastAPI(title="Hearth Chat API", version=get_app_version())

# === OBSERVABILITY ===
# - X-Request-Id in/out (missing -> generated; always echoed back; also on errors)
# - Error envelope keys: error, message, request_id, details
# - request start/end/exception as JSON lines on stdout
_log = logging.getLogger("hearth")
if not _log.handlers:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

_last_error: Dict[str, Any] = {}


def _now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def _emit(level: str, event: str, message: str, request_id: Optional[str], module: str, **extra: Any) -> None:
    payload: Dict[str, Any] = {
        "ts": _now_iso(),
        "level": level.lower(),
        "message": message,
        "request_id": request_id,
        "event": event,
        "module": module,
    }
    payload.update(extra)
    print(json.dumps(payload, ensure_ascii=False), flush=True)


def _err_envelope(error: str, message: str, request_id: Optional[str], details: Any, status_code: int):
    headers = {}
    if request_id:
        headers["X-Request-Id"] = request_id
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "request_id": request_id,
            "details": details,
        },
        headers=headers,
    )


@app.middleware("http")
async def _request_id_mw(request: Request, call_next):
    rid = request.headers.get("X-Request-Id") or uuid.uuid4().hex.upper()
    request.state.request_id = rid
    _emit("info", "http.request.start", f"{request.method} {request.url.path}", rid, __name__)
    try:
        resp = await call_next(request)
    except Exception as e:
        _emit("error", "http.request.exception", str(e), rid, __name__)
        raise
    resp.headers["X-Request-Id"] = rid
    _emit("info", "http.request.end", f"{request.method} {request.url.path} -> {getattr(resp, 'status_code', None)}", rid, __name__)
    return resp


@app.exception_handler(StarletteHTTPException)
async def _http_exc_handler(request: Request, exc: StarletteHTTPException):
    rid = getattr(request.state, "request_id", None)
    detail = exc.detail
    if isinstance(detail, dict) and "error" in detail:
        return _err_envelope(
            str(detail["error"]),
            str(detail.get("message") or ""),
            rid,
            detail.get("details") or {},
            exc.status_code,
        )
    return _err_envelope("http_error", str(detail), rid, {"status_code": exc.status_code}, exc.status_code)


@app.exception_handler(RequestValidationError)
async def _validation_exc_handler(request: Request, exc: RequestValidationError):
    rid = getattr(request.state, "request_id", None)
    return _err_envelope("validation_error", "request validation failed", rid, exc.errors(), 422)


@app.exception_handler(Exception)
async def _unhandled_exc_handler(request: Request, exc: Exception):
    rid = getattr(request.state, "request_id", None)
    _log.exception("unhandled error on %s %s", request.method, request.url.path)
    _last_error.clear()
    _last_error.update({"ts": _now_iso(), "type": type(exc).__name__, "request_id": rid})
    return _err_envelope("internal_error", "internal server error", rid, {"type": type(exc).__name__}, 500)
# === END OBSERVABILITY ===


app.include_router(characters_router)
app.include_router(notes_router)
app.include_router(chats_router)
app.include_router(prompting_router)
app.include_router(settings_router)
app.include_router(events_router)


@app.get("/health")
def health():
    from hearth.core.db import db_health
    from hearth.core.storage import storage_health

    kind = get_record_store_kind()
    store = db_health() if kind == "sql" else storage_health()
    return {
        "status": "ok" if store.get("status") == "ok" else "degraded",
        "version": get_app_version(),
        "record_store": kind,
        "store": store,
        "last_error_summary": dict(_last_error) or None,
    }
