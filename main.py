import json
import logging
import secrets
import time
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import (
    ADMIN_PASSWORD,
    ADMIN_USERNAME,
    ALLOWED_ORIGIN,
    CLIENT_URL,
    ENVIRONMENT,
    IS_PRODUCTION,
    LOG_LEVEL,
    MARK_READ_ON_VIEW,
    PORT,
    RATE_LIMIT_MAX,
    RATE_LIMIT_WINDOW_SECONDS,
    SEED_SAMPLE_DATA,
)
from csrf import CSRFError, csrf_protect, generate_token, get_session, read_payload, token_expiry
from database import db, ping
from notifications import booking_email, contact_email, send_confirmation_email
from repositories import (
    BookingRepository,
    InMemoryBookingRepository,
    InMemoryMessageRepository,
    MessageRepository,
    seed_sample_data,
)
from schemas import (
    Booking,
    BookingSubmission,
    ContactSubmission,
    LoginRequest,
    Message,
    Principal,
    utcnow,
)
from security import (
    BodySizeLimitMiddleware,
    FixedWindowRateLimiter,
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
)
from sessions import MemorySessionStore, MongoSessionStore, Session, SessionMiddleware

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

STARTED_AT = time.monotonic()
CONTACT_REQUIRED = ("name", "email", "message")
BOOKING_REQUIRED = ("name", "email", "phone", "eventType", "date", "package", "startTime", "endTime", "location")


@asynccontextmanager
async def lifespan(app: FastAPI):
    base_url = CLIENT_URL or f"http://localhost:{PORT}"
    logger.info(f"Server running in {ENVIRONMENT} mode")
    logger.info(f"Access URL: {base_url}")
    logger.info(f"API Base URL: {base_url}/api/admin")
    yield


app = FastAPI(title="Ami Photography API", lifespan=lifespan)

app.state.bookings = InMemoryBookingRepository()
app.state.messages = InMemoryMessageRepository()
app.state.session_store = MongoSessionStore(db["sessions"]) if db is not None else MemorySessionStore()
app.state.rate_limiter = FixedWindowRateLimiter(RATE_LIMIT_MAX, RATE_LIMIT_WINDOW_SECONDS)

if SEED_SAMPLE_DATA:
    seed_sample_data(app.state.bookings, app.state.messages)

# Added innermost first: the last middleware registered sees the request first.
app.add_middleware(RateLimitMiddleware)
app.add_middleware(SessionMiddleware)
app.add_middleware(BodySizeLimitMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[ALLOWED_ORIGIN] if ALLOWED_ORIGIN else [],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-CSRF-Token"],
    expose_headers=["X-CSRF-Token"],
    max_age=600,
)
app.add_middleware(SecurityHeadersMiddleware)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed = (time.perf_counter() - started) * 1000
    logger.info(f"{request.method} {request.url.path} {response.status_code} {elapsed:.1f} ms")
    return response


# ---------------------- Helpers ----------------------

def get_bookings(request: Request) -> BookingRepository:
    return request.app.state.bookings


def get_messages(request: Request) -> MessageRepository:
    return request.app.state.messages


def require_admin(session: Session = Depends(get_session)) -> Principal:
    principal = session.principal
    if principal is None or principal.role != "admin":
        raise HTTPException(status_code=401, detail={"error": "Authentication required", "authenticated": False})
    return principal


def text_field(payload: Dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def missing_fields(payload: Dict[str, Any], required: Iterable[str]) -> List[str]:
    return [key for key in required if not text_field(payload, key)]


def parse_event_date(date: str, start_time: str) -> datetime:
    """Combine `YYYY-MM-DD` and `HH:MM` into a UTC datetime."""
    value = datetime.fromisoformat(f"{date} {start_time}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def credentials_match(username: str, password: str) -> bool:
    if not ADMIN_USERNAME or not ADMIN_PASSWORD:
        return False
    user_ok = secrets.compare_digest(username.encode("utf-8"), ADMIN_USERNAME.encode("utf-8"))
    pass_ok = secrets.compare_digest(password.encode("utf-8"), ADMIN_PASSWORD.encode("utf-8"))
    return user_ok and pass_ok


# ---------------------- Error handlers ----------------------

@app.exception_handler(CSRFError)
async def csrf_error_handler(request: Request, exc: CSRFError):
    logger.warning(f"{request.method} {request.url.path} 403: {exc.detail}")
    return JSONResponse(
        status_code=403,
        content={"error": exc.detail, "code": exc.code, "csrfToken": generate_token(get_session(request))},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    status_code = exc.status_code
    if isinstance(exc.detail, dict):
        content = exc.detail
    elif request.url.path.startswith("/api") and exc.detail in ("Not Found", "Method Not Allowed"):
        status_code, content = 404, {"error": "Endpoint not found"}
    else:
        content = {"error": exc.detail}
    logger.warning(f"{request.method} {request.url.path} {status_code}: {content.get('error') or content.get('message')}")
    return JSONResponse(status_code=status_code, content=content, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"{request.method} {request.url.path} 400: invalid request")
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"{request.method} {request.url.path} 500: {exc}")
    content = {"error": "Internal server error"}
    if not IS_PRODUCTION:
        content["details"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=500, content=content)


# ---------------------- Routes ----------------------

@app.get("/")
def read_root():
    return {"message": "Photography site backend running"}


@app.get("/api/csrf-token")
@app.get("/csrf-token")
def csrf_token(session: Session = Depends(get_session)):
    return {"token": generate_token(session), "expires": token_expiry()}


# Admin auth
@app.get("/api/admin/health")
def health():
    return {
        "status": "healthy",
        "database": "connected" if ping() else "disconnected",
        "sessionStore": "active",
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "timestamp": utcnow().isoformat(),
    }


@app.get("/api/admin/check-auth")
def check_auth(session: Session = Depends(get_session)):
    principal = session.principal
    return {
        "authenticated": principal is not None,
        "username": principal.username if principal else None,
        "csrfValid": True,
    }


@app.post("/api/admin/login")
def login(payload: Dict[str, Any] = Depends(read_payload), session: Session = Depends(get_session)):
    username, password = payload.get("username"), payload.get("password")
    body = LoginRequest(
        username=username if isinstance(username, str) else "",
        password=password if isinstance(password, str) else "",
    )
    if not credentials_match(body.username, body.password):
        logger.warning("Failed admin login attempt")
        raise HTTPException(status_code=401, detail={"error": "Invalid credentials", "authenticated": False})
    principal = session.login(body.username)
    logger.info(f"Admin {body.username} logged in")
    return {"success": True, "expires": principal.expires_at.isoformat()}


@app.post("/api/admin/logout")
def logout(admin: Principal = Depends(require_admin), session: Session = Depends(get_session)):
    session.destroy()
    logger.info(f"Admin {admin.username} logged out")
    return {"success": True}


# Bookings
@app.get("/api/admin/bookings")
def list_bookings(
    status: Optional[str] = None,
    admin: Principal = Depends(require_admin),
    bookings: BookingRepository = Depends(get_bookings),
):
    return [b.to_json() for b in bookings.list(status=status)]


@app.get("/api/admin/bookings/export")
def export_bookings(
    booking_id: Optional[str] = Query(None, alias="id"),
    export_format: str = Query("json", alias="format"),
    admin: Principal = Depends(require_admin),
    bookings: BookingRepository = Depends(get_bookings),
):
    if export_format != "json":
        raise HTTPException(status_code=400, detail=f"Unsupported export format: {export_format}")
    if booking_id:
        booking = bookings.get(booking_id)
        if booking is None:
            raise HTTPException(status_code=404, detail="Booking not found")
        data: Any = booking.to_json()
        filename = f"booking-{booking_id}.json"
    else:
        data = [b.to_json() for b in bookings.all()]
        filename = "bookings.json"
    return Response(
        content=json.dumps(data, indent=2),
        media_type="application/json",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@app.get("/api/admin/bookings/{booking_id}")
def get_booking(
    booking_id: str,
    admin: Principal = Depends(require_admin),
    bookings: BookingRepository = Depends(get_bookings),
):
    booking = bookings.get(booking_id)
    if booking is None:
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking.to_json()


@app.post("/api/admin/bookings/{booking_id}/confirm")
def confirm_booking(
    booking_id: str,
    admin: Principal = Depends(require_admin),
    payload: Dict[str, Any] = Depends(csrf_protect),
    session: Session = Depends(get_session),
    bookings: BookingRepository = Depends(get_bookings),
):
    booking = bookings.confirm(booking_id)
    if booking is None:
        raise HTTPException(status_code=404, detail={"error": "Booking not found", "csrfToken": generate_token(session)})
    logger.info(f"Booking {booking_id} confirmed by {admin.username}")
    return {**booking.to_json(), "csrfToken": generate_token(session)}


# Messages
@app.get("/api/admin/messages")
def list_messages(
    include_archived: Optional[str] = Query(None, alias="includeArchived"),
    unread: Optional[str] = None,
    admin: Principal = Depends(require_admin),
    messages: MessageRepository = Depends(get_messages),
):
    items = messages.list(include_archived=include_archived == "true", unread_only=unread == "true")
    return [m.to_json() for m in items]


@app.get("/api/admin/messages/{message_id}")
def get_message(
    message_id: str,
    admin: Principal = Depends(require_admin),
    messages: MessageRepository = Depends(get_messages),
):
    message = messages.mark_read(message_id) if MARK_READ_ON_VIEW else messages.get(message_id)
    if message is None:
        raise HTTPException(status_code=404, detail="Message not found")
    return message.to_json()


@app.post("/api/admin/messages/{message_id}/mark-read")
def mark_message_read(
    message_id: str,
    admin: Principal = Depends(require_admin),
    payload: Dict[str, Any] = Depends(csrf_protect),
    session: Session = Depends(get_session),
    messages: MessageRepository = Depends(get_messages),
):
    message = messages.mark_read(message_id)
    if message is None:
        raise HTTPException(status_code=404, detail={"error": "Message not found", "csrfToken": generate_token(session)})
    return {
        "success": True,
        "message": "Message marked as read",
        "data": message.to_json(),
        "csrfToken": generate_token(session),
    }


# Public submissions
@app.post("/api/submit-contact", status_code=201)
async def submit_contact(
    payload: Dict[str, Any] = Depends(csrf_protect),
    session: Session = Depends(get_session),
    messages: MessageRepository = Depends(get_messages),
):
    if missing_fields(payload, CONTACT_REQUIRED):
        raise HTTPException(status_code=400, detail={
            "success": False,
            "message": "Missing required fields (name, email, message)",
            "csrfToken": generate_token(session),
        })
    try:
        body = ContactSubmission(**{key: text_field(payload, key) for key in ("name", "email", "phone", "subject", "message")})
    except ValidationError:
        raise HTTPException(status_code=400, detail={
            "success": False,
            "message": "Invalid email address",
            "csrfToken": generate_token(session),
        })

    record = messages.add(Message(
        name=body.name,
        email=str(body.email),
        phone=body.phone or "",
        subject=body.subject or "General Inquiry",
        message=body.message,
    ))
    logger.info(f"Contact message {record.id} received from {record.email}")

    result = await send_confirmation_email(record.email, contact_email(record.name, record.subject, record.message))
    return {
        "success": True,
        "message": "Message sent successfully!",
        "messageId": record.id,
        "emailSent": result.success,
        "csrfToken": generate_token(session),
    }


@app.post("/submit-booking", status_code=201)
async def submit_booking(
    payload: Dict[str, Any] = Depends(csrf_protect),
    session: Session = Depends(get_session),
    bookings: BookingRepository = Depends(get_bookings),
):
    missing = missing_fields(payload, BOOKING_REQUIRED)
    if missing:
        raise HTTPException(status_code=400, detail={
            "success": False,
            "message": "Missing required fields",
            "missing": missing,
            "csrfToken": generate_token(session),
        })
    try:
        body = BookingSubmission(**{key: text_field(payload, key) for key in BOOKING_REQUIRED + ("details",)})
        event_date = parse_event_date(body.date, body.start_time)
    except ValidationError:
        raise HTTPException(status_code=400, detail={
            "success": False,
            "message": "Invalid email address",
            "csrfToken": generate_token(session),
        })
    except ValueError:
        raise HTTPException(status_code=400, detail={
            "success": False,
            "message": "Invalid date or start time",
            "csrfToken": generate_token(session),
        })

    record = bookings.add(Booking(
        client_name=body.name,
        client_email=str(body.email),
        client_phone=body.phone,
        event_type=body.event_type,
        event_date=event_date,
        package=body.package,
        start_time=body.start_time,
        end_time=body.end_time,
        location=body.location,
        additional_notes=body.details or "",
    ))
    logger.info(f"Booking {record.id} requested by {record.client_email}")

    template = booking_email(
        name=body.name,
        event_type=body.event_type,
        event_date=event_date,
        start_time=body.start_time,
        end_time=body.end_time,
        location=body.location,
        package=body.package,
        details=body.details,
    )
    result = await send_confirmation_email(record.client_email, template)
    return {
        "success": True,
        "message": "Booking request received successfully!",
        "bookingId": record.id,
        "emailSent": result.success,
        "csrfToken": generate_token(session),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=PORT)
