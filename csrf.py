"""
CSRF tokens bound to the session.

Each session gets a random secret. A token is `salt-digest` where digest is an
HMAC over the salt and that secret, so any number of tokens can be issued for
one session and each stays valid as long as the session does.
"""
import hashlib
import hmac
import secrets
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request

from config import SESSION_SECRET, SESSION_TTL_SECONDS
from schemas import utcnow
from sessions import Session

CSRF_HEADER = "x-csrf-token"
CSRF_FIELD = "_csrf"
CSRF_ERROR_CODE = "EBADCSRFTOKEN"


class CSRFError(HTTPException):
    code = CSRF_ERROR_CODE

    def __init__(self, detail: str = "Invalid CSRF token"):
        super().__init__(status_code=403, detail=detail)


def _digest(salt: str, secret: str) -> str:
    message = f"{salt}-{secret}".encode("utf-8")
    return hmac.new(SESSION_SECRET.encode("utf-8"), message, hashlib.sha256).hexdigest()


def _secret(session: Session) -> str:
    if not session.csrf_secret:
        session.csrf_secret = secrets.token_urlsafe(18)
    return session.csrf_secret


def generate_token(session: Session) -> str:
    salt = secrets.token_hex(8)
    return f"{salt}-{_digest(salt, _secret(session))}"


def verify_token(session: Session, token: Optional[str]) -> bool:
    if not token or not session.csrf_secret:
        return False
    salt, sep, digest = token.partition("-")
    if not sep or not salt:
        return False
    expected = _digest(salt, session.csrf_secret)
    return hmac.compare_digest(digest.encode("utf-8"), expected.encode("utf-8"))


def token_expiry() -> str:
    return (utcnow() + timedelta(seconds=SESSION_TTL_SECONDS)).isoformat()


def get_session(request: Request) -> Session:
    return request.state.session


async def read_payload(request: Request) -> Dict[str, Any]:
    """Parse a JSON or form-encoded body into a dict; anything else is empty."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        body = await request.body()
        if not body:
            return {}
        try:
            data = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid JSON body")
        return data if isinstance(data, dict) else {}
    if content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
        form = await request.form()
        return {key: value for key, value in form.items() if isinstance(value, str)}
    return {}


async def csrf_protect(
    request: Request,
    payload: Dict[str, Any] = Depends(read_payload),
) -> Dict[str, Any]:
    """Reject the request unless it carries a valid token; returns the parsed body."""
    token = request.headers.get(CSRF_HEADER) or payload.get(CSRF_FIELD)
    if not isinstance(token, str) or not verify_token(get_session(request), token):
        raise CSRFError()
    return payload
