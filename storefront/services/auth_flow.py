"""Passwords, customer sessions and the signed pending-purchase token."""
from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

import bcrypt
from fastapi import HTTPException, Request, Response
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from storefront.config import settings
from storefront.models.auth import Session as AuthSession
from storefront.models.auth import SessionStatus
from storefront.models.person import Person
from storefront.services.common import as_utc, coerce_uuid, now

SESSION_COOKIE = "storefront_session"
PENDING_PURCHASE_COOKIE = "pending_purchase"
PENDING_PURCHASE_TYPE = "pending_purchase"


def _truncate_user_agent(value: str | None, max_len: int = 512) -> str | None:
    if not value:
        return value
    return value[:max_len]


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def hash_session_token(token: str) -> str:
    return _hash_token(token)


# ── Passwords ────────────────────────────────────────────


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


# ── Tokens ───────────────────────────────────────────────


def _signing_secret() -> str:
    secret = settings.secret_key or settings.jwt_secret
    if not secret:
        raise HTTPException(status_code=500, detail="Secret key not configured")
    return secret


def _decode_jwt(token: str, secret: str, expected_type: str) -> dict:
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc
    if payload.get("typ") != expected_type:
        raise HTTPException(status_code=401, detail="Invalid token type")
    return payload


def decode_access_token(token: str) -> dict:
    """Decode an admin bearer token issued by the identity provider."""
    if not settings.jwt_secret:
        raise HTTPException(status_code=500, detail="JWT secret not configured")
    return _decode_jwt(token, settings.jwt_secret, "access")


@dataclass(frozen=True)
class PendingPurchase:
    payment_intent_id: str
    email: str


def issue_pending_purchase_token(payment_intent_id: str, email: str) -> str:
    issued = now()
    payload = {
        "sub": payment_intent_id,
        "email": email,
        "typ": PENDING_PURCHASE_TYPE,
        "iat": int(issued.timestamp()),
        "exp": int(
            (issued + timedelta(hours=settings.pending_purchase_ttl_hours)).timestamp()
        ),
    }
    return jwt.encode(payload, _signing_secret(), algorithm=settings.jwt_algorithm)


def decode_pending_purchase_token(token: str) -> PendingPurchase:
    payload = _decode_jwt(token, _signing_secret(), PENDING_PURCHASE_TYPE)
    if not payload.get("sub") or not payload.get("email"):
        raise HTTPException(status_code=401, detail="Invalid token")
    return PendingPurchase(payment_intent_id=payload["sub"], email=payload["email"])


# ── Sessions ─────────────────────────────────────────────


def create_session(db: Session, person_id, request: Request | None = None) -> str:
    """Open a customer session and return the raw token for the cookie.

    The session row is added to ``db`` but not committed.
    """
    token = secrets.token_urlsafe(48)
    issued = now()
    session = AuthSession(
        person_id=coerce_uuid(person_id),
        status=SessionStatus.active,
        token_hash=_hash_token(token),
        ip_address=request.client.host if request and request.client else None,
        user_agent=_truncate_user_agent(
            request.headers.get("user-agent") if request else None
        ),
        created_at=issued,
        last_seen_at=issued,
        expires_at=issued + timedelta(days=settings.session_ttl_days),
    )
    db.add(session)
    return token


def person_for_session_token(db: Session, token: str | None) -> Person | None:
    if not token:
        return None
    session = (
        db.query(AuthSession)
        .filter(AuthSession.token_hash == _hash_token(token))
        .filter(AuthSession.status == SessionStatus.active)
        .filter(AuthSession.revoked_at.is_(None))
        .first()
    )
    if not session:
        return None
    expires_at = as_utc(session.expires_at)
    if expires_at and expires_at <= now():
        session.status = SessionStatus.expired
        db.commit()
        return None
    person = db.get(Person, session.person_id)
    if not person or not person.is_active:
        return None
    return person


# ── Cookies ──────────────────────────────────────────────


def _set_cookie(response: Response, key: str, value: str, max_age: int) -> None:
    response.set_cookie(
        key=key,
        value=value,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        path="/",
        max_age=max_age,
    )


def set_session_cookie(response: Response, token: str) -> None:
    _set_cookie(response, SESSION_COOKIE, token, settings.session_ttl_days * 24 * 60 * 60)


def set_pending_purchase_cookie(response: Response, token: str) -> None:
    _set_cookie(
        response,
        PENDING_PURCHASE_COOKIE,
        token,
        settings.pending_purchase_ttl_hours * 60 * 60,
    )


def clear_pending_purchase_cookie(response: Response) -> None:
    response.delete_cookie(key=PENDING_PURCHASE_COOKIE, path="/")
