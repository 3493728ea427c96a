from fastapi import Cookie, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from storefront.db import SessionLocal
from storefront.models.person import Person
from storefront.services.auth_flow import (
    decode_access_token,
    person_for_session_token,
)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1].strip()
    return None


def _roles(payload: dict) -> set[str]:
    roles: set[str] = set()
    role_value = payload.get("role")
    if isinstance(role_value, str):
        roles.add(role_value)
    roles_value = payload.get("roles")
    if isinstance(roles_value, list):
        roles.update(str(item) for item in roles_value)
    return roles


def require_role(role_name: str):
    def _require_role(
        request: Request, authorization: str | None = Header(default=None)
    ) -> dict:
        token = _extract_bearer_token(authorization)
        if not token:
            raise HTTPException(status_code=401, detail="Unauthorized")
        payload = decode_access_token(token)
        if role_name not in _roles(payload):
            raise HTTPException(status_code=403, detail="Insufficient role")
        actor_id = str(payload.get("sub"))
        request.state.actor_id = actor_id
        return {"actor_type": "user", "actor_id": actor_id}

    return _require_role


def require_customer(
    storefront_session: str | None = Cookie(default=None),
    db: Session = Depends(get_db),
) -> Person:
    person = person_for_session_token(db, storefront_session)
    if person is None:
        raise HTTPException(status_code=401, detail="Not signed in")
    return person
