"""Tests for passwords, customer sessions and pending-purchase tokens."""

from datetime import UTC, datetime, timedelta

import pytest
from fastapi import HTTPException
from jose import jwt

from storefront.config import settings
from storefront.models.auth import Session as AuthSession
from storefront.models.auth import SessionStatus
from storefront.services import auth_flow


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = auth_flow.hash_password("correct horse")
        assert hashed != "correct horse"
        assert auth_flow.verify_password("correct horse", hashed)
        assert not auth_flow.verify_password("wrong horse", hashed)

    def test_missing_or_corrupt_hash(self):
        assert not auth_flow.verify_password("anything", None)
        assert not auth_flow.verify_password("anything", "not-a-bcrypt-hash")


class TestPendingPurchaseToken:
    def test_round_trip(self):
        token = auth_flow.issue_pending_purchase_token("pi_123", "pat@example.com")
        pending = auth_flow.decode_pending_purchase_token(token)
        assert pending.payment_intent_id == "pi_123"
        assert pending.email == "pat@example.com"

    def test_signed_with_secret_key(self):
        token = auth_flow.issue_pending_purchase_token("pi_123", "pat@example.com")
        claims = jwt.decode(token, settings.secret_key, algorithms=["HS256"])
        assert claims["typ"] == "pending_purchase"
        assert claims["exp"] - claims["iat"] == 168 * 3600

    def test_tampered_token_rejected(self):
        token = auth_flow.issue_pending_purchase_token("pi_123", "pat@example.com")
        with pytest.raises(HTTPException) as exc_info:
            auth_flow.decode_pending_purchase_token(token[:-4] + "AAAA")
        assert exc_info.value.status_code == 401

    def test_expired_token_rejected(self):
        now = datetime.now(UTC)
        token = jwt.encode(
            {
                "sub": "pi_123",
                "email": "pat@example.com",
                "typ": "pending_purchase",
                "iat": int((now - timedelta(days=8)).timestamp()),
                "exp": int((now - timedelta(days=1)).timestamp()),
            },
            settings.secret_key,
            algorithm="HS256",
        )
        with pytest.raises(HTTPException):
            auth_flow.decode_pending_purchase_token(token)

    def test_access_token_is_not_a_pending_purchase(self):
        token = jwt.encode(
            {"sub": "pi_123", "email": "pat@example.com", "typ": "access"},
            settings.secret_key,
            algorithm="HS256",
        )
        with pytest.raises(HTTPException) as exc_info:
            auth_flow.decode_pending_purchase_token(token)
        assert exc_info.value.detail == "Invalid token type"


class TestSessions:
    def test_session_token_resolves_person(self, db_session, person):
        token = auth_flow.create_session(db_session, person.id)
        db_session.commit()

        stored = (
            db_session.query(AuthSession)
            .filter(AuthSession.person_id == person.id)
            .one()
        )
        assert stored.token_hash == auth_flow.hash_session_token(token)
        assert stored.token_hash != token
        assert auth_flow.person_for_session_token(db_session, token).id == person.id

    def test_unknown_token(self, db_session):
        assert auth_flow.person_for_session_token(db_session, "nope") is None
        assert auth_flow.person_for_session_token(db_session, None) is None

    def test_expired_session(self, db_session, person):
        token = auth_flow.create_session(db_session, person.id)
        db_session.commit()
        stored = (
            db_session.query(AuthSession)
            .filter(AuthSession.token_hash == auth_flow.hash_session_token(token))
            .one()
        )
        stored.expires_at = datetime.now(UTC) - timedelta(minutes=1)
        db_session.commit()

        assert auth_flow.person_for_session_token(db_session, token) is None
        db_session.refresh(stored)
        assert stored.status == SessionStatus.expired
