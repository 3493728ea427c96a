"""Customer accounts: lookup by email and creation at profile completion."""

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.models.auth import UserCredential
from storefront.models.person import Person
from storefront.services.auth_flow import hash_password
from storefront.services.common import now

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AccountService:
    """Reads and writes customer accounts. Never commits."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_by_email(self, email: str) -> Person | None:
        stmt = select(Person).where(Person.email == normalize_email(email))
        return self.db.scalar(stmt)

    def email_exists(self, email: str) -> bool:
        stmt = select(Person.id).where(Person.email == normalize_email(email))
        return self.db.scalar(stmt) is not None

    def create(
        self,
        email: str,
        first_name: str,
        last_name: str,
        password: str,
        phone: str | None = None,
        country_code: str | None = None,
        marketing_opt_in: bool = False,
    ) -> Person:
        email = normalize_email(email)
        if self.email_exists(email):
            raise ValueError("An account with this email already exists")

        person = Person(
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone,
            country_code=country_code,
            marketing_opt_in=marketing_opt_in,
            signup_source="checkout",
        )
        self.db.add(person)
        self.db.flush()
        self.db.add(
            UserCredential(
                person_id=person.id,
                password_hash=hash_password(password),
                password_updated_at=now(),
            )
        )
        self.db.flush()
        logger.info("Created customer account: %s", person.id)
        return person
