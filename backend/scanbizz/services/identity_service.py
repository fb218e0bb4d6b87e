# Overview: Identity provider; account creation and credential checks.

"""
Identity Provider

Accounts live in the device database with bcrypt password hashes. The rest
of the application only ever sees an Identity: an opaque uid, the email, the
provider that vouched for it, and whether the account was created by this
call (callers seed initial remote data for new accounts).

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 6 characters required
- Federated logins trust the (provider, subject) pair supplied by the
  caller; verifying the provider's token is the job of the HTTP edge
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass

import bcrypt

from ..extensions import db
from ..models import Account
from ..time_utils import utcnow

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class IdentityError(Exception):
    """Raised when credentials are rejected or an account cannot be created."""
    pass


@dataclass(frozen=True)
class Identity:
    uid: str
    email: str
    provider: str = "password"
    is_new: bool = False


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


def hash_password(password: str) -> str:
    """Hash password using bcrypt with cost factor 12 (validated first)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str | None) -> bool:
    """Timing-safe bcrypt check; accounts without a password never match."""
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def _normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise IdentityError("A valid email address is required")
    return email


def _identity(account: Account, *, is_new: bool) -> Identity:
    return Identity(uid=account.uid, email=account.email, provider=account.provider, is_new=is_new)


class IdentityProvider:
    """Email/password and federated sign-in backed by the accounts table."""

    def create_account(self, email: str, password: str) -> Identity:
        """
        Create a password account.

        Raises:
            IdentityError: invalid email or email already registered
            PasswordValidationError: password too short
        """
        email = _normalize_email(email)
        password_hash = hash_password(password)

        if db.session.query(Account).filter_by(email=email).first():
            raise IdentityError("Email already in use")

        account = Account(
            uid=uuid.uuid4().hex,
            email=email,
            password_hash=password_hash,
            provider="password",
            last_login_at=utcnow(),
        )
        db.session.add(account)
        db.session.commit()
        return _identity(account, is_new=True)

    def login(self, email: str, password: str) -> Identity:
        """Raises IdentityError on unknown email, wrong password or inactive account."""
        email = (email or "").strip().lower()
        account = db.session.query(Account).filter_by(email=email, is_active=True).first()
        if not account or not verify_password(password or "", account.password_hash):
            raise IdentityError("Invalid email or password")

        account.last_login_at = utcnow()
        db.session.commit()
        return _identity(account, is_new=False)

    def login_with_federated_provider(self, provider: str, subject: str, email: str) -> Identity:
        """
        Sign in with an external provider, creating the account on first use.

        Raises IdentityError when the email already belongs to a different
        account or the account is inactive.
        """
        if not provider or not subject:
            raise IdentityError("provider and subject are required")
        email = _normalize_email(email)

        account = db.session.query(Account).filter_by(provider=provider, provider_subject=subject).first()
        is_new = account is None
        if is_new:
            if db.session.query(Account).filter_by(email=email).first():
                raise IdentityError("Email already in use")
            account = Account(
                uid=uuid.uuid4().hex,
                email=email,
                provider=provider,
                provider_subject=subject,
            )
            db.session.add(account)
        elif not account.is_active:
            raise IdentityError("Account is disabled")

        account.last_login_at = utcnow()
        db.session.commit()
        return _identity(account, is_new=is_new)

    def logout(self) -> None:
        """Nothing is held server-side for an identity; kept for interface symmetry."""
        return None

    def lookup(self, uid: str) -> Identity | None:
        account = db.session.query(Account).filter_by(uid=uid, is_active=True).first()
        return _identity(account, is_new=False) if account else None
