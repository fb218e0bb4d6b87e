from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Account(db.Model):
    """
    Identity provider accounts.

    An account is either password based (provider="password") or federated
    (provider names the external issuer and provider_subject is its stable
    user id). uid is the opaque identifier handed to the rest of the app and
    used as the root of the account's remote subtree.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        db.UniqueConstraint("provider", "provider_subject", name="uq_accounts_provider_subject"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    uid = db.Column(db.String(32), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=False, unique=True)

    # Bcrypt hashed password; NULL for federated accounts
    password_hash = db.Column(db.String(255), nullable=True)

    provider = db.Column(db.String(32), nullable=False, default="password")
    provider_subject = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "uid": self.uid,
            "email": self.email,
            "provider": self.provider,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }
