# Overview: PIN-gated session state machine and the service that drives it.

"""
Session / Authorization State Machine

States:
    Unauthenticated -> (login, no PIN on file)  -> AuthenticatedNoPin
    Unauthenticated -> (login, PIN on file)     -> PinPending
    AuthenticatedNoPin -> (PIN created)         -> Authorized
    PinPending -> (PIN verified)                -> Authorized
    PinPending -> (PIN rejected)                -> PinPending
    any -> (logout)                             -> Unauthenticated

Any other event raises InvalidTransitionError. Only Authorized may reach the
catalog, sales, analytics and store views; the other states are redirected
to their setup/verify views by guard().

INVARIANT: every session start (login, or restore after a process restart)
enters at AuthenticatedNoPin or PinPending, never Authorized, so protected
data is only reachable after a PIN step.

The PIN is a UX deterrent, not a secret: it is stored as raw digits at
users/<uid>/pin and there is no lockout after failed attempts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .activity_service import ActivityLog
from .identity_service import Identity, IdentityProvider
from .local_storage import LocalStorage
from .remote_store import RemoteStore, RemoteStoreError, RemoteUnavailableError
from ..validation import ValidationError, validate_pin

logger = logging.getLogger(__name__)

CURRENT_IDENTITY_KEY = "scanbizz_current_identity"

IdentityListener = Callable[[str | None], None]


class SessionState(str, Enum):
    UNAUTHENTICATED = "Unauthenticated"
    AUTHENTICATED_NO_PIN = "AuthenticatedNoPin"
    PIN_PENDING = "PinPending"
    AUTHORIZED = "Authorized"


class InvalidTransitionError(Exception):
    """Raised when an event is not allowed in the current session state."""
    pass


class NotAuthenticatedError(Exception):
    """Raised when an operation needs an authenticated identity and there is none."""
    pass


@dataclass(frozen=True)
class RouteDecision:
    allowed: bool
    state: SessionState
    redirect: str | None = None


_REDIRECTS = {
    SessionState.UNAUTHENTICATED: "/login",
    SessionState.AUTHENTICATED_NO_PIN: "/pin-setup",
    SessionState.PIN_PENDING: "/pin-verify",
}


class SessionMachine:
    """Pure state holder; no I/O."""

    def __init__(self) -> None:
        self.state = SessionState.UNAUTHENTICATED
        self.identity: Identity | None = None
        self.has_pin = False

    def _expect(self, *states: SessionState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise InvalidTransitionError(f"Expected state {allowed}, session is {self.state.value}")

    def login(self, identity: Identity, has_pin: bool) -> SessionState:
        self._expect(SessionState.UNAUTHENTICATED)
        self.identity = identity
        self.has_pin = has_pin
        self.state = SessionState.PIN_PENDING if has_pin else SessionState.AUTHENTICATED_NO_PIN
        return self.state

    def pin_created(self) -> SessionState:
        self._expect(SessionState.AUTHENTICATED_NO_PIN)
        self.has_pin = True
        self.state = SessionState.AUTHORIZED
        return self.state

    def pin_verified(self) -> SessionState:
        self._expect(SessionState.PIN_PENDING)
        self.state = SessionState.AUTHORIZED
        return self.state

    def pin_rejected(self) -> SessionState:
        self._expect(SessionState.PIN_PENDING)
        return self.state

    def logout(self) -> SessionState:
        self.identity = None
        self.has_pin = False
        self.state = SessionState.UNAUTHENTICATED
        return self.state

    def guard(self) -> RouteDecision:
        if self.state is SessionState.AUTHORIZED:
            return RouteDecision(allowed=True, state=self.state)
        return RouteDecision(allowed=False, state=self.state, redirect=_REDIRECTS[self.state])


class SessionService:
    """
    Drives the SessionMachine with the identity provider and remote store.

    Identity listeners are called with the new uid (or None) after every
    identity change; the data cache and offline queue use this to reset
    before anything of the new account is loaded.
    """

    def __init__(
        self,
        identity_provider: IdentityProvider,
        remote: RemoteStore,
        storage: LocalStorage,
        activity: ActivityLog,
        *,
        pin_length: int = 4,
        default_store_name: str = "My Store",
    ) -> None:
        self._idp = identity_provider
        self._remote = remote
        self._storage = storage
        self._activity = activity
        self._pin_length = pin_length
        self._default_store_name = default_store_name
        self._listeners: list[IdentityListener] = []
        self.machine = SessionMachine()

    # ---- accessors ----

    @property
    def state(self) -> SessionState:
        return self.machine.state

    @property
    def identity(self) -> Identity | None:
        return self.machine.identity

    def require_identity(self) -> Identity:
        if self.machine.identity is None:
            raise NotAuthenticatedError("No authenticated user")
        return self.machine.identity

    def add_identity_listener(self, listener: IdentityListener) -> None:
        self._listeners.append(listener)

    def guard(self) -> RouteDecision:
        return self.machine.guard()

    def to_dict(self) -> dict:
        decision = self.guard()
        identity = self.machine.identity
        return {
            "state": self.state.value,
            "uid": identity.uid if identity else None,
            "email": identity.email if identity else None,
            "has_pin": self.machine.has_pin,
            "redirect": decision.redirect,
        }

    # ---- internals ----

    def _notify(self, uid: str | None) -> None:
        for listener in self._listeners:
            listener(uid)

    def _pin_path(self, uid: str) -> str:
        return f"users/{uid}/pin"

    def _seed_store_info(self, uid: str) -> None:
        """Give an account without a store profile the default one."""
        path = f"users/{uid}/storeInfo"
        try:
            if self._remote.get(path) is None:
                self._remote.set(path, {"name": self._default_store_name, "address": "", "phone": ""})
        except RemoteStoreError as exc:
            logger.warning("Store profile for %s not seeded: %s", uid, exc)

    def _enter(self, identity: Identity, *, has_pin: bool) -> SessionState:
        if self.machine.state is not SessionState.UNAUTHENTICATED:
            self.log_out()
        state = self.machine.login(identity, has_pin)
        self._storage.set_json(CURRENT_IDENTITY_KEY, {"uid": identity.uid, "has_pin": has_pin})
        self._notify(identity.uid)
        logger.info("Session for %s entered %s", identity.uid, state.value)
        return state

    # ---- operations ----

    def sign_up(self, email: str, password: str) -> SessionState:
        """
        The account is committed locally first; the store profile seed is
        best-effort so an unreachable remote store does not strand a created
        account. A missed seed is retried at the next sign-in.
        """
        identity = self._idp.create_account(email, password)
        state = self._enter(identity, has_pin=False)
        self._seed_store_info(identity.uid)
        self._activity.record(identity.uid, "Account created")
        return state

    def log_in(self, email: str, password: str) -> SessionState:
        identity = self._idp.login(email, password)
        has_pin = self._remote.get(self._pin_path(identity.uid)) is not None
        self._activity.record(identity.uid, "Logged in")
        state = self._enter(identity, has_pin=has_pin)
        self._seed_store_info(identity.uid)
        return state

    def log_in_with_provider(self, provider: str, subject: str, email: str) -> SessionState:
        identity = self._idp.login_with_federated_provider(provider, subject, email)
        has_pin = self._remote.get(self._pin_path(identity.uid)) is not None
        self._activity.record(identity.uid, f"Logged in with {provider}")
        state = self._enter(identity, has_pin=has_pin)
        self._seed_store_info(identity.uid)
        return state

    def log_out(self) -> SessionState:
        identity = self.machine.identity
        if identity is not None:
            self._activity.record(identity.uid, "Logged out")
        self._idp.logout()
        self.machine.logout()
        self._storage.remove(CURRENT_IDENTITY_KEY)
        self._notify(None)
        return self.machine.state

    def setup_pin(self, pin: str, confirm: str | None = None) -> SessionState:
        identity = self.require_identity()
        pin = validate_pin(pin, length=self._pin_length)
        if confirm is not None and confirm != pin:
            raise ValidationError("PINs do not match")
        if self.machine.state is not SessionState.AUTHENTICATED_NO_PIN:
            raise InvalidTransitionError(f"Cannot create a PIN while {self.machine.state.value}")

        self._remote.set(self._pin_path(identity.uid), pin)
        state = self.machine.pin_created()
        self._storage.set_json(CURRENT_IDENTITY_KEY, {"uid": identity.uid, "has_pin": True})
        self._activity.record(identity.uid, "PIN created")
        return state

    def verify_pin(self, pin: str) -> bool:
        """True and Authorized on match; False (still PinPending) otherwise."""
        identity = self.require_identity()
        if self.machine.state is not SessionState.PIN_PENDING:
            raise InvalidTransitionError(f"No PIN verification pending while {self.machine.state.value}")

        stored = self._remote.get(self._pin_path(identity.uid))
        if stored is not None and isinstance(pin, str) and stored == pin:
            self.machine.pin_verified()
            return True

        self.machine.pin_rejected()
        logger.info("PIN verification failed for %s", identity.uid)
        return False

    def restore(self) -> SessionState:
        """
        Re-enter the remembered identity after a process restart.

        The remembered has_pin flag is used when the remote store cannot be
        reached.
        """
        remembered = self._storage.get_json(CURRENT_IDENTITY_KEY)
        if not isinstance(remembered, dict) or not remembered.get("uid"):
            return self.machine.state

        identity = self._idp.lookup(remembered["uid"])
        if identity is None:
            self._storage.remove(CURRENT_IDENTITY_KEY)
            return self.machine.state

        try:
            has_pin = self._remote.get(self._pin_path(identity.uid)) is not None
        except RemoteUnavailableError:
            has_pin = bool(remembered.get("has_pin"))
        return self._enter(identity, has_pin=has_pin)
