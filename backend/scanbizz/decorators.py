# Overview: Session guards for API routes.

from functools import wraps
from flask import jsonify

from .services import get_services
from .services.session_service import SessionState


def require_identity(f):
    """
    Require a signed-in identity, in any PIN state.

    Used by the PIN setup/verify routes, which are exactly the views the
    other states are redirected to.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        session = get_services().session
        if session.identity is None:
            return jsonify({"error": "Authentication required", "redirect": "/login"}), 401
        return f(*args, **kwargs)

    return decorated_function


def require_authorized(f):
    """
    Only the Authorized state reaches catalog, sales, analytics, store and
    sync routes.

    Returns:
    - 401 with redirect /login when nobody is signed in
    - 403 with redirect /pin-setup or /pin-verify while a PIN step is open
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        decision = get_services().session.guard()
        if decision.allowed:
            return f(*args, **kwargs)

        if decision.state is SessionState.UNAUTHENTICATED:
            return jsonify({"error": "Authentication required", "redirect": decision.redirect}), 401
        return jsonify({
            "error": "PIN required",
            "state": decision.state.value,
            "redirect": decision.redirect,
        }), 403

    return decorated_function
