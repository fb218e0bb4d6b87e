# Overview: Flask API routes for sign-in and the PIN gate; parses input and returns JSON responses.

"""
Authentication API routes

The session lives in this process (one device, one signed-in identity), so
no token is issued. Every response carries the resulting session state and,
where the UI must move on, the view to redirect to.

SECURITY NOTES:
- Passwords are bcrypt hashed by the identity provider
- The PIN is a local deterrent; a failed check leaves the session PinPending
  and there is no lockout
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_identity
from ..services import get_services
from ..services.identity_service import IdentityError, PasswordValidationError
from ..services.remote_store import RemoteStoreError, RemoteUnavailableError
from ..services.session_service import InvalidTransitionError
from ..validation import ValidationError


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_payload(message: str) -> dict:
    payload = get_services().session.to_dict()
    payload["message"] = message
    return payload


@auth_bp.post("/signup")
def signup_route():
    """
    Create an email/password account and sign in.

    Request body:
    {
        "email": "owner@example.com",
        "password": "secret1"
    }

    New accounts have no PIN, so the session is AuthenticatedNoPin and the
    response redirects to /pin-setup.
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        get_services().session.sign_up(email, password)
        return jsonify(_session_payload("Account created")), 201

    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except IdentityError as e:
        return jsonify({"error": str(e)}), 400
    except RemoteStoreError as e:
        return jsonify({"error": str(e)}), 502
    except Exception:
        current_app.logger.exception("Failed to sign up user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """Email/password sign-in. Lands in PinPending or AuthenticatedNoPin."""
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        get_services().session.log_in(email, password)
        return jsonify(_session_payload("Login successful")), 200

    except IdentityError:
        return jsonify({"error": "Invalid email or password"}), 401
    except RemoteStoreError as e:
        return jsonify({"error": str(e)}), 502
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login/federated")
def federated_login_route():
    """
    Sign in with an external provider.

    Request body:
    {
        "provider": "google",
        "subject": "<provider user id>",
        "email": "owner@example.com"
    }

    The provider token is verified before this call; the account is created
    on first use.
    """
    try:
        data = request.get_json(silent=True) or {}
        provider = data.get("provider")
        subject = data.get("subject")
        email = data.get("email")

        if not all([provider, subject, email]):
            return jsonify({"error": "provider, subject and email required"}), 400

        get_services().session.log_in_with_provider(provider, subject, email)
        return jsonify(_session_payload("Login successful")), 200

    except IdentityError as e:
        return jsonify({"error": str(e)}), 401
    except RemoteStoreError as e:
        return jsonify({"error": str(e)}), 502
    except Exception:
        current_app.logger.exception("Failed to login with federated provider")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """Sign out from any state; queue and cache are detached from the identity."""
    try:
        get_services().session.log_out()
        return jsonify(_session_payload("Logout successful")), 200
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/session")
def session_route():
    return jsonify(get_services().session.to_dict()), 200


# =============================================================================
# PIN ROUTES
# =============================================================================

@auth_bp.post("/pin/setup")
@require_identity
def pin_setup_route():
    """
    Create the PIN for an account that has none.

    Request body:
    {
        "pin": "1234",
        "confirm": "1234"     // optional, must match pin when given
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        get_services().session.setup_pin(data.get("pin"), data.get("confirm"))
        return jsonify(_session_payload("PIN created")), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except InvalidTransitionError as e:
        return jsonify({"error": str(e)}), 409
    except RemoteUnavailableError:
        return jsonify({"error": "Cannot save a PIN while offline"}), 503
    except RemoteStoreError as e:
        return jsonify({"error": str(e)}), 502
    except Exception:
        current_app.logger.exception("Failed to set up PIN")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/pin/verify")
@require_identity
def pin_verify_route():
    """Check the PIN; a mismatch answers 401 and the session stays PinPending."""
    try:
        data = request.get_json(silent=True) or {}
        if get_services().session.verify_pin(data.get("pin")):
            return jsonify(_session_payload("PIN verified")), 200

        payload = get_services().session.to_dict()
        payload["error"] = "Incorrect PIN"
        return jsonify(payload), 401

    except InvalidTransitionError as e:
        return jsonify({"error": str(e)}), 409
    except RemoteUnavailableError:
        return jsonify({"error": "Cannot verify the PIN while offline"}), 503
    except RemoteStoreError as e:
        return jsonify({"error": str(e)}), 502
    except Exception:
        current_app.logger.exception("Failed to verify PIN")
        return jsonify({"error": "Internal server error"}), 500
