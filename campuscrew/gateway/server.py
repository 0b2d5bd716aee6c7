"""
Web gateway: combines the auth, events, admin, profile and chat blueprints
behind one session-aware Flask app.
This is the local entrypoint for development.
"""

from flask import Flask, Response, jsonify, redirect, request
from flask_cors import CORS
import os
import logging
from typing import Any, Dict, Optional, Tuple
from dotenv import load_dotenv

from campuscrew.api_client.client import SessionExpired
from campuscrew.auth_service.access import required_access, resolve_access
from campuscrew.auth_service.utils import clear_session, current_user, is_authenticated, load_session_user
from campuscrew.gateway.views import render_view, show_error_toast, show_success_toast

load_dotenv()

# Basic console logging during requests
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="[%(levelname)s] %(asctime)s - %(message)s",
)

DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://localhost:5050"
SESSION_EXPIRED_MESSAGE = "Session expired, please log in again."


def create_app(test_config: Optional[Dict[str, Any]] = None) -> Flask:
    """
    Application factory for creating the Flask app.

    Args:
        test_config (dict, optional): Config overrides applied before setup.

    Returns:
        Flask: The configured Flask application.
    """
    app = Flask(__name__, static_folder=None)
    app.config["SECRET_KEY"] = os.getenv("FLASK_SECRET_KEY")
    if test_config:
        app.config.update(test_config)

    if not app.config.get("SECRET_KEY"):
        if not app.config.get("TESTING"):
            raise RuntimeError("FLASK_SECRET_KEY not set in environment variables.")
        app.config["SECRET_KEY"] = "testing"

    origins = [o.strip() for o in os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",") if o.strip()]
    CORS(app, resources={
        r"/*": {
            "origins": origins,
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type"],
            "supports_credentials": True
        }
    })

    # --- REGISTER BLUEPRINTS ---
    from campuscrew.auth_service.routes import auth_bp
    from campuscrew.events_service.routes import events_bp
    from campuscrew.admin_service.routes import admin_bp
    from campuscrew.profile_service.routes import profile_bp
    from campuscrew.chat_service.routes import chat_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(events_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(profile_bp)
    app.register_blueprint(chat_bp)
    logging.info("All blueprints registered successfully.")

    # --- SESSION AND ACCESS ---
    @app.before_request
    def load_user() -> None:
        load_session_user()

    @app.before_request
    def guard_route() -> Optional[Response]:
        """Redirect when the current auth state may not see this route."""
        rule = request.url_rule.rule if request.url_rule else None
        target = resolve_access(required_access(rule), is_authenticated(), current_user())
        if target:
            logging.info(f"[Gateway] {request.method} {request.path} requires {required_access(rule)}; redirecting to {target}")
            return redirect(target)
        return None

    @app.errorhandler(SessionExpired)
    def session_expired(e: SessionExpired) -> Response:
        clear_session()
        show_error_toast(SESSION_EXPIRED_MESSAGE)
        return redirect("/login")

    @app.errorhandler(404)
    def not_found(e: Exception) -> Tuple[Response, int]:
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    def server_error(e: Exception) -> Tuple[Response, int]:
        logging.error(f"[Gateway] Unhandled error: {e}")
        return jsonify({"error": "Internal server error"}), 500

    # --- STATIC PAGES ---
    @app.route("/about")
    def about() -> Tuple[Response, int]:
        return render_view({"page": "about"})

    @app.route("/contact")
    def contact() -> Tuple[Response, int]:
        return render_view({"page": "contact"})

    @app.route("/forbidden")
    def forbidden() -> Tuple[Response, int]:
        return render_view({"page": "forbidden", "error": "You do not have permission to view this page."}, 403)

    # --- PAYMENT RETURN PAGES ---
    # The backend's bKash callback redirects the browser here.
    @app.route("/success")
    def payment_success() -> Tuple[Response, int]:
        show_success_toast("Payment successful")
        return render_view({"page": "success", "success": True})

    @app.route("/failure")
    def payment_failure() -> Tuple[Response, int]:
        message = request.args.get("message") or "Payment failed"
        show_error_toast(f"Payment failure: {message}")
        return render_view({"page": "failure", "success": False, "message": message})

    @app.route("/health")
    def health() -> Tuple[Response, int]:
        """
        Health check endpoint.
        """
        return jsonify({"status": "ok"}), 200

    return app


if __name__ == "__main__":
    app = create_app()
    port = int(os.getenv("GATEWAY_PORT", 5050))
    app.run(host="0.0.0.0", port=port, debug=True)
