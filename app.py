#!/usr/bin/env python3
"""
KanaSchool - Flask Web Application
JSON API for the kana quiz: accounts, practice sessions, guesses and statistics.
"""

import argparse
from functools import wraps
from typing import Any, Callable, Dict, Optional

from flask import Blueprint, Flask, current_app, g, jsonify, request
from itsdangerous import BadSignature, URLSafeSerializer
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from check_database import check_database_contents
from kana_school import auth, contact, db, quiz, stats
from kana_school.cli import register_commands
from kana_school.config import Config
from kana_school.logging_config import setup_logging
from kana_school.results import Err, ErrorKind
from kana_school.structured import AuthUser

STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.CONFLICT: 400,
    ErrorKind.AUTHENTICATION: 401,
    ErrorKind.PERMISSION: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFIGURATION: 500,
    ErrorKind.STORAGE: 500,
}

# Account updates report every business failure as a plain 400
UPDATE_STATUS_OVERRIDES: Dict[ErrorKind, int] = {
    ErrorKind.PERMISSION: 400,
    ErrorKind.NOT_FOUND: 400,
}

STORE_KEY = "kana_school.store"
COOKIE_SALT = "kana-school-auth"

api = Blueprint("api", __name__, url_prefix="/api")


# ── Helpers ───────────────────────────────────────────────────────────────────

def get_store() -> db.Store:
    return current_app.extensions[STORE_KEY]


def error_response(message: str, status: int) -> Any:
    return jsonify({"error": message}), status


def err_response(err: Err, overrides: Optional[Dict[ErrorKind, int]] = None) -> Any:
    status = (overrides or {}).get(err.kind, STATUS_BY_KIND[err.kind])
    return error_response(err.message, status)


def read_json() -> Optional[Dict[str, Any]]:
    """The request body as a dict, or None when it is missing or not a JSON object."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


def parse_session_id(raw: str) -> Optional[int]:
    try:
        session_id = int(raw, 10)
    except (TypeError, ValueError):
        return None
    return session_id if db.fits_integer_column(session_id) else None


def _serializer() -> URLSafeSerializer:
    return URLSafeSerializer(current_app.config["SECRET_KEY"], salt=COOKIE_SALT)


def encode_identity(user: AuthUser) -> str:
    return _serializer().dumps(user.to_dict())


def decode_identity(value: str) -> Optional[AuthUser]:
    try:
        return AuthUser.from_dict(_serializer().loads(value))
    except (BadSignature, KeyError, TypeError, ValueError):
        return None


def set_auth_cookie(response: Any, user: AuthUser) -> Any:
    response.set_cookie(
        current_app.config["AUTH_COOKIE_NAME"],
        encode_identity(user),
        max_age=current_app.config["AUTH_COOKIE_MAX_AGE"],
        path="/",
        httponly=True,
        secure=current_app.config["PRODUCTION"],
        samesite="Lax",
    )
    g.clear_auth_cookie = False
    return response


def clear_auth_cookie(response: Any) -> Any:
    response.delete_cookie(
        current_app.config["AUTH_COOKIE_NAME"],
        path="/",
        httponly=True,
        secure=current_app.config["PRODUCTION"],
        samesite="Lax",
    )
    g.clear_auth_cookie = False
    return response


def login_required(f: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(f)
    def decorated(*args: Any, **kwargs: Any) -> Any:
        if g.get("user") is None:
            return error_response("Not authenticated", 401)
        return f(*args, **kwargs)
    return decorated


# ── Request lifecycle ─────────────────────────────────────────────────────────

@api.before_app_request
def initialize_database() -> None:
    """Create tables and seed the kana catalog on the first request."""
    app = current_app._get_current_object()  # type: ignore[attr-defined]
    if app.extensions.get("kana_school.initialized"):
        return
    store = get_store()
    try:
        if not db.is_db_initialized(store):
            db.init_db(store)
            app.logger.info("Database initialized on startup")
        if app.config["SEED_KANAS_ON_STARTUP"]:
            db.seed_kanas(store)
    except SQLAlchemyError:
        # Retried on the next request
        app.logger.exception("Database startup check failed")
        return
    app.extensions["kana_school.initialized"] = True


@api.before_app_request
def load_current_user() -> None:
    """Resolve the identity cookie to a live user on ``g.user``."""
    g.user = None
    g.clear_auth_cookie = False
    raw = request.cookies.get(current_app.config["AUTH_COOKIE_NAME"])
    if not raw:
        return

    cookie_user = decode_identity(raw)
    if cookie_user is None:
        g.clear_auth_cookie = True
        return

    try:
        user = auth.load_user(get_store(), cookie_user.id)
    except SQLAlchemyError:
        current_app.logger.warning("Store unavailable while checking identity cookie", exc_info=True)
        if current_app.config["TRUST_COOKIE_ON_STORE_UNAVAILABLE"]:
            g.user = cookie_user
        return

    if user is None:
        g.clear_auth_cookie = True
    else:
        g.user = user


@api.after_app_request
def drop_stale_cookie(response: Any) -> Any:
    if g.get("clear_auth_cookie"):
        clear_auth_cookie(response)
    return response


def handle_http_exception(e: HTTPException) -> Any:
    return error_response(e.description or e.name, e.code or 500)


def handle_unexpected_error(e: Exception) -> Any:
    current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
    return error_response("Internal server error", 500)


# ── Users ─────────────────────────────────────────────────────────────────────

def _credentials() -> Optional[tuple]:
    data = read_json()
    if data is None:
        return None
    name, password = data.get("name"), data.get("password")
    if not name or not isinstance(name, str) or not password or not isinstance(password, str):
        return None
    return name, password


@api.route("/users/signup", methods=["POST"])
def signup() -> Any:
    credentials = _credentials()
    if credentials is None:
        return error_response("Invalid request", 400)

    result = auth.signup(get_store(), *credentials)
    if isinstance(result, Err):
        return err_response(result)

    response = jsonify({"user": result.value.to_dict()})
    response.status_code = 201
    return set_auth_cookie(response, result.value)


@api.route("/users/login", methods=["POST"])
def login() -> Any:
    credentials = _credentials()
    if credentials is None:
        return error_response("Invalid request", 400)

    result = auth.login(get_store(), *credentials)
    if isinstance(result, Err):
        return err_response(result)

    return set_auth_cookie(jsonify({"user": result.value.to_dict()}), result.value)


@api.route("/users/logout", methods=["POST"])
def logout() -> Any:
    return clear_auth_cookie(jsonify({"success": True}))


@api.route("/me")
def current_user() -> Any:
    user = g.get("user")
    return jsonify({"user": user.to_dict() if user else None})


@api.route("/users/update", methods=["POST"])
@login_required
def update_user() -> Any:
    data = read_json()
    if data is None:
        return error_response("Invalid request body", 400)

    action = data.get("action")
    if not action or not isinstance(action, str):
        return error_response("Invalid request", 400)

    store = get_store()
    user: AuthUser = g.user

    if action == "updatePassword":
        old_password, new_password = data.get("oldPassword"), data.get("newPassword")
        if not isinstance(old_password, str) or not old_password or not isinstance(new_password, str) or not new_password:
            return error_response("Old password and new password are required", 400)
        result = auth.update_password(store, user.id, old_password, new_password)
        if isinstance(result, Err):
            return err_response(result, UPDATE_STATUS_OVERRIDES)
        return jsonify({"success": True})

    if action == "updateUsername":
        new_username = data.get("newUsername")
        if not isinstance(new_username, str) or not new_username:
            return error_response("New username is required", 400)
        result = auth.update_username(store, user.id, new_username)
        if isinstance(result, Err):
            return err_response(result, UPDATE_STATUS_OVERRIDES)
        return set_auth_cookie(jsonify({"user": result.value.to_dict()}), result.value)

    if action == "updateVisibility":
        is_public = data.get("isPublic")
        if not isinstance(is_public, bool):
            return error_response("isPublic must be a boolean", 400)
        result = auth.update_visibility(store, user.id, is_public)
        if isinstance(result, Err):
            return err_response(result, UPDATE_STATUS_OVERRIDES)
        return set_auth_cookie(jsonify({"success": True, "user": result.value.to_dict()}), result.value)

    if action == "deleteAccount":
        password = data.get("password")
        if not isinstance(password, str) or not password:
            return error_response("Password is required", 400)
        result = auth.delete_account(store, user.id, password)
        if isinstance(result, Err):
            return err_response(result, UPDATE_STATUS_OVERRIDES)
        return clear_auth_cookie(jsonify({"success": True}))

    if action == "deleteSession":
        session_id = data.get("sessionId")
        if isinstance(session_id, bool) or not isinstance(session_id, int) or not session_id:
            return error_response("Session ID is required", 400)
        if not db.fits_integer_column(session_id):
            return error_response("Invalid session ID", 400)
        result = auth.delete_session(store, user.id, session_id)
        if isinstance(result, Err):
            return err_response(result, UPDATE_STATUS_OVERRIDES)
        return jsonify({"success": True})

    return error_response("Invalid action", 400)


@api.route("/users/<name>")
def user_profile(name: str) -> Any:
    page = max(request.args.get("page", 0, type=int), 0)
    if not db.fits_integer_column(page * stats.PROFILE_PAGE_SIZE):
        return error_response("Invalid page", 400)
    result = stats.user_profile(get_store(), name, g.get("user"), page=page)
    if isinstance(result, Err):
        return err_response(result)
    return jsonify(result.value)


# ── Sessions ──────────────────────────────────────────────────────────────────

@api.route("/sessions/create", methods=["POST"])
@login_required
def create_session() -> Any:
    data = read_json()
    if data is None:
        return error_response("Invalid request body", 400)

    config = quiz.parse_session_config(data)
    if isinstance(config, Err):
        return err_response(config)

    result = quiz.create_session(get_store(), g.user.id, config.value)
    if isinstance(result, Err):
        return err_response(result)
    return jsonify({"sessionId": result.value})


@api.route("/sessions/my")
@login_required
def my_sessions() -> Any:
    return jsonify(quiz.my_sessions(get_store(), g.user.id))


@api.route("/sessions/<raw_id>")
def view_session(raw_id: str) -> Any:
    session_id = parse_session_id(raw_id)
    if session_id is None:
        return error_response("Invalid session ID", 400)

    result = quiz.view_session(get_store(), session_id, g.get("user"))
    if isinstance(result, Err):
        return err_response(result)
    return jsonify(result.value)


@api.route("/sessions/<raw_id>/guess", methods=["POST"])
@login_required
def record_guess(raw_id: str) -> Any:
    session_id = parse_session_id(raw_id)
    if session_id is None:
        return error_response("Invalid session ID", 400)

    data = read_json()
    if data is None:
        return error_response("Invalid request body", 400)

    store = get_store()
    owned = quiz.get_owned_session(store, session_id, g.user.id)
    if isinstance(owned, Err):
        return err_response(owned)

    result = quiz.record_guess(store, session_id, data.get("kanaId"), data.get("isCorrect"))
    if isinstance(result, Err):
        return err_response(result)
    return jsonify({"success": True})


@api.route("/sessions/<raw_id>/finish", methods=["POST"])
@login_required
def finish_session(raw_id: str) -> Any:
    session_id = parse_session_id(raw_id)
    if session_id is None:
        return error_response("Invalid session ID", 400)

    store = get_store()
    owned = quiz.get_owned_session(store, session_id, g.user.id)
    if isinstance(owned, Err):
        return err_response(owned)

    result = quiz.finish_session(store, session_id)
    if isinstance(result, Err):
        return err_response(result)
    return jsonify({"success": True})


@api.route("/sessions/<raw_id>/visibility", methods=["POST"])
@login_required
def session_visibility(raw_id: str) -> Any:
    session_id = parse_session_id(raw_id)
    if session_id is None:
        return error_response("Invalid session ID", 400)

    data = read_json()
    if data is None:
        return error_response("Invalid request body", 400)

    body_id = data.get("sessionId", session_id)
    is_public = data.get("isPublic")
    if not isinstance(is_public, bool):
        return error_response("Missing sessionId or isPublic", 400)
    if body_id != session_id:
        return error_response("Session ID mismatch", 400)

    store = get_store()
    owned = quiz.get_owned_session(store, session_id, g.user.id)
    if isinstance(owned, Err):
        return err_response(owned)

    result = quiz.update_session_visibility(store, session_id, is_public)
    if isinstance(result, Err):
        return err_response(result)
    return jsonify({"success": True})


# ── Statistics ────────────────────────────────────────────────────────────────

@api.route("/stats")
def home_stats() -> Any:
    return jsonify({"stats": stats.home_stats(get_store())})


@api.route("/stats/sessions")
def sessions_stats() -> Any:
    return jsonify({"stats": stats.sessions_page_stats(get_store())})


@api.route("/stats/users")
def users_stats() -> Any:
    return jsonify({"stats": stats.users_page_stats(get_store())})


# ── Kanas ─────────────────────────────────────────────────────────────────────

@api.route("/kanas")
def list_kanas() -> Any:
    store = get_store()
    script = request.args.get("script")
    if script is None:
        return jsonify({
            "hiraganas": [k.to_dict() for k in db.get_hiraganas(store)],
            "katakanas": [k.to_dict() for k in db.get_katakanas(store)],
        })
    if script == "hiragana":
        return jsonify({"kanas": [k.to_dict() for k in db.get_hiraganas(store)]})
    if script == "katakana":
        return jsonify({"kanas": [k.to_dict() for k in db.get_katakanas(store)]})
    return error_response("script must be 'hiragana' or 'katakana'", 400)


def _kana_detail(reading: str, is_katakana: bool) -> Any:
    store = get_store()
    kana = db.get_kana_by_reading(store, reading, is_katakana)
    if kana is None:
        return error_response(f"{'Katakana' if is_katakana else 'Hiragana'} not found", 404)

    # "ji" is written two ways; expose the one from the t line as well
    alternative = None
    if kana.reading == "ji":
        alternative = db.get_kana_by_reading(store, "ji", is_katakana, consonant_line="t")

    return jsonify({
        "kana": kana.to_dict(),
        "alternativeKana": alternative.to_dict() if alternative else None,
    })


@api.route("/hiraganas/<reading>")
def hiragana_detail(reading: str) -> Any:
    return _kana_detail(reading, is_katakana=False)


@api.route("/katakanas/<reading>")
def katakana_detail(reading: str) -> Any:
    return _kana_detail(reading, is_katakana=True)


# ── Contact ───────────────────────────────────────────────────────────────────

@api.route("/contact/message", methods=["POST"])
def contact_message() -> Any:
    data = read_json()
    if data is None:
        return error_response("Invalid request body", 400)

    result = contact.send_contact_message(data.get("message"), current_app.config["DISCORD_WEBHOOK_URL"])
    if isinstance(result, Err):
        return err_response(result)
    return jsonify({"success": True})


# ── Application factory ───────────────────────────────────────────────────────

def create_app(config_overrides: Optional[Dict[str, Any]] = None, store: Optional[db.Store] = None) -> Flask:
    """Build the Flask app. ``store`` defaults to one opened on ``DATABASE_URL``."""
    app = Flask(__name__)
    app.config.update(Config().as_dict())
    if config_overrides:
        app.config.update(config_overrides)

    setup_logging(debug=app.config["DEBUG"])
    app.extensions[STORE_KEY] = store or db.Store(app.config["DATABASE_URL"])

    app.register_blueprint(api)
    app.register_error_handler(HTTPException, handle_http_exception)
    app.register_error_handler(Exception, handle_unexpected_error)
    register_commands(app.cli)

    @app.cli.command("check-db")
    def check_db() -> None:
        """Print a summary of the database contents."""
        check_database_contents(app.extensions[STORE_KEY])

    return app


app = create_app()


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='KanaSchool API server')
    parser.add_argument('--host', default='127.0.0.1', help='Host IP to bind to (default: 127.0.0.1)')
    parser.add_argument('--port', type=int, default=5000, help='Port to bind to (default: 5000)')
    parser.add_argument('--debug', action='store_true', help='Enable debug mode')
    args = parser.parse_args()

    if args.debug:
        app.config['DEBUG'] = True
        setup_logging(debug=True)

    store = app.extensions[STORE_KEY]
    try:
        if not db.is_db_initialized(store):
            db.init_db(store)
            app.logger.info("Database initialized")
        db.seed_kanas(store)
    except SQLAlchemyError:
        app.logger.exception("Database initialization failed")

    app.logger.info("Starting server on http://%s:%d", args.host, args.port)
    app.run(debug=app.config['DEBUG'], host=args.host, port=args.port)
