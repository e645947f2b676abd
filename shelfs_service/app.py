import os
import logging
from datetime import datetime
from functools import wraps

from flask import Blueprint, Flask, current_app, g, jsonify, request, abort
from flask_cors import CORS
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from .config import Config
from .database import make_engine, make_session_factory, init_db, ping
from .errors import LibraryError, ValidationError
from .repositories import (
    BookDefinitionRepository,
    BookItemRepository,
    UserRepository,
    LoanRepository,
)
from .catalog import BookService
from .patrons import UserService
from .loans import LoanService, DEFAULT_DUE_SOON_DAYS
from .serializers import definition_to_dict, item_to_dict, user_to_dict, loan_to_dict
from . import validation

logger = logging.getLogger(__name__)

APP_NAME = "Shelfs API"
APP_VERSION = "1.0.0"

api = Blueprint("api", __name__, url_prefix="/api")


# ---------------------------------------------------------
# App factory
# ---------------------------------------------------------

def create_app(config_object=Config, clock=None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(level=app.config.get("LOG_LEVEL", "INFO"))
    CORS(app)

    engine = make_engine(
        app.config["SQLALCHEMY_DATABASE_URI"],
        echo=app.config.get("SQLALCHEMY_ECHO", False),
    )
    init_db(engine)
    app.extensions["shelfs"] = {
        "engine": engine,
        "session_factory": make_session_factory(engine),
        "clock": clock or datetime.now,
    }

    app.teardown_appcontext(_close_session)
    app.register_blueprint(api)
    _register_error_handlers(app)

    logger.info("%s started with database %s", APP_NAME, engine.url.render_as_string())
    return app


# ---------------------------------------------------------
# Per-request session and services
# ---------------------------------------------------------

def _state():
    return current_app.extensions["shelfs"]


def _now():
    return _state()["clock"]()


def get_session():
    if "db_session" not in g:
        g.db_session = _state()["session_factory"]()
    return g.db_session


def _close_session(exc):
    session = g.pop("db_session", None)
    if session is not None:
        session.close()


def book_service():
    session = get_session()
    return BookService(
        session,
        BookDefinitionRepository(session),
        BookItemRepository(session),
        LoanRepository(session),
        clock=_state()["clock"],
    )


def user_service():
    session = get_session()
    return UserService(session, UserRepository(session), LoanRepository(session))


def loan_service():
    session = get_session()
    return LoanService(
        session,
        LoanRepository(session),
        UserRepository(session),
        BookItemRepository(session),
        clock=_state()["clock"],
        max_active_loans=current_app.config["MAX_ACTIVE_LOANS"],
        default_loan_days=current_app.config["DEFAULT_LOAN_DAYS"],
    )


def _json_body():
    return request.get_json(force=True, silent=True)


def _loans_json(loans):
    now = _now()
    return jsonify([loan_to_dict(loan, now) for loan in loans])


def _loan_json(loan, status=200):
    return jsonify(loan_to_dict(loan, _now())), status


# ---------------------------------------------------------
# Helpers
# ---------------------------------------------------------

def require_api_key(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        expected = current_app.config.get("SERVICE_API_KEY")
        sent = request.headers.get("X-API-Key")
        if expected and sent != expected:
            logger.warning("Invalid API key on %s", request.path)
            abort(401, description="Invalid or missing service API key")
        return func(*args, **kwargs)

    return wrapper


def _error_body(status, message, **extra):
    body = {
        "status": status,
        "error": message,
        "timestamp": datetime.now().isoformat(),
        "path": request.path,
    }
    body.update(extra)
    return body


def _register_error_handlers(app):
    @app.errorhandler(LibraryError)
    def handle_library_error(exc):
        payload = exc.to_dict()
        logger.warning("%s %s -> %s: %s", request.method, request.path, exc.status_code, exc.message)
        extra = {k: v for k, v in payload.items() if k not in ("status", "error")}
        return jsonify(_error_body(exc.status_code, exc.message, **extra)), exc.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(exc):
        get_session().rollback()
        logger.warning("Integrity violation on %s: %s", request.path, exc.orig)
        return (
            jsonify(_error_body(409, "Request conflicts with existing data")),
            409,
        )

    @app.errorhandler(HTTPException)
    def handle_http_error(exc):
        return jsonify(_error_body(exc.code, exc.description)), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected(exc):
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return (
            jsonify(_error_body(500, f"An unexpected error occurred: {exc}")),
            500,
        )


# ---------------------------------------------------------
# Health
# ---------------------------------------------------------

@api.get("/health")
def health():
    database = {}
    try:
        name, version = ping(_state()["engine"])
        database = {"status": "UP", "database": name, "version": version}
    except Exception as e:
        logger.warning("Database health check failed: %s", e)
        database = {"status": "DOWN", "error": str(e)}

    return jsonify(
        {
            "status": "UP",
            "application": APP_NAME,
            "version": APP_VERSION,
            "timestamp": datetime.now().isoformat(),
            "database": database,
        }
    )


@api.get("/health/ready")
def readiness():
    try:
        ping(_state()["engine"])
    except Exception:
        return jsonify(
            {"status": "NOT_READY", "message": "Database connection failed"}
        ), 503
    return jsonify(
        {"status": "READY", "message": "Application is ready to accept requests"}
    )


@api.get("/health/live")
def liveness():
    return jsonify({"status": "ALIVE", "message": "Application is running"})


# ---------------------------------------------------------
# Book definitions
# ---------------------------------------------------------

@api.get("/books")
def list_books():
    return jsonify([definition_to_dict(d) for d in book_service().list_definitions()])


@api.post("/books")
@require_api_key
def create_book():
    data = validation.validate_book_definition(_json_body())
    definition = book_service().create_definition(**data)
    return jsonify(definition_to_dict(definition)), 201


@api.get("/books/<int:definition_id>")
def get_book(definition_id):
    return jsonify(definition_to_dict(book_service().get_definition(definition_id)))


@api.get("/books/isbn/<isbn>")
def get_book_by_isbn(isbn):
    return jsonify(definition_to_dict(book_service().get_definition_by_isbn(isbn)))


@api.put("/books/<int:definition_id>")
@require_api_key
def update_book(definition_id):
    data = validation.validate_book_definition(_json_body())
    definition = book_service().update_definition(definition_id, **data)
    return jsonify(definition_to_dict(definition))


@api.delete("/books/<int:definition_id>")
@require_api_key
def delete_book(definition_id):
    book_service().delete_definition(definition_id)
    return "", 204


@api.get("/books/<int:definition_id>/items")
def list_book_items(definition_id):
    items = book_service().list_items_for_definition(definition_id)
    return jsonify([item_to_dict(i) for i in items])


@api.get("/books/<int:definition_id>/items/available")
def list_available_book_items(definition_id):
    items = book_service().list_available_items_for_definition(definition_id)
    return jsonify([item_to_dict(i) for i in items])


@api.get("/books/<int:definition_id>/items/count")
def count_book_items(definition_id):
    return jsonify(book_service().count_items_for_definition(definition_id))


@api.get("/books/<int:definition_id>/items/available/count")
def count_available_book_items(definition_id):
    return jsonify(book_service().count_available_items_for_definition(definition_id))


# ---------------------------------------------------------
# Book items
# ---------------------------------------------------------

@api.get("/books/items")
def list_items():
    return jsonify([item_to_dict(i) for i in book_service().list_items()])


@api.post("/books/items")
@require_api_key
def create_item():
    data = validation.validate_book_item(_json_body())
    item = book_service().create_item(**data)
    return jsonify(item_to_dict(item)), 201


@api.get("/books/items/deleted")
@require_api_key
def list_deleted_items():
    return jsonify([item_to_dict(i) for i in book_service().list_deleted_items()])


@api.get("/books/items/<int:item_id>")
def get_item(item_id):
    return jsonify(item_to_dict(book_service().get_item(item_id)))


@api.delete("/books/items/<int:item_id>")
@require_api_key
def soft_delete_item(item_id):
    book_service().soft_delete_item_by_id(item_id)
    return "", 204


@api.get("/books/items/barcode/<barcode>")
def get_item_by_barcode(barcode):
    return jsonify(item_to_dict(book_service().get_item_by_barcode(barcode)))


@api.delete("/books/items/barcode/<barcode>")
@require_api_key
def soft_delete_item_by_barcode(barcode):
    book_service().soft_delete_item_by_barcode(barcode)
    return "", 204


@api.patch("/books/items/barcode/<barcode>/status")
@require_api_key
def update_item_status(barcode):
    raw = request.args.get("status")
    if raw is None:
        body = _json_body() or {}
        raw = body.get("status") if isinstance(body, dict) else None
    if raw is None:
        raise ValidationError({"status": "Status is required"})
    item = book_service().update_item_status(barcode, validation.parse_status(raw))
    return jsonify(item_to_dict(item))


@api.post("/books/items/barcode/<barcode>/restore")
@require_api_key
def restore_item(barcode):
    return jsonify(item_to_dict(book_service().restore_item(barcode)))


# ---------------------------------------------------------
# Users
# ---------------------------------------------------------

@api.get("/users")
def list_users():
    return jsonify([user_to_dict(u) for u in user_service().list_users()])


@api.post("/users")
@require_api_key
def create_user():
    data = validation.validate_user(_json_body())
    user = user_service().create_user(**data)
    return jsonify(user_to_dict(user)), 201


@api.post("/users/authenticate")
def authenticate_user():
    data = validation.validate_credentials(_json_body())
    user = user_service().authenticate(**data)
    if user is None:
        logger.warning("Failed login for %s", data["username"])
        abort(401, description="Invalid username or password")
    return jsonify(user_to_dict(user))


@api.get("/users/<int:user_id>")
def get_user(user_id):
    return jsonify(user_to_dict(user_service().get_user(user_id)))


@api.put("/users/<int:user_id>")
@require_api_key
def update_user(user_id):
    data = validation.validate_user(_json_body(), partial=True)
    user = user_service().update_user(user_id, **data)
    return jsonify(user_to_dict(user))


@api.delete("/users/<int:user_id>")
@require_api_key
def delete_user(user_id):
    user_service().delete_user(user_id)
    return "", 204


# ---------------------------------------------------------
# Loans
# ---------------------------------------------------------

@api.post("/loans")
@require_api_key
def create_loan():
    data = validation.validate_loan(_json_body())
    return _loan_json(loan_service().create_loan(**data), 201)


@api.post("/loans/quick")
@require_api_key
def create_quick_loan():
    data = validation.validate_loan(
        {
            "user_id": request.args.get("user_id"),
            "book_item_id": request.args.get("book_item_id"),
        }
    )
    return _loan_json(loan_service().create_loan(**data), 201)


@api.get("/loans")
def list_loans():
    return _loans_json(loan_service().list_loans())


@api.get("/loans/<int:loan_id>")
def get_loan(loan_id):
    return _loan_json(loan_service().get_loan(loan_id))


@api.post("/loans/<int:loan_id>/return")
@require_api_key
def return_loan(loan_id):
    return _loan_json(loan_service().return_loan(loan_id))


@api.post("/loans/return/barcode/<barcode>")
@require_api_key
def return_loan_by_barcode(barcode):
    return _loan_json(loan_service().return_loan_by_barcode(barcode))


@api.post("/loans/<int:loan_id>/extend")
@require_api_key
def extend_loan(loan_id):
    return _loan_json(loan_service().extend_loan(loan_id))


@api.post("/loans/<int:loan_id>/extend/<days>")
@require_api_key
def extend_loan_by_days(loan_id, days):
    days = validation.validate_extension_days(days)
    return _loan_json(loan_service().extend_loan(loan_id, days))


@api.get("/loans/active")
def list_active_loans():
    return _loans_json(loan_service().list_active_loans())


@api.get("/loans/overdue")
def list_overdue_loans():
    return _loans_json(loan_service().list_overdue_loans())


@api.get("/loans/overdue/count")
def count_overdue_loans():
    return jsonify(loan_service().count_overdue_loans())


@api.get("/loans/due-soon")
def list_loans_due_soon():
    days = validation.validate_window_days(request.args.get("days"), DEFAULT_DUE_SOON_DAYS)
    return _loans_json(loan_service().list_loans_due_soon(days))


@api.get("/loans/user/<int:user_id>")
def list_user_loans(user_id):
    return _loans_json(loan_service().list_loans_for_user(user_id))


@api.get("/loans/user/<int:user_id>/active")
def list_user_active_loans(user_id):
    return _loans_json(loan_service().list_active_loans_for_user(user_id))


@api.get("/loans/user/<int:user_id>/history")
def list_user_loan_history(user_id):
    return _loans_json(loan_service().list_loan_history_for_user(user_id))


@api.get("/loans/user/<int:user_id>/overdue")
def list_user_overdue_loans(user_id):
    return _loans_json(loan_service().list_overdue_loans_for_user(user_id))


@api.get("/loans/user/<int:user_id>/has-overdue")
def user_has_overdue_loans(user_id):
    return jsonify(loan_service().user_has_overdue_loans(user_id))


@api.get("/loans/user/<int:user_id>/due-soon")
def list_user_loans_due_soon(user_id):
    days = validation.validate_window_days(request.args.get("days"), DEFAULT_DUE_SOON_DAYS)
    return _loans_json(loan_service().list_loans_due_soon_for_user(user_id, days))


@api.get("/loans/user/<int:user_id>/active/count")
def count_user_active_loans(user_id):
    return jsonify(loan_service().count_active_loans_for_user(user_id))


@api.get("/loans/user/<int:user_id>/count")
def count_user_loans(user_id):
    return jsonify(loan_service().count_total_loans_for_user(user_id))


@api.get("/loans/user/email/<email>")
def list_loans_by_email(email):
    return _loans_json(loan_service().list_loans_for_user_email(email))


@api.get("/loans/user/email/<email>/active")
def list_active_loans_by_email(email):
    return _loans_json(loan_service().list_active_loans_for_user_email(email))


@api.get("/loans/book-item/<int:book_item_id>/history")
def list_item_loan_history(book_item_id):
    return _loans_json(loan_service().list_loan_history_for_item(book_item_id))


@api.get("/loans/book-item/<int:book_item_id>/borrowed")
def is_item_borrowed(book_item_id):
    return jsonify(loan_service().is_item_borrowed(book_item_id))


if __name__ == "__main__":
    port = int(os.getenv("PORT", "5000"))
    create_app().run(host="0.0.0.0", port=port, debug=True)
