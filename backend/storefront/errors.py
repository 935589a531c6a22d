# Overview: Error taxonomy shared by services and routes, plus JSON error handlers.

"""
Storefront error classes.

Every failure a service can report maps to one HTTP status. Routes catch
StorefrontError and hand it to error_response(); anything else reaches the
handlers installed by register_error_handlers().

The AuthFailure / BackendUnavailableError split matters: an auth failure
clears the auth cookie, a datastore outage must not.
"""

from flask import current_app, jsonify
from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from werkzeug.exceptions import HTTPException

from .extensions import db


class StorefrontError(Exception):
    """Base class for errors that carry an HTTP status."""
    status_code = 500

    def __init__(self, message: str, details: dict | None = None, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.code = code

    def to_dict(self) -> dict:
        body = {"success": False, "message": self.message}
        if self.code:
            body["code"] = self.code
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(StorefrontError):
    """Malformed or missing input."""
    status_code = 400


class NotFoundError(StorefrontError):
    """Referenced entity does not exist (or is not visible to the caller)."""
    status_code = 404


class StateConflictError(StorefrontError):
    """Operation is illegal in the entity's current state."""
    status_code = 400


class SessionConflictError(StateConflictError):
    """User already holds an active session."""
    status_code = 409


class OutOfStockError(StateConflictError):
    """No allocatable unit left for a product."""
    status_code = 400


class AuthFailure(StorefrontError):
    """Bad, missing or expired credential, or no matching active session."""
    status_code = 401


class PermissionDenied(StorefrontError):
    status_code = 403


class BackendUnavailableError(StorefrontError):
    """Datastore could not be reached; the caller may retry."""
    status_code = 503


class InternalError(StorefrontError):
    status_code = 500


_TRANSPORT_ERRORS = (OperationalError, InterfaceError, DisconnectionError, PoolTimeoutError)


def is_backend_unavailable(exc: BaseException) -> bool:
    """True when a SQLAlchemy error came from the transport, not from the query."""
    if isinstance(exc, _TRANSPORT_ERRORS):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


def classify_db_error(exc: SQLAlchemyError) -> StorefrontError:
    if is_backend_unavailable(exc):
        return BackendUnavailableError(
            "Backend temporarily unavailable.",
            code="BACKEND_UNAVAILABLE",
        )
    return InternalError("Internal server error")


def error_response(exc: StorefrontError):
    return jsonify(exc.to_dict()), exc.status_code


def unexpected_error_response(exc: Exception, action: str):
    """
    Response for an exception a route did not anticipate.

    Datastore transport failures become 503 (logged without a trace);
    everything else is logged with its traceback and hidden behind a 500.
    """
    db.session.rollback()
    if isinstance(exc, SQLAlchemyError) and is_backend_unavailable(exc):
        current_app.logger.warning("Failed to %s: datastore unavailable (%s)", action, exc.__class__.__name__)
        return error_response(classify_db_error(exc))
    current_app.logger.exception("Failed to %s", action)
    return error_response(InternalError("Internal server error"))


def register_error_handlers(app) -> None:
    """Install JSON handlers for everything a route does not catch itself."""

    @app.errorhandler(StorefrontError)
    def handle_storefront_error(exc: StorefrontError):
        return error_response(exc)

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(exc: SQLAlchemyError):
        db.session.rollback()
        classified = classify_db_error(exc)
        if isinstance(classified, BackendUnavailableError):
            current_app.logger.warning("Datastore unavailable: %s", exc.__class__.__name__)
        else:
            current_app.logger.exception("Unhandled database error")
        return error_response(classified)

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return jsonify({"success": False, "message": exc.description}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        current_app.logger.exception("Unhandled error")
        return error_response(InternalError("Internal server error"))
