# Overview: Request helpers for API routes: operator context and error translation.

from functools import wraps

from flask import current_app, g, jsonify, request

from .errors import (
    InsufficientStockError,
    NotFoundError,
    NothingToReconcileError,
    OperationError,
    StoreError,
    ValidationError,
)


OPERATOR_HEADER = "X-Operator"
DEFAULT_OPERATOR = "system"


def with_operator(f):
    """
    Establish the operator name for activity records.

    Sets g.operator from the X-Operator header (default "system").
    There is no authentication; the header is trusted as given.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        name = (request.headers.get(OPERATOR_HEADER) or "").strip()
        g.operator = name or DEFAULT_OPERATOR
        return f(*args, **kwargs)

    return decorated_function


def _status_for(exc: BaseException) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, (InsufficientStockError, NothingToReconcileError)):
        return 409
    if isinstance(exc, StoreError):
        return 502
    if isinstance(exc, OperationError):
        # Aggregate failures take the status of what stopped them
        if exc.cause is None:
            return 409
        return _status_for(exc.cause)
    return 500


def error_response(exc: BaseException):
    """JSON error body + status for a service exception."""
    status = _status_for(exc)
    if status >= 500:
        current_app.logger.exception("Request failed: %s", exc)
    body = {"error": str(exc)}
    if isinstance(exc, OperationError) and exc.cause is not None:
        body["cause"] = exc.cause.__class__.__name__
    return jsonify(body), status


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data
