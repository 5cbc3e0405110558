# Overview: Flask API routes for stock-take sessions (physical counts).

from flask import Blueprint, g, jsonify, request

from ..decorators import error_response, json_body, with_operator
from ..errors import NotFoundError, NothingToReconcileError, StoreError, ValidationError
from ..models.stock_takes import SESSION_STATUS_COMPLETED, SESSION_STATUS_IN_PROGRESS
from ..services.stock_take_service import StockTakeError, get_manager


stock_takes_bp = Blueprint("stock_takes", __name__, url_prefix="/api/stock-takes")

HANDLED_ERRORS = (ValidationError, NotFoundError, NothingToReconcileError, StoreError, StockTakeError)


def _handle_for(manager, session_id: int):
    """The operator's handle for a session; unsaved counts of open sessions are kept."""
    return manager.open_handle(session_id, operator=g.operator)


def _handle_body(manager, handle) -> dict:
    return {**handle.to_dict(), "summary": manager.summarize(handle).to_dict()}


@stock_takes_bp.get("")
def list_sessions():
    status = request.args.get("status") or None
    try:
        if status not in (None, SESSION_STATUS_IN_PROGRESS, SESSION_STATUS_COMPLETED):
            raise ValidationError(f"Invalid status: {status}")
        rows = get_manager().list_sessions(status=status)
        return jsonify({"items": [s.to_dict() for s in rows], "count": len(rows)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@stock_takes_bp.post("")
@with_operator
def start_session():
    """
    Start a stock-take.

    Request body: {"session_name": str}
    """
    try:
        data = json_body()
        manager = get_manager()
        handle = manager.start(data.get("session_name"), user_name=g.operator)
        return jsonify(handle.to_dict()), 201
    except HANDLED_ERRORS as e:
        return error_response(e)


@stock_takes_bp.get("/history")
def history():
    try:
        return jsonify({"days": get_manager().history_by_date()})
    except HANDLED_ERRORS as e:
        return error_response(e)


@stock_takes_bp.get("/<int:session_id>")
@with_operator
def resume_session(session_id: int):
    """
    Open a session for counting.

    A session that is already open keeps its unsaved counts; otherwise it is
    resumed from remote progress first, local mirror second.
    """
    try:
        manager = get_manager()
        return jsonify(_handle_body(manager, _handle_for(manager, session_id)))
    except HANDLED_ERRORS as e:
        return error_response(e)


@stock_takes_bp.post("/<int:session_id>/counts")
@with_operator
def record_count(session_id: int):
    """
    Record one count in memory (auto-saved to the local mirror).

    Request body: {"product_id": int, "actual_stock": int, "reason": str}
    """
    try:
        data = json_body()
        manager = get_manager()
        handle = _handle_for(manager, session_id)
        manager.record_count(
            handle, data.get("product_id"), data.get("actual_stock"), data.get("reason")
        )
        return jsonify(handle.to_dict())
    except HANDLED_ERRORS as e:
        return error_response(e)


@stock_takes_bp.put("/<int:session_id>/progress")
@with_operator
def save_progress(session_id: int):
    """
    Save progress.

    Request body (optional): {"counts": [{"product_id", "actual_stock", "reason"}]}
    Counts in the body are recorded before saving.
    """
    try:
        data = json_body()
        counts = data.get("counts") or []
        if not isinstance(counts, list):
            raise ValidationError("counts must be a list")
        manager = get_manager()
        handle = _handle_for(manager, session_id)
        for entry in counts:
            if not isinstance(entry, dict):
                raise ValidationError("Each count must be an object")
            manager.record_count(
                handle, entry.get("product_id"), entry.get("actual_stock"), entry.get("reason")
            )
        manager.save_progress(handle, user_name=g.operator)
        return jsonify(_handle_body(manager, handle))
    except HANDLED_ERRORS as e:
        return error_response(e)


@stock_takes_bp.get("/<int:session_id>/summary")
@with_operator
def summary(session_id: int):
    try:
        manager = get_manager()
        return jsonify(manager.summarize(_handle_for(manager, session_id)).to_dict())
    except HANDLED_ERRORS as e:
        return error_response(e)


@stock_takes_bp.post("/<int:session_id>/submit")
@with_operator
def submit_session(session_id: int):
    """
    Post discrepancies and complete the session.

    Returns:
        200: Session completed
        409: Nothing to reconcile (session stays open)
    """
    try:
        manager = get_manager()
        handle = _handle_for(manager, session_id)
        session = manager.submit(handle, user_name=g.operator)
        entries = manager.list_entries(session_id)
        return jsonify({
            "session": session.to_dict(),
            "entries": [e.to_dict() for e in entries],
        })
    except HANDLED_ERRORS as e:
        return error_response(e)


@stock_takes_bp.patch("/<int:session_id>")
@with_operator
def rename_session(session_id: int):
    try:
        data = json_body()
        session = get_manager().rename(session_id, data.get("session_name"), user_name=g.operator)
        return jsonify(session.to_dict())
    except HANDLED_ERRORS as e:
        return error_response(e)


@stock_takes_bp.delete("/<int:session_id>")
@with_operator
def delete_session(session_id: int):
    try:
        get_manager().delete(session_id, user_name=g.operator)
        return "", 204
    except HANDLED_ERRORS as e:
        return error_response(e)


@stock_takes_bp.get("/<int:session_id>/entries")
def list_entries(session_id: int):
    try:
        entries = get_manager().list_entries(session_id)
        return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@stock_takes_bp.post("/<int:session_id>/close")
def close_session(session_id: int):
    """Leave a session: pending auto-save is cancelled and unsaved counts dropped."""
    get_manager().close(session_id)
    return "", 204
