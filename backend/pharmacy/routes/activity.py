# Overview: Read-only API route for the operator activity trail.

from flask import Blueprint, jsonify, request

from ..decorators import error_response
from ..errors import StoreError, ValidationError
from ..services import activity_service


activity_bp = Blueprint("activity", __name__, url_prefix="/api/activity")


@activity_bp.get("")
def list_activity():
    """Newest first. Query: ?action=CODE&limit=100&offset=0"""
    try:
        try:
            limit = min(max(int(request.args.get("limit", 100)), 1), 1000)
            offset = max(int(request.args.get("offset", 0)), 0)
        except ValueError:
            raise ValidationError("limit and offset must be integers")
        rows = activity_service.list_activity(
            action=request.args.get("action") or None, limit=limit, offset=offset
        )
        return jsonify({"items": [r.to_dict() for r in rows], "count": len(rows)})
    except (ValidationError, StoreError) as e:
        return error_response(e)
