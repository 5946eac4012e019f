import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask import current_app, g, jsonify, request
from marshmallow import Schema
from marshmallow import ValidationError as MarshmallowValidationError

from storefront.core.config import Config
from storefront.core.exceptions import NotFoundError, ValidationError


def success_response(data, message: Optional[str] = None, status: int = 200):
    """Consistent success response envelope."""
    response = {
        "success": True,
        "data": data,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if message:
        response["message"] = message
    request_id = g.get("request_id")
    if request_id:
        response["request_id"] = request_id
    return jsonify(response), status


def paginated(items, total: int, page: int, page_size: int) -> Dict[str, Any]:
    return {
        "items": items,
        "pagination": {
            "page": page,
            "page_size": page_size,
            "total": total,
            "pages": (total + page_size - 1) // page_size if page_size else 0,
        },
    }


def get_config() -> Config:
    return current_app.config["STOREFRONT"]


def load_or_400(schema: Schema, data: Optional[Dict[str, Any]], partial: bool = False) -> Dict[str, Any]:
    """Run a marshmallow schema, turning its errors into a 400 ValidationError."""
    try:
        return schema.load(data or {}, partial=partial)
    except MarshmallowValidationError as err:
        messages = err.messages if isinstance(err.messages, dict) else {"_schema": err.messages}
        raise ValidationError("Invalid request data", messages)


def json_body() -> Dict[str, Any]:
    """The JSON request body. Anything other than a JSON object is a 400."""
    data = request.get_json(silent=True)
    if data is None:
        if request.content_length:
            raise ValidationError("Request body must be valid JSON")
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def parse_uuid_or_404(value: str, resource: str = "Resource") -> uuid.UUID:
    """Path ids that aren't UUIDs can't name anything, so they are 404s."""
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise NotFoundError(resource, value)


def parse_bool(v, default: bool = False) -> bool:
    """Parse a boolean value from a query string."""
    if v is None:
        return default
    if isinstance(v, bool):
        return v
    return str(v).lower() in ("1", "true", "t", "yes", "y", "on")
