"""Response envelope helpers (RFC 7807 problem details for errors)."""

from datetime import datetime
from typing import Any, Dict, List, Optional


def success_response(
    data: Any, meta: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Create a successful response envelope.

    Args:
        data: The response data
        meta: Optional metadata (timestamp, version, etc.)

    Returns:
        ``{"success": True, "data": ..., "meta": ...}``
    """
    response = {"success": True, "data": data}

    if meta is None:
        meta = {}

    # Add default metadata
    meta.setdefault("timestamp", datetime.utcnow().isoformat() + "Z")
    meta.setdefault("version", "1.0")

    response["meta"] = meta
    return response


def error_response(
    title: str,
    status: int,
    detail: str,
    error_type: str = "about:blank",
    instance: Optional[str] = None,
    errors: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """Create an error response following RFC 7807 Problem Details standard.

    Args:
        title: Short, human-readable summary of the problem
        status: HTTP status code
        detail: Human-readable explanation specific to this occurrence
        error_type: URI reference that identifies the problem type
        instance: URI reference that identifies the specific occurrence
        errors: Additional error details

    Returns:
        RFC 7807 compliant error response with ``success: False``
    """
    response = {
        "success": False,
        "type": error_type,
        "title": title,
        "status": status,
        "detail": detail,
    }

    if instance:
        response["instance"] = instance

    if errors:
        response["errors"] = errors

    return response
