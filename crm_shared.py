from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import azure.functions as func

from services.errors import CrmError, is_delete_blocked

logger = logging.getLogger(__name__)

ACTOR_HEADER = "x-user-name"
DEFAULT_ACTOR = "system"


def actor_name(req: func.HttpRequest) -> str:
    """Display name of the acting user; authentication happens upstream."""
    return str(req.headers.get(ACTOR_HEADER) or "").strip() or DEFAULT_ACTOR


def json_response(data: Any, *, status_code: int, cors: Dict[str, str]) -> func.HttpResponse:
    return func.HttpResponse(
        json.dumps(data, ensure_ascii=False),
        status_code=status_code,
        mimetype="application/json",
        headers=cors,
    )


def error_response(
    *,
    cors: Dict[str, str],
    status_code: int,
    message: str,
    code: str,
    details: Optional[Any] = None,
) -> func.HttpResponse:
    payload = {"success": False, "error": message, "code": code}
    if details is not None:
        payload["details"] = details
    return json_response(payload, status_code=status_code, cors=cors)


def failure_response(exc: Exception, cors: Dict[str, str]) -> func.HttpResponse:
    """Map a handler exception to an HTTP response. Domain errors keep their status; anything else is a 500."""
    if is_delete_blocked(exc):
        return error_response(cors=cors, status_code=400, message=str(exc), code="dependency_blocked")
    if isinstance(exc, CrmError):
        details = None
        if hasattr(exc, "completed"):
            details = {"step": exc.step, "completed": exc.completed, "written": exc.written}
        return error_response(cors=cors, status_code=exc.status_code, message=str(exc), code=exc.code, details=details)
    logger.exception("Unhandled CRM error: %s", exc)
    return error_response(cors=cors, status_code=500, message="Internal server error", code="server_error")


def parse_body(req: func.HttpRequest) -> Dict[str, Any]:
    try:
        payload = req.get_json()
        if isinstance(payload, dict):
            return payload
    except ValueError:
        pass
    return {}


def int_route_param(req: func.HttpRequest, name: str) -> Optional[int]:
    raw = str(req.route_params.get(name) or "").strip()
    try:
        return int(raw)
    except ValueError:
        return None


def page_param(req: func.HttpRequest) -> int:
    """Defaults to page 1; ``page=0`` asks for the whole list."""
    raw = req.params.get("page")
    try:
        return max(0, int(raw)) if raw else 1
    except ValueError:
        return 1
