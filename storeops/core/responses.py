"""Standardized API response helpers.

Every endpoint answers with the same envelope:
    success: {"success": true, "data": ...}
    failure: {"success": false, "message": "..."}
"""

from typing import Any

from fastapi.responses import JSONResponse


def success_response(data: Any = None) -> dict:
    """Wrap a payload in the success envelope."""
    return {"success": True, "data": data}


def error_response(message: str, status_code: int = 400) -> JSONResponse:
    """Build an error response in the standard envelope."""
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
    )
