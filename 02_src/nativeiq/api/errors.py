"""Error envelope shared by the HTTP routes."""

from fastapi.responses import JSONResponse


def error_response(status: int, code: str, message: str, details: dict | None = None) -> JSONResponse:
    """`{"error": {"code", "message", "details"}}` with the given status."""
    return JSONResponse(
        status_code=status,
        content={"error": {"code": code, "message": message, "details": details or {}}},
    )
