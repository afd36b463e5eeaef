from __future__ import annotations

from typing import Any

from fastapi import HTTPException


def not_found(message: str, **details: Any) -> HTTPException:
    return HTTPException(status_code=404, detail={"error": "not_found", "message": message, "details": details})


def invalid_operation(message: str, **details: Any) -> HTTPException:
    return HTTPException(
        status_code=400, detail={"error": "invalid_operation", "message": message, "details": details}
    )


def conflict(message: str, **details: Any) -> HTTPException:
    return HTTPException(status_code=409, detail={"error": "conflict", "message": message, "details": details})


def provider_failed(message: str, **details: Any) -> HTTPException:
    return HTTPException(status_code=502, detail={"error": "provider_error", "message": message, "details": details})
