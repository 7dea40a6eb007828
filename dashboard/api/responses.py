"""
Studio Ops Hub — Result → HTTP translation
============================================
Service operations return OperationResult; routes hand them to
``result_response`` which returns the JSON body on success and raises an
HTTPException carrying the mapped status code on failure.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException

from scripts.lib.results import OperationResult

STATUS_BY_CODE = {
    "UNAUTHORIZED": 403,
    "VALIDATION_ERROR": 400,
    "NOT_FOUND": 404,
    "INTEGRITY_VIOLATION": 409,
    "NOT_CONFIGURED": 424,
    "UPSTREAM_FETCH_FAILED": 502,
}


def status_for(code: Optional[str]) -> int:
    return STATUS_BY_CODE.get(code or "", 500)


def result_response(result: OperationResult) -> Dict[str, Any]:
    if result.success:
        return result.model_dump(mode="json")
    raise HTTPException(
        status_code=status_for(result.code),
        detail={"error": result.message, "code": result.code, "errors": result.errors},
    )
