"""
Typed operation results and the operation boundary.

Public service operations never raise to their caller. They return an
``OperationResult`` (or a subclass carrying a payload); ``operation_boundary``
turns any ``HubError`` or unexpected exception into a failed result.

Usage:
    from scripts.lib.results import OperationResult, operation_boundary

    class SyncResult(OperationResult):
        projects_synced: int = 0

    @operation_boundary(SyncResult, "Monday sync")
    def sync_all(...) -> SyncResult: ...
"""
from __future__ import annotations

import functools
import inspect
from typing import Callable, List, Optional, Type

from pydantic import BaseModel, Field

from scripts.lib.errors import HubError
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

INTERNAL_ERROR = "INTERNAL_ERROR"


class OperationResult(BaseModel):
    """Success flag, optional message, error code and itemized errors."""
    success: bool = True
    message: Optional[str] = None
    code: Optional[str] = None
    errors: List[str] = Field(default_factory=list)

    @classmethod
    def failure(cls, message: str, code: str = INTERNAL_ERROR, **kwargs):
        return cls(success=False, message=message, code=code, errors=[message], **kwargs)


def _to_failure(result_cls: Type[OperationResult], action: str, exc: Exception):
    if isinstance(exc, HubError):
        logger.warning("%s failed: %s", action, exc)
        return result_cls.failure(exc.message, code=exc.code)
    logger.error("%s failed unexpectedly: %s", action, exc, exc_info=True)
    return result_cls.failure(str(exc) or exc.__class__.__name__)


def operation_boundary(result_cls: Type[OperationResult] = OperationResult,
                       action: str = None) -> Callable:
    """
    Decorator that converts raised errors into a failed ``result_cls``.

    Works for both plain and async functions.
    """
    def decorator(func: Callable) -> Callable:
        name = action or func.__name__

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    return _to_failure(result_cls, name, e)
            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                return _to_failure(result_cls, name, e)
        return wrapper

    return decorator
