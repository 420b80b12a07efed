"""Translate content graph errors into HTTP responses."""

from fastapi import HTTPException

from content_graph.errors import (
    ConflictError,
    ContentGraphError,
    CycleDetectedError,
    NotFoundError,
    ValidationError,
)


def http_error(exc: ContentGraphError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, (CycleDetectedError, ConflictError)):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=500, detail="Content graph operation failed.")
