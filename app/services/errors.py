"""
Service-layer errors. Routers stay thin: services raise these and app.main maps them
to HTTP responses in one place, so new error types only need a handler entry there.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> Any:
        return self.message


class ValidationError(ServiceError):
    """Malformed or missing input. Never retried; carries field-level detail."""
    status_code = 422

    def __init__(self, message: str, errors: list[dict[str, str]] | None = None):
        super().__init__(message)
        self.errors = errors or []

    @classmethod
    def from_pydantic(cls, exc: PydanticValidationError) -> "ValidationError":
        return cls("Invalid input", errors=field_errors(exc))

    def to_detail(self) -> Any:
        return {"message": self.message, "errors": self.errors}


class NotFoundError(ServiceError):
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(ServiceError):
    """Uniqueness violation (duplicate link, duplicate provider key). Caller must resolve."""
    status_code = 409


class PermissionDeniedError(ServiceError):
    status_code = 403


class StorageError(ServiceError):
    """Transport or transaction failure. Nothing partial is left behind, so callers may retry."""
    status_code = 500


def field_errors(exc: PydanticValidationError) -> list[dict[str, str]]:
    out = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
        msg = err.get("msg", "invalid value")
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        out.append({"field": loc or "__all__", "message": msg})
    return out


def describe_field_errors(errors: list[dict[str, str]]) -> str:
    """One-line summary used in bulk import row errors: 'email: value is not a valid email address; ...'."""
    parts = []
    for e in errors:
        field = e.get("field") or "__all__"
        parts.append(e["message"] if field == "__all__" else f"{field}: {e['message']}")
    return "; ".join(parts)


@contextmanager
def commit_or_rollback(db: Session, action: str):
    """Commit the caller's writes (domain rows and their audit entries) as one unit, or none of them.

    IntegrityError becomes ConflictError; any other SQLAlchemyError becomes StorageError.
    """
    try:
        yield
        db.commit()
    except ServiceError:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        logger.info("Constraint violation while trying to %s: %s", action, e.orig)
        raise ConflictError(f"Could not {action}: conflicts with an existing record") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Storage failure while trying to %s", action)
        raise StorageError(f"Could not {action}") from e
