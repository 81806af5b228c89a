# errors.py — Typed datastore errors with PKP-DOMAIN-NUMBER codes
from contextlib import contextmanager
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError

# ============================================================
# ERROR CODE CATALOGUE
# PKP-{DOMAIN}-{NUMBER}
# Domains: SPEC, DB, SYS
# ============================================================

ERROR_CATALOGUE = {
    "PKP-SPEC-001": {"message": "Invalid or unresolvable spec document", "severity": "warning"},
    "PKP-DB-001": {"message": "Datastore backend failure", "severity": "error"},
    "PKP-DB-002": {"message": "Record not found", "severity": "info"},
    "PKP-DB-003": {"message": "Unique constraint violation", "severity": "warning"},
    "PKP-SYS-003": {"message": "Deadline exceeded", "severity": "warning"},
}


class DatastoreError(Exception):
    code = "PKP-DB-001"

    @property
    def severity(self) -> str:
        return ERROR_CATALOGUE[self.code]["severity"]


class ValidationError(DatastoreError):
    """Bad input: empty/duplicate names or references to unknown entities"""
    code = "PKP-SPEC-001"

    def __init__(self, message: str, name: Optional[str] = None):
        super().__init__(message)
        self.name = name


class NotFound(DatastoreError):
    """The addressed identifier or name does not exist"""
    code = "PKP-DB-002"

    def __init__(self, resource: str, name: Optional[str] = None, id: Optional[Union[int, str]] = None):
        self.resource = resource
        self.name = name
        self.id = id
        if name is not None:
            message = f"{resource} {name!r} was not found in the datastore"
        elif id is not None:
            message = f"{resource} {id} was not found in the datastore"
        else:
            message = f"{resource} was not found in the datastore"
        super().__init__(message)


class AlreadyExists(DatastoreError):
    code = "PKP-DB-003"

    def __init__(self, resource: str, name: Optional[str] = None):
        self.resource = resource
        self.name = name
        super().__init__(f"{resource} {name!r} already exists")


class BackendError(DatastoreError):
    code = "PKP-DB-001"

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        message = operation if cause is None else f"{operation}: {cause}"
        super().__init__(message)


class DeadlineExceeded(BackendError):
    code = "PKP-SYS-003"


@contextmanager
def wrap_backend_errors(operation: str):
    """Re-raise unclassified SQLAlchemy failures as BackendError for `operation`"""
    try:
        yield
    except SQLAlchemyError as e:
        raise BackendError(operation, e) from e
