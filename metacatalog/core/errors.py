"""Error taxonomy shared by the change engine, the CSV pipeline and the job runner."""

from __future__ import annotations


class CatalogError(Exception):
    """Base class; ``code`` and ``status`` drive the JSON error responses."""

    code = "catalog_error"
    status = 400


class FieldValidationError(CatalogError):
    """Field-level problem with a caller payload (unknown field, bad value)."""

    code = "validation_error"
    status = 400


class NotFound(CatalogError):
    code = "not_found"
    status = 404


class Forbidden(CatalogError):
    code = "forbidden"
    status = 403


class Conflict(CatalogError):
    """Surfaced once optimistic commits kept failing, or on duplicate creation."""

    code = "conflict"
    status = 409


class VersionConflict(Conflict):
    """Raised by persistence when the stored version moved under a commit; retried."""

    code = "version_conflict"


class PipelineAbort(CatalogError):
    """A CSV payload was rejected before any row could be evaluated."""

    code = "import_aborted"
    status = 400


class InternalFailure(CatalogError):
    code = "internal_failure"
    status = 500
