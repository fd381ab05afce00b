"""Typed errors raised by the stocktake engine.

Every error carries an HTTP ``status_code`` and a machine-readable ``code`` so
the API layer can translate it without parsing messages:

    InventoryCheckError (base)
    +-- ValidationError        400  missing field, missing reasons, empty reject reason
    +-- InvalidStateError      400  operation attempted outside its source status
    +-- PermissionDeniedError  400  delete by someone other than the creator
    +-- NotFoundError          404  check or item absent
    +-- ConflictError          409  concurrent edit / version mismatch
    +-- DependencyError        503  product catalog unreachable or write failed
"""

from typing import Any, Dict, List, Optional


class InventoryCheckError(Exception):
    """Base class for all stocktake engine errors."""

    status_code: int = 400
    code: str = "INVENTORY_CHECK_ERROR"

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context: Dict[str, Any] = context
        super().__init__(message)


class ValidationError(InventoryCheckError):
    """A required field is missing or a submission rule is violated."""

    code = "VALIDATION_ERROR"


class MissingReasonsError(ValidationError):
    """Raised by submit when discrepant items have no reason."""

    code = "MISSING_REASONS"

    def __init__(self, missing_product_ids: List[int]):
        self.missing_product_ids = list(missing_product_ids)
        self.missing_count = len(self.missing_product_ids)
        super().__init__(
            f"{self.missing_count} discrepant item(s) still need a reason before submitting",
            missing_count=self.missing_count,
            product_ids=self.missing_product_ids,
        )


class InvalidStateError(InventoryCheckError):
    """The check is not in the status the operation requires."""

    code = "INVALID_STATE"

    def __init__(self, message: str, current_status: Optional[str] = None, **context: Any):
        self.current_status = current_status
        super().__init__(message, current_status=current_status, **context)


class PermissionDeniedError(InventoryCheckError):
    """The requester may not perform the operation on this check."""

    code = "PERMISSION_DENIED"


class NotFoundError(InventoryCheckError):
    """Check or item does not exist."""

    status_code = 404
    code = "NOT_FOUND"


class ConflictError(InventoryCheckError):
    """The check was modified by someone else since it was read."""

    status_code = 409
    code = "CONFLICT"


class DependencyError(InventoryCheckError):
    """The product catalog could not be read or written.

    ``partial`` is True when some catalog writes had already been issued
    before the failure; ``issued_product_ids`` lists them. Those writes were
    rolled back with the surrounding transaction, so they do not describe
    catalog state. The check keeps its ``submitted`` status and approving
    again is safe.
    """

    status_code = 503
    code = "DEPENDENCY_ERROR"

    def __init__(
        self,
        message: str,
        partial: bool = False,
        issued_product_ids: Optional[List[int]] = None,
        **context: Any,
    ):
        self.partial = partial
        self.issued_product_ids = list(issued_product_ids or [])
        super().__init__(
            message,
            partial=partial,
            issued_product_ids=self.issued_product_ids,
            **context,
        )
