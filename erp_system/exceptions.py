"""
Domain exceptions for the Steel ERP services.

Services raise these instead of returning error tuples. Every exception
carries a stable machine-readable ``code`` and the HTTP ``status_code`` the
API layer answers with, so views translate them without parsing messages:

    try:
        order = SalesService.create_sales_order(...)
    except ERPError as e:
        return error_response(e)

Hierarchy:

    ERPError
    +-- ValidationFailed        400  VALIDATION_FAILED
    +-- BranchAccessDenied      403  BRANCH_ACCESS_DENIED
    +-- ActionNotAllowed        403  ACTION_NOT_ALLOWED
    +-- RecordNotFound          404  NOT_FOUND
    +-- ConflictError           409  CONFLICT
        +-- InsufficientStock   409  INSUFFICIENT_STOCK
        +-- WorkflowError       409  INVALID_STATE
"""


class ERPError(Exception):
    """Base class for all domain errors."""

    code: str = "ERP_ERROR"
    status_code: int = 400

    def __init__(self, message: str, detail=None, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail
        if code:
            self.code = code

    def as_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.detail is not None:
            body["detail"] = self.detail
        return body


class ValidationFailed(ERPError):
    """Input is missing, malformed or outside its allowed range."""

    code = "VALIDATION_FAILED"
    status_code = 400


class BranchAccessDenied(ERPError):
    """Caller tried to read or write another branch's data."""

    code = "BRANCH_ACCESS_DENIED"
    status_code = 403


class RecordNotFound(ERPError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(ERPError):
    """Request conflicts with the current state of the data."""

    code = "CONFLICT"
    status_code = 409


class InsufficientStock(ConflictError):
    """Not enough available stock to reserve, issue or transfer."""

    code = "INSUFFICIENT_STOCK"

    def __init__(self, message: str, shortages=None):
        super().__init__(message, detail=shortages)
        self.shortages = shortages or []


class WorkflowError(ConflictError):
    """Status transition not allowed from the record's current state."""

    code = "INVALID_STATE"

    def __init__(self, message: str, current_status: str | None = None):
        super().__init__(message, detail={"current_status": current_status} if current_status else None)
        self.current_status = current_status


class ActionNotAllowed(ERPError):
    """Caller's roles do not allow this business action (e.g. approving a discount level)."""

    code = "ACTION_NOT_ALLOWED"
    status_code = 403
