"""
Approval Engine Exceptions

Each exception carries the HTTP status the API layer answers with.
"""


class ApprovalError(Exception):
    """Base error for approval engine."""
    status_code = 500


class NotFoundError(ApprovalError):
    """Flow, request, expense or user is missing."""
    status_code = 404


class NoApprovalFlowError(NotFoundError):
    """Company has no active flow with at least one step."""
    def __init__(self, company_id: int):
        self.company_id = company_id
        super().__init__(f"No approval flow configured for company {company_id}")


class ApprovalValidationError(ApprovalError):
    """Malformed flow definition, empty approver set or bad action."""
    status_code = 400

    def __init__(self, message: str, details: list = None):
        self.details = details or []
        super().__init__(message)


class InvalidStateError(ApprovalValidationError):
    """Request or expense is not in a valid state for this operation."""


class NotAuthorizedError(ApprovalError):
    """User is not entitled to decide this request."""
    status_code = 403


class ConflictError(ApprovalError):
    """A concurrent decision on the same expense won the race."""
    status_code = 409
