"""Domain Errors - Centralized Exception Hierarchy"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base domain error - all errors extend this"""

    error_code: str = "DOMAIN_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to a caller-facing dict"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# Authorization Errors
class ForbiddenError(DomainError):
    """Role-gated operation denied"""
    error_code = "FORBIDDEN"


class UnauthorizedApproverError(ForbiddenError):
    """Principal is not an eligible approver for the step"""
    error_code = "UNAUTHORIZED_APPROVER"


# Validation Errors
class ValidationError(DomainError):
    """Malformed template, step, condition or context"""
    error_code = "VALIDATION_ERROR"

    @classmethod
    def from_pydantic(cls, exc: Any, message: str = "Validation failed") -> "ValidationError":
        """Wrap a pydantic ValidationError, keeping its error list"""
        return cls(message, details={"errors": exc.errors(include_url=False, include_context=False)})


# Not Found Errors
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"


class TemplateNotFoundError(NotFoundError):
    """Template not found"""
    error_code = "TEMPLATE_NOT_FOUND"


class InstanceNotFoundError(NotFoundError):
    """Approval instance not found"""
    error_code = "INSTANCE_NOT_FOUND"


class StepNotFoundError(NotFoundError):
    """Step number not part of the instance"""
    error_code = "STEP_NOT_FOUND"


class DelegateNotFoundError(NotFoundError):
    """Delegation record not found"""
    error_code = "DELEGATE_NOT_FOUND"


# Conflict Errors
class ConflictError(DomainError):
    """Action conflicts with current state"""
    error_code = "CONFLICT"


class ConcurrentModificationError(ConflictError):
    """Lock wait exhausted or optimistic version mismatch - caller may retry"""
    error_code = "CONCURRENT_MODIFICATION"


class InvalidStateError(ConflictError):
    """Action not valid for current state"""
    error_code = "INVALID_STATE"


class StepAlreadyResolvedError(ConflictError):
    """Decision submitted on a step that is already terminal"""
    error_code = "STEP_ALREADY_RESOLVED"


class StepNotActiveError(ConflictError):
    """Decision targets a step that is not the active one"""
    error_code = "STEP_NOT_ACTIVE"


# Engine Errors
class EngineError(DomainError):
    """Workflow engine error"""
    error_code = "ENGINE_ERROR"


class NoEligibleApproversError(EngineError):
    """A non-auto-approve step resolved to an empty approver pool"""
    error_code = "NO_ELIGIBLE_APPROVERS"


class NoApplicableStepsError(EngineError):
    """Every step of the template was filtered out by its conditions"""
    error_code = "NO_APPLICABLE_STEPS"


class InternalError(DomainError):
    """Unexpected collaborator failure"""
    error_code = "INTERNAL_ERROR"
