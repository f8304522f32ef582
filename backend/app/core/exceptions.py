"""
Checkout error taxonomy and its HTTP mapping.

Policy rejections (unresolved, not found, prescription, stock) and commit
failures are NOT raised: they are terminal RunRecords. Only the guards below
are exceptions, and the orchestrator turns every one of them into a
CheckoutNotice before it reaches the API layer.
"""
from enum import Enum
import logging

from fastapi import HTTPException, status

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    UNRESOLVED_INTENT = "UNRESOLVED_INTENT"
    PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
    PRESCRIPTION_REQUIRED = "PRESCRIPTION_REQUIRED"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    SESSION_ALREADY_ACTIVE = "SESSION_ALREADY_ACTIVE"
    INVALID_STAGE = "INVALID_STAGE"
    INVALID_EMAIL = "INVALID_EMAIL"
    COMMIT_FAILED = "COMMIT_FAILED"
    COLLABORATOR_UNAVAILABLE = "COLLABORATOR_UNAVAILABLE"
    # Raised before intent resolution: greetings and non-order chatter
    NOT_AN_ORDER = "NOT_AN_ORDER"
    SESSION_EXPIRED = "SESSION_EXPIRED"


class CheckoutError(Exception):
    """Base for guard failures. Session state is never modified when raised."""

    code: ErrorCode = ErrorCode.INVALID_STAGE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SessionAlreadyActive(CheckoutError):
    code = ErrorCode.SESSION_ALREADY_ACTIVE

    def __init__(self, message: str = "Please complete or cancel the current checkout before creating a new order."):
        super().__init__(message)


class InvalidStage(CheckoutError):
    code = ErrorCode.INVALID_STAGE


class InvalidEmail(CheckoutError):
    code = ErrorCode.INVALID_EMAIL

    def __init__(self, message: str = "Please enter a valid email address to complete payment."):
        super().__init__(message)


class CollaboratorUnavailable(CheckoutError):
    """Catalog, policy service, commit or transcription call failed."""

    code = ErrorCode.COLLABORATOR_UNAVAILABLE

    def __init__(self, collaborator: str, reason: str):
        super().__init__(f"{collaborator} unavailable: {reason}")
        self.collaborator = collaborator
        self.reason = reason


class BusinessError:
    """HTTP exceptions with safe messages. Internal details go to the log only."""

    @staticmethod
    def bad_request(code: ErrorCode, message: str) -> HTTPException:
        logger.info(f"Bad request: {code.value} - {message}")
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": code.value, "message": message},
        )

    @staticmethod
    def conflict(code: ErrorCode, message: str) -> HTTPException:
        logger.info(f"Conflict: {code.value} - {message}")
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": code.value, "message": message},
        )

    @staticmethod
    def not_found(resource: str = "Resource") -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": ErrorCode.PRODUCT_NOT_FOUND.value, "message": f"{resource} not found"},
        )

    @staticmethod
    def service_unavailable(message: str) -> HTTPException:
        """
        503 when an external collaborator failed.

        The collaborator's own error text stays in the log; the caller only
        learns which step could not run.
        """
        logger.warning(f"Collaborator unavailable: {message}")
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "code": ErrorCode.COLLABORATOR_UNAVAILABLE.value,
                "message": "A required service is temporarily unavailable. Please try again.",
            },
        )

    @staticmethod
    def from_notice(code: ErrorCode, message: str) -> HTTPException:
        """Map a CheckoutNotice code onto the matching HTTP error."""
        if code == ErrorCode.SESSION_ALREADY_ACTIVE:
            return BusinessError.conflict(code, message)
        if code == ErrorCode.COLLABORATOR_UNAVAILABLE:
            return BusinessError.service_unavailable(message)
        return BusinessError.bad_request(code, message)
