"""
Centralized error handling and sanitization.

Provides:
- The trading-cycle error taxonomy
- Error sanitization for production environments
- Consistent HTTP error construction for the API layer
"""

import logging
from enum import Enum
from typing import Any, Optional

from fastapi import HTTPException, status

from .config import get_settings

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standard error codes for the application"""

    # Authorization
    AUTHZ_MISSING_USER = "AUTHZ_MISSING_USER"
    AUTHZ_RESOURCE_NOT_FOUND = "AUTHZ_RESOURCE_NOT_FOUND"

    # Validation
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_STATE = "INVALID_STATE"

    # External services
    MARKET_DATA_ERROR = "MARKET_DATA_ERROR"
    NEWS_ERROR = "NEWS_ERROR"
    AI_SERVICE_ERROR = "AI_SERVICE_ERROR"
    EXECUTION_ERROR = "EXECUTION_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"

    # Trading cycle
    AGENT_NOT_FOUND = "AGENT_NOT_FOUND"
    NO_MARKET_DATA = "NO_MARKET_DATA"
    DECISION_PARSE_ERROR = "DECISION_PARSE_ERROR"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    STALE_WRITE = "STALE_WRITE"

    # General
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


class TradePilotError(Exception):
    """
    Base error for trading-cycle failures.

    Subclasses carry a machine-readable code and decide whether they count
    against an agent's consecutive-error budget.
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    counts_as_failure: bool = True

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class AgentNotFoundError(TradePilotError):
    """The agent record does not exist; nothing can be updated."""

    code = ErrorCode.AGENT_NOT_FOUND
    counts_as_failure = False


class NoMarketDataError(TradePilotError):
    """No quotes were available for the agent's symbol universe."""

    code = ErrorCode.NO_MARKET_DATA
    counts_as_failure = False


class DecisionParseError(TradePilotError):
    """Decision service reply failed schema or range validation"""

    code = ErrorCode.DECISION_PARSE_ERROR

    def __init__(self, message: str, raw_response: str = ""):
        self.raw_response = raw_response
        super().__init__(message, {"raw_response": raw_response[:500]})


class InsufficientBalanceError(TradePilotError):
    """Order could not be sized within the available balance or position."""

    code = ErrorCode.INSUFFICIENT_BALANCE
    counts_as_failure = False


class StaleWriteError(TradePilotError):
    """The store rejected a write made against an outdated agent version."""

    code = ErrorCode.STALE_WRITE


class GatewayError(TradePilotError):
    """An external collaborator failed."""

    code = ErrorCode.SERVICE_UNAVAILABLE


class MarketDataError(GatewayError):
    code = ErrorCode.MARKET_DATA_ERROR


class NewsError(GatewayError):
    code = ErrorCode.NEWS_ERROR


class DecisionServiceError(GatewayError):
    code = ErrorCode.AI_SERVICE_ERROR


class ExecutionError(GatewayError):
    """Broker rejected or failed to fill an order"""

    code = ErrorCode.EXECUTION_ERROR

    def __init__(
        self,
        message: str,
        broker_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.broker_code = broker_code
        super().__init__(message, details)


class PersistenceError(GatewayError):
    code = ErrorCode.DATABASE_ERROR


def sanitize_error_message(
    error: Exception,
    user_message: str = "An unexpected error occurred",
    include_type: bool = False,
) -> str:
    """
    Sanitize an error message for client response.

    In production: Returns generic user message
    In development: Returns detailed error information
    """
    settings = get_settings()

    if settings.environment == "production":
        return user_message

    error_str = str(error)
    if include_type:
        return f"{type(error).__name__}: {error_str}"
    return error_str


def create_http_exception(
    code: ErrorCode,
    user_message: str,
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
    internal_error: Optional[Exception] = None,
    log_error: bool = True,
) -> HTTPException:
    """
    Create an HTTPException with sanitized message.

    Args:
        code: Error code for identification
        user_message: User-friendly message (shown in production)
        status_code: HTTP status code
        internal_error: Optional internal exception for logging
        log_error: Whether to log the error

    Returns:
        HTTPException ready to raise
    """
    settings = get_settings()

    if log_error and internal_error:
        logger.error(
            f"[{code.value}] {user_message}: {internal_error}",
            exc_info=True,
        )
    elif log_error:
        logger.error(f"[{code.value}] {user_message}")

    if settings.environment == "production" or internal_error is None:
        message = user_message
    else:
        message = f"{user_message}: {internal_error}"

    return HTTPException(
        status_code=status_code,
        detail={"code": code.value, "message": message},
    )


# ==================== Pre-built HTTP Exceptions ====================


def agent_not_found_error(agent_id: Any) -> HTTPException:
    return create_http_exception(
        code=ErrorCode.AGENT_NOT_FOUND,
        user_message=f"Agent {agent_id} not found",
        status_code=status.HTTP_404_NOT_FOUND,
        log_error=False,
    )


def invalid_state_error(message: str) -> HTTPException:
    return create_http_exception(
        code=ErrorCode.INVALID_STATE,
        user_message=message,
        status_code=status.HTTP_409_CONFLICT,
        log_error=False,
    )


def missing_user_error() -> HTTPException:
    return create_http_exception(
        code=ErrorCode.AUTHZ_MISSING_USER,
        user_message="X-User-Id header is required",
        status_code=status.HTTP_401_UNAUTHORIZED,
        log_error=False,
    )


def internal_error(error: Exception, context: str = "") -> HTTPException:
    """Create standardized internal error"""
    ctx = f" ({context})" if context else ""
    return create_http_exception(
        code=ErrorCode.INTERNAL_ERROR,
        user_message=f"An internal error occurred{ctx}. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        internal_error=error,
    )
