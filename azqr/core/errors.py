"""Scan error taxonomy and the shared skip classifier.

Every failure raised while building a scan context, initialising a scanner or
listing resources is classified exactly once by the runner through
:func:`classify_error`. Skippable kinds degrade the affected unit of work to an
empty result; every other kind is recorded as a failure for that unit only.
"""

import asyncio
import logging
import re
from enum import Enum
from typing import Any

from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceNotFoundError,
    ServiceRequestError,
    ServiceResponseError,
)

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Classification of a scan failure."""

    CANCELLED = "cancelled"
    CONTEXT_BUILD = "context_build"
    CONFIGURATION = "configuration"
    PERMISSION = "permission"
    NOT_FOUND = "not_found"
    NOT_AVAILABLE = "not_available"
    TRANSIENT = "transient"
    UNKNOWN = "unknown"


SKIPPABLE_KINDS = frozenset({
    ErrorKind.PERMISSION,
    ErrorKind.NOT_FOUND,
    ErrorKind.NOT_AVAILABLE,
})

PERMISSION_ERROR_CODES = frozenset({
    "authorizationfailed",
    "forbidden",
    "linkedauthorizationfailed",
    "invalidauthenticationtokentenant",
})

NOT_FOUND_ERROR_CODES = frozenset({
    "resourcegroupnotfound",
    "resourcenotfound",
    "subscriptionnotfound",
})

NOT_AVAILABLE_ERROR_CODES = frozenset({
    "missingsubscriptionregistration",
    "noregisteredproviderfound",
    "featurenotsupported",
    "locationnotavailableforresourcetype",
    "subscriptionnotregistered",
    "disallowedprovider",
})

TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

_ERROR_CODE_PATTERN = re.compile(r"[A-Za-z]+")


class ScanError(Exception):
    """Base exception for scan failures."""

    def __init__(
        self,
        message: str,
        error_code: str = "scan_error",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class TransientAPIError(ScanError):
    """Throttling, timeouts and other retryable service faults."""


class ScanPermissionError(ScanError):
    """Authorization was denied for a scope or a settings listing."""


class ConfigurationError(ScanError):
    """Bad credentials, invalid scope or a scanner that cannot be initialised."""


class RegistrationError(ConfigurationError):
    """A scanner or rule table was rejected by the registry."""


class ContextBuildError(ScanError):
    """The scan context for a subscription could not be built."""

    def __init__(
        self,
        message: str,
        subscription_id: str,
        cause_kind: ErrorKind = ErrorKind.UNKNOWN,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, error_code="context_build_failed", details=details)
        self.subscription_id = subscription_id
        self.cause_kind = cause_kind


class ScanCancelledError(ScanError):
    """The run was cancelled or exceeded its deadline."""

    def __init__(self, message: str = "Scan cancelled"):
        super().__init__(message, error_code="scan_cancelled")


def _extract_error_codes(error: Exception) -> set[str]:
    """Collect candidate ARM error codes from an exception.

    The OData error body is preferred; the message text is searched as a
    fallback because not every SDK operation attaches a parsed body.
    """
    codes: set[str] = set()

    odata_error = getattr(error, "error", None)
    code = getattr(odata_error, "code", None)
    if code:
        codes.add(str(code).lower())

    explicit = getattr(error, "error_code", None)
    if isinstance(explicit, str) and explicit:
        codes.add(explicit.lower())

    for token in _ERROR_CODE_PATTERN.findall(str(error)):
        codes.add(token.lower())

    return codes


def classify_error(error: BaseException) -> ErrorKind:
    """Classify an exception raised while scanning.

    Args:
        error: The exception raised by a context build, init or scan call

    Returns:
        The ErrorKind of the first matching entry in the classification table
    """
    if isinstance(error, (ScanCancelledError, asyncio.CancelledError)):
        return ErrorKind.CANCELLED

    if isinstance(error, ContextBuildError):
        return ErrorKind.CONTEXT_BUILD

    if isinstance(error, (ConfigurationError, ClientAuthenticationError)):
        return ErrorKind.CONFIGURATION

    if isinstance(error, ScanPermissionError):
        return ErrorKind.PERMISSION

    if isinstance(error, TransientAPIError):
        return ErrorKind.TRANSIENT

    if not isinstance(error, Exception):
        return ErrorKind.UNKNOWN

    codes = _extract_error_codes(error)
    status_code = getattr(error, "status_code", None)

    if isinstance(error, HttpResponseError):
        if status_code == 403 or codes & PERMISSION_ERROR_CODES:
            return ErrorKind.PERMISSION
        if (
            isinstance(error, ResourceNotFoundError)
            or status_code == 404
            or codes & NOT_FOUND_ERROR_CODES
        ):
            return ErrorKind.NOT_FOUND
        if codes & NOT_AVAILABLE_ERROR_CODES:
            return ErrorKind.NOT_AVAILABLE
        if status_code in TRANSIENT_STATUS_CODES:
            return ErrorKind.TRANSIENT
        return ErrorKind.UNKNOWN

    if isinstance(
        error,
        (ServiceRequestError, ServiceResponseError, TimeoutError, ConnectionError),
    ):
        return ErrorKind.TRANSIENT

    return ErrorKind.UNKNOWN


def should_skip_error(error: BaseException) -> bool:
    """Check whether an error is a benign absence or permission gap."""
    return classify_error(error) in SKIPPABLE_KINDS


def sanitize_error_message(error: BaseException) -> str:
    """Return an error message safe to place in a report.

    Messages mentioning secrets are redacted entirely.
    """
    error_msg = str(error)
    sensitive_patterns = [
        "password",
        "secret",
        "token",
        "credential",
        "connectionstring",
    ]

    for pattern in sensitive_patterns:
        if pattern in error_msg.lower():
            return f"[Redacted {pattern} found in error message]"

    return error_msg
