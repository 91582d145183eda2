"""Error taxonomy for geography loading, projection, and validation."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping


class ErrorKind(str, Enum):
    GEOGRAPHY_LOAD_ERROR = "GEOGRAPHY_LOAD_ERROR"
    GEOGRAPHY_PARSE_ERROR = "GEOGRAPHY_PARSE_ERROR"
    PROJECTION_ERROR = "PROJECTION_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    SECURITY_ERROR = "SECURITY_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    CONTEXT_ERROR = "CONTEXT_ERROR"


class GeographyError(Exception):
    """Base error carrying a kind, the geography involved, and debug details."""

    kind: ErrorKind = ErrorKind.CONFIGURATION_ERROR

    def __init__(
        self,
        message: str,
        *,
        geography: str | None = None,
        details: Mapping[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.geography = geography
        self.details: dict[str, Any] = dict(details or {})
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause
            self.details.setdefault("original_message", str(cause))
            self.details.setdefault("original_name", type(cause).__name__)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "geography": self.geography,
            "details": dict(self.details),
            "timestamp": self.timestamp,
        }


class GeographyLoadError(GeographyError):
    """Fetching geography data failed (transport or HTTP status)."""

    kind = ErrorKind.GEOGRAPHY_LOAD_ERROR


class GeographyParseError(GeographyError):
    """Geography payload is not valid TopoJSON/GeoJSON."""

    kind = ErrorKind.GEOGRAPHY_PARSE_ERROR


class ProjectionError(GeographyError):
    """Unknown projection name or unusable projection setup."""

    kind = ErrorKind.PROJECTION_ERROR


class ValidationError(GeographyError):
    """Input failed a shape, range, or type check."""

    kind = ErrorKind.VALIDATION_ERROR

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value


class SecurityError(GeographyError):
    """Input contains unsafe content (script, dangerous protocol, handler code)."""

    kind = ErrorKind.SECURITY_ERROR

    def __init__(self, message: str, *, operation: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.operation = operation


class ConfigurationError(GeographyError):
    kind = ErrorKind.CONFIGURATION_ERROR


class ContextError(GeographyError):
    """Map state accessed outside of its owning provider scope."""

    kind = ErrorKind.CONTEXT_ERROR


_ERROR_CLASSES: dict[ErrorKind, type[GeographyError]] = {
    ErrorKind.GEOGRAPHY_LOAD_ERROR: GeographyLoadError,
    ErrorKind.GEOGRAPHY_PARSE_ERROR: GeographyParseError,
    ErrorKind.PROJECTION_ERROR: ProjectionError,
    ErrorKind.VALIDATION_ERROR: ValidationError,
    ErrorKind.SECURITY_ERROR: SecurityError,
    ErrorKind.CONFIGURATION_ERROR: ConfigurationError,
    ErrorKind.CONTEXT_ERROR: ContextError,
}


def create_geography_error(
    kind: ErrorKind | str,
    message: str,
    geography: str | None = None,
    details: Mapping[str, Any] | None = None,
    cause: BaseException | None = None,
) -> GeographyError:
    """Build the error subclass matching `kind`."""
    resolved = ErrorKind(kind)
    return _ERROR_CLASSES[resolved](
        message,
        geography=geography,
        details=details,
        cause=cause,
    )


def create_validation_error(message: str, field: str, value: Any) -> ValidationError:
    return ValidationError(message, field=field, value=value)


def create_security_error(message: str, operation: str) -> SecurityError:
    return SecurityError(message, operation=operation)
