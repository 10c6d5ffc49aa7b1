"""
Filter exceptions.

Typed exception hierarchy for the raster-to-TSPL filter. Every fatal
condition of a print job is one of these; the job driver turns them into
an ``ERROR:`` line on stderr and a non-zero exit status. Nothing is
retried: the first fatal condition ends the job.

Hierarchy:
    FilterError (base)
    ├── UsageError
    ├── FilterConfigError
    ├── DeviceOpenError
    ├── RasterError
    │   ├── RasterOpenError
    │   └── RasterReadError
    ├── UnsupportedModelError
    ├── OptionParseError
    └── ZeroPagesError

Example:
    >>> from tspl_filter.exceptions import FilterError
    >>> try:
    ...     run_job(argv, environ)
    ... except FilterError as e:
    ...     logger.error("%s", e)
"""

from __future__ import annotations

from typing import Any, Dict, Optional

__all__: list[str] = [
    "FilterError",
    "UsageError",
    "FilterConfigError",
    "DeviceOpenError",
    "RasterError",
    "RasterOpenError",
    "RasterReadError",
    "UnsupportedModelError",
    "OptionParseError",
    "ZeroPagesError",
]


# ==============================================================================
# BASE EXCEPTION
# ==============================================================================


class FilterError(Exception):
    """
    Base class for every fatal job condition.

    Attributes:
        message: Human-readable description, printed after ``ERROR:``.
        context: Extra key/value details for the diagnostic line.
    """

    def __init__(
        self,
        message: str,
        *,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({ctx_str})"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, context={self.context!r})"


# ==============================================================================
# JOB SETUP ERRORS
# ==============================================================================


class UsageError(FilterError):
    """Wrong number of command-line arguments. Raised before any I/O."""

    def __init__(self, program: str = "tspl-filter") -> None:
        super().__init__(f"{program} job-id user title copies options [file]")


class FilterConfigError(FilterError):
    """Required environment is missing, e.g. no PPD path."""

    pass


class DeviceOpenError(FilterError):
    """
    The device description (PPD) is missing or cannot be parsed.

    Attributes:
        line: 1-based line of the PPD where parsing stopped, 0 when the
              file could not be read at all.
    """

    def __init__(self, reason: str, *, line: int = 0, path: Optional[str] = None) -> None:
        if line:
            message = f"PPD load failed: line {line}: {reason}"
        else:
            message = f"PPD load failed: {reason}"
        super().__init__(message, context={"path": path} if path else None)
        self.reason = reason
        self.line = line
        self.path = path


# ==============================================================================
# RASTER ERRORS
# ==============================================================================


class RasterError(FilterError):
    """Base for raster stream failures."""

    pass


class RasterOpenError(RasterError):
    """The raster source could not be opened or has no valid sync word."""

    pass


class RasterReadError(RasterError):
    """A page header or pixel data could not be read or is malformed."""

    pass


# ==============================================================================
# CONFIGURATION / DEVICE ERRORS
# ==============================================================================


class UnsupportedModelError(FilterError):
    """
    The PPD names a printer model this filter does not drive.

    Only one model is implemented; there is no fallback.
    """

    def __init__(self, model_number: int, supported: Optional[list[int]] = None) -> None:
        super().__init__(
            f"model number {model_number} is not supported",
            context={"supported": ",".join(str(m) for m in supported)} if supported else None,
        )
        self.model_number = model_number
        self.supported = supported or []


class OptionParseError(FilterError):
    """
    An explicitly chosen option value failed to parse as its expected type.

    Attributes:
        option: PPD keyword of the option.
        value: The literal choice that failed to parse.
    """

    def __init__(self, option: str, value: str, reason: str) -> None:
        super().__init__(f"invalid value {value!r} for option {option}: {reason}")
        self.option = option
        self.value = value


class ZeroPagesError(FilterError):
    """The job finished without completing a single page."""

    def __init__(self) -> None:
        super().__init__("no pages were found.")
