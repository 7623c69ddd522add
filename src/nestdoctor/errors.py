"""Exception hierarchy shared by the scanner, the CLI and the scan worker."""

from __future__ import annotations


class NestDoctorError(Exception):
    """Base class for all errors raised by nestdoctor."""


class ConfigurationError(NestDoctorError):
    """Raised when configuration, globs, thresholds or weights are malformed.

    Always raised before any file is scanned.
    """


class ScanError(NestDoctorError):
    """Raised when the target source tree cannot be collected or parsed."""


class ValidationError(NestDoctorError):
    """Raised when a caller-supplied parameter is invalid (path, min score)."""
