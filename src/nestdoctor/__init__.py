"""nestdoctor: static health checks and scoring for NestJS applications."""

from __future__ import annotations

__version__ = "0.4.0"

from nestdoctor.api import diagnose
from nestdoctor.errors import (
    ConfigurationError,
    NestDoctorError,
    ScanError,
    ValidationError,
)
from nestdoctor.models import (
    Diagnostic,
    DiagnoseResult,
    DiagnoseSummary,
    ProjectInfo,
    RuleErrorInfo,
    Score,
)
from nestdoctor.rules.base import Rule, RuleMeta, rule

__all__ = [
    "ConfigurationError",
    "DiagnoseResult",
    "DiagnoseSummary",
    "Diagnostic",
    "NestDoctorError",
    "ProjectInfo",
    "Rule",
    "RuleErrorInfo",
    "RuleMeta",
    "ScanError",
    "Score",
    "ValidationError",
    "__version__",
    "diagnose",
    "rule",
]
