"""Programmatic entry point."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from nestdoctor.core.config import Config, config_from_mapping
from nestdoctor.core.scanner import scan
from nestdoctor.errors import ValidationError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from nestdoctor.models import DiagnoseResult


def validate_target(path: str | Path) -> Path:
    """Return *path* as a resolved directory.

    Raises
    ------
    ValidationError
        If *path* is empty, missing, or not a directory.
    """
    if path is None or not str(path).strip():
        msg = "Path must be a non-empty string"
        raise ValidationError(msg)
    target = Path(path)
    if not target.exists():
        msg = f"Path does not exist: {target}"
        raise ValidationError(msg)
    if not target.is_dir():
        msg = f"Path is not a directory: {target}"
        raise ValidationError(msg)
    return target.resolve()


def diagnose(
    path: str | Path,
    config: Config | Mapping[str, Any] | None = None,
) -> DiagnoseResult:
    """Scan the NestJS project at *path* and return its diagnostics and score.

    Parameters
    ----------
    path:
        Project root directory.
    config:
        A :class:`~nestdoctor.core.config.Config`, a raw config mapping
        (merged over the defaults), or ``None`` to load the project's own
        config file.

    Raises
    ------
    ValidationError
        If *path* is not an existing directory.
    ConfigurationError
        If the configuration is invalid.
    ScanError
        If the project cannot be read.
    """
    target = validate_target(path)
    if config is not None and not isinstance(config, Config):
        config = config_from_mapping(config)
    return scan(target, config=config)
