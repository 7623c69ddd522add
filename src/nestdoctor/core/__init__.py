"""Core domain: configuration, file collection, diagnostic filtering, scan pipeline.

Note: ``nestdoctor.core.scanner`` is not re-exported here because it imports
the rules and engine packages; import it directly::

    from nestdoctor.core.scanner import scan
"""

from nestdoctor.core.config import (
    DEFAULT_EXCLUDE,
    DEFAULT_INCLUDE,
    Config,
    IgnoreConfig,
    RuleOverride,
    Thresholds,
    config_from_mapping,
    load_config,
)
from nestdoctor.core.files import collect_files
from nestdoctor.core.filtering import compile_glob, filter_diagnostics

__all__ = [
    "DEFAULT_EXCLUDE",
    "DEFAULT_INCLUDE",
    "Config",
    "IgnoreConfig",
    "RuleOverride",
    "Thresholds",
    "collect_files",
    "compile_glob",
    "config_from_mapping",
    "filter_diagnostics",
    "load_config",
]
