"""Project configuration: discovery, merging with defaults, and validation."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import yaml

from nestdoctor.core.filtering import compile_glob
from nestdoctor.errors import ConfigurationError
from nestdoctor.models import CATEGORIES, SEVERITIES
from nestdoctor.scoring import ScoreWeights

if TYPE_CHECKING:
    from collections.abc import Mapping

    from nestdoctor.models import Severity

logger = logging.getLogger(__name__)

# Searched in this order; the first existing file wins.
CONFIG_FILENAMES: tuple[str, ...] = (
    "nestdoctor.yml",
    ".nestdoctor.yml",
    "nestdoctor.config.json",
    ".nestdoctor.json",
)
PACKAGE_JSON_KEY = "nestdoctor"

DEFAULT_INCLUDE: tuple[str, ...] = ("**/*.ts",)

DEFAULT_EXCLUDE: tuple[str, ...] = (
    "node_modules/**",
    "dist/**",
    "build/**",
    "coverage/**",
    "**/*.spec.ts",
    "**/*.test.ts",
    "**/*.e2e-spec.ts",
    "**/*.e2e-test.ts",
    "**/*.d.ts",
    "**/test/**",
    "**/tests/**",
    "**/__tests__/**",
    "**/__mocks__/**",
    "**/__fixtures__/**",
    "**/mock/**",
    "**/mocks/**",
    "**/*.mock.ts",
    "**/seeder/**",
    "**/seeders/**",
    "**/*.seed.ts",
    "**/*.seeder.ts",
)

_KNOWN_KEYS = frozenset(
    {
        "include",
        "exclude",
        "ignore",
        "rules",
        "categories",
        "thresholds",
        "custom_rules_dir",
        "min_score",
        "scoring",
    }
)


# ---------------------------------------------------------------------------
# Data structures (all frozen)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IgnoreConfig:
    """Rule ids and file globs whose diagnostics are dropped after a run."""

    rules: tuple[str, ...] = ()
    files: tuple[str, ...] = ()


@dataclass(frozen=True)
class RuleOverride:
    """Per-rule switch and optional severity override."""

    enabled: bool = True
    severity: Severity | None = None


@dataclass(frozen=True)
class Thresholds:
    """Limits used by the size-based architecture rules."""

    god_module_providers: int = 10
    god_module_imports: int = 15
    god_service_methods: int = 10
    god_service_deps: int = 8


@dataclass(frozen=True)
class Config:
    """Resolved configuration for one scan."""

    include: tuple[str, ...] = DEFAULT_INCLUDE
    exclude: tuple[str, ...] = DEFAULT_EXCLUDE
    ignore: IgnoreConfig = field(default_factory=IgnoreConfig)
    rules: Mapping[str, RuleOverride] = field(default_factory=lambda: MappingProxyType({}))
    categories: Mapping[str, bool] = field(default_factory=lambda: MappingProxyType({}))
    thresholds: Thresholds = field(default_factory=Thresholds)
    custom_rules_dir: str | None = None
    min_score: int | None = None
    scoring: ScoreWeights = field(default_factory=ScoreWeights)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _string_list(value: Any, key: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        msg = f"'{key}' must be a list of strings"
        raise ConfigurationError(msg)
    return tuple(value)


def _glob_list(value: Any, key: str) -> tuple[str, ...]:
    patterns = _string_list(value, key)
    for pattern in patterns:
        compile_glob(pattern)
    return patterns


def _parse_ignore(value: Any) -> IgnoreConfig:
    if value is None:
        return IgnoreConfig()
    if not isinstance(value, dict):
        msg = "'ignore' must be a mapping with 'rules' and/or 'files'"
        raise ConfigurationError(msg)
    return IgnoreConfig(
        rules=_string_list(value.get("rules"), "ignore.rules"),
        files=_glob_list(value.get("files"), "ignore.files"),
    )


def _parse_rules(value: Any) -> Mapping[str, RuleOverride]:
    if value is None:
        return MappingProxyType({})
    if not isinstance(value, dict):
        msg = "'rules' must be a mapping of rule id to true/false or an override"
        raise ConfigurationError(msg)

    overrides: dict[str, RuleOverride] = {}
    for rule_id, setting in value.items():
        if isinstance(setting, bool):
            overrides[rule_id] = RuleOverride(enabled=setting)
            continue
        if not isinstance(setting, dict):
            msg = f"rules.{rule_id} must be a boolean or a mapping"
            raise ConfigurationError(msg)
        enabled = setting.get("enabled", True)
        severity = setting.get("severity")
        if not isinstance(enabled, bool):
            msg = f"rules.{rule_id}.enabled must be a boolean"
            raise ConfigurationError(msg)
        if severity is not None and severity not in SEVERITIES:
            msg = f"rules.{rule_id}.severity must be one of {list(SEVERITIES)}, got {severity!r}"
            raise ConfigurationError(msg)
        overrides[rule_id] = RuleOverride(enabled=enabled, severity=severity)
    return MappingProxyType(overrides)


def _parse_categories(value: Any) -> Mapping[str, bool]:
    if value is None:
        return MappingProxyType({})
    if not isinstance(value, dict):
        msg = "'categories' must be a mapping of category to true/false"
        raise ConfigurationError(msg)
    for category, enabled in value.items():
        if category not in CATEGORIES:
            msg = f"categories: unknown category '{category}', expected one of {list(CATEGORIES)}"
            raise ConfigurationError(msg)
        if not isinstance(enabled, bool):
            msg = f"categories.{category} must be a boolean"
            raise ConfigurationError(msg)
    return MappingProxyType(dict(value))


def _parse_thresholds(value: Any) -> Thresholds:
    if value is None:
        return Thresholds()
    if not isinstance(value, dict):
        msg = "'thresholds' must be a mapping"
        raise ConfigurationError(msg)

    known = {f.name for f in fields(Thresholds)}
    kwargs: dict[str, int] = {}
    for key, limit in value.items():
        if key not in known:
            msg = f"thresholds: unknown key '{key}', expected one of {sorted(known)}"
            raise ConfigurationError(msg)
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            msg = f"thresholds.{key} must be a positive integer, got {limit!r}"
            raise ConfigurationError(msg)
        kwargs[key] = limit
    return Thresholds(**kwargs)


def _parse_min_score(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
        msg = f"'min_score' must be an integer between 0 and 100, got {value!r}"
        raise ConfigurationError(msg)
    return value


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def config_from_mapping(data: Mapping[str, Any] | None) -> Config:
    """Merge a user config mapping over the defaults and validate it.

    ``include`` replaces the default include globs, ``exclude`` is appended
    to the default exclude globs, every other key replaces its default.

    Raises
    ------
    ConfigurationError
        On any malformed value.
    """
    if data is None:
        return Config()
    if not isinstance(data, dict):
        msg = "configuration must be a mapping"
        raise ConfigurationError(msg)

    for key in data:
        if key not in _KNOWN_KEYS:
            logger.warning("Ignoring unknown configuration key '%s'", key)

    include = _glob_list(data["include"], "include") if "include" in data else DEFAULT_INCLUDE
    exclude = DEFAULT_EXCLUDE + _glob_list(data.get("exclude"), "exclude")

    custom_dir = data.get("custom_rules_dir")
    if custom_dir is not None and not isinstance(custom_dir, str):
        msg = "'custom_rules_dir' must be a string"
        raise ConfigurationError(msg)

    return Config(
        include=include,
        exclude=exclude,
        ignore=_parse_ignore(data.get("ignore")),
        rules=_parse_rules(data.get("rules")),
        categories=_parse_categories(data.get("categories")),
        thresholds=_parse_thresholds(data.get("thresholds")),
        custom_rules_dir=custom_dir,
        min_score=_parse_min_score(data.get("min_score")),
        scoring=ScoreWeights.from_mapping(data.get("scoring")),
    )


def _read_config_file(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read config file {path}: {exc}"
        raise ConfigurationError(msg) from exc
    try:
        if path.suffix == ".json":
            return json.loads(text) if text.strip() else None
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        msg = f"Invalid config file {path}: {exc}"
        raise ConfigurationError(msg) from exc


def find_config_file(target: Path) -> Path | None:
    """First config file found in *target*, in :data:`CONFIG_FILENAMES` order."""
    for name in CONFIG_FILENAMES:
        candidate = target / name
        if candidate.is_file():
            return candidate
    return None


def _package_json_section(target: Path) -> Any:
    package_json = target / "package.json"
    if not package_json.is_file():
        return None
    try:
        data = json.loads(package_json.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        logger.warning(
            "Failed to read %s, ignoring its '%s' section", package_json, PACKAGE_JSON_KEY
        )
        return None
    if not isinstance(data, dict):
        return None
    return data.get(PACKAGE_JSON_KEY)


def load_config(target: Path, config_path: Path | None = None) -> Config:
    """Load and validate the configuration for the project at *target*.

    An explicit *config_path* must exist.  Otherwise the first of
    :data:`CONFIG_FILENAMES` in *target* is used, then the ``"nestdoctor"``
    key of ``package.json``; with none of them the defaults apply.
    """
    if config_path is not None:
        if not config_path.is_file():
            msg = f"Config file not found: {config_path}"
            raise ConfigurationError(msg)
        logger.debug("Loading config from %s", config_path)
        return config_from_mapping(_read_config_file(config_path))

    found = find_config_file(target)
    if found is not None:
        logger.debug("Loading config from %s", found)
        return config_from_mapping(_read_config_file(found))

    return config_from_mapping(_package_json_section(target))
