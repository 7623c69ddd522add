"""Source ingestion: tree-sitter parsing of TypeScript files into SourceUnits."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from tree_sitter import Language, Parser

from nestdoctor.engine.classify import FileFacts, classify_file
from nestdoctor.errors import ScanError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator

    from tree_sitter import Node as TSNode
    from tree_sitter import Tree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LangConfig:
    """Tree-sitter configuration for a source dialect."""

    name: str
    language: Language


# ---- Grammar loaders (imported on first use) ----


def _load_typescript() -> LangConfig:
    import tree_sitter_typescript as tstypescript

    return LangConfig(name="typescript", language=Language(tstypescript.language_typescript()))


def _load_tsx() -> LangConfig:
    import tree_sitter_typescript as tstypescript

    return LangConfig(name="tsx", language=Language(tstypescript.language_tsx()))


# .ts, .mts and .cts share one grammar; .tsx needs the JSX-aware one.
_EXTENSION_LOADERS: dict[str, Callable[[], LangConfig]] = {
    ".ts": _load_typescript,
    ".mts": _load_typescript,
    ".cts": _load_typescript,
    ".tsx": _load_tsx,
}

# extension -> grammar; None records an unknown or missing grammar.
_LANG_CACHE: dict[str, LangConfig | None] = {}


def get_lang_config(extension: str) -> LangConfig | None:
    """Grammar for a TypeScript dialect extension; ``None`` when unknown or not installed."""
    if extension in _LANG_CACHE:
        return _LANG_CACHE[extension]

    loader = _EXTENSION_LOADERS.get(extension)
    if loader is None:
        _LANG_CACHE[extension] = None
        return None

    try:
        config = loader()
    except ImportError:
        logger.warning("tree-sitter grammar for %s is not installed", extension)
        _LANG_CACHE[extension] = None
        return None

    _LANG_CACHE[extension] = config
    return config


@dataclass(frozen=True)
class SourceUnit:
    """One ingested file: its path key, raw bytes, parse tree and classified facts."""

    file_path: str
    source: bytes
    tree: Tree
    facts: FileFacts

    @property
    def root(self) -> TSNode:
        return self.tree.root_node


def parse_source(file_path: str, content: bytes) -> SourceUnit:
    """Parse *content* as the file *file_path* (the extension selects the grammar)."""
    config = get_lang_config(Path(file_path).suffix or ".ts")
    if config is None:
        config = get_lang_config(".ts")
    if config is None:
        msg = "tree-sitter-typescript is required but could not be loaded"
        raise ScanError(msg)

    parser = Parser(config.language)
    tree = parser.parse(content)
    return SourceUnit(
        file_path=file_path,
        source=content,
        tree=tree,
        facts=classify_file(file_path, tree.root_node),
    )


def ingest_file(file_path: str) -> SourceUnit:
    """Read and parse a file from disk.

    Raises
    ------
    ScanError
        When the file cannot be read.
    """
    try:
        content = Path(file_path).read_bytes()
    except OSError as exc:
        msg = f"Cannot read source file {file_path}: {exc}"
        raise ScanError(msg) from exc
    return parse_source(file_path, content)


class SourceSet:
    """Ordered, path-keyed collection of SourceUnits.

    Iteration order is ingestion order; re-ingesting an existing path keeps
    its position.  This is the only mutable state of a scan, and in the scan
    worker the only place mutation is allowed.
    """

    def __init__(self) -> None:
        self._units: dict[str, SourceUnit] = {}

    @classmethod
    def from_paths(cls, paths: Iterable[str]) -> SourceSet:
        sources = cls()
        for path in paths:
            sources.update(path)
        return sources

    def update(self, file_path: str) -> SourceUnit:
        """(Re-)ingest *file_path* from disk, replacing any previous unit."""
        unit = ingest_file(file_path)
        self._units[file_path] = unit
        logger.debug("Ingested %s", file_path)
        return unit

    def add_unit(self, unit: SourceUnit) -> None:
        self._units[unit.file_path] = unit

    def remove(self, file_path: str) -> bool:
        """Drop *file_path*; returns True if it was present."""
        return self._units.pop(file_path, None) is not None

    def get(self, file_path: str) -> SourceUnit | None:
        return self._units.get(file_path)

    @property
    def paths(self) -> tuple[str, ...]:
        return tuple(self._units)

    def __contains__(self, file_path: object) -> bool:
        return file_path in self._units

    def __iter__(self) -> Iterator[SourceUnit]:
        return iter(list(self._units.values()))

    def __len__(self) -> int:
        return len(self._units)
