"""Glob compilation and post-run diagnostic filtering."""

from __future__ import annotations

import os
import re
from typing import TYPE_CHECKING

from nestdoctor.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from nestdoctor.core.config import IgnoreConfig
    from nestdoctor.models import Diagnostic


def compile_glob(pattern: str) -> re.Pattern[str]:
    """Compile a path glob to an anchored regex.

    Supported syntax: ``*`` (any run within one path segment), ``**`` (any
    number of whole segments, including none), ``?`` (one character other
    than ``/``) and ``[...]`` / ``[!...]`` character classes.

    Raises
    ------
    ConfigurationError
        If the pattern is malformed (e.g. an unterminated ``[``).
    """
    out: list[str] = []
    i = 0
    n = len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                j = i + 2
                at_segment_start = i == 0 or pattern[i - 1] == "/"
                if at_segment_start and j < n and pattern[j] == "/":
                    out.append("(?:[^/]*/)*")
                    i = j + 1
                    continue
                out.append(".*")
                i = j
                continue
            out.append("[^/]*")
            i += 1
        elif c == "?":
            out.append("[^/]")
            i += 1
        elif c == "[":
            j = i + 1
            if j < n and pattern[j] in "!^":
                j += 1
            if j < n and pattern[j] == "]":
                j += 1
            end = pattern.find("]", j)
            if end == -1:
                msg = f'Invalid glob pattern "{pattern}": unterminated character class'
                raise ConfigurationError(msg)
            body = pattern[i + 1 : end]
            negate = body[:1] in ("!", "^")
            if negate:
                body = body[1:]
            body = body.replace("\\", "\\\\")
            out.append(f"[{'^' if negate else ''}{body}]")
            i = end + 1
        else:
            out.append(re.escape(c))
            i += 1

    try:
        return re.compile("^" + "".join(out) + "$")
    except re.error as exc:
        msg = f'Invalid glob pattern "{pattern}": {exc}'
        raise ConfigurationError(msg) from exc


def compile_globs(patterns: Iterable[str]) -> list[re.Pattern[str]]:
    return [compile_glob(p) for p in patterns]


def matches_any(path: str, compiled: Iterable[re.Pattern[str]]) -> bool:
    return any(rx.match(path) for rx in compiled)


def relative_posix(file_path: str, root: str) -> str:
    """*file_path* relative to *root*, with forward slashes."""
    rel = os.path.relpath(file_path, root) if os.path.isabs(file_path) else file_path
    return rel.replace(os.sep, "/").replace("\\", "/")


def filter_diagnostics(
    diagnostics: Iterable[Diagnostic],
    ignore: IgnoreConfig,
    root: str,
) -> list[Diagnostic]:
    """Drop diagnostics of ignored rules or in ignored files, preserving order.

    Ignore-file globs are matched against the root-relative, forward-slash
    form of each diagnostic's path and are compiled once per call.
    """
    ignored_rules = frozenset(ignore.rules)
    compiled = compile_globs(ignore.files)

    kept: list[Diagnostic] = []
    for d in diagnostics:
        if d.rule in ignored_rules:
            continue
        if compiled and matches_any(relative_posix(d.file_path, root), compiled):
            continue
        kept.append(d)
    return kept
