"""Source file discovery driven by include/exclude globs."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from nestdoctor.core.filtering import compile_globs, matches_any
from nestdoctor.errors import ScanError

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

logger = logging.getLogger(__name__)


def collect_files(root: Path, include: Iterable[str], exclude: Iterable[str]) -> list[str]:
    """Return the absolute paths under *root* matched by *include* and not *exclude*.

    Globs are matched against forward-slash paths relative to *root*.
    Directories matched by an exclude glob (``node_modules/**``) are not
    descended into.  The result is sorted, which fixes the file order of
    every scan.

    Raises
    ------
    ScanError
        If *root* cannot be walked.
    """
    include_rx = compile_globs(include)
    exclude_rx = compile_globs(exclude)

    def on_error(exc: OSError) -> None:
        if exc.filename is None or os.path.abspath(exc.filename) == os.path.abspath(root):
            msg = f"Cannot read project directory {root}: {exc}"
            raise ScanError(msg) from exc
        logger.warning("Skipping unreadable directory %s: %s", exc.filename, exc)

    collected: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
        rel_dir = os.path.relpath(dirpath, root).replace(os.sep, "/")
        prefix = "" if rel_dir == "." else rel_dir + "/"

        dirnames[:] = [d for d in dirnames if not matches_any(f"{prefix}{d}/", exclude_rx)]
        for name in filenames:
            rel = prefix + name
            if matches_any(rel, include_rx) and not matches_any(rel, exclude_rx):
                collected.append(os.path.join(dirpath, name))

    collected.sort()
    logger.debug("Collected %d source files under %s", len(collected), root)
    return collected
