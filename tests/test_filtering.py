"""Tests for nestdoctor.core.filtering and nestdoctor.core.files."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from conftest import write_files

from nestdoctor.core.config import DEFAULT_EXCLUDE, DEFAULT_INCLUDE, IgnoreConfig
from nestdoctor.core.files import collect_files
from nestdoctor.core.filtering import compile_glob, filter_diagnostics, relative_posix
from nestdoctor.errors import ConfigurationError, ScanError
from nestdoctor.models import Diagnostic

if TYPE_CHECKING:
    from pathlib import Path


def _diag(file_path: str, rule: str = "security/no-eval") -> Diagnostic:
    return Diagnostic(
        file_path=file_path,
        line=1,
        column=1,
        message="m",
        help="h",
        rule=rule,
        category="security",
        severity="error",
    )


class TestCompileGlob:
    @pytest.mark.parametrize(
        ("pattern", "path", "expected"),
        [
            ("**/*.ts", "main.ts", True),
            ("**/*.ts", "src/a/b/main.ts", True),
            ("**/*.ts", "src/main.js", False),
            ("*.ts", "src/main.ts", False),
            ("src/*.ts", "src/main.ts", True),
            ("node_modules/**", "node_modules/x/y.ts", True),
            ("node_modules/**", "src/node_modules/y.ts", False),
            ("**/test/**", "src/test/a.ts", True),
            ("**/test/**", "test/a.ts", True),
            ("**/*.spec.ts", "src/users.spec.ts", True),
            ("file?.ts", "file1.ts", True),
            ("file?.ts", "file/.ts", False),
            ("[ab].ts", "a.ts", True),
            ("[!ab].ts", "a.ts", False),
            ("[!ab].ts", "c.ts", True),
            ("a.b.ts", "axb.ts", False),
        ],
    )
    def test_matching(self, pattern: str, path: str, expected: bool) -> None:
        assert bool(compile_glob(pattern).match(path)) is expected

    def test_unterminated_class(self) -> None:
        with pytest.raises(ConfigurationError, match="unterminated"):
            compile_glob("src/[abc.ts")


class TestFilterDiagnostics:
    def test_by_rule(self, tmp_path: Path) -> None:
        diagnostics = [_diag("a.ts"), _diag("b.ts", rule="performance/no-sync-io")]

        kept = filter_diagnostics(
            diagnostics, IgnoreConfig(rules=("security/no-eval",)), str(tmp_path)
        )

        assert [d.rule for d in kept] == ["performance/no-sync-io"]

    def test_by_file_glob(self, tmp_path: Path) -> None:
        diagnostics = [
            _diag(str(tmp_path / "src" / "users.spec.ts")),
            _diag(str(tmp_path / "src" / "users.service.ts")),
        ]

        ignore = IgnoreConfig(files=("**/*.spec.ts",))
        kept = filter_diagnostics(diagnostics, ignore, str(tmp_path))

        assert [d.file_path for d in kept] == [str(tmp_path / "src" / "users.service.ts")]

    def test_no_ignores_keeps_order(self, tmp_path: Path) -> None:
        diagnostics = [_diag("b.ts"), _diag("a.ts")]

        assert filter_diagnostics(diagnostics, IgnoreConfig(), str(tmp_path)) == diagnostics

    def test_relative_posix(self, tmp_path: Path) -> None:
        assert relative_posix(str(tmp_path / "src" / "a.ts"), str(tmp_path)) == "src/a.ts"
        assert relative_posix("src/a.ts", str(tmp_path)) == "src/a.ts"


class TestCollectFiles:
    def test_default_globs(self, tmp_path: Path) -> None:
        write_files(
            tmp_path,
            {
                "src/main.ts": "",
                "src/app.module.ts": "",
                "src/app.spec.ts": "",
                "src/types.d.ts": "",
                "src/__mocks__/repo.ts": "",
                "node_modules/lib/index.ts": "",
                "dist/main.ts": "",
                "README.md": "",
            },
        )

        files = collect_files(tmp_path, DEFAULT_INCLUDE, DEFAULT_EXCLUDE)

        assert files == [
            str(tmp_path / "src" / "app.module.ts"),
            str(tmp_path / "src" / "main.ts"),
        ]

    def test_custom_include(self, tmp_path: Path) -> None:
        write_files(tmp_path, {"src/a.ts": "", "lib/b.ts": ""})

        files = collect_files(tmp_path, ["src/**/*.ts"], [])

        assert files == [str(tmp_path / "src" / "a.ts")]

    def test_missing_root(self, tmp_path: Path) -> None:
        with pytest.raises(ScanError):
            collect_files(tmp_path / "nope", DEFAULT_INCLUDE, DEFAULT_EXCLUDE)
