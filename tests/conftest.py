"""Shared test fixtures for nestdoctor."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from nestdoctor.engine.source import SourceSet, parse_source

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


def write_files(root: Path, files: dict[str, str]) -> Path:
    """Write ``{relative path: content}`` under *root* and return *root*."""
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


def make_sources(files: dict[str, str]) -> SourceSet:
    """Parse in-memory TypeScript files into a SourceSet (no disk access)."""
    sources = SourceSet()
    for path, content in files.items():
        sources.add_unit(parse_source(path, content.encode("utf-8")))
    return sources


@pytest.fixture()
def make_project(tmp_path: Path) -> Callable[[dict[str, str]], Path]:
    """Factory writing a NestJS project tree into a fresh directory."""

    def make(files: dict[str, str]) -> Path:
        root = (tmp_path / "app").resolve()
        root.mkdir(exist_ok=True)
        return write_files(root, files)

    return make


@pytest.fixture()
def sample_project(make_project: Callable[[dict[str, str]], Path]) -> Path:
    """A small, mostly healthy application with one sync I/O call."""
    return make_project(
        {
            "package.json": '{"name": "sample-api", "version": "1.0.0"}',
            "src/app.module.ts": (
                "import { Module } from '@nestjs/common';\n"
                "import { UsersModule } from './users/users.module';\n"
                "\n"
                "@Module({ imports: [UsersModule] })\n"
                "export class AppModule {}\n"
            ),
            "src/users/users.module.ts": (
                "import { Module } from '@nestjs/common';\n"
                "\n"
                "@Module({\n"
                "  controllers: [UsersController],\n"
                "  providers: [UsersService],\n"
                "})\n"
                "export class UsersModule {}\n"
            ),
            "src/users/users.controller.ts": (
                "import { Controller, Get } from '@nestjs/common';\n"
                "\n"
                "@Controller('users')\n"
                "export class UsersController {\n"
                "  constructor(private readonly users: UsersService) {}\n"
                "\n"
                "  @Get()\n"
                "  findAll() {\n"
                "    return this.users.findAll();\n"
                "  }\n"
                "}\n"
            ),
            "src/users/users.service.ts": (
                "import { Injectable } from '@nestjs/common';\n"
                "import * as fs from 'fs';\n"
                "\n"
                "@Injectable()\n"
                "export class UsersService {\n"
                "  findAll() {\n"
                "    return JSON.parse(fs.readFileSync('users.json', 'utf8'));\n"
                "  }\n"
                "}\n"
            ),
            "src/users/users.service.spec.ts": (
                "describe('UsersService', () => {\n"
                "  it('works', () => { eval('1 + 1'); });\n"
                "});\n"
            ),
            "node_modules/dep/index.ts": "eval('x');\n",
        }
    )
