"""Provider index: @Injectable() classes and the types they inject."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from nestdoctor.engine.source import SourceUnit


@dataclass(frozen=True)
class ProviderInfo:
    """An injectable class, its constructor dependencies and public surface."""

    name: str
    file_path: str
    line: int
    dependencies: tuple[str, ...]
    public_method_count: int


def resolve_providers(units: Iterable[SourceUnit]) -> Mapping[str, ProviderInfo]:
    """Index every ``@Injectable()`` class by name (first declaration wins)."""
    providers: dict[str, ProviderInfo] = {}
    for unit in units:
        for cls in unit.facts.classes:
            if not cls.has_decorator("Injectable") or cls.name in providers:
                continue
            providers[cls.name] = ProviderInfo(
                name=cls.name,
                file_path=unit.file_path,
                line=cls.line,
                dependencies=tuple(p.type_name or p.name for p in cls.constructor_params),
                public_method_count=sum(
                    1 for m in cls.methods if m.is_public and not m.is_static
                ),
            )
    return MappingProxyType(providers)
