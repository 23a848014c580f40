"""Per source translation of field names and code values onto the target schema.

Upstream systems name the same attribute differently and encode enumerations
with their own codes. A :class:`SourceMapping` turns one source's payload into
the vocabulary of the entity schema before scoring, matching and merging, so
that values of different sources become comparable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True, slots=True, kw_only=True)
class SourceMapping:
    """``field_map`` maps source field names to schema field names.

    ``code_map`` is keyed by schema field name and maps source codes to
    standard values. Unmapped fields and unknown codes pass through unchanged.
    """

    source_id: str
    field_map: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    code_map: Mapping[str, Mapping[str, object]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self) -> None:
        targets = list(self.field_map.values())
        duplicates = sorted({target for target in targets if targets.count(target) > 1})
        if duplicates:
            raise ValueError(
                f"Source {self.source_id!r} maps several fields onto {duplicates}"
            )

    @property
    def target_fields(self) -> frozenset[str]:
        return frozenset(self.field_map.values()) | frozenset(self.code_map)

    def standardize(self, payload: Mapping[str, object]) -> dict[str, object]:
        mapped_targets = frozenset(self.field_map.values())
        standardized: dict[str, object] = {}
        for name, value in payload.items():
            if name in self.field_map:
                standardized[self.field_map[name]] = value
            elif name not in mapped_targets:
                standardized[name] = value
        for field_name, codes in self.code_map.items():
            code = _code(standardized.get(field_name))
            if code is not None and code in codes:
                standardized[field_name] = codes[code]
        return standardized


def _code(value: object) -> str | None:
    if isinstance(value, bool) or not isinstance(value, str | int):
        return None
    return str(value).strip()
