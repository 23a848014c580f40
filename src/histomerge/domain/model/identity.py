"""Identity groups produced by the resolver."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .enums import MatchMethod, ReviewReason
    from .records import SourceRecord


@dataclass(frozen=True, slots=True, kw_only=True)
class IdentityGroup:
    """Source records believed to describe one real-world entity."""

    entity_type: str
    master_id: str
    members: tuple[SourceRecord, ...]
    match_confidence: int
    match_method: MatchMethod
    review_reasons: tuple[ReviewReason, ...] = ()

    def __post_init__(self) -> None:
        if not self.members:
            raise ValueError("Identity group must include at least one member")
        if not 0 <= self.match_confidence <= 100:
            raise ValueError("match_confidence must be within 0..100")

    @property
    def needs_review(self) -> bool:
        return bool(self.review_reasons)

    @property
    def source_ids(self) -> tuple[str, ...]:
        return tuple(sorted({member.source_id for member in self.members}))

    def members_from(self, source_id: str) -> tuple[SourceRecord, ...]:
        return tuple(member for member in self.members if member.source_id == source_id)
