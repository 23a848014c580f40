"""Engine configuration and landed record files for end-to-end tests."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from pathlib import Path

ENGINE_TOML = """
[[entity]]
name = "customer"
kind = "reference"
fields = ["name", "email", "rating", "country"]
tracked_fields = ["name", "email", "rating"]

[entity.policy]
primary_source = "crm"
fallback_source = "erp"
rule = "merge_fields"
tie_break = "keep_primary"

[entity.policy.field_sources]
email = "erp"

[[entity.quality]]
field = "name"
check = "required"
points = 30

[[entity.quality]]
field = "email"
check = "pattern"
pattern = '[^@\\s]+@[^@\\s]+\\.[a-z]+'
points = 30
penalty = 10

[[entity.quality]]
field = "rating"
check = "range"
minimum = 0
maximum = 100
points = 40
penalty = 20

[[entity]]
name = "order"
kind = "process"
fields = ["placed_at", "assigned_at", "delivered_at", "agent"]

[entity.policy]
primary_source = "shop"
fallback_source = "warehouse"

[[entity.milestones]]
name = "placed"
status = "open"
field = "placed_at"

[[entity.milestones]]
name = "assigned"
status = "in_progress"
field = "assigned_at"
payload_fields = ["agent"]

[[entity.milestones]]
name = "delivered"
status = "closed"
field = "delivered_at"
terminal = true

[[entity.spans]]
name = "lead_time"
start = "placed"
end = "delivered"
"""


def write_engine_config(path: Path, content: str = ENGINE_TOML) -> Path:
    path.write_text(content, encoding="utf-8")
    return path


def record_line(
    entity: str,
    source: str,
    key: object,
    fields: Mapping[str, object],
    *,
    captured_at: str = "2024-01-01T06:00:00+00:00",
    **extra: object,
) -> str:
    return json.dumps(
        {
            "entity": entity,
            "source": source,
            "key": key,
            "fields": dict(fields),
            "captured_at": captured_at,
            **extra,
        }
    )


def write_records(path: Path, lines: Iterable[str]) -> Path:
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path
