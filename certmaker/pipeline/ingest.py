from __future__ import annotations

import csv
from pathlib import Path
from typing import Dict, List, Mapping

from ..template import Template


def load_rows(csv_path: Path) -> List[dict]:
    if not csv_path.exists():
        raise FileNotFoundError(f"CSV not found: {csv_path}")
    with csv_path.open("r", encoding="utf-8-sig") as handle:
        reader = csv.DictReader(handle)
        if reader.fieldnames is None:
            raise ValueError("CSV has no header")
        rows = [row for row in reader if any((value or "").strip() for value in row.values())]
    if not rows:
        raise ValueError("CSV has no data rows")
    return rows


def field_values_from_row(template: Template, row: Mapping[str, str]) -> Dict[str, str]:
    """Map a row keyed by field names (any case) or field ids to values keyed by field id."""
    ids = {field.id for field in template.fields}
    values: Dict[str, str] = {}
    for key, value in row.items():
        if key is None or value is None:
            continue
        key = key.strip()
        if key in ids:
            values[key] = value.strip()
            continue
        field = template.field_by_name(key)
        if field is not None:
            values[field.id] = value.strip()
    return values


def unknown_columns(template: Template, fieldnames: List[str]) -> List[str]:
    ids = {field.id for field in template.fields}
    return [
        name
        for name in fieldnames
        if name and name.strip() not in ids and template.field_by_name(name.strip()) is None
    ]
