from __future__ import annotations

import re
from typing import Iterable, List, Optional, Tuple


PLACEHOLDER_PATTERN = re.compile(r"\{\{([^{}]+)\}\}")


def token(name: str) -> str:
    return "{{" + name + "}}"


def substitute(content: str, fields: Iterable[Tuple[str, Optional[str]]]) -> str:
    """
    Replace ``{{name}}`` tokens with field values.

    Matching is literal and case-insensitive, applied field by field in
    declaration order. Tokens without a matching field stay in the output
    untouched. Markup in ``content`` is passed through as-is.
    """
    result = content or ""
    for name, value in fields:
        if not name:
            continue
        replacement = value or ""
        pattern = re.compile(re.escape(token(name)), re.IGNORECASE)
        result = pattern.sub(lambda _match: replacement, result)
    return result


def find_placeholders(content: str) -> List[str]:
    return [match.group(1) for match in PLACEHOLDER_PATTERN.finditer(content or "")]


def unbound_placeholders(content: str, names: Iterable[str]) -> List[str]:
    known = {name.casefold() for name in names}
    unbound: List[str] = []
    for name in find_placeholders(content):
        if name.casefold() not in known and name not in unbound:
            unbound.append(name)
    return unbound
