"""
Normalizer — Raw backend payloads to Bean

Backend payloads vary across CLI versions: camelCase, legacy snake_case,
and alternate key names for the same relationship. Each derived field is
resolved from an ordered alias list; the first non-empty value wins.

Two modes:
- strict: slug, path, body and etag must be present
- partial: those four default to "" (list queries may omit them)

Identity fields (id, title, status, type) are required in both modes.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import orjson

from ..errors import ParseError
from .bean import Bean


logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("id", "title", "status", "type")
STRICT_FIELDS = ("slug", "path", "body", "etag")

PARENT_ALIASES = ("parent", "parentId", "parent_id")
BLOCKING_ALIASES = ("blocking", "blockingIds", "blocking_ids")
BLOCKED_BY_ALIASES = ("blockedBy", "blockedByIds", "blocked_by", "blocked_by_ids")
CREATED_ALIASES = ("createdAt", "created_at", "created")
UPDATED_ALIASES = ("updatedAt", "updated_at", "updated")

# Numbers above this are treated as epoch milliseconds
_EPOCH_MS_THRESHOLD = 10 ** 12


def normalize_bean(raw: Any, partial: bool = False) -> Bean:
    """
    Convert a raw payload into a Bean.

    Args:
        raw: Payload as returned by the backend
        partial: Default slug/path/body/etag to "" instead of failing

    Raises:
        ParseError: required fields missing (carries the payload as output)
    """
    if not isinstance(raw, dict):
        raise ParseError("Bean payload is not an object", output=_dump(raw))

    if not all(_text(raw.get(f)) for f in REQUIRED_FIELDS):
        raise ParseError(
            "Bean missing required fields (id, title, status, or type)",
            output=_dump(raw),
        )

    if not partial and any(raw.get(f) is None for f in STRICT_FIELDS):
        raise ParseError(
            "Bean missing required fields (slug, path, body, or etag)",
            output=_dump(raw),
        )

    bean_id = _text(raw["id"])
    code = _text(raw.get("code")) or bean_id.split("-")[-1]
    priority = _text(raw.get("priority")) or None

    return Bean(
        id=bean_id,
        code=code,
        slug=_text(raw.get("slug")),
        path=_text(raw.get("path")),
        title=_text(raw["title"]),
        body=_text(raw.get("body")),
        status=_text(raw["status"]),
        type=_text(raw["type"]),
        priority=priority,
        tags=_string_list(raw.get("tags")),
        parent=_first_text(raw, PARENT_ALIASES) or None,
        blocking=_first_list(raw, BLOCKING_ALIASES),
        blocked_by=_first_list(raw, BLOCKED_BY_ALIASES),
        created_at=parse_date(_first_value(raw, CREATED_ALIASES), "createdAt", bean_id),
        updated_at=parse_date(_first_value(raw, UPDATED_ALIASES), "updatedAt", bean_id),
        etag=_text(raw.get("etag")),
    )


def parse_date(value: Any, field_name: str = "date", bean_id: str = "") -> datetime:
    """Parse a date value; missing or invalid values fall back to now (UTC)."""
    if value is None or value == "":
        return datetime.now(timezone.utc)

    parsed = _try_parse_date(value)
    if parsed is None:
        logger.warning("Invalid %s date for bean %s: %r. Using current date.",
                       field_name, bean_id, value)
        return datetime.now(timezone.utc)
    return parsed


def _try_parse_date(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if abs(value) > _EPOCH_MS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [str(v) for v in value if v not in (None, "")]


def _first_value(raw: Dict[str, Any], aliases: Sequence[str]) -> Any:
    for key in aliases:
        value = raw.get(key)
        if value not in (None, "", []):
            return value
    return None


def _first_text(raw: Dict[str, Any], aliases: Sequence[str]) -> str:
    return _text(_first_value(raw, aliases))


def _first_list(raw: Dict[str, Any], aliases: Sequence[str]) -> List[str]:
    for key in aliases:
        values = _string_list(raw.get(key))
        if values:
            return values
    return []


def _dump(raw: Any) -> str:
    try:
        return orjson.dumps(raw, default=str).decode()
    except TypeError:
        return repr(raw)
