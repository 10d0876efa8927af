"""
Frontmatter — Reading and patching bean file headers

Bean files are markdown with a YAML header between `---` markers. The beans
CLI writes header values without quoting, so a title such as
"Command palette: Reinitialize" produces a header that no YAML parser
accepts. This module reads headers leniently and patches them line by
line, leaving every other line and the body untouched.
"""

import re
from typing import Dict, Iterable, List, Optional, Tuple

import yaml


_FRONTMATTER_RE = re.compile(
    r"\A\ufeff?[ \t]*---[ \t]*\r?\n(.*?)^---[ \t]*(?:\r?\n|\Z)",
    re.DOTALL | re.MULTILINE,
)

# Plain scalars may not start with any of these
_INDICATOR_START_RE = re.compile(r"^[-?:{}\[\]#&*!|>'\"%@`]")

_TITLE_LINE_RE = re.compile(r"^(title[ \t]*:[ \t]*)(.*?)[ \t]*$", re.MULTILINE)


def split_frontmatter(text: str) -> Tuple[Optional[str], str]:
    """
    Split a bean file into (header, body).

    Returns (None, text) when the file has no frontmatter block.
    """
    match = _FRONTMATTER_RE.match(text)
    if not match:
        return None, text
    header = re.sub(r"\r?\n\Z", "", match.group(1))
    return header, text[match.end():]


def extract_fields(header: str, fields: Iterable[str]) -> Dict[str, str]:
    """
    Read selected scalar fields from a header.

    Parses as YAML first; a header YAML rejects (the usual reason a bean is
    malformed) is read line by line instead. Empty values are dropped.
    """
    fields = list(fields)
    result: Dict[str, str] = {}

    try:
        data = yaml.safe_load(header) if header.strip() else {}
    except yaml.YAMLError:
        data = None

    if isinstance(data, dict):
        for name in fields:
            value = data.get(name)
            if value is None or isinstance(value, (dict, list)):
                continue
            if isinstance(value, str):
                text = value.strip()
            else:
                # yes, 0012 and dates resolve to other types; keep what was written
                text = _raw_value(header, name, indented=False) or str(value).strip()
            if text:
                result[name] = text
        return result

    for name in fields:
        text = _raw_value(header, name, indented=True)
        if text:
            result[name] = text
    return result


def _raw_value(header: str, name: str, indented: bool) -> str:
    """Unquoted text after `name:` on its line, or ""."""
    indent = r"\s*" if indented else ""
    match = re.search(rf"^{indent}{re.escape(name)}\s*:[ \t]*(.+)$", header, re.MULTILINE)
    if not match:
        return ""
    text = match.group(1).strip()
    if not indented and not _is_quoted(text):
        text = text.split(" #", 1)[0].rstrip()
    return _strip_quotes(text)


def needs_quoting(value: str) -> bool:
    """True when a bare YAML scalar would be misread or rejected."""
    if not value:
        return True
    if _INDICATOR_START_RE.match(value):
        return True
    if ": " in value or " #" in value or value.endswith(":"):
        return True
    if "\n" in value or "\r" in value or "\t" in value:
        return True
    return value != value.strip()


def yaml_quote(value: Optional[str]) -> str:
    """
    Render a scalar the way the beans CLI would, quoting only when needed.

    Single quotes (with '' escaping) in general; double quotes with escapes
    when the value has line breaks or tabs, which single quotes would fold.
    """
    value = value or ""
    if not needs_quoting(value):
        return value
    if "\n" in value or "\r" in value or "\t" in value:
        escaped = (value.replace("\\", "\\\\").replace('"', '\\"')
                   .replace("\n", "\\n").replace("\r", "\\r").replace("\t", "\\t"))
        return f'"{escaped}"'
    return "'" + value.replace("'", "''") + "'"


def patch_frontmatter(text: str, entries: List[Tuple[str, str]]) -> str:
    """
    Set top-level header keys, leaving all other lines and the body as-is.

    Args:
        text: Full file content
        entries: (key, already-rendered value) pairs

    An existing key line (plus any indented continuation lines) is
    replaced; a missing key is appended. A file without a header gets one.
    """
    header, body = split_frontmatter(text)
    header = header or ""

    for key, value in entries:
        line = f"{key}: {value}"
        key_re = re.compile(
            rf"^{re.escape(key)}[ \t]*:[^\n]*(?:\n[ \t]+[^\n]*)*", re.MULTILINE
        )
        if key_re.search(header):
            header = key_re.sub(lambda _: line, header, count=1)
        else:
            header = f"{header.rstrip()}\n{line}" if header.strip() else line

    return f"---\n{header.rstrip()}\n---\n{body}"


def quote_title(text: str) -> str:
    """
    Quote a bare `title:` header value that YAML would misread.

    Already-quoted titles and safe titles are returned unchanged, so
    applying this twice is the same as applying it once.
    """
    header, body = split_frontmatter(text)
    if header is None:
        return text

    match = _TITLE_LINE_RE.search(header)
    if not match:
        return text

    value = match.group(2)
    if _is_quoted(value) or not needs_quoting(value):
        return text

    patched = header[:match.start()] + match.group(1) + yaml_quote(value) + header[match.end():]
    return f"---\n{patched}\n---\n{body}"


def read_title(text: str) -> Optional[str]:
    """Title as a YAML parser sees it, or None."""
    header, _ = split_frontmatter(text)
    if header is None:
        return None
    return extract_fields(header, ["title"]).get("title")


def _is_quoted(value: str) -> bool:
    return len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"')


def _strip_quotes(value: str) -> str:
    if _is_quoted(value):
        inner = value[1:-1]
        return inner.replace("''", "'") if value[0] == "'" else inner
    return value
