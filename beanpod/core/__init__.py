"""
Core — Bean model and file-format helpers

- Bean: canonical record model
- Normalizer: raw backend payloads to Bean
- Frontmatter: lenient header reading and line-level patching
"""

from .bean import Bean
from .normalizer import normalize_bean, parse_date, REQUIRED_FIELDS
from .frontmatter import (
    split_frontmatter, extract_fields, needs_quoting, yaml_quote,
    patch_frontmatter, quote_title, read_title,
)

__all__ = [
    "Bean",
    "normalize_bean", "parse_date", "REQUIRED_FIELDS",
    "split_frontmatter", "extract_fields", "needs_quoting", "yaml_quote",
    "patch_frontmatter", "quote_title", "read_title",
]
