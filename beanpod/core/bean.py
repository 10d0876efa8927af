"""
Bean — Canonical record model

One Bean is one tracked task/issue, backed by one markdown file with a YAML
frontmatter header in the workspace beans directory.

Status, type and priority are plain strings: the allowed sets are declared
per workspace (.beans.yml) and validated at runtime against BeansConfig.

Beans are constructed fresh on every fetch; there is no identity map.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class Bean:
    """A normalized bean. id, title, status and type are never empty."""
    id: str
    title: str
    status: str
    type: str
    created_at: datetime
    updated_at: datetime
    code: str = ""
    slug: str = ""
    path: str = ""
    body: str = ""
    etag: str = ""
    priority: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    parent: Optional[str] = None
    blocking: List[str] = field(default_factory=list)
    blocked_by: List[str] = field(default_factory=list)

    @property
    def label(self) -> str:
        """Short human label (code if known)."""
        return self.code or self.id

    @property
    def search_text(self) -> str:
        """Lowercased haystack used by in-process search."""
        parts = [self.id, self.code, self.slug, self.title, self.body] + list(self.tags)
        return " ".join(p for p in parts if p).lower()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "slug": self.slug,
            "path": self.path,
            "title": self.title,
            "body": self.body,
            "status": self.status,
            "type": self.type,
            "priority": self.priority,
            "tags": list(self.tags),
            "parent": self.parent,
            "blocking": list(self.blocking),
            "blockedBy": list(self.blocked_by),
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "etag": self.etag,
        }
