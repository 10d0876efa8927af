"""
Integrity — Clear parent references that point at missing beans

After an unfiltered listing, any bean whose parent id is absent from the
same result set has lost its parent (deleted, quarantined, or never
existed). The reference is cleared through a normal update so the next
listing is consistent.

Users get one summary per missing parent, not one per child.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List

from ..core.bean import Bean
from ..notify import Notifier


logger = logging.getLogger(__name__)


@dataclass
class OrphanGroup:
    """Children of one missing parent and how clearing them went."""
    parent_id: str
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def message(self) -> str:
        if not self.failed:
            return (f"Bean(s) {', '.join(self.succeeded)} have been orphaned "
                    f"because their parent ({self.parent_id}) no longer exists.")
        total = len(self.succeeded) + len(self.failed)
        return (f"Attempted to orphan {total} child(ren) of {self.parent_id}: "
                f"{len(self.succeeded)} succeeded, {len(self.failed)} failed. "
                "See output for details.")


@dataclass
class IntegrityReport:
    groups: Dict[str, OrphanGroup] = field(default_factory=dict)

    @property
    def cleared(self) -> int:
        return sum(len(g.succeeded) for g in self.groups.values())

    @property
    def failed(self) -> int:
        return sum(len(g.failed) for g in self.groups.values())


def clear_dangling_parents(
    beans: List[Bean],
    update_fn: Callable[[str], Bean],
    notifier: Notifier,
) -> IntegrityReport:
    """
    Clear dangling parent references in `beans`, in place.

    Args:
        beans: Full (unfiltered) listing; updated entries are replaced
        update_fn: Clears the parent of one bean id and returns the new Bean
        notifier: Receives one warning per missing parent

    Returns:
        Per-parent outcome of the clearing
    """
    known_ids = {b.id for b in beans}
    report = IntegrityReport()

    for index, bean in enumerate(list(beans)):
        if not bean.parent or bean.parent in known_ids:
            continue

        group = report.groups.setdefault(bean.parent, OrphanGroup(parent_id=bean.parent))
        try:
            updated = update_fn(bean.id)
        except Exception as e:
            logger.warning("Failed to clear dangling parent for bean %s: %s", bean.id, e)
            group.failed[bean.id] = str(e)
            continue

        beans[index] = updated
        group.succeeded.append(bean.label)
        logger.info("Cleared dangling parent reference on %s (parent %s not found)",
                    bean.label, bean.parent)

    for group in report.groups.values():
        notifier.warn(group.message)

    return report
