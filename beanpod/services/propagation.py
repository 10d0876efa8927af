"""
Propagation — Push a parent's status change down its subtree

When a bean's status changes, every descendant whose status differs is
moved to the same status. A finished child (terminal status) is left alone
when the new status is terminal too, and reopened otherwise.
The walk is breadth-first: one filtered listing per parent, one level at a
time, rather than recursing through the update path.

Best-effort: a failed listing or child update is logged and skipped; it
never fails or rolls back the update that triggered it.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from ..core.bean import Bean


logger = logging.getLogger(__name__)


@dataclass
class PropagationReport:
    updated: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)


class StatusPropagator:
    """Breadth-first status propagation over the parent/child graph."""

    def __init__(
        self,
        list_children: Callable[[str], List[Bean]],
        apply_status: Callable[[str, str], Bean],
        terminal_statuses: Optional[Sequence[str]] = None,
    ):
        """
        Args:
            list_children: Direct children of a parent id
            apply_status: Set one bean's status (must not propagate itself)
            terminal_statuses: Statuses a finished child keeps when the new
                status is also terminal
        """
        self._list_children = list_children
        self._apply_status = apply_status
        self._terminal = set(terminal_statuses or ())

    def propagate(self, parent_id: str, status: str) -> PropagationReport:
        report = PropagationReport()
        queue = deque([parent_id])
        visited = {parent_id}

        while queue:
            current = queue.popleft()
            try:
                children = self._list_children(current)
            except Exception as e:
                logger.error("Failed to list children of %s for status propagation: %s", current, e)
                report.failed[current] = str(e)
                continue

            for child in children:
                if child.id in visited:
                    continue
                visited.add(child.id)

                if child.status == status or (child.status in self._terminal and status in self._terminal):
                    report.skipped.append(child.id)
                    continue

                if child.status in self._terminal:
                    logger.info("Reopening %s child %s to %s", child.status, child.id, status)
                logger.info("Parent %s status changed to %s; updating child %s",
                            current, status, child.id)

                try:
                    self._apply_status(child.id, status)
                except Exception as e:
                    logger.error("Failed to propagate status to child %s: %s", child.id, e)
                    report.failed[child.id] = str(e)
                    continue

                report.updated.append(child.id)
                queue.append(child.id)

        return report
