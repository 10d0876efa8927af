"""
Services — Backend access and resilience layers

- Gateway: safe subprocess invocation of the beans CLI
- Retry / Dedup: backoff for timeouts, shared in-flight requests
- Offline: last-known-good snapshot and degraded mode
- Repair: malformed-file recovery and quarantine
- Integrity / Propagation: parent references and status cascades
- BeansService: the façade tying it together
"""

from .gateway import CommandGateway, GraphQLResult
from .retry import with_retry
from .dedup import (
    RequestDeduplicator, PendingRequest,
    fingerprint_command, fingerprint_graphql,
)
from .git import GitHistory
from .offline import BeanFilter, OfflineCache
from .repair import (
    BeanRepairer, derive_id_from_path, derive_title_from_path, generate_bean_id,
)
from .integrity import IntegrityReport, OrphanGroup, clear_dangling_parents
from .propagation import PropagationReport, StatusPropagator
from .service import BeansService, BatchResult, BeanUpdate, NewBean, OFFLINE_WARNING

__all__ = [
    "CommandGateway", "GraphQLResult",
    "with_retry",
    "RequestDeduplicator", "PendingRequest", "fingerprint_command", "fingerprint_graphql",
    "GitHistory",
    "BeanFilter", "OfflineCache",
    "BeanRepairer", "derive_id_from_path", "derive_title_from_path", "generate_bean_id",
    "IntegrityReport", "OrphanGroup", "clear_dangling_parents",
    "PropagationReport", "StatusPropagator",
    "BeansService", "BatchResult", "BeanUpdate", "NewBean", "OFFLINE_WARNING",
]
