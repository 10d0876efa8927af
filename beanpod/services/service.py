"""
Service — The beans service façade

BeansService is the single entry point front ends use. Each backend call
passes through the same stack:

    dedup (shared in-flight future) -> retry (timeouts only) -> gateway

Around that sit the resilience layers:
- listings repair or quarantine malformed rows instead of failing
- unfiltered listings also reconcile orphan files, clear dangling parent
  references, and refresh the offline snapshot
- an unreachable backend is answered from the snapshot (degraded mode)
- status changes propagate to descendants

Thread-safe: every piece of shared state is lock-guarded, and identical
concurrent requests from different threads collapse into one backend call.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..config import BeansConfig, ConfigCache, ConfigManager, ServiceSettings
from ..core.bean import Bean
from ..core.normalizer import normalize_bean
from ..errors import (
    BackendUnavailableError, BeanNotFoundError, BeansError, GraphQLError,
    ParseError, UNAVAILABLE_ERRORS, ValidationError,
)
from ..logger import setup_logger
from ..notify import LoggingNotifier, Notifier
from .dedup import RequestDeduplicator, fingerprint_command, fingerprint_graphql
from .gateway import CommandGateway, GraphQLResult
from .git import GitHistory
from .graphql import (
    CREATE_BEAN_MUTATION, DELETE_BEAN_MUTATION, LIST_BEANS_QUERY,
    SHOW_BEAN_QUERY, UPDATE_BEAN_MUTATION,
    build_batch_create, build_batch_delete, build_batch_update, error_for_alias,
)
from .integrity import IntegrityReport, clear_dangling_parents
from .offline import BeanFilter, OfflineCache
from .propagation import PropagationReport, StatusPropagator
from .repair import BeanRepairer
from .retry import with_retry


logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200

OFFLINE_WARNING = "Beans CLI unavailable. Using cached data (may be stale)."


@dataclass
class NewBean:
    """Input for creating a bean."""
    title: str
    type: str
    status: Optional[str] = None
    priority: Optional[str] = None
    description: Optional[str] = None
    parent: Optional[str] = None


@dataclass
class BeanUpdate:
    """
    Changes to apply to a bean. Unset fields are left alone.

    `blocking` and `blocked_by` add relationships; they never remove.
    """
    status: Optional[str] = None
    type: Optional[str] = None
    priority: Optional[str] = None
    parent: Optional[str] = None
    clear_parent: bool = False
    blocking: List[str] = field(default_factory=list)
    blocked_by: List[str] = field(default_factory=list)


@dataclass
class BatchResult:
    """Outcome of one item in a batch mutation."""
    success: bool
    bean: Optional[Bean] = None
    id: Optional[str] = None
    error: Optional[BaseException] = None
    data: Optional[NewBean] = None


def _compact(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def _raise_if(message: Optional[str]) -> None:
    if message:
        raise ValidationError(message)


class BeansService:
    """Resilient access to a beans workspace through the beans CLI."""

    def __init__(
        self,
        settings: Optional[ServiceSettings] = None,
        workspace_root: Optional[Path] = None,
        gateway: Optional[CommandGateway] = None,
        history: Optional[GitHistory] = None,
        notifier: Optional[Notifier] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """
        Args:
            settings: Service settings (defaults when None)
            workspace_root: Overrides settings.workspace_root
            gateway: Backend gateway; built from settings when None
            history: Git history reader for repairs
            notifier: User notification surface (logs when None)
            clock: Wall clock for cache expiry, injectable for tests
            sleep: Backoff sleep, injectable for tests
        """
        self.settings = settings or ServiceSettings()
        self.workspace_root = Path(workspace_root) if workspace_root else self.settings.resolved_workspace_root
        self.gateway = gateway or CommandGateway(
            cli_path=self.settings.cli_path,
            cwd=self.workspace_root,
            timeout=self.settings.timeout,
            probe_timeout=self.settings.probe_timeout,
            max_output_bytes=self.settings.max_output_bytes,
        )
        self.notifier = notifier or LoggingNotifier()
        self._clock = clock or time.time
        self._sleep = sleep or time.sleep

        self.config_manager = ConfigManager(self.workspace_root)
        self.config_cache = ConfigCache(self.config_manager, ttl=self.settings.config_cache_ttl,
                                        clock=self._clock)
        self.cache = OfflineCache(ttl=self.settings.cache_ttl, clock=self._clock)
        self.dedup = RequestDeduplicator()
        self.repairer = BeanRepairer(
            self.workspace_root,
            self.config_cache,
            history or GitHistory(self.workspace_root),
            self.notifier,
        )

    @classmethod
    def from_env(cls, **kwargs) -> 'BeansService':
        """Build a service from BEANS_* environment variables and set up logging."""
        settings = ServiceSettings.from_env()
        settings.validate()
        setup_logger(level=settings.log_level, format_type=settings.log_format)
        return cls(settings=settings, **kwargs)

    # =========================================================================
    # Backend access
    # =========================================================================

    def _retry(self, fn: Callable[[], Any]) -> Any:
        return with_retry(
            fn,
            max_retries=self.settings.max_retries,
            base_delay=self.settings.retry_base_delay,
            sleep=self._sleep,
        )

    def _execute(self, args: List[str]) -> Any:
        return self.dedup.run(
            fingerprint_command(args),
            lambda: self._retry(lambda: self.gateway.exec_json(args)),
        )

    def _execute_graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> GraphQLResult:
        return self.dedup.run(
            fingerprint_graphql(query, variables),
            lambda: self._retry(lambda: self.gateway.exec_graphql(query, variables)),
        )

    def _graphql_data(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        result = self._execute_graphql(query, variables)
        if result.errors:
            raise GraphQLError(result.errors)
        return result.data or {}

    # =========================================================================
    # Workspace
    # =========================================================================

    def check_cli_available(self) -> bool:
        return self.gateway.check_available()

    def check_initialized(self) -> bool:
        try:
            self._execute(["check", "--json"])
            return True
        except BeansError as e:
            logger.debug("Workspace check failed: %s", e)
            return False

    def init(
        self,
        prefix: Optional[str] = None,
        default_type: Optional[str] = None,
        default_status: Optional[str] = None,
    ) -> None:
        """Initialize beans in the workspace."""
        args = ["init", "--json"]
        if prefix:
            args += ["--prefix", prefix]
        if default_type:
            args += ["--default-type", default_type]
        if default_status:
            args += ["--default-status", default_status]
        self._execute(args)

    def get_config(self) -> BeansConfig:
        return self.config_cache.get()

    def graphql_schema(self) -> str:
        return self.gateway.exec_text(["graphql", "--schema"]).strip()

    def is_offline(self) -> bool:
        return self.cache.degraded

    def clear_cache(self) -> None:
        self.cache.clear()

    # =========================================================================
    # Reads
    # =========================================================================

    def list_beans(self, bean_filter: Optional[BeanFilter] = None) -> List[Bean]:
        """
        List beans, optionally filtered.

        Malformed rows are repaired or quarantined rather than failing the
        listing. Only unfiltered listings reconcile files on disk, clear
        dangling parents and refresh the offline snapshot: a filtered result
        would make every filtered-out bean look missing.

        Raises:
            BackendUnavailableError: backend unreachable and no valid snapshot
        """
        return self._list_beans(bean_filter or BeanFilter(), recovery_attempted=False)

    def _list_beans(self, bean_filter: BeanFilter, recovery_attempted: bool) -> List[Bean]:
        try:
            data = self._graphql_data(LIST_BEANS_QUERY, {"filter": bean_filter.to_graphql()})
        except UNAVAILABLE_ERRORS as e:
            return self._serve_offline(bean_filter, e)
        except BeansError as e:
            if not recovery_attempted and self.repairer.recover_from_list_error(e):
                logger.info("Recovered from malformed bean list error by quarantining "
                            "the reported file; retrying list")
                return self._list_beans(bean_filter, recovery_attempted=True)
            raise

        beans: List[Bean] = []
        quarantined: Dict[str, Optional[Path]] = {}
        for raw in data.get("beans") or []:
            try:
                beans.append(normalize_bean(raw, partial=True))
            except ParseError as e:
                logger.warning("Malformed bean in listing: %s", e)
                repaired = self.repairer.process_malformed(raw, quarantined)
                if repaired is not None:
                    beans.append(repaired)

        if not bean_filter.is_filtered:
            self.repairer.detect_orphaned_files(beans, quarantined)
            self._clear_dangling_parents(beans)
            self.cache.update(beans)

        self.cache.leave_degraded()
        return beans

    def _serve_offline(self, bean_filter: BeanFilter, error: BeansError) -> List[Bean]:
        cached = self.cache.get(bean_filter)
        if cached is not None:
            if self.cache.enter_degraded():
                logger.warning("CLI unavailable, using cached data (offline mode): %s", error)
                self.notifier.warn(OFFLINE_WARNING)
            return cached

        if self.cache.enter_degraded():
            logger.error("CLI unavailable and no cached data available: %s", error)
        raise BackendUnavailableError(
            "Beans CLI is not available and no cached data exists. "
            "Please ensure Beans CLI is installed and accessible.",
            cause=error,
        ) from error

    def _clear_dangling_parents(self, beans: List[Bean]) -> IntegrityReport:
        return clear_dangling_parents(beans, self._clear_parent, self.notifier)

    def _clear_parent(self, bean_id: str) -> Bean:
        data = self._graphql_data(UPDATE_BEAN_MUTATION, {"id": bean_id, "input": {"parent": ""}})
        return normalize_bean(data.get("updateBean"), partial=True)

    def show_bean(self, bean_id: str) -> Bean:
        """
        Fetch one bean.

        Some CLI versions omit slug/path/body/etag; those payloads are
        accepted with empty defaults.
        """
        data = self._graphql_data(SHOW_BEAN_QUERY, {"id": bean_id})
        raw = data.get("bean")
        if not raw:
            raise BeanNotFoundError(f"Bean not found: {bean_id}")

        try:
            return normalize_bean(raw)
        except ParseError:
            logger.warning("Partial bean payload received from show for %s; "
                           "using safe defaults for missing fields.", bean_id)
            return normalize_bean(raw, partial=True)

    # =========================================================================
    # Validation
    # =========================================================================

    @staticmethod
    def _validate_title(title: Optional[str]) -> None:
        if not title or not title.strip():
            raise ValidationError("Bean title is required")
        if len(title) > MAX_TITLE_LENGTH:
            raise ValidationError(f"Bean title must be {MAX_TITLE_LENGTH} characters or less")

    def _create_input(self, draft: NewBean, config: BeansConfig) -> Dict[str, Any]:
        self._validate_title(draft.title)
        _raise_if(config.validate_type(draft.type))
        if draft.status:
            _raise_if(config.validate_status(draft.status))
        if draft.priority:
            _raise_if(config.validate_priority(draft.priority))

        return _compact({
            "title": draft.title,
            "type": draft.type,
            "status": draft.status,
            "priority": draft.priority,
            "body": draft.description,
            "parent": draft.parent,
        })

    def _update_input(self, update: BeanUpdate, config: BeansConfig) -> Dict[str, Any]:
        if update.status:
            _raise_if(config.validate_status(update.status))
        if update.type:
            _raise_if(config.validate_type(update.type))
        if update.priority:
            _raise_if(config.validate_priority(update.priority))
        if update.parent is not None and update.clear_parent:
            raise ValidationError("Cannot set parent and clear parent in the same update")

        data = _compact({
            "status": update.status,
            "type": update.type,
            "priority": update.priority,
        })
        if update.parent is not None:
            data["parent"] = update.parent
        elif update.clear_parent:
            data["parent"] = ""
        if update.blocking:
            data["addBlocking"] = list(update.blocking)
        if update.blocked_by:
            data["addBlockedBy"] = list(update.blocked_by)
        return data

    # =========================================================================
    # Writes
    # =========================================================================

    def create_bean(self, draft: NewBean) -> Bean:
        """
        Create a bean.

        The CLI writes titles unquoted, so a title like "Palette: Reload"
        would break every later listing; the written file is patched.
        """
        config = self.get_config()
        data = self._graphql_data(CREATE_BEAN_MUTATION, {"input": self._create_input(draft, config)})
        bean = normalize_bean(data.get("createBean"))
        if bean.path:
            self.repairer.quote_title_after_write(bean.path)
        return bean

    def update_bean(self, bean_id: str, update: BeanUpdate) -> Bean:
        """Update a bean; a status change propagates to its descendants."""
        config = self.get_config()
        bean = self._update_bean(bean_id, update, config)
        if update.status:
            self._propagate_status(bean_id, update.status, config)
        return bean

    def _update_bean(self, bean_id: str, update: BeanUpdate, config: BeansConfig) -> Bean:
        data = self._graphql_data(
            UPDATE_BEAN_MUTATION,
            {"id": bean_id, "input": self._update_input(update, config)},
        )
        try:
            return normalize_bean(data.get("updateBean"))
        except ParseError:
            logger.warning("Partial bean payload received from update for %s; "
                           "fetching full bean as fallback.", bean_id)
            return self.show_bean(bean_id)

    def _propagate_status(self, bean_id: str, status: str, config: BeansConfig) -> PropagationReport:
        propagator = StatusPropagator(
            list_children=lambda parent_id: self.list_beans(BeanFilter(parent=parent_id)),
            apply_status=lambda child_id, new_status: self._update_bean(
                child_id, BeanUpdate(status=new_status), config),
            terminal_statuses=config.terminal_statuses,
        )
        report = propagator.propagate(bean_id, status)
        if report.updated or report.failed:
            logger.info("Status propagation from %s: %d updated, %d failed",
                        bean_id, len(report.updated), len(report.failed))
        return report

    def delete_bean(self, bean_id: str) -> None:
        self._graphql_data(DELETE_BEAN_MUTATION, {"id": bean_id})

    # =========================================================================
    # Batches
    # =========================================================================

    def _run_batch(self, document: str, variables: Dict[str, Any]) -> Tuple[Optional[GraphQLResult], Optional[BeansError]]:
        try:
            return self._execute_graphql(document, variables), None
        except BeansError as e:
            logger.error("Batch mutation failed: %s", e)
            return None, e

    @staticmethod
    def _item_error(result: GraphQLResult, alias: str) -> Optional[BeansError]:
        error = error_for_alias(result.errors, alias)
        if error is not None:
            return GraphQLError([error])
        if alias in result.data:
            return None
        unscoped = [e for e in result.errors if not e.get("path")]
        if unscoped:
            return GraphQLError(unscoped)
        return BeansError("Internal error: mutation results missing for alias")

    def batch_create_beans(self, drafts: List[NewBean]) -> List[BatchResult]:
        """
        Create several beans in one backend call.

        Invalid drafts fail individually without being sent. If the call
        itself fails, every sent draft fails with that error.
        """
        if not drafts:
            return []

        config = self.get_config()
        results: List[Optional[BatchResult]] = [None] * len(drafts)
        pending: List[Tuple[int, str, Dict[str, Any]]] = []
        for i, draft in enumerate(drafts):
            try:
                pending.append((i, f"c{i}", self._create_input(draft, config)))
            except ValidationError as e:
                results[i] = BatchResult(success=False, error=e, data=draft)

        if pending:
            document, variables = build_batch_create([(alias, data) for _, alias, data in pending])
            result, failure = self._run_batch(document, variables)
            for i, alias, _ in pending:
                draft = drafts[i]
                if failure is not None:
                    results[i] = BatchResult(success=False, error=failure, data=draft)
                    continue
                error = self._item_error(result, alias)
                if error is not None:
                    results[i] = BatchResult(success=False, error=error, data=draft)
                    continue
                try:
                    bean = normalize_bean(result.data[alias])
                except ParseError as e:
                    results[i] = BatchResult(success=False, error=e, data=draft)
                    continue
                results[i] = BatchResult(success=True, bean=bean, id=bean.id)
                if bean.path:
                    self.repairer.quote_title_after_write(bean.path)

        return results

    def batch_update_beans(self, updates: List[Tuple[str, BeanUpdate]]) -> List[BatchResult]:
        """
        Update several beans in one backend call.

        Status changes on successful items propagate to their descendants.
        """
        if not updates:
            return []

        config = self.get_config()
        results: List[Optional[BatchResult]] = [None] * len(updates)
        pending: List[Tuple[int, str, str, Dict[str, Any]]] = []
        for i, (bean_id, update) in enumerate(updates):
            try:
                pending.append((i, f"u{i}", bean_id, self._update_input(update, config)))
            except ValidationError as e:
                results[i] = BatchResult(success=False, error=e, id=bean_id)

        if pending:
            document, variables = build_batch_update([(alias, bid, data) for _, alias, bid, data in pending])
            result, failure = self._run_batch(document, variables)
            for i, alias, bean_id, _ in pending:
                if failure is not None:
                    results[i] = BatchResult(success=False, error=failure, id=bean_id)
                    continue
                error = self._item_error(result, alias)
                if error is not None:
                    results[i] = BatchResult(success=False, error=error, id=bean_id)
                    continue
                try:
                    bean = normalize_bean(result.data[alias], partial=True)
                except ParseError as e:
                    results[i] = BatchResult(success=False, error=e, id=bean_id)
                    continue
                results[i] = BatchResult(success=True, bean=bean, id=bean_id)

            for i, (bean_id, update) in enumerate(updates):
                if update.status and results[i].success:
                    self._propagate_status(bean_id, update.status, config)

        return results

    def batch_delete_beans(self, bean_ids: List[str]) -> List[BatchResult]:
        if not bean_ids:
            return []

        aliases = [(f"d{i}", bean_id) for i, bean_id in enumerate(bean_ids)]
        document, variables = build_batch_delete(aliases)
        result, failure = self._run_batch(document, variables)

        results = []
        for alias, bean_id in aliases:
            if failure is not None:
                results.append(BatchResult(success=False, error=failure, id=bean_id))
                continue
            error = error_for_alias(result.errors, alias)
            if error is not None:
                results.append(BatchResult(success=False, error=GraphQLError([error]), id=bean_id))
            else:
                results.append(BatchResult(success=True, id=bean_id))
        return results
