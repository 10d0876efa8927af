"""
Beanpod — Resilient service layer for beans workspaces

Wraps the `beans` CLI (a file-backed issue tracker: one markdown file per
bean) behind a thread-safe Python API that survives a flaky binary and a
messy working tree.

- Timeouts retried with backoff; identical concurrent calls collapsed
- Offline answers from a last-known-good snapshot
- Malformed bean files repaired from git history, or quarantined
- Dangling parent references cleared; status changes cascade to children

Usage:
    from beanpod import BeansService, BeanFilter, NewBean, BeanUpdate

    service = BeansService.from_env()
    todo = service.list_beans(BeanFilter(status=["todo"]))
    bean = service.create_bean(NewBean(title="Fix login", type="bug"))
    service.update_bean(bean.id, BeanUpdate(status="completed"))
"""

__version__ = "0.1.0"

# Core layer (data)
from .core.bean import Bean
from .core.normalizer import normalize_bean

# Services layer
from .services.service import BeansService, BatchResult, BeanUpdate, NewBean
from .services.offline import BeanFilter
from .services.gateway import CommandGateway

# Config and ambient concerns (stay at root)
from .config import BeansConfig, ConfigManager, ServiceSettings
from .notify import Notifier, LoggingNotifier
from .logger import setup_logger, get_logger
from .errors import (
    BeansError, CLINotFoundError, CLITimeoutError, SpawnError, ParseError,
    CommandError, OutputLimitError, GraphQLError, ValidationError,
    BeanNotFoundError, BackendUnavailableError, get_user_message,
)

__all__ = [
    # Core
    'Bean', 'normalize_bean',
    # Services
    'BeansService', 'BatchResult', 'BeanUpdate', 'NewBean', 'BeanFilter', 'CommandGateway',
    # Config
    'BeansConfig', 'ConfigManager', 'ServiceSettings',
    # Ambient
    'Notifier', 'LoggingNotifier', 'setup_logger', 'get_logger',
    # Errors
    'BeansError', 'CLINotFoundError', 'CLITimeoutError', 'SpawnError', 'ParseError',
    'CommandError', 'OutputLimitError', 'GraphQLError', 'ValidationError',
    'BeanNotFoundError', 'BackendUnavailableError', 'get_user_message',
]
