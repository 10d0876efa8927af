"""
Repair — Malformed bean recovery and quarantine

A bean is malformed when the normalizer rejects it. One malformed file must
never break a whole listing, so each one goes through:

    Detected -> RepairAttempted -> Repaired | Quarantined

Repair recovers the four identity fields (id, title, status, type) from,
in order:
  1. git history of the file (newest of up to 20 revisions with all four,
     else the revision supplying the most)
  2. the file's current header, read leniently
  3. the filename convention `<id>--<slug>.md`
  4. workspace default status/type
  5. a freshly generated id, when a title was recovered but no id

A repair only counts once the corrected header is written back to disk.
Anything else is moved to `<beans dir>/.quarantine/<name>.md.fixme`, where
the `.fixme` suffix keeps it out of future discovery. The user hears about
each quarantined file at most once per service instance.

Two companions reuse the same flow:
- orphan detection: `.md` files on disk the backend silently skipped
- list-abort recovery: the backend refused to list anything and named the
  offending file in its error output
"""

import logging
import os
import random
import re
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import xxhash

from ..config import BeansConfig, ConfigCache
from ..core.bean import Bean
from ..core.frontmatter import (
    extract_fields, patch_frontmatter, quote_title, split_frontmatter, yaml_quote,
)
from ..core.normalizer import REQUIRED_FIELDS, normalize_bean
from ..errors import ParseError
from ..notify import OPEN_FILE_ACTION, Notifier
from .git import MAX_HISTORY_REVISIONS, GitHistory


logger = logging.getLogger(__name__)

QUARANTINE_DIRNAME = ".quarantine"
QUARANTINE_SUFFIX = ".fixme"

RECOVERABLE_FIELDS = REQUIRED_FIELDS + ("priority",)

MIN_ID_LENGTH = 4
MAX_ID_LENGTH = 16

# Bounded path segment: no whitespace, quotes or colons
_SEGMENT = r"[^\s:'\"]{0,512}"


def derive_id_from_path(path: Optional[Path]) -> Optional[str]:
    """Id from a `<id>--<slug>.md` filename, or None."""
    if not path:
        return None
    stem = Path(path).stem
    match = re.match(r"^(.+?)--", stem)
    return match.group(1) if match else None


def derive_title_from_path(path: Optional[Path]) -> Optional[str]:
    """Human title from a filename: the part after `--`, de-slugified."""
    if not path:
        return None
    stem = Path(path).stem
    if "--" in stem:
        stem = stem[stem.index("--") + 2:]
    title = re.sub(r"[-_]+", " ", stem).strip()
    return title or None


def generate_bean_id(prefix: Optional[str], id_length: Any) -> str:
    """`<prefix>-<suffix>` with a random hex suffix of 4-16 chars."""
    prefix = (prefix or "").strip() or "bean"
    try:
        length = int(id_length)
    except (TypeError, ValueError):
        length = MIN_ID_LENGTH
    length = min(MAX_ID_LENGTH, max(MIN_ID_LENGTH, length))

    seed = f"{time.time()}-{random.random()}"
    suffix = xxhash.xxh64(seed.encode()).hexdigest()[:length]
    return f"{prefix}-{suffix}"


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


class BeanRepairer:
    """Repairs, quarantines and reports malformed bean files."""

    def __init__(
        self,
        workspace_root: Path,
        config_cache: ConfigCache,
        history: GitHistory,
        notifier: Notifier,
    ):
        self.workspace_root = Path(workspace_root)
        self._config_cache = config_cache
        self._history = history
        self._notifier = notifier
        self._notified: set = set()
        self._notified_lock = threading.Lock()

    # =========================================================================
    # Paths
    # =========================================================================

    @property
    def config(self) -> BeansConfig:
        return self._config_cache.get()

    @property
    def beans_dir(self) -> Path:
        return self.workspace_root / (self.config.path or ".beans")

    @property
    def quarantine_dir(self) -> Path:
        return self.beans_dir / QUARANTINE_DIRNAME

    def resolve_bean_file_path(self, bean_path: str) -> Path:
        """
        Absolute path for a bean path as reported by the backend.

        Relative paths that already include the beans directory resolve
        against the workspace; bare filenames live in the beans directory.
        """
        normalized = bean_path.replace("\\", "/")
        if os.path.isabs(normalized):
            return Path(normalized)
        if normalized.startswith("./"):
            normalized = normalized[2:]

        beans_rel = (self.config.path or ".beans").replace("\\", "/").strip("/")
        beans_name = Path(beans_rel).name
        if normalized.startswith(beans_rel + "/") or f"/{beans_name}/" in f"/{normalized}":
            return self.workspace_root / normalized
        return self.beans_dir / Path(normalized).name

    def _relative(self, path: Path) -> str:
        try:
            return os.path.relpath(path, self.workspace_root).replace(os.sep, "/")
        except ValueError:
            return str(path)

    # =========================================================================
    # Field recovery
    # =========================================================================

    def recover_from_history(self, file_path: Path) -> Dict[str, str]:
        """
        Identity fields from the newest complete revision in git history.

        Falls back to the revision supplying the most required fields; {}
        when the file has no usable history.
        """
        rel_path = self._relative(file_path)
        revisions = self._history.list_revisions(rel_path, limit=MAX_HISTORY_REVISIONS)

        best: Dict[str, str] = {}
        best_count = 0
        for revision in revisions:
            content = self._history.show_file(revision, rel_path)
            if content is None:
                continue
            header, _ = split_frontmatter(content)
            if header is None:
                continue

            candidate = extract_fields(header, RECOVERABLE_FIELDS)
            count = sum(1 for f in REQUIRED_FIELDS if candidate.get(f))
            if count == len(REQUIRED_FIELDS):
                logger.info("Recovered %s from git history (commit %s) for %s",
                            ", ".join(candidate), revision[:8], file_path.name)
                return candidate
            if count > best_count:
                best, best_count = candidate, count

        if best_count:
            logger.info("Partially recovered %s from git history for %s",
                        ", ".join(best), file_path.name)
        return best

    def _current_fields(self, file_path: Path) -> Dict[str, str]:
        try:
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return {}
        header, _ = split_frontmatter(content)
        if header is None:
            return {}
        return extract_fields(header, RECOVERABLE_FIELDS)

    def repair(self, raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Try to recover a malformed payload and persist the fix.

        Returns:
            The repaired payload, or None when identity fields could not be
            recovered or the corrected header could not be written.
        """
        config = self.config
        file_path = self.resolve_bean_file_path(_text(raw.get("path"))) if raw.get("path") else None

        historical = self.recover_from_history(file_path) if file_path else {}
        merged = dict(raw)
        merged.update(historical)

        current = self._current_fields(file_path) if file_path else {}

        def resolve(name: str) -> str:
            return _text(merged.get(name)) or current.get(name, "")

        bean_id = resolve("id") or derive_id_from_path(file_path) or ""
        title = resolve("title") or derive_title_from_path(file_path) or ""
        status = resolve("status") or config.default_status or "draft"
        bean_type = resolve("type") or config.default_type or "task"

        if not bean_id and title:
            bean_id = generate_bean_id(config.prefix, config.id_length)
            logger.info("Generated fallback bean id %s while repairing malformed bean metadata", bean_id)

        if not (bean_id and title and status and bean_type):
            return None

        merged.update(id=bean_id, title=title, status=status, type=bean_type)
        if not _text(merged.get("priority")) and current.get("priority"):
            merged["priority"] = current["priority"]

        if file_path is not None:
            try:
                self._rewrite_header(file_path, merged)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Failed to persist repaired frontmatter for %s: %s; escalating to quarantine",
                               file_path.name, e)
                return None

        return merged

    def _rewrite_header(self, file_path: Path, bean: Dict[str, Any]) -> None:
        content = file_path.read_text(encoding="utf-8")
        entries = [(key, yaml_quote(_text(bean.get(key)))) for key in REQUIRED_FIELDS]
        file_path.write_text(patch_frontmatter(content, entries), encoding="utf-8")
        logger.info("Rewrote frontmatter for %s", file_path.name)

    # =========================================================================
    # Quarantine and notification
    # =========================================================================

    def quarantine(self, source: Path) -> Optional[Path]:
        """Move a file into the quarantine directory. None on failure."""
        source = Path(source)
        name = source.name
        if name.lower().endswith(".md"):
            name += QUARANTINE_SUFFIX
        target = self.quarantine_dir / name

        try:
            self.quarantine_dir.mkdir(parents=True, exist_ok=True)
            os.replace(source, target)
        except OSError as e:
            logger.warning("Failed to quarantine malformed bean file at %s: %s", source, e)
            return None

        logger.warning("Quarantined malformed bean file %s -> %s", source.name, target)
        return target

    def notify_quarantined(self, raw: Dict[str, Any], quarantined_path: Optional[Path]) -> None:
        """Tell the user about a quarantined file, once per source identity."""
        key = _text(raw.get("path")) or _text(raw.get("id"))
        with self._notified_lock:
            if key in self._notified:
                return
            self._notified.add(key)

        label = quarantined_path.name if quarantined_path else Path(key).name
        message = (f"Bean file quarantined: {label}. Open the "
                   f"{self._relative(self.quarantine_dir)} folder to inspect or restore the file.")

        if quarantined_path is None:
            self._notifier.warn(message)
            return

        selection = self._notifier.warn(message, [OPEN_FILE_ACTION])
        if selection != OPEN_FILE_ACTION:
            return
        try:
            self._notifier.open_file(quarantined_path)
        except Exception as e:
            logger.warning("Failed to open malformed bean file %s: %s", quarantined_path, e)

    def process_malformed(
        self,
        raw: Any,
        quarantined: Optional[Dict[str, Optional[Path]]] = None,
    ) -> Optional[Bean]:
        """
        Repair one rejected payload, or quarantine its file.

        Args:
            raw: Payload the normalizer rejected
            quarantined: Filled with id -> quarantine path for files moved aside

        Returns:
            The repaired Bean, or None if the file was quarantined
        """
        if not isinstance(raw, dict):
            logger.warning("Skipping malformed bean payload of type %s", type(raw).__name__)
            return None

        repaired = self.repair(raw)
        if repaired is not None:
            try:
                return normalize_bean(repaired, partial=True)
            except ParseError as e:
                logger.warning("Repaired bean still invalid: %s", e)

        file_path = self.resolve_bean_file_path(_text(raw.get("path"))) if raw.get("path") else None
        target = self.quarantine(file_path) if file_path else None
        self.notify_quarantined(raw, target)

        key = _text(raw.get("id")) or derive_id_from_path(file_path)
        if quarantined is not None and key:
            quarantined[key] = target
        return None

    # =========================================================================
    # Orphan detection and list-abort recovery
    # =========================================================================

    def detect_orphaned_files(
        self,
        beans: List[Bean],
        quarantined: Dict[str, Optional[Path]],
    ) -> None:
        """
        Feed `.md` files the backend silently skipped through repair.

        Files are matched to known beans by filename-derived id first (paths
        may be empty after partial normalization), then by path. Recovered
        beans are appended to `beans`.
        """
        try:
            files = sorted(p for p in self.beans_dir.iterdir()
                           if p.is_file() and p.name.endswith(".md"))
        except OSError:
            return
        if not files:
            return

        known_ids = {b.id for b in beans}
        known_paths = {os.path.normpath(self.resolve_bean_file_path(b.path)) for b in beans if b.path}
        known_paths.update(os.path.normpath(p) for p in quarantined.values() if p)

        for file_path in files:
            derived_id = derive_id_from_path(file_path)
            if derived_id and (derived_id in known_ids or derived_id in quarantined):
                continue
            if os.path.normpath(file_path) in known_paths:
                continue
            if self._current_fields(file_path).get("id") in known_ids:
                continue

            logger.warning("Detected orphaned bean file not returned by CLI: %s", file_path.name)
            hint = {
                "id": "", "title": "", "status": "", "type": "",
                "slug": "", "path": self._relative(file_path), "body": "", "etag": "",
            }
            bean = self.process_malformed(hint, quarantined)
            if bean is not None:
                beans.append(bean)
                known_ids.add(bean.id)
                logger.info("Recovered orphaned bean file %s via repair", file_path.name)

    def extract_error_path(self, error: BaseException) -> Optional[Path]:
        """
        Bean file named in a backend error, if it lies inside the beans
        directory of this workspace.
        """
        parts = [str(error)]
        for attr in ("stderr", "stdout"):
            value = getattr(error, attr, None)
            if value:
                parts.append(str(value))
        combined = "\n".join(parts)

        beans_name = re.escape(Path(self.config.path or ".beans").name)
        pattern = re.compile(
            rf"((?:[A-Za-z]:\\{_SEGMENT}\.md)"
            rf"|(?:/?{_SEGMENT}{beans_name}[/\\]{_SEGMENT}\.md))"
        )
        match = pattern.search(combined)
        if not match:
            return None

        raw_path = match.group(1).replace("\\", "/")
        candidate = Path(raw_path) if os.path.isabs(raw_path) else self.workspace_root / raw_path
        candidate = Path(os.path.normpath(candidate))

        try:
            rel = os.path.relpath(candidate, self.workspace_root)
        except ValueError:
            return None
        if rel.startswith("..") or os.path.isabs(rel):
            return None

        rel_parts = Path(rel).parts
        if Path(self.config.path or ".beans").name not in rel_parts[:-1]:
            return None
        return candidate

    def recover_from_list_error(self, error: BaseException) -> bool:
        """
        Quarantine the file a whole-list failure points at.

        Returns True when a file was moved aside and the listing is worth
        retrying.
        """
        candidate = self.extract_error_path(error)
        if candidate is None:
            return False

        target = self.quarantine(candidate)
        if target is None:
            return False

        hint = {
            "id": derive_id_from_path(candidate) or str(candidate),
            "path": self._relative(candidate),
        }
        self.notify_quarantined(hint, target)
        return True

    def quote_title_after_write(self, bean_path: str) -> bool:
        """
        Quote an unsafe bare title in a file the backend just wrote.

        Best-effort: failures are logged and reported as False.
        """
        if not bean_path:
            return False
        file_path = self.resolve_bean_file_path(bean_path)

        try:
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read %s to quote its title: %s", file_path, e)
            return False

        patched = quote_title(content)
        if patched == content:
            return False

        try:
            file_path.write_text(patched, encoding="utf-8")
        except OSError as e:
            logger.warning("Could not write %s to quote its title: %s", file_path, e)
            return False

        logger.debug("Quoted title in %s", file_path)
        return True
