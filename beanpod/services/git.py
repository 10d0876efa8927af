"""
Git History — Read earlier revisions of bean files

Used by the repair pipeline to recover frontmatter fields from the last
good version of a broken file. Read-only: nothing here writes to the
repository.

Every call degrades to "no history" when git is missing, the workspace is
not a repository, or the file was never committed.
"""

import logging
import subprocess
from pathlib import Path
from typing import List, Optional


logger = logging.getLogger(__name__)

MAX_HISTORY_REVISIONS = 20
GIT_TIMEOUT = 10.0


class GitHistory:
    """Git history access for files in a workspace."""

    def __init__(self, repo_path: Optional[Path] = None, timeout: float = GIT_TIMEOUT):
        """
        Args:
            repo_path: Working directory for git. If None, uses current directory.
            timeout: Seconds allowed per git call
        """
        self.repo_path = Path(repo_path) if repo_path else Path.cwd()
        self.timeout = timeout

    def _run_git(self, args: List[str]) -> Optional[str]:
        """Run a git command and return stdout, or None on any failure."""
        try:
            result = subprocess.run(
                ["git"] + args,
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                errors="replace",
                check=True,
                timeout=self.timeout,
            )
            return result.stdout
        except subprocess.CalledProcessError:
            return None
        except (subprocess.TimeoutExpired, OSError) as e:
            logger.debug("git %s failed: %s", args[0] if args else "", e)
            return None

    def list_revisions(self, path: str, limit: int = MAX_HISTORY_REVISIONS) -> List[str]:
        """
        Commit hashes that touched `path`, newest first.

        Follows renames. `path` is relative to the repository working directory.
        """
        output = self._run_git([
            "log", "--follow", "-n", str(limit), "--format=%H", "--", path
        ])
        if not output:
            return []
        return [line.strip() for line in output.splitlines() if line.strip()]

    def show_file(self, revision: str, path: str) -> Optional[str]:
        """Content of `path` at `revision`, or None."""
        return self._run_git(["show", f"{revision}:{path}"])
