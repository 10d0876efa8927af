"""
Gateway — Safe invocation of the beans binary

All calls use an argument array (never a shell string) and a timeout.
Output is read as bytes in chunks and the process is killed once stdout and
stderr together pass the output cap. Low-level failures become domain errors:

- binary missing          -> CLINotFoundError (fatal)
- killed on timeout       -> CLITimeoutError (transient)
- OS refused to start it  -> SpawnError
- output not JSON         -> ParseError carrying the raw output
- output not UTF-8        -> ParseError, output decoded with replacements
- output over the cap     -> OutputLimitError
- non-zero exit           -> CommandError with the CLI's own "Error: ..." line

The gateway does no retrying or deduplication; those layers wrap it.
"""

import logging
import subprocess
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import orjson

from ..errors import (
    CLINotFoundError, CLITimeoutError, CommandError, OutputLimitError,
    ParseError, SpawnError,
)


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
PROBE_TIMEOUT = 5.0
MAX_OUTPUT_BYTES = 10 * 1024 * 1024

_CHUNK_SIZE = 64 * 1024

# Envelope keys a GraphQL response may carry instead of bare data
_ENVELOPE_KEYS = {"data", "errors", "extensions"}


@dataclass
class GraphQLResult:
    """Data plus any backend-reported errors."""
    data: Dict[str, Any] = field(default_factory=dict)
    errors: List[Dict[str, Any]] = field(default_factory=list)


class CommandGateway:
    """Runs the beans binary and parses its output."""

    def __init__(
        self,
        cli_path: str = "beans",
        cwd: Optional[Path] = None,
        timeout: float = DEFAULT_TIMEOUT,
        probe_timeout: float = PROBE_TIMEOUT,
        max_output_bytes: int = MAX_OUTPUT_BYTES,
    ):
        self.cli_path = cli_path
        self.cwd = Path(cwd) if cwd else Path.cwd()
        self.timeout = timeout
        self.probe_timeout = probe_timeout
        self.max_output_bytes = max_output_bytes

    def check_available(self) -> bool:
        """
        Probe the binary with --version.

        Only a missing binary counts as unavailable; any other failure
        means the binary exists but is unhappy.
        """
        try:
            self._run(["--version"], timeout=self.probe_timeout)
            return True
        except CLINotFoundError:
            return False
        except Exception as e:
            logger.debug("Availability probe failed but binary exists: %s", e)
            return True

    def exec_text(self, args: List[str]) -> str:
        """Run a command and return raw stdout."""
        return self._run(args)

    def exec_json(self, args: List[str]) -> Any:
        """Run a command and parse stdout as JSON."""
        stdout = self._run(args)
        return _parse_json(stdout, "Failed to parse beans CLI JSON output")

    def exec_graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> GraphQLResult:
        """
        Run a GraphQL document through `beans graphql`.

        The CLI prints the data object directly; a {"data", "errors"}
        envelope is accepted too.
        """
        args = ["graphql", "--json", query]
        if variables is not None:
            args += ["--variables", orjson.dumps(variables).decode()]

        stdout = self._run(args)
        parsed = _parse_json(stdout, "Failed to parse beans GraphQL JSON output")

        if isinstance(parsed, dict) and parsed and set(parsed) <= _ENVELOPE_KEYS \
                and ("data" in parsed or "errors" in parsed):
            return GraphQLResult(
                data=parsed.get("data") or {},
                errors=list(parsed.get("errors") or []),
            )
        if not isinstance(parsed, dict):
            raise ParseError("GraphQL output is not an object", output=stdout)
        return GraphQLResult(data=parsed)

    def _run(self, args: List[str], timeout: Optional[float] = None) -> str:
        summary = " ".join(args[:5]) + (" ..." if len(args) > 5 else "")
        logger.debug("Executing: %s %s", self.cli_path, summary)
        timeout = timeout or self.timeout

        try:
            process = subprocess.Popen(
                [self.cli_path] + list(args),
                cwd=self.cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise CLINotFoundError(
                f"Beans CLI not found at: {self.cli_path}. "
                "Please install beans or set BEANS_CLI_PATH.",
                cause=e,
            )
        except OSError as e:
            raise SpawnError(f"Could not start beans CLI at {self.cli_path}: {e}", cause=e)

        capture = _BoundedCapture(process, self.max_output_bytes)
        try:
            process.wait(timeout=timeout)
        except subprocess.TimeoutExpired as e:
            process.kill()
            process.wait()
            capture.join()
            raise CLITimeoutError(f"Beans CLI operation timed out after {timeout:g}s", cause=e)
        capture.join()

        if capture.exceeded:
            raise OutputLimitError(
                f"Beans CLI output exceeded {self.max_output_bytes} bytes",
                returncode=process.returncode,
            )

        raw_stdout = capture.stdout
        stderr = capture.stderr.decode("utf-8", errors="replace")

        if stderr:
            if "[INFO]" in stderr:
                logger.debug("CLI info: %s", stderr.strip())
            else:
                logger.warning("CLI stderr: %s", stderr.strip())

        if process.returncode != 0:
            raise CommandError(
                _error_message(stderr, process.returncode),
                returncode=process.returncode,
                stderr=stderr,
                stdout=raw_stdout.decode("utf-8", errors="replace"),
            )

        try:
            return raw_stdout.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(
                "Beans CLI output is not valid UTF-8",
                output=raw_stdout.decode("utf-8", errors="replace"),
                cause=e,
            )


class _BoundedCapture:
    """
    Drains a process's stdout and stderr on reader threads.

    Counts bytes across both pipes and kills the process as soon as the
    total passes `limit`, so a runaway backend never fills memory.
    """

    def __init__(self, process: subprocess.Popen, limit: int):
        self._process = process
        self._limit = limit
        self._lock = threading.Lock()
        self._total = 0
        self.exceeded = False
        self._chunks: Dict[str, List[bytes]] = {"stdout": [], "stderr": []}
        self._threads = [
            threading.Thread(target=self._drain, args=(process.stdout, "stdout"), daemon=True),
            threading.Thread(target=self._drain, args=(process.stderr, "stderr"), daemon=True),
        ]
        for thread in self._threads:
            thread.start()

    def _drain(self, stream, name: str) -> None:
        with stream:
            while True:
                chunk = stream.read1(_CHUNK_SIZE)
                if not chunk:
                    return
                with self._lock:
                    if self.exceeded:
                        continue
                    self._total += len(chunk)
                    if self._total > self._limit:
                        self.exceeded = True
                        self._process.kill()
                        continue
                    self._chunks[name].append(chunk)

    def join(self) -> None:
        for thread in self._threads:
            thread.join()

    @property
    def stdout(self) -> bytes:
        return b"".join(self._chunks["stdout"])

    @property
    def stderr(self) -> bytes:
        return b"".join(self._chunks["stderr"])


def _parse_json(stdout: str, message: str) -> Any:
    try:
        return orjson.loads(stdout)
    except orjson.JSONDecodeError as e:
        raise ParseError(message, output=stdout, cause=e)


def _error_message(stderr: str, returncode: int) -> str:
    """First "Error: ..." line from stderr, without the prefix."""
    for line in stderr.splitlines():
        line = line.strip()
        if line.startswith("Error: "):
            return line[len("Error: "):].strip()
    return f"Beans CLI exited with status {returncode}"
