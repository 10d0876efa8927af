"""
Errors — Domain error hierarchy for the beans service layer

Every failure that crosses the service boundary is a BeansError with a
stable `code`. Classification helpers decide what the retry and offline
layers do with a given failure:

- Permanent (never retried): CLI not found, unparsable output
- Transient (retried with backoff): timeouts
- Backend unavailable (served from cache): not found, timeout, spawn failure
"""

from typing import Any, Dict, List, Optional


class BeansError(Exception):
    """Base class for all beans service errors."""
    code = "BEANS_ERROR"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class CLINotFoundError(BeansError):
    """The beans binary could not be found."""
    code = "CLI_NOT_FOUND"

    def __init__(self, message: str = "Beans CLI not found in PATH",
                 cause: Optional[BaseException] = None):
        super().__init__(message, cause)


class CLITimeoutError(BeansError):
    """The beans binary was killed after exceeding its timeout."""
    code = "TIMEOUT"

    def __init__(self, message: str = "Beans CLI operation timed out",
                 cause: Optional[BaseException] = None):
        super().__init__(message, cause)


class SpawnError(BeansError):
    """The OS refused to start the beans binary."""
    code = "SPAWN_FAILED"


class ParseError(BeansError):
    """Output (or a single record) could not be parsed into the bean model."""
    code = "JSON_PARSE_ERROR"

    def __init__(self, message: str, output: str = "",
                 cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.output = output


class CommandError(BeansError):
    """The beans binary exited with a non-zero status."""
    code = "COMMAND_FAILED"

    def __init__(self, message: str, returncode: Optional[int] = None,
                 stderr: str = "", stdout: str = "",
                 cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.returncode = returncode
        self.stderr = stderr
        self.stdout = stdout


class OutputLimitError(CommandError):
    """The beans binary produced more output than we are willing to buffer."""
    code = "OUTPUT_LIMIT"


class GraphQLError(BeansError):
    """The backend reported one or more GraphQL errors."""
    code = "GRAPHQL_ERROR"

    def __init__(self, errors: List[Dict[str, Any]]):
        messages = ", ".join(str(e.get("message", e)) for e in errors)
        super().__init__(f"GraphQL error: {messages}")
        self.errors = errors


class ValidationError(BeansError, ValueError):
    """Input rejected before any call to the backend."""
    code = "VALIDATION_ERROR"


class BeanNotFoundError(BeansError):
    """A requested bean does not exist."""
    code = "BEAN_NOT_FOUND"


class BackendUnavailableError(BeansError):
    """The backend is unreachable and no valid cached data exists."""
    code = "BACKEND_UNAVAILABLE"


# Failures where retrying can never help
PERMANENT_ERRORS = (CLINotFoundError, ParseError)

# Failures worth another attempt after a delay
TRANSIENT_ERRORS = (CLITimeoutError,)

# Failures meaning "the backend is not there right now"
UNAVAILABLE_ERRORS = (CLINotFoundError, CLITimeoutError, SpawnError)


def is_permanent(error: BaseException) -> bool:
    return isinstance(error, PERMANENT_ERRORS)


def is_transient(error: BaseException) -> bool:
    return isinstance(error, TRANSIENT_ERRORS)


def is_backend_unavailable(error: BaseException) -> bool:
    return isinstance(error, UNAVAILABLE_ERRORS)


def get_user_message(error: BaseException) -> str:
    """Extract a user-friendly message from any error."""
    if isinstance(error, BeansError):
        return error.message
    return str(error) or error.__class__.__name__
