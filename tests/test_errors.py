"""
Tests for the error hierarchy and its classification helpers.
"""

from beanpod.errors import (
    BackendUnavailableError, BeansError, CLINotFoundError, CLITimeoutError,
    CommandError, GraphQLError, OutputLimitError, ParseError, SpawnError,
    ValidationError, get_user_message, is_backend_unavailable, is_permanent,
    is_transient,
)


class TestClassification:
    """Which failures are retried, which mean "backend down"."""

    def test_not_found_is_permanent_and_unavailable(self):
        error = CLINotFoundError()
        assert is_permanent(error)
        assert not is_transient(error)
        assert is_backend_unavailable(error)

    def test_parse_error_is_permanent_but_not_unavailable(self):
        error = ParseError("bad json", output="{")
        assert is_permanent(error)
        assert not is_backend_unavailable(error)

    def test_timeout_is_transient_and_unavailable(self):
        error = CLITimeoutError()
        assert is_transient(error)
        assert not is_permanent(error)
        assert is_backend_unavailable(error)

    def test_spawn_failure_is_unavailable_only(self):
        error = SpawnError("permission denied")
        assert is_backend_unavailable(error)
        assert not is_transient(error)
        assert not is_permanent(error)

    def test_command_error_is_neither(self):
        error = CommandError("exit 1", returncode=1)
        assert not is_transient(error)
        assert not is_permanent(error)
        assert not is_backend_unavailable(error)

    def test_plain_exceptions_are_unclassified(self):
        error = RuntimeError("boom")
        assert not is_transient(error)
        assert not is_permanent(error)
        assert not is_backend_unavailable(error)


class TestErrorDetails:

    def test_codes_are_stable(self):
        assert CLINotFoundError().code == "CLI_NOT_FOUND"
        assert CLITimeoutError().code == "TIMEOUT"
        assert ParseError("x").code == "JSON_PARSE_ERROR"
        assert OutputLimitError("x").code == "OUTPUT_LIMIT"
        assert BackendUnavailableError("x").code == "BACKEND_UNAVAILABLE"

    def test_output_limit_is_a_command_error(self):
        assert isinstance(OutputLimitError("too big"), CommandError)

    def test_parse_error_keeps_output(self):
        error = ParseError("bad", output="not json")
        assert error.output == "not json"

    def test_graphql_error_joins_messages(self):
        error = GraphQLError([{"message": "first"}, {"message": "second"}])
        assert str(error) == "GraphQL error: first, second"
        assert len(error.errors) == 2

    def test_validation_error_is_value_error(self):
        assert isinstance(ValidationError("bad title"), ValueError)
        assert isinstance(ValidationError("bad title"), BeansError)

    def test_cause_is_kept(self):
        cause = FileNotFoundError("beans")
        error = CLINotFoundError("missing", cause=cause)
        assert error.cause is cause


class TestUserMessage:

    def test_domain_error_message(self):
        assert get_user_message(CommandError("bean not found")) == "bean not found"

    def test_plain_exception_message(self):
        assert get_user_message(RuntimeError("boom")) == "boom"

    def test_empty_exception_falls_back_to_class_name(self):
        assert get_user_message(RuntimeError()) == "RuntimeError"
