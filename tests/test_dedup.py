"""
Tests for request deduplication.

Concurrency tests hold the leader inside its call with an Event, wait until
followers are registered, then release it.
"""

import threading
import time

import pytest

from beanpod.services.dedup import (
    RequestDeduplicator, fingerprint_command, fingerprint_graphql,
)


def wait_until(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


# ============================================================================
# FINGERPRINTS
# ============================================================================

class TestFingerprints:

    def test_command_fingerprint_is_bounded(self):
        fp = fingerprint_command(["list", "--json", "x" * 10000])
        assert fp.startswith("exec:")
        assert len(fp) == len("exec:") + 16

    def test_graphql_fingerprint_is_bounded(self):
        fp = fingerprint_graphql("query ListBeans { beans { id } }", {"filter": {}})
        assert fp.startswith("graphql:")
        assert len(fp) == len("graphql:") + 16

    def test_same_request_same_fingerprint(self):
        assert fingerprint_command(["a", "b"]) == fingerprint_command(["a", "b"])

    def test_different_args_differ(self):
        assert fingerprint_command(["a", "b"]) != fingerprint_command(["a", "c"])

    def test_variable_key_order_does_not_matter(self):
        first = fingerprint_graphql("q", {"a": 1, "b": 2})
        second = fingerprint_graphql("q", {"b": 2, "a": 1})
        assert first == second

    def test_variables_distinguish_requests(self):
        assert fingerprint_graphql("q", {"id": "a"}) != fingerprint_graphql("q", {"id": "b"})

    def test_raw_payload_not_in_fingerprint(self):
        fp = fingerprint_graphql("q", {"secret": "hunter2"})
        assert "hunter2" not in fp


# ============================================================================
# CONCURRENT EXECUTION
# ============================================================================

class TestConcurrentRequests:

    def _start(self, fn):
        thread = threading.Thread(target=fn, daemon=True)
        thread.start()
        return thread

    def test_identical_concurrent_requests_execute_once(self):
        dedup = RequestDeduplicator()
        started = threading.Event()
        release = threading.Event()
        calls = []
        results = []

        def backend():
            calls.append(1)
            started.set()
            release.wait(5)
            return {"beans": ["a"]}

        def caller():
            results.append(dedup.run("graphql:abc", backend))

        leader = self._start(caller)
        assert started.wait(5)
        followers = [self._start(caller) for _ in range(2)]
        assert wait_until(lambda: dedup.waiters("graphql:abc") == 2)

        release.set()
        for thread in [leader] + followers:
            thread.join(5)

        assert len(calls) == 1
        assert len(results) == 3
        assert all(r == {"beans": ["a"]} for r in results)
        assert dedup.in_flight_count == 0

    def test_followers_see_leader_exception(self):
        dedup = RequestDeduplicator()
        started = threading.Event()
        release = threading.Event()
        failure = RuntimeError("backend down")
        errors = []

        def backend():
            started.set()
            release.wait(5)
            raise failure

        def caller():
            try:
                dedup.run("exec:xyz", backend)
            except RuntimeError as e:
                errors.append(e)

        leader = self._start(caller)
        assert started.wait(5)
        follower = self._start(caller)
        assert wait_until(lambda: dedup.waiters("exec:xyz") == 1)

        release.set()
        leader.join(5)
        follower.join(5)

        assert errors == [failure, failure]
        assert dedup.in_flight_count == 0

    def test_different_fingerprints_run_independently(self):
        dedup = RequestDeduplicator()
        release = threading.Event()
        calls = []

        def backend(name):
            def fn():
                calls.append(name)
                release.wait(5)
                return name
            return fn

        threads = [self._start(lambda n=n: dedup.run(f"exec:{n}", backend(n))) for n in ("a", "b")]
        assert wait_until(lambda: dedup.in_flight_count == 2)
        release.set()
        for thread in threads:
            thread.join(5)

        assert sorted(calls) == ["a", "b"]


class TestSequentialRequests:

    def test_completed_request_is_not_reused(self):
        dedup = RequestDeduplicator()
        calls = []

        def backend():
            calls.append(1)
            return len(calls)

        assert dedup.run("exec:same", backend) == 1
        assert dedup.run("exec:same", backend) == 2
        assert dedup.in_flight_count == 0

    def test_failed_request_is_removed(self):
        dedup = RequestDeduplicator()

        def backend():
            raise ValueError("nope")

        with pytest.raises(ValueError):
            dedup.run("exec:fail", backend)

        assert dedup.in_flight_count == 0
        assert dedup.waiters("exec:fail") == 0

    def test_leader_runs_on_calling_thread(self):
        dedup = RequestDeduplicator()

        assert dedup.run("exec:thread", threading.current_thread) is threading.current_thread()
