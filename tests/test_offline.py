"""
Tests for list filters and the offline snapshot.
"""

from beanpod.core.normalizer import normalize_bean
from beanpod.services.offline import BeanFilter, OfflineCache
from tests.factories import ManualClock, raw_bean


def sample_beans():
    return [
        normalize_bean(raw_bean("bean-a1", title="Fix login", status="todo", type="bug")),
        normalize_bean(raw_bean("bean-b2", title="Ship release", status="completed", type="task",
                                parentId="bean-a1")),
        normalize_bean(raw_bean("bean-c3", title="Write docs", status="todo", type="task",
                                tags=["Docs"])),
    ]


class TestBeanFilter:

    def test_empty_filter_matches_everything(self):
        bean_filter = BeanFilter()
        assert not bean_filter.is_filtered
        assert len(bean_filter.apply(sample_beans())) == 3
        assert bean_filter.to_graphql() == {}

    def test_status_and_type(self):
        result = BeanFilter(status=["todo"], type=["task"]).apply(sample_beans())
        assert [b.id for b in result] == ["bean-c3"]

    def test_parent(self):
        result = BeanFilter(parent="bean-a1").apply(sample_beans())
        assert [b.id for b in result] == ["bean-b2"]

    def test_search_is_case_insensitive(self):
        assert [b.id for b in BeanFilter(search="LOGIN").apply(sample_beans())] == ["bean-a1"]
        assert [b.id for b in BeanFilter(search="docs").apply(sample_beans())] == ["bean-c3"]

    def test_to_graphql_omits_unset(self):
        assert BeanFilter(status=["todo"], search="x").to_graphql() == {"status": ["todo"], "search": "x"}


class TestOfflineCache:

    def test_empty_cache(self):
        cache = OfflineCache(ttl=300, clock=ManualClock())
        assert not cache.is_valid()
        assert cache.get() is None

    def test_get_filters_snapshot(self):
        cache = OfflineCache(ttl=300, clock=ManualClock())
        cache.update(sample_beans())
        todo = cache.get(BeanFilter(status=["todo"]))
        assert [b.id for b in todo] == ["bean-a1", "bean-c3"]
        assert len(cache.get()) == 3

    def test_expiry(self):
        clock = ManualClock()
        cache = OfflineCache(ttl=300, clock=clock)
        cache.update(sample_beans())
        clock.advance(299)
        assert cache.is_valid()
        clock.advance(1)
        assert cache.get() is None

    def test_get_returns_copy(self):
        cache = OfflineCache(ttl=300, clock=ManualClock())
        cache.update(sample_beans())
        cache.get().clear()
        assert len(cache.get()) == 3

    def test_clear(self):
        cache = OfflineCache(ttl=300, clock=ManualClock())
        cache.update(sample_beans())
        cache.clear()
        assert cache.get() is None

    def test_degraded_transition_reported_once(self):
        cache = OfflineCache()
        assert cache.enter_degraded() is True
        assert cache.enter_degraded() is False
        assert cache.degraded
        cache.leave_degraded()
        assert not cache.degraded
        assert cache.enter_degraded() is True
