"""
Tests for dangling parent clearing.
"""

from beanpod.core.normalizer import normalize_bean
from beanpod.errors import CommandError
from beanpod.services.integrity import OrphanGroup, clear_dangling_parents
from tests.factories import RecordingNotifier, raw_bean


def bean(bean_id, parent=None):
    return normalize_bean(raw_bean(bean_id, parentId=parent))


class FakeUpdater:
    """Clears parents, failing for ids listed in `fail`."""

    def __init__(self, fail=()):
        self.fail = set(fail)
        self.calls = []

    def __call__(self, bean_id):
        self.calls.append(bean_id)
        if bean_id in self.fail:
            raise CommandError("write refused")
        return bean(bean_id)


class TestClearDanglingParents:

    def test_clears_and_notifies_once_per_parent(self):
        beans = [bean("bean-p1"), bean("bean-c1", "bean-gone"), bean("bean-c2", "bean-gone"),
                 bean("bean-c3", "bean-p1")]
        updater = FakeUpdater()
        notifier = RecordingNotifier()

        report = clear_dangling_parents(beans, updater, notifier)

        assert updater.calls == ["bean-c1", "bean-c2"]
        assert report.cleared == 2
        assert report.failed == 0
        assert [b.parent for b in beans] == [None, None, None, "bean-p1"]
        assert notifier.messages == [
            "Bean(s) c1, c2 have been orphaned because their parent (bean-gone) no longer exists."
        ]

    def test_consistent_listing_makes_no_calls(self):
        beans = [bean("bean-p1"), bean("bean-c1", "bean-p1")]
        updater = FakeUpdater()
        notifier = RecordingNotifier()

        clear_dangling_parents(beans, updater, notifier)

        assert updater.calls == []
        assert notifier.warnings == []

    def test_second_pass_is_a_no_op(self):
        beans = [bean("bean-c1", "bean-gone")]
        updater = FakeUpdater()
        clear_dangling_parents(beans, updater, RecordingNotifier())
        clear_dangling_parents(beans, updater, RecordingNotifier())
        assert updater.calls == ["bean-c1"]

    def test_partial_failure_summary(self):
        beans = [bean("bean-c1", "bean-gone"), bean("bean-c2", "bean-gone")]
        notifier = RecordingNotifier()

        report = clear_dangling_parents(beans, FakeUpdater(fail={"bean-c2"}), notifier)

        assert report.cleared == 1
        assert report.failed == 1
        assert beans[1].parent == "bean-gone"
        assert notifier.messages == [
            "Attempted to orphan 2 child(ren) of bean-gone: 1 succeeded, 1 failed. See output for details."
        ]


class TestOrphanGroup:

    def test_message_lists_labels(self):
        group = OrphanGroup(parent_id="bean-x", succeeded=["a1"])
        assert group.message.startswith("Bean(s) a1 have been orphaned")
