"""
Shared pytest fixtures for the beanpod test suite.

Every fixture runs against fakes from tests/factories.py backed by a
temporary workspace, so no beans binary is needed.

Usage in tests:
    def test_something(service, gateway, workspace):
        gateway.on_graphql("ListBeans", {"beans": []})
        assert service.list_beans() == []
"""

import pytest

from tests.factories import ManualClock, RecordingNotifier, ScriptedGateway, make_service


@pytest.fixture
def workspace(tmp_path):
    """Workspace root with an empty .beans directory."""
    root = tmp_path / "workspace"
    (root / ".beans").mkdir(parents=True)
    return root


@pytest.fixture
def beans_dir(workspace):
    return workspace / ".beans"


@pytest.fixture
def gateway():
    return ScriptedGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def service(workspace, gateway, notifier, clock):
    """
    BeansService over a scripted gateway.

    Example:
        def test_show(service, gateway):
            gateway.on_graphql("ShowBean", {"bean": raw_bean("bean-a1")})
            assert service.show_bean("bean-a1").id == "bean-a1"
    """
    return make_service(workspace, gateway, notifier=notifier, clock=clock)
