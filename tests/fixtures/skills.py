"""Skill registry fixtures for testing."""

import pytest

from skillcore.events import EventBus
from skillcore.skills.registry import SkillRegistry
from tests.helpers.builders import build_dependency, build_skill


class RecordingListener:
    """Event listener that keeps every event it receives."""

    def __init__(self):
        self.events = []

    def handle_event(self, event) -> None:
        self.events.append(event)

    def of_type(self, event_type):
        return [e for e in self.events if e.type == event_type]


@pytest.fixture
def event_bus():
    """Fresh event bus per test."""
    return EventBus()


@pytest.fixture
def recorder(event_bus):
    """Listener subscribed to the test event bus."""
    listener = RecordingListener()
    event_bus.subscribe(listener)
    return listener


@pytest.fixture
def registry(event_bus):
    """Empty in-memory registry publishing on the test bus."""
    return SkillRegistry(event_bus=event_bus)


@pytest.fixture
def add_skill():
    """Layer 1 skill bound to the built-in add function."""
    return build_skill(
        "add",
        name="Add",
        function="add",
        parameters=[
            {"name": "a", "type": "number"},
            {"name": "b", "type": "number"},
        ],
    )


@pytest.fixture
def echo_skill():
    """Layer 2 skill running echo in a sandbox."""
    return build_skill("echo-cmd", layer=2, name="Echo", command="echo")


@pytest.fixture
def populated_registry(registry, add_skill, echo_skill):
    """Registry with add, echo-cmd and a layer 1 skill depending on add."""
    registry.register(add_skill)
    registry.register(echo_skill)
    registry.register(
        build_skill(
            "double-add",
            name="Double Add",
            function="add",
            dependencies=[build_dependency("add")],
        )
    )
    return registry
