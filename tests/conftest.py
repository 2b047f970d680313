from typing import List

import pytest

from workflow_testlab.collaborators import Collaborators
from workflow_testlab.config import Settings
from workflow_testlab.engine import WorkflowTestEngine
from workflow_testlab.models import RunState


class StateRecorder:
    """Observer that keeps every snapshot the engine pushes."""

    def __init__(self):
        self.states: List[RunState] = []

    def __call__(self, state: RunState) -> None:
        self.states.append(state)

    @property
    def last(self) -> RunState:
        return self.states[-1]


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, node_delay_seconds=0, log_json=False)


@pytest.fixture
def recorder() -> StateRecorder:
    return StateRecorder()


@pytest.fixture
def make_engine(settings, recorder):
    """Build an engine with no per-node delay and offline collaborators."""

    def _make(nodes, edges, **kwargs) -> WorkflowTestEngine:
        kwargs.setdefault("settings", settings)
        kwargs.setdefault("collaborators", Collaborators.offline())
        kwargs.setdefault("on_state_change", recorder)
        return WorkflowTestEngine(nodes, edges, **kwargs)

    return _make
