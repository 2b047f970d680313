"""Step-through test runner for visual sales workflow graphs."""
from .engine import WorkflowTestEngine
from .exceptions import (
    CollaboratorError,
    CollaboratorUnavailable,
    ConditionConfigError,
    PayloadValidationError,
    TestLabError,
    UnknownScenarioError,
)
from .models import Edge, LogEntry, LogKind, Node, NodeStatus, RunState, TestScenario
from .payloads import TEST_SCENARIOS, generate_test_data, validate_payload

__all__ = [
    "WorkflowTestEngine",
    "Node",
    "Edge",
    "RunState",
    "LogEntry",
    "LogKind",
    "NodeStatus",
    "TestScenario",
    "TEST_SCENARIOS",
    "generate_test_data",
    "validate_payload",
    "TestLabError",
    "PayloadValidationError",
    "ConditionConfigError",
    "CollaboratorError",
    "CollaboratorUnavailable",
    "UnknownScenarioError",
]
