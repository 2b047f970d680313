# workflow_testlab/models.py
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NodeStatus(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    WAITING = "waiting"


class LogKind(str, Enum):
    START = "start"
    COMPLETE = "complete"
    ERROR = "error"
    CONDITION = "condition"
    DATA = "data"
    SKIP = "skip"


class Node(BaseModel):
    # nodes come straight from the editor canvas; unknown keys are ignored
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)
    position: Optional[Dict[str, float]] = None

    @property
    def label(self) -> str:
        return self.data.get("label") or self.id

    def option(self, key: str, default: Any = None) -> Any:
        """Read a setting from ``data`` or, failing that, from ``data["config"]``."""
        value = self.data.get(key)
        if value is None:
            value = (self.data.get("config") or {}).get(key)
        return default if value is None else value


class Edge(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    source: str
    target: str
    id: Optional[str] = None
    source_handle: Optional[str] = Field(default=None, alias="sourceHandle")
    target_handle: Optional[str] = Field(default=None, alias="targetHandle")


class WorkflowGraph(BaseModel):
    nodes: List[Node]
    edges: List[Edge] = Field(default_factory=list)

    def get_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def outgoing(self, node_id: str) -> List[Edge]:
        return [e for e in self.edges if e.source == node_id]

    def _targets(self, edges: Iterable[Edge]) -> List[Node]:
        nodes: List[Node] = []
        seen: Set[str] = set()
        for edge in edges:
            node = self.get_node(edge.target)
            # edges pointing at missing nodes are dropped
            if node is not None and node.id not in seen:
                seen.add(node.id)
                nodes.append(node)
        return nodes

    def successors(self, node_id: str) -> List[Node]:
        return self._targets(self.outgoing(node_id))

    def successors_via(self, node_id: str, handles: Iterable[str]) -> List[Node]:
        wanted = set(handles)
        return self._targets(e for e in self.outgoing(node_id) if e.source_handle in wanted)

    def has_handles(self, node_id: str, handles: Iterable[str]) -> bool:
        wanted = set(handles)
        return any(e.source_handle in wanted for e in self.outgoing(node_id))

    def trigger_nodes(self, trigger_types: Iterable[str]) -> List[Node]:
        types = set(trigger_types)
        return [n for n in self.nodes if n.type in types]

    def downstream(self, start: Iterable[Node], exclude: Set[str]) -> List[Node]:
        """Breadth-first walk from ``start`` (inclusive), never entering ids in ``exclude``."""
        order: List[Node] = []
        seen: Set[str] = set(exclude)
        queue = [n for n in start]
        while queue:
            node = queue.pop(0)
            if node.id in seen:
                continue
            seen.add(node.id)
            order.append(node)
            queue.extend(self.successors(node.id))
        return order


class NodeExecutionState(BaseModel):
    status: NodeStatus = NodeStatus.IDLE
    started_at: Optional[datetime] = None
    duration_ms: Optional[float] = None
    error: Optional[str] = None
    input_snapshot: Optional[Dict[str, Any]] = None
    output_snapshot: Optional[Dict[str, Any]] = None


class LogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utcnow)
    node_id: str
    node_label: str
    kind: LogKind
    message: str
    payload: Optional[Any] = None
    success: Optional[bool] = None


class RunState(BaseModel):
    is_running: bool = False
    is_paused: bool = False
    current_node_id: Optional[str] = None
    node_states: Dict[str, NodeExecutionState] = Field(default_factory=dict)
    execution_path: List[str] = Field(default_factory=list)
    shared_context: Dict[str, Any] = Field(default_factory=dict)
    speed_multiplier: float = 1.0
    logs: List[LogEntry] = Field(default_factory=list)
    scenario_name: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None


class NodeResult(BaseModel):
    result: Dict[str, Any] = Field(default_factory=dict)
    next_nodes: List[Node] = Field(default_factory=list)
    # successors a branching node decided against; used for skip propagation
    not_taken: List[Node] = Field(default_factory=list)


class TestScenario(BaseModel):
    __test__ = False

    id: str
    name: str
    description: str = ""
    trigger_type: str
    test_data: Dict[str, Any] = Field(default_factory=dict)


class ValidationIssue(BaseModel):
    line: int
    message: str


class PayloadValidation(BaseModel):
    is_valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
