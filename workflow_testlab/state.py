# workflow_testlab/state.py
import copy
import logging
from typing import Any, Callable, Dict, Iterable, Optional

from .models import LogEntry, LogKind, NodeExecutionState, NodeStatus, RunState, utcnow

logger = logging.getLogger(__name__)

StateObserver = Callable[[RunState], None]


class ExecutionStateStore:
    """Holds the single live run and pushes a snapshot to one observer after every change."""

    def __init__(self, node_ids: Iterable[str], on_state_change: StateObserver, default_speed: float = 1.0):
        self._node_ids = list(node_ids)
        self._observer = on_state_change
        self._default_speed = default_speed
        self.run = self._initial_state()

    def _initial_state(self) -> RunState:
        return RunState(
            node_states={node_id: NodeExecutionState() for node_id in self._node_ids},
            speed_multiplier=self._default_speed,
        )

    def snapshot(self) -> RunState:
        return self.run.model_copy(deep=True)

    def broadcast(self) -> None:
        self._observer(self.snapshot())

    # run lifecycle

    def begin_run(self, payload: Dict[str, Any], scenario_name: Optional[str]) -> None:
        self.run.is_running = True
        self.run.is_paused = False
        self.run.current_node_id = None
        self.run.execution_path = []
        self.run.logs = []
        self.run.shared_context = copy.deepcopy(payload)
        self.run.scenario_name = scenario_name
        self.run.started_at = utcnow()
        self.run.ended_at = None
        self.run.node_states = {node_id: NodeExecutionState() for node_id in self._node_ids}
        self.broadcast()

    def finish_run(self) -> None:
        self.run.is_running = False
        self.run.is_paused = False
        self.run.current_node_id = None
        self.run.ended_at = utcnow()
        self.broadcast()

    def reset(self) -> None:
        self.run = self._initial_state()
        self.broadcast()

    def set_paused(self, paused: bool) -> None:
        self.run.is_paused = paused
        self.broadcast()

    def set_speed(self, multiplier: float) -> None:
        self.run.speed_multiplier = multiplier
        self.broadcast()

    def abort(self) -> None:
        """Stop bookkeeping: nodes caught mid-flight go back to idle."""
        self.run.is_running = False
        self.run.is_paused = False
        self.run.current_node_id = None
        if self.run.started_at is not None and self.run.ended_at is None:
            self.run.ended_at = utcnow()
        for state in self.run.node_states.values():
            if state.status in (NodeStatus.ACTIVE, NodeStatus.WAITING):
                state.status = NodeStatus.IDLE
        self.broadcast()

    # node transitions

    def mark_active(self, node_id: str) -> None:
        state = self._node(node_id)
        state.status = NodeStatus.ACTIVE
        state.started_at = utcnow()
        state.error = None
        state.input_snapshot = copy.deepcopy(self.run.shared_context)
        self.run.current_node_id = node_id
        self.run.execution_path.append(node_id)
        self.broadcast()

    def mark_waiting(self, node_id: str) -> None:
        self._node(node_id).status = NodeStatus.WAITING
        self.broadcast()

    def mark_success(self, node_id: str, duration_ms: float, output: Dict[str, Any]) -> None:
        state = self._node(node_id)
        state.status = NodeStatus.SUCCESS
        state.duration_ms = duration_ms
        state.output_snapshot = copy.deepcopy(output)
        self.broadcast()

    def mark_failed(self, node_id: str, duration_ms: float, error: str) -> None:
        state = self._node(node_id)
        state.status = NodeStatus.FAILED
        state.duration_ms = duration_ms
        state.error = error
        self.broadcast()

    def mark_skipped(self, node_id: str) -> None:
        self._node(node_id).status = NodeStatus.SKIPPED
        self.broadcast()

    def _node(self, node_id: str) -> NodeExecutionState:
        # nodes missing from the initial map still get a state record
        return self.run.node_states.setdefault(node_id, NodeExecutionState())

    # trace

    def add_log(
        self,
        kind: LogKind,
        node_id: str,
        node_label: str,
        message: str,
        payload: Any = None,
        success: Optional[bool] = None,
    ) -> LogEntry:
        entry = LogEntry(
            node_id=node_id,
            node_label=node_label,
            kind=kind,
            message=message,
            payload=copy.deepcopy(payload),
            success=success,
        )
        self.run.logs.append(entry)
        logger.debug("%s %s: %s", kind.value, node_label, message, extra={"node_id": node_id})
        self.broadcast()
        return entry

    # shared context

    @property
    def context(self) -> Dict[str, Any]:
        return self.run.shared_context

    def update_context(self, values: Dict[str, Any]) -> None:
        self.run.shared_context.update(values)
        self.broadcast()
