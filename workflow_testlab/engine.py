# workflow_testlab/engine.py
import asyncio
import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Union

from . import connectors  # noqa: F401  registers the domain connector executors
from .collaborators import Collaborators
from .config import Settings, get_settings
from .exceptions import PayloadValidationError
from .executors import TRIGGER_TYPES, RunContext, get_executor
from .models import (
    Edge,
    LogKind,
    Node,
    NodeResult,
    NodeStatus,
    PayloadValidation,
    RunState,
    TestScenario,
    WorkflowGraph,
)
from .payloads import generate_test_data, get_scenario, parse_payload, validate_payload
from .state import ExecutionStateStore, StateObserver

logger = logging.getLogger(__name__)

# trigger node types that carry their own payload category
WEBHOOK_CATEGORIES = {"fathomWebhook": "meeting_recorded", "webhookIntake": "webhook_received"}


class WorkflowTestEngine:
    """Simulates one workflow graph at a time against a synthetic payload.

    Nodes are visited depth-first from the trigger(s), one at a time, with a
    speed-scaled pause between them so a human can follow along. Every state
    change is pushed to ``on_state_change`` as a full ``RunState`` snapshot.
    """

    def __init__(
        self,
        nodes: Iterable[Union[Node, Dict[str, Any]]],
        edges: Iterable[Union[Edge, Dict[str, Any]]],
        on_state_change: StateObserver,
        settings: Optional[Settings] = None,
        collaborators: Optional[Collaborators] = None,
    ):
        self.settings = settings or get_settings()
        self.graph = WorkflowGraph(nodes=list(nodes), edges=list(edges))
        # collaborators built here are closed by aclose(); injected ones belong to the caller
        self._owns_collaborators = collaborators is None
        self.collaborators = collaborators or Collaborators.from_settings(self.settings)
        self.store = ExecutionStateStore(
            [n.id for n in self.graph.nodes],
            on_state_change,
            default_speed=self.settings.default_speed,
        )
        self._resume = asyncio.Event()
        self._resume.set()
        self._run: Optional[RunContext] = None

    @property
    def state(self) -> RunState:
        return self.store.snapshot()

    # payload helpers

    @staticmethod
    def validate_payload(payload: Any) -> PayloadValidation:
        return validate_payload(payload)

    @staticmethod
    def generate_test_data(trigger_type: str, scenario: Optional[str] = None) -> Dict[str, Any]:
        return generate_test_data(trigger_type, scenario)

    def _trigger_category(self, trigger: Node) -> str:
        if trigger.type in WEBHOOK_CATEGORIES:
            return WEBHOOK_CATEGORIES[trigger.type]
        return trigger.data.get("type") or trigger.data.get("triggerType") or "manual"

    # control surface

    async def start(self, scenario: Union[TestScenario, str, None] = None) -> None:
        if self.store.run.is_running:
            logger.info("start ignored: a run is already active")
            return
        if isinstance(scenario, str):
            scenario = get_scenario(scenario)

        triggers = self.graph.trigger_nodes(TRIGGER_TYPES)
        if not triggers:
            self._no_trigger()
            return

        if scenario is not None and scenario.test_data:
            payload = dict(scenario.test_data)
        else:
            category = scenario.trigger_type if scenario else self._trigger_category(triggers[0])
            payload = generate_test_data(category, scenario.id if scenario else None)
        await self._execute_run(triggers, payload, scenario.name if scenario else "Default")

    async def start_with_custom_payload(self, payload: Union[str, Dict[str, Any]]) -> None:
        if self.store.run.is_running:
            logger.info("start ignored: a run is already active")
            return
        validation = validate_payload(payload)
        if not validation.is_valid:
            raise PayloadValidationError(validation)

        triggers = self.graph.trigger_nodes(TRIGGER_TYPES)
        if not triggers:
            self._no_trigger()
            return
        await self._execute_run(triggers, parse_payload(payload), "Custom Payload")

    def pause(self) -> None:
        self._resume.clear()
        self.store.set_paused(True)

    def resume(self) -> None:
        self.store.set_paused(False)
        self._resume.set()

    def stop(self) -> None:
        if self._run is not None:
            self._run.abort.set()
        # wake a driver parked on the pause event so it can see the abort
        self._resume.set()
        self.store.abort()

    def set_speed(self, multiplier: float) -> None:
        if multiplier <= 0:
            raise ValueError("speed multiplier must be positive")
        self.store.set_speed(multiplier)

    def reset(self) -> None:
        if self._run is not None:
            self._run.abort.set()
        self._resume.set()
        self._run = None
        self.store.reset()

    async def aclose(self) -> None:
        if self.store.run.is_running:
            self.stop()
        if self._owns_collaborators:
            await self.collaborators.aclose()

    # driver

    def _no_trigger(self) -> None:
        self.store.add_log(LogKind.ERROR, "no_trigger", "No Trigger", "No trigger node found in workflow", success=False)
        logger.warning("no trigger node found in workflow")

    async def _execute_run(self, triggers: List[Node], payload: Dict[str, Any], scenario_name: str) -> None:
        self._resume.set()
        self.store.begin_run(payload, scenario_name)
        run = RunContext(
            store=self.store,
            graph=self.graph,
            settings=self.settings,
            collaborators=self.collaborators,
            payload=payload,
        )
        self._run = run
        started = time.perf_counter()
        first = triggers[0]
        self.store.add_log(LogKind.START, first.id, first.label, f"Test started with scenario: {scenario_name}")
        logger.info("run started: scenario=%s triggers=%d", scenario_name, len(triggers))

        for trigger in triggers:
            if run.aborted:
                break
            if trigger.id not in self.store.run.execution_path:
                await self._execute_node(run, trigger)

        if run.aborted:
            logger.info("run stopped after %d nodes", len(self.store.run.execution_path))
            return
        elapsed = int((time.perf_counter() - started) * 1000)
        self.store.add_log(LogKind.COMPLETE, "test", "Test", f"Test completed in {elapsed}ms")
        self.store.finish_run()
        logger.info("run completed in %dms, %d nodes visited", elapsed, len(self.store.run.execution_path))

    async def _wait_if_paused(self, run: RunContext, node: Node) -> None:
        if self.store.run.is_paused and not run.aborted:
            self.store.mark_waiting(node.id)
        while self.store.run.is_paused and not run.aborted:
            await self._resume.wait()

    async def _visual_delay(self, run: RunContext) -> bool:
        """Sleep for the speed-scaled node delay; False if aborted meanwhile."""
        delay = self.settings.node_delay_seconds / self.store.run.speed_multiplier
        if delay > 0:
            try:
                await asyncio.wait_for(run.abort.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
        return not run.aborted

    async def _execute_node(self, run: RunContext, node: Node) -> None:
        if run.aborted:
            return
        await self._wait_if_paused(run, node)
        if run.aborted:
            return

        self.store.mark_active(node.id)
        if not await self._visual_delay(run):
            return

        started = time.perf_counter()
        try:
            outcome = await get_executor(node.type)(run, node)
        except Exception as exc:
            if run.aborted:
                return
            duration = (time.perf_counter() - started) * 1000
            message = str(exc) or type(exc).__name__
            self.store.mark_failed(node.id, duration, message)
            self.store.add_log(LogKind.ERROR, node.id, node.label, message, success=False)
            logger.warning(
                "node %s failed: %s",
                node.id,
                message,
                extra={"node_id": node.id, "node_type": node.type},
            )
            return
        if run.aborted:
            return

        duration = (time.perf_counter() - started) * 1000
        self.store.mark_success(node.id, duration, outcome.result)
        if node.type == "condition":
            passed = outcome.result.get("conditionMet")
            self.store.add_log(
                LogKind.CONDITION,
                node.id,
                node.label,
                f"Condition {'PASSED' if passed else 'FAILED'}",
                outcome.result,
                passed,
            )
        else:
            self.store.add_log(
                LogKind.COMPLETE, node.id, node.label, f"Completed in {duration:.0f}ms", outcome.result, True
            )

        for next_node in outcome.next_nodes:
            if run.aborted:
                return
            if next_node.id not in self.store.run.execution_path:
                await self._execute_node(run, next_node)

        if outcome.not_taken and not run.aborted:
            self._skip_unreached(node, outcome)

    def _skip_unreached(self, node: Node, outcome: NodeResult) -> None:
        visited = set(self.store.run.execution_path)
        reason = (
            "Skipped due to failed condition"
            if node.type == "condition"
            else f"Skipped: branch not taken at {node.label}"
        )
        for skipped in self.graph.downstream(outcome.not_taken, exclude=visited):
            if self.store.run.node_states[skipped.id].status == NodeStatus.SKIPPED:
                continue
            self.store.mark_skipped(skipped.id)
            self.store.add_log(LogKind.SKIP, skipped.id, skipped.label, reason)
