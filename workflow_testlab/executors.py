# workflow_testlab/executors.py
"""Per node-type behaviour.

Every executor is a coroutine ``(run, node) -> NodeResult`` registered for one
or more node type tags. Executors read and extend the shared context through
``run`` and decide which successors the driver visits next.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .collaborators import Collaborators
from .conditions import evaluate_branch, evaluate_condition
from .config import Settings
from .interpolation import interpolate, interpolate_values, lookup
from .models import LogKind, Node, NodeResult, WorkflowGraph
from .state import ExecutionStateStore

Executor = Callable[["RunContext", Node], Awaitable[NodeResult]]

EXECUTORS: Dict[str, Executor] = {}

# node types that start a run
TRIGGER_TYPES = {"trigger", "fathomWebhook", "webhookIntake"}


def register_executor(*node_types: str):
    def decorator(fn: Executor) -> Executor:
        for node_type in node_types:
            EXECUTORS[node_type] = fn
        return fn
    return decorator


def get_executor(node_type: str) -> Executor:
    return EXECUTORS.get(node_type, execute_passthrough)


@dataclass
class RunContext:
    """What an executor can see and touch during one run."""

    store: ExecutionStateStore
    graph: WorkflowGraph
    settings: Settings
    collaborators: Collaborators
    payload: Dict[str, Any]
    # set by stop(); one event per run
    abort: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def aborted(self) -> bool:
        return self.abort.is_set()

    @property
    def context(self) -> Dict[str, Any]:
        return self.store.context

    def update_context(self, values: Dict[str, Any]) -> None:
        # an aborted run no longer owns the store
        if self.aborted:
            return
        self.store.update_context(values)

    def interpolate(self, template: Any) -> Any:
        return interpolate(template, self.store.context)

    def log(self, kind: LogKind, node: Node, message: str, payload: Any = None, success: Optional[bool] = None):
        if self.aborted:
            return None
        return self.store.add_log(kind, node.id, node.label, message, payload, success)


async def execute_passthrough(run: RunContext, node: Node) -> NodeResult:
    return NodeResult(result={"success": True}, next_nodes=run.graph.successors(node.id))


@register_executor("trigger")
async def execute_trigger(run: RunContext, node: Node) -> NodeResult:
    run.log(LogKind.DATA, node, "Trigger activated with test data", run.payload)
    return NodeResult(
        result={"triggered": True, "data": run.payload},
        next_nodes=run.graph.successors(node.id),
    )


@register_executor("condition")
async def execute_condition(run: RunContext, node: Node) -> NodeResult:
    outcome = evaluate_condition(node, run.context, strict=run.settings.strict_conditions)
    details = dict(outcome.details)
    details["recognized"] = outcome.recognized
    run.log(LogKind.CONDITION, node, outcome.message, details, outcome.result)

    graph = run.graph
    successors = graph.successors(node.id)
    if graph.has_handles(node.id, ("true", "false")):
        taken = graph.successors_via(node.id, ("true" if outcome.result else "false",))
    else:
        # unlabelled edges: everything on true, nothing on false
        taken = successors if outcome.result else []
    taken_ids = {n.id for n in taken}
    return NodeResult(
        result={"conditionMet": outcome.result},
        next_nodes=taken,
        not_taken=[n for n in successors if n.id not in taken_ids],
    )


@register_executor("router")
async def execute_router(run: RunContext, node: Node) -> NodeResult:
    logic = node.data.get("routingLogic") or "all"
    run.log(LogKind.DATA, node, f"Routing with logic: {logic}")
    return NodeResult(result={"routed": True, "logic": logic}, next_nodes=run.graph.successors(node.id))


@register_executor("conditionalBranch")
async def execute_conditional_branch(run: RunContext, node: Node) -> NodeResult:
    branches: List[Dict[str, Any]] = node.data.get("conditions") or node.data.get("branches") or []
    matched: List[str] = []
    next_nodes: List[Node] = []
    seen = set()

    for branch in branches:
        outcome = evaluate_branch(branch, run.context, strict=run.settings.strict_conditions)
        run.log(LogKind.CONDITION, node, outcome.message, outcome.details, outcome.result)
        if not outcome.result:
            continue
        handles = [h for h in (branch.get("id"), branch.get("output")) if h]
        matched.append(branch.get("id") or branch.get("output"))
        for target in run.graph.successors_via(node.id, handles):
            if target.id not in seen:
                seen.add(target.id)
                next_nodes.append(target)

    not_taken = [n for n in run.graph.successors(node.id) if n.id not in seen]
    return NodeResult(
        result={"matchedBranches": matched, "branchCount": len(branches)},
        next_nodes=next_nodes,
        not_taken=not_taken,
    )


# generic actions


def _action_create_task(run: RunContext, node: Node) -> Dict[str, Any]:
    result = {
        "task_created": True,
        "task_id": f"task_{node.id}",
        "task_title": run.interpolate(node.option("taskTitle", "Test Task")),
    }
    run.log(LogKind.DATA, node, f'Mock: Created task "{result["task_title"]}"', result)
    return result


def _action_send_slack(run: RunContext, node: Node) -> Dict[str, Any]:
    result = {
        "slack_sent": True,
        "channel": node.option("slackChannel", "#general"),
        "message": run.interpolate(node.option("slackMessage", "Test message")),
    }
    run.log(LogKind.DATA, node, f"Mock: Sent Slack message to {result['channel']}", result)
    return result


def _action_send_email(run: RunContext, node: Node) -> Dict[str, Any]:
    result = {
        "email_sent": True,
        "to": run.interpolate(node.option("emailTo", "test@example.com")),
        "subject": run.interpolate(node.option("emailSubject", "Test Email")),
    }
    run.log(LogKind.DATA, node, f"Mock: Sent email to {result['to']}", result)
    return result


def _action_update_fields(run: RunContext, node: Node) -> Dict[str, Any]:
    updates = node.option("fieldUpdates", [])
    applied = [
        {"field": u.get("field"), "value": run.interpolate(u.get("value"))}
        for u in updates
        if u.get("field")
    ]
    run.update_context({u["field"]: u["value"] for u in applied})
    result = {"fields_updated": True, "updates": applied}
    run.log(LogKind.DATA, node, f"Mock: Updated {len(applied)} fields", result)
    return result


def _action_add_note(run: RunContext, node: Node) -> Dict[str, Any]:
    result = {"note_added": True, "content": run.interpolate(node.option("noteContent", "Test note"))}
    run.log(LogKind.DATA, node, "Mock: Added note", result)
    return result


def _action_recurring_task(run: RunContext, node: Node) -> Dict[str, Any]:
    result = {
        "recurring_task_created": True,
        "pattern": node.option("recurrencePattern", "weekly"),
        "occurrences": node.option("occurrences", 10),
    }
    run.log(
        LogKind.DATA,
        node,
        f"Mock: Created recurring task ({result['pattern']}, {result['occurrences']} times)",
        result,
    )
    return result


def _action_send_webhook(run: RunContext, node: Node) -> Dict[str, Any]:
    result = {
        "webhook_sent": True,
        "url": run.interpolate(node.option("webhookUrl", "https://example.com/webhook")),
        "method": node.option("httpMethod", "POST"),
    }
    run.log(LogKind.DATA, node, f"Mock: Sent {result['method']} webhook to {result['url']}", result)
    return result


def _action_create_task_batch(run: RunContext, node: Node) -> Dict[str, Any]:
    items = lookup(run.context, "processedActions.items") or []
    template = node.option("taskTemplate", {"title": "{{actionItem.title}}"})
    tasks = []
    for i, item in enumerate(items):
        scoped = dict(run.context, actionItem=item)
        task = interpolate_values(template, scoped)
        task["id"] = f"task_{node.id}_{i + 1}"
        tasks.append(task)
    run.update_context({"createdTasks": {"ids": [t["id"] for t in tasks], "count": len(tasks)}})
    result = {"tasks_created": len(tasks), "tasks": tasks}
    run.log(LogKind.DATA, node, f"Mock: Created {len(tasks)} tasks from action items", result)
    return result


def _action_upsert_deal(run: RunContext, node: Node) -> Dict[str, Any]:
    score = lookup(run.context, "aiAnalysis.coaching.opportunity_score") or 0
    threshold = node.option("scoreThreshold", 60)
    created = score >= threshold and bool(node.option("autoCreateEnabled", True))
    deal = {
        "id": f"deal_{node.id}",
        "created": created,
        "name": run.interpolate(node.option("dealName", "Test Deal")),
        "stage": node.option("dealStage", "SQL"),
        "value": score * 1000,
    }
    run.update_context({"deal": deal})
    verb = "Created" if created else "Skipped creating"
    run.log(LogKind.DATA, node, f'Mock: {verb} deal "{deal["name"]}" (score {score} vs {threshold})', deal)
    return {"deal": deal}


def _action_multi_channel_notify(run: RunContext, node: Node) -> Dict[str, Any]:
    channels = node.option("channels", ["slack"])
    slack = node.option("slackConfig", {})
    email = node.option("emailConfig", {})
    sent = {}
    if "slack" in channels:
        sent["slack"] = {
            "channel": slack.get("channel", "#general"),
            "message": run.interpolate(slack.get("message", "Workflow notification")),
        }
    if "email" in channels:
        sent["email"] = {
            "to": run.interpolate(email.get("to", "test@example.com")),
            "subject": run.interpolate(email.get("subject", "Workflow notification")),
        }
    run.log(LogKind.DATA, node, f"Mock: Notified via {', '.join(sent) or 'no channels'}", sent)
    return {"notified": list(sent), "messages": sent}


ACTIONS: Dict[str, Callable[[RunContext, Node], Dict[str, Any]]] = {
    "create_task": _action_create_task,
    "send_slack": _action_send_slack,
    "send_message": _action_send_slack,
    "send_email": _action_send_email,
    "update_fields": _action_update_fields,
    "add_note": _action_add_note,
    "create_recurring_task": _action_recurring_task,
    "send_webhook": _action_send_webhook,
    "create_task_batch": _action_create_task_batch,
    "create_or_update_deal": _action_upsert_deal,
    "multi_channel_notify": _action_multi_channel_notify,
}


@register_executor("action")
async def execute_action(run: RunContext, node: Node) -> NodeResult:
    action_type = node.data.get("actionType") or node.data.get("type") or node.data.get("action")
    handler = ACTIONS.get(action_type)
    if handler is None:
        run.log(LogKind.DATA, node, f'Mock: Executed action type "{action_type}"')
        result: Dict[str, Any] = {"success": True}
    else:
        result = {"success": True, **handler(run, node)}
    return NodeResult(result=result, next_nodes=run.graph.successors(node.id))


# AI agent simulation

_EXTRACTED_SAMPLES = {
    "text": lambda name: f"Sample {name.replace('_', ' ')}",
    "number": lambda name: 42,
    "boolean": lambda name: True,
    "date": lambda name: "2024-01-15",
    "email": lambda name: f"{name}@example.com",
    "list": lambda name: [f"{name} item 1", f"{name} item 2"],
}


def _structured_response(prompt: str) -> Dict[str, Any]:
    return {
        "summary": f"Simulated analysis of: {prompt[:80]}" if prompt else "Simulated analysis",
        "sentiment": "positive",
        "opportunity_score": 72,
        "talk_time_analysis": {"customer_percentage": 62, "rep_percentage": 38},
        "buying_signals": ["Asked about pricing", "Requested a follow-up"],
        "risk_factors": ["Budget not confirmed"],
        "coaching_priorities": ["Confirm budget", "Define next steps"],
        "manager_review_needed": False,
    }


@register_executor("aiAgent", "ai_agent", "ai-agent")
async def execute_ai_agent(run: RunContext, node: Node) -> NodeResult:
    data = node.data
    output_format = data.get("outputFormat") or "text"
    model = data.get("model") or "gpt-4"
    prompt = run.interpolate(data.get("userPrompt") or data.get("prompt") or "")

    analysis: Dict[str, Any] = {"model": model, "format": output_format, "prompt": prompt}
    if output_format in ("structured_json", "json", "structured"):
        structured = _structured_response(prompt)
        analysis["output"] = structured
        analysis["coaching"] = structured
    elif output_format in ("tool_use", "tools", "function_call"):
        tools = data.get("tools") or [{"name": "create_task"}]
        analysis["output"] = {
            "tool_calls": [
                {"tool": t.get("name") if isinstance(t, dict) else str(t), "arguments": {"source": node.id}}
                for t in tools
            ]
        }
    else:
        analysis["output"] = f"[{model}] Simulated response to: {prompt[:120]}" if prompt else f"[{model}] Simulated response"

    extracted: Dict[str, Any] = {}
    for rule in data.get("extractionRules") or []:
        name = rule.get("field") or rule.get("name")
        if not name:
            continue
        sample = _EXTRACTED_SAMPLES.get(rule.get("type") or "text", _EXTRACTED_SAMPLES["text"])
        extracted[name] = sample(name)
    if extracted:
        analysis["extracted"] = extracted

    # extracted fields never replace the analysis record
    run.update_context({**extracted, "aiAnalysis": analysis})
    message = f"Mock: {model} produced {output_format} output"
    if extracted:
        message += f", extracted {len(extracted)} fields"
    run.log(LogKind.DATA, node, message, analysis)
    return NodeResult(result={"success": True, **analysis}, next_nodes=run.graph.successors(node.id))
