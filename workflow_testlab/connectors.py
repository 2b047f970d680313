# workflow_testlab/connectors.py
"""Domain connectors: nodes that try a real side effect, then fall back to a mock.

Each connector writes its output under a fixed context key whichever path it
took, so downstream nodes can rely on it, and logs a ``data`` entry starting
with ``Real:`` or ``Mock:``.
"""
import logging
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .collaborators import maybe_await
from .executors import RunContext, register_executor
from .interpolation import interpolate_values, lookup
from .models import LogKind, Node, NodeResult

logger = logging.getLogger(__name__)

REAL = "real"
MOCK = "mock"


async def attempt(node: Node, label: str, call: Callable[[], Awaitable[Any]]) -> Tuple[str, Any]:
    """Run a collaborator call; any failure is reported as ``(MOCK, error message)``."""
    try:
        return REAL, await call()
    except Exception as exc:
        logger.info(
            "%s unavailable for %s, using mock: %s",
            label,
            node.id,
            exc,
            extra={"node_id": node.id, "node_type": node.type},
        )
        return MOCK, str(exc)


def _record(run: RunContext, node: Node, mode: str, message: str, key: str, value: Any, error: Optional[str] = None) -> None:
    run.update_context({key: value})
    payload = {"mode": mode, key: value}
    if error:
        payload["fallback_reason"] = error
    prefix = "Real" if mode == REAL else "Mock"
    run.log(LogKind.DATA, node, f"{prefix}: {message}", payload, True)


async def _user_id(run: RunContext) -> str:
    return await maybe_await(run.collaborators.auth.current_user_id())


@register_executor("fathomWebhook", "webhookIntake")
async def execute_webhook_intake(run: RunContext, node: Node) -> NodeResult:
    body = run.context.get("payload")
    if not isinstance(body, dict):
        body = dict(run.payload)
    topics = node.option("acceptedTopics") or node.option("payloadTypes") or []
    topic = run.context.get("topic")
    accepted = not topics or topic is None or topic in topics or any(t in body for t in topics)
    recording_id = body.get("fathom_id") or body.get("recording_id") or body.get("id")

    mode, outcome = await attempt(node, "auth provider", lambda: _user_id(run))
    webhook = {
        "source": node.option("source", "fathom"),
        "recording_id": recording_id,
        "topic": topic,
        "accepted": accepted,
        "received_by": outcome if mode == REAL else "test-user",
    }
    run.update_context({"payload": body})
    _record(
        run,
        node,
        mode,
        f"Webhook received (recording {recording_id}, topic {topic or 'n/a'})",
        "webhook",
        webhook,
        outcome if mode == MOCK else None,
    )
    return NodeResult(result={"triggered": True, "webhook": webhook}, next_nodes=run.graph.successors(node.id))


@register_executor("googleDocsCreator", "contentGenerator")
async def execute_content_generator(run: RunContext, node: Node) -> NodeResult:
    title = run.interpolate(node.option("docTitle", "Workflow Document"))
    content = run.interpolate(node.option("content") or lookup(run.context, "payload.transcript") or "")
    folder_id = run.interpolate(node.option("folderId")) or None

    documents = run.collaborators.documents
    mode, outcome = await attempt(
        node, "document service", lambda: maybe_await(documents.create_document(title, content, folder_id))
    )
    if mode == REAL:
        doc = {"id": outcome["id"], "url": outcome.get("url"), "title": title, "content": content}
    else:
        doc = {
            "id": f"doc_{node.id}",
            "url": f"https://docs.example.com/document/doc_{node.id}",
            "title": title,
            "content": content,
        }
    _record(run, node, mode, f'Created document "{title}"', "googleDoc", doc, outcome if mode == MOCK else None)
    return NodeResult(result={"document": doc}, next_nodes=run.graph.successors(node.id))


def _upsert_values(run: RunContext, node: Node) -> Dict[str, Any]:
    mappings = node.option("mappings") or node.option("fieldMappings") or {}
    if isinstance(mappings, list):
        mappings = {m["field"]: m.get("value") for m in mappings if m.get("field")}
    return interpolate_values(mappings, run.context)


@register_executor("meetingUpsert", "recordUpsert")
async def execute_record_upsert(run: RunContext, node: Node) -> NodeResult:
    table = node.option("table", "meetings")
    key = node.option("upsertKey", "fathom_recording_id")
    values = _upsert_values(run, node)
    if key not in values:
        values[key] = lookup(run.context, "payload.fathom_id") or lookup(run.context, "webhook.recording_id")

    async def write():
        user_id = await _user_id(run)
        return await maybe_await(run.collaborators.records.upsert(table, key, {**values, "owner_user_id": user_id}))

    mode, outcome = await attempt(node, "record store", write)
    if mode == REAL:
        record = {**values, **(outcome or {})}
    else:
        record = {**values, "id": f"{table}_{node.id}"}
    _record(
        run,
        node,
        mode,
        f"Upserted {table} record on {key}={values.get(key)}",
        "meeting",
        record,
        outcome if mode == MOCK else None,
    )
    return NodeResult(result={"record": record, "table": table}, next_nodes=run.graph.successors(node.id))


PRIORITY_KEYWORDS = (
    ("urgent", ("urgent", "asap", "immediately", "today")),
    ("high", ("pricing", "contract", "proposal", "legal")),
    ("low", ("optional", "nice to have", "eventually")),
)

CATEGORY_KEYWORDS = (
    ("Technical", ("technical", "integration", "api", "deep dive", "demo")),
    ("Commercial", ("pricing", "proposal", "quote", "discount")),
    ("Legal", ("contract", "legal", "nda", "terms")),
    ("Follow-up", ("follow up", "follow-up", "schedule", "call")),
)


def _classify(text: str, table, default: str) -> str:
    lowered = text.lower()
    for label, words in table:
        if any(w in lowered for w in words):
            return label
    return default


def _process_item(node: Node, item: Any, index: int) -> Dict[str, Any]:
    if isinstance(item, dict):
        title = item.get("title") or item.get("text") or item.get("description") or f"Action item {index}"
        assignee = item.get("assignee_email") or item.get("assignee")
    else:
        title, assignee = str(item), None
    priority = _classify(title, PRIORITY_KEYWORDS, "medium")
    days_key = "urgentDeadlineDays" if priority == "urgent" else "defaultDeadlineDays"
    due_days = node.option(days_key, 1 if priority == "urgent" else 3)
    # deadlines are relative to a fixed anchor so repeated runs match
    deadline = date(2024, 1, 1) + timedelta(days=int(due_days))
    return {
        "title": title,
        "description": title,
        "assignee_email": assignee,
        "priority": priority,
        "category": _classify(title, CATEGORY_KEYWORDS, "Administrative"),
        "due_date_days": due_days,
        "deadline": deadline.isoformat(),
    }


@register_executor("actionItemProcessor", "itemProcessor")
async def execute_item_processor(run: RunContext, node: Node) -> NodeResult:
    raw_items = (
        lookup(run.context, "payload.action_items")
        or run.context.get("action_items")
        or node.option("defaultItems")
        or []
    )
    if not isinstance(raw_items, list):
        raw_items = [raw_items]
    items = [_process_item(node, item, i + 1) for i, item in enumerate(raw_items)]

    async def write():
        user_id = await _user_id(run)
        rows = [{**item, "created_by": user_id} for item in items]
        return await maybe_await(run.collaborators.records.insert("meeting_action_items", rows))

    mode, outcome = await attempt(node, "record store", write) if items else (MOCK, "no action items")
    processed = {
        "items": items,
        "count": len(items),
        "smart_assignments": sum(1 for i in items if i["assignee_email"]),
    }
    _record(
        run,
        node,
        mode,
        f"Processed {len(items)} action items",
        "processedActions",
        processed,
        outcome if mode == MOCK else None,
    )
    return NodeResult(result=processed, next_nodes=run.graph.successors(node.id))


@register_executor("createTask", "taskCreator")
async def execute_task_creator(run: RunContext, node: Node) -> NodeResult:
    items: List[Dict[str, Any]] = lookup(run.context, "processedActions.items") or []
    if items:
        tasks = [
            {"title": i["title"], "priority": i.get("priority", "medium"), "due_date": i.get("deadline")}
            for i in items
        ]
    else:
        tasks = [
            {
                "title": run.interpolate(node.option("taskTitle", "Follow up")),
                "priority": node.option("priority", "medium"),
                "due_date": None,
            }
        ]

    async def write():
        user_id = await _user_id(run)
        return await maybe_await(run.collaborators.records.insert("tasks", [{**t, "user_id": user_id} for t in tasks]))

    mode, outcome = await attempt(node, "record store", write)
    if mode == REAL:
        ids = [row.get("id") for row in outcome]
    else:
        ids = [f"task_{node.id}_{i + 1}" for i in range(len(tasks))]
    created = {"ids": ids, "count": len(tasks), "tasks": tasks}
    _record(run, node, mode, f"Created {len(tasks)} tasks", "createdTasks", created, outcome if mode == MOCK else None)
    return NodeResult(result=created, next_nodes=run.graph.successors(node.id))


@register_executor("databaseWrite", "dbWrite")
async def execute_db_write(run: RunContext, node: Node) -> NodeResult:
    table = node.option("table", "workflow_records")
    operation = node.option("operation", "insert")
    values = _upsert_values(run, node) or {"payload": run.payload}
    key = node.option("upsertKey", "id")

    async def write():
        user_id = await _user_id(run)
        row = {**values, "user_id": user_id}
        if operation == "upsert":
            return await maybe_await(run.collaborators.records.upsert(table, key, row))
        rows = await maybe_await(run.collaborators.records.insert(table, [row]))
        return rows[0] if rows else {}

    mode, outcome = await attempt(node, "record store", write)
    if mode == REAL:
        written = {"table": table, "operation": operation, "record": outcome}
    else:
        written = {"table": table, "operation": operation, "record": {**values, "id": f"{table}_{node.id}"}}
    _record(
        run,
        node,
        mode,
        f"{operation.capitalize()} into {table}",
        "dbWrite",
        written,
        outcome if mode == MOCK else None,
    )
    return NodeResult(result=written, next_nodes=run.graph.successors(node.id))
