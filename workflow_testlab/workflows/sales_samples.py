# workflow_testlab/workflows/sales_samples.py
"""Ready-made sales automation graphs, in the same JSON shape the editor saves."""
from typing import Any, Dict, List, Tuple

Graph = Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]


def deal_router_graph(threshold: int = 50000) -> Graph:
    """New deal -> value check -> escalate big deals, note the rest."""
    nodes = [
        {"id": "deal-trigger", "type": "trigger", "data": {"label": "Deal Created", "type": "deal_created"}},
        {
            "id": "value-check",
            "type": "condition",
            "data": {"label": "High Value?", "condition": f"deal_value > {threshold}"},
        },
        {
            "id": "escalate-task",
            "type": "action",
            "data": {
                "label": "Create Review Task",
                "actionType": "create_task",
                "taskTitle": "Review {{deal_name}} ({{deal_value}})",
            },
        },
        {
            "id": "notify-team",
            "type": "action",
            "data": {
                "label": "Notify Sales Team",
                "actionType": "send_slack",
                "slackChannel": "#big-deals",
                "slackMessage": "{{deal_name}} just landed at ${{deal_value}}",
            },
        },
        {
            "id": "log-note",
            "type": "action",
            "data": {"label": "Add Note", "actionType": "add_note", "noteContent": "Standard deal {{deal_name}}"},
        },
    ]
    edges = [
        {"id": "e1", "source": "deal-trigger", "target": "value-check"},
        {"id": "e2", "source": "value-check", "target": "escalate-task", "sourceHandle": "true"},
        {"id": "e3", "source": "escalate-task", "target": "notify-team"},
        {"id": "e4", "source": "value-check", "target": "log-note", "sourceHandle": "false"},
    ]
    return nodes, edges


def meeting_intake_graph() -> Graph:
    """Recorded meeting -> split by content -> docs, coaching, tasks -> meeting record."""
    nodes = [
        {
            "id": "fathom-webhook-trigger",
            "type": "fathomWebhook",
            "data": {
                "label": "Fathom Webhook",
                "config": {
                    "acceptedTopics": [
                        "meeting.transcript.ready",
                        "meeting.actions.ready",
                        "meeting.summary.ready",
                    ]
                },
            },
        },
        {
            "id": "payload-router",
            "type": "conditionalBranch",
            "data": {
                "label": "Route by Content Type",
                "conditions": [
                    {"id": "has-transcript", "field": "{{payload.transcript}}", "operator": "exists", "output": "transcript"},
                    {"id": "has-action-items", "field": "{{payload.action_items}}", "operator": "exists", "output": "action_items"},
                    {"id": "has-summary", "field": "{{payload.summary}}", "operator": "exists", "output": "summary"},
                ],
            },
        },
        {
            "id": "create-transcript-doc",
            "type": "googleDocsCreator",
            "data": {
                "label": "Create Transcript Doc",
                "docTitle": "Meeting Transcript - {{payload.title}}",
                "config": {"content": "# Meeting: {{payload.title}}\n\n{{payload.transcript}}"},
            },
        },
        {
            "id": "ai-summary-analyzer",
            "type": "aiAgent",
            "data": {
                "label": "Sales Coaching AI",
                "model": "gpt-4",
                "outputFormat": "structured_json",
                "userPrompt": "Analyze this sales meeting: {{payload.title}}",
                "extractionRules": [{"field": "next_meeting_date", "type": "date"}],
            },
        },
        {
            "id": "create-update-deal",
            "type": "action",
            "data": {
                "label": "Create/Update Deal",
                "action": "create_or_update_deal",
                "config": {"scoreThreshold": 60, "dealName": "{{payload.title}} - {{payload.date}}"},
            },
        },
        {"id": "process-actions", "type": "actionItemProcessor", "data": {"label": "Smart Task Assignment"}},
        {"id": "create-tasks", "type": "createTask", "data": {"label": "Create Tasks"}},
        {
            "id": "upsert-meeting",
            "type": "meetingUpsert",
            "data": {
                "label": "Update Meeting",
                "upsertKey": "fathom_recording_id",
                "mappings": {
                    "title": "{{payload.title}}",
                    "fathom_recording_id": "{{payload.fathom_id}}",
                    "transcript_doc_url": "{{googleDoc.url}}",
                    "action_items_count": "{{processedActions.count}}",
                },
            },
        },
        {
            "id": "send-notifications",
            "type": "action",
            "data": {
                "label": "Notifications",
                "action": "multi_channel_notify",
                "config": {
                    "channels": ["slack"],
                    "slackConfig": {
                        "channel": "#meetings",
                        "message": 'Meeting "{{payload.title}}" processed, {{processedActions.count}} action items',
                    },
                },
            },
        },
    ]
    edges = [
        {"id": "e1", "source": "fathom-webhook-trigger", "target": "payload-router"},
        {"id": "e2", "source": "payload-router", "target": "create-transcript-doc", "sourceHandle": "transcript"},
        {"id": "e3", "source": "create-transcript-doc", "target": "ai-summary-analyzer"},
        {"id": "e4", "source": "payload-router", "target": "process-actions", "sourceHandle": "action_items"},
        {"id": "e5", "source": "process-actions", "target": "create-tasks"},
        {"id": "e6", "source": "create-tasks", "target": "upsert-meeting"},
        {"id": "e8", "source": "ai-summary-analyzer", "target": "create-update-deal"},
        {"id": "e9", "source": "create-update-deal", "target": "upsert-meeting"},
        {"id": "e10", "source": "upsert-meeting", "target": "send-notifications"},
    ]
    return nodes, edges
