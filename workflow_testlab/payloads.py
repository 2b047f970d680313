# workflow_testlab/payloads.py
"""Synthetic trigger payloads, the predefined scenario registry, and payload validation."""
import json
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from .exceptions import UnknownScenarioError
from .models import PayloadValidation, TestScenario, ValidationIssue

TEST_SCENARIOS: List[TestScenario] = [
    TestScenario(
        id="high_value_deal",
        name="High Value Deal ($150k)",
        description="Test with a high-value enterprise deal",
        trigger_type="deal_created",
    ),
    TestScenario(
        id="low_value_deal",
        name="Standard Deal ($25k)",
        description="Test with a standard value deal",
        trigger_type="deal_created",
    ),
    TestScenario(
        id="no_activity",
        name="No Activity (14 days)",
        description="Test with a deal that has no recent activity",
        trigger_type="activity_monitor",
    ),
    TestScenario(
        id="to_opportunity",
        name="Move to Opportunity",
        description="Test stage change to Opportunity",
        trigger_type="stage_changed",
    ),
    TestScenario(
        id="urgent_overdue",
        name="Urgent Task Overdue",
        description="Test with a task overdue by 7 days",
        trigger_type="task_overdue",
    ),
    TestScenario(
        id="meeting_recorded",
        name="Recorded Sales Meeting",
        description="Meeting recording webhook with transcript, summary and action items",
        trigger_type="meeting_recorded",
    ),
]


def get_scenario(scenario_id: str) -> TestScenario:
    for scenario in TEST_SCENARIOS:
        if scenario.id == scenario_id:
            return scenario
    raise UnknownScenarioError(scenario_id)


def generate_test_data(trigger_type: str, scenario: Optional[str] = None) -> Dict[str, Any]:
    """Build a default payload for a trigger category, shaped by an optional scenario tag."""
    base = {
        "test_run_id": f"test_{int(time.time() * 1000)}",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if trigger_type == "deal_created":
        high = scenario == "high_value_deal" or scenario == "high_value"
        return {
            **base,
            "deal_id": "test_deal_123",
            "deal_name": "Enterprise Deal - Acme Corp" if high else "Standard Deal - Test Co",
            "value": 150000 if high else 25000,
            "deal_value": 150000 if high else 25000,
            "stage": "SQL",
            "company": "Test Company",
            "contact_name": "John Doe",
            "contact_email": "john@example.com",
            "owner": "current_user",
        }

    if trigger_type == "stage_changed":
        return {
            **base,
            "deal_id": "test_deal_456",
            "deal_name": "Pipeline Test Deal",
            "old_stage": "SQL",
            "new_stage": "Opportunity" if scenario == "to_opportunity" else "Verbal",
            "value": 50000,
        }

    if trigger_type == "activity_monitor":
        idle = scenario == "no_activity"
        return {
            **base,
            "deal_id": "test_deal_789",
            "deal_name": "Activity Monitor Test",
            "days_inactive": 14 if idle else 3,
            "last_activity": "2024-01-01",
            "activity_count": 0 if idle else 2,
        }

    if trigger_type == "task_overdue":
        return {
            **base,
            "task_id": "test_task_001",
            "task_title": "Follow up with client",
            "days_overdue": 7 if scenario in ("urgent_overdue", "urgent") else 1,
            "assigned_to": "current_user",
            "deal_name": "Overdue Task Deal",
        }

    if trigger_type == "activity_created":
        return {
            **base,
            "activity_id": "test_activity_001",
            "activity_type": scenario or "proposal_sent",
            "deal_name": "Activity Test Deal",
            "contact_name": "Jane Smith",
            "value": 40000,
        }

    if trigger_type == "webhook_received":
        return {
            **base,
            "webhook_data": {
                "source": "external_system",
                "event": "data_updated",
                "payload": {"id": 123, "status": "active"},
            },
        }

    if trigger_type in ("meeting_recorded", "fathom_webhook"):
        return {
            **base,
            "topic": "meeting.transcript.ready",
            "payload": {
                "fathom_id": "rec_test_001",
                "title": "Discovery Call - Acme Corp",
                "date": "2024-03-14",
                "duration": 45,
                "organizer_email": "rep@example.com",
                "participants": ["rep@example.com", "buyer@acme.com"],
                "share_url": "https://example.com/share/rec_test_001",
                "transcript": "Rep: Thanks for joining. Buyer: We need better pipeline visibility.",
                "summary": "Buyer wants pipeline visibility; pricing review next week.",
                "action_items": [
                    "Send pricing proposal to buyer@acme.com",
                    "Schedule technical deep dive",
                ],
            },
        }

    return {**base, "trigger_type": trigger_type}


def _unresolved_placeholders(value: Any, path: str = "") -> List[str]:
    found: List[str] = []
    if isinstance(value, dict):
        for key, item in value.items():
            found.extend(_unresolved_placeholders(item, f"{path}.{key}" if path else key))
    elif isinstance(value, list):
        for i, item in enumerate(value):
            found.extend(_unresolved_placeholders(item, f"{path}[{i}]"))
    elif isinstance(value, str) and "{{" in value and "}}" in value:
        found.append(path)
    return found


def validate_payload(payload: Union[str, Dict[str, Any], Any]) -> PayloadValidation:
    """Check a user supplied payload before a run.

    Strings are parsed as JSON and syntax errors are reported with their line
    number; anything that is not an object at the top level is rejected.
    """
    errors: List[ValidationIssue] = []
    warnings: List[str] = []

    if isinstance(payload, str):
        if not payload.strip():
            errors.append(ValidationIssue(line=1, message="Payload is empty"))
            return PayloadValidation(is_valid=False, errors=errors)
        try:
            parsed = json.loads(payload)
        except json.JSONDecodeError as exc:
            errors.append(ValidationIssue(line=exc.lineno, message=f"Invalid JSON: {exc.msg} (column {exc.colno})"))
            return PayloadValidation(is_valid=False, errors=errors)
    else:
        parsed = payload
        try:
            json.dumps(parsed)
        except (TypeError, ValueError) as exc:
            errors.append(ValidationIssue(line=1, message=f"Payload is not JSON serializable: {exc}"))
            return PayloadValidation(is_valid=False, errors=errors)

    if not isinstance(parsed, dict):
        errors.append(
            ValidationIssue(line=1, message=f"Payload must be a JSON object, got {type(parsed).__name__}")
        )
        return PayloadValidation(is_valid=False, errors=errors)

    if not parsed:
        warnings.append("Payload is an empty object; conditions will see no fields")
    for key, value in parsed.items():
        if value is None:
            warnings.append(f'Field "{key}" is null')
    for path in _unresolved_placeholders(parsed):
        warnings.append(f'Field "{path}" contains an unresolved {{{{placeholder}}}}')

    return PayloadValidation(is_valid=True, errors=errors, warnings=warnings)


def parse_payload(payload: Union[str, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(payload, str):
        return json.loads(payload)
    return dict(payload)
