# workflow_testlab/conditions.py
"""Predicate evaluation for condition and multi-way branch nodes.

Two predicate forms are understood:

* a raw comparison string in ``data["condition"]`` such as
  ``"deal_value > 50000"`` or ``"activity_type == 'proposal_sent'"``;
* a structured predicate picked by ``data["conditionType"]`` (falling back
  to ``data["type"]``): ``value_check`` / ``value_greater_than``,
  ``stage_check``, ``activity_type``, ``custom_field``, or a plain
  ``field`` / ``value`` pair.

Anything else evaluates to ``True`` unless strict mode is on.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from .exceptions import ConditionConfigError
from .interpolation import lookup, resolve_reference
from .models import Node

RAW_CONDITION = re.compile(r"^\s*([\w.]+)\s*([><=!]+)\s*(.+?)\s*$")

NUMERIC_OPERATORS = {
    ">": lambda a, b: a > b,
    "<": lambda a, b: a < b,
    ">=": lambda a, b: a >= b,
    "<=": lambda a, b: a <= b,
}
EQUALITY_OPERATORS = {"==", "===", "!=", "!=="}


@dataclass
class ConditionOutcome:
    result: bool
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    recognized: bool = True


def fmt_bool(value: bool) -> str:
    return "true" if value else "false"


def to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def loose_equals(actual: Any, expected: Any) -> bool:
    """Equality between a context value and a literal that may have been parsed from text."""
    if actual is None or expected is None:
        return actual is None and expected is None
    if isinstance(actual, bool) or isinstance(expected, bool):
        return str(actual).lower() == str(expected).lower()
    a, b = to_number(actual), to_number(expected)
    if a is not None and b is not None:
        return a == b
    return str(actual) == str(expected)


def strict_equals(actual: Any, expected: Any) -> bool:
    """Typed equality: no string to number coercion, and booleans never equal numbers."""
    if isinstance(actual, bool) != isinstance(expected, bool):
        return False
    return actual == expected


def evaluate_raw(expression: str, context: Mapping[str, Any]) -> Optional[ConditionOutcome]:
    match = RAW_CONDITION.match(expression)
    if not match:
        return None
    field_name, operator, literal = match.groups()
    expected = literal.replace("'", "").replace('"', "")
    actual = lookup(context, field_name)

    if operator in NUMERIC_OPERATORS:
        a, b = to_number(actual), to_number(expected)
        result = a is not None and b is not None and NUMERIC_OPERATORS[operator](a, b)
    elif operator in EQUALITY_OPERATORS:
        equal = loose_equals(actual, expected)
        result = equal if operator in ("==", "===") else not equal
    else:
        result = False

    message = f"{field_name} {operator} {expected} = {fmt_bool(result)} (actual: {actual})"
    details = {
        "field": field_name,
        "operator": operator,
        "expected": expected,
        "actual": actual,
        "result": result,
    }
    return ConditionOutcome(result, message, details)


def _compare(value: Any, operator: str, threshold: Any) -> bool:
    if operator in ("=", "==", "==="):
        return loose_equals(value, threshold)
    if operator in ("!=", "!=="):
        return not loose_equals(value, threshold)
    compare = NUMERIC_OPERATORS.get(operator)
    a, b = to_number(value), to_number(threshold)
    if compare is None or a is None or b is None:
        return False
    return compare(a, b)


def apply_field_operator(value: Any, operator: str, expected: Any) -> bool:
    """Operators shared by ``custom_field`` conditions and multi-way branches."""
    if operator in ("equals", "eq"):
        return loose_equals(value, expected)
    if operator in ("not_equals", "ne"):
        return not loose_equals(value, expected)
    if operator == "contains":
        if value is None:
            return False
        if isinstance(value, (list, tuple, set, dict)):
            return expected in value
        return str(expected) in str(value)
    if operator == "is_empty":
        return not value
    if operator == "is_not_empty":
        return bool(value)
    if operator == "exists":
        return value is not None and value != ""
    if operator == "not_exists":
        return value is None or value == ""
    if operator in ("greater_than", "gt"):
        return _compare(value, ">", expected)
    if operator in ("less_than", "lt"):
        return _compare(value, "<", expected)
    raise ConditionConfigError(f"unsupported operator '{operator}'")


def _apply_lenient(value: Any, operator: str, expected: Any, strict: bool) -> bool:
    # unknown operators evaluate false unless strict mode wants them surfaced
    try:
        return apply_field_operator(value, operator, expected)
    except ConditionConfigError:
        if strict:
            raise
        return False


def evaluate_structured(node: Node, context: Mapping[str, Any], strict: bool = False) -> ConditionOutcome:
    data = node.data
    condition_type = data.get("conditionType") or data.get("type")

    if condition_type in ("value_check", "value_greater_than"):
        value = context.get("value") or 0
        threshold = data.get("threshold") or data.get("value") or 50000
        operator = data.get("operator") or ">"
        result = _compare(value, operator, threshold)
        return ConditionOutcome(
            result,
            f"Value {value} {operator} {threshold} = {fmt_bool(result)}",
            {"field": "value", "operator": operator, "expected": threshold, "actual": value, "result": result},
        )

    if condition_type == "stage_check":
        stage = context.get("stage") or context.get("new_stage")
        target = data.get("stage") or data.get("value")
        result = stage == target
        return ConditionOutcome(
            result,
            f'Stage "{stage}" === "{target}" = {fmt_bool(result)}',
            {"field": "stage", "operator": "===", "expected": target, "actual": stage, "result": result},
        )

    if condition_type == "activity_type" or data.get("field") == "activity_type":
        actual = context.get("activity_type")
        expected = data.get("activityType") or data.get("value") or "proposal_sent"
        result = actual == expected
        return ConditionOutcome(
            result,
            f'Activity type "{actual}" === "{expected}" = {fmt_bool(result)}',
            {"field": "activity_type", "operator": "===", "expected": expected, "actual": actual, "result": result},
        )

    if condition_type == "custom_field":
        field_name = data.get("customFieldName") or data.get("field")
        actual = lookup(context, field_name) if field_name else None
        expected = data.get("customFieldValue", data.get("value"))
        operator = data.get("customFieldOperator") or data.get("operator") or "equals"
        if operator in ("equals", "eq", "not_equals", "ne"):
            equal = strict_equals(actual, expected)
            result = equal if operator in ("equals", "eq") else not equal
        else:
            result = _apply_lenient(actual, operator, expected, strict)
        return ConditionOutcome(
            result,
            f'Field "{field_name}" {operator} "{expected}" = {fmt_bool(result)} (actual: "{actual}")',
            {"field": field_name, "operator": operator, "expected": expected, "actual": actual, "result": result},
        )

    if data.get("field") and "value" in data:
        field_name = data["field"]
        actual = lookup(context, field_name)
        expected = data["value"]
        result = actual == expected
        return ConditionOutcome(
            result,
            f'Field "{field_name}" === "{expected}" = {fmt_bool(result)} (actual: "{actual}")',
            {"field": field_name, "operator": "===", "expected": expected, "actual": actual, "result": result},
        )

    return ConditionOutcome(
        True,
        f'Unknown condition type "{condition_type}" - defaulting to pass',
        {"conditionType": condition_type, "result": True},
        recognized=False,
    )


def evaluate_condition(node: Node, context: Mapping[str, Any], strict: bool = False) -> ConditionOutcome:
    raw = node.data.get("condition")
    if isinstance(raw, str):
        outcome = evaluate_raw(raw, context)
        if outcome is not None:
            return outcome

    outcome = evaluate_structured(node, context, strict)
    if not outcome.recognized and strict:
        raise ConditionConfigError(f"condition node '{node.id}' has no recognizable predicate")
    return outcome


def evaluate_branch(branch: Mapping[str, Any], context: Mapping[str, Any], strict: bool = False) -> ConditionOutcome:
    """Evaluate one named branch of a multi-way branch node."""
    ref = branch.get("field")
    actual = resolve_reference(ref, context)
    operator = branch.get("operator") or "exists"
    expected = branch.get("value")
    result = _apply_lenient(actual, operator, expected, strict)
    name = branch.get("id") or branch.get("output")
    shown = actual if not isinstance(actual, str) or len(actual) <= 60 else actual[:57] + "..."
    message = f'Branch "{name}": {ref} {operator} {expected!r} = {fmt_bool(result)} (actual: {shown})'
    return ConditionOutcome(
        result,
        message,
        {"branch": name, "field": ref, "operator": operator, "expected": expected, "actual": shown, "result": result},
    )
