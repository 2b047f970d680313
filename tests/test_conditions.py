"""Tests for condition predicates and multi-way branch evaluation."""
import pytest

from workflow_testlab.conditions import evaluate_branch, evaluate_condition
from workflow_testlab.exceptions import ConditionConfigError
from workflow_testlab.models import Node


def condition(**data) -> Node:
    return Node(id="check", type="condition", data={"label": "Check", **data})


class TestRawConditions:
    def test_numeric_greater_than(self):
        outcome = evaluate_condition(condition(condition="deal_value > 50000"), {"deal_value": 150000})
        assert outcome.result is True
        assert outcome.message == "deal_value > 50000 = true (actual: 150000)"

    def test_numeric_coerces_strings(self):
        outcome = evaluate_condition(condition(condition="deal_value >= 100"), {"deal_value": "150"})
        assert outcome.result is True

    def test_non_numeric_operand_is_false(self):
        assert evaluate_condition(condition(condition="deal_value > lots"), {"deal_value": 10}).result is False
        assert evaluate_condition(condition(condition="deal_value < 10"), {}).result is False

    def test_equality_strips_quotes(self):
        node = condition(condition="activity_type == 'proposal_sent'")
        assert evaluate_condition(node, {"activity_type": "proposal_sent"}).result is True
        assert evaluate_condition(node, {"activity_type": "call"}).result is False

    def test_strict_equality_and_negation(self):
        ctx = {"stage": "SQL", "value": 25000}
        assert evaluate_condition(condition(condition='stage === "SQL"'), ctx).result is True
        assert evaluate_condition(condition(condition="stage !== SQL"), ctx).result is False
        assert evaluate_condition(condition(condition="value == 25000"), ctx).result is True

    def test_dotted_field(self):
        node = condition(condition="deal.owner != 'bob'")
        assert evaluate_condition(node, {"deal": {"owner": "alice"}}).result is True

    def test_unknown_operator_is_false(self):
        assert evaluate_condition(condition(condition="value => 10"), {"value": 50}).result is False


class TestStructuredConditions:
    def test_value_check_default_threshold(self):
        outcome = evaluate_condition(condition(conditionType="value_check"), {"value": 60000})
        assert outcome.result is True
        assert outcome.message == "Value 60000 > 50000 = true"

    def test_value_check_with_operator(self):
        node = condition(conditionType="value_greater_than", threshold=10000, operator="<=")
        assert evaluate_condition(node, {"value": 9000}).result is True

    def test_stage_check_reads_new_stage(self):
        node = condition(conditionType="stage_check", stage="Opportunity")
        assert evaluate_condition(node, {"new_stage": "Opportunity"}).result is True
        assert evaluate_condition(node, {"new_stage": "Verbal"}).result is False

    def test_activity_type_default(self):
        outcome = evaluate_condition(condition(conditionType="activity_type"), {"activity_type": "proposal_sent"})
        assert outcome.result is True
        assert outcome.details["expected"] == "proposal_sent"

    def test_custom_field_operators(self):
        node = condition(conditionType="custom_field", customFieldName="company", customFieldOperator="contains",
                         customFieldValue="Acme")
        assert evaluate_condition(node, {"company": "Acme Corp"}).result is True

    def test_custom_field_unknown_operator_is_false(self):
        node = condition(conditionType="custom_field", field="company", operator="sounds_like", value="Acme")
        assert evaluate_condition(node, {"company": "Acme"}).result is False

    def test_custom_field_unknown_operator_raises_when_strict(self):
        node = condition(conditionType="custom_field", field="company", operator="sounds_like", value="Acme")
        with pytest.raises(ConditionConfigError):
            evaluate_condition(node, {"company": "Acme"}, strict=True)

    def test_plain_field_value_pair(self):
        node = condition(field="priority", value="high")
        assert evaluate_condition(node, {"priority": "high"}).result is True

    def test_unrecognized_defaults_to_pass(self):
        outcome = evaluate_condition(condition(conditionType="sentiment_check"), {})
        assert outcome.result is True
        assert outcome.recognized is False

    def test_unrecognized_raises_when_strict(self):
        with pytest.raises(ConditionConfigError):
            evaluate_condition(condition(conditionType="sentiment_check"), {}, strict=True)


class TestBranches:
    context = {"payload": {"transcript": "Rep: hi", "action_items": [], "summary": None}}

    def test_exists_is_default_operator(self):
        outcome = evaluate_branch({"id": "has-transcript", "field": "{{payload.transcript}}"}, self.context)
        assert outcome.result is True
        assert outcome.message.startswith('Branch "has-transcript"')

    def test_exists_treats_null_as_missing(self):
        outcome = evaluate_branch({"id": "has-summary", "field": "payload.summary", "operator": "exists"}, self.context)
        assert outcome.result is False

    def test_is_empty(self):
        branch = {"id": "no-actions", "field": "{{payload.action_items}}", "operator": "is_empty"}
        assert evaluate_branch(branch, self.context).result is True

    def test_equals_and_greater_than(self):
        ctx = {"deal_value": 75000, "stage": "SQL"}
        assert evaluate_branch({"id": "sql", "field": "stage", "operator": "equals", "value": "SQL"}, ctx).result
        assert evaluate_branch({"id": "big", "field": "deal_value", "operator": "greater_than", "value": 50000}, ctx).result
        assert not evaluate_branch({"id": "small", "field": "deal_value", "operator": "less_than", "value": 50000}, ctx).result


class TestCustomFieldEquality:
    def test_equals_does_not_coerce_types(self):
        node = condition(conditionType="custom_field", customFieldName="seats", customFieldValue="5")
        assert evaluate_condition(node, {"seats": 5}).result is False
        assert evaluate_condition(node, {"seats": "5"}).result is True

    def test_not_equals_is_typed(self):
        node = condition(conditionType="custom_field", field="seats", operator="not_equals", value=5)
        assert evaluate_condition(node, {"seats": "5"}).result is True
        assert evaluate_condition(node, {"seats": 5}).result is False

    def test_booleans_never_equal_numbers(self):
        node = condition(conditionType="custom_field", field="active", operator="equals", value=1)
        assert evaluate_condition(node, {"active": True}).result is False

    def test_raw_form_stays_loose(self):
        assert evaluate_condition(condition(condition="seats == 5"), {"seats": "5"}).result is True
