"""Tests for payload filter evaluation."""

import pytest

from hookwire.models import FilterCondition, FilterConfig
from hookwire.webhooks.filters import (
    MISSING,
    evaluate_condition,
    matches,
    matches_filters,
    resolve_path,
    stringify,
)

PAYLOAD = {
    "order": {
        "id": 42,
        "status": "paid",
        "total": 19.0,
        "customer": {"email": "ana@example.com", "vip": True},
        "items": [{"sku": "SKU-1"}, {"sku": "SKU-2"}],
        "coupon": None,
    },
    "source": "web",
}


def cond(field: str, operator: str, value: object) -> FilterCondition:
    return FilterCondition(field=field, operator=operator, value=value)


class TestResolvePath:
    """Tests for dot-path resolution."""

    def test_nested_key(self):
        """Should walk nested dictionaries."""
        assert resolve_path(PAYLOAD, "order.customer.email") == "ana@example.com"

    def test_list_index(self):
        """Should index into lists with numeric segments."""
        assert resolve_path(PAYLOAD, "order.items.1.sku") == "SKU-2"

    def test_missing_key(self):
        """Unknown keys should resolve to MISSING."""
        assert resolve_path(PAYLOAD, "order.refund") is MISSING

    def test_null_intermediate(self):
        """Walking through null should resolve to MISSING."""
        assert resolve_path(PAYLOAD, "order.coupon.code") is MISSING

    def test_explicit_null_leaf(self):
        """An explicit null leaf is a value, not MISSING."""
        assert resolve_path(PAYLOAD, "order.coupon") is None

    def test_index_out_of_range(self):
        """Out-of-range list indexes should resolve to MISSING."""
        assert resolve_path(PAYLOAD, "order.items.5") is MISSING


class TestStringify:
    """Tests for string coercion used by text operators."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, "null"),
            (True, "true"),
            (False, "false"),
            (42, "42"),
            (19.0, "19"),
            (1.5, "1.5"),
            ("text", "text"),
            ({"a": 1}, '{"a":1}'),
            ([1, 2], "[1,2]"),
        ],
    )
    def test_stringify(self, value, expected):
        """Should render JSON values as text."""
        assert stringify(value) == expected


class TestEvaluateCondition:
    """Tests for single condition evaluation."""

    def test_equals_string(self):
        """equals should match identical strings."""
        assert evaluate_condition(cond("order.status", "equals", "paid"), PAYLOAD)
        assert not evaluate_condition(cond("order.status", "equals", "refunded"), PAYLOAD)

    def test_equals_is_type_strict(self):
        """equals should not coerce between types."""
        assert evaluate_condition(cond("order.id", "equals", 42), PAYLOAD)
        assert not evaluate_condition(cond("order.id", "equals", "42"), PAYLOAD)

    def test_equals_bool_not_int(self):
        """True should not equal 1."""
        assert evaluate_condition(cond("order.customer.vip", "equals", True), PAYLOAD)
        assert not evaluate_condition(cond("order.customer.vip", "equals", 1), PAYLOAD)

    def test_contains(self):
        """contains should search the stringified value."""
        assert evaluate_condition(cond("order.customer.email", "contains", "@example"), PAYLOAD)

    def test_contains_numeric_coercion(self):
        """contains should coerce numbers to text."""
        assert evaluate_condition(cond("order.id", "contains", 4), PAYLOAD)

    def test_starts_with(self):
        """starts_with should match string prefixes."""
        assert evaluate_condition(cond("order.items.0.sku", "starts_with", "SKU-"), PAYLOAD)

    def test_ends_with(self):
        """ends_with should match string suffixes."""
        assert evaluate_condition(cond("order.customer.email", "ends_with", ".com"), PAYLOAD)
        assert not evaluate_condition(cond("order.customer.email", "ends_with", ".org"), PAYLOAD)

    def test_regex(self):
        """regex should search the stringified value."""
        assert evaluate_condition(cond("order.status", "regex", "^pa(id|ying)$"), PAYLOAD)

    def test_invalid_regex_fails_closed(self):
        """An invalid regex should evaluate to False instead of raising."""
        assert not evaluate_condition(cond("order.status", "regex", "(unclosed"), PAYLOAD)

    def test_unknown_operator_fails_closed(self):
        """Unknown operators should evaluate to False."""
        assert not evaluate_condition(cond("order.status", "greater_than", "a"), PAYLOAD)

    @pytest.mark.parametrize(
        "operator", ["equals", "contains", "starts_with", "ends_with", "regex"]
    )
    def test_missing_field_fails_every_operator(self, operator):
        """A missing field should fail regardless of operator."""
        assert not evaluate_condition(cond("order.refund.id", operator, ""), PAYLOAD)

    def test_null_value_stringifies(self):
        """An explicit null should compare as the text "null"."""
        assert evaluate_condition(cond("order.coupon", "contains", "null"), PAYLOAD)


class TestMatches:
    """Tests for condition conjunctions."""

    def test_all_conditions_must_pass(self):
        """Conditions should combine with AND."""
        conditions = [
            cond("order.status", "equals", "paid"),
            cond("source", "equals", "web"),
        ]
        assert matches(conditions, PAYLOAD)

        conditions.append(cond("source", "equals", "api"))
        assert not matches(conditions, PAYLOAD)

    def test_empty_conditions_match(self):
        """No conditions should match everything."""
        assert matches([], PAYLOAD)

    def test_disabled_filters_match(self):
        """Disabled filtering should always match."""
        filters = FilterConfig(enabled=False, conditions=[cond("source", "equals", "api")])
        assert matches_filters(filters, PAYLOAD)

    def test_enabled_filters_apply(self):
        """Enabled filtering should evaluate conditions."""
        filters = FilterConfig(enabled=True, conditions=[cond("source", "equals", "api")])
        assert not matches_filters(filters, PAYLOAD)
