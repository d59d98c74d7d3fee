"""Tests for usage parsing."""
import pytest

from chatstream.models import UsageRecord
from chatstream.usage import coerce_usage_record, parse_usage

pytestmark = pytest.mark.unit


class TestParseUsage:
    """Test usage totals and cost."""

    def test_total_is_input_plus_output(self):
        """Test that the provider's own total is replaced."""
        usage = parse_usage(UsageRecord(input_tokens=10, output_tokens=5, total_tokens=99, thinking_tokens=3))

        assert usage.total_tokens == 15
        assert usage.thinking_tokens == 3

    def test_cost(self):
        usage = parse_usage(
            {"input_tokens": 100, "output_tokens": 50},
            input_cost_per_token=0.01,
            output_cost_per_token=0.02,
        )

        assert usage.input_cost == pytest.approx(1.0)
        assert usage.output_cost == pytest.approx(1.0)
        assert usage.total_cost == pytest.approx(2.0)

    def test_local_flag(self):
        assert parse_usage(UsageRecord(), local=True).local is True


class TestCoerceUsageRecord:
    """Test usage record coercion."""

    def test_record_passes_through(self):
        record = UsageRecord(input_tokens=1)
        assert coerce_usage_record(record) is record

    def test_mapping(self):
        assert coerce_usage_record({"output_tokens": 7}).output_tokens == 7

    @pytest.mark.parametrize("value", [None, "12", 12, {"input_tokens": "many"}])
    def test_invalid_values_ignored(self, value):
        assert coerce_usage_record(value) is None
