"""Token usage parsing and cost calculation."""
from typing import Any, Mapping, Optional, Union

from chatstream.models import Usage, UsageRecord


def parse_usage(
    record: Union[UsageRecord, Mapping[str, Any]],
    *,
    local: bool = False,
    input_cost_per_token: float = 0.0,
    output_cost_per_token: float = 0.0,
) -> Usage:
    """Derive totals and cost from a provider usage record.

    ``total_tokens`` is always recomputed as input + output, regardless of
    what the provider reported (some providers fold thinking tokens into
    their own total).
    """
    if not isinstance(record, UsageRecord):
        record = UsageRecord.model_validate(dict(record))
    input_cost = record.input_tokens * input_cost_per_token
    output_cost = record.output_tokens * output_cost_per_token
    return Usage(
        input_tokens=record.input_tokens,
        output_tokens=record.output_tokens,
        thinking_tokens=record.thinking_tokens,
        total_tokens=record.input_tokens + record.output_tokens,
        local=local,
        input_cost=input_cost,
        output_cost=output_cost,
        total_cost=input_cost + output_cost,
    )


def coerce_usage_record(value: Any) -> Optional[UsageRecord]:
    """Accept a UsageRecord or a plain mapping; anything else is ignored."""
    if isinstance(value, UsageRecord):
        return value
    if isinstance(value, Mapping):
        try:
            return UsageRecord.model_validate(dict(value))
        except ValueError:
            return None
    return None
