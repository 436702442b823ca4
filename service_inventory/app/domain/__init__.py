"""
Domain layer for the Inventory Gateway: inbound parameter parsing and the
ARM / cost aggregation use cases built on the fan-out engine.
"""

from .aggregators import ArmAggregator, CostAggregator
from .inputs import decode_body, parse_resource_ids, parse_scopes, require_arm_inputs, require_cost_inputs

__all__ = [
    "ArmAggregator",
    "CostAggregator",
    "parse_resource_ids",
    "parse_scopes",
    "decode_body",
    "require_arm_inputs",
    "require_cost_inputs",
]
