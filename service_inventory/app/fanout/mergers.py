"""
Strategies that fold N upstream responses into one JSON document.

Two shapes come back from ARM:

- item lists (``{"value": [...]}`` or a single resource object), merged by
  ``ItemUnionMerger`` with a ``gateway`` provenance object on every item;
- cost query tables (``{"id", "properties": {"columns", "rows"}}``), merged by
  ``ColumnUnionMerger`` with ``_subscription``/``_resourceGroup`` columns and
  a synthetic identifier that does not claim any single input scope.
"""

import copy
import re
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple, Union

from shared.errors import MergeFailedError
from shared.logging import get_logger

from .models import UpstreamResponse

COLLECTION_FIELD = "value"
PROVENANCE_FIELD = "gateway"

COST_QUERY_TYPE = "Microsoft.CostManagement/query"
SUBSCRIPTION_COLUMN = {"name": "_subscription", "type": "String"}
RESOURCE_GROUP_COLUMN = {"name": "_resourceGroup", "type": "String"}

SUBSCRIPTION_PATTERN = re.compile(r"subscriptions/([^/]+)", re.IGNORECASE)
RESOURCE_GROUP_PATTERN = re.compile(r"resourceGroups/([^/]+)", re.IGNORECASE)

GENERIC_ID_PLACEHOLDER = "LIST"

# Most specific first; the first matching rule wins.
GENERIC_ID_RULES: List[Tuple[Pattern[str], str]] = [
    (re.compile(pattern, re.IGNORECASE), replacement)
    for pattern, replacement in (
        (r"^/subscriptions/[^/]+/resourceGroups/[^/]+",
         "/subscriptions/LIST/resourceGroups/LIST"),
        (r"^/subscriptions/[^/]+",
         "/subscriptions/LIST"),
        (r"/providers/Microsoft\.Billing/billingAccounts/[^/]+/departments/[^/]+",
         "/providers/Microsoft.Billing/billingAccounts/LIST/departments/LIST"),
        (r"/providers/Microsoft\.Billing/billingAccounts/[^/]+/enrollmentAccounts/[^/]+",
         "/providers/Microsoft.Billing/billingAccounts/LIST/enrollmentAccounts/LIST"),
        (r"/providers/Microsoft\.Billing/billingAccounts/[^/]+/billingProfiles/[^/]+/invoiceSections/[^/]+",
         "/providers/Microsoft.Billing/billingAccounts/LIST/billingProfiles/LIST/invoiceSections/LIST"),
        (r"/providers/Microsoft\.Billing/billingAccounts/[^/]+/billingProfiles/[^/]+",
         "/providers/Microsoft.Billing/billingAccounts/LIST/billingProfiles/LIST"),
        (r"/providers/Microsoft\.Billing/billingAccounts/[^/]+/customers/[^/]+",
         "/providers/Microsoft.Billing/billingAccounts/LIST/customers/LIST"),
        (r"/providers/Microsoft\.Billing/billingAccounts/[^/]+",
         "/providers/Microsoft.Billing/billingAccounts/LIST"),
        (r"/providers/Microsoft\.Management/managementGroups/[^/]+",
         "/providers/Microsoft.Management/managementGroups/LIST"),
    )
]


class MergeStrategy(str, Enum):
    """How a batch of upstream responses is combined."""

    ITEM_UNION = "item_union"
    COLUMN_UNION = "column_union"


def extract_subscription_and_resource_group(resource_id: str) -> Tuple[Optional[str], Optional[str]]:
    """Pull the subscription id and resource group name out of an ARM id."""
    subscription = SUBSCRIPTION_PATTERN.search(resource_id)
    resource_group = RESOURCE_GROUP_PATTERN.search(resource_id)
    return (
        subscription.group(1) if subscription else None,
        resource_group.group(1) if resource_group else None,
    )


def generate_generic_id(scope: str) -> str:
    """Rewrite the identifying segments of ``scope`` to ``LIST``."""
    for pattern, replacement in GENERIC_ID_RULES:
        if pattern.search(scope):
            return pattern.sub(replacement, scope)
    return scope


def build_merged_identity(scope: str, suffix: Optional[str] = None) -> Tuple[str, str]:
    """Return the ``(id, name)`` pair for a merged cost document."""
    suffix = suffix or str(uuid.uuid4())
    return f"{generate_generic_id(scope)}/{suffix}", suffix


class ItemUnionMerger:
    """Concatenates item lists and tags each item with its request binding."""

    strategy = MergeStrategy.ITEM_UNION

    def __init__(self, provenance_field: str = PROVENANCE_FIELD):
        self.provenance_field = provenance_field
        self.logger = get_logger("inventory.merge.items")

    def merge(self, responses: Sequence[UpstreamResponse]) -> Dict[str, Any]:
        merged: List[Dict[str, Any]] = []
        for response in responses:
            for item in self._items(response):
                if not isinstance(item, dict):
                    raise MergeFailedError(
                        "Upstream item is not a JSON object",
                        details={"identifier": response.request.identifier},
                    )
                tagged = dict(item)
                tagged[self.provenance_field] = dict(response.binding)
                merged.append(tagged)

        self.logger.info(
            "Merged item responses",
            responses=len(responses),
            items=len(merged),
        )
        return {COLLECTION_FIELD: merged}

    def _items(self, response: UpstreamResponse) -> List[Any]:
        payload = response.payload
        if not isinstance(payload, dict):
            raise MergeFailedError(
                "Upstream response root is not a JSON object",
                details={"identifier": response.request.identifier},
            )
        collection = payload.get(COLLECTION_FIELD)
        if isinstance(collection, list):
            return collection
        return [payload]


class ColumnUnionMerger:
    """Unions cost query tables, denormalising scope provenance into each row."""

    strategy = MergeStrategy.COLUMN_UNION

    def __init__(self, query_type: str = COST_QUERY_TYPE):
        self.query_type = query_type
        self.logger = get_logger("inventory.merge.columns")

    def merge(
        self,
        responses: Sequence[UpstreamResponse],
        scope: Optional[str] = None,
        suffix: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not responses:
            raise MergeFailedError("No cost responses to merge")

        first_id, first_properties = self._unpack(responses[0])
        _, first_resource_group = extract_subscription_and_resource_group(first_id)
        include_resource_group = first_resource_group is not None

        columns = copy.deepcopy(first_properties["columns"])
        columns.append(dict(SUBSCRIPTION_COLUMN))
        if include_resource_group:
            columns.append(dict(RESOURCE_GROUP_COLUMN))

        rows: List[List[Any]] = []
        for response in responses:
            response_id, properties = self._unpack(response)
            subscription, resource_group = extract_subscription_and_resource_group(response_id)
            for row in properties["rows"]:
                if not isinstance(row, list):
                    raise MergeFailedError(
                        "Cost query row is not a JSON array",
                        details={"id": response_id},
                    )
                merged_row = list(row)
                merged_row.append(subscription)
                if include_resource_group:
                    merged_row.append(resource_group)
                rows.append(merged_row)

        scope = scope if scope is not None else responses[0].request.identifier
        merged_id, name = build_merged_identity(scope, suffix)

        self.logger.info(
            "Merged cost query responses",
            responses=len(responses),
            rows=len(rows),
            columns=len(columns),
            id=merged_id,
        )
        return {
            "id": merged_id,
            "name": name,
            "type": self.query_type,
            "properties": {
                "columns": columns,
                "rows": rows,
            },
        }

    def _unpack(self, response: UpstreamResponse) -> Tuple[str, Dict[str, Any]]:
        payload = response.payload
        if not isinstance(payload, dict):
            raise MergeFailedError(
                "Cost query response root is not a JSON object",
                details={"identifier": response.request.identifier},
            )
        response_id = payload.get("id")
        properties = payload.get("properties")
        if not isinstance(response_id, str):
            raise MergeFailedError(
                "Cost query response is missing 'id'",
                details={"identifier": response.request.identifier},
            )
        if (
            not isinstance(properties, dict)
            or not isinstance(properties.get("columns"), list)
            or not isinstance(properties.get("rows"), list)
        ):
            raise MergeFailedError(
                "Cost query response is missing 'properties.columns' or 'properties.rows'",
                details={"id": response_id},
            )
        return response_id, properties


Merger = Union[ItemUnionMerger, ColumnUnionMerger]

_MERGERS = {
    MergeStrategy.ITEM_UNION: ItemUnionMerger,
    MergeStrategy.COLUMN_UNION: ColumnUnionMerger,
}


def get_merger(strategy: MergeStrategy) -> Merger:
    """Return a merger instance for ``strategy``."""
    try:
        return _MERGERS[MergeStrategy(strategy)]()
    except (KeyError, ValueError):
        raise ValueError(f"Unknown merge strategy: {strategy!r}") from None
