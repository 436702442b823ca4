"""
Use cases behind the two gateway entry points.

Both follow the same flow: one access token per incoming request, one
concrete request per identifier, a concurrent fan-out, and a merge strategy
that matches the shape the upstream API returns.
"""

from typing import Any, Dict, List, Optional, Sequence

from shared.errors import MergeFailedError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from ..auth.credentials import CredentialProvider
from ..fanout.executor import FanOutExecutor
from ..fanout.mergers import MergeStrategy, get_merger
from ..fanout.models import ConcreteRequest
from ..fanout.templater import RouteTemplate

COST_QUERY_PROVIDER_PATH = "/providers/Microsoft.CostManagement/query"


class ArmAggregator:
    """Fans one ARM route template out over a list of resource ids."""

    def __init__(
        self,
        credentials: CredentialProvider,
        executor: FanOutExecutor,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.credentials = credentials
        self.executor = executor
        self.metrics = metrics
        self.logger = get_logger("inventory.arm")

    async def aggregate(self, arm_route: str, resource_ids: Sequence[str]) -> Dict[str, Any]:
        self.logger.info("Processing ARM API request", arm_route=arm_route, resource_ids=list(resource_ids))

        access_token = await self.credentials.get_token()
        requests = RouteTemplate(arm_route).build_requests(resource_ids)
        if self.metrics is not None:
            self.metrics.observe_histogram(
                "fanout_batch_size", len(requests), strategy=MergeStrategy.ITEM_UNION.value
            )

        responses = await self.executor.execute(requests, access_token.token)
        merged = get_merger(MergeStrategy.ITEM_UNION).merge(responses)

        self.logger.info("ARM API request processed successfully", items=len(merged["value"]))
        return merged


class CostAggregator:
    """Runs the same cost query against every scope and unions the tables."""

    def __init__(
        self,
        credentials: CredentialProvider,
        executor: FanOutExecutor,
        api_version: str = "2023-11-01",
        metrics: Optional[MetricsCollector] = None,
    ):
        self.credentials = credentials
        self.executor = executor
        self.api_version = api_version
        self.metrics = metrics
        self.logger = get_logger("inventory.cost")

    def build_requests(self, scopes: Sequence[str], payload: str) -> List[ConcreteRequest]:
        return [
            ConcreteRequest(
                route=f"{scope}{COST_QUERY_PROVIDER_PATH}?api-version={self.api_version}",
                identifier=scope,
                binding={"scope": scope},
                method="POST",
                body=payload,
            )
            for scope in scopes
        ]

    async def aggregate(
        self,
        scopes: Sequence[str],
        payload: str,
        suffix: Optional[str] = None,
    ) -> Dict[str, Any]:
        self.logger.info("Processing Cost Management API request", scopes=list(scopes))
        if not scopes:
            raise MergeFailedError("No cost responses to merge")

        access_token = await self.credentials.get_token()
        requests = self.build_requests(scopes, payload)
        if self.metrics is not None:
            self.metrics.observe_histogram(
                "fanout_batch_size", len(requests), strategy=MergeStrategy.COLUMN_UNION.value
            )

        responses = await self.executor.execute(requests, access_token.token)
        # The synthetic id is derived from the first scope.
        merged = get_merger(MergeStrategy.COLUMN_UNION).merge(responses, scope=scopes[0], suffix=suffix)

        self.logger.info(
            "Cost Management API request processed successfully",
            scope=scopes[0],
            rows=len(merged["properties"]["rows"]),
        )
        return merged
