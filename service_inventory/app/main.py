"""
Inventory Gateway service: one client call fanned out to many ARM calls.
"""

from typing import Any, Dict, Optional, Tuple

import httpx
from fastapi import Query, Request
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.errors import GatewayException, UpstreamCallFailedError

from service_inventory.app.auth.credentials import CredentialProvider, build_credential_provider
from service_inventory.app.domain.aggregators import ArmAggregator, CostAggregator
from service_inventory.app.domain.inputs import decode_body, require_arm_inputs, require_cost_inputs
from service_inventory.app.fanout.executor import FanOutExecutor


class InventoryGatewayService(BaseService):
    """Resource Inventory gateway service implementation."""

    def __init__(
        self,
        credential_provider: Optional[CredentialProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **config_overrides,
    ):
        super().__init__("inventory", 8000, **config_overrides)
        self.credential_provider = credential_provider or build_credential_provider(
            self.config, metrics=self.metrics
        )
        self.executor = FanOutExecutor(
            self.config.management_host,
            max_concurrency=self.config.fanout_max_concurrency,
            timeout=self.config.fanout_call_timeout_seconds,
            metrics=self.metrics,
            transport=transport,
        )
        self.arm_aggregator = ArmAggregator(
            self.credential_provider,
            self.executor,
            metrics=self.metrics,
        )
        self.cost_aggregator = CostAggregator(
            self.credential_provider,
            self.executor,
            api_version=self.config.cost_api_version,
            metrics=self.metrics,
        )

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.credential_provider.close()

        self._setup_gateway_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.gateway_service = self

    def _setup_gateway_routes(self):
        """Set up the fan-out routes."""

        @self.app.get("/")
        async def root():
            """Service descriptor."""
            return {
                "service": self.service_name,
                "message": "Resource Inventory - ARM fan-out gateway",
                "version": "1.0.0",
                "routes": ["/api/ArmGateway", "/api/CostGateway"],
            }

        @self.app.get("/api/ArmGateway")
        async def arm_gateway(
            arm_route: Optional[str] = Query(None, alias="armRoute"),
            resource_ids: Optional[str] = Query(None, alias="resourceIds"),
        ):
            """Fan an ARM route template out over a list of resource ids."""
            parsed_ids = require_arm_inputs(arm_route, resource_ids)
            merged = await self.arm_aggregator.aggregate(arm_route, parsed_ids)
            return JSONResponse(content=merged)

        @self.app.post("/api/CostGateway")
        async def cost_gateway(
            request: Request,
            scope: Optional[str] = Query(None),
        ):
            """Run one cost query over every scope and merge the tables."""
            body = decode_body(await request.body())
            scopes = require_cost_inputs(scope, body)
            self.logger.info("Received cost query payload", scopes=scopes, payload=body)
            merged = await self.cost_aggregator.aggregate(scopes, body)
            return JSONResponse(content=merged)

    def _render_exception(self, exc: GatewayException) -> Tuple[int, Dict[str, Any]]:
        if isinstance(exc, UpstreamCallFailedError) and self.config.forward_upstream_errors:
            return 502, exc.to_response().model_dump()
        return super()._render_exception(exc)


def create_app(**kwargs):
    """Create FastAPI application."""
    service = InventoryGatewayService(**kwargs)
    return service.app


if __name__ == "__main__":
    service = InventoryGatewayService()
    service.run()
