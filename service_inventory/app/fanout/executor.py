"""
Concurrent execution of concrete requests against the upstream API.
"""

import asyncio
import time
from typing import Dict, List, Optional, Sequence

import httpx

from shared.errors import MergeFailedError, UpstreamCallFailedError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from .models import ConcreteRequest, UpstreamResponse


class FanOutExecutor:
    """Issues one upstream call per request and returns the responses in order.

    Batches are all-or-nothing: the first failed call cancels every call still
    in flight and its error is raised to the caller.
    """

    def __init__(
        self,
        base_url: str,
        *,
        max_concurrency: int = 10,
        timeout: float = 30.0,
        metrics: Optional[MetricsCollector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.max_concurrency = max(1, max_concurrency)
        self.timeout = timeout
        self.metrics = metrics
        self.logger = get_logger("inventory.fanout")
        self._transport = transport

    async def execute(self, requests: Sequence[ConcreteRequest], token: str) -> List[UpstreamResponse]:
        """Run every request concurrently with the same bearer token."""
        if not requests:
            return []

        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        semaphore = asyncio.Semaphore(self.max_concurrency)
        tasks = [
            asyncio.create_task(
                self._call(request, headers, semaphore),
                name=f"fanout_{index}",
            )
            for index, request in enumerate(requests)
        ]

        self.logger.info(
            "Fan-out batch started",
            count=len(tasks),
            max_concurrency=self.max_concurrency,
        )

        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            await self._cancel(tasks)
            raise

        failed = [task for task in tasks if task in done and not task.cancelled() and task.exception()]
        if failed:
            if pending:
                self.logger.warning(
                    "Cancelling in-flight upstream calls after failure",
                    cancelled=len(pending),
                )
            await self._cancel(pending)
            raise failed[0].exception()

        self.logger.info("Fan-out batch completed", count=len(tasks))
        return [task.result() for task in tasks]

    async def _cancel(self, tasks) -> None:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _call(
        self,
        request: ConcreteRequest,
        headers: Dict[str, str],
        semaphore: asyncio.Semaphore,
    ) -> UpstreamResponse:
        """Issue a single upstream call on a fresh client."""
        url = f"{self.base_url}{request.route}"
        request_headers = dict(headers)
        if request.body is not None:
            request_headers["Content-Type"] = "application/json"

        async with semaphore:
            self.logger.info("Calling upstream API", method=request.method, url=url)
            start = time.perf_counter()
            try:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                    # httpx times each phase separately; this bounds the whole call.
                    response = await asyncio.wait_for(
                        client.request(
                            request.method,
                            url,
                            headers=request_headers,
                            content=request.body,
                        ),
                        self.timeout,
                    )
            except asyncio.TimeoutError as exc:
                self._record(request.method, "error", time.perf_counter() - start)
                self.logger.error(
                    "Upstream API call timed out",
                    method=request.method,
                    url=url,
                    timeout_seconds=self.timeout,
                )
                raise UpstreamCallFailedError(url, reason="timeout") from exc
            except httpx.HTTPError as exc:
                self._record(request.method, "error", time.perf_counter() - start)
                self.logger.error(
                    "HTTP request error while calling upstream API",
                    method=request.method,
                    url=url,
                    error=str(exc) or exc.__class__.__name__,
                )
                raise UpstreamCallFailedError(url, reason=str(exc) or exc.__class__.__name__) from exc

        duration = time.perf_counter() - start
        if not response.is_success:
            self._record(request.method, "failed", duration)
            self.logger.error(
                "Upstream API returned an error status",
                method=request.method,
                url=url,
                status_code=response.status_code,
                reason=response.reason_phrase,
                response=response.text,
            )
            raise UpstreamCallFailedError(
                url,
                status_code=response.status_code,
                reason=response.reason_phrase,
                body=response.text,
            )

        self._record(request.method, "success", duration)
        self.logger.debug(
            "Upstream API response received",
            url=url,
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2),
        )

        try:
            payload = response.json()
        except ValueError as exc:
            raise MergeFailedError(
                "Upstream response is not valid JSON",
                details={"url": url},
            ) from exc

        return UpstreamResponse(
            request=request,
            status_code=response.status_code,
            text=response.text,
            payload=payload,
        )

    def _record(self, method: str, outcome: str, duration: float) -> None:
        if self.metrics is None:
            return
        self.metrics.increment_counter("fanout_calls_total", method=method, outcome=outcome)
        self.metrics.observe_histogram("fanout_call_duration_seconds", duration, method=method)
