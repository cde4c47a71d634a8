"""Background health monitor — probes every registered service on a fixed interval.

Status follows the latest probe only: one failed probe marks a service
unhealthy (and removes it from routing), one successful probe marks it
healthy again.
"""
import asyncio
import logging
from typing import Dict, Optional

import httpx

from .config import settings
from .database import Store
from .models import Service, STATUS_HEALTHY, STATUS_UNHEALTHY, utcnow

logger = logging.getLogger(__name__)


class HealthMonitor:
    def __init__(
        self,
        store: Store,
        interval: float = settings.health_check_interval,
        concurrency: int = settings.health_check_concurrency,
        probe_timeout: float = settings.probe_timeout,
        health_path: str = settings.health_path,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = store
        self.interval = interval
        self.probe_timeout = probe_timeout
        self.health_path = health_path
        self._transport = transport
        self._semaphore = asyncio.Semaphore(max(1, concurrency))
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def probe(self, service: Service) -> bool:
        """Return True if the service's health endpoint answers 2xx in time."""
        url = f"{service.base_url}{self.health_path}"
        try:
            async with httpx.AsyncClient(timeout=self.probe_timeout, transport=self._transport) as client:
                resp = await client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"Health check failed for {service.name}: {e!r}")
            return False

        if not resp.is_success:
            logger.warning(f"Health check failed for {service.name}: status {resp.status_code}")
        return resp.is_success

    async def check_service(self, service: Service) -> Optional[str]:
        """Probe one service and persist the result. Returns the new status,
        or None if the service was unregistered mid-sweep."""
        async with self._semaphore:
            healthy = await self.probe(service)

        status = STATUS_HEALTHY if healthy else STATUS_UNHEALTHY
        updated = await self.store.update(Service, service.id, status=status, last_health_check=utcnow())
        if updated is None:
            logger.debug(f"Service {service.name} was unregistered during health sweep")
            return None

        if service.status != status:
            logger.info(f"Service {service.name}: {service.status} -> {status}")
        return status

    async def sweep(self) -> Dict[str, str]:
        """Probe all registered services once. Returns {service_id: status}."""
        services = await self.store.all(Service)
        if not services:
            return {}

        results = await asyncio.gather(
            *(self.check_service(s) for s in services),
            return_exceptions=True,
        )

        statuses: Dict[str, str] = {}
        for service, result in zip(services, results):
            if isinstance(result, Exception):
                logger.error(f"Health check for {service.name} crashed: {result}", exc_info=result)
            elif result is not None:
                statuses[service.id] = result

        healthy = sum(1 for s in statuses.values() if s == STATUS_HEALTHY)
        logger.info(f"Health sweep: {healthy}/{len(services)} services healthy")
        return statuses

    async def _run(self):
        # First sweep runs immediately, no warm-up delay
        while True:
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Health sweep error: {e}")
            await asyncio.sleep(self.interval)

    def start(self):
        if self.running:
            return
        logger.info(f"Health check scheduler started (every {self.interval:.0f}s)")
        self._task = asyncio.create_task(self._run(), name="health-monitor")

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Health check scheduler stopped")
