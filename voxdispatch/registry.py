"""Service registry — registration via self-description, lookup and removal."""
import logging
import uuid
from typing import List, Optional

import httpx
from pydantic import ValidationError as SchemaError
from sqlalchemy.exc import IntegrityError

from .config import settings
from .database import Store
from .errors import ConflictError, NotFoundError, UpstreamError, ValidationError
from .models import Service, STATUS_HEALTHY, utcnow
from .protocol import ServiceDoc

logger = logging.getLogger(__name__)


class ServiceRegistry:
    def __init__(
        self,
        store: Store,
        docs_path: str = settings.docs_path,
        docs_timeout: float = settings.docs_timeout,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = store
        self.docs_path = docs_path
        self.docs_timeout = docs_timeout
        self._transport = transport

    async def register(self, base_url: str, api_key: str) -> Service:
        """Fetch the service's self-description and store it as a healthy service."""
        base_url = base_url.rstrip("/")
        doc = await self._fetch_docs(base_url, api_key)

        try:
            parsed = ServiceDoc.model_validate(doc)
        except SchemaError as e:
            logger.error(f"Failed to register service from {base_url}: invalid docs ({e.error_count()} errors)")
            raise ValidationError("Invalid service documentation format")

        if await self.find_by_name(parsed.name):
            logger.error(f"Failed to register service from {base_url}: {parsed.name} already registered")
            raise ConflictError(f"Service {parsed.name} already registered")

        now = utcnow()
        service = Service(
            id=str(uuid.uuid4()),
            name=parsed.name,
            description=parsed.description,
            base_url=base_url,
            api_key=api_key,
            endpoints=doc["endpoints"],
            registered_at=now,
            last_health_check=now,
            status=STATUS_HEALTHY,
        )
        try:
            await self.store.add(service)
        except IntegrityError:
            # Lost a race against a concurrent registration of the same name
            raise ConflictError(f"Service {parsed.name} already registered")

        logger.info(f"Service registered: {service.name} ({len(service.endpoints)} endpoints) at {base_url}")
        return service

    async def _fetch_docs(self, base_url: str, api_key: str):
        url = f"{base_url}{self.docs_path}"
        try:
            async with httpx.AsyncClient(timeout=self.docs_timeout, transport=self._transport) as client:
                resp = await client.get(url, headers={settings.api_key_header: api_key})
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Failed to register service from {base_url}: docs returned {e.response.status_code}")
            raise UpstreamError(
                f"Service docs request failed with status {e.response.status_code}", upstream=base_url,
            )
        except httpx.HTTPError as e:
            logger.error(f"Failed to register service from {base_url}: {e}")
            raise UpstreamError(f"Could not reach service docs at {url}", upstream=base_url)

        try:
            return resp.json()
        except ValueError:
            raise ValidationError("Service documentation is not valid JSON")

    async def unregister(self, service_id: str) -> Service:
        service = await self.store.delete(Service, service_id)
        if service is None:
            raise NotFoundError("Service", service_id)
        logger.info(f"Service unregistered: {service.name}")
        return service

    async def list(self) -> List[Service]:
        return await self.store.all(Service, order_by=Service.registered_at)

    async def list_healthy(self) -> List[Service]:
        return await self.store.all(Service, order_by=Service.registered_at, status=STATUS_HEALTHY)

    async def get(self, service_id: str) -> Optional[Service]:
        return await self.store.get(Service, service_id)

    async def find_by_name(self, name: str) -> Optional[Service]:
        matches = await self.store.all(Service, name=name)
        return matches[0] if matches else None
