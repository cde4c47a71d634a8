"""Dispatcher — forwards a routing decision to the selected service and logs the outcome.

Exactly one outbound call per dispatch and exactly one RequestLog row per
dispatch, whether it succeeds or fails. Failures are logged before they are
raised to the caller.
"""
import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .config import settings
from .database import Store
from .errors import NotFoundError, UpstreamError
from .llm import ConfidentDecision
from .models import RequestLog, Service, RESULT_SUCCESS, RESULT_ERROR, utcnow
from .registry import ServiceRegistry
from .tools import endpoint_ref

logger = logging.getLogger(__name__)

# Parameters go in the query string for these, in a JSON body otherwise
READ_ONLY_METHODS = {"GET", "HEAD", "OPTIONS"}


@dataclass
class DispatchOutcome:
    result: str  # "success" | "error"
    response: Any = None
    callback_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result == RESULT_SUCCESS

    @classmethod
    def success(cls, payload: Any) -> "DispatchOutcome":
        callback = payload.get("url") if isinstance(payload, dict) else None
        if not isinstance(callback, str):
            callback = None
        return cls(result=RESULT_SUCCESS, response=payload, callback_url=callback)

    @classmethod
    def failure(cls, error: str) -> "DispatchOutcome":
        return cls(result=RESULT_ERROR, error=error)


@dataclass
class DispatchResult:
    service: str
    url: Optional[str]
    message: str
    data: Any

    def to_dict(self) -> Dict[str, Any]:
        return {"service": self.service, "url": self.url, "message": self.message, "data": self.data}


def _query_value(value: Any) -> Any:
    if isinstance(value, dict):
        return json.dumps(value)
    if isinstance(value, (list, tuple)):
        # repeated keys for lists; structured items still go as JSON text
        return [json.dumps(item) if isinstance(item, (dict, list, tuple)) else item for item in value]
    return value


def _query_params(parameters: Dict[str, Any]) -> Dict[str, Any]:
    """Nested objects cannot go in a query string as-is, so send them as JSON text."""
    return {k: _query_value(v) for k, v in parameters.items()}


def _describe(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"Request failed with status code {exc.response.status_code}"
    if isinstance(exc, httpx.TimeoutException):
        return f"Request timed out: {exc}" if str(exc) else "Request timed out"
    return str(exc) or type(exc).__name__


class Dispatcher:
    def __init__(
        self,
        store: Store,
        registry: ServiceRegistry,
        timeout: float = settings.dispatch_timeout,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = store
        self.registry = registry
        self.timeout = timeout
        self._transport = transport

    async def dispatch(self, decision: ConfidentDecision, transcript: str) -> DispatchResult:
        service = await self.registry.get(decision.service_id)
        if service is None:
            raise NotFoundError("Service", decision.service_id)

        endpoint = endpoint_ref(decision.endpoint)
        parameters = decision.parameters or {}
        url = f"{service.base_url}{endpoint['path']}"

        logger.info(f"Dispatching to {service.name}: {endpoint['method']} {url}")
        t0 = time.monotonic()
        outcome = await self._invoke(service, endpoint["method"], url, parameters)
        elapsed = time.monotonic() - t0
        await self._record(outcome, service, endpoint, parameters, transcript)

        if not outcome.ok:
            logger.error(f"Failed to dispatch to {service.name} after {elapsed:.1f}s: {outcome.error}")
            raise UpstreamError(f"Service {service.name} failed: {outcome.error}", upstream=service.name)

        logger.info(f"Dispatch to {service.name}: {elapsed:.1f}s -> {outcome.result}")
        payload = outcome.response
        message = payload.get("message") if isinstance(payload, dict) else None
        return DispatchResult(
            service=service.name,
            url=outcome.callback_url,
            message=message or "Success",
            data=payload,
        )

    async def select(self, service_id: str, endpoint_index: int, transcript: str) -> DispatchResult:
        """Dispatch to an explicitly chosen endpoint, with no parameters."""
        decision = await self.manual_decision(service_id, endpoint_index)
        return await self.dispatch(decision, transcript)

    async def manual_decision(self, service_id: str, endpoint_index: int) -> ConfidentDecision:
        service = await self.registry.get(service_id)
        if service is None:
            raise NotFoundError("Service", service_id)
        if endpoint_index < 0 or endpoint_index >= len(service.endpoints):
            raise NotFoundError("Endpoint", endpoint_index)
        return ConfidentDecision(
            service_id=service.id,
            service_name=service.name,
            endpoint=endpoint_ref(service.endpoints[endpoint_index]),
            parameters={},
        )

    async def _invoke(self, service: Service, method: str, url: str, parameters: Dict[str, Any]) -> DispatchOutcome:
        read_only = method in READ_ONLY_METHODS
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.request(
                    method,
                    url,
                    params=_query_params(parameters) if read_only else None,
                    json=None if read_only else parameters,
                    headers={settings.api_key_header: service.api_key},
                )
                resp.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return DispatchOutcome.failure(_describe(e))

        try:
            payload = resp.json()
        except ValueError:
            payload = resp.text or None
        return DispatchOutcome.success(payload)

    async def _record(self, outcome: DispatchOutcome, service: Service, endpoint: Dict[str, str],
                      parameters: Dict[str, Any], transcript: str):
        entry = RequestLog(
            id=str(uuid.uuid4()),
            transcript=transcript,
            selected_service=service.name,
            endpoint=endpoint,
            arguments=parameters,
            confidence=1.0,
            timestamp=utcnow(),
            result=outcome.result,
            callback_url=outcome.callback_url,
            response=outcome.response,
            error=outcome.error,
        )
        await self.store.add(entry)
