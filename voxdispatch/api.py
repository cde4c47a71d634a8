"""REST API routes: dispatch and service management."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field

from .auth import require_api_key
from .dispatcher import Dispatcher
from .errors import NotFoundError, ValidationError
from .llm import IntentResolver
from .registry import ServiceRegistry
from .validators import validate_service_registration, validate_transcript

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", dependencies=[Depends(require_api_key)])

UNCERTAIN_MESSAGE = "I'm not sure which service to use. Please clarify or select one."


# ── Pydantic schemas ──────────────────────────────────────────

class DispatchRequest(BaseModel):
    transcript: Optional[str] = None

class SelectRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transcript: Optional[str] = None
    service_id: str = Field(alias="serviceId")
    endpoint_index: int = Field(alias="endpointIndex")

class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    base_url: Optional[str] = Field(default=None, alias="baseUrl")
    api_key: Optional[str] = Field(default=None, alias="apiKey")


# ── Dependencies ──────────────────────────────────────────────

def get_registry(request: Request) -> ServiceRegistry:
    return request.app.state.registry

def get_resolver(request: Request) -> IntentResolver:
    return request.app.state.resolver

def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


# ── Dispatch ──────────────────────────────────────────────────

@router.post("/dispatch")
async def dispatch(
    req: DispatchRequest,
    resolver: IntentResolver = Depends(get_resolver),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    if not validate_transcript(req.transcript):
        raise ValidationError("Invalid or missing transcript")

    logger.info(f"Received dispatch request: \"{req.transcript}\"")
    decision = await resolver.route_request(req.transcript)

    if not decision.confident:
        return {
            "status": "uncertain",
            "explanation": decision.explanation,
            "options": decision.available_services,
            "message": UNCERTAIN_MESSAGE,
        }

    result = await dispatcher.dispatch(decision, req.transcript)
    return {"status": "success", **result.to_dict()}


@router.post("/dispatch/select")
async def dispatch_select(
    req: SelectRequest,
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """Manual selection after an uncertain answer; dispatches with no parameters."""
    result = await dispatcher.select(req.service_id, req.endpoint_index, req.transcript or "")
    return {"status": "success", **result.to_dict()}


# ── Services ──────────────────────────────────────────────────

@router.get("/services")
async def list_services(registry: ServiceRegistry = Depends(get_registry)):
    services = await registry.list()
    return {"services": [s.to_dict() for s in services]}


@router.get("/services/{service_id}")
async def get_service(service_id: str, registry: ServiceRegistry = Depends(get_registry)):
    service = await registry.get(service_id)
    if not service:
        raise NotFoundError("Service", service_id)
    return {"service": service.to_dict()}


@router.post("/services/register", status_code=201)
async def register_service(req: RegisterRequest, registry: ServiceRegistry = Depends(get_registry)):
    if not validate_service_registration(req.base_url, req.api_key):
        raise ValidationError("Invalid baseUrl or apiKey")

    service = await registry.register(req.base_url, req.api_key)
    return {"service": service.to_dict()}


@router.delete("/services/{service_id}")
async def unregister_service(service_id: str, registry: ServiceRegistry = Depends(get_registry)):
    service = await registry.unregister(service_id)
    return {"message": "Service unregistered", "service": service.to_dict()}
