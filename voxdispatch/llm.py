"""Intent resolver — picks a service endpoint for a transcript via OpenAI tool calling."""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from openai import AsyncOpenAI, OpenAIError

from .config import settings
from .errors import NoHealthyServicesError, UpstreamError, ValidationError
from .registry import ServiceRegistry
from .tools import build_tools

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a service dispatcher. Based on the user's voice command, select the most "
    "appropriate service and endpoint to handle the request. Extract relevant parameters "
    "from the voice command. If you are uncertain which service fits, do not call any tool "
    "and explain why instead."
)


@dataclass
class ConfidentDecision:
    service_id: str
    service_name: str
    endpoint: Dict[str, str]
    parameters: Dict[str, Any] = field(default_factory=dict)
    confident: bool = field(default=True, init=False)


@dataclass
class UncertainDecision:
    explanation: str
    available_services: List[Dict[str, str]]
    confident: bool = field(default=False, init=False)


RoutingDecision = Union[ConfidentDecision, UncertainDecision]


def _get_client() -> AsyncOpenAI:
    return AsyncOpenAI(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
    )


def parse_arguments(raw) -> Dict[str, Any]:
    """Parse a tool call's argument payload into a parameter dict."""
    if raw is None or raw == "":
        return {}
    try:
        args = json.loads(raw)
    except (TypeError, ValueError):
        raise ValidationError("LLM returned malformed tool arguments")
    if not isinstance(args, dict):
        raise ValidationError("LLM tool arguments must be a JSON object")
    return args


class IntentResolver:
    def __init__(
        self,
        registry: ServiceRegistry,
        model: str = settings.llm_model,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.registry = registry
        self.model = model
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = _get_client()
        return self._client

    async def route_request(self, transcript: str) -> RoutingDecision:
        services = await self.registry.list_healthy()
        if not services:
            raise NoHealthyServicesError()

        toolset = build_tools(services)
        logger.info(f"Routing request with {len(toolset)} available tools")

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": transcript},
                ],
                tools=toolset.definitions(),
                tool_choice="auto",
            )
        except OpenAIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise UpstreamError("LLM service error", upstream="llm")

        message = response.choices[0].message
        tool_calls = message.tool_calls or []

        if not tool_calls:
            logger.info(f"LLM declined to route: {(message.content or '')[:200]}")
            return UncertainDecision(
                explanation=message.content or "",
                available_services=[s.summary() for s in services],
            )

        if len(tool_calls) > 1:
            ignored = [c.function.name for c in tool_calls[1:]]
            logger.warning(f"LLM proposed {len(tool_calls)} tool calls, ignoring {ignored}")

        call = tool_calls[0]
        binding = toolset.resolve(call.function.name)
        if binding is None:
            logger.error(f"LLM selected unknown tool: {call.function.name}")
            raise UpstreamError(f"LLM selected unknown tool {call.function.name}", upstream="llm")

        parameters = parse_arguments(call.function.arguments)
        logger.info(
            f"Routed to {binding.service_name} {binding.endpoint['method']} "
            f"{binding.endpoint['path']} args={parameters}"
        )
        return ConfidentDecision(
            service_id=binding.service_id,
            service_name=binding.service_name,
            endpoint=dict(binding.endpoint),
            parameters=parameters,
        )
