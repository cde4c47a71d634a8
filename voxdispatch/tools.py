"""Capability translator — turns registered service endpoints into LLM tools.

Tools are rebuilt for every routing call from the services passed in, so the
model only ever sees endpoints of services that are currently healthy. Each
tool name maps back to exactly one (service, endpoint) pair via ToolSet.
"""
import hashlib
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .models import Service

logger = logging.getLogger(__name__)

# OpenAI function names: ^[a-zA-Z0-9_-]{1,64}$
MAX_TOOL_NAME = 64
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def empty_schema() -> Dict[str, Any]:
    return {"type": "object", "properties": {}}


def endpoint_ref(endpoint: Dict[str, Any]) -> Dict[str, str]:
    """Reduce an endpoint to the method/path pair used for dispatch and logs."""
    return {"method": str(endpoint["method"]).upper(), "path": endpoint["path"]}


@dataclass
class ToolBinding:
    service_id: str
    service_name: str
    endpoint: Dict[str, str]


@dataclass
class ToolDef:
    name: str
    description: str
    parameters: Dict[str, Any]
    binding: ToolBinding

    def to_openai(self) -> Dict[str, Any]:
        """Function tool definition. The binding is never sent to the model."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass
class ToolSet:
    tools: List[ToolDef] = field(default_factory=list)
    bindings: Dict[str, ToolBinding] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.tools)

    def definitions(self) -> List[Dict[str, Any]]:
        return [tool.to_openai() for tool in self.tools]

    def resolve(self, name: str) -> Optional[ToolBinding]:
        return self.bindings.get(name)


def tool_name(service_name: str, method: str, path: str) -> str:
    """Deterministic, API-safe tool name for one endpoint."""
    raw = f"{service_name}_{method.lower()}_{path.replace('/', '_')}"
    name = _UNSAFE_CHARS.sub("_", raw)
    if len(name) > MAX_TOOL_NAME:
        digest = hashlib.sha1(raw.encode("utf-8")).hexdigest()[:8]
        name = f"{name[:MAX_TOOL_NAME - 9]}_{digest}"
    return name


def _unique_name(base: str, taken: Dict[str, ToolBinding]) -> str:
    name = base
    n = 2
    while name in taken:
        suffix = f"_{n}"
        name = f"{base[:MAX_TOOL_NAME - len(suffix)]}{suffix}"
        n += 1
    return name


def service_tools(service: Service, taken: Dict[str, ToolBinding]) -> List[ToolDef]:
    """Convert each endpoint of one service into a tool, claiming names in `taken`."""
    tools = []
    for endpoint in service.endpoints:
        ref = endpoint_ref(endpoint)
        name = _unique_name(tool_name(service.name, ref["method"], ref["path"]), taken)
        tool = ToolDef(
            name=name,
            description=f"{service.description}: {endpoint.get('description', '')}",
            parameters=endpoint.get("parameters") or empty_schema(),
            binding=ToolBinding(service_id=service.id, service_name=service.name, endpoint=ref),
        )
        taken[name] = tool.binding
        tools.append(tool)
    return tools


def build_tools(services: Iterable[Service]) -> ToolSet:
    toolset = ToolSet()
    for service in services:
        toolset.tools.extend(service_tools(service, toolset.bindings))
    logger.debug(f"Built {len(toolset)} tools")
    return toolset
