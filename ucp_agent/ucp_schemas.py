"""
Universal Commerce Protocol (UCP) profile schemas.

A UCP merchant publishes a profile document at /.well-known/ucp:

    {
      "ucp": {
        "version": "2026-01-11",
        "services": {"dev.ucp.shopping": {"version": ..., "rest": {...}, "mcp": {...}}},
        "capabilities": [...] | {"dev.ucp.shopping.checkout": [{"version": ...}]}
      },
      "payment": {"handlers": [...]},
      "signing_keys": [...]
    }

Services may be a single object or a list per key, and capabilities may be a
flat list or a map keyed by capability name. normalize_capabilities() and
normalize_services() reduce both shapes to the same flat records.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Transport bindings
# ============================================================================

class UcpEndpoint(BaseModel):
    """REST or MCP (JSON-RPC) binding of a service."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    endpoint: str = Field(..., description="Base URL of the transport")
    schema_url: Optional[str] = Field(None, alias="schema", description="OpenAPI / OpenRPC document URL")


class UcpAgentCard(BaseModel):
    """A2A binding: reference to an agent card."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    agent_card: str = Field(..., alias="agentCard")


class ServiceTransports(BaseModel):
    """Uniform transport map; any subset may be absent."""
    rest: Optional[UcpEndpoint] = None
    mcp: Optional[UcpEndpoint] = None
    a2a: Optional[UcpAgentCard] = None


class NormalizedService(BaseModel):
    name: str
    version: str = ""
    spec: str = ""
    transports: ServiceTransports = Field(default_factory=ServiceTransports)


# ============================================================================
# Capabilities / payment
# ============================================================================

class UcpCapability(BaseModel):
    """Flat capability record, identical for both profile shapes."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    version: str = ""
    spec: str = ""
    schema_url: str = Field("", alias="schema")
    extends: Optional[str] = None
    config: Optional[Dict[str, Any]] = None


class PaymentHandler(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str = ""
    version: str = ""
    spec: str = ""
    config_schema: Optional[str] = None
    instrument_schemas: Optional[List[str]] = None
    config: Optional[Dict[str, Any]] = None


class DiscoveryResult(BaseModel):
    """Cached result of UcpClient.discover()."""
    profile: Dict[str, Any] = Field(..., description="Raw profile document")
    profile_url: str
    domain: str
    version: str = "unknown"
    services: List[NormalizedService] = Field(default_factory=list)
    capabilities: List[UcpCapability] = Field(default_factory=list)
    payment_handlers: List[PaymentHandler] = Field(default_factory=list)


# ============================================================================
# Normalisation
# ============================================================================

def normalize_capabilities(ucp: Dict[str, Any]) -> List[UcpCapability]:
    """Flatten the list form or the keyed-map form of `ucp.capabilities`."""
    caps = ucp.get("capabilities") or []
    profile_version = ucp.get("version", "")

    if isinstance(caps, list):
        result = []
        for cap in caps:
            if isinstance(cap, str):
                result.append(UcpCapability(name=cap, version=profile_version))
                continue
            result.append(UcpCapability(
                name=cap["name"],
                version=cap.get("version", ""),
                spec=cap.get("spec") or "",
                schema_url=cap.get("schema") or "",
                extends=cap.get("extends"),
                config=cap.get("config"),
            ))
        return result

    result = []
    for name, entries in caps.items():
        if isinstance(entries, dict):
            entries = [entries]
        for entry in entries:
            result.append(UcpCapability(
                name=name,
                version=entry.get("version", ""),
                spec=entry.get("spec") or "",
                schema_url=entry.get("schema") or "",
                extends=entry.get("extends"),
                config=entry.get("config"),
            ))
    return result


def normalize_services(ucp: Dict[str, Any]) -> List[NormalizedService]:
    """One NormalizedService per service object, keyed by its profile key."""
    result = []
    for name, service_or_list in (ucp.get("services") or {}).items():
        services: List[Dict[str, Any]] = (
            service_or_list if isinstance(service_or_list, list) else [service_or_list]
        )
        for svc in services:
            result.append(NormalizedService(
                name=name,
                version=svc.get("version", ""),
                spec=svc.get("spec", ""),
                transports=ServiceTransports(
                    rest=svc.get("rest"),
                    mcp=svc.get("mcp"),
                    a2a=svc.get("a2a"),
                ),
            ))
    return result


def capability_summary(capabilities: List[UcpCapability]) -> List[Dict[str, Union[str, None]]]:
    """name/version/extends view handed to the LLM."""
    return [
        {"name": c.name, "version": c.version, "extends": c.extends}
        for c in capabilities
    ]
