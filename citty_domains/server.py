"""Domain discovery MCP server."""

import logging
from typing import Optional

from fastmcp import FastMCP

from .config import DiscoveryConfig
from .errors import DomainDiscoveryError
from .orchestrator import DomainDiscoveryOrchestrator

logger = logging.getLogger(__name__)

mcp = FastMCP("Citty Domain Discovery")

config = DiscoveryConfig()
orchestrator = DomainDiscoveryOrchestrator(config)


@mcp.tool()
async def discover_domains(
    sources: Optional[list[str]] = None,
    force_refresh: bool = False,
    validate: Optional[bool] = None,
    cli_path: Optional[str] = None,
    overwrite: bool = False,
    persist: bool = False,
) -> dict:
    """Discover domains from the configured sources and register them."""
    try:
        report = await orchestrator.discover_domains(
            sources=sources,
            force_refresh=force_refresh,
            validate=validate,
            cli_path=cli_path,
            overwrite=overwrite,
            persist=persist,
        )
    except DomainDiscoveryError as exc:
        return {"error": str(exc)}
    return {
        "domains": [d.name for d in report.domains],
        "fallbacks": {o.domain.name: o.fallback for o in report.outcomes if o.fallback},
        "sources": report.taxonomy.metadata.get("sources", []),
        "errors": report.taxonomy.metadata.get("errors", []),
        "persisted_to": report.persisted_to,
    }


@mcp.tool()
def list_domains() -> list[dict]:
    """List registered domains with their resource names."""
    return [
        {
            "name": d.name,
            "displayName": d.display_name,
            "category": d.category,
            "resources": d.resource_names(),
            "isDynamic": d.is_dynamic,
        }
        for d in orchestrator.get_all_domains()
    ]


@mcp.tool()
def get_domain(name: str) -> dict:
    """Get a registered domain with its resources and actions."""
    domain = orchestrator.get_domain(name)
    if domain is None:
        return {"error": f"Domain '{name}' not found"}
    return domain.to_dict()


@mcp.tool()
async def register_domain(domain: dict, overwrite: bool = False) -> dict:
    """Register a domain definition at runtime."""
    try:
        installed = await orchestrator.register_domain(domain, overwrite=overwrite)
    except DomainDiscoveryError as exc:
        return {"error": str(exc)}
    return {"registered": installed.name, "sources": installed.sources}


@mcp.tool()
def unregister_domain(name: str) -> dict:
    """Remove a domain and everything filed under it."""
    try:
        orchestrator.unregister_domain(name)
    except DomainDiscoveryError as exc:
        return {"error": str(exc)}
    return {"unregistered": name}


@mcp.tool()
async def create_domain_from_template(
    template: str,
    data: dict,
    register: bool = True,
    overwrite: bool = False,
) -> dict:
    """Synthesize a domain from a named template (noun-verb, hierarchical, flat, microservice, database, api)."""
    try:
        domain = await orchestrator.create_domain_from_template(
            template, data, register=register, overwrite=overwrite
        )
    except DomainDiscoveryError as exc:
        return {"error": str(exc)}
    return domain.to_dict()


@mcp.tool()
async def suggest_template(commands: Optional[list[str]] = None, cli_path: Optional[str] = None) -> dict:
    """Suggest the template that best matches a command list or a CLI's help output."""
    structure = {"commands": commands} if commands is not None else None
    name = await orchestrator.suggest_template_for_cli(structure, cli_path=cli_path)
    return {"template": name, "metadata": orchestrator.templates.get_template_metadata(name)}


@mcp.tool()
def validate_command(command: str) -> dict:
    """Check a 'domain resource action' command against the registry."""
    return orchestrator.validate_command(command).model_dump()


@mcp.tool()
async def validate_domain(name: str, cli_path: Optional[str] = None) -> dict:
    """Validate a registered domain against the live CLI's --help output."""
    try:
        result = await orchestrator.validate_domain(name, cli_path)
    except DomainDiscoveryError as exc:
        return {"error": str(exc)}
    return result.model_dump()


@mcp.tool()
def get_taxonomy() -> dict:
    """Get the flat domain/resource/action taxonomy."""
    return orchestrator.get_taxonomy().model_dump()


@mcp.tool()
def export_domains() -> dict:
    """Export every registered domain as a serializable snapshot."""
    return orchestrator.export_domains()


@mcp.tool()
def import_domains(snapshot: dict, overwrite: bool = False) -> dict:
    """Import a snapshot produced by export_domains."""
    try:
        imported = orchestrator.import_domains(snapshot, overwrite=overwrite)
    except DomainDiscoveryError as exc:
        return {"error": str(exc)}
    return {"imported": imported}


@mcp.tool()
def get_stats() -> dict:
    """Get registry, plugin, and cache statistics."""
    return orchestrator.get_stats()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )
    mcp.run(transport="sse", port=config.port)
