"""Tests for the MCP tool surface."""

import asyncio

import pytest

from citty_domains import server
from citty_domains.config import DiscoveryConfig
from citty_domains.orchestrator import DomainDiscoveryOrchestrator


def _fn(tool):
    # Registered tools wrap the plain function on newer fastmcp releases.
    return getattr(tool, "fn", tool)


@pytest.fixture
def orchestrator(tmp_path, monkeypatch):
    config = DiscoveryConfig(project_dir=tmp_path, enable_plugins=False, auto_discover=False, discovery_sources=[])
    instance = DomainDiscoveryOrchestrator(config)
    monkeypatch.setattr(server, "orchestrator", instance)
    return instance


def test_register_list_and_get(orchestrator):
    result = asyncio.run(_fn(server.register_domain)({
        "name": "ops", "resources": [{"name": "job", "actions": ["run"]}],
    }))
    assert result == {"registered": "ops", "sources": ["runtime"]}
    assert _fn(server.list_domains)()[0]["resources"] == ["job"]
    assert _fn(server.get_domain)("ops")["displayName"] == "Ops"
    assert _fn(server.get_domain)("missing") == {"error": "Domain 'missing' not found"}


def test_errors_are_returned(orchestrator):
    register = _fn(server.register_domain)
    asyncio.run(register({"name": "ops", "resources": []}))
    assert "error" in asyncio.run(register({"name": "ops", "resources": []}))
    assert "error" in asyncio.run(register({"resources": []}))
    assert "error" in _fn(server.unregister_domain)("missing")


def test_discover_and_validate_command(orchestrator):
    result = asyncio.run(_fn(server.discover_domains)(sources=["cli-analysis"], validate=False))
    assert result["domains"] == []

    asyncio.run(_fn(server.create_domain_from_template)("noun-verb", {"domain": "ops", "resource": "job"}))
    assert _fn(server.validate_command)("ops job create")["valid"] is True
    assert _fn(server.get_taxonomy)()["domains"] == ["ops"]


def test_export_import(orchestrator):
    asyncio.run(_fn(server.register_domain)({"name": "ops", "resources": []}))
    snapshot = _fn(server.export_domains)()
    _fn(server.unregister_domain)("ops")
    assert _fn(server.import_domains)(snapshot) == {"imported": ["ops"]}
    assert "error" in _fn(server.import_domains)({"nothing": True})
    assert _fn(server.get_stats)()["registry"]["total_domains"] == 1


def test_suggest_template(orchestrator):
    result = asyncio.run(_fn(server.suggest_template)(commands=["infra server create"]))
    assert result["template"] == "hierarchical"
    assert result["metadata"]["name"] == "hierarchical"
