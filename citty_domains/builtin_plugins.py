"""Built-in domain plugins: infrastructure, development, and security."""

from __future__ import annotations

from .plugins import DomainPlugin


def _action(name: str, description: str, category: str, requires: list[str], optional: list[str]) -> dict:
    return {
        "name": name,
        "description": description,
        "category": category,
        "requires": requires,
        "optional": optional,
    }


def _resource(name: str, display_name: str, description: str, actions, attributes, relationships) -> dict:
    return {
        "name": name,
        "displayName": display_name,
        "description": description,
        "actions": ["create", "list", "show", "update", "delete"] + list(actions),
        "attributes": list(attributes),
        "relationships": list(relationships),
    }


def _crud(create_requires: list[str], create_optional: list[str]) -> list[dict]:
    return [
        _action("create", "Create new resource", "CRUD", create_requires, create_optional),
        _action("list", "List resources", "CRUD", [], ["filter", "format"]),
        _action("show", "Show resource details", "CRUD", ["id"], ["format"]),
        _action("update", "Update resource", "CRUD", ["id"], ["config", "tags"]),
        _action("delete", "Delete resource", "CRUD", ["id"], ["force"]),
    ]


def infrastructure_plugin() -> DomainPlugin:
    return DomainPlugin(
        name="infrastructure",
        version="1.0.0",
        description="Infrastructure management domain",
        domains={
            "infra": {
                "name": "infra",
                "displayName": "Infrastructure",
                "description": "Infrastructure and operations management",
                "category": "operations",
                "compliance": ["SOC2", "ISO27001"],
                "governance": ["RBAC", "Audit"],
                "resources": [
                    _resource("server", "Server", "Compute server instances",
                              ["restart", "scale"], ["type", "region", "size", "status", "created"],
                              ["network", "storage", "monitoring"]),
                    _resource("network", "Network", "Network infrastructure",
                              ["configure"], ["cidr", "region", "status", "created"], ["server", "security"]),
                    _resource("storage", "Storage", "Storage systems and volumes",
                              ["backup", "restore"], ["type", "size", "region", "status", "created"],
                              ["server", "backup"]),
                    _resource("database", "Database", "Database instances and clusters",
                              ["backup", "restore"], ["type", "version", "size", "region", "status", "created"],
                              ["server", "storage", "backup"]),
                    _resource("monitoring", "Monitoring", "Monitoring and observability systems",
                              ["configure", "start", "stop"], ["type", "status", "region", "created", "endpoints"],
                              ["server", "database"]),
                ],
                "actions": _crud(["name", "type"], ["region", "size", "config"]) + [
                    _action("backup", "Backup resource", "Operations", ["id"], ["schedule", "retention"]),
                    _action("restore", "Restore resource", "Operations", ["id", "backup"], ["target"]),
                ],
            },
        },
    )


def development_plugin() -> DomainPlugin:
    return DomainPlugin(
        name="development",
        version="1.0.0",
        description="Development and testing operations",
        domains={
            "dev": {
                "name": "dev",
                "displayName": "Development",
                "description": "Development and testing operations",
                "category": "development",
                "compliance": ["SOC2"],
                "governance": ["RBAC"],
                "resources": [
                    _resource("project", "Project", "Development projects",
                              ["deploy"], ["name", "type", "status", "created", "updated"],
                              ["app", "test", "scenario"]),
                    _resource("app", "Application", "Application instances",
                              ["deploy", "run"], ["name", "version", "status", "created", "updated"],
                              ["project", "test"]),
                    _resource("test", "Test", "Test suites and cases",
                              ["run", "schedule"], ["name", "type", "status", "duration", "results"],
                              ["project", "scenario", "snapshot"]),
                    _resource("scenario", "Scenario", "Test scenarios",
                              ["run"], ["name", "type", "status", "steps", "created"], ["test", "snapshot"]),
                    _resource("snapshot", "Snapshot", "Test snapshots",
                              ["compare"], ["name", "type", "status", "created", "size"], ["test", "scenario"]),
                ],
                "actions": _crud(["name"], ["type", "config"]) + [
                    _action("run", "Run resource", "Operations", ["id"], ["config", "environment"]),
                    _action("deploy", "Deploy resource", "Operations", ["id"], ["environment", "config"]),
                    _action("schedule", "Schedule resource", "Operations", ["id", "schedule"], ["config"]),
                ],
            },
        },
    )


def security_plugin() -> DomainPlugin:
    return DomainPlugin(
        name="security",
        version="1.0.0",
        description="Security and compliance management",
        domains={
            "security": {
                "name": "security",
                "displayName": "Security",
                "description": "Security and compliance management",
                "category": "security",
                "compliance": ["SOC2", "ISO27001", "GDPR"],
                "governance": ["RBAC", "Audit", "Policy"],
                "resources": [
                    _resource("user", "User", "User accounts and identities",
                              ["audit"], ["name", "email", "status", "created", "lastLogin"], ["role", "policy"]),
                    _resource("role", "Role", "User roles and permissions",
                              ["audit"], ["name", "permissions", "status", "created"], ["user", "policy"]),
                    _resource("policy", "Policy", "Security policies and rules",
                              ["validate"], ["name", "type", "status", "created", "updated"], ["user", "role"]),
                    _resource("secret", "Secret", "Secrets and credentials",
                              ["rotate"], ["name", "type", "status", "created", "expires"], ["user", "policy"]),
                    _resource("certificate", "Certificate", "SSL/TLS certificates",
                              ["validate"], ["name", "type", "status", "created", "expires"], ["secret", "policy"]),
                ],
                "actions": _crud(["name"], ["type", "config"]) + [
                    _action("audit", "Audit resource", "Security", ["id"], ["scope", "format"]),
                    _action("validate", "Validate resource", "Security", ["id"], ["rules", "format"]),
                    _action("rotate", "Rotate resource", "Security", ["id"], ["schedule"]),
                ],
            },
        },
    )


def builtin_plugins() -> list[DomainPlugin]:
    return [infrastructure_plugin(), development_plugin(), security_plugin()]
