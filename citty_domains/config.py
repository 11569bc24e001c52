"""Environment-based configuration for domain discovery."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_list(name: str) -> list[str]:
    value = os.environ.get(name, "")
    return [item.strip() for item in value.split(",") if item.strip()]


class DiscoveryConfig:
    """Discovery configuration loaded from environment variables.

    Keyword arguments override the environment, which keeps tests and
    embedding callers independent of the process environment.
    """

    def __init__(self, **overrides: Any) -> None:
        self.project_dir = Path(os.environ.get("CITTY_PROJECT_DIR", os.getcwd()))
        if "project_dir" in overrides:
            self.project_dir = Path(overrides.pop("project_dir"))

        self.config_path = Path(
            os.environ.get("CITTY_CONFIG_PATH", str(self.project_dir / "citty-test-config.json"))
        )
        self.cli_path = Path(os.environ.get("CITTY_CLI_PATH", str(self.project_dir / "cli.js")))
        self.package_json_path = Path(
            os.environ.get("CITTY_PACKAGE_JSON_PATH", str(self.project_dir / "package.json"))
        )
        self.plugin_directory = Path(
            os.environ.get("CITTY_PLUGIN_DIR", str(self.project_dir / "plugins"))
        )

        self.timeout = float(os.environ.get("CITTY_ANALYSIS_TIMEOUT", "10"))

        # Discovery is off unless sources are named or auto-discovery is enabled
        self.discovery_sources: list[str] = _env_list("CITTY_DISCOVERY_SOURCES")
        self.auto_discover = _env_bool("CITTY_AUTO_DISCOVER", False)

        self.validate_domains = _env_bool("CITTY_VALIDATE_DOMAINS", True)
        self.fallback_strategy = os.environ.get("CITTY_FALLBACK_STRATEGY", "generic")
        self.strict_validation = _env_bool("CITTY_STRICT_VALIDATION", False)
        self.enable_plugins = _env_bool("CITTY_ENABLE_PLUGINS", True)

        self.port = int(os.environ.get("CITTY_DISCOVERY_PORT", "3104"))

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise TypeError(f"Unknown discovery option: {key}")
            if key in {"config_path", "cli_path", "package_json_path", "plugin_directory"} and value is not None:
                value = Path(value)
            setattr(self, key, value)

    @property
    def discovery_enabled(self) -> bool:
        return self.auto_discover or bool(self.discovery_sources)

    def resolve(self, path: Optional[str | Path]) -> Optional[Path]:
        """Resolve a path relative to the project directory."""
        if path is None:
            return None
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.project_dir / candidate
        return candidate
