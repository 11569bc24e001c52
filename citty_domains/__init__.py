"""Domain discovery and reconciliation for command-line applications."""

from .cli_analyzer import CLIAnalyzer
from .config import DiscoveryConfig
from .config_manager import DomainConfigManager
from .errors import (
    DomainDiscoveryError,
    DomainExistsError,
    DomainNotFoundError,
    DomainStructureError,
    DomainValidationError,
    PluginError,
    ProcessError,
    SourceError,
    TemplateNotFoundError,
    UnknownStrategyError,
)
from .loader import DomainLoader
from .models import Action, DiscoveryResult, Domain, Resource, ValidationResult
from .orchestrator import DomainDiscoveryOrchestrator
from .plugins import DomainExtension, DomainPlugin, DomainPluginSystem
from .registry import RuntimeDomainRegistry
from .templates import DomainTemplates
from .validator import DomainValidator

__all__ = [
    "Action",
    "CLIAnalyzer",
    "DiscoveryConfig",
    "DiscoveryResult",
    "Domain",
    "DomainConfigManager",
    "DomainDiscoveryError",
    "DomainDiscoveryOrchestrator",
    "DomainExistsError",
    "DomainExtension",
    "DomainLoader",
    "DomainNotFoundError",
    "DomainPlugin",
    "DomainPluginSystem",
    "DomainStructureError",
    "DomainTemplates",
    "DomainValidationError",
    "DomainValidator",
    "PluginError",
    "ProcessError",
    "Resource",
    "RuntimeDomainRegistry",
    "SourceError",
    "TemplateNotFoundError",
    "UnknownStrategyError",
    "ValidationResult",
]
