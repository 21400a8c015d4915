"""Configuration models and YAML loading."""

from .loader import ConfigError, load_app_config, load_source_configs
from .models import (
    AppConfig,
    DiscoveryConfig,
    ExtractionConfig,
    ExtractionMode,
    FetchConfig,
    LLMConfig,
    PolitenessConfig,
    SourceConfig,
    SourceKind,
)

__all__ = [
    "AppConfig",
    "ConfigError",
    "DiscoveryConfig",
    "ExtractionConfig",
    "ExtractionMode",
    "FetchConfig",
    "LLMConfig",
    "PolitenessConfig",
    "SourceConfig",
    "SourceKind",
    "load_app_config",
    "load_source_configs",
]
