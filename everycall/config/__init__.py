"""
Configuration package for EveryCall.

This package contains:
- loaders: YAML file loading and parsing
- security: Credential and API key injection
- defaults: Environment overrides for non-secret values
- models: Pydantic models, load_config and production validation
"""

from everycall.config.models import (
    AppConfig,
    GatewayConfig,
    LoggingConfig,
    OrchestratorConfig,
    VoiceConfig,
    load_config,
    validate_production_config,
)

__all__ = [
    'AppConfig',
    'GatewayConfig',
    'LoggingConfig',
    'OrchestratorConfig',
    'VoiceConfig',
    'load_config',
    'validate_production_config',
]
