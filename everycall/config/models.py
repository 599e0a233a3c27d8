"""
Shared configuration for the EveryCall services.

Every service (gateway, orchestrator, voice) reads the same AppConfig and
uses its own section. Pydantic v2 validates types; credentials are injected
from the environment by ``security`` before validation.
"""

import os
from typing import Optional

import structlog
from pydantic import BaseModel, Field

from everycall.config.loaders import (
    DEFAULT_CONFIG_PATH,
    resolve_config_path,
    load_yaml_with_env_expansion,
)
from everycall.config.security import inject_telephony_credentials, inject_provider_api_keys
from everycall.config.defaults import (
    apply_gateway_defaults,
    apply_orchestrator_defaults,
    apply_voice_defaults,
    apply_logging_defaults,
)

logger = structlog.get_logger(__name__)


class GatewayConfig(BaseModel):
    port: int = Field(default=3101)
    # Disabling verification is for local development only
    signature_required: bool = Field(default=True)
    signature_tolerance_sec: int = Field(default=300)
    # Externally visible base URL; the HMAC scheme signs the public URL
    public_base_url: Optional[str] = None
    routing_file: str = Field(default="config/tenant_routing.json")
    twilio_auth_token: Optional[str] = None
    telnyx_public_key: Optional[str] = None
    telnyx_api_key: Optional[str] = None
    telnyx_base_url: str = Field(default="https://api.telnyx.com/v2")
    command_timeout_sec: float = Field(default=5.0)


class OrchestratorConfig(BaseModel):
    port: int = Field(default=3102)
    api_key: Optional[str] = None
    model: str = Field(default="gpt-4.1-mini")
    base_url: str = Field(default="https://api.openai.com/v1")
    timeout_sec: float = Field(default=8.0)


class VoiceConfig(BaseModel):
    port: int = Field(default=3103)
    api_key: Optional[str] = None
    model_id: str = Field(default="eleven_turbo_v2_5")
    default_voice_id: str = Field(default="56AoDkrOh6qfVPDXZ7Pt")
    base_url: str = Field(default="https://api.elevenlabs.io")
    timeout_sec: float = Field(default=15.0)
    chunk_size_bytes: int = Field(default=4096)
    cancellation_ttl_sec: float = Field(default=60.0)


class LoggingConfig(BaseModel):
    level: str = Field(default="info")  # debug|info|warning|error|critical


class AppConfig(BaseModel):
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    voice: VoiceConfig = Field(default_factory=VoiceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(path: Optional[str] = None) -> AppConfig:
    """
    Load and validate configuration.

    A missing YAML file is not fatal: the services start on defaults plus
    environment, and missing optional credentials degrade to fallbacks.

    Args:
        path: YAML path (absolute or relative to project root). Defaults to
            $EVERYCALL_CONFIG or config/everycall.yaml.

    Returns:
        Validated AppConfig instance

    Raises:
        yaml.YAMLError: If the file exists but cannot be parsed
        pydantic.ValidationError: If values have the wrong type
    """
    # Phase 1: Load YAML file with environment variable expansion
    path = resolve_config_path(path or os.getenv("EVERYCALL_CONFIG") or DEFAULT_CONFIG_PATH)
    try:
        config_data = load_yaml_with_env_expansion(path)
    except FileNotFoundError:
        logger.info("Configuration file not found; using defaults and environment", path=path)
        config_data = {}

    # Phase 2: Security - Inject credentials from environment variables only
    inject_telephony_credentials(config_data)
    inject_provider_api_keys(config_data)

    # Phase 3: Environment overrides
    apply_gateway_defaults(config_data)
    apply_orchestrator_defaults(config_data)
    apply_voice_defaults(config_data)
    apply_logging_defaults(config_data)

    # Phase 4: Validate and return
    return AppConfig(**config_data)


def validate_production_config(config: AppConfig, service: Optional[str] = None) -> tuple[list[str], list[str]]:
    """Validate configuration for production deployment.

    Args:
        config: Loaded configuration
        service: gateway|orchestrator|voice to check only that service's
            section, or None to check all of them.

    Returns:
        (errors, warnings): errors block startup, warnings are logged but non-blocking.
    """
    errors = []
    warnings = []

    def checks(name: str) -> bool:
        return service is None or service == name

    gateway = config.gateway
    if checks("gateway"):
        if gateway.signature_required:
            if not gateway.twilio_auth_token and not gateway.telnyx_public_key:
                errors.append(
                    "Webhook verification enabled but neither TWILIO_AUTH_TOKEN nor TELNYX_PUBLIC_KEY is set"
                )
        else:
            warnings.append("Webhook signature verification disabled (TELNYX_SIGNATURE_REQUIRED=false)")

    if checks("orchestrator") and not config.orchestrator.api_key:
        warnings.append("OPENAI_API_KEY not set; decisions use the deterministic fallback")
    if checks("voice") and not config.voice.api_key:
        warnings.append("ELEVENLABS_API_KEY not set; synthesis returns placeholder chunks")

    for name, port in (
        ("gateway", gateway.port),
        ("orchestrator", config.orchestrator.port),
        ("voice", config.voice.port),
    ):
        if checks(name) and (port < 1 or port > 65535):
            errors.append(f"{name} port {port} out of valid range (1-65535)")

    if config.logging.level.lower() == 'debug':
        warnings.append("Debug logging enabled (performance risk in production)")

    return errors, warnings
