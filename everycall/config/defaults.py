"""
Environment overrides for non-secret configuration defaults.

Precedence for each value: environment variable > YAML > model default.
Unparseable numeric/boolean env values are ignored so a typo in the
environment never prevents startup.
"""

import os
from typing import Any, Dict, Optional

_TRUE_VALUES = {"1", "true", "t", "yes", "y", "on"}
_FALSE_VALUES = {"0", "false", "f", "no", "n", "off"}


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


def _env_bool(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None:
        return None
    val = raw.strip().lower()
    if val in _TRUE_VALUES:
        return True
    if val in _FALSE_VALUES:
        return False
    return None


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return raw.strip()


def _apply(block: Dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        block[key] = value


def apply_gateway_defaults(config_data: Dict[str, Any]) -> None:
    """
    Environment variables:
    - GATEWAY_PORT
    - TENANT_ROUTING_FILE
    - TELNYX_SIGNATURE_REQUIRED
    - PUBLIC_BASE_URL
    """
    gateway = config_data.setdefault('gateway', {})
    _apply(gateway, 'port', _env_int('GATEWAY_PORT'))
    _apply(gateway, 'routing_file', _env_str('TENANT_ROUTING_FILE'))
    _apply(gateway, 'signature_required', _env_bool('TELNYX_SIGNATURE_REQUIRED'))
    _apply(gateway, 'public_base_url', _env_str('PUBLIC_BASE_URL'))


def apply_orchestrator_defaults(config_data: Dict[str, Any]) -> None:
    """
    Environment variables:
    - ORCHESTRATOR_PORT
    - OPENAI_MODEL
    """
    orchestrator = config_data.setdefault('orchestrator', {})
    _apply(orchestrator, 'port', _env_int('ORCHESTRATOR_PORT'))
    _apply(orchestrator, 'model', _env_str('OPENAI_MODEL'))


def apply_voice_defaults(config_data: Dict[str, Any]) -> None:
    """
    Environment variables:
    - VOICE_PORT
    - ELEVENLABS_MODEL_ID
    - ELEVENLABS_DEFAULT_VOICE_ID
    """
    voice = config_data.setdefault('voice', {})
    _apply(voice, 'port', _env_int('VOICE_PORT'))
    _apply(voice, 'model_id', _env_str('ELEVENLABS_MODEL_ID'))
    _apply(voice, 'default_voice_id', _env_str('ELEVENLABS_DEFAULT_VOICE_ID'))


def apply_logging_defaults(config_data: Dict[str, Any]) -> None:
    """LOG_LEVEL overrides logging.level."""
    logging_block = config_data.setdefault('logging', {})
    _apply(logging_block, 'level', _env_str('LOG_LEVEL'))
