"""
Security-critical configuration injection.

This module handles:
- Telephony verification material (ONLY from environment variables)
- Completion and synthesis provider API keys (ONLY from environment variables)

SECURITY POLICY:
- API keys, auth tokens and signing keys MUST NEVER be in YAML files
- All credentials MUST come from environment variables only
- Any credential found in YAML is discarded, not merged
"""

import os
from typing import Any, Dict, Optional


def _is_nonempty_string(val: Any) -> bool:
    """Check if value is a string with non-whitespace content."""
    return isinstance(val, str) and val.strip() != ""


def _env_secret(name: str) -> Optional[str]:
    """Return a stripped env var, or None when unset/blank."""
    value = os.getenv(name)
    if not _is_nonempty_string(value):
        return None
    return value.strip()


def _section(config_data: Dict[str, Any], name: str) -> Dict[str, Any]:
    block = config_data.get(name)
    if not isinstance(block, dict):
        block = {}
    config_data[name] = block
    return block


def inject_telephony_credentials(config_data: Dict[str, Any]) -> None:
    """
    Inject webhook verification material from environment variables ONLY.

    Environment variables:
    - TWILIO_AUTH_TOKEN: shared secret for the HMAC form scheme
    - TELNYX_PUBLIC_KEY: Ed25519 public key (base64 or PEM)
    - TELNYX_API_KEY: Call Control API key (optional; enables hangup commands)

    Args:
        config_data: Configuration dictionary to modify in-place
    """
    gateway = _section(config_data, 'gateway')
    gateway['twilio_auth_token'] = _env_secret('TWILIO_AUTH_TOKEN')
    gateway['telnyx_public_key'] = _env_secret('TELNYX_PUBLIC_KEY')
    gateway['telnyx_api_key'] = _env_secret('TELNYX_API_KEY')


def inject_provider_api_keys(config_data: Dict[str, Any]) -> None:
    """
    Inject provider API keys from environment variables ONLY.

    Environment variables:
    - OPENAI_API_KEY: completion provider for the decision engine
    - ELEVENLABS_API_KEY: synthesis provider for the voice service

    A missing key is not an error: the affected service degrades to its
    deterministic fallback.

    Args:
        config_data: Configuration dictionary to modify in-place
    """
    orchestrator = _section(config_data, 'orchestrator')
    orchestrator['api_key'] = _env_secret('OPENAI_API_KEY')

    voice = _section(config_data, 'voice')
    voice['api_key'] = _env_secret('ELEVENLABS_API_KEY')
