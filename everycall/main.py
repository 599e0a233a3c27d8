"""
Command line entry point: ``everycall {gateway|orchestrator|voice}``.
"""

import argparse
import os
import sys

import structlog
import uvicorn
from dotenv import load_dotenv

from everycall.config import load_config, validate_production_config
from everycall.logging_config import configure_logging

logger = structlog.get_logger(__name__)

SERVICES = ("gateway", "orchestrator", "voice")


def build_app(service: str, config):
    # Lazy imports: each service loads only its own stack
    if service == "gateway":
        from everycall.api.gateway import SERVICE_NAME, create_gateway_app
        return SERVICE_NAME, create_gateway_app(config), config.gateway.port
    if service == "orchestrator":
        from everycall.api.orchestrator import SERVICE_NAME, create_orchestrator_app
        return SERVICE_NAME, create_orchestrator_app(config), config.orchestrator.port
    if service == "voice":
        from everycall.api.voice import SERVICE_NAME, create_voice_app
        return SERVICE_NAME, create_voice_app(config), config.voice.port
    raise ValueError(f"unknown service: {service}")


def resolve_port(cli_port, service_port: int) -> int:
    if cli_port:
        return cli_port
    env_port = os.getenv("PORT")
    if env_port and env_port.strip().isdigit():
        return int(env_port)
    return service_port


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="everycall", description="Run an EveryCall service.")
    parser.add_argument("service", choices=SERVICES)
    parser.add_argument("--config", default=None, help="YAML config path (default: $EVERYCALL_CONFIG or config/everycall.yaml)")
    parser.add_argument("--host", default=os.getenv("UVICORN_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--env-file", default=".env")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    load_dotenv(args.env_file)

    config = load_config(args.config)
    service_name, app, service_port = build_app(args.service, config)
    configure_logging(log_level=config.logging.level, service_name=service_name)

    errors, warnings = validate_production_config(config, service=args.service)
    if errors:
        logger.error("Configuration validation failed", errors=errors, warnings=warnings)
        return 2
    if warnings:
        logger.warning("Configuration warnings", warnings=warnings)

    port = resolve_port(args.port, service_port)
    logger.info("Starting service", service=service_name, host=args.host, port=port)
    uvicorn.run(app, host=args.host, port=port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
