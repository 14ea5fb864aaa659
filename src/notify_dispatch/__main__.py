"""Application entry point and CLI for notify-dispatch.

This module implements the command-line entry point: argument parsing,
configuration loading, logging setup, and running one dispatch request
through a locally wired service.

Commands:
- validate: load the configuration and check every provider chain
- send: dispatch a YAML request (single, broadcast, multi or batch)

Architecture:
- No vendor-specific code; providers are resolved through the registry
- In-memory persistence and queues; the user directory is HTTP when configured
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Mapping, Sequence
from dataclasses import asdict, is_dataclass, replace
from pathlib import Path
from typing import NoReturn

from pydantic import ValidationError

from notify_dispatch.adapters.local import build_registry, open_local_runtime
from notify_dispatch.core.config import (
    ConfigFileError,
    MainConfig,
    format_validation_error,
    load_main_config,
    load_request_file,
)
from notify_dispatch.core.errors import (
    AllProvidersFailedError,
    ConfigurationError,
    DispatchError,
    RequireAllSuccessError,
)
from notify_dispatch.core.requests import (
    BatchRequest,
    BroadcastRequest,
    DispatchRequest,
    MultiRequest,
    SingleRequest,
    parse_request,
    parse_templates,
)
from notify_dispatch.types import Channel, RenderedContent, TimezoneOptions
from notify_dispatch.utils.logging import configure_logging

__all__ = ["main"]

DEFAULT_CONFIG_PATH: Path = Path("config/notify-dispatch.yaml")

# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_RUNTIME_ERROR = 2


def parse_arguments(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments for notify-dispatch.

    CLI Arguments:
        --config, -c: Path to main configuration file
        --log-level: Override log level from config
        --no-syslog: Disable syslog integration
        validate: Validate configuration and provider chains
        send --request FILE: Dispatch the request described in FILE
    """
    parser = argparse.ArgumentParser(
        prog="notify-dispatch",
        description="Dispatch multi-channel notifications with provider fallback",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  notify-dispatch validate
  notify-dispatch --config /path/to/config.yaml send --request broadcast.yaml
  notify-dispatch --log-level DEBUG --no-syslog send -r multi.yaml
        """,
    )

    _ = parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to main configuration file (default: {DEFAULT_CONFIG_PATH})",
        metavar="PATH",
    )

    _ = parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override log level from configuration",
        metavar="LEVEL",
    )

    _ = parser.add_argument(
        "--no-syslog",
        action="store_true",
        help="Disable syslog integration (useful for development)",
    )

    commands = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")
    _ = commands.add_parser("validate", help="Validate configuration and provider chains")
    send_parser = commands.add_parser("send", help="Dispatch a request file")
    _ = send_parser.add_argument(
        "--request",
        "-r",
        type=Path,
        required=True,
        help="Path to YAML request file",
        metavar="FILE",
    )

    return parser.parse_args(argv)


def to_json(value: object) -> str:
    """Serialize a result dataclass (or plain data) for stdout."""
    data = asdict(value) if is_dataclass(value) and not isinstance(value, type) else value
    return json.dumps(data, indent=2, default=str)


def validate_configuration(config: MainConfig) -> dict[str, object]:
    """Check that every configured chain resolves against the provider registry.

    Raises:
        ConfigurationError: If a provider name cannot be registered
    """
    try:
        registry = build_registry(config)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc

    chains = config.dispatch.chains()
    resolved: dict[str, list[str]] = {}
    for channel in Channel:
        chain = chains.get(channel)
        resolved[channel.value] = (
            list(chain.providers) if chain else [registry.default_provider(channel)]
        )
    return {
        "valid": True,
        "delivery_mode": config.dispatch.delivery_mode,
        "providers": list(registry.get_identifiers()),
        "provider_chains": resolved,
    }


def load_request(request_path: Path) -> tuple[DispatchRequest, dict[str, RenderedContent]]:
    """Load and validate a request file.

    Returns:
        Parsed request and the templates declared alongside it

    Raises:
        ConfigFileError: If the file is unreadable or fails schema validation
    """
    data = load_request_file(request_path)
    templates = data.pop("templates", None)
    try:
        request = parse_request(data)
        rendered = parse_templates(templates)
    except ValidationError as e:
        msg = format_validation_error(e, header="Request validation failed:", path=request_path)
        raise ConfigFileError(msg) from e
    return request, rendered


async def dispatch_request(
    config: MainConfig,
    request: DispatchRequest,
    *,
    templates: Mapping[str, RenderedContent] | None = None,
) -> object:
    """Run one request through a locally wired service and return its result."""
    async with open_local_runtime(config, templates=templates) as runtime:
        service = runtime.service
        match request:
            case SingleRequest():
                return await service.send_single(
                    request.to_request(),
                    created_by=request.created_by,
                    chain=request.provider_chain.to_chain() if request.provider_chain else None,
                )
            case BroadcastRequest():
                return await service.broadcast(
                    request.tenant_id,
                    request.recipient.to_domain(),
                    request.channels,
                    request.content.to_domain(),
                    request.to_options(),
                    created_by=request.created_by,
                    scheduled_at=request.scheduled_at,
                    priority=request.priority,
                    metadata=request.metadata,
                )
            case MultiRequest():
                options = request.to_options(parallel_default=config.dispatch.parallel_recipients)
                if request.scheduled_at is not None and options.timezone_options is None:
                    options = replace(
                        options,
                        timezone_options=TimezoneOptions(
                            mode=config.timezone.default_mode,
                            timezone=config.timezone.default_timezone,
                        ),
                    )
                return await service.send_multi(
                    request.tenant_id,
                    [recipient.to_domain() for recipient in request.recipients],
                    request.channels,
                    request.content.to_domain(),
                    options,
                    created_by=request.created_by,
                    scheduled_at=request.scheduled_at,
                    priority=request.priority,
                    metadata=request.metadata,
                )
            case BatchRequest():
                first, *rest = request.to_chunks()
                receipt = await service.send_batch(
                    request.tenant_id,
                    first,
                    created_by=request.created_by,
                    expected_total=request.expected_total,
                )
                for chunk in rest:
                    _ = await service.submit_chunk(
                        receipt.batch_id,
                        receipt.batch_token,
                        chunk,
                        created_by=request.created_by,
                    )
                batch = await service.get_batch_status(receipt.batch_id)
                return {
                    "batch_id": batch.batch_id,
                    "status": batch.status.value,
                    "chunks_processed": len(request.chunks),
                    "expected_total": batch.expected_total,
                    "total_sent": batch.total_sent,
                    "total_delivered": batch.total_delivered,
                    "total_failed": batch.total_failed,
                    "queued": sum(len(queue.jobs) for queue in runtime.queues.values()),
                }


async def async_main(
    *,
    config_path: Path,
    command: str,
    request_path: Path | None = None,
    log_level: str | None = None,
    enable_syslog: bool = True,
) -> str:
    """Async main function implementing one CLI command.

    Returns:
        JSON summary to print on stdout

    Raises:
        ConfigurationError: If configuration or the request is invalid
        DispatchError: If dispatch fails at runtime
    """
    config = load_main_config(config_path)

    if log_level is not None:
        config.application.log_level = log_level

    configure_logging(
        log_level=config.application.log_level,
        enable_syslog=enable_syslog and config.application.syslog_enabled,
        enable_console=True,
    )
    logger = logging.getLogger(__name__)
    logger.info("Configuration loaded", extra={"config_path": str(config_path)})

    if command == "validate":
        return to_json(validate_configuration(config))

    if request_path is None:
        msg = "send requires --request"
        raise ConfigurationError(msg)

    request, templates = load_request(request_path)
    logger.info("Dispatching request", extra={"kind": request.kind})
    result = await dispatch_request(config, request, templates=templates)
    return to_json(result)


def main(argv: Sequence[str] | None = None) -> NoReturn:
    """Main entry point for notify-dispatch.

    Exit Codes:
        0: Success
        1: Configuration or request error
        2: Runtime dispatch error
    """
    args = parse_arguments(argv)

    # Extract args with type annotations to avoid reportAny at argparse boundary
    config_path_arg: Path = args.config  # pyright: ignore[reportAny]  # argparse boundary
    command_arg: str = args.command  # pyright: ignore[reportAny]  # argparse boundary
    request_arg: Path | None = getattr(args, "request", None)
    log_level_arg: str | None = args.log_level  # pyright: ignore[reportAny]  # argparse boundary
    no_syslog_arg: bool = args.no_syslog  # pyright: ignore[reportAny]  # argparse boundary

    try:
        output = asyncio.run(
            async_main(
                config_path=config_path_arg,
                command=command_arg,
                request_path=request_arg,
                log_level=log_level_arg,
                enable_syslog=not no_syslog_arg,
            )
        )

    except ConfigurationError as exc:
        print(f"Configuration error:\n{exc}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_ERROR)

    except RequireAllSuccessError as exc:
        # Every channel was attempted; show what happened before failing
        print(to_json(exc.result))
        print(f"Dispatch error: {exc}", file=sys.stderr)
        sys.exit(EXIT_RUNTIME_ERROR)

    except AllProvidersFailedError as exc:
        if exc.result is not None:
            print(to_json(exc.result))
        print(f"Dispatch error: {exc}", file=sys.stderr)
        sys.exit(EXIT_RUNTIME_ERROR)

    except DispatchError as exc:
        print(f"Dispatch error: {exc}", file=sys.stderr)
        sys.exit(EXIT_RUNTIME_ERROR)

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(EXIT_RUNTIME_ERROR)

    except Exception as exc:
        print(f"Unexpected error: {exc}", file=sys.stderr)
        logging.exception("Unexpected error during dispatch")
        sys.exit(EXIT_RUNTIME_ERROR)

    print(output)
    sys.exit(EXIT_SUCCESS)


if __name__ == "__main__":
    main()
