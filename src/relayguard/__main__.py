"""CLI entry point for RelayGuard.

Operator commands against the ACL database, using the same configuration
the relay process loads.

Examples:
    ```bash
    python -m relayguard init
    python -m relayguard health --config config/relayguard.yaml
    python -m relayguard call banpubkey <hex-pubkey> "spam"
    python -m relayguard call grantadmin <hex-pubkey> '["banevent", "allowevent"]'
    python -m relayguard call stats
    ```
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from relayguard.core.exceptions import ConfigurationError, StorageUnavailableError
from relayguard.core.logger import Logger, StructuredFormatter
from relayguard.core.metrics import RELAY_INFO
from relayguard.core.pool import Pool
from relayguard.core.store import AclStore
from relayguard.models import Nip86Method
from relayguard.services.configs import RelayGuardConfig
from relayguard.services.management import ManagementApi
from relayguard.services.policy import EventPolicy
from relayguard.services.relay_info import RelayInfo


DEFAULT_CONFIG = Path("config") / "relayguard.yaml"

logger = Logger("cli")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="relayguard",
        description="RelayGuard ACL administration",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help=f"Config path (default: {DEFAULT_CONFIG})",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log level (default: INFO)",
    )

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("init", help="Create missing ACL tables")
    commands.add_parser("health", help="Check database connectivity")

    call = commands.add_parser("call", help="Run a NIP-86 method as the relay owner")
    call.add_argument("method", choices=[m.value for m in Nip86Method], help="Method name")
    call.add_argument(
        "params",
        nargs="*",
        help="Method params; each is parsed as JSON when possible, else taken as a string",
    )

    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    """Configure the root logger with structured formatting."""
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level))


def parse_param(raw: str) -> Any:
    """Decode a CLI param as JSON, falling back to the raw string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def load_config(path: Path) -> RelayGuardConfig:
    """Load the config file, or defaults plus environment if it does not exist."""
    if not path.exists():
        logger.warning("config_not_found", path=str(path))
        return RelayGuardConfig.from_dict({})
    return RelayGuardConfig.from_yaml(path)


async def run_command(args: argparse.Namespace, config: RelayGuardConfig, pool: Pool) -> int:
    """Run one subcommand against a connected pool and return the exit code."""
    if args.command == "health":
        await AclStore(pool, config.store).health()
        logger.info("health_ok")
        return 0

    store = await AclStore.create(pool, config.store)
    if args.command == "init":
        return 0

    relay_info = RelayInfo.from_config(config.relay)
    await relay_info.load_overrides(store)
    RELAY_INFO.info({"name": relay_info.name, "version": relay_info.version})

    api = ManagementApi(store, EventPolicy(store, config.relay), relay_info, config.management)
    payload = {"method": args.method, "params": [parse_param(p) for p in args.params]}
    response = await api.handle(config.relay.owner_pubkey, payload)
    print(json.dumps(response, indent=2, sort_keys=True))  # noqa: T201
    return 1 if response["error"] else 0


async def main(argv: list[str] | None = None) -> int:
    """Main entry point: parse args, load config, connect, and run the command."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        logger.error("config_invalid", path=str(args.config), error=str(e))
        return 1

    pool = Pool(config.pool)
    try:
        async with pool:
            return await run_command(args, config, pool)
    except StorageUnavailableError as e:
        logger.error("storage_unavailable", command=args.command, error=str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 130


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
