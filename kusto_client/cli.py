"""Command-line entry point.

Usage:
    kusto-client cluster list --subscription SUB
    kusto-client database list --cluster-uri https://mycluster.kusto.windows.net
    kusto-client table list --subscription SUB --cluster-name mycluster --database db1
    kusto-client query --cluster-uri URI --database db1 --query "T | take 5"
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import Any, Sequence

from .client import KustoClient
from .commands import COMMANDS, Command, CommandArgs, CommandResponse
from .config import ClientConfig
from .resilience import RETRY_MODES

_RETRY_OPTIONS = {
    "retry_delay": "delay",
    "retry_max_delay": "max_delay",
    "retry_max_retries": "max_retries",
    "retry_mode": "mode",
    "retry_network_timeout": "network_timeout",
}


def _common_options() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--subscription", help="Subscription id")
    common.add_argument("--tenant", help="Tenant to authenticate against")
    common.add_argument("--cluster-uri", dest="cluster_uri", help="Cluster endpoint URI")
    common.add_argument("--cluster-name", dest="cluster_name", help="Cluster name (needs --subscription)")
    common.add_argument("--database", "--database-name", dest="database", help="Database name")
    common.add_argument("--table", "--table-name", dest="table", help="Table name")
    common.add_argument("--query", help="KQL query text")
    common.add_argument("--limit", type=int, help="Row count for table sample")
    common.add_argument(
        "--auth-method", dest="auth_method", choices=["credential", "connection-string", "key"],
        help="Authentication method (default: credential)",
    )
    common.add_argument("--retry-delay", dest="retry_delay", type=float)
    common.add_argument("--retry-max-delay", dest="retry_max_delay", type=float)
    common.add_argument("--retry-max-retries", dest="retry_max_retries", type=int)
    common.add_argument("--retry-mode", dest="retry_mode", choices=RETRY_MODES)
    common.add_argument("--retry-network-timeout", dest="retry_network_timeout", type=float)
    common.add_argument("--config", help="Path to a YAML config file")
    common.add_argument("--executor", choices=["kusto", "mock"], help="Query executor")
    common.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return common


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kusto-client", description="Azure Data Explorer (Kusto) commands")
    groups = parser.add_subparsers(dest="group", metavar="<command>")
    common = _common_options()

    group_parsers: dict[str, Any] = {}
    for name, command in COMMANDS.items():
        parts = name.split()
        if len(parts) == 1:
            leaf = groups.add_parser(parts[0], parents=[common], help=command.description)
        else:
            group, action = parts
            if group not in group_parsers:
                group_parser = groups.add_parser(group, help=f"{group} commands")
                group_parsers[group] = group_parser.add_subparsers(dest="action", metavar="<action>")
            leaf = group_parsers[group].add_parser(action, parents=[common], help=command.description)
        leaf.set_defaults(command=name)
    return parser


def _retry_policy(config: ClientConfig, ns: argparse.Namespace):
    overrides = {
        field: getattr(ns, option)
        for option, field in _RETRY_OPTIONS.items()
        if getattr(ns, option, None) is not None
    }
    if not overrides:
        return None
    return dataclasses.replace(config.retry_policy(), **overrides)


async def run_command(command: Command, config: ClientConfig, args: CommandArgs) -> CommandResponse:
    """Run one command with a fresh client."""
    client = KustoClient(config=config)
    try:
        return await command.execute(client, args)
    finally:
        await client.close()


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    ns = parser.parse_args(argv)
    if not getattr(ns, "command", None):
        parser.print_help()
        return 2

    config = ClientConfig.load(ns.config)
    if ns.executor:
        config.executor = ns.executor
    logging.basicConfig(
        level=logging.DEBUG if ns.verbose else getattr(logging, str(config.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        retry_policy = _retry_policy(config, ns)
    except ValueError as e:
        parser.error(str(e))

    args = CommandArgs.from_options({**vars(ns), "retry_policy": retry_policy})
    response = asyncio.run(run_command(COMMANDS[ns.command], config, args))

    print(json.dumps(response.to_dict(), indent=2, default=str))
    return 0 if response.status < 400 else 1


if __name__ == "__main__":
    sys.exit(main())
