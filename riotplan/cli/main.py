"""Entry point for the riotplan command."""

import asyncio
import logging
import sys
from argparse import Namespace

from riotplan.cli.arg_parser import parse_args
from riotplan.cli.commands import (
    cmd_call,
    cmd_download,
    cmd_health,
    cmd_plans,
    cmd_upload,
    cmd_watch,
)
from riotplan.cli.log_setup import configure_logging
from riotplan.cli.output import print_error
from riotplan.config.loader import load_config
from riotplan.config.schema import ClientConfig
from riotplan.core.errors import ConfigError
from riotplan.plans.client import RiotPlanClient


def build_config(args: Namespace) -> ClientConfig:
    """Load config from --config and apply --url on top.

    Raises:
        ConfigError: If the config file is invalid or the URL is rejected.
    """
    config = load_config(args.config)
    if args.url:
        try:
            config = ClientConfig.model_validate({**config.model_dump(), "server_url": args.url})
        except ValueError as e:
            raise ConfigError(f"Invalid --url: {e}") from e
    return config


async def run(args: Namespace, config: ClientConfig) -> int:
    async with RiotPlanClient(config) as client:
        if args.command == "health":
            return await cmd_health(client)
        if args.command == "plans":
            return await cmd_plans(client, args.filter, args.json)
        if args.command == "call":
            return await cmd_call(client, args.method, args.params)
        if args.command == "watch":
            return await cmd_watch(client, args.methods, args.seconds)
        if args.command == "download":
            return await cmd_download(client, args.plan_id, args.output)
        if args.command == "upload":
            return await cmd_upload(client, args.file)
    print_error(f"Unknown command: {args.command}")
    return 1


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        config = build_config(args)
    except ConfigError as e:
        print_error(e.message)
        return 1

    if args.verbose >= 2:
        level = logging.DEBUG
    elif args.verbose == 1:
        level = logging.INFO
    else:
        level = logging.getLevelName(config.log_level)
    configure_logging(level)

    try:
        return asyncio.run(run(args, config))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
