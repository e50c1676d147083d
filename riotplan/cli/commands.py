"""CLI command implementations.

Each command is a thin wrapper around RiotPlanClient. Results go to stdout,
errors to stderr, and every command returns an exit code.
"""

import asyncio
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any

from riotplan.cli.output import console, plans_table, print_error, print_info, print_json
from riotplan.core.errors import RiotPlanError
from riotplan.mcp.protocol import RESOURCE_CHANGED
from riotplan.plans.client import RiotPlanClient

logger = logging.getLogger(__name__)


async def cmd_health(client: RiotPlanClient) -> int:
    """Report whether GET /health answers 200."""
    healthy = await client.health_check()
    if healthy:
        console.print(f"[green]connected[/green] {client.config.server_url}")
        return 0
    console.print(f"[red]disconnected[/red] {client.config.server_url}")
    return 1


async def cmd_plans(client: RiotPlanClient, filter: str = "all", as_json: bool = False) -> int:
    """List plans as a table (or JSON)."""
    try:
        plans = await client.list_plan_summaries(filter)  # type: ignore[arg-type]
    except RiotPlanError as e:
        print_error(e.message)
        return 1
    if as_json:
        print_json([asdict(plan) for plan in plans])
    else:
        console.print(plans_table(plans))
    return 0


async def cmd_call(client: RiotPlanClient, method: str, params_json: str | None = None) -> int:
    """Send one raw JSON-RPC request and print its result."""
    params: dict[str, Any] | None = None
    if params_json:
        try:
            params = json.loads(params_json)
        except json.JSONDecodeError as e:
            print_error(f"Invalid --params JSON: {e}")
            return 1
        if not isinstance(params, dict):
            print_error("--params must be a JSON object")
            return 1
    try:
        result = await client.send_request(method, params)
    except RiotPlanError as e:
        print_error(e.message)
        return 1
    print_json(result)
    return 0


async def cmd_watch(
    client: RiotPlanClient,
    methods: list[str] | None = None,
    seconds: float | None = None,
) -> int:
    """Open a session and print notifications until the time is up."""
    for method in methods or [RESOURCE_CHANGED]:
        client.on_notification(
            method, lambda params, method=method: print_json({"method": method, "params": params})
        )
    client.on_session_recovered(lambda: print_info("Session recovered"))

    try:
        await client.initialize()
    except RiotPlanError as e:
        print_error(e.message)
        return 1
    if client.session_id is None:
        print_error("Server did not issue a session id; no notification stream available")
        return 1

    print_info(f"Watching session {client.session_id} (Ctrl+C to stop)")
    logger.debug("Notification stream running: %s", client.session.channel.is_running)
    if seconds is None:
        await asyncio.Event().wait()
    else:
        await asyncio.sleep(seconds)
    return 0


async def cmd_download(client: RiotPlanClient, plan_id: str, output: Path) -> int:
    """Download a plan archive into a directory."""
    try:
        download = await client.download_plan(plan_id)
    except RiotPlanError as e:
        print_error(e.message)
        return 1
    target = output / Path(download.filename).name
    target.write_bytes(download.content)
    print_info(f"Wrote {len(download.content)} bytes to {target}")
    return 0


async def cmd_upload(client: RiotPlanClient, file: Path) -> int:
    """Upload a plan archive."""
    try:
        content = file.read_bytes()
    except OSError as e:
        print_error(f"Cannot read {file}: {e}")
        return 1
    try:
        result = await client.upload_plan(file.name, content)
    except RiotPlanError as e:
        print_error(e.message)
        return 1
    print_json(result)
    return 0
