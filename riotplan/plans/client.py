"""Typed convenience API for the RiotPlan server.

Every helper is a thin wrapper over MCPClient.call_tool / read_resource; the
session, retry and error behavior all come from the protocol core.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Literal
from urllib.parse import quote

from riotplan.core.errors import RiotPlanError
from riotplan.mcp.client import MCPClient
from riotplan.plans.extract import (
    PlanSummary,
    plan_summaries,
    project_list,
    project_object,
    tool_json_or_result,
    tool_payload,
)

logger = logging.getLogger(__name__)

PlanFilter = Literal["all", "active", "done", "hold"]
PLAN_FILTERS: frozenset[str] = frozenset({"all", "active", "done", "hold"})

PLAN_URI_SCHEME = "riotplan://"
UPLOAD_PATH = "/plan/upload"


def plan_uri(plan: str) -> str:
    return f"{PLAN_URI_SCHEME}plan/{plan}"


def artifact_uri(plan: str, artifact_type: str) -> str:
    return f"{PLAN_URI_SCHEME}artifact/{plan}?type={quote(artifact_type, safe='')}"


def evidence_file_uri(plan: str, filename: str) -> str:
    return f"{PLAN_URI_SCHEME}evidence-file/{plan}?file={quote(filename, safe='')}"


def plan_resource_uris(plan: str) -> list[str]:
    """Every resource URI that describes one plan."""
    return [
        plan_uri(plan),
        f"{PLAN_URI_SCHEME}status/{plan}",
        f"{PLAN_URI_SCHEME}steps/{plan}",
        f"{PLAN_URI_SCHEME}history/{plan}",
        f"{PLAN_URI_SCHEME}shaping/{plan}",
        artifact_uri(plan, "summary"),
        artifact_uri(plan, "execution_plan"),
    ]


@dataclass
class PlanDownload:
    """A plan archive fetched from /plan/<id>.

    Attributes:
        filename: Name from Content-Disposition, or "<id>.plan".
        content: Raw archive bytes.
    """

    filename: str
    content: bytes


class RiotPlanClient(MCPClient):
    """MCPClient with helpers for RiotPlan tools and resources.

    Usage:
        async with RiotPlanClient("http://127.0.0.1:3002") as client:
            for plan in await client.list_plan_summaries("active"):
                print(plan.ref, plan.name, plan.stage)
    """

    # Plans

    async def list_plans(self, filter: PlanFilter = "all") -> Any:
        """List plans; returns the raw tool result.

        Raises:
            ValueError: If filter is not one of all, active, done, hold.
        """
        if filter not in PLAN_FILTERS:
            raise ValueError(f"Unknown plan filter: {filter!r}")
        return await self.call_tool("riotplan_list_plans", {"filter": filter})

    async def list_plan_summaries(self, filter: PlanFilter = "all") -> list[PlanSummary]:
        """List plans parsed into PlanSummary objects."""
        result = await self.list_plans(filter)
        return plan_summaries(tool_json_or_result(result))

    async def get_plan_status(self, plan: str) -> Any:
        result = await self.call_tool_with_fallback(
            "riotplan_status",
            {"planId": plan, "verbose": True},
            {"path": plan, "verbose": True},
        )
        return tool_json_or_result(result)

    async def read_context(self, plan: str) -> Any:
        result = await self.call_tool_with_fallback(
            "riotplan_read_context",
            {"planId": plan, "depth": "full"},
            {"path": plan, "depth": "full"},
        )
        return tool_json_or_result(result)

    async def create_plan(self, name: str, description: str = "", stage: str = "idea") -> Any:
        arguments: dict[str, Any] = {"name": name, "stage": stage}
        if description:
            arguments["description"] = description
        result = await self.call_tool("riotplan_create", arguments)
        return tool_payload(result)

    async def move_plan(self, plan: str, target: str) -> Any:
        """Move a plan to another category (e.g. active, done, hold)."""
        result = await self.call_tool_with_fallback(
            "riotplan_move_plan",
            {"planId": plan, "target": target},
            {"path": plan, "target": target},
        )
        return tool_payload(result)

    # Steps

    async def list_steps(self, plan: str) -> Any:
        result = await self.call_tool("riotplan_step_list", {"path": plan, "all": True})
        return tool_payload(result)

    async def update_step(self, plan_id: str, step: int, status: str) -> Any:
        return await self.call_tool(
            "riotplan_step_update", {"planId": plan_id, "step": step, "status": status}
        )

    # Ideas and evidence

    async def add_evidence(
        self,
        plan: str,
        description: str,
        source: str = "",
        summary: str = "",
        content: str = "",
    ) -> Any:
        arguments: dict[str, Any] = {
            "path": plan,
            "description": description,
            "gatheringMethod": "manual",
        }
        if source:
            arguments["source"] = source
        if summary:
            arguments["summary"] = summary
        if content:
            arguments["content"] = content
        result = await self.call_tool("riotplan_idea_add_evidence", arguments)
        return tool_payload(result)

    async def set_idea_content(self, plan: str, content: str) -> Any:
        result = await self.call_tool_with_fallback(
            "riotplan_idea_set_content",
            {"planId": plan, "content": content},
            {"path": plan, "content": content},
        )
        return tool_payload(result)

    async def get_evidence_content(self, plan: str, filename: str) -> str:
        return await self.read_resource(evidence_file_uri(plan, filename))

    # Projects

    async def list_context_projects(self, include_inactive: bool = False) -> list[dict[str, Any]]:
        result = await self.call_tool(
            "riotplan_project_list", {"includeInactive": include_inactive}
        )
        return project_list(tool_json_or_result(result))

    async def get_context_project(self, project_id: str) -> dict[str, Any] | None:
        result = await self.call_tool("riotplan_project_get", {"projectId": project_id})
        return project_object(tool_json_or_result(result))

    # Resources

    async def get_plan_resource(self, plan: str) -> Any | None:
        """Read riotplan://plan/<plan> as JSON.

        Returns None when the resource is empty or cannot be read or decoded.
        """
        try:
            content = await self.read_resource(plan_uri(plan))
            if not content:
                return None
            return json.loads(content)
        except (RiotPlanError, ValueError) as e:
            logger.debug("Plan resource unavailable for %s: %s", plan, e)
            return None

    async def get_artifact(self, plan: str, artifact_type: str) -> str:
        return await self.read_resource(artifact_uri(plan, artifact_type))

    async def get_execution_plan(self, plan: str) -> str:
        return await self.get_artifact(plan, "execution_plan")

    async def subscribe_plan_resources(self, plan: str) -> list[str]:
        """Subscribe to every resource of a plan, best effort.

        Returns:
            The URIs whose subscription succeeded.
        """
        subscribed: list[str] = []
        for uri in plan_resource_uris(plan):
            try:
                await self.subscribe_resource(uri)
            except RiotPlanError as e:
                logger.debug("Subscription to %s unavailable: %s", uri, e)
                continue
            subscribed.append(uri)
        return subscribed

    async def unsubscribe_plan_resources(self, uris: list[str]) -> None:
        """Unsubscribe from the given URIs, best effort."""
        for uri in uris:
            try:
                await self.unsubscribe_resource(uri)
            except RiotPlanError as e:
                logger.debug("Unsubscribe from %s failed: %s", uri, e)

    # File transfer

    async def download_plan(self, plan_id: str, timeout: float | None = None) -> PlanDownload:
        """Download a plan archive from /plan/<id>."""
        self._ensure_open()
        response = await self.transport.raw_request(
            "GET",
            f"/plan/{quote(plan_id, safe='')}",
            headers={"Accept": "application/octet-stream"},
            timeout=timeout or self.config.transfer_timeout,
        )
        return PlanDownload(response.filename or f"{plan_id}.plan", response.content)

    async def upload_plan(
        self, filename: str, content: bytes, timeout: float | None = None
    ) -> Any:
        """Upload a plan archive as multipart/form-data (field "plan").

        Returns:
            The decoded JSON answer, or the body text if it isn't JSON.
        """
        self._ensure_open()
        response = await self.transport.raw_request(
            "POST",
            UPLOAD_PATH,
            files={"plan": (filename, content, "application/octet-stream")},
            timeout=timeout or self.config.transfer_timeout,
        )
        try:
            return response.json()
        except ValueError:
            return response.content.decode("utf-8", errors="replace")
