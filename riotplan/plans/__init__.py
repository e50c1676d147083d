"""RiotPlan convenience API built on the MCP client core."""

from riotplan.plans.client import (
    PlanDownload,
    RiotPlanClient,
    artifact_uri,
    evidence_file_uri,
    plan_resource_uris,
    plan_uri,
)
from riotplan.plans.extract import (
    PlanSummary,
    extract_notification_uris,
    resolve_plan_ref,
    resource_matches_plan,
)

__all__ = [
    "PlanDownload",
    "PlanSummary",
    "RiotPlanClient",
    "artifact_uri",
    "evidence_file_uri",
    "extract_notification_uris",
    "plan_resource_uris",
    "plan_uri",
    "resolve_plan_ref",
    "resource_matches_plan",
]
