"""Extraction strategies for loosely-shaped server responses.

Server versions disagree on where they put things (a plan's reference may be
its uuid, id, path or code; a project list may be bare or nested). Instead of
ad hoc probing, each lookup is an ordered list of small strategies and
first_of() returns the first usable value.
"""

import json
import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, unquote

from riotplan.mcp.protocol import MCPToolResult

Strategy = Callable[[Any], Any]

_UUID_PREFIX = re.compile(r"^[0-9a-f]{8}-", re.IGNORECASE)


def first_of(value: Any, strategies: Iterable[Strategy], default: Any = None) -> Any:
    """Apply strategies in order and return the first usable result.

    A result is usable unless it is None or an empty string. Strategies
    that raise (KeyError, TypeError, ValueError, ...) are skipped.
    """
    for strategy in strategies:
        try:
            result = strategy(value)
        except (KeyError, IndexError, TypeError, ValueError, AttributeError):
            continue
        if result is None or result == "":
            continue
        return result
    return default


def key(name: str) -> Strategy:
    """Strategy reading a top-level key of a dict."""
    return lambda data: data.get(name) if isinstance(data, dict) else None


def nested(*names: str) -> Strategy:
    """Strategy reading a nested key path of dicts."""

    def read(data: Any) -> Any:
        for name in names:
            if not isinstance(data, dict):
                return None
            data = data.get(name)
        return data

    return read


def string_field(name: str) -> Strategy:
    """Strategy reading a non-blank string key, stripped."""

    def read(data: Any) -> str | None:
        value = data.get(name) if isinstance(data, dict) else None
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    return read


def list_at(strategy: Strategy) -> Strategy:
    """Restrict a strategy to list results."""

    def read(data: Any) -> list[Any] | None:
        value = strategy(data)
        return value if isinstance(value, list) else None

    return read


# Tool result payloads


def tool_text(result: Any) -> str | None:
    """Text of the first content item of a tool result."""
    if not isinstance(result, dict):
        return None
    return MCPToolResult.from_dict(result).first_text()


def tool_json(result: Any) -> Any:
    """First text content item decoded as JSON (raises ValueError otherwise)."""
    text = tool_text(result)
    if text is None:
        return None
    return json.loads(text)


# Decoded JSON first, then the raw text, then the result as returned.
TOOL_PAYLOAD: Sequence[Strategy] = (tool_json, tool_text, lambda result: result)

# Decoded JSON, else the result as returned (no raw-text step).
TOOL_JSON_OR_RESULT: Sequence[Strategy] = (tool_json, lambda result: result)


def tool_payload(result: Any) -> Any:
    return first_of(result, TOOL_PAYLOAD, default=result)


def tool_json_or_result(result: Any) -> Any:
    return first_of(result, TOOL_JSON_OR_RESULT, default=result)


# Plans

PLAN_REF: Sequence[Strategy] = (
    string_field("uuid"),
    string_field("id"),
    string_field("path"),
    string_field("code"),
    string_field("name"),
)

PLAN_NAME: Sequence[Strategy] = (
    string_field("name"),
    string_field("code"),
    string_field("id"),
    string_field("uuid"),
)

PLAN_PATH: Sequence[Strategy] = (string_field("path"), string_field("code"))

PLAN_UPDATED: Sequence[Strategy] = (
    key("lastUpdated"),
    key("updatedAt"),
    key("createdAt"),
)

PLAN_LIST: Sequence[Strategy] = (
    list_at(key("plans")),
    list_at(nested("data", "plans")),
    list_at(lambda data: data),
)


def _uuid_like_name(plan: Any) -> str | None:
    name = plan.get("name") if isinstance(plan, dict) else None
    if isinstance(name, str) and _UUID_PREFIX.match(name):
        return name
    return None


def _bare_string(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


# How a caller-supplied plan object (or plain string) names its plan.
PLAN_SELECTOR: Sequence[Strategy] = (
    _bare_string,
    string_field("planId"),
    string_field("id"),
    _uuid_like_name,
    string_field("uuid"),
    string_field("path"),
)


def resolve_plan_ref(plan: Any) -> str | None:
    """Reference identifying a plan given a string or a plan-like dict."""
    return first_of(plan, PLAN_SELECTOR)


@dataclass
class PlanSummary:
    """A plan as listed by riotplan_list_plans.

    Attributes:
        ref: Best reference for follow-up calls (uuid, id, path, code or name).
        name: Display name.
        stage: Lifecycle stage, lowercased ("unknown" if absent).
    """

    ref: str
    name: str
    stage: str
    uuid: str | None = None
    id: str | None = None
    path: str | None = None
    code: str | None = None
    progress: dict[str, Any] | None = None
    last_updated: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlanSummary":
        stage = data.get("stage")
        progress = data.get("progress")
        return cls(
            ref=first_of(data, PLAN_REF, default=""),
            name=first_of(data, PLAN_NAME, default="Untitled Plan"),
            stage=stage.lower() if isinstance(stage, str) and stage else "unknown",
            uuid=data.get("uuid"),
            id=data.get("id"),
            path=first_of(data, PLAN_PATH),
            code=data.get("code"),
            progress=progress if isinstance(progress, dict) else None,
            last_updated=first_of(data, PLAN_UPDATED),
        )


def plan_summaries(payload: Any) -> list[PlanSummary]:
    """Parse the plans listed in a decoded list_plans payload."""
    plans = first_of(payload, PLAN_LIST, default=[])
    return [PlanSummary.from_dict(p) for p in plans if isinstance(p, dict)]


# Projects

PROJECT_LIST: Sequence[Strategy] = (
    list_at(lambda data: data),
    list_at(key("projects")),
    list_at(key("items")),
    list_at(nested("data", "projects")),
    list_at(nested("result", "projects")),
)

PROJECT_OBJECT: Sequence[Strategy] = (
    lambda data: data.get("project") if isinstance(data.get("project"), dict) else None,
    lambda data: data if isinstance(data, dict) and data else None,
)


def project_list(payload: Any) -> list[dict[str, Any]]:
    projects = first_of(payload, PROJECT_LIST, default=[])
    return [p for p in projects if isinstance(p, dict)]


def project_object(payload: Any) -> dict[str, Any] | None:
    return first_of(payload, PROJECT_OBJECT)


# Notifications


def _uri(value: Any) -> list[str]:
    return [value] if isinstance(value, str) and value else []


NOTIFICATION_URIS: Sequence[Callable[[dict[str, Any]], list[str]]] = (
    lambda params: _uri(params.get("uri")),
    lambda params: _uri(nested("resource", "uri")(params)),
    lambda params: [
        uri
        for item in params.get("resources") or []
        if isinstance(item, dict)
        for uri in _uri(item.get("uri"))
    ],
    lambda params: [uri for item in params.get("uris") or [] for uri in _uri(item)],
)


def extract_notification_uris(params: Any) -> list[str]:
    """All resource URIs a resource_changed notification refers to.

    Unlike first_of(), every strategy contributes.
    """
    if not isinstance(params, dict):
        return []
    uris: list[str] = []
    for strategy in NOTIFICATION_URIS:
        try:
            uris.extend(strategy(params))
        except TypeError:
            continue
    return uris


def resource_matches_plan(uri: str, plan: str) -> bool:
    """Check whether a resource URI refers to a plan (case-insensitive).

    The URI is compared raw and URL-decoded, against the plan reference raw
    and URL-encoded.
    """
    plan_lower = plan.lower()
    encoded_plan = quote(plan, safe="").lower()
    plan_uri = f"riotplan://plan/{plan}".lower()
    candidates = {uri.lower(), unquote(uri).lower()}
    return any(
        candidate == plan_uri or plan_lower in candidate or encoded_plan in candidate
        for candidate in candidates
    )
