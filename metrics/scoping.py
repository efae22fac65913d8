from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set

from metrics.schemas import EngineerRow, IssueRow, ProjectRow

logger = logging.getLogger(__name__)


def _safe_json_loads(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (list, dict)):
        return value
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        try:
            return json.loads(value)
        except Exception:
            return None
    return None


def parse_json_list(value: Any) -> List[Any]:
    """Decode a JSON-encoded list column; anything malformed becomes []."""
    parsed = _safe_json_loads(value)
    if not isinstance(parsed, list):
        return []
    return parsed


def parse_name_list(value: Any) -> List[str]:
    return [str(item) for item in parse_json_list(value) if isinstance(item, str)]


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp (or pass through a datetime) as aware UTC.

    Naive values are assumed to be UTC. Unparseable input yields None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _upper_keys(team_keys: Iterable[str]) -> Set[str]:
    return {str(k).upper() for k in team_keys if k}


def project_team_keys(project: ProjectRow) -> List[str]:
    return [t.upper() for t in parse_name_list(project.get("teams"))]


def project_engineer_names(project: ProjectRow) -> List[str]:
    return parse_name_list(project.get("engineers"))


def projects_for_teams(
    team_keys: Iterable[str], projects: Sequence[ProjectRow]
) -> List[ProjectRow]:
    keys = _upper_keys(team_keys)
    return [p for p in projects if any(t in keys for t in project_team_keys(p))]


def issues_for_teams(
    team_keys: Iterable[str], issues: Sequence[IssueRow]
) -> List[IssueRow]:
    keys = _upper_keys(team_keys)
    return [i for i in issues if str(i.get("team_key") or "").upper() in keys]


def build_team_key_to_name(issues: Sequence[IssueRow]) -> Dict[str, str]:
    """Team key (upper-cased) -> display name, as observed on issues."""
    mapping: Dict[str, str] = {}
    for issue in issues:
        key = issue.get("team_key")
        name = issue.get("team_name")
        if key and name:
            mapping[str(key).upper()] = str(name)
    return mapping


def engineers_for_teams(
    team_keys: Sequence[str],
    engineers: Sequence[EngineerRow],
    issues: Sequence[IssueRow],
    engineer_team_mapping: Optional[Mapping[str, str]] = None,
    *,
    key_substring_fallback: bool = False,
) -> List[EngineerRow]:
    """
    Engineers belonging to any of `team_keys`.

    With an engineer -> team mapping, only mapped engineers count. Without
    one, an engineer's `team_names` is matched against the names the issues
    report for those keys. With `key_substring_fallback`, a single team whose
    name is unknown is matched by the key appearing inside a team name.
    """
    keys = _upper_keys(team_keys)

    if engineer_team_mapping:
        members = {
            name
            for name, team in engineer_team_mapping.items()
            if team and team.upper() in keys
        }
        return [e for e in engineers if e.get("assignee_name") in members]

    key_to_name = build_team_key_to_name(issues)
    wanted_names = {key_to_name[k].upper() for k in keys if k in key_to_name}

    substring_key: Optional[str] = None
    if key_substring_fallback and len(keys) == 1 and not wanted_names:
        substring_key = next(iter(keys))

    scoped: List[EngineerRow] = []
    for engineer in engineers:
        names = [n.upper() for n in parse_name_list(engineer.get("team_names"))]
        if substring_key is not None:
            if any(substring_key in n for n in names):
                scoped.append(engineer)
        elif any(n in wanted_names for n in names):
            scoped.append(engineer)
    return scoped


def all_team_keys(projects: Sequence[ProjectRow]) -> List[str]:
    """Distinct team keys referenced by projects, in first-seen order."""
    seen: Dict[str, None] = {}
    for project in projects:
        for key in parse_name_list(project.get("teams")):
            if key not in seen:
                seen[key] = None
    return list(seen)
