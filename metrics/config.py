from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Mapping, Optional

import yaml

from metrics.productivity_health import DEFAULT_THROUGHPUT_PER_IC_TARGET

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetricsConfig:
    """
    Everything the snapshot job needs from the environment, resolved once.

    Calculators receive these values explicitly; nothing below the job reads
    process state.
    """

    engineer_team_mapping: Dict[str, str] = field(default_factory=dict)
    team_domain_mappings: Dict[str, str] = field(default_factory=dict)
    external_domain_mappings: Dict[str, str] = field(default_factory=dict)
    throughput_per_ic_target: float = DEFAULT_THROUGHPUT_PER_IC_TARGET
    ignored_team_keys: FrozenSet[str] = frozenset()
    whitelist_team_keys: FrozenSet[str] = frozenset()
    getdx_api_key: Optional[str] = None
    getdx_feed_token: Optional[str] = None

    def is_team_included(self, team_key: Optional[str]) -> bool:
        """Whitelist wins when set; otherwise the ignore list excludes."""
        if not team_key:
            return True
        key = team_key.upper()
        if self.whitelist_team_keys:
            return key in self.whitelist_team_keys
        return key not in self.ignored_team_keys


def parse_engineer_team_mapping(value: Optional[str]) -> Dict[str, str]:
    """Parse `"Ada Lovelace:ENG,Grace Hopper:OPS"` into {name: team_key}."""
    mapping: Dict[str, str] = {}
    if not value:
        return mapping
    for pair in value.split(","):
        if ":" not in pair:
            continue
        name, team = pair.split(":", 1)
        name = name.strip()
        team = team.strip()
        if name and team:
            mapping[name] = team
    return mapping


def parse_json_mapping(value: Any, *, source: str) -> Dict[str, str]:
    if value is None or value == "":
        return {}
    data = value
    if isinstance(value, str):
        try:
            data = json.loads(value)
        except ValueError as exc:
            logger.error("Failed to parse %s: %s", source, exc)
            return {}
    if not isinstance(data, dict):
        logger.error("%s must be a JSON object, got %s", source, type(data).__name__)
        return {}
    return {str(k): str(v) for k, v in data.items() if k and v}


def parse_team_key_list(value: Any) -> FrozenSet[str]:
    if not value:
        return frozenset()
    items = value.split(",") if isinstance(value, str) else list(value)
    return frozenset(str(k).strip().upper() for k in items if str(k).strip())


def parse_throughput_target(value: Any) -> float:
    if value is None or value == "":
        return DEFAULT_THROUGHPUT_PER_IC_TARGET
    try:
        target = float(value)
    except (TypeError, ValueError):
        target = -1.0
    if target != target or target <= 0:
        logger.warning(
            "Invalid throughput target %r - using default %s",
            value,
            DEFAULT_THROUGHPUT_PER_IC_TARGET,
        )
        return DEFAULT_THROUGHPUT_PER_IC_TARGET
    return target


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Metrics config not found at %s, using defaults", path)
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Metrics config at {path} must be a mapping")
    return data


def load_metrics_config(
    path: Optional[Path] = None, env: Optional[Mapping[str, str]] = None
) -> MetricsConfig:
    """
    Build a MetricsConfig from an optional YAML file plus environment.

    Environment variables take precedence over file values.
    """
    env = os.environ if env is None else env
    if path is None and env.get("METRICS_CONFIG"):
        path = Path(env["METRICS_CONFIG"])
    file_cfg = _load_yaml(path) if path is not None else {}

    engineer_mapping_raw = env.get("ENGINEER_TEAM_MAPPING")
    if engineer_mapping_raw:
        engineer_mapping = parse_engineer_team_mapping(engineer_mapping_raw)
    else:
        file_value = file_cfg.get("engineer_team_mapping") or {}
        engineer_mapping = (
            parse_engineer_team_mapping(file_value)
            if isinstance(file_value, str)
            else {str(k): str(v) for k, v in dict(file_value).items() if k and v}
        )

    return MetricsConfig(
        engineer_team_mapping=engineer_mapping,
        team_domain_mappings=parse_json_mapping(
            env.get("TEAM_DOMAIN_MAPPINGS") or file_cfg.get("team_domain_mappings"),
            source="TEAM_DOMAIN_MAPPINGS",
        ),
        external_domain_mappings=parse_json_mapping(
            env.get("GETDX_DOMAIN_MAPPINGS") or file_cfg.get("getdx_domain_mappings"),
            source="GETDX_DOMAIN_MAPPINGS",
        ),
        throughput_per_ic_target=parse_throughput_target(
            env.get("GETDX_THROUGHPUT_PER_IC_TARGET")
            or file_cfg.get("throughput_per_ic_target")
        ),
        ignored_team_keys=parse_team_key_list(
            env.get("IGNORED_TEAM_KEYS") or file_cfg.get("ignored_team_keys")
        ),
        whitelist_team_keys=parse_team_key_list(
            env.get("WHITELIST_TEAM_KEYS") or file_cfg.get("whitelist_team_keys")
        ),
        getdx_api_key=env.get("GETDX_API_KEY") or None,
        getdx_feed_token=env.get("GETDX_PR_THROUGHPUT_FEED_TOKEN") or None,
    )
