from __future__ import annotations

from typing import Dict, List, Mapping, Optional

from metrics.config import MetricsConfig


class DomainMapping:
    """Team key -> domain lookups (a domain groups several teams)."""

    def __init__(self, team_to_domain: Optional[Mapping[str, str]] = None) -> None:
        self._team_to_domain: Dict[str, str] = dict(team_to_domain or {})

    def __bool__(self) -> bool:
        return bool(self._team_to_domain)

    def domain_for_team(self, team_key: str) -> Optional[str]:
        if team_key in self._team_to_domain:
            return self._team_to_domain[team_key]
        upper = team_key.upper()
        for key, domain in self._team_to_domain.items():
            if key.upper() == upper:
                return domain
        return None

    def teams_for_domain(self, domain: str) -> List[str]:
        return [k for k, d in self._team_to_domain.items() if d == domain]

    def all_domains(self) -> List[str]:
        return list(dict.fromkeys(self._team_to_domain.values()))

    def mappings(self) -> Dict[str, List[str]]:
        """domain -> team keys"""
        result: Dict[str, List[str]] = {}
        for key, domain in self._team_to_domain.items():
            result.setdefault(domain, []).append(key)
        return result


def load_domain_mapping(config: MetricsConfig) -> DomainMapping:
    return DomainMapping(config.team_domain_mappings)
