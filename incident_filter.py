# incident_filter.py

from datetime import datetime
from typing import Callable, List, Sequence, Tuple
import logging
import re

from models import FilterConfig, NormalizedIncident, Platform

logger = logging.getLogger(__name__)

# Leading "SEVn" token of an incident.io severity name, e.g. "SEV1 (Internal Impact)".
SEVERITY_TOKEN_PATTERN = re.compile(r"^\s*(SEV\d+)", re.IGNORECASE)
INTERNAL_IMPACT_MARKER = "internal impact"


def filter_by_status(incidents: Sequence[NormalizedIncident], config: FilterConfig) -> List[NormalizedIncident]:
    """Keeps incidents whose status is configured for their platform. Unconfigured platforms keep nothing."""
    kept = []
    for incident in incidents:
        allowed = config.include_statuses.get(incident.platform)
        if allowed and incident.status in allowed:
            kept.append(incident)
    return kept


def filter_by_type(incidents: Sequence[NormalizedIncident], config: FilterConfig) -> List[NormalizedIncident]:
    """Drops incidents whose type contains any excluded substring (case-sensitive)."""
    excluded = config.exclude_type_substrings
    return [
        incident for incident in incidents
        if not any(substring in incident.type for substring in excluded)
    ]


def filter_by_mode(incidents: Sequence[NormalizedIncident], config: FilterConfig) -> List[NormalizedIncident]:
    """Mode only exists on incident.io; FireHydrant incidents pass through unconditionally."""
    kept = []
    for incident in incidents:
        if incident.platform is Platform.INCIDENT_IO:
            if incident.mode in config.include_modes:
                kept.append(incident)
        elif incident.platform is Platform.FIREHYDRANT:
            kept.append(incident)
        else:
            raise ValueError(f"Unsupported platform: {incident.platform!r}")
    return kept


def severity_matches(incident: NormalizedIncident, config: FilterConfig) -> bool:
    severity = incident.severity
    if not severity:
        return False
    allowed = config.severities_for(incident.platform)

    if incident.platform is Platform.INCIDENT_IO:
        if severity in allowed:
            return True
        if config.include_internal_impact and INTERNAL_IMPACT_MARKER in severity.lower():
            match = SEVERITY_TOKEN_PATTERN.match(severity)
            return bool(match) and match.group(1).upper() in allowed
        return False
    if incident.platform is Platform.FIREHYDRANT:
        return severity in allowed
    raise ValueError(f"Unsupported platform: {incident.platform!r}")


def filter_by_severity(incidents: Sequence[NormalizedIncident], config: FilterConfig) -> List[NormalizedIncident]:
    """
    Optional severity allow-list. A no-op unless enable_severity_filtering is set.
    When enabled, incidents without a severity are excluded.
    """
    if not config.enable_severity_filtering:
        return list(incidents)
    return [incident for incident in incidents if severity_matches(incident, config)]


def filter_by_date_range(incidents: Sequence[NormalizedIncident], config: FilterConfig,
                         now: datetime) -> List[NormalizedIncident]:
    """Keeps incidents created within the configured window (both ends inclusive)."""
    start, end = config.resolve_date_range(now)
    return [incident for incident in incidents if start <= incident.created_at <= end]


class IncidentFilter:
    """
    Applies the filter predicates in their documented order, logging how many
    incidents each one removes. Each predicate is a pure function of its inputs.
    """

    def __init__(self, config: FilterConfig):
        self.config = config

    def steps(self, now: datetime) -> List[Tuple[str, Callable[[Sequence[NormalizedIncident]], List[NormalizedIncident]]]]:
        config = self.config
        return [
            ("status", lambda incidents: filter_by_status(incidents, config)),
            ("type", lambda incidents: filter_by_type(incidents, config)),
            ("mode", lambda incidents: filter_by_mode(incidents, config)),
            ("severity", lambda incidents: filter_by_severity(incidents, config)),
            ("date range", lambda incidents: filter_by_date_range(incidents, config, now)),
        ]

    def apply(self, incidents: Sequence[NormalizedIncident], now: datetime) -> List[NormalizedIncident]:
        remaining = list(incidents)
        logger.info(f"Filtering {len(remaining)} incident(s).")
        for name, step in self.steps(now):
            before = len(remaining)
            remaining = step(remaining)
            logger.debug(f"{name} filter: kept {len(remaining)} of {before}.")
        logger.info(f"{len(remaining)} incident(s) remain after filtering.")
        return remaining


def apply_filters(incidents: Sequence[NormalizedIncident], config: FilterConfig,
                  now: datetime) -> List[NormalizedIncident]:
    """Convenience wrapper; ``now`` should be the run's captured time."""
    return IncidentFilter(config).apply(incidents, now)
