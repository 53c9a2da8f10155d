# incident_normalizer.py

from datetime import datetime
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Set, Tuple
import logging

from models import (
    BusinessUnit,
    FireHydrantRawIncident,
    IncidentIORawIncident,
    NormalizedIncident,
    Platform,
    as_utc,
)

logger = logging.getLogger(__name__)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parses an ISO-8601 timestamp as sent by either platform.
    Naive values are taken to be UTC. Returns None when the value is missing or unparsable.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    return as_utc(parsed)


def _name_of(value: Any) -> Optional[str]:
    """Unwraps '{"name": "SEV1"}' style objects (FireHydrant sends both forms)."""
    if value is None:
        return None
    if isinstance(value, dict):
        for key in ("name", "slug", "value"):
            if value.get(key):
                return str(value[key])
        return None
    text = str(value).strip()
    return text or None


class NormalizationResult(NamedTuple):
    incidents: List[NormalizedIncident]
    dropped: int


class IncidentNormalizer:
    """
    Narrows raw vendor payloads into NormalizedIncident values.
    This is the only place untyped platform JSON is interpreted; everything
    downstream works on the normalized shape (plus raw_payload for custom fields).
    """

    def normalize(self, raw_incident: Dict[str, Any], platform: Platform,
                  business_unit: BusinessUnit) -> Optional[NormalizedIncident]:
        """
        Normalizes one raw incident.

        Returns None (and logs why) when the creation timestamp cannot be parsed.
        Structural problems with the payload raise pydantic.ValidationError, since
        silently skipping them would under-count the report.
        """
        if platform is Platform.INCIDENT_IO:
            return self._normalize_incident_io(raw_incident, business_unit)
        if platform is Platform.FIREHYDRANT:
            return self._normalize_firehydrant(raw_incident, business_unit)
        raise ValueError(f"Unsupported platform: {platform!r}")

    def _normalize_incident_io(self, raw_incident: Dict[str, Any],
                               business_unit: BusinessUnit) -> Optional[NormalizedIncident]:
        raw = IncidentIORawIncident.model_validate(raw_incident)
        reference = raw.reference.strip() if raw.reference and raw.reference.strip() else raw.id[:8]

        created_at = parse_timestamp(raw.created_at)
        if created_at is None:
            logger.warning(f"Dropping incident.io incident {reference} ({business_unit.value}): "
                           f"unparsable created_at {raw.created_at!r}")
            return None

        return NormalizedIncident(
            reference=reference,
            platform=Platform.INCIDENT_IO,
            business_unit=business_unit,
            status=_name_of(raw.incident_status) or "",
            mode=raw.mode,
            type=_name_of(raw.incident_type) or "",
            severity=_name_of(raw.severity),
            created_at=created_at,
            raw_payload=raw_incident,
        )

    def _normalize_firehydrant(self, raw_incident: Dict[str, Any],
                               business_unit: BusinessUnit) -> Optional[NormalizedIncident]:
        raw = FireHydrantRawIncident.model_validate(raw_incident)
        reference = f"FH-{raw.number}" if raw.number is not None else raw.id[:8]

        created_at = parse_timestamp(raw.created_at)
        if created_at is None:
            logger.warning(f"Dropping FireHydrant incident {reference} ({business_unit.value}): "
                           f"unparsable created_at {raw.created_at!r}")
            return None

        return NormalizedIncident(
            reference=reference,
            platform=Platform.FIREHYDRANT,
            business_unit=business_unit,
            status=raw.current_milestone or raw.status or "",
            mode=None,
            type=_name_of(raw.incident_type) or "",
            severity=_name_of(raw.severity),
            created_at=created_at,
            raw_payload=raw_incident,
        )

    def normalize_all(self, raw_incidents: Iterable[Dict[str, Any]], platform: Platform,
                      business_unit: BusinessUnit,
                      seen: Optional[Set[Tuple[str, Platform]]] = None) -> NormalizationResult:
        """
        Normalizes a batch, dropping unparsable records and repeated references.

        ``seen`` can be shared across batches of one fetch cycle so that
        reference + platform stays unique across business units on the same platform.
        """
        seen = seen if seen is not None else set()
        incidents: List[NormalizedIncident] = []
        dropped = 0
        for raw_incident in raw_incidents:
            incident = self.normalize(raw_incident, platform, business_unit)
            if incident is None:
                dropped += 1
                continue
            key = (incident.reference, incident.platform)
            if key in seen:
                logger.warning(f"Dropping duplicate {platform.value} incident {incident.reference} "
                               f"({business_unit.value}) already seen in this cycle.")
                dropped += 1
                continue
            seen.add(key)
            incidents.append(incident)

        logger.info(f"Normalized {len(incidents)} {platform.value} incident(s) for {business_unit.value}, "
                    f"dropped {dropped}.")
        return NormalizationResult(incidents=incidents, dropped=dropped)
