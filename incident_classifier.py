# incident_classifier.py

from typing import Dict, Iterable, List
import logging

from config_manager import ConfigurationError
from field_resolver import FieldResolver
from models import ClassifiedIncident, NormalizedIncident, Platform

logger = logging.getLogger(__name__)

# platform -> ordered logical names of the fields every incident must fill in
RequiredFieldSpec = Dict[Platform, List[str]]


class IncidentClassifier:
    """
    Works out which required documentation fields each incident is missing.
    Incidents missing nothing are not report subjects and are left out.
    """
    def __init__(self, required_fields: RequiredFieldSpec, resolver: FieldResolver):
        self.required_fields = required_fields
        self.resolver = resolver
        logger.debug(f"IncidentClassifier initialized for platforms: "
                     f"{[platform.value for platform in self.required_fields]}")

    def fields_for(self, platform: Platform) -> List[str]:
        fields = self.required_fields.get(platform)
        if not fields:
            # Treating this as "nothing required" would hide every incident on the platform.
            raise ConfigurationError(f"No required fields configured for platform '{platform.value}'.")
        return fields

    def missing_fields(self, incident: NormalizedIncident) -> List[str]:
        """Required fields the resolver finds blank, in configured order."""
        return [
            field_name for field_name in self.fields_for(incident.platform)
            if not self.resolver.resolve_field(incident, field_name)
        ]

    def classify(self, incidents: Iterable[NormalizedIncident]) -> List[ClassifiedIncident]:
        """
        Returns a new ClassifiedIncident for every incident with at least one
        missing field. The input incidents are not modified.
        """
        classified: List[ClassifiedIncident] = []
        checked = 0
        for incident in incidents:
            checked += 1
            missing = self.missing_fields(incident)
            if not missing:
                logger.debug(f"Incident {incident.reference}: all required fields present.")
                continue
            logger.info(f"Incident {incident.reference} ({incident.business_unit.value}): "
                        f"missing {', '.join(missing)}")
            classified.append(ClassifiedIncident(incident=incident, missing_fields=tuple(missing)))

        logger.info(f"Classified {checked} incident(s): {len(classified)} with missing fields.")
        return classified
