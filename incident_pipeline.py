# incident_pipeline.py

from datetime import datetime
from typing import Any, Dict, List, Mapping, Sequence, Set, Tuple
import logging

from aggregation import aggregate, summarize_completion
from field_resolver import FieldAliasMap, FieldResolver
from incident_classifier import IncidentClassifier, RequiredFieldSpec
from incident_filter import IncidentFilter
from incident_normalizer import IncidentNormalizer
from models import (
    BUSINESS_UNIT_PLATFORMS,
    DATE_RANGE_PRESETS,
    BusinessUnit,
    FilterConfig,
    NormalizedIncident,
    Platform,
    RunResult,
    as_utc,
)

logger = logging.getLogger(__name__)


class MissingFieldsPipeline:
    """
    One run of normalize -> filter -> classify -> aggregate over incidents that
    have already been fetched. Synchronous and free of I/O; the caller captures
    ``now`` once and every stage sees the same value.
    """
    def __init__(self, required_fields: RequiredFieldSpec, field_aliases: FieldAliasMap):
        self.required_fields = required_fields
        self.normalizer = IncidentNormalizer()
        self.classifier = IncidentClassifier(required_fields, FieldResolver(field_aliases))

    def normalize(self, raw_batches: Mapping[BusinessUnit, Sequence[Dict[str, Any]]]) -> Tuple[List[NormalizedIncident], int]:
        seen: Set[Tuple[str, Platform]] = set()
        incidents: List[NormalizedIncident] = []
        dropped = 0
        for business_unit, raw_incidents in raw_batches.items():
            result = self.normalizer.normalize_all(
                raw_incidents, BUSINESS_UNIT_PLATFORMS[business_unit], business_unit, seen=seen
            )
            incidents.extend(result.incidents)
            dropped += result.dropped
        return incidents, dropped

    def run(self, raw_batches: Mapping[BusinessUnit, Sequence[Dict[str, Any]]], config: FilterConfig,
            now: datetime) -> RunResult:
        now = as_utc(now)
        if config.date_range_preset and config.date_range_preset not in DATE_RANGE_PRESETS:
            logger.warning(f"Unknown date range preset '{config.date_range_preset}'; "
                           f"using the {config.lookback_days}-day lookback instead.")
        start_date, end_date = config.resolve_date_range(now)
        logger.info(f"Running missing fields check for {start_date:%Y-%m-%d} to {end_date:%Y-%m-%d}.")

        fetched = sum(len(batch) for batch in raw_batches.values())
        incidents, dropped = self.normalize(raw_batches)
        if dropped:
            logger.warning(f"{dropped} of {fetched} fetched incident(s) were dropped during normalization.")

        filtered = IncidentFilter(config).apply(incidents, now)
        classified = self.classifier.classify(filtered)

        field_names = [name for platform in Platform for name in self.required_fields.get(platform, [])]
        return RunResult(
            now=now,
            start_date=start_date,
            end_date=end_date,
            date_range_description=config.describe_date_range(now),
            fetched_count=fetched,
            dropped_count=dropped,
            filtered_incidents=filtered,
            classified_incidents=classified,
            aggregation=aggregate(classified, now, config, field_names),
            summary=summarize_completion(filtered, classified, start_date, end_date),
        )
