# aggregation.py

from collections import Counter
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
import logging

from models import (
    Aggregation,
    BusinessUnit,
    BusinessUnitCompletion,
    ClassifiedIncident,
    CompletionSummary,
    CrossTab,
    FilterConfig,
    NormalizedIncident,
    Platform,
    as_utc,
)

logger = logging.getLogger(__name__)

DEFAULT_BUCKET_BOUNDARIES: Tuple[int, int, int] = (7, 30, 90)
TOP_MISSING_FIELDS = 5


def percentage(part: int, whole: int) -> str:
    """100 * part / whole to one decimal place; '0.0' when whole is zero."""
    if not whole:
        return "0.0"
    return f"{100 * part / whole:.1f}"


def bucket_labels(boundaries: Tuple[int, int, int] = DEFAULT_BUCKET_BOUNDARIES) -> List[str]:
    first, second, third = boundaries
    return [f"0-{first} days", f"{first}-{second} days", f"{second}-{third} days", f"{third}+ days"]


def age_in_days(created_at: datetime, now: datetime) -> int:
    """Whole days between creation and now. Clock skew into the future counts as 0."""
    return max((as_utc(now) - as_utc(created_at)).days, 0)


def age_bucket(created_at: datetime, now: datetime,
               boundaries: Tuple[int, int, int] = DEFAULT_BUCKET_BOUNDARIES) -> str:
    # Upper bounds are inclusive: exactly 7 days old is still "0-7 days".
    labels = bucket_labels(boundaries)
    days = age_in_days(created_at, now)
    for label, upper in zip(labels, boundaries):
        if days <= upper:
            return label
    return labels[-1]


def available_buckets(lookback_days: int,
                      boundaries: Tuple[int, int, int] = DEFAULT_BUCKET_BOUNDARIES) -> Dict[str, bool]:
    """
    Which buckets the lookback window can actually reach. A 7-day lookback can
    never produce a "90+ days" incident, so that bucket is reported as n/a
    rather than as a misleading zero.
    """
    first, second, third = boundaries
    labels = bucket_labels(boundaries)
    return {
        labels[0]: lookback_days >= first,
        labels[1]: lookback_days >= second,
        labels[2]: lookback_days >= second,
        labels[3]: lookback_days >= third,
    }


def _cross_tab(rows: Iterable[str], labels: Sequence[str], grand_total: int,
               increments: Iterable[Tuple[str, str]]) -> CrossTab:
    counts: Dict[str, Dict[str, int]] = {row: {label: 0 for label in labels} for row in rows}
    for row, label in increments:
        counts.setdefault(row, {label_: 0 for label_ in labels})[label] += 1
    row_totals = {row: sum(by_bucket.values()) for row, by_bucket in counts.items()}
    percentages = {row: percentage(total, grand_total) for row, total in row_totals.items()}
    return CrossTab(counts=counts, row_totals=row_totals, percentages=percentages)


def aggregate(classified_incidents: Sequence[ClassifiedIncident], now: datetime,
              config: Optional[FilterConfig] = None,
              field_names: Iterable[str] = ()) -> Aggregation:
    """
    Buckets classified incidents by age and cross-tabulates them by business
    unit, platform and missing field.

    Every business unit and platform gets a row even when it has no incidents;
    ``field_names`` seeds missing-field rows the same way. Percentages are
    against the number of classified incidents, so one incident missing two
    fields counts toward both field rows.
    """
    now = as_utc(now)
    boundaries = config.bucket_boundaries if config else DEFAULT_BUCKET_BOUNDARIES
    labels = bucket_labels(boundaries)
    if config:
        availability = available_buckets(config.lookback_days, boundaries)
    else:
        availability = {label: True for label in labels}

    buckets = [(item, age_bucket(item.incident.created_at, now, boundaries)) for item in classified_incidents]
    grand_total = len(buckets)

    total_by_bucket = {label: 0 for label in labels}
    for _, label in buckets:
        total_by_bucket[label] += 1

    aggregation = Aggregation(
        generated_at=now,
        bucket_labels=labels,
        available_buckets=availability,
        grand_total=grand_total,
        total_by_bucket=total_by_bucket,
        bucket_percentages={label: percentage(count, grand_total) for label, count in total_by_bucket.items()},
        by_business_unit=_cross_tab(
            [unit.value for unit in BusinessUnit], labels, grand_total,
            ((item.incident.business_unit.value, label) for item, label in buckets),
        ),
        by_platform=_cross_tab(
            [platform.value for platform in Platform], labels, grand_total,
            ((item.incident.platform.value, label) for item, label in buckets),
        ),
        by_missing_field=_cross_tab(
            list(dict.fromkeys(field_names)), labels, grand_total,
            ((field_name, label) for item, label in buckets for field_name in item.missing_fields),
        ),
    )
    logger.info(f"Aggregated {grand_total} incident(s) with missing fields: "
                + ", ".join(f"{label}={count}" for label, count in total_by_bucket.items()))
    return aggregation


def summarize_completion(incidents: Sequence[NormalizedIncident],
                         classified_incidents: Sequence[ClassifiedIncident],
                         start_date: datetime, end_date: datetime) -> CompletionSummary:
    """
    Field-completion overview for every incident in the window, used by the
    weekly summary. ``classified_incidents`` must come from ``incidents``.
    """
    incomplete_keys = {(item.incident.reference, item.incident.platform) for item in classified_incidents}

    units = {unit.value: BusinessUnitCompletion() for unit in BusinessUnit}
    for incident in incidents:
        unit = units[incident.business_unit.value]
        unit.total += 1
        if (incident.reference, incident.platform) in incomplete_keys:
            unit.incomplete += 1
        else:
            unit.complete += 1
    for unit in units.values():
        unit.completion_percentage = percentage(unit.complete, unit.total)

    total = len(incidents)
    incomplete = sum(unit.incomplete for unit in units.values())
    complete = total - incomplete

    field_counts: Counter = Counter()
    for item in classified_incidents:
        field_counts.update(item.missing_fields)
    # most_common keeps first-seen order among equal counts.
    top_fields = field_counts.most_common(TOP_MISSING_FIELDS)

    summary = CompletionSummary(
        start_date=start_date,
        end_date=end_date,
        total_incidents=total,
        complete_incidents=complete,
        incomplete_incidents=incomplete,
        completion_percentage=percentage(complete, total),
        incompletion_percentage=percentage(incomplete, total),
        business_units=units,
        top_missing_fields=top_fields,
    )
    logger.info(f"Completion summary: {total} total, {complete} complete ({summary.completion_percentage}%), "
                f"{incomplete} incomplete ({summary.incompletion_percentage}%).")
    return summary
