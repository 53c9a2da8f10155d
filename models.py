# models.py

from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Platform(str, Enum):
    """Incident-management platforms the reporter reads from."""
    INCIDENT_IO = "incident.io"
    FIREHYDRANT = "FireHydrant"


class BusinessUnit(str, Enum):
    SQUARE = "Square"
    CASH = "Cash"
    AFTERPAY = "Afterpay"


# Each business unit's incidents live on exactly one platform.
BUSINESS_UNIT_PLATFORMS: Dict[BusinessUnit, Platform] = {
    BusinessUnit.SQUARE: Platform.INCIDENT_IO,
    BusinessUnit.CASH: Platform.INCIDENT_IO,
    BusinessUnit.AFTERPAY: Platform.FIREHYDRANT,
}


# --- Raw platform payloads ---
# These only pin down the structure the normalizer relies on. Anything else the
# vendor sends is kept (extra="allow") so the field resolver can still see it.

class IncidentIORawIncident(BaseModel):
    """An incident as returned by the incident.io v2 incidents API."""
    model_config = ConfigDict(extra="allow")

    id: str = Field(..., description="Opaque incident.io identifier (ULID)")
    reference: Optional[str] = Field(None, description="Human-readable reference, e.g. 'INC-6071'")
    created_at: Optional[Any] = None
    occurred_at: Optional[Any] = None
    mode: Optional[str] = None
    incident_status: Optional[Dict[str, Any]] = None
    incident_type: Optional[Dict[str, Any]] = None
    severity: Optional[Dict[str, Any]] = None
    custom_field_entries: List[Dict[str, Any]] = Field(default_factory=list)
    incident_timestamp_values: List[Dict[str, Any]] = Field(default_factory=list)


class FireHydrantRawIncident(BaseModel):
    """An incident as returned by the FireHydrant v1 incidents API."""
    model_config = ConfigDict(extra="allow")

    id: str = Field(..., description="Opaque FireHydrant identifier (UUID)")
    number: Optional[int] = Field(None, description="Sequential incident number shown in the UI")
    created_at: Optional[Any] = None
    started_at: Optional[Any] = None
    current_milestone: Optional[str] = None
    status: Optional[str] = None
    incident_type: Optional[Any] = None
    severity: Optional[Any] = None
    custom_fields: Any = Field(default_factory=dict)
    milestones: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator("custom_fields")
    @classmethod
    def _custom_fields_shape(cls, value: Any) -> Any:
        if value is None:
            return {}
        if not isinstance(value, (dict, list)):
            raise ValueError("custom_fields must be an object or a list of field entries")
        return value


# --- Pipeline values ---

class NormalizedIncident(BaseModel):
    """
    The common shape both platforms are narrowed into.
    Created once per run by the normalizer and never mutated afterwards.
    """
    model_config = ConfigDict(frozen=True)

    reference: str = Field(..., description="Human-readable incident identifier, unique per platform")
    platform: Platform
    business_unit: BusinessUnit
    status: str = Field("", description="Platform-specific status vocabulary, e.g. 'Stabilized'")
    mode: Optional[str] = Field(None, description="incident.io mode, e.g. 'standard'. Always None for FireHydrant")
    type: str = Field("", description="Incident type name, only used for substring exclusion")
    severity: Optional[str] = Field(None, description="Severity label, e.g. 'SEV1' or 'SEV1 (Internal Impact)'")
    created_at: datetime = Field(..., description="Timezone-aware creation time")
    raw_payload: Dict[str, Any] = Field(default_factory=dict, description="Original vendor payload, kept verbatim")


class ClassifiedIncident(BaseModel):
    """An incident paired with the required fields it is missing. Only built when at least one is missing."""
    model_config = ConfigDict(frozen=True)

    incident: NormalizedIncident
    missing_fields: Tuple[str, ...] = Field(..., min_length=1)

    @property
    def reference(self) -> str:
        return self.incident.reference


def _split_list(value: Any) -> Any:
    """Accepts 'a, b, c' strings from flat key/value stores as lists."""
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


DATE_RANGE_PRESETS = ("current_month", "last_month", "current_quarter", "last_quarter", "ytd")


def _end_of_month(year: int, month: int) -> date:
    if month == 12:
        return date(year, 12, 31)
    return date(year, month + 1, 1) - timedelta(days=1)


def as_utc(moment: datetime) -> datetime:
    """Naive datetimes are taken to be UTC; aware ones are returned unchanged."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _day_end(day: date) -> datetime:
    return datetime.combine(day, time.max, tzinfo=timezone.utc)


class FilterConfig(BaseModel):
    """
    Run configuration for the filter pipeline and the aggregation engine.
    Built once per run and passed explicitly to every component.

    Accepts the flat camelCase keys of the settings store (``lookbackDays``,
    ``includeStatuses`` ...) as well as the snake_case attribute names.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    lookback_days: int = Field(30, alias="lookbackDays", gt=0)
    include_statuses: Dict[Platform, List[str]] = Field(default_factory=dict, alias="includeStatuses")
    include_modes: List[str] = Field(default_factory=lambda: ["standard", "retrospective"], alias="includeModes")
    exclude_type_substrings: List[str] = Field(default_factory=lambda: ["[TEST]"], alias="excludeTypeSubstrings")
    enable_severity_filtering: bool = Field(False, alias="enableSeverityFiltering")
    incidentio_severities: List[str] = Field(default_factory=list, alias="incidentioSeverities")
    firehydrant_severities: List[str] = Field(default_factory=list, alias="firehydrantSeverities")
    include_internal_impact: bool = Field(False, alias="includeInternalImpact")
    custom_start_date: Optional[date] = Field(None, alias="customStartDate")
    custom_end_date: Optional[date] = Field(None, alias="customEndDate")
    date_range_preset: Optional[str] = Field(None, alias="dateRangePreset")
    email_focus_days: int = Field(7, alias="emailFocusDays", ge=0)
    bucket_boundaries: Tuple[int, int, int] = Field((7, 30, 90), alias="bucketBoundaries")

    @field_validator("include_modes", "exclude_type_substrings",
                     "incidentio_severities", "firehydrant_severities", mode="before")
    @classmethod
    def _lists_from_strings(cls, value: Any) -> Any:
        return _split_list(value)

    @field_validator("include_statuses", mode="before")
    @classmethod
    def _status_lists_from_strings(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {platform: _split_list(statuses) for platform, statuses in value.items()}
        return value

    @field_validator("bucket_boundaries", mode="before")
    @classmethod
    def _boundaries_from_string(cls, value: Any) -> Any:
        if isinstance(value, str):
            return tuple(int(part) for part in _split_list(value))
        return value

    @field_validator("custom_start_date", "custom_end_date", "date_range_preset", mode="before")
    @classmethod
    def _blank_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _check_consistency(self) -> "FilterConfig":
        if (self.custom_start_date is None) != (self.custom_end_date is None):
            raise ValueError("customStartDate and customEndDate must be given together")
        if self.custom_start_date and self.custom_start_date > self.custom_end_date:
            raise ValueError(
                f"customStartDate {self.custom_start_date} is after customEndDate {self.custom_end_date}"
            )
        first, second, third = self.bucket_boundaries
        if not 0 < first < second < third:
            raise ValueError(f"bucketBoundaries must be strictly increasing positive days, got {self.bucket_boundaries}")
        return self

    def severities_for(self, platform: Platform) -> List[str]:
        if platform is Platform.INCIDENT_IO:
            return self.incidentio_severities
        if platform is Platform.FIREHYDRANT:
            return self.firehydrant_severities
        raise ValueError(f"Unsupported platform: {platform!r}")

    @property
    def is_custom_range(self) -> bool:
        return self.custom_start_date is not None or self.date_range_preset in DATE_RANGE_PRESETS

    def resolve_date_range(self, now: datetime) -> Tuple[datetime, datetime]:
        """
        Returns the inclusive (start, end) window for the date-range filter.

        An explicit custom pair wins, then a named preset, then the lookback
        window ending at ``now``. A naive ``now`` is taken to be UTC.
        """
        now = as_utc(now)
        if self.custom_start_date is not None:
            return _day_start(self.custom_start_date), _day_end(self.custom_end_date)

        today = now.date()
        preset = self.date_range_preset
        if preset == "current_month":
            return _day_start(today.replace(day=1)), _day_end(_end_of_month(today.year, today.month))
        if preset == "last_month":
            last_month_end = today.replace(day=1) - timedelta(days=1)
            return _day_start(last_month_end.replace(day=1)), _day_end(last_month_end)
        if preset in ("current_quarter", "last_quarter"):
            quarter_start_month = (today.month - 1) // 3 * 3 + 1
            year = today.year
            if preset == "last_quarter":
                quarter_start_month -= 3
                if quarter_start_month < 1:
                    quarter_start_month += 12
                    year -= 1
            quarter_end_month = quarter_start_month + 2
            return (_day_start(date(year, quarter_start_month, 1)),
                    _day_end(_end_of_month(year, quarter_end_month)))
        if preset == "ytd":
            return _day_start(date(today.year, 1, 1)), now

        return now - timedelta(days=self.lookback_days), now

    def describe_date_range(self, now: datetime) -> str:
        """Short human-readable description used in report headers."""
        if not self.is_custom_range:
            return f"Last {self.lookback_days} days"
        start, end = self.resolve_date_range(now)
        return f"Custom Range: {start:%Y-%m-%d} to {end:%Y-%m-%d}"


class CrossTab(BaseModel):
    """Counts of one dimension (business unit, platform, missing field) against age buckets."""
    counts: Dict[str, Dict[str, int]] = Field(default_factory=dict, description="row -> bucket label -> count")
    row_totals: Dict[str, int] = Field(default_factory=dict)
    percentages: Dict[str, str] = Field(default_factory=dict, description="row -> percentage of grand total, one decimal")


class Aggregation(BaseModel):
    generated_at: datetime
    bucket_labels: List[str]
    available_buckets: Dict[str, bool] = Field(..., description="False where the lookback window cannot reach a bucket")
    grand_total: int = 0
    total_by_bucket: Dict[str, int] = Field(default_factory=dict)
    bucket_percentages: Dict[str, str] = Field(default_factory=dict)
    by_business_unit: CrossTab = Field(default_factory=CrossTab)
    by_platform: CrossTab = Field(default_factory=CrossTab)
    by_missing_field: CrossTab = Field(default_factory=CrossTab)


class BusinessUnitCompletion(BaseModel):
    total: int = 0
    complete: int = 0
    incomplete: int = 0
    completion_percentage: str = "0.0"


class CompletionSummary(BaseModel):
    """Field-completion overview of every incident in a window, flagged or not."""
    start_date: datetime
    end_date: datetime
    total_incidents: int = 0
    complete_incidents: int = 0
    incomplete_incidents: int = 0
    completion_percentage: str = "0.0"
    incompletion_percentage: str = "0.0"
    business_units: Dict[str, BusinessUnitCompletion] = Field(default_factory=dict)
    top_missing_fields: List[Tuple[str, int]] = Field(default_factory=list)


class RunResult(BaseModel):
    """Everything one run of the pipeline hands to the report builder."""
    now: datetime
    start_date: datetime
    end_date: datetime
    date_range_description: str
    fetched_count: int = 0
    dropped_count: int = Field(0, description="Records dropped during normalization (bad timestamp or duplicate)")
    filtered_incidents: List[NormalizedIncident] = Field(default_factory=list)
    classified_incidents: List[ClassifiedIncident] = Field(default_factory=list)
    aggregation: Aggregation
    summary: CompletionSummary
