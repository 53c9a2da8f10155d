# field_resolver.py

from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union
import logging

from models import NormalizedIncident, Platform

logger = logging.getLogger(__name__)

# platform -> logical field name -> ordered aliases to probe
FieldAliasMap = Dict[Platform, Dict[str, List[str]]]

IMPACT_START_FIELDS: FrozenSet[str] = frozenset({"Impact Start", "Impact Start Date"})
STABILIZED_AT_FIELDS: FrozenSet[str] = frozenset({"Stabilized At", "Time to Stabilize"})

# Timestamp names are compared case-insensitively, so "Impact Started" and
# "Impact started" both match.
IMPACT_START_TIMESTAMP_NAMES: FrozenSet[str] = frozenset({"impact started", "impact start", "started"})
STABILIZED_TIMESTAMP_NAMES: FrozenSet[str] = frozenset({"stabilized", "stabilized at", "mitigated"})


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        for key in ("value", "name", "label", "url"):
            if key in value:
                return _as_text(value[key])
        return ""
    return str(value)


def _first_non_blank(values: Iterable[str]) -> str:
    for value in values:
        if value and value.strip():
            return value.strip()
    return ""


class OrderedFieldStore:
    """
    incident.io custom fields: an ordered list of (field name, values) entries.
    The same name may appear more than once; entries are probed in payload order.
    """

    def __init__(self, entries: List[Tuple[str, List[str]]]):
        self.entries = entries

    @classmethod
    def from_payload(cls, raw_payload: Dict[str, Any]) -> "OrderedFieldStore":
        entries = []
        for entry in raw_payload.get("custom_field_entries") or []:
            name = _as_text((entry.get("custom_field") or {}).get("name"))
            values = [cls._entry_value(value) for value in entry.get("values") or []]
            entries.append((name, values))
        return cls(entries)

    @staticmethod
    def _entry_value(value: Dict[str, Any]) -> str:
        # incident.io tags each value with its kind.
        if value.get("value_text"):
            return str(value["value_text"])
        if value.get("value_link"):
            return str(value["value_link"])
        if value.get("value_numeric") not in (None, ""):
            return str(value["value_numeric"])
        if value.get("value_option"):
            return _as_text(value["value_option"])
        if value.get("value_catalog_entry"):
            return _as_text(value["value_catalog_entry"])
        if value.get("value_timestamp"):
            return str(value["value_timestamp"])
        return ""

    def values_for(self, name: str) -> List[str]:
        values: List[str] = []
        for entry_name, entry_values in self.entries:
            if entry_name.strip() == name:
                values.extend(entry_values)
        return values


class KeyedFieldStore:
    """FireHydrant custom fields: a map from field key to value(s)."""

    def __init__(self, fields: Dict[str, List[str]]):
        self.fields = fields

    @classmethod
    def from_payload(cls, raw_payload: Dict[str, Any]) -> "KeyedFieldStore":
        raw_fields = raw_payload.get("custom_fields") or {}
        fields: Dict[str, List[str]] = {}
        if isinstance(raw_fields, dict):
            for key, value in raw_fields.items():
                fields.setdefault(str(key), []).extend(cls._values(value))
        else:
            # List form: [{"name": "Market", "slug": "market", "value_string": "US"}, ...]
            for entry in raw_fields:
                values = cls._values(
                    entry.get("value") if "value" in entry
                    else entry.get("value_string", entry.get("value_array"))
                )
                for key in (entry.get("slug"), entry.get("name")):
                    if key:
                        fields.setdefault(str(key), []).extend(values)
        return cls(fields)

    @staticmethod
    def _values(value: Any) -> List[str]:
        if isinstance(value, list):
            return [_as_text(item) for item in value]
        return [_as_text(value)]

    def values_for(self, name: str) -> List[str]:
        return self.fields.get(name, [])


FieldStore = Union[OrderedFieldStore, KeyedFieldStore]


def custom_field_store(incident: NormalizedIncident) -> FieldStore:
    if incident.platform is Platform.INCIDENT_IO:
        return OrderedFieldStore.from_payload(incident.raw_payload)
    if incident.platform is Platform.FIREHYDRANT:
        return KeyedFieldStore.from_payload(incident.raw_payload)
    raise ValueError(f"Unsupported platform: {incident.platform!r}")


def derived_alias(platform: Platform, logical_field_name: str) -> str:
    """The single alias tried when a logical field has no configured aliases."""
    if platform is Platform.FIREHYDRANT:
        return logical_field_name.strip().lower().replace(" ", "_")
    if platform is Platform.INCIDENT_IO:
        return logical_field_name
    raise ValueError(f"Unsupported platform: {platform!r}")


class FieldResolver:
    """
    Looks up whether a required field is populated on an incident, trying
    each known alias for the incident's platform in order.
    """

    def __init__(self, alias_map: Optional[FieldAliasMap] = None):
        self.alias_map: FieldAliasMap = alias_map or {}

    def aliases_for(self, platform: Platform, logical_field_name: str) -> List[str]:
        aliases = self.alias_map.get(platform, {}).get(logical_field_name)
        if aliases:
            return list(aliases)
        # Unknown names are not an error; they fall back to a best-guess alias.
        fallback = derived_alias(platform, logical_field_name)
        logger.debug(f"No aliases configured for '{logical_field_name}' on {platform.value}; trying '{fallback}'.")
        return [fallback]

    def resolve_field(self, incident: NormalizedIncident, logical_field_name: str) -> str:
        """
        Returns the trimmed value of a logical field, or '' if no alias yields a non-blank value.

        "Impact Start" and "Stabilized At" are read from the incident's timestamp
        collection instead of custom fields. Impact Start falls back to when the
        incident occurred (or was created); Stabilized At has no fallback.
        """
        if logical_field_name in IMPACT_START_FIELDS:
            return self._impact_start(incident)
        if logical_field_name in STABILIZED_AT_FIELDS:
            return self._timestamp_named(incident, STABILIZED_TIMESTAMP_NAMES)

        store = custom_field_store(incident)
        for alias in self.aliases_for(incident.platform, logical_field_name):
            value = _first_non_blank(store.values_for(alias))
            if value:
                return value
        return ""

    def has_field(self, incident: NormalizedIncident, logical_field_name: str) -> bool:
        return bool(self.resolve_field(incident, logical_field_name))

    def _impact_start(self, incident: NormalizedIncident) -> str:
        value = self._timestamp_named(incident, IMPACT_START_TIMESTAMP_NAMES)
        if value:
            return value
        occurred = incident.raw_payload.get("occurred_at") or incident.raw_payload.get("started_at")
        if occurred and str(occurred).strip():
            return str(occurred).strip()
        return incident.created_at.isoformat()

    def _timestamp_named(self, incident: NormalizedIncident, names: FrozenSet[str]) -> str:
        for name, value in self._timestamps(incident):
            if name.strip().lower() in names and value.strip():
                return value.strip()
        return ""

    @staticmethod
    def _timestamps(incident: NormalizedIncident) -> List[Tuple[str, str]]:
        raw = incident.raw_payload
        if incident.platform is Platform.INCIDENT_IO:
            return [
                (_as_text((entry.get("incident_timestamp") or {}).get("name")), _as_text(entry.get("value")))
                for entry in raw.get("incident_timestamp_values") or []
            ]
        if incident.platform is Platform.FIREHYDRANT:
            return [
                (_as_text(entry.get("name") or entry.get("type")), _as_text(entry.get("occurred_at")))
                for entry in raw.get("milestones") or []
            ]
        raise ValueError(f"Unsupported platform: {incident.platform!r}")
