from field_resolver import FieldResolver, KeyedFieldStore, OrderedFieldStore, derived_alias
from models import BusinessUnit, Platform
from tests.factories import firehydrant_payload, incident_io_payload, normalized


def test_later_alias_used_when_earlier_alias_is_blank(resolver):
    incident = normalized(incident_io_payload(custom_fields={"Causal Type": "   ", "Root Cause Type": "Config change"}))

    assert resolver.resolve_field(incident, "Causal Type") == "Config change"


def test_first_non_blank_alias_wins(resolver):
    incident = normalized(incident_io_payload(custom_fields={"Affected Markets": "US", "Markets": "AU"}))

    assert resolver.resolve_field(incident, "Affected Markets") == "US"


def test_first_non_blank_value_of_multi_value_field(resolver):
    incident = normalized(incident_io_payload(custom_fields={"Affected Markets": ["", " ", "CA", "US"]}))

    assert resolver.resolve_field(incident, "Affected Markets") == "CA"


def test_missing_field_resolves_to_empty_string(resolver):
    incident = normalized(incident_io_payload(custom_fields={}))

    assert resolver.resolve_field(incident, "Causal Type") == ""
    assert not resolver.has_field(incident, "Causal Type")


def test_incident_io_option_and_link_values():
    payload = incident_io_payload(custom_fields={})
    payload["custom_field_entries"] = [
        {"custom_field": {"name": "Stabilization Type"}, "values": [{"value_option": {"id": "o1", "value": "Rollback"}}]},
        {"custom_field": {"name": "Transcript URL"}, "values": [{"value_link": "https://example.com/t"}]},
        {"custom_field": {"name": "Service"}, "values": [{"value_catalog_entry": {"id": "c1", "name": "Ledger"}}]},
    ]
    incident = normalized(payload)
    resolver = FieldResolver()

    assert resolver.resolve_field(incident, "Stabilization Type") == "Rollback"
    assert resolver.resolve_field(incident, "Transcript URL") == "https://example.com/t"
    assert resolver.resolve_field(incident, "Service") == "Ledger"


def test_unknown_field_uses_derived_alias_for_firehydrant(resolver):
    incident = normalized(firehydrant_payload(custom_fields={"customer_impact": "Yes"}), BusinessUnit.AFTERPAY)

    assert resolver.resolve_field(incident, "Customer Impact") == "Yes"
    assert resolver.resolve_field(incident, "Never Heard Of") == ""


def test_derived_alias_per_platform():
    assert derived_alias(Platform.FIREHYDRANT, "Affected Markets") == "affected_markets"
    assert derived_alias(Platform.INCIDENT_IO, "Affected Markets") == "Affected Markets"


def test_firehydrant_list_custom_fields_are_keyed_by_slug_and_name():
    store = KeyedFieldStore.from_payload({"custom_fields": [
        {"name": "Market", "slug": "market", "value_string": "NZ"},
        {"name": "Regions", "slug": "regions", "value_array": ["", "AU"]},
    ]})

    assert store.values_for("market") == ["NZ"]
    assert store.values_for("Market") == ["NZ"]
    assert store.values_for("regions") == ["", "AU"]


def test_firehydrant_alias_precedence(resolver):
    incident = normalized(firehydrant_payload(custom_fields={"market": "", "markets": ["AU", "NZ"]}),
                          BusinessUnit.AFTERPAY)

    assert resolver.resolve_field(incident, "Market") == "AU"


def test_ordered_store_keeps_repeated_entries():
    store = OrderedFieldStore([("Markets", [""]), ("Other", ["x"]), ("Markets", ["US"])])

    assert store.values_for("Markets") == ["", "US"]


def test_impact_start_read_from_timestamps_in_either_case(resolver):
    upper = normalized(incident_io_payload(timestamps={"Impact Started": "2025-01-20T10:00:00Z"}))
    lower = normalized(incident_io_payload(timestamps={"impact started": "2025-01-21T10:00:00Z"}))

    assert resolver.resolve_field(upper, "Impact Start") == "2025-01-20T10:00:00Z"
    assert resolver.resolve_field(lower, "Impact Start Date") == "2025-01-21T10:00:00Z"


def test_impact_start_falls_back_to_occurred_at_then_created_at(resolver):
    with_occurred = normalized(incident_io_payload(occurred_at="2025-01-19T08:00:00Z"))
    without = normalized(incident_io_payload(created_at="2025-01-25T08:00:00+00:00"))

    assert resolver.resolve_field(with_occurred, "Impact Start") == "2025-01-19T08:00:00Z"
    assert resolver.resolve_field(without, "Impact Start") == "2025-01-25T08:00:00+00:00"


def test_stabilized_at_has_no_fallback(resolver):
    missing = normalized(incident_io_payload(occurred_at="2025-01-19T08:00:00Z"))
    present = normalized(incident_io_payload(timestamps={"Stabilized": "2025-01-22T11:00:00Z"}))
    blank = normalized(incident_io_payload(timestamps={"Stabilized": "  "}))

    assert resolver.resolve_field(missing, "Stabilized At") == ""
    assert resolver.resolve_field(present, "Stabilized At") == "2025-01-22T11:00:00Z"
    assert resolver.resolve_field(blank, "Stabilized At") == ""


def test_firehydrant_milestones_supply_timestamps(resolver):
    payload = firehydrant_payload(milestones=[
        {"type": "started", "occurred_at": "2025-01-10T00:00:00Z"},
        {"type": "mitigated", "occurred_at": "2025-01-10T02:00:00Z"},
    ])
    incident = normalized(payload, BusinessUnit.AFTERPAY)

    assert resolver.resolve_field(incident, "Impact Start") == "2025-01-10T00:00:00Z"
    assert resolver.resolve_field(incident, "Stabilized At") == "2025-01-10T02:00:00Z"
