import pytest

from field_resolver import FieldResolver
from models import FilterConfig, Platform
from tests.factories import NOW

REQUIRED_FIELDS = {
    Platform.INCIDENT_IO: ["Affected Markets", "Causal Type", "Stabilization Type", "Impact Start", "Transcript URL"],
    Platform.FIREHYDRANT: ["Market"],
}

FIELD_ALIASES = {
    Platform.INCIDENT_IO: {
        "Affected Markets": ["Affected Markets", "Markets"],
        "Causal Type": ["Causal Type", "Root Cause Type"],
    },
    Platform.FIREHYDRANT: {
        "Market": ["market", "markets"],
    },
}


@pytest.fixture()
def now():
    return NOW


@pytest.fixture()
def required_fields():
    return {platform: list(fields) for platform, fields in REQUIRED_FIELDS.items()}


@pytest.fixture()
def field_aliases():
    return {platform: dict(aliases) for platform, aliases in FIELD_ALIASES.items()}


@pytest.fixture()
def resolver(field_aliases):
    return FieldResolver(field_aliases)


@pytest.fixture()
def filter_config():
    return FilterConfig.model_validate({
        "lookbackDays": 90,
        "includeStatuses": {"incident.io": ["Stabilized", "Closed"], "FireHydrant": ["Closed"]},
        "includeModes": ["standard", "retrospective"],
        "excludeTypeSubstrings": ["[TEST]"],
        "incidentioSeverities": ["SEV1", "SEV2"],
        "firehydrantSeverities": ["SEV1"],
    })
