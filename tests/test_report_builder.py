import csv
from datetime import timedelta

import pytest

from aggregation import summarize_completion
from incident_pipeline import MissingFieldsPipeline
from models import BusinessUnit, FilterConfig
from report_builder import NUMBER_CELL, REPORT_COLUMNS, ReportBuilder
from tests.factories import days_ago, firehydrant_payload, incident_io_payload


@pytest.fixture()
def config():
    return FilterConfig.model_validate({
        "lookbackDays": 30,
        "includeStatuses": {"incident.io": ["Stabilized"], "FireHydrant": ["Closed"]},
        "emailFocusDays": 7,
    })


@pytest.fixture()
def result(required_fields, field_aliases, config, now):
    batches = {
        BusinessUnit.SQUARE: [
            incident_io_payload(reference="INC-1", created_at=days_ago(2), custom_fields={"Causal Type": "Bug"}),
        ],
        BusinessUnit.AFTERPAY: [
            firehydrant_payload(number=7, created_at=days_ago(20), custom_fields={}, severity="SEV2"),
        ],
    }
    return MissingFieldsPipeline(required_fields, field_aliases).run(batches, config, now)


def test_report_rows(result, config):
    rows = ReportBuilder(config).report_rows(result)

    assert rows[0][:3] == ["INC-1", "Square", "incident.io"]
    assert rows[0][6:] == ["2", "0-7 days", "Affected Markets, Stabilization Type, Transcript URL"]
    assert rows[1] == ["FH-7", "Afterpay", "FireHydrant", "Closed", "SEV2",
                       rows[1][5], "20", "7-30 days", "Market"]


def test_write_csv(result, config, tmp_path):
    path = ReportBuilder(config).write_csv(result, str(tmp_path / "reports"))

    with open(path, newline="", encoding="utf-8") as handle:
        rows = list(csv.reader(handle))
    assert rows[0] == REPORT_COLUMNS
    assert [row[0] for row in rows[1:]] == ["INC-1", "FH-7"]
    assert path.endswith("missing_fields_20250131_120000.csv")


def test_daily_email_lists_focus_incidents_only(result, config):
    subject, body = ReportBuilder(config, "TestReporter").build_daily_email(result)

    assert "2 incident(s) need attention" in subject
    assert "Last 30 days" in subject
    assert "<td style=\"padding: 6px; border: 1px solid #ddd;\">INC-1</td>" in body
    assert ">FH-7<" not in body
    assert "1 older incident(s)" in body
    assert "n/a" in body  # 90+ days is out of reach of a 30-day lookback
    assert "TestReporter" in body


def test_daily_email_reports_dropped_incidents(result, config):
    _, body = ReportBuilder(config).build_daily_email(result.model_copy(update={"dropped_count": 3}))

    assert "3 fetched incident(s) could not be read" in body


def test_weekly_email(result, config):
    subject, body = ReportBuilder(config).build_weekly_email(result.summary, ["Causal Type", "Market"])

    assert subject == "Weekly Incident Summary - 2025-01-01 to 2025-01-31"
    assert "<li>Market</li>" in body
    assert "Afterpay" in body
    assert "All incidents have complete fields!" not in body


def test_weekly_email_with_nothing_missing(config, now):
    summary = summarize_completion([], [], now - timedelta(days=7), now)
    _, body = ReportBuilder(config).build_weekly_email(summary, ["Market"])

    assert "All incidents have complete fields!" in body


def test_custom_range_shows_counts_outside_lookback_buckets(required_fields, field_aliases, now):
    config = FilterConfig.model_validate({
        "lookbackDays": 30,
        "includeStatuses": {"FireHydrant": ["Closed"]},
        "customStartDate": "2024-06-01",
        "customEndDate": "2025-01-31",
    })
    batches = {BusinessUnit.AFTERPAY: [firehydrant_payload(number=9, created_at=days_ago(120), custom_fields={})]}
    result = MissingFieldsPipeline(required_fields, field_aliases).run(batches, config, now)

    _, body = ReportBuilder(config).build_daily_email(result)

    assert result.aggregation.available_buckets["90+ days"] is False
    zero, one = f"<td {NUMBER_CELL}>0</td>", f"<td {NUMBER_CELL}>1</td>"
    assert f"<strong>Afterpay</strong></td>{zero * 3}{one}{one}" in body
    assert "n/a" not in body
