from unittest import mock

import pytest

import agent as agent_module
from agent import MissingFieldsAgent, parse_args
from config_manager import API_KEY_ENV_VARS, ConfigurationError
from models import BusinessUnit
from tests.factories import NOW, days_ago, firehydrant_payload, incident_io_payload

CONFIG_INI = """
[General]
AgentName = TestReporter
ReportDirectory = {report_dir}

[Filters]
LookbackDays = 30
IncidentIOStatuses = Stabilized
FireHydrantStatuses = Closed

[RequiredFields]
IncidentIO = Causal Type
FireHydrant = Market

[Email]
Recipients = quality@company.com
"""

RAW_INCIDENTS = {
    BusinessUnit.SQUARE: [incident_io_payload(reference="INC-1", custom_fields={}, created_at=days_ago(2))],
    BusinessUnit.CASH: [incident_io_payload(reference="INC-2", created_at=days_ago(12))],
    BusinessUnit.AFTERPAY: [firehydrant_payload(number=3, custom_fields={}, created_at=days_ago(20))],
}


@pytest.fixture()
def config_path(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text(CONFIG_INI.format(report_dir=tmp_path / "reports"))
    return str(path)


@pytest.fixture()
def with_keys(monkeypatch):
    for name in API_KEY_ENV_VARS.values():
        monkeypatch.setenv(name, "key")


def make_agent(config_path, tmp_path):
    return MissingFieldsAgent(config_path, env_file_path=str(tmp_path / ".env"), clock=lambda: NOW)


def fake_client_for(unit, credentials, session=None):
    client = mock.Mock()
    client.fetch_incidents.return_value = RAW_INCIDENTS[unit]
    client.test_connection.return_value = (True, f"{unit.value}: OK")
    return client


def test_missing_fields_check_writes_and_emails_report(config_path, tmp_path, with_keys):
    agent = make_agent(config_path, tmp_path)

    with mock.patch.object(agent_module, "client_for", side_effect=fake_client_for), \
            mock.patch.object(agent.email_handler, "send_report", return_value=True) as send_report:
        result = agent.run_missing_fields_check()

    assert [item.reference for item in result.classified_incidents] == ["INC-1", "FH-3"]
    subject, body = send_report.call_args.args
    attachment = send_report.call_args.kwargs["attachment_path"]
    assert "2 incident(s)" in subject
    assert attachment.startswith(str(tmp_path / "reports"))
    assert "INC-1" in body


def test_weekly_summary_forces_seven_day_window(config_path, tmp_path, with_keys):
    agent = make_agent(config_path, tmp_path)

    with mock.patch.object(agent_module, "client_for", side_effect=fake_client_for), \
            mock.patch.object(agent.email_handler, "send_report", return_value=True) as send_report:
        result = agent.run_weekly_summary()

    assert result.summary.total_incidents == 1
    subject, _ = send_report.call_args.args
    assert subject == "Weekly Incident Summary - 2025-01-24 to 2025-01-31"


def test_missing_credentials_abort_before_fetching(config_path, tmp_path, monkeypatch):
    for name in API_KEY_ENV_VARS.values():
        monkeypatch.delenv(name, raising=False)
    agent = make_agent(config_path, tmp_path)

    with mock.patch.object(agent_module, "client_for") as client_for:
        with pytest.raises(ConfigurationError):
            agent.run_missing_fields_check()
    client_for.assert_not_called()


def test_scheduled_job_failures_are_logged(config_path, tmp_path, with_keys, caplog):
    agent = make_agent(config_path, tmp_path)

    agent._run_job(mock.Mock(side_effect=RuntimeError("platform down")))

    assert "Run failed, no report sent: platform down" in caplog.text


def test_test_connections(config_path, tmp_path, with_keys):
    agent = make_agent(config_path, tmp_path)

    with mock.patch.object(agent_module, "client_for", side_effect=fake_client_for):
        results = agent.test_connections()

    assert [ok for ok, _ in results] == [True, True, True]


def test_parse_args_requires_both_dates():
    args = parse_args(["--once", "--start-date", "2025-01-01", "--end-date", "2025-01-31"])
    assert args.once and args.start_date == "2025-01-01"

    with pytest.raises(SystemExit):
        parse_args(["--start-date", "2025-01-01"])
