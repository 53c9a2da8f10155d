from datetime import datetime, timezone
from unittest import mock

import pytest
import requests

from config_manager import PlatformCredentials
from models import BusinessUnit, Platform
from platform_clients import FireHydrantClient, IncidentIOClient, PlatformClient, client_for

START = datetime(2025, 1, 1, tzinfo=timezone.utc)


def fake_session(*payloads):
    session = mock.Mock(spec=requests.Session)
    session.headers = {}
    responses = []
    for payload in payloads:
        response = mock.Mock()
        response.json.return_value = payload
        response.raise_for_status.return_value = None
        responses.append(response)
    session.get.side_effect = responses
    return session


def test_incident_io_follows_cursor():
    session = fake_session(
        {"incidents": [{"id": "a"}, {"id": "b"}], "pagination_meta": {"after": "b", "page_size": 2}},
        {"incidents": [{"id": "c"}], "pagination_meta": {"page_size": 2}},
    )
    credentials = PlatformCredentials(Platform.INCIDENT_IO, "https://api.incident.io/", "secret")
    client = IncidentIOClient(BusinessUnit.SQUARE, credentials, session=session)

    incidents = client.fetch_incidents(START)

    assert [incident["id"] for incident in incidents] == ["a", "b", "c"]
    assert session.headers["Authorization"] == "Bearer secret"
    first_call, second_call = session.get.call_args_list
    assert first_call.args[0] == "https://api.incident.io/v2/incidents"
    assert first_call.kwargs["params"]["created_at[gte]"] == "2025-01-01"
    assert "after" not in first_call.kwargs["params"]
    assert second_call.kwargs["params"]["after"] == "b"


def test_firehydrant_follows_page_numbers():
    session = fake_session(
        {"data": [{"id": "1"}], "pagination": {"page": 1, "next": 2}},
        {"data": [{"id": "2"}], "pagination": {"page": 2, "next": None}},
    )
    credentials = PlatformCredentials(Platform.FIREHYDRANT, "https://api.firehydrant.io", "fh-token")
    client = client_for(BusinessUnit.AFTERPAY, credentials, session=session)

    incidents = client.fetch_incidents(START)

    assert isinstance(client, FireHydrantClient)
    assert [incident["id"] for incident in incidents] == ["1", "2"]
    assert session.headers["Authorization"] == "fh-token"
    assert [call.kwargs["params"]["page"] for call in session.get.call_args_list] == [1, 2]


def test_http_errors_propagate():
    session = fake_session()
    error_response = mock.Mock()
    error_response.raise_for_status.side_effect = requests.HTTPError("401 Unauthorized")
    session.get.side_effect = [error_response]
    credentials = PlatformCredentials(Platform.INCIDENT_IO, "https://api.incident.io", "bad")
    client = IncidentIOClient(BusinessUnit.CASH, credentials, session=session)

    with pytest.raises(requests.HTTPError):
        client.fetch_incidents(START)


def test_connection_test_reports_failure():
    session = fake_session()
    session.get.side_effect = requests.ConnectionError("no route to host")
    credentials = PlatformCredentials(Platform.FIREHYDRANT, "https://api.firehydrant.io", "token")
    client = FireHydrantClient(BusinessUnit.AFTERPAY, credentials, session=session)

    ok, message = client.test_connection()

    assert not ok
    assert "Afterpay" in message and "no route to host" in message


def test_connection_test_reports_success():
    session = fake_session({"incidents": []})
    credentials = PlatformCredentials(Platform.INCIDENT_IO, "https://api.incident.io", "token")

    ok, message = IncidentIOClient(BusinessUnit.SQUARE, credentials, session=session).test_connection()

    assert ok
    assert message == "Square (incident.io): OK"
    assert session.get.call_args.kwargs["params"] == {"page_size": 1}


def test_base_client_cannot_be_instantiated():
    credentials = PlatformCredentials(Platform.INCIDENT_IO, "https://api.incident.io", "secret")

    with pytest.raises(TypeError):
        PlatformClient(BusinessUnit.SQUARE, credentials, session=fake_session())
