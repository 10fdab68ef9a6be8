from datetime import timedelta, timezone
from unittest.mock import MagicMock

import pytest
import requests

from conftest import make_entry
from focus_tracker.transport import HttpTransport, OfflineTransport, build_transport


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def http(session):
    return HttpTransport(
        "https://collector.test/api/entries",
        device_id="laptop-01",
        reachability_url="http://probe.test/",
        tz=timezone.utc,
        session=session,
    )


@pytest.mark.parametrize(
    "status, expected",
    [(200, True), (204, True), (301, True), (302, True), (404, False), (503, False)],
)
def test_reachability_status_codes(http, session, status, expected):
    session.head.return_value = MagicMock(status_code=status)
    assert http.is_reachable(timedelta(seconds=5)) is expected
    session.head.assert_called_once_with(
        "http://probe.test/", timeout=5.0, allow_redirects=False
    )


def test_reachability_timeout_means_unreachable(http, session):
    session.head.side_effect = requests.exceptions.ConnectTimeout("timed out")
    assert http.is_reachable(timedelta(seconds=5)) is False


def test_upload_posts_records(http, session):
    session.post.return_value = MagicMock(status_code=201)
    assert http.upload([make_entry()]) is True

    _, kwargs = session.post.call_args
    payload = kwargs["json"]
    assert payload["source_id"] == "laptop-01"
    assert payload["entries"] == [
        {
            "appTitle": "Editor",
            "appName": "code",
            "startTime": "2024-03-01 09:00:00 UTC",
            "endTime": "2024-03-01 09:00:10 UTC",
            "durationSeconds": 10,
        }
    ]
    assert kwargs["timeout"] == 30.0


def test_upload_rejected_by_server(http, session):
    response = MagicMock(status_code=500, text="boom")
    response.raise_for_status.side_effect = requests.exceptions.HTTPError(response=response)
    session.post.return_value = response
    assert http.upload([make_entry()]) is False


def test_upload_connection_error(http, session):
    session.post.side_effect = requests.exceptions.ConnectionError("refused")
    assert http.upload([make_entry()]) is False


def test_offline_transport_and_factory():
    offline = build_transport(None, device_id="x")
    assert isinstance(offline, OfflineTransport)
    assert offline.is_reachable(timedelta(seconds=1)) is False
    assert offline.upload([make_entry()]) is False
    assert isinstance(build_transport("https://c.test", device_id="x"), HttpTransport)
