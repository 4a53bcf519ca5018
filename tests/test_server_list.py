# tests/test_server_list.py
import json
from unittest import mock

import pytest
import requests

from mindustry_probe.errors import ServerListError
from mindustry_probe.targets import Target
from mindustry_probe.transport import (
    RetryPolicy,
    ServerListClient,
    default_retry_policy,
    no_retry_policy,
)


SERVERS = [{"name": "Alpha", "address": ["a.test", "a.test:7000"]}]


def _response(status=200, data=None):
    response = mock.MagicMock()
    response.status_code = status
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"HTTP {status}")
    if data is None:
        response.json.side_effect = ValueError("Expecting value")
    else:
        response.json.return_value = data
    return response


def _client(*responses, mirrors=("https://one.test/s.json", "https://two.test/s.json"),
            policy=None):
    session = mock.MagicMock()
    session.get.side_effect = list(responses)
    client = ServerListClient(mirrors, retry_policy=policy or no_retry_policy(), session=session)
    return client, session


def test_fetch_from_first_mirror():
    client, session = _client(_response(data=SERVERS))
    assert client.fetch() == SERVERS
    session.get.assert_called_once_with("https://one.test/s.json", timeout=10.0)


def test_falls_back_on_client_error():
    client, session = _client(_response(404), _response(data=SERVERS))
    assert client.fetch() == SERVERS
    assert [c.args[0] for c in session.get.call_args_list] == [
        "https://one.test/s.json",
        "https://two.test/s.json",
    ]


def test_falls_back_on_invalid_json():
    client, _ = _client(_response(200, data=None), _response(data=SERVERS))
    assert client.fetch() == SERVERS


def test_retries_server_errors_before_falling_back():
    policy = RetryPolicy(max_retries=2, initial_delay=0, max_delay=0)
    client, session = _client(_response(503), _response(502), _response(data=SERVERS),
                              policy=policy)
    with mock.patch("mindustry_probe.transport.server_list.time.sleep") as sleep:
        assert client.fetch() == SERVERS
    assert session.get.call_count == 3
    assert sleep.call_count == 2


def test_all_mirrors_failing_raises():
    client, _ = _client(requests.ConnectionError("down"), requests.Timeout("slow"))
    with pytest.raises(ServerListError) as exc:
        client.fetch()
    assert len(exc.value.errors) == 2


def test_fetch_targets():
    client, _ = _client(_response(data=SERVERS))
    assert client.fetch_targets() == [Target("a.test", 6567, "Alpha"), Target("a.test", 7000, "Alpha")]


def test_fetch_targets_malformed():
    client, _ = _client(_response(data={"not": "a list"}))
    with pytest.raises(ServerListError, match="Malformed"):
        client.fetch_targets()


def test_download(tmp_path):
    client, _ = _client(_response(data=SERVERS))
    path = client.download(tmp_path / "lists" / "servers_v7.json")
    assert json.loads(path.read_text(encoding="utf-8")) == SERVERS


def test_requires_mirror():
    with pytest.raises(ValueError):
        ServerListClient([])


def test_retry_delay_backoff():
    policy = default_retry_policy()
    assert [policy.get_delay(i) for i in range(3)] == [1.0, 2.0, 4.0]
    assert RetryPolicy(initial_delay=10, max_delay=15).get_delay(3) == 15


def test_should_retry():
    policy = RetryPolicy(max_retries=1)
    assert policy.should_retry(503, 0)
    assert not policy.should_retry(503, 1)
    assert not policy.should_retry(404, 0)
