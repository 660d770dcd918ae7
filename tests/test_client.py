#
# Copyright (C) 2023 Intel Corporation
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
import dataclasses
import gzip
from typing import Any
from unittest.mock import Mock, patch

import pytest
import requests

from hostmon.client import InfluxDBClient
from hostmon.config import AgentConfig
from hostmon.exceptions import PublishError
from hostmon.hostmon_types import MetricSnapshot

SNAPSHOT = MetricSnapshot(1700000000000000000, {"cpu_usage": 12.5, "gpu_power": -1})


def response(status_code: int, json_data: Any = None, text: str = "") -> Mock:
    resp = Mock(status_code=status_code, text=text, reason="")
    if json_data is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = json_data
    return resp


@pytest.fixture
def client(agent_config: AgentConfig) -> InfluxDBClient:
    return InfluxDBClient(agent_config, hostname="web-1")


def test_send(client: InfluxDBClient) -> None:
    with patch.object(client._session, "request", return_value=response(204)) as request:
        client.send(SNAPSHOT)

    request.assert_called_once()
    (method, url), kwargs = request.call_args
    assert method == "POST"
    assert url == "http://influxdb:8086/api/v2/write"
    assert kwargs["params"] == {"org": "acme", "bucket": "hosts", "precision": "ns"}
    assert kwargs["timeout"] == 5
    assert kwargs["headers"]["Content-Encoding"] == "gzip"
    assert gzip.decompress(kwargs["data"]).decode() == (
        "system_metrics,bucket=hosts,host=web-1,org=acme cpu_usage=12.5,gpu_power=-1 1700000000000000000"
    )


def test_session_auth_headers(client: InfluxDBClient) -> None:
    assert client._session.headers["Authorization"] == "Token s3cr3t"
    assert client._session.verify is True


def test_custom_measurement(agent_config: AgentConfig) -> None:
    client = InfluxDBClient(dataclasses.replace(agent_config, measurement="host stats"), hostname="h")
    assert client.encode(SNAPSHOT).startswith("host\\ stats,bucket=hosts,host=h,org=acme ")


def test_send_http_error(client: InfluxDBClient) -> None:
    resp = response(401, {"code": "unauthorized", "message": "unauthorized access"})
    with patch.object(client._session, "request", return_value=resp):
        with pytest.raises(PublishError) as excinfo:
            client.send(SNAPSHOT)
    assert excinfo.value.status_code == 401
    assert str(excinfo.value) == "HTTP 401: unauthorized access"


def test_send_server_error_without_json(client: InfluxDBClient) -> None:
    with patch.object(client._session, "request", return_value=response(503, text="Service Unavailable")):
        with pytest.raises(PublishError) as excinfo:
            client.send(SNAPSHOT)
    assert excinfo.value.status_code == 503
    assert excinfo.value.message == "Service Unavailable"


@pytest.mark.parametrize(
    "error", [requests.ConnectionError("connection refused"), requests.Timeout("read timed out")]
)
def test_send_transport_error(client: InfluxDBClient, error: Exception) -> None:
    with patch.object(client._session, "request", side_effect=error):
        with pytest.raises(PublishError) as excinfo:
            client.send(SNAPSHOT)
    assert excinfo.value.status_code is None


def test_get_health(client: InfluxDBClient) -> None:
    health = {"name": "influxdb", "status": "pass"}
    with patch.object(client._session, "request", return_value=response(200, health)) as request:
        assert client.get_health() == health
    assert request.call_args[0] == ("GET", "http://influxdb:8086/health")
