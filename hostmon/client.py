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
import gzip
from typing import Dict, Optional

import requests
from requests import Response, Session

from hostmon import __version__
from hostmon.config import AgentConfig
from hostmon.exceptions import PublishError
from hostmon.hostmon_types import MetricSnapshot
from hostmon.line_protocol import encode_snapshot
from hostmon.log import get_logger_adapter
from hostmon.utils import get_hostname

logger = get_logger_adapter(__name__)

WRITE_PATH = "api/v2/write"
HEALTH_PATH = "health"


class InfluxDBClient:
    """
    Publishes snapshots to an InfluxDB v2 bucket, one write request per snapshot. No queueing and no retries:
    a failed write raises PublishError and the snapshot is dropped.
    """

    def __init__(self, config: AgentConfig, hostname: Optional[str] = None):
        self._config = config
        self._url = config.influxdb_url
        self._timeout = config.request_timeout
        self._curlify = config.curlify_requests
        self._tags = {
            "host": hostname if hostname is not None else get_hostname(),
            "org": config.influxdb_org,
            "bucket": config.influxdb_bucket,
        }
        self._init_session()

    def _init_session(self) -> None:
        self._session: Session = requests.Session()
        self._session.verify = self._config.verify
        self._session.headers.update(
            {
                "Authorization": f"Token {self._config.influxdb_token}",
                "User-Agent": f"hostmon/{__version__}",
            }
        )

    def encode(self, snapshot: MetricSnapshot) -> str:
        return encode_snapshot(snapshot, self._config.measurement, self._tags)

    def _log_curl(self, resp: Response) -> None:
        import curlify  # type: ignore  # import here as it's not always required.

        if resp.request.body is not None:
            # curlify attempts to decode bytes into utf-8. our content is gzipped so we undo the gzip here
            # (it's fine to edit the object, as the request was already sent).
            assert resp.request.headers["Content-Encoding"] == "gzip"  # make sure it's really gzip before we undo
            assert isinstance(resp.request.body, bytes)
            resp.request.body = gzip.decompress(resp.request.body)
            del resp.request.headers["Content-Encoding"]
        logger.debug("API request", curl_command=curlify.to_curl(resp.request), status_code=resp.status_code)

    def _request(self, method: str, path: str, **kwargs: object) -> Response:
        try:
            resp = self._session.request(method, f"{self._url}/{path}", timeout=self._timeout, **kwargs)
        except requests.Timeout:
            raise PublishError(f"Request to {self._url} timed out after {self._timeout} seconds") from None
        except requests.RequestException as e:
            raise PublishError(f"Request to {self._url} failed: {e}") from e

        if self._curlify:
            self._log_curl(resp)

        if not 200 <= resp.status_code < 300:
            try:
                message = resp.json().get("message", "(no message in response)")
            except (ValueError, AttributeError):
                message = resp.text or resp.reason or "(empty response)"
            raise PublishError(message, status_code=resp.status_code)
        return resp

    def send(self, snapshot: MetricSnapshot) -> None:
        data = self.encode(snapshot).encode("utf-8")
        self._request(
            "POST",
            WRITE_PATH,
            params={"org": self._config.influxdb_org, "bucket": self._config.influxdb_bucket, "precision": "ns"},
            data=gzip.compress(data, mtime=0),
            headers={"Content-Type": "text/plain; charset=utf-8", "Content-Encoding": "gzip"},
        )

    def get_health(self) -> Dict:
        resp = self._request("GET", HEALTH_PATH)
        try:
            return dict(resp.json())
        except (ValueError, TypeError):
            raise PublishError("Health endpoint returned an invalid response", status_code=resp.status_code) from None

    def close(self) -> None:
        self._session.close()
