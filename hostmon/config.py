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
from dataclasses import asdict, dataclass
from typing import Any, Dict

import configargparse

from hostmon.platform import default_disk_path

DEFAULT_MEASUREMENT = "system_metrics"
DEFAULT_REQUEST_TIMEOUT = 5
DEFAULT_COMMAND_TIMEOUT = 5


@dataclass(frozen=True)
class AgentConfig:
    """
    Everything the sampling loop needs, fixed at startup.
    """

    interval: int
    influxdb_url: str
    influxdb_token: str
    influxdb_org: str
    influxdb_bucket: str
    exclude_gpu: bool = False
    disk_path: str = default_disk_path()
    measurement: str = DEFAULT_MEASUREMENT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT
    verify: bool = True
    curlify_requests: bool = False

    def __post_init__(self) -> None:
        if self.interval <= 0:
            raise ValueError(f"interval must be positive, got {self.interval!r}")
        if not self.influxdb_url.startswith(("http://", "https://")):
            raise ValueError(f"InfluxDB URL must be http(s), got {self.influxdb_url!r}")
        for name in ("influxdb_token", "influxdb_org", "influxdb_bucket", "measurement"):
            if not getattr(self, name).strip():
                raise ValueError(f"{name} must not be empty")
        for name in ("request_timeout", "command_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)!r}")
        # the write path is appended to it
        object.__setattr__(self, "influxdb_url", self.influxdb_url.rstrip("/"))

    @classmethod
    def from_args(cls, args: configargparse.Namespace) -> "AgentConfig":
        return cls(
            interval=args.interval,
            influxdb_url=args.influxdb_url,
            influxdb_token=args.influxdb_token,
            influxdb_org=args.influxdb_org,
            influxdb_bucket=args.influxdb_bucket,
            exclude_gpu=args.exclude_gpu,
            disk_path=args.disk_path,
            measurement=args.measurement,
            request_timeout=args.request_timeout,
            command_timeout=args.command_timeout,
            verify=args.verify,
            curlify_requests=args.curlify_requests,
        )

    def redacted(self) -> Dict[str, Any]:
        """
        For logging: the token is replaced.
        """
        return {**asdict(self), "influxdb_token": "<redacted>"}
