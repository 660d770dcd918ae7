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
import time
from typing import Callable, Optional

from pytest import fixture

from hostmon.config import AgentConfig
from hostmon.hostmon_types import MetricValues
from hostmon.sources.base import MetricSource
from tests import HERE


class StaticSource(MetricSource):
    """
    A source returning fixed values, or raising `error` when given.
    """

    def __init__(self, name: str, values: MetricValues, error: Optional[Exception] = None, delay: float = 0):
        self.name = name
        self.FIELDS = tuple(values)
        self._values = values
        self._error = error
        self._delay = delay
        self.calls = 0

    def sample(self) -> MetricValues:
        self.calls += 1
        if self._delay:
            time.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return dict(self._values)


@fixture
def static_source() -> Callable[..., StaticSource]:
    return StaticSource


@fixture
def agent_config() -> AgentConfig:
    return AgentConfig(
        interval=5,
        influxdb_url="http://influxdb:8086/",
        influxdb_token="s3cr3t",
        influxdb_org="acme",
        influxdb_bucket="hosts",
        exclude_gpu=True,
        # exists wherever the tests run
        disk_path=str(HERE),
    )
