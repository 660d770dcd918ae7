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
from typing import Callable, List, Tuple

from hostmon.config import AgentConfig
from hostmon.exceptions import FatalStartupError
from hostmon.log import get_logger_adapter
from hostmon.sources.base import MetricSource
from hostmon.sources.gpu import GpuStats
from hostmon.sources.network import NetworkStats
from hostmon.sources.system import CpuUsage, DiskUsage, MemoryUsage

logger = get_logger_adapter(__name__)


def _create_source(name: str, factory: Callable[[], MetricSource]) -> MetricSource:
    try:
        source = factory()
    except FatalStartupError:
        raise
    except Exception as e:
        raise FatalStartupError(f"Couldn't create the {name} metric source: {e}") from e
    logger.debug(f"Initialized {source!r}", fields=source.FIELDS)
    return source


def get_sources(config: AgentConfig) -> Tuple[List[MetricSource], Tuple[str, ...]]:
    """
    Creates the metric sources enabled by the configuration.

    :returns: the sources, and the fields of disabled sources (always reported with the sentinel value).
    """
    factories: List[Tuple[str, Callable[[], MetricSource]]] = [
        ("cpu", CpuUsage),
        ("memory", MemoryUsage),
        ("disk", lambda: DiskUsage(config.disk_path)),
        ("network", lambda: NetworkStats(config.command_timeout)),
    ]
    excluded_fields: Tuple[str, ...] = ()
    if config.exclude_gpu:
        logger.info("GPU metrics are excluded, reporting them as -1")
        excluded_fields = GpuStats.FIELDS
    else:
        factories.append(("gpu", lambda: GpuStats(config.command_timeout)))

    return [_create_source(name, factory) for name, factory in factories], excluded_fields
