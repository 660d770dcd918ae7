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
import os
import time
from threading import Lock
from typing import Optional, Tuple

import psutil

from hostmon.exceptions import FatalStartupError, SourceUnavailable
from hostmon.hostmon_types import MetricValues
from hostmon.sources.base import MetricSource

BYTES_PER_MB = 1 << 20


class CpuUsage(MetricSource):
    name = "cpu"
    FIELDS = ("cpu_usage",)

    def __init__(self) -> None:
        self._cpu_count = psutil.cpu_count() or 1
        self._last_cpu_poll_time: Optional[float] = None
        self._last_cpu_times: Optional[Tuple[float, float]] = None
        self._lock = Lock()

    def sample(self) -> MetricValues:
        try:
            with self._lock:
                return {"cpu_usage": self._get_cpu_utilization()}
        except (psutil.Error, OSError) as e:
            with self._lock:
                self._last_cpu_times = None
            raise SourceUnavailable(f"failed reading CPU times: {e}") from e

    def _get_cpu_utilization(self) -> float:
        """
        Returns the CPU utilization percentage since the last time this method was called.
        Based on the psutil.cpu_percent method.
        """
        last_user, last_system = self._last_cpu_times or (None, None)
        current_cpu_times = psutil.cpu_times()
        current_user, current_system = current_cpu_times.user, current_cpu_times.system
        self._last_cpu_times = (current_user, current_system)
        last_time = self._last_cpu_poll_time
        current_time = self._last_cpu_poll_time = time.monotonic() * self._cpu_count

        if last_user is None or last_system is None:
            return 0.0
        assert last_time is not None
        delta_cpu = (current_user - last_user) + (current_system - last_system)
        delta_time = current_time - last_time

        try:
            overall_cpu_percent = (delta_cpu / delta_time) * 100
        except ZeroDivisionError:
            # There was no interval between calls
            return 0.0
        else:
            return round(min(max(overall_cpu_percent, 0.0), 100.0), 1)


class MemoryUsage(MetricSource):
    name = "memory"
    FIELDS = ("memory_used", "memory_total", "memory_usage")

    def sample(self) -> MetricValues:
        try:
            mem = psutil.virtual_memory()
        except (psutil.Error, OSError) as e:
            raise SourceUnavailable(f"failed reading memory statistics: {e}") from e
        return {
            "memory_used": round(mem.used / BYTES_PER_MB, 1),
            "memory_total": round(mem.total / BYTES_PER_MB, 1),
            "memory_usage": mem.percent,
        }


class DiskUsage(MetricSource):
    name = "disk"
    FIELDS = ("disk_used", "disk_total", "disk_usage")

    def __init__(self, path: str) -> None:
        if not os.path.exists(path):
            raise FatalStartupError(f"Disk path {path!r} does not exist")
        self._path = path

    def sample(self) -> MetricValues:
        try:
            usage = psutil.disk_usage(self._path)
        except (psutil.Error, OSError) as e:
            raise SourceUnavailable(f"failed reading disk usage of {self._path!r}: {e}") from e
        return {
            "disk_used": round(usage.used / BYTES_PER_MB, 1),
            "disk_total": round(usage.total / BYTES_PER_MB, 1),
            "disk_usage": usage.percent,
        }
