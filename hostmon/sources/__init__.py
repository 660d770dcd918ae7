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
from hostmon.sources.base import MetricSource, SampleResult, take_sample
from hostmon.sources.gpu import GpuStats
from hostmon.sources.network import NetworkStats
from hostmon.sources.system import CpuUsage, DiskUsage, MemoryUsage

__all__ = [
    "MetricSource",
    "SampleResult",
    "take_sample",
    "CpuUsage",
    "MemoryUsage",
    "DiskUsage",
    "NetworkStats",
    "GpuStats",
]
