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
import statistics
from typing import List, Tuple

from hostmon.exceptions import CalledProcessError, FatalStartupError, ProgramMissingException, SourceUnavailable
from hostmon.hostmon_types import MetricValues
from hostmon.sources.base import MetricSource
from hostmon.utils import find_program, run_process

NVIDIA_SMI = "nvidia-smi"
NVIDIA_SMI_QUERY = ["--query-gpu=utilization.gpu,temperature.gpu,power.draw", "--format=csv,noheader,nounits"]


def parse_nvidia_smi_output(output: str) -> List[Tuple[float, float, float]]:
    """
    Parses `nvidia-smi --query-gpu=... --format=csv,noheader,nounits`: one "util, temp, power" line per GPU.
    """
    gpus = []
    for line in output.strip().splitlines():
        parts = [part.strip() for part in line.split(",")]
        if len(parts) != 3:
            raise SourceUnavailable(f"Unexpected output line from nvidia-smi: {line!r}")
        try:
            utilization, temperature, power = (float(part) for part in parts)
        except ValueError:
            # "[N/A]" / "[Not Supported]" on some boards
            raise SourceUnavailable(f"Unsupported GPU query values: {line!r}") from None
        gpus.append((utilization, temperature, power))
    if not gpus:
        raise SourceUnavailable("nvidia-smi reported no GPUs")
    return gpus


class GpuStats(MetricSource):
    """
    NVIDIA GPU metrics via nvidia-smi. With multiple GPUs, reports the mean utilization, the hottest GPU's
    temperature and the total power draw.
    """

    name = "gpu"
    FIELDS = ("gpu_utilization", "gpu_temperature", "gpu_power")

    def __init__(self, command_timeout: float) -> None:
        nvidia_smi = find_program(NVIDIA_SMI)
        if nvidia_smi is None:
            raise FatalStartupError(f"{NVIDIA_SMI} was not found in PATH; run with --exclude-gpu on hosts without GPUs")
        self._nvidia_smi = nvidia_smi
        self._command_timeout = command_timeout

    def sample(self) -> MetricValues:
        try:
            result = run_process(
                [self._nvidia_smi] + NVIDIA_SMI_QUERY, suppress_log=True, timeout=self._command_timeout
            )
        except (CalledProcessError, ProgramMissingException, OSError) as e:
            raise SourceUnavailable(f"Failed to query GPUs: {e}") from e

        gpus = parse_nvidia_smi_output(result.stdout)
        return {
            "gpu_utilization": round(statistics.mean(gpu[0] for gpu in gpus), 1),
            "gpu_temperature": max(gpu[1] for gpu in gpus),
            "gpu_power": round(sum(gpu[2] for gpu in gpus), 2),
        }
