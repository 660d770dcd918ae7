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
import json
from subprocess import CompletedProcess
from typing import Any, List
from unittest.mock import Mock, patch

import psutil
import pytest

from hostmon.exceptions import (
    CalledProcessError,
    CalledProcessTimeoutError,
    FatalStartupError,
    ProgramMissingException,
    SourceUnavailable,
)
from hostmon.sources.gpu import GpuStats, parse_nvidia_smi_output
from hostmon.sources.network import ByteCounters, NetworkStats, parse_ip_link_output, parse_netstat_output
from hostmon.sources.system import BYTES_PER_MB, CpuUsage, DiskUsage, MemoryUsage

NETSTAT_OUTPUT = """Interface Statistics

                           Received            Sent

Bytes                    3995784010      1205429937
Unicast packets             3541296         2073133
Non-unicast packets           12006            4566
Discards                          0               0
Errors                            0               0
Unknown protocols                 0
"""


def ip_link_output(rx: int, tx: int) -> str:
    return json.dumps(
        [
            {"ifname": "lo", "link_type": "loopback", "stats64": {"rx": {"bytes": 999}, "tx": {"bytes": 999}}},
            {"ifname": "eth0", "link_type": "ether", "stats64": {"rx": {"bytes": rx}, "tx": {"bytes": tx}}},
            {"ifname": "eth1", "link_type": "ether", "stats64": {"rx": {"bytes": 10}, "tx": {"bytes": 20}}},
        ]
    )


def completed(stdout: str) -> CompletedProcess:
    return CompletedProcess(["tool"], 0, stdout, "")


class FakeClock:
    def __init__(self, times: List[float]):
        self._times = list(times)

    def __call__(self) -> float:
        return self._times.pop(0)


def cpu_times(user: float, system: float) -> Any:
    return Mock(user=user, system=system)


def test_cpu_usage() -> None:
    with patch("hostmon.sources.system.psutil.cpu_count", return_value=2):
        source = CpuUsage()
    with patch(
        "hostmon.sources.system.psutil.cpu_times", side_effect=[cpu_times(10, 5), cpu_times(11, 5.5)]
    ), patch("hostmon.sources.system.time.monotonic", FakeClock([100, 101])):
        # first call primes
        assert source.sample() == {"cpu_usage": 0.0}
        # 1.5 CPU seconds over 1 second on 2 CPUs
        assert source.sample() == {"cpu_usage": 75.0}


def test_cpu_usage_recovers_after_failure() -> None:
    source = CpuUsage()
    with patch("hostmon.sources.system.psutil.cpu_times", side_effect=psutil.AccessDenied()):
        with pytest.raises(SourceUnavailable):
            source.sample()
    assert source.sample() == {"cpu_usage": 0.0}
    assert 0 <= source.sample()["cpu_usage"] <= 100


def test_memory_usage() -> None:
    mem = Mock(used=2048 * BYTES_PER_MB, total=8192 * BYTES_PER_MB, percent=25.0)
    with patch("hostmon.sources.system.psutil.virtual_memory", return_value=mem):
        assert MemoryUsage().sample() == {"memory_used": 2048.0, "memory_total": 8192.0, "memory_usage": 25.0}


def test_memory_usage_failure() -> None:
    with patch("hostmon.sources.system.psutil.virtual_memory", side_effect=OSError("no /proc")):
        with pytest.raises(SourceUnavailable):
            MemoryUsage().sample()


def test_disk_usage(tmp_path: Any) -> None:
    usage = Mock(used=512 * BYTES_PER_MB, total=1024 * BYTES_PER_MB, percent=50.0)
    with patch("hostmon.sources.system.psutil.disk_usage", return_value=usage) as disk_usage:
        assert DiskUsage(str(tmp_path)).sample() == {"disk_used": 512.0, "disk_total": 1024.0, "disk_usage": 50.0}
    disk_usage.assert_called_once_with(str(tmp_path))


def test_disk_usage_missing_path(tmp_path: Any) -> None:
    with pytest.raises(FatalStartupError):
        DiskUsage(str(tmp_path / "nope"))


def test_disk_usage_path_removed(tmp_path: Any) -> None:
    path = tmp_path / "mnt"
    path.mkdir()
    source = DiskUsage(str(path))
    path.rmdir()
    with pytest.raises(SourceUnavailable):
        source.sample()


def test_parse_netstat_output() -> None:
    assert parse_netstat_output(NETSTAT_OUTPUT) == ByteCounters(3995784010, 1205429937)


@pytest.mark.parametrize("output", ["", "Interface Statistics\n", "Bytes  many  few\n"])
def test_parse_netstat_bad_output(output: str) -> None:
    with pytest.raises(SourceUnavailable):
        parse_netstat_output(output)


def test_parse_ip_link_output() -> None:
    # loopback is skipped
    assert parse_ip_link_output(ip_link_output(1000, 2000)) == ByteCounters(1010, 2020)


@pytest.mark.parametrize("output", ["", "not json", "[{}]", '[{"ifname": "eth0", "stats64": {"rx": {}}}]'])
def test_parse_ip_link_bad_output(output: str) -> None:
    with pytest.raises(SourceUnavailable):
        parse_ip_link_output(output)


@pytest.fixture
def network_source() -> NetworkStats:
    with patch("hostmon.sources.network.is_windows", return_value=False):
        return NetworkStats(command_timeout=3)


def test_network_rates(network_source: NetworkStats) -> None:
    outputs = [completed(ip_link_output(rx, tx)) for rx, tx in [(1000, 500), (3000, 1500), (3000, 1500)]]
    with patch("hostmon.sources.network.run_process", side_effect=outputs) as run_process, patch(
        "hostmon.sources.network.time.monotonic", FakeClock([10, 12, 14])
    ):
        assert network_source.sample() == {"network_received": 0.0, "network_sent": 0.0}
        assert network_source.sample() == {"network_received": 1000.0, "network_sent": 500.0}
        assert network_source.sample() == {"network_received": 0.0, "network_sent": 0.0}

    assert run_process.call_args[0][0] == ["ip", "-s", "-j", "link", "show"]
    assert run_process.call_args[1]["timeout"] == 3


def test_network_uses_netstat_on_windows() -> None:
    with patch("hostmon.sources.network.is_windows", return_value=True):
        source = NetworkStats(command_timeout=3)
    with patch("hostmon.sources.network.run_process", return_value=completed(NETSTAT_OUTPUT)) as run_process:
        assert source.sample() == {"network_received": 0.0, "network_sent": 0.0}
    assert run_process.call_args[0][0] == ["netstat", "-e"]


def test_network_counter_reset(network_source: NetworkStats) -> None:
    outputs = [completed(ip_link_output(rx, rx)) for rx in (5000, 100, 300)]
    with patch("hostmon.sources.network.run_process", side_effect=outputs), patch(
        "hostmon.sources.network.time.monotonic", FakeClock([0, 1, 2])
    ):
        network_source.sample()
        assert network_source.sample() == {"network_received": 0.0, "network_sent": 0.0}
        assert network_source.sample() == {"network_received": 200.0, "network_sent": 200.0}


@pytest.mark.parametrize(
    "error",
    [
        ProgramMissingException("ip"),
        CalledProcessError(1, ["ip"], "", "Object \"link\" is unknown"),
        CalledProcessTimeoutError(3, -9, ["ip"], "", ""),
    ],
)
def test_network_tool_failure(network_source: NetworkStats, error: Exception) -> None:
    outputs = [completed(ip_link_output(0, 0)), error, completed(ip_link_output(100, 100))]
    with patch("hostmon.sources.network.run_process", side_effect=outputs), patch(
        "hostmon.sources.network.time.monotonic", FakeClock([0, 1, 2])
    ):
        network_source.sample()
        with pytest.raises(SourceUnavailable):
            network_source.sample()
        # re-primed, no rate across the failure
        assert network_source.sample() == {"network_received": 0.0, "network_sent": 0.0}


def test_network_unparsable_output(network_source: NetworkStats) -> None:
    with patch("hostmon.sources.network.run_process", return_value=completed("garbage")):
        with pytest.raises(SourceUnavailable):
            network_source.sample()


def test_parse_nvidia_smi_output() -> None:
    assert parse_nvidia_smi_output("45, 61, 120.50\n") == [(45.0, 61.0, 120.5)]


@pytest.mark.parametrize("output", ["", "45, 61\n", "45, 61, [N/A]\n"])
def test_parse_nvidia_smi_bad_output(output: str) -> None:
    with pytest.raises(SourceUnavailable):
        parse_nvidia_smi_output(output)


def test_gpu_missing_nvidia_smi() -> None:
    with patch("hostmon.sources.gpu.find_program", return_value=None):
        with pytest.raises(FatalStartupError):
            GpuStats(command_timeout=3)


@pytest.fixture
def gpu_source() -> GpuStats:
    with patch("hostmon.sources.gpu.find_program", return_value="/usr/bin/nvidia-smi"):
        return GpuStats(command_timeout=3)


def test_gpu_stats_multiple_gpus(gpu_source: GpuStats) -> None:
    output = completed("40, 60, 100.25\n80, 75, 200.50\n")
    with patch("hostmon.sources.gpu.run_process", return_value=output) as run_process:
        assert gpu_source.sample() == {"gpu_utilization": 60.0, "gpu_temperature": 75.0, "gpu_power": 300.75}
    assert run_process.call_args[0][0][0] == "/usr/bin/nvidia-smi"
    assert "--format=csv,noheader,nounits" in run_process.call_args[0][0]


def test_gpu_stats_failure_is_not_permanent(gpu_source: GpuStats) -> None:
    outputs = [CalledProcessTimeoutError(3, -9, ["nvidia-smi"], "", ""), completed("10, 50, 30\n")]
    with patch("hostmon.sources.gpu.run_process", side_effect=outputs):
        with pytest.raises(SourceUnavailable):
            gpu_source.sample()
        assert gpu_source.sample() == {"gpu_utilization": 10.0, "gpu_temperature": 50.0, "gpu_power": 30.0}
