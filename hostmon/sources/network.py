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
import time
from threading import Lock
from typing import List, NamedTuple, Optional, Tuple

from hostmon.exceptions import CalledProcessError, ProgramMissingException, SourceUnavailable
from hostmon.hostmon_types import MetricValues
from hostmon.log import get_logger_adapter
from hostmon.platform import is_windows
from hostmon.sources.base import MetricSource
from hostmon.utils import run_process

logger = get_logger_adapter(__name__)

NETSTAT_COMMAND = ["netstat", "-e"]
IP_LINK_COMMAND = ["ip", "-s", "-j", "link", "show"]


class ByteCounters(NamedTuple):
    received: int
    sent: int


def parse_netstat_output(output: str) -> ByteCounters:
    """
    Parses the output of Windows' `netstat -e`:

        Interface Statistics

                                   Received            Sent

        Bytes                    3995784010      1205429937
        Unicast packets             3541296         2073133
    """
    for line in output.splitlines():
        parts = line.split()
        if len(parts) >= 3 and parts[0] == "Bytes":
            try:
                return ByteCounters(int(parts[1].replace(",", "")), int(parts[2].replace(",", "")))
            except ValueError:
                break
    raise SourceUnavailable("Unexpected output from netstat -e")


def parse_ip_link_output(output: str) -> ByteCounters:
    """
    Parses the output of `ip -s -j link show`, summing the byte counters of all non-loopback interfaces.
    """
    try:
        links = json.loads(output)
        received = sent = 0
        for link in links:
            if link.get("link_type") == "loopback" or link.get("ifname") == "lo":
                continue
            stats = link["stats64"]
            received += int(stats["rx"]["bytes"])
            sent += int(stats["tx"]["bytes"])
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise SourceUnavailable(f"Unexpected output from ip link: {e!r}") from None
    return ByteCounters(received, sent)


class NetworkStats(MetricSource):
    """
    Network throughput (bytes/sec) since the previous tick, from the byte counters reported by the OS networking
    tool: `netstat -e` on Windows, `ip -s link` elsewhere.
    """

    name = "network"
    FIELDS = ("network_received", "network_sent")

    def __init__(self, command_timeout: float) -> None:
        self._command_timeout = command_timeout
        self._command: List[str]
        if is_windows():
            self._command = NETSTAT_COMMAND
            self._parse = parse_netstat_output
        else:
            self._command = IP_LINK_COMMAND
            self._parse = parse_ip_link_output
        self._last: Optional[Tuple[ByteCounters, float]] = None
        self._lock = Lock()

    def _read_counters(self) -> ByteCounters:
        try:
            result = run_process(self._command, suppress_log=True, timeout=self._command_timeout)
        except (CalledProcessError, ProgramMissingException, OSError) as e:
            raise SourceUnavailable(f"Failed to run {self._command[0]}: {e}") from e
        return self._parse(result.stdout)

    def sample(self) -> MetricValues:
        with self._lock:
            try:
                counters = self._read_counters()
            except SourceUnavailable:
                # start over on the next tick; a rate across the failure would be meaningless
                self._last = None
                raise
            now = time.monotonic()
            last, self._last = self._last, (counters, now)

        if last is None:
            return {"network_received": 0.0, "network_sent": 0.0}
        last_counters, last_time = last
        elapsed = now - last_time
        if elapsed <= 0 or counters.received < last_counters.received or counters.sent < last_counters.sent:
            # counters were reset (interface went down, or wrapped), these are the new baseline
            logger.debug("Network counters reset, re-priming", counters=counters, previous=last_counters)
            return {"network_received": 0.0, "network_sent": 0.0}
        return {
            "network_received": round((counters.received - last_counters.received) / elapsed, 1),
            "network_sent": round((counters.sent - last_counters.sent) / elapsed, 1),
        }
