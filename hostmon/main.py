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
import logging
import platform
import signal
import sys
import time
from threading import Event
from types import FrameType, TracebackType
from typing import List, Optional, Type

import configargparse
import humanfriendly
import psutil

from hostmon import __version__
from hostmon.client import InfluxDBClient
from hostmon.config import DEFAULT_COMMAND_TIMEOUT, DEFAULT_MEASUREMENT, DEFAULT_REQUEST_TIMEOUT, AgentConfig
from hostmon.exceptions import FatalStartupError, PublishError
from hostmon.hostmon_types import MetricSnapshot, human_size, positive_float, positive_integer
from hostmon.log import get_logger_adapter, initial_root_logger_setup
from hostmon.platform import default_disk_path, is_linux
from hostmon.sampler import Sampler
from hostmon.sources.factory import get_sources
from hostmon.state import State, init_state
from hostmon.utils import get_hostname

logger: logging.LoggerAdapter = get_logger_adapter("hostmon.main")

DEFAULT_LOG_FILE = "/var/log/hostmon/hostmon.log" if is_linux() else "./hostmon.log"
DEFAULT_LOG_MAX_SIZE = 1024 * 1024 * 5
DEFAULT_LOG_BACKUP_COUNT = 1

# 1 KeyboardInterrupt raised per this many seconds, no matter how many SIGINTs we get.
SIGINT_RATELIMIT = 0.5

last_signal_ts: Optional[float] = None


def sigint_handler(sig: int, frame: Optional[FrameType]) -> None:
    global last_signal_ts
    ts = time.monotonic()
    # no need for atomicity here: we can't get another SIGINT before this one returns.
    # https://www.gnu.org/software/libc/manual/html_node/Signals-in-Handler.html#Signals-in-Handler
    if last_signal_ts is None or ts > last_signal_ts + SIGINT_RATELIMIT:
        last_signal_ts = ts
        raise KeyboardInterrupt


class HostMonitor:
    """
    Runs the sample-then-publish cycle every `interval` seconds. Cycles never overlap: when a cycle takes longer
    than the interval, the next one starts right after it, and missed cycles are not made up for.
    """

    def __init__(
        self,
        config: AgentConfig,
        sampler: Sampler,
        client: InfluxDBClient,
        state: State,
        stop_event: Optional[Event] = None,
    ):
        self._interval = config.interval
        self._sampler = sampler
        self._client = client
        self._state = state
        self._stop_event = stop_event if stop_event is not None else Event()

    def __enter__(self) -> "HostMonitor":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.close()

    def _publish_logged(self, snapshot: MetricSnapshot) -> bool:
        try:
            self._client.send(snapshot)
        except PublishError as e:
            logger.error(f"Error occurred sending metrics to InfluxDB: {e}")
            return False
        logger.debug("Successfully sent metrics to InfluxDB", timestamp=snapshot.timestamp)
        return True

    def run_single(self) -> bool:
        """
        A single tick: sample all sources, then publish. Returns whether the publish succeeded.
        """
        snapshot = self._sampler.collect()
        return self._publish_logged(snapshot)

    def run_continuous(self) -> None:
        while not self._stop_event.is_set():
            self._state.init_new_cycle()
            cycle_start = time.monotonic()

            try:
                self.run_single()
            except Exception:
                logger.exception("Sampling cycle failed!")

            elapsed = time.monotonic() - cycle_start
            if elapsed > self._interval:
                logger.warning(f"Cycle took {elapsed:.2f} seconds, longer than the interval of {self._interval}")
            # wait for the rest of the interval
            self._stop_event.wait(max(self._interval - elapsed, 0))

        self._state.set_cycle_id(None)

    def stop(self) -> None:
        logger.info("Stopping ...")
        self._stop_event.set()

    def close(self) -> None:
        self._sampler.close()
        self._client.close()


def create_monitor(config: AgentConfig, state: State, stop_event: Optional[Event] = None) -> HostMonitor:
    """
    Creates the metric sources and the InfluxDB client. Raises FatalStartupError if a source can't be created.
    """
    sources, excluded_fields = get_sources(config)
    sampler = Sampler(sources, excluded_fields, sample_timeout=max(config.command_timeout, 1) * 2)
    client = InfluxDBClient(config)

    try:
        health = client.get_health()
    except PublishError as e:
        # not fatal, every cycle attempts its own write
        logger.warning(f"InfluxDB at {config.influxdb_url} is not healthy yet: {e}")
    else:
        logger.info(f"InfluxDB at {config.influxdb_url} is {health.get('status', 'reachable')}")

    return HostMonitor(config, sampler, client, state, stop_event)


def run(config: AgentConfig, state: State) -> None:
    with create_monitor(config, state) as monitor:
        logger.info(f"hostmon initialized, publishing metrics every {config.interval} seconds")
        monitor.run_continuous()


def parse_cmd_args(argv: Optional[List[str]] = None) -> configargparse.Namespace:
    parser = configargparse.ArgumentParser(
        description="Samples host resource metrics periodically and writes them to InfluxDB.",
        auto_env_var_prefix="hostmon_",
        add_config_file_help=True,
        add_env_var_help=False,
        default_config_files=["/etc/hostmon/config.ini"],
    )
    parser.add_argument("--config", is_config_file=True, help="Config file path")
    parser.add_argument(
        "-i",
        "--interval",
        type=positive_integer,
        required=True,
        help="Interval between metric samples in seconds",
    )
    parser.add_argument(
        "--exclude-gpu",
        action="store_true",
        default=False,
        help="Don't query GPU metrics (they are reported as -1)",
    )
    parser.add_argument(
        "--disk-path",
        default=default_disk_path(),
        help="Mount point whose disk usage is reported (default: %(default)s)",
    )
    parser.add_argument(
        "--measurement",
        default=DEFAULT_MEASUREMENT,
        help="InfluxDB measurement name (default: %(default)s)",
    )
    parser.add_argument(
        "--command-timeout",
        type=positive_float,
        default=DEFAULT_COMMAND_TIMEOUT,
        help="Timeout for external tools (netstat, nvidia-smi) in seconds (default: %(default)s)",
    )

    connectivity = parser.add_argument_group("connectivity")
    connectivity.add_argument("--influxdb-url", required=True, help="InfluxDB URL, e.g http://localhost:8086")
    connectivity.add_argument("--influxdb-token", required=True, help="InfluxDB API token")
    connectivity.add_argument("--influxdb-org", required=True, help="InfluxDB organization")
    connectivity.add_argument("--influxdb-bucket", required=True, help="InfluxDB bucket")
    connectivity.add_argument(
        "--request-timeout",
        type=positive_float,
        default=DEFAULT_REQUEST_TIMEOUT,
        help="Timeout for write requests to InfluxDB in seconds (default: %(default)s)",
    )
    connectivity.add_argument(
        "--curlify-requests", help="Log cURL commands for HTTP requests (used for debugging)", action="store_true"
    )
    connectivity.add_argument(
        "--no-verify", help="Do not verify server certificates", action="store_false", dest="verify"
    )

    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument("-v", "--verbose", action="store_true", default=False, dest="verbose")

    logging_options = parser.add_argument_group("logging")
    logging_options.add_argument("--log-file", action="store", type=str, dest="log_file", default=DEFAULT_LOG_FILE)
    logging_options.add_argument(
        "--log-rotate-max-size",
        action="store",
        type=human_size,
        dest="log_rotate_max_size",
        default=DEFAULT_LOG_MAX_SIZE,
        help="Maximal log file size before rotation, e.g 5MB (default: 5MiB)",
    )
    logging_options.add_argument(
        "--log-rotate-backup-count",
        action="store",
        type=positive_integer,
        dest="log_rotate_backup_count",
        default=DEFAULT_LOG_BACKUP_COUNT,
    )

    return parser.parse_args(argv)


def setup_signals() -> None:
    # We catch SIGINTs and ratelimit them, to avoid being interrupted again during the handling of the
    # first INT.
    signal.signal(signal.SIGINT, sigint_handler)
    # handle SIGTERM in the same manner - gracefully stop hostmon.
    signal.signal(signal.SIGTERM, sigint_handler)


def log_system_info() -> None:
    logger.info(f"hostmon Python version: {platform.python_version()}")
    logger.info(f"Platform: {platform.platform()}")
    logger.info(f"Total CPUs: {psutil.cpu_count()}")
    logger.info(f"Total RAM: {humanfriendly.format_size(psutil.virtual_memory().total, binary=True)}")
    logger.info(f"Hostname: {get_hostname()}")


def main() -> None:
    args = parse_cmd_args()

    state = init_state()

    global logger
    try:
        logger = initial_root_logger_setup(
            logging.DEBUG if args.verbose else logging.INFO,
            args.log_file,
            args.log_rotate_max_size,
            args.log_rotate_backup_count,
        )
    except OSError as e:
        print(f"Cannot open log file {args.log_file!r} ({e}), run as root or pass --log-file", file=sys.stderr)
        sys.exit(1)

    try:
        config = AgentConfig.from_args(args)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    setup_signals()

    try:
        logger.info("Running hostmon", version=__version__, arguments=config.redacted())

        try:
            log_system_info()
        except Exception:
            logger.exception("Encountered an exception while getting basic system info")

        run(config, state)
    except KeyboardInterrupt:
        pass
    except FatalStartupError as e:
        logger.error(f"Failed to start: {e}")
        sys.exit(1)
    except Exception:
        logger.exception("Unexpected error occurred")
        sys.exit(1)


if __name__ == "__main__":
    main()
