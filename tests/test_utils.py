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
import sys
import time
from unittest.mock import patch

import pytest
from pytest import LogCaptureFixture

from hostmon.exceptions import CalledProcessError, CalledProcessTimeoutError, ProgramMissingException
from hostmon.log import HostmonFormatter, get_logger_adapter
from hostmon.utils import run_process, start_process


def test_run_process() -> None:
    result = run_process([sys.executable, "-c", "print('hello')"])
    assert result.returncode == 0
    assert result.stdout.strip() == "hello"


def test_run_process_non_zero_exit() -> None:
    cmd = [sys.executable, "-c", "import sys; sys.stderr.write('bad'); sys.exit(3)"]
    with pytest.raises(CalledProcessError) as excinfo:
        run_process(cmd)
    assert excinfo.value.returncode == 3
    assert excinfo.value.stderr == "bad"

    assert run_process(cmd, check=False).returncode == 3


def test_run_process_timeout() -> None:
    start = time.monotonic()
    with pytest.raises(CalledProcessTimeoutError) as excinfo:
        run_process([sys.executable, "-c", "import time; time.sleep(30)"], timeout=0.5)
    assert time.monotonic() - start < 10
    assert "Timed out after 0.5 seconds" in str(excinfo.value)


def test_run_process_missing_program() -> None:
    with pytest.raises(ProgramMissingException):
        run_process(["hostmon-no-such-program"])


def test_logger_extra_fields(caplog: LogCaptureFixture) -> None:
    logger = get_logger_adapter("hostmon.tests")
    with caplog.at_level(logging.INFO, logger="hostmon"):
        logger.info("Sent metrics", status_code=204)

    record = caplog.records[-1]
    assert record.extra == {"status_code": 204}  # type: ignore
    assert HostmonFormatter("%(message)s").format(record) == "Sent metrics (status_code=204)"


def test_logger_name_must_be_under_hostmon() -> None:
    with pytest.raises(AssertionError):
        get_logger_adapter("requests")


@pytest.mark.skipif(sys.platform == "win32", reason="sessions are POSIX only")
def test_start_process_uses_new_session() -> None:
    with patch("hostmon.utils.Popen") as popen:
        start_process(["ip", "-s", "-j", "link", "show"])
    kwargs = popen.call_args[1]
    assert kwargs["start_new_session"] is True
    assert "preexec_fn" not in kwargs
