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
import shutil
import socket
import subprocess
from functools import lru_cache
from subprocess import CompletedProcess, Popen, TimeoutExpired
from typing import Any, List, Optional, Union

from hostmon.exceptions import CalledProcessError, CalledProcessTimeoutError, ProgramMissingException
from hostmon.log import get_logger_adapter
from hostmon.platform import is_windows

logger = get_logger_adapter(__name__)

DEFAULT_COMMAND_TIMEOUT = 5


@lru_cache(maxsize=None)
def get_hostname() -> str:
    return socket.gethostname()


def find_program(program: str) -> Optional[str]:
    return shutil.which(program)


def start_process(cmd: Union[str, List[str]], **kwargs: Any) -> Popen:
    cmd_text = " ".join(cmd) if isinstance(cmd, list) else cmd
    logger.debug(f"Running command: ({cmd_text})")
    if isinstance(cmd, str):
        cmd = [cmd]

    if not is_windows():
        # own session, so a terminal SIGINT reaches us and not our children
        kwargs.setdefault("start_new_session", True)

    try:
        return Popen(
            cmd,
            stdout=kwargs.pop("stdout", subprocess.PIPE),
            stderr=kwargs.pop("stderr", subprocess.PIPE),
            stdin=kwargs.pop("stdin", subprocess.DEVNULL),
            **kwargs,
        )
    except FileNotFoundError:
        raise ProgramMissingException(cmd[0]) from None


def _decode(output: Optional[bytes]) -> str:
    if output is None:
        return ""
    return output.decode("utf-8", errors="replace")


def run_process(
    cmd: Union[str, List[str]],
    *,
    suppress_log: bool = False,
    check: bool = True,
    timeout: Optional[float] = DEFAULT_COMMAND_TIMEOUT,
    **kwargs: Any,
) -> "CompletedProcess[str]":
    """
    Runs a command to completion and returns its decoded output.
    The command is killed once `timeout` seconds pass, raising CalledProcessTimeoutError.
    """
    timed_out = False
    with start_process(cmd, **kwargs) as process:
        try:
            try:
                stdout, stderr = process.communicate(timeout=timeout)
            except TimeoutExpired:
                timed_out = True
                process.kill()
                stdout, stderr = process.communicate()
        except BaseException:
            process.kill()
            process.wait()
            raise
        retcode = process.poll()
        assert retcode is not None  # only None if child has not terminated

    result: "CompletedProcess[str]" = CompletedProcess(process.args, retcode, _decode(stdout), _decode(stderr))

    logger.debug(f"({process.args!r}) exit code: {result.returncode}")
    if not suppress_log:
        if result.stdout:
            logger.debug(f"({process.args!r}) stdout: {result.stdout}")
        if result.stderr:
            logger.debug(f"({process.args!r}) stderr: {result.stderr}")
    if timed_out:
        assert timeout is not None
        raise CalledProcessTimeoutError(timeout, retcode, process.args, result.stdout, result.stderr)
    if check and retcode != 0:
        raise CalledProcessError(retcode, process.args, output=result.stdout, stderr=result.stderr)
    return result
