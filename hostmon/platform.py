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
import sys
from functools import lru_cache

WINDOWS_PLATFORM_NAME = "win32"
LINUX_PLATFORM_NAME = "linux"


@lru_cache(maxsize=None)
def is_windows() -> bool:
    return sys.platform == WINDOWS_PLATFORM_NAME


@lru_cache(maxsize=None)
def is_linux() -> bool:
    return sys.platform == LINUX_PLATFORM_NAME


def default_disk_path() -> str:
    if is_windows():
        return os.environ.get("SystemDrive", "C:") + "\\"
    return "/"
