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
import re
from pathlib import Path
from typing import Iterator

import setuptools

HERE = Path(__file__).parent


def read_requirements(path: str) -> Iterator[str]:
    with open(HERE / path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            yield line


version = re.search(r'__version__\s*=\s*"(.*?)"', (HERE / "hostmon/__init__.py").read_text())
assert version is not None, "could not parse version!"

with open(HERE / "README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setuptools.setup(
    name="hostmon",
    version=version.group(1),
    author="hostmon developers",
    description="Lightweight agent publishing host resource metrics to InfluxDB",
    long_description=long_description,
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
    ],
    packages=setuptools.find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    install_requires=list(read_requirements("requirements.txt")),
    extras_require={"test": list(read_requirements("dev-requirements.txt"))},
    entry_points={"console_scripts": ["hostmon = hostmon.main:main"]},
    python_requires=">=3.8",
)
