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
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Union

import configargparse
import humanfriendly

MetricValue = Union[int, float]
MetricValues = Dict[str, MetricValue]

# Written in place of every field of a metric source that failed (or was excluded) on a tick.
SENTINEL_VALUE = -1


@dataclass(frozen=True)
class MetricSnapshot:
    """
    The values of all enabled metric fields, captured during a single tick.
    """

    # nanoseconds since the epoch, taken when the tick started
    timestamp: int
    values: Mapping[str, MetricValue] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # copy, so the snapshot doesn't alias the sampler's dict
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))


def positive_integer(value_str: str) -> int:
    value = int(value_str)
    if value <= 0:
        raise configargparse.ArgumentTypeError("invalid positive integer value: {!r}".format(value))
    return value


def positive_float(value_str: str) -> float:
    value = float(value_str)
    if value <= 0:
        raise configargparse.ArgumentTypeError("invalid positive value: {!r}".format(value))
    return value


def human_size(value_str: str) -> int:
    try:
        value = humanfriendly.parse_size(value_str, binary=True)
    except humanfriendly.InvalidSize as e:
        raise configargparse.ArgumentTypeError(str(e)) from None
    if value <= 0:
        raise configargparse.ArgumentTypeError("invalid size: {!r}".format(value_str))
    return value
