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
import math
from dataclasses import dataclass
from typing import Optional, Tuple

from hostmon.exceptions import SourceUnavailable
from hostmon.hostmon_types import MetricValues


class MetricSource:
    """
    Interface class for all metric sources.

    A source fills a fixed set of fields (FIELDS) on every tick. sample() returns a value for each of them,
    or raises SourceUnavailable. Sources may keep state between ticks (previous counters), but a failed sample
    must not break the following ones.
    """

    name: str
    FIELDS: Tuple[str, ...] = ()

    def sample(self) -> MetricValues:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r})"


@dataclass(frozen=True)
class SampleResult:
    """
    The outcome of sampling a single source: either values for all of its fields, or the reason it failed.
    """

    source: MetricSource
    values: Optional[MetricValues] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, source: MetricSource, values: MetricValues) -> "SampleResult":
        return cls(source, values=values)

    @classmethod
    def failure(cls, source: MetricSource, error: str) -> "SampleResult":
        return cls(source, error=error)


def take_sample(source: MetricSource) -> SampleResult:
    try:
        values = source.sample()
    except SourceUnavailable as e:
        return SampleResult.failure(source, str(e) or e.__class__.__name__)
    except Exception as e:
        # an unexpected bug in a single source must not fail the whole tick
        return SampleResult.failure(source, f"unexpected {e.__class__.__name__}: {e}")

    missing = [name for name in source.FIELDS if name not in values]
    if missing:
        return SampleResult.failure(source, f"missing fields {missing}")
    for name in source.FIELDS:
        value = values[name]
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            return SampleResult.failure(source, f"invalid value for {name}: {value!r}")
    return SampleResult.success(source, {name: values[name] for name in source.FIELDS})
