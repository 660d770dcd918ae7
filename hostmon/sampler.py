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
import concurrent.futures
import time
from typing import Dict, Iterable, List, Optional, Sequence

from hostmon.hostmon_types import SENTINEL_VALUE, MetricSnapshot, MetricValue
from hostmon.log import get_logger_adapter
from hostmon.sources.base import MetricSource, SampleResult, take_sample

logger = get_logger_adapter(__name__)

DEFAULT_SAMPLE_TIMEOUT = 10


class Sampler:
    """
    Samples all metric sources concurrently and assembles their values into one MetricSnapshot.
    A source that fails (or doesn't finish within sample_timeout) has all of its fields set to the sentinel value;
    the other sources are unaffected.
    """

    def __init__(
        self,
        sources: Sequence[MetricSource],
        excluded_fields: Iterable[str] = (),
        sample_timeout: float = DEFAULT_SAMPLE_TIMEOUT,
    ):
        self._sources = list(sources)
        self._excluded_fields = tuple(excluded_fields)
        self._sample_timeout = sample_timeout
        names = [name for source in self._sources for name in source.FIELDS] + list(self._excluded_fields)
        assert len(names) == len(set(names)), f"duplicate metric fields: {names}"
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max(len(self._sources), 1), thread_name_prefix="hostmon-sampler"
        )
        self._pending: Dict[MetricSource, "concurrent.futures.Future[SampleResult]"] = {}

    @property
    def fields(self) -> List[str]:
        return [name for source in self._sources for name in source.FIELDS] + list(self._excluded_fields)

    def _sample_all(self) -> List[SampleResult]:
        results = []
        futures = {}
        for source in self._sources:
            previous = self._pending.get(source)
            if previous is not None and not previous.done():
                # a hung sample keeps its worker busy, don't queue another one behind it
                results.append(SampleResult.failure(source, "previous sample still running"))
                continue
            future = self._executor.submit(take_sample, source)
            self._pending[source] = future
            futures[future] = source
        if not futures:
            return results

        done, not_done = concurrent.futures.wait(futures, timeout=self._sample_timeout)
        for future, source in futures.items():
            if future in not_done:
                future.cancel()
                results.append(SampleResult.failure(source, f"timed out after {self._sample_timeout} seconds"))
            else:
                # take_sample() doesn't raise
                results.append(future.result())
        return results

    def collect(self, timestamp: Optional[int] = None) -> MetricSnapshot:
        if timestamp is None:
            timestamp = time.time_ns()

        values: Dict[str, MetricValue] = {}
        for result in self._sample_all():
            if result.ok:
                assert result.values is not None
                values.update(result.values)
            else:
                logger.warning(f"Failed sampling {result.source.name} metrics: {result.error}")
                values.update(dict.fromkeys(result.source.FIELDS, SENTINEL_VALUE))
        values.update(dict.fromkeys(self._excluded_fields, SENTINEL_VALUE))

        return MetricSnapshot(timestamp=timestamp, values=values)

    def close(self) -> None:
        self._executor.shutdown(wait=False)
        for source in self._sources:
            source.close()
