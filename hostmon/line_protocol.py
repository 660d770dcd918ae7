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

"""
InfluxDB line protocol encoding, see https://docs.influxdata.com/influxdb/v2/reference/syntax/line-protocol/

    measurement,tag1=a,tag2=b field1=1.5,field2=-1 1700000000000000000
"""

import math
import re
from typing import Mapping

from hostmon.hostmon_types import MetricSnapshot, MetricValue

_MEASUREMENT_ESCAPE_RE = re.compile(r"([, \\])")
_KEY_ESCAPE_RE = re.compile(r"([,= \\])")


def escape_measurement(name: str) -> str:
    if not name:
        raise ValueError("measurement name must not be empty")
    return _MEASUREMENT_ESCAPE_RE.sub(r"\\\1", name)


def escape_key(key: str) -> str:
    """
    Escapes tag keys, tag values and field keys.
    """
    if not key:
        raise ValueError("tag and field keys must not be empty")
    return _KEY_ESCAPE_RE.sub(r"\\\1", key)


def format_field_value(value: MetricValue) -> str:
    # All fields are written as floats (no "i" suffix for ints), so that the -1 sentinel and sampled values of
    # a field always share a single field type in the database.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"unsupported field value {value!r}")
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"non-finite field value {value!r}")
        return repr(value)
    return str(value)


def encode_snapshot(snapshot: MetricSnapshot, measurement: str, tags: Mapping[str, str]) -> str:
    """
    Encodes the snapshot as a single line-protocol point (without a trailing newline).
    Tags and fields are sorted by key, so the same snapshot always encodes to the same bytes.
    """
    if not snapshot.values:
        raise ValueError("a point must have at least one field")

    line = escape_measurement(measurement)
    # empty tag values are not allowed by the protocol, skip them
    tag_set = ",".join(f"{escape_key(k)}={escape_key(v)}" for k, v in sorted(tags.items()) if v)
    if tag_set:
        line = f"{line},{tag_set}"
    field_set = ",".join(f"{escape_key(k)}={format_field_value(v)}" for k, v in sorted(snapshot.values.items()))
    return f"{line} {field_set} {snapshot.timestamp}"
