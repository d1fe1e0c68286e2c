# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES.
# SPDX-FileCopyrightText: All rights reserved.
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

from datetime import date, datetime

import numpy as np

from rasterdatasources.errors import InvalidParameter

DateLike = str | date | datetime | np.datetime64


def to_date(value: DateLike) -> date:
    """Simple converter from any supported date representation into a calendar date.

    Parameters
    ----------
    value : str | date | datetime | np.datetime64
        ISO formatted string (``YYYY-MM-DD``), date, datetime or numpy datetime64

    Returns
    -------
    date
        Calendar date

    Raises
    ------
    InvalidParameter
        If the value is not a valid date
    """
    # datetime is a subclass of date, check it first
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, np.datetime64):
        if np.isnat(value):
            raise InvalidParameter("Date cannot be NaT")
        return value.astype("datetime64[D]").astype(date)
    if isinstance(value, str):
        text = value.strip()
        try:
            # Timestamps need a date / time separator right after YYYY-MM-DD
            if len(text) > 10 and text[10] in "T ":
                return datetime.fromisoformat(text).date()
            return date.fromisoformat(text)
        except ValueError as e:
            raise InvalidParameter(
                f"Malformed date {value!r}, expected YYYY-MM-DD", date=value
            ) from e
    raise InvalidParameter(
        f"Invalid date data type provided {type(value).__name__}, should be datetime, "
        "date, string or np.datetime64"
    )


def to_date_list(values: list[DateLike] | np.ndarray) -> list[date]:
    """A general converter for date iterables into a list of calendar dates

    Parameters
    ----------
    values : list[DateLike] | np.ndarray
        Date object iterable

    Returns
    -------
    list[date]
        List of calendar dates in input order
    """
    return [to_date(v) for v in values]
