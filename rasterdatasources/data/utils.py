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

from collections.abc import Sequence
from datetime import date
from typing import Any, TypeVar

import numpy as np
import requests
from loguru import logger

from rasterdatasources.errors import InvalidParameter, RemoteRequestFailed
from rasterdatasources.lexicon.modis import LayerCatalog
from rasterdatasources.utils.time import DateLike, to_date, to_date_list

T = TypeVar("T")

LayerSelector = str | int | Sequence[str | int] | range | np.ndarray | None
DateSelector = (
    DateLike
    | tuple[DateLike | None, DateLike | None]
    | list[DateLike]
    | np.ndarray
)

# Remote API limits
MAX_DATES_PER_REQUEST = 10
MAX_HALF_EXTENT_KM = 100


def prep_layer_inputs(
    layer: LayerSelector, catalog: LayerCatalog
) -> tuple[list[int], bool]:
    """Simple method to resolve a layer selector into catalog indices

    Parameters
    ----------
    layer : LayerSelector
        Key, raw name or index of a layer, a sequence / range of those, or None for
        every layer of the catalog
    catalog : LayerCatalog
        Catalog of the product

    Returns
    -------
    tuple[list[int], bool]
        Catalog indices in selection order and whether a single layer was selected
    """
    if layer is None:
        return list(range(len(catalog))), False
    if isinstance(layer, (str, int, np.integer)):
        return [catalog.index(layer)], True
    # Repeated selectors resolve to a single layer, first occurrence wins
    indices = list(dict.fromkeys(catalog.index(sel) for sel in layer))
    if not indices:
        raise InvalidParameter("Layer selection is empty", product=catalog.product)
    return indices, False


def prep_date_inputs(
    time: DateSelector,
) -> tuple[list[tuple[date | None, date | None]], bool]:
    """Simple method to pre-process date selections into inclusive date ranges

    A single date becomes the range (date, date). A tuple is a (start, end) range
    where either bound may be None. A list or array holds single dates that are
    resolved independently.

    Parameters
    ----------
    time : DateSelector
        Date, (start, end) tuple, or list / array of dates

    Returns
    -------
    tuple[list[tuple[date | None, date | None]], bool]
        Inclusive ranges in input order and whether the selection was a single
        date or range
    """
    if isinstance(time, tuple):
        if len(time) != 2:
            raise InvalidParameter(
                f"Date range should be a (start, end) pair, got {len(time)} elements"
            )
        start = None if time[0] is None else to_date(time[0])
        end = None if time[1] is None else to_date(time[1])
        if start is not None and end is not None and start > end:
            raise InvalidParameter(
                f"Date range start {start} is after end {end}", date=(start, end)
            )
        return [(start, end)], True

    if isinstance(time, (list, np.ndarray)):
        if len(time) == 0:
            raise InvalidParameter("Date selection is empty")
        dates = to_date_list(time)
        return [(d, d) for d in dates], False

    d = to_date(time)
    return [(d, d)], True


def validate_location(lat: float, lon: float) -> None:
    """Check latitude and longitude are within geographic bounds"""
    if not -90 <= lat <= 90:
        raise InvalidParameter(f"Latitude {lat} should be in [-90, 90]")
    if not -180 <= lon <= 180:
        raise InvalidParameter(f"Longitude {lon} should be in [-180, 180]")


def validate_half_extent(name: str, km: int) -> None:
    """Check a subset half extent (km) is an integer accepted by the remote API"""
    if isinstance(km, bool) or not isinstance(km, (int, np.integer)):
        raise InvalidParameter(f"{name} should be an integer number of km, got {km!r}")
    if not 0 <= km <= MAX_HALF_EXTENT_KM:
        raise InvalidParameter(
            f"{name} should be in [0, {MAX_HALF_EXTENT_KM}] km, got {km}"
        )


def partition_dates(
    dates: Sequence[T], size: int = MAX_DATES_PER_REQUEST
) -> list[list[T]]:
    """Split an ordered sequence into consecutive windows of at most ``size`` items

    Parameters
    ----------
    dates : Sequence[T]
        Ordered items
    size : int, optional
        Maximum window length, by default 10

    Returns
    -------
    list[list[T]]
        Non-empty windows, concatenating them gives back the input
    """
    if size < 1:
        raise InvalidParameter(f"Window size should be positive, got {size}")
    windows = [list(dates[i : i + size]) for i in range(0, len(dates), size)]
    return [w for w in windows if w]


def http_get(
    session: requests.Session,
    url: str,
    params: dict[str, str] | None = None,
    headers: dict[str, str] | None = None,
    timeout: float | None = None,
    **context: Any,
) -> requests.Response:
    """Issue a GET request, raising :py:class:`RemoteRequestFailed` on transport
    errors or non-success status codes

    Parameters
    ----------
    session : requests.Session
        HTTP session
    url : str
        Request URL
    params : dict[str, str] | None, optional
        Query parameters, by default None
    headers : dict[str, str] | None, optional
        Request headers, by default None
    timeout : float | None, optional
        Request timeout in seconds, by default None
    context : Any
        Product / layer / date context attached to raised errors

    Returns
    -------
    requests.Response
        Successful response
    """
    try:
        response = session.get(url, params=params, headers=headers, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"Request to {url} with {params} failed: {e}")
        raise RemoteRequestFailed(f"Request to {url} failed: {e}", **context) from e
    return response
