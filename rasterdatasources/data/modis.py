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

import math
import os
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any

import requests
from loguru import logger
from tqdm import tqdm

from rasterdatasources.config import SourceConfig
from rasterdatasources.data.utils import (
    MAX_DATES_PER_REQUEST,
    DateSelector,
    LayerSelector,
    http_get,
    partition_dates,
    prep_date_inputs,
    prep_layer_inputs,
    validate_half_extent,
    validate_location,
)
from rasterdatasources.errors import (
    InvalidParameter,
    MalformedResponse,
    NoDataInRange,
    TooManyDatesInWindow,
)
from rasterdatasources.io.raster import RasterWriter
from rasterdatasources.lexicon.modis import LayerCatalog, layer_catalog
from rasterdatasources.utils.projection import (
    EPSGReprojector,
    Geotransform,
    Reprojector,
    resolve_geotransform,
)
from rasterdatasources.utils.time import DateLike, to_date

RasterPaths = str | list[str]


@dataclass(frozen=True, slots=True)
class DateCode:
    """Available capture date with its native MODIS code (e.g. "A2002001")."""

    calendar_date: date
    modis_date: str


@dataclass(frozen=True, slots=True)
class SubsetGeometry:
    """Geometry shared by every pixel of a subset response, in sinusoidal meters."""

    nrows: int
    ncols: int
    cellsize: float
    xllcorner: float
    yllcorner: float
    latitude: float | None = None
    longitude: float | None = None
    header: str = ""


@dataclass(frozen=True, slots=True)
class SubsetRow:
    """Single pixel sample of a subset response.

    ``pixel`` is the 0-based row-major position of the sample inside its
    (band, date) grid.
    """

    band: str
    calendar_date: date
    modis_date: str
    pixel: int
    value: float
    geometry: SubsetGeometry


@dataclass(frozen=True, slots=True)
class SubsetWindow:
    """Remote subset request covering at most 10 native dates."""

    product: str
    band: str
    lat: float
    lon: float
    km_ab: int
    km_lr: int
    dates: tuple[DateCode, ...]

    @property
    def start(self) -> str:
        """Native code of the first date of the window"""
        return self.dates[0].modis_date

    @property
    def end(self) -> str:
        """Native code of the last date of the window"""
        return self.dates[-1].modis_date


def _parse_geometry(block: dict[str, Any], product: str, band: str) -> SubsetGeometry:
    try:
        geometry = SubsetGeometry(
            nrows=int(block["nrows"]),
            ncols=int(block["ncols"]),
            cellsize=float(block["cellsize"]),
            xllcorner=float(block["xllcorner"]),
            yllcorner=float(block["yllcorner"]),
            latitude=(
                float(block["latitude"]) if block.get("latitude") is not None else None
            ),
            longitude=(
                float(block["longitude"])
                if block.get("longitude") is not None
                else None
            ),
            header=str(block.get("header", "")),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedResponse(
            f"Subset response is missing geometry metadata: {e}",
            product=product,
            layer=band,
        ) from e
    if geometry.nrows < 1 or geometry.ncols < 1:
        raise MalformedResponse(
            f"Subset grid {geometry.nrows}x{geometry.ncols} is empty",
            product=product,
            layer=band,
        )
    return geometry


def _to_value(value: Any) -> float:
    if value is None:
        return math.nan
    return float(value)


def parse_subset_response(body: Any, product: str, band: str) -> list[SubsetRow]:
    """Flatten a subset response into pixel rows

    The response is either a single object holding the window geometry and a
    ``subset`` list of per (band, date) entries, or a list of such objects. Each
    entry carries ``calendar_date``, ``modis_date`` and a ``data`` list (or a single
    value) of pixel samples in row-major order.

    Parameters
    ----------
    body : Any
        Decoded JSON response
    product : str
        MODIS product id, used for error context
    band : str
        Requested raw layer name, used when an entry does not name its band

    Returns
    -------
    list[SubsetRow]
        Flat pixel rows, in response order

    Raises
    ------
    MalformedResponse
        If the nesting or metadata is missing, or a (band, date) group does not hold
        exactly nrows x ncols pixels
    """
    if isinstance(body, dict):
        blocks = [body]
    elif isinstance(body, list):
        blocks = body
    else:
        raise MalformedResponse(
            f"Unexpected subset response type {type(body).__name__}",
            product=product,
            layer=band,
        )

    rows: list[SubsetRow] = []
    counts: dict[tuple[str, date], tuple[int, SubsetGeometry]] = {}
    for block in blocks:
        if not isinstance(block, dict) or not isinstance(block.get("subset"), list):
            raise MalformedResponse(
                "Subset response entry has no subset list", product=product, layer=band
            )
        geometry = _parse_geometry(block, product, band)
        for entry in block["subset"]:
            if not isinstance(entry, dict):
                raise MalformedResponse(
                    f"Subset entry should be an object, got {entry!r}",
                    product=product,
                    layer=band,
                )
            try:
                entry_band = str(entry.get("band", block.get("band", band)))
                calendar_date = to_date(
                    entry.get("calendar_date", block.get("calendar_date"))
                )
                modis_date = str(entry.get("modis_date", block.get("modis_date")))
                data = entry["data"]
                values = data if isinstance(data, list) else [data]
                values = [_to_value(v) for v in values]
            except (KeyError, TypeError, ValueError) as e:
                raise MalformedResponse(
                    f"Malformed subset entry: {e}", product=product, layer=band
                ) from e

            pixel, _ = counts.get((entry_band, calendar_date), (0, geometry))
            for value in values:
                rows.append(
                    SubsetRow(
                        band=entry_band,
                        calendar_date=calendar_date,
                        modis_date=modis_date,
                        pixel=pixel,
                        value=value,
                        geometry=geometry,
                    )
                )
                pixel += 1
            counts[(entry_band, calendar_date)] = (pixel, geometry)

    for (entry_band, calendar_date), (count, geometry) in counts.items():
        if count != geometry.nrows * geometry.ncols:
            raise MalformedResponse(
                f"Expected {geometry.nrows}x{geometry.ncols} pixels, got {count}",
                product=product,
                layer=entry_band,
                date=calendar_date,
            )
    return rows


class MODIS:
    """MODIS / VIIRS land product subsets served by the ORNL DAAC web service.

    The service has no raster download. Pixel values around a location are fetched
    in windows of at most 10 dates, reshaped into grids and written as geocoded
    rasters in the local cache. Calling the data source returns the raster paths.

    Parameters
    ----------
    product : str
        MODIS product id, e.g. "MOD13Q1"
    config : SourceConfig | None, optional
        Source configuration, by default None (read from the environment)
    session : requests.Session | None, optional
        HTTP session shared by every request, by default None (new session)
    reprojector : Reprojector | None, optional
        Sinusoidal to geographic point reprojection, by default None
        (:py:class:`EPSGReprojector`)

    Note
    ----
    Additional information on the service:

    - https://modis.ornl.gov/data/modis_webservice.html
    - https://modis.ornl.gov/rst/ui/
    """

    def __init__(
        self,
        product: str,
        config: SourceConfig | None = None,
        session: requests.Session | None = None,
        reprojector: Reprojector | None = None,
    ):
        if not product:
            raise InvalidParameter("Product id should not be empty")
        self._product = product
        self._config = config if config is not None else SourceConfig.from_env()
        self._session = session if session is not None else requests.Session()
        self._reprojector = (
            reprojector
            if reprojector is not None
            else EPSGReprojector(self._config, self._session)
        )
        self._catalog: LayerCatalog | None = None
        self._geotransforms: dict[tuple[float, float, float], Geotransform] = {}

    @property
    def product(self) -> str:
        """MODIS product id"""
        return self._product

    @property
    def config(self) -> SourceConfig:
        """Source configuration"""
        return self._config

    def __call__(
        self,
        layer: LayerSelector,
        lat: float,
        lon: float,
        km_ab: int = 0,
        km_lr: int = 0,
        date: DateSelector | None = None,
    ) -> RasterPaths | dict[str, RasterPaths]:
        """Fetch rasters of product layers around a location

        Parameters
        ----------
        layer : LayerSelector
            Layer key, raw name or 0-based index, a sequence or range of those, or
            None for every layer
        lat : float
            Latitude of the subset center (degrees)
        lon : float
            Longitude of the subset center (degrees)
        km_ab : int, optional
            Half extent above and below the center (km, 0 to 100), by default 0
        km_lr : int, optional
            Half extent left and right of the center (km, 0 to 100), by default 0
        date : DateSelector
            Date, list of dates or (start, end) range. Either range bound may be None
            for the first / last available date.

        Returns
        -------
        RasterPaths | dict[str, RasterPaths]
            Path or list of paths for a single layer or bundled rasters, otherwise a
            mapping of layer key to paths
        """
        if date is None:
            raise InvalidParameter(
                "A date or date range is required", product=self.product
            )
        validate_location(lat, lon)
        validate_half_extent("km_ab", km_ab)
        validate_half_extent("km_lr", km_lr)
        ranges, _ = prep_date_inputs(date)
        catalog = self.catalog()
        indices, single_layer = prep_layer_inputs(layer, catalog)

        writer = RasterWriter(self.config)
        bundled: list[str] = []
        per_layer: dict[str, list[str]] = {catalog.key(i): [] for i in indices}
        for start, end in ranges:
            # Availability is shared by every layer of the product
            dates = self.list_dates(lat, lon, start, end)
            if self.config.bundle_bands:
                rows = []
                for index in indices:
                    rows.extend(
                        self.fetch_rows(
                            index, lat, lon, km_ab, km_lr, start, end, dates=dates
                        )
                    )
                geotransform = self._geotransform(rows[0].geometry)
                paths = writer.synthesize(self.product, catalog, rows, geotransform)
                bundled.extend(_as_list(paths))
            else:
                for index in indices:
                    rows = self.fetch_rows(
                        index, lat, lon, km_ab, km_lr, start, end, dates=dates
                    )
                    geotransform = self._geotransform(rows[0].geometry)
                    paths = writer.synthesize(
                        self.product, catalog, rows, geotransform
                    )
                    per_layer[catalog.key(index)].extend(_as_list(paths))

        if self.config.bundle_bands:
            return _collapse(bundled)
        if single_layer:
            return _collapse(per_layer[catalog.key(indices[0])])
        return {key: _collapse(paths) for key, paths in per_layer.items()}

    def catalog(self) -> LayerCatalog:
        """Layer catalog of the product, read from cache or fetched once"""
        if self._catalog is None:
            self._catalog = layer_catalog(self.product, self.config, self._session)
        return self._catalog

    def layers(self) -> tuple[int, ...]:
        """0-based indices of every layer of the product"""
        return tuple(range(len(self.catalog())))

    def layer_keys(self) -> tuple[str, ...]:
        """Sanitized keys of every layer of the product"""
        return self.catalog().keys

    def layer_index(self, key: str) -> int:
        """Integer index of a layer key or raw name"""
        return self.catalog().index(key)

    def list_dates(
        self,
        lat: float,
        lon: float,
        start: DateLike | None = None,
        end: DateLike | None = None,
    ) -> list[DateCode]:
        """Dates available at a location, filtered to the inclusive [start, end]

        Parameters
        ----------
        lat : float
            Latitude (degrees)
        lon : float
            Longitude (degrees)
        start : DateLike | None, optional
            First date, by default None (first available date)
        end : DateLike | None, optional
            Last date, by default None (last available date)

        Returns
        -------
        list[DateCode]
            Chronological available dates, possibly empty
        """
        start = None if start is None else to_date(start)
        end = None if end is None else to_date(end)
        url = f"{self.config.base_url}/{self.product}/dates"
        response = http_get(
            self._session,
            url,
            params={"latitude": str(lat), "longitude": str(lon)},
            headers={"Accept": "application/json"},
            timeout=self.config.request_timeout,
            product=self.product,
            date=(start, end),
        )
        try:
            entries = response.json()["dates"]
            codes = [
                DateCode(to_date(e["calendar_date"]), str(e["modis_date"]))
                for e in entries
            ]
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Unexpected date listing from {url}")
            raise MalformedResponse(
                f"Malformed date listing: {e}", product=self.product
            ) from e

        codes.sort(key=lambda c: c.calendar_date)
        return [
            c
            for c in codes
            if (start is None or c.calendar_date >= start)
            and (end is None or c.calendar_date <= end)
        ]

    def availability(
        self,
        lat: float,
        lon: float,
        start: date | None = None,
        end: date | None = None,
    ) -> list[DateCode]:
        """Alias of :py:meth:`list_dates`"""
        return self.list_dates(lat, lon, start, end)

    def available(self, lat: float, lon: float, date: DateLike) -> bool:
        """Whether the product has data at a location for a calendar date"""
        day = to_date(date)
        return any(c.calendar_date == day for c in self.list_dates(lat, lon, day, day))

    def fetch_rows(
        self,
        layer: str | int,
        lat: float,
        lon: float,
        km_ab: int,
        km_lr: int,
        start: DateLike | None = None,
        end: DateLike | None = None,
        dates: Sequence[DateCode] | None = None,
    ) -> list[SubsetRow]:
        """Fetch pixel rows of one layer for every available date in [start, end]

        The available dates are split into windows of at most 10 dates, fetched one
        after the other and concatenated in date order.

        Parameters
        ----------
        layer : str | int
            Layer key, raw name or 0-based index
        lat : float
            Latitude (degrees)
        lon : float
            Longitude (degrees)
        km_ab : int
            Half extent above and below (km)
        km_lr : int
            Half extent left and right (km)
        start : DateLike | None, optional
            First date, by default None
        end : DateLike | None, optional
            Last date, by default None
        dates : Sequence[DateCode] | None, optional
            Available dates already resolved for [start, end], by default None
            (listed with :py:meth:`list_dates`)

        Returns
        -------
        list[SubsetRow]
            Pixel rows of every window

        Raises
        ------
        NoDataInRange
            If no date is available in the interval
        """
        catalog = self.catalog()
        band = catalog.name(layer)
        if dates is None:
            dates = self.list_dates(lat, lon, start, end)
        if not dates:
            raise NoDataInRange(
                f"No {self.product} data at ({lat}, {lon})",
                product=self.product,
                layer=band,
                date=(start, end),
            )

        windows = partition_dates(dates, MAX_DATES_PER_REQUEST)
        rows: list[SubsetRow] = []
        for window_dates in tqdm(
            windows,
            disable=not self.config.verbose,
            desc=f"Fetching {self.product} {catalog.key(layer)}",
        ):
            window = SubsetWindow(
                product=self.product,
                band=band,
                lat=lat,
                lon=lon,
                km_ab=km_ab,
                km_lr=km_lr,
                dates=tuple(window_dates),
            )
            rows.extend(self.subset_window(window))

        if not rows:
            raise NoDataInRange(
                "Subset service returned no pixels",
                product=self.product,
                layer=band,
                date=(start, end),
            )
        return rows

    def subset_window(self, window: SubsetWindow) -> list[SubsetRow]:
        """Fetch the pixel rows of a single window

        Parameters
        ----------
        window : SubsetWindow
            Window of at most 10 dates

        Returns
        -------
        list[SubsetRow]
            Flat pixel rows

        Raises
        ------
        TooManyDatesInWindow
            If the window holds more dates than one request accepts
        """
        if len(window.dates) > MAX_DATES_PER_REQUEST:
            logger.error(f"Subset window with {len(window.dates)} dates")
            raise TooManyDatesInWindow(
                f"Window holds {len(window.dates)} dates, at most "
                f"{MAX_DATES_PER_REQUEST} are allowed",
                product=window.product,
                layer=window.band,
            )
        if not window.dates:
            raise InvalidParameter(
                "Subset window has no dates", product=window.product, layer=window.band
            )

        logger.info(
            f"Fetching {window.product} {window.band} subset {window.start} to "
            f"{window.end} at ({window.lat}, {window.lon})"
        )
        url = f"{self.config.base_url}/{window.product}/subset"
        params = {
            "latitude": str(window.lat),
            "longitude": str(window.lon),
            "startDate": window.start,
            "endDate": window.end,
            "kmAboveBelow": str(window.km_ab),
            "kmLeftRight": str(window.km_lr),
            "band": window.band,
        }
        context = {
            "product": window.product,
            "layer": window.band,
            "date": (window.dates[0].calendar_date, window.dates[-1].calendar_date),
        }
        response = http_get(
            self._session,
            url,
            params=params,
            headers={"Accept": "application/json"},
            timeout=self.config.request_timeout,
            **context,
        )
        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"Subset response from {url} is not JSON")
            raise MalformedResponse(
                "Subset response is not valid JSON", **context
            ) from e
        return parse_subset_response(body, window.product, window.band)

    def _geotransform(self, geometry: SubsetGeometry) -> Geotransform:
        key = (geometry.cellsize, geometry.xllcorner, geometry.yllcorner)
        if key not in self._geotransforms:
            self._geotransforms[key] = resolve_geotransform(
                geometry.cellsize,
                geometry.xllcorner,
                geometry.yllcorner,
                self._reprojector,
            )
        return self._geotransforms[key]

    @property
    def cache(self) -> str:
        """Return appropriate cache location."""
        return os.path.join(self.config.root, "MODIS", self.product)


def _as_list(paths: RasterPaths) -> list[str]:
    return [paths] if isinstance(paths, str) else list(paths)


def _collapse(paths: list[str]) -> RasterPaths:
    return paths[0] if len(paths) == 1 else paths


class _MODISProduct(MODIS):
    """Base of data sources bound to a fixed product id"""

    PRODUCT = ""

    def __init__(
        self,
        config: SourceConfig | None = None,
        session: requests.Session | None = None,
        reprojector: Reprojector | None = None,
    ):
        super().__init__(self.PRODUCT, config, session, reprojector)


class MOD09A1(_MODISProduct):
    """Terra surface reflectance, 8-day composite at 500 m

    Parameters
    ----------
    config : SourceConfig | None, optional
        Source configuration, by default None
    session : requests.Session | None, optional
        HTTP session, by default None
    reprojector : Reprojector | None, optional
        Point reprojection, by default None
    """

    PRODUCT = "MOD09A1"


class MOD11A2(_MODISProduct):
    """Terra land surface temperature and emissivity, 8-day composite at 1 km"""

    PRODUCT = "MOD11A2"


class MOD13Q1(_MODISProduct):
    """Terra vegetation indices (NDVI, EVI), 16-day composite at 250 m

    Parameters
    ----------
    config : SourceConfig | None, optional
        Source configuration, by default None
    session : requests.Session | None, optional
        HTTP session, by default None
    reprojector : Reprojector | None, optional
        Point reprojection, by default None
    """

    PRODUCT = "MOD13Q1"


class MOD15A2H(_MODISProduct):
    """Terra leaf area index and FPAR, 8-day composite at 500 m"""

    PRODUCT = "MOD15A2H"


class MOD17A2H(_MODISProduct):
    """Terra gross primary productivity, 8-day composite at 500 m"""

    PRODUCT = "MOD17A2H"


class MCD12Q1(_MODISProduct):
    """Terra and Aqua land cover type, yearly at 500 m"""

    PRODUCT = "MCD12Q1"


class MCD15A3H(_MODISProduct):
    """Terra and Aqua leaf area index and FPAR, 4-day composite at 500 m"""

    PRODUCT = "MCD15A3H"


class MYD13Q1(_MODISProduct):
    """Aqua vegetation indices (NDVI, EVI), 16-day composite at 250 m"""

    PRODUCT = "MYD13Q1"


class VNP13A1(_MODISProduct):
    """VIIRS (Suomi NPP) vegetation indices, 16-day composite at 500 m"""

    PRODUCT = "VNP13A1"


def get_raster(
    product: str,
    layer: LayerSelector = None,
    *,
    lat: float,
    lon: float,
    km_ab: int = 0,
    km_lr: int = 0,
    date: DateSelector,
    config: SourceConfig | None = None,
    session: requests.Session | None = None,
) -> RasterPaths | dict[str, RasterPaths]:
    """Fetch rasters of a MODIS product, see :py:meth:`MODIS.__call__`

    Parameters
    ----------
    product : str
        MODIS product id
    layer : LayerSelector, optional
        Layer selector, by default None (every layer)
    lat : float
        Latitude (degrees)
    lon : float
        Longitude (degrees)
    km_ab : int, optional
        Half extent above and below (km), by default 0
    km_lr : int, optional
        Half extent left and right (km), by default 0
    date : DateSelector
        Date, list of dates or (start, end) range
    config : SourceConfig | None, optional
        Source configuration, by default None
    session : requests.Session | None, optional
        HTTP session, by default None

    Returns
    -------
    RasterPaths | dict[str, RasterPaths]
        Raster path(s)
    """
    return MODIS(product, config=config, session=session)(
        layer, lat, lon, km_ab=km_ab, km_lr=km_lr, date=date
    )
