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
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import numpy as np
import requests
from affine import Affine
from loguru import logger

from rasterdatasources.config import SourceConfig
from rasterdatasources.errors import InvalidParameter, ReprojectionFailed

# data from https://nssdc.gsfc.nasa.gov/planetary/factsheet/earthfact.html
EARTH_EQ_RADIUS = 6378137
EARTH_POL_RADIUS = 6356752

SINUSOIDAL_EPSG = "53008"
WGS84_EPSG = "4326"


@dataclass(frozen=True, slots=True)
class Geotransform:
    """Affine mapping from raster row/column to geographic coordinates.

    Rows go south (``-lat_step`` per row) and columns go east (``+lon_step`` per
    column) from the origin.
    """

    origin_lat: float
    origin_lon: float
    lat_step: float
    lon_step: float

    def to_affine(self) -> Affine:
        """Affine transform in (x=lon, y=lat) order."""
        return Affine(
            self.lon_step, 0.0, self.origin_lon, 0.0, -self.lat_step, self.origin_lat
        )

    def to_gdal(self) -> tuple[float, float, float, float, float, float]:
        """Six element GDAL geotransform."""
        return (
            self.origin_lon,
            self.lon_step,
            0.0,
            self.origin_lat,
            0.0,
            -self.lat_step,
        )

    def cell_centers(self, nrows: int, ncols: int) -> tuple[np.ndarray, np.ndarray]:
        """Latitude and longitude of the cell centers of a (nrows, ncols) grid.

        Parameters
        ----------
        nrows : int
            Number of raster rows
        ncols : int
            Number of raster columns

        Returns
        -------
        tuple[np.ndarray, np.ndarray]
            1D latitude array of size nrows and longitude array of size ncols
        """
        lat = self.origin_lat - (np.arange(nrows) + 0.5) * self.lat_step
        lon = self.origin_lon + (np.arange(ncols) + 0.5) * self.lon_step
        return lat, lon


@runtime_checkable
class Reprojector(Protocol):
    """Interface converting a sinusoidal coordinate into geographic degrees."""

    def __call__(self, x: float, y: float) -> tuple[float, float]:
        """Reproject a point.

        Parameters
        ----------
        x : float
            Sinusoidal easting (m)
        y : float
            Sinusoidal northing (m)

        Returns
        -------
        tuple[float, float]
            (latitude, longitude) in degrees
        """
        pass


class EPSGReprojector:
    """Reprojects sinusoidal coordinates with the epsg.io ``trans`` web service.

    Parameters
    ----------
    config : SourceConfig
        Source configuration providing the reprojection URL and timeout
    session : requests.Session | None, optional
        HTTP session to issue requests with, by default None (new session)
    source_epsg : str, optional
        EPSG code of the input coordinates, by default "53008" (sinusoidal)
    target_epsg : str, optional
        EPSG code of the output coordinates, by default "4326" (WGS84)
    """

    def __init__(
        self,
        config: SourceConfig,
        session: requests.Session | None = None,
        source_epsg: str = SINUSOIDAL_EPSG,
        target_epsg: str = WGS84_EPSG,
    ):
        self.config = config
        self.session = session if session is not None else requests.Session()
        self.source_epsg = source_epsg
        self.target_epsg = target_epsg

    def __call__(self, x: float, y: float) -> tuple[float, float]:
        params = {
            "x": str(x),
            "y": str(y),
            "s_srs": self.source_epsg,
            "t_srs": self.target_epsg,
        }
        try:
            response = self.session.get(
                self.config.reproject_url,
                params=params,
                timeout=self.config.request_timeout,
            )
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Reprojection request for ({x}, {y}) failed")
            raise ReprojectionFailed(
                f"Failed to reproject ({x}, {y}) with {self.config.reproject_url}"
            ) from e

        try:
            lat = float(body["y"])
            lon = float(body["x"])
        except (KeyError, TypeError, ValueError) as e:
            raise ReprojectionFailed(
                f"Non-numeric reprojection response for ({x}, {y}): {body!r}"
            ) from e
        if not (math.isfinite(lat) and math.isfinite(lon)):
            raise ReprojectionFailed(
                f"Non-finite reprojection response for ({x}, {y}): {body!r}"
            )
        return lat, lon


def meters_to_latlon(d: float, lat: float) -> tuple[float, float]:
    """Convert a distance in meters into latitude and longitude degree steps at a
    given latitude. Longitude degrees shrink toward the poles.

    Parameters
    ----------
    d : float
        Distance (m)
    lat : float
        Latitude (degrees) the distance is measured at

    Returns
    -------
    tuple[float, float]
        (latitude step, longitude step) in degrees
    """
    dlat = d * 180 / (math.pi * EARTH_POL_RADIUS)
    ratio = d / (math.cos(math.radians(lat)) * EARTH_EQ_RADIUS)
    if not -1.0 <= ratio <= 1.0:
        raise InvalidParameter(
            f"Cell size {d} m is too large to convert at latitude {lat}"
        )
    dlon = math.degrees(math.asin(ratio))
    return dlat, dlon


def resolve_geotransform(
    cellsize: float,
    xllcorner: float,
    yllcorner: float,
    reprojector: Reprojector,
) -> Geotransform:
    """Resolve the geographic geotransform of a sinusoidal subset window.

    The lower-left corner is reprojected first, then the cell size is converted to
    degree steps at the resolved latitude. The origin is shifted by half a cell on
    each axis.

    Parameters
    ----------
    cellsize : float
        Cell size (m)
    xllcorner : float
        Sinusoidal x coordinate of the lower-left corner (m)
    yllcorner : float
        Sinusoidal y coordinate of the lower-left corner (m)
    reprojector : Reprojector
        Callable converting sinusoidal (x, y) into (lat, lon)

    Returns
    -------
    Geotransform
        Resolved geotransform
    """
    lat, lon = reprojector(xllcorner, yllcorner)
    lat_step, lon_step = meters_to_latlon(cellsize, lat)
    return Geotransform(
        origin_lat=lat - lat_step / 2,
        origin_lon=lon - lon_step / 2,
        lat_step=lat_step,
        lon_step=lon_step,
    )
