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

import os
import tempfile
from collections.abc import Sequence
from datetime import date
from typing import TYPE_CHECKING

import numpy as np
import rioxarray  # noqa: F401  # registers the .rio accessor
import xarray as xr
from loguru import logger

from rasterdatasources.config import SourceConfig
from rasterdatasources.errors import MalformedResponse, NoDataInRange
from rasterdatasources.lexicon.modis import LayerCatalog
from rasterdatasources.utils.projection import Geotransform

if TYPE_CHECKING:
    from rasterdatasources.data.modis import SubsetRow

CRS = "EPSG:4326"
DRIVERS = {"tif": "GTiff", "asc": "AAIGrid"}


class RasterWriter:
    """Writes subset rows as geocoded rasters in the local cache.

    A raster is addressed by product, layer, rounded origin and date. Existing files
    are reused as is, so a given address is only ever written once.

    Parameters
    ----------
    config : SourceConfig
        Source configuration with the cache root, output format and band bundling
    """

    def __init__(self, config: SourceConfig):
        self.config = config

    @property
    def driver(self) -> str:
        """GDAL driver of the configured raster format"""
        return DRIVERS[self.config.raster_format]

    def raster_path(
        self, product: str, layer: str, geotransform: Geotransform, day: date
    ) -> str:
        """Deterministic cache path of a raster artifact

        Parameters
        ----------
        product : str
            MODIS product id
        layer : str
            Layer key (or joined keys for bundled rasters)
        geotransform : Geotransform
            Geotransform of the raster, its origin is rounded to 4 decimals
        day : date
            Capture date

        Returns
        -------
        str
            Raster path
        """
        name = (
            f"{geotransform.origin_lat:.4f}_{geotransform.origin_lon:.4f}_"
            f"{day.isoformat()}.{self.config.raster_format}"
        )
        return os.path.join(self.config.root, "MODIS", product, layer, name)

    def synthesize(
        self,
        product: str,
        catalog: LayerCatalog,
        rows: Sequence["SubsetRow"],
        geotransform: Geotransform,
    ) -> str | list[str]:
        """Reshape subset rows into grids and write one raster per date (bundled) or
        per (date, layer)

        Parameters
        ----------
        product : str
            MODIS product id
        catalog : LayerCatalog
            Layer catalog used to order bands and name layers
        rows : Sequence[SubsetRow]
            Flat subset rows, possibly spanning several dates and bands
        geotransform : Geotransform
            Geotransform shared by every grid

        Returns
        -------
        str | list[str]
            Raster paths, dates in order of first appearance and layers in catalog
            order. A single path is returned as a string.
        """
        if len(rows) == 0:
            raise NoDataInRange("No subset rows to synthesize", product=product)

        groups: dict[tuple[date, str], list["SubsetRow"]] = {}
        for row in rows:
            groups.setdefault((row.calendar_date, row.band), []).append(row)
        dates = list(dict.fromkeys(row.calendar_date for row in rows))
        bands = sorted({row.band for row in rows}, key=catalog.index)

        paths = []
        for day in dates:
            day_bands = [b for b in bands if (day, b) in groups]
            grids = [self._reshape(groups[(day, b)], product) for b in day_bands]
            keys = [catalog.key(b) for b in day_bands]
            if self.config.bundle_bands:
                if len({g.shape for g in grids}) > 1:
                    raise MalformedResponse(
                        "Bundled layers have different grid shapes",
                        product=product,
                        date=day,
                    )
                path = self.raster_path(product, "+".join(keys), geotransform, day)
                self._write_if_missing(path, grids, keys, geotransform)
                paths.append(path)
            else:
                for key, grid in zip(keys, grids):
                    path = self.raster_path(product, key, geotransform, day)
                    self._write_if_missing(path, [grid], [key], geotransform)
                    paths.append(path)

        return paths[0] if len(paths) == 1 else paths

    @staticmethod
    def _reshape(group: list["SubsetRow"], product: str) -> np.ndarray:
        """Fill a (nrows, ncols) grid row by row from the scan ordered pixels"""
        geometry = group[0].geometry
        if len(group) != geometry.nrows * geometry.ncols:
            raise MalformedResponse(
                f"Expected {geometry.nrows}x{geometry.ncols} pixels, got {len(group)}",
                product=product,
                layer=group[0].band,
                date=group[0].calendar_date,
            )
        ordered = sorted(group, key=lambda r: r.pixel)
        values = np.array([r.value for r in ordered], dtype=np.float32)
        return values.reshape(geometry.nrows, geometry.ncols)

    def _write_if_missing(
        self,
        path: str,
        grids: list[np.ndarray],
        keys: list[str],
        geotransform: Geotransform,
    ) -> None:
        if os.path.isfile(path):
            logger.debug(f"Raster {path} already cached")
            return

        nrows, ncols = grids[0].shape
        lat, lon = geotransform.cell_centers(nrows, ncols)
        da = xr.DataArray(
            data=np.stack(grids),
            dims=["band", "y", "x"],
            coords={"band": np.arange(1, len(grids) + 1), "y": lat, "x": lon},
            attrs={"long_name": tuple(keys) if len(keys) > 1 else keys[0]},
        )
        da = da.rio.write_crs(CRS)
        da = da.rio.write_transform(geotransform.to_affine())
        self._write(path, da)

    def _write(self, path: str, da: xr.DataArray) -> None:
        """Write raster into a temporary folder next to its destination, then move the
        finished files in place, main raster last"""
        parent = os.path.dirname(path)
        os.makedirs(parent, exist_ok=True)
        logger.debug(f"Writing raster {path}")
        with tempfile.TemporaryDirectory(dir=parent, prefix=".tmp_") as tmp:
            tmp_path = os.path.join(tmp, os.path.basename(path))
            da.rio.to_raster(tmp_path, driver=self.driver)
            for name in os.listdir(tmp):
                if name != os.path.basename(path):
                    os.replace(os.path.join(tmp, name), os.path.join(parent, name))
            os.replace(tmp_path, path)
