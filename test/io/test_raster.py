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
from datetime import date
from unittest import mock

import numpy as np
import pytest
import rioxarray

from rasterdatasources.config import SourceConfig
from rasterdatasources.data.modis import SubsetGeometry, SubsetRow
from rasterdatasources.errors import MalformedResponse, NoDataInRange
from rasterdatasources.io.raster import RasterWriter
from rasterdatasources.lexicon.modis import LayerCatalog
from rasterdatasources.utils.projection import Geotransform

CATALOG = LayerCatalog.from_names(
    "MOD13Q1", ["250m_16_days_NDVI", "250m_16_days_EVI", "250m_16_days_VI_Quality"]
)
GEOTRANSFORM = Geotransform(
    origin_lat=45.12346, origin_lon=-5.5, lat_step=0.0045, lon_step=0.0064
)


def make_rows(band, day, nrows=2, ncols=3, offset=0.0):
    geometry = SubsetGeometry(nrows, ncols, 500.0, 0.0, 0.0)
    return [
        SubsetRow(band, day, f"A{day.year}001", p, offset + p, geometry)
        for p in range(nrows * ncols)
    ]


def test_raster_path(config):
    writer = RasterWriter(config)
    path = writer.raster_path("MOD13Q1", "NDVI", GEOTRANSFORM, date(2002, 1, 1))
    assert path == os.path.join(
        config.root, "MODIS", "MOD13Q1", "NDVI", "45.1235_-5.5000_2002-01-01.tif"
    )
    assert writer.driver == "GTiff"


def test_synthesize_row_major(config):
    writer = RasterWriter(config)
    rows = make_rows("250m_16_days_NDVI", date(2002, 1, 1))
    path = writer.synthesize("MOD13Q1", CATALOG, rows, GEOTRANSFORM)
    assert isinstance(path, str)

    da = rioxarray.open_rasterio(path)
    assert da.shape == (1, 2, 3)
    assert np.array_equal(da.values[0], [[0, 1, 2], [3, 4, 5]])
    assert da.rio.crs.to_epsg() == 4326
    assert tuple(da.rio.transform())[:6] == pytest.approx(
        tuple(GEOTRANSFORM.to_affine())[:6]
    )
    da.close()


def test_synthesize_idempotent(config):
    writer = RasterWriter(config)
    rows = make_rows("250m_16_days_NDVI", date(2002, 1, 1))

    with mock.patch.object(
        RasterWriter, "_write", autospec=True, side_effect=RasterWriter._write
    ) as write:
        first = writer.synthesize("MOD13Q1", CATALOG, rows, GEOTRANSFORM)
        assert write.call_count == 1
        second = writer.synthesize("MOD13Q1", CATALOG, rows, GEOTRANSFORM)
        assert write.call_count == 1

    assert first == second
    assert os.path.isfile(first)
    assert not [n for n in os.listdir(os.path.dirname(first)) if n.startswith(".tmp_")]


def test_synthesize_order(config):
    writer = RasterWriter(config)
    rows = (
        make_rows("250m_16_days_VI_Quality", date(2002, 1, 17))
        + make_rows("250m_16_days_NDVI", date(2002, 1, 17))
        + make_rows("250m_16_days_NDVI", date(2002, 1, 1))
        + make_rows("250m_16_days_VI_Quality", date(2002, 1, 1))
    )
    paths = writer.synthesize("MOD13Q1", CATALOG, rows, GEOTRANSFORM)

    layers_dates = [
        (os.path.basename(os.path.dirname(p)), os.path.basename(p)[-14:-4])
        for p in paths
    ]
    assert layers_dates == [
        ("NDVI", "2002-01-17"),
        ("VI_Quality", "2002-01-17"),
        ("NDVI", "2002-01-01"),
        ("VI_Quality", "2002-01-01"),
    ]


def test_synthesize_bundled(tmp_path):
    config = SourceConfig(root=str(tmp_path), bundle_bands=True, verbose=False)
    writer = RasterWriter(config)
    rows = make_rows("250m_16_days_EVI", date(2002, 1, 1), offset=10) + make_rows(
        "250m_16_days_NDVI", date(2002, 1, 1)
    )
    path = writer.synthesize("MOD13Q1", CATALOG, rows, GEOTRANSFORM)
    assert os.path.basename(os.path.dirname(path)) == "NDVI+EVI"

    da = rioxarray.open_rasterio(path)
    assert da.shape == (2, 2, 3)
    assert np.array_equal(da.values[0], [[0, 1, 2], [3, 4, 5]])
    assert np.array_equal(da.values[1], [[10, 11, 12], [13, 14, 15]])
    da.close()


def test_synthesize_bundled_shape_mismatch(tmp_path):
    config = SourceConfig(root=str(tmp_path), bundle_bands=True, verbose=False)
    rows = make_rows("250m_16_days_EVI", date(2002, 1, 1), nrows=1) + make_rows(
        "250m_16_days_NDVI", date(2002, 1, 1)
    )
    with pytest.raises(MalformedResponse):
        RasterWriter(config).synthesize("MOD13Q1", CATALOG, rows, GEOTRANSFORM)


def test_synthesize_ascii(tmp_path):
    config = SourceConfig(root=str(tmp_path), raster_format="asc", verbose=False)
    writer = RasterWriter(config)
    rows = make_rows("250m_16_days_EVI", date(2002, 1, 1))
    path = writer.synthesize("MOD13Q1", CATALOG, rows, GEOTRANSFORM)
    assert path.endswith("_2002-01-01.asc")
    assert writer.driver == "AAIGrid"
    assert os.path.isfile(path)


def test_synthesize_invalid(config):
    writer = RasterWriter(config)
    with pytest.raises(NoDataInRange):
        writer.synthesize("MOD13Q1", CATALOG, [], GEOTRANSFORM)

    rows = make_rows("250m_16_days_NDVI", date(2002, 1, 1))[:-1]
    with pytest.raises(MalformedResponse):
        writer.synthesize("MOD13Q1", CATALOG, rows, GEOTRANSFORM)
