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

import pytest

from rasterdatasources.config import MODIS_URL, REPROJECT_URL, SourceConfig
from rasterdatasources.errors import InvalidParameter


def test_config_defaults():
    config = SourceConfig()
    assert config.root.endswith(os.path.join(".cache", "rasterdatasources"))
    assert config.base_url == MODIS_URL
    assert config.reproject_url == REPROJECT_URL
    assert config.request_timeout == 60
    assert config.raster_format == "tif"
    assert not config.bundle_bands


@pytest.mark.parametrize(
    "kwargs",
    [
        {"raster_format": "nc"},
        {"raster_format": "asc", "bundle_bands": True},
        {"request_timeout": 0},
        {"request_timeout": -5.0},
    ],
)
def test_config_invalid(kwargs):
    with pytest.raises(InvalidParameter):
        SourceConfig(**kwargs)


def test_config_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("RASTERDATASOURCES_PATH", str(tmp_path))
    monkeypatch.setenv("RASTERDATASOURCES_MODIS_URL", "http://localhost:8000/api")
    monkeypatch.delenv("RASTERDATASOURCES_REPROJECT_URL", raising=False)

    config = SourceConfig.from_env(raster_format="asc")
    assert config.root == str(tmp_path)
    assert config.base_url == "http://localhost:8000/api"
    assert config.reproject_url == REPROJECT_URL
    assert config.raster_format == "asc"

    # Overrides take precedence over the environment
    assert SourceConfig.from_env(root="/data").root == "/data"


def test_config_data_root(tmp_path):
    root = tmp_path / "nested" / "cache"
    config = SourceConfig(root=str(root), request_timeout=None)
    assert config.data_root() == str(root)
    assert root.is_dir()
