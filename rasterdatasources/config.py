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

"""
Configuration for raster data sources

A single :class:`SourceConfig` is built once at startup (directly or with
:py:meth:`SourceConfig.from_env`) and handed to every data source. It is never
mutated after construction.
"""

import os
from dataclasses import dataclass, field
from typing import Literal

from loguru import logger

from rasterdatasources.errors import InvalidParameter

MODIS_URL = "https://modis.ornl.gov/rst/api/v1"
REPROJECT_URL = "https://epsg.io/trans"


def _default_root() -> str:
    return os.path.join(os.path.expanduser("~"), ".cache", "rasterdatasources")


@dataclass(frozen=True)
class SourceConfig:
    """Root configuration shared by all raster data sources

    Parameters
    ----------
    root : str, optional
        Local cache root holding layer catalogs and raster artifacts, by default
        ``~/.cache/rasterdatasources``
    base_url : str, optional
        Base URL of the MODIS/VIIRS land product subset web service, by default
        https://modis.ornl.gov/rst/api/v1
    reproject_url : str, optional
        Coordinate reprojection endpoint used to convert sinusoidal corners, by
        default https://epsg.io/trans
    request_timeout : float | None, optional
        Timeout (seconds) applied to every HTTP request, None disables it, by
        default 60
    raster_format : Literal["tif", "asc"], optional
        Output raster format, GeoTIFF or ESRI ASCII grid, by default "tif"
    bundle_bands : bool, optional
        Write all requested layers of a date into a single multi-band file instead
        of one file per (date, layer), by default False
    verbose : bool, optional
        Print download progress, by default True
    """

    root: str = field(default_factory=_default_root)
    base_url: str = MODIS_URL
    reproject_url: str = REPROJECT_URL
    request_timeout: float | None = 60
    raster_format: Literal["tif", "asc"] = "tif"
    bundle_bands: bool = False
    verbose: bool = True

    def __post_init__(self) -> None:
        if self.raster_format not in ("tif", "asc"):
            raise InvalidParameter(
                f"Unsupported raster format {self.raster_format}, should be tif or asc"
            )
        if self.raster_format == "asc" and self.bundle_bands:
            raise InvalidParameter("ASCII grids cannot hold bundled multi-band rasters")
        if self.request_timeout is not None and self.request_timeout <= 0:
            raise InvalidParameter(
                f"Request timeout must be positive, got {self.request_timeout}"
            )

    @classmethod
    def from_env(cls, **overrides: object) -> "SourceConfig":
        """Build a configuration from environment variables

        Reads ``RASTERDATASOURCES_PATH``, ``RASTERDATASOURCES_MODIS_URL`` and
        ``RASTERDATASOURCES_REPROJECT_URL``. Keyword arguments take precedence over
        the environment.
        """
        values: dict[str, object] = {}
        env_map = {
            "root": "RASTERDATASOURCES_PATH",
            "base_url": "RASTERDATASOURCES_MODIS_URL",
            "reproject_url": "RASTERDATASOURCES_REPROJECT_URL",
        }
        for name, env_var in env_map.items():
            if env_var in os.environ:
                values[name] = os.environ[env_var]
        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]

    def data_root(self) -> str:
        """Returns the root directory for cached data, creating it if needed"""
        try:
            os.makedirs(self.root, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create cache folder {self.root}, check permissions")
            raise e
        return self.root
