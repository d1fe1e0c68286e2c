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

from datetime import date
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from rasterdatasources.data.modis import DateCode, SubsetRow, SubsetWindow
    from rasterdatasources.lexicon.modis import LayerCatalog


@runtime_checkable
class DataProduct(Protocol):
    """Remote point subset product interface.

    Product specific quirks (layer name prefixes, native date codes, response
    layout) live behind these three capabilities.
    """

    def catalog(self) -> "LayerCatalog":
        """Ordered layer catalog of the product.

        Returns
        -------
        LayerCatalog
            Raw layer names and sanitized keys in canonical index order
        """
        pass

    def availability(
        self,
        lat: float,
        lon: float,
        start: date | None = None,
        end: date | None = None,
    ) -> list["DateCode"]:
        """Capture dates available at a location.

        Parameters
        ----------
        lat : float
            Latitude (degrees)
        lon : float
            Longitude (degrees)
        start : date | None, optional
            First date of the interval, None for the first available date
        end : date | None, optional
            Last date of the interval, None for the last available date

        Returns
        -------
        list[DateCode]
            Chronological (calendar date, native code) pairs inside [start, end]
        """
        pass

    def subset_window(self, window: "SubsetWindow") -> list["SubsetRow"]:
        """Fetch the flat pixel rows of a single subset window.

        Parameters
        ----------
        window : SubsetWindow
            Window of at most 10 native dates

        Returns
        -------
        list[SubsetRow]
            Rows of every (band, date) group in the window, row-major per group
        """
        pass
