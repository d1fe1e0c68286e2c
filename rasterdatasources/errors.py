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

from datetime import date as _date
from typing import Any


class RasterSourceError(Exception):
    """Base error for raster data source failures.

    Parameters
    ----------
    message : str
        Human readable description of the failure
    product : str | None, optional
        Remote product id the failure relates to, by default None
    layer : str | None, optional
        Layer key or raw layer name the failure relates to, by default None
    date : Any, optional
        Date, date code or date range the failure relates to, by default None
    """

    def __init__(
        self,
        message: str,
        product: str | None = None,
        layer: str | None = None,
        date: Any = None,
    ):
        self.message = message
        self.product = product
        self.layer = layer
        self.date = date
        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        """Non-empty request context attached to this error."""
        context = {"product": self.product, "layer": self.layer, "date": self.date}
        return {k: v for k, v in context.items() if v is not None}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        parts = []
        for key, value in self.context.items():
            if isinstance(value, _date):
                value = value.isoformat()
            parts.append(f"{key}={value}")
        return f"{self.message} ({', '.join(parts)})"


class InvalidLayer(RasterSourceError, KeyError):
    """Layer selector is not part of the product's layer catalog."""


class InvalidParameter(RasterSourceError, ValueError):
    """Request argument is malformed or out of the accepted range."""


class NoDataInRange(RasterSourceError, LookupError):
    """No capture dates or subset rows exist for the requested window."""


class TooManyDatesInWindow(RasterSourceError, RuntimeError):
    """A subset window exceeds the remote per-request date limit."""


class RemoteRequestFailed(RasterSourceError, ConnectionError):
    """Transport failure or non-success status from a remote endpoint."""


class MalformedResponse(RasterSourceError, ValueError):
    """Remote response does not have the expected structure."""


class ReprojectionFailed(RasterSourceError, RuntimeError):
    """Coordinate reprojection service failed or returned non-numeric values."""


class CatalogUnavailable(RasterSourceError, RuntimeError):
    """Layer catalog could not be read from cache nor fetched, or is ambiguous."""
