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

from datetime import date, timedelta

import pytest
import requests

from rasterdatasources.config import SourceConfig

NDVI_BANDS = "250m_16_days_NDVI,250m_16_days_EVI,250m_16_days_VI_Quality\n"


def modis_code(day: date) -> str:
    return f"A{day.year}{day.timetuple().tm_yday:03d}"


class FakeResponse:
    def __init__(self, status_code=200, json_body=None, text=""):
        self.status_code = status_code
        self._json = json_body
        self.text = text
        self.content = text.encode("utf-8")

    def json(self):
        if self._json is None:
            raise ValueError("Response body is not JSON")
        return self._json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


class FakeSession:
    """Session answering GET requests from a table of URL suffix handlers"""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append((url, dict(params or {}), dict(headers or {}), timeout))
        for suffix, handler in self.routes.items():
            if url.endswith(suffix):
                return handler(params or {}) if callable(handler) else handler
        raise requests.ConnectionError(f"No route for {url}")

    def count(self, suffix):
        return sum(1 for call in self.calls if call[0].endswith(suffix))


class ModisService:
    """In memory subset service with a fixed list of available dates"""

    def __init__(
        self,
        dates,
        bands=NDVI_BANDS,
        nrows=2,
        ncols=3,
        cellsize=500.0,
    ):
        self.dates = list(dates)
        self.nrows = nrows
        self.ncols = ncols
        self.cellsize = cellsize
        self.session = FakeSession(
            {
                "/bands": FakeResponse(text=bands),
                "/dates": self.list_dates,
                "/subset": self.subset,
            }
        )

    def list_dates(self, params):
        return FakeResponse(
            json_body={
                "dates": [
                    {"modis_date": modis_code(d), "calendar_date": d.isoformat()}
                    for d in self.dates
                ]
            }
        )

    def subset(self, params):
        start, end = params["startDate"], params["endDate"]
        size = self.nrows * self.ncols
        entries = []
        for i, d in enumerate(self.dates):
            if start <= modis_code(d) <= end:
                entries.append(
                    {
                        "modis_date": modis_code(d),
                        "calendar_date": d.isoformat(),
                        "band": params["band"],
                        "tile": "h18v04",
                        "proc_date": "2020062000000",
                        "data": [float(i * size + p) for p in range(size)],
                    }
                )
        return FakeResponse(
            json_body={
                "xllcorner": "0.00",
                "yllcorner": "0.00",
                "cellsize": self.cellsize,
                "nrows": self.nrows,
                "ncols": self.ncols,
                "band": params["band"],
                "units": "NDVI",
                "scale": "0.0001",
                "latitude": float(params["latitude"]),
                "longitude": float(params["longitude"]),
                "header": "https://modis.ornl.gov/rst/api/v1/",
                "subset": entries,
            }
        )


@pytest.fixture
def config(tmp_path):
    return SourceConfig(root=str(tmp_path), verbose=False)


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def modis_service():
    def build(n_dates=16, first=date(2002, 1, 1), step=8, **kwargs):
        dates = [first + timedelta(days=step * i) for i in range(n_dates)]
        return ModisService(dates, **kwargs)

    return build


@pytest.fixture
def reprojector():
    calls = []

    def reproject(x, y):
        calls.append((x, y))
        return 45.0, 5.0

    reproject.calls = calls
    return reproject


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "slow: mark test as requiring the remote subset service"
    )
