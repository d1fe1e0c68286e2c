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
import re
from collections import Counter
from collections.abc import Iterator, Sequence
from dataclasses import dataclass

import numpy as np
import requests
from loguru import logger

from rasterdatasources.config import SourceConfig
from rasterdatasources.errors import CatalogUnavailable, InvalidLayer

# Resolution / period prefixes such as "250m", "16", "1km" or "16days"
UNIT_TOKEN = re.compile(r"(?:\d+(?:m|km|days?)?|m|meters?|km)", re.IGNORECASE)
# Day count unit, only a unit right after a number ("16_days", "8_Days")
PERIOD_TOKEN = re.compile(r"days?", re.IGNORECASE)
NUMBER_TOKEN = re.compile(r"\d+")
SEPARATOR = "_"


def catalog_path(product: str, config: SourceConfig) -> str:
    """Local cache path of the layer list of a MODIS product"""
    return os.path.join(config.root, "MODIS", "layers", f"{product}.csv")


def _parse_layer_line(text: str, product: str) -> list[str]:
    lines = text.splitlines()
    names = []
    if lines:
        names = [n.strip().strip('"') for n in lines[0].split(",")]
        names = [n for n in names if n]
    if not names:
        raise CatalogUnavailable("Layer listing is empty", product=product)
    return names


def list_layers(
    product: str,
    config: SourceConfig,
    session: requests.Session | None = None,
) -> list[str]:
    """Lists available raw layer names for a given MODIS product

    Looks in ``{root}/MODIS/layers`` for a file with the product name. If not found,
    sends a request to the server to get the list and stores the raw response there.
    This allows as many catalog look ups as needed without issuing repeated requests.

    Parameters
    ----------
    product : str
        MODIS product id, e.g. "MOD13Q1"
    config : SourceConfig
        Source configuration
    session : requests.Session | None, optional
        HTTP session used on cache miss, by default None

    Returns
    -------
    list[str]
        Raw layer names in catalog order

    Raises
    ------
    CatalogUnavailable
        If the catalog can neither be read from cache nor fetched
    """
    path = catalog_path(product, config)

    if os.path.isfile(path):
        try:
            with open(path, encoding="utf-8") as f:
                text = f.read()
            logger.debug(f"Using cached layer list {path}")
            return _parse_layer_line(text, product)
        except (OSError, UnicodeDecodeError, CatalogUnavailable) as e:
            logger.warning(f"Failed to read cached layer list {path}: {e}")

    logger.info(f"Starting download of layers list for product {product}")
    url = f"{config.base_url}/{product}/bands"
    session = session if session is not None else requests.Session()
    try:
        response = session.get(
            url, headers={"Accept": "text/csv"}, timeout=config.request_timeout
        )
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"Layer list request {url} failed")
        raise CatalogUnavailable(
            f"Layer catalog not cached at {path} and request to {url} failed",
            product=product,
        ) from e

    names = _parse_layer_line(response.text, product)
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(response.content)
    except OSError as e:
        logger.error(f"Failed to write layer list to {path}")
        raise CatalogUnavailable(
            f"Failed to persist layer catalog to {path}", product=product
        ) from e

    return names


def _is_unit_token(tokens: Sequence[str], i: int) -> bool:
    if UNIT_TOKEN.fullmatch(tokens[i]):
        return True
    return (
        i > 0
        and PERIOD_TOKEN.fullmatch(tokens[i]) is not None
        and NUMBER_TOKEN.fullmatch(tokens[i - 1]) is not None
    )


def sanitize_keys(raw_names: Sequence[str]) -> list[str]:
    """Build code friendly keys from raw layer names

    For some products, layer names start with resolution or period tokens (e.g.
    "250m_16_days_NDVI"). The leading run of such tokens is removed, stopping at the
    first token that is not unit like, so "250m_16_days_NDVI" becomes "NDVI".
    A "day" or "days" token only counts as a unit right after a number, so the
    daytime "Day" of "Day_view_time" is kept.

    Parameters
    ----------
    raw_names : Sequence[str]
        Raw layer names in catalog order

    Returns
    -------
    list[str]
        Sanitized keys in catalog order

    Raises
    ------
    CatalogUnavailable
        If two layer names collapse to the same key
    """
    keys = []
    for name in raw_names:
        tokens = name.split(SEPARATOR)
        start = 0
        while start < len(tokens) and _is_unit_token(tokens, start):
            start += 1
        key = SEPARATOR.join(tokens[start:])
        if not key:
            logger.warning(
                f"Layer name {name} only contains unit tokens, using it unchanged as key"
            )
            key = name
        keys.append(key)

    duplicates = [k for k, count in Counter(keys).items() if count > 1]
    if duplicates:
        clashes = [n for n, k in zip(raw_names, keys) if k in duplicates]
        logger.error(f"Ambiguous layer keys {duplicates}")
        raise CatalogUnavailable(
            f"Layer names {clashes} collapse to the same keys {duplicates}"
        )
    return keys


@dataclass(frozen=True)
class LayerCatalog:
    """Ordered layer catalog of a product

    Position in the catalog is the canonical integer index of a layer. Layers can be
    selected by sanitized key, raw name or index.

    Parameters
    ----------
    product : str
        MODIS product id
    names : tuple[str, ...]
        Raw layer names used by the remote API
    keys : tuple[str, ...]
        Sanitized keys, same order as names
    """

    product: str
    names: tuple[str, ...]
    keys: tuple[str, ...]

    @classmethod
    def from_names(cls, product: str, names: Sequence[str]) -> "LayerCatalog":
        """Build catalog from raw layer names"""
        return cls(product, tuple(names), tuple(sanitize_keys(names)))

    def __len__(self) -> int:
        return len(self.names)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys)

    def __contains__(self, selector: object) -> bool:
        try:
            self.index(selector)  # type: ignore[arg-type]
        except InvalidLayer:
            return False
        return True

    def __getitem__(self, selector: str | int) -> str:
        """Raw layer name of a selector"""
        return self.names[self.index(selector)]

    def index(self, selector: str | int) -> int:
        """Integer index of a layer

        Parameters
        ----------
        selector : str | int
            Sanitized key, raw layer name or 0-based index

        Returns
        -------
        int
            Catalog index

        Raises
        ------
        InvalidLayer
            If the selector is not in the catalog
        """
        if isinstance(selector, (int, np.integer)) and not isinstance(selector, bool):
            if 0 <= selector < len(self.names):
                return int(selector)
        elif isinstance(selector, str):
            if selector in self.keys:
                return self.keys.index(selector)
            if selector in self.names:
                return self.names.index(selector)
        raise InvalidLayer(
            f"Layer {selector!r} not found in catalog, valid keys are {list(self.keys)}",
            product=self.product,
            layer=str(selector),
        )

    def name(self, selector: str | int) -> str:
        """Raw layer name of a layer"""
        return self.names[self.index(selector)]

    def key(self, selector: str | int) -> str:
        """Sanitized key of a layer"""
        return self.keys[self.index(selector)]


def layer_catalog(
    product: str,
    config: SourceConfig,
    session: requests.Session | None = None,
) -> LayerCatalog:
    """Resolve the layer catalog of a product, see :py:func:`list_layers`"""
    return LayerCatalog.from_names(product, list_layers(product, config, session))
