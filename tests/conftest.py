from __future__ import annotations

import io
import sys
import zipfile
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import geopandas as gpd  # noqa: E402
import pytest  # noqa: E402
from shapely.geometry import box  # noqa: E402

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from census_config import ApiConfig  # noqa: E402

NY_COUNTIES = [
    ("Albany County, New York", "36", "001"),
    ("Bronx County, New York", "36", "005"),
    ("Kings County, New York", "36", "047"),
    ("New York County, New York", "36", "061"),
    ("Queens County, New York", "36", "081"),
    ("Richmond County, New York", "36", "085"),
]


class FakeResponse:
    def __init__(self, status_code: int = 200, payload=None, content: bytes = b"", text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.content = content
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeSession:
    """Records every GET and answers it with ``handler(url, params)``."""

    def __init__(self, handler) -> None:
        self.handler = handler
        self.calls: list[tuple[str, dict]] = []

    def get(self, url, params=None, timeout=None):
        params = dict(params or {})
        self.calls.append((url, params))
        return self.handler(url, params)

    def urls(self) -> list[str]:
        return [url for url, _ in self.calls]


def county_listing_response(counties=NY_COUNTIES) -> FakeResponse:
    rows = [["NAME", "state", "county"]] + [list(county) for county in counties]
    return FakeResponse(payload=rows)


def acs_response(params: dict, units: list[dict], geo_columns: list[str], value_for) -> FakeResponse:
    """Answer a data API call for ``units`` the way api.census.gov lays out rows."""
    fields = params["get"].split(",")
    rows = [fields + geo_columns]
    for unit in units:
        row = [unit["NAME"] if field == "NAME" else value_for(unit, field) for field in fields]
        rows.append(row + [unit[column] for column in geo_columns])
    return FakeResponse(payload=rows)


def in_clause(params: dict) -> dict[str, str]:
    parts = {}
    for piece in params.get("in", "").split():
        key, _, value = piece.partition(":")
        parts[key] = value
    return parts


def zipped_shapefile(gdf: gpd.GeoDataFrame, name: str, folder: Path) -> bytes:
    layer_dir = folder / name
    layer_dir.mkdir(parents=True, exist_ok=True)
    gdf.to_file(layer_dir / f"{name}.shp")
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zip_ref:
        for path in sorted(layer_dir.iterdir()):
            zip_ref.write(path, arcname=path.name)
    return buffer.getvalue()


def cell(col: int, row: int, size: float = 0.01, origin=(-74.1, 40.6)):
    x0, y0 = origin
    return box(x0 + col * size, y0 + row * size, x0 + (col + 1) * size, y0 + (row + 1) * size)


@pytest.fixture()
def api_config() -> ApiConfig:
    return ApiConfig(api_key=None, verbose=False)
