from __future__ import annotations

import tempfile
import zipfile
from pathlib import Path

import geopandas as gpd
import pandas as pd
from shapely.geometry.base import BaseGeometry
from tqdm import tqdm

from census_api import http_get, list_counties, resolve_counties
from census_config import (
    BOUNDARY_LAYERS,
    COUNTY_LAYERS,
    TIGER_CRS,
    ApiConfig,
    GeometryRequest,
)
from census_errors import ProjectionMismatchError, RemoteFetchError

# layer: (TIGER/Line directory, file scope, file suffix)
TIGER_FILES = {
    "state": ("STATE", "us", "state"),
    "county": ("COUNTY", "us", "county"),
    "tract": ("TRACT", "state", "tract"),
    "block group": ("BG", "state", "bg"),
    "place": ("PLACE", "state", "place"),
    "primary roads": ("PRIMARYROADS", "us", "primaryroads"),
    "primary secondary roads": ("PRISECROADS", "state", "prisecroads"),
    "roads": ("ROADS", "county", "roads"),
    "water": ("AREAWATER", "county", "areawater"),
    "linear water": ("LINEARWATER", "county", "linearwater"),
}

GEOID_PARTS = {
    "state": [("STATEFP", 2)],
    "county": [("STATEFP", 2), ("COUNTYFP", 3)],
    "tract": [("STATEFP", 2), ("COUNTYFP", 3), ("TRACTCE", 6)],
    "block group": [("STATEFP", 2), ("COUNTYFP", 3), ("TRACTCE", 6), ("BLKGRPCE", 1)],
    "place": [("STATEFP", 2), ("PLACEFP", 5)],
}


def boundary_file_url(layer, year, *, state=None, county=None, cb=False, config=None):
    """
    Build the download URL of a zipped TIGER/Line or cartographic boundary shapefile.

    Cartographic boundary ("cb") files are generalized for small-scale mapping;
    TIGER/Line files carry the full-resolution shapes.
    """
    config = config or ApiConfig()
    directory, scope, suffix = TIGER_FILES[layer]
    code = {"us": "us", "state": state, "county": f"{state}{county}"}[scope]
    if cb:
        folder = f"GENZ{year}" if year == 2013 else f"GENZ{year}/shp"
        return f"{config.tiger_url}/{folder}/cb_{year}_{code}_{suffix}_500k.zip"
    return f"{config.tiger_url}/TIGER{year}/{directory}/tl_{year}_{code}_{suffix}.zip"


def read_zipped_layer(url, *, stage, session=None, config=None):
    """Download a zipped shapefile and load it; the archive only lives for this call."""
    config = config or ApiConfig()
    response = http_get(session, url, None, stage=stage, config=config)
    if response.status_code != 200:
        raise RemoteFetchError(stage, f"HTTP {response.status_code} downloading {url}")

    archive_name = url.rsplit("/", 1)[-1]
    with tempfile.TemporaryDirectory() as folder:
        archive = Path(folder) / archive_name
        archive.write_bytes(response.content)
        try:
            with zipfile.ZipFile(archive) as zip_ref:
                zip_ref.extractall(Path(folder) / "layer")
        except zipfile.BadZipFile as exc:
            raise RemoteFetchError(stage, f"{archive_name} is not a valid zip file") from exc

        shapefiles = sorted((Path(folder) / "layer").rglob("*.shp"))
        if not shapefiles:
            raise RemoteFetchError(stage, f"No shapefile found inside {archive_name}")
        layer = gpd.read_file(shapefiles[0])

    if layer.empty:
        raise RemoteFetchError(stage, f"{archive_name} contains no features")
    if layer.crs is None:
        layer = layer.set_crs(TIGER_CRS)
    if config.verbose:
        print(f"Retrieved {len(layer)} features from {archive_name}")
    return layer


def ensure_geoid(layer, geography):
    """Make sure a boundary layer carries a string GEOID column for joining."""
    layer = layer.copy()
    for legacy in ("GEOID20", "GEOID10"):
        if "GEOID" not in layer.columns and legacy in layer.columns:
            layer = layer.rename(columns={legacy: "GEOID"})

    if "GEOID" not in layer.columns:
        parts = GEOID_PARTS[geography]
        missing = [column for column, _ in parts if column not in layer.columns]
        if missing:
            raise RemoteFetchError(geography, f"Boundary file lacks GEOID and {', '.join(missing)}")
        layer["GEOID"] = ""
        for column, width in parts:
            layer["GEOID"] = layer["GEOID"] + layer[column].astype(str).str.zfill(width)

    layer["GEOID"] = layer["GEOID"].astype(str)
    return layer


def mask_geometry(boundary, crs):
    """Collapse a filter boundary into a single geometry expressed in ``crs``.

    Bare shapely geometries carry no CRS and are taken to be in ``crs`` already.
    """
    if isinstance(boundary, BaseGeometry):
        return boundary
    if isinstance(boundary, (gpd.GeoDataFrame, gpd.GeoSeries)):
        if boundary.crs is None:
            raise ProjectionMismatchError("The filter boundary has no CRS; set one before filtering")
        return boundary.to_crs(crs).union_all()
    raise TypeError(f"filter_by must be a GeoDataFrame, GeoSeries or shapely geometry, not {type(boundary).__name__}")


def filter_by_boundary(layer, boundary):
    mask = mask_geometry(boundary, layer.crs)
    return layer.loc[layer.intersects(mask)]


def _layer_counties(request, session, config):
    if request.counties:
        return resolve_counties(request.state, request.counties, request.year, session=session, config=config)

    if request.filter_by is not None:
        counties = fetch_geometry(
            GeometryRequest(
                layer="county",
                state=request.state,
                year=request.year,
                cb=request.year >= 2013,
                filter_by=request.filter_by,
            ),
            session=session,
            config=config,
        )
        return sorted(counties["COUNTYFP"].astype(str).str.zfill(3).unique())

    return list_counties(request.state, request.year, session=session, config=config)["county"].tolist()


def fetch_geometry(request, session=None, config=None):
    """
    Download a TIGER layer (boundaries, roads or water) for a region.

    Args:
        request: GeometryRequest naming the layer, state, vintage and optional filters
        session: object with a requests-style ``get``; the requests module when omitted
        config: ApiConfig with base URLs and verbosity

    Returns:
        GeoDataFrame of features with their TIGER descriptive columns
    """
    config = config or ApiConfig()
    layer_name = request.layer
    stage = f"tiger:{layer_name}"

    if layer_name in COUNTY_LAYERS:
        counties = _layer_counties(request, session, config)
        if not counties:
            raise RemoteFetchError(stage, f"No {layer_name} features intersect the filter boundary")
        frames = []
        for county in tqdm(counties, desc=f"Downloading {layer_name}", disable=not config.verbose):
            url = boundary_file_url(layer_name, request.year, state=request.state, county=county, config=config)
            frames.append(read_zipped_layer(url, stage=f"{stage}:{county}", session=session, config=config))
        layer = gpd.GeoDataFrame(pd.concat(frames, ignore_index=True), crs=frames[0].crs)
    else:
        url = boundary_file_url(layer_name, request.year, state=request.state, cb=request.cb, config=config)
        layer = read_zipped_layer(url, stage=stage, session=session, config=config)
        if layer_name in BOUNDARY_LAYERS:
            layer = ensure_geoid(layer, layer_name)

        if layer_name in ("state", "county") and request.state is not None:
            layer = layer.loc[layer["STATEFP"].astype(str).str.zfill(2) == request.state]
        if request.counties:
            counties = resolve_counties(request.state, request.counties, request.year, session=session, config=config)
            layer = layer.loc[layer["COUNTYFP"].astype(str).str.zfill(3).isin(counties)]

    if request.filter_by is not None:
        layer = filter_by_boundary(layer, request.filter_by)
        if layer.empty:
            raise RemoteFetchError(stage, f"No {layer_name} features intersect the filter boundary")
        if config.verbose:
            print(f"{len(layer)} {layer_name} features intersect the filter boundary")

    return layer.reset_index(drop=True)


def fetch_boundaries(geography, state, year, *, cb=True, counties=(), session=None, config=None):
    """Polygons for an ACS geography level, keyed by GEOID."""
    request = GeometryRequest(layer=geography, state=state, year=year, counties=tuple(counties), cb=cb)
    boundaries = fetch_geometry(request, session=session, config=config)
    return boundaries.drop_duplicates("GEOID").reset_index(drop=True)
