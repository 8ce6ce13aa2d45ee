from __future__ import annotations

import geopandas as gpd
import numpy as np
import pandas as pd

from census_api import acs_url, list_counties, request_rows, resolve_counties
from census_config import ApiConfig, GeographyRequest, VariableSpec, moe_column
from tiger_download import fetch_boundaries

# ACS annotation values that stand in for a missing estimate or margin of error
ACS_SENTINELS = (
    -999999999,
    -888888888,
    -666666666,
    -555555555,
    -333333333,
    -222222222,
)

GEOID_PARTS = {
    "state": [("state", 2)],
    "county": [("state", 2), ("county", 3)],
    "tract": [("state", 2), ("county", 3), ("tract", 6)],
    "block group": [("state", 2), ("county", 3), ("tract", 6), ("block group", 1)],
    "place": [("state", 2), ("place", 5)],
}


def geography_queries(request, counties):
    """
    Build the ``for``/``in`` clauses for a request.

    Tracts and block groups are requested one county at a time, the same way
    the tract downloads have always been run; every other level is one call.
    """
    state = request.state
    geography = request.geography
    if geography == "state":
        return [("state", {"for": f"state:{state}"})]
    if geography == "county":
        selector = ",".join(counties) if counties else "*"
        return [("counties", {"for": f"county:{selector}", "in": f"state:{state}"})]
    if geography == "place":
        return [("places", {"for": "place:*", "in": f"state:{state}"})]
    if geography == "tract":
        if not counties:
            return [("tracts", {"for": "tract:*", "in": f"state:{state}"})]
        return [
            (f"county {county}", {"for": "tract:*", "in": f"state:{state} county:{county}"})
            for county in counties
        ]
    return [
        (f"county {county}", {"for": "block group:*", "in": f"state:{state} county:{county} tract:*"})
        for county in counties
    ]


def build_geoid(frame, geography):
    geoid = pd.Series("", index=frame.index)
    for column, width in GEOID_PARTS[geography]:
        geoid = geoid + frame[column].astype(str).str.zfill(width)
    return geoid


def _batches(codes, size):
    return [codes[i:i + size] for i in range(0, len(codes), size)]


def fetch_acs_batch(request, dataset, codes, queries, session=None, config=None):
    """
    Fetch one batch of variables for every geography clause of a request.

    Returns:
        DataFrame with GEOID, NAME and the raw ``<code>E``/``<code>M`` columns
    """
    config = config or ApiConfig()
    fields = [f"{code}E" for code in codes]
    if request.moe:
        fields += [f"{code}M" for code in codes]
    url = acs_url(config, request.year, request.survey, dataset)

    frames = []
    for description, clause in queries:
        params = {"get": ",".join(["NAME"] + fields), **clause}
        rows = request_rows(
            session, url, params, stage=f"acs:{request.geography}:{description}", config=config
        )
        if config.verbose:
            print(f"Requesting {request.geography} data for {description}... got {len(rows)} rows.")
        frames.append(rows)

    data = pd.concat(frames, ignore_index=True)
    data["GEOID"] = build_geoid(data, request.geography)
    return data[["GEOID", "NAME"] + fields]


def _clean_estimates(series):
    values = pd.to_numeric(series, errors="coerce").astype("float64")
    return values.mask(values.isin(ACS_SENTINELS), np.nan)


def fetch_acs(request, variables, session=None, config=None):
    """
    Download ACS estimates for a set of variables over one geography.

    Args:
        request: GeographyRequest describing geography, state, counties, vintage and output
        variables: VariableSpec (or a label -> code mapping)
        session: object with a requests-style ``get``; the requests module when omitted
        config: ApiConfig with base URLs, API key and batch size

    Returns:
        DataFrame (GeoDataFrame when geometry was requested) in wide or tidy shape
    """
    config = config or ApiConfig()
    variables = VariableSpec(variables)

    counties = resolve_counties(
        request.state, request.counties, request.year, request.survey, session=session, config=config
    )
    if request.geography == "block group" and not counties:
        counties = list_counties(request.state, request.year, session=session, config=config)["county"].tolist()
    queries = geography_queries(request, counties)

    table = None
    for dataset, codes in variables.by_dataset().items():
        for batch in _batches(codes, config.batch_size):
            part = fetch_acs_batch(request, dataset, batch, queries, session=session, config=config)
            if table is None:
                table = part
            else:
                table = table.merge(part, on="GEOID", how="outer", suffixes=("", "_batch"))
                table["NAME"] = table["NAME"].fillna(table.pop("NAME_batch"))

    columns = ["GEOID", "NAME"]
    renames = {}
    for label, code in variables.items():
        table[f"{code}E"] = _clean_estimates(table[f"{code}E"])
        renames[f"{code}E"] = label
        columns.append(label)
        if request.moe:
            table[f"{code}M"] = _clean_estimates(table[f"{code}M"])
            renames[f"{code}M"] = moe_column(label)
            columns.append(moe_column(label))
    table = table.rename(columns=renames)[columns].reset_index(drop=True)

    if config.verbose:
        print(f"Total ACS {request.geography} records downloaded: {len(table)}")

    if request.geometry:
        table = attach_geometry(table, request, counties, session=session, config=config)

    if request.output == "tidy":
        return to_tidy(table, variables)
    return table


def attach_geometry(table, request, counties=(), session=None, config=None):
    """Left-join boundary polygons onto an attribute table by GEOID."""
    boundaries = fetch_boundaries(
        request.geography,
        request.state,
        request.year,
        cb=request.cb,
        counties=counties,
        session=session,
        config=config,
    )
    geometry = pd.DataFrame({"GEOID": boundaries["GEOID"].to_numpy(), "geometry": boundaries.geometry.to_numpy()})
    merged = pd.DataFrame(table).merge(geometry, on="GEOID", how="left")
    return gpd.GeoDataFrame(merged, geometry="geometry", crs=boundaries.crs)


def to_tidy(wide, variables):
    """Reshape a wide table to one row per (geography unit, variable)."""
    variables = VariableSpec(variables)
    id_columns = [column for column in ("GEOID", "NAME") if column in wide.columns]
    has_geometry = isinstance(wide, gpd.GeoDataFrame)

    frames = []
    for order, label in enumerate(variables.labels):
        part = pd.DataFrame({column: wide[column].to_numpy() for column in id_columns})
        part["variable"] = label
        part["estimate"] = wide[label].to_numpy()
        if moe_column(label) in wide.columns:
            part["moe"] = wide[moe_column(label)].to_numpy()
        if has_geometry:
            part["geometry"] = wide.geometry.to_numpy()
        part["_row"] = np.arange(len(wide))
        part["_var"] = order
        frames.append(part)

    tidy = pd.concat(frames, ignore_index=True)
    tidy = tidy.sort_values(["_row", "_var"], kind="stable").drop(columns=["_row", "_var"])
    tidy = tidy.reset_index(drop=True)
    if has_geometry:
        tidy = gpd.GeoDataFrame(tidy, geometry="geometry", crs=wide.crs)
    return tidy


def to_wide(tidy, variables):
    """Reshape a tidy table back to one row per geography unit."""
    variables = VariableSpec(variables)
    id_columns = [column for column in ("GEOID", "NAME") if column in tidy.columns]
    has_geometry = isinstance(tidy, gpd.GeoDataFrame)

    units = tidy.drop_duplicates("GEOID")
    wide = pd.DataFrame({column: units[column].to_numpy() for column in id_columns})
    estimates = tidy.pivot(index="GEOID", columns="variable", values="estimate")
    moes = tidy.pivot(index="GEOID", columns="variable", values="moe") if "moe" in tidy.columns else None

    for label in variables.labels:
        wide[label] = estimates[label].reindex(wide["GEOID"]).to_numpy()
        if moes is not None:
            wide[moe_column(label)] = moes[label].reindex(wide["GEOID"]).to_numpy()

    if has_geometry:
        wide["geometry"] = units.geometry.to_numpy()
        wide = gpd.GeoDataFrame(wide, geometry="geometry", crs=tidy.crs)
    return wide
