from __future__ import annotations

import pandas as pd
import requests

from census_config import ApiConfig, resolve_state
from census_errors import InvalidRequestError, RemoteFetchError

_COUNTY_SUFFIXES = (
    " city and borough",
    " census area",
    " municipality",
    " borough",
    " county",
    " parish",
    " city",
)


def _short_error_text(text: str, limit: int = 240) -> str:
    one_line = " ".join(str(text).split())
    if len(one_line) <= limit:
        return one_line
    return one_line[:limit] + "..."


def acs_url(config: ApiConfig, year: int, survey: str, dataset: str | None = None) -> str:
    url = f"{config.data_url}/{year}/acs/{survey}"
    if dataset:
        url = f"{url}/{dataset}"
    return url


def http_get(session, url: str, params: dict | None, *, stage: str, config: ApiConfig):
    """Issue one blocking GET. Transport failures surface as RemoteFetchError."""
    http = session if session is not None else requests
    try:
        return http.get(url, params=params, timeout=config.timeout)
    except requests.RequestException as exc:
        raise RemoteFetchError(stage, f"Network error: {exc!s}") from exc


def request_rows(session, url: str, params: dict, *, stage: str, config: ApiConfig) -> pd.DataFrame:
    """Query the Census data API and return its row array as a DataFrame.

    The API answers with a JSON list of lists whose first row is the header.
    An unknown variable or geography comes back as HTTP 400 with a plain text
    explanation; an empty result set comes back as HTTP 204.
    """
    params = dict(params)
    if config.api_key:
        params["key"] = config.api_key

    response = http_get(session, url, params, stage=stage, config=config)
    status = response.status_code
    if status == 204:
        raise RemoteFetchError(stage, "The Census API returned no rows for this request")
    if status != 200:
        raise RemoteFetchError(stage, f"HTTP {status}: {_short_error_text(response.text)}")

    try:
        payload = response.json()
    except ValueError as exc:
        raise RemoteFetchError(
            stage, f"Invalid JSON in Census API response: {_short_error_text(response.text)}"
        ) from exc

    if not isinstance(payload, list) or len(payload) < 2:
        raise RemoteFetchError(stage, "The Census API returned no rows for this request")
    return pd.DataFrame(payload[1:], columns=payload[0])


def list_counties(state, year: int, survey: str = "acs5", session=None, config: ApiConfig | None = None) -> pd.DataFrame:
    """Return NAME, short_name, state and 3-digit county FIPS for every county in a state."""
    config = config or ApiConfig()
    fips = resolve_state(state).fips
    # the 1-year survey only lists large counties
    if survey != "acs5" or year < 2009:
        survey, year = "acs5", max(year, 2009)

    rows = request_rows(
        session,
        acs_url(config, year, survey),
        {"get": "NAME", "for": "county:*", "in": f"state:{fips}"},
        stage="counties",
        config=config,
    )
    rows["state"] = rows["state"].astype(str).str.zfill(2)
    rows["county"] = rows["county"].astype(str).str.zfill(3)
    rows["short_name"] = rows["NAME"].str.split(",").str[0].str.strip()
    return rows[["NAME", "short_name", "state", "county"]].reset_index(drop=True)


def _county_key(name: str) -> str:
    lowered = name.strip().lower()
    for suffix in _COUNTY_SUFFIXES:
        if lowered.endswith(suffix):
            return lowered[: -len(suffix)].strip()
    return lowered


def resolve_counties(state, counties, year: int, survey: str = "acs5", session=None, config: ApiConfig | None = None) -> list[str]:
    """Turn county names and/or FIPS codes into an ordered list of FIPS codes.

    The county listing is only requested when at least one entry is a name.
    """
    counties = list(counties or ())
    if all(county.isdigit() for county in counties):
        return list(dict.fromkeys(county.zfill(3) for county in counties))

    listing = list_counties(state, year, survey, session=session, config=config)
    lookup: dict[str, str] = {}
    for short_name, fips in zip(listing["short_name"], listing["county"]):
        lookup.setdefault(short_name.lower(), fips)
    for short_name, fips in zip(listing["short_name"], listing["county"]):
        lookup.setdefault(_county_key(short_name), fips)

    resolved: list[str] = []
    for county in counties:
        if county.isdigit():
            fips = county.zfill(3)
        else:
            fips = lookup.get(county.lower()) or lookup.get(_county_key(county))
        if fips is None:
            raise InvalidRequestError(f"Unknown county {county!r} in state {resolve_state(state).name}")
        if fips not in resolved:
            resolved.append(fips)
    return resolved
