from __future__ import annotations

import os
import re
from dataclasses import dataclass, field

import us

from census_errors import InvalidRequestError

CENSUS_DATA_URL = "https://api.census.gov/data"
TIGER_BASE_URL = "https://www2.census.gov/geo/tiger"

# NAD83, the CRS of every TIGER/Line and cartographic boundary file
TIGER_CRS = "EPSG:4269"

GEOGRAPHIES = ("state", "county", "tract", "block group", "place")
SURVEYS = ("acs1", "acs3", "acs5")
OUTPUT_SHAPES = ("wide", "tidy")

BOUNDARY_LAYERS = GEOGRAPHIES
COUNTY_LAYERS = ("roads", "water", "linear water")
LINE_LAYERS = ("primary roads", "primary secondary roads") + COUNTY_LAYERS
LAYERS = BOUNDARY_LAYERS + LINE_LAYERS

_COUNTY_FILTERABLE = ("county", "tract", "block group")
_VARIABLE_CODE = re.compile(r"^[A-Z][A-Z0-9]*(_[A-Z0-9]+)+$")


@dataclass(frozen=True)
class ApiConfig:
    api_key: str | None = field(default_factory=lambda: os.environ.get("CENSUS_API_KEY"))
    data_url: str = CENSUS_DATA_URL
    tiger_url: str = TIGER_BASE_URL
    timeout: float | None = None
    batch_size: int = 48
    verbose: bool = True


def resolve_state(state) -> us.states.State:
    """Look up a state by postal abbreviation, name, or FIPS code."""
    key = str(state).strip()
    if key.isdigit():
        key = key.zfill(2)
    found = us.states.lookup(key)
    if found is None or not found.fips:
        raise InvalidRequestError(f"Unknown state: {state!r}")
    return found


def normalize_layer(layer: str) -> str:
    return " ".join(str(layer).strip().lower().replace("_", " ").split())


def _normalize_counties(counties) -> tuple[str, ...]:
    if counties is None:
        return ()
    if isinstance(counties, str):
        counties = [counties]
    seen = []
    for county in counties:
        value = str(county).strip()
        if value.isdigit():
            value = value.zfill(3)
        if not value:
            raise InvalidRequestError("County names must not be empty")
        if value not in seen:
            seen.append(value)
    return tuple(seen)


def strip_estimate_suffix(code: str) -> str:
    code = code.strip().upper()
    if code.endswith("E") and len(code) > 1 and (code[-2].isdigit() or code[-2] == "P"):
        return code[:-1]
    return code


def dataset_for_code(code: str) -> str | None:
    """Return the ACS sub-dataset a variable code lives in (None for detailed tables)."""
    if code.startswith("DP"):
        return "profile"
    if code.startswith("CP"):
        return "cprofile"
    if code.startswith("S"):
        return "subject"
    return None


class VariableSpec:
    """Ordered, read-only mapping of human-readable labels to ACS variable codes."""

    def __init__(self, variables):
        if isinstance(variables, VariableSpec):
            variables = variables.items()
        elif hasattr(variables, "items"):
            variables = variables.items()
        pairs = []
        for label, code in variables:
            label = str(label).strip()
            code = strip_estimate_suffix(str(code))
            if not label:
                raise InvalidRequestError("Variable labels must not be empty")
            if not _VARIABLE_CODE.match(code):
                raise InvalidRequestError(f"Malformed variable code for {label!r}: {code!r}")
            pairs.append((label, code))

        if not pairs:
            raise InvalidRequestError("At least one variable is required")
        labels = [label for label, _ in pairs]
        codes = [code for _, code in pairs]
        if len(set(labels)) != len(labels):
            raise InvalidRequestError("Variable labels must be unique")
        if len(set(codes)) != len(codes):
            raise InvalidRequestError("Variable codes must be unique")
        self._pairs = tuple(pairs)

    @property
    def labels(self) -> list[str]:
        return [label for label, _ in self._pairs]

    @property
    def codes(self) -> list[str]:
        return [code for _, code in self._pairs]

    def items(self):
        return list(self._pairs)

    def label_for(self, code: str) -> str:
        for label, known in self._pairs:
            if known == code:
                return label
        raise KeyError(code)

    def by_dataset(self) -> dict[str | None, list[str]]:
        grouped: dict[str | None, list[str]] = {}
        for code in self.codes:
            grouped.setdefault(dataset_for_code(code), []).append(code)
        return grouped

    def __getitem__(self, label):
        return dict(self._pairs)[label]

    def __iter__(self):
        return iter(self.labels)

    def __len__(self):
        return len(self._pairs)

    def __eq__(self, other):
        return isinstance(other, VariableSpec) and self._pairs == other._pairs

    def __hash__(self):
        return hash(self._pairs)

    def __repr__(self):
        return f"VariableSpec({dict(self._pairs)!r})"


def moe_column(label: str) -> str:
    return f"{label} MOE"


@dataclass(frozen=True)
class GeographyRequest:
    """Every option that shapes one ACS attribute fetch.

    ``cb`` picks simplified cartographic boundary polygons over full-resolution
    TIGER/Line ones when ``geometry`` is set. Full resolution is what matches
    the shapes drawn on the Census Bureau's own map viewers.
    """

    geography: str
    state: str
    year: int
    survey: str = "acs5"
    counties: tuple[str, ...] = ()
    output: str = "wide"
    geometry: bool = False
    cb: bool = True
    moe: bool = True

    def __post_init__(self):
        geography = normalize_layer(self.geography)
        object.__setattr__(self, "geography", geography)
        object.__setattr__(self, "state", resolve_state(self.state).fips)
        object.__setattr__(self, "counties", _normalize_counties(self.counties))
        object.__setattr__(self, "survey", str(self.survey).lower())
        object.__setattr__(self, "output", str(self.output).lower())
        year = int(self.year)
        object.__setattr__(self, "year", year)

        if geography not in GEOGRAPHIES:
            raise InvalidRequestError(
                f"Unsupported geography {self.geography!r}; expected one of {', '.join(GEOGRAPHIES)}"
            )
        if self.survey not in SURVEYS:
            raise InvalidRequestError(f"Unsupported survey {self.survey!r}")
        if self.output not in OUTPUT_SHAPES:
            raise InvalidRequestError(f"Output must be 'wide' or 'tidy', got {self.output!r}")
        if self.counties and geography not in _COUNTY_FILTERABLE:
            raise InvalidRequestError(f"A county filter cannot be applied to {geography} geography")

        if self.survey == "acs1":
            if geography in ("tract", "block group"):
                raise InvalidRequestError(f"The 1-year ACS is not published for {geography} geography")
            if year < 2005:
                raise InvalidRequestError("The 1-year ACS starts in 2005")
            if year == 2020:
                raise InvalidRequestError("The standard 2020 1-year ACS was not released")
        elif self.survey == "acs3":
            if not 2007 <= year <= 2013:
                raise InvalidRequestError("The 3-year ACS only covers 2007 through 2013")
            if geography in ("tract", "block group"):
                raise InvalidRequestError(f"The 3-year ACS is not published for {geography} geography")
        elif year < 2009:
            raise InvalidRequestError("The 5-year ACS starts in 2009")

        if geography == "block group" and year < 2013:
            raise InvalidRequestError("Block group estimates are available from 2013")

        if self.geometry:
            if self.cb and year < 2013:
                raise InvalidRequestError("Cartographic boundary files are available from 2013")
            if not self.cb and year < 2011:
                raise InvalidRequestError("TIGER/Line boundary files are available from 2011")


@dataclass(frozen=True)
class GeometryRequest:
    """Options for one TIGER layer download.

    ``filter_by`` may be a GeoDataFrame, a GeoSeries, or a shapely geometry;
    only features intersecting it are kept.
    """

    layer: str
    state: str | None = None
    year: int = 2022
    counties: tuple[str, ...] = ()
    cb: bool = False
    filter_by: object = None

    def __post_init__(self):
        layer = normalize_layer(self.layer)
        object.__setattr__(self, "layer", layer)
        object.__setattr__(self, "counties", _normalize_counties(self.counties))
        object.__setattr__(self, "year", int(self.year))

        if layer not in LAYERS:
            raise InvalidRequestError(f"Unsupported layer {self.layer!r}; expected one of {', '.join(LAYERS)}")
        if self.state is not None:
            object.__setattr__(self, "state", resolve_state(self.state).fips)
        elif layer not in ("state", "county", "primary roads"):
            raise InvalidRequestError(f"The {layer} layer requires a state")

        if self.cb and layer not in BOUNDARY_LAYERS:
            raise InvalidRequestError(f"No cartographic boundary version exists for {layer}")
        if self.cb and self.year < 2013:
            raise InvalidRequestError("Cartographic boundary files are available from 2013")
        if not self.cb and self.year < 2011:
            raise InvalidRequestError("TIGER/Line files are only supported from 2011")
        if self.counties and layer not in COUNTY_LAYERS + ("tract", "block group", "county"):
            raise InvalidRequestError(f"A county filter cannot be applied to the {layer} layer")
        if self.counties and self.state is None:
            raise InvalidRequestError("A county filter requires a state")
