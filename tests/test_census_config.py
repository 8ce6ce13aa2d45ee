from __future__ import annotations

import pytest

from census_config import GeographyRequest, GeometryRequest, VariableSpec, moe_column, resolve_state
from census_errors import InvalidRequestError


def test_variable_spec_keeps_order_and_strips_estimate_suffix() -> None:
    spec = VariableSpec({"Median rent": "B25064_001E", "% Black": "DP05_0038PE", "Poverty rate": "S1701_C03_001"})
    assert spec.labels == ["Median rent", "% Black", "Poverty rate"]
    assert spec.codes == ["B25064_001", "DP05_0038P", "S1701_C03_001"]
    assert spec["Median rent"] == "B25064_001"
    assert spec.label_for("DP05_0038P") == "% Black"


def test_variable_spec_groups_codes_by_dataset() -> None:
    spec = VariableSpec({"a": "B01003_001", "b": "DP05_0038P", "c": "B19013_001", "d": "S1701_C03_001"})
    assert spec.by_dataset() == {
        None: ["B01003_001", "B19013_001"],
        "profile": ["DP05_0038P"],
        "subject": ["S1701_C03_001"],
    }


@pytest.mark.parametrize(
    "variables",
    [
        {},
        {"": "B01003_001"},
        {"Population": "not a code"},
        [("Population", "B01003_001"), ("Total", "B01003_001E")],
        [("Population", "B01003_001"), ("Population", "B19013_001")],
    ],
)
def test_variable_spec_rejects_bad_input(variables) -> None:
    with pytest.raises(InvalidRequestError):
        VariableSpec(variables)


def test_moe_column_name() -> None:
    assert moe_column("Median rent") == "Median rent MOE"


def test_geography_request_normalizes_inputs() -> None:
    request = GeographyRequest(
        geography="Block_Group", state="NY", year="2022", counties=["5", "005", "Kings"]
    )
    assert request.geography == "block group"
    assert request.state == "36"
    assert request.year == 2022
    assert request.counties == ("005", "Kings")
    assert request.output == "wide"


def test_state_lookup_accepts_fips_and_abbreviation() -> None:
    assert resolve_state("36").abbr == "NY"
    assert resolve_state("6").fips == "06"
    with pytest.raises(InvalidRequestError):
        resolve_state("Atlantis")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"geography": "zip code"},
        {"survey": "acs2"},
        {"output": "long"},
        {"geography": "place", "counties": ("005",)},
        {"geography": "state", "counties": ("005",)},
        {"survey": "acs1"},
        {"survey": "acs1", "geography": "county", "year": 2020},
        {"survey": "acs3", "geography": "county", "year": 2015},
        {"year": 2008},
        {"geography": "block group", "year": 2012},
        {"geometry": True, "cb": True, "year": 2012},
        {"geometry": True, "cb": False, "year": 2010, "geography": "county"},
    ],
)
def test_invalid_geography_requests_are_rejected_before_fetching(kwargs) -> None:
    options = {"geography": "tract", "state": "NY", "year": 2022}
    options.update(kwargs)
    with pytest.raises(InvalidRequestError):
        GeographyRequest(**options)


def test_valid_one_year_county_request() -> None:
    request = GeographyRequest(geography="county", state="New York", year=2019, survey="ACS1")
    assert request.survey == "acs1"
    assert request.state == "36"


def test_geometry_request_normalizes_layer_names() -> None:
    request = GeometryRequest(layer="primary_roads", year=2022)
    assert request.layer == "primary roads"
    assert request.state is None


@pytest.mark.parametrize(
    "kwargs",
    [
        {"layer": "railways", "state": "NY"},
        {"layer": "water", "state": "NY", "cb": True},
        {"layer": "tract"},
        {"layer": "place", "state": "NY", "counties": ("005",)},
        {"layer": "county", "counties": ("005",)},
        {"layer": "place", "state": "NY", "year": 2010},
        {"layer": "place", "state": "NY", "cb": True, "year": 2012},
    ],
)
def test_invalid_geometry_requests_are_rejected(kwargs) -> None:
    with pytest.raises(InvalidRequestError):
        GeometryRequest(**kwargs)
