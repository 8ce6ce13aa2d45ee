import os
import time

from census_config import GeographyRequest, GeometryRequest, VariableSpec
from census_download import fetch_acs
from census_errors import InvalidRequestError
from census_export import export_table
from census_maps import plot_choropleth, save_web_map
from spatial_join import boundary_outline, spatial_filter
from tiger_download import fetch_geometry


class Config:
    def __init__(self):
        self.output_dir = "output"
        self.state = "NY"
        self.counties = ["Bronx", "Kings", "New York", "Queens", "Richmond"]
        self.year = 2022
        self.place_name = "New York"
        self.variables = VariableSpec({
            "Median rent": "B25064_001",
            "Median income": "B19013_001",
        })
        self.map_column = "Median rent"
        self.predicate = "intersects"
        # NAD83 / New York Long Island (ftUS), what the city's GIS staff work in
        self.export_crs = "EPSG:2263"


def build_city_tracts(config, session=None, api_config=None):
    """
    Fetch tract estimates with full-resolution boundaries and keep the tracts
    that touch the city limits.

    Returns:
        (joined tracts, city boundary outline)
    """
    request = GeographyRequest(
        geography="tract",
        state=config.state,
        year=config.year,
        counties=tuple(config.counties),
        geometry=True,
        cb=False,
    )
    tracts = fetch_acs(request, config.variables, session=session, config=api_config)

    places = fetch_geometry(
        GeometryRequest(layer="place", state=config.state, year=config.year, filter_by=tracts),
        session=session,
        config=api_config,
    )
    city = places[places["NAME"] == config.place_name]
    if len(city) == 0:
        raise InvalidRequestError(f"{config.place_name} boundary not found in place boundaries")

    joined = spatial_filter(tracts, city, predicate=config.predicate)
    return joined, boundary_outline(city)


def run_analysis(config, session=None, api_config=None):
    """Run the fetch, join and export steps and return the written file paths."""
    os.makedirs(config.output_dir, exist_ok=True)
    joined, outline = build_city_tracts(config, session=session, api_config=api_config)

    base_name = f"{config.place_name.lower().replace(' ', '_')}_tracts_{config.year}"
    outputs = {
        "shapefile": export_table(
            joined, os.path.join(config.output_dir, f"{base_name}.shp"), crs=config.export_crs
        ),
        "geojson": export_table(joined, os.path.join(config.output_dir, f"{base_name}.geojson")),
        "image": os.path.join(config.output_dir, f"{base_name}.png"),
        "web_map": save_web_map(
            joined,
            config.map_column,
            os.path.join(config.output_dir, f"{base_name}.html"),
            overlay=outline,
        ),
    }
    plot_choropleth(joined, config.map_column, outputs["image"], overlay=outline)

    print(f"\nAnalysis Summary:")
    print(f"Total tracts in {config.place_name}: {len(joined)}")
    print(f"Tracts missing {config.map_column}: {int(joined[config.map_column].isna().sum())}")
    return outputs


def main():
    """Main execution function for the city tract analysis."""
    print("\n=== Starting City Tract Analysis ===")
    start_time = time.time()

    config = Config()
    run_analysis(config)

    execution_time = time.time() - start_time
    print(f"\nAnalysis completed in {execution_time:.2f} seconds")
    print("=== City Tract Analysis Complete ===\n")


if __name__ == "__main__":
    main()
