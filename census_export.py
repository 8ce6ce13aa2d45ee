from pathlib import Path

import geopandas as gpd

from census_errors import ExportFormatError
from spatial_join import reproject

EXPORT_DRIVERS = {
    ".shp": "ESRI Shapefile",
    ".geojson": "GeoJSON",
    ".json": "GeoJSON",
}

# RFC 7946 GeoJSON is always WGS84 longitude/latitude
GEOJSON_CRS = "EPSG:4326"
SHAPEFILE_FIELD_LIMIT = 10


def truncated_fields(table):
    """Columns whose names the shapefile format will cut to ten characters."""
    return [
        column
        for column in table.columns
        if column != table.geometry.name and len(str(column)) > SHAPEFILE_FIELD_LIMIT
    ]


def export_table(table, path, crs=None):
    """
    Write a spatial table to a shapefile or GeoJSON file chosen by extension.

    Args:
        table: GeoDataFrame to write
        path: target file; ``.shp``, ``.geojson`` or ``.json``
        crs: CRS to reproject to before writing (GeoJSON defaults to EPSG:4326)

    Returns:
        Path of the written file
    """
    path = Path(path)
    suffix = path.suffix.lower()
    driver = EXPORT_DRIVERS.get(suffix)
    if driver is None:
        raise ExportFormatError(
            f"Unsupported export format {suffix or '(no extension)'} for {path}; use .shp, .geojson or .json"
        )
    if not path.stem or path.stem.startswith("."):
        raise ExportFormatError(f"Malformed output file name: {path.name}")
    if not path.parent.is_dir():
        raise ExportFormatError(f"Output folder does not exist: {path.parent}")
    if not isinstance(table, gpd.GeoDataFrame):
        raise ExportFormatError("Only tables with geometry can be exported; fetch with geometry=True")

    if crs is None and driver == "GeoJSON":
        crs = GEOJSON_CRS
    if crs is not None:
        table = reproject(table, crs)

    if driver == "ESRI Shapefile":
        long_names = truncated_fields(table)
        if long_names:
            print(f"Shapefile field names will be truncated to {SHAPEFILE_FIELD_LIMIT} characters: {', '.join(long_names)}")

    table.to_file(path, driver=driver)
    print(f"Successfully saved {len(table)} rows to {path}")
    return path


def convert_geojsons_to_shapefiles(input_folder, crs=None):
    """Convert every .geojson in a folder to a shapefile under ``<folder>/shapefiles``."""
    input_path = Path(input_folder)
    if not input_path.is_dir():
        raise ExportFormatError(f"Input folder does not exist: {input_path}")

    output_path = input_path / "shapefiles"
    output_path.mkdir(exist_ok=True)

    geojson_files = sorted(input_path.glob("*.geojson"))
    print(f"Found {len(geojson_files)} .geojson files in {input_path}")

    written = []
    for geojson_file in geojson_files:
        gdf = gpd.read_file(geojson_file)
        shapefile_path = export_table(gdf, output_path / f"{geojson_file.stem}.shp", crs=crs)
        print(f"Converted {geojson_file.name} to {shapefile_path.name}")
        written.append(shapefile_path)
    return written
