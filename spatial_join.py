from __future__ import annotations

import geopandas as gpd
from pyproj import CRS

from census_errors import InvalidRequestError, ProjectionMismatchError

PREDICATES = ("intersects", "within")


def reproject(table, crs):
    """Return ``table`` expressed in ``crs``; the table must know its own CRS."""
    if table.crs is None:
        raise ProjectionMismatchError("Cannot reproject a table without a CRS; set one with set_crs first")
    target = CRS.from_user_input(crs)
    if table.crs == target:
        return table
    return table.to_crs(target)


def _as_frame(reference):
    if isinstance(reference, gpd.GeoSeries):
        return gpd.GeoDataFrame(geometry=reference)
    if isinstance(reference, gpd.GeoDataFrame):
        return reference
    raise TypeError(f"Reference geometry must be a GeoDataFrame or GeoSeries, not {type(reference).__name__}")


def align_crs(table, reference, target_crs=None):
    """
    Reproject two spatial tables into one coordinate reference system.

    The table's own CRS wins unless ``target_crs`` is given. Evaluating a
    predicate across two different systems yields silently wrong results, so a
    missing CRS on either side is an error rather than an assumption.
    """
    reference = _as_frame(reference)
    if table.crs is None:
        raise ProjectionMismatchError("The attribute table has no CRS")
    if reference.crs is None:
        raise ProjectionMismatchError("The reference layer has no CRS")

    target = table.crs if target_crs is None else target_crs
    return reproject(table, target), reproject(reference, target)


def spatial_filter(attributes, reference, predicate="intersects", target_crs=None, verbose=True):
    """
    Keep the attribute rows whose geometry satisfies ``predicate`` against
    any feature of ``reference``.

    This is a pure filter: no rows are added, no columns are added, and the
    surviving rows keep their original order and index.

    A polygon that only touches the reference along an edge or at a point is
    kept by "intersects" and dropped by "within".
    """
    if predicate not in PREDICATES:
        raise InvalidRequestError(f"Unsupported predicate {predicate!r}; expected one of {', '.join(PREDICATES)}")
    if not isinstance(attributes, gpd.GeoDataFrame):
        raise InvalidRequestError("The attribute table has no geometry; fetch it with geometry=True")

    attributes, reference = align_crs(attributes, reference, target_crs)

    candidates = attributes[[attributes.geometry.name]].reset_index(drop=True)
    hits = gpd.sjoin(
        candidates,
        reference[[reference.geometry.name]],
        how="inner",
        predicate=predicate,
    )
    keep = candidates.index.isin(hits.index)
    joined = attributes.loc[keep]
    if verbose:
        print(f"Kept {len(joined)} of {len(attributes)} rows that {predicate} the reference boundary")
    return joined


def boundary_outline(reference):
    """Outline of the reference polygons, for drawing the boundary used in a join."""
    reference = _as_frame(reference)
    outline = reference.copy()
    outline[outline.geometry.name] = reference.geometry.boundary
    return outline
