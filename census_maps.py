from pathlib import Path

import folium
import matplotlib.pyplot as plt

from spatial_join import reproject

WEB_CRS = "EPSG:4326"
MISSING_STYLE = {"color": "lightgrey", "label": "No data"}


def _check_column(table, column):
    if column not in table.columns:
        raise KeyError(f"Column {column!r} not found; available: {', '.join(map(str, table.columns))}")


def plot_choropleth(table, column, path=None, *, cmap="viridis", overlay=None, title=None, ax=None, **kwargs):
    """
    Draw a static choropleth of ``column``; saved as an image when ``path`` is given.

    A figure created here is closed once it has been saved. Without ``path``
    the figure stays open and the caller owns it (``plt.close(ax.figure)``).
    """
    _check_column(table, column)
    created = ax is None
    if created:
        _, ax = plt.subplots(figsize=(10, 10))

    table.plot(column=column, cmap=cmap, legend=True, ax=ax, missing_kwds=dict(MISSING_STYLE), **kwargs)
    if overlay is not None:
        reproject(overlay, table.crs).plot(ax=ax, color="black", linewidth=1.5)
    ax.set_title(title or column)
    ax.set_axis_off()

    if path is not None:
        ax.figure.savefig(Path(path), dpi=150, bbox_inches="tight")
        if created:
            plt.close(ax.figure)
    return ax


def explore_choropleth(table, column, *, cmap="viridis", scheme=None, overlay=None, tooltip=None, **kwargs):
    """Interactive Leaflet map of ``column``, with an optional boundary overlay."""
    _check_column(table, column)
    table = reproject(table, WEB_CRS)
    if tooltip is None:
        tooltip = [name for name in ("NAME", column) if name in table.columns]

    web_map = table.explore(
        column=column,
        cmap=cmap,
        scheme=scheme,
        tooltip=tooltip,
        tiles="CartoDB positron",
        missing_kwds={"color": "lightgrey"},
        name=str(column),
        **kwargs,
    )
    if overlay is not None:
        reproject(overlay, WEB_CRS).explore(
            m=web_map,
            color="black",
            style_kwds={"fill": False, "weight": 2},
            name="Boundary",
        )
    folium.LayerControl().add_to(web_map)
    return web_map


def save_web_map(table, column, path, **kwargs):
    """Write a standalone HTML web map of ``column``."""
    path = Path(path)
    web_map = explore_choropleth(table, column, **kwargs)
    web_map.save(str(path))
    print(f"Saved web map to {path}")
    return path
