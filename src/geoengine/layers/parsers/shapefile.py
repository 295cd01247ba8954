"""Decode a shapefile binary pair (.shp + .dbf) into features.

The members are staged in a temporary directory and read with geopandas
(pyogrio engine). A missing .shx index is rebuilt by GDAL; a .prj sidecar,
when supplied, declares the source CRS and the result is brought to lon/lat.
"""

from __future__ import annotations

import json
import tempfile
from pathlib import Path

import geopandas as gpd
from loguru import logger
from pyogrio import get_gdal_config_option, set_gdal_config_options

from geoengine.layers.parsers import FeatureCollection
from geoengine.layers.parsers.geojson import parse_geojson

# Sidecar extensions carried through to GDAL when present
SIDECARS = (".shx", ".prj", ".cpg")


def parse_shapefile_pair(
    shp: bytes,
    dbf: bytes,
    name: str = "shapefile",
    sidecars: dict[str, bytes] | None = None,
) -> FeatureCollection:
    """Read a .shp/.dbf pair.

    Args:
        shp: Geometry member.
        dbf: Attribute table member.
        name: Base name used for the collection (and the staged files).
        sidecars: Optional {".shx"|".prj"|".cpg": bytes} members.

    Returns:
        FeatureCollection in lon/lat.

    Raises:
        ValueError: If GDAL cannot read the pair.
    """
    sidecars = sidecars or {}
    with tempfile.TemporaryDirectory(prefix="shp-") as tmp:
        base = Path(tmp) / "layer"
        base.with_suffix(".shp").write_bytes(shp)
        base.with_suffix(".dbf").write_bytes(dbf)
        for ext, content in sidecars.items():
            if ext in SIDECARS:
                base.with_suffix(ext).write_bytes(content)

        # GDAL config is process-wide; restore it once the read is done
        restore_shx = ".shx" not in sidecars
        previous = get_gdal_config_option("SHAPE_RESTORE_SHX")
        if restore_shx:
            set_gdal_config_options({"SHAPE_RESTORE_SHX": True})
        try:
            gdf = gpd.read_file(base.with_suffix(".shp"), engine="pyogrio")
        except Exception as e:
            raise ValueError(f"Invalid shapefile: {e}") from e
        finally:
            if restore_shx:
                set_gdal_config_options({"SHAPE_RESTORE_SHX": previous})

    if gdf.crs is not None and gdf.crs.to_epsg() != 4326:
        logger.debug(f"Shapefile {name}: reprojecting from {gdf.crs.to_string()} to lon/lat")
        gdf = gdf.to_crs("EPSG:4326")

    gdf = gdf[gdf.geometry.notna() & ~gdf.geometry.is_empty]
    collection = parse_geojson(json.loads(gdf.to_json(na="null")))
    collection.name = name
    collection.crs = "EPSG:4326"
    return collection
