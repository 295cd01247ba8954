"""Geodata codec: detect, parse and reproject on import; flatten or
partition and serialize on export.

Format detection is an ordered list of ``(predicate, decoder)`` pairs; the
first predicate that accepts the selection decides the decoder. New formats
are added by appending a pair, never by branching inside a decoder.
"""

from __future__ import annotations

import io
import json
import zipfile
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Callable

from loguru import logger

from geoengine.errors import EmptyResult, MalformedArchive, UnsupportedFormat
from geoengine.geo.transform import DISPLAY, GEOGRAPHIC, transform_geometry
from geoengine.layers.exporters.geojson import export_geojson
from geoengine.layers.exporters.kml import export_kml
from geoengine.layers.exporters.shapefile import export_shapefile_zip, sanitize_layer_name
from geoengine.layers.layer import Layer, LayerFeature
from geoengine.layers.parsers import FeatureCollection
from geoengine.layers.parsers.geojson import parse_geojson
from geoengine.layers.parsers.kml import parse_kml
from geoengine.layers.parsers.shapefile import SIDECARS, parse_shapefile_pair

@dataclass
class ImportSource:
    """One selected file: its name and raw bytes."""

    name: str
    data: bytes

    @property
    def extension(self) -> str:
        return PurePosixPath(self.name).suffix.lower()

    @property
    def stem(self) -> str:
        return PurePosixPath(self.name).stem


@dataclass
class ImportResult:
    """Decoded features in the display CRS plus the suggested layer name."""

    name: str
    features: list[LayerFeature] = field(default_factory=list)
    source_format: str = ""


@dataclass
class ExportArtifact:
    """A downloadable byte stream."""

    filename: str
    media_type: str
    content: bytes


Predicate = Callable[[list[ImportSource]], bool]
Decoder = Callable[[list[ImportSource]], tuple[str, FeatureCollection]]


# -- Archive helpers ----------------------------------------------------------

def _open_zip(source: ImportSource) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(io.BytesIO(source.data))
    except zipfile.BadZipFile as e:
        raise UnsupportedFormat(
            f"File {source.name} is not a valid {source.extension} archive: {e}",
            filename=source.name,
            extension=source.extension,
        ) from e


def _zip_members(source: ImportSource) -> list[str]:
    with _open_zip(source) as archive:
        return [n for n in archive.namelist() if not n.endswith("/")]


def _find_kml_entry(names: list[str]) -> str | None:
    """``doc.kml`` (any case, any folder) first, then the first ``*.kml``."""
    for name in names:
        if PurePosixPath(name).name.lower() == "doc.kml":
            return name
    for name in names:
        if name.lower().endswith(".kml"):
            return name
    return None


def _find_shapefile_members(names: list[str]) -> dict[str, str]:
    """Extension -> member name for the first .shp and its siblings."""
    found: dict[str, str] = {}
    for name in names:
        ext = PurePosixPath(name).suffix.lower()
        if ext in (".shp", ".dbf", *SIDECARS) and ext not in found:
            found[ext] = name
    return found


def _single(sources: list[ImportSource]) -> ImportSource | None:
    return sources[0] if len(sources) == 1 else None


# -- Predicates ----------------------------------------------------------------

def _is_shapefile_selection(sources: list[ImportSource]) -> bool:
    return any(src.extension in (".shp", ".dbf") for src in sources)


def _is_kml(sources: list[ImportSource]) -> bool:
    src = _single(sources)
    return src is not None and src.extension == ".kml"


def _is_kmz(sources: list[ImportSource]) -> bool:
    src = _single(sources)
    if src is None:
        return False
    if src.extension == ".kmz":
        return True
    if src.extension != ".zip":
        return False
    members = _find_shapefile_members(_zip_members(src))
    has_pair = ".shp" in members and ".dbf" in members
    return not has_pair and _find_kml_entry(_zip_members(src)) is not None


def _is_zipped_shapefile(sources: list[ImportSource]) -> bool:
    src = _single(sources)
    return src is not None and src.extension == ".zip"


def _is_geojson(sources: list[ImportSource]) -> bool:
    src = _single(sources)
    return src is not None and src.extension in (".geojson", ".json")


# -- Decoders ------------------------------------------------------------------

def _text(source: ImportSource, data: bytes | None = None) -> str:
    raw = source.data if data is None else data
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def _decode_kml(sources: list[ImportSource]) -> tuple[str, FeatureCollection]:
    src = sources[0]
    return src.stem, parse_kml(_text(src))


def _decode_kmz(sources: list[ImportSource]) -> tuple[str, FeatureCollection]:
    src = sources[0]
    with _open_zip(src) as archive:
        entry = _find_kml_entry(archive.namelist())
        if entry is None:
            raise MalformedArchive(
                f"Archive {src.name} does not contain a KML document.", filename=src.name
            )
        content = archive.read(entry)
    return PurePosixPath(entry).stem, parse_kml(_text(src, content))


def _decode_zipped_shapefile(sources: list[ImportSource]) -> tuple[str, FeatureCollection]:
    src = sources[0]
    with _open_zip(src) as archive:
        members = _find_shapefile_members(archive.namelist())
        if ".shp" not in members or ".dbf" not in members:
            raise MalformedArchive(
                f"Unsupported ZIP contents in {src.name}: no shapefile (.shp and .dbf) "
                f"and no KML document found.",
                filename=src.name,
            )
        shp = archive.read(members[".shp"])
        dbf = archive.read(members[".dbf"])
        sidecars = {ext: archive.read(members[ext]) for ext in SIDECARS if ext in members}
    name = PurePosixPath(members[".shp"]).stem
    return name, parse_shapefile_pair(shp, dbf, name=name, sidecars=sidecars)


def _decode_shapefile_selection(sources: list[ImportSource]) -> tuple[str, FeatureCollection]:
    by_ext: dict[str, ImportSource] = {}
    for src in sources:
        by_ext.setdefault(src.extension, src)
    if ".shp" not in by_ext or ".dbf" not in by_ext:
        names = ", ".join(s.name for s in sources)
        raise MalformedArchive(
            f"A shapefile needs both a .shp and a .dbf file; got: {names}.",
            filename=names,
        )
    shp = by_ext[".shp"]
    sidecars = {ext: by_ext[ext].data for ext in SIDECARS if ext in by_ext}
    return shp.stem, parse_shapefile_pair(
        shp.data, by_ext[".dbf"].data, name=shp.stem, sidecars=sidecars
    )


def _decode_geojson(sources: list[ImportSource]) -> tuple[str, FeatureCollection]:
    src = sources[0]
    return src.stem, parse_geojson(_text(src))


# Ordered: first match wins
IMPORT_FORMATS: list[tuple[str, Predicate, Decoder]] = [
    ("shapefile", _is_shapefile_selection, _decode_shapefile_selection),
    ("kml", _is_kml, _decode_kml),
    ("kmz", _is_kmz, _decode_kmz),
    ("shapefile-zip", _is_zipped_shapefile, _decode_zipped_shapefile),
    ("geojson", _is_geojson, _decode_geojson),
]


# -- Import --------------------------------------------------------------------

def import_files(
    sources: list[ImportSource],
    display_crs: str = DISPLAY,
) -> ImportResult:
    """Detect, decode and reproject one file or a multi-file selection.

    Raises:
        UnsupportedFormat: Unknown extension or undecodable content.
        MalformedArchive: Archive or selection missing required members.
        EmptyResult: The source decoded fine but holds zero features.
    """
    if not sources:
        raise UnsupportedFormat("No file selected.")

    for fmt, predicate, decoder in IMPORT_FORMATS:
        if not predicate(sources):
            continue
        src = sources[0]
        try:
            name, collection = decoder(sources)
        except ValueError as e:
            raise UnsupportedFormat(
                f"Could not decode {src.name} ({src.extension or 'no extension'}): {e}",
                filename=src.name,
                extension=src.extension,
            ) from e
        features = reproject_features(
            collection.features, collection.crs or GEOGRAPHIC, display_crs
        )
        name = collection.name if fmt in ("kml", "kmz") and collection.name else name
        if collection.skipped:
            logger.warning(
                f"Skipped {collection.skipped} features with degenerate geometry in {src.name}"
            )
        if not features and collection.skipped:
            raise UnsupportedFormat(
                f"No usable geometry in {src.name}: {collection.skipped} features "
                f"have too few positions for their geometry type.",
                filename=src.name,
                extension=src.extension,
            )
        if not features:
            raise EmptyResult(f"No features found in {src.name}.")
        logger.info(f"Imported {len(features)} features from {src.name} as {fmt}")
        return ImportResult(name=name, features=features, source_format=fmt)

    src = sources[0]
    if len(sources) > 1:
        names = ", ".join(s.name for s in sources)
        raise UnsupportedFormat(
            f"Select one file at a time, or the .shp and .dbf of one shapefile; got: {names}.",
            filename=names,
        )
    raise UnsupportedFormat(
        f"Unsupported file type: {src.extension or src.name}. "
        f"Load KML, KMZ, GeoJSON or a ZIP containing a shapefile.",
        filename=src.name,
        extension=src.extension,
    )


def reproject_features(
    features: list[LayerFeature], src: str, dst: str
) -> list[LayerFeature]:
    """Copies of ``features`` with coordinates transformed from ``src`` to ``dst``."""
    out = []
    for feature in features:
        out.append(
            LayerFeature(
                feature_id=feature.feature_id,
                geometry_type=feature.geometry_type,
                coordinates=transform_geometry(
                    feature.geometry_type, feature.coordinates, src, dst
                ),
                properties=dict(feature.properties),
                style=dict(feature.style) if feature.style else None,
                geometry_name=feature.geometry_name,
            )
        )
    return out


# -- Export --------------------------------------------------------------------

EXPORT_FORMATS = ("geojson", "kml", "shp")


def _export_basename(layers: list[Layer]) -> str:
    if len(layers) == 1:
        return sanitize_layer_name(layers[0].name)
    return "layers"


def export_layers(
    layers: list[Layer],
    fmt: str,
    display_crs: str = DISPLAY,
) -> ExportArtifact:
    """Serialize the features of ``layers`` (tile layers are skipped).

    Raises:
        UnsupportedFormat: Unknown export format.
        EmptyResult: No vector features to export.
    """
    fmt = fmt.lower()
    if fmt not in EXPORT_FORMATS:
        raise UnsupportedFormat(f"Unsupported export format: {fmt}", extension=fmt)

    vector_layers = [l for l in layers if l.has_vector_source]
    per_layer = [
        (layer.name, reproject_features(layer.features, display_crs, GEOGRAPHIC))
        for layer in vector_layers
    ]
    flattened = [f for _, features in per_layer for f in features]
    basename = _export_basename(vector_layers or layers)

    if fmt == "shp":
        content = export_shapefile_zip(per_layer)
        return ExportArtifact(f"{basename}_shapefiles.zip", "application/zip", content)

    if not flattened:
        raise EmptyResult("The selected layers contain no features to export.")

    if fmt == "geojson":
        text = json.dumps(export_geojson(flattened))
        return ExportArtifact(
            f"{basename}.geojson", "application/geo+json;charset=utf-8", text.encode("utf-8")
        )

    name = vector_layers[0].name if len(vector_layers) == 1 else basename
    text = export_kml(flattened, name=name)
    return ExportArtifact(
        f"{basename}.kml",
        "application/vnd.google-earth.kml+xml;charset=utf-8",
        text.encode("utf-8"),
    )
