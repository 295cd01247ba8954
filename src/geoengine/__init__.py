"""Geospatial layer and interaction engine.

Keeps an ordered registry of map layers, decodes and encodes geodata files,
runs draw/inspect interactions against an external render surface and pulls
layers from Overpass, OGC (WMS/WFS) services and STAC catalogs.
"""

__version__ = "0.1.0"
