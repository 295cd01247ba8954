"""Format exporters: GeoJSON, KML and zipped shapefiles.

Exporters receive features already reprojected to lon/lat.
"""
