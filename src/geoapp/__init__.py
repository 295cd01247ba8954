"""GeoWorkbench service shell (FastAPI)."""
