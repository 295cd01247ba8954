"""Configuration management using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "GeoWorkbench"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Coordinate reference systems
    display_crs: str = "EPSG:3857"      # projected CRS of everything held in the registry

    # HTTP
    user_agent: str = "GeoWorkbench/0.1.0"
    http_timeout: float = 30.0

    # Overpass (OSM category fetch)
    overpass_url: str = "https://overpass-api.de/api/interpreter"
    overpass_timeout: int = 90          # server-side [timeout:N] of the query

    # Same-origin relay for capabilities / feature requests
    proxy_url: str = "http://localhost:8000/api/geoserver-proxy"

    # STAC catalog search
    stac_search_url: str = "https://earth-search.aws.element84.com/v1/search"
    stac_collections: list[str] = ["sentinel-2-l2a"]
    stac_limit: int = 50

    # Place search (Nominatim)
    geocoder_url: str = "https://nominatim.openstreetmap.org/search"
    geocoder_limit: int = 10

    # Feature inspection
    hit_tolerance_px: float = 5.0


settings = Settings()
