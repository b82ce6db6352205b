"""Application and model configuration helpers."""

import math
import os


DEFAULT_FOOTPRINT_MM = 200.0
DEFAULT_BASE_THICKNESS_MM = 4.0
DEFAULT_MAX_BUILDING_HEIGHT_MM = 40.0

DEFAULT_ROAD_HALF_WIDTHS_M = {
    'major': 6.0,
    'minor': 3.0,
    'path': 1.5,
    'railway': 2.0,
}


def parse_env_bool(value, default=False):
    """Parse a boolean-like environment value with a fallback default."""
    if value is None:
        return default
    normalized = str(value).strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def get_cors_origins():
    """
    Return CORS origins from env, or localhost-only defaults.

    `CITYPRINT_CORS_ORIGINS` supports a comma-separated list.
    """
    raw = os.getenv('CITYPRINT_CORS_ORIGINS', '')
    if raw.strip():
        return [origin.strip() for origin in raw.split(',') if origin.strip()]
    return [r"^http://localhost(:\d+)?$", r"^http://127\.0\.0\.1(:\d+)?$"]


def parse_env_int(name, default):
    """Parse an integer environment value with fallback."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def parse_env_float(name, default):
    """Parse a float environment value with fallback."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def _positive_or_default(value, default):
    try:
        value = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(value) or value <= 0:
        return default
    return value


def get_overpass_max_retries():
    return max(0, parse_env_int("CITYPRINT_OVERPASS_MAX_RETRIES", 10))


def get_overpass_base_delay_seconds():
    return max(0.0, parse_env_float("CITYPRINT_OVERPASS_BASE_DELAY_SECONDS", 2.0))


def get_overpass_max_delay_seconds():
    return max(0.0, parse_env_float("CITYPRINT_OVERPASS_MAX_DELAY_SECONDS", 16.0))


def get_overpass_timeout_seconds():
    return max(1, parse_env_int("CITYPRINT_OVERPASS_TIMEOUT_SECONDS", 45))


def get_cache_max_age_seconds():
    """Maximum age of a cached Overpass response; 0 disables the cache."""
    return max(0, parse_env_int("CITYPRINT_CACHE_MAX_AGE_SECONDS", 6 * 3600))


class ModelConfig:
    """
    Physical constants for one scene-building pass.

    Passed explicitly into the pipeline so a pass is a pure function of
    (elements, bounds, bearing, config).
    """

    def __init__(self, footprint_mm=DEFAULT_FOOTPRINT_MM,
                 base_thickness_mm=DEFAULT_BASE_THICKNESS_MM,
                 max_building_height_mm=DEFAULT_MAX_BUILDING_HEIGHT_MM,
                 metres_per_level=3.0, default_height_m=10.0,
                 random_height_min_m=6.0, random_height_max_m=18.0,
                 road_half_widths_m=None):
        self.footprint_mm = footprint_mm
        self.base_thickness_mm = base_thickness_mm
        self.max_building_height_mm = max_building_height_mm
        self.metres_per_level = metres_per_level
        self.default_height_m = default_height_m
        self.random_height_min_m = random_height_min_m
        self.random_height_max_m = random_height_max_m
        self.road_half_widths_m = dict(DEFAULT_ROAD_HALF_WIDTHS_M)
        if road_half_widths_m:
            self.road_half_widths_m.update(road_half_widths_m)

    @classmethod
    def from_env(cls):
        """Build a config from `CITYPRINT_*` environment overrides."""
        return cls(
            footprint_mm=_positive_or_default(
                parse_env_float("CITYPRINT_FOOTPRINT_MM", DEFAULT_FOOTPRINT_MM),
                DEFAULT_FOOTPRINT_MM),
            base_thickness_mm=_positive_or_default(
                parse_env_float("CITYPRINT_BASE_THICKNESS_MM", DEFAULT_BASE_THICKNESS_MM),
                DEFAULT_BASE_THICKNESS_MM),
            max_building_height_mm=_positive_or_default(
                parse_env_float("CITYPRINT_MAX_BUILDING_HEIGHT_MM", DEFAULT_MAX_BUILDING_HEIGHT_MM),
                DEFAULT_MAX_BUILDING_HEIGHT_MM),
        )

    def with_options(self, options):
        """Return a copy with per-request overrides applied."""
        options = options or {}
        return ModelConfig(
            footprint_mm=_positive_or_default(options.get('footprint_mm'), self.footprint_mm),
            base_thickness_mm=_positive_or_default(
                options.get('base_thickness_mm'), self.base_thickness_mm),
            max_building_height_mm=_positive_or_default(
                options.get('max_building_height_mm'), self.max_building_height_mm),
            metres_per_level=self.metres_per_level,
            default_height_m=self.default_height_m,
            random_height_min_m=self.random_height_min_m,
            random_height_max_m=self.random_height_max_m,
            road_half_widths_m=self.road_half_widths_m,
        )

    def to_dict(self):
        return {
            'footprint_mm': self.footprint_mm,
            'base_thickness_mm': self.base_thickness_mm,
            'max_building_height_mm': self.max_building_height_mm,
        }
