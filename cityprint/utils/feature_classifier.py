"""OSM tag classification and per-feature physical attributes."""

BUILDING = 'building'
WATER = 'water'
COASTLINE = 'coastline'
ROAD = 'road'
RAILWAY = 'railway'

# Passenger/freight rail only; abandoned, disused, platform etc. are ignored
RAILWAY_TYPES = {'rail', 'light_rail', 'subway', 'tram', 'narrow_gauge', 'monorail'}

MAJOR_HIGHWAYS = {
    'motorway', 'trunk', 'primary', 'secondary',
    'motorway_link', 'trunk_link', 'primary_link', 'secondary_link',
}
MINOR_HIGHWAYS = {
    'tertiary', 'tertiary_link', 'residential', 'unclassified',
    'living_street', 'service',
}


def classify_tags(tags):
    """
    Classify an OSM tag set.

    Precedence: building > water > coastline > road > railway.

    Args:
        tags: Dict of OSM key/value strings (may be None)

    Returns:
        str or None: One of the feature constants, or None when the
        element is irrelevant to the model
    """
    if not tags:
        return None
    if tags.get('building'):
        return BUILDING
    if (tags.get('natural') in ('water', 'bay')
            or tags.get('waterway')
            or tags.get('landuse') == 'reservoir'):
        return WATER
    if tags.get('natural') == 'coastline':
        return COASTLINE
    if tags.get('highway'):
        return ROAD
    if tags.get('railway') in RAILWAY_TYPES:
        return RAILWAY
    return None


def classify_road(highway):
    """Map a `highway=*` value to a road kind: major, minor or path."""
    if highway in MAJOR_HIGHWAYS:
        return 'major'
    if highway in MINOR_HIGHWAYS:
        return 'minor'
    return 'path'


def road_half_width_mm(kind, scale_mm_per_m, config):
    """Half width of a road or rail strip in model millimetres."""
    half_widths = config.road_half_widths_m
    return half_widths.get(kind, half_widths['path']) * scale_mm_per_m


def _parse_height_metres(raw):
    # Accepts "12", "12.5", "12 m", "12m"
    text = str(raw).strip().lower()
    if text.endswith('m'):
        text = text[:-1].strip()
    return float(text)


def building_height_mm(tags, scale_mm_per_m, config, rng):
    """
    Derive a building's extrusion height in model millimetres.

    Priority:
        1. `height=*` (metres; unparseable values use the config default)
        2. `building:levels=*` times the per-level height
        3. Random height in the configured range

    The third branch is the only non-deterministic step of the pipeline.
    `rng` must be a numpy Generator; pass a seeded one for reproducible
    output.
    """
    tags = tags or {}

    if tags.get('height'):
        try:
            metres = _parse_height_metres(tags['height'])
        except (TypeError, ValueError):
            metres = config.default_height_m
        if metres != metres:
            metres = config.default_height_m
    elif tags.get('building:levels'):
        try:
            levels = int(float(str(tags['building:levels']).strip()))
        except (TypeError, ValueError):
            levels = 3
        metres = levels * config.metres_per_level
    else:
        metres = float(rng.uniform(config.random_height_min_m, config.random_height_max_m))

    return min(metres * scale_mm_per_m, config.max_building_height_mm)
