"""Geographic to model-space projection."""

import numpy as np

METRES_PER_DEGREE = 111320.0


def parse_bounds(bounds):
    """
    Normalize a selection to a (south, west, north, east) tuple.

    Accepts a 4-sequence in that order or a dict with
    'south', 'west', 'north' and 'east' keys.
    """
    if isinstance(bounds, dict):
        try:
            values = [bounds['south'], bounds['west'], bounds['north'], bounds['east']]
        except KeyError as e:
            raise ValueError(f"Bounds missing key: {e}")
    else:
        values = list(bounds or [])
        if len(values) != 4:
            raise ValueError("Bounds must have exactly four values (south, west, north, east)")

    try:
        south, west, north, east = (float(v) for v in values)
    except (TypeError, ValueError):
        raise ValueError("Bounds values must be numeric")
    if not all(np.isfinite(v) for v in (south, west, north, east)):
        raise ValueError("Bounds values must be finite")

    if south > north:
        raise ValueError("Bounds south must not exceed north")
    if west > east:
        raise ValueError("Bounds west must not exceed east")
    return south, west, north, east


def lat_lon_to_local_metres(lat, lon, bounds):
    """
    Convert lat/lon to local metres relative to the centre of `bounds`.

    Equirectangular approximation around the centre latitude; accurate
    enough at city scale (a few km). X = east, Y = north.
    Works on scalars or numpy arrays.
    """
    south, west, north, east = bounds
    cent_lat = (south + north) / 2
    cent_lon = (west + east) / 2

    m_per_deg_lon = METRES_PER_DEGREE * np.cos(np.radians(cent_lat))
    x = (np.asarray(lon, dtype=np.float64) - cent_lon) * m_per_deg_lon
    y = (np.asarray(lat, dtype=np.float64) - cent_lat) * METRES_PER_DEGREE
    return x, y


def selection_size_metres(bounds, bearing=0.0):
    """
    Real-world width and height (metres) of the selection frame.

    `bounds` is the axis-aligned envelope of the selection frame. When
    the frame is rotated by `bearing` the frame itself is the rotated
    rectangle inscribed in that envelope.
    """
    south, west, north, east = bounds
    x_east, _ = lat_lon_to_local_metres(south, east, bounds)
    _, y_north = lat_lon_to_local_metres(north, west, bounds)
    env_width = abs(float(x_east)) * 2
    env_height = abs(float(y_north)) * 2

    theta = np.radians(bearing or 0.0)
    c = abs(float(np.cos(theta)))
    s = abs(float(np.sin(theta)))
    if s < 1e-9:
        return env_width, env_height
    if c < 1e-9:
        return env_height, env_width

    det = c * c - s * s
    if abs(det) > 1e-6:
        width = (env_width * c - env_height * s) / det
        height = (env_height * c - env_width * s) / det
        if width > 0 and height > 0:
            return width, height

    # Near 45 degrees the envelope does not determine the aspect; assume square
    side = min(env_width, env_height) / (c + s)
    return side, side


def compute_scale(bounds, bearing=0.0, footprint_mm=200.0):
    """
    Compute the uniform mm-per-metre scale that fits the selection.

    The longer axis fills `footprint_mm`; the shorter one is letterboxed.
    A degenerate selection yields a scale of 1.

    Returns:
        dict: scale_mm_per_m, real_width_m, real_height_m,
        model_width_mm, model_depth_mm
    """
    real_width_m, real_height_m = selection_size_metres(bounds, bearing)
    max_dim = max(real_width_m, real_height_m)
    scale = footprint_mm / max_dim if max_dim > 0 else 1.0

    return {
        'scale_mm_per_m': scale,
        'real_width_m': real_width_m,
        'real_height_m': real_height_m,
        'model_width_mm': real_width_m * scale,
        'model_depth_mm': real_height_m * scale,
    }


class CoordinateProjector:
    """Projects (lat, lon) pairs into bed-aligned model millimetres."""

    def __init__(self, bounds, bearing=0.0, footprint_mm=200.0):
        self.bounds = parse_bounds(bounds)
        self.bearing = float(bearing or 0.0)
        scale = compute_scale(self.bounds, self.bearing, footprint_mm)
        self.scale_mm_per_m = scale['scale_mm_per_m']
        self.real_width_m = scale['real_width_m']
        self.real_height_m = scale['real_height_m']
        self.model_width_mm = scale['model_width_mm']
        self.model_depth_mm = scale['model_depth_mm']

        theta = np.radians(self.bearing)
        self._cos = np.cos(theta)
        self._sin = np.sin(theta)

    def project(self, coords):
        """
        Project a sequence of (lat, lon) pairs.

        Returns:
            numpy array of shape (N, 2) in model millimetres, centred on the
            selection, rotated so the bed's up axis is the frame's up axis
        """
        if len(coords) == 0:
            return np.zeros((0, 2))
        latlon = np.asarray(coords, dtype=np.float64)
        x, y = lat_lon_to_local_metres(latlon[:, 0], latlon[:, 1], self.bounds)
        x = x * self.scale_mm_per_m
        y = y * self.scale_mm_per_m
        if self.bearing:
            x, y = x * self._cos - y * self._sin, x * self._sin + y * self._cos
        return np.column_stack([x, y])
