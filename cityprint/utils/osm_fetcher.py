"""OpenStreetMap raw element fetching using the Overpass API."""

import time

import requests

from .app_config import (
    get_cache_max_age_seconds,
    get_overpass_base_delay_seconds,
    get_overpass_max_delay_seconds,
    get_overpass_max_retries,
    get_overpass_timeout_seconds,
)
from .disk_cache import load_json_cache, save_json_cache
from .feature_classifier import RAILWAY_TYPES
from .projection import parse_bounds

# Multiple Overpass API servers for fallback
OVERPASS_SERVERS = [
    "https://overpass-api.de/api/interpreter",
    "https://overpass.kumi.systems/api/interpreter",
    "https://overpass.openstreetmap.ru/api/interpreter",
]


class OverpassError(RuntimeError):
    """Raised when every Overpass attempt has failed."""


def build_overpass_query(bounds):
    """
    Build an Overpass QL query for every feature kind the model uses.

    Ways and relations are returned with bodies, followed by the skeleton
    of every referenced node so ways can be resolved locally.
    """
    south, west, north, east = parse_bounds(bounds)
    bbox = f"{south},{west},{north},{east}"
    railway_pattern = "|".join(sorted(RAILWAY_TYPES))
    return f"""
[out:json][timeout:30];
(
  way["building"]({bbox});
  relation["building"]({bbox});
  way["natural"="water"]({bbox});
  way["waterway"]({bbox});
  way["landuse"="reservoir"]({bbox});
  relation["natural"="water"]({bbox});
  relation["waterway"]({bbox});
  relation["landuse"="reservoir"]({bbox});
  way["natural"="bay"]({bbox});
  relation["natural"="bay"]({bbox});
  way["natural"="coastline"]({bbox});
  way["highway"]({bbox});
  way["railway"~"^({railway_pattern})$"]({bbox});
);
out body;
>;
out skel qt;
""".strip()


def retry_delay_seconds(attempt, base_delay, max_delay):
    """Exponential backoff before retry `attempt` (1-based), capped."""
    if attempt <= 0:
        return 0.0
    return min(base_delay * (2 ** (attempt - 1)), max_delay)


def query_overpass(query, timeout=None):
    """
    Execute an Overpass API query with fallback servers.

    Args:
        query: Overpass QL query string
        timeout: Per-request timeout in seconds

    Returns:
        list: Elements from the response

    Raises:
        OverpassError: If every server failed
    """
    timeout = timeout or get_overpass_timeout_seconds()
    last_error = None

    for server in OVERPASS_SERVERS:
        try:
            print(f"[INFO] Trying Overpass server: {server}")
            response = requests.post(
                server,
                data={'data': query},
                timeout=timeout
            )
            response.raise_for_status()
            data = response.json()
            elements = data.get('elements', [])
            print(f"[INFO] Got {len(elements)} elements from {server}")
            return elements

        except requests.exceptions.Timeout:
            print(f"[WARN] Timeout on {server}")
            last_error = "timeout"
            continue
        except requests.exceptions.RequestException as e:
            print(f"[WARN] Error on {server}: {e}")
            last_error = str(e)
            continue
        except ValueError as e:
            print(f"[WARN] Invalid JSON from {server}: {e}")
            last_error = str(e)
            continue

    raise OverpassError(f"All Overpass servers failed. Last error: {last_error}")


def fetch_osm_elements(bounds, max_retries=None, base_delay=None, max_delay=None,
                       cancel_event=None, sleep=time.sleep, use_cache=True):
    """
    Fetch raw node/way/relation elements for a selection.

    Retries with exponential backoff over a bounded number of attempts.
    When `cancel_event` (a threading.Event) is set, the retry chain is
    abandoned and None is returned; callers set it when the user starts a
    new selection.

    Args:
        bounds: Selection as (south, west, north, east) or a dict
        max_retries: Retries after the first attempt
        base_delay: Delay before the first retry, seconds
        max_delay: Cap on any single delay, seconds
        cancel_event: Optional threading.Event for cancellation
        sleep: Sleep function (injectable for tests)
        use_cache: Read and write the JSON disk cache

    Returns:
        list or None: Elements, or None if cancelled

    Raises:
        OverpassError: If every attempt failed
    """
    max_retries = get_overpass_max_retries() if max_retries is None else max_retries
    base_delay = get_overpass_base_delay_seconds() if base_delay is None else base_delay
    max_delay = get_overpass_max_delay_seconds() if max_delay is None else max_delay

    def cancelled():
        return cancel_event is not None and cancel_event.is_set()

    query = build_overpass_query(bounds)
    cache_key = {'query': query}
    max_age = get_cache_max_age_seconds()
    if use_cache and max_age > 0:
        try:
            cached = load_json_cache('overpass', cache_key, max_age_seconds=max_age)
        except OSError as e:
            print(f"[WARN] Overpass cache unavailable: {e}")
            cached = None
        if cached is not None:
            print(f"[INFO] Using cached Overpass response ({len(cached)} elements)")
            return cached

    last_error = None
    for attempt in range(max_retries + 1):
        if cancelled():
            print("[INFO] Overpass fetch cancelled")
            return None

        if attempt > 0:
            delay = retry_delay_seconds(attempt, base_delay, max_delay)
            print(f"[WARN] Retrying Overpass in {delay:.1f}s (attempt {attempt}/{max_retries})")
            sleep(delay)
            if cancelled():
                print("[INFO] Overpass fetch cancelled")
                return None

        try:
            elements = query_overpass(query)
        except OverpassError as e:
            last_error = e
            continue

        if cancelled():
            print("[INFO] Overpass fetch cancelled")
            return None

        if use_cache and max_age > 0:
            try:
                save_json_cache('overpass', cache_key, elements)
            except OSError as e:
                print(f"[WARN] Could not write Overpass cache: {e}")
        return elements

    print(f"[ERROR] Overpass fetch failed after {max_retries + 1} attempts")
    raise OverpassError(str(last_error))
