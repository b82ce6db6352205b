"""
JSON disk cache for fetched Overpass responses.

Each entry is one file holding the key it was stored under, the time it
was written and the cached value. Entries whose stored key does not match
the requested one are treated as misses.
"""

import hashlib
import json
import os
import time


DEFAULT_CACHE_DIR = os.getenv("CITYPRINT_CACHE_DIR", os.path.join(os.path.expanduser("~"), ".cache", "cityprint"))


def _serialize_key(key_payload):
    return json.dumps(key_payload, sort_keys=True, separators=(",", ":"))


def _cache_file_path(namespace, key_payload, cache_dir=None):
    cache_dir = cache_dir or DEFAULT_CACHE_DIR
    digest = hashlib.sha256(_serialize_key(key_payload).encode("utf-8")).hexdigest()
    return os.path.join(cache_dir, f"{namespace}_{digest}.json")


def load_json_cache(namespace, key_payload, max_age_seconds=None, cache_dir=None, now=None):
    """
    Load a cached value if present, matching and not expired.

    Args:
        namespace: Cache namespace (file prefix)
        key_payload: JSON-serializable key
        max_age_seconds: Reject entries older than this; None accepts any age
        cache_dir: Override the cache directory
        now: Current time in epoch seconds (injectable for tests)

    Returns:
        The cached value, or None on a miss
    """
    path = _cache_file_path(namespace, key_payload, cache_dir=cache_dir)
    if not os.path.exists(path):
        return None

    try:
        with open(path, "r", encoding="utf-8") as f:
            entry = json.load(f)
    except (OSError, ValueError) as e:
        print(f"[WARN] Ignoring unreadable cache entry {path}: {e}")
        return None

    if not isinstance(entry, dict) or entry.get('key') != _serialize_key(key_payload):
        print(f"[WARN] Ignoring mismatched cache entry {path}")
        return None

    if max_age_seconds is not None:
        now = time.time() if now is None else now
        created_at = entry.get('created_at')
        if not isinstance(created_at, (int, float)) or now - created_at > max_age_seconds:
            return None

    return entry.get('value')


def save_json_cache(namespace, key_payload, value, cache_dir=None, now=None):
    """Persist a JSON-serializable value; returns the entry's file path."""
    path = _cache_file_path(namespace, key_payload, cache_dir=cache_dir)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    entry = {
        'key': _serialize_key(key_payload),
        'created_at': time.time() if now is None else now,
        'value': value,
    }
    # Readers see either the previous entry or the complete new one
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(entry, f)
    os.replace(tmp_path, path)
    return path
