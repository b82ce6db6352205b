#!/usr/bin/env python3
"""
CityPrint - City Scale Model Generator
Web service turning OpenStreetMap data for a selected area into a
millimetre-scale polygon scene ready for extrusion and 3D printing.
"""

import math
import os
import time

from flask import Flask, request, jsonify
from flask_cors import CORS

from cityprint.utils.app_config import ModelConfig, get_cors_origins, parse_env_bool
from cityprint.utils.osm_fetcher import OverpassError, fetch_osm_elements
from cityprint.utils.projection import parse_bounds
from cityprint.utils.scene_builder import build_scene, scene_is_empty

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": get_cors_origins()}})

app.config['MAX_CONTENT_LENGTH'] = 64 * 1024 * 1024  # raw element payloads can be large


def _request_bounds(data):
    if not isinstance(data, dict):
        raise ValueError('Request body must be a JSON object')
    bounds = data.get('bounds')
    if bounds is None:
        raise ValueError('No bounds provided')
    return parse_bounds(bounds)


def _request_bearing(data):
    bearing = float(data.get('bearing') or 0.0)
    if not math.isfinite(bearing):
        raise ValueError('bearing must be a finite number of degrees')
    return bearing


def _request_options(data):
    options = data.get('options')
    if options is None:
        return {}
    if not isinstance(options, dict):
        raise ValueError('options must be an object')
    return options


@app.route('/api/osm-elements', methods=['POST'])
def get_osm_elements():
    """Fetch raw OpenStreetMap elements for a bounding box."""
    try:
        data = request.get_json() or {}
        try:
            bounds = _request_bounds(data)
        except ValueError as e:
            return jsonify({'error': str(e)}), 400

        elements = fetch_osm_elements(bounds)

        return jsonify({
            'success': True,
            'elements': elements or []
        })

    except OverpassError as e:
        return jsonify({'error': f'Overpass unavailable: {e}'}), 502
    except Exception as e:
        return jsonify({'error': str(e)}), 500


@app.route('/api/scene', methods=['POST'])
def generate_scene():
    """Build the millimetre-scale scene for a selection."""
    try:
        t_start = time.time()
        data = request.get_json() or {}
        try:
            bounds = _request_bounds(data)
            bearing = _request_bearing(data)
            options = _request_options(data)
        except (TypeError, ValueError) as e:
            return jsonify({'error': str(e)}), 400

        config = ModelConfig.from_env().with_options(options)

        elements = data.get('elements')
        if elements is None:
            elements = fetch_osm_elements(bounds)
        if not isinstance(elements, list):
            return jsonify({'error': 'elements must be a list'}), 400

        scene = build_scene(elements, bounds, bearing, config)
        empty = scene_is_empty(scene)
        if empty:
            print("[WARN] Selection produced no usable features")

        t_total = time.time() - t_start
        print(f"[PERF] Total /api/scene time: {t_total:.3f}s")

        return jsonify({
            'success': True,
            'scene': scene,
            'empty': empty,
            'config': config.to_dict(),
            'timings': {'total_seconds': round(t_total, 4)}
        })

    except OverpassError as e:
        return jsonify({'error': f'Overpass unavailable: {e}'}), 502
    except Exception as e:
        import traceback
        print(f"[ERROR] /api/scene failed: {str(e)}")
        traceback.print_exc()
        return jsonify({'error': str(e)}), 500


@app.route('/api/health', methods=['GET'])
def health():
    """Health check endpoint."""
    return jsonify({
        'status': 'healthy',
        'service': 'CityPrint'
    })


if __name__ == '__main__':
    debug_enabled = parse_env_bool(os.getenv('CITYPRINT_DEBUG'), default=False)
    app.run(host='0.0.0.0', port=5001, debug=debug_enabled)
