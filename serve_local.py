#!/usr/bin/env python3
"""Local development server for the estimator functions.

Mimics the Firebase Functions emulator URL structure so the web client can
talk to the Python entry points without deploying.

Usage:
    python serve_local.py

Every endpoint in main.py is served at
POST /<project>/us-central1/<function_name>.
"""

import os

# Set environment for local development
os.environ.setdefault('FUNCTIONS_EMULATOR', 'true')
os.environ.setdefault('GCLOUD_PROJECT', 'waterproof-estimator-dev')
os.environ.setdefault('FIRESTORE_EMULATOR_HOST', '127.0.0.1:8081')

from flask import Flask, request, jsonify
from flask_cors import CORS

# Import the main module after setting env vars
import main

PROJECT_ID = os.environ['GCLOUD_PROJECT']

FUNCTIONS = {
    'upload_project_files': main.upload_project_files,
    'analyze_project': main.analyze_project,
    'compute_totals': main.compute_totals,
    'save_estimate': main.save_estimate,
    'get_estimate': main.get_estimate,
    'list_estimates': main.list_estimates,
    'update_estimate_materials': main.update_estimate_materials,
    'update_manual_entries': main.update_manual_entries,
    'update_estimate_status': main.update_estimate_status,
    'get_dashboard_stats': main.get_dashboard_stats,
    'delete_estimate': main.delete_estimate,
    'ask_expert': main.ask_expert,
}

app = Flask(__name__)
CORS(app)


class MockRequest:
    """Mock Firebase request object to wrap Flask request."""

    def __init__(self, flask_request):
        self._request = flask_request
        self._json_data = None
        self.method = flask_request.method
        self.headers = flask_request.headers
        self.files = flask_request.files
        self.form = flask_request.form

    def get_json(self, force=False):
        if self._json_data is None:
            self._json_data = self._request.get_json(force=force) or {}
        return self._json_data


def wrap_firebase_function(firebase_fn):
    """Wrap a Firebase function to work with Flask."""
    def wrapper():
        response = firebase_fn(MockRequest(request))
        return response.get_data(), response.status_code, dict(response.headers)
    return wrapper


for name, fn in FUNCTIONS.items():
    app.add_url_rule(
        f'/{PROJECT_ID}/us-central1/{name}',
        endpoint=name,
        view_func=wrap_firebase_function(fn),
        methods=['POST', 'OPTIONS'],
    )


# Health check
@app.route('/health', methods=['GET'])
def health():
    return jsonify({
        'status': 'ok',
        'service': 'waterproof-estimator-functions',
        'llm_enabled': main.settings.llm_enabled,
    })


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5002))
    print(f"Estimator functions running on http://127.0.0.1:{port}")
    for name in FUNCTIONS:
        print(f"  POST /{PROJECT_ID}/us-central1/{name}")
    app.run(host='127.0.0.1', port=port, debug=True, threaded=True)
