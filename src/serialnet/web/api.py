"""
REST API endpoints for the serialnet server.
"""

from flask import Blueprint, current_app, jsonify

from serialnet import __version__
from serialnet.core.errors import DeviceError

api_bp = Blueprint("api", __name__)


def _hub():
    return current_app.extensions["serialnet"]


@api_bp.route("/health", methods=["GET"])
def health():
    """Report server status."""
    config = current_app.config["SERIALNET_CONFIG"]
    return jsonify({
        "status": "ok",
        "version": __version__,
        "namespace": config.server.namespace,
        "connections": _hub().connection_count,
    })


@api_bp.route("/devices", methods=["GET"])
def list_devices():
    """List serial devices available on this server."""
    try:
        devices = _hub().gateway.enumerate()
    except DeviceError as e:
        return jsonify({"error": f"Error listing devices: {e}"}), 500

    return jsonify({
        "devices": [d.to_dict() for d in devices],
        "count": len(devices),
    })


@api_bp.route("/connections", methods=["GET"])
def list_connections():
    """List connected clients and the ports they hold open."""
    connections = _hub().get_connections_info()
    return jsonify({
        "connections": connections,
        "count": len(connections),
    })
