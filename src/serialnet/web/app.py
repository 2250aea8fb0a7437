"""
Flask application factory for the serialnet server.
"""

from typing import Optional

from flask import Flask, current_app
from flask_socketio import SocketIO

from serialnet.core.config import Config, load_config
from serialnet.serial.device import DeviceDriver, get_driver
from serialnet.server.lifecycle import ConnectionHub
from serialnet.web.websocket import init_socketio


def create_app(
    config: Optional[Config] = None,
    driver: Optional[DeviceDriver] = None,
) -> Flask:
    """
    Create and configure Flask application.

    Args:
        config: Optional Config instance. If None, loads from default location.
        driver: Optional device driver. If None, uses the pyserial driver.

    Returns:
        Configured Flask application with Socket.IO attached
    """
    app = Flask(__name__)

    if config is None:
        config = load_config()
    if driver is None:
        driver = get_driver(config.serial)

    app.config["SERIALNET_CONFIG"] = config

    hub = ConnectionHub(driver)
    app.extensions["serialnet"] = hub

    from serialnet.web.api import api_bp

    app.register_blueprint(api_bp, url_prefix="/api")

    init_socketio(
        app,
        hub,
        namespace=config.server.namespace,
        cors_allowed_origins=config.server.cors_allowed_origins,
    )

    return app


def get_hub(app: Optional[Flask] = None) -> ConnectionHub:
    """Get the connection hub of an application (default: current app)."""
    return (app or current_app).extensions["serialnet"]


def get_socketio(app: Flask) -> SocketIO:
    """Get the SocketIO instance attached by create_app."""
    return app.extensions["socketio"]


def run_server(app: Flask, host: str, port: int) -> None:
    """Serve the application until interrupted."""
    try:
        get_socketio(app).run(app, host=host, port=port, allow_unsafe_werkzeug=True)
    finally:
        get_hub(app).shutdown()
