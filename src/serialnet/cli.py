"""
Command-line interface for serialnet.

Provides commands for serving local serial ports and using remote ones.
"""

import logging
import sys
import threading
from pathlib import Path

import click

from serialnet import __version__
from serialnet.core.config import DEFAULT_CONFIG_FILE, Config, load_config, save_config
from serialnet.core.errors import DeviceError, SerialNetError
from serialnet.core.messages import DeviceDescriptor
from serialnet.serial.device import get_driver


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _print_devices(devices: list[DeviceDescriptor]) -> None:
    """Print devices as a table."""
    click.echo(f"{'PORT':<20} {'MANUFACTURER':<20} {'SERIAL':<16} {'VID:PID':<10}")
    click.echo("-" * 68)

    for device in devices:
        ids = f"{device.vid}:{device.pid}" if device.vid and device.pid else "-"
        click.echo(
            f"{device.port:<20} {device.manufacturer or '-':<20} "
            f"{device.serial_number or '-':<16} {ids:<10}"
        )


@click.group()
@click.version_option(version=__version__, prog_name="serialnet")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option(
    "-c", "--config", "config_path", type=click.Path(exists=True, path_type=Path),
    help="Path to config file"
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_path: Path | None) -> None:
    """serialnet - Share serial ports over the network."""
    ctx.ensure_object(dict)
    config = load_config(config_path)
    ctx.obj["verbose"] = verbose
    ctx.obj["config"] = config
    _setup_logging("DEBUG" if verbose else config.log_level)


@main.command("ports")
@click.pass_context
def ports_cmd(ctx: click.Context) -> None:
    """List serial ports on this machine."""
    config: Config = ctx.obj["config"]

    try:
        devices = get_driver(config.serial).enumerate()
    except DeviceError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not devices:
        click.echo("No serial ports found")
        return

    _print_devices(devices)

    if ctx.obj.get("verbose", False):
        click.echo(f"\n{len(devices)} port(s) found")


@main.command("serve")
@click.option("--host", "-H", help="Address to listen on")
@click.option("--port", "-p", type=int, help="TCP port to listen on")
@click.pass_context
def serve_cmd(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Serve local serial ports to remote clients."""
    from serialnet.web.app import create_app, run_server

    config: Config = ctx.obj["config"]
    host = host or config.server.host
    port = port or config.server.port

    app = create_app(config)
    click.echo(f"Serving serial ports on {host}:{port}{config.server.namespace}")
    run_server(app, host, port)


@main.command("remote-ports")
@click.argument("url", required=False)
@click.pass_context
def remote_ports_cmd(ctx: click.Context, url: str | None) -> None:
    """List serial ports on a remote server.

    URL defaults to client.url from the configuration.
    """
    from serialnet.client import create_client

    config: Config = ctx.obj["config"]

    try:
        with create_client(url, config.client) as client:
            devices = client.list_ports()
    except SerialNetError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not devices:
        click.echo("No serial ports found on server")
        return

    _print_devices(devices)


@main.command("console")
@click.argument("device")
@click.option("--url", "-u", help="Server URL (default: client.url from config)")
@click.option("--baud", "-b", type=int, help="Baud rate")
@click.pass_context
def console_cmd(ctx: click.Context, device: str, url: str | None, baud: int | None) -> None:
    """Connect stdin/stdout to a serial port on a remote server.

    DEVICE is the port name on the server (e.g., '/dev/ttyUSB0').
    Input is sent line by line; end input (Ctrl+D) to close the port.
    """
    from serialnet.client import create_client

    config: Config = ctx.obj["config"]
    baud = baud or config.serial.default_baud
    closed = threading.Event()

    def on_data(data: bytes) -> None:
        sys.stdout.write(data.decode("utf-8", errors="replace"))
        sys.stdout.flush()

    def on_error(error: Exception) -> None:
        click.echo(f"\n[serialnet: {error}]", err=True)

    def on_close() -> None:
        closed.set()
        click.echo(f"\n[serialnet: {device} closed]", err=True)

    try:
        with create_client(url, config.client) as client:
            port = client.open_port(device, baud, auto_open=False)
            port.on_data += on_data
            port.on_error += on_error
            port.on_close += on_close
            port.open().result()
            click.echo(f"[serialnet: connected to {device} at {baud} baud]", err=True)

            for line in sys.stdin:
                if closed.is_set():
                    break
                port.write(line).result()

            if port.is_open:
                port.close().result()
    except SerialNetError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


# --- Configuration Commands ---

@main.group("config")
def config_group() -> None:
    """Show or create configuration files."""
    pass


@config_group.command("show")
@click.pass_context
def config_show_cmd(ctx: click.Context) -> None:
    """Print the effective configuration as YAML."""
    import yaml

    config: Config = ctx.obj["config"]
    click.echo(yaml.dump(config.to_dict(), default_flow_style=False, sort_keys=False), nl=False)


@config_group.command("init")
@click.option(
    "--path", "-p", type=click.Path(path_type=Path), default=DEFAULT_CONFIG_FILE,
    show_default=True, help="Where to write the configuration"
)
@click.option("--force", "-f", is_flag=True, help="Overwrite an existing file")
@click.pass_context
def config_init_cmd(ctx: click.Context, path: Path, force: bool) -> None:
    """Write the effective configuration to a file."""
    if path.exists() and not force:
        click.echo(f"Error: {path} already exists (use --force to overwrite)", err=True)
        sys.exit(1)

    save_config(ctx.obj["config"], path)
    click.echo(f"Wrote configuration to {path}")


if __name__ == "__main__":
    main()
