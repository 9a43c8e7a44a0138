from __future__ import annotations

import codecs
import logging
from typing import Optional

import click

from .config import PortSettings, load_config, serial_settings
from .port import SerialPort
from .settings import SerialConfig


def _build_payload(string: Optional[str], hexstr: Optional[str], encoding: str) -> bytes:
    if string is not None and hexstr is not None:
        raise click.ClickException("Use only one of --string or --hex")
    if string is not None:
        try:
            return string.encode(encoding)
        except LookupError:
            raise click.ClickException(f"Unknown encoding: {encoding}")
    if hexstr is not None:
        try:
            return bytes.fromhex(hexstr)
        except ValueError as e:
            raise click.ClickException(f"Invalid hex string: {e}")
    return b""


def _resolve(ctx: click.Context) -> PortSettings:
    """Merge the config file with command line overrides."""
    opts = ctx.obj
    config = load_config(opts["config"]) if opts["config"] else {}
    try:
        base = serial_settings(config)
        line = SerialConfig.coerce(
            baud_rate=opts["baudrate"] if opts["baudrate"] is not None else base.config.baud_rate,
            data_bits=opts["bytesize"] if opts["bytesize"] is not None else base.config.data_bits,
            parity=opts["parity"] if opts["parity"] is not None else base.config.parity,
            stop_bits=opts["stopbits"] if opts["stopbits"] is not None else base.config.stop_bits,
            flow_control=opts["flow"] if opts["flow"] is not None else base.config.flow_control,
        )
    except ValueError as e:
        raise click.ClickException(str(e))
    device = opts["port"] or base.device
    if not device:
        raise click.ClickException("No serial port given. Use -p/--port or set [serial] device in the config file.")
    return PortSettings(device, line, base.timeout_ms)


def _open(settings: PortSettings) -> SerialPort:
    port = SerialPort()
    if not port.open(settings.device):
        raise click.ClickException(port.get_last_error())
    if not port.configure_with(settings.config):
        error = port.get_last_error()
        port.close()
        raise click.ClickException(error)
    return port


@click.group()
@click.option("-p", "--port", help="Serial device, e.g. /dev/ttyACM0, /dev/ttyUSB0")
@click.option("-b", "--baudrate", type=int, help="Baud rate [default: 115200]")
@click.option("--bytesize", type=click.Choice(["5", "6", "7", "8"]), help="Data bits [default: 8]")
@click.option("--parity", type=click.Choice(["N", "O", "E", "none", "odd", "even"], case_sensitive=False),
              help="Parity [default: N]")
@click.option("--stopbits", type=click.Choice(["1", "2"]), help="Stop bits [default: 1]")
@click.option("--flow", type=click.Choice(["none", "rtscts", "xonxoff"], case_sensitive=False),
              help="Flow control [default: none]")
@click.option("-c", "--config", type=click.Path(dir_okay=False), help="TOML file with a [serial] table")
@click.option("-v", "--verbose", is_flag=True, help="Log port operations")
@click.pass_context
def main(ctx: click.Context, port: Optional[str], baudrate: Optional[int], bytesize: Optional[str],
         parity: Optional[str], stopbits: Optional[str], flow: Optional[str],
         config: Optional[str], verbose: bool) -> None:
    """Open, configure and exchange bytes with a serial device.

    Examples:

      # Check that the device opens and configures
      embedded-serial-port -p /dev/ttyACM0 probe

      # Send text and wait until it left the UART
      embedded-serial-port -p /dev/ttyUSB0 -b 9600 send -s "hello" --wait

      # Read up to 64 bytes, waiting 2 seconds
      embedded-serial-port -c config.toml recv --max-bytes 64 --timeout-ms 2000
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    ctx.obj = {
        "port": port,
        "baudrate": baudrate,
        "bytesize": int(bytesize) if bytesize else None,
        "parity": parity,
        "stopbits": int(stopbits) if stopbits else None,
        "flow": flow,
        "config": config,
    }


@main.command()
@click.pass_context
def probe(ctx: click.Context) -> None:
    """Open and configure the port, clear its buffers and report pending input."""
    settings = _resolve(ctx)
    with _open(settings) as port:
        click.echo(f"Opened {port.device} ({settings.config})")
        if not port.flush():
            click.echo(f"Warning: {port.get_last_error()}", err=True)
        pending = port.available()
        if pending > 0:
            click.echo(f"{pending} bytes available")
        else:
            click.echo("No data available")


@main.command()
@click.option("-s", "string", help="String payload (mutually exclusive with -x)")
@click.option("-x", "hexstr", help="Hex payload, e.g. '01 02 0a' or '01020a'")
@click.option("--encoding", default="utf-8", show_default=True, help="Text encoding for string payloads")
@click.option("--wait/--no-wait", default=True, show_default=True, help="Wait until the bytes are transmitted")
@click.pass_context
def send(ctx: click.Context, string: Optional[str], hexstr: Optional[str], encoding: str, wait: bool) -> None:
    """Write a payload to the port."""
    payload = _build_payload(string, hexstr, encoding)
    settings = _resolve(ctx)
    with _open(settings) as port:
        written = port.write(payload, wait=wait)
        if written < 0:
            raise click.ClickException(port.get_last_error())
        click.echo(f"Sent {written} bytes to {port.device}")
        if port.get_last_error():
            click.echo(f"Warning: {port.get_last_error()}", err=True)


@main.command()
@click.option("--max-bytes", type=int, default=1024, show_default=True, help="Maximum number of bytes to read")
@click.option("--timeout-ms", type=int, help="Per-read timeout in milliseconds [default: from config or 1000]")
@click.option("--encoding", default="utf-8", show_default=True, help="Text encoding for received data")
@click.pass_context
def recv(ctx: click.Context, max_bytes: int, timeout_ms: Optional[int], encoding: str) -> None:
    """Read from the port and print what arrived."""
    try:
        codecs.lookup(encoding)
    except LookupError:
        raise click.ClickException(f"Unknown encoding: {encoding}")
    settings = _resolve(ctx)
    timeout = settings.timeout_ms if timeout_ms is None else timeout_ms
    with _open(settings) as port:
        data = port.read(max_bytes, timeout)
        if port.get_last_error():
            raise click.ClickException(port.get_last_error())
        if not data:
            click.echo("No data received within timeout")
            return
        try:
            click.echo(f"Received {len(data)} bytes: '{data.decode(encoding)}'")
        except UnicodeDecodeError:
            click.echo(f"Received {len(data)} bytes (hex): {data.hex()}")


if __name__ == "__main__":
    main()
