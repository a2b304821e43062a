from __future__ import annotations

import json
import logging
import os
import queue
import time
import uuid
from typing import Optional

import click

from .comm import SerialLink
from .config import DEFAULT_CONFIG_PATH, LinkConfig, load_config
from .discovery import get_likely_ports
from .errors import DecodeError, DeliveryFailure, TransportError
from .message import API_VERSION, Event, Message, Payload, Reading
from .sink import QueueSink

_logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_message(device: str, profile: Optional[str], resource: str, value_type: str, value: str) -> Message:
    origin = time.time_ns()
    reading = Reading(
        id=str(uuid.uuid4()),
        origin=origin,
        device_name=device,
        resource_name=resource,
        profile_name=profile or device,
        value_type=value_type,
        value=value,
    )
    event = Event(
        api_version=API_VERSION,
        id=str(uuid.uuid4()),
        device_name=device,
        profile_name=profile or device,
        source_name=resource,
        origin=origin,
        readings=[reading],
    )
    return Message.wrap(Payload(api_version=API_VERSION, request_id=str(uuid.uuid4()), event=event))


def _echo_message(message: Message) -> None:
    click.echo(f"Received message {message.correlation_id or '(no correlation id)'}:")
    click.echo(f"  Message: {json.dumps(message.to_dict())}")
    try:
        payload = message.decode_payload()
    except DecodeError as e:
        click.echo(f"  Payload: (undecodable: {e})")
        return
    click.echo(f"  Payload: {json.dumps(payload.to_dict())}")


def _open(config: LinkConfig) -> SerialLink:
    if not config.port:
        raise click.ClickException("No serial port given. Use -p/--port or set [serial] port in the config file.")
    try:
        return SerialLink(config)
    except (TransportError, ValueError) as e:
        raise click.ClickException(str(e))


@click.group()
@click.option("-c", "--config", "config_path", type=click.Path(dir_okay=False),
              help=f"TOML config file (default: ./{DEFAULT_CONFIG_PATH} if present)")
@click.option("-p", "--port", help="Serial port (e.g., /dev/ttyUSB0, COM7) or pyserial URL")
@click.option("-b", "--baudrate", type=int, help="Baud rate [default: 115200]")
@click.option("-t", "--timeout", "read_timeout", type=float, help="Read timeout in seconds [default: 0.3]")
@click.option("--max-length", "max_frame_length", type=int, help="Maximum frame payload size [default: 4096]")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str], port: Optional[str], baudrate: Optional[int],
         read_timeout: Optional[float], max_frame_length: Optional[int], verbose: bool) -> None:
    """Exchange JSON event messages over a serial link.

    Examples:

      # Send one reading and wait for the receiver to acknowledge it
      jsoncom -p /dev/ttyUSB0 send --device Random-Integer-Device --value -63

      # Print every message arriving on COM7
      jsoncom -p COM7 receive
    """
    _setup_logging(verbose)
    if config_path is None and os.path.exists(DEFAULT_CONFIG_PATH):
        config_path = DEFAULT_CONFIG_PATH
    try:
        config = load_config(config_path) if config_path else LinkConfig()
        config = config.override(port=port, baudrate=baudrate, read_timeout=read_timeout,
                                 max_frame_length=max_frame_length).validate()
    except ValueError as e:
        raise click.ClickException(str(e))
    ctx.obj = config


@main.command()
@click.option("-f", "--file", "message_file", type=click.File("rb"), help="Send this JSON message file as-is")
@click.option("--device", default="Random-Integer-Device", show_default=True, help="Device name")
@click.option("--profile", help="Profile name (default: device name)")
@click.option("--resource", default="Int8", show_default=True, help="Resource name")
@click.option("--value-type", default="Int8", show_default=True, help="Reading value type")
@click.option("--value", default="0", show_default=True, help="Reading value")
@click.option("-n", "--attempts", "max_attempts", type=int, help="Maximum send attempts [default: 3]")
@click.option("--feedback-timeout", type=float, help="Seconds to wait for OK/RETRY [default: 3.0]")
@click.option("--chunk-size", type=int, help="Bytes per paced write [default: 20]")
@click.option("--chunk-delay", type=float, help="Seconds between chunks [default: 0.05]")
@click.pass_obj
def send(config: LinkConfig, message_file, device: str, profile: Optional[str], resource: str,
         value_type: str, value: str, max_attempts: Optional[int], feedback_timeout: Optional[float],
         chunk_size: Optional[int], chunk_delay: Optional[float]) -> None:
    """Send one message and wait for it to be acknowledged."""
    try:
        config = config.override(max_attempts=max_attempts, feedback_timeout=feedback_timeout,
                                 chunk_size=chunk_size, chunk_delay=chunk_delay).validate()
    except ValueError as e:
        raise click.ClickException(str(e))

    if message_file is not None:
        data = message_file.read()
    else:
        data = _build_message(device, profile, resource, value_type, value).to_bytes()
    _logger.debug("Message JSON: %s", data.decode("utf-8", errors="replace"))

    try:
        with _open(config) as link:
            try:
                attempts = link.send(data)
            except DeliveryFailure as e:
                raise click.ClickException(str(e))
            except ValueError as e:
                raise click.ClickException(f"Cannot send message: {e}")
    except TransportError as e:
        raise click.ClickException(str(e))
    click.echo(f"Delivered {len(data)} bytes to {config.port} in {attempts} attempt(s)")


@main.command()
@click.option("--count", type=int, default=0, show_default=True, help="Stop after this many messages (0 = forever)")
@click.option("--inactivity-timeout", type=float, help="Seconds before a stalled frame is dropped [default: 5.0]")
@click.pass_obj
def receive(config: LinkConfig, count: int, inactivity_timeout: Optional[float]) -> None:
    """Listen for messages and print each one with its decoded payload."""
    try:
        config = config.override(inactivity_timeout=inactivity_timeout).validate()
    except ValueError as e:
        raise click.ClickException(str(e))

    sink = QueueSink()
    received = 0
    try:
        with _open(config) as link:
            rx = link.receiver(sink)
            click.echo(f"Listening on {config.port}... Ctrl+C to exit")
            with rx:
                try:
                    while not count or received < count:
                        try:
                            message = sink.queue.get(timeout=0.5)
                        except queue.Empty:
                            continue
                        received += 1
                        _echo_message(message)
                except KeyboardInterrupt:
                    click.echo("Stopping...")
    except TransportError as e:
        raise click.ClickException(str(e))
    click.echo(f"Received {received} message(s)")


@main.command()
def ports() -> None:
    """List serial ports, likeliest first."""
    found = get_likely_ports()
    if not found:
        click.echo("No serial ports found.")
        return
    for port in found:
        click.echo(port)


if __name__ == "__main__":
    main()
