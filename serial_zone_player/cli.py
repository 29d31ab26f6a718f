from __future__ import annotations

import dataclasses
import logging
from typing import List, Optional

import click

from .linelog import LineLog
from .player import TARGETS, InlineTarget, ZonePlayer, make_target
from .session import ConnectError, SerialSession, SessionConfig
from .settings import (
    BAUD_RATES,
    DEFAULT_BAUDRATE,
    SettingsStore,
    get_serial_config,
    load_config,
    validate_baudrate,
)
from .transport import SerialTransport, describe_ports

_logger = logging.getLogger(__name__)


def _prompt_for_port(ports: List[str]) -> Optional[str]:
    if not ports:
        click.echo("No serial ports found.")
        return None
    for index, port in enumerate(ports, 1):
        click.echo(f"  {index}) {port}")
    choice = click.prompt("Select port (0 to cancel)", type=click.IntRange(0, len(ports)), default=1)
    return ports[choice - 1] if choice else None


def _resolve_baudrate(option: Optional[str], configured: Optional[int], store: SettingsStore) -> int:
    if option is not None:
        rate = int(option)
        store.save("baudrate", rate)
        return rate
    if configured is not None:
        return configured
    try:
        return validate_baudrate(store.load("baudrate", DEFAULT_BAUDRATE))
    except ValueError as e:
        _logger.warning("Ignoring saved baud rate: %s", e)
        return DEFAULT_BAUDRATE


def _show_inline(target: InlineTarget) -> None:
    _logger.debug("Video: %s loop=%s fullscreen=%s playing=%s",
                  target.source, target.loop, target.is_fullscreen, target.playing)


@click.command()
@click.option("-p", "--port", help="Serial port (e.g., /dev/ttyUSB0, COM3, loop://). If not specified, you are asked to pick one.")
@click.option("-b", "--baudrate", type=click.Choice([str(r) for r in BAUD_RATES]), help="Baud rate (saved for next time)")
@click.option("-l", "--language", help="Video language, i.e. the sub-directory of the video root")
@click.option("--video-root", type=click.Path(file_okay=False), help="Directory holding <language>/<zone>.mp4 files")
@click.option("--target", type=click.Choice(TARGETS), help="Where videos are shown")
@click.option("--player", help="External player command for --target player")
@click.option("-c", "--config", "config_path", type=click.Path(dir_okay=False), default="config.toml", show_default=True, help="TOML config file")
@click.option("--settings", "settings_path", type=click.Path(dir_okay=False), help="Saved settings file (defaults to the user app directory)")
@click.option("--reconnect/--no-reconnect", default=False, show_default=True, help="Reconnect once after a read failure")
@click.option("--list-ports", is_flag=True, help="List serial ports and exit")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
def main(port: Optional[str], baudrate: Optional[str], language: Optional[str], video_root: Optional[str],
         target: Optional[str], player: Optional[str], config_path: str, settings_path: Optional[str],
         reconnect: bool, list_ports: bool, verbose: bool) -> None:
    """Play zone videos selected by numbers read from a serial device.

    Every line received from the device is logged; lines holding a number
    switch the video to <video root>/<language>/<number>.mp4.

    Examples:

      # Pick a port interactively, English videos under ./videos
      serial-zone-player -l en

      # Specific port and rate, videos shown with mpv
      serial-zone-player -p /dev/ttyUSB0 -b 115200 -l fr --target player
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if list_ports:
        for device, description in describe_ports():
            click.echo(f"{device}\t{description}")
        return

    config = load_config(config_path)
    try:
        cfg_port, cfg_baudrate, encoding = get_serial_config(config)
    except ValueError as e:
        raise click.ClickException(f"Invalid [serial] config: {e}")
    video_cfg = config.get("video", {})

    store = SettingsStore(settings_path)
    session_config = SessionConfig(
        port=port or cfg_port,
        baudrate=_resolve_baudrate(baudrate, cfg_baudrate, store),
        encoding=encoding,
    )

    try:
        video_target = make_target(target or video_cfg.get("target", "inline"),
                                   player=player or video_cfg.get("player"),
                                   on_change=_show_inline)
    except ValueError as e:
        raise click.ClickException(str(e))

    zone_player = ZonePlayer(
        video_target,
        video_root=video_root or video_cfg.get("root", "videos"),
        idle_video=video_cfg.get("idle", "black.mp4"),
    )
    line_log = LineLog(echo=click.echo)
    faults: List[BaseException] = []

    session = SerialSession(
        SerialTransport(chooser=_prompt_for_port),
        on_line=line_log.add,
        on_zone=zone_player.on_zone,
        on_error=faults.append,
    )

    with zone_player:
        zone_player.reset()
        language = language or video_cfg.get("language")
        if language:
            zone_player.select_language(language)
        else:
            click.echo("No language selected; zones are logged but no video is played.")

        attempts = 2 if reconnect else 1
        for attempt in range(attempts):
            line_log.clear()
            line_log.add("Waiting for serial connection...")
            faults.clear()
            try:
                session.connect(session_config)
            except ConnectError as e:
                raise click.ClickException(str(e))
            # reconnect to the same device without asking again
            session_config = dataclasses.replace(session_config, port=session.port or session_config.port)
            click.echo(f"Connected to {session_config.port} at {session_config.baudrate} baud (Ctrl+C to stop)")

            try:
                while not session.wait_idle(0.5):
                    pass
            except KeyboardInterrupt:
                session.disconnect()
                line_log.add("Disconnected")
                break

            if faults:
                line_log.add(f"Disconnected: {faults[0]}")
            else:
                line_log.add("Disconnected")
            if not faults or attempt + 1 >= attempts:
                break
            click.echo("Reconnecting...")

        zone_player.reset()


if __name__ == "__main__":
    main()
