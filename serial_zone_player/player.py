"""
player.py - Zone to video dispatch

ZonePlayer maps zone events to video files laid out as
``<root>/<language>/<zone>.mp4`` and drives a VideoTarget to show them.
Two target strategies exist:

    InlineTarget: keeps the player state in memory and reports changes through
        a callback, for embedding in another UI.
    PlayerProcessTarget: shows each video in an external player process
        (mpv by default), replacing the previous one.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from .zones import ZoneEvent

_logger = logging.getLogger(__name__)

DEFAULT_PLAYER = "mpv --no-terminal"


class VideoTarget:
    """Where videos are shown."""

    def show(self, path: Path, *, loop: bool) -> None:
        raise NotImplementedError

    def fullscreen(self) -> None:
        raise NotImplementedError

    def play(self) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class InlineTarget(VideoTarget):
    """
    In-memory player state.

    Args:
        on_change: Called with the target after every state change
    """

    def __init__(self, on_change: Optional[Callable[["InlineTarget"], None]] = None):
        self.on_change = on_change
        self.source: Optional[Path] = None
        self.loop = False
        self.is_fullscreen = False
        self.playing = False

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self)

    def show(self, path: Path, *, loop: bool) -> None:
        self.source = path
        self.loop = loop
        self.playing = False
        self._changed()

    def fullscreen(self) -> None:
        if self.is_fullscreen:
            _logger.debug("Already in fullscreen")
            return
        self.is_fullscreen = True
        self._changed()

    def play(self) -> None:
        self.playing = True
        self._changed()


class PlayerProcessTarget(VideoTarget):
    """
    Shows videos in an external player process.

    Args:
        command: Player command line, e.g. "mpv --no-terminal"
        fullscreen_flag: Argument that starts the player fullscreen
        loop_flag: Argument that makes the player loop the file
    """

    def __init__(
        self,
        command: Union[str, Sequence[str]] = DEFAULT_PLAYER,
        fullscreen_flag: str = "--fs",
        loop_flag: str = "--loop-file=inf",
    ):
        self.command: List[str] = shlex.split(command) if isinstance(command, str) else list(command)
        if not self.command:
            raise ValueError("player command is empty")
        self.fullscreen_flag = fullscreen_flag
        self.loop_flag = loop_flag
        self.is_fullscreen = False
        self._path: Optional[Path] = None
        self._loop = False
        self._process: Optional[subprocess.Popen] = None

    def _stop(self) -> None:
        process, self._process = self._process, None
        if process is None or process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(timeout=2.0)
        except subprocess.TimeoutExpired:
            _logger.warning("Player pid %d did not exit, killing it", process.pid)
            process.kill()
            process.wait()

    def _argv(self) -> List[str]:
        argv = list(self.command)
        if self.is_fullscreen and self.fullscreen_flag:
            argv.append(self.fullscreen_flag)
        if self._loop and self.loop_flag:
            argv.append(self.loop_flag)
        argv.append(str(self._path))
        return argv

    def show(self, path: Path, *, loop: bool) -> None:
        self._stop()
        self._path = path
        self._loop = loop

    def fullscreen(self) -> None:
        # applied when the next process starts
        self.is_fullscreen = True

    def play(self) -> None:
        if self._path is None:
            return
        self._stop()
        argv = self._argv()
        _logger.debug("Starting player: %s", argv)
        try:
            self._process = subprocess.Popen(argv, stdin=subprocess.DEVNULL)
        except OSError as ex:
            _logger.error("Unable to start player %s: %s", argv[0], ex)

    def close(self) -> None:
        self._stop()


TARGETS = ("inline", "player")


def make_target(kind: str, *, player: Optional[str] = None,
                on_change: Optional[Callable[[InlineTarget], None]] = None) -> VideoTarget:
    """
    Build a video target by name.
    Args:
        kind: "inline" or "player"
        player: Player command for the "player" target
        on_change: Change callback for the "inline" target
    Raises:
        ValueError: If the kind is unknown
    """
    if kind == "inline":
        return InlineTarget(on_change=on_change)
    if kind == "player":
        return PlayerProcessTarget(player or DEFAULT_PLAYER)
    raise ValueError(f"unknown video target: {kind}")


class ZonePlayer:
    """
    Switches videos in response to zone events.

    Args:
        target: Where videos are shown
        video_root: Directory containing one sub-directory per language
        idle_video: File under video_root looped while no zone is playing
        language: Initially selected language, if any
    """

    def __init__(
        self,
        target: VideoTarget,
        video_root: Union[str, Path] = "videos",
        idle_video: str = "black.mp4",
        language: Optional[str] = None,
    ):
        self.target = target
        self.video_root = Path(video_root)
        self.idle_video = idle_video
        self.language = language

    def asset_path(self, zone: Union[ZoneEvent, int, float]) -> Path:
        """Video file for a zone in the current language."""
        if self.language is None:
            raise ValueError("no language selected")
        return self.video_root / self.language / f"{zone}.mp4"

    def select_language(self, language: str) -> None:
        self.language = language
        _logger.info("Language selected: %s", language)
        self.target.fullscreen()

    def clear_language(self) -> None:
        self.language = None
        self.reset()

    def reset(self) -> None:
        """Loop the idle video."""
        self.target.show(self.video_root / self.idle_video, loop=True)
        self.target.play()

    def on_zone(self, event: ZoneEvent) -> None:
        if self.language is None:
            _logger.warning("No language selected, ignoring zone %s", event)
            return
        _logger.info("Changing zone to %s", event)
        self.target.show(self.asset_path(event), loop=False)
        self.target.fullscreen()
        self.target.play()

    def close(self) -> None:
        self.target.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
