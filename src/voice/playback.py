"""Audio playback through an external player process.

The player reads encoded audio on stdin (``ffplay -`` by default). Only
one playback runs at a time; starting another stops the current one.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shlex

from src.config import settings
from src.voice.audio import AudioBlob

logger = logging.getLogger(__name__)


class AudioPlayer:
    def __init__(self, command: str | None = None) -> None:
        self.command = shlex.split(command or settings.playback_command)
        self._proc: asyncio.subprocess.Process | None = None

    @property
    def is_playing(self) -> bool:
        return self._proc is not None and self._proc.returncode is None

    async def play(self, blob: AudioBlob) -> None:
        """Start playing *blob* and return once the audio is handed off."""
        await self.stop()
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError:
            logger.exception("Could not start audio player %s", self.command[0])
            return

        proc = self._proc
        try:
            proc.stdin.write(blob.data)
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("Player exited before reading all audio")
        finally:
            proc.stdin.close()
        logger.debug("Playback started (pid %s, %d bytes)", proc.pid, len(blob.data))

    async def wait(self) -> None:
        """Block until the current playback finishes."""
        if self._proc is not None:
            await self._proc.wait()

    async def stop(self) -> None:
        """Stop the current playback, if any."""
        proc = self._proc
        self._proc = None
        if proc is None or proc.returncode is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            proc.terminate()
        try:
            await asyncio.wait_for(proc.wait(), timeout=2)
        except TimeoutError:
            proc.kill()
            await proc.wait()
        logger.debug("Playback stopped")
