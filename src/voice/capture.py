"""Microphone capture with energy-based voice activity detection.

The VAD is a heuristic: speech starts once the frame RMS stays above a
fixed threshold for the debounce window and ends after roughly a second
below it. False positives and negatives are acceptable.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import numpy as np

from src.config import settings
from src.errors import DeviceUnavailable
from src.voice.audio import AudioBlob, encode_wav, rms

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

PRE_ROLL_FRAMES = 16

SPEECH_START = "speech_start"
SPEECH_END = "speech_end"


class EnergyVAD:
    """Debounced RMS threshold detector fed frame by frame."""

    def __init__(
        self,
        sample_rate: int,
        threshold: float | None = None,
        debounce_ms: int | None = None,
        silence_ms: int | None = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.threshold = settings.vad_threshold if threshold is None else threshold
        self.debounce_ms = settings.vad_debounce_ms if debounce_ms is None else debounce_ms
        self.silence_ms = settings.vad_silence_ms if silence_ms is None else silence_ms
        self.speaking = False
        self._above_ms = 0.0
        self._below_ms = 0.0

    def process(self, frame: np.ndarray) -> str | None:
        """Feed one frame; return ``speech_start``/``speech_end`` on transitions."""
        frame_ms = len(frame) * 1000.0 / self.sample_rate
        loud = rms(frame) >= self.threshold

        if not self.speaking:
            self._above_ms = self._above_ms + frame_ms if loud else 0.0
            if self._above_ms >= self.debounce_ms:
                self.speaking = True
                self._below_ms = 0.0
                return SPEECH_START
            return None

        if loud:
            self._below_ms = 0.0
            return None
        self._below_ms += frame_ms
        if self._below_ms >= self.silence_ms:
            self.speaking = False
            self._above_ms = 0.0
            return SPEECH_END
        return None


@dataclass
class CaptureHandle:
    """State of one in-progress recording."""

    stream: Any
    loop: asyncio.AbstractEventLoop
    vad: EnergyVAD | None = None
    chunks: list[np.ndarray] = field(default_factory=list)
    pre_roll: deque = field(default_factory=lambda: deque(maxlen=PRE_ROLL_FRAMES))
    speech_started: bool = False
    speech_ended: asyncio.Event = field(default_factory=asyncio.Event)

    def feed(self, frame: np.ndarray) -> None:
        """Buffer a frame and run it through the VAD (audio thread)."""
        if self.vad is None:
            self.chunks.append(frame)
            return

        event = self.vad.process(frame)
        if event == SPEECH_START:
            self.speech_started = True
            self.chunks.extend(self.pre_roll)
            self.pre_roll.clear()
        if self.speech_started:
            self.chunks.append(frame)
        else:
            self.pre_roll.append(frame)
        if event == SPEECH_END:
            self.loop.call_soon_threadsafe(self.speech_ended.set)


def _open_input_stream(sample_rate: int, callback: Callable[..., None]) -> Any:
    """Open and start a mono float32 sounddevice input stream."""
    try:
        import sounddevice as sd
    except OSError as exc:
        msg = f"Audio backend unavailable: {exc}"
        raise DeviceUnavailable(msg) from exc

    try:
        stream = sd.InputStream(
            samplerate=sample_rate,
            channels=1,
            dtype="float32",
            callback=callback,
        )
        stream.start()
    except sd.PortAudioError as exc:
        msg = f"Microphone unavailable: {exc}"
        raise DeviceUnavailable(msg) from exc
    return stream


class AudioCapture:
    """Exclusive microphone access producing WAV blobs.

    ``stream_factory(sample_rate, callback)`` must return a started stream
    with ``stop()`` and ``close()``; the default opens the system
    microphone through sounddevice.
    """

    def __init__(
        self,
        sample_rate: int | None = None,
        use_vad: bool = True,
        stream_factory: Callable[[int, Callable[..., None]], Any] | None = None,
    ) -> None:
        self.sample_rate = sample_rate or settings.sample_rate_hz
        self.use_vad = use_vad
        self._stream_factory = stream_factory or _open_input_stream
        self._active: CaptureHandle | None = None

    @property
    def capturing(self) -> bool:
        return self._active is not None

    async def start_capture(self) -> CaptureHandle:
        """Acquire the microphone. Raises ``DeviceUnavailable``."""
        if self._active is not None:
            msg = "Microphone is already in use"
            raise DeviceUnavailable(msg)

        vad = EnergyVAD(self.sample_rate) if self.use_vad else None
        handle = CaptureHandle(stream=None, loop=asyncio.get_running_loop(), vad=vad)

        def _callback(indata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
            if status:
                logger.debug("Input stream status: %s", status)
            handle.feed(np.array(indata[:, 0] if indata.ndim > 1 else indata, dtype=np.float32))

        handle.stream = self._stream_factory(self.sample_rate, _callback)
        self._active = handle
        logger.info("Capture started (%d Hz, vad=%s)", self.sample_rate, self.use_vad)
        return handle

    def stop_capture(self, handle: CaptureHandle) -> AudioBlob:
        """Release the microphone and return everything buffered as WAV."""
        try:
            handle.stream.stop()
            handle.stream.close()
        finally:
            if self._active is handle:
                self._active = None

        samples = np.concatenate(handle.chunks) if handle.chunks else np.zeros(0, np.float32)
        logger.info("Capture stopped: %.2fs of audio", len(samples) / self.sample_rate)
        return AudioBlob(data=encode_wav(samples, self.sample_rate), mime_type="audio/wav")

    async def record_utterance(self, max_seconds: float = 30.0) -> AudioBlob:
        """Record until the VAD detects the end of speech or *max_seconds* pass.

        Cancelling the awaiting task releases the microphone.
        """
        handle = await self.start_capture()
        try:
            await asyncio.wait_for(handle.speech_ended.wait(), timeout=max_seconds)
        except TimeoutError:
            logger.info("Capture reached %.0fs limit", max_seconds)
        except asyncio.CancelledError:
            self.stop_capture(handle)
            raise
        return self.stop_capture(handle)
