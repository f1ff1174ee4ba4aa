"""Audio payloads and PCM helpers."""

from __future__ import annotations

import base64
import io
import wave
from dataclasses import dataclass

import numpy as np


@dataclass
class AudioBlob:
    """Encoded audio ready for upload or playback."""

    data: bytes
    mime_type: str = "audio/wav"

    @property
    def empty(self) -> bool:
        return not self.data

    @property
    def filename(self) -> str:
        """Upload filename matching the container."""
        ext = self.mime_type.split("/", 1)[-1].split(";", 1)[0] or "bin"
        if ext == "mpeg":
            ext = "mp3"
        return f"audio.{ext}"

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    @classmethod
    def from_base64(cls, encoded: str, mime_type: str = "audio/webm") -> AudioBlob:
        return cls(data=base64.b64decode(encoded, validate=True), mime_type=mime_type)


def encode_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """Encode float samples in [-1, 1] as mono 16-bit PCM WAV."""
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    pcm = (clipped * 32767).astype("<i2")
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm.tobytes())
    return buf.getvalue()


def decode_wav(data: bytes) -> np.ndarray | None:
    """Decode 16-bit PCM WAV to mono float32 samples.

    Returns None when *data* is not a 16-bit WAV file (e.g. webm from a
    browser), in which case callers cannot inspect the signal.
    """
    try:
        with wave.open(io.BytesIO(data), "rb") as wav:
            if wav.getsampwidth() != 2:
                return None
            channels = wav.getnchannels()
            frames = wav.readframes(wav.getnframes())
    except (wave.Error, EOFError):
        return None

    samples = np.frombuffer(frames, dtype="<i2").astype(np.float32) / 32768.0
    if channels > 1:
        samples = samples[: len(samples) - len(samples) % channels]
        samples = samples.reshape(-1, channels).mean(axis=1)
    return samples


def rms(samples: np.ndarray) -> float:
    """Root-mean-square energy; 0.0 for an empty signal."""
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(samples, dtype=np.float64))))
