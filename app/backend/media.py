from __future__ import annotations

import base64
import binascii
import logging
import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from fastapi import UploadFile

from .constants import CHUNK_SIZE, MAX_MEDIA_BYTES
from .errors import CaptureError
from .llm_client import AudioInput


logger = logging.getLogger("uvicorn.error")

DEFAULT_AUDIO_MIME = "audio/webm"
ALLOWED_AUDIO_TYPES = {
    "audio/webm",
    "audio/ogg",
    "audio/wav",
    "audio/x-wav",
    "audio/wave",
    "audio/mpeg",
    "audio/mp3",
    "audio/mp4",
    "video/webm",
    "application/octet-stream",
}
ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/webp"}
NATIVE_AUDIO_FORMATS = {
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
}


def _max_media_bytes() -> int:
    try:
        return max(1, int(os.getenv("MAX_MEDIA_BYTES", str(MAX_MEDIA_BYTES))))
    except ValueError:
        return MAX_MEDIA_BYTES


def normalize_mime(content_type: Optional[str], default: str) -> str:
    value = (content_type or "").split(";", 1)[0].strip().lower()
    return value or default


def data_url(mime_type: str, payload_base64: str) -> str:
    return f"data:{mime_type};base64,{payload_base64}"


def mime_from_data_url(url: Optional[str], default: str = DEFAULT_AUDIO_MIME) -> str:
    if not url or not url.startswith("data:"):
        return default
    header = url[len("data:") :].split(",", 1)[0]
    return normalize_mime(header, default)


@dataclass
class CapturedAudio:
    url: str
    base64: str
    mime_type: str


class MediaCapture(Protocol):
    def capture_audio(self, data: bytes, content_type: Optional[str]) -> CapturedAudio:
        pass

    def capture_photo(self, data: bytes, content_type: Optional[str]) -> str:
        pass


class UploadedMediaCapture:
    """Turns clips and snapshots recorded by the browser into stored references."""

    def __init__(self, max_bytes: Optional[int] = None) -> None:
        self._max_bytes = max_bytes or _max_media_bytes()

    def _check_size(self, data: bytes, kind: str) -> None:
        if not data:
            raise CaptureError(f"The {kind} capture is empty.")
        if len(data) > self._max_bytes:
            raise CaptureError(f"The {kind} capture is too large. Max size is {self._max_bytes} bytes.")

    def capture_audio(self, data: bytes, content_type: Optional[str]) -> CapturedAudio:
        mime_type = normalize_mime(content_type, DEFAULT_AUDIO_MIME)
        if mime_type not in ALLOWED_AUDIO_TYPES:
            raise CaptureError(f"Unsupported audio type: {mime_type}")
        if mime_type == "application/octet-stream":
            mime_type = DEFAULT_AUDIO_MIME
        self._check_size(data, "audio")
        encoded = base64.b64encode(data).decode("ascii")
        logger.info("audio_captured mime=%s bytes=%s", mime_type, len(data))
        return CapturedAudio(url=data_url(mime_type, encoded), base64=encoded, mime_type=mime_type)

    def capture_photo(self, data: bytes, content_type: Optional[str]) -> str:
        mime_type = normalize_mime(content_type, "image/jpeg")
        if mime_type not in ALLOWED_IMAGE_TYPES:
            raise CaptureError("Photo must be a .jpg, .png or .webp image.")
        self._check_size(data, "photo")
        logger.info("photo_captured mime=%s bytes=%s", mime_type, len(data))
        return data_url(mime_type, base64.b64encode(data).decode("ascii"))


async def read_upload(upload: UploadFile, *, field_name: str, max_size_bytes: Optional[int] = None) -> bytes:
    limit = max_size_bytes or _max_media_bytes()
    chunks = []
    total_bytes = 0
    while True:
        chunk = await upload.read(CHUNK_SIZE)
        if not chunk:
            break
        total_bytes += len(chunk)
        if total_bytes > limit:
            await upload.close()
            raise CaptureError(f"{field_name} is too large. Max size is {limit} bytes.")
        chunks.append(chunk)
    await upload.close()
    if total_bytes == 0:
        raise CaptureError(f"{field_name} file is empty.")
    return b"".join(chunks)


def _convert_to_wav(source: bytes, suffix: str) -> bytes:
    ffmpeg_path = shutil.which("ffmpeg")
    if not ffmpeg_path:
        raise CaptureError(
            "ffmpeg is not installed or not on PATH. Install ffmpeg (macOS: brew install ffmpeg)."
        )

    temp_dir = Path(tempfile.mkdtemp(prefix="rec_audio_"))
    try:
        input_path = temp_dir / f"input{suffix}"
        wav_path = temp_dir / "converted.wav"
        input_path.write_bytes(source)
        command = [
            ffmpeg_path,
            "-y",
            "-i",
            str(input_path),
            "-ac",
            "1",
            "-ar",
            "16000",
            "-f",
            "wav",
            str(wav_path),
        ]
        try:
            result = subprocess.run(command, capture_output=True, text=True, timeout=120)
        except subprocess.TimeoutExpired as exc:
            raise CaptureError("Audio conversion timed out (120 s).") from exc
        if result.returncode != 0:
            stderr_tail = (result.stderr or "").strip().splitlines()
            message = stderr_tail[-1] if stderr_tail else "Unknown ffmpeg error"
            raise CaptureError(f"Audio conversion failed: {message}")
        if not wav_path.exists() or wav_path.stat().st_size == 0:
            raise CaptureError("Converted WAV audio is empty.")
        return wav_path.read_bytes()
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)


def build_transcription_audio(audio_base64: str, mime_type: str = DEFAULT_AUDIO_MIME) -> AudioInput:
    """Prepare a captured clip for the transcription call (WAV or MP3 only)."""
    mime_type = normalize_mime(mime_type, DEFAULT_AUDIO_MIME)
    native_format = NATIVE_AUDIO_FORMATS.get(mime_type)
    if native_format:
        return AudioInput(data_base64=audio_base64, format=native_format)

    try:
        raw = base64.b64decode(audio_base64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CaptureError("Recorded audio is not valid base64 data.") from exc
    suffix = "." + (mime_type.split("/", 1)[-1] or "webm")
    wav_bytes = _convert_to_wav(raw, suffix)
    logger.info("audio_converted mime=%s wav_bytes=%s", mime_type, len(wav_bytes))
    return AudioInput(data_base64=base64.b64encode(wav_bytes).decode("ascii"), format="wav")
