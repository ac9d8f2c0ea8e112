"""
Streaming text-to-speech over a WebSocket, assembled into one WAV container.

Protocol: setup -> ready -> text + end_of_stream -> audio* -> end_of_stream.
The server may send an error message at any point.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import struct
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from ..config import settings

NUM_CHANNELS = 1
BITS_PER_SAMPLE = 16
BYTES_PER_SAMPLE = BITS_PER_SAMPLE // 8
WAV_HEADER_SIZE = 44
PCM_FORMAT_TAG = 1


class SpeechSynthesisError(RuntimeError):
    pass


class SpeechConfigurationError(SpeechSynthesisError):
    pass


class SpeechProtocolError(SpeechSynthesisError):
    pass


class StreamState(Enum):
    AWAITING_READY = "awaiting_ready"
    STREAMING = "streaming"
    DONE = "done"
    FAILED = "failed"


def wav_header(data_size: int, sample_rate: int, num_channels: int = NUM_CHANNELS, bits_per_sample: int = BITS_PER_SAMPLE) -> bytes:
    block_align = num_channels * bits_per_sample // 8
    byte_rate = sample_rate * block_align
    return struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        36 + data_size,
        b"WAVE",
        b"fmt ",
        16,
        PCM_FORMAT_TAG,
        num_channels,
        sample_rate,
        byte_rate,
        block_align,
        bits_per_sample,
        b"data",
        data_size,
    )


def build_wav(pcm: bytes, sample_rate: int) -> bytes:
    """Wrap raw 16-bit mono PCM in a WAV header, dropping any trailing half sample."""

    usable = (len(pcm) // BYTES_PER_SAMPLE) * BYTES_PER_SAMPLE
    return wav_header(usable, sample_rate) + pcm[:usable]


@dataclass
class AudioAssemblyContext:
    frames: list[bytes] = field(default_factory=list)
    end_of_stream: bool = False

    def append_encoded(self, encoded: str) -> None:
        try:
            self.frames.append(base64.b64decode(encoded, validate=True))
        except (binascii.Error, ValueError) as exc:
            raise SpeechProtocolError(f"Undecodable audio frame: {exc}") from exc

    @property
    def byte_count(self) -> int:
        return sum(len(frame) for frame in self.frames)

    def container(self, sample_rate: int) -> bytes:
        return build_wav(b"".join(self.frames), sample_rate)


def is_speech_configured() -> bool:
    return bool(settings.gradium_api_key)


def _decode_control(raw: Any) -> dict[str, Any]:
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise SpeechProtocolError("Server sent a non-text message") from exc
    try:
        message = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as exc:
        raise SpeechProtocolError(f"Server sent malformed JSON: {str(raw)[:80]!r}") from exc
    if not isinstance(message, dict):
        raise SpeechProtocolError("Server message is not a JSON object")
    return message


async def synthesize_speech(
    text: str,
    *,
    api_key: Optional[str] = None,
    voice_id: Optional[str] = None,
    url: Optional[str] = None,
    sample_rate: Optional[int] = None,
    connect: Callable[..., Any] = websockets.connect,
) -> bytes:
    """
    Stream ``text`` through the TTS service and return one WAV container.

    If the connection drops after some audio arrived but before the server's
    end_of_stream, the partial audio is still returned.
    """

    api_key = api_key or settings.gradium_api_key
    if not api_key:
        raise SpeechConfigurationError("GRADIUM_API_KEY not set")

    voice_id = voice_id or settings.gradium_voice_id
    url = url or settings.gradium_tts_url
    sample_rate = sample_rate or settings.tts_sample_rate

    context = AudioAssemblyContext()
    state = StreamState.AWAITING_READY

    async with connect(url, additional_headers={"x-api-key": api_key}) as ws:
        await ws.send(
            json.dumps({"type": "setup", "voice_id": voice_id, "model_name": "default", "output_format": "pcm"})
        )
        try:
            async for raw in ws:
                message = _decode_control(raw)
                kind = message.get("type")

                if kind == "ready" and state is StreamState.AWAITING_READY:
                    await ws.send(json.dumps({"type": "text", "text": text}))
                    await ws.send(json.dumps({"type": "end_of_stream"}))
                    state = StreamState.STREAMING
                elif kind == "audio" and state is StreamState.STREAMING:
                    if message.get("audio"):
                        context.append_encoded(message["audio"])
                elif kind == "end_of_stream" and state is StreamState.STREAMING:
                    context.end_of_stream = True
                    state = StreamState.DONE
                    break
                elif kind == "error":
                    state = StreamState.FAILED
                    raise SpeechSynthesisError(message.get("message") or "Speech synthesis error")
                else:
                    logging.debug("tts_message_ignored type=%s state=%s", kind, state.value)
        except ConnectionClosed as exc:
            if not context.frames:
                raise
            logging.warning(
                "tts_connection_closed_early frames=%s bytes=%s reason=%s",
                len(context.frames),
                context.byte_count,
                exc,
            )
            return context.container(sample_rate)

    if not context.end_of_stream:
        if not context.frames:
            raise SpeechSynthesisError("Speech stream closed before any audio was received")
        logging.warning("tts_stream_incomplete frames=%s bytes=%s", len(context.frames), context.byte_count)

    logging.debug("tts_done frames=%s bytes=%s", len(context.frames), context.byte_count)
    return context.container(sample_rate)
