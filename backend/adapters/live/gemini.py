"""
Gemini Live narration endpoint.

Wraps one `client.aio.live.connect(...)` session:
- outbound: RealtimeChunk -> send_realtime_input(audio=Blob | video=Blob)
- inbound:  model-turn inline audio -> AudioReceived(base64 PCM16 @ 24 kHz)
- lifecycle: Opened after connect, Closed on a normal close, Failed otherwise

Design constraints:
- Adapter must not touch the microphone, camera or playback.
- Adapter must not decide when to send; the commentary bridge throttles.
- close() never awaits; the SDK session is shut down on a background task.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import Any, Iterator

from google import genai
from google.genai import types
from websockets.exceptions import ConnectionClosedOK

from adapters.live.base import (
    AudioReceived,
    Closed,
    ConfigurationError,
    EndpointConnectionError,
    EndpointEvent,
    EndpointEventHandler,
    EndpointEventType,
    Failed,
    LiveEndpoint,
    Opened,
    RealtimeChunk,
)
from audio.pcm import DecodeError, from_transport_text, to_transport_text
from observability.logger import log_event


def _now_ms() -> int:
    return int(time.time() * 1000)


class GeminiLiveEndpoint(LiveEndpoint):
    """
    One Gemini Live connection configured for spoken narration.

    Public interface:
    - open(handler): connect; raises ConfigurationError / EndpointConnectionError
    - send(chunk): push audio or image
    - close(): hard, non-awaiting teardown
    """

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        voice: str,
        system_instruction: str,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._voice = voice
        self._system_instruction = system_instruction

        self._handler: EndpointEventHandler | None = None
        self._stack: contextlib.AsyncExitStack | None = None
        self._session: Any = None  # genai AsyncSession
        self._recv_task: asyncio.Task[None] | None = None
        # Bumped by every open() and close(); a connect that finishes under a
        # newer token was superseded and is shut down instead of installed.
        self._connect_token = 0

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    def _build_config(self) -> types.LiveConnectConfig:
        return types.LiveConnectConfig(
            response_modalities=[types.Modality.AUDIO],
            speech_config=types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(
                        voice_name=self._voice,
                    )
                )
            ),
            system_instruction=self._system_instruction,
        )

    async def open(self, handler: EndpointEventHandler) -> None:
        if not self._api_key:
            raise ConfigurationError("missing API key")
        if self._session is not None:
            return
        self._connect_token += 1
        token = self._connect_token

        client = genai.Client(api_key=self._api_key)
        stack = contextlib.AsyncExitStack()
        try:
            session = await stack.enter_async_context(
                client.aio.live.connect(model=self._model, config=self._build_config())
            )
        except Exception as e:  # pylint: disable=broad-exception-caught
            await stack.aclose()
            raise EndpointConnectionError(f"gemini_connect_failed: {e!r}") from e

        if token != self._connect_token:
            log_event({
                "event_type": "ENDPOINT_CONNECT_SUPERSEDED",
                "model": self._model,
            })
            await self._shutdown(stack)
            return

        self._handler = handler
        self._stack = stack
        self._session = session
        self._recv_task = asyncio.create_task(self._recv_loop(session))

        log_event({
            "event_type": "ENDPOINT_CONNECTED",
            "model": self._model,
            "voice": self._voice,
        })
        handler(Opened(event_type=EndpointEventType.OPENED, ts_ms=_now_ms()))

    async def send(self, chunk: RealtimeChunk) -> None:
        session = self._session
        if session is None:
            return

        try:
            blob = types.Blob(data=from_transport_text(chunk.data), mime_type=chunk.mime_type)
        except DecodeError as e:
            log_event({
                "event_type": "ENDPOINT_SEND_FAILED",
                "mime_type": chunk.mime_type,
                "error": str(e),
            })
            return

        try:
            if chunk.mime_type.startswith("audio/"):
                await session.send_realtime_input(audio=blob)
            else:
                await session.send_realtime_input(video=blob)
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "ENDPOINT_SEND_FAILED",
                "mime_type": chunk.mime_type,
                "error": repr(e),
            })

    def close(self) -> None:
        self._connect_token += 1
        self._handler = None
        self._session = None

        rt = self._recv_task
        self._recv_task = None
        if rt is not None and not rt.done():
            rt.cancel()

        stack = self._stack
        self._stack = None
        if stack is not None:
            try:
                asyncio.get_running_loop().create_task(self._shutdown(stack))
            except RuntimeError:
                # No running loop: the SDK session dies with the process.
                log_event({
                    "event_type": "ENDPOINT_CLOSE_SKIPPED",
                    "reason": "no_running_loop",
                })

    async def _shutdown(self, stack: contextlib.AsyncExitStack) -> None:
        try:
            await stack.aclose()
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "ENDPOINT_CLOSE_FAILED",
                "error": repr(e),
            })

    # -------------------------------------------------------------------------
    # Background loops
    # -------------------------------------------------------------------------

    async def _recv_loop(self, session: Any) -> None:
        """
        Forward narration audio until the connection ends.

        session.receive() yields one model turn and then returns, so it is
        re-entered for every turn.
        """
        try:
            while True:
                async for message in session.receive():
                    for pcm in _inline_audio(message):
                        self._emit(
                            AudioReceived(
                                event_type=EndpointEventType.AUDIO_RECEIVED,
                                ts_ms=_now_ms(),
                                data=to_transport_text(pcm),
                            )
                        )
        except asyncio.CancelledError:
            return
        except ConnectionClosedOK:
            self._emit(Closed(event_type=EndpointEventType.CLOSED, ts_ms=_now_ms()))
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._emit(
                Failed(
                    event_type=EndpointEventType.FAILED,
                    ts_ms=_now_ms(),
                    reason=f"gemini_recv_failed: {e!r}",
                )
            )

    def _emit(self, event: EndpointEvent) -> None:
        handler = self._handler
        if handler is not None:
            handler(event)


def _inline_audio(message: types.LiveServerMessage) -> Iterator[bytes]:
    content = message.server_content
    if content is None or content.model_turn is None:
        return
    for part in content.model_turn.parts or ():
        blob = part.inline_data
        if blob is not None and blob.data:
            yield blob.data
