"""
Route registration for the desktop stream API.

Responsibilities:
- Define the HTTP endpoints polled by in-game terminals
- Translate runtime results into status codes and text bodies
- Pull dependencies from app.state
"""

from __future__ import annotations

from fastapi import FastAPI, Query, Request, Response
from fastapi.responses import PlainTextResponse

from audio.pull import AudioChunk
from observability.logger import log_event
from protocol.text import PullProtocolError, encode_audio_payload, parse_audio_query
from runtime.stream_runtime import AudioUnavailable, StreamRuntime
from server.templates import render_template
from constants import (
    AUDIO_DIRECTION_DEFAULT,
    DEFAULT_SCREEN_ID,
    VIDEO_DIRECTION_DEFAULT,
)

LUA_MEDIA_TYPE = "text/plain"


def _base_url(request: Request, base: str | None) -> str:
    if base:
        return base
    host = request.headers.get("host") or f"{request.url.hostname}:{request.url.port}"
    return f"http://{host}"


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    def runtime() -> StreamRuntime:
        return app.state.runtime

    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    # ------------------------------------------------------------------
    # Video
    # ------------------------------------------------------------------

    @app.get("/data.txt")
    async def frame_data( # pyright: ignore[reportUnusedFunction]
        screen_id: str = Query(DEFAULT_SCREEN_ID, alias="id"),
    ) -> PlainTextResponse:
        return PlainTextResponse(runtime().get_frame_text(screen_id))

    @app.get("/video.lua")
    async def video_script( # pyright: ignore[reportUnusedFunction]
        request: Request,
        screen_id: str = Query(DEFAULT_SCREEN_ID, alias="id"),
        base: str | None = None,
        direction: str = VIDEO_DIRECTION_DEFAULT,
    ) -> PlainTextResponse:
        body = render_template(
            "video.lua",
            id=screen_id,
            base=_base_url(request, base),
            direction=direction,
        )
        return PlainTextResponse(body, media_type=LUA_MEDIA_TYPE)

    # ------------------------------------------------------------------
    # Audio
    # ------------------------------------------------------------------

    @app.get("/audio.pcm")
    async def audio_pcm( # pyright: ignore[reportUnusedFunction]
        size: str | None = None,
        seq: str | None = None,
    ) -> Response:
        rt = runtime()
        if not rt.audio_enabled:
            return PlainTextResponse("Audio disabled", status_code=503)

        try:
            chunk_size, last_seq = parse_audio_query(
                size, seq, default_size=rt.config.audio.chunk_size
            )
            result = rt.get_audio_chunk(chunk_size, last_seq)
        except PullProtocolError as exc:
            return PlainTextResponse(str(exc), status_code=400)
        except AudioUnavailable:
            return PlainTextResponse("Audio disabled", status_code=503)

        if not isinstance(result, AudioChunk):
            write_seq = rt.get_audio_info()["currentWriteSeq"]
            return Response(status_code=204, headers={"X-Audio-Seq": str(write_seq)})

        headers = {"X-Audio-Seq": str(result.new_seq)}
        if result.resynced:
            headers["X-Audio-Resynced"] = "1"
        return PlainTextResponse(
            encode_audio_payload(result.new_seq, result.samples),
            headers=headers,
        )

    @app.get("/audio/info")
    async def audio_info() -> dict[str, object]: # pyright: ignore[reportUnusedFunction]
        return runtime().get_audio_info()

    @app.get("/audio.lua")
    async def audio_script( # pyright: ignore[reportUnusedFunction]
        request: Request,
        base: str | None = None,
        direction: str = AUDIO_DIRECTION_DEFAULT,
    ) -> PlainTextResponse:
        body = render_template(
            "audio.lua",
            base=_base_url(request, base),
            direction=direction,
            size=runtime().config.audio.chunk_size,
        )
        return PlainTextResponse(body, media_type=LUA_MEDIA_TYPE)


def log_ready(app: FastAPI) -> None:
    """
    Startup banner: one SERVER_READY event with bootstrap hints.
    """
    rt: StreamRuntime = app.state.runtime
    config = rt.config
    origin = f"http://127.0.0.1:{config.port}"

    log_event({
        "event_type": "SERVER_READY",
        "listen": f"{config.host}:{config.port}",
        "video": {
            s.id: f"wget run {origin}/video.lua?id={s.id}"
            for s in config.canvas.screens
        },
        "audio": f"wget run {origin}/audio.lua" if rt.audio_enabled else None,
    })
