# pylint: disable=missing-module-docstring,missing-function-docstring

from fastapi.testclient import TestClient
from PIL import Image

from config import AppConfig, AudioConfig
from runtime.stream_runtime import StreamRuntime
from server.app import create_app


class StillSource:
    async def capture(self) -> Image.Image:
        return Image.new("RGB", (320, 160), (0, 0, 0))


class IdleAudioCapture:
    running = False

    def ensure_available(self) -> None:
        pass


def make_client(*, audio: bool = True) -> tuple[TestClient, StreamRuntime]:
    config = AppConfig(audio=AudioConfig(enabled=audio, chunk_size=4, buffer_seconds=0.5))
    runtime = StreamRuntime(
        config=config,
        image_source=StillSource(),
        audio_capture=IdleAudioCapture() if audio else None,  # type: ignore[arg-type]
    )
    # No `with`: lifespan (and its capture tasks) stays off
    return TestClient(create_app(config, runtime=runtime)), runtime


# ---------------------------------------------------------------------
# Video
# ---------------------------------------------------------------------

def test_health():
    client, _ = make_client()

    assert client.get("/health").json() == {"status": "ok"}


def test_frame_text_before_and_after_publish():
    client, runtime = make_client()

    first = client.get("/data.txt", params={"id": "1"})
    assert first.status_code == 200
    assert first.text == ""

    runtime.store.publish("1", "#000000\n00")
    assert client.get("/data.txt", params={"id": "1"}).text == "#000000\n00"
    # id defaults to the first screen
    assert client.get("/data.txt").text == "#000000\n00"


def test_video_script_is_filled_in():
    client, _ = make_client()

    body = client.get("/video.lua", params={"id": "2", "direction": "top"}).text

    assert 'local id = "2"' in body
    assert 'local base = "http://testserver"' in body
    assert 'local direction = "top"' in body
    assert "{{" not in body


# ---------------------------------------------------------------------
# Audio
# ---------------------------------------------------------------------

def test_audio_chunk_body_and_headers():
    client, runtime = make_client()
    assert runtime.ring is not None
    runtime.ring.write(bytes([128, 129, 127, 255, 0]))

    res = client.get("/audio.pcm", params={"size": "4", "seq": "0"})

    assert res.status_code == 200
    assert res.text == "4\n0,1,-1,127"
    assert res.headers["X-Audio-Seq"] == "4"
    assert "X-Audio-Resynced" not in res.headers

    # Default size comes from config (4); seq=4 leaves one sample
    assert client.get("/audio.pcm", params={"seq": "4"}).text == "5\n-128"


def test_audio_nothing_new_is_204_with_cursor():
    client, runtime = make_client()
    assert runtime.ring is not None
    runtime.ring.write(bytes(3))

    res = client.get("/audio.pcm", params={"size": "4", "seq": "3"})

    assert res.status_code == 204
    assert res.content == b""
    assert res.headers["X-Audio-Seq"] == "3"


def test_audio_resync_header():
    client, runtime = make_client()
    assert runtime.ring is not None
    runtime.ring.write(bytes(30000))

    res = client.get("/audio.pcm", params={"size": "4096", "seq": "0"})

    assert res.status_code == 200
    assert res.headers["X-Audio-Resynced"] == "1"
    assert res.headers["X-Audio-Seq"] == "14192"


def test_audio_bad_query_is_400():
    client, _ = make_client()

    assert client.get("/audio.pcm", params={"size": "0"}).status_code == 400
    assert client.get("/audio.pcm", params={"size": "lots"}).status_code == 400
    assert client.get("/audio.pcm", params={"seq": "-5"}).status_code == 400


def test_audio_disabled_is_503():
    client, _ = make_client(audio=False)

    assert client.get("/audio.pcm", params={"seq": "0"}).status_code == 503
    assert client.get("/audio/info").json()["enabled"] is False


def test_audio_info_route():
    client, runtime = make_client()
    assert runtime.ring is not None
    runtime.ring.write(bytes(7))

    info = client.get("/audio/info").json()

    assert info["currentWriteSeq"] == 7
    assert info["bufferCapacity"] == 24000
    assert info["chunkSize"] == 4


def test_audio_script_is_filled_in():
    client, _ = make_client()

    body = client.get("/audio.lua").text

    assert 'local base = "http://testserver"' in body
    assert 'local direction = "left"' in body
    assert "local chunkSize = 4" in body
