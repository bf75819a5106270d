"""
Tests for FastAPI endpoints.
"""
import asyncio
import pytest
from fastapi.testclient import TestClient
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core import config
from api.routes.videos import drain_admissions, serve_byte_range
from main import app
from services.cache import CacheConfig, VideoCache
from services.database import upsert_video
from starlette.requests import ClientDisconnect

MB = 1024 * 1024
FILE_SIZE = 5 * MB


@pytest.fixture
def client(tmp_path, monkeypatch):
    """Create a test client with an isolated database and a fresh cache."""
    monkeypatch.setattr(config, "DB_FILE", str(tmp_path / "test.db"))
    monkeypatch.setattr(config, "VIDEO_DIRS", [])
    with TestClient(app) as client:
        response = client.patch("/api/cache/config", json={
            "maxCacheSize": 10 * MB,
            "popularityThreshold": 0,
            "maxSegmentsPerVideo": 3,
        })
        assert response.status_code == 200
        yield client


@pytest.fixture
def video(tmp_path, client):
    """A registered 5MB video with position-dependent content."""
    data = bytes(i % 251 for i in range(FILE_SIZE))
    path = tmp_path / "movie.mp4"
    path.write_bytes(data)
    stat = path.stat()
    video_id, _ = asyncio.run(upsert_video(str(path), "movie", stat.st_size, stat.st_mtime))
    return {"id": video_id, "path": path, "data": data}


def settle(client):
    """Wait for segment admissions started by earlier requests."""
    client.portal.call(drain_admissions)


def cache_stats(client):
    settle(client)
    return client.get("/api/cache/stats").json()


class TestHealthEndpoints:
    """Test basic health/status endpoints."""

    def test_root_endpoint(self, client):
        """Root endpoint should return OK status."""
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "service" in data


class TestVideoEndpoints:
    """Test listing and detail endpoints."""

    def test_list_videos(self, client, video):
        response = client.get("/api/videos")
        assert response.status_code == 200
        data = response.json()
        assert data["total_count"] == 1
        assert data["videos"][0]["title"] == "movie"

    def test_list_videos_search(self, client, video):
        response = client.get("/api/videos?search=nothing-matches")
        assert response.json()["total_count"] == 0

    def test_get_video(self, client, video):
        response = client.get(f"/api/videos/{video['id']}")
        assert response.status_code == 200
        assert response.json()["size"] == FILE_SIZE

    def test_get_unknown_video(self, client):
        assert client.get("/api/videos/9999").status_code == 404


class TestStreamEndpoint:
    """Test range serving and its use of the segment cache."""

    def test_aligned_miss_serves_file_and_admits_segment(self, client, video):
        """A range at byte 0 is served from disk and segment 0 gets cached."""
        response = client.get(f"/api/videos/{video['id']}/stream", headers={"Range": "bytes=0-1048575"})

        assert response.status_code == 206
        assert response.content == video["data"][:MB]
        assert response.headers["content-range"] == f"bytes 0-{MB - 1}/{FILE_SIZE}"
        assert response.headers["content-length"] == str(MB)
        assert response.headers["accept-ranges"] == "bytes"

        stats = cache_stats(client)
        assert stats["items"] == 1
        assert stats["size_bytes"] == 2 * MB  # Whole segment, not just the requested range
        assert stats["misses"] == 1

    def test_second_request_is_cache_hit(self, client, video):
        url = f"/api/videos/{video['id']}/stream"
        client.get(url, headers={"Range": "bytes=0-1048575"})
        settle(client)

        response = client.get(url, headers={"Range": "bytes=0-1048575"})

        assert response.status_code == 206
        assert response.content == video["data"][:MB]
        stats = cache_stats(client)
        assert stats["hits"] == 1
        assert stats["video_access"] == {str(video["id"]): 1}

    def test_hit_followed_by_file_remainder(self, client, video):
        """A range longer than the cached segment continues from disk."""
        url = f"/api/videos/{video['id']}/stream"
        client.get(url, headers={"Range": f"bytes=0-{2 * MB - 1}"})
        settle(client)

        response = client.get(url, headers={"Range": f"bytes=0-{3 * MB - 1}"})

        assert response.status_code == 206
        assert response.content == video["data"][:3 * MB]
        assert cache_stats(client)["hits"] == 1

    def test_unaligned_range_bypasses_cache(self, client, video):
        response = client.get(f"/api/videos/{video['id']}/stream", headers={"Range": "bytes=100-199"})

        assert response.status_code == 206
        assert response.content == video["data"][100:200]
        stats = cache_stats(client)
        assert stats["items"] == 0
        assert stats["hits"] == 0
        assert stats["misses"] == 0

    def test_open_ended_range(self, client, video):
        start = 4 * MB
        response = client.get(f"/api/videos/{video['id']}/stream", headers={"Range": f"bytes={start}-"})

        assert response.status_code == 206
        assert response.content == video["data"][start:]
        assert response.headers["content-range"] == f"bytes {start}-{FILE_SIZE - 1}/{FILE_SIZE}"

    def test_whole_file_without_range(self, client, video):
        response = client.get(f"/api/videos/{video['id']}/stream")

        assert response.status_code == 200
        assert response.content == video["data"]
        assert response.headers["content-length"] == str(FILE_SIZE)
        assert "content-range" not in response.headers
        assert cache_stats(client)["items"] == 1

    def test_range_not_satisfiable(self, client, video):
        response = client.get(f"/api/videos/{video['id']}/stream", headers={"Range": f"bytes={FILE_SIZE}-"})

        assert response.status_code == 416
        assert response.headers["content-range"] == f"bytes */{FILE_SIZE}"

    def test_http_cache_headers(self, client, video):
        response = client.get(f"/api/videos/{video['id']}/stream", headers={"Range": "bytes=0-99"})

        mtime_ms = int(video["path"].stat().st_mtime * 1000)
        assert response.headers["etag"] == f'"{video["id"]}-{mtime_ms}"'
        assert response.headers["cache-control"] == "public, max-age=3600"
        assert response.headers["content-type"] == "video/mp4"

    def test_popularity_gate_blocks_admission(self, client, video):
        client.patch("/api/cache/config", json={"popularityThreshold": 5})

        response = client.get(f"/api/videos/{video['id']}/stream", headers={"Range": "bytes=0-99"})

        assert response.status_code == 206
        assert cache_stats(client)["items"] == 0

    def test_unknown_video(self, client):
        assert client.get("/api/videos/9999/stream").status_code == 404

    def test_missing_file_is_server_error(self, client, video):
        """Primary-path I/O failures surface as a generic 500."""
        os.remove(video["path"])

        response = client.get(f"/api/videos/{video['id']}/stream", headers={"Range": "bytes=0-99"})

        assert response.status_code == 500
        assert response.json() == {"detail": "Failed to stream video"}


class TestSegmentEndpoint:
    """Test whole-segment serving."""

    def test_last_segment_is_short(self, client, video):
        response = client.get(f"/api/videos/{video['id']}/segments/2")

        assert response.status_code == 206
        assert response.content == video["data"][4 * MB:]
        assert response.headers["content-range"] == f"bytes {4 * MB}-{FILE_SIZE - 1}/{FILE_SIZE}"
        assert response.headers["cache-control"] == "public, max-age=86400"

    def test_segment_cached_then_hit(self, client, video):
        url = f"/api/videos/{video['id']}/segments/1"
        client.get(url)
        settle(client)

        response = client.get(url)

        assert response.content == video["data"][2 * MB:4 * MB]
        assert cache_stats(client)["hits"] == 1

    def test_segment_beyond_file(self, client, video):
        response = client.get(f"/api/videos/{video['id']}/segments/3")
        assert response.status_code == 416


class TestClientDisconnect:
    """Test that admission does not depend on the response finishing."""

    @pytest.mark.asyncio
    async def test_admission_survives_disconnect_mid_stream(self, tmp_path):
        data = bytes(i % 251 for i in range(3 * MB))
        path = tmp_path / "movie.mp4"
        path.write_bytes(data)
        cache = VideoCache(CacheConfig(max_cache_size=10 * MB, popularity_threshold=0))

        response = await serve_byte_range(
            cache, 1, str(path), 0, len(data) - 1, len(data), 206, {"Accept-Ranges": "bytes"}
        )

        body_messages = []

        async def receive():
            return {"type": "http.disconnect"}

        async def send(message):
            if message["type"] == "http.response.body":
                body_messages.append(message)
                if len(body_messages) > 1:
                    raise OSError("connection reset by peer")

        scope = {"type": "http", "asgi": {"spec_version": "2.4"}, "method": "GET", "headers": []}
        with pytest.raises(ClientDisconnect):
            await response(scope, receive, send)

        await drain_admissions()

        assert len(body_messages) == 2
        assert cache.get_stats()["items"] == 1
        assert cache.get_cached_segment(1, 0) == data[:2 * MB]


class TestCacheEndpoints:
    """Test the cache administration surface."""

    def test_stats_shape(self, client):
        data = cache_stats(client)
        for field in ["items", "hits", "misses", "hit_rate_percent", "size_bytes", "video_access"]:
            assert field in data

    def test_clear_cache(self, client, video):
        client.get(f"/api/videos/{video['id']}/stream", headers={"Range": "bytes=0-99"})
        assert cache_stats(client)["items"] == 1

        response = client.post("/api/cache/clear")

        assert response.status_code == 200
        assert cache_stats(client)["items"] == 0

    def test_reset_stats(self, client, video):
        url = f"/api/videos/{video['id']}/stream"
        client.get(url, headers={"Range": "bytes=0-99"})
        settle(client)
        client.get(url, headers={"Range": "bytes=0-99"})

        assert client.post("/api/cache/stats/reset").status_code == 200

        stats = cache_stats(client)
        assert stats["hits"] == 0
        assert stats["video_access"] == {}
        assert stats["items"] == 1

    def test_get_config(self, client):
        data = client.get("/api/cache/config").json()
        assert data["maxCacheSize"] == 10 * MB
        assert data["maxSegmentsPerVideo"] == 3
        assert "stdTTL" in data

    def test_update_config(self, client):
        response = client.patch("/api/cache/config", json={"stdTTL": 120, "max_segments_per_video": 4})
        assert response.status_code == 200
        config_data = response.json()["config"]
        assert config_data["stdTTL"] == 120
        assert config_data["maxSegmentsPerVideo"] == 4

    def test_update_config_post(self, client):
        response = client.post("/api/cache/config", json={"popularityThreshold": 2})
        assert response.status_code == 200
        assert response.json()["config"]["popularityThreshold"] == 2

    def test_update_config_rejects_invalid(self, client):
        assert client.patch("/api/cache/config", json={"maxSegmentsPerVideo": 0}).status_code == 422
        assert client.patch("/api/cache/config", json={"bogus": 1}).status_code == 422
        assert client.patch("/api/cache/config", json={}).status_code == 400


class TestLibraryEndpoints:
    """Test scan status and refresh."""

    def test_scan_status(self, client):
        response = client.get("/api/scan/status")
        assert response.status_code == 200
        assert "is_scanning" in response.json()

    def test_refresh_without_directories(self, client):
        assert client.post("/api/refresh").status_code == 400
