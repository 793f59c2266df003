"""Tests for range parsing and the audio delivery endpoint."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from services.audio_delivery.app import app
from services.audio_delivery.ranges import RangeNotSatisfiableError, parse_range_header

AUDIO = bytes(index % 251 for index in range(500))


class TestRangeParsing:
    @pytest.mark.parametrize(
        "header, expected",
        [
            ("bytes=0-99", (0, 99)),
            ("bytes=100-", (100, 499)),
            ("bytes=-50", (450, 499)),
            ("bytes=400-10000", (400, 499)),
            ("bytes=-1000", (0, 499)),
        ],
    )
    def test_satisfiable_ranges(self, header, expected):
        byte_range = parse_range_header(header, 500)

        assert (byte_range.start, byte_range.end) == expected
        assert byte_range.length == expected[1] - expected[0] + 1

    @pytest.mark.parametrize("header", [None, "", "items=0-5", "bytes=abc-def", "bytes=0-1,4-5", "bytes=9-3"])
    def test_ignored_headers(self, header):
        assert parse_range_header(header, 500) is None

    @pytest.mark.parametrize("header", ["bytes=500-", "bytes=600-700", "bytes=-0"])
    def test_unsatisfiable_ranges(self, header):
        with pytest.raises(RangeNotSatisfiableError):
            parse_range_header(header, 500)

    def test_content_range_header_value(self):
        assert parse_range_header("bytes=0-99", 500).content_range == "bytes 0-99/500"


class TestAudioEndpoint:
    @pytest.fixture
    def client(self, wired_services):
        with TestClient(app) as test_client:
            yield test_client

    @pytest.fixture
    def audio_ref(self, client, audio_cache):
        async def store():
            audio_cache.reserve("deck-abc")
            await audio_cache.commit("deck-abc", AUDIO, generated_by="fake-speech")

        asyncio.run(store())
        return "deck-abc"

    def test_full_body_without_range(self, client, audio_ref):
        response = client.get(f"/audio/{audio_ref}")

        assert response.status_code == 200
        assert response.content == AUDIO
        assert response.headers["accept-ranges"] == "bytes"
        assert response.headers["content-type"] == "audio/mpeg"

    def test_partial_content(self, client, audio_ref):
        response = client.get(f"/audio/{audio_ref}", headers={"Range": "bytes=0-99"})

        assert response.status_code == 206
        assert response.headers["content-length"] == "100"
        assert response.headers["content-range"] == "bytes 0-99/500"
        assert response.content == AUDIO[:100]

    def test_suffix_range(self, client, audio_ref):
        response = client.get(f"/audio/{audio_ref}", headers={"Range": "bytes=-10"})

        assert response.status_code == 206
        assert response.content == AUDIO[-10:]

    def test_unsatisfiable_range(self, client, audio_ref):
        response = client.get(f"/audio/{audio_ref}", headers={"Range": "bytes=900-"})

        assert response.status_code == 416
        assert response.headers["content-range"] == "bytes */500"

    def test_head_returns_headers_only(self, client, audio_ref):
        response = client.head(f"/audio/{audio_ref}")

        assert response.status_code == 200
        assert response.headers["content-length"] == "500"
        assert response.content == b""

    def test_unknown_reference_is_404(self, client):
        response = client.get("/audio/missing")

        assert response.status_code == 404
        assert response.json()["detail"]["errorCode"] == "AUDIO_NOT_FOUND"
