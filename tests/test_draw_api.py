"""
Tests for the Draw API.

The Anthropic client is replaced by a fake so that draw turns can be exercised
without network access, both as single JSON replies and as SSE streams.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import anthropic
import httpx
import pytest
from fastapi.testclient import TestClient

from api.shared.sse import SSEDecoder
from main import app

client = TestClient(app)

PATCH_GET_CLIENT = "api.draw.get_client"

REPLY = {
    "observation": "A single diagonal stroke",
    "intention": "Add a sun in the corner",
    "shapes": [
        {"type": "circle", "cx": 800, "cy": 80, "r": 40, "fill": "#ffcc00"},
        {"type": "polygon", "points": [[0, 0], [10, 0], [5, 8]], "color": "#333"},
    ],
    "blocks": [{"block": "hi", "x": 10, "y": 20}],
}


# ============= Fake Anthropic Client =============


def _usage():
    return SimpleNamespace(input_tokens=120, output_tokens=45)


def _text_delta(text):
    return SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(type="text_delta", text=text))


class _FakeStream:
    def __init__(self, chunks, fail_after=None):
        self._chunks = chunks
        self._fail_after = fail_after

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def __aiter__(self):
        yield SimpleNamespace(type="message_start")
        for i, chunk in enumerate(self._chunks):
            if self._fail_after is not None and i >= self._fail_after:
                raise RuntimeError("upstream disconnected")
            yield _text_delta(chunk)
        yield SimpleNamespace(type="message_stop")

    async def get_final_message(self):
        return SimpleNamespace(usage=_usage())


class _FakeMessages:
    def __init__(self, reply_text="", chunks=(), fail_after=None, create_error=None):
        self.calls = []
        self._chunks = list(chunks)
        self._fail_after = fail_after
        self.create = AsyncMock(side_effect=self._create)
        self._reply_text = reply_text
        self._create_error = create_error

    async def _create(self, **params):
        self.calls.append(params)
        if self._create_error is not None:
            raise self._create_error
        return SimpleNamespace(
            content=[SimpleNamespace(type="text", text=self._reply_text)],
            usage=_usage(),
        )

    def stream(self, **params):
        self.calls.append(params)
        return _FakeStream(self._chunks, self._fail_after)


def _fake_client(**kwargs):
    return SimpleNamespace(messages=_FakeMessages(**kwargs))


def _chunks(text, size):
    return [text[i:i + size] for i in range(0, len(text), size)]


def _canvas(**extra):
    body = {
        "elements": [
            {
                "id": "h-1",
                "source": "human",
                "type": "stroke",
                "d": "M 10 10 L 20 20 L 30 30",
                "color": "#000",
                "strokeWidth": 2,
                "turnCreated": 0,
            }
        ],
        "canvasWidth": 900,
        "canvasHeight": 600,
        "turnCount": 1,
    }
    body.update(extra)
    return body


def _events(response):
    decoder = SSEDecoder()
    return decoder.feed(response.content) + decoder.flush()


# ============= Simplification Endpoints =============


class TestSimplifyEndpoints:

    def test_simplify_path(self):
        response = client.post(
            "/api/draw/simplify",
            json={"d": "M 0 0 L 1 0.1 L 2 0 L 3 0.1 L 10 0", "epsilon": 1},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["d"] == "M 0 0 L 10 0"
        assert data["epsilon"] == 1
        assert data["stats"]["originalPoints"] == 5
        assert data["stats"]["simplifiedPoints"] == 2
        assert data["stats"]["reduction"] == 60

    def test_simplify_uses_configured_default_epsilon(self):
        response = client.post("/api/draw/simplify", json={"d": "M 0 0 L 1 0.5 L 10 0"})
        assert response.status_code == 200
        assert response.json()["epsilon"] == 2.0
        assert response.json()["d"] == "M 0 0 L 10 0"

    def test_simplify_overflowing_coordinate(self):
        d = "M " + "9" * 400 + " 0 L 1 1 L 2 5 L 3 3"
        response = client.post("/api/draw/simplify", json={"d": d, "epsilon": 1})
        assert response.status_code == 200
        assert response.json()["d"] == "M 1 1 L 2 5 L 3 3"

    def test_simplify_rejects_negative_epsilon(self):
        response = client.post("/api/draw/simplify", json={"d": "M 0 0 L 1 1", "epsilon": -1})
        assert response.status_code == 422

    def test_simplify_points(self):
        response = client.post(
            "/api/draw/simplify-points",
            json={
                "points": [{"x": 0, "y": 0}, {"x": 5, "y": 10}, {"x": 10, "y": 0}, {"x": 11, "y": 0.1}, {"x": 20, "y": 0}],
                "epsilon": 1,
            },
        )
        assert response.status_code == 200
        data = response.json()
        assert data["kept_indices"] == [0, 1, 2, 4]
        assert data["points"][1] == {"x": 5, "y": 10}
        assert data["original_count"] == 5

    def test_simplify_points_clamped(self):
        # (20, 0) lies on the anchor line but far from the segment
        points = [{"x": 0, "y": 0}, {"x": 20, "y": 0}, {"x": 10, "y": 0}]
        unclamped = client.post("/api/draw/simplify-points", json={"points": points, "epsilon": 1})
        clamped = client.post("/api/draw/simplify-points", json={"points": points, "epsilon": 1, "clamp": True})
        assert unclamped.json()["kept_indices"] == [0, 2]
        assert clamped.json()["kept_indices"] == [0, 1, 2]

    def test_simplify_points_empty(self):
        response = client.post("/api/draw/simplify-points", json={"points": []})
        assert response.status_code == 200
        assert response.json() == {"points": [], "kept_indices": [], "original_count": 0}

    def test_stats(self):
        response = client.post(
            "/api/draw/stats",
            json={"original": "M 0 0 L 1 0 L 2 0 L 3 0", "simplified": "M 0 0 L 3 0"},
        )
        assert response.status_code == 200
        assert response.json()["reduction"] == 50


# ============= Format Endpoint =============


class TestFormatEndpoint:

    def test_full_format_context(self):
        response = client.post("/api/draw/format", json=_canvas())
        assert response.status_code == 200
        data = response.json()
        assert data["format"] == "full"
        assert data["context"].startswith("Canvas: 900x600px | Turn: 1\n\n<elements>\n")
        assert '<path d="M 10 10 L 20 20 L 30 30"/>' in data["context"]

    def test_full_format_appends_diff(self):
        body = _canvas(diff={"created": [], "modified": [], "deleted": ["h-0"]})
        context = client.post("/api/draw/format", json=body).json()["context"]
        assert '<deleted ids="h-0"/>' in context

    def test_diff_only_format_does_not_repeat_diff(self):
        body = _canvas(format="diff-only", diff={"deleted": ["h-0"]})
        context = client.post("/api/draw/format", json=body).json()["context"]
        assert "<deleted>h-0</deleted>" in context
        assert "<changes-since-last-turn>" not in context

    def test_simplify_epsilon_applies_to_human_strokes(self):
        body = _canvas(simplifyEpsilon=1)
        context = client.post("/api/draw/format", json=body).json()["context"]
        assert '<path d="M 10 10 L 30 30"/>' in context

    def test_unknown_format_rejected(self):
        response = client.post("/api/draw/format", json=_canvas(format="verbose"))
        assert response.status_code == 422

    def test_fractional_canvas_size(self):
        response = client.post("/api/draw/format", json=_canvas(canvasWidth=800.5, canvasHeight=600))
        assert response.status_code == 200
        assert response.json()["context"].startswith("Canvas: 800.5x600px | Turn: 1")

    def test_zero_canvas_size_rejected(self):
        response = client.post("/api/draw/format", json=_canvas(canvasWidth=0))
        assert response.status_code == 422

    def test_ascii_grid_section(self):
        body = _canvas(asciiCellSize=100)
        body["elements"].append({
            "id": "c-1", "source": "claude", "type": "shape", "shapeType": "circle",
            "cx": 450, "cy": 300, "r": 20, "color": "#ef4444",
        })
        context = client.post("/api/draw/format", json=body).json()["context"]

        assert "Canvas: 900x600 pixels (grid cell = 100px)\n\n<canvas-grid>\n" in context
        assert "  0: #........\n" in context
        assert "200: ....r....\n" in context
        assert "300: ....r....\n" in context
        assert "- lowercase = your previous drawings\n" in context

    def test_no_ascii_grid_by_default(self):
        context = client.post("/api/draw/format", json=_canvas()).json()["context"]
        assert "<canvas-grid>" not in context

    def test_oversized_ascii_grid_rejected(self):
        body = _canvas(asciiCellSize=1, canvasWidth=10000, canvasHeight=10000)
        response = client.post("/api/draw/format", json=body)
        assert response.status_code == 400
        assert "cell limit" in response.json()["error"]

    def test_ascii_grid_reaches_draw_prompt(self):
        fake = _fake_client(reply_text="{}")
        with patch(PATCH_GET_CLIENT, return_value=fake):
            client.post("/api/draw/elements", json=_canvas(asciiCellSize=100))
        content = fake.messages.calls[0]["messages"][0]["content"]
        assert "<canvas-grid>" in content


# ============= ASCII Grid Endpoint =============


class TestAsciiEndpoint:

    def test_render(self):
        body = {
            "strokes": [{"d": "M 0 0 L 99 0", "color": "red"}],
            "shapes": [{"type": "rect", "x": 0, "y": 20, "width": 99, "height": 0}],
            "canvasWidth": 100,
            "canvasHeight": 60,
        }
        response = client.post("/api/draw/ascii", json=body)
        assert response.status_code == 200
        data = response.json()
        assert data["cellSize"] == 20
        assert (data["gridWidth"], data["gridHeight"]) == (5, 3)
        assert data["grid"].splitlines()[2:] == ["  0: RRRRR", " 20: bbbbb", " 40: ....."]
        assert data["legend"].startswith("Legend: . = empty\nHuman strokes:")

    def test_explicit_grid_size(self):
        body = {"canvasWidth": 100, "canvasHeight": 100, "cellSize": 10, "width": 3, "height": 2}
        data = client.post("/api/draw/ascii", json=body).json()
        assert (data["gridWidth"], data["gridHeight"]) == (3, 2)
        assert data["legend"] == "Legend: . = empty"

    def test_invalid_cell_size(self):
        response = client.post("/api/draw/ascii", json={"canvasWidth": 100, "canvasHeight": 100, "cellSize": 0})
        assert response.status_code == 422

    def test_oversized_grid(self):
        body = {"canvasWidth": 100, "canvasHeight": 100, "width": 1000, "height": 1000}
        response = client.post("/api/draw/ascii", json=body)
        assert response.status_code == 400


# ============= Draw Elements Endpoint =============


class TestDrawElements:

    def test_non_streaming_reply(self):
        fake = _fake_client(reply_text="Here it is:\n" + json.dumps(REPLY))
        with patch(PATCH_GET_CLIENT, return_value=fake):
            response = client.post("/api/draw/elements", json=_canvas(model="haiku"))

        assert response.status_code == 200
        data = response.json()
        assert data["shapes"] == REPLY["shapes"]
        assert data["usage"] == {"input_tokens": 120, "output_tokens": 45}

        params = fake.messages.calls[0]
        assert params["model"] == "claude-3-5-haiku-20241022"
        assert params["system"][0]["cache_control"] == {"type": "ephemeral"}
        assert "Canvas: 900x600px | Turn: 1" in params["messages"][0]["content"]

    def test_request_overrides_are_forwarded(self):
        fake = _fake_client(reply_text="{}")
        body = _canvas(temperature=0.2, maxTokens=100, prompt="Draw only in blue.")
        with patch(PATCH_GET_CLIENT, return_value=fake):
            client.post("/api/draw/elements", json=body)

        params = fake.messages.calls[0]
        assert params["temperature"] == 0.2
        assert params["max_tokens"] == 100
        assert params["system"][0]["text"].startswith("Draw only in blue.")

    def test_image_is_sent_before_text(self):
        fake = _fake_client(reply_text="{}")
        body = _canvas(image="data:image/png;base64,AAAA", lastSyncContext={"turn": 1, "observation": "x"})
        with patch(PATCH_GET_CLIENT, return_value=fake):
            client.post("/api/draw/elements", json=body)

        content = fake.messages.calls[0]["messages"][0]["content"]
        assert content[0]["source"] == {"type": "base64", "media_type": "image/png", "data": "AAAA"}
        assert content[1]["text"].startswith("[SYNC TURN - Visual reference above]")
        assert "[Last visual sync" not in content[1]["text"]

    def test_last_sync_context_without_image(self):
        fake = _fake_client(reply_text="{}")
        body = _canvas(lastSyncContext={"turn": 3, "observation": "a cat"})
        with patch(PATCH_GET_CLIENT, return_value=fake):
            client.post("/api/draw/elements", json=body)

        text = fake.messages.calls[0]["messages"][0]["content"]
        assert "[Last visual sync - Turn 3]\nObserved: a cat\n" in text

    def test_unparseable_reply(self):
        fake = _fake_client(reply_text="{not json}")
        with patch(PATCH_GET_CLIENT, return_value=fake):
            response = client.post("/api/draw/elements", json=_canvas())
        assert response.status_code == 500
        assert response.json() == {"error": "Parse failed", "raw": "{not json}"}

    def test_reply_without_json(self):
        fake = _fake_client(reply_text="I'd rather not.")
        with patch(PATCH_GET_CLIENT, return_value=fake):
            response = client.post("/api/draw/elements", json=_canvas())
        assert response.status_code == 500
        assert response.json()["error"] == "No response"

    def test_api_error(self):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        fake = _fake_client(create_error=anthropic.APIConnectionError(request=request))
        with patch(PATCH_GET_CLIENT, return_value=fake):
            response = client.post("/api/draw/elements", json=_canvas())
        assert response.status_code == 500
        assert "error" in response.json()

    def test_unexpected_client_failure_keeps_error_shape(self):
        fake = _fake_client(create_error=TypeError("Could not resolve authentication method"))
        with patch(PATCH_GET_CLIENT, return_value=fake):
            response = client.post("/api/draw/elements", json=_canvas())
        assert response.status_code == 500
        assert response.json() == {"error": "Could not resolve authentication method"}

    def test_client_construction_failure_keeps_error_shape(self):
        with patch(PATCH_GET_CLIENT, side_effect=RuntimeError("no client")):
            response = client.post("/api/draw/elements", json=_canvas())
        assert response.status_code == 500
        assert response.json() == {"error": "no client"}

    @pytest.mark.parametrize("chunk_size", [1, 9, 64])
    def test_streaming_emits_items_then_done(self, chunk_size):
        fake = _fake_client(chunks=_chunks(json.dumps(REPLY), chunk_size))
        with patch(PATCH_GET_CLIENT, return_value=fake):
            response = client.post("/api/draw/elements", json=_canvas(streaming=True))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"

        events = _events(response)
        assert [e["data"] for e in events if e["type"] == "shape"] == REPLY["shapes"]
        assert [e["data"] for e in events if e["type"] == "block"] == REPLY["blocks"]
        assert [e["data"] for e in events if e["type"] == "observation"] == [REPLY["observation"]]
        assert events[-1] == {"type": "done", "usage": {"input_tokens": 120, "output_tokens": 45}}

    def test_streaming_operations(self):
        reply = json.dumps({
            "observation": "o",
            "intention": "i",
            "operations": [
                {"op": "update", "id": "h-1", "element": {"color": "#f00"}},
                {"op": "create", "element": {"type": "shape", "shapeType": "circle", "cx": 1, "cy": 1, "r": 1}},
            ],
        })
        fake = _fake_client(chunks=_chunks(reply, 7))
        with patch(PATCH_GET_CLIENT, return_value=fake):
            response = client.post(
                "/api/draw/elements",
                json=_canvas(streaming=True, allowOperations=True),
            )

        events = _events(response)
        assert [e["data"]["op"] for e in events if e["type"] == "operation"] == ["update", "create"]
        assert not [e for e in events if e["type"] == "shape"]
        assert events[-1]["type"] == "done"

    def test_streaming_failure_ends_with_error_event(self):
        fake = _fake_client(chunks=_chunks(json.dumps(REPLY), 20), fail_after=3)
        with patch(PATCH_GET_CLIENT, return_value=fake):
            response = client.post("/api/draw/elements", json=_canvas(streaming=True))

        assert response.status_code == 200
        events = _events(response)
        assert events[-1] == {"type": "error", "message": "upstream disconnected"}
        assert not [e for e in events if e["type"] == "done"]

    def test_user_api_key_is_passed_to_client_factory(self):
        fake = _fake_client(reply_text="{}")
        with patch(PATCH_GET_CLIENT, return_value=fake) as get_client:
            client.post("/api/draw/elements", json=_canvas(userApiKey="sk-user"))
        get_client.assert_called_once_with("sk-user")


# ============= Summarize Endpoint =============


TURNS = [
    {"turnNumber": 1, "who": "human"},
    {
        "turnNumber": 2,
        "who": "claude",
        "shapes": [{"type": "circle"}, {"type": "line"}],
        "blocks": [{"block": "hello\nworld", "x": 5, "y": 5}],
        "description": "Added a sun",
    },
]


class TestSummarize:

    def test_summary(self):
        fake = _fake_client(reply_text="A sun rises over a hill.")
        with patch(PATCH_GET_CLIENT, return_value=fake):
            response = client.post("/api/draw/summarize", json={"turns": TURNS})

        assert response.status_code == 200
        assert response.json() == {
            "summary": "A sun rises over a hill.",
            "usage": {"input_tokens": 120, "output_tokens": 45},
        }
        params = fake.messages.calls[0]
        assert params["model"] == "claude-haiku-4-5-20251001"
        assert params["max_tokens"] == 300
        assert params["temperature"] == 0
        prompt = params["messages"][0]["content"]
        assert prompt.startswith("Summarize this collaborative drawing session")
        assert "Turn 1: Human drew on the canvas\n" in prompt
        assert 'Turn 2: Claude shapes (circle, line), text: "hello world", Added a sun' in prompt

    def test_existing_summary_is_merged(self):
        fake = _fake_client(reply_text="updated")
        body = {"turns": TURNS[:1], "existingSummary": "A hill was drawn."}
        with patch(PATCH_GET_CLIENT, return_value=fake):
            client.post("/api/draw/summarize", json=body)
        prompt = fake.messages.calls[0]["messages"][0]["content"]
        assert "Previous summary:\nA hill was drawn.\n\nNew turns to incorporate:\nTurn 1:" in prompt

    @pytest.mark.parametrize("body", [{"turns": []}, {}])
    def test_turns_required(self, body):
        response = client.post("/api/draw/summarize", json=body)
        assert response.status_code == 400
        assert response.json() == {"error": "Turns array required"}

    def test_empty_reply(self):
        fake = SimpleNamespace(messages=SimpleNamespace(
            create=AsyncMock(return_value=SimpleNamespace(content=[], usage=_usage()))
        ))
        with patch(PATCH_GET_CLIENT, return_value=fake):
            response = client.post("/api/draw/summarize", json={"turns": TURNS})
        assert response.json()["summary"] == ""

    def test_client_failure(self):
        fake = _fake_client(create_error=RuntimeError("overloaded"))
        with patch(PATCH_GET_CLIENT, return_value=fake):
            response = client.post("/api/draw/summarize", json={"turns": TURNS})
        assert response.status_code == 500
        assert response.json() == {"error": "overloaded"}
