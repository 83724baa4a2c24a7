"""Integration tests for the relay HTTP routes."""

import json

import httpx
import pytest

from relay.utils import credential_fingerprint


def _gemini_answer(*parts):
    return {"candidates": [{"content": {"role": "model", "parts": list(parts)}}]}


class TestHealth:
    @pytest.mark.asyncio
    async def test_healthz(self, client):
        resp = await client.get("/api/healthz")
        assert resp.status_code == 200
        assert resp.json() == {"ok": True, "service": "llm-agent-groq"}

    @pytest.mark.asyncio
    async def test_version(self, client):
        resp = await client.get("/api/version")
        assert resp.json() == {"version": "1.0.0"}


class TestChat:
    """OpenAI-compatible pass-through."""

    @pytest.mark.asyncio
    async def test_forwards_with_defaults(self, client, upstream):
        upstream.json(
            {
                "id": "chatcmpl-1",
                "choices": [{"index": 0, "message": {"role": "assistant", "content": "Hi!"}}],
            }
        )

        resp = await client.post(
            "/api/chat",
            json={"messages": [{"role": "user", "content": "Hello"}], "tools": [{"type": "function", "function": {"name": "f"}}]},
        )

        assert resp.status_code == 200
        assert resp.json()["choices"][0]["message"]["content"] == "Hi!"

        request = upstream.requests[0]
        assert str(request.url) == "https://api.groq.com/openai/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer gsk-test-key"
        sent = json.loads(request.content)
        assert sent["model"] == "llama-3.1-70b-versatile"
        assert sent["temperature"] == 0.3
        assert sent["tool_choice"] == "auto"
        assert resp.headers["X-Relay-Auth-Hash"] == credential_fingerprint("gsk-test-key")

    @pytest.mark.asyncio
    async def test_missing_key_is_unauthorized(self, build_client, upstream):
        async with build_client(groq_api_key=None) as ac:
            resp = await ac.post("/api/chat", json={"messages": []})

        assert resp.status_code == 401
        assert "GROQ_API_KEY" in resp.json()["error"]["message"]
        assert upstream.call_count == 0

    @pytest.mark.asyncio
    async def test_upstream_error_passed_through(self, client, upstream):
        body = {"error": {"message": "Rate limit reached", "type": "tokens"}}
        upstream.json(body, status_code=429)

        resp = await client.post("/api/chat", json={"messages": []})

        assert resp.status_code == 429
        assert resp.json() == body
        assert upstream.call_count == 1

    @pytest.mark.asyncio
    async def test_transport_failure(self, client, upstream):
        upstream.queue(httpx.ConnectError("Connection refused"))

        resp = await client.post("/api/chat", json={"messages": []})

        assert resp.status_code == 502
        error = resp.json()["error"]
        assert error["fault"] == "fetch_failed"
        assert "Connection refused" in error["message"]


class TestGeminiChat:
    """OpenAI-shaped requests answered by the Gemini-style provider."""

    @pytest.mark.asyncio
    async def test_converts_both_ways(self, client, upstream):
        upstream.json(
            _gemini_answer(
                {"text": "Looking it up."},
                {"functionCall": {"name": "get_weather", "args": {"city": "Oslo"}}},
            )
        )

        resp = await client.post(
            "/api/gemini/chat",
            json={
                "messages": [
                    {"role": "system", "content": "Be helpful."},
                    {"role": "user", "content": "Weather in Oslo?"},
                ],
                "tools": [{"type": "function", "function": {"name": "get_weather"}}],
            },
        )

        assert resp.status_code == 200
        request = upstream.requests[0]
        assert request.url.path.endswith("/models/gemini-2.0-flash:generateContent")
        assert request.headers["x-goog-api-key"] == "gemini-test-key"

        sent = json.loads(request.content)
        assert sent["systemInstruction"] == {"parts": [{"text": "Be helpful."}]}
        assert sent["contents"] == [{"role": "user", "parts": [{"text": "Weather in Oslo?"}]}]
        assert sent["tools"][0]["functionDeclarations"][0]["name"] == "get_weather"

        data = resp.json()
        choice = data["choices"][0]
        assert data["object"] == "chat.completion"
        assert choice["finish_reason"] == "tool_calls"
        assert choice["message"]["content"] == "Looking it up."
        call = choice["message"]["tool_calls"][0]
        assert call["function"]["name"] == "get_weather"
        assert json.loads(call["function"]["arguments"]) == {"city": "Oslo"}

    @pytest.mark.asyncio
    async def test_empty_candidates(self, client, upstream):
        upstream.json({"candidates": []})

        resp = await client.post("/api/gemini/chat", json={"messages": []})

        message = resp.json()["choices"][0]["message"]
        assert message == {"role": "assistant", "content": ""}

    @pytest.mark.asyncio
    async def test_non_finite_tool_result_reaches_upstream(self, client, upstream):
        upstream.json(_gemini_answer({"text": "The result is undefined."}))

        resp = await client.post(
            "/api/gemini/chat",
            json={"messages": [{"role": "tool", "name": "calc", "content": "NaN"}]},
        )

        assert resp.status_code == 200
        assert upstream.call_count == 1
        sent = json.loads(upstream.requests[0].content)
        response = sent["contents"][0]["parts"][0]["functionResponse"]["response"]
        assert response == {"content": "NaN"}

    @pytest.mark.asyncio
    async def test_rejects_bad_model_name(self, client, upstream):
        resp = await client.post("/api/gemini/chat", json={"model": "../admin", "messages": []})

        assert resp.status_code == 400
        assert upstream.call_count == 0


class TestSearch:
    @pytest.mark.asyncio
    async def test_missing_query(self, client, upstream):
        resp = await client.get("/api/search", params={"q": "   "})

        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing q"}
        assert upstream.call_count == 0

    @pytest.mark.asyncio
    async def test_missing_configuration(self, build_client, upstream):
        async with build_client(google_cse_id=None) as ac:
            resp = await ac.get("/api/search", params={"q": "cats"})

        assert resp.status_code == 500
        assert "GOOGLE_API_KEY/GOOGLE_CSE_ID not set" in resp.json()["error"]["message"]
        assert upstream.call_count == 0

    @pytest.mark.asyncio
    async def test_snippets(self, client, upstream):
        upstream.json(
            {
                "items": [
                    {"title": "Cats", "link": "https://cats.example", "snippet": "All about cats", "kind": "x"},
                    {"title": "More cats", "link": "https://more.example", "snippet": "Even more"},
                ]
            }
        )

        resp = await client.get("/api/search", params={"q": " cats "})

        assert resp.status_code == 200
        assert resp.json() == {
            "query": "cats",
            "items": [
                {"title": "Cats", "link": "https://cats.example", "snippet": "All about cats"},
                {"title": "More cats", "link": "https://more.example", "snippet": "Even more"},
            ],
        }
        request = upstream.requests[0]
        assert request.headers["x-goog-api-key"] == "google-test-key"
        params = request.url.params
        assert "key" not in params
        assert params["cx"] == "cse-123"
        assert params["q"] == "cats"

    @pytest.mark.asyncio
    async def test_no_items(self, client, upstream):
        upstream.json({"searchInformation": {"totalResults": "0"}})

        resp = await client.get("/api/search", params={"q": "zzzz"})

        assert resp.json() == {"query": "zzzz", "items": []}


class TestAIPipe:
    @pytest.mark.asyncio
    async def test_mock_mode(self, client, upstream):
        resp = await client.post("/api/aipipe", json={"input": "hello"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["engine"] == "mock"
        assert data["received_input"] == "hello"
        assert data["summary"] == 'AI Pipe mock processed: "hello"'
        assert resp.headers["X-Relay-Mode"] == "mock"
        assert resp.headers["X-Relay-Auth-Mode"] == "none"
        assert resp.headers["X-Relay-Auth-Len"] == "0"
        assert upstream.call_count == 0

    @pytest.mark.asyncio
    async def test_proxy_mode_with_caller_token(self, build_client, upstream):
        upstream.json({"ok": True, "engine": "remote"})

        async with build_client(
            aipipe_url="https://pipe.example.com/run", aipipe_token="configured"
        ) as ac:
            resp = await ac.post(
                "/api/aipipe",
                json={"input": "x"},
                headers={"Authorization": "Bearer caller-token"},
            )

        assert resp.status_code == 200
        assert resp.json() == {"ok": True, "engine": "remote"}
        assert resp.headers["X-Relay-Mode"] == "proxy"
        assert resp.headers["X-Relay-Auth-Mode"] == "header"
        assert resp.headers["X-Relay-Auth-Bearer"] == "true"
        assert resp.headers["X-Relay-Auth-Len"] == str(len("caller-token"))
        assert upstream.requests[0].headers["Authorization"] == "Bearer caller-token"

    @pytest.mark.asyncio
    async def test_proxy_requires_token(self, build_client, upstream):
        async with build_client(
            aipipe_url="https://pipe.example.com/run", aipipe_require_auth=True
        ) as ac:
            resp = await ac.post("/api/aipipe", json={"input": "x"})

        assert resp.status_code == 401
        assert upstream.call_count == 0


class TestFrontend:
    """Browser UI served from the static directory."""

    @pytest.mark.asyncio
    async def test_assets_and_fallback(self, build_client, tmp_path):
        (tmp_path / "index.html").write_text("<html>relay ui</html>")
        (tmp_path / "app.js").write_text("console.log('ui')")

        async with build_client(static_dir=tmp_path) as ac:
            asset = await ac.get("/app.js")
            fallback = await ac.get("/conversations/42")
            root = await ac.get("/")
            unknown_api = await ac.get("/api/nope")

        assert asset.status_code == 200
        assert "console.log" in asset.text
        assert fallback.status_code == 200
        assert "relay ui" in fallback.text
        assert "relay ui" in root.text
        assert unknown_api.status_code == 404

    @pytest.mark.asyncio
    async def test_no_escape_from_static_dir(self, build_client, tmp_path):
        ui = tmp_path / "ui"
        ui.mkdir()
        (ui / "index.html").write_text("<html>relay ui</html>")
        (tmp_path / "secret.txt").write_text("do not serve")

        async with build_client(static_dir=ui) as ac:
            resp = await ac.get("/..%2Fsecret.txt")

        assert "do not serve" not in resp.text

    @pytest.mark.asyncio
    async def test_assets_sharing_a_reserved_prefix(self, build_client, tmp_path):
        (tmp_path / "index.html").write_text("<html>relay ui</html>")
        (tmp_path / "api-guide.html").write_text("<html>guide</html>")
        (tmp_path / "docsify.js").write_text("window.$docsify = {}")

        async with build_client(static_dir=tmp_path) as ac:
            guide = await ac.get("/api-guide.html")
            script = await ac.get("/docsify.js")
            nested_api = await ac.get("/api/unknown/route")

        assert guide.status_code == 200
        assert "guide" in guide.text
        assert script.status_code == 200
        assert "docsify" in script.text
        assert nested_api.status_code == 404
