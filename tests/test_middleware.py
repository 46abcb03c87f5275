"""Pipeline tests — each stage observed through the composed app."""

import asyncio
import base64
import json

import pytest
from httpx import ASGITransport, AsyncClient
from starlette.datastructures import Headers
from starlette.responses import PlainTextResponse

from ladapi.auth.password import hash_password
from ladapi.middleware.conditional import entity_tag, is_fresh
from ladapi.middleware.i18n import I18N, parse_accept_language


def basic(name, password):
    token = base64.b64encode(f"{name}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


# ═══════════════════════════════════════════════════════════
# Request metadata
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_request_id_generated(client):
    """Each request gets a unique X-Request-Id header."""
    r1 = await client.get("/hello")
    r2 = await client.get("/hello")
    assert r1.headers["X-Request-Id"]
    assert r1.headers["X-Request-Id"] != r2.headers["X-Request-Id"]


@pytest.mark.asyncio
async def test_request_id_propagated(client):
    r = await client.get("/hello", headers={"X-Request-Id": "trace-12345"})
    assert r.headers["X-Request-Id"] == "trace-12345"


@pytest.mark.asyncio
async def test_response_time_header(client):
    r = await client.get("/hello")
    value = r.headers["X-Response-Time"]
    assert value.endswith("ms")
    assert float(value[:-2]) >= 0


# ═══════════════════════════════════════════════════════════
# Security headers
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_security_headers(client):
    r = await client.get("/hello")
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert r.headers["X-Frame-Options"] == "SAMEORIGIN"
    assert r.headers["X-DNS-Prefetch-Control"] == "off"
    assert r.headers["X-XSS-Protection"] == "1; mode=block"


@pytest.mark.asyncio
async def test_no_hsts_on_http(client):
    """HSTS header is NOT set on HTTP connections (only HTTPS)."""
    r = await client.get("/hello")
    assert "Strict-Transport-Security" not in r.headers


@pytest.mark.asyncio
async def test_hsts_on_https(api):
    transport = ASGITransport(app=api.app)
    async with AsyncClient(transport=transport, base_url="https://test") as ac:
        r = await ac.get("/hello")
    assert r.headers["Strict-Transport-Security"].startswith("max-age=")


# ═══════════════════════════════════════════════════════════
# Compression, ETag, conditional GET, pretty JSON
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_large_responses_are_gzipped(client):
    r = await client.get("/big", headers={"Accept-Encoding": "gzip"})
    assert r.headers["Content-Encoding"] == "gzip"
    assert len(r.json()["items"]) == 100


@pytest.mark.asyncio
async def test_small_responses_not_compressed(client):
    r = await client.get("/hello", headers={"Accept-Encoding": "gzip"})
    assert "Content-Encoding" not in r.headers
    assert r.headers["Content-Length"] == str(len(r.content))


@pytest.mark.asyncio
async def test_compression_threshold_behind_header_stages(make_api, client_for):
    """Stages that re-stream responses still leave small bodies uncompressed."""
    api = make_api(
        auth={"name": "admin", "password": "secret"},
        i18n={"locales": ["en"]},
        store_ip_address={},
    )
    headers = {"Accept-Encoding": "gzip", **basic("admin", "secret")}
    async with await client_for(api) as ac:
        small = await ac.get("/hello", headers=headers)
        large = await ac.get("/big", headers=headers)
    assert "Content-Encoding" not in small.headers
    assert small.json() == {"hello": "world"}
    assert large.headers["Content-Encoding"] == "gzip"
    assert int(large.headers["Content-Length"]) < len(large.content)


@pytest.mark.asyncio
async def test_etag_matches_body(client):
    r = await client.get("/hello", headers={"Accept-Encoding": "identity"})
    assert r.headers["ETag"] == entity_tag(r.content)


@pytest.mark.asyncio
async def test_conditional_get_returns_304(client):
    first = await client.get("/hello")
    etag = first.headers["ETag"]

    second = await client.get("/hello", headers={"If-None-Match": etag})
    assert second.status_code == 304
    assert second.content == b""
    assert second.headers["ETag"] == etag

    stale = await client.get("/hello", headers={"If-None-Match": '"nope"'})
    assert stale.status_code == 200


def test_is_fresh_rules():
    response = Headers({"etag": '"abc"', "last-modified": "Tue, 01 Oct 2024 10:00:00 GMT"})
    assert is_fresh(Headers({"if-none-match": 'W/"abc"'}), response)
    assert is_fresh(Headers({"if-none-match": '"x", "abc"'}), response)
    assert not is_fresh(Headers({"if-none-match": '"abc"', "cache-control": "no-cache"}), response)
    assert is_fresh(Headers({"if-modified-since": "Wed, 02 Oct 2024 10:00:00 GMT"}), response)
    assert not is_fresh(Headers({"if-modified-since": "Mon, 30 Sep 2024 10:00:00 GMT"}), response)
    assert not is_fresh(Headers({}), response)


@pytest.mark.asyncio
async def test_json_pretty_printed_by_default(client):
    r = await client.get("/hello")
    assert r.text == json.dumps({"hello": "world"}, indent=2)


@pytest.mark.asyncio
async def test_json_pretty_by_query_param(make_api, client_for):
    api = make_api(json={"pretty": False, "param": "pretty"})
    async with await client_for(api) as ac:
        compact = await ac.get("/hello")
        pretty = await ac.get("/hello?pretty")
    assert compact.text == '{"hello":"world"}'
    assert pretty.text == json.dumps({"hello": "world"}, indent=2)


@pytest.mark.asyncio
async def test_head_reports_pretty_length(make_api, client_for, router):
    @router.api_route("/status", methods=["GET", "HEAD"])
    async def status():
        return {"status": "ok", "uptime": 12}

    api = make_api()
    headers = {"Accept-Encoding": "identity"}
    async with await client_for(api) as ac:
        get = await ac.get("/status", headers=headers)
        head = await ac.head("/status", headers=headers)
    assert get.text == json.dumps({"status": "ok", "uptime": 12}, indent=2)
    assert head.status_code == 200
    assert head.headers["Content-Length"] == get.headers["Content-Length"]


# ═══════════════════════════════════════════════════════════
# Routing edges: trailing slash, 404, errors
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_trailing_slash_redirects(client):
    r = await client.get("/hello/?a=1")
    assert r.status_code == 301
    assert r.headers["Location"] == "/hello?a=1"


@pytest.mark.asyncio
async def test_repeated_trailing_slashes_collapse(client):
    r = await client.get("/hello//")
    assert r.status_code == 301
    assert r.headers["Location"] == "/hello"


@pytest.mark.asyncio
async def test_not_found_json(client):
    r = await client.get("/missing")
    assert r.status_code == 404
    assert r.json() == {"statusCode": 404, "error": "Not Found", "message": "Not Found"}


@pytest.mark.asyncio
async def test_plain_404_from_mounted_app_becomes_json(make_api, client_for):
    async def legacy(scope, receive, send):
        await PlainTextResponse("nothing here", status_code=404)(scope, receive, send)

    api = make_api(routes=legacy)
    async with await client_for(api) as ac:
        r = await ac.get("/anything")
    assert r.status_code == 404
    assert r.json()["statusCode"] == 404


@pytest.mark.asyncio
async def test_unhandled_error_is_500_and_emitted(api, client):
    """Route exceptions are answered inside the pipeline, with its headers."""
    errors = []
    api.events.on("error", lambda err, request: errors.append(err))
    r = await client.get("/boom")
    assert r.status_code == 500
    assert r.json() == {
        "statusCode": 500,
        "error": "Internal Server Error",
        "message": "Internal Server Error",
    }
    assert r.headers["X-Request-Id"]
    assert r.headers["X-Response-Time"].endswith("ms")
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert [type(e) for e in errors] == [RuntimeError]


@pytest.mark.asyncio
async def test_validation_error_shape(make_api, client_for, router):
    @router.get("/items/{item_id}")
    async def item(item_id: int):
        return {"id": item_id}

    api = make_api()
    async with await client_for(api) as ac:
        r = await ac.get("/items/abc")
    assert r.status_code == 422
    assert r.json()["statusCode"] == 422
    assert r.json()["details"]


# ═══════════════════════════════════════════════════════════
# Body parsing
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_json_body_parsed_and_replayed(client):
    r = await client.post("/echo", json={"a": 1})
    assert r.status_code == 200
    assert r.json()["body"] == {"a": 1}
    assert json.loads(r.json()["raw"]) == {"a": 1}


@pytest.mark.asyncio
async def test_form_body_parsed(client):
    r = await client.post("/echo", data={"name": "lad", "tag": ["a", "b"]})
    assert r.json()["body"] == {"name": "lad", "tag": ["a", "b"]}


@pytest.mark.asyncio
async def test_other_content_types_give_empty_body(client):
    r = await client.post("/echo", content=b"hi", headers={"Content-Type": "text/plain"})
    assert r.json() == {"body": {}, "raw": "hi"}


@pytest.mark.asyncio
async def test_invalid_json_is_400(client):
    r = await client.post(
        "/echo", content=b"{nope", headers={"Content-Type": "application/json"}
    )
    assert r.status_code == 400
    assert r.json()["error"] == "Bad Request"


@pytest.mark.asyncio
async def test_oversized_json_is_413(client):
    payload = b'{"x": "' + b"a" * (1024 * 1024) + b'"}'
    r = await client.post(
        "/echo", content=payload, headers={"Content-Type": "application/json"}
    )
    assert r.status_code == 413


# ═══════════════════════════════════════════════════════════
# Basic auth
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_basic_auth_rejects_missing_credentials(make_api, client_for):
    api = make_api(auth={"name": "admin", "password": "secret"})
    async with await client_for(api) as ac:
        r = await ac.get("/hello")
        wrong = await ac.get("/hello", headers=basic("admin", "nope"))
        ok = await ac.get("/hello", headers=basic("admin", "secret"))
    assert r.status_code == 401
    assert r.headers["WWW-Authenticate"] == 'Basic realm="Secure Area"'
    assert wrong.status_code == 401
    assert ok.status_code == 200


@pytest.mark.asyncio
async def test_basic_auth_with_bcrypt_hash(make_api, client_for):
    api = make_api(auth={"name": "admin", "password": hash_password("secret", rounds=4)})
    async with await client_for(api) as ac:
        ok = await ac.get("/hello", headers=basic("admin", "secret"))
        bad = await ac.get("/hello", headers=basic("admin", "secret2"))
    assert ok.status_code == 200
    assert bad.status_code == 401


# ═══════════════════════════════════════════════════════════
# i18n
# ═══════════════════════════════════════════════════════════


def test_parse_accept_language():
    assert parse_accept_language("fr;q=0.5, en-US, de;q=0.9") == ["en-us", "de", "fr"]
    assert parse_accept_language("*, es;q=0") == []


@pytest.mark.asyncio
async def test_locale_detection(make_api, client_for):
    i18n = I18N(
        locales=["en", "fr"],
        default_locale="en",
        phrases={"en": {"hello": "Hello"}, "fr": {"hello": "Bonjour"}},
    )
    api = make_api(i18n=i18n)
    async with await client_for(api) as ac:
        default = await ac.get("/locale")
        header = await ac.get("/locale", headers={"Accept-Language": "fr-CA,fr;q=0.9"})
        query = await ac.get("/locale?locale=en", headers={"Accept-Language": "fr"})
        cookie = await ac.get("/locale", headers={"Cookie": "locale=fr"})

    assert default.json() == {"locale": "en", "greeting": "Hello"}
    assert header.json() == {"locale": "fr", "greeting": "Bonjour"}
    assert header.headers["Content-Language"] == "fr"
    assert query.json()["locale"] == "en"
    assert cookie.json()["locale"] == "fr"


def test_translate_falls_back():
    i18n = I18N(locales=["en", "fr"], phrases={"en": {"bye": "Bye {name}"}})
    assert i18n.t("bye", "fr", name="Ann") == "Bye Ann"
    assert i18n.t("unknown", "fr") == "unknown"


# ═══════════════════════════════════════════════════════════
# CORS
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_cors_preflight(make_api, client_for):
    api = make_api(cors={"allow_origins": ["https://app.example"], "allow_methods": ["*"]})
    async with await client_for(api) as ac:
        r = await ac.options(
            "/hello",
            headers={
                "Origin": "https://app.example",
                "Access-Control-Request-Method": "GET",
            },
        )
        simple = await ac.get("/hello", headers={"Origin": "https://app.example"})
    assert r.status_code == 200
    assert r.headers["Access-Control-Allow-Origin"] == "https://app.example"
    assert simple.headers["Access-Control-Allow-Origin"] == "https://app.example"


# ═══════════════════════════════════════════════════════════
# Timeout
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_slow_request_times_out(make_api, client_for, router):
    @router.get("/slow")
    async def slow():
        await asyncio.sleep(2)
        return {"done": True}

    api = make_api(timeout={"ms": 50, "message": "too slow"})
    errors = []
    api.events.on("error", lambda err, request: errors.append(err))
    async with await client_for(api) as ac:
        r = await ac.get("/slow")
        fast = await ac.get("/hello")
    assert r.status_code == 408
    assert r.json()["message"] == "too slow"
    assert errors and errors[0].status_code == 408
    assert fast.status_code == 200
