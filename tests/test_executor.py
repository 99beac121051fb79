"""
Integration tests for the HTTP executor against a local GraphQL stub.

Each test starts an aiohttp TestServer on localhost, so no external
network access is required.
"""

from __future__ import annotations

import asyncio

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer as StubServer

from graphql_load_test.core.load_test_core import make_request, run_load_test
from graphql_load_test.core.load_test_errors import TransportErrorKind
from graphql_load_test.core.load_test_graphql import (
    OPERATION_NAME,
    QUERY,
    graphql_request_spec,
    graphql_test_definition,
)
from graphql_load_test.core.load_test_scheduler import FixedPool

pytestmark = pytest.mark.integration

VARIABLES = {"threadLimit": 4, "postLimit": 20}


def _threads_handler(threads=4, posts=20):
    async def _handler(request):
        return web.json_response(
            {
                "data": {
                    "threads": [
                        {"id": str(t), "posts": [{"id": str(p)} for p in range(posts)]}
                        for t in range(threads)
                    ]
                }
            }
        )

    return _handler


@pytest.mark.asyncio
async def test_executor_posts_graphql_body(graphql_app):
    """Test that the executor sends a JSON POST with operationName, query and variables."""
    # Arrange
    app, received = graphql_app(_threads_handler())

    # Act
    async with StubServer(app) as server:
        spec = graphql_request_spec(str(server.make_url("/graphql")))
        async with aiohttp.ClientSession() as session:
            result = await make_request(session, spec, VARIABLES, timeout=5)

    # Assert
    assert result.ok
    assert result.status == 200
    assert len(result.field("data", "threads")) == 4
    assert result.elapsed > 0
    assert received[0]["content_type"].startswith("application/json")
    assert received[0]["body"] == {
        "operationName": OPERATION_NAME,
        "query": QUERY,
        "variables": VARIABLES,
    }


@pytest.mark.asyncio
async def test_executor_parses_body_of_error_status(graphql_app):
    async def _handler(request):
        return web.json_response({"errors": [{"message": "bad query"}]}, status=400)

    app, _ = graphql_app(_handler)

    async with StubServer(app) as server:
        spec = graphql_request_spec(str(server.make_url("/graphql")))
        async with aiohttp.ClientSession() as session:
            result = await make_request(session, spec, VARIABLES)

    assert result.ok
    assert result.status == 400
    assert result.field("errors", 0, "message") == "bad query"


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", ["<html>502 Bad Gateway</html>", ""])
async def test_executor_reports_decode_error(graphql_app, payload):
    """Test that a non-JSON body yields a DecodeError instead of raising."""

    async def _handler(request):
        return web.Response(text=payload, status=502)

    app, _ = graphql_app(_handler)

    async with StubServer(app) as server:
        spec = graphql_request_spec(str(server.make_url("/graphql")))
        async with aiohttp.ClientSession() as session:
            result = await make_request(session, spec, VARIABLES)

    assert not result.ok
    assert result.error.kind is TransportErrorKind.DECODE_ERROR
    assert result.status == 502
    assert result.body is None


@pytest.mark.asyncio
async def test_executor_reports_timeout(graphql_app):
    async def _handler(request):
        await asyncio.sleep(1)
        return web.json_response({"data": {}})

    app, _ = graphql_app(_handler)

    async with StubServer(app) as server:
        spec = graphql_request_spec(str(server.make_url("/graphql")))
        async with aiohttp.ClientSession() as session:
            result = await make_request(session, spec, VARIABLES, timeout=0.2)

    assert result.error.kind is TransportErrorKind.TIMEOUT
    assert result.elapsed < 1


@pytest.mark.asyncio
async def test_executor_reports_connection_failure():
    """Test that a refused connection yields ConnectionFailed instead of raising."""
    spec = graphql_request_spec("http://127.0.0.1:1/graphql")

    async with aiohttp.ClientSession() as session:
        result = await make_request(session, spec, VARIABLES, timeout=2)

    assert result.error.kind is TransportErrorKind.CONNECTION_FAILED
    assert result.status == 0


@pytest.mark.asyncio
async def test_full_run_against_stub(graphql_app):
    """Test an end-to-end fixed-pool run where every check passes."""
    app, received = graphql_app(_threads_handler())

    async with StubServer(app) as server:
        definition = graphql_test_definition(
            url=str(server.make_url("/graphql")),
            policy=FixedPool(vus=2, duration=0.2),
        )
        result = await run_load_test(definition)

    summary = result.summarize()
    assert summary.iterations == len(received)
    assert summary.iterations > 0
    assert summary.check_fails == 0
    assert summary.status_codes == {200: summary.iterations}


@pytest.mark.asyncio
async def test_full_run_with_wrong_shape(graphql_app):
    app, _ = graphql_app(_threads_handler(threads=3, posts=20))

    async with StubServer(app) as server:
        definition = graphql_test_definition(
            url=str(server.make_url("/graphql")),
            policy=FixedPool(vus=1, duration=0.1),
        )
        summary = (await run_load_test(definition)).summarize()

    assert summary.checks["threads"].passes == 0
    assert summary.checks["threads"].fails == summary.iterations
    assert summary.checks["thread posts"].fails == 0
    assert summary.checks["graphql errors"].fails == 0
