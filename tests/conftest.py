"""
Shared pytest fixtures for the GraphQL load-test suites.

Provides canned GraphQL response bodies, a fake executor that never touches
the network, and a factory for a local aiohttp GraphQL stub used by the
executor tests.
"""

from __future__ import annotations

import asyncio

import pytest
from aiohttp import web

from graphql_load_test.core.load_test_core import IterationResult
from graphql_load_test.core.load_test_errors import TransportError, TransportErrorKind
from graphql_load_test.core.load_test_graphql import POSTS, THREADS, graphql_test_definition
from graphql_load_test.core.load_test_scheduler import FixedPool


def make_threads_body(threads: int = THREADS, posts: int = POSTS) -> dict:
    return {
        "data": {
            "threads": [
                {"id": str(t), "posts": [{"id": f"{t}-{p}"} for p in range(posts)]}
                for t in range(threads)
            ]
        }
    }


class FakeExecutor:
    """Stand-in for ``make_request`` that returns canned results and counts calls."""

    def __init__(self, result: IterationResult, delay: float = 0.0):
        self.result = result
        self.delay = delay
        self.calls = []

    async def __call__(self, session, request, variables, timeout):
        self.calls.append(dict(variables))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.result


@pytest.fixture
def good_body():
    return make_threads_body()


@pytest.fixture
def good_result(good_body):
    return IterationResult(status=200, body=good_body, elapsed=0.01)


@pytest.fixture
def error_result():
    return IterationResult(
        status=200,
        body={"data": {"threads": []}, "errors": [{"message": "boom"}]},
        elapsed=0.01,
    )


@pytest.fixture
def timeout_result():
    return IterationResult(
        status=0,
        body=None,
        elapsed=5.0,
        error=TransportError(TransportErrorKind.TIMEOUT, "请求超时 (>5s)"),
    )


@pytest.fixture
def short_definition():
    """A short fixed-pool GraphQL definition pointed at an address that is never dialled."""
    return graphql_test_definition(
        url="http://graphql.test/query",
        policy=FixedPool(vus=2, duration=0.1),
        timeout=1,
    )


@pytest.fixture
def graphql_app():
    """
    Factory for a local GraphQL stub.

    ``graphql_app(handler)`` returns ``(app, received)``: an aiohttp
    application routing POST /graphql to *handler*, and the list of
    request bodies it has received.
    """

    def _factory(handler):
        received = []

        async def _recording(request):
            received.append(
                {
                    "content_type": request.headers.get("Content-Type", ""),
                    "body": await request.json(),
                }
            )
            return await handler(request)

        app = web.Application()
        app.router.add_post("/graphql", _recording)
        return app, received

    return _factory


@pytest.fixture
def fake_executor():
    """Factory: ``fake_executor(result, delay=0.0)`` builds a FakeExecutor."""
    return FakeExecutor
