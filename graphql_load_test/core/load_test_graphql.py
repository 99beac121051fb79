#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
GraphQL 压测负载
固定的 threads/posts 查询以及对应的检查项
"""

from typing import Mapping, Optional

from .load_test_checks import CheckSet
from .load_test_core import RequestSpec, TestDefinition
from .load_test_scheduler import ConcurrencyPolicy

OPERATION_NAME = 'MagicSauce'

QUERY = """query MagicSauce($threadLimit: Int!, $postLimit: Int!) {
  threads(limit: $threadLimit) {
    id
    posts(limit: $postLimit) {
      id
    }
  }
}"""

THREADS = 4
POSTS = 20


def build_graphql_body(variables: Mapping, query: str = QUERY, operation_name: str = OPERATION_NAME) -> dict:
    """构建 GraphQL 请求体"""
    return {
        'operationName': operation_name,
        'query': query,
        'variables': dict(variables),
    }


def graphql_request_spec(url: str, headers: Optional[Mapping] = None) -> RequestSpec:
    request_headers = {"Content-Type": "application/json"}
    if headers:
        request_headers.update(headers)
    return RequestSpec(url=url, body_builder=build_graphql_body, method='POST', headers=request_headers)


def graphql_checks(threads: int = THREADS, posts: int = POSTS) -> CheckSet:
    """
    三个检查项:
    - graphql errors: 响应中没有 errors 或 errors 为空
    - threads: data.threads 数量等于 threads
    - thread posts: 每个 thread 的 posts 数量都等于 posts（threads 为空时也算通过）
    """
    def no_graphql_errors(result) -> bool:
        errors = result.field('errors')
        return not errors

    def thread_count(result) -> bool:
        return len(result.field('data', 'threads')) == threads

    def thread_posts(result) -> bool:
        return all(len(thread['posts']) == posts for thread in result.field('data', 'threads'))

    return CheckSet([
        ('graphql errors', no_graphql_errors),
        ('threads', thread_count),
        ('thread posts', thread_posts),
    ])


def graphql_test_definition(
    url: str,
    policy: ConcurrencyPolicy,
    threads: int = THREADS,
    posts: int = POSTS,
    timeout: float = 5,
    name: str = 'graphql'
) -> TestDefinition:
    """构建 threads/posts 查询的压测定义"""
    return TestDefinition(
        name=name,
        request=graphql_request_spec(url),
        checks=graphql_checks(threads, posts),
        policy=policy,
        variables={'threadLimit': threads, 'postLimit': posts},
        timeout=timeout,
    )
