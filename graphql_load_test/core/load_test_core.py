#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
核心测试引擎
包含压测的核心逻辑：请求发送、单次迭代、检查项统计、结果汇总等
"""

import asyncio
import functools
import json
import logging
import statistics
import threading
import time
from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import aiohttp

from .load_test_checks import CheckSet, evaluate_checks
from .load_test_errors import TransportError, TransportErrorKind
from .load_test_scheduler import ConcurrencyPolicy, RateScheduler

logger = logging.getLogger("load_test")


def _default_headers():
    return {"Content-Type": "application/json"}


@dataclass(frozen=True)
class RequestSpec:
    """
    请求模板，构建一次后被所有迭代复用

    body_builder 接收本次迭代的变量，返回可被 JSON 序列化的请求体
    """
    url: str
    body_builder: Callable[[Mapping], Any]
    method: str = 'POST'
    headers: Mapping = field(default_factory=_default_headers)

    def __post_init__(self):
        object.__setattr__(self, 'headers', MappingProxyType(dict(self.headers)))

    def build_body(self, variables: Mapping) -> Any:
        return self.body_builder(variables)


@dataclass(frozen=True)
class IterationResult:
    """单次请求结果"""
    status: int
    body: Any = None
    elapsed: float = 0.0
    error: Optional[TransportError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def field(self, *path, default=None):
        """
        安全地读取响应体中的嵌套字段，任一层不存在时返回 default

        例: result.field('data', 'threads')
        """
        value = self.body
        for key in path:
            if isinstance(value, Mapping):
                value = value.get(key)
            elif isinstance(value, list) and isinstance(key, int) and -len(value) <= key < len(value):
                value = value[key]
            else:
                return default
            if value is None:
                return default
        return value


@dataclass(frozen=True)
class TestDefinition:
    """一次压测的完整定义: 请求模板 + 检查项 + 并发策略"""
    __test__ = False

    name: str
    request: RequestSpec
    checks: CheckSet
    policy: ConcurrencyPolicy
    # 静态变量，或每次迭代调用一次的无参函数（用于随机化参数）
    variables: Union[Mapping, Callable[[], Mapping]] = field(default_factory=dict)
    timeout: float = 5

    def resolve_variables(self) -> Dict:
        if callable(self.variables):
            return dict(self.variables())
        return dict(self.variables)


@dataclass(frozen=True)
class CheckCounts:
    passes: int = 0
    fails: int = 0

    @property
    def total(self) -> int:
        return self.passes + self.fails

    @property
    def pass_rate(self) -> float:
        return (self.passes / self.total * 100) if self.total > 0 else 0


@dataclass(frozen=True)
class RunSummary:
    """压测结束后的汇总结果"""
    checks: Dict[str, CheckCounts]
    total_requests: int = 0
    fast_count: int = 0
    slow_count: int = 0
    bad_count: int = 0
    status_codes: Dict[int, int] = field(default_factory=dict)
    response_time: Dict[str, float] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    iterations: int = 0
    started_iterations: int = 0
    dropped_iterations: int = 0
    interrupted_iterations: int = 0
    duration: Optional[float] = None
    qps: float = 0
    t1: float = 1.0
    t2: float = 3.0

    @property
    def check_passes(self) -> int:
        return sum(c.passes for c in self.checks.values())

    @property
    def check_fails(self) -> int:
        return sum(c.fails for c in self.checks.values())

    @property
    def check_fail_rate(self) -> float:
        """检查项失败比例 (0~1)"""
        total = self.check_passes + self.check_fails
        return self.check_fails / total if total > 0 else 0.0

    def _rate(self, count: int) -> float:
        return (count / self.total_requests * 100) if self.total_requests > 0 else 0

    @property
    def fast_rate(self) -> float:
        return self._rate(self.fast_count)

    @property
    def slow_rate(self) -> float:
        return self._rate(self.slow_count)

    @property
    def bad_rate(self) -> float:
        return self._rate(self.bad_count)


class LoadTestResult:
    """
    压测结果统计

    所有 record/add 方法都可以被多个工作协程（或线程）并发调用，
    统计结果与调用顺序无关
    """

    def __init__(self, t1: float = 1.0, t2: float = 3.0):
        self.response_times: List[float] = []
        self.fast_count = 0  # 快速请求（响应时间 < T1）
        self.slow_count = 0  # 慢请求（T1 ≤ 响应时间 ≤ T2）
        self.bad_count = 0   # 坏请求（响应时间 > T2 或超时/失败）
        self.status_codes: Dict[int, int] = defaultdict(int)
        self.errors: List[str] = []
        self.check_counts: Dict[str, List[int]] = {}  # 名称 -> [通过数, 失败数]
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None
        self.iterations = 0             # 已完成的迭代数
        self.started_iterations = 0
        self.dropped_iterations = 0
        self.interrupted_iterations = 0
        self.t1 = t1  # 快速阈值（默认1秒）
        self.t2 = t2  # 慢速阈值（默认3秒）
        self._lock = threading.Lock()

    def record(self, check_name: str, passed: bool):
        """记录一次检查项结果"""
        with self._lock:
            counts = self.check_counts.setdefault(check_name, [0, 0])
            counts[0 if passed else 1] += 1

    def record_latency(self, response_time: float):
        """记录一次响应时间"""
        with self._lock:
            self.response_times.append(response_time)

    def add_result(self, response_time: float, status_code: int, error: Optional[str] = None):
        """添加一次请求结果"""
        with self._lock:
            self.response_times.append(response_time)

            # 三档统计逻辑
            if status_code == 200 and not error:
                # HTTP 200 成功请求，根据响应时间分类
                if response_time < self.t1:
                    self.fast_count += 1  # fast: < T1
                elif response_time <= self.t2:
                    self.slow_count += 1  # slow: T1 ~ T2
                else:
                    self.bad_count += 1  # bad: > T2
            else:
                # HTTP 非200、超时或响应无法解析，视为 bad
                self.bad_count += 1
                if error:
                    self.errors.append(error)

            self.status_codes[status_code] += 1

    def record_iteration(self, iteration_result: IterationResult, outcomes: Mapping):
        """记录一次完整迭代：请求结果 + 各检查项结果"""
        error = str(iteration_result.error) if iteration_result.error is not None else None
        self.add_result(iteration_result.elapsed, iteration_result.status, error)
        for name, passed in outcomes.items():
            self.record(name, passed)
        with self._lock:
            self.iterations += 1

    def get_statistics(self) -> Dict:
        """获取统计信息"""
        if not self.response_times:
            return {}

        sorted_times = sorted(self.response_times)
        total_requests = len(self.response_times)

        stats = {
            'total_requests': total_requests,
            'fast_count': self.fast_count,
            'slow_count': self.slow_count,
            'bad_count': self.bad_count,
            'status_codes': dict(self.status_codes),
            'response_time': {
                'min': sorted_times[0],
                'max': sorted_times[-1],
                'mean': statistics.mean(sorted_times),
                'median': statistics.median(sorted_times),
                'p50': sorted_times[int(total_requests * 0.50)],
                'p90': sorted_times[int(total_requests * 0.90)],
                'p95': sorted_times[int(total_requests * 0.95)],
                'p99': sorted_times[int(total_requests * 0.99)],
            },
        }

        # 计算QPS
        if self.start_time and self.end_time:
            duration = self.end_time - self.start_time
            stats['duration'] = duration
            stats['qps'] = total_requests / duration if duration > 0 else 0

        return stats

    def summarize(self) -> RunSummary:
        """生成汇总结果，即使没有任何请求完成也会返回"""
        with self._lock:
            stats = self.get_statistics()
            checks = {
                name: CheckCounts(passes=counts[0], fails=counts[1])
                for name, counts in self.check_counts.items()
            }
            duration = None
            if self.start_time and self.end_time:
                duration = self.end_time - self.start_time

            return RunSummary(
                checks=checks,
                total_requests=stats.get('total_requests', 0),
                fast_count=self.fast_count,
                slow_count=self.slow_count,
                bad_count=self.bad_count,
                status_codes=dict(self.status_codes),
                response_time=stats.get('response_time', {}),
                errors=list(self.errors),
                iterations=self.iterations,
                started_iterations=self.started_iterations,
                dropped_iterations=self.dropped_iterations,
                interrupted_iterations=self.interrupted_iterations,
                duration=duration,
                qps=stats.get('qps', 0),
                t1=self.t1,
                t2=self.t2,
            )


Executor = Callable[..., Awaitable[IterationResult]]


async def make_request(
    session: aiohttp.ClientSession,
    request: RequestSpec,
    variables: Mapping,
    timeout: float = 5
) -> IterationResult:
    """
    发送单个请求

    超时、连接失败、响应体无法解析时不抛出异常，而是返回带 error 的 IterationResult
    """
    start_time = time.perf_counter()
    status_code = 0

    try:
        async with session.request(
            request.method,
            request.url,
            json=request.build_body(variables),
            headers=dict(request.headers),
            timeout=aiohttp.ClientTimeout(total=timeout)
        ) as response:
            status_code = response.status
            raw = await response.read()
            response_time = time.perf_counter() - start_time

            # 任何状态码都尝试解析响应体
            try:
                body = json.loads(raw)
            except ValueError as e:
                error = TransportError(TransportErrorKind.DECODE_ERROR, f"响应不是合法的JSON: {e}")
                return IterationResult(status_code, None, response_time, error)

            return IterationResult(status_code, body, response_time)

    except asyncio.TimeoutError:
        response_time = time.perf_counter() - start_time
        error = TransportError(TransportErrorKind.TIMEOUT, f"请求超时 (>{timeout}s)")
        return IterationResult(status_code, None, response_time, error)

    except aiohttp.ClientError as e:
        response_time = time.perf_counter() - start_time
        error = TransportError(TransportErrorKind.CONNECTION_FAILED, f"客户端错误: {e}")
        return IterationResult(status_code, None, response_time, error)

    except Exception as e:
        logger.debug("请求出现未知错误", exc_info=True)
        response_time = time.perf_counter() - start_time
        error = TransportError(TransportErrorKind.CONNECTION_FAILED, f"未知错误: {e}")
        return IterationResult(status_code, None, response_time, error)


async def run_iteration(
    session: aiohttp.ClientSession,
    definition: TestDefinition,
    result: LoadTestResult,
    executor: Executor = make_request
) -> Dict[str, bool]:
    """执行一次迭代：发送请求 -> 执行检查项 -> 汇总"""
    variables = definition.resolve_variables()
    iteration_result = await executor(session, definition.request, variables, definition.timeout)

    if iteration_result.error is not None:
        # 传输失败: 所有检查项均记为失败，压测继续
        logger.debug("迭代失败: %s", iteration_result.error)
        outcomes = definition.checks.fail_all()
    else:
        outcomes = evaluate_checks(definition.checks, iteration_result)

    result.record_iteration(iteration_result, outcomes)
    return outcomes


async def run_load_test(
    definition: TestDefinition,
    t1: float = 1.0,
    t2: float = 3.0,
    executor: Executor = make_request
) -> LoadTestResult:
    """
    运行压测

    并发策略非法时抛出 InvalidPolicy，此时不会发出任何请求
    """
    scheduler = RateScheduler(definition.policy)

    result = LoadTestResult(t1=t1, t2=t2)
    result.start_time = time.time()
    logger.info("开始压测: %s (%s)", definition.name, definition.policy)

    # 创建HTTP会话
    workers = definition.policy.max_workers
    connector = aiohttp.TCPConnector(limit=workers * 2, limit_per_host=workers * 2)
    async with aiohttp.ClientSession(connector=connector) as session:
        iteration = functools.partial(run_iteration, session, definition, result, executor)
        await scheduler.run(iteration)

    result.end_time = time.time()
    result.started_iterations = scheduler.started
    result.dropped_iterations = scheduler.dropped
    result.interrupted_iterations = scheduler.interrupted
    logger.info(
        "压测结束: %s, 启动=%d, 完成=%d, 丢弃=%d, 中断=%d",
        definition.name, scheduler.started, result.iterations, scheduler.dropped, scheduler.interrupted
    )
    return result
