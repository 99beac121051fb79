#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
并发调度模块
将声明式的并发策略转换为"执行一次迭代"的调度

支持三种策略（对应 k6 的 executor）：
- FixedPool: 固定并发数，闭环执行，上一次迭代结束后立即开始下一次 (constant-vus)
- ConstantArrivalRate: 固定到达速率，开环执行，不等待之前的迭代完成 (constant-arrival-rate)
- SharedIterations: 固定总迭代数，由所有并发共享 (shared-iterations)
"""

import asyncio
import logging
import math
import numbers
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Union

from .load_test_errors import InvalidPolicy

logger = logging.getLogger("load_test")

OVERFLOW_DROP = 'drop'
OVERFLOW_QUEUE = 'queue'

Iteration = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class FixedPool:
    """固定并发: vus 个工作协程循环执行，直到 duration 秒后停止"""
    vus: int
    duration: float
    hard_timeout: Optional[float] = None

    @property
    def max_workers(self) -> int:
        return self.vus


@dataclass(frozen=True)
class ConstantArrivalRate:
    """
    固定到达速率: 每 time_unit 秒启动 rate 次迭代

    pre_allocated_vus 需要大于 rate × 平均迭代耗时，否则到达的迭代会被排队或丢弃
    overflow: 'drop' 直接丢弃并计数；'queue' 最多排队 max_queued 个，超出部分丢弃
    """
    rate: float
    duration: float
    pre_allocated_vus: int
    time_unit: float = 1.0
    overflow: str = OVERFLOW_DROP
    max_queued: int = 0
    hard_timeout: Optional[float] = None

    @property
    def max_workers(self) -> int:
        return self.pre_allocated_vus

    @property
    def interval(self) -> float:
        """两次到达之间的间隔（秒）"""
        return self.time_unit / self.rate

    @property
    def expected_iterations(self) -> int:
        """整个压测期间应发出的迭代数"""
        # 加一个极小值，避免 0.1 * 30 之类的浮点误差少算一次
        return int(math.floor(self.rate * self.duration / self.time_unit + 1e-9))


@dataclass(frozen=True)
class SharedIterations:
    """固定总数: vus 个工作协程共享 iterations 次迭代，最长执行 max_duration 秒"""
    vus: int
    iterations: int
    max_duration: float
    hard_timeout: Optional[float] = None

    @property
    def max_workers(self) -> int:
        return self.vus


ConcurrencyPolicy = Union[FixedPool, ConstantArrivalRate, SharedIterations]


def _require_positive(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidPolicy(f"{name} 必须是数字，当前值: {value!r}")
    if value <= 0:
        raise InvalidPolicy(f"{name} 必须大于0，当前值: {value}")


def _require_count(name: str, value, minimum: int = 1) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidPolicy(f"{name} 必须是整数，当前值: {value!r}")
    if value < minimum:
        raise InvalidPolicy(f"{name} 必须大于等于{minimum}，当前值: {value}")


def validate_policy(policy: ConcurrencyPolicy) -> None:
    """
    验证并发策略

    Raises:
        InvalidPolicy: 速率、时长、并发数、迭代数 <= 0，或溢出策略非法时
    """
    if isinstance(policy, FixedPool):
        _require_count('vus', policy.vus)
        _require_positive('duration', policy.duration)
    elif isinstance(policy, ConstantArrivalRate):
        _require_positive('rate', policy.rate)
        _require_positive('time_unit', policy.time_unit)
        _require_positive('duration', policy.duration)
        _require_count('pre_allocated_vus', policy.pre_allocated_vus)
        if policy.overflow not in (OVERFLOW_DROP, OVERFLOW_QUEUE):
            raise InvalidPolicy(f"未知的溢出策略: {policy.overflow}")
        _require_count('max_queued', policy.max_queued, minimum=0)
    elif isinstance(policy, SharedIterations):
        _require_count('vus', policy.vus)
        _require_count('iterations', policy.iterations)
        _require_positive('max_duration', policy.max_duration)
    else:
        raise InvalidPolicy(f"未知的并发策略: {policy!r}")

    if policy.hard_timeout is not None:
        if isinstance(policy.hard_timeout, bool) or not isinstance(policy.hard_timeout, numbers.Real):
            raise InvalidPolicy(f"hard_timeout 必须是数字，当前值: {policy.hard_timeout!r}")
        if policy.hard_timeout < 0:
            raise InvalidPolicy(f"hard_timeout 不能为负数，当前值: {policy.hard_timeout}")


class RateScheduler:
    """
    按并发策略调度迭代

    只负责并发和节奏控制，迭代之间互不通信。
    压测时长结束后不再启动新迭代，正在执行的迭代默认允许执行完毕；
    设置了 hard_timeout 时，超过 时长+hard_timeout 仍未结束的迭代会被取消
    """

    def __init__(self, policy: ConcurrencyPolicy):
        validate_policy(policy)
        self.policy = policy
        self.started = 0        # 已启动的迭代数
        self.dropped = 0        # 因无空闲 VU 或 hard_timeout 时仍在排队而被丢弃的迭代数
        self.interrupted = 0    # 被 hard_timeout 强制取消的迭代数
        self.max_active = 0     # 同时执行的迭代数峰值
        self._active = 0

    async def run(self, iteration: Iteration) -> None:
        """执行调度，直到压测时长结束且所有迭代排空"""
        if isinstance(self.policy, ConstantArrivalRate):
            await self._run_arrival_rate(iteration)
        else:
            await self._run_pool(iteration)

    async def _run_once(self, iteration: Iteration) -> None:
        self.started += 1
        self._active += 1
        self.max_active = max(self.max_active, self._active)
        try:
            await iteration()
        except Exception:
            # 单次迭代的异常不能中止整个压测
            logger.exception("迭代执行异常")
        finally:
            self._active -= 1

    async def _run_pool(self, iteration: Iteration) -> None:
        policy = self.policy
        loop = asyncio.get_running_loop()
        if isinstance(policy, SharedIterations):
            deadline = loop.time() + policy.max_duration
            limit = policy.iterations
        else:
            deadline = loop.time() + policy.duration
            limit = None

        async def vu():
            while loop.time() < deadline:
                # 检查和计数之间没有 await，多个协程不会超发
                if limit is not None and self.started >= limit:
                    break
                await self._run_once(iteration)

        tasks = [asyncio.create_task(vu()) for _ in range(policy.vus)]
        await self._drain(tasks, deadline)

    async def _run_arrival_rate(self, iteration: Iteration) -> None:
        policy = self.policy
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()

        async def vu():
            while True:
                item = await queue.get()
                if item is None:
                    break
                await self._run_once(iteration)

        tasks = [asyncio.create_task(vu()) for _ in range(policy.pre_allocated_vus)]

        start = loop.time()
        deadline = start + policy.duration
        for tick in range(policy.expected_iterations):
            delay = start + tick * policy.interval - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)
            self._issue(queue, tick)

        # 结束信号排在已排队的迭代之后，保证排队的迭代先执行完
        for _ in tasks:
            queue.put_nowait(None)
        await self._drain(tasks, deadline, queue)

    def _issue(self, queue: asyncio.Queue, tick: int) -> None:
        policy = self.policy
        pending = queue.qsize()
        idle = policy.pre_allocated_vus - self._active
        if pending < idle:
            queue.put_nowait(tick)
        elif policy.overflow == OVERFLOW_QUEUE and pending - idle < policy.max_queued:
            queue.put_nowait(tick)
        else:
            if self.dropped == 0:
                logger.warning(
                    "预分配VU不足 (pre_allocated_vus=%d)，到达的迭代将被丢弃",
                    policy.pre_allocated_vus
                )
            self.dropped += 1

    async def _drain(
        self,
        tasks: List[asyncio.Task],
        deadline: float,
        queue: Optional[asyncio.Queue] = None
    ) -> None:
        if not tasks:
            return

        hard_timeout = self.policy.hard_timeout
        if hard_timeout is None:
            await asyncio.gather(*tasks)
            return

        loop = asyncio.get_running_loop()
        timeout = max(0.0, deadline + hard_timeout - loop.time())
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            self.interrupted += self._active
            logger.info("超过 hard_timeout，取消 %d 个正在执行的迭代", self._active)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

            # 仍在排队、还没开始执行的迭代计入 dropped
            if queue is not None:
                abandoned = 0
                while not queue.empty():
                    if queue.get_nowait() is not None:
                        abandoned += 1
                if abandoned:
                    logger.info("超过 hard_timeout，丢弃 %d 个仍在排队的迭代", abandoned)
                self.dropped += abandoned
