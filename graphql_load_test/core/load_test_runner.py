#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
测试运行器
提供高级测试流程控制
"""

import asyncio
import logging
from typing import Dict, List, Optional

from .load_test_config import ENDPOINT_ENV, build_policy, require_env
from .load_test_core import RunSummary, TestDefinition, make_request, run_load_test
from .load_test_graphql import graphql_test_definition
from .load_test_reporter import generate_report_text, generate_summary_report

logger = logging.getLogger("load_test")


def definition_from_config(config: Dict, name: str = 'graphql') -> TestDefinition:
    """
    根据配置构建 GraphQL 压测定义

    被测地址优先取配置中的 url，否则从 GRAPHQL_ENDPOINT 环境变量读取

    Raises:
        MissingConfig: 未提供被测地址
        InvalidPolicy: 并发策略参数非法
    """
    url = config.get('url') or require_env(ENDPOINT_ENV)
    return graphql_test_definition(
        url=url,
        policy=build_policy(config),
        threads=config.get('threads', 4),
        posts=config.get('posts', 20),
        timeout=config.get('timeout', 5),
        name=name,
    )


def check_thresholds(summary: RunSummary, max_check_fail_rate: Optional[float] = 0.0) -> bool:
    """
    判断压测是否通过

    Args:
        summary: 压测汇总结果
        max_check_fail_rate: 允许的最大检查项失败比例 (0~1)，None 表示不做判断

    Returns:
        是否通过
    """
    if max_check_fail_rate is None:
        return True
    if summary.iterations == 0:
        # 一次迭代都没完成，视为失败
        return False
    return summary.check_fail_rate <= max_check_fail_rate


async def run_single_test(
    definition: TestDefinition,
    t1: float = 1.0,
    t2: float = 3.0,
    test_config: Optional[Dict] = None,
    executor=make_request
) -> RunSummary:
    """
    运行单次测试

    Args:
        definition: 压测定义
        t1: 快速请求阈值（秒）
        t2: 慢速请求阈值（秒）
        test_config: 打印在报告中的配置信息
        executor: 请求执行函数

    Returns:
        RunSummary: 测试汇总结果
    """
    if test_config is None:
        test_config = {
            'test_name': definition.name,
            'url': definition.request.url,
            'policy': definition.policy,
            'timeout': definition.timeout,
            't1': t1,
            't2': t2,
        }

    result = await run_load_test(definition, t1=t1, t2=t2, executor=executor)
    summary = result.summarize()

    print(generate_report_text(summary, test_config))
    return summary


async def run_batch_tests(
    definitions: List[TestDefinition],
    t1: float = 1.0,
    t2: float = 3.0,
    cooldown: float = 5,
    executor=make_request
) -> List[Dict]:
    """
    运行批量测试

    Args:
        definitions: 压测定义列表，依次执行
        t1: 快速请求阈值（秒）
        t2: 慢速请求阈值（秒）
        cooldown: 测试间隔冷却时间（秒）
        executor: 请求执行函数

    Returns:
        批量测试结果列表
    """
    batch_results = []
    total_tests = len(definitions)

    for idx, definition in enumerate(definitions, 1):
        print(f"\n{'='*80}")
        print(f"测试 {idx}/{total_tests}: {definition.name}")
        print(f"{'='*80}")

        summary = await run_single_test(definition, t1=t1, t2=t2, executor=executor)

        # 打印结果摘要
        print(f"✓ QPS: {summary.qps:.2f}")
        print(f"✓ 检查项失败率: {summary.check_fail_rate * 100:.2f}%")
        print(f"✓ Bad: {summary.bad_rate:.2f}%")

        batch_results.append({
            'name': definition.name,
            'summary': summary,
            'definition': definition,
        })

        # 冷却时间（最后一次不需要等待）
        if idx < total_tests:
            print(f"\n等待 {cooldown} 秒后继续...")
            await asyncio.sleep(cooldown)

    return batch_results


async def run_sequential_tests(
    definitions: List[TestDefinition],
    base_config: Dict,
    t1: float = 1.0,
    t2: float = 3.0,
    cooldown: float = 10,
    generate_summary: bool = True,
    executor=make_request
) -> List[Dict]:
    """
    运行序列测试（多阶段测试）

    与 run_batch_tests 的区别：
    - 自动打印汇总报告
    - 适用于阶段化测试
    """
    batch_results = await run_batch_tests(
        definitions=definitions,
        t1=t1,
        t2=t2,
        cooldown=cooldown,
        executor=executor
    )

    if generate_summary and len(batch_results) > 1:
        print(f"\n{'='*80}")
        print("生成汇总报告...")
        print(f"{'='*80}")
        print(generate_summary_report(batch_results, base_config))

    return batch_results
