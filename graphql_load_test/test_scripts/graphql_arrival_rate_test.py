#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
GraphQL 固定到达速率测试
目标: 不论响应快慢，每秒固定发起 50 次 threads/posts 查询，校验返回结构
"""

import asyncio
import logging
import sys

from graphql_load_test.core.load_test_config import ENDPOINT_ENV, require_env
from graphql_load_test.core.load_test_errors import LoadTestError
from graphql_load_test.core.load_test_graphql import graphql_test_definition
from graphql_load_test.core.load_test_runner import check_thresholds, run_single_test
from graphql_load_test.core.load_test_scheduler import ConstantArrivalRate

# ==================== 测试配置（硬编码） ====================
THREADS = 4
POSTS = 20

# 预分配VU需大于 速率 × 平均响应时间，不足时多出的迭代被丢弃并计入 dropped
POLICY = ConstantArrivalRate(
    rate=50,
    time_unit=1,
    duration=30,
    pre_allocated_vus=100,
)

TIMEOUT = 5
T1 = 1.0
T2 = 3.0
MAX_CHECK_FAIL_RATE = 0.0

# =========================================================

async def main() -> int:
    """主函数"""
    try:
        definition = graphql_test_definition(
            url=require_env(ENDPOINT_ENV),
            policy=POLICY,
            threads=THREADS,
            posts=POSTS,
            timeout=TIMEOUT,
            name='graphql_arrival_rate',
        )
    except LoadTestError as e:
        print(f"配置错误: {e}")
        return 2

    print(f"\n{'='*80}")
    print("GraphQL 固定到达速率测试")
    print(f"{'='*80}")
    print(f"速率: {POLICY.rate}/{POLICY.time_unit}秒")
    print(f"持续时间: {POLICY.duration}秒")
    print(f"预分配VU: {POLICY.pre_allocated_vus}")
    print()

    summary = await run_single_test(definition, t1=T1, t2=T2)
    return 0 if check_thresholds(summary, MAX_CHECK_FAIL_RATE) else 1

if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\n\n测试被用户中断")
        sys.exit(130)
