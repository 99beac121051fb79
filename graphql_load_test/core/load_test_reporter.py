#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
报告生成器
负责单次测试报告和批量测试汇总报告的文本生成
"""

from typing import Dict, List, Optional
from datetime import datetime

from .load_test_core import RunSummary

MAX_ERRORS_SHOWN = 50


def generate_report_text(summary: RunSummary, test_config: Optional[Dict] = None) -> str:
    """
    生成测试报告文本

    所有迭代都失败、甚至没有完成任何请求时也会生成完整报告
    """
    lines = []

    lines.append("="*80)
    lines.append("压测报告")
    lines.append("="*80)
    lines.append(f"测试时间: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    if test_config:
        lines.append(f"\n【测试配置】")
        for key, value in test_config.items():
            lines.append(f"  {key}: {value}")

    lines.append(f"\n【检查项统计】")
    if summary.checks:
        for name, counts in summary.checks.items():
            mark = "✓" if counts.fails == 0 else "✗"
            lines.append(
                f"  {mark} {name}: 通过 {counts.passes} / 失败 {counts.fails} ({counts.pass_rate:.2f}%)"
            )
        lines.append(f"  检查项失败率: {summary.check_fail_rate * 100:.2f}%")
    else:
        lines.append("  无检查项结果")

    lines.append(f"\n【迭代统计】")
    lines.append(f"  启动迭代数: {summary.started_iterations}")
    lines.append(f"  完成迭代数: {summary.iterations}")
    lines.append(f"  丢弃迭代数: {summary.dropped_iterations}")
    lines.append(f"  中断迭代数: {summary.interrupted_iterations}")

    t1 = summary.t1
    t2 = summary.t2
    lines.append(f"\n【请求统计】（三档分类）")
    lines.append(f"  总请求数: {summary.total_requests}")
    lines.append(f"  快速请求 (fast): {summary.fast_count} (响应时间 < {t1:.1f}秒) - {summary.fast_rate:.2f}%")
    lines.append(f"  慢速请求 (slow): {summary.slow_count} ({t1:.1f}秒 ≤ 响应时间 ≤ {t2:.1f}秒) - {summary.slow_rate:.2f}%")
    lines.append(f"  坏请求 (bad): {summary.bad_count} (响应时间 > {t2:.1f}秒 或超时/失败) - {summary.bad_rate:.2f}%")

    if summary.duration:
        lines.append(f"\n【性能统计】")
        lines.append(f"  测试时长: {summary.duration:.2f} 秒")
        lines.append(f"  QPS: {summary.qps:.2f}")

    rt = summary.response_time
    if rt:
        lines.append(f"\n【响应时间统计】(单位: 秒)")
        lines.append(f"  最小值: {rt['min']:.3f}s")
        lines.append(f"  最大值: {rt['max']:.3f}s")
        lines.append(f"  平均值: {rt['mean']:.3f}s")
        lines.append(f"  中位数: {rt['median']:.3f}s")
        lines.append(f"  P50: {rt['p50']:.3f}s")
        lines.append(f"  P90: {rt['p90']:.3f}s")
        lines.append(f"  P95: {rt['p95']:.3f}s")
        lines.append(f"  P99: {rt['p99']:.3f}s")

    if summary.status_codes:
        lines.append(f"\n【HTTP状态码统计】")
        for code, count in sorted(summary.status_codes.items()):
            lines.append(f"  {code}: {count}")

    if summary.errors:
        lines.append(f"\n【错误信息】(前{MAX_ERRORS_SHOWN}条)")
        for error in summary.errors[:MAX_ERRORS_SHOWN]:
            lines.append(f"  {error}")
        if len(summary.errors) > MAX_ERRORS_SHOWN:
            lines.append(f"  ... 还有 {len(summary.errors) - MAX_ERRORS_SHOWN} 条错误")

    lines.append("="*80)

    return "\n".join(lines)


def generate_summary_report(
    batch_results: List[Dict],
    base_config: Dict
) -> str:
    """
    生成批量测试汇总报告

    Args:
        batch_results: 批量测试结果列表，每项包含 name、summary
        base_config: 基础配置

    Returns:
        汇总报告文本
    """
    lines = []

    lines.append("="*80)
    lines.append("批量压测汇总报告")
    lines.append("="*80)
    lines.append(f"测试时间: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    lines.append(f"\n【测试配置】")
    lines.append(f"  URL: {base_config.get('url', 'N/A')}")
    lines.append(f"  测试名称: {[r['name'] for r in batch_results]}")
    if base_config.get('timeout'):
        lines.append(f"  固定参数: timeout={base_config['timeout']}秒")

    lines.append(f"\n【性能对比表】")
    header = f"{'测试':>24} | {'迭代':>8} | {'丢弃':>6} | {'检查失败率':>10} | {'Bad率':>8} | {'QPS':>10} | {'平均响应时间':>14} | {'P95响应时间':>14}"
    lines.append(header)
    lines.append("-" * len(header))

    for result in batch_results:
        summary: RunSummary = result['summary']
        avg_rt = summary.response_time.get('mean', 0)
        p95_rt = summary.response_time.get('p95', 0)
        row = (
            f"{result['name']:>24} | {summary.iterations:>8} | {summary.dropped_iterations:>6} | "
            f"{summary.check_fail_rate * 100:>9.2f}% | {summary.bad_rate:>7.2f}% | {summary.qps:>10.2f} | "
            f"{avg_rt:>13.3f}s | {p95_rt:>13.3f}s"
        )
        lines.append(row)

    if batch_results:
        lines.append(f"\n【性能趋势分析】")
        max_qps_result = max(batch_results, key=lambda r: r['summary'].qps)
        lines.append(f"- QPS峰值: {max_qps_result['summary'].qps:.2f} ({max_qps_result['name']})")

        clean_results = [r for r in batch_results if r['summary'].check_fails == 0]
        if clean_results:
            best_result = max(clean_results, key=lambda r: r['summary'].qps)
            lines.append(f"- 检查项全部通过的最高QPS: {best_result['summary'].qps:.2f} ({best_result['name']})")

    lines.append("="*80)

    return "\n".join(lines)
