#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
配置管理模块
负责配置文件的加载、验证和合并，以及从环境变量读取被测地址
"""

import json
import logging
import os
import re
from typing import Dict, Optional, Union

from .load_test_errors import InvalidPolicy, MissingConfig
from .load_test_scheduler import (
    OVERFLOW_DROP,
    ConcurrencyPolicy,
    ConstantArrivalRate,
    FixedPool,
    SharedIterations,
    validate_policy,
)

logger = logging.getLogger("load_test")

ENDPOINT_ENV = 'GRAPHQL_ENDPOINT'

EXECUTOR_CONSTANT_VUS = 'constant-vus'
EXECUTOR_CONSTANT_ARRIVAL_RATE = 'constant-arrival-rate'
EXECUTOR_SHARED_ITERATIONS = 'shared-iterations'

EXECUTORS = (EXECUTOR_CONSTANT_VUS, EXECUTOR_CONSTANT_ARRIVAL_RATE, EXECUTOR_SHARED_ITERATIONS)

_DURATION_UNITS = {'ms': 0.001, 's': 1, 'm': 60, 'h': 3600}
_DURATION_PART = re.compile(r'(\d+(?:\.\d+)?)(ms|s|m|h)')


def load_config(config_path: str) -> Dict:
    """
    加载配置文件

    Args:
        config_path: 配置文件路径

    Returns:
        配置字典，如果文件不存在或读取失败则返回空字典
    """
    if not os.path.exists(config_path):
        return {}

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = json.load(f)
        return config
    except (OSError, ValueError) as e:
        logger.warning("无法读取配置文件 %s: %s", config_path, e)
        return {}


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    """读取环境变量，不存在时返回默认值"""
    return os.environ.get(name, default)


def require_env(name: str) -> str:
    """
    读取必需的环境变量

    Raises:
        MissingConfig: 环境变量不存在或为空
    """
    value = os.environ.get(name)
    if not value:
        raise MissingConfig(f"缺少必需的环境变量: {name}")
    return value


def parse_duration(value: Union[int, float, str]) -> float:
    """
    解析时长，返回秒数

    支持数字（秒）以及 k6 风格的字符串，如 '500ms'、'1s'、'2m'、'1h30m'
    """
    if isinstance(value, bool):
        raise InvalidPolicy(f"无法解析的时长: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip()
    try:
        return float(text)
    except ValueError:
        pass

    parts = _DURATION_PART.findall(text)
    if not parts or ''.join(n + u for n, u in parts) != text:
        raise InvalidPolicy(f"无法解析的时长: {value!r}")
    return sum(float(number) * _DURATION_UNITS[unit] for number, unit in parts)


def validate_config(config: Dict) -> bool:
    """
    验证配置完整性

    Args:
        config: 配置字典

    Returns:
        验证是否通过

    Raises:
        MissingConfig: 缺少必需参数时
        InvalidPolicy: 并发策略参数非法时
    """
    executor = config.get('executor', EXECUTOR_CONSTANT_VUS)
    if executor not in EXECUTORS:
        raise InvalidPolicy(f"未知的 executor: {executor}，可选值: {', '.join(EXECUTORS)}")

    # 必需参数检查
    if executor == EXECUTOR_CONSTANT_ARRIVAL_RATE:
        required = ('rate', 'duration', 'pre_allocated_vus')
    elif executor == EXECUTOR_SHARED_ITERATIONS:
        required = ('vus', 'iterations')
    else:
        required = ('vus', 'duration')
    for key in required:
        if config.get(key) is None:
            raise MissingConfig(f"配置缺少必需参数: {key} (executor={executor})")

    # 构建一次策略，提前暴露非法参数
    build_policy(config)
    return True


def merge_config(
    file_config: Dict,
    cli_config: Dict,
    defaults: Dict
) -> Dict:
    """
    合并配置：默认值 -> 配置文件 -> 命令行参数

    Args:
        file_config: 从配置文件读取的配置
        cli_config: 命令行参数配置
        defaults: 默认配置

    Returns:
        合并后的配置
    """
    merged = defaults.copy()
    merged.update(file_config)
    merged.update(cli_config)
    return merged


def get_default_config() -> Dict:
    """
    获取默认配置

    Returns:
        默认配置字典
    """
    return {
        'executor': EXECUTOR_CONSTANT_VUS,
        'vus': 100,
        'duration': '1s',
        'time_unit': '1s',
        'overflow': OVERFLOW_DROP,
        'max_queued': 0,
        'hard_timeout': None,
        'timeout': 5,
        't1': 1.0,
        't2': 3.0,
        'threads': 4,
        'posts': 20,
        'max_check_fail_rate': 0.0,
        'batch_mode': {
            'cooldown': 5
        }
    }


def build_policy(config: Dict) -> ConcurrencyPolicy:
    """
    根据配置构建并发策略

    Raises:
        InvalidPolicy: 参数非法时
    """
    executor = config.get('executor', EXECUTOR_CONSTANT_VUS)
    hard_timeout = config.get('hard_timeout')
    if hard_timeout is not None:
        hard_timeout = parse_duration(hard_timeout)

    try:
        if executor == EXECUTOR_CONSTANT_ARRIVAL_RATE:
            policy = ConstantArrivalRate(
                rate=config['rate'],
                time_unit=parse_duration(config.get('time_unit', 1)),
                duration=parse_duration(config['duration']),
                pre_allocated_vus=config['pre_allocated_vus'],
                overflow=config.get('overflow', OVERFLOW_DROP),
                max_queued=config.get('max_queued', 0),
                hard_timeout=hard_timeout,
            )
        elif executor == EXECUTOR_SHARED_ITERATIONS:
            policy = SharedIterations(
                vus=config['vus'],
                iterations=config['iterations'],
                max_duration=parse_duration(config.get('max_duration', '10m')),
                hard_timeout=hard_timeout,
            )
        elif executor == EXECUTOR_CONSTANT_VUS:
            policy = FixedPool(
                vus=config['vus'],
                duration=parse_duration(config['duration']),
                hard_timeout=hard_timeout,
            )
        else:
            raise InvalidPolicy(f"未知的 executor: {executor}")
    except KeyError as e:
        raise InvalidPolicy(f"配置缺少并发策略参数: {e.args[0]}") from e

    validate_policy(policy)
    return policy
