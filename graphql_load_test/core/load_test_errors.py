#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
异常定义模块

- InvalidPolicy / MissingConfig: 启动阶段的致命错误，任何请求发出前即中止
- TransportError: 单次迭代的传输层失败，只作为数据记录，不会中止压测
- CheckEvaluationError: 检查项自身执行出错，记为未通过
"""

from enum import Enum


class LoadTestError(Exception):
    """压测工具异常基类"""


class InvalidPolicy(LoadTestError, ValueError):
    """并发策略参数非法（速率、时长、并发数 <= 0 等）"""


class MissingConfig(LoadTestError, ValueError):
    """缺少必需配置（如未设置 GRAPHQL_ENDPOINT 环境变量）"""


class TransportErrorKind(str, Enum):
    TIMEOUT = "Timeout"
    CONNECTION_FAILED = "ConnectionFailed"
    DECODE_ERROR = "DecodeError"


class TransportError(LoadTestError):
    """
    传输层错误

    由执行器构造并放入 IterationResult.error 返回，而不是抛出
    """

    def __init__(self, kind: TransportErrorKind, message: str = ""):
        super().__init__(f"{kind.value}: {message}" if message else kind.value)
        self.kind = kind
        self.message = message


class CheckEvaluationError(LoadTestError):
    """检查项执行时抛出异常"""

    def __init__(self, check_name: str, cause: BaseException):
        super().__init__(f"检查项 '{check_name}' 执行失败: {cause!r}")
        self.check_name = check_name
        self.cause = cause
