#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
检查项模块
对每次迭代的结果执行一组命名的断言，断言失败只作为统计数据，不会抛出异常
"""

import logging
from collections import OrderedDict
from collections.abc import Mapping
from typing import Any, Callable, Dict, Iterator

from .load_test_errors import CheckEvaluationError

logger = logging.getLogger("load_test")

Predicate = Callable[[Any], bool]


class CheckSet(Mapping):
    """
    有序的检查项集合: 名称 -> 断言函数

    构建后不可修改，所有迭代共享同一个实例
    """

    def __init__(self, checks=None, **kwargs):
        items = OrderedDict()
        pairs = list(checks.items()) if isinstance(checks, Mapping) else list(checks or [])
        pairs.extend(kwargs.items())
        for name, predicate in pairs:
            if name in items:
                raise ValueError(f"检查项名称重复: {name}")
            if not callable(predicate):
                raise TypeError(f"检查项 '{name}' 不是可调用对象")
            items[name] = predicate
        self._checks = items

    def __getitem__(self, name: str) -> Predicate:
        return self._checks[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._checks)

    def __len__(self) -> int:
        return len(self._checks)

    def __repr__(self) -> str:
        return f"CheckSet({list(self._checks)})"

    def fail_all(self) -> Dict[str, bool]:
        """传输失败时使用: 所有检查项均记为未通过"""
        return {name: False for name in self._checks}


def evaluate_checks(checks: CheckSet, result) -> Dict[str, bool]:
    """
    对一次迭代结果执行全部检查项

    每个断言相互独立执行，断言内部抛出的任何异常都记为 False，
    不会影响其它断言，也不会向上抛出

    Returns:
        {检查项名称: 是否通过}
    """
    outcomes = {}
    for name, predicate in checks.items():
        try:
            outcomes[name] = bool(predicate(result))
        except Exception as e:
            logger.debug("%s", CheckEvaluationError(name, e))
            outcomes[name] = False
    return outcomes
