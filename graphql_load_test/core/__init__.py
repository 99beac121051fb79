#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
压测核心模块
提供可复用的压测功能
"""

from .load_test_errors import (
    LoadTestError,
    InvalidPolicy,
    MissingConfig,
    TransportError,
    TransportErrorKind,
    CheckEvaluationError,
)
from .load_test_scheduler import FixedPool, ConstantArrivalRate, SharedIterations, RateScheduler
from .load_test_checks import CheckSet, evaluate_checks
from .load_test_core import (
    RequestSpec,
    IterationResult,
    TestDefinition,
    LoadTestResult,
    RunSummary,
    CheckCounts,
    make_request,
    run_iteration,
    run_load_test,
)
from .load_test_config import load_config, validate_config, build_policy, require_env
from .load_test_runner import (
    run_single_test,
    run_batch_tests,
    run_sequential_tests,
    check_thresholds,
    definition_from_config,
)

__all__ = [
    'LoadTestError',
    'InvalidPolicy',
    'MissingConfig',
    'TransportError',
    'TransportErrorKind',
    'CheckEvaluationError',
    'FixedPool',
    'ConstantArrivalRate',
    'SharedIterations',
    'RateScheduler',
    'CheckSet',
    'evaluate_checks',
    'RequestSpec',
    'IterationResult',
    'TestDefinition',
    'LoadTestResult',
    'RunSummary',
    'CheckCounts',
    'make_request',
    'run_iteration',
    'run_load_test',
    'load_config',
    'validate_config',
    'build_policy',
    'require_env',
    'run_single_test',
    'run_batch_tests',
    'run_sequential_tests',
    'check_thresholds',
    'definition_from_config',
]
