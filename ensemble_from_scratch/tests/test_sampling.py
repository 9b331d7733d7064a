"""
시드 분배, 재표본 추출, 실행 전략 검증

Author: Ensemble From Scratch Project
"""

import time

import numpy as np
import pytest

from ensemble_from_scratch import (
    InvalidConfigurationError,
    bootstrap_indices,
    spawn_seeds,
    weighted_choice_indices,
)
from ensemble_from_scratch.execution import ExecutionStrategy, resolve_execution, run_members
from ensemble_from_scratch.sampling import out_of_bag_indices


def _slow_square(i, n):
    # 뒤쪽 작업이 먼저 끝나도록
    time.sleep(0.01 * (n - i))
    return i * i


def _fail_on_two(i):
    if i == 2:
        raise ValueError("member 2 failed")
    return i


def test_spawn_seeds_deterministic():
    """같은 루트 시드는 같은 시드 목록을 만든다"""
    seeds = spawn_seeds(42, 8)

    assert seeds == spawn_seeds(42, 8)
    assert len(seeds) == 8
    assert len(set(seeds)) == 8
    assert seeds != spawn_seeds(43, 8)
    print(f"  ✓ seeds: {seeds[:3]} ...")


def test_spawn_seeds_prefix_stable():
    """구성원 i의 시드는 전체 구성원 수와 무관"""
    assert spawn_seeds(7, 3) == spawn_seeds(7, 10)[:3]


def test_bootstrap_indices_range():
    rng = np.random.default_rng(0)
    indices = bootstrap_indices(50, rng)

    assert indices.shape == (50,)
    assert indices.min() >= 0 and indices.max() < 50

    oob = out_of_bag_indices(50, indices)
    assert len(np.intersect1d(oob, indices)) == 0
    assert len(oob) + len(np.unique(indices)) == 50


def test_weighted_choice_follows_weights():
    """추출 빈도가 가중치에 비례"""
    rng = np.random.default_rng(0)
    weights = np.array([0.1, 0.2, 0.7])

    indices = weighted_choice_indices(weights, 20000, rng)
    freq = np.bincount(indices, minlength=3) / 20000

    assert np.allclose(freq, weights, atol=0.02), f"빈도 오류: {freq}"
    print(f"  ✓ 빈도: {freq.round(3)}")


def test_weighted_choice_skips_zero_weight():
    rng = np.random.default_rng(1)

    # 합이 1이 아닌 가중치도 허용
    indices = weighted_choice_indices(np.array([2.0, 0.0, 2.0]), 1000, rng)
    assert not np.any(indices == 1)

    indices = weighted_choice_indices(np.array([0.0, 0.0, 1.0]), 100, rng)
    assert np.all(indices == 2)


def test_weighted_choice_rejects_zero_mass():
    with pytest.raises(InvalidConfigurationError):
        weighted_choice_indices(np.zeros(3), 3, np.random.default_rng(0))


def test_run_members_preserves_order():
    """병렬 실행 결과도 완료 순서가 아닌 작업 순서"""
    tasks = [(i, 6) for i in range(6)]
    expected = [i * i for i in range(6)]

    assert run_members(_slow_square, tasks, 'sequential') == expected
    assert run_members(_slow_square, tasks, ExecutionStrategy.PARALLEL, n_jobs=3) == expected


def test_run_members_propagates_failure():
    tasks = [(i,) for i in range(4)]

    with pytest.raises(ValueError, match="member 2 failed"):
        run_members(_fail_on_two, tasks, 'sequential')

    with pytest.raises(ValueError):
        run_members(_fail_on_two, tasks, 'parallel', n_jobs=2)


def test_resolve_execution():
    assert resolve_execution('parallel') is ExecutionStrategy.PARALLEL
    assert resolve_execution(ExecutionStrategy.SEQUENTIAL) is ExecutionStrategy.SEQUENTIAL

    with pytest.raises(InvalidConfigurationError):
        resolve_execution('threads')
