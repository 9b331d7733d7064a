"""
Sampling - 시드 분배와 재표본 추출
==================================

앙상블 구성원마다 독립적인 난수열을 보장하기 위한 함수들.

1. 시드 분배 (Seed Spawning):
   - 루트 시드 하나에서 SeedSequence.spawn()으로 n개의 자식 시드 생성
   - 병렬 실행 전에 리스트로 미리 계산하므로 실행 순서와 무관하게 동일

2. 부트스트랩 (Bagging):
   - [0, n) 에서 복원 추출로 n개 인덱스 선택
   - P(샘플이 선택되지 않음) = (1 - 1/n)^n ≈ e^{-1} ≈ 0.368

3. 가중 재표본 (Boosting):
   - 역 CDF 방식: u ~ U(0, Σw), idx = searchsorted(cumsum(w), u)
   - 가중치 합이 정확히 1이 아니어도 동작

Author: Ensemble From Scratch Project
"""

import numpy as np
from typing import List

from .exceptions import InvalidConfigurationError


def spawn_seeds(root_seed: int, n: int) -> List[int]:
    """
    루트 시드로부터 n개의 독립 시드 생성

    Parameters
    ----------
    root_seed : int
        루트 시드
    n : int
        생성할 시드 수

    Returns
    -------
    seeds : list of int
        구성원 인덱스 순서의 시드 목록
    """
    children = np.random.SeedSequence(root_seed).spawn(n)
    return [int(child.generate_state(1, dtype=np.uint32)[0]) for child in children]


def bootstrap_indices(n_samples: int, rng: np.random.Generator) -> np.ndarray:
    """복원 추출로 n_samples개 인덱스 선택"""
    return rng.integers(0, n_samples, size=n_samples)


def out_of_bag_indices(n_samples: int, sample_indices: np.ndarray) -> np.ndarray:
    """부트스트랩에 한 번도 뽑히지 않은 인덱스"""
    return np.setdiff1d(np.arange(n_samples), np.unique(sample_indices))


def weighted_choice_indices(
    weights: np.ndarray,
    size: int,
    rng: np.random.Generator
) -> np.ndarray:
    """
    가중치에 비례하는 복원 추출 (역 CDF)

    Parameters
    ----------
    weights : ndarray of shape (n_samples,)
        음이 아닌 샘플 가중치
    size : int
        추출할 인덱스 수
    rng : numpy.random.Generator
        난수 생성기

    Returns
    -------
    indices : ndarray of shape (size,)
    """
    weights = np.asarray(weights, dtype=float)
    cdf = np.cumsum(weights)
    total = cdf[-1]

    if not np.isfinite(total) or total <= 0:
        raise InvalidConfigurationError(f"가중치 합이 양수가 아닙니다: {total}")

    draws = rng.random(size) * total
    indices = np.searchsorted(cdf, draws, side='right')

    # 부동소수점 오차로 끝을 넘는 경우
    return np.minimum(indices, len(weights) - 1)
