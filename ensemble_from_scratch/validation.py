"""
입력 검증 유틸리티

모든 추정기의 fit/predict 앞단에서 사용하는 배열 변환과 검증 함수.

Author: Ensemble From Scratch Project
"""

import numpy as np

from .exceptions import (
    InvalidConfigurationError,
    NotFittedError,
    ShapeMismatchError,
    UnsupportedInputError,
)


def check_sample_array(X, allow_single_sample: bool = False) -> np.ndarray:
    """
    X를 (n_samples, n_features) 실수 배열로 변환

    allow_single_sample=True (예측 경로)이면 1차원 X를 샘플 하나로
    해석합니다. 학습 경로에서는 1차원 X를 거부합니다.
    """
    X = np.asarray(X, dtype=float)

    if X.ndim == 1 and allow_single_sample:
        X = X.reshape(1, -1)

    if X.ndim == 1:
        raise ShapeMismatchError(
            f"X는 (n_samples, n_features) 2차원 배열이어야 합니다: shape={X.shape}. "
            f"피처가 하나라면 X.reshape(-1, 1)을 사용하세요."
        )

    if X.ndim != 2:
        raise ShapeMismatchError(
            f"X는 2차원 배열이어야 합니다: ndim={X.ndim}"
        )

    return X


def check_target_array(y) -> np.ndarray:
    """
    단일 타겟 벡터로 변환

    (n_samples, 1) 형태는 펼쳐서 받아들이고, 열이 두 개 이상이면
    UnsupportedInputError를 발생시킵니다.
    """
    y = np.asarray(y)

    if y.ndim == 2 and y.shape[1] == 1:
        y = y.ravel()

    if y.ndim != 1:
        raise UnsupportedInputError(
            f"다중 타겟은 지원하지 않습니다: y.shape={y.shape}"
        )

    return y


def check_sample_size(X: np.ndarray, y: np.ndarray) -> None:
    if X.shape[0] != y.shape[0]:
        raise ShapeMismatchError(
            f"X와 y의 샘플 수가 일치하지 않습니다: {X.shape[0]} vs {y.shape[0]}"
        )


def check_n_features(X: np.ndarray, n_features: int) -> None:
    if X.shape[1] != n_features:
        raise ShapeMismatchError(
            f"피처 수가 학습 시와 다릅니다: {X.shape[1]} vs {n_features}"
        )


def check_is_fitted(estimator, attribute: str = 'estimators_') -> None:
    fitted = getattr(estimator, attribute, None)

    if fitted is None or (isinstance(fitted, list) and len(fitted) == 0):
        raise NotFittedError("모델이 학습되지 않았습니다. fit()을 먼저 호출하세요.")


def check_positive_int(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value < 1:
        raise InvalidConfigurationError(
            f"{name}은(는) 1 이상의 정수여야 합니다: {value!r}"
        )
    return int(value)


def check_root_seed(random_state) -> int:
    """루트 시드 검증 (None이나 전역 난수 상태는 허용하지 않음)"""
    if isinstance(random_state, bool) or not isinstance(random_state, (int, np.integer)):
        raise InvalidConfigurationError(
            f"random_state는 정수 시드여야 합니다: {random_state!r}"
        )
    if random_state < 0:
        raise InvalidConfigurationError(
            f"random_state는 음수일 수 없습니다: {random_state}"
        )
    return int(random_state)
