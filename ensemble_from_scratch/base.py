"""
앙상블 공통 부분

- WeakLearner / WeakClassifier: 앙상블이 구성원에게 요구하는 인터페이스
- BaseEnsemble: 파라미터 보관/검증, 진행 상황 출력
- align_proba: 구성원의 클래스 순서를 전체 클래스 순서로 재배열
- normalize_importances: 구성원별 중요도 벡터의 합산 및 L1 정규화
- resolve_max_features: 분할당 후보 피처 수 결정

Author: Ensemble From Scratch Project
"""

import numpy as np
from typing import Any, Dict, List, Protocol, runtime_checkable

from .exceptions import InvalidConfigurationError
from .execution import resolve_execution
from .validation import check_positive_int, check_root_seed


@runtime_checkable
class WeakLearner(Protocol):
    """
    약한 학습기 인터페이스 (회귀 앙상블의 구성원)

    fit(X, y) -> self
    predict(X) -> (n_samples,)
    feature_importances_ -> (n_features,)
    """

    feature_importances_: np.ndarray

    def fit(self, X: np.ndarray, y: np.ndarray) -> 'WeakLearner':
        ...

    def predict(self, X: np.ndarray) -> np.ndarray:
        ...


@runtime_checkable
class WeakClassifier(WeakLearner, Protocol):
    """
    분류 앙상블의 구성원 인터페이스

    WeakLearner에 더해
    predict_proba(X) -> (n_samples, len(classes_))
    classes_ -> 해당 학습기가 관측한 클래스 (정렬됨, 전체 클래스의 부분집합일 수 있음)
    """

    classes_: np.ndarray

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        ...


def align_proba(member: WeakClassifier, classes: np.ndarray, X: np.ndarray) -> np.ndarray:
    """
    구성원의 predict_proba를 전체 클래스 순서로 재배열

    구성원이 관측하지 못한 클래스의 열은 0이 됩니다.

    Returns
    -------
    proba : ndarray of shape (n_samples, len(classes))
    """
    member_proba = member.predict_proba(X)
    proba = np.zeros((member_proba.shape[0], len(classes)))
    columns = np.searchsorted(classes, member.classes_)
    proba[:, columns] = member_proba
    return proba


def normalize_importances(importances: List[np.ndarray], n_features: int) -> np.ndarray:
    """
    구성원 중요도의 합을 L1 정규화

    합이 0이면 (분할이 하나도 없는 경우) 균등 분포를 반환합니다.
    """
    total = np.zeros(n_features)
    for importance in importances:
        total += importance

    mass = np.sum(total)
    if mass > 0:
        return total / mass

    return np.full(n_features, 1.0 / n_features)


def resolve_max_features(max_features, n_features: int, default: int) -> int:
    """
    max_features를 [1, n_features] 범위의 정수로 결정

    범위를 벗어난 정수/비율은 오류 없이 경계값으로 보정합니다.
    - None: default
    - 'sqrt', 'log2': 해당 함수값의 정수부
    - float: n_features에 대한 비율
    - int: 그대로
    """
    if max_features is None:
        value = default
    elif isinstance(max_features, str):
        if max_features == 'sqrt':
            value = int(np.sqrt(n_features))
        elif max_features == 'log2':
            value = int(np.log2(n_features))
        else:
            raise InvalidConfigurationError(f"Unknown max_features: {max_features!r}")
    elif isinstance(max_features, float):
        value = int(max_features * n_features)
    elif isinstance(max_features, (int, np.integer)) and not isinstance(max_features, bool):
        value = int(max_features)
    else:
        raise InvalidConfigurationError(f"Unknown max_features: {max_features!r}")

    return min(max(1, value), n_features)


class BaseEnsemble:
    """파라미터 관리와 공통 검증"""

    _param_names: tuple = ()

    def get_params(self) -> Dict[str, Any]:
        """생성자 파라미터를 딕셔너리로 반환"""
        return {name: getattr(self, name) for name in self._param_names}

    def _validate_params(self) -> int:
        """공통 파라미터 검증 후 루트 시드 반환"""
        check_positive_int(self.n_estimators, 'n_estimators')
        if hasattr(self, 'execution'):
            resolve_execution(self.execution)
        return check_root_seed(self.random_state)

    def _log_progress(self, m: int, total: int, message: str) -> None:
        if self.verbose > 0 and (m + 1) % max(1, total // 10) == 0:
            print(f"{message} {m + 1}/{total} 완료")


def r2_score(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """결정계수 R² = 1 - SS_res / SS_tot"""
    ss_res = np.sum((y_true - y_pred) ** 2)
    ss_tot = np.sum((y_true - np.mean(y_true)) ** 2)
    return float(1 - ss_res / ss_tot) if ss_tot > 0 else 0.0
