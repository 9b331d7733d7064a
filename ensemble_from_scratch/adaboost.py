"""
AdaBoost - From Scratch Implementation
======================================

분류: SAMME.R (Zhu et al., "Multi-class AdaBoost", 2005)
회귀: AdaBoost.R2 (Drucker 1997)

수학적 배경 (SAMME.R):
---------------------
K개 클래스에 대한 코드 행렬:
    code[i, k] = 1           (k = y_i)
               = -1/(K-1)    (그 외)

1. 초기화: w_i = 1/n (균등 가중치)

2. 각 라운드:
   a. w에 비례하는 복원 추출로 n개 샘플 재표본
      (재표본에 K개 클래스가 모두 없으면 종료)
   b. 재표본으로 트리 h_m 학습
   c. 전체 학습 데이터에 대한 확률 p = clip(h_m(x), 1e-15)
   d. 가중 오차:
      err = Σ w_i * [argmax p_i ≠ y_i] / Σ w_i
      err = 0 이면 종료 (더 이상의 라운드가 필요 없음)
   e. 가중치 업데이트:
      w_i *= exp(-((K-1)/K) * Σ_k code[i,k] * log p[i,k])
      w = clip(w, 1e-15), 합이 0이면 종료, 아니면 w / Σw

3. 결정 함수 (구성원 평균):
   f_k(x) = (1/M) Σ_m (K-1) * (log p_mk(x) - (1/K) Σ_j log p_mj(x))

4. 확률:
   P(k|x) ∝ exp(f_k(x) / (K-1))

상태 전이:
    ACCUMULATING → CONVERGED   (err = 0)
                 → DEGENERATE  (가중치 합 붕괴)
                 → EXHAUSTED   (라운드 소진 또는 재표본에 클래스 누락)

Author: Ensemble From Scratch Project
"""

import numpy as np
from enum import Enum
from typing import Optional, List, Dict, Any

from .base import (
    BaseEnsemble,
    align_proba,
    normalize_importances,
    r2_score,
    resolve_max_features,
)
from .decision_tree import DecisionTreeClassifier, DecisionTreeRegressor
from .exceptions import InvalidConfigurationError, UnsupportedInputError
from .sampling import spawn_seeds, weighted_choice_indices
from .validation import (
    check_is_fitted,
    check_sample_array,
    check_sample_size,
    check_target_array,
)

PROBA_FLOOR = 1e-15
WEIGHT_FLOOR = 1e-15


class BoostingState(Enum):
    ACCUMULATING = 'accumulating'
    CONVERGED = 'converged'
    DEGENERATE = 'degenerate'
    EXHAUSTED = 'exhausted'


def _covers_all_classes(sample_codes: np.ndarray, n_classes: int) -> bool:
    return len(np.unique(sample_codes)) == n_classes


def _weight_entropy(weights: np.ndarray) -> float:
    return float(-np.sum(weights * np.log(weights + 1e-10)))


def _round_record(m: int, error: float, weights: np.ndarray) -> Dict:
    """SAMME.R 라운드 하나의 training_history_ 항목"""
    return {
        'iteration': m + 1,
        'error': error,
        'weight_sum': float(np.sum(weights)),
        'max_weight': float(np.max(weights)),
        'min_weight': float(np.min(weights)),
        'weight_entropy': _weight_entropy(weights)
    }


class AdaBoostClassifier(BaseEnsemble):
    """
    AdaBoost SAMME.R 분류 모델 (From Scratch)

    Parameters
    ----------
    n_estimators : int, default=50
        최대 부스팅 라운드 수

    criterion : str, default='gini'
        트리 분할 기준 ('gini' 또는 'entropy')

    max_depth : int, default=3
        기본 학습기(트리)의 최대 깊이

    max_leaf_nodes : int, default=None
        기본 학습기의 리프 노드 수 상한. None이면 제한 없음

    min_samples_split : int, default=2
        내부 노드를 분할하기 위한 최소 샘플 수

    min_samples_leaf : int, default=1
        리프 노드에 있어야 하는 최소 샘플 수

    max_features : int or float or str, default=None
        각 분할에서 고려할 피처 수. None이면 모든 피처

    random_state : int, default=0
        루트 시드. 라운드별 시드는 여기서 분배됨

    verbose : int, default=0
        출력 수준

    Attributes
    ----------
    estimators_ : list of DecisionTreeClassifier
        학습된 트리들

    classes_ : ndarray
        정렬된 고유 클래스 레이블

    feature_importances_ : ndarray of shape (n_features,)
        피처 중요도 (합이 1)

    estimator_errors_ : ndarray
        각 학습기의 가중 분류 오차

    observation_weights_ : ndarray of shape (n_samples,)
        학습 종료 시점의 샘플 가중치

    termination_ : BoostingState
        학습 종료 상태

    Examples
    --------
    >>> from ensemble_from_scratch import AdaBoostClassifier
    >>> import numpy as np
    >>> X = np.array([[0.0, 1.0], [1.0, 0.0], [10.0, 1.0], [11.0, 0.0]] * 5)
    >>> y = np.array([0, 0, 1, 1] * 5)
    >>> ada = AdaBoostClassifier(n_estimators=10, max_depth=1, random_state=3).fit(X, y)
    >>> len(ada.estimators_), ada.termination_.value
    (1, 'converged')
    """

    _param_names = (
        'n_estimators', 'criterion', 'max_depth', 'max_leaf_nodes', 'min_samples_split',
        'min_samples_leaf', 'max_features', 'random_state', 'verbose'
    )

    def __init__(
        self,
        n_estimators: int = 50,
        criterion: str = 'gini',
        max_depth: Optional[int] = 3,
        max_leaf_nodes: Optional[int] = None,
        min_samples_split: int = 2,
        min_samples_leaf: int = 1,
        max_features: Any = None,
        random_state: int = 0,
        verbose: int = 0
    ):
        self.n_estimators = n_estimators
        self.criterion = criterion
        self.max_depth = max_depth
        self.max_leaf_nodes = max_leaf_nodes
        self.min_samples_split = min_samples_split
        self.min_samples_leaf = min_samples_leaf
        self.max_features = max_features
        self.random_state = random_state
        self.verbose = verbose

        # 학습 후 설정되는 속성들
        self.estimators_: List[DecisionTreeClassifier] = []
        self.classes_: Optional[np.ndarray] = None
        self.feature_importances_: Optional[np.ndarray] = None
        self.estimator_errors_: Optional[np.ndarray] = None
        self.observation_weights_: Optional[np.ndarray] = None
        self.termination_: Optional[BoostingState] = None
        self.n_features_: int = 0

        # 학습 과정 기록 (시각화용)
        self.training_history_: List[Dict] = []

    @staticmethod
    def _class_codes(y_idx: np.ndarray, n_classes: int) -> np.ndarray:
        """SAMME.R 코드 행렬 (n_samples, n_classes)"""
        codes = np.full((len(y_idx), n_classes), -1.0 / (n_classes - 1))
        codes[np.arange(len(y_idx)), y_idx] = 1.0
        return codes

    def fit(self, X: np.ndarray, y: np.ndarray) -> 'AdaBoostClassifier':
        """
        SAMME.R 모델 학습

        학습된 속성은 부스팅 루프가 끝난 뒤 한 번에 교체됩니다.
        라운드 도중 예외가 나면 이전 학습 상태가 그대로 남습니다.

        Parameters
        ----------
        X : ndarray of shape (n_samples, n_features)
            학습 데이터
        y : ndarray of shape (n_samples,)
            클래스 레이블 (다중 타겟 불가)

        Returns
        -------
        self : AdaBoostClassifier
            학습된 모델
        """
        X = check_sample_array(X)
        y = check_target_array(y)
        check_sample_size(X, y)
        root_seed = self._validate_params()

        if self.criterion not in DecisionTreeClassifier.criteria:
            raise InvalidConfigurationError(f"Unknown criterion: {self.criterion!r}")

        n_samples, n_features = X.shape
        max_features = resolve_max_features(self.max_features, n_features, n_features)

        classes = np.unique(y)
        n_classes = len(classes)
        if n_classes < 2:
            raise UnsupportedInputError(
                f"SAMME.R은 2개 이상의 클래스가 필요합니다: {classes}"
            )

        y_idx = np.searchsorted(classes, y)
        y_codes = self._class_codes(y_idx, n_classes)
        seeds = spawn_seeds(root_seed, self.n_estimators)

        # 1. 초기화: 균등 가중치
        weights = np.full(n_samples, 1.0 / n_samples)

        estimators = []
        importances = []
        errors = []
        history = []

        state = BoostingState.ACCUMULATING
        m = 0

        while state is BoostingState.ACCUMULATING:
            if m == self.n_estimators:
                state = BoostingState.EXHAUSTED
                continue

            rng = np.random.default_rng(seeds[m])

            # 2a. 가중치 비례 재표본
            ids = weighted_choice_indices(weights, n_samples, rng)
            if not _covers_all_classes(y_idx[ids], n_classes):
                state = BoostingState.EXHAUSTED
                continue

            # 2b. 학습기 학습
            tree = DecisionTreeClassifier(
                criterion=self.criterion,
                max_depth=self.max_depth,
                max_leaf_nodes=self.max_leaf_nodes,
                min_samples_split=self.min_samples_split,
                min_samples_leaf=self.min_samples_leaf,
                max_features=max_features,
                random_state=int(rng.integers(0, 2**31))
            )
            tree.fit(X[ids], y[ids])

            # 2c, 2d. 전체 데이터에 대한 확률과 가중 오차
            proba = np.clip(align_proba(tree, classes, X), PROBA_FLOOR, None)
            misclassified = np.argmax(proba, axis=1) != y_idx
            error = float(np.sum(weights * misclassified) / np.sum(weights))

            estimators.append(tree)
            importances.append(tree.feature_importances_)
            errors.append(error)

            if error == 0.0:
                state = BoostingState.CONVERGED
                history.append(_round_record(m, error, weights))
                continue

            # 2e. 가중치 업데이트 (clip 후 정규화)
            exponent = -((n_classes - 1) / n_classes) * np.sum(y_codes * np.log(proba), axis=1)
            weights = np.clip(weights * np.exp(exponent), WEIGHT_FLOOR, None)
            weight_sum = np.sum(weights)

            if weight_sum == 0.0:
                state = BoostingState.DEGENERATE
                history.append(_round_record(m, error, weights))
                continue

            weights = weights / weight_sum
            history.append(_round_record(m, error, weights))
            self._log_progress(m, self.n_estimators, "부스팅 라운드")
            m += 1

        if self.verbose > 0:
            print(f"SAMME.R 학습 종료: {state.value}, 학습기 {len(estimators)}개")

        # 여기부터 학습 상태 교체
        self.classes_ = classes
        self.n_features_ = n_features
        self.estimators_ = estimators
        self.estimator_errors_ = np.array(errors)
        self.observation_weights_ = weights
        self.termination_ = state
        self.feature_importances_ = normalize_importances(importances, n_features)
        self.training_history_ = history

        return self

    def _member_scores(self, tree: DecisionTreeClassifier, X: np.ndarray) -> np.ndarray:
        """구성원 하나의 SAMME.R 점수 (K-1) * (log p - mean_k log p)"""
        n_classes = len(self.classes_)
        log_proba = np.log(np.clip(align_proba(tree, self.classes_, X), PROBA_FLOOR, None))
        return (n_classes - 1) * (log_proba - log_proba.mean(axis=1, keepdims=True))

    def decision_function(self, X: np.ndarray) -> np.ndarray:
        """
        클래스별 신뢰도 점수

        Returns
        -------
        scores : ndarray of shape (n_samples, n_classes)
        """
        check_is_fitted(self)
        X = check_sample_array(X, allow_single_sample=True)

        total = np.zeros((X.shape[0], len(self.classes_)))
        for tree in self.estimators_:
            total += self._member_scores(tree, X)

        return total / len(self.estimators_)

    def predict(self, X: np.ndarray) -> np.ndarray:
        """
        예측 수행

        Returns
        -------
        y_pred : ndarray of shape (n_samples,)
            결정 함수가 최대인 클래스
        """
        return self.classes_[np.argmax(self.decision_function(X), axis=1)]

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """
        클래스 확률 exp(f / (K-1))를 행 단위로 정규화

        Returns
        -------
        proba : ndarray of shape (n_samples, n_classes)
        """
        n_classes = len(self.classes_)
        proba = np.exp(self.decision_function(X) / (n_classes - 1))
        return proba / proba.sum(axis=1, keepdims=True)

    def staged_decision_function(self, X: np.ndarray) -> np.ndarray:
        """
        각 학습기 추가 후의 결정 함수 (수렴 분석용)

        Returns
        -------
        scores : ndarray of shape (n_estimators, n_samples, n_classes)
        """
        check_is_fitted(self)
        X = check_sample_array(X, allow_single_sample=True)

        scores = np.array([self._member_scores(tree, X) for tree in self.estimators_])
        counts = np.arange(1, len(scores) + 1)[:, None, None]
        return np.cumsum(scores, axis=0) / counts

    def staged_predict(self, X: np.ndarray) -> np.ndarray:
        """
        각 학습기 추가 후의 예측

        Returns
        -------
        predictions : ndarray of shape (n_estimators, n_samples)
        """
        return self.classes_[np.argmax(self.staged_decision_function(X), axis=2)]

    def score(self, X: np.ndarray, y: np.ndarray) -> float:
        """평균 정확도"""
        y = check_target_array(y)
        return float(np.mean(self.predict(X) == y))

    def __repr__(self) -> str:
        if len(self.estimators_) == 0:
            return "AdaBoostClassifier(not fitted)"

        return (
            f"AdaBoostClassifier("
            f"n_estimators={len(self.estimators_)}, "
            f"n_classes={len(self.classes_)}, "
            f"termination='{self.termination_.value}')"
        )


class AdaBoostRegressor(BaseEnsemble):
    """
    AdaBoost.R2 회귀 모델 (From Scratch)

    알고리즘:
    1. 초기화: w_i = 1/n
    2. for m = 1 to M:
       a. w에 비례하는 재표본으로 학습기 h_m 학습
       b. L_i = loss(|y_i - h_m(x_i)| / D), D = max_i |y_i - h_m(x_i)|
       c. L_avg = Σ w_i * L_i
          L_avg >= 0.5 이면 종료 (DEGENERATE), L_avg = 0 이면 종료 (CONVERGED)
       d. β_m = (L_avg / (1 - L_avg)) ^ learning_rate
       e. w_i = w_i * β_m^(1 - L_i), w = w / Σw
    3. 최종 예측: log(1/β_m) 가중 중앙값

    Parameters
    ----------
    n_estimators : int, default=50
        최대 부스팅 라운드 수

    learning_rate : float, default=1.0
        학습률 (β를 조절). 작은 값은 더 보수적인 부스팅

    max_depth : int, default=3
        기본 학습기(트리)의 최대 깊이

    max_leaf_nodes : int, default=None
        기본 학습기의 리프 노드 수 상한. None이면 제한 없음

    min_samples_split : int, default=2
        내부 노드를 분할하기 위한 최소 샘플 수

    min_samples_leaf : int, default=1
        리프 노드에 있어야 하는 최소 샘플 수

    max_features : int or float or str, default=None
        각 분할에서 고려할 피처 수. None이면 모든 피처

    loss : str, default='linear'
        손실 함수 종류
        - 'linear': L_i = |e_i| / D
        - 'square': L_i = (e_i / D)²
        - 'exponential': L_i = 1 - exp(-|e_i| / D)

    random_state : int, default=0
        루트 시드

    verbose : int, default=0
        출력 수준

    Attributes
    ----------
    estimators_ : list of DecisionTreeRegressor
        학습된 트리들

    estimator_weights_ : ndarray
        각 학습기의 가중치 log(1/β_m)

    estimator_errors_ : ndarray
        각 학습기의 가중 평균 손실

    feature_importances_ : ndarray
        피처 중요도 (학습기 가중치로 가중 평균, 합이 1)

    termination_ : BoostingState
        학습 종료 상태
    """

    _param_names = (
        'n_estimators', 'learning_rate', 'max_depth', 'max_leaf_nodes', 'min_samples_split',
        'min_samples_leaf', 'max_features', 'loss', 'random_state', 'verbose'
    )

    def __init__(
        self,
        n_estimators: int = 50,
        learning_rate: float = 1.0,
        max_depth: Optional[int] = 3,
        max_leaf_nodes: Optional[int] = None,
        min_samples_split: int = 2,
        min_samples_leaf: int = 1,
        max_features: Any = None,
        loss: str = 'linear',
        random_state: int = 0,
        verbose: int = 0
    ):
        self.n_estimators = n_estimators
        self.learning_rate = learning_rate
        self.max_depth = max_depth
        self.max_leaf_nodes = max_leaf_nodes
        self.min_samples_split = min_samples_split
        self.min_samples_leaf = min_samples_leaf
        self.max_features = max_features
        self.loss = loss
        self.random_state = random_state
        self.verbose = verbose

        # 학습 후 설정되는 속성들
        self.estimators_: List[DecisionTreeRegressor] = []
        self.estimator_weights_: Optional[np.ndarray] = None
        self.estimator_errors_: Optional[np.ndarray] = None
        self.feature_importances_: Optional[np.ndarray] = None
        self.termination_: Optional[BoostingState] = None
        self.n_features_: int = 0

        # 학습 과정 기록 (시각화용)
        self.training_history_: List[Dict] = []

    def _calculate_loss(
        self,
        y_true: np.ndarray,
        y_pred: np.ndarray
    ) -> np.ndarray:
        """
        각 샘플의 손실 계산

        Returns
        -------
        loss : ndarray
            각 샘플의 정규화된 손실 (0 ~ 1)
        """
        errors = np.abs(y_true - y_pred)

        # 정규화 상수 (최대 오차)
        D = np.max(errors)

        if D == 0:
            return np.zeros_like(errors)

        normalized_errors = errors / D

        if self.loss == 'linear':
            return normalized_errors
        elif self.loss == 'square':
            return normalized_errors ** 2
        return 1 - np.exp(-normalized_errors)

    @staticmethod
    def _weighted_median(predictions: np.ndarray, weights: np.ndarray) -> np.ndarray:
        """
        샘플별 가중 중앙값

        predictions : (n_estimators, n_samples)
        누적 가중치가 전체의 50%에 처음 도달하는 위치의 값
        """
        order = np.argsort(predictions, axis=0)
        sorted_predictions = np.take_along_axis(predictions, order, axis=0)
        cumulative = np.cumsum(weights[order], axis=0)

        median_pos = np.argmax(cumulative >= 0.5 * cumulative[-1], axis=0)
        return sorted_predictions[median_pos, np.arange(predictions.shape[1])]

    def fit(self, X: np.ndarray, y: np.ndarray) -> 'AdaBoostRegressor':
        """
        AdaBoost.R2 모델 학습

        Parameters
        ----------
        X : ndarray of shape (n_samples, n_features)
            학습 데이터
        y : ndarray of shape (n_samples,)
            타겟 값 (다중 타겟 불가)

        Returns
        -------
        self : AdaBoostRegressor
            학습된 모델
        """
        X = check_sample_array(X)
        y = check_target_array(y).astype(float)
        check_sample_size(X, y)
        root_seed = self._validate_params()

        if self.loss not in ('linear', 'square', 'exponential'):
            raise InvalidConfigurationError(f"Unknown loss: {self.loss!r}")

        n_samples, n_features = X.shape
        max_features = resolve_max_features(self.max_features, n_features, n_features)
        seeds = spawn_seeds(root_seed, self.n_estimators)

        # 1. 초기화: 균등 가중치
        sample_weights = np.full(n_samples, 1.0 / n_samples)

        estimators = []
        estimator_weights = []
        estimator_errors = []
        history = []

        state = BoostingState.ACCUMULATING
        m = 0

        while state is BoostingState.ACCUMULATING:
            if m == self.n_estimators:
                state = BoostingState.EXHAUSTED
                continue

            rng = np.random.default_rng(seeds[m])

            # 2a. 가중치 비례 재표본으로 학습
            ids = weighted_choice_indices(sample_weights, n_samples, rng)
            tree = DecisionTreeRegressor(
                max_depth=self.max_depth,
                max_leaf_nodes=self.max_leaf_nodes,
                min_samples_split=self.min_samples_split,
                min_samples_leaf=self.min_samples_leaf,
                max_features=max_features,
                random_state=int(rng.integers(0, 2**31))
            )
            tree.fit(X[ids], y[ids])

            # 2b, 2c. 손실
            y_pred = tree.predict(X)
            sample_losses = self._calculate_loss(y, y_pred)
            avg_loss = float(np.sum(sample_weights * sample_losses))

            if avg_loss >= 0.5:
                # 첫 번째 학습기도 실패하면 하나는 남김
                if not estimators:
                    estimators.append(tree)
                    estimator_weights.append(1.0)
                    estimator_errors.append(avg_loss)
                state = BoostingState.DEGENERATE
                continue

            estimators.append(tree)
            estimator_errors.append(avg_loss)

            if avg_loss <= 0.0:
                estimator_weights.append(1.0)
                state = BoostingState.CONVERGED
                continue

            # 2d. β 계산 (learning_rate 적용)
            beta = (avg_loss / (1 - avg_loss)) ** self.learning_rate
            estimator_weights.append(float(np.log(1 / beta)))

            # 2e. 샘플 가중치 업데이트 및 정규화
            sample_weights = sample_weights * (beta ** (1 - sample_losses))
            sample_weights = sample_weights / np.sum(sample_weights)

            mse = np.mean((y - y_pred) ** 2)
            history.append({
                'iteration': m + 1,
                'avg_loss': avg_loss,
                'beta': beta,
                'estimator_weight': estimator_weights[-1],
                'mse': mse,
                'rmse': np.sqrt(mse),
                'weight_entropy': _weight_entropy(sample_weights),
                'max_weight': np.max(sample_weights),
                'min_weight': np.min(sample_weights)
            })
            self._log_progress(m, self.n_estimators, "부스팅 라운드")
            m += 1

        if self.verbose > 0:
            print(f"AdaBoost.R2 학습 종료: {state.value}, 학습기 {len(estimators)}개")

        # 여기부터 학습 상태 교체
        self.n_features_ = n_features
        self.estimators_ = estimators
        self.estimator_weights_ = np.array(estimator_weights)
        self.estimator_errors_ = np.array(estimator_errors)
        self.termination_ = state
        self.feature_importances_ = normalize_importances(
            [w * tree.feature_importances_ for tree, w in zip(estimators, estimator_weights)],
            n_features
        )

        return self

    def _member_predictions(self, X: np.ndarray) -> np.ndarray:
        check_is_fitted(self)
        X = check_sample_array(X, allow_single_sample=True)
        return np.array([tree.predict(X) for tree in self.estimators_])

    def predict(self, X: np.ndarray) -> np.ndarray:
        """
        예측 수행 (가중 중앙값)

        Returns
        -------
        y_pred : ndarray of shape (n_samples,)
            예측값
        """
        return self._weighted_median(self._member_predictions(X), self.estimator_weights_)

    def staged_predict(self, X: np.ndarray) -> np.ndarray:
        """
        각 부스팅 라운드별 예측 반환 (시각화용)

        Returns
        -------
        predictions : ndarray of shape (n_estimators, n_samples)
            각 라운드까지의 가중 중앙값
        """
        predictions = self._member_predictions(X)

        return np.array([
            self._weighted_median(predictions[:m + 1], self.estimator_weights_[:m + 1])
            for m in range(len(predictions))
        ])

    def score(self, X: np.ndarray, y: np.ndarray) -> float:
        """결정계수 R²"""
        y = check_target_array(y).astype(float)
        return r2_score(y, self.predict(X))

    def __repr__(self) -> str:
        if len(self.estimators_) == 0:
            return "AdaBoostRegressor(not fitted)"

        return (
            f"AdaBoostRegressor("
            f"n_estimators={len(self.estimators_)}, "
            f"learning_rate={self.learning_rate}, "
            f"loss='{self.loss}')"
        )
