"""
Random Forest - From Scratch Implementation
===========================================

배깅(Bootstrap Aggregating) + 랜덤 피처 선택을 결합한 앙상블 방법

수학적 배경:
-----------
1. 배깅 (Bootstrap Aggregating):
   - 원본 데이터에서 복원 추출로 n개의 부트스트랩 샘플 생성
   - 각 샘플로 독립적인 트리 학습
   - 분산 감소: Var(평균) = Var(개별) / n (독립인 경우)

2. 랜덤 피처 선택:
   - 각 분할에서 max_features개의 피처만 고려
   - 분류 기본값: floor(sqrt(n_features)), [1, n_features]로 보정
   - 트리 간 상관관계 감소 → 앙상블 효과 증대

3. Out-of-Bag (OOB) 오차:
   - 각 트리 학습에 사용되지 않은 샘플(~37%)로 오차 추정
   P(샘플이 선택되지 않음) = (1 - 1/n)^n ≈ e^{-1} ≈ 0.368

4. 최종 예측:
   - 분류: 다수결 투표. 동률이면 해당 샘플에서 트리 순서상
     먼저 나타난 레이블을 선택 (레이블 값과 무관)
   - 분류 확률: 트리별 확률을 전체 클래스 순서로 맞춘 뒤 평균
     (트리가 보지 못한 클래스의 확률은 0)
   - 회귀: ŷ = (1/M) * Σ h_m(x)

5. 재현성:
   - 루트 시드에서 트리별 시드를 미리 분배하므로
     순차/병렬 실행 결과가 동일

Author: Ensemble From Scratch Project
"""

import numpy as np
from typing import Optional, List, Dict, Tuple, Any

from .base import (
    BaseEnsemble,
    align_proba,
    normalize_importances,
    r2_score,
    resolve_max_features,
)
from .decision_tree import DecisionTreeClassifier, DecisionTreeRegressor
from .exceptions import InvalidConfigurationError
from .execution import run_members
from .sampling import bootstrap_indices, out_of_bag_indices, spawn_seeds
from .validation import (
    check_is_fitted,
    check_sample_array,
    check_sample_size,
    check_target_array,
)


def _fit_member(tree_class, tree_params, X, y, seed):
    """트리 하나를 부트스트랩 샘플로 학습 (joblib 작업 단위)"""
    rng = np.random.default_rng(seed)
    sample_indices = bootstrap_indices(X.shape[0], rng)

    tree = tree_class(**tree_params, random_state=int(rng.integers(0, 2**31)))
    tree.fit(X[sample_indices], y[sample_indices])

    return tree, sample_indices, tree.feature_importances_


def _predict_member(tree, X):
    return tree.predict(X)


def _predict_proba_member(tree, classes, X):
    return align_proba(tree, classes, X)


def _apply_member(tree, X):
    return tree.apply(X)


class _BaseForest(BaseEnsemble):
    """분류/회귀 포레스트의 공통 학습 루프"""

    _param_names = (
        'n_estimators', 'criterion', 'max_depth', 'max_leaf_nodes', 'min_samples_split',
        'min_samples_leaf', 'max_features', 'oob_score', 'random_state', 'execution',
        'n_jobs', 'verbose'
    )
    _tree_class: Any = None
    _oob_attribute: str = ''

    def __init__(
        self,
        n_estimators: int = 100,
        criterion: str = 'gini',
        max_depth: Optional[int] = None,
        max_leaf_nodes: Optional[int] = None,
        min_samples_split: int = 2,
        min_samples_leaf: int = 1,
        max_features: Any = None,
        oob_score: bool = False,
        random_state: int = 0,
        execution: str = 'sequential',
        n_jobs: Optional[int] = None,
        verbose: int = 0
    ):
        self.n_estimators = n_estimators
        self.criterion = criterion
        self.max_depth = max_depth
        self.max_leaf_nodes = max_leaf_nodes
        self.min_samples_split = min_samples_split
        self.min_samples_leaf = min_samples_leaf
        self.max_features = max_features
        self.oob_score = oob_score
        self.random_state = random_state
        self.execution = execution
        self.n_jobs = n_jobs
        self.verbose = verbose

        # 학습 후 설정되는 속성들
        self.estimators_: List[Any] = []
        self.estimators_samples_: List[np.ndarray] = []
        self.feature_importances_: Optional[np.ndarray] = None
        self.max_features_: int = 0
        self.n_features_: int = 0
        self.oob_score_: Optional[float] = None

        # 학습 과정 기록
        self.training_history_: List[Dict] = []

    def _default_max_features(self, n_features: int) -> int:
        raise NotImplementedError

    def _resolve_max_features(self, n_features: int) -> int:
        return resolve_max_features(
            self.max_features, n_features, self._default_max_features(n_features)
        )

    def _prepare_target(self, y: np.ndarray) -> Tuple[np.ndarray, Optional[np.ndarray]]:
        """학습용 타겟과 classes_ (회귀는 None) 반환"""
        return y, None

    def _compute_oob(
        self,
        X: np.ndarray,
        y: np.ndarray,
        estimators: List[Any],
        samples: List[np.ndarray],
        classes: Optional[np.ndarray]
    ) -> Tuple[Optional[float], Optional[np.ndarray]]:
        """(OOB 점수, 샘플별 OOB 예측) 반환"""
        raise NotImplementedError

    def _map_members(self, func, *args) -> List[Any]:
        return run_members(
            func,
            [(tree, *args) for tree in self.estimators_],
            execution=self.execution,
            n_jobs=self.n_jobs
        )

    def fit(self, X: np.ndarray, y: np.ndarray):
        """
        Random Forest 모델 학습

        학습된 속성은 모든 트리가 성공한 뒤 한 번에 교체됩니다.
        트리 하나라도 실패하면 예외가 전파되고 이전 학습 상태가 유지됩니다.

        Parameters
        ----------
        X : ndarray of shape (n_samples, n_features)
            학습 데이터
        y : ndarray of shape (n_samples,)
            타겟 값

        Returns
        -------
        self
            학습된 모델
        """
        X = check_sample_array(X)
        y = check_target_array(y)
        check_sample_size(X, y)
        root_seed = self._validate_params()

        if self.criterion not in self._tree_class.criteria:
            raise InvalidConfigurationError(f"Unknown criterion: {self.criterion!r}")

        n_samples, n_features = X.shape
        max_features = self._resolve_max_features(n_features)
        y, classes = self._prepare_target(y)

        tree_params = {
            'criterion': self.criterion,
            'max_depth': self.max_depth,
            'max_leaf_nodes': self.max_leaf_nodes,
            'min_samples_split': self.min_samples_split,
            'min_samples_leaf': self.min_samples_leaf,
            'max_features': max_features
        }
        seeds = spawn_seeds(root_seed, self.n_estimators)

        if self.verbose > 0:
            print(f"Random Forest 학습 시작: {self.n_estimators}개 트리 ({self.execution})")

        results = run_members(
            _fit_member,
            [(self._tree_class, tree_params, X, y, seed) for seed in seeds],
            execution=self.execution,
            n_jobs=self.n_jobs,
            verbose=max(0, self.verbose - 1)
        )

        estimators = [tree for tree, _, _ in results]
        samples = [indices for _, indices, _ in results]
        history = [
            {
                'tree_idx': m + 1,
                'seed': seeds[m],
                'tree_depth': tree.get_depth(),
                'tree_n_leaves': tree.get_n_leaves(),
                'n_oob_samples': len(out_of_bag_indices(n_samples, indices))
            }
            for m, (tree, indices, _) in enumerate(results)
        ]

        oob_score, oob_detail = None, None
        if self.oob_score:
            oob_score, oob_detail = self._compute_oob(X, y, estimators, samples, classes)

        # 여기부터 학습 상태 교체
        if classes is not None:
            self.classes_ = classes
        self.n_features_ = n_features
        self.max_features_ = max_features
        self.estimators_ = estimators
        self.estimators_samples_ = samples
        self.feature_importances_ = normalize_importances(
            [importance for _, _, importance in results], n_features
        )
        self.training_history_ = history
        self.oob_score_ = oob_score
        setattr(self, self._oob_attribute, oob_detail)

        if self.verbose > 0 and oob_score is not None:
            print(f"OOB Score: {oob_score:.4f}")

        if self.verbose > 0:
            print(f"Random Forest 학습 완료: {len(self.estimators_)}개 트리")

        return self

    def apply(self, X: np.ndarray) -> np.ndarray:
        """
        각 트리에서 샘플이 도달한 리프 번호

        Returns
        -------
        leaf_ids : ndarray of shape (n_samples, n_estimators)
        """
        check_is_fitted(self)
        X = check_sample_array(X, allow_single_sample=True)
        return np.column_stack(self._map_members(_apply_member, X))

    def get_oob_score(self) -> Optional[float]:
        """OOB 점수 반환"""
        return self.oob_score_

    def __repr__(self) -> str:
        name = type(self).__name__
        if len(self.estimators_) == 0:
            return f"{name}(not fitted)"

        oob_str = f", oob_score={self.oob_score_:.4f}" if self.oob_score_ is not None else ""

        return (
            f"{name}("
            f"n_estimators={len(self.estimators_)}, "
            f"max_features={self.max_features_}, "
            f"max_depth={self.max_depth}"
            f"{oob_str})"
        )


class RandomForestClassifier(_BaseForest):
    """
    Random Forest 분류 모델 (From Scratch)

    Parameters
    ----------
    n_estimators : int, default=100
        트리 개수

    criterion : str, default='gini'
        분할 기준 ('gini' 또는 'entropy'). 각 트리에 그대로 전달됨

    max_depth : int, default=None
        각 트리의 최대 깊이. None이면 완전히 확장

    max_leaf_nodes : int, default=None
        각 트리의 리프 노드 수 상한. None이면 제한 없음

    min_samples_split : int, default=2
        내부 노드를 분할하기 위한 최소 샘플 수

    min_samples_leaf : int, default=1
        리프 노드에 있어야 하는 최소 샘플 수

    max_features : int or float or str, default=None
        각 분할에서 고려할 피처 수
        - None: floor(sqrt(n_features))
        - 'sqrt', 'log2', int, float(비율)
        결과는 항상 [1, n_features]로 보정됨

    oob_score : bool, default=False
        Out-of-Bag 정확도 계산 여부

    random_state : int, default=0
        루트 시드. 트리별 시드는 여기서 분배됨

    execution : str, default='sequential'
        'sequential' 또는 'parallel' (joblib)

    n_jobs : int, default=None
        병렬 작업 수 (execution='parallel'일 때, None이면 모든 코어)

    verbose : int, default=0
        출력 수준

    Attributes
    ----------
    estimators_ : list of DecisionTreeClassifier
        학습된 트리들 (구성원 인덱스 순서)

    classes_ : ndarray
        정렬된 고유 클래스 레이블

    feature_importances_ : ndarray of shape (n_features,)
        피처 중요도 (합이 1)

    oob_score_ : float
        Out-of-Bag 정확도 (oob_score=True인 경우)

    oob_decision_function_ : ndarray of shape (n_samples, n_classes)
        각 샘플의 OOB 클래스 확률

    Examples
    --------
    >>> from ensemble_from_scratch import RandomForestClassifier
    >>> import numpy as np
    >>> rng = np.random.default_rng(0)
    >>> X = rng.normal(size=(100, 4))
    >>> y = (X[:, 0] > 0).astype(int)
    >>> rf = RandomForestClassifier(n_estimators=10, random_state=1).fit(X, y)
    >>> rf.predict_proba(X[:2]).sum(axis=1)
    array([1., 1.])
    """

    _tree_class = DecisionTreeClassifier
    _oob_attribute = 'oob_decision_function_'

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.classes_: Optional[np.ndarray] = None
        self.oob_decision_function_: Optional[np.ndarray] = None

    def _default_max_features(self, n_features: int) -> int:
        return int(np.sqrt(n_features))

    def _prepare_target(self, y: np.ndarray) -> Tuple[np.ndarray, Optional[np.ndarray]]:
        return y, np.unique(y)

    def _vote(self, predictions: np.ndarray) -> np.ndarray:
        """
        다수결 투표

        predictions : (n_estimators, n_samples) 레이블 배열
        동률이면 트리 순서상 가장 먼저 등장한 레이블을 선택
        """
        n_estimators = predictions.shape[0]
        codes = np.searchsorted(self.classes_, predictions)
        hits = codes[:, :, None] == np.arange(len(self.classes_))

        counts = hits.sum(axis=0)
        first_seen = np.where(hits.any(axis=0), hits.argmax(axis=0), n_estimators)

        is_max = counts == counts.max(axis=1, keepdims=True)
        winner = np.argmin(np.where(is_max, first_seen, n_estimators + 1), axis=1)

        return self.classes_[winner]

    def predict(self, X: np.ndarray) -> np.ndarray:
        """
        다수결 투표로 클래스 예측

        Parameters
        ----------
        X : ndarray of shape (n_samples, n_features)
            예측할 데이터

        Returns
        -------
        y_pred : ndarray of shape (n_samples,)
            예측 레이블
        """
        check_is_fitted(self)
        X = check_sample_array(X, allow_single_sample=True)

        predictions = np.array(self._map_members(_predict_member, X))
        return self._vote(predictions)

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """
        트리별 클래스 확률의 평균

        Returns
        -------
        proba : ndarray of shape (n_samples, n_classes)
            열 순서는 classes_
        """
        check_is_fitted(self)
        X = check_sample_array(X, allow_single_sample=True)

        probas = self._map_members(_predict_proba_member, self.classes_, X)
        return np.sum(probas, axis=0) / len(self.estimators_)

    def score(self, X: np.ndarray, y: np.ndarray) -> float:
        """평균 정확도"""
        y = check_target_array(y)
        return float(np.mean(self.predict(X) == y))

    def _compute_oob(self, X, y, estimators, samples, classes):
        n_samples = X.shape[0]
        proba_sum = np.zeros((n_samples, len(classes)))
        counts = np.zeros(n_samples)

        for tree, indices in zip(estimators, samples):
            oob = out_of_bag_indices(n_samples, indices)
            if len(oob) == 0:
                continue
            proba_sum[oob] += align_proba(tree, classes, X[oob])
            counts[oob] += 1

        valid = counts > 0
        if not np.any(valid):
            return None, None

        decision = np.zeros_like(proba_sum)
        decision[valid] = proba_sum[valid] / counts[valid, None]

        oob_pred = classes[np.argmax(decision[valid], axis=1)]
        return float(np.mean(oob_pred == y[valid])), decision


class RandomForestRegressor(_BaseForest):
    """
    Random Forest 회귀 모델 (From Scratch)

    파라미터는 RandomForestClassifier와 같으며 criterion 기본값은 'mse',
    max_features 기본값은 'sqrt'입니다 (None이면 모든 피처).

    Attributes
    ----------
    estimators_ : list of DecisionTreeRegressor
        학습된 트리들

    feature_importances_ : ndarray of shape (n_features,)
        피처 중요도 (합이 1)

    oob_score_ : float
        Out-of-Bag R² 점수 (oob_score=True인 경우)

    oob_prediction_ : ndarray
        각 샘플의 OOB 예측값

    Examples
    --------
    >>> from ensemble_from_scratch import RandomForestRegressor
    >>> import numpy as np
    >>> X = np.random.randn(100, 5)
    >>> y = X[:, 0] * 2 + X[:, 1] + np.random.randn(100) * 0.1
    >>> rf = RandomForestRegressor(n_estimators=50)
    >>> rf.fit(X, y)
    >>> predictions = rf.predict(X[:5])
    """

    _tree_class = DecisionTreeRegressor
    _oob_attribute = 'oob_prediction_'

    def __init__(self, *args, criterion: str = 'mse', max_features: Any = 'sqrt', **kwargs):
        super().__init__(*args, criterion=criterion, max_features=max_features, **kwargs)
        self.oob_prediction_: Optional[np.ndarray] = None

    def _default_max_features(self, n_features: int) -> int:
        return n_features

    def _prepare_target(self, y: np.ndarray) -> Tuple[np.ndarray, Optional[np.ndarray]]:
        return y.astype(float), None

    def _member_predictions(self, X: np.ndarray) -> np.ndarray:
        check_is_fitted(self)
        X = check_sample_array(X, allow_single_sample=True)
        return np.array(self._map_members(_predict_member, X))

    def predict(self, X: np.ndarray) -> np.ndarray:
        """
        예측 수행 (모든 트리 예측의 평균)

        Returns
        -------
        y_pred : ndarray of shape (n_samples,)
            예측값
        """
        return np.mean(self._member_predictions(X), axis=0)

    def predict_std(self, X: np.ndarray) -> np.ndarray:
        """예측의 표준편차 반환 (불확실성 추정)"""
        return np.std(self._member_predictions(X), axis=0)

    def predict_with_uncertainty(
        self,
        X: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        예측과 함께 불확실성 구간 반환

        Returns
        -------
        y_pred : ndarray
            예측값 (평균)
        lower : ndarray
            2.5 백분위수
        upper : ndarray
            97.5 백분위수
        """
        predictions = self._member_predictions(X)

        return (
            np.mean(predictions, axis=0),
            np.percentile(predictions, 2.5, axis=0),
            np.percentile(predictions, 97.5, axis=0)
        )

    def staged_predict(self, X: np.ndarray) -> np.ndarray:
        """
        각 트리 추가 후의 예측 반환 (수렴 분석용)

        Returns
        -------
        predictions : ndarray of shape (n_estimators, n_samples)
            각 단계에서의 누적 평균 예측값
        """
        predictions = self._member_predictions(X)
        counts = np.arange(1, len(predictions) + 1)[:, None]
        return np.cumsum(predictions, axis=0) / counts

    def score(self, X: np.ndarray, y: np.ndarray) -> float:
        """결정계수 R²"""
        y = check_target_array(y).astype(float)
        return r2_score(y, self.predict(X))

    def _compute_oob(self, X, y, estimators, samples, classes):
        n_samples = X.shape[0]
        prediction_sum = np.zeros(n_samples)
        counts = np.zeros(n_samples)

        for tree, indices in zip(estimators, samples):
            oob = out_of_bag_indices(n_samples, indices)
            if len(oob) == 0:
                continue
            prediction_sum[oob] += tree.predict(X[oob])
            counts[oob] += 1

        valid = counts > 0
        if not np.any(valid):
            return None, None

        prediction = np.zeros(n_samples)
        prediction[valid] = prediction_sum[valid] / counts[valid]
        return r2_score(y[valid], prediction[valid]), prediction

