"""
Decision Tree - From Scratch Implementation
===========================================

앙상블의 약한 학습기로 사용하는 CART 결정 트리.

수학적 배경:
-----------
분할 기준: 불순도(impurity) 감소 최대화

분류 (Gini):
    G = 1 - Σ_k p_k²

분류 (Entropy):
    H = -Σ_k p_k * log2(p_k)

회귀 (MSE):
    MSE = (1/n) * Σ(y_i - ȳ)²

분할 후 가중 불순도:
    I_split = (n_left/n) * I_left + (n_right/n) * I_right

정보 이득:
    Gain = I_parent - I_split

후보 임계값은 정렬된 피처 값에서 인접한 고유값의 중간점이며,
누적합으로 모든 후보의 불순도를 한 번에 계산합니다.

리프 번호:
    노드는 생성 순서(전위 순회)대로 0부터 번호가 붙고,
    apply()는 각 샘플이 도달한 리프 번호를 반환합니다.

Author: Ensemble From Scratch Project
"""

import numpy as np
from typing import Optional, Tuple, Dict, List, Any
from dataclasses import dataclass

from .exceptions import InvalidConfigurationError, NotFittedError
from .validation import (
    check_n_features,
    check_positive_int,
    check_sample_array,
    check_sample_size,
    check_target_array,
)


@dataclass
class TreeNode:
    """결정 트리의 노드를 표현하는 클래스"""

    # 분할 정보 (내부 노드용)
    feature_idx: Optional[int] = None    # 분할에 사용된 피처 인덱스
    threshold: Optional[float] = None    # 분할 임계값

    # 자식 노드
    left: Optional['TreeNode'] = None    # 왼쪽 자식 (값 <= threshold)
    right: Optional['TreeNode'] = None   # 오른쪽 자식 (값 > threshold)

    # 리프 노드 정보
    value: Any = None                    # 회귀: 평균값, 분류: 클래스 비율 벡터
    n_samples: int = 0                   # 노드에 도달한 샘플 수
    impurity: float = 0.0                # 노드의 불순도
    depth: int = 0                       # 노드의 깊이
    node_id: int = 0                     # 전위 순회 번호

    def is_leaf(self) -> bool:
        """리프 노드인지 확인"""
        return self.left is None and self.right is None


class _BaseDecisionTree:
    """
    CART 트리의 공통 부분 (분할 탐색, 트리 구축, 순회)

    하위 클래스는 _prepare_target, _node_impurity, _split_impurities,
    _leaf_value를 구현합니다.
    """

    def __init__(
        self,
        max_depth: Optional[int] = None,
        min_samples_split: int = 2,
        min_samples_leaf: int = 1,
        min_impurity_decrease: float = 0.0,
        max_features: Optional[Any] = None,
        max_leaf_nodes: Optional[int] = None,
        random_state: Optional[int] = None
    ):
        self.max_depth = max_depth
        self.max_leaf_nodes = max_leaf_nodes
        self.min_samples_split = min_samples_split
        self.min_samples_leaf = min_samples_leaf
        self.min_impurity_decrease = min_impurity_decrease
        self.max_features = max_features
        self.random_state = random_state

        # 학습 후 설정되는 속성들
        self.root_: Optional[TreeNode] = None
        self.n_features_: int = 0
        self.feature_importances_: Optional[np.ndarray] = None
        self.tree_stats_: Dict = {}
        self._rng: Optional[np.random.Generator] = None
        self._n_nodes: int = 0
        self._n_leaves: int = 0

        # 학습 과정 기록 (시각화용)
        self.training_history_: List[Dict] = []

    # ------------------------------------------------------------------
    # 하위 클래스 구현부
    # ------------------------------------------------------------------
    def _prepare_target(self, y: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def _node_impurity(self, y: np.ndarray) -> float:
        raise NotImplementedError

    def _split_impurities(self, y_sorted: np.ndarray) -> np.ndarray:
        """
        정렬된 타겟에서 왼쪽 크기가 1..n-1인 모든 분할의 가중 불순도

        Returns
        -------
        impurities : ndarray of shape (n - 1,)
        """
        raise NotImplementedError

    def _leaf_value(self, y: np.ndarray):
        raise NotImplementedError

    # ------------------------------------------------------------------
    # 공통 로직
    # ------------------------------------------------------------------
    def _get_n_features_to_sample(self, n_features: int) -> int:
        """각 분할에서 고려할 피처 수 결정 ([1, n_features]로 보정)"""
        if self.max_features is None:
            return n_features
        elif isinstance(self.max_features, (int, np.integer)):
            return int(min(max(1, self.max_features), n_features))
        elif isinstance(self.max_features, float):
            return int(min(max(1, int(self.max_features * n_features)), n_features))
        elif self.max_features == 'sqrt':
            return max(1, int(np.sqrt(n_features)))
        elif self.max_features == 'log2':
            return max(1, int(np.log2(n_features)))
        else:
            raise InvalidConfigurationError(
                f"Unknown max_features: {self.max_features!r}"
            )

    def _find_best_split(
        self,
        X: np.ndarray,
        y: np.ndarray
    ) -> Tuple[Optional[int], Optional[float], float]:
        """
        최적의 분할점 탐색

        Returns
        -------
        best_feature : int or None
            최적 분할 피처 인덱스
        best_threshold : float or None
            최적 분할 임계값
        best_gain : float
            최대 정보 이득
        """
        n_samples, n_features = X.shape
        impurity_parent = self._node_impurity(y)

        best_gain = 0.0
        best_feature = None
        best_threshold = None

        # 피처 서브샘플링
        n_features_to_sample = self._get_n_features_to_sample(n_features)
        if n_features_to_sample < n_features:
            feature_indices = self._rng.choice(
                n_features, n_features_to_sample, replace=False
            )
        else:
            feature_indices = np.arange(n_features)

        # 왼쪽 자식 크기 1..n-1
        n_left = np.arange(1, n_samples)
        size_ok = (n_left >= self.min_samples_leaf) & \
                  (n_samples - n_left >= self.min_samples_leaf)

        for feature_idx in feature_indices:
            order = np.argsort(X[:, feature_idx], kind='mergesort')
            x_sorted = X[order, feature_idx]

            # 인접 값이 같은 위치에서는 분할 불가
            valid = size_ok & (x_sorted[1:] > x_sorted[:-1])
            if not np.any(valid):
                continue

            impurities = self._split_impurities(y[order])
            gains = np.where(valid, impurity_parent - impurities, -np.inf)
            pos = int(np.argmax(gains))

            if gains[pos] > best_gain:
                best_gain = float(gains[pos])
                best_feature = int(feature_idx)
                best_threshold = float((x_sorted[pos] + x_sorted[pos + 1]) / 2)

        return best_feature, best_threshold, best_gain

    def _make_node(self, y: np.ndarray, depth: int) -> TreeNode:
        node = TreeNode(
            value=self._leaf_value(y),
            n_samples=len(y),
            impurity=self._node_impurity(y),
            depth=depth,
            node_id=self._n_nodes
        )
        self._n_nodes += 1
        return node

    def _build_tree(
        self,
        X: np.ndarray,
        y: np.ndarray,
        depth: int = 0
    ) -> TreeNode:
        """
        재귀적으로 결정 트리 구축

        종료 조건:
        1. max_depth 도달
        2. 샘플 수 < min_samples_split
        3. 노드가 순수함 (불순도 0)
        4. 정보 이득 < min_impurity_decrease
        5. 리프 수가 max_leaf_nodes에 도달 (깊이 우선으로 왼쪽부터 소진)
        """
        node = self._make_node(y, depth)

        should_stop = (
            (self.max_depth is not None and depth >= self.max_depth) or
            (self.max_leaf_nodes is not None and self._n_leaves >= self.max_leaf_nodes) or
            node.n_samples < self.min_samples_split or
            node.impurity <= 0.0
        )

        if not should_stop:
            best_feature, best_threshold, best_gain = self._find_best_split(X, y)
            should_stop = best_feature is None or best_gain < self.min_impurity_decrease

        if should_stop:
            self.training_history_.append({
                'node_id': node.node_id,
                'depth': depth,
                'n_samples': node.n_samples,
                'impurity': node.impurity,
                'action': 'leaf'
            })
            return node

        left_mask = X[:, best_feature] <= best_threshold

        self.training_history_.append({
            'node_id': node.node_id,
            'depth': depth,
            'n_samples': node.n_samples,
            'impurity': node.impurity,
            'action': 'split',
            'feature': best_feature,
            'threshold': best_threshold,
            'gain': best_gain,
            'n_left': int(np.sum(left_mask)),
            'n_right': int(np.sum(~left_mask))
        })

        # 리프 하나가 둘로 나뉨
        self._n_leaves += 1

        node.feature_idx = best_feature
        node.threshold = best_threshold
        node.left = self._build_tree(X[left_mask], y[left_mask], depth + 1)
        node.right = self._build_tree(X[~left_mask], y[~left_mask], depth + 1)

        return node

    def _calculate_feature_importances(self, node: TreeNode) -> np.ndarray:
        """
        피처 중요도 계산 (불순도 감소 기반)

        importance[i] = Σ (n_samples * impurity_decrease) for splits using feature i
        """
        importances = np.zeros(self.n_features_)

        def _traverse(node: TreeNode):
            if node.is_leaf():
                return

            decrease = node.impurity - (
                (node.left.n_samples / node.n_samples) * node.left.impurity +
                (node.right.n_samples / node.n_samples) * node.right.impurity
            )
            importances[node.feature_idx] += node.n_samples * decrease

            _traverse(node.left)
            _traverse(node.right)

        _traverse(node)

        total = np.sum(importances)
        if total > 0:
            importances /= total

        return importances

    def _calculate_tree_stats(self, node: TreeNode) -> Dict:
        """트리 통계 계산"""
        stats = {
            'max_depth': 0,
            'n_nodes': 0,
            'n_leaves': 0,
            'leaf_ids': []
        }

        def _traverse(node: TreeNode):
            stats['n_nodes'] += 1
            stats['max_depth'] = max(stats['max_depth'], node.depth)

            if node.is_leaf():
                stats['n_leaves'] += 1
                stats['leaf_ids'].append(node.node_id)
            else:
                _traverse(node.left)
                _traverse(node.right)

        _traverse(node)
        return stats

    def _fit_tree(self, X, y):
        X = check_sample_array(X)
        y = check_target_array(y)
        check_sample_size(X, y)
        if self.max_leaf_nodes is not None:
            check_positive_int(self.max_leaf_nodes, 'max_leaf_nodes')

        self.n_features_ = X.shape[1]
        self._rng = np.random.default_rng(self.random_state)
        self._n_nodes = 0
        self._n_leaves = 1
        self.training_history_ = []

        y_prepared = self._prepare_target(y)
        self.root_ = self._build_tree(X, y_prepared)
        self.feature_importances_ = self._calculate_feature_importances(self.root_)
        self.tree_stats_ = self._calculate_tree_stats(self.root_)

        return self

    def _find_leaf(self, x: np.ndarray) -> TreeNode:
        node = self.root_

        while not node.is_leaf():
            if x[node.feature_idx] <= node.threshold:
                node = node.left
            else:
                node = node.right

        return node

    def _leaves(self, X) -> List[TreeNode]:
        if self.root_ is None:
            raise NotFittedError("모델이 학습되지 않았습니다. fit()을 먼저 호출하세요.")

        X = check_sample_array(X, allow_single_sample=True)
        check_n_features(X, self.n_features_)
        return [self._find_leaf(x) for x in X]

    def apply(self, X: np.ndarray) -> np.ndarray:
        """
        각 샘플이 도달한 리프 노드 번호

        Returns
        -------
        leaf_ids : ndarray of shape (n_samples,)
        """
        return np.array([leaf.node_id for leaf in self._leaves(X)], dtype=int)

    def get_depth(self) -> int:
        """트리의 최대 깊이 반환"""
        if self.root_ is None:
            return 0
        return self.tree_stats_.get('max_depth', 0)

    def get_n_leaves(self) -> int:
        """리프 노드 수 반환"""
        if self.root_ is None:
            return 0
        return self.tree_stats_.get('n_leaves', 0)

    def get_leaf_ids(self) -> np.ndarray:
        """리프 노드 번호 목록 (오름차순)"""
        return np.array(sorted(self.tree_stats_.get('leaf_ids', [])), dtype=int)

    def export_tree_structure(self) -> Dict:
        """
        트리 구조를 딕셔너리로 내보내기 (시각화, 비교용)
        """
        def _node_to_dict(node: TreeNode) -> Dict:
            value = node.value
            result = {
                'node_id': node.node_id,
                'value': value.tolist() if isinstance(value, np.ndarray) else value,
                'n_samples': node.n_samples,
                'impurity': node.impurity,
                'depth': node.depth,
                'is_leaf': node.is_leaf()
            }

            if not node.is_leaf():
                result['feature_idx'] = node.feature_idx
                result['threshold'] = node.threshold
                result['left'] = _node_to_dict(node.left)
                result['right'] = _node_to_dict(node.right)

            return result

        if self.root_ is None:
            return {}

        return _node_to_dict(self.root_)


class DecisionTreeClassifier(_BaseDecisionTree):
    """
    CART 기반 결정 트리 분류 모델 (From Scratch)

    Parameters
    ----------
    criterion : str, default='gini'
        분할 기준. 'gini' 또는 'entropy'

    max_depth : int, default=None
        트리의 최대 깊이. None이면 제한 없음.

    min_samples_split : int, default=2
        내부 노드를 분할하기 위한 최소 샘플 수.

    min_samples_leaf : int, default=1
        리프 노드에 있어야 하는 최소 샘플 수.

    min_impurity_decrease : float, default=0.0
        분할을 수행하기 위한 최소 불순도 감소량.

    max_features : int or float or str, default=None
        각 분할에서 고려할 피처 수.
        - None: 모든 피처 사용
        - int: 해당 수의 피처 사용 ([1, n_features]로 보정)
        - float: 비율로 피처 수 결정
        - 'sqrt': sqrt(n_features)
        - 'log2': log2(n_features)

    max_leaf_nodes : int, default=None
        리프 노드 수 상한. None이면 제한 없음.
        깊이 우선으로 분할하므로 왼쪽 서브트리가 먼저 예산을 사용함

    random_state : int, default=None
        랜덤 시드 (피처 서브샘플링용)

    Attributes
    ----------
    classes_ : ndarray
        학습 데이터에서 관측된 클래스 레이블 (정렬, 중복 없음)

    feature_importances_ : ndarray of shape (n_features,)
        피처 중요도 (불순도 감소 기반)

    Examples
    --------
    >>> from ensemble_from_scratch import DecisionTreeClassifier
    >>> import numpy as np
    >>> X = np.array([[0.0], [1.0], [10.0], [11.0]])
    >>> y = np.array([0, 0, 1, 1])
    >>> tree = DecisionTreeClassifier(max_depth=1).fit(X, y)
    >>> tree.predict(np.array([[0.5], [10.5]]))
    array([0, 1])
    """

    criteria = ('gini', 'entropy')

    def __init__(
        self,
        criterion: str = 'gini',
        max_depth: Optional[int] = None,
        min_samples_split: int = 2,
        min_samples_leaf: int = 1,
        min_impurity_decrease: float = 0.0,
        max_features: Optional[Any] = None,
        max_leaf_nodes: Optional[int] = None,
        random_state: Optional[int] = None
    ):
        super().__init__(
            max_depth=max_depth,
            min_samples_split=min_samples_split,
            min_samples_leaf=min_samples_leaf,
            min_impurity_decrease=min_impurity_decrease,
            max_features=max_features,
            max_leaf_nodes=max_leaf_nodes,
            random_state=random_state
        )
        self.criterion = criterion
        self.classes_: Optional[np.ndarray] = None
        self.n_classes_: int = 0

    def _impurity_from_counts(self, counts: np.ndarray) -> np.ndarray:
        """마지막 축이 클래스인 빈도 배열의 불순도"""
        totals = counts.sum(axis=-1, keepdims=True)
        proba = counts / np.maximum(totals, 1)

        if self.criterion == 'gini':
            return 1.0 - np.sum(proba ** 2, axis=-1)

        with np.errstate(divide='ignore', invalid='ignore'):
            log_proba = np.where(proba > 0, np.log2(proba), 0.0)
        return -np.sum(proba * log_proba, axis=-1)

    def _prepare_target(self, y: np.ndarray) -> np.ndarray:
        self.classes_, y_codes = np.unique(y, return_inverse=True)
        self.n_classes_ = len(self.classes_)
        return y_codes.ravel()

    def _node_impurity(self, y: np.ndarray) -> float:
        counts = np.bincount(y, minlength=self.n_classes_)
        return float(self._impurity_from_counts(counts))

    def _split_impurities(self, y_sorted: np.ndarray) -> np.ndarray:
        n = len(y_sorted)
        one_hot = np.eye(self.n_classes_)[y_sorted]
        left_counts = np.cumsum(one_hot, axis=0)[:-1]
        right_counts = left_counts[-1] + one_hot[-1] - left_counts

        n_left = np.arange(1, n)
        return (
            n_left * self._impurity_from_counts(left_counts) +
            (n - n_left) * self._impurity_from_counts(right_counts)
        ) / n

    def _leaf_value(self, y: np.ndarray) -> np.ndarray:
        counts = np.bincount(y, minlength=self.n_classes_).astype(float)
        return counts / counts.sum()

    def fit(self, X: np.ndarray, y: np.ndarray) -> 'DecisionTreeClassifier':
        """
        결정 트리 학습

        Parameters
        ----------
        X : ndarray of shape (n_samples, n_features)
            학습 데이터
        y : ndarray of shape (n_samples,)
            클래스 레이블

        Returns
        -------
        self : DecisionTreeClassifier
            학습된 모델
        """
        if self.criterion not in self.criteria:
            raise InvalidConfigurationError(f"Unknown criterion: {self.criterion!r}")

        return self._fit_tree(X, y)

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """
        클래스별 확률 (리프의 클래스 비율)

        Returns
        -------
        proba : ndarray of shape (n_samples, n_classes_)
            열 순서는 classes_
        """
        return np.array([leaf.value for leaf in self._leaves(X)])

    def predict(self, X: np.ndarray) -> np.ndarray:
        """
        예측 수행

        Returns
        -------
        y_pred : ndarray of shape (n_samples,)
            확률이 가장 높은 클래스 레이블
        """
        return self.classes_[np.argmax(self.predict_proba(X), axis=1)]

    def __repr__(self) -> str:
        if self.root_ is None:
            return "DecisionTreeClassifier(not fitted)"

        return (
            f"DecisionTreeClassifier("
            f"depth={self.get_depth()}, "
            f"n_leaves={self.get_n_leaves()}, "
            f"n_classes={self.n_classes_})"
        )


class DecisionTreeRegressor(_BaseDecisionTree):
    """
    CART 기반 결정 트리 회귀 모델 (From Scratch)

    분할 기준은 MSE이며, 리프 예측값은 리프에 속한 타겟의 평균입니다.
    파라미터는 DecisionTreeClassifier와 같고 criterion은 'mse'만 지원합니다.
    """

    criteria = ('mse',)

    def __init__(
        self,
        criterion: str = 'mse',
        max_depth: Optional[int] = None,
        min_samples_split: int = 2,
        min_samples_leaf: int = 1,
        min_impurity_decrease: float = 0.0,
        max_features: Optional[Any] = None,
        max_leaf_nodes: Optional[int] = None,
        random_state: Optional[int] = None
    ):
        super().__init__(
            max_depth=max_depth,
            min_samples_split=min_samples_split,
            min_samples_leaf=min_samples_leaf,
            min_impurity_decrease=min_impurity_decrease,
            max_features=max_features,
            max_leaf_nodes=max_leaf_nodes,
            random_state=random_state
        )
        self.criterion = criterion

    def _prepare_target(self, y: np.ndarray) -> np.ndarray:
        return y.astype(float)

    def _node_impurity(self, y: np.ndarray) -> float:
        if len(y) == 0:
            return 0.0
        return float(np.var(y))

    def _split_impurities(self, y_sorted: np.ndarray) -> np.ndarray:
        n = len(y_sorted)
        n_left = np.arange(1, n)
        n_right = n - n_left

        csum = np.cumsum(y_sorted)[:-1]
        csum_sq = np.cumsum(y_sorted ** 2)[:-1]
        total, total_sq = y_sorted.sum(), np.sum(y_sorted ** 2)

        # Var = E[y²] - E[y]²
        var_left = csum_sq / n_left - (csum / n_left) ** 2
        var_right = (total_sq - csum_sq) / n_right - ((total - csum) / n_right) ** 2

        return (n_left * np.maximum(var_left, 0.0) + n_right * np.maximum(var_right, 0.0)) / n

    def _leaf_value(self, y: np.ndarray) -> float:
        return float(np.mean(y))

    def fit(self, X: np.ndarray, y: np.ndarray) -> 'DecisionTreeRegressor':
        """결정 트리 학습"""
        if self.criterion not in self.criteria:
            raise InvalidConfigurationError(f"Unknown criterion: {self.criterion!r}")

        return self._fit_tree(X, y)

    def predict(self, X: np.ndarray) -> np.ndarray:
        """리프 평균값으로 예측"""
        return np.array([leaf.value for leaf in self._leaves(X)])

    def __repr__(self) -> str:
        if self.root_ is None:
            return "DecisionTreeRegressor(not fitted)"

        return (
            f"DecisionTreeRegressor("
            f"depth={self.get_depth()}, "
            f"n_leaves={self.get_n_leaves()}, "
            f"n_features={self.n_features_})"
        )
