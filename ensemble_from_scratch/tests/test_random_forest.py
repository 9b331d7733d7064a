"""
Random Forest 분류/회귀 검증

Author: Ensemble From Scratch Project
"""

import numpy as np
import pytest
from sklearn.datasets import make_blobs

from ensemble_from_scratch import (
    DecisionTreeClassifier,
    InvalidConfigurationError,
    NotFittedError,
    RandomForestClassifier,
    RandomForestRegressor,
    ShapeMismatchError,
    UnsupportedInputError,
)


class _FixedMember:
    """고정된 예측을 돌려주는 구성원 (투표/확률 결합 검증용)"""

    def __init__(self, labels, proba, classes):
        self.labels = np.asarray(labels)
        self.proba = np.asarray(proba, dtype=float)
        self.classes_ = np.asarray(classes)
        self.feature_importances_ = np.array([1.0])

    def predict(self, X):
        return self.labels

    def predict_proba(self, X):
        return self.proba


class _FailingTree(DecisionTreeClassifier):
    def fit(self, X, y):
        raise RuntimeError("tree failed")


def _forest_with_members(members, classes):
    forest = RandomForestClassifier(n_estimators=len(members))
    forest.classes_ = np.asarray(classes)
    forest.estimators_ = members
    return forest


def _blobs():
    return make_blobs(n_samples=150, centers=3, n_features=4, random_state=0)


def test_random_forest_end_to_end():
    """3클래스 데이터 학습 후 기본 성질"""
    X, y = _blobs()

    rf = RandomForestClassifier(n_estimators=10, random_state=7).fit(X, y)
    proba = rf.predict_proba(X)

    assert len(rf.estimators_) == 10
    assert np.array_equal(rf.classes_, np.unique(y))
    assert proba.shape == (150, 3)
    assert np.all(np.abs(proba.sum(axis=1) - 1.0) < 1e-6)
    assert abs(rf.feature_importances_.sum() - 1.0) < 1e-9
    assert np.all(rf.feature_importances_ >= 0)
    assert rf.score(X, y) >= 0.9
    print(f"  ✓ {rf}, accuracy={rf.score(X, y):.4f}")


def test_random_forest_max_features():
    X, y = _blobs()

    assert RandomForestClassifier(n_estimators=2).fit(X, y).max_features_ == 2
    assert RandomForestClassifier(n_estimators=2, max_features=0).fit(X, y).max_features_ == 1

    rf = RandomForestClassifier(n_estimators=2, max_features=100).fit(X, y)
    assert rf.max_features_ == 4
    assert all(tree.max_features == 4 for tree in rf.estimators_)

    with pytest.raises(InvalidConfigurationError):
        RandomForestClassifier(n_estimators=2, max_features='half').fit(X, y)


def test_random_forest_apply():
    """apply 결과는 (n_samples, n_estimators)이며 각 열은 해당 트리의 리프"""
    X, y = _blobs()

    rf = RandomForestClassifier(n_estimators=5, max_depth=3, random_state=1).fit(X, y)
    leaves = rf.apply(X)

    assert leaves.shape == (150, 5)
    for j, tree in enumerate(rf.estimators_):
        assert np.all(np.isin(leaves[:, j], tree.get_leaf_ids()))


def test_vote_and_proba_can_disagree():
    """다수결 레이블과 평균 확률의 argmax는 다를 수 있음"""
    members = [
        _FixedMember([0], [[0.6, 0.4]], [0, 1]),
        _FixedMember([0], [[0.6, 0.4]], [0, 1]),
        _FixedMember([1], [[0.0, 1.0]], [0, 1]),
    ]
    forest = _forest_with_members(members, [0, 1])
    X = np.zeros((1, 1))

    proba = forest.predict_proba(X)

    assert np.array_equal(forest.predict(X), [0])
    assert np.allclose(proba, [[0.4, 0.6]])
    assert np.argmax(proba[0]) == 1


def test_vote_tie_breaks_by_first_appearance():
    """동률이면 트리 순서상 먼저 나온 레이블 (레이블 크기와 무관)"""
    members = [
        _FixedMember([2, 0], [[1.0], [1.0]], [0]),
        _FixedMember([0, 2], [[1.0], [1.0]], [0]),
        _FixedMember([0, 2], [[1.0], [1.0]], [0]),
        _FixedMember([2, 0], [[1.0], [1.0]], [0]),
    ]
    forest = _forest_with_members(members, [0, 1, 2])

    assert np.array_equal(forest.predict(np.zeros((2, 1))), [2, 0])


def test_proba_realigns_member_classes():
    """구성원이 보지 못한 클래스의 확률은 0으로 채워 평균"""
    members = [
        _FixedMember([2], [[0.2, 0.3, 0.5]], [0, 1, 2]),
        _FixedMember([2], [[1.0]], [2]),
    ]
    forest = _forest_with_members(members, [0, 1, 2])

    assert np.allclose(forest.predict_proba(np.zeros((1, 1))), [[0.1, 0.15, 0.75]])


def test_sequential_and_parallel_identical():
    """같은 루트 시드면 실행 방식과 무관하게 같은 포레스트"""
    X, y = _blobs()

    sequential = RandomForestClassifier(n_estimators=6, random_state=11).fit(X, y)
    parallel = RandomForestClassifier(
        n_estimators=6, random_state=11, execution='parallel', n_jobs=2
    ).fit(X, y)

    assert [t.export_tree_structure() for t in sequential.estimators_] == \
        [t.export_tree_structure() for t in parallel.estimators_]
    for a, b in zip(sequential.estimators_samples_, parallel.estimators_samples_):
        assert np.array_equal(a, b)
    assert np.array_equal(sequential.predict(X), parallel.predict(X))
    assert np.array_equal(sequential.predict_proba(X), parallel.predict_proba(X))
    assert np.array_equal(sequential.feature_importances_, parallel.feature_importances_)


def test_root_seed_controls_forest():
    X, y = _blobs()

    a = RandomForestClassifier(n_estimators=3, random_state=5).fit(X, y)
    b = RandomForestClassifier(n_estimators=3, random_state=5).fit(X, y)
    c = RandomForestClassifier(n_estimators=3, random_state=6).fit(X, y)

    assert np.array_equal(a.estimators_samples_[0], b.estimators_samples_[0])
    assert not np.array_equal(a.estimators_samples_[0], c.estimators_samples_[0])


def test_member_failure_propagates():
    X, y = _blobs()
    rf = RandomForestClassifier(n_estimators=3)
    rf._tree_class = _FailingTree

    with pytest.raises(RuntimeError, match="tree failed"):
        rf.fit(X, y)

    assert rf.estimators_ == []


def test_random_forest_input_errors():
    X, y = _blobs()

    with pytest.raises(ShapeMismatchError):
        RandomForestClassifier(n_estimators=2).fit(X, y[:-5])

    with pytest.raises(UnsupportedInputError):
        RandomForestClassifier(n_estimators=2).fit(X, np.column_stack([y, y]))

    with pytest.raises(InvalidConfigurationError):
        RandomForestClassifier(n_estimators=2, execution='threads').fit(X, y)

    with pytest.raises(InvalidConfigurationError):
        RandomForestClassifier(n_estimators=2, random_state=None).fit(X, y)

    with pytest.raises(InvalidConfigurationError):
        RandomForestClassifier(n_estimators=0).fit(X, y)

    with pytest.raises(NotFittedError):
        RandomForestClassifier().predict(X)


def test_random_forest_oob_score():
    X, y = _blobs()

    rf = RandomForestClassifier(n_estimators=20, oob_score=True, random_state=3).fit(X, y)

    assert 0.0 <= rf.oob_score_ <= 1.0
    assert rf.oob_score_ > 0.8
    assert rf.oob_decision_function_.shape == (150, 3)
    assert rf.get_oob_score() == rf.oob_score_
    print(f"  ✓ OOB Score: {rf.oob_score_:.4f}")


def test_random_forest_regressor():
    """Random Forest 회귀 및 불확실성 추정"""
    rng = np.random.default_rng(42)
    X = rng.normal(size=(200, 5))
    y = X[:, 0] * 2 + X[:, 1] + rng.normal(size=200) * 0.1

    rf = RandomForestRegressor(n_estimators=20, max_features=None, random_state=42).fit(X, y)
    pred, lower, upper = rf.predict_with_uncertainty(X[:10])
    std = rf.predict_std(X[:10])

    assert rf.max_features_ == 5
    assert rf.score(X, y) > 0.8
    assert np.all(lower <= upper)
    assert np.all(std >= 0)
    assert np.allclose(pred, rf.predict(X[:10]))
    assert abs(rf.feature_importances_.sum() - 1.0) < 1e-9
    assert np.argmax(rf.feature_importances_) == 0
    print(f"  ✓ R²: {rf.score(X, y):.4f}")


def test_random_forest_regressor_staged_and_oob():
    rng = np.random.default_rng(0)
    X = rng.uniform(-1, 1, size=(120, 3))
    y = np.sin(3 * X[:, 0]) + X[:, 1]

    rf = RandomForestRegressor(n_estimators=8, oob_score=True, random_state=2).fit(X, y)
    staged = rf.staged_predict(X)

    assert rf.max_features_ == 1
    assert staged.shape == (8, 120)
    assert np.allclose(staged[-1], rf.predict(X))
    assert rf.oob_prediction_.shape == (120,)
    assert rf.oob_score_ is not None

    with pytest.raises(UnsupportedInputError):
        RandomForestRegressor(n_estimators=2).fit(X, np.column_stack([y, y]))


def test_get_params():
    rf = RandomForestClassifier(n_estimators=7, execution='parallel', n_jobs=2)
    params = rf.get_params()

    assert params['n_estimators'] == 7
    assert params['execution'] == 'parallel'
    assert params['random_state'] == 0
    assert repr(rf) == "RandomForestClassifier(not fitted)"


def test_failed_refit_keeps_previous_forest():
    """재학습이 실패하면 이전 학습 결과가 그대로 남음"""
    X, y = _blobs()

    rf = RandomForestClassifier(n_estimators=4, oob_score=True, random_state=1).fit(X, y)
    estimators = list(rf.estimators_)
    classes = rf.classes_.copy()
    before = rf.predict(X)
    oob_decision = rf.oob_decision_function_

    rf._tree_class = _FailingTree
    with pytest.raises(RuntimeError, match="tree failed"):
        rf.fit(X[:, :2], y + 10)

    assert rf.estimators_ == estimators
    assert np.array_equal(rf.classes_, classes)
    assert rf.n_features_ == 4
    assert rf.oob_decision_function_ is oob_decision
    assert np.array_equal(rf.predict(X), before)
    print("  ✓ 실패한 재학습 후 이전 모델 유지")


def test_random_forest_criterion_and_leaf_budget():
    X, y = _blobs()

    rf = RandomForestClassifier(
        n_estimators=5, criterion='entropy', max_leaf_nodes=3, random_state=4
    ).fit(X, y)

    assert all(tree.criterion == 'entropy' for tree in rf.estimators_)
    assert all(tree.get_n_leaves() <= 3 for tree in rf.estimators_)
    assert all(record['tree_n_leaves'] <= 3 for record in rf.training_history_)
    assert rf.get_params()['max_leaf_nodes'] == 3

    reg = RandomForestRegressor(n_estimators=3, max_leaf_nodes=2, random_state=4)
    reg.fit(X, y.astype(float))

    assert reg.criterion == 'mse'
    assert all(tree.get_n_leaves() <= 2 for tree in reg.estimators_)

    with pytest.raises(InvalidConfigurationError):
        RandomForestClassifier(n_estimators=2, criterion='mse').fit(X, y)

    with pytest.raises(InvalidConfigurationError):
        RandomForestRegressor(n_estimators=2, criterion='gini').fit(X, y)

    with pytest.raises(InvalidConfigurationError):
        RandomForestClassifier(n_estimators=2, max_leaf_nodes=0).fit(X, y)


def test_random_forest_rejects_one_dimensional_fit_input():
    X, y = _blobs()
    rf = RandomForestClassifier(n_estimators=3, random_state=0).fit(X, y)

    with pytest.raises(ShapeMismatchError):
        RandomForestClassifier(n_estimators=2).fit(X[:, 0], y)

    # 예측에서는 1차원 입력을 샘플 하나로 처리
    assert rf.predict(X[0]).shape == (1,)
    assert rf.predict_proba(X[0]).shape == (1, 3)
