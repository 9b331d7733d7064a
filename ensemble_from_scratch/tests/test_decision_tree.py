"""
약한 학습기(CART) 검증

Author: Ensemble From Scratch Project
"""

import numpy as np
import pytest

from ensemble_from_scratch import (
    DecisionTreeClassifier,
    DecisionTreeRegressor,
    NotFittedError,
    InvalidConfigurationError,
    ShapeMismatchError,
    WeakClassifier,
    WeakLearner,
)


def _separable_data():
    X = np.column_stack([
        np.concatenate([np.linspace(0, 1, 10), np.linspace(10, 11, 10)]),
        np.tile([0.0, 1.0], 10)
    ])
    y = np.array([0] * 10 + [1] * 10)
    return X, y


def test_classifier_single_split():
    """깊이 1로 완전히 분리되는 데이터"""
    X, y = _separable_data()

    tree = DecisionTreeClassifier(max_depth=1, random_state=0).fit(X, y)

    assert np.array_equal(tree.predict(X), y)
    assert tree.get_depth() == 1
    assert tree.get_n_leaves() == 2
    assert np.array_equal(tree.classes_, [0, 1])
    assert np.allclose(tree.feature_importances_, [1.0, 0.0])
    assert 1.0 < tree.root_.threshold < 10.0
    assert isinstance(tree, WeakLearner)


def test_classifier_proba_and_leaves():
    rng = np.random.default_rng(0)
    X = rng.normal(size=(80, 3))
    y = (X[:, 0] + X[:, 1] > 0).astype(int) + (X[:, 2] > 1).astype(int)

    tree = DecisionTreeClassifier(max_depth=4, random_state=1).fit(X, y)
    proba = tree.predict_proba(X)
    leaves = tree.apply(X)

    assert proba.shape == (80, len(tree.classes_))
    assert np.allclose(proba.sum(axis=1), 1.0)
    assert np.array_equal(tree.classes_[np.argmax(proba, axis=1)], tree.predict(X))
    assert np.all(np.isin(leaves, tree.get_leaf_ids()))
    assert len(tree.get_leaf_ids()) == tree.get_n_leaves()


def test_classifier_string_labels_and_entropy():
    X, y = _separable_data()
    labels = np.where(y == 0, 'cat', 'dog')

    tree = DecisionTreeClassifier(criterion='entropy', max_depth=2).fit(X, labels)

    assert list(tree.classes_) == ['cat', 'dog']
    assert np.array_equal(tree.predict(X), labels)


def test_classifier_local_classes():
    """학습기가 관측한 클래스만 classes_에 포함"""
    X = np.array([[0.0], [1.0], [2.0]])
    tree = DecisionTreeClassifier().fit(X, np.array([3, 3, 3]))

    assert np.array_equal(tree.classes_, [3])
    assert tree.predict_proba(X).shape == (3, 1)
    assert np.allclose(tree.feature_importances_, 0.0)


def test_max_features_clamped():
    rng = np.random.default_rng(3)
    X = rng.normal(size=(30, 3))
    y = (X[:, 0] > 0).astype(int)

    for max_features in [0, 2, 100, 0.5, 'sqrt', 'log2']:
        tree = DecisionTreeClassifier(max_features=max_features, random_state=0).fit(X, y)
        assert 1 <= tree._get_n_features_to_sample(3) <= 3


def test_regressor_basic():
    """Decision Tree 회귀 기본 동작"""
    rng = np.random.default_rng(42)
    X = rng.normal(size=(100, 5))
    y = X[:, 0] * 2 + X[:, 1] + rng.normal(size=100) * 0.1

    tree = DecisionTreeRegressor(max_depth=3, random_state=42).fit(X, y)
    pred = tree.predict(X)
    mse = np.mean((y - pred) ** 2)

    assert tree.get_depth() <= 3
    assert len(pred) == len(y)
    assert mse < np.var(y), f"MSE가 분산보다 큼: {mse} vs {np.var(y)}"
    assert np.isclose(tree.feature_importances_.sum(), 1.0)
    print(f"  ✓ MSE: {mse:.4f}")


def test_regressor_pure_leaf():
    """모든 값이 동일하면 분할하지 않음"""
    X = np.array([[1], [2], [3], [4], [5]])
    y = np.array([5.0, 5.0, 5.0, 5.0, 5.0])

    tree = DecisionTreeRegressor(max_depth=10).fit(X, y)

    assert np.allclose(tree.predict(X), 5.0)
    assert tree.get_depth() == 0
    assert np.array_equal(tree.apply(X), [0, 0, 0, 0, 0])


def test_tree_input_errors():
    X, y = _separable_data()

    with pytest.raises(ShapeMismatchError):
        DecisionTreeClassifier().fit(X, y[:-1])

    with pytest.raises(NotFittedError):
        DecisionTreeClassifier().predict(X)

    tree = DecisionTreeClassifier().fit(X, y)
    with pytest.raises(ShapeMismatchError):
        tree.predict(X[:, :1])


def test_export_tree_structure():
    X, y = _separable_data()
    structure = DecisionTreeClassifier(max_depth=1).fit(X, y).export_tree_structure()

    assert structure['feature_idx'] == 0
    assert structure['left']['is_leaf'] and structure['right']['is_leaf']
    assert structure['left']['value'] == [1.0, 0.0]
    assert {structure['left']['node_id'], structure['right']['node_id']} == {1, 2}


def test_max_leaf_nodes_budget():
    """리프 수가 max_leaf_nodes를 넘지 않음"""
    rng = np.random.default_rng(0)
    X = rng.normal(size=(200, 3))
    y = (X[:, 0] + X[:, 1] > 0).astype(int) + (X[:, 2] > 1).astype(int)

    unbounded = DecisionTreeClassifier(random_state=0).fit(X, y)
    for budget in [1, 2, 3, 5]:
        tree = DecisionTreeClassifier(max_leaf_nodes=budget, random_state=0).fit(X, y)
        assert tree.get_n_leaves() <= budget
        assert tree.get_n_leaves() <= unbounded.get_n_leaves()

    stump = DecisionTreeClassifier(max_leaf_nodes=1).fit(X, y)
    assert stump.get_depth() == 0

    reg = DecisionTreeRegressor(max_leaf_nodes=4).fit(X, X[:, 0] * 2.0)
    assert reg.get_n_leaves() <= 4

    with pytest.raises(InvalidConfigurationError):
        DecisionTreeClassifier(max_leaf_nodes=0).fit(X, y)
    print(f"  ✓ 제한 없는 트리 리프 수: {unbounded.get_n_leaves()}")


def test_regressor_criterion():
    rng = np.random.default_rng(1)
    X = rng.normal(size=(30, 2))

    assert DecisionTreeRegressor().criterion == 'mse'
    with pytest.raises(InvalidConfigurationError):
        DecisionTreeRegressor(criterion='gini').fit(X, X[:, 0])


def test_one_dimensional_input():
    """학습에서는 1차원 X를 거부하고, 예측에서는 샘플 하나로 처리"""
    X, y = _separable_data()

    with pytest.raises(ShapeMismatchError, match="reshape"):
        DecisionTreeClassifier().fit(X[:, 0], y)

    with pytest.raises(ShapeMismatchError):
        DecisionTreeRegressor().fit(X[:, 0], y.astype(float))

    tree = DecisionTreeClassifier().fit(X, y)
    assert np.array_equal(tree.predict(X[0]), [0])
    assert tree.predict_proba(X[-1]).shape == (1, 2)


def test_weak_learner_protocols():
    """분류 트리만 WeakClassifier 인터페이스를 만족"""
    assert isinstance(DecisionTreeClassifier(), WeakClassifier)
    assert isinstance(DecisionTreeClassifier(), WeakLearner)
    assert isinstance(DecisionTreeRegressor(), WeakLearner)
    assert not isinstance(DecisionTreeRegressor(), WeakClassifier)
