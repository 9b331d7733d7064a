"""
Ensemble From Scratch - 앙상블 메타 추정기 직접 구현
=====================================================

약한 학습기 여러 개를 결합해 하나의 강한 예측기를 만드는
배깅/부스팅 알고리즘을 NumPy로 직접 구현합니다.

구현된 알고리즘:
- RandomForestClassifier / RandomForestRegressor: 배깅 + 랜덤 피처 선택
- AdaBoostClassifier: SAMME.R 멀티클래스 부스팅
- AdaBoostRegressor: AdaBoost.R2 부스팅
- DecisionTreeClassifier / DecisionTreeRegressor: CART 약한 학습기

구성원별 시드는 루트 시드에서 미리 분배되며, 포레스트는
joblib으로 병렬 학습해도 순차 학습과 같은 결과를 냅니다.

Author: Ensemble From Scratch Project
"""

from .exceptions import (
    EnsembleError,
    ShapeMismatchError,
    UnsupportedInputError,
    InvalidConfigurationError,
    NotFittedError,
)
from .base import WeakLearner, WeakClassifier
from .execution import ExecutionStrategy
from .sampling import spawn_seeds, bootstrap_indices, weighted_choice_indices
from .decision_tree import DecisionTreeClassifier, DecisionTreeRegressor
from .random_forest import RandomForestClassifier, RandomForestRegressor
from .adaboost import AdaBoostClassifier, AdaBoostRegressor, BoostingState
from .visualizer import EnsembleVisualizer

__all__ = [
    'EnsembleError',
    'ShapeMismatchError',
    'UnsupportedInputError',
    'InvalidConfigurationError',
    'NotFittedError',
    'WeakLearner',
    'WeakClassifier',
    'ExecutionStrategy',
    'spawn_seeds',
    'bootstrap_indices',
    'weighted_choice_indices',
    'DecisionTreeClassifier',
    'DecisionTreeRegressor',
    'RandomForestClassifier',
    'RandomForestRegressor',
    'AdaBoostClassifier',
    'AdaBoostRegressor',
    'BoostingState',
    'EnsembleVisualizer'
]

__version__ = '1.0.0'
