"""
앙상블 예외 계층
================

학습/예측 중 발생하는 오류를 종류별로 구분합니다.

- ShapeMismatchError: X와 y의 샘플 수 불일치 (복구하지 않음)
- UnsupportedInputError: 다중 타겟 등 지원하지 않는 입력
- InvalidConfigurationError: 사용할 수 없는 하이퍼파라미터
- NotFittedError: 학습 전 예측 호출

부스팅의 조기 종료(오차 0, 가중치 붕괴)는 예외가 아니라
학습기 수로 보고되는 정상 종료입니다.

Author: Ensemble From Scratch Project
"""


class EnsembleError(Exception):
    """패키지 예외의 기본 클래스"""


class ShapeMismatchError(EnsembleError, ValueError):
    """샘플 수 또는 배열 차원이 맞지 않음"""


class UnsupportedInputError(EnsembleError, ValueError):
    """단일 출력 모델에 다중 타겟 등 지원하지 않는 입력이 주어짐"""


class InvalidConfigurationError(EnsembleError, ValueError):
    """하이퍼파라미터 값이 유효하지 않음"""


class NotFittedError(EnsembleError, RuntimeError):
    """fit() 이전에 예측 메서드가 호출됨"""
