"""
Execution Strategy - 구성원 단위 순차/병렬 실행
===============================================

배깅의 각 트리는 시드가 미리 분배된 뒤에는 서로 독립이므로
joblib으로 병렬 실행할 수 있습니다.

- 'sequential': 단순 루프
- 'parallel': joblib.Parallel + delayed

두 방식 모두 결과를 작업(구성원 인덱스) 순서로 반환합니다.
한 구성원에서 발생한 예외는 그대로 전파되어 전체 학습을 중단합니다.

Author: Ensemble From Scratch Project
"""

from enum import Enum
from typing import Any, Callable, Iterable, List, Optional

from joblib import Parallel, delayed

from .exceptions import InvalidConfigurationError


class ExecutionStrategy(str, Enum):
    SEQUENTIAL = 'sequential'
    PARALLEL = 'parallel'


def resolve_execution(execution) -> ExecutionStrategy:
    """문자열 또는 ExecutionStrategy를 ExecutionStrategy로 변환"""
    try:
        return ExecutionStrategy(execution)
    except ValueError:
        raise InvalidConfigurationError(
            f"execution은 'sequential' 또는 'parallel'이어야 합니다: {execution!r}"
        ) from None


def run_members(
    func: Callable[..., Any],
    tasks: Iterable[tuple],
    execution=ExecutionStrategy.SEQUENTIAL,
    n_jobs: Optional[int] = None,
    verbose: int = 0
) -> List[Any]:
    """
    각 작업에 func를 적용하고 결과를 작업 순서대로 반환

    Parameters
    ----------
    func : callable
        구성원 하나를 처리하는 함수. 피클 가능한 모듈 수준 함수여야 함
    tasks : iterable of tuple
        func에 위치 인자로 전달할 인자 튜플들
    execution : str or ExecutionStrategy
        'sequential' 또는 'parallel'
    n_jobs : int, optional
        병렬 작업 수 (parallel일 때만 사용, None이면 -1)
    verbose : int
        joblib 출력 수준

    Returns
    -------
    results : list
        tasks와 같은 순서의 결과
    """
    strategy = resolve_execution(execution)
    tasks = list(tasks)

    if strategy is ExecutionStrategy.SEQUENTIAL:
        return [func(*args) for args in tasks]

    # Parallel은 완료 순서가 아닌 입력 순서로 결과를 모음
    return Parallel(n_jobs=-1 if n_jobs is None else n_jobs, verbose=verbose)(
        delayed(func)(*args) for args in tasks
    )
