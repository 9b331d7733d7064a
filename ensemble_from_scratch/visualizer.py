"""
Ensemble Visualizer - 앙상블 학습 과정 시각화 도구
==================================================

학습된 앙상블의 내부 동작을 시각화합니다.

주요 기능:
- 부스팅 라운드별 오차와 샘플 가중치 분포
- 피처 중요도 비교
- 앙상블 크기에 따른 예측 수렴 과정
- 랜덤 포레스트 투표 분포

Author: Ensemble From Scratch Project
"""

import numpy as np
import matplotlib.pyplot as plt
from typing import Optional, List, Dict, Tuple, Any


class EnsembleVisualizer:
    """
    앙상블 모델 시각화 클래스

    Parameters
    ----------
    figsize : tuple, default=(12, 8)
        기본 Figure 크기

    style : str, optional
        Matplotlib 스타일

    dpi : int, default=100
        Figure DPI
    """

    def __init__(
        self,
        figsize: Tuple[int, int] = (12, 8),
        style: Optional[str] = None,
        dpi: int = 100
    ):
        self.figsize = figsize
        self.style = style
        self.dpi = dpi

        if self.style:
            try:
                plt.style.use(self.style)
            except OSError:
                pass  # 스타일을 찾을 수 없으면 기본값 사용

        # 색상 팔레트
        self.colors = {
            'primary': '#2E86AB',
            'secondary': '#A23B72',
            'accent': '#F18F01',
            'neutral': '#3B3B3B',
            'train': '#2E86AB',
            'val': '#F18F01'
        }

    def plot_boosting_curve(
        self,
        model,
        title: str = "Boosting Learning Curve",
        figsize: Optional[Tuple[int, int]] = None
    ) -> plt.Figure:
        """
        부스팅 모델의 라운드별 오차와 샘플 가중치 분포

        Parameters
        ----------
        model : AdaBoostClassifier or AdaBoostRegressor
            학습된 부스팅 모델
        title : str
            그래프 제목
        figsize : tuple, optional
            Figure 크기

        Returns
        -------
        fig : matplotlib.Figure
        """
        history = model.training_history_

        if not history:
            raise ValueError("학습 이력이 없습니다.")

        fig, axes = plt.subplots(1, 2, figsize=figsize or (14, 5), dpi=self.dpi)
        iterations = [h['iteration'] for h in history]

        # 1. 라운드별 오차
        ax1 = axes[0]
        error_key = 'error' if 'error' in history[0] else 'avg_loss'
        ax1.plot(iterations, [h[error_key] for h in history],
                 marker='o', color=self.colors['primary'], linewidth=2,
                 label='Weighted Error' if error_key == 'error' else 'Avg Loss')
        ax1.axhline(y=0.5, color='red', linestyle='--', alpha=0.5)
        ax1.set_xlabel('Round', fontsize=11)
        ax1.set_ylabel('Error / Loss', fontsize=11)
        ax1.set_title('Learning Curve', fontsize=12, fontweight='bold')
        ax1.legend(loc='upper right')
        ax1.grid(True, alpha=0.3)

        # 2. 샘플 가중치 분포
        ax2 = axes[1]
        ax2.plot(iterations, [h['max_weight'] for h in history],
                 color=self.colors['secondary'], linewidth=2, label='Max Weight')
        ax2.plot(iterations, [h['min_weight'] for h in history],
                 color=self.colors['accent'], linewidth=2, label='Min Weight')
        ax2.set_yscale('log')
        ax2.set_xlabel('Round', fontsize=11)
        ax2.set_ylabel('Sample Weight', fontsize=11)
        ax2.set_title('Observation Weights', fontsize=12, fontweight='bold')
        ax2.grid(True, alpha=0.3)

        ax2_entropy = ax2.twinx()
        ax2_entropy.plot(iterations, [h['weight_entropy'] for h in history],
                         color=self.colors['neutral'], linestyle='--', label='Entropy')
        ax2_entropy.set_ylabel('Weight Entropy', fontsize=11)

        lines = ax2.get_lines() + ax2_entropy.get_lines()
        ax2.legend(lines, [line.get_label() for line in lines], loc='upper left')

        fig.suptitle(title, fontsize=14, fontweight='bold', y=1.02)
        plt.tight_layout()
        return fig

    def plot_feature_importance(
        self,
        models: Dict[str, Any],
        feature_names: Optional[List[str]] = None,
        top_k: int = 15,
        figsize: Optional[Tuple[int, int]] = None,
        title: str = "Feature Importance Comparison"
    ) -> plt.Figure:
        """
        여러 모델의 피처 중요도 비교

        Parameters
        ----------
        models : dict
            {모델명: 모델객체} 딕셔너리
        feature_names : list, optional
            피처 이름 리스트
        top_k : int
            표시할 상위 피처 수

        Returns
        -------
        fig : matplotlib.Figure
        """
        n_models = len(models)
        fig, axes = plt.subplots(1, n_models, figsize=figsize or (5 * n_models, 6), dpi=self.dpi)

        if n_models == 1:
            axes = [axes]

        colors = plt.cm.Set2(np.linspace(0, 1, n_models))

        for idx, (name, model) in enumerate(models.items()):
            ax = axes[idx]

            if model.feature_importances_ is None:
                ax.text(0.5, 0.5, 'Not fitted', ha='center', va='center')
                continue

            importances = model.feature_importances_
            names = feature_names or [f'Feature {i}' for i in range(len(importances))]

            indices = np.argsort(importances)[::-1][:top_k]

            ax.barh(range(len(indices)), importances[indices], color=colors[idx], alpha=0.8)
            ax.set_yticks(range(len(indices)))
            ax.set_yticklabels([names[i] for i in indices])
            ax.invert_yaxis()
            ax.set_xlabel('Importance', fontsize=10)
            ax.set_title(name, fontsize=11, fontweight='bold')
            ax.grid(True, alpha=0.3, axis='x')

        fig.suptitle(title, fontsize=14, fontweight='bold', y=1.02)
        plt.tight_layout()
        return fig

    def plot_ensemble_convergence(
        self,
        model,
        X: np.ndarray,
        y: np.ndarray,
        figsize: Optional[Tuple[int, int]] = None,
        title: str = "Ensemble Convergence"
    ) -> plt.Figure:
        """
        학습기 수에 따른 성능 변화

        분류 모델(classes_ 보유)은 정확도, 회귀 모델은 MSE를 그립니다.

        Parameters
        ----------
        model : 앙상블 모델
            staged_predict 메서드가 있어야 함
        X : ndarray
            입력 데이터
        y : ndarray
            실제 타겟값

        Returns
        -------
        fig : matplotlib.Figure
        """
        if not hasattr(model, 'staged_predict'):
            raise ValueError("모델에 staged_predict 메서드가 없습니다.")

        staged_preds = model.staged_predict(X)
        n_stages = np.arange(1, staged_preds.shape[0] + 1)
        y = np.asarray(y).ravel()

        if getattr(model, 'classes_', None) is not None:
            curve = [np.mean(stage == y) for stage in staged_preds]
            ylabel = 'Accuracy'
        else:
            curve = [np.mean((stage - y) ** 2) for stage in staged_preds]
            ylabel = 'MSE'

        fig, ax = plt.subplots(figsize=figsize or (10, 5), dpi=self.dpi)
        ax.plot(n_stages, curve, color=self.colors['primary'], linewidth=2, marker='o')
        ax.fill_between(n_stages, curve, alpha=0.2, color=self.colors['primary'])
        ax.set_xlabel('Number of Estimators', fontsize=11)
        ax.set_ylabel(ylabel, fontsize=11)
        ax.set_title(title, fontsize=12, fontweight='bold')
        ax.grid(True, alpha=0.3)

        plt.tight_layout()
        return fig

    def plot_vote_distribution(
        self,
        forest,
        X: np.ndarray,
        bins: int = 20,
        figsize: Optional[Tuple[int, int]] = None,
        title: str = "Random Forest Vote Share"
    ) -> plt.Figure:
        """
        샘플별 최다 득표 클래스의 득표율 분포

        득표율이 1/K 근처인 샘플은 트리 간 의견이 갈리는 샘플입니다.

        Parameters
        ----------
        forest : RandomForestClassifier
            학습된 포레스트
        X : ndarray
            입력 데이터
        bins : int
            히스토그램 구간 수

        Returns
        -------
        fig : matplotlib.Figure
        """
        predictions = np.array([tree.predict(X) for tree in forest.estimators_])
        winners = forest.predict(X)
        vote_share = np.mean(predictions == winners, axis=0)

        fig, ax = plt.subplots(figsize=figsize or (10, 5), dpi=self.dpi)
        ax.hist(vote_share, bins=bins, range=(0, 1),
                color=self.colors['secondary'], alpha=0.8, edgecolor='white')
        ax.axvline(x=1.0 / len(forest.classes_), color='red', linestyle='--', alpha=0.5)
        ax.set_xlabel('Vote Share of Predicted Class', fontsize=11)
        ax.set_ylabel('Samples', fontsize=11)
        ax.set_title(title, fontsize=12, fontweight='bold')
        ax.grid(True, alpha=0.3)

        plt.tight_layout()
        return fig

    def save_figure(
        self,
        fig: plt.Figure,
        filepath: str,
        dpi: Optional[int] = None
    ):
        """Figure 저장"""
        fig.savefig(filepath, dpi=dpi or self.dpi, bbox_inches='tight',
                    facecolor='white', edgecolor='none')
        print(f"Figure saved: {filepath}")
