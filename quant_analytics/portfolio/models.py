"""
Portfolio Models
================
Validated portfolio inputs: weights, expected returns and covariance.
"""

import pandas as pd
import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
import logging

from ..errors import InvalidInputError

logger = logging.getLogger(__name__)

WEIGHT_TOLERANCE = 1e-6


@dataclass(frozen=True)
class AssetClassification:
    """Grouping keys used by attribution."""
    sector: Optional[str] = None
    asset_class: Optional[str] = None
    geography: Optional[str] = None

    def to_dict(self) -> dict:
        return {'sector': self.sector, 'asset_class': self.asset_class, 'geography': self.geography}


class CovarianceMatrix:
    """
    Symmetric covariance matrix with an explicit symbol order.

    Rejects non-square, asymmetric or negative-diagonal input.
    """

    def __init__(self, symbols: Sequence[str], matrix, tolerance: float = 1e-9):
        symbols = list(symbols)
        matrix = np.asarray(matrix, dtype=float)
        if len(set(symbols)) != len(symbols):
            raise InvalidInputError("Duplicate symbols in covariance matrix")
        if matrix.shape != (len(symbols), len(symbols)):
            raise InvalidInputError(f"Covariance shape {matrix.shape} does not match {len(symbols)} symbols")
        if not np.allclose(matrix, matrix.T, atol=tolerance):
            raise InvalidInputError("Covariance matrix is not symmetric")
        if np.any(np.diag(matrix) < 0):
            raise InvalidInputError("Covariance matrix has a negative variance")
        self.symbols: List[str] = symbols
        self._matrix = matrix.copy()
        self._matrix.flags.writeable = False

    @property
    def matrix(self) -> np.ndarray:
        return self._matrix

    def variance(self, symbol: str) -> float:
        i = self.symbols.index(symbol)
        return float(self._matrix[i, i])

    def variances(self) -> Dict[str, float]:
        return {s: float(v) for s, v in zip(self.symbols, np.diag(self._matrix))}

    def subset(self, symbols: Sequence[str]) -> 'CovarianceMatrix':
        idx = [self.symbols.index(s) for s in symbols]
        return CovarianceMatrix(symbols, self._matrix[np.ix_(idx, idx)])

    def portfolio_variance(self, weights: Dict[str, float]) -> float:
        w = np.array([weights.get(s, 0.0) for s in self.symbols])
        return float(w @ self._matrix @ w)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self._matrix, index=self.symbols, columns=self.symbols)

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> 'CovarianceMatrix':
        return cls(list(df.columns), df.loc[list(df.columns), list(df.columns)].to_numpy())

    @classmethod
    def from_prices(cls, price_map: Dict[str, Sequence[float]], trading_days: int = 252,
                    annualize: bool = True) -> 'CovarianceMatrix':
        """Sample covariance of simple returns over the common tail."""
        n = min(len(p) for p in price_map.values())
        if n < 3:
            raise InvalidInputError("Need at least three aligned prices per asset for a covariance")
        prices = pd.DataFrame({s: np.asarray(p, dtype=float)[-n:] for s, p in price_map.items()})
        cov = prices.pct_change().dropna().cov()
        if annualize:
            cov = cov * trading_days
        return cls.from_frame(cov)

    def __len__(self) -> int:
        return len(self.symbols)

    def __repr__(self) -> str:
        return f"CovarianceMatrix({self.symbols})"


@dataclass
class Portfolio:
    """Weights over symbols (summing to 1) with optional return/risk inputs."""
    weights: Dict[str, float]
    expected_returns: Dict[str, float] = field(default_factory=dict)
    covariance: Optional[CovarianceMatrix] = None
    classifications: Dict[str, AssetClassification] = field(default_factory=dict)

    def __post_init__(self):
        if not self.weights:
            raise InvalidInputError("Portfolio needs at least one holding")
        total = sum(self.weights.values())
        if abs(total - 1) > WEIGHT_TOLERANCE:
            raise InvalidInputError(f"Portfolio weights sum to {total:.8f}, expected 1")
        if self.covariance is not None:
            missing = [s for s in self.weights if s not in self.covariance.symbols]
            if missing:
                raise InvalidInputError(f"Covariance lacks {missing}")

    @property
    def symbols(self) -> List[str]:
        return list(self.weights)

    def expected_return(self) -> Optional[float]:
        if not self.expected_returns:
            return None
        return float(sum(w * self.expected_returns.get(s, 0.0) for s, w in self.weights.items()))

    def volatility(self) -> Optional[float]:
        if self.covariance is None:
            return None
        return float(np.sqrt(max(self.covariance.portfolio_variance(self.weights), 0.0)))

    def to_dict(self) -> dict:
        return {
            'weights': dict(self.weights),
            'expected_return': self.expected_return(),
            'volatility': self.volatility(),
            'classifications': {s: c.to_dict() for s, c in self.classifications.items()}
        }
