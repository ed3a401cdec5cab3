# decision_engine/bandit.py
"""
Multi-armed bandit selection policies.

Supports:
- Thompson Sampling over Beta posteriors (default)
- UCB1 (Upper Confidence Bound)
- Epsilon-greedy

Every policy takes an ordered list of candidate keys plus a mapping of
per-arm statistics and returns one key. Ties go to the earliest candidate.
"""

from __future__ import annotations

import math
import random
from enum import Enum
from typing import TYPE_CHECKING, Mapping, Sequence

if TYPE_CHECKING:
    from .arms import ArmStatistics

# 95% two-sided normal quantile
WILSON_Z = 1.96

# Gamma shape floor for arms whose rewards exceed their pulls
_MIN_SHAPE = 1e-3


class BanditAlgorithm(str, Enum):
    THOMPSON = "thompson"
    UCB1 = "ucb1"
    EPSILON_GREEDY = "epsilon_greedy"


def _pulls_rewards(stats: Mapping[str, ArmStatistics], key: str) -> tuple[int, float]:
    s = stats.get(key)
    if s is None:
        return 0, 0.0
    return s.pulls, s.rewards


def _mean(stats: Mapping[str, ArmStatistics], key: str) -> float:
    n, total = _pulls_rewards(stats, key)
    return total / n if n else 0.0


def wilson_interval(p_hat: float, n: int, z: float = WILSON_Z) -> tuple[float, float]:
    """
    Wilson score interval (lower, upper) for an observed rate.

    Assumes Bernoulli-like rewards in [0, 1]; outside that range the
    variance term is clamped at zero instead of raising. (0, 0) when n is 0.
    """
    if n <= 0:
        return (0.0, 0.0)

    z2 = z * z
    denominator = 1 + z2 / n
    centre = p_hat + z2 / (2 * n)
    radicand = (p_hat * (1 - p_hat) + z2 / (4 * n)) / n
    margin = z * math.sqrt(max(0.0, radicand))
    return ((centre - margin) / denominator, (centre + margin) / denominator)


def wilson_lower_bound(p_hat: float, n: int, z: float = WILSON_Z) -> float:
    """Lower bound of the Wilson score interval."""
    return wilson_interval(p_hat, n, z)[0]


def sample_gamma(shape: float, rng: random.Random, *, exact: bool = True) -> float:
    """
    Draw from Gamma(shape, 1).

    exact=False sums ceil(shape) unit exponentials, which is only right for
    integer shapes. exact=True uses the standard library's gammavariate.
    """
    shape = max(shape, _MIN_SHAPE)
    if exact:
        return rng.gammavariate(shape, 1.0)

    total = 0.0
    for _ in range(math.ceil(shape)):
        # 1 - random() lies in (0, 1], so log never sees zero
        total += -math.log(1.0 - rng.random())
    return total


def sample_beta(alpha: float, beta: float, rng: random.Random, *, exact: bool = True) -> float:
    """Draw from Beta(alpha, beta) as a ratio of two Gamma draws."""
    g1 = sample_gamma(alpha, rng, exact=exact)
    g2 = sample_gamma(beta, rng, exact=exact)
    if g1 + g2 == 0.0:
        return 0.5
    return g1 / (g1 + g2)


def thompson_select(
    candidates: Sequence[str],
    stats: Mapping[str, ArmStatistics],
    *,
    rng: random.Random | None = None,
    exact: bool = True,
) -> str:
    """
    Thompson sampling with a Beta(rewards + 1, failures + 1) posterior.

    Arms with no history sample from Beta(1, 1), i.e. uniform.
    """
    rng = rng or random.Random()

    best_key = None
    best_sample = -float("inf")

    for k in candidates:
        n, total = _pulls_rewards(stats, k)
        sample = sample_beta(total + 1, n - total + 1, rng, exact=exact)
        if sample > best_sample:
            best_sample = sample
            best_key = k

    if best_key is None:
        raise ValueError("No candidates to select from")
    return best_key


def ucb_select(
    candidates: Sequence[str],
    stats: Mapping[str, ArmStatistics],
) -> str:
    """
    UCB1 (Upper Confidence Bound) selection.

    Score = mean + sqrt(2 * ln(total) / n)

    With no pulls at all the first candidate is returned. Otherwise an
    unexplored arm wins outright, since its bound is infinite; when several
    are unexplored the first in candidate order wins, matching the
    first-occurrence tie rule of the other policies. (A last-wins scan
    would pick the final unexplored arm instead.)
    """
    cand_list = list(candidates)
    if not cand_list:
        raise ValueError("No candidates to select from")

    total_pulls = sum(_pulls_rewards(stats, k)[0] for k in cand_list)
    if total_pulls == 0:
        return cand_list[0]

    best_key = cand_list[0]
    best_score = -float("inf")

    for k in cand_list:
        n, total = _pulls_rewards(stats, k)
        if n == 0:
            return k

        score = total / n + math.sqrt(2 * math.log(total_pulls) / n)
        if score > best_score:
            best_score = score
            best_key = k

    return best_key


def greedy_select(candidates: Sequence[str], stats: Mapping[str, ArmStatistics]) -> str:
    """Pick the highest mean reward, first occurrence on ties."""
    cand_list = list(candidates)
    if not cand_list:
        raise ValueError("No candidates to select from")

    best_key = cand_list[0]
    best_mean = _mean(stats, best_key)
    for k in cand_list[1:]:
        mean = _mean(stats, k)
        if mean > best_mean:
            best_mean = mean
            best_key = k
    return best_key


def epsilon_greedy_select(
    candidates: Sequence[str],
    stats: Mapping[str, ArmStatistics],
    *,
    epsilon: float = 0.1,
    rng: random.Random | None = None,
) -> str:
    """
    Epsilon-greedy selection.

    With probability epsilon, choose random arm.
    Otherwise, choose arm with highest mean reward.
    """
    rng = rng or random.Random()
    cand_list = list(candidates)
    if not cand_list:
        raise ValueError("No candidates to select from")

    if rng.random() < epsilon:
        return rng.choice(cand_list)
    return greedy_select(cand_list, stats)


def select_arm(
    candidates: Sequence[str],
    stats: Mapping[str, ArmStatistics],
    *,
    algorithm: BanditAlgorithm | str = BanditAlgorithm.THOMPSON,
    rng: random.Random | None = None,
    **kwargs,
) -> str:
    """
    Unified arm selection with configurable algorithm.

    Args:
        candidates: Available arm keys, in tie-break order
        stats: Statistics per arm key
        algorithm: Which bandit algorithm to use
        rng: Random source (for Thompson/epsilon-greedy)
        **kwargs: Algorithm-specific parameters
            - epsilon: for epsilon_greedy (default 0.1)
            - exact: for thompson, exact Gamma draws (default True)

    Returns:
        Selected arm key
    """
    algorithm = BanditAlgorithm(algorithm)
    if algorithm == BanditAlgorithm.THOMPSON:
        return thompson_select(candidates, stats, rng=rng, exact=kwargs.get("exact", True))
    elif algorithm == BanditAlgorithm.UCB1:
        return ucb_select(candidates, stats)
    elif algorithm == BanditAlgorithm.EPSILON_GREEDY:
        return epsilon_greedy_select(
            candidates,
            stats,
            epsilon=kwargs.get("epsilon", 0.1),
            rng=rng,
        )
    else:
        raise ValueError(f"Unknown algorithm: {algorithm}")


def estimate_regret(stats: Mapping[str, ArmStatistics]) -> float:
    """
    Estimate cumulative regret.

    Regret = sum of (best_mean - arm_mean) * arm_pulls
    """
    if not stats:
        return 0.0

    best_mean = max(s.avg_reward for s in stats.values())
    return sum((best_mean - s.avg_reward) * s.pulls for s in stats.values())
