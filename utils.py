import os
import math
import pickle
import logging
from typing import Sequence

import numpy as np
import jax
import jax.numpy as jnp

logger = logging.getLogger(__name__)

# "infinite cost": a negative log probability at or above this is treated as zero mass
L_MAX = 1000000.0


def is_infinite_cost(w: float) -> bool:
  return w >= L_MAX


def neg_log_sum_exp(a: float, b: float) -> float:
  """
  -log(exp(-a) + exp(-b)), i.e. adds two probabilities held as negative logs.
  the infinite-cost sentinel is an identity element.
  """
  if is_infinite_cost(a):
    return b
  if is_infinite_cost(b):
    return a
  lo, hi = (a, b) if a <= b else (b, a)
  return lo - math.log1p(math.exp(lo - hi))


def neg_log_sum(weights: Sequence[float]) -> float:
  """folds neg_log_sum_exp over a sequence; empty sequences have infinite cost."""
  total = L_MAX
  for w in weights:
    total = neg_log_sum_exp(total, w)
  return total


def sample_log_multinomial(
  key: jax.Array, neg_log_weights: Sequence[float], num_samples: int
) -> np.ndarray:
  """
  draws num_samples independent categorical outcomes, with unnormalized
  negative log weights as the distribution, and returns per-outcome counts.
  all randomness comes from the explicit key.
  """
  n = len(neg_log_weights)
  counts = np.zeros(n, dtype=np.int64)
  if num_samples <= 0 or n == 0:
    return counts
  if n == 1:
    counts[0] = num_samples
    return counts

  weights = np.asarray(neg_log_weights, dtype=np.float64)
  finite = weights < L_MAX
  if not finite.any():
    # degenerate distribution: all mass goes to the first outcome
    counts[0] = num_samples
    return counts

  # shift by the best weight so the logits stay in a safe float32 range
  logits = np.where(finite, weights.min() - weights, -np.inf)
  draws = jax.random.categorical(
    key, jnp.asarray(logits, dtype=jnp.float32), shape=(num_samples,)
  )
  counts += np.bincount(np.asarray(draws), minlength=n)[:n]
  return counts


def sample_log_categorical(key: jax.Array, neg_log_weights: Sequence[float]) -> int:
  """single draw from a negative-log weighted categorical distribution."""
  return int(np.argmax(sample_log_multinomial(key, neg_log_weights, 1)))


def save_params(params, path: str) -> None:
  """saves scorer parameters to a file."""
  directory = os.path.dirname(path)
  if directory:
    os.makedirs(directory, exist_ok=True)
  with open(path, "wb") as f:
    pickle.dump(jax.device_get(params), f)
  logger.info("model parameters saved to %s", path)


def load_params(path: str):
  """loads scorer parameters from a file."""
  with open(path, "rb") as f:
    params = pickle.load(f)
  logger.info("model parameters loaded from %s", path)
  return params
