import logging
from abc import ABC, abstractmethod
from typing import Dict, Tuple

import numpy as np
import jax
import jax.numpy as jnp

from config import ParserConfig
from features import ContextBuilder
from parser_model import ParserModel
from utils import save_params, load_params

logger = logging.getLogger(__name__)


class Scorer(ABC):
  """
  query interface of the scoring model. every predict_* returns the natural
  negative log probability of the id given the context vector; results must be
  deterministic for a fixed model.
  """

  @abstractmethod
  def predict_action(self, action_id: int, context: np.ndarray) -> float:
    pass

  @abstractmethod
  def predict_tag(self, tag_id: int, context: np.ndarray) -> float:
    pass

  @abstractmethod
  def predict_word(self, word_id: int, context: np.ndarray) -> float:
    pass

  @abstractmethod
  def num_actions(self) -> int:
    pass

  @abstractmethod
  def num_tags(self) -> int:
    pass

  @abstractmethod
  def num_words(self) -> int:
    pass


class FlaxScorer(Scorer):
  """scorer backed by three ParserModel classifiers over a shared word+tag id space."""

  HEADS = ("action", "tag", "word")

  def __init__(self, models: Dict[str, ParserModel], params: Dict[str, dict]):
    self.models = models
    self.params = params
    self._apply = {
      head: jax.jit(lambda p, x, m=models[head]: m.apply({"params": p}, x, train=False))
      for head in self.HEADS
    }
    # head -> (context bytes, log probs) of the last forward pass
    self._last: Dict[str, Tuple[bytes, np.ndarray]] = {}

  def _log_probs(self, head: str, context: np.ndarray) -> np.ndarray:
    x = np.asarray(context, dtype=np.int32)
    key = x.tobytes()
    cached = self._last.get(head)
    if cached is not None and cached[0] == key:
      return cached[1]
    log_probs = np.asarray(self._apply[head](self.params[head], jnp.asarray(x)[None, :]))[0]
    self._last[head] = (key, log_probs)
    return log_probs

  def _neg_log_prob(self, head: str, class_id: int, context: np.ndarray) -> float:
    return -float(self._log_probs(head, context)[class_id])

  def predict_action(self, action_id: int, context: np.ndarray) -> float:
    return self._neg_log_prob("action", action_id, context)

  def predict_tag(self, tag_id: int, context: np.ndarray) -> float:
    return self._neg_log_prob("tag", tag_id, context)

  def predict_word(self, word_id: int, context: np.ndarray) -> float:
    return self._neg_log_prob("word", word_id, context)

  def num_actions(self) -> int:
    return self.models["action"].n_classes

  def num_tags(self) -> int:
    return self.models["tag"].n_classes

  def num_words(self) -> int:
    return self.models["word"].n_classes

  def save(self, path: str) -> None:
    save_params(self.params, path)


def _build_models(config: ParserConfig, num_words: int, num_tags: int, num_actions: int):
  vocab_size = num_words + num_tags
  classes = {"action": num_actions, "tag": num_tags, "word": num_words}
  return {
    head: ParserModel(
      vocab_size=vocab_size,
      n_classes=n_classes,
      embed_size=config.embed_size,
      hidden_size=config.hidden_size,
      dropout_rate=config.dropout_rate,
    )
    for head, n_classes in classes.items()
  }


def init_scorer(
  config: ParserConfig,
  builder: ContextBuilder,
  num_words: int,
  num_tags: int,
  num_actions: int,
  rng: jax.Array,
) -> FlaxScorer:
  """initializes scorer parameters from rng; no training happens here."""
  models = _build_models(config, num_words, num_tags, num_actions)
  widths = {
    "action": builder.context_size,
    "tag": builder.context_size,
    "word": builder.context_size + 1,
  }

  params = {}
  for head, key in zip(FlaxScorer.HEADS, jax.random.split(rng, len(FlaxScorer.HEADS))):
    dummy = jnp.zeros((1, widths[head]), dtype=jnp.int32)
    params[head] = models[head].init(key, dummy, train=False)["params"]

  logger.info(
    "initialized scorer: %d actions, %d tags, %d words, context width %d",
    num_actions,
    num_tags,
    num_words,
    builder.context_size,
  )
  return FlaxScorer(models, params)


def load_scorer(
  path: str, config: ParserConfig, num_words: int, num_tags: int, num_actions: int
) -> FlaxScorer:
  """restores a scorer saved with FlaxScorer.save."""
  models = _build_models(config, num_words, num_tags, num_actions)
  return FlaxScorer(models, load_params(path))
