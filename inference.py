import math
import logging
from typing import List, Optional, Tuple

import jax

from beam_search import beam_parse
from config import ParserConfig
from engine import TransitionParser, make_parser, flat_parse
from features import ContextBuilder
from oracle import OracleFailure, static_gold_parse
from particle_filter import particle_parse, particle_gold_parse
from schema import ParsedSentence
from scorer import Scorer

logger = logging.getLogger(__name__)


class AccuracyCounts:
  """attachment accuracy and likelihood totals over a corpus."""

  def __init__(self):
    self.sentences = 0
    self.tokens = 0
    self.directed_correct = 0
    self.labelled_correct = 0
    self.root_correct = 0
    self.complete_correct = 0
    self.neg_log_likelihood = 0.0
    self.no_parse = 0

  def count_accuracy(self, parser: TransitionParser, gold: ParsedSentence) -> None:
    """
    scores one predicted parse against its gold tree. position 0 (ROOT) is
    excluded; fallback parses count as predictions but not towards likelihood.
    """
    n = len(gold)
    directed = sum(1 for i in range(1, n) if parser.arcs[i] == gold.arcs[i])
    labelled = sum(
      1
      for i in range(1, n)
      if parser.arcs[i] == gold.arcs[i] and parser.labels[i] == gold.labels[i]
    )

    self.sentences += 1
    self.tokens += n - 1
    self.directed_correct += directed
    self.labelled_correct += labelled
    if directed == n - 1:
      self.complete_correct += 1
    if any(gold.arcs[i] == 0 and parser.arcs[i] == 0 for i in range(1, n)):
      self.root_correct += 1

    if parser.is_fallback:
      self.no_parse += 1
    else:
      self.neg_log_likelihood += parser.particle_weight

  @property
  def directed_accuracy(self) -> float:
    return self.directed_correct / self.tokens if self.tokens else 0.0

  @property
  def labelled_accuracy(self) -> float:
    return self.labelled_correct / self.tokens if self.tokens else 0.0

  @property
  def complete_accuracy(self) -> float:
    return self.complete_correct / self.sentences if self.sentences else 0.0

  @property
  def root_accuracy(self) -> float:
    return self.root_correct / self.sentences if self.sentences else 0.0

  @property
  def cross_entropy(self) -> float:
    """average negative log likelihood per token of the parsed sentences."""
    scored = self.tokens if self.tokens else 1
    return self.neg_log_likelihood / scored

  @property
  def perplexity(self) -> float:
    return math.exp(min(self.cross_entropy, 700.0))


def decode_sentence(
  sentence: ParsedSentence,
  scorer: Scorer,
  builder: ContextBuilder,
  config: ParserConfig,
  key: Optional[jax.Array] = None,
) -> TransitionParser:
  """parses one sentence with the decoder named by config.decoder."""
  if config.decoder == "beam":
    return beam_parse(sentence, scorer, builder, config)
  if config.decoder == "particle":
    return particle_parse(sentence, scorer, builder, config, key)
  if config.decoder == "particle-gold":
    return particle_gold_parse(sentence, scorer, builder, config, key)
  if config.decoder == "oracle":
    try:
      return static_gold_parse(make_parser(sentence, config), sentence, scorer, builder)
    except OracleFailure:
      logger.warning("oracle failure, falling back to flat parse")
      return flat_parse(sentence, config)
  raise ValueError(f"unknown decoder: {config.decoder}")


def evaluate_corpus(
  sentences: List[ParsedSentence],
  scorer: Scorer,
  builder: ContextBuilder,
  config: ParserConfig,
  key: jax.Array,
) -> Tuple[AccuracyCounts, List[TransitionParser]]:
  """decodes every sentence and accumulates accuracy counts."""
  counts = AccuracyCounts()
  parses = []

  for idx, sent in enumerate(sentences):
    key, subkey = jax.random.split(key)
    parse = decode_sentence(sent, scorer, builder, config, subkey)
    counts.count_accuracy(parse, sent)
    parses.append(parse)

    if (idx + 1) % 500 == 0:
      logger.info(
        "decoded %d sentences; UAS so far: %.2f%%", idx + 1, counts.directed_accuracy * 100.0
      )

  logger.info(
    "%s decoder: UAS %.2f%% | LAS %.2f%% | complete %.2f%% | no parse %d",
    config.decoder,
    counts.directed_accuracy * 100.0,
    counts.labelled_accuracy * 100.0,
    counts.complete_accuracy * 100.0,
    counts.no_parse,
  )
  return counts, parses
