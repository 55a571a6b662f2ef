import math

import pytest

from config import create_config
from data_loader import build_vocab, vectorize_sentences
from engine import make_parser, num_actions_for
from features import ContextBuilder
from schema import Action, Sentence
from scorer import Scorer

RAW_SENTENCES = [
  # the -> dog -> ran -> ROOT
  {
    "word": ["the", "dog", "ran"],
    "pos": ["DT", "NN", "VB"],
    "head": [2, 3, 0],
    "label": ["det", "nsubj", "root"],
  },
  # the cat saw a bird
  {
    "word": ["the", "cat", "saw", "a", "bird"],
    "pos": ["DT", "NN", "VB", "DT", "NN"],
    "head": [2, 3, 0, 5, 3],
    "label": ["det", "nsubj", "root", "det", "dobj"],
  },
  # crossing arcs: x <- z, y <- ROOT, z <- y
  {
    "word": ["x", "y", "z"],
    "pos": ["NN", "VB", "NN"],
    "head": [3, 0, 2],
    "label": ["dobj", "root", "nsubj"],
  },
]


class UniformScorer(Scorer):
  """every outcome equally likely."""

  def __init__(self, n_actions, n_tags, n_words):
    self._sizes = (n_actions, n_tags, n_words)

  def predict_action(self, action_id, context):
    return math.log(self._sizes[0])

  def predict_tag(self, tag_id, context):
    return math.log(self._sizes[1])

  def predict_word(self, word_id, context):
    return math.log(self._sizes[2])

  def num_actions(self):
    return self._sizes[0]

  def num_tags(self):
    return self._sizes[1]

  def num_words(self):
    return self._sizes[2]


class GoldScorer(UniformScorer):
  """
  puts almost all action mass on the gold transition for one sentence with
  distinct words, reading the top two stack words from a "standard" context.
  """

  def __init__(self, gold, config, n_tags, n_words, peak=1.0 - 1e-9):
    self.gold = gold
    self.position = {w: i for i, w in enumerate(gold.words)}
    self.parser = make_parser(Sentence((), ()), config)
    self.peak = peak
    super().__init__(self.parser.num_actions, n_tags, n_words)

  def gold_action(self, context):
    j = self.position.get(int(context[0]), -1)
    i = self.position.get(int(context[3]), -1)
    if i >= 0 and j >= 0:
      if self.gold.has_arc(i, j):
        return self.parser.action_id(Action.LA, self.gold.label_at(i))
      if self.gold.has_arc(j, i):
        return self.parser.action_id(Action.RA, self.gold.label_at(j))
    return self.parser.action_id(Action.SH)

  def predict_action(self, action_id, context):
    if action_id == self.gold_action(context):
      return -math.log(self.peak)
    return -math.log((1.0 - self.peak) / (self.num_actions() - 1))


@pytest.fixture
def vocab():
  return build_vocab(RAW_SENTENCES)


@pytest.fixture
def sentences(vocab):
  return vectorize_sentences(RAW_SENTENCES, vocab)


@pytest.fixture
def dog_sentence(sentences):
  return sentences[0]


@pytest.fixture
def config(vocab):
  return create_config(vocab)


@pytest.fixture
def unlabelled_config(vocab):
  return create_config(vocab, labelled=False)


@pytest.fixture
def builder(config, vocab):
  return ContextBuilder(config, tag_offset=len(vocab.word2id))


@pytest.fixture
def uniform_scorer(config, vocab):
  return UniformScorer(num_actions_for(config), len(vocab.pos2id), len(vocab.word2id))


@pytest.fixture
def gold_scorer_for(config, vocab):
  def factory(gold, **kwargs):
    return GoldScorer(gold, config, len(vocab.pos2id), len(vocab.word2id), **kwargs)

  return factory
