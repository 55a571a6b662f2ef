import math
from enum import IntEnum
from typing import NamedTuple, Dict, List, Tuple

from utils import L_MAX, neg_log_sum_exp


class Action(IntEnum):
  """transition kinds. RE is the oracle's "no valid reduce" sentinel, never executed."""

  SH = 0
  LA = 1
  RA = 2
  LA2 = 3
  RA2 = 4
  RE = 5


ACTION_NAMES = {
  Action.SH: "sh",
  Action.LA: "la",
  Action.RA: "ra",
  Action.LA2: "la2",
  Action.RA2: "ra2",
  Action.RE: "re",
}


class Transition(NamedTuple):
  """an action kind together with its dependency label (-1 when unlabelled)."""

  kind: Action
  label: int = -1

  def __str__(self):
    name = ACTION_NAMES[self.kind]
    return name if self.label < 0 else f"{name}({self.label})"


class Sentence(NamedTuple):
  """a tagged sentence; position 0 holds the root symbol."""

  words: Tuple[int, ...]
  tags: Tuple[int, ...]

  def __len__(self):
    return len(self.words)


class ParsedSentence(NamedTuple):
  """a tagged sentence with its gold dependency tree (arcs[0] = labels[0] = -1)."""

  words: Tuple[int, ...]
  tags: Tuple[int, ...]
  arcs: Tuple[int, ...]
  labels: Tuple[int, ...]

  def __len__(self):
    return len(self.words)

  def sentence(self) -> Sentence:
    return Sentence(self.words, self.tags)

  def has_arc(self, child: int, parent: int) -> bool:
    return 0 < child < len(self.arcs) and self.arcs[child] == parent

  def label_at(self, i: int) -> int:
    return self.labels[i] if 0 <= i < len(self.labels) else -1

  def children_of(self, i: int) -> List[int]:
    return [c for c in range(1, len(self.arcs)) if self.arcs[c] == i]

  def is_projective(self) -> bool:
    """true when no two arcs cross, drawn above the word order."""
    spans = [
      (min(c, h), max(c, h)) for c, h in enumerate(self.arcs) if c > 0 and h >= 0
    ]
    for a_lo, a_hi in spans:
      for b_lo, b_hi in spans:
        if a_lo < b_lo < a_hi < b_hi:
          return False
    return True


class ParserVocab(NamedTuple):
  """mappings for string-to-ID conversions."""

  word2id: Dict[str, int]
  pos2id: Dict[str, int]
  label2id: Dict[str, int]
  id2label: Dict[int, str]


class ParserState:
  """
  a (partial) derivation over one sentence.

  stack holds sentence positions (top = last element), buffer_next is the
  next unread position, arcs/labels are parallel tables indexed by position
  (-1 = unset). the weights are negative log probabilities.
  """

  def __init__(self, sentence: Sentence, num_particles: int = 1):
    self.words: List[int] = list(sentence.words)
    self.tags: List[int] = list(sentence.tags)
    self.stack: List[int] = []
    self.buffer_next = 0
    self.arcs: List[int] = [-1] * len(self.words)
    self.labels: List[int] = [-1] * len(self.words)
    self.actions: List[Transition] = []
    self.particle_weight = 0.0
    self.importance_weight = 0.0
    self.beam_weight = L_MAX
    self.num_particles = num_particles
    self.is_fallback = False

  def clone(self) -> "ParserState":
    other = self.__class__.__new__(self.__class__)
    other.__dict__.update(self.__dict__)
    other.words = list(self.words)
    other.tags = list(self.tags)
    other.stack = list(self.stack)
    other.arcs = list(self.arcs)
    other.labels = list(self.labels)
    other.actions = list(self.actions)
    return other

  def __len__(self):
    return len(self.words)

  def __repr__(self):
    return "%s(stack=%s, next=%d, actions=%s)" % (
      self.__class__.__name__,
      self.stack,
      self.buffer_next,
      " ".join(str(a) for a in self.actions),
    )

  # stack and buffer

  @property
  def stack_depth(self) -> int:
    return len(self.stack)

  def stack_at(self, offset: int) -> int:
    """position `offset` below the top of the stack, or -1."""
    if 0 <= offset < len(self.stack):
      return self.stack[-1 - offset]
    return -1

  def buffer_empty(self) -> bool:
    return self.buffer_next >= len(self.words)

  def word_at(self, i: int) -> int:
    return self.words[i]

  def tag_at(self, i: int) -> int:
    return self.tags[i]

  def next_word(self) -> int:
    return self.words[self.buffer_next]

  def next_tag(self) -> int:
    return self.tags[self.buffer_next]

  # arcs

  def has_arc(self, child: int, parent: int) -> bool:
    return 0 <= child < len(self.arcs) and self.arcs[child] == parent

  def set_arc(self, child: int, parent: int, label: int) -> None:
    self.arcs[child] = parent
    self.labels[child] = label

  def leftmost_child(self, i: int, rank: int = 0) -> int:
    """the rank-th leftmost child to the left of i, or -1."""
    if i < 0:
      return -1
    found = [c for c in range(0, i) if self.arcs[c] == i]
    return found[rank] if rank < len(found) else -1

  def rightmost_child(self, i: int, rank: int = 0) -> int:
    """the rank-th rightmost child to the right of i, or -1."""
    if i < 0:
      return -1
    found = [c for c in range(len(self.arcs) - 1, i, -1) if self.arcs[c] == i]
    return found[rank] if rank < len(found) else -1

  # weights

  def add_particle_weight(self, w: float) -> None:
    self.particle_weight += w

  def add_importance_weight(self, w: float) -> None:
    self.importance_weight += w

  def reset_importance_weight(self) -> None:
    self.importance_weight = 0.0

  def add_beam_weight(self, w: float) -> None:
    self.beam_weight = neg_log_sum_exp(self.beam_weight, w)

  @property
  def weighted_importance_weight(self) -> float:
    return self.importance_weight - math.log(self.num_particles)
