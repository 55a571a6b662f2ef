import logging
from abc import ABC, abstractmethod
from typing import Optional, Tuple

from config import ParserConfig
from oracle import oracle_next, oracle_next_label
from schema import Action, Transition, Sentence, ParsedSentence, ParserState
from utils import L_MAX

logger = logging.getLogger(__name__)

REDUCE_KINDS = (Action.LA, Action.RA)
SECOND_ORDER_KINDS = (Action.LA2, Action.RA2)


class TransitionParser(ParserState, ABC):
  """
  arc-standard transition system over a ParserState.

  every transition checks its precondition first and returns False without
  touching the state when it is not met. variants differ only in how labels
  map onto the scorer's action inventory.
  """

  def __init__(self, sentence: Sentence, config: ParserConfig, num_particles: int = 1):
    super().__init__(sentence, num_particles)
    self.config = config

  # action inventory

  @property
  @abstractmethod
  def num_actions(self) -> int:
    pass

  @abstractmethod
  def labels_for(self, kind: Action) -> Tuple[int, ...]:
    pass

  @abstractmethod
  def action_id(self, kind: Action, label: int = -1) -> int:
    pass

  @abstractmethod
  def transition_for(self, action_id: int) -> Transition:
    pass

  def reduce_transitions(self, kinds=REDUCE_KINDS):
    return [Transition(kind, label) for kind in kinds for label in self.labels_for(kind)]

  # validity

  def shift_valid(self) -> bool:
    return not self.buffer_empty()

  def left_arc_valid(self) -> bool:
    return self.stack_depth >= 2 and self.stack_at(1) != 0

  def right_arc_valid(self) -> bool:
    return self.stack_depth >= 2

  def left_arc2_valid(self) -> bool:
    return self.stack_depth >= 3 and self.stack_at(2) != 0

  def right_arc2_valid(self) -> bool:
    return self.stack_depth >= 3

  def in_terminal_configuration(self) -> bool:
    return self.buffer_empty() and self.stack_depth == 1

  # transitions

  def _record(self, kind: Action, label: int) -> None:
    self.actions.append(Transition(kind, label))

  def shift(self, word: Optional[int] = None) -> bool:
    """
    pushes the next buffer position. with a word, extends the sentence
    instead (generation); the tag for the new position must already be pushed.
    """
    if word is not None:
      if len(self.tags) != len(self.words) + 1:
        return False
      i = len(self.words)
      self.words.append(word)
      self.arcs.append(-1)
      self.labels.append(-1)
      self.buffer_next = len(self.words)
      self.stack.append(i)
      self._record(Action.SH, -1)
      return True

    if not self.shift_valid():
      return False
    self.stack.append(self.buffer_next)
    self.buffer_next += 1
    self._record(Action.SH, -1)
    return True

  def push_tag(self, tag: int) -> None:
    self.tags.append(tag)

  def left_arc(self, label: int = -1) -> bool:
    if not self.left_arc_valid():
      return False
    label = self._store_label(label)
    j = self.stack.pop()
    i = self.stack.pop()
    self.stack.append(j)
    self.set_arc(i, j, label)
    self._record(Action.LA, label)
    return True

  def right_arc(self, label: int = -1) -> bool:
    if not self.right_arc_valid():
      return False
    label = self._store_label(label)
    j = self.stack.pop()
    self.set_arc(j, self.stack[-1], label)
    self._record(Action.RA, label)
    return True

  def left_arc2(self, label: int = -1) -> bool:
    if not self.left_arc2_valid():
      return False
    label = self._store_label(label)
    k = self.stack.pop()
    j = self.stack.pop()
    i = self.stack.pop()
    self.stack.append(j)
    self.stack.append(k)
    self.set_arc(i, k, label)
    self._record(Action.LA2, label)
    return True

  def right_arc2(self, label: int = -1) -> bool:
    if not self.right_arc2_valid():
      return False
    label = self._store_label(label)
    k = self.stack.pop()
    self.set_arc(k, self.stack[-2], label)
    self._record(Action.RA2, label)
    return True

  def execute_action(self, kind: Action, label: int = -1) -> bool:
    if kind == Action.SH:
      return self.shift()
    if kind == Action.LA:
      return self.left_arc(label)
    if kind == Action.RA:
      return self.right_arc(label)
    if kind == Action.LA2:
      return self.left_arc2(label)
    if kind == Action.RA2:
      return self.right_arc2(label)
    logger.error("action not implemented: %s", kind)
    return False

  def execute(self, transition: Transition) -> bool:
    return self.execute_action(transition.kind, transition.label)

  def _store_label(self, label: int) -> int:
    return label

  # oracle

  def oracle_next(self, gold: ParsedSentence) -> Action:
    return oracle_next(self, gold, self.config.non_projective)

  def oracle_next_label(self, gold: ParsedSentence) -> int:
    return oracle_next_label(self, gold, self.config.non_projective)


class ArcStandardParser(TransitionParser):
  """unlabelled arc-standard parser: arcs carry no label, one id per action kind."""

  @property
  def num_actions(self) -> int:
    return 5 if self.config.non_projective else 3

  def labels_for(self, kind: Action) -> Tuple[int, ...]:
    return (-1,)

  def action_id(self, kind: Action, label: int = -1) -> int:
    if kind == Action.RE or (kind in SECOND_ORDER_KINDS and not self.config.non_projective):
      raise ValueError(f"action has no id: {kind!r}")
    return int(kind)

  def transition_for(self, action_id: int) -> Transition:
    if not 0 <= action_id < self.num_actions:
      raise ValueError(f"action id out of range: {action_id}")
    return Transition(Action(action_id), -1)

  def _store_label(self, label: int) -> int:
    return -1


class ArcStandardLabelledParser(TransitionParser):
  """
  labelled arc-standard parser. action ids are laid out as
  [sh, la(0..L-1), ra(0..L-1), la2(0..L-1), ra2(0..L-1)], the second-order
  blocks only present when non-projective arcs are enabled.
  """

  _BLOCKS = {Action.LA: 0, Action.RA: 1, Action.LA2: 2, Action.RA2: 3}

  @property
  def num_labels(self) -> int:
    return self.config.num_labels

  @property
  def num_actions(self) -> int:
    blocks = 4 if self.config.non_projective else 2
    return 1 + blocks * self.num_labels

  def labels_for(self, kind: Action) -> Tuple[int, ...]:
    if kind == Action.SH:
      return (-1,)
    return tuple(range(self.num_labels))

  def action_id(self, kind: Action, label: int = -1) -> int:
    if kind == Action.SH:
      return 0
    if kind == Action.RE or (kind in SECOND_ORDER_KINDS and not self.config.non_projective):
      raise ValueError(f"action has no id: {kind!r}")
    if not 0 <= label < self.num_labels:
      raise ValueError(f"label out of range: {label}")
    return 1 + self._BLOCKS[kind] * self.num_labels + label

  def transition_for(self, action_id: int) -> Transition:
    if not 0 <= action_id < self.num_actions:
      raise ValueError(f"action id out of range: {action_id}")
    if action_id == 0:
      return Transition(Action.SH, -1)
    block, label = divmod(action_id - 1, self.num_labels)
    kind = (Action.LA, Action.RA, Action.LA2, Action.RA2)[block]
    return Transition(kind, label)


def make_parser(
  sentence: Sentence, config: ParserConfig, num_particles: int = 1
) -> TransitionParser:
  """builds the parser variant the config asks for over a fresh initial state."""
  if isinstance(sentence, ParsedSentence):
    sentence = sentence.sentence()
  parser_cls = ArcStandardLabelledParser if config.labelled else ArcStandardParser
  return parser_cls(sentence, config, num_particles)


def flat_parse(sentence: Sentence, config: ParserConfig) -> TransitionParser:
  """
  the "no parse found" fallback: every word attached to the root by a
  shift / right-arc derivation, at infinite cost.
  """
  parser = make_parser(sentence, config)
  label = parser.labels_for(Action.RA)[0]
  parser.shift()
  while not parser.buffer_empty():
    parser.shift()
    parser.right_arc(label)
  parser.particle_weight = L_MAX
  parser.is_fallback = True
  return parser


def num_actions_for(config: ParserConfig) -> int:
  """size of the scorer's action inventory for the configured parser variant."""
  return make_parser(Sentence((), ()), config).num_actions
