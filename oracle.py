import logging
from typing import List, NamedTuple, Tuple

import numpy as np
from schema import Action, Transition, ParsedSentence, Sentence

logger = logging.getLogger(__name__)


class OracleFailure(ValueError):
  """the gold tree cannot be reached from the parser's configuration."""

  def __init__(self, message: str, parser=None):
    super().__init__(message)
    self.parser = parser


class TrainingExamples(NamedTuple):
  """(context, gold id) pairs extracted by replaying a derivation."""

  actions: List[Tuple[np.ndarray, int]]
  tags: List[Tuple[np.ndarray, int]]
  words: List[Tuple[np.ndarray, int]]


def _children_attached(parser, gold: ParsedSentence, head: int) -> bool:
  """true when every gold child of head already hangs off it in the parser."""
  return all(parser.has_arc(child, head) for child in gold.children_of(head))


def _oracle_decision(parser, gold: ParsedSentence, non_projective: bool) -> Tuple[Action, int]:
  """returns (action, attached child position); the child is -1 for sh and re."""
  if parser.stack_depth < 2:
    return (Action.SH, -1) if not parser.buffer_empty() else (Action.RE, -1)

  i = parser.stack_at(1)
  j = parser.stack_at(0)
  action, child = Action.RE, -1

  if gold.has_arc(i, j):
    if _children_attached(parser, gold, i):
      action, child = Action.LA, i
  elif gold.has_arc(j, i):
    if _children_attached(parser, gold, j):
      action, child = Action.RA, j

  if action == Action.RE and non_projective and parser.stack_depth >= 3:
    k = parser.stack_at(2)
    if gold.has_arc(k, j):
      if _children_attached(parser, gold, k):
        action, child = Action.LA2, k
    elif gold.has_arc(j, k):
      if _children_attached(parser, gold, j):
        action, child = Action.RA2, j

  if action == Action.RE and not parser.buffer_empty():
    action = Action.SH

  return action, child


def oracle_next(parser, gold: ParsedSentence, non_projective: bool = False) -> Action:
  """
  the canonical next action for reaching the gold tree.

  precedence: first-order reduces, then second-order (la2 before ra2), then
  shift. returns Action.RE when no reduce validates and the buffer is empty.
  """
  return _oracle_decision(parser, gold, non_projective)[0]


def oracle_next_label(parser, gold: ParsedSentence, non_projective: bool = False) -> int:
  """the gold label of the child the oracle's action attaches, or -1."""
  action, child = _oracle_decision(parser, gold, non_projective)
  if action in (Action.SH, Action.RE):
    return -1
  return gold.label_at(child)


def oracle_transition(parser, gold: ParsedSentence) -> Transition:
  """oracle action and label, with the label dropped for unlabelled parsers."""
  action, child = _oracle_decision(parser, gold, parser.config.non_projective)
  if action in (Action.SH, Action.RE):
    return Transition(action, -1)
  if not parser.config.labelled:
    return Transition(action, -1)
  # labels unseen in training are read as -1; score them as the first label
  return Transition(action, max(gold.label_at(child), 0))


def static_gold_parse(parser, gold: ParsedSentence, scorer=None, builder=None):
  """
  replays the static oracle derivation on parser until it is terminal.
  with a scorer (and context builder) the derivation's weights are accumulated.
  raises OracleFailure if the gold tree is not reachable.
  """
  while not parser.in_terminal_configuration():
    transition = oracle_transition(parser, gold)
    if transition.kind == Action.RE:
      raise OracleFailure(
        "oracle failure after %d actions" % len(parser.actions), parser=parser
      )

    if scorer is not None:
      ctx = builder.action_context(parser)
      parser.add_particle_weight(
        scorer.predict_action(parser.action_id(*transition), ctx)
      )
      if transition.kind == Action.SH:
        parser.add_particle_weight(
          scorer.predict_tag(parser.next_tag(), builder.tag_context(parser))
        )
        parser.add_particle_weight(
          scorer.predict_word(parser.next_word(), builder.word_context(parser))
        )

    if not parser.execute(transition):
      raise OracleFailure(
        "oracle proposed an invalid transition: %s" % (transition,), parser=parser
      )

  return parser


def extract_examples(parser, builder) -> TrainingExamples:
  """
  replays parser's action log from a fresh state and records the contexts
  seen before every decision. the initial root shift is included.
  """
  replay = parser.__class__(Sentence(tuple(parser.words), tuple(parser.tags)), parser.config)
  examples = TrainingExamples([], [], [])

  for transition in parser.actions:
    if transition.kind == Action.SH:
      examples.tags.append((builder.tag_context(replay), replay.next_tag()))
      examples.words.append((builder.word_context(replay), replay.next_word()))

    action_id = replay.action_id(*transition)
    examples.actions.append((builder.action_context(replay), action_id))

    if not replay.execute(transition):
      raise ValueError("action log does not replay: %s" % (transition,))

  logger.debug(
    "extracted %d action, %d tag, %d word examples",
    len(examples.actions),
    len(examples.tags),
    len(examples.words),
  )
  return examples
