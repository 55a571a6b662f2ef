import logging
import random

import pytest

from engine import (
  ArcStandardLabelledParser,
  ArcStandardParser,
  flat_parse,
  make_parser,
  num_actions_for,
)
from schema import Action, Sentence, Transition
from utils import L_MAX


def _snapshot(parser):
  return (list(parser.stack), parser.buffer_next, list(parser.arcs), list(parser.labels), list(parser.actions))


def _sentence(n):
  return Sentence(tuple([1] + [3 + i for i in range(n)]), tuple([1] + [3] * n))


def test_make_parser_picks_variant(dog_sentence, config, unlabelled_config):
  assert isinstance(make_parser(dog_sentence, config), ArcStandardLabelledParser)
  assert isinstance(make_parser(dog_sentence, unlabelled_config), ArcStandardParser)


def test_initial_state(dog_sentence, config):
  parser = make_parser(dog_sentence, config)
  assert parser.stack == []
  assert parser.buffer_next == 0
  assert parser.arcs == [-1, -1, -1, -1]
  assert not parser.in_terminal_configuration()


def test_failed_preconditions_leave_state_untouched(dog_sentence, config):
  parser = make_parser(dog_sentence, config)
  assert not parser.left_arc(0)
  assert not parser.right_arc(0)

  parser.shift()
  parser.shift()
  # stack is [ROOT, the]: ROOT can never be a dependent
  before = _snapshot(parser)
  assert not parser.left_arc(0)
  assert not parser.left_arc2(0)
  assert not parser.right_arc2(0)
  assert _snapshot(parser) == before


def test_shift_fails_on_empty_buffer(config):
  parser = make_parser(_sentence(1), config)
  assert parser.shift()
  assert parser.shift()
  before = _snapshot(parser)
  assert not parser.shift()
  assert _snapshot(parser) == before


def test_first_order_reduces(dog_sentence, config):
  parser = make_parser(dog_sentence, config)
  for _ in range(3):
    parser.shift()
  assert parser.left_arc(2)
  assert parser.stack == [0, 2]
  assert parser.arcs[1] == 2 and parser.labels[1] == 2
  assert parser.right_arc(1)
  assert parser.stack == [0]
  assert parser.arcs[2] == 0 and parser.labels[2] == 1


def test_second_order_reduces(vocab):
  from config import create_config

  config = create_config(vocab, non_projective=True)
  parser = make_parser(_sentence(3), config)
  for _ in range(4):
    parser.shift()
  left = parser.clone()

  # [.., i, j, k]: la2 makes k the head of i
  assert left.left_arc2(0)
  assert left.stack == [0, 2, 3]
  assert left.arcs[1] == 3

  # ra2 makes i the head of k
  assert parser.right_arc2(1)
  assert parser.stack == [0, 1, 2]
  assert parser.arcs[3] == 1 and parser.labels[3] == 1


def test_unknown_action_is_rejected(dog_sentence, config, caplog):
  parser = make_parser(dog_sentence, config)
  with caplog.at_level(logging.ERROR):
    assert not parser.execute(Transition(Action.RE))
  assert "not implemented" in caplog.text
  assert parser.actions == []


def test_unlabelled_parser_stores_no_labels(dog_sentence, unlabelled_config):
  parser = make_parser(dog_sentence, unlabelled_config)
  for _ in range(3):
    parser.shift()
  parser.left_arc(3)
  assert parser.labels[1] == -1
  assert parser.actions[-1] == Transition(Action.LA, -1)


def test_clone_is_independent(dog_sentence, config):
  parser = make_parser(dog_sentence, config)
  parser.shift()
  parser.shift()
  other = parser.clone()
  other.shift()
  other.left_arc(0)
  other.add_particle_weight(2.0)

  assert parser.stack == [0, 1]
  assert parser.arcs == [-1, -1, -1, -1]
  assert len(parser.actions) == 2
  assert parser.particle_weight == 0.0
  assert other.config is parser.config


def test_labelled_action_ids(vocab, config):
  from config import create_config

  parser = make_parser(_sentence(2), config)
  num_labels = config.num_labels
  assert parser.num_actions == 1 + 2 * num_labels
  assert parser.action_id(Action.SH) == 0
  assert parser.action_id(Action.LA, 2) == 3
  assert parser.action_id(Action.RA, 0) == 1 + num_labels
  assert parser.transition_for(1 + num_labels) == Transition(Action.RA, 0)
  with pytest.raises(ValueError):
    parser.action_id(Action.LA2, 0)
  with pytest.raises(ValueError):
    parser.action_id(Action.LA, num_labels)

  non_projective = make_parser(_sentence(2), create_config(vocab, non_projective=True))
  assert non_projective.num_actions == 1 + 4 * num_labels
  assert non_projective.action_id(Action.LA2, 1) == 2 + 2 * num_labels
  assert non_projective.transition_for(1 + 3 * num_labels) == Transition(Action.RA2, 0)


def test_unlabelled_action_ids(vocab, unlabelled_config):
  from config import create_config

  assert num_actions_for(unlabelled_config) == 3
  assert num_actions_for(create_config(vocab, labelled=False, non_projective=True)) == 5
  parser = make_parser(_sentence(1), unlabelled_config)
  assert parser.action_id(Action.RA) == 2
  assert parser.transition_for(1) == Transition(Action.LA, -1)
  with pytest.raises(ValueError):
    parser.transition_for(3)


def test_replaying_the_action_log_reproduces_the_tree(config):
  rng = random.Random(5)
  for n in range(1, 9):
    parser = make_parser(_sentence(n), config)
    while not parser.in_terminal_configuration():
      options = [Transition(Action.SH)] + parser.reduce_transitions()
      rng.shuffle(options)
      assert any(parser.execute(t) for t in options)

    replay = make_parser(_sentence(n), config)
    for transition in parser.actions:
      assert replay.execute(transition)
    assert replay.arcs == parser.arcs
    assert replay.labels == parser.labels
    assert all(h >= 0 for h in parser.arcs[1:])


def test_generative_shift_needs_a_tag(config):
  parser = make_parser(Sentence((), ()), config)
  assert not parser.shift(word=config.ROOT_ID)
  parser.push_tag(config.P_ROOT_ID)
  assert parser.shift(word=config.ROOT_ID)
  assert parser.words == [config.ROOT_ID]
  assert parser.stack == [0]
  assert parser.buffer_empty()


def test_flat_parse(dog_sentence, config):
  parser = flat_parse(dog_sentence, config)
  assert parser.arcs == [-1, 0, 0, 0]
  assert parser.in_terminal_configuration()
  assert parser.is_fallback
  assert parser.particle_weight == L_MAX


def test_child_lookup(dog_sentence, config):
  parser = make_parser(dog_sentence, config)
  for _ in range(4):
    parser.shift()
  parser.right_arc(0)
  parser.left_arc(0)
  # the <- dog -> ran
  assert parser.arcs == [-1, 2, -1, 2]
  assert parser.leftmost_child(2) == 1
  assert parser.rightmost_child(2) == 3
  assert parser.leftmost_child(3) == -1
  assert parser.leftmost_child(-1) == -1
