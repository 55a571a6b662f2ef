"""
declarative feature contexts.

a context is a tuple of Slot descriptors. each slot names a source position
(a stack offset or a buffer offset), a relation walked from it (the position
itself, a child or a grandchild) and the field read there (word or tag).
a single generic builder evaluates any such tuple, so adding a context layout
is a data change only.
"""
import logging
from typing import Dict, NamedTuple, Tuple

import numpy as np
from config import ParserConfig
from schema import ParserState

logger = logging.getLogger(__name__)

# sources
STACK = "stack"
BUFFER = "buffer"

# relations
SELF = "self"
LEFTMOST = "lc"
RIGHTMOST = "rc"
SECOND_LEFTMOST = "lc2"
SECOND_RIGHTMOST = "rc2"
LEFTMOST_GRANDCHILD = "llc"
RIGHTMOST_GRANDCHILD = "rrc"

# fields
WORD = "word"
TAG = "tag"


class Slot(NamedTuple):
  source: str
  offset: int
  relation: str = SELF
  field: str = WORD


def _stack_children(field: str, depth: int = 2) -> Tuple[Slot, ...]:
  slots = []
  for offset in range(depth):
    slots += [
      Slot(STACK, offset, SELF, field),
      Slot(STACK, offset, LEFTMOST, field),
      Slot(STACK, offset, RIGHTMOST, field),
    ]
  return tuple(slots)


def _second_children(field: str) -> Tuple[Slot, ...]:
  return tuple(
    Slot(STACK, offset, relation, field)
    for offset in range(2)
    for relation in (SECOND_LEFTMOST, SECOND_RIGHTMOST)
  )


def _grandchildren(field: str) -> Tuple[Slot, ...]:
  return tuple(
    Slot(STACK, offset, relation, field)
    for offset in range(2)
    for relation in (LEFTMOST_GRANDCHILD, RIGHTMOST_GRANDCHILD)
  )


_STANDARD = _stack_children(WORD) + (Slot(STACK, 2, SELF, TAG),)
_EXTENDED = (
  _stack_children(WORD)
  + _second_children(WORD)
  + (Slot(STACK, 2, SELF, TAG), Slot(STACK, 3, SELF, TAG))
)
_MORE_EXTENDED = _EXTENDED[:-2] + _grandchildren(WORD) + _EXTENDED[-2:]
_LOOKAHEAD = tuple(Slot(BUFFER, offset) for offset in range(3))
_NGRAM = tuple(Slot(BUFFER, -offset) for offset in range(1, 4))
_THIRD = (Slot(STACK, 2, SELF, WORD), Slot(STACK, 2, LEFTMOST, WORD), Slot(STACK, 2, RIGHTMOST, WORD))

CONTEXT_TYPES: Dict[str, Tuple[Slot, ...]] = {
  "standard": _STANDARD,
  "standard-3rd": _STANDARD + _THIRD,
  "extended": _EXTENDED,
  "extended-3rd": _EXTENDED + _THIRD,
  "more-extended": _MORE_EXTENDED,
  "more-extended-3rd": _MORE_EXTENDED + _THIRD,
  "lookahead": _STANDARD + _LOOKAHEAD,
  "extended-lookahead": _EXTENDED + _LOOKAHEAD,
  "with-ngram": _STANDARD + _NGRAM,
  "extended-with-ngram": _EXTENDED + _NGRAM,
  "more-extended-with-ngram": _MORE_EXTENDED + _NGRAM,
  "tags": _stack_children(TAG) + (Slot(STACK, 2, SELF, TAG), Slot(BUFFER, -1, SELF, TAG)),
}


class ContextBuilder:
  """
  evaluates a context layout against a parser state.

  tag ids are emitted shifted by tag_offset so that words and tags can share
  one embedding table downstream. missing slots read as the NULL ids.
  """

  def __init__(self, config: ParserConfig, tag_offset: int = 0):
    self.slots = CONTEXT_TYPES[config.context_type]
    self.null_word = config.NULL_ID
    self.null_tag = config.P_NULL_ID + tag_offset
    self.tag_offset = tag_offset

  @property
  def context_size(self) -> int:
    return len(self.slots)

  def _position(self, state: ParserState, slot: Slot) -> int:
    if slot.source == STACK:
      i = state.stack_at(slot.offset)
    else:
      i = state.buffer_next + slot.offset
      if i < 0 or i >= len(state.tags):
        i = -1

    if i < 0 or slot.relation == SELF:
      return i
    if slot.relation == LEFTMOST:
      return state.leftmost_child(i)
    if slot.relation == RIGHTMOST:
      return state.rightmost_child(i)
    if slot.relation == SECOND_LEFTMOST:
      return state.leftmost_child(i, 1)
    if slot.relation == SECOND_RIGHTMOST:
      return state.rightmost_child(i, 1)
    if slot.relation == LEFTMOST_GRANDCHILD:
      return state.leftmost_child(state.leftmost_child(i))
    if slot.relation == RIGHTMOST_GRANDCHILD:
      return state.rightmost_child(state.rightmost_child(i))
    raise ValueError(f"unknown relation: {slot.relation}")

  def _value(self, state: ParserState, slot: Slot) -> int:
    i = self._position(state, slot)
    if slot.field == TAG:
      return self.tag_offset + state.tag_at(i) if 0 <= i < len(state.tags) else self.null_tag
    return state.word_at(i) if 0 <= i < len(state.words) else self.null_word

  def build(self, state: ParserState) -> np.ndarray:
    return np.array([self._value(state, slot) for slot in self.slots], dtype=np.int32)

  def action_context(self, state: ParserState) -> np.ndarray:
    return self.build(state)

  def tag_context(self, state: ParserState) -> np.ndarray:
    return self.build(state)

  def word_context(self, state: ParserState) -> np.ndarray:
    """the shared context plus the tag of the word about to be predicted."""
    i = state.buffer_next
    next_tag = self.tag_offset + state.tag_at(i) if i < len(state.tags) else self.null_tag
    return np.append(self.build(state), np.int32(next_tag)).astype(np.int32)
