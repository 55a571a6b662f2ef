import logging
from typing import List, Optional

from config import ParserConfig
from engine import TransitionParser, make_parser, flat_parse
from features import ContextBuilder
from schema import Action, Sentence
from scorer import Scorer
from utils import neg_log_sum

logger = logging.getLogger(__name__)


def prune_beam(beam: List[TransitionParser], beam_size: int, force_sort: bool = False) -> None:
  """sorts by ascending particle weight and keeps the best beam_size items, in place."""
  if force_sort or len(beam) > beam_size:
    beam.sort(key=lambda p: p.particle_weight)
    del beam[beam_size:]


def _reduce_weights(parser: TransitionParser, scorer: Scorer, ctx):
  """(best la weight, label), (best ra weight, label) and the total reduce mass."""
  best = {}
  weights = []
  for kind in (Action.LA, Action.RA):
    options = [
      (scorer.predict_action(parser.action_id(kind, label), ctx), label)
      for label in parser.labels_for(kind)
    ]
    weights += [w for w, _ in options]
    best[kind] = min(options)
  return best[Action.LA], best[Action.RA], neg_log_sum(weights)


def _shift(parser: TransitionParser, scorer: Scorer, builder: ContextBuilder) -> None:
  shiftp = scorer.predict_action(parser.action_id(Action.SH), builder.action_context(parser))
  tagp = scorer.predict_tag(parser.next_tag(), builder.tag_context(parser))
  wordp = scorer.predict_word(parser.next_word(), builder.word_context(parser))

  parser.shift()
  parser.add_particle_weight(shiftp)
  parser.add_importance_weight(tagp)
  parser.add_importance_weight(wordp)
  parser.add_particle_weight(tagp)
  parser.add_particle_weight(wordp)


def beam_search(
  sentence: Sentence,
  scorer: Scorer,
  builder: ContextBuilder,
  config: ParserConfig,
  beam_size: Optional[int] = None,
) -> List[TransitionParser]:
  """
  word-synchronous beam search. chart[i] holds the derivations whose stack
  depth is i + 1 after the words read so far; reduces move items from
  chart[i] to chart[i - 1], the unreduced item stays put and shifts.

  returns the final beam sorted best first (possibly empty). the top item's
  beam_weight holds the total mass of every parse in the final beam.
  """
  beam_size = config.beam_size if beam_size is None else beam_size
  n = len(sentence)

  chart: List[List[TransitionParser]] = [[make_parser(sentence, config)]]
  # shift ROOT symbol (probability 1)
  chart[0][0].shift()

  # add reduce actions, then shift word k (except for the last iteration)
  for k in range(1, n + 1):
    for i in range(k - 1, 0, -1):
      prune_beam(chart[i], beam_size)

      for item in chart[i]:
        ctx = builder.action_context(item)
        (leftp, left_label), (rightp, right_label), reducep = _reduce_weights(item, scorer, ctx)

        right = item.clone()
        right.right_arc(right_label)
        right.add_particle_weight(rightp)
        chart[i - 1].append(right)

        # left arc is only invalid when the stack is [ROOT, x]
        if i > 1:
          left = item.clone()
          left.left_arc(left_label)
          left.add_particle_weight(leftp)
          chart[i - 1].append(left)

          if k == n:
            left.add_importance_weight(reducep)
            right.add_importance_weight(reducep)
        elif k == n:
          right.add_importance_weight(rightp - reducep)

    prune_beam(chart[0], beam_size, force_sort=(k == n))

    if k < n:
      for beam in chart:
        for item in beam:
          _shift(item, scorer, builder)
      # keep list indices aligned with stack depth
      chart.insert(0, [])

  final = chart[0]
  for item in final:
    final[0].add_beam_weight(item.particle_weight)

  logger.debug("final beam holds %d parses", len(final))
  return final


def beam_parse(
  sentence: Sentence,
  scorer: Scorer,
  builder: ContextBuilder,
  config: ParserConfig,
  beam_size: Optional[int] = None,
) -> TransitionParser:
  """best derivation found by beam search, or the flat fallback parse."""
  final = beam_search(sentence, scorer, builder, config, beam_size)
  if not final:
    logger.warning("no parse found (beam size %s)", config.beam_size if beam_size is None else beam_size)
    return flat_parse(sentence, config)
  return final[0]
