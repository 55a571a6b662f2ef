import logging

import jax

from config import ParserConfig
from engine import SECOND_ORDER_KINDS, TransitionParser, make_parser
from features import ContextBuilder
from schema import Action, Sentence
from scorer import Scorer
from utils import L_MAX, sample_log_categorical

logger = logging.getLogger(__name__)


def _sample_reduce(parser: TransitionParser, scorer: Scorer, builder: ContextBuilder, key: jax.Array) -> None:
  """samples and applies one labelled reduce; left arcs only when valid."""
  ctx = builder.action_context(parser)
  options = [
    (t, scorer.predict_action(parser.action_id(*t), ctx))
    for t in parser.reduce_transitions()
    if t.kind == Action.RA or parser.left_arc_valid()
  ]
  transition, weight = options[sample_log_categorical(key, [w for _, w in options])]
  parser.execute(transition)
  parser.add_particle_weight(weight)


def _generate_word(parser: TransitionParser, scorer: Scorer, builder: ContextBuilder, key: jax.Array) -> None:
  """samples a tag, then a word given the tag, and shifts the new word."""
  config = parser.config
  tag_key, word_key = jax.random.split(key)

  # the root and padding symbols are never generated
  t_ctx = builder.tag_context(parser)
  tags = [t for t in range(scorer.num_tags()) if t not in (config.P_ROOT_ID, config.P_NULL_ID)]
  t_distr = [scorer.predict_tag(t, t_ctx) for t in tags]
  t = sample_log_categorical(tag_key, t_distr)
  parser.push_tag(tags[t])
  parser.add_particle_weight(t_distr[t])

  # UNK stays in the distribution as the out-of-vocabulary word
  w_ctx = builder.word_context(parser)
  words = [w for w in range(scorer.num_words()) if w not in (config.ROOT_ID, config.NULL_ID)]
  w_distr = [scorer.predict_word(w, w_ctx) for w in words]
  w = sample_log_categorical(word_key, w_distr)
  parser.shift(words[w])
  parser.add_particle_weight(w_distr[w])


def generate_sentence(
  scorer: Scorer, builder: ContextBuilder, config: ParserConfig, key: jax.Array
) -> TransitionParser:
  """
  samples a tagged sentence together with its dependency tree from the model.
  once the length cap is hit only reduces are sampled, so the result is
  always a complete tree.
  """
  parser = make_parser(Sentence((), ()), config)
  parser.push_tag(config.P_ROOT_ID)
  parser.shift(config.ROOT_ID)

  length_limited = False
  while True:
    key, subkey = jax.random.split(key)

    if parser.stack_depth < 2:
      _generate_word(parser, scorer, builder, subkey)
    elif length_limited or len(parser) >= config.max_sentence_length:
      if not length_limited:
        logger.debug("length limit %d reached", config.max_sentence_length)
      length_limited = True
      _sample_reduce(parser, scorer, builder, subkey)
    else:
      ctx = builder.action_context(parser)
      # first-order transitions only, read off the scorer's action inventory
      transitions = [parser.transition_for(a) for a in range(parser.num_actions)]
      distr = [
        L_MAX
        if t.kind in SECOND_ORDER_KINDS or (t.kind == Action.LA and not parser.left_arc_valid())
        else scorer.predict_action(a, ctx)
        for a, t in enumerate(transitions)
      ]
      action_key, word_key = jax.random.split(subkey)
      choice = sample_log_categorical(action_key, distr)
      parser.add_particle_weight(distr[choice])

      if transitions[choice].kind == Action.SH:
        _generate_word(parser, scorer, builder, word_key)
      else:
        parser.execute(transitions[choice])

    if parser.in_terminal_configuration():
      break

  logger.debug("generated sentence of length %d", len(parser) - 1)
  return parser
