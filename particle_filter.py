import logging
from typing import List, Optional, Tuple

import jax

from config import ParserConfig
from engine import TransitionParser, make_parser, flat_parse
from features import ContextBuilder
from oracle import oracle_transition
from schema import Action, Transition, Sentence, ParsedSentence
from scorer import Scorer
from utils import L_MAX, neg_log_sum, neg_log_sum_exp, sample_log_multinomial

logger = logging.getLogger(__name__)


def _importance_order(p: TransitionParser):
  # particles without multiplicity sort last
  if p.num_particles == 0:
    return (1, 0.0)
  return (0, p.weighted_importance_weight)


def drop_dead(particles: List[TransitionParser]) -> List[TransitionParser]:
  """sorts by weighted importance weight and removes zero-multiplicity particles."""
  particles = sorted(particles, key=_importance_order)
  return [p for p in particles if p.num_particles > 0]


def resample_particles(
  particles: List[TransitionParser], key: jax.Array, num_particles: int
) -> List[TransitionParser]:
  """
  redistributes num_particles units over the live particles in proportion to
  their exponentiated (multiplicity-weighted) importance weights, then resets
  the importance weights. survivors with no units are kept with zero
  multiplicity until the next sort.
  """
  particles = drop_dead(particles)
  if not particles:
    return particles

  weights = [p.weighted_importance_weight for p in particles]
  counts = sample_log_multinomial(key, weights, num_particles)
  for p, count in zip(particles, counts):
    p.num_particles = int(count)
    p.reset_importance_weight()
  return particles


def _shift_particle(parser: TransitionParser, scorer: Scorer, builder: ContextBuilder, shiftp: float) -> None:
  tagp = scorer.predict_tag(parser.next_tag(), builder.tag_context(parser))
  wordp = scorer.predict_word(parser.next_word(), builder.word_context(parser))

  parser.shift()
  parser.add_particle_weight(shiftp)
  parser.add_importance_weight(wordp)
  parser.add_importance_weight(tagp)
  parser.add_particle_weight(wordp)
  parser.add_particle_weight(tagp)


def _reduce_options(parser: TransitionParser, scorer: Scorer, ctx) -> Tuple[List[Tuple[Transition, float]], float]:
  """
  every labelled reduce with its weight, plus the total reduce mass. when
  left arcs are invalid they cost L_MAX and the right arcs take over the
  whole reduce mass, keeping their relative split across labels.
  """
  options = [
    (t, scorer.predict_action(parser.action_id(*t), ctx)) for t in parser.reduce_transitions()
  ]
  reducep = neg_log_sum(w for _, w in options)
  if parser.left_arc_valid():
    return options, reducep

  rightp = neg_log_sum(w for t, w in options if t.kind == Action.RA)
  options = [
    (t, L_MAX if t.kind == Action.LA else w + reducep - rightp) for t, w in options
  ]
  return options, reducep


def _branch(parser: TransitionParser, transition: Transition, weight: float, count: int) -> TransitionParser:
  child = parser.clone()
  child.execute(transition)
  child.add_particle_weight(weight)
  child.num_particles = count
  return child


class _Resampler:
  """applies the resampling policy: every `every` steps, 0 disables it."""

  def __init__(self, every: int, num_particles: int):
    self.every = every
    self.num_particles = num_particles
    self.steps = 0

  def __call__(self, particles, key):
    self.steps += 1
    if self.every and self.steps % self.every == 0:
      return resample_particles(particles, key, self.num_particles)
    return particles


def _finish(particles, sentence, config, key) -> TransitionParser:
  particles = drop_dead(particles)
  if particles:
    # just take 1 sample
    particles = resample_particles(particles, key, 1)
    for p in particles:
      if p.num_particles == 1:
        return p

  logger.warning("no parse found (%d particles)", config.num_particles)
  return flat_parse(sentence, config)


def particle_parse(
  sentence: Sentence,
  scorer: Scorer,
  builder: ContextBuilder,
  config: ParserConfig,
  key: jax.Array,
  num_particles: Optional[int] = None,
) -> TransitionParser:
  """
  sequential importance resampling over derivations. each particle carries a
  multiplicity; at every word all units of a particle sample their actions up
  to the next shift, splitting the particle by outcome.
  """
  num_particles = config.num_particles if num_particles is None else num_particles
  resample = _Resampler(config.resample_every, num_particles)

  particles = [make_parser(sentence, config, num_particles)]
  # shift ROOT symbol (probability 1)
  particles[0].shift()

  for _ in range(1, len(sentence)):
    j = 0
    # reduce branches are appended and advanced within the same step
    while j < len(particles):
      parser = particles[j]
      j += 1
      if parser.num_particles == 0:
        continue

      num_samples = parser.num_particles
      ctx = builder.action_context(parser)
      shiftp = scorer.predict_action(parser.action_id(Action.SH), ctx)
      options, _ = _reduce_options(parser, scorer, ctx)

      if parser.stack_depth < 2:
        # only shift is allowed
        counts = [num_samples] + [0] * len(options)
      else:
        key, subkey = jax.random.split(key)
        distr = [shiftp] + [w for _, w in options]
        counts = sample_log_multinomial(subkey, distr, num_samples)

      for (transition, weight), count in zip(options, counts[1:]):
        if count > 0:
          particles.append(_branch(parser, transition, weight, int(count)))

      # the particle itself carries the shift units
      if counts[0] == 0:
        parser.num_particles = 0
      else:
        _shift_particle(parser, scorer, builder, shiftp)
        parser.num_particles = int(counts[0])

    key, subkey = jax.random.split(key)
    particles = resample(particles, subkey)

  # completion: reduce only
  has_more_states = True
  while has_more_states:
    has_more_states = False
    for parser in list(particles):
      if parser.num_particles == 0 or parser.in_terminal_configuration():
        continue

      has_more_states = True
      ctx = builder.action_context(parser)
      options, reducep = _reduce_options(parser, scorer, ctx)
      options = [(t, w) for t, w in options if w < L_MAX]

      if len(options) == 1:
        counts = [parser.num_particles]
      else:
        key, subkey = jax.random.split(key)
        counts = sample_log_multinomial(subkey, [w for _, w in options], parser.num_particles)

      branches = [(t, w, int(c)) for (t, w), c in zip(options, counts) if c > 0]
      # the particle itself takes the first branch, the rest are clones
      for transition, weight, count in branches[1:]:
        child = _branch(parser, transition, weight, count)
        child.add_importance_weight(reducep)
        particles.append(child)

      transition, weight, count = branches[0]
      parser.execute(transition)
      parser.add_particle_weight(weight)
      parser.add_importance_weight(reducep)
      parser.num_particles = count

    key, subkey = jax.random.split(key)
    particles = resample(particles, subkey)

  return _finish(particles, sentence, config, key)


def particle_gold_parse(
  gold: ParsedSentence,
  scorer: Scorer,
  builder: ContextBuilder,
  config: ParserConfig,
  key: jax.Array,
  num_particles: Optional[int] = None,
) -> TransitionParser:
  """
  particle filter guided by the gold tree: whenever the oracle asks for a
  reduce, at least one unit takes it; the remaining units choose between
  shifting and that reduce by the model's probabilities. completion follows
  the oracle deterministically and kills particles it cannot complete.
  """
  num_particles = config.num_particles if num_particles is None else num_particles
  resample = _Resampler(config.resample_every, num_particles)

  particles = [make_parser(gold, config, num_particles)]
  particles[0].shift()

  for _ in range(1, len(gold)):
    j = 0
    while j < len(particles):
      parser = particles[j]
      j += 1
      if parser.num_particles == 0:
        continue

      num_samples = parser.num_particles
      ctx = builder.action_context(parser)
      shiftp = scorer.predict_action(parser.action_id(Action.SH), ctx)
      oracle_next = oracle_transition(parser, gold)

      if oracle_next.kind == Action.SH:
        shift_count, reduce_count = num_samples, 0
        if parser.stack_depth >= 2:
          parser.add_importance_weight(shiftp)
      else:
        actionp = scorer.predict_action(parser.action_id(*oracle_next), ctx)
        _, reducep = _reduce_options(parser, scorer, ctx)
        if oracle_next.kind not in (Action.LA, Action.RA):
          reducep = neg_log_sum_exp(reducep, actionp)

        # enforce at least one particle to reduce
        key, subkey = jax.random.split(key)
        counts = sample_log_multinomial(subkey, [shiftp, reducep], num_samples - 1)
        shift_count, reduce_count = int(counts[0]), int(counts[1]) + 1

        child = _branch(parser, oracle_next, actionp, reduce_count)
        child.add_importance_weight(actionp - reducep)
        particles.append(child)

      if shift_count == 0:
        parser.num_particles = 0
      else:
        _shift_particle(parser, scorer, builder, shiftp)
        parser.num_particles = shift_count

    key, subkey = jax.random.split(key)
    particles = resample(particles, subkey)

  has_more_states = True
  while has_more_states:
    has_more_states = False
    for parser in particles:
      if parser.num_particles == 0 or parser.in_terminal_configuration():
        continue

      has_more_states = True
      oracle_next = oracle_transition(parser, gold)
      if oracle_next.kind in (Action.RE, Action.SH):
        # invalid, so let the particle die
        parser.num_particles = 0
        continue

      weight = scorer.predict_action(
        parser.action_id(*oracle_next), builder.action_context(parser)
      )
      parser.execute(oracle_next)
      parser.add_particle_weight(weight)
      parser.add_importance_weight(weight)

    key, subkey = jax.random.split(key)
    particles = resample(particles, subkey)

  return _finish(particles, gold, config, key)
