import jax
import pytest

from engine import flat_parse, make_parser
from inference import AccuracyCounts, decode_sentence, evaluate_corpus
from oracle import static_gold_parse


def test_perfect_parse_scores_full_marks(dog_sentence, config):
  parser = static_gold_parse(make_parser(dog_sentence, config), dog_sentence)
  counts = AccuracyCounts()
  counts.count_accuracy(parser, dog_sentence)

  assert counts.directed_accuracy == 1.0
  assert counts.labelled_accuracy == 1.0
  assert counts.complete_accuracy == 1.0
  assert counts.root_accuracy == 1.0
  assert counts.no_parse == 0


def test_fallback_parse_is_counted(dog_sentence, config):
  counts = AccuracyCounts()
  counts.count_accuracy(flat_parse(dog_sentence, config), dog_sentence)

  # only the verb hangs off the root in the gold tree
  assert counts.directed_accuracy == pytest.approx(1.0 / 3.0)
  assert counts.complete_accuracy == 0.0
  assert counts.root_accuracy == 1.0
  assert counts.no_parse == 1
  assert counts.cross_entropy == 0.0


def test_empty_counts():
  counts = AccuracyCounts()
  assert counts.directed_accuracy == 0.0
  assert counts.root_accuracy == 0.0
  assert counts.perplexity == 1.0


@pytest.mark.parametrize("decoder", ["beam", "particle", "particle-gold", "oracle"])
def test_decode_dispatch(dog_sentence, config, builder, uniform_scorer, decoder):
  config = config._replace(decoder=decoder, num_particles=8)
  parse = decode_sentence(dog_sentence, uniform_scorer, builder, config, jax.random.PRNGKey(0))
  assert parse.in_terminal_configuration()
  assert len(parse.arcs) == len(dog_sentence)


def test_oracle_decoder_falls_back_on_crossing_arcs(sentences, config, builder, uniform_scorer):
  config = config._replace(decoder="oracle")
  parse = decode_sentence(sentences[2], uniform_scorer, builder, config)
  assert parse.is_fallback


def test_unknown_decoder(dog_sentence, config, builder, uniform_scorer):
  with pytest.raises(ValueError):
    decode_sentence(dog_sentence, uniform_scorer, builder, config._replace(decoder="viterbi"))


def test_evaluate_corpus(dog_sentence, config, builder, gold_scorer_for):
  scorer = gold_scorer_for(dog_sentence)
  counts, parses = evaluate_corpus([dog_sentence], scorer, builder, config, jax.random.PRNGKey(0))

  assert len(parses) == 1
  assert counts.sentences == 1
  assert counts.tokens == 3
  assert counts.directed_accuracy == 1.0
  assert counts.labelled_accuracy == 1.0
  assert counts.cross_entropy > 0.0
