import os
import logging

import jax
from dotenv import load_dotenv

from config import create_config, settings_from_env
from data_loader import (
  load_conll_data,
  build_vocab,
  vectorize_sentences,
  format_conll,
  write_conll,
)
from engine import make_parser, num_actions_for
from features import ContextBuilder
from generator import generate_sentence
from inference import evaluate_corpus
from oracle import OracleFailure, static_gold_parse, extract_examples
from scorer import init_scorer, load_scorer

logger = logging.getLogger(__name__)


def extract_oracle_examples(sentences, builder, config):
  """
  replays the static oracle over every sentence. sentences the oracle cannot
  derive are skipped and counted rather than aborting the run.
  """
  n_actions = n_tags = n_words = 0
  failures = non_projective = 0

  for idx, sent in enumerate(sentences):
    if not sent.is_projective():
      non_projective += 1
    try:
      parser = static_gold_parse(make_parser(sent, config), sent)
    except OracleFailure as e:
      failures += 1
      logger.warning("skipping sentence %d: %s", idx, e)
      continue

    examples = extract_examples(parser, builder)
    n_actions += len(examples.actions)
    n_tags += len(examples.tags)
    n_words += len(examples.words)

  logger.info(
    "oracle: %d sentences, %d non-projective, %d oracle failures",
    len(sentences),
    non_projective,
    failures,
  )
  logger.info(
    "examples: %d action, %d tag, %d word", n_actions, n_tags, n_words
  )
  return failures


def main():
  logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
  )

  load_dotenv()
  data_path = os.getenv("DATA_PATH", "./data")
  params_path = os.getenv("PARAMS_PATH", "results/scorer.params")
  output_path = os.getenv("OUTPUT_PATH", "results/dev.pred.conll")
  num_generate = int(os.getenv("NUM_GENERATE", "0"))
  seed = int(os.getenv("SEED", "0"))
  logger.info("loading data from %s...", data_path)

  raw_train = load_conll_data("train.conll")
  vocab = build_vocab(raw_train)
  config = create_config(vocab, **settings_from_env())

  train_sentences = vectorize_sentences(raw_train, vocab)
  raw_dev = load_conll_data("dev.conll")
  dev_sentences = vectorize_sentences(raw_dev, vocab)

  logger.info(
    "train sentences: %d | dev: %d | labels: %d | decoder: %s",
    len(train_sentences),
    len(dev_sentences),
    config.num_labels,
    config.decoder,
  )

  num_words = len(vocab.word2id)
  num_tags = len(vocab.pos2id)
  builder = ContextBuilder(config, tag_offset=num_words)

  logger.info("generating training instances via oracle...")
  extract_oracle_examples(train_sentences, builder, config)

  rng = jax.random.PRNGKey(seed)
  model_rng, decode_rng, generate_rng = jax.random.split(rng, 3)
  num_actions = num_actions_for(config)

  if os.path.exists(params_path):
    scorer = load_scorer(params_path, config, num_words, num_tags, num_actions)
  else:
    logger.info("no parameters at %s; scoring with an untrained model", params_path)
    scorer = init_scorer(config, builder, num_words, num_tags, num_actions, model_rng)
    scorer.save(params_path)

  counts, parses = evaluate_corpus(dev_sentences, scorer, builder, config, decode_rng)
  write_conll(
    output_path,
    (
      format_conll(raw, parse.arcs, parse.labels, vocab)
      for raw, parse in zip(raw_dev, parses)
    ),
  )

  id2word = {i: w for w, i in vocab.word2id.items()}
  for _ in range(num_generate):
    generate_rng, subkey = jax.random.split(generate_rng)
    generated = generate_sentence(scorer, builder, config, subkey)
    logger.info(
      "generated (%.2f): %s",
      generated.particle_weight,
      " ".join(id2word.get(w, "<UNK>") for w in generated.words[1:]),
    )

  logger.info("")
  logger.info("=" * 60)
  logger.info("evaluation summary:")
  logger.info("  dev UAS: %.2f%%", counts.directed_accuracy * 100.0)
  logger.info("  dev LAS: %.2f%%", counts.labelled_accuracy * 100.0)
  logger.info("  root accuracy: %.2f%%", counts.root_accuracy * 100.0)
  logger.info("  cross entropy: %.4f", counts.cross_entropy)
  logger.info("=" * 60)


if __name__ == "__main__":
  main()
