import os
from typing import NamedTuple, Dict, Any

from dotenv import load_dotenv
from schema import ParserVocab

# extracted constants from magic numbers
MAX_SENTENCE_LENGTH = 100  # hard cap for unconditional generation
DECODERS = ("beam", "particle", "particle-gold", "oracle")


class ParserConfig(NamedTuple):
  """constants and special IDs for the parser and its decoders."""

  # scorer network
  hidden_size: int = 200
  embed_size: int = 50
  dropout_rate: float = 0.5

  # transition system
  labelled: bool = True
  non_projective: bool = False
  num_labels: int = 1
  context_type: str = "standard"

  # search
  decoder: str = "beam"
  beam_size: int = 8
  num_particles: int = 100
  resample_every: int = 1
  max_sentence_length: int = MAX_SENTENCE_LENGTH

  # special IDs mapped from ParserVocab
  NULL_ID: int = 0
  P_NULL_ID: int = 0
  ROOT_ID: int = 1
  P_ROOT_ID: int = 1
  UNK_ID: int = 2
  P_UNK_ID: int = 2


def create_config(vocab: ParserVocab, **overrides) -> ParserConfig:
  """factory function to populate IDs based on the actual vocab with validation."""
  # avoid a circular import: the context catalogue needs schema only
  from features import CONTEXT_TYPES

  required_word_tokens = ["<NULL>", "<ROOT>", "<UNK>"]
  required_pos_tokens = ["<p>:<NULL>", "<p>:<ROOT>", "<p>:<UNK>"]

  for tok in required_word_tokens:
    if tok not in vocab.word2id:
      raise ValueError(f"missing required word token in vocabulary: {tok}")

  for tok in required_pos_tokens:
    if tok not in vocab.pos2id:
      raise ValueError(f"missing required POS token in vocabulary: {tok}")

  config = ParserConfig(
    num_labels=max(len(vocab.label2id), 1),
    NULL_ID=vocab.word2id["<NULL>"],
    P_NULL_ID=vocab.pos2id["<p>:<NULL>"],
    ROOT_ID=vocab.word2id["<ROOT>"],
    P_ROOT_ID=vocab.pos2id["<p>:<ROOT>"],
    UNK_ID=vocab.word2id["<UNK>"],
    P_UNK_ID=vocab.pos2id["<p>:<UNK>"],
  )._replace(**overrides)

  if config.context_type not in CONTEXT_TYPES:
    raise ValueError(f"unknown context type: {config.context_type}")
  if config.decoder not in DECODERS:
    raise ValueError(f"unknown decoder: {config.decoder}")
  if config.beam_size < 0 or config.num_particles < 0:
    raise ValueError("beam size and particle count must be non-negative")
  if config.resample_every < 0:
    raise ValueError("resample interval must be non-negative")
  if config.max_sentence_length < 2:
    raise ValueError("max sentence length must leave room for one word after the root")

  return config


def _env_flag(name: str, default: bool) -> bool:
  value = os.getenv(name)
  if value is None:
    return default
  return value.strip().lower() in ("1", "true", "yes", "on")


def settings_from_env() -> Dict[str, Any]:
  """
  reads decoder settings from the environment (and a .env file if present).
  only variables that are set are returned, so the result can be splatted
  into create_config as overrides.
  """
  load_dotenv()

  overrides: Dict[str, Any] = {}
  int_settings = {
    "BEAM_SIZE": "beam_size",
    "NUM_PARTICLES": "num_particles",
    "RESAMPLE_EVERY": "resample_every",
    "MAX_SENTENCE_LENGTH": "max_sentence_length",
  }
  for env_name, field in int_settings.items():
    value = os.getenv(env_name)
    if value is not None:
      overrides[field] = int(value)

  if os.getenv("DECODER") is not None:
    overrides["decoder"] = os.getenv("DECODER")
  if os.getenv("CONTEXT_TYPE") is not None:
    overrides["context_type"] = os.getenv("CONTEXT_TYPE")
  if os.getenv("NON_PROJECTIVE") is not None:
    overrides["non_projective"] = _env_flag("NON_PROJECTIVE", False)
  if os.getenv("LABELLED") is not None:
    overrides["labelled"] = _env_flag("LABELLED", True)

  return overrides
