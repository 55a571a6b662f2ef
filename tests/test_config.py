import pytest

from config import MAX_SENTENCE_LENGTH, ParserConfig, create_config, settings_from_env
from schema import ParserVocab

ENV_NAMES = (
  "BEAM_SIZE",
  "NUM_PARTICLES",
  "RESAMPLE_EVERY",
  "MAX_SENTENCE_LENGTH",
  "DECODER",
  "CONTEXT_TYPE",
  "NON_PROJECTIVE",
  "LABELLED",
)


@pytest.fixture
def clean_env(monkeypatch):
  for name in ENV_NAMES:
    monkeypatch.delenv(name, raising=False)
  return monkeypatch


def test_create_config_reads_special_ids(vocab):
  config = create_config(vocab)
  assert isinstance(config, ParserConfig)
  assert config.ROOT_ID == vocab.word2id["<ROOT>"]
  assert config.P_UNK_ID == vocab.pos2id["<p>:<UNK>"]
  assert config.num_labels == len(vocab.label2id)
  assert config.max_sentence_length == MAX_SENTENCE_LENGTH


def test_create_config_applies_overrides(vocab):
  config = create_config(vocab, decoder="particle", num_particles=7, non_projective=True)
  assert config.decoder == "particle"
  assert config.num_particles == 7
  assert config.non_projective


def test_missing_special_token(vocab):
  words = {w: i for w, i in vocab.word2id.items() if w != "<ROOT>"}
  with pytest.raises(ValueError, match="<ROOT>"):
    create_config(ParserVocab(words, vocab.pos2id, vocab.label2id, vocab.id2label))


@pytest.mark.parametrize(
  "overrides",
  [
    {"decoder": "viterbi"},
    {"context_type": "nonsense"},
    {"beam_size": -1},
    {"num_particles": -5},
    {"resample_every": -1},
    {"max_sentence_length": 1},
  ],
)
def test_invalid_settings(vocab, overrides):
  with pytest.raises(ValueError):
    create_config(vocab, **overrides)


def test_settings_from_env_only_returns_set_values(clean_env):
  assert settings_from_env() == {}


def test_settings_from_env(clean_env, vocab):
  clean_env.setenv("BEAM_SIZE", "3")
  clean_env.setenv("DECODER", "particle-gold")
  clean_env.setenv("NON_PROJECTIVE", "true")
  clean_env.setenv("LABELLED", "0")

  overrides = settings_from_env()
  assert overrides == {
    "beam_size": 3,
    "decoder": "particle-gold",
    "non_projective": True,
    "labelled": False,
  }
  config = create_config(vocab, **overrides)
  assert config.beam_size == 3 and not config.labelled
