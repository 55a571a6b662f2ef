import os
import logging
from typing import List, Dict, Iterable, Iterator

from dotenv import load_dotenv
from schema import ParsedSentence, ParserVocab

load_dotenv()

logger = logging.getLogger(__name__)

SPECIAL_TOKENS = ("<NULL>", "<ROOT>", "<UNK>")

# CoNLL-X columns
ID, FORM, CPOSTAG, POSTAG, HEAD, DEPREL = 0, 1, 3, 4, 6, 7


def _token_blocks(path: str) -> Iterator[List[List[str]]]:
  """
  yields the token rows of each sentence, split on any whitespace.
  comment lines, multiword ranges (1-2) and empty nodes (1.1) are dropped;
  a short row ends the sentence like a blank line does.
  """
  rows: List[List[str]] = []
  with open(path, "r", encoding="utf-8") as f:
    for line in f:
      line = line.strip()
      if line.startswith("#"):
        continue
      cols = line.split()
      if len(cols) <= DEPREL:
        if rows:
          yield rows
        rows = []
      elif "-" not in cols[ID] and "." not in cols[ID]:
        rows.append(cols)
  if rows:
    yield rows


def load_conll_data(file_name: str, lowercase: bool = True, coarse_tags: bool = False) -> List[Dict]:
  """
  reads DATA_PATH/file_name into dicts of parallel word/pos/head/label lists.
  the fine-grained tag column is used unless coarse_tags is set.
  """
  full_path = os.path.join(os.getenv("DATA_PATH", "./data"), file_name)
  tag_col = CPOSTAG if coarse_tags else POSTAG

  examples = [
    {
      "word": [r[FORM].lower() if lowercase else r[FORM] for r in rows],
      "pos": [r[tag_col] for r in rows],
      "head": [int(r[HEAD]) for r in rows],
      "label": [r[DEPREL] for r in rows],
    }
    for rows in _token_blocks(full_path)
  ]

  logger.info("loaded %d sentences from %s", len(examples), full_path)
  return examples


def build_vocab(train_data: List[Dict]) -> ParserVocab:
  """
  builds one contiguous id range per kind, special tokens first.
  words: <NULL>=0, <ROOT>=1, <UNK>=2, then sorted types; tags likewise with
  the <p>: prefix; labels are 0..L-1 with no specials (-1 = no label).
  """
  unique_labels = sorted(set(ll for ex in train_data for ll in ex["label"]))
  label2id = {f"<l>:{ll}": i for i, ll in enumerate(unique_labels)}
  id2label = {i: ll for ll, i in label2id.items()}

  unique_pos = sorted(set(p for ex in train_data for p in ex["pos"]))
  pos_tokens = [f"<p>:{t}" for t in SPECIAL_TOKENS] + [f"<p>:{p}" for p in unique_pos]
  pos2id = {p: i for i, p in enumerate(pos_tokens)}

  unique_words = sorted(set(w for ex in train_data for w in ex["word"]) - set(SPECIAL_TOKENS))
  word2id = {w: i for i, w in enumerate(list(SPECIAL_TOKENS) + unique_words)}

  return ParserVocab(word2id, pos2id, label2id, id2label)


def vectorize_sentences(raw_data: List[Dict], vocab: ParserVocab) -> List[ParsedSentence]:
  """
  indexing invariant:
  - position 0 is ROOT (no head, no label)
  - real tokens are in positions 1..n (matching CoNLL token IDs)
  - unknown labels map to -1
  """
  sentences: List[ParsedSentence] = []

  root_w = vocab.word2id["<ROOT>"]
  root_p = vocab.pos2id["<p>:<ROOT>"]
  unk_w = vocab.word2id["<UNK>"]
  unk_p = vocab.pos2id["<p>:<UNK>"]

  for ex in raw_data:
    words = [root_w] + [vocab.word2id.get(w, unk_w) for w in ex["word"]]
    tags = [root_p] + [vocab.pos2id.get(f"<p>:{p}", unk_p) for p in ex["pos"]]
    arcs = [-1] + list(ex["head"])
    labels = [-1] + [vocab.label2id.get(f"<l>:{ll}", -1) for ll in ex["label"]]
    sentences.append(ParsedSentence(tuple(words), tuple(tags), tuple(arcs), tuple(labels)))

  return sentences


def format_conll(raw: Dict, arcs: List[int], labels: List[int], vocab: ParserVocab) -> str:
  """CoNLL-X lines for one sentence, with predicted heads and labels."""
  lines = []
  for i, (w, p) in enumerate(zip(raw["word"], raw["pos"]), start=1):
    head = arcs[i] if arcs[i] >= 0 else 0
    rel = vocab.id2label.get(labels[i], "<l>:_")[len("<l>:"):]
    lines.append("\t".join([str(i), w, "_", p, p, "_", str(head), rel, "_", "_"]))
  return "\n".join(lines) + "\n"


def write_conll(path: str, blocks: Iterable[str]) -> None:
  directory = os.path.dirname(path)
  if directory:
    os.makedirs(directory, exist_ok=True)
  count = 0
  with open(path, "w", encoding="utf-8") as f:
    for block in blocks:
      f.write(block + "\n")
      count += 1
  logger.info("wrote %d sentences to %s", count, path)
