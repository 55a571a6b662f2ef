import flax.linen as nn


def _dense(features: int) -> nn.Dense:
  # xavier uniform (glorot) weights, small uniform biases
  return nn.Dense(
    features=features,
    kernel_init=nn.initializers.xavier_uniform(),
    bias_init=nn.initializers.uniform(),
  )


class ParserModel(nn.Module):
  """
  feed-forward classifier over a feature context. the scorer holds one
  instance per prediction head (actions, tags, words); all of them embed
  word and tag ids from one shared id space.
  """

  vocab_size: int
  n_classes: int
  embed_size: int = 50
  hidden_size: int = 200
  dropout_rate: float = 0.5

  @nn.compact
  def __call__(self, x, train: bool = False):
    """
    x: (batch_size, context_size) int ids
    returns (batch_size, n_classes) log probabilities
    """
    table = self.param(
      "embeddings",
      nn.initializers.uniform(scale=0.1),
      (self.vocab_size, self.embed_size),
    )
    h = table[x].reshape((x.shape[0], -1))

    h = nn.relu(_dense(self.hidden_size)(h))
    h = nn.Dropout(rate=self.dropout_rate, deterministic=not train)(h)

    return nn.log_softmax(_dense(self.n_classes)(h))
