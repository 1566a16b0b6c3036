from __future__ import annotations

import io
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional, Tuple, Union

import torch
import torch.nn as nn

from .errors import ConfigurationError, PersistenceError
from .vocabulary import Vocabulary

RECURRENT_CELLS = {"lstm": nn.LSTM, "gru": nn.GRU, "rnn": nn.RNN}

# nn.LSTM state is (h, c); nn.GRU / nn.RNN state is h. Shapes: [layers, B, H]
State = Union[torch.Tensor, Tuple[torch.Tensor, torch.Tensor]]


@dataclass(frozen=True)
class ModelConfig:
    embedding_size: int = 25
    hidden_size: int = 200
    cell: str = "lstm"
    layers: int = 1
    dropout: float = 0.0      # between stacked recurrent layers, training only
    reverse: bool = False     # trained on reversed sentences; the caller reverses the text

    def validate(self) -> None:
        if self.cell not in RECURRENT_CELLS:
            raise ConfigurationError(
                f"The connection type must be recurrent ({', '.join(RECURRENT_CELLS)}), got {self.cell!r}")
        if self.layers < 1:
            raise ConfigurationError("The number of recurrent layers must be >= 1")
        if self.embedding_size < 1 or self.hidden_size < 1:
            raise ConfigurationError("The embedding and hidden sizes must be >= 1")
        if not 0.0 <= self.dropout < 1.0:
            raise ConfigurationError("The dropout must be in [0, 1)")


def detach_state(state: Optional[State]) -> Optional[State]:
    """Cut the autograd graph at a window boundary, keeping the values."""
    if state is None:
        return None
    if isinstance(state, tuple):
        return tuple(s.detach() for s in state)
    return state.detach()


class CharLM(nn.Module):
    """Character language model: Embedding -> stacked recurrent encoder -> Linear + softmax.

    The model owns its vocabulary. ``best_perplexity`` is set by the trainer when it
    checkpoints and travels with the serialized model.
    """

    def __init__(self, vocabulary: Vocabulary, config: ModelConfig = ModelConfig()):
        super().__init__()
        config.validate()
        self.vocabulary = vocabulary
        self.config = config
        self.best_perplexity: float = 0.0

        V = len(vocabulary)
        self.emb = nn.Embedding(V, config.embedding_size)
        self.rnn = RECURRENT_CELLS[config.cell](
            config.embedding_size,
            config.hidden_size,
            num_layers=config.layers,
            dropout=config.dropout if config.layers > 1 else 0.0,
            batch_first=True,
        )
        self.out = nn.Linear(config.hidden_size, V)
        self._init_weights()

    def _init_weights(self):
        for p in self.parameters():
            if p.dim() > 1:
                nn.init.xavier_uniform_(p)
            else:
                nn.init.zeros_(p)
        if self.config.cell == "lstm":
            # gates are laid out (input, forget, cell, output)
            H = self.config.hidden_size
            last = self.config.layers - 1
            with torch.no_grad():
                getattr(self.rnn, f"bias_ih_l{last}")[H:2 * H].fill_(1.0)

    @property
    def output_size(self) -> int:
        return self.out.out_features

    def embed(self, ids: torch.Tensor) -> torch.Tensor:          # [B, T] -> [B, T, E]
        return self.emb(ids)

    def encode(self, embeddings: torch.Tensor, state: Optional[State] = None) -> Tuple[torch.Tensor, State]:
        """Run the recurrent encoder. ``state=None`` starts a new sentence."""
        outputs, final = self.rnn(embeddings, state)
        return outputs, final                                     # [B, T, H]

    def classify(self, encoded: torch.Tensor) -> torch.Tensor:   # [..., H] -> [..., V]
        return torch.softmax(self.out(encoded), dim=-1)

    def forward(self, ids: torch.Tensor, state: Optional[State] = None) -> Tuple[torch.Tensor, State]:
        outputs, final = self.encode(self.embed(ids), state)
        return self.classify(outputs), final

    # -------- persistence --------
    def dump(self) -> bytes:
        payload = {
            "config": asdict(self.config),
            "vocabulary": self.vocabulary.to_dict(),
            "state_dict": {k: v.detach().cpu() for k, v in self.state_dict().items()},
            "best_perplexity": float(self.best_perplexity),
        }
        buffer = io.BytesIO()
        try:
            torch.save(payload, buffer)
        except Exception as e:
            raise PersistenceError(f"Cannot serialize the model: {e}") from e
        return buffer.getvalue()

    @classmethod
    def load(cls, blob: bytes) -> "CharLM":
        try:
            payload = torch.load(io.BytesIO(blob), map_location="cpu", weights_only=True)
            model = cls(Vocabulary.from_dict(payload["vocabulary"]), ModelConfig(**payload["config"]))
            model.load_state_dict(payload["state_dict"])
            model.best_perplexity = float(payload["best_perplexity"])
        except Exception as e:
            raise PersistenceError(f"Cannot load the model: {e}") from e
        return model

    def save(self, path: Union[str, Path]) -> None:
        blob = self.dump()
        try:
            Path(path).write_bytes(blob)
        except OSError as e:
            raise PersistenceError(f"Cannot write the model to '{path}': {e}") from e

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "CharLM":
        try:
            blob = Path(path).read_bytes()
        except OSError as e:
            raise PersistenceError(f"Cannot read the model from '{path}': {e}") from e
        return cls.load(blob)
