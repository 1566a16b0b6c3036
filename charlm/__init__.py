from typing import Iterable

from .errors import CharLMError, InvalidInputError, OutOfRangeError, ConfigurationError, PersistenceError
from .vocabulary import Vocabulary, UNK, ETX
from .moving_average import MovingAverage
from .datasets import LineCorpus, CharsBatch, to_batches, valid_lines
from .model import CharLM, ModelConfig
from .trainer import CharLMTrainer, TrainerConfig, TrainState
from .decoding import GreedyDecoder, RandomWeightedChoiceDecoder, weighted_choice
from .runtime import CharLMRuntime

__all__ = [
    "CharLMError", "InvalidInputError", "OutOfRangeError", "ConfigurationError", "PersistenceError",
    "Vocabulary", "UNK", "ETX", "MovingAverage", "LineCorpus", "CharsBatch", "to_batches", "valid_lines",
    "CharLM", "ModelConfig", "CharLMTrainer", "TrainerConfig", "TrainState",
    "GreedyDecoder", "RandomWeightedChoiceDecoder", "weighted_choice", "CharLMRuntime",
    "train", "load",
]
__version__ = "0.1.0"

def train(sentences: Iterable[str], *,
          epochs: int = 1,
          batch_size: int = 50,
          lr: float = 1e-3,
          update_method: str = "adam",
          embedding_size: int = 25,
          hidden_size: int = 200,
          cell: str = "lstm",
          layers: int = 1,
          reverse: bool = False,          # sentences are already reversed by the caller
          seed: int | None = None,        # training RNG (None = random)
          outdir: str | None = None,
          use_cpu: bool = False,
          verbose: bool = True) -> CharLM:
    """Build the vocabulary of ``sentences``, train a fresh CharLM on them and return it.

    Sentences holding the UNK or ETX glyphs are left out of the vocabulary and skipped by the trainer.
    """
    sentences = list(sentences)
    model = CharLM(Vocabulary.build(valid_lines(sentences)), ModelConfig(
        embedding_size=embedding_size, hidden_size=hidden_size,
        cell=cell, layers=layers, reverse=reverse,
    ))
    cfg = TrainerConfig(
        epochs=epochs, batch_size=batch_size, lr=lr, update_method=update_method,
        seed=seed, outdir=outdir, use_cpu=use_cpu, verbose=verbose,
    )
    return CharLMTrainer(model, sentences, cfg=cfg, autostart=True).model

def load(path: str) -> CharLMRuntime:
    """Load a trained model file into a runtime ready to generate."""
    return CharLMRuntime.from_file(path)
