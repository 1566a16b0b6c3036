"""
Decoding strategies for character generation.

Provides:
- GreedyDecoder: picks the most probable next char
- RandomWeightedChoiceDecoder: samples the next char from the predicted distribution

Both feed the seed through the model, then feed back every generated char
carrying the recurrent state, until END-OF-TEXT is predicted or the output
reaches the max length.
"""

from __future__ import annotations

import random
from typing import Optional, Sequence

import torch

from .errors import ConfigurationError, InvalidInputError
from .model import CharLM, State


def weighted_choice(weights: Sequence[float], rng: random.Random) -> int:
    """
    Roulette-wheel selection over ``weights``.

    Draws u in [0, total) and returns the first index where the running sum
    exceeds it. Falls back to the last index (e.g. zero-mass rows).
    """
    total = float(sum(weights))
    u = rng.random() * total
    acc = 0.0
    for i, w in enumerate(weights):
        acc += w
        if acc > u:
            return i
    return len(weights) - 1


class Decoder:
    """Shared driving loop. Subclasses implement ``select``."""

    def __init__(self, model: CharLM, device: Optional[torch.device] = None):
        self.model = model
        self.vocab = model.vocabulary
        self.device = device or next(model.parameters()).device

    def select(self, probs: torch.Tensor, first: bool) -> int:
        raise NotImplementedError

    @torch.no_grad()
    def decode(self, seed: str, max_length: int) -> str:
        """
        Generate the continuation of ``seed``.

        Returns the seed followed by the generated chars, at most ``max_length``
        chars in total (a longer seed is returned as is). END-OF-TEXT is never
        part of the output.
        """
        if not seed:
            raise InvalidInputError("The seed must contain at least one character")
        self.vocab.check_text(seed)
        if max_length < 1:
            raise ConfigurationError("max_length must be >= 1")

        self.model.eval()
        out = list(seed)
        probs, state = self._forward(seed, None)
        next_id = self.select(probs, first=True)

        while len(out) < max_length and next_id != self.vocab.etx_id:
            ch = self.vocab.char_of(next_id)
            out.append(ch)
            probs, state = self._forward(ch, state)
            next_id = self.select(probs, first=False)

        return ''.join(out)

    def _forward(self, text: str, state: Optional[State]):
        """Encode ``text`` from ``state`` and classify after its last char only."""
        x = self.vocab.index(text).unsqueeze(0).to(self.device)
        outputs, state = self.model.encode(self.model.embed(x), state)
        return self.model.classify(outputs[0, -1]), state


class GreedyDecoder(Decoder):
    """Argmax decoding. END-OF-TEXT can be excluded from the first prediction."""

    def __init__(self, model: CharLM, device: Optional[torch.device] = None, exclude_eos_first: bool = True):
        super().__init__(model, device)
        self.exclude_eos_first = exclude_eos_first

    def select(self, probs: torch.Tensor, first: bool) -> int:
        if first and self.exclude_eos_first:
            probs = probs.clone()
            probs[self.vocab.etx_id] = -1.0
        return int(torch.argmax(probs).item())


class RandomWeightedChoiceDecoder(Decoder):
    """Samples each next char with probability given by the model."""

    def __init__(self, model: CharLM, device: Optional[torch.device] = None, rng: Optional[random.Random] = None):
        super().__init__(model, device)
        self.rng = rng or random.Random()

    def select(self, probs: torch.Tensor, first: bool) -> int:
        return weighted_choice(probs.tolist(), self.rng)
