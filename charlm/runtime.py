from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
import math, random, torch
from .decoding import Decoder, GreedyDecoder, RandomWeightedChoiceDecoder
from .errors import ConfigurationError, InvalidInputError
from .loss import cross_entropy
from .model import CharLM

STRATEGIES = ("greedy", "random")

@dataclass
class CharLMRuntime:
    model: CharLM
    device: torch.device
    path: Optional[Path] = None

    def decoder(self, strategy: str = "greedy", seed: Optional[int] = None) -> Decoder:
        if strategy == "greedy":
            return GreedyDecoder(self.model, device=self.device)
        if strategy == "random":
            return RandomWeightedChoiceDecoder(self.model, device=self.device, rng=random.Random(seed))
        raise ConfigurationError(f"Unknown decoding strategy {strategy!r} (expected one of {', '.join(STRATEGIES)})")

    def generate(self, text: str, max_length: int = 100, strategy: str = "greedy", seed: Optional[int] = None) -> str:
        return self.decoder(strategy, seed).decode(text, max_length)

    @torch.no_grad()
    def perplexity(self, text: str) -> float:
        """exp of the mean loss of predicting each char of ``text`` from the previous ones."""
        if len(text) == 1: text = f" {text} "
        if len(text) < 2:
            raise InvalidInputError("The text must contain at least one character")
        vocab = self.model.vocabulary
        vocab.check_text(text)
        self.model.eval()
        x = vocab.index(text[:-1]).unsqueeze(0).to(self.device)
        y = vocab.index(text[1:]).to(self.device)
        probs, _ = self.model(x)
        return math.exp(cross_entropy(probs[0], y).mean().item())

    @classmethod
    def from_file(cls, path: Union[str, Path], device: Optional[torch.device] = None) -> "CharLMRuntime":
        path = Path(path); device = device or torch.device("cuda" if torch.cuda.is_available() else "cpu")
        model = CharLM.from_file(path).to(device)
        model.eval()
        return cls(model=model, device=device, path=path)
