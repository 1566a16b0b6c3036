from __future__ import annotations

from typing import Dict, Iterable, List, Sequence

import torch

from .errors import InvalidInputError, OutOfRangeError

UNK = "\x00"   # characters never seen in the corpus
ETX = "\x03"   # end of text
SENTINELS = (UNK, ETX)


class Vocabulary:
    """Characters of a corpus in insertion order, followed by the UNK and ETX sentinels.

    Immutable once built: the classifier width of a model is tied to ``len(vocab)``.
    """

    def __init__(self, characters: Sequence[str]):
        characters = tuple(characters)
        if characters[-2:] != SENTINELS or any(c in SENTINELS for c in characters[:-2]):
            raise InvalidInputError("The sentinels must be the last two symbols, exactly once")
        if len(set(characters)) != len(characters):
            raise InvalidInputError("Duplicated characters in vocabulary")
        self.characters = characters
        self._ids: Dict[str, int] = {c: i for i, c in enumerate(characters)}

    @classmethod
    def build(cls, corpus: Iterable[str]) -> "Vocabulary":
        seen: Dict[str, None] = {}
        for line in corpus:
            check_text(line)
            for ch in line:
                seen.setdefault(ch, None)
        return cls(list(seen) + list(SENTINELS))

    def size(self) -> int:
        return len(self.characters)

    def __len__(self) -> int:
        return len(self.characters)

    def __contains__(self, ch: str) -> bool:
        return ch in self._ids

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Vocabulary) and self.characters == other.characters

    def __hash__(self) -> int:
        return hash(self.characters)

    def __repr__(self) -> str:
        return f"Vocabulary(size={len(self)})"

    @property
    def unk_id(self) -> int:
        return len(self.characters) - 2

    @property
    def etx_id(self) -> int:
        return len(self.characters) - 1

    def id_of(self, ch: str) -> int:
        return self._ids.get(ch, self.unk_id)

    def char_of(self, idx: int) -> str:
        idx = int(idx)
        if not 0 <= idx < len(self.characters):
            raise OutOfRangeError(f"Id {idx} out of vocabulary range [0, {len(self.characters)})")
        return self.characters[idx]

    def is_end_of_text(self, ch: str) -> bool:
        return ch == ETX

    def check_text(self, text: str) -> None:
        check_text(text)

    def index(self, text: str) -> torch.Tensor:
        return torch.tensor([self.id_of(c) for c in text], dtype=torch.long)

    def read(self, indices: Iterable[int]) -> str:
        return ''.join(self.char_of(int(i)) for i in indices)

    def to_dict(self) -> Dict[str, List[str]]:
        return {"characters": list(self.characters)}

    @classmethod
    def from_dict(cls, data: Dict[str, List[str]]) -> "Vocabulary":
        return cls(data["characters"])


def check_text(text: str) -> None:
    """Raise InvalidInputError if ``text`` contains the UNK or ETX glyphs."""
    if UNK in text or ETX in text:
        raise InvalidInputError("The text cannot contain the NULL or ETX chars")
