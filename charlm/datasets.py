from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Union

import torch.utils.data as data

from .errors import InvalidInputError
from .vocabulary import ETX, check_text

logger = logging.getLogger(__name__)


class LineCorpus(data.IterableDataset):
    """One sentence per line, read from a file or from every file under a directory.

    Re-iterable: each iteration re-opens the files, so it can drive several epochs.
    With ``reverse=True`` each line is yielded with its characters reversed.
    """

    def __init__(self, path: Union[str, Path], max_sentences: Optional[int] = None, reverse: bool = False):
        super().__init__()
        self.path = Path(path)
        self.max_sentences = max_sentences
        self.reverse = reverse

    def files(self) -> List[Path]:
        if self.path.is_dir():
            return sorted(p for p in self.path.rglob("*") if p.is_file())
        return [self.path]

    def __iter__(self) -> Iterator[str]:
        count = 0
        for file in self.files():
            with file.open("r", encoding="utf-8") as f:
                for line in f:
                    if self.max_sentences is not None and count >= self.max_sentences:
                        return
                    line = line.rstrip("\r\n")
                    count += 1
                    yield line[::-1] if self.reverse else line


@dataclass(frozen=True)
class CharsBatch:
    """A window of a sentence. ``next_char`` is None for the last window."""
    text: str
    next_char: Optional[str]
    is_sentence_start: bool

    @property
    def targets(self) -> str:
        # each position predicts the char that follows it
        return self.text[1:] + (self.next_char if self.next_char is not None else ETX)


def to_batches(sentence: str, batch_size: int) -> Iterator[CharsBatch]:
    """Split ``sentence`` into consecutive windows of at most ``batch_size`` chars."""
    if batch_size < 1:
        raise ValueError("batch_size must be positive")
    start = 0
    while start < len(sentence):
        end = min(start + batch_size, len(sentence))
        next_char = sentence[end] if end < len(sentence) else None
        yield CharsBatch(text=sentence[start:end], next_char=next_char, is_sentence_start=start == 0)
        start = end


def valid_lines(lines: Iterable[str]) -> Iterator[str]:
    """Yield the lines free of sentinel glyphs, logging a warning for each rejected one."""
    for i, line in enumerate(lines):
        try:
            check_text(line)
        except InvalidInputError as e:
            logger.warning("Line %d left out of the vocabulary: %s", i + 1, e)
            continue
        yield line
