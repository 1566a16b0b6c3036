from __future__ import annotations

import json
import logging
import math
import random
import time
from dataclasses import dataclass, asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import torch

from .datasets import CharsBatch, to_batches
from .errors import ConfigurationError, InvalidInputError
from .loss import cross_entropy
from .model import CharLM, State, detach_state
from .moving_average import MovingAverage

logger = logging.getLogger(__name__)

UPDATE_METHODS = {"adam": torch.optim.Adam, "radam": torch.optim.RAdam}


@dataclass
class TrainerConfig:
    epochs: int = 1
    batch_size: int = 50                 # max chars per truncated-BPTT window
    lr: float = 1e-3
    update_method: str = "adam"          # adam | radam
    betas: Tuple[float, float] = (0.9, 0.999)
    grad_clip: float | None = None       # clip-by-value threshold
    chars_dropout: float = 0.0           # prob. of feeding UNK instead of an input char
    window_size: int = 200               # moving average of the sentence losses
    log_every: int = 10
    checkpoint_every: int = 100
    seed: int | None = None              # training RNG (None = non-deterministic)
    outdir: str | None = None            # default artifacts/YYYYMMDD-HHMMSS
    use_cpu: bool = False                # force CPU
    verbose: bool = True

    def validate(self) -> None:
        if self.epochs < 1:
            raise ConfigurationError("The number of epochs must be > 0")
        if self.batch_size < 1:
            raise ConfigurationError("The batch size must be > 0")
        if self.update_method not in UPDATE_METHODS:
            raise ConfigurationError(
                f"Unknown update method {self.update_method!r} (expected one of {', '.join(UPDATE_METHODS)})")
        if not 0.0 <= self.chars_dropout < 1.0:
            raise ConfigurationError("The chars dropout must be in [0, 1)")
        if self.grad_clip is not None and self.grad_clip <= 0:
            raise ConfigurationError("The gradient clipping threshold must be > 0 (None disables it)")
        if self.window_size < 1:
            raise ConfigurationError("The moving average window size must be > 0")
        if self.log_every < 1 or self.checkpoint_every < 1:
            raise ConfigurationError("The logging and checkpoint intervals must be > 0")


class TrainState:
    """Track epochs, sentences, windows and optimizer updates."""

    def __init__(self):
        self.epoch: int = 0         # Current epoch (1-based once running)
        self.sentences: int = 0     # Sentences trained, across epochs
        self.skipped: int = 0       # Sentences rejected for containing sentinels
        self.windows: int = 0       # BPTT windows processed
        self.updates: int = 0       # Optimizer steps


class CharLMTrainer:
    """
    Trains a CharLM on a stream of sentences with truncated BPTT.

    Each sentence is split into windows of ``batch_size`` chars. The recurrent state
    is carried (detached) from one window to the next, the gradients of all the
    windows are accumulated and a single optimizer step is made at the end of the
    sentence. Every ``checkpoint_every`` sentences the moving average of the
    sentence losses is compared with the best one and the model is saved if it
    strictly improved.

    Artifacts:
      - charlm.pt        (best checkpoint, written on improvement)
      - charlm_last.pt   (weights after the last epoch)
      - config.json      (TrainerConfig + ModelConfig)
      - history.json     (one row per checkpoint evaluation)
    """
    def __init__(self, model: CharLM, sentences: Iterable[str], cfg: TrainerConfig = TrainerConfig(),
                 autostart: bool = False):
        cfg.validate()
        self.cfg = cfg
        self.model = model
        self.sentences = sentences
        self.device = torch.device("cpu" if cfg.use_cpu or not torch.cuda.is_available() else "cuda")

        if cfg.seed is not None:
            torch.manual_seed(cfg.seed)
            random.seed(cfg.seed)
            if self.device.type == "cuda":
                torch.cuda.manual_seed_all(cfg.seed)

        self.model.to(self.device)
        self.optimizer = UPDATE_METHODS[cfg.update_method](self.model.parameters(), lr=cfg.lr, betas=cfg.betas)

        ts = datetime.now().strftime("%Y%m%d-%H%M%S")
        self.outdir = Path(cfg.outdir or f"artifacts/{ts}")
        self.outdir.mkdir(parents=True, exist_ok=True)
        self.model_path = self.outdir / "charlm.pt"

        self.state = TrainState()
        self.avg_loss = MovingAverage(cfg.window_size)
        self.best_loss_mean: Optional[float] = None
        self.history: List[Dict[str, Any]] = []
        self._t0 = time.perf_counter()

        if autostart:
            self.run()

    # -------- public API --------
    def run(self) -> CharLM:
        for epoch in range(1, self.cfg.epochs + 1):
            self.state.epoch = epoch
            self._t0 = time.perf_counter()
            if self.cfg.verbose:
                print(f"\nEpoch {epoch} of {self.cfg.epochs}\n\nStart training...")

            self._train_epoch()

            if self.cfg.verbose:
                print(f"\nElapsed time: {self._elapsed()}")

        self._finalize()
        return self.model

    def evaluate_and_save(self) -> bool:
        """Save the model if the moving loss mean strictly improved. Returns whether it did."""
        loss_mean = self.avg_loss.mean()
        if self.best_loss_mean is not None and not loss_mean < self.best_loss_mean:
            return False

        self.best_loss_mean = loss_mean
        self.model.best_perplexity = math.exp(loss_mean)
        if self.cfg.verbose:
            print(f"[NEW BEST PERPLEXITY!] Saving the model to '{self.model_path}'...")
        self.model.save(self.model_path)
        logger.info("Checkpoint written to %s (perplexity %.4f)", self.model_path, self.model.best_perplexity)
        return True

    # -------- internals --------
    def _train_epoch(self):
        self.model.train()
        for sentence in self.sentences:
            if not sentence.strip():
                continue
            try:
                loss = self._train_sentence(sentence)
            except InvalidInputError as e:
                self.state.skipped += 1
                logger.warning("Skipping sentence %r: %s", sentence[:50], e)
                continue

            self.state.sentences += 1
            self.avg_loss.add(loss)

            if self.cfg.verbose and self.state.sentences % self.cfg.log_every == 0:
                print(".", end="", flush=True)

            if self.state.sentences % self.cfg.checkpoint_every == 0:
                self._log_progress()
                self.evaluate_and_save()

    def _train_sentence(self, sentence: str) -> float:
        """Learn from a sentence and return its mean loss per char."""
        self.model.vocabulary.check_text(sentence)
        self.optimizer.zero_grad(set_to_none=True)

        state: Optional[State] = None
        total = 0.0
        for batch in to_batches(sentence, self.cfg.batch_size):
            loss, state = self._train_batch(batch, state)
            total += loss

        if self.cfg.grad_clip is not None:
            torch.nn.utils.clip_grad_value_(self.model.parameters(), self.cfg.grad_clip)
        self.optimizer.step()
        self.state.updates += 1

        return total / len(sentence)

    def _train_batch(self, batch: CharsBatch, state: Optional[State]) -> Tuple[float, State]:
        """Forward + backward of a window. Gradients are accumulated, not applied."""
        vocab = self.model.vocabulary
        x = vocab.index(batch.text).unsqueeze(0).to(self.device)      # [1, T]
        y = vocab.index(batch.targets).to(self.device)                 # [T]
        if self.cfg.chars_dropout > 0.0:
            drop = torch.rand(x.shape, device=self.device) < self.cfg.chars_dropout
            x = x.masked_fill(drop, vocab.unk_id)

        probs, final = self.model(x, None if batch.is_sentence_start else state)
        loss = cross_entropy(probs[0], y).sum()
        loss.backward()

        self.state.windows += 1
        return loss.item(), detach_state(final)

    def _elapsed(self) -> str:
        seconds = int(time.perf_counter() - self._t0)
        return f"{seconds // 3600:02d}:{seconds % 3600 // 60:02d}:{seconds % 60:02d}"

    def _log_progress(self):
        row = {
            "epoch": self.state.epoch,
            "sentences": self.state.sentences,
            "loss_mean": self.avg_loss.mean(),
            "loss_std_dev": self.avg_loss.std_dev(),
            "former_best": self.best_loss_mean,
        }
        self.history.append(row)
        if self.cfg.verbose:
            msg = (f"\n[{self._elapsed()}] After {self.state.sentences} sentences: "
                   f"loss mean = {row['loss_mean']:.2f}, std dev = {row['loss_std_dev']:.2f}")
            if self.best_loss_mean is not None:
                msg += f" (former best = {self.best_loss_mean:.2f})"
            print(msg)

    def _finalize(self):
        self.model.save(self.outdir / "charlm_last.pt")
        (self.outdir / "history.json").write_text(json.dumps(self.history, indent=2), encoding="utf-8")
        (self.outdir / "config.json").write_text(
            json.dumps({"trainer": asdict(self.cfg), "model": asdict(self.model.config)}, indent=2),
            encoding="utf-8",
        )
        logger.info(
            "Training finished: %d sentences, %d skipped, %d updates. Artifacts in %s",
            self.state.sentences, self.state.skipped, self.state.updates, self.outdir,
        )
