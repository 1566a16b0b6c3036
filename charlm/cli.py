#!/usr/bin/env python3
"""
Command line entry point: train a CharLM, generate text from it, score perplexity.

Run:
    python3 -m charlm.cli train -t corpus.txt -o artifacts/run1
    python3 -m charlm.cli train -t corpus.txt -o artifacts/run1-rev --reverse
    python3 -m charlm.cli generate -m artifacts/run1/charlm.pt --strategy random "Once upon"
    python3 -m charlm.cli perplexity -m artifacts/run1/charlm.pt "some text"
"""

from __future__ import annotations
import argparse
import logging
from typing import Iterator, List

from .datasets import LineCorpus, valid_lines
from .model import CharLM, ModelConfig, RECURRENT_CELLS
from .runtime import CharLMRuntime, STRATEGIES
from .trainer import CharLMTrainer, TrainerConfig, UPDATE_METHODS
from .vocabulary import Vocabulary


def parse_args(argv: List[str] | None = None):
    p = argparse.ArgumentParser(prog="charlm", description="Character-level recurrent language model.")
    sub = p.add_subparsers(dest="command", required=True)

    t = sub.add_parser("train", help="Train a model on a corpus (one sentence per line).")
    t.add_argument("-t", "--training-set-path", required=True, help="Corpus file or directory")
    t.add_argument("-o", "--outdir", type=str, default=None, help="Artifacts folder")
    t.add_argument("-r", "--reverse", action="store_true", help="Train on reversed sentences")
    t.add_argument("--epochs", type=int, default=1)
    t.add_argument("--batch-size", type=int, default=50)
    t.add_argument("--lr", type=float, default=1e-3)
    t.add_argument("--update-method", choices=sorted(UPDATE_METHODS), default="radam")
    t.add_argument("--grad-clip", type=float, default=0.25, help="Clip gradients by value (<= 0 disables)")
    t.add_argument("--chars-dropout", type=float, default=0.25)
    t.add_argument("--embedding-size", type=int, default=25)
    t.add_argument("--hidden-size", type=int, default=200)
    t.add_argument("--cell", choices=sorted(RECURRENT_CELLS), default="lstm")
    t.add_argument("--layers", type=int, default=1)
    t.add_argument("--vocab-sentences", type=int, default=100000, help="Lines scanned to build the vocabulary")
    t.add_argument("--max-sentences", type=int, default=None, help="Train on the first N lines only")
    t.add_argument("--seed", type=int, default=None, help="Training seed (None=non-deterministic)")
    t.add_argument("--cpu", action="store_true")
    t.add_argument("-q", "--quiet", action="store_true")

    g = sub.add_parser("generate", help="Continue seed texts.")
    g.add_argument("-m", "--model-path", required=True)
    g.add_argument("--max-length", type=int, default=100, help="Max length of an output sequence")
    g.add_argument("--strategy", choices=STRATEGIES, default="greedy")
    g.add_argument("--seed", type=int, default=None, help="Sampling seed for --strategy random")
    g.add_argument("texts", nargs="*", help="Seed texts (interactive if none)")

    s = sub.add_parser("perplexity", help="Score texts with a model.")
    s.add_argument("-m", "--model-path", required=True)
    s.add_argument("texts", nargs="*", help="Texts to score (interactive if none)")

    return p.parse_args(argv)


def _read_values(prompt: str) -> Iterator[str]:
    while True:
        try:
            value = input(prompt)
        except EOFError:
            break
        if not value:
            break
        yield value
    print("\nExiting...")


def train(args) -> CharLM:
    corpus = LineCorpus(args.training_set_path, max_sentences=args.max_sentences, reverse=args.reverse)
    vocab = Vocabulary.build(valid_lines(LineCorpus(args.training_set_path, max_sentences=args.vocab_sentences)))
    print(f"Dictionary size: {len(vocab)}")
    if args.reverse:
        print("Train the reverse model.")

    model = CharLM(vocab, ModelConfig(
        embedding_size=args.embedding_size,
        hidden_size=args.hidden_size,
        cell=args.cell,
        layers=args.layers,
        reverse=args.reverse,
    ))
    cfg = TrainerConfig(
        epochs=args.epochs,
        batch_size=args.batch_size,
        lr=args.lr,
        update_method=args.update_method,
        grad_clip=args.grad_clip if args.grad_clip and args.grad_clip > 0 else None,
        chars_dropout=args.chars_dropout,
        seed=args.seed,
        outdir=args.outdir,
        use_cpu=args.cpu,
        verbose=not args.quiet,
    )
    return CharLMTrainer(model, corpus, cfg=cfg).run()


def generate(args) -> None:
    print(f"Loading CharLM model from '{args.model_path}'...")
    runtime = CharLMRuntime.from_file(args.model_path)
    print(f"Max sentence length = {args.max_length}")
    decoder = runtime.decoder(args.strategy, args.seed)
    reverse = runtime.model.config.reverse
    texts = args.texts or _read_values("\nType the beginning of the sequence. Even a single character (empty to exit): ")
    for text in texts:
        # a reverse model continues to the left: feed and read the text reversed
        out = decoder.decode(text[::-1] if reverse else text, args.max_length)
        print(out[::-1] if reverse else out)


def perplexity(args) -> None:
    runtime = CharLMRuntime.from_file(args.model_path)
    reverse = runtime.model.config.reverse
    texts = args.texts or _read_values("\nType a sequence (empty to exit): ")
    for text in texts:
        print(f"Perplexity: {runtime.perplexity(text[::-1] if reverse else text)}")


def main(argv: List[str] | None = None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    {"train": train, "generate": generate, "perplexity": perplexity}[args.command](args)


if __name__ == "__main__":
    main()
