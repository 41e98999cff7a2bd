#!/usr/bin/env python3
"""
Scalar GPT Demo Script

This script walks through the whole lifecycle of the scalar GPT:
1. Load a corpus of names (one document per line)
2. Build the character tokenizer and the model
3. Train one document per step with Adam
4. Sample new names at a few temperatures

Every number in the model is a node in a scalar computation graph, so this
is slow on purpose: it is meant to be read and stepped through.

Usage:
    python run_demo.py [mode] [options]

    Modes:
        train  - Train on the names corpus (downloaded if missing)
        quick  - Tiny built-in corpus and few steps (for testing)

Example:
    python run_demo.py quick
    python run_demo.py train --steps 1000 --seed 42
"""

import argparse
import logging
import time

from microgpt.model import GPTConfig
from microgpt.session import GPTSession
from microgpt.trainer import TrainConfig
from microgpt.utils import attention_matrix, download_names, load_documents, smooth_losses

QUICK_CORPUS = ["ann", "amy", "anna", "mary", "amanda", "maya", "nancy"]


def print_header(text: str):
    """Print a formatted header."""
    print()
    print("=" * 60)
    print(text)
    print("=" * 60)
    print()


def print_section(text: str):
    """Print a section divider."""
    print()
    print("-" * 40)
    print(text)
    print("-" * 40)


def describe_session(session: GPTSession):
    """Print the tokenizer and architecture."""
    print_section("Tokenizer")
    print(f"Documents: {len(session.documents):,}")
    print(f"Characters: {''.join(session.tokenizer.chars)}")
    print(f"Vocabulary size: {session.tokenizer.vocab_size} (including <BOS>)")
    sample = session.documents[0]
    print(f"Example: '{sample}' -> {session.tokenizer.encode(sample)}")

    print_section("Architecture")
    summary = session.architecture()
    for layer in summary.layers:
        print(f"  {layer.name:<36} {layer.size:<20} {layer.params:>7,}")
    print(f"  {'Total':<36} {'':<20} {summary.total_parameters:>7,}")


def train(session: GPTSession, steps: int, print_every: int):
    """Run the training loop and report progress."""
    print_section(f"Training for {steps} steps")
    start = time.time()
    result = None

    for _ in range(steps):
        result = session.train_step(num_steps=steps)
        if result.step % print_every == 0 or result.step == 1:
            print(
                f"Step {result.step:4d}/{steps} | "
                f"Loss: {result.loss:.4f} | "
                f"Doc: {result.document}"
            )

    elapsed = time.time() - start
    smoothed = smooth_losses(session.loss_history, window=max(1, steps // 20))
    print()
    print(f"Training took {elapsed:.1f}s ({elapsed / max(steps, 1):.3f}s per step)")
    print(f"Smoothed loss: {smoothed[0]:.4f} -> {smoothed[-1]:.4f}")

    if result is not None and result.attention:
        trace = result.attention[0]
        print()
        print(f"Attention of layer {trace.layer}, head {trace.head} on '{result.document}':")
        for row in attention_matrix(trace):
            print("  " + " ".join(f"{w:.2f}" for w in row))


def sample(session: GPTSession, count: int, temperatures):
    """Print generated samples at several temperatures."""
    print_section("Sampling")
    for temperature in temperatures:
        samples = session.generate_batch(count, temperature=temperature)
        names = ", ".join(s.text or "(empty)" for s in samples)
        print(f"temp={temperature}: {names}")


def main():
    """Main demo function."""
    parser = argparse.ArgumentParser(description="Scalar GPT demo")
    parser.add_argument("mode", nargs="?", default="quick", choices=["train", "quick"])
    parser.add_argument("--corpus", help="Text file with one document per line")
    parser.add_argument("--steps", type=int, default=None, help="Training steps")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--samples", type=int, default=10, help="Samples per temperature")
    parser.add_argument("--n-embd", type=int, default=16, help="Embedding width")
    parser.add_argument("--n-head", type=int, default=4, help="Attention heads")
    parser.add_argument("--n-layer", type=int, default=1, help="Transformer layers")
    parser.add_argument("--block-size", type=int, default=16, help="Context length")
    parser.add_argument("--verbose", action="store_true", help="Log every step")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    print_header("SCALAR GPT DEMO")

    if args.corpus:
        documents = load_documents(args.corpus)
    elif args.mode == "train":
        documents = load_documents(download_names())
    else:
        documents = QUICK_CORPUS

    steps = args.steps if args.steps is not None else (1000 if args.mode == "train" else 100)

    session = GPTSession(
        documents,
        seed=args.seed,
        model_config=GPTConfig(
            n_embd=args.n_embd,
            n_head=args.n_head,
            n_layer=args.n_layer,
            block_size=args.block_size,
        ),
        train_config=TrainConfig(num_steps=steps, log_interval=0),
    )

    describe_session(session)
    train(session, steps, print_every=max(1, steps // 10))
    sample(session, args.samples, temperatures=[0.3, 0.5, 1.0])

    print_header("Done")


if __name__ == "__main__":
    main()
