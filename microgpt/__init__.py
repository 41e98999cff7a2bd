"""
Scalar GPT Implementation from Scratch

This package trains and samples a tiny character-level GPT using nothing but
a scalar automatic-differentiation engine written in plain Python. Every
number in the model is a node in a computation graph; there are no tensors.
It is designed for educational purposes: the whole forward pass, backward
pass and optimizer update can be stepped through one scalar at a time.

Modules:
    rng: Reproducible Mersenne Twister random source
    engine: Scalar autograd engine (Graph arena and Value handles)
    tokenizer: Character-level tokenizer with a BOS marker
    activations: Softmax and ReLU over lists of scalars
    layers: Parameter matrices, linear projection, RMSNorm
    attention: Key/value cache, attention traces, multi-head attention
    transformer: Feed-forward network and transformer blocks
    model: GPT configuration and model
    optimizer: Adam optimizer and learning rate decay
    trainer: One-document-per-step training loop
    generator: Temperature sampling with a key/value cache
    session: Wires everything together for an interactive session
    utils: Corpus loading, gradient checking and export helpers

Reference:
    "Attention Is All You Need" (Vaswani et al., 2017)
    https://arxiv.org/abs/1706.03762
"""

import logging

__version__ = "1.0.0"
__author__ = "Educational LLM Project"

logging.getLogger(__name__).addHandler(logging.NullHandler())
