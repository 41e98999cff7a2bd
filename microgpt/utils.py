"""
Utility Functions for Training and Inspection

This module provides helpers that sit around the scalar core:
- Corpus loading (one document per line)
- Finite-difference gradient checking for the autograd engine
- Export of attention traces and loss curves as NumPy arrays for plotting

Functions:
    load_documents: Read a one-document-per-line text file
    download_names: Download the names corpus
    numerical_gradient: Central-difference gradient of a scalar function
    attention_matrix: Square query x key matrix from an attention trace
    smooth_losses: Moving average of a loss curve
"""

import logging
import os
from typing import Callable, List, Optional, Sequence

import numpy as np

from microgpt.attention import AttentionTrace

logger = logging.getLogger(__name__)

NAMES_URL = "https://raw.githubusercontent.com/karpathy/makemore/refs/heads/master/names.txt"


def load_documents(path: str) -> List[str]:
    """
    Read documents from a text file, one per line.

    Surrounding whitespace is stripped and blank lines are skipped.

    Args:
        path: Path of the text file

    Returns:
        List of documents in file order

    Raises:
        ValueError: If the file contains no documents
    """
    with open(path, "r", encoding="utf-8") as f:
        documents = [line.strip() for line in f if line.strip()]
    if not documents:
        raise ValueError(f"No documents found in {path}")
    logger.info("loaded %d documents from %s", len(documents), path)
    return documents


def download_names(data_dir: str = "data") -> str:
    """
    Download the names dataset (about 32k first names, one per line).

    Args:
        data_dir: Directory to save the data

    Returns:
        Path to the downloaded file
    """
    import urllib.request

    os.makedirs(data_dir, exist_ok=True)

    filepath = os.path.join(data_dir, "names.txt")

    if not os.path.exists(filepath):
        print(f"Downloading names dataset from {NAMES_URL}...")
        urllib.request.urlretrieve(NAMES_URL, filepath)
        print(f"Downloaded to {filepath}")
    else:
        print(f"Names dataset already exists at {filepath}")

    return filepath


def numerical_gradient(
    function: Callable[[Sequence[float]], float],
    inputs: Sequence[float],
    epsilon: float = 1e-6,
) -> np.ndarray:
    """
    Estimate the gradient of a scalar function by central differences.

    Formula:
        df/dx_i ~ (f(x + eps * e_i) - f(x - eps * e_i)) / (2 * eps)

    Used to check the autograd engine: the analytic gradients from
    ``backward`` should match this estimate within a small tolerance.

    Args:
        function: Maps a list of input floats to a float
        inputs: Point at which to evaluate the gradient
        epsilon: Perturbation size

    Returns:
        Gradient estimate, shape (len(inputs),)
    """
    point = np.asarray(inputs, dtype=np.float64)
    gradient = np.zeros_like(point)

    for i in range(point.size):
        shifted = point.copy()
        shifted[i] += epsilon
        f_plus = function(shifted.tolist())
        shifted[i] -= 2 * epsilon
        f_minus = function(shifted.tolist())
        gradient[i] = (f_plus - f_minus) / (2 * epsilon)

    return gradient


def attention_matrix(trace: AttentionTrace, size: Optional[int] = None) -> np.ndarray:
    """
    Convert an attention trace into a square matrix for heatmaps.

    Row ``q`` holds the weights of query position ``q``. Entries for key
    positions after the query are zero: the causal mask.

    Args:
        trace: Recorded attention of one layer and head
        size: Matrix size; defaults to the number of recorded rows

    Returns:
        Array of shape (size, size)
    """
    if size is None:
        size = len(trace.weights)

    matrix = np.zeros((size, size), dtype=np.float64)
    for query_position, row in enumerate(trace.weights[:size]):
        width = min(len(row), size)
        matrix[query_position, :width] = row[:width]
    return matrix


def smooth_losses(losses: Sequence[float], window: int = 10) -> np.ndarray:
    """
    Trailing moving average of a loss curve.

    Point ``i`` is the mean of ``losses[max(0, i - window + 1) : i + 1]``,
    so the output has the same length as the input.

    Args:
        losses: Loss per training step
        window: Number of steps averaged

    Returns:
        Smoothed losses, shape (len(losses),)

    Raises:
        ValueError: If window is not positive
    """
    if window < 1:
        raise ValueError(f"window must be positive, got {window}")

    values = np.asarray(losses, dtype=np.float64)
    if values.size == 0:
        return values

    cumulative = np.concatenate([[0.0], np.cumsum(values)])
    ends = np.arange(1, values.size + 1)
    starts = np.maximum(0, ends - window)
    return (cumulative[ends] - cumulative[starts]) / (ends - starts)
