"""
Neural Network Layers over Scalar Values

Building blocks of the transformer expressed on lists of ``Value`` nodes.
A vector is a Python list of values and a matrix is a list of rows, where
row ``i`` holds the weights that produce output feature ``i``.

Functions:
    init_matrix: Gaussian-initialized parameter matrix
    linear: Matrix-vector product (y = W x, no bias)
    rmsnorm: Root-mean-square normalization without learned scale
    add: Element-wise sum of two vectors (residual connections)

Reference:
    - "Root Mean Square Layer Normalization" (Zhang & Sennrich, 2019)
    - "Language Models are Unsupervised Multitask Learners" (GPT-2, 2019)
"""

from typing import List, Sequence

from microgpt.engine import Graph, Value, vsum
from microgpt.rng import Rng

Vector = List[Value]
Matrix = List[List[Value]]


def init_matrix(
    graph: Graph, rng: Rng, output_features: int, input_features: int, std: float
) -> Matrix:
    """
    Create a parameter matrix with weights drawn from N(0, std^2).

    Weights are drawn row by row, left to right. Changing that order changes
    which random number lands in which weight.

    Args:
        graph: Arena the parameters are allocated in
        rng: Random source
        output_features: Number of rows
        input_features: Number of columns
        std: Standard deviation of the initial weights

    Returns:
        Matrix of leaf values with shape (output_features, input_features)
    """
    return [
        [graph.leaf(rng.gauss(0.0, std)) for _ in range(input_features)]
        for _ in range(output_features)
    ]


def linear(x: Sequence[Value], weights: Matrix) -> Vector:
    """
    Linear projection without bias: y_i = sum_j W_ij * x_j.

    Args:
        x: Input vector of length input_features
        weights: Matrix of shape (output_features, input_features)

    Returns:
        Output vector of length output_features
    """
    return [vsum(wi * xi for wi, xi in zip(row, x)) for row in weights]


def rmsnorm(x: Sequence[Value], epsilon: float = 1e-5) -> Vector:
    """
    Root-mean-square normalization.

    Formula:
        rmsnorm(x) = x / sqrt(mean(x^2) + epsilon)

    Unlike LayerNorm there is no mean subtraction and no learned gain or
    bias; the output simply has unit root-mean-square.

    Args:
        x: Input vector
        epsilon: Small constant added under the square root

    Returns:
        Normalized vector of the same length
    """
    mean_square = vsum(xi * xi for xi in x) * (1.0 / len(x))
    scale = (mean_square + epsilon) ** -0.5
    return [xi * scale for xi in x]


def add(x: Sequence[Value], y: Sequence[Value]) -> Vector:
    """Element-wise x + y (used for residual connections)."""
    return [a + b for a, b in zip(x, y)]
