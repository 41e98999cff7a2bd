"""
Activation Functions over Scalar Values

The functions here take and return Python lists of ``Value`` nodes, so every
intermediate number becomes part of the computation graph and receives a
gradient during the backward pass. There are no separate backward functions:
the engine derives them from the primitive operations.

Functions:
    softmax: Converts logits to a probability distribution
    relu: Rectified Linear Unit, element-wise

Reference:
    "Attention Is All You Need" (Vaswani et al., 2017) - Softmax in attention
"""

from typing import List, Sequence

from microgpt.engine import Value, vsum


def softmax(logits: Sequence[Value]) -> List[Value]:
    """
    Compute softmax over a list of scalar logits.

    Mathematical Formula:
        softmax(x)_i = exp(x_i) / sum_j(exp(x_j))

    Numerical Stability:
        The largest logit (as a plain number) is subtracted before
        exponentiation. It is a constant, so gradients are unchanged:
        exp(x_i - max) / sum(exp(x_j - max)) = exp(x_i) / sum(exp(x_j))

    Args:
        logits: Non-empty list of values

    Returns:
        probabilities: List of values that are positive and sum to 1

    Example:
        >>> from microgpt.engine import Graph
        >>> graph = Graph()
        >>> probs = softmax([graph.leaf(1.0), graph.leaf(2.0), graph.leaf(3.0)])
        >>> [round(p.data, 2) for p in probs]
        [0.09, 0.24, 0.67]
    """
    max_logit = max(logit.data for logit in logits)
    exponentials = [(logit - max_logit).exp() for logit in logits]
    total = vsum(exponentials)
    return [e / total for e in exponentials]


def relu(x: Sequence[Value]) -> List[Value]:
    """
    Apply ReLU element-wise: relu(x) = max(0, x).

    The local gradient is 1 for positive inputs and 0 otherwise.
    """
    return [xi.relu() for xi in x]
