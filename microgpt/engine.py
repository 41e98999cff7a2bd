"""
Scalar Automatic Differentiation Engine

This module implements reverse-mode automatic differentiation over scalars.
Every arithmetic operation on a ``Value`` eagerly computes its result and
records, for each operand, the local partial derivative evaluated at the
current operand values. Calling ``backward`` then applies the chain rule from
the output back to every input in a single pass.

Storage:
    Nodes live in a ``Graph`` arena: parallel Python lists addressed by a
    stable integer index. Each slot holds
        data         - the forward value
        grad         - the accumulated gradient d(root)/d(node)
        left, right  - operand indices (-1 when absent)
        d_left/right - local derivatives w.r.t. each operand
        mark         - id of the last backward pass that reached this slot

    A ``Value`` is only a handle (graph, index) that overloads the Python
    operators, so ``a * b + c`` builds graph nodes.

Backward pass:
    A node is always appended after its operands, so slot order is already a
    topological order. ``backward(root)`` walks slots from the root down to 0
    and skips every slot not marked with the current pass id. Marks are a
    monotonically increasing counter, so nothing has to be cleared between
    passes and each reachable node is visited exactly once.

Numeric policy:
    log of a non-positive number, division by zero and a negative base raised
    to a fractional power evaluate to NaN instead of raising. Overflow in exp
    or pow evaluates to inf. Bad values flow into the loss where they can be
    observed rather than aborting a step halfway.

Reference:
    Karpathy, "micrograd" (2020) https://github.com/karpathy/micrograd

Classes:
    Graph: Arena holding all scalar nodes of one model
    Value: Handle to a node with operator overloading

Functions:
    vsum: Sum a sequence of values without an extra zero node
"""

import math
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Union

Number = Union[int, float]


def _power(base: float, exponent: float) -> float:
    """Compute base ** exponent following the engine's NaN/inf policy."""
    if base == 0.0 and exponent < 0:
        return math.nan
    if base < 0.0 and not float(exponent).is_integer():
        return math.nan
    try:
        return float(base**exponent)
    except OverflowError:
        return math.inf


def _exp(x: float) -> float:
    try:
        return math.exp(x)
    except OverflowError:
        return math.inf


class Graph:
    """
    Arena of scalar computation nodes.

    One graph belongs to one model. Parameters are allocated first and live
    for the lifetime of the graph; everything built afterwards during a
    forward pass is transient and can be released with ``truncate`` or the
    ``scope`` context manager.

    Attributes:
        data: Forward values, one per slot
        grad: Accumulated gradients, one per slot
    """

    def __init__(self):
        """Create an empty graph."""
        self.data: List[float] = []
        self.grad: List[float] = []
        self._left: List[int] = []
        self._right: List[int] = []
        self._left_grad: List[float] = []
        self._right_grad: List[float] = []
        self._marks: List[int] = []
        self._pass_id = 0

    def __len__(self) -> int:
        return len(self.data)

    def _push(
        self,
        data: float,
        left: int = -1,
        left_grad: float = 0.0,
        right: int = -1,
        right_grad: float = 0.0,
    ) -> "Value":
        self.data.append(data)
        self.grad.append(0.0)
        self._left.append(left)
        self._left_grad.append(left_grad)
        self._right.append(right)
        self._right_grad.append(right_grad)
        self._marks.append(0)
        return Value(self, len(self.data) - 1)

    def leaf(self, data: Number) -> "Value":
        """
        Create a node with no operands (an input, constant or parameter).

        Args:
            data: The node's value

        Returns:
            Handle to the new node
        """
        return self._push(float(data))

    def operands(self, index: int) -> List[int]:
        """Return the operand indices recorded for a slot."""
        return [i for i in (self._left[index], self._right[index]) if i >= 0]

    def backward(self, root: "Value") -> None:
        """
        Backpropagate from ``root`` to every node it depends on.

        Seeds d(root)/d(root) = 1 and accumulates
            grad[operand] += local_derivative * grad[node]
        for every reachable node, visiting slots in reverse creation order.
        Gradients are accumulated, never reset: call ``zero_grad`` before
        the next pass if the same parameters are involved.

        Args:
            root: The scalar to differentiate (usually the loss)
        """
        if root.graph is not self:
            raise ValueError("Cannot backpropagate a value from another graph")

        self._pass_id += 1
        pass_id = self._pass_id

        grad = self.grad
        marks = self._marks
        left, right = self._left, self._right
        left_grad, right_grad = self._left_grad, self._right_grad

        grad[root.index] = 1.0
        marks[root.index] = pass_id

        for index in range(root.index, -1, -1):
            if marks[index] != pass_id:
                continue
            node_grad = grad[index]

            operand = left[index]
            if operand >= 0:
                grad[operand] += left_grad[index] * node_grad
                marks[operand] = pass_id

            operand = right[index]
            if operand >= 0:
                grad[operand] += right_grad[index] * node_grad
                marks[operand] = pass_id

    def zero_grad(self, values: Iterable["Value"]) -> None:
        """Reset the gradient of each given value to zero."""
        grad = self.grad
        for value in values:
            grad[value.index] = 0.0

    def truncate(self, size: int) -> None:
        """
        Drop every node at index ``size`` and above.

        Handles pointing at dropped slots must not be used afterwards.

        Args:
            size: Number of slots to keep
        """
        if size < 0 or size > len(self.data):
            raise ValueError(f"Cannot truncate graph of {len(self.data)} to {size}")
        for column in (
            self.data,
            self.grad,
            self._left,
            self._right,
            self._left_grad,
            self._right_grad,
            self._marks,
        ):
            del column[size:]

    @contextmanager
    def scope(self) -> Iterator["Graph"]:
        """
        Release all nodes created inside the ``with`` block on exit.

        Example:
            with graph.scope():
                loss = build_loss(...)
                graph.backward(loss)
                update_parameters(...)
            # transient nodes are gone, parameters remain
        """
        size = len(self.data)
        try:
            yield self
        finally:
            self.truncate(size)


class Value:
    """
    Handle to one scalar node in a ``Graph``.

    Supports ``+``, ``-``, ``*``, ``/``, ``**`` (numeric exponent) and unary
    ``-`` with plain numbers on either side, plus ``log``, ``exp`` and
    ``relu``. Plain numbers are lifted into constant leaves of the same graph.

    Attributes:
        graph: Arena the node lives in
        index: Slot of the node in the arena
    """

    __slots__ = ("graph", "index")

    def __init__(self, graph: Graph, index: int):
        self.graph = graph
        self.index = index

    @property
    def data(self) -> float:
        return self.graph.data[self.index]

    @data.setter
    def data(self, value: float) -> None:
        self.graph.data[self.index] = value

    @property
    def grad(self) -> float:
        return self.graph.grad[self.index]

    @grad.setter
    def grad(self, value: float) -> None:
        self.graph.grad[self.index] = value

    def __repr__(self) -> str:
        return f"Value(data={self.data}, grad={self.grad})"

    def _lift(self, other: Union["Value", Number]) -> "Value":
        if isinstance(other, Value):
            if other.graph is not self.graph:
                raise ValueError("Cannot combine values from different graphs")
            return other
        return self.graph.leaf(other)

    def __add__(self, other: Union["Value", Number]) -> "Value":
        other = self._lift(other)
        return self.graph._push(
            self.data + other.data, self.index, 1.0, other.index, 1.0
        )

    def __mul__(self, other: Union["Value", Number]) -> "Value":
        other = self._lift(other)
        a, b = self.data, other.data
        return self.graph._push(a * b, self.index, b, other.index, a)

    def __pow__(self, exponent: Number) -> "Value":
        if isinstance(exponent, Value):
            raise TypeError("Only numeric exponents are supported")
        x = self.data
        return self.graph._push(
            _power(x, exponent), self.index, exponent * _power(x, exponent - 1)
        )

    def log(self) -> "Value":
        x = self.data
        result = math.log(x) if x > 0.0 else math.nan
        local_grad = 1.0 / x if x != 0.0 else math.nan
        return self.graph._push(result, self.index, local_grad)

    def exp(self) -> "Value":
        result = _exp(self.data)
        return self.graph._push(result, self.index, result)

    def relu(self) -> "Value":
        x = self.data
        return self.graph._push(
            0.0 if x <= 0.0 else x, self.index, 1.0 if x > 0.0 else 0.0
        )

    def __neg__(self) -> "Value":
        return self * -1

    def __sub__(self, other: Union["Value", Number]) -> "Value":
        return self + (-self._lift(other))

    def __truediv__(self, other: Union["Value", Number]) -> "Value":
        return self * self._lift(other) ** -1

    def __radd__(self, other: Number) -> "Value":
        return self + other

    def __rmul__(self, other: Number) -> "Value":
        return self * other

    def __rsub__(self, other: Number) -> "Value":
        return self._lift(other) - self

    def __rtruediv__(self, other: Number) -> "Value":
        return self._lift(other) * self**-1

    def backward(self) -> None:
        """Backpropagate from this value (see ``Graph.backward``)."""
        self.graph.backward(self)


def vsum(values: Iterable[Value]) -> Value:
    """
    Sum values left to right, starting from the first one.

    Unlike ``sum(values)`` this does not add a constant zero node.

    Args:
        values: Non-empty iterable of values from one graph

    Returns:
        The sum as a new node (or the single element itself)

    Raises:
        ValueError: If values is empty
    """
    iterator = iter(values)
    try:
        total = next(iterator)
    except StopIteration:
        raise ValueError("vsum() requires at least one value") from None
    for value in iterator:
        total = total + value
    return total


if __name__ == "__main__":
    print("=" * 60)
    print("SCALAR AUTOGRAD DEMO")
    print("=" * 60)
    print()

    graph = Graph()
    a = graph.leaf(-4.0)
    b = graph.leaf(2.0)
    c = a + b
    d = a * b + b**3
    e = (d - c).relu() + (c * c).log()
    f = e / 2.0

    print(f"f = {f.data:.4f}")
    f.backward()
    print(f"df/da = {a.grad:.4f}")
    print(f"df/db = {b.grad:.4f}")
    print(f"nodes in graph: {len(graph)}")
