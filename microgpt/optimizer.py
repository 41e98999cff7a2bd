"""
Optimizer for Training the Scalar GPT

This module implements the Adam optimizer over a flat list of scalar
parameters, plus the linear learning rate decay used during training.

Reference:
    - "Adam: A Method for Stochastic Optimization" (Kingma & Ba, 2014)

Classes:
    Adam: Adam optimizer with bias correction

Functions:
    linear_decay_learning_rate: Linear decay toward a floor
"""

from typing import List, Optional, Sequence

from microgpt.engine import Value


class Adam:
    """
    Adam optimizer over scalar parameters.

    Algorithm (at each step t, counted from 1):
        m_t = beta1 * m_{t-1} + (1 - beta1) * g_t          # Momentum
        v_t = beta2 * v_{t-1} + (1 - beta2) * g_t^2        # Velocity
        m_hat = m_t / (1 - beta1^t)                         # Bias correction
        v_hat = v_t / (1 - beta2^t)                         # Bias correction
        theta_t = theta_{t-1} - lr * m_hat / (sqrt(v_hat) + eps)

    Attributes:
        parameters: Parameter values updated in place
        learning_rate: Default step size
        beta1: Exponential decay rate for first moment (momentum)
        beta2: Exponential decay rate for second moment (velocity)
        epsilon: Small constant for numerical stability
        momentum: First moment estimate per parameter
        velocity: Second moment estimate per parameter
        step_count: Number of optimization steps taken
    """

    def __init__(
        self,
        parameters: Sequence[Value],
        learning_rate: float = 0.01,
        beta1: float = 0.85,
        beta2: float = 0.99,
        epsilon: float = 1e-8,
    ):
        """
        Initialize Adam with zeroed moment estimates.

        Args:
            parameters: Flat list of parameter values
            learning_rate: Step size used when ``step`` gets no override
            beta1: First moment decay. Default 0.85
            beta2: Second moment decay. Default 0.99
            epsilon: Numerical stability constant. Default 1e-8

        Raises:
            ValueError: If a hyperparameter is out of range
        """
        if learning_rate < 0:
            raise ValueError(f"Learning rate must be non-negative, got {learning_rate}")
        if not 0.0 <= beta1 < 1.0 or not 0.0 <= beta2 < 1.0:
            raise ValueError(f"Betas must be in [0, 1), got ({beta1}, {beta2})")

        self.parameters: List[Value] = list(parameters)
        self.learning_rate = learning_rate
        self.beta1 = beta1
        self.beta2 = beta2
        self.epsilon = epsilon

        self.momentum: List[float] = [0.0] * len(self.parameters)
        self.velocity: List[float] = [0.0] * len(self.parameters)
        self.step_count: int = 0

    def step(self, learning_rate: Optional[float] = None) -> None:
        """
        Perform a single optimization step from the current gradients.

        Reads each parameter's accumulated gradient, updates its moment
        estimates and writes the new value in place. Gradients are left
        untouched; call ``zero_grad`` afterwards.

        Args:
            learning_rate: Optional override for learning rate (for scheduling)
        """
        lr = learning_rate if learning_rate is not None else self.learning_rate
        beta1, beta2 = self.beta1, self.beta2

        bias_correction_1 = 1.0 - beta1 ** (self.step_count + 1)
        bias_correction_2 = 1.0 - beta2 ** (self.step_count + 1)

        momentum, velocity = self.momentum, self.velocity
        for i, param in enumerate(self.parameters):
            gradient = param.grad
            momentum[i] = beta1 * momentum[i] + (1.0 - beta1) * gradient
            velocity[i] = beta2 * velocity[i] + (1.0 - beta2) * gradient**2

            momentum_corrected = momentum[i] / bias_correction_1
            velocity_corrected = velocity[i] / bias_correction_2

            update = lr * momentum_corrected / (velocity_corrected**0.5 + self.epsilon)
            param.data -= update

        self.step_count += 1

    def zero_grad(self) -> None:
        """Reset every parameter gradient to zero."""
        for param in self.parameters:
            param.grad = 0.0


def linear_decay_learning_rate(
    current_step: int,
    base_learning_rate: float,
    total_steps: int,
    min_learning_rate: float = 0.0,
) -> float:
    """
    Compute the learning rate with linear decay toward a floor.

    Formula:
        lr = max(min_lr, base_lr * (1 - step / total_steps))

    The rate starts at ``base_learning_rate`` on step 0 and reaches the floor
    at ``total_steps``; beyond that it stays at the floor.

    Args:
        current_step: Number of steps already taken
        base_learning_rate: Learning rate at step 0
        total_steps: Step count at which the decay reaches the floor
        min_learning_rate: Floor of the schedule

    Returns:
        Learning rate for the current step

    Raises:
        ValueError: If total_steps is not positive
    """
    if total_steps <= 0:
        raise ValueError(f"total_steps must be positive, got {total_steps}")
    learning_rate = base_learning_rate * (1 - current_step / total_steps)
    return max(min_learning_rate, learning_rate)
