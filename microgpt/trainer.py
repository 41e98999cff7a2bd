"""
Training Loop for the Scalar GPT

Training uses one document per step. For the document ``"emma"`` the model
sees

    position:  0    1  2  3  4
    input:     BOS  e  m  m  a
    target:    e    m  m  a  BOS

and the loss is the average negative log-probability of each target. One
backward pass then fills every parameter gradient and Adam updates the
weights.

A step is atomic with respect to model state: parameters and optimizer
moments are only modified after the backward pass has completed, and all
transient graph nodes are released when the step ends.

Classes:
    TrainConfig: Training hyperparameters
    TrainStepResult: Outcome of one step
    Trainer: Runs training steps over a pre-shuffled corpus
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from microgpt.attention import AttentionTrace, merge_attention_traces
from microgpt.engine import vsum
from microgpt.model import GPTModel, cross_entropy_loss
from microgpt.optimizer import Adam, linear_decay_learning_rate
from microgpt.tokenizer import CharTokenizer

logger = logging.getLogger(__name__)


@dataclass
class TrainConfig:
    """
    Training hyperparameters.

    Attributes:
        num_steps: Step count the learning rate decays over
        learning_rate: Initial learning rate
        beta1: Adam first moment decay
        beta2: Adam second moment decay
        eps: Adam epsilon
        min_learning_rate: Floor of the linear decay
        log_interval: Log an info line every this many steps (0 disables)
    """

    num_steps: int = 1000
    learning_rate: float = 0.01
    beta1: float = 0.85
    beta2: float = 0.99
    eps: float = 1e-8
    min_learning_rate: float = 0.0
    log_interval: int = 100

    def __post_init__(self):
        if self.num_steps < 1:
            raise ValueError(f"num_steps must be positive, got {self.num_steps}")
        if self.learning_rate < 0 or self.min_learning_rate < 0:
            raise ValueError("Learning rates must be non-negative")
        if self.min_learning_rate > self.learning_rate:
            raise ValueError(
                f"min_learning_rate ({self.min_learning_rate}) exceeds "
                f"learning_rate ({self.learning_rate})"
            )
        if self.log_interval < 0:
            raise ValueError(f"log_interval must be >= 0, got {self.log_interval}")


@dataclass
class TrainStepResult:
    """
    Outcome of one training step.

    Attributes:
        loss: Average cross-entropy over the document's positions
        step: Number of completed steps after this one
        document: The document trained on
        attention: Per layer/head traces, one row per position
    """

    loss: float
    step: int
    document: str
    attention: List[AttentionTrace] = field(default_factory=list)


class Trainer:
    """
    Drives training of a ``GPTModel`` one document at a time.

    Example:
        trainer = Trainer(model, tokenizer, documents, optimizer, TrainConfig())
        for _ in range(100):
            result = trainer.train_step()
            print(result.step, result.loss)

    Attributes:
        model: Model being trained
        tokenizer: Tokenizer built from the corpus
        documents: Pre-shuffled training documents
        optimizer: Adam optimizer over ``model.parameters``
        config: Training hyperparameters
        loss_history: Loss of every completed step
    """

    def __init__(
        self,
        model: GPTModel,
        tokenizer: CharTokenizer,
        documents: Sequence[str],
        optimizer: Adam,
        config: Optional[TrainConfig] = None,
    ):
        """
        Raises:
            ValueError: If there are no documents
        """
        if len(documents) == 0:
            raise ValueError("Cannot train on an empty corpus")

        self.model = model
        self.tokenizer = tokenizer
        self.documents = list(documents)
        self.optimizer = optimizer
        self.config = config if config is not None else TrainConfig()
        self.loss_history: List[float] = []

    @property
    def step_count(self) -> int:
        """Number of completed training steps."""
        return self.optimizer.step_count

    def train_step(self, num_steps: Optional[int] = None) -> TrainStepResult:
        """
        Run one training step on the next document.

        Documents are visited cyclically: step ``s`` trains on
        ``documents[s % len(documents)]``.

        Args:
            num_steps: Step count the learning rate decays over; defaults to
                       ``config.num_steps``

        Returns:
            TrainStepResult with the loss, new step count, document and
            merged attention traces
        """
        total_steps = num_steps if num_steps is not None else self.config.num_steps
        step = self.step_count
        document = self.documents[step % len(self.documents)]
        token_ids = self.tokenizer.encode(document)
        num_positions = min(self.model.config.block_size, len(token_ids) - 1)

        # Validates total_steps before anything touches the model
        learning_rate = linear_decay_learning_rate(
            step,
            self.config.learning_rate,
            total_steps,
            self.config.min_learning_rate,
        )

        with self.model.graph.scope():
            try:
                # Forward pass, one position at a time on a shared cache
                cache = self.model.new_cache()
                losses = []
                attention: List[AttentionTrace] = []
                for position in range(num_positions):
                    token_id = token_ids[position]
                    target_id = token_ids[position + 1]
                    result = self.model.forward(
                        token_id, position, cache, collect_attention=True
                    )
                    losses.append(cross_entropy_loss(result.logits, target_id))
                    merge_attention_traces(attention, result.attention)

                loss = vsum(losses) * (1.0 / num_positions)

                # Backward pass
                loss.backward()

                # Adam update
                self.optimizer.step(learning_rate=learning_rate)
            finally:
                self.optimizer.zero_grad()

            loss_value = loss.data

        self.loss_history.append(loss_value)

        if not math.isfinite(loss_value):
            logger.warning("Step %d produced a non-finite loss: %s", step + 1, loss_value)
        logger.debug(
            "step %d | doc %r | loss %.4f | lr %.6f",
            step + 1,
            document,
            loss_value,
            learning_rate,
        )
        if self.config.log_interval and (step + 1) % self.config.log_interval == 0:
            logger.info("step %4d / %4d | loss %.4f", step + 1, total_steps, loss_value)

        return TrainStepResult(
            loss=loss_value, step=self.step_count, document=document, attention=attention
        )

    def train(self, steps: int, num_steps: Optional[int] = None) -> List[TrainStepResult]:
        """
        Run several training steps back to back.

        Args:
            steps: Number of steps to run now
            num_steps: Step count the learning rate decays over

        Returns:
            One TrainStepResult per step
        """
        return [self.train_step(num_steps) for _ in range(steps)]
