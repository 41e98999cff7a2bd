"""
Interactive Training Session

``GPTSession`` wires the components together in the order that makes a run
reproducible from its seed:

    1. Rng(seed)
    2. Shuffle a copy of the documents
    3. Build the tokenizer from the corpus
    4. Initialize the model weights
    5. Create the Adam optimizer, the trainer and the generator

The random stream is shared: initialization, shuffling and sampling all draw
from it in program order, so the same seed and the same sequence of calls
always produce the same parameters, corpus order and generated text.

A host application (a notebook, a UI loop) drives training by calling
``train_step`` repeatedly and reads the structured results.

Classes:
    GPTSession: One model, its data and its training state
"""

import logging
from dataclasses import replace
from typing import List, Optional, Sequence

from microgpt.generator import GenerationResult, Generator
from microgpt.model import ArchitectureSummary, GPTConfig, GPTModel
from microgpt.optimizer import Adam
from microgpt.rng import Rng
from microgpt.tokenizer import CharTokenizer
from microgpt.trainer import Trainer, TrainConfig, TrainStepResult

logger = logging.getLogger(__name__)


class GPTSession:
    """
    One reproducible training and sampling session.

    Example:
        session = GPTSession(["emma", "olivia", "ava"], seed=42)
        for _ in range(200):
            result = session.train_step()
        print(session.generate(temperature=0.5).text)

    Attributes:
        rng: Random source shared by every component
        documents: Shuffled training documents
        tokenizer: Character tokenizer over the corpus
        model: The GPT model
        optimizer: Adam optimizer
        trainer: Training loop
        generator: Sampler
    """

    def __init__(
        self,
        documents: Sequence[str],
        seed: int = 42,
        model_config: Optional[GPTConfig] = None,
        train_config: Optional[TrainConfig] = None,
    ):
        """
        Build a session.

        Args:
            documents: Training documents (not modified)
            seed: Seed of the shared random stream
            model_config: Architecture; its vocab_size is replaced by the
                          tokenizer's
            train_config: Training hyperparameters

        Raises:
            ValueError: If the corpus is empty
        """
        if len(documents) == 0:
            raise ValueError("Cannot build a session from an empty corpus")

        self.seed = seed
        self.rng = Rng(seed)

        self.documents: List[str] = list(documents)
        self.rng.shuffle(self.documents)

        self.tokenizer = CharTokenizer.from_documents(self.documents)

        model_config = model_config if model_config is not None else GPTConfig()
        model_config = replace(model_config, vocab_size=self.tokenizer.vocab_size)
        self.model = GPTModel(model_config, self.rng)

        train_config = train_config if train_config is not None else TrainConfig()
        self.optimizer = Adam(
            self.model.parameters,
            learning_rate=train_config.learning_rate,
            beta1=train_config.beta1,
            beta2=train_config.beta2,
            epsilon=train_config.eps,
        )
        self.trainer = Trainer(
            self.model, self.tokenizer, self.documents, self.optimizer, train_config
        )
        self.generator = Generator(self.model, self.tokenizer, self.rng)

        logger.info(
            "session ready: %d docs, vocab size %d, %d parameters",
            len(self.documents),
            self.tokenizer.vocab_size,
            self.model.num_parameters,
        )

    @property
    def config(self) -> GPTConfig:
        return self.model.config

    @property
    def num_parameters(self) -> int:
        return self.model.num_parameters

    @property
    def current_step(self) -> int:
        return self.trainer.step_count

    @property
    def loss_history(self) -> List[float]:
        return self.trainer.loss_history

    def train_step(self, num_steps: Optional[int] = None) -> TrainStepResult:
        """Run one training step (see ``Trainer.train_step``)."""
        return self.trainer.train_step(num_steps)

    def generate(
        self, temperature: float = 0.5, max_length: Optional[int] = None
    ) -> GenerationResult:
        """Generate one sample (see ``Generator.generate``)."""
        return self.generator.generate(temperature, max_length)

    def generate_batch(
        self, count: int, temperature: float = 0.5, max_length: Optional[int] = None
    ) -> List[GenerationResult]:
        """Generate several samples from the shared stream."""
        return self.generator.generate_batch(count, temperature, max_length)

    def architecture(self) -> ArchitectureSummary:
        """Describe the model for display."""
        return self.model.architecture()
