"""
network.py
~~~~~~~~~~

The abstract network type on which all the others are based, the
parameters for stochastic gradient descent, and the SGD training
algorithm itself, which is the same for every type of network. The
gradient calculations are in the subclasses.
"""

import logging
from abc import ABC, abstractmethod
from enum import IntEnum
from typing import Any, Callable, Dict, Optional

import numpy as np

from .data import ExampleSet, ShuffleMode

logger = logging.getLogger(__name__)


def sigmoid(z):
    """The logistic sigmoid function, our activation function."""
    return 1.0 / (1.0 + np.exp(-z))


class NetType(IntEnum):
    """Network types; the values are the tags used in saved networks."""

    PLAIN = 1000
    OUTPUTBLENDING = 1001
    HINPUT = 1002
    UESMANN = 1003


class SGDParams:
    """
    Training parameters for Net.train_sgd().

    Cross-validation is described by a number of slices and the number
    of examples in each; the CV examples are taken from the end of the
    example set. Every cv_interval iterations one slice is tested, and
    the slices are used in rotation. The setters return the object so
    they can be chained:

        params = SGDParams(0.1, 100000)
        params.cross_validation(examples, 0.5, 1000, 10).store_best()
    """

    def __init__(self, eta: float, iterations: int):
        """
        Args:
            eta: Learning rate
            iterations: Number of single-example training iterations
        """
        self.eta = eta
        self.iterations = iterations

        # cross-validation is off by default
        self.n_slices = 0
        self.n_per_slice = 0
        self.cv_interval = 1
        self.cv_shuffle = True
        self.select_best_with_cv = False

        # None (or a non-positive value) means use the fan-in heuristic
        self.init_range: Optional[float] = None
        self.shuffle_mode = ShuffleMode.STRIDE
        self.seed = 0

        self.store_best_net = False
        self.best_net_buffer: Optional[np.ndarray] = None

        self.cv_callback: Optional[Callable[[int, int, float], Any]] = None
        self.progress_callback: Optional[
            Callable[[Dict[str, Any]], Any]] = None
        self.progress_interval = 0

    @classmethod
    def for_epochs(cls, eta: float, examples: ExampleSet,
                   epochs: int) -> 'SGDParams':
        """Create parameters for a number of passes through the examples."""
        return cls(eta, epochs * examples.get_count())

    def cross_validation(self, examples: ExampleSet, prop_cv: float,
                         cv_count: int, cv_slices: int,
                         cv_shuffle: bool = True) -> 'SGDParams':
        """
        Set up cross-validation from proportions, and select the best
        network using the cross-validation error.

        Args:
            examples: The examples which will be used for training
            prop_cv: Proportion of the examples to hold out for CV
            cv_count: How many CV tests to run during training
            cv_slices: Number of slices the CV examples are split into
            cv_shuffle: Whether to shuffle the CV examples after each
                full cycle through the slices

        Raises:
            ValueError: If the values give no CV examples per slice or
                a zero CV interval
        """
        if cv_slices < 1:
            raise ValueError(f"CV slice count must be positive, got {cv_slices}")
        if not 0.0 < prop_cv < 1.0:
            raise ValueError(
                f"CV proportion must be between 0 and 1, got {prop_cv}"
            )
        if cv_count < 1:
            raise ValueError(f"CV count must be positive, got {cv_count}")

        n_cv = int(examples.get_count() * prop_cv)
        n_per_slice = n_cv // cv_slices
        if n_per_slice == 0:
            raise ValueError(
                f"Too few examples ({n_cv}) for {cv_slices} CV slices"
            )
        cv_interval = self.iterations // cv_count
        if cv_interval == 0:
            raise ValueError(
                f"Too many CV tests ({cv_count}) for "
                f"{self.iterations} iterations"
            )

        self.n_slices = cv_slices
        self.n_per_slice = n_per_slice
        self.cv_interval = cv_interval
        self.cv_shuffle = cv_shuffle
        self.select_best_with_cv = True
        return self

    def cross_validation_manual(self, slices: int, n_per_slice: int,
                                interval: int,
                                cv_shuffle: bool = True) -> 'SGDParams':
        """
        Set up cross-validation directly. Doesn't change how the best
        network is selected.

        Raises:
            ValueError: If any of the values is not positive
        """
        if slices < 1:
            raise ValueError(f"CV slice count must be positive, got {slices}")
        if n_per_slice < 1:
            raise ValueError(
                f"CV examples per slice must be positive, got {n_per_slice}"
            )
        if interval < 1:
            raise ValueError(f"CV interval must be positive, got {interval}")
        self.n_slices = slices
        self.n_per_slice = n_per_slice
        self.cv_interval = interval
        self.cv_shuffle = cv_shuffle
        return self

    def store_best(self) -> 'SGDParams':
        """Keep the best parameters found and load them after training."""
        self.store_best_net = True
        return self

    def set_seed(self, seed: int) -> 'SGDParams':
        self.seed = seed
        return self

    def set_shuffle(self, mode: ShuffleMode) -> 'SGDParams':
        self.shuffle_mode = mode
        return self

    def set_init_range(self, init_range: Optional[float]) -> 'SGDParams':
        self.init_range = init_range
        return self

    def set_select_best_with_cv(self, flag: bool = True) -> 'SGDParams':
        self.select_best_with_cv = flag
        return self

    def set_cv_callback(
        self, callback: Optional[Callable[[int, int, float], Any]]
    ) -> 'SGDParams':
        """Call callback(iteration, slice, error) after each CV test."""
        self.cv_callback = callback
        return self

    def set_progress_callback(
        self,
        callback: Optional[Callable[[Dict[str, Any]], Any]],
        interval: int
    ) -> 'SGDParams':
        """Call callback with a progress dict every interval iterations."""
        if interval < 1:
            raise ValueError(
                f"Progress interval must be positive, got {interval}"
            )
        self.progress_callback = callback
        self.progress_interval = interval
        return self


class Net(ABC):
    """
    The abstract network.

    Subclasses provide the forward pass (update), parameter access and
    a training step for a batch of examples; this class provides running,
    testing and the SGD training algorithm on top of those.
    """

    def __init__(self, net_type: NetType):
        self.net_type = net_type
        # each network has its own PRNG, reseeded by train_sgd()
        self.rng = np.random.default_rng(0)

    @abstractmethod
    def set_inputs(self, inputs) -> None:
        """Set the inputs to the network before running or training."""

    @abstractmethod
    def get_outputs(self) -> np.ndarray:
        """Get the outputs after running."""

    @abstractmethod
    def update(self) -> None:
        """Run a single forward pass; inputs must have been set."""

    @abstractmethod
    def get_layer_count(self) -> int:
        pass

    @abstractmethod
    def get_layer_size(self, n: int) -> int:
        pass

    @abstractmethod
    def get_data_size(self) -> int:
        """Get the number of parameters save() produces."""

    @abstractmethod
    def save(self) -> np.ndarray:
        """Get all the parameters as a flat array of get_data_size()."""

    @abstractmethod
    def load(self, buf) -> None:
        """Set all the parameters from a flat array written by save()."""

    @abstractmethod
    def init_weights(self, init_range: Optional[float]) -> None:
        """
        Initialise weights and biases to random values.

        Args:
            init_range: Values are drawn from [-init_range, init_range];
                None or a non-positive value means use 1/sqrt(n) where
                n is the size of the previous layer.
        """

    @abstractmethod
    def train_batch(self, examples: ExampleSet, start: int, num: int,
                    eta: float) -> float:
        """
        Train on a batch of examples and return the training error.

        Args:
            examples: Example set
            start: Index of the first example in the batch
            num: Number of examples in the batch
            eta: Learning rate

        Returns:
            float: Mean squared error over the outputs for the batch
        """

    def set_h(self, h: float) -> None:
        """Set the modulator; unmodulated networks ignore it."""

    def get_h(self) -> float:
        return 0.0

    def get_input_count(self) -> int:
        return self.get_layer_size(0)

    def get_output_count(self) -> int:
        return self.get_layer_size(self.get_layer_count() - 1)

    def get_layer_sizes(self):
        return [self.get_layer_size(i) for i in range(self.get_layer_count())]

    def run(self, inputs) -> np.ndarray:
        """
        Run the network on some inputs.

        Args:
            inputs: Sequence of get_input_count() values

        Returns:
            np.ndarray: The output layer
        """
        self.set_inputs(inputs)
        self.update()
        return self.get_outputs()

    def test(self, examples: ExampleSet, start: int = 0,
             num: Optional[int] = None) -> float:
        """
        Find the mean squared error of the network on some examples.

        Each example's modulator is set before it is run. The squared
        errors are averaged over all the outputs of all the examples.

        Args:
            examples: Example set
            start: Index of the first example to test
            num: Number of examples to test (default: the rest of the set)

        Returns:
            float: The mean squared error
        """
        if num is None:
            num = examples.get_count() - start

        total = 0.0
        for i in range(start, start + num):
            self.set_h(examples.get_h(i))
            diff = self.run(examples.get_inputs(i)) - examples.get_outputs(i)
            total += float(np.dot(diff, diff))
        return total / (num * examples.get_output_count())

    def train_sgd(self, examples: ExampleSet, params: SGDParams) -> float:
        """
        Train the network by stochastic gradient descent.

        The network's weights are initialised first, so any previous
        training is lost. Cross-validation examples are taken from the end
        of the example set and the rest are used for training. The
        training examples are reshuffled at the start of every pass.

        Args:
            examples: Examples, including any cross-validation examples
            params: Training parameters

        Returns:
            float: MSE of the final network on the cross-validation
            examples, or on the training examples if there are none

        Raises:
            IndexError: If there are too many cross-validation examples
            ValueError: If the best network is to be selected by
                cross-validation but there is none, or if the training
                examples cannot be stride-shuffled
        """
        self.rng = np.random.default_rng(params.seed)

        n_cv = params.n_slices * params.n_per_slice
        if n_cv >= examples.get_count():
            raise IndexError(
                f"Too many cross-validation examples: {n_cv} of "
                f"{examples.get_count()}"
            )
        if params.select_best_with_cv and not n_cv:
            raise ValueError(
                "Cannot select best network by cross-validation "
                "when no cross-validation is done"
            )
        if n_cv and params.cv_interval < 1:
            raise ValueError(
                f"CV interval must be positive, got {params.cv_interval}"
            )

        n_examples = examples.get_count() - n_cv
        if (params.shuffle_mode == ShuffleMode.STRIDE
                and n_examples % examples.get_num_h_levels()):
            raise ValueError(
                f"Cannot stride-shuffle {n_examples} training examples "
                f"with {examples.get_num_h_levels()} h-levels"
            )
        training_set = ExampleSet.subset(examples, 0, n_examples)
        cv_set = ExampleSet.subset(examples, n_examples, n_cv) if n_cv else None

        logger.info(
            f"Training {self.net_type.name} network {self.get_layer_sizes()}: "
            f"{params.iterations} iterations, eta={params.eta}, "
            f"{n_examples} training and {n_cv} CV examples"
        )

        self.init_weights(params.init_range)

        best = None
        min_error = None
        cv_slice = 0
        cv_countdown = params.cv_interval

        for i in range(params.iterations):
            example_index = i % n_examples
            if example_index == 0:
                training_set.shuffle(self.rng, params.shuffle_mode)

            training_error = self.train_batch(
                training_set, example_index, 1, params.eta
            )

            if not params.select_best_with_cv:
                if min_error is None or training_error < min_error:
                    min_error = training_error
                    if params.store_best_net:
                        best = self.save()

            if cv_set is not None:
                cv_countdown -= 1
                if cv_countdown == 0:
                    cv_countdown = params.cv_interval
                    error = self.test(
                        cv_set, cv_slice * params.n_per_slice,
                        params.n_per_slice
                    )
                    if params.cv_callback is not None:
                        params.cv_callback(i, cv_slice, error)
                    if params.select_best_with_cv:
                        if min_error is None or error < min_error:
                            logger.debug(
                                f"New best CV error {error:.6f} "
                                f"at iteration {i}"
                            )
                            min_error = error
                            if params.store_best_net:
                                best = self.save()

                    cv_slice = (cv_slice + 1) % params.n_slices
                    if cv_slice == 0 and params.cv_shuffle:
                        cv_set.shuffle(self.rng, ShuffleMode.NONE)

            if (params.progress_callback is not None
                    and (i + 1) % params.progress_interval == 0):
                params.progress_callback({
                    'iteration': i + 1,
                    'total_iterations': params.iterations,
                    'min_error': min_error
                })

        if best is not None:
            self.load(best)
            params.best_net_buffer = best

        if cv_set is not None:
            result = self.test(cv_set)
        else:
            result = self.test(training_set)

        logger.info(
            f"Training complete: min error {min_error}, final MSE {result:.6f}"
        )
        return result
