"""Evolution orchestrator driving generations of NEAT."""

from __future__ import annotations

from collections.abc import Sequence
from random import Random

from .config import NEATConfig
from .evaluator import ParallelEvaluator, SyncEvaluator, Task
from .genome import Genome, initial_connection_pairs, uniform_weight_init
from .innovations import InnovationRegistry
from .metrics import MetricsWriter, PopulationSummary
from .network import Network
from .population import Evaluator, MutationOperators, PopulationState
from .reporters import EventLogger
from .species import Species, SpeciesManager


def _create_initial_genomes(
    config: NEATConfig,
    rng: Random,
    registry: InnovationRegistry,
) -> dict[int, Genome]:
    pairs = initial_connection_pairs(
        config.num_inputs,
        config.num_outputs,
        mode=config.initial_connection,
        rng=rng,
        fraction=config.initial_connection_fraction,
    )
    weight_init = uniform_weight_init(config.weight_init_range)
    return {
        genome_id: Genome.minimal(
            config.num_inputs,
            config.num_outputs,
            registry=registry,
            rng=rng,
            connected_pairs=pairs,
            weight_init=weight_init,
            output_activation=config.output_activation,
        )
        for genome_id in range(config.population_size)
    }


def _create_evaluator(config: NEATConfig, task: Task) -> Evaluator:
    if config.workers > 1:
        return ParallelEvaluator(
            task,
            workers=config.workers,
            timeout_s=config.timeout_s,
        )
    return SyncEvaluator(task)


def _build_mutation_operators(
    config: NEATConfig,
    registry: InnovationRegistry,
) -> MutationOperators:
    return MutationOperators(
        registry=registry,
        weight=config.weight_mutation_config(),
        add_connection=config.add_connection_config(),
        add_node=config.add_node_config(),
        add_connection_rate=config.add_connection_rate,
        add_node_rate=config.add_node_rate,
        toggle_enable_rate=config.toggle_enable_rate,
        crossover_rate=config.crossover_rate,
        crossover=config.crossover_config(),
    )


class Neat:
    """Owns a population and evolves it one generation per :meth:`step`.

    Args:
        config: Run constants. Validated here; invalid values raise
            :class:`~neatkit.errors.ConfigurationError`.
        task: Object exposing ``fitness(network) -> float``.
        evaluator: Optional replacement for the evaluator built from
            ``config.workers``.
        logger: Optional event log receiving one line per generation.
        metrics: Optional CSV writer receiving one row per generation.
    """

    def __init__(
        self,
        config: NEATConfig,
        task: Task,
        *,
        evaluator: Evaluator | None = None,
        logger: EventLogger | None = None,
        metrics: MetricsWriter | None = None,
    ) -> None:
        config.validate()
        self.config = config
        self.task = task
        self.logger = logger
        self.metrics = metrics

        self._registry = InnovationRegistry(
            next_node_id=config.num_inputs + config.num_outputs + 1,
        )
        seed_rng = Random(config.seed)
        genomes = _create_initial_genomes(config, seed_rng, self._registry)
        self._state = PopulationState(
            generation=0,
            genomes=genomes,
            rng=Random(seed_rng.getrandbits(32)),
            species_manager=SpeciesManager(config.species_config()),
            config=config.population_config(),
            reproduction_config=config.reproduction_config(),
        )
        self._operators = _build_mutation_operators(config, self._registry)
        self._evaluator = evaluator or _create_evaluator(config, task)
        self._summary: PopulationSummary | None = None

        if self.logger is not None:
            self.logger.log(
                f"Run started: population={config.population_size} "
                f"inputs={config.num_inputs} outputs={config.num_outputs} "
                f"seed={config.seed}"
            )

    @property
    def generation(self) -> int:
        """Number of completed generations."""
        return self._state.generation

    @property
    def population(self) -> PopulationState:
        """The live population state."""
        return self._state

    @property
    def registry(self) -> InnovationRegistry:
        """Innovation registry shared by every genome of this run."""
        return self._registry

    @property
    def champion(self) -> Genome | None:
        """Best genome seen across all generations so far."""
        return self._state.champion

    @property
    def champion_fitness(self) -> float:
        """Fitness of :attr:`champion`, ``-inf`` before the first step."""
        return self._state.champion_fitness

    def step(self) -> tuple[Network, float]:
        """Evaluate, speciate and reproduce one generation.

        Returns:
            The compiled best genome of the evaluated generation and its
            fitness.
        """
        state = self._state
        generation = state.generation
        previous_champion = state.champion_fitness

        fitnesses = state.evaluate(self._evaluator)
        best_id = state.best_genome_id()
        best_genome = state.genomes[best_id].copy()
        best_fitness = fitnesses[best_id]

        species = state.speciate()
        stats = getattr(self._evaluator, "last_stats", None)
        self._summary = PopulationSummary.from_fitnesses(
            generation,
            fitnesses,
            len(species),
            eval_time_s=stats.elapsed_s if stats is not None else 0.0,
        )
        self._report(previous_champion, species)

        state.reproduce(species, self._operators)
        return Network.from_genome(best_genome), best_fitness

    def run(
        self,
        max_generations: int | None = None,
        fitness_threshold: float | None = None,
    ) -> tuple[Network, float]:
        """Step until the generation budget is spent or the threshold is met.

        Returns:
            The compiled all-time champion and its fitness.
        """
        budget = (
            self.config.max_generations
            if max_generations is None
            else max_generations
        )
        threshold = (
            self.config.fitness_threshold
            if fitness_threshold is None
            else fitness_threshold
        )
        if budget <= 0:
            msg = "run() needs a positive generation budget."
            raise ValueError(msg)

        for _ in range(budget):
            _network, fitness = self.step()
            if threshold is not None and fitness >= threshold:
                if self.logger is not None:
                    self.logger.log("Fitness threshold reached; stopping.")
                break

        champion = self._state.champion
        if champion is None:
            msg = "No genome has been evaluated."
            raise RuntimeError(msg)
        return Network.from_genome(champion), self._state.champion_fitness

    def current_population_summary(self) -> PopulationSummary | None:
        """Statistics of the most recently evaluated generation."""
        return self._summary

    def _report(self, previous_champion: float, species: Sequence[Species]) -> None:
        summary = self._summary
        if summary is None:
            return
        if self.metrics is not None:
            self.metrics.append(summary)
        if self.logger is None:
            return
        self.logger.generation(summary)
        self.logger.species(summary.generation, species)
        if self._state.champion_fitness > previous_champion:
            self.logger.champion(summary.generation, self._state.champion_fitness)


__all__ = ["Neat"]
