"""Population state and the per-generation evaluate/speciate/reproduce cycle."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from random import Random

from .errors import ConfigurationError
from .genome import (
    AddConnectionConfig,
    AddNodeConfig,
    CrossoverConfig,
    Genome,
    WeightMutationConfig,
)
from .innovations import InnovationRegistry
from .reproduction import (
    ReproductionConfig,
    ReproductionPlan,
    compute_offspring_allocation,
)
from .species import Species, SpeciesManager

Evaluator = Callable[[Mapping[int, Genome]], Mapping[int, float]]


@dataclass(frozen=True, slots=True)
class PopulationConfig:
    """Configuration values governing population evolution."""

    population_size: int
    elitism: int = 1
    survival_threshold: float = 0.5
    max_stagnation: int = 15

    def __post_init__(self) -> None:
        if self.population_size <= 0:
            msg = "population_size must be positive."
            raise ConfigurationError(msg)
        if self.elitism < 0:
            msg = "elitism must be >= 0."
            raise ConfigurationError(msg)
        if not 0.0 < self.survival_threshold <= 1.0:
            msg = "survival_threshold must be in (0, 1]."
            raise ConfigurationError(msg)
        if self.max_stagnation < 0:
            msg = "max_stagnation must be >= 0."
            raise ConfigurationError(msg)


@dataclass(slots=True)
class MutationOperators:
    """Mutation pipeline applied to every offspring.

    Structural mutations fire independently with their configured rates and
    draw ids from the shared registry; weight mutation runs last.
    """

    registry: InnovationRegistry
    weight: WeightMutationConfig
    add_connection: AddConnectionConfig
    add_node: AddNodeConfig
    add_connection_rate: float
    add_node_rate: float
    toggle_enable_rate: float = 0.0
    crossover_rate: float = 0.75
    crossover: CrossoverConfig = field(default_factory=CrossoverConfig)

    def __post_init__(self) -> None:
        for label, value in (
            ("add_connection_rate", self.add_connection_rate),
            ("add_node_rate", self.add_node_rate),
            ("toggle_enable_rate", self.toggle_enable_rate),
            ("crossover_rate", self.crossover_rate),
        ):
            if not 0.0 <= value <= 1.0:
                msg = f"{label} must be in [0, 1]."
                raise ConfigurationError(msg)

    def __call__(self, genome: Genome, rng: Random) -> None:
        if rng.random() < self.add_node_rate:
            genome.mutate_add_node(rng, self.registry, self.add_node)
        if rng.random() < self.add_connection_rate:
            genome.mutate_add_connection(rng, self.registry, self.add_connection)
        if rng.random() < self.toggle_enable_rate:
            genome.mutate_toggle_enable(rng)
        genome.mutate_weight(rng, self.weight)


@dataclass(slots=True)
class PopulationState:
    """Mutable state of the NEAT population."""

    generation: int
    genomes: dict[int, Genome]
    rng: Random
    species_manager: SpeciesManager
    config: PopulationConfig
    reproduction_config: ReproductionConfig
    fitnesses: dict[int, float] = field(default_factory=dict)
    champion_id: int | None = None
    champion_fitness: float = float("-inf")
    champion: Genome | None = None
    stagnant_species: set[int] = field(default_factory=set)
    last_plan: ReproductionPlan | None = None
    next_genome_id: int = 0

    def __post_init__(self) -> None:
        if self.genomes:
            self.next_genome_id = max(self.next_genome_id, max(self.genomes) + 1)

    def evaluate(self, evaluator: Evaluator) -> Mapping[int, float]:
        """Evaluate all genomes and update fitness state."""

        results = evaluator(self.genomes)
        if set(results) != set(self.genomes):
            msg = "Evaluator must return fitnesses for every genome."
            raise ValueError(msg)
        self.fitnesses = {
            genome_id: float(value) for genome_id, value in results.items()
        }
        for genome_id, genome in self.genomes.items():
            genome.fitness = self.fitnesses[genome_id]

        best_id = self.best_genome_id()
        best_fitness = self.fitnesses[best_id]
        if best_fitness > self.champion_fitness:
            self.champion_fitness = best_fitness
            self.champion_id = best_id
            self.champion = self.genomes[best_id].copy()
        return self.fitnesses

    def best_genome_id(self) -> int:
        """Id of the fittest evaluated genome (lowest id on ties)."""
        if not self.fitnesses:
            msg = "Population has not been evaluated."
            raise ValueError(msg)
        return min(
            self.fitnesses,
            key=lambda genome_id: (-self.fitnesses[genome_id], genome_id),
        )

    def speciate(self) -> tuple[Species, ...]:
        """Assign genomes to species and handle stagnation accounting."""

        species = self.species_manager.speciate(
            self.genomes,
            generation=self.generation,
            fitnesses=self.fitnesses,
            rng=self.rng,
        )
        self.species_manager.adjust_threshold(self.generation, len(species))
        self._update_stagnation(species)
        return species

    def _update_stagnation(self, species: Sequence[Species]) -> None:
        self.stagnant_species.clear()
        protected = None
        if self.fitnesses:
            protected = self.genomes[self.best_genome_id()].species_id
        for item in species:
            if item.id == protected:
                continue
            if item.stagnation(self.generation) > self.config.max_stagnation:
                self.stagnant_species.add(item.id)

    def reproduce(
        self,
        species: Sequence[Species],
        operators: MutationOperators,
    ) -> None:
        """Replace the population with the next generation of genomes."""

        eligible_species = [
            item for item in species if item.id not in self.stagnant_species
        ]
        if not eligible_species:
            eligible_species = list(species)

        plan = compute_offspring_allocation(
            eligible_species,
            self.fitnesses,
            population_size=self.config.population_size,
            config=self.reproduction_config,
        )

        new_genomes: dict[int, Genome] = {}

        # Elites survive unchanged and keep their ids.
        for species_obj in eligible_species:
            for member_id in plan.elites[species_obj.id]:
                new_genomes[member_id] = self.genomes[member_id].copy()

        for species_obj in eligible_species:
            quota = plan.offspring[species_obj.id]
            elites = plan.elites[species_obj.id]
            survivors = plan.selection_pool[species_obj.id]

            for _ in range(quota - len(elites)):
                offspring = self._breed(survivors, operators)
                operators(offspring, self.rng)
                new_genomes[self._allocate_genome_id()] = offspring

        self.last_plan = plan
        self.genomes = new_genomes
        self.fitnesses = {}
        self.generation += 1

    def _breed(self, survivors: Sequence[int], operators: MutationOperators) -> Genome:
        first = self.rng.choice(survivors)
        second = self.rng.choice(survivors)
        if first == second or self.rng.random() >= operators.crossover_rate:
            return self.genomes[first].copy()
        return self.genomes[first].crossover(
            self.genomes[second],
            rng=self.rng,
            fitness_self=self.fitnesses[first],
            fitness_other=self.fitnesses[second],
            config=operators.crossover,
        )

    def _allocate_genome_id(self) -> int:
        genome_id = self.next_genome_id
        self.next_genome_id += 1
        return genome_id


__all__ = [
    "Evaluator",
    "MutationOperators",
    "PopulationConfig",
    "PopulationState",
]
