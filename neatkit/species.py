"""Speciation: compatibility distance and the species registry."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from random import Random
from statistics import fmean

from .errors import ConfigurationError
from .genome import Genome


@dataclass(frozen=True, slots=True)
class SpeciesConfig:
    """Configuration parameters controlling speciation behaviour.

    A ``species_adjust_period`` of zero keeps the compatibility threshold
    fixed; otherwise the threshold drifts by ``adjust_rate`` towards
    ``target_species`` every period.
    """

    c1: float = 1.0
    c2: float = 1.0
    c3: float = 0.4
    compatibility_threshold: float = 3.0
    normalize_threshold: int = 20
    target_species: int = 5
    species_adjust_period: int = 0
    adjust_rate: float = 0.1
    min_compatibility_threshold: float = 0.1
    max_compatibility_threshold: float = 10.0

    def __post_init__(self) -> None:
        if min(self.c1, self.c2, self.c3) < 0:
            msg = "Compatibility coefficients must be non-negative."
            raise ConfigurationError(msg)
        for label, value in (
            ("compatibility_threshold", self.compatibility_threshold),
            ("target_species", self.target_species),
            ("adjust_rate", self.adjust_rate),
            ("min_compatibility_threshold", self.min_compatibility_threshold),
        ):
            if value <= 0:
                msg = f"{label} must be positive."
                raise ConfigurationError(msg)
        for label, value in (
            ("normalize_threshold", self.normalize_threshold),
            ("species_adjust_period", self.species_adjust_period),
        ):
            if value < 0:
                msg = f"{label} must be >= 0."
                raise ConfigurationError(msg)
        if self.min_compatibility_threshold >= self.max_compatibility_threshold:
            msg = "min_compatibility_threshold must be < max_compatibility_threshold."
            raise ConfigurationError(msg)


def compatibility_distance(
    left: Genome,
    right: Genome,
    *,
    c1: float,
    c2: float,
    c3: float,
    normalize_threshold: int = 20,
) -> float:
    """Compute the NEAT compatibility distance between two genomes.

    Genes are aligned by innovation id. Unmatched genes beyond the last
    innovation of the genome with the smaller maximum are excess; the other
    unmatched genes are disjoint. Both counts are divided by the larger
    gene count, or by 1 when both genomes have fewer than
    ``normalize_threshold`` genes.
    """
    left_genes = left.connections
    right_genes = right.connections
    if not left_genes and not right_genes:
        return 0.0

    shared = left_genes.keys() & right_genes.keys()
    unmatched = left_genes.keys() ^ right_genes.keys()
    cutoff = min(max(left_genes, default=-1), max(right_genes, default=-1))
    excess = sum(1 for innovation in unmatched if innovation > cutoff)
    disjoint = len(unmatched) - excess

    weight_term = 0.0
    if shared:
        weight_term = fmean(
            abs(left_genes[innovation].weight - right_genes[innovation].weight)
            for innovation in shared
        )

    size = max(len(left_genes), len(right_genes))
    if size < normalize_threshold:
        size = 1
    return (c1 * excess + c2 * disjoint) / size + c3 * weight_term


@dataclass(slots=True)
class Species:
    """A cluster of genomes sharing a representative."""

    id: int
    representative: Genome
    creation_generation: int
    members: list[int] = field(default_factory=list)
    best_fitness: float = float("-inf")
    last_improved_generation: int = field(init=False)
    age: int = field(init=False, default=0)

    def __post_init__(self) -> None:
        self.last_improved_generation = self.creation_generation

    def set_members(self, members: Sequence[int]) -> None:
        """Replace the member list with the given genome ids."""
        self.members = list(members)

    def record_fitness(self, fitness: float, generation: int) -> None:
        """Note the best fitness of this generation's members."""
        if fitness > self.best_fitness:
            self.best_fitness = fitness
            self.last_improved_generation = generation

    def stagnation(self, generation: int) -> int:
        """Generations elapsed since the best fitness last improved."""
        return generation - self.last_improved_generation


@dataclass(slots=True)
class SpeciesManager:
    """Owns the species of one run and reassigns genomes every generation."""

    config: SpeciesConfig
    compatibility_threshold: float = field(init=False)
    _species: dict[int, Species] = field(init=False, default_factory=dict)
    _next_species_id: int = field(init=False, default=0)

    def __post_init__(self) -> None:
        self.compatibility_threshold = self.config.compatibility_threshold

    def distance(self, left: Genome, right: Genome) -> float:
        """Compatibility distance under the configured coefficients."""
        return compatibility_distance(
            left,
            right,
            c1=self.config.c1,
            c2=self.config.c2,
            c3=self.config.c3,
            normalize_threshold=self.config.normalize_threshold,
        )

    def adjust_threshold(self, generation: int, species_count: int) -> None:
        """Nudge the threshold so the species count drifts towards the target."""
        period = self.config.species_adjust_period
        if period == 0 or generation % period != 0 or species_count == 0:
            return

        target = self.config.target_species
        if species_count == target:
            return
        step = self.config.adjust_rate
        if species_count < target:
            step = -step
        self.compatibility_threshold = min(
            self.config.max_compatibility_threshold,
            max(
                self.config.min_compatibility_threshold,
                self.compatibility_threshold + step,
            ),
        )

    def speciate(
        self,
        genomes: Mapping[int, Genome],
        generation: int,
        *,
        fitnesses: Mapping[int, float] | None = None,
        rng: Random,
    ) -> tuple[Species, ...]:
        """Assign every genome to exactly one species.

        Genomes are visited in id order and join the first species (in id
        order) whose representative lies within the threshold, founding a
        new species otherwise. Species left without members are dropped and
        the survivors draw a new representative from their members.
        """
        for species in self._species.values():
            species.members = []

        for genome_id in sorted(genomes):
            genome = genomes[genome_id]
            species = self._find_species(genome)
            if species is None:
                species = self._create_species(genome, generation)
            species.members.append(genome_id)
            genome.species_id = species.id

        self._species = {
            species_id: species
            for species_id, species in self._species.items()
            if species.members
        }
        for species in self._species.values():
            self._refresh(species, genomes, generation, fitnesses, rng)
        return self.species()

    def species(self) -> tuple[Species, ...]:
        """Return the tracked species sorted by identifier."""
        return tuple(self._species[species_id] for species_id in sorted(self._species))

    def _refresh(
        self,
        species: Species,
        genomes: Mapping[int, Genome],
        generation: int,
        fitnesses: Mapping[int, float] | None,
        rng: Random,
    ) -> None:
        species.age = generation - species.creation_generation
        species.representative = genomes[rng.choice(species.members)].copy()
        if fitnesses is None:
            return
        missing = [member for member in species.members if member not in fitnesses]
        if missing:
            msg = f"Missing fitness for genome id {missing[0]}"
            raise KeyError(msg)
        species.record_fitness(
            max(fitnesses[member] for member in species.members),
            generation,
        )

    def _find_species(self, genome: Genome) -> Species | None:
        for species_id in sorted(self._species):
            species = self._species[species_id]
            if self.distance(genome, species.representative) <= self.compatibility_threshold:
                return species
        return None

    def _create_species(self, genome: Genome, generation: int) -> Species:
        species = Species(
            id=self._next_species_id,
            representative=genome.copy(),
            creation_generation=generation,
        )
        self._next_species_id += 1
        self._species[species.id] = species
        return species


__all__ = [
    "Species",
    "SpeciesConfig",
    "SpeciesManager",
    "compatibility_distance",
]
