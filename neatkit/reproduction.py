"""Offspring allocation and selection utilities for NEAT reproduction."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from .errors import ConfigurationError
from .species import Species


@dataclass(frozen=True, slots=True)
class ReproductionConfig:
    """Configuration controlling offspring allocation and selection."""

    elitism: int = 1
    survival_threshold: float = 0.5

    def __post_init__(self) -> None:
        if self.elitism < 0:
            msg = "elitism must be >= 0."
            raise ConfigurationError(msg)
        if not 0.0 < self.survival_threshold <= 1.0:
            msg = "survival_threshold must be in (0, 1]."
            raise ConfigurationError(msg)


@dataclass(slots=True)
class ReproductionPlan:
    """Result of distributing offspring among species.

    ``offspring`` counts include the elites carried over unchanged.
    """

    offspring: dict[int, int]
    elites: dict[int, tuple[int, ...]]
    selection_pool: dict[int, tuple[int, ...]]
    adjusted_fitness: dict[int, float]


def compute_offspring_allocation(
    species_list: Sequence[Species],
    fitnesses: Mapping[int, float],
    population_size: int,
    config: ReproductionConfig,
) -> ReproductionPlan:
    """Allocate offspring and determine elites for the next generation.

    Each species receives a share proportional to the sum of its members'
    shared fitness (raw fitness divided by species size). Raw fitness is
    shifted so the population minimum is zero when any score is negative.
    Floors are taken and the leftover slots go one at a time to the
    strongest species. With no adjusted fitness at all the population is
    split evenly. The returned counts always sum to ``population_size``.
    """
    if population_size <= 0:
        msg = "population_size must be positive."
        raise ValueError(msg)
    if not species_list:
        msg = "At least one species is required."
        raise ValueError(msg)

    members_sorted: dict[int, list[int]] = {}
    for species in species_list:
        if not species.members:
            msg = f"Species {species.id} has no members."
            raise ValueError(msg)
        missing = [member for member in species.members if member not in fitnesses]
        if missing:
            msg = f"Missing fitness for genome id {missing[0]}"
            raise KeyError(msg)
        members_sorted[species.id] = sorted(
            species.members,
            key=lambda member_id: (-fitnesses[member_id], member_id),
        )

    offset = min(
        0.0,
        min(
            fitnesses[member]
            for members in members_sorted.values()
            for member in members
        ),
    )

    adjusted_fitness: dict[int, float] = {}
    species_totals: dict[int, float] = {}
    species_best: dict[int, float] = {}
    for species in species_list:
        size = len(species.members)
        total = 0.0
        for member_id in species.members:
            adjusted = (fitnesses[member_id] - offset) / size
            adjusted_fitness[member_id] = adjusted
            total += adjusted
        species_totals[species.id] = total
        species_best[species.id] = fitnesses[members_sorted[species.id][0]]

    total_adjusted = sum(species_totals.values())
    if total_adjusted <= 0.0:
        equal_share = population_size / len(species_totals)
        raw_allocations = dict.fromkeys(species_totals, equal_share)
    else:
        raw_allocations = {
            species_id: (species_totals[species_id] / total_adjusted) * population_size
            for species_id in species_totals
        }

    allocations = {
        species_id: min(population_size, math.floor(value))
        for species_id, value in raw_allocations.items()
    }
    ranking = sorted(
        species_totals,
        key=lambda species_id: (
            -species_totals[species_id],
            -species_best[species_id],
            species_id,
        ),
    )
    remainder = population_size - sum(allocations.values())
    index = 0
    while remainder > 0:
        allocations[ranking[index % len(ranking)]] += 1
        remainder -= 1
        index += 1

    elite_counts = _elite_counts(
        members_sorted,
        species_best,
        population_size,
        config.elitism,
    )
    _cover_elites(allocations, elite_counts)

    elites: dict[int, tuple[int, ...]] = {}
    selection_pool: dict[int, tuple[int, ...]] = {}
    for species in species_list:
        members = members_sorted[species.id]
        elites[species.id] = tuple(members[: elite_counts[species.id]])
        survivor_count = max(1, math.ceil(len(members) * config.survival_threshold))
        selection_pool[species.id] = tuple(members[:survivor_count])

    if sum(allocations.values()) != population_size:
        msg = "Offspring allocation does not sum to the population size."
        raise RuntimeError(msg)

    return ReproductionPlan(
        offspring=allocations,
        elites=elites,
        selection_pool=selection_pool,
        adjusted_fitness=adjusted_fitness,
    )


def _elite_counts(
    members_sorted: Mapping[int, Sequence[int]],
    species_best: Mapping[int, float],
    population_size: int,
    elitism: int,
) -> dict[int, int]:
    """Elites per species, trimmed from the weakest species when oversubscribed."""
    counts = {
        species_id: min(elitism, len(members))
        for species_id, members in members_sorted.items()
    }
    excess = sum(counts.values()) - population_size
    weakest_first = sorted(
        counts,
        key=lambda species_id: (species_best[species_id], -species_id),
    )
    for species_id in weakest_first:
        if excess <= 0:
            break
        reduction = min(excess, counts[species_id])
        counts[species_id] -= reduction
        excess -= reduction
    return counts


def _cover_elites(allocations: dict[int, int], elite_counts: Mapping[int, int]) -> None:
    """Raise quotas below the elite count, borrowing from species with surplus."""
    deficit = 0
    for species_id, elite_count in elite_counts.items():
        if allocations[species_id] < elite_count:
            deficit += elite_count - allocations[species_id]
            allocations[species_id] = elite_count

    while deficit > 0:
        donor = max(
            allocations,
            key=lambda species_id: (
                allocations[species_id] - elite_counts[species_id],
                -species_id,
            ),
        )
        surplus = allocations[donor] - elite_counts[donor]
        if surplus <= 0:
            msg = "Unable to satisfy elitism requirements after redistribution."
            raise RuntimeError(msg)
        take = min(surplus, deficit)
        allocations[donor] -= take
        deficit -= take


__all__ = [
    "ReproductionConfig",
    "ReproductionPlan",
    "compute_offspring_allocation",
]
