"""Run configuration and YAML loading for NEAT runs."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigurationError
from .genome import (
    INITIAL_CONNECTIONS,
    AddConnectionConfig,
    AddNodeConfig,
    CrossoverConfig,
    WeightMutationConfig,
    uniform_weight_init,
)
from .network import DEFAULT_ACTIVATIONS
from .population import PopulationConfig
from .reproduction import ReproductionConfig
from .species import SpeciesConfig


@dataclass(slots=True)
class NEATConfig:
    """Every constant of an evolutionary run.

    Defaults follow common NEAT practice: weights start in ``[-2, 2]``,
    80% of enabled weights are perturbed per offspring, and structural
    mutations are comparatively rare.
    """

    population_size: int
    num_inputs: int
    num_outputs: int
    elitism: int = 1
    survival_threshold: float = 0.5
    max_stagnation: int = 15
    max_generations: int = 100
    fitness_threshold: float | None = None
    seed: int | None = None
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
    weight_init_range: float = 2.0
    weight_mutate_rate: float = 0.8
    weight_perturb_power: float = 1.0
    weight_reset_rate: float = 0.1
    weight_max: float = 10.0
    add_connection_rate: float = 0.2
    add_node_rate: float = 0.1
    toggle_enable_rate: float = 0.01
    allow_recurrent: bool = True
    max_connection_attempts: int = 32
    hidden_activation: str = "sigmoid"
    output_activation: str = "sigmoid"
    crossover_rate: float = 0.75
    reenable_rate: float = 0.25
    initial_connection: str = "full"
    initial_connection_fraction: float = 0.5
    workers: int = 1
    timeout_s: float | None = None

    def validate(self) -> None:
        """Raise :class:`ConfigurationError` for the first invalid value."""
        if self.population_size <= 0:
            msg = "population_size must be positive."
            raise ConfigurationError(msg)
        if self.num_inputs <= 0:
            msg = "num_inputs must be positive."
            raise ConfigurationError(msg)
        if self.num_outputs <= 0:
            msg = "num_outputs must be positive."
            raise ConfigurationError(msg)
        if self.max_generations <= 0:
            msg = "max_generations must be positive."
            raise ConfigurationError(msg)
        if self.initial_connection not in INITIAL_CONNECTIONS:
            valid = ", ".join(INITIAL_CONNECTIONS)
            msg = f"initial_connection must be one of: {valid}"
            raise ConfigurationError(msg)
        if not 0.0 < self.initial_connection_fraction <= 1.0:
            msg = "initial_connection_fraction must be in (0, 1]."
            raise ConfigurationError(msg)
        for label, name in (
            ("hidden_activation", self.hidden_activation),
            ("output_activation", self.output_activation),
        ):
            if name.strip().lower() not in DEFAULT_ACTIVATIONS:
                valid = ", ".join(sorted(DEFAULT_ACTIVATIONS))
                msg = f"{label} must be one of: {valid}"
                raise ConfigurationError(msg)
        for label, value in (
            ("add_connection_rate", self.add_connection_rate),
            ("add_node_rate", self.add_node_rate),
            ("toggle_enable_rate", self.toggle_enable_rate),
            ("crossover_rate", self.crossover_rate),
        ):
            if not 0.0 <= value <= 1.0:
                msg = f"{label} must be in [0, 1]."
                raise ConfigurationError(msg)
        if self.workers <= 0:
            msg = "workers must be positive."
            raise ConfigurationError(msg)
        if self.timeout_s is not None and self.timeout_s <= 0.0:
            msg = "timeout_s must be positive when provided."
            raise ConfigurationError(msg)
        for build in (
            self.population_config,
            self.species_config,
            self.reproduction_config,
            self.weight_mutation_config,
            self.add_connection_config,
            self.add_node_config,
            self.crossover_config,
        ):
            build()

    def population_config(self) -> PopulationConfig:
        return PopulationConfig(
            population_size=self.population_size,
            elitism=self.elitism,
            survival_threshold=self.survival_threshold,
            max_stagnation=self.max_stagnation,
        )

    def species_config(self) -> SpeciesConfig:
        return SpeciesConfig(
            c1=self.c1,
            c2=self.c2,
            c3=self.c3,
            compatibility_threshold=self.compatibility_threshold,
            normalize_threshold=self.normalize_threshold,
            target_species=self.target_species,
            species_adjust_period=self.species_adjust_period,
            adjust_rate=self.adjust_rate,
            min_compatibility_threshold=self.min_compatibility_threshold,
            max_compatibility_threshold=self.max_compatibility_threshold,
        )

    def reproduction_config(self) -> ReproductionConfig:
        return ReproductionConfig(
            elitism=self.elitism,
            survival_threshold=self.survival_threshold,
        )

    def weight_mutation_config(self) -> WeightMutationConfig:
        return WeightMutationConfig(
            mutate_rate=self.weight_mutate_rate,
            perturb_power=self.weight_perturb_power,
            reset_rate=self.weight_reset_rate,
            weight_max=self.weight_max,
            weight_init=uniform_weight_init(self.weight_init_range),
        )

    def add_connection_config(self) -> AddConnectionConfig:
        return AddConnectionConfig(
            allow_recurrent=self.allow_recurrent,
            max_attempts=self.max_connection_attempts,
            weight_init=uniform_weight_init(self.weight_init_range),
        )

    def add_node_config(self) -> AddNodeConfig:
        return AddNodeConfig(activation=self.hidden_activation)

    def crossover_config(self) -> CrossoverConfig:
        return CrossoverConfig(reenable_rate=self.reenable_rate)


def _optional(convert: Callable[[Any], Any]) -> Callable[[Any], Any]:
    def _convert(value: Any) -> Any:
        return None if value is None else convert(value)

    return _convert


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


_CONVERTERS: dict[str, Callable[[Any], Any]] = {
    "population_size": int,
    "num_inputs": int,
    "num_outputs": int,
    "elitism": int,
    "survival_threshold": float,
    "max_stagnation": int,
    "max_generations": int,
    "fitness_threshold": _optional(float),
    "seed": _optional(int),
    "c1": float,
    "c2": float,
    "c3": float,
    "compatibility_threshold": float,
    "normalize_threshold": int,
    "target_species": int,
    "species_adjust_period": int,
    "adjust_rate": float,
    "min_compatibility_threshold": float,
    "max_compatibility_threshold": float,
    "weight_init_range": float,
    "weight_mutate_rate": float,
    "weight_perturb_power": float,
    "weight_reset_rate": float,
    "weight_max": float,
    "add_connection_rate": float,
    "add_node_rate": float,
    "toggle_enable_rate": float,
    "allow_recurrent": _flag,
    "max_connection_attempts": int,
    "hidden_activation": str,
    "output_activation": str,
    "crossover_rate": float,
    "reenable_rate": float,
    "initial_connection": str,
    "initial_connection_fraction": float,
    "workers": int,
    "timeout_s": _optional(float),
}

_ALIASES = {
    "pop_size": "population_size",
    "inputs": "num_inputs",
    "outputs": "num_outputs",
}


def _load_yaml(path: Path) -> Mapping[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, Mapping):
        msg = f"Expected mapping in YAML file: {path}"
        raise ValueError(msg)
    return data


def load_neat_config(path: Path) -> NEATConfig:
    """Read a :class:`NEATConfig` from a YAML mapping.

    ``pop_size``, ``inputs`` and ``outputs`` are accepted as short aliases.
    Unknown keys raise :class:`ConfigurationError` so typos do not silently
    fall back to defaults.
    """
    path = Path(path)
    values: dict[str, Any] = {}
    for key, raw in _load_yaml(path).items():
        name = _ALIASES.get(key, key)
        convert = _CONVERTERS.get(name)
        if convert is None:
            msg = f"Unknown configuration key {key!r} in {path}"
            raise ConfigurationError(msg)
        try:
            values[name] = convert(raw)
        except (TypeError, ValueError) as error:
            msg = f"Invalid value for {key!r} in {path}: {raw!r}"
            raise ConfigurationError(msg) from error

    missing = [
        name
        for name in ("population_size", "num_inputs", "num_outputs")
        if name not in values
    ]
    if missing:
        msg = f"{path} must specify: {', '.join(missing)}"
        raise ConfigurationError(msg)
    return NEATConfig(**values)


__all__ = ["NEATConfig", "load_neat_config"]
