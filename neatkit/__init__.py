"""Core NEAT primitives for reusable neuroevolution workflows."""

from __future__ import annotations

from .config import NEATConfig, load_neat_config
from .errors import (
    ConfigurationError,
    InputArityError,
    NEATError,
    StructuralMutationExhausted,
)
from .evaluator import (
    EvaluationStats,
    ParallelEvaluator,
    SyncEvaluator,
    Task,
)
from .evolution import Neat
from .genes import ConnectionGene, NodeGene, NodeType
from .genome import (
    AddConnectionConfig,
    AddNodeConfig,
    CrossoverConfig,
    Genome,
    WeightMutationConfig,
)
from .innovations import (
    EventKind,
    InnovationRecord,
    InnovationRegistry,
    StructuralEvent,
)
from .metrics import MetricsWriter, PopulationSummary
from .network import (
    DEFAULT_ACTIVATIONS,
    Network,
    compile_genome,
    compute_activation_order,
)
from .population import (
    MutationOperators,
    PopulationConfig,
    PopulationState,
)
from .reporters import EventLogger
from .reproduction import (
    ReproductionConfig,
    ReproductionPlan,
    compute_offspring_allocation,
)
from .species import (
    Species,
    SpeciesConfig,
    SpeciesManager,
    compatibility_distance,
)

__all__ = [
    "NEATError",
    "ConfigurationError",
    "InputArityError",
    "StructuralMutationExhausted",
    "ConnectionGene",
    "NodeGene",
    "NodeType",
    "EventKind",
    "StructuralEvent",
    "InnovationRecord",
    "InnovationRegistry",
    "Genome",
    "WeightMutationConfig",
    "AddConnectionConfig",
    "AddNodeConfig",
    "CrossoverConfig",
    "Network",
    "DEFAULT_ACTIVATIONS",
    "compile_genome",
    "compute_activation_order",
    "Task",
    "EvaluationStats",
    "SyncEvaluator",
    "ParallelEvaluator",
    "PopulationSummary",
    "MetricsWriter",
    "Species",
    "SpeciesConfig",
    "SpeciesManager",
    "compatibility_distance",
    "ReproductionConfig",
    "ReproductionPlan",
    "compute_offspring_allocation",
    "PopulationConfig",
    "PopulationState",
    "MutationOperators",
    "EventLogger",
    "NEATConfig",
    "load_neat_config",
    "Neat",
]
