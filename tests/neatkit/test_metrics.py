from __future__ import annotations

import csv
from pathlib import Path

import pytest
from neatkit.genes import NodeGene, NodeType
from neatkit.genome import Genome
from neatkit.metrics import MetricsWriter, PopulationSummary
from neatkit.reporters import EventLogger
from neatkit.species import Species


def test_summary_from_fitnesses() -> None:
    summary = PopulationSummary.from_fitnesses(
        4,
        {0: 1.0, 1: 3.0, 2: 2.0, 3: 6.0},
        species_count=2,
        eval_time_s=0.5,
    )

    assert summary.generation == 4
    assert summary.population_size == 4
    assert summary.best_fitness == 6.0
    assert summary.mean_fitness == pytest.approx(3.0)
    assert summary.median_fitness == pytest.approx(2.5)
    assert summary.species_count == 2

    with pytest.raises(ValueError):
        PopulationSummary.from_fitnesses(0, {}, species_count=0)


def test_metrics_writer_appends_rows(tmp_path: Path) -> None:
    path = tmp_path / "metrics.csv"
    summary = PopulationSummary.from_fitnesses(0, {0: 1.0}, species_count=1)

    with MetricsWriter(path) as writer:
        writer.append(summary)
    with MetricsWriter(path) as writer:
        writer.append(summary)

    with path.open(encoding="utf-8", newline="") as handle:
        rows = list(csv.DictReader(handle))
    assert len(rows) == 2
    assert rows[0]["best_fitness"] == "1.0"


def test_event_logger_writes_timestamped_lines(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "events.log"
    summary = PopulationSummary.from_fitnesses(3, {0: 0.5, 1: 1.5}, species_count=1)

    with EventLogger(path) as logger:
        logger.log("hello")
        logger.generation(summary)
        assert logger.path == path

    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert lines[0].endswith(" hello")
    assert "Generation 3: best=1.500" in lines[1]


def test_event_logger_species_and_champion_lines(tmp_path: Path) -> None:
    nodes = {
        0: NodeGene(0, NodeType.INPUT, "identity"),
        1: NodeGene(1, NodeType.OUTPUT, "identity"),
    }
    species = Species(
        id=4,
        representative=Genome(nodes=nodes, connections={}),
        creation_generation=1,
    )
    species.set_members([0, 2, 5])
    species.record_fitness(2.5, generation=2)

    path = tmp_path / "events.log"
    with EventLogger(path) as logger:
        logger.species(6, [species])
        logger.champion(6, 2.5)

    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[0].endswith("species 4: members=3 best=2.500 stagnant=4")
    assert lines[1].endswith("New champion at generation 6 (fitness=2.500).")
