import io
import json

import numpy as np
import pytest
from pydantic import ValidationError

from knapsack_ga.cli import main
from knapsack_ga.config import RunConfig
from knapsack_ga.evo import Evolution, build_engine
from knapsack_ga.exceptions import ConfigurationError, GenomeLengthError, InstanceFormatError
from knapsack_ga.inspection import BestTracker, ProgressReporter, RunState
from knapsack_ga.instance import Item, KnapsackInstance
from knapsack_ga.population import Population, score_entropy
from knapsack_ga.score import CliffScore as CS
from knapsack_ga.scorer import cliff_score, score_block
from knapsack_ga.selection import tournament_selection
from knapsack_ga.variation import one_over_length_mutation, uniform_crossover

TINY = "3\n1 3 8\n2 2 8\n3 9 1\n10\n"


def three_items(capacity=5):
    return KnapsackInstance.from_pairs([(2, 3), (3, 4), (4, 5)], capacity)


def sequential(**kwargs):
    kwargs.setdefault("parallel_evaluation", False)
    return RunConfig(**kwargs)


@pytest.mark.parametrize("x, y, expected", [
    (CS.feasible(3), CS.feasible(5), -1),
    (CS.feasible(8), CS.feasible(5), 1),
    (CS.feasible(3), CS.feasible(3), 0),
    (CS.feasible(3), CS.overloaded(), 1),
    (CS.overloaded(), CS.feasible(0), -1),
    (CS.overloaded(), CS.overloaded(), 0),
])
def test_scores_compare_correctly(x, y, expected):
    assert (x > y) - (x < y) == expected
    assert (x == y) == (expected == 0)


def test_overloaded_scores_are_interchangeable():
    assert CS(False, 12) == CS.overloaded()
    assert len({CS(False, 12), CS.overloaded()}) == 1
    assert str(CS.overloaded()) == "Overloaded"
    assert str(CS.feasible(7)) == "Feasible(7)"


def test_score_dict_keeps_the_tag():
    assert CS.feasible(0).to_dict() == {"kind": "feasible", "value": 0}
    assert CS.overloaded().to_dict() == {"kind": "overloaded"}
    assert CS.from_dict(CS.feasible(4).to_dict()) == CS.feasible(4)
    assert CS.from_dict({"kind": "overloaded"}) == CS.overloaded()


def test_cliff_score_matches_definition():
    rng = np.random.default_rng(0)
    weights = rng.integers(0, 50, size=30)
    values = rng.integers(0, 50, size=30)
    instance = KnapsackInstance.from_pairs(zip(weights, values), 300)
    for _ in range(200):
        genome = rng.random(30) < 0.5
        weight = int(weights[genome].sum())
        score = cliff_score(genome, instance)
        if weight > 300:
            assert score == CS.overloaded()
        else:
            assert score == CS.feasible(int(values[genome].sum()))


def test_score_block_agrees_with_cliff_score():
    rng = np.random.default_rng(1)
    instance = KnapsackInstance.from_pairs(zip(rng.integers(0, 9, 12), rng.integers(0, 9, 12)), 20)
    genomes = rng.random((40, 12)) < 0.5
    block = score_block(genomes, instance.weights, instance.values, instance.capacity)
    assert block == [cliff_score(g, instance) for g in genomes]


def test_large_capacities_do_not_overflow():
    instance = KnapsackInstance.from_pairs([(10_000_000_000, 7_000_000_000)] * 3, 20_000_000_000)
    assert instance.weights.dtype == np.int64
    assert cliff_score(np.array([True, True, False]), instance) == CS.feasible(14_000_000_000)
    assert cliff_score(np.array([True, True, True]), instance) == CS.overloaded()


def test_sums_beyond_int64_use_python_ints():
    big = 2 ** 62
    instance = KnapsackInstance.from_pairs([(big, big)] * 4, 3 * big)
    assert instance.weights.dtype == object
    genomes = np.array([[True, True, True, False], [True, True, True, True]])
    scores = score_block(genomes, instance.weights, instance.values, instance.capacity)
    assert scores == [CS.feasible(3 * big), CS.overloaded()]


def test_parse_instance_file(tmp_path):
    path = tmp_path / "tiny.txt"
    path.write_text(TINY)
    instance = KnapsackInstance.from_file(path)
    assert instance.num_items == 3
    assert instance.items[0] == Item(1, 3, 8)
    assert instance.items[2] == Item(3, 9, 1)
    assert instance.capacity == 10
    assert instance.value(np.array([True, False, True])) == 12
    assert instance.weight(np.array([True, False, True])) == 9


@pytest.mark.parametrize("text", [
    "",
    "x\n",
    "3\n1 3 8\n2 2 8\n",
    "3\n1 3 8\n2 2 8\n3 9 1\n",
    "2\n1 3\n2 2 8\n5\n",
    "2\n1 abc 8\n2 2 8\n5\n",
    "2\n1 3 8 200\n2 2 8\n5\n",
    "1\n1 3 8\n-5\n",
])
def test_malformed_instance_files_are_rejected(tmp_path, text):
    path = tmp_path / "bad.txt"
    path.write_text(text)
    with pytest.raises(InstanceFormatError):
        KnapsackInstance.from_file(path)


def test_genome_must_fit_instance():
    with pytest.raises(GenomeLengthError):
        three_items().value(np.array([True, False]))


def scored_population(values):
    genomes = np.eye(len(values), dtype=bool)
    return Population(genomes, [CS.feasible(v) for v in values])


def test_tournament_draws_exactly_k_with_replacement():
    population = scored_population([5, 1, 9, 3, 7])
    rng = np.random.default_rng(3)
    mirror = np.random.default_rng(3)
    for k in (1, 2, 8, 20):
        contestants = mirror.integers(0, 5, size=k)
        winner = max(contestants, key=lambda i: population.scores[i])
        chosen = tournament_selection(population, k, rng)
        assert np.array_equal(chosen, population.genomes[winner])
    assert rng.random() == mirror.random()


def test_tournament_of_one_is_uniform():
    population = scored_population(list(range(10)))
    rng = np.random.default_rng(4)
    counts = np.zeros(10)
    for _ in range(20_000):
        counts[np.argmax(tournament_selection(population, 1, rng))] += 1
    assert np.all(np.abs(counts - 2000) < 200)


def test_larger_tournaments_pick_better_parents():
    population = scored_population(list(range(20)))
    rng = np.random.default_rng(5)

    def mean_selected(k):
        return np.mean([np.argmax(tournament_selection(population, k, rng)) for _ in range(3000)])

    assert mean_selected(1) < mean_selected(2) < mean_selected(8)


def test_tournament_returns_a_copy():
    population = scored_population([1, 2])
    chosen = tournament_selection(population, 2, np.random.default_rng(0))
    chosen[:] = True
    assert population.genomes.sum() == 2


def test_mutation_flips_one_bit_on_average():
    rng = np.random.default_rng(6)
    genome = rng.random(50) < 0.5
    original = genome.copy()
    distances = [np.count_nonzero(one_over_length_mutation(genome, rng) != genome) for _ in range(5000)]
    assert abs(np.mean(distances) - 1.0) < 0.1
    assert np.array_equal(genome, original)


def test_uniform_crossover_takes_each_bit_from_a_parent():
    rng = np.random.default_rng(7)
    a = np.ones(40, dtype=bool)
    b = np.zeros(40, dtype=bool)
    children = np.array([uniform_crossover(a, b, rng) for _ in range(4000)])
    assert np.all(np.abs(children.mean(axis=0) - 0.5) < 0.05)

    a = rng.random(40) < 0.5
    b = rng.random(40) < 0.5
    child = uniform_crossover(a, b, rng)
    assert np.all((child == a) | (child == b))
    assert np.array_equal(uniform_crossover(a, a, rng), a)


def test_crossover_rejects_mismatched_parents():
    with pytest.raises(GenomeLengthError):
        uniform_crossover(np.zeros(3, dtype=bool), np.zeros(4, dtype=bool), np.random.default_rng())


def test_entropy():
    assert score_entropy([CS.feasible(1)] * 4) == 0.0
    assert score_entropy([CS.feasible(1), CS.feasible(2)]) == pytest.approx(1.0)
    assert score_entropy([CS.overloaded(), CS(False, 3)]) == 0.0


def test_best_tracker_keeps_first_seen_on_ties():
    tracker = BestTracker()
    first = Population(np.array([[True, False]]), [CS.feasible(3)])
    second = Population(np.array([[False, True]]), [CS.feasible(3)])
    state = tracker.inspect(RunState(), first)
    state = tracker.inspect(state, second)
    assert state.generation == 1
    assert np.array_equal(state.best_ever.genome, [True, False])
    assert np.array_equal(state.best_of_generation.genome, [False, True])
    assert len(state.records) == 2


def test_best_tracker_never_loses_the_best():
    tracker = BestTracker()
    state = tracker.inspect(RunState(), scored_population([4, 9]))
    state = tracker.inspect(state, scored_population([2, 1]))
    assert state.best_ever.score == CS.feasible(9)
    assert state.best_of_generation.score == CS.feasible(2)


def test_progress_reporter_buffers_output():
    stream = io.StringIO()
    reporter = ProgressReporter(stream=stream, flush_every=3)
    state = RunState()
    for _ in range(2):
        state = reporter.inspect(state, scored_population([1, 2]))
    assert stream.getvalue() == ""
    state = reporter.inspect(state, scored_population([1, 2]))
    lines = stream.getvalue().splitlines()
    assert lines[0] == "Best score in generation 0 was Feasible(2)"
    assert lines[1] == "\tEntropy of the population was 1.0"
    assert len(lines) == 6


def test_invalid_configurations_are_rejected():
    for bad in (dict(tournament_size=0), dict(population_size=0), dict(max_generations=-1),
                dict(n_jobs=0), dict(mutation="gaussian")):
        with pytest.raises(ValidationError):
            RunConfig(**bad)
        with pytest.raises(ConfigurationError):
            build_engine(bad, three_items())


def test_empty_instance_is_rejected():
    with pytest.raises(ConfigurationError):
        build_engine(RunConfig(), KnapsackInstance((), 10))


def test_three_item_run_finds_the_optimum():
    for seed in range(10):
        config = sequential(population_size=20, max_generations=50, tournament_size=2, seed=seed)
        result = build_engine(config, three_items()).evolve()
        assert result.best_ever.score == CS.feasible(7)
        assert result.best_ever.genome.tolist() == [True, True, False]
        assert result.generations_completed == 50
        assert not result.interrupted


def test_seeded_runs_are_reproducible():
    rng = np.random.default_rng(8)
    instance = KnapsackInstance.from_pairs(zip(rng.integers(1, 30, 40), rng.integers(1, 30, 40)), 200)
    config = sequential(population_size=30, max_generations=15, tournament_size=8, seed=42)
    first = Evolution(instance, config).evolve()
    second = Evolution(instance, config).evolve()
    assert first.best_ever.score == second.best_ever.score
    assert np.array_equal(first.best_ever.genome, second.best_ever.genome)
    assert first.records == second.records


def test_parallel_and_sequential_runs_agree():
    rng = np.random.default_rng(9)
    instance = KnapsackInstance.from_pairs(zip(rng.integers(1, 30, 60), rng.integers(1, 30, 60)), 300)
    common = dict(population_size=50, max_generations=4, seed=7, breeding_batch_size=8, evaluation_block_size=8)
    serial = Evolution(instance, RunConfig(parallel_evaluation=False, **common))
    parallel = Evolution(instance, RunConfig(parallel_evaluation=True, parallel_breeding=True, n_jobs=2, **common))
    a, b = serial.evolve(), parallel.evolve()
    assert np.array_equal(serial.population.genomes, parallel.population.genomes)
    assert serial.population.scores == parallel.population.scores
    assert a.records == b.records


def test_capacity_zero_keeps_the_empty_choice():
    instance = KnapsackInstance.from_pairs([(1, 5), (2, 6), (3, 7), (4, 8)], 0)
    result = build_engine(sequential(population_size=10, max_generations=30, seed=1), instance).evolve()
    assert result.best_ever.score == CS.feasible(0)
    assert not result.best_ever.genome.any()


def test_population_of_one_runs_to_completion():
    result = build_engine(sequential(population_size=1, max_generations=10, seed=2), three_items()).evolve()
    assert result.generations_completed == 10
    assert result.best_ever is not None


def test_zero_generations_still_scores_the_initial_population():
    result = build_engine(sequential(population_size=5, max_generations=0, seed=3), three_items()).evolve()
    assert result.generations_completed == 1
    assert result.best_final is not None


def test_overloaded_final_best_is_reported_as_overloaded():
    instance = KnapsackInstance.from_pairs([(10, 1)] * 20, 5)
    result = build_engine(sequential(population_size=4, max_generations=1, seed=0), instance).evolve()
    assert result.best_final.score == CS.overloaded()
    assert result.to_dict()["best_final"]["score"] == {"kind": "overloaded"}


def test_stop_request_is_fail_soft():
    class StopAfterThree(BestTracker):
        def inspect(self, state, population):
            state = super().inspect(state, population)
            if state.generation == 2:
                engine.stop()
            return state

    engine = build_engine(sequential(population_size=10, max_generations=100, seed=4), three_items(), StopAfterThree())
    result = engine.evolve()
    assert result.interrupted
    assert result.generations_completed == 3
    assert result.best_ever is not None
    assert len(result.records) == 3


def test_evolving_twice_starts_a_fresh_run():
    engine = build_engine(sequential(population_size=10, max_generations=5, seed=11), three_items())
    first = engine.evolve()
    second = engine.evolve()
    assert second.generations_completed == 5
    assert second.records[-1].generation == 4
    assert second.records == first.records
    assert engine.num_evals == 50


def test_stop_before_evolve_does_not_end_the_next_run():
    engine = build_engine(sequential(population_size=5, max_generations=3, seed=12), three_items())
    engine.stop()
    result = engine.evolve()
    assert not result.interrupted
    assert result.generations_completed == 3


def test_build_engine_reports_progress_at_configured_interval():
    stream = io.StringIO()
    config = sequential(population_size=5, max_generations=5, seed=13, report_every=2)
    engine = build_engine(config, three_items(), progress_stream=stream)
    assert isinstance(engine.inspector, ProgressReporter)
    assert engine.inspector.flush_every == 2
    result = engine.evolve()
    lines = stream.getvalue().splitlines()
    assert sum(line.startswith("Best score in generation") for line in lines) == 5
    assert result.best_ever is not None


def test_cli_prints_json_result(tmp_path, capsys):
    path = tmp_path / "tiny.txt"
    path.write_text(TINY)
    code = main([str(path), "--json", "--no-parallel", "--seed", "1",
                 "--population-size", "10", "--max-generations", "20"])
    assert code == 0
    result = json.loads(capsys.readouterr().out)
    assert result["best_ever"]["score"] == {"kind": "feasible", "value": 12}
    assert result["generations_completed"] == 20
    assert len(result["records"]) == 20


def test_cli_prints_progress(tmp_path, capsys):
    path = tmp_path / "tiny.txt"
    path.write_text(TINY)
    main([str(path), "--no-parallel", "--seed", "1", "--population-size", "10",
          "--max-generations", "3", "--report-every", "2"])
    out = capsys.readouterr().out.splitlines()
    assert out[0] == f"Running on knapsack at: {path}"
    assert sum(line.startswith("Best score in generation") for line in out) == 3
    assert out[-2].startswith("Best in final generation")
    assert out[-1].startswith("Best in overall run:")


def test_cli_rejects_bad_arguments(tmp_path, capsys):
    path = tmp_path / "tiny.txt"
    path.write_text(TINY)
    assert main([str(path), "--tournament-size", "0"]) == 2
    assert main([str(tmp_path / "missing.txt")]) == 2
    negative = tmp_path / "negative.txt"
    negative.write_text("1\n1 3 8\n-5\n")
    assert main([str(negative), "--no-parallel"]) == 2
    assert capsys.readouterr().out == ""
