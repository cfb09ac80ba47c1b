from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Optional, TextIO, Tuple, Union

import numpy as np
from joblib.parallel import Parallel, delayed
from loguru import logger
from pydantic import ValidationError

from knapsack_ga.config import RunConfig
from knapsack_ga.exceptions import ConfigurationError
from knapsack_ga.inspection import BestTracker, GenerationRecord, Inspector, ProgressReporter, RunState
from knapsack_ga.instance import KnapsackInstance
from knapsack_ga.population import Individual, Population, random_genomes
from knapsack_ga.scorer import score_block
from knapsack_ga.variation import generate_offspring


@dataclass(frozen=True)
class RunResult:
  """
  Outcome of a run: the best individual seen in any generation and the best
  individual of the last evaluated generation. Both are None only when the run
  was stopped before the first generation had been scored.
  """
  best_ever: Optional[Individual]
  best_final: Optional[Individual]
  generations_completed: int
  interrupted: bool
  records: Tuple[GenerationRecord, ...]

  def to_dict(self) -> dict:
    return {
      "best_ever": self.best_ever.to_dict() if self.best_ever else None,
      "best_final": self.best_final.to_dict() if self.best_final else None,
      "generations_completed": self.generations_completed,
      "interrupted": self.interrupted,
      "records": [r.to_dict() for r in self.records],
    }


class _StopRequested(Exception):
  """Raised inside the loop once `Evolution.stop` has been called"""


def _breed_batch(population: Population, tournament_size: int, count: int,
  seed: np.random.SeedSequence) -> np.ndarray:
  rng = np.random.default_rng(seed)
  return np.array([generate_offspring(population, tournament_size, rng) for _ in range(count)], dtype=bool)


class Evolution:
  """
  Generational genetic algorithm over knapsack choice vectors.

  Every generation the population is scored, shown to the inspector, and then
  replaced wholesale by offspring bred through two tournaments, uniform crossover
  and 1/N bit-flip mutation. There is no elitism: the best-ever individual is
  kept by the inspector, not by the population.

  Parameters
  ----------
  instance : KnapsackInstance
    the problem to solve; genomes have one bit per item

  config : RunConfig
    run settings (tournament size, population size, generation budget, parallelism, seed)

  inspector : Inspector, optional
    observer called after each evaluation with the current RunState; it returns the
    next RunState (default is BestTracker())

  Attributes
  ----------
  All of the parameters, plus the following:

  population : Population
    the current generation, evaluated once `evolve` has scored it

  state : RunState
    the latest state returned by the inspector

  num_gens : int
    number of generations evaluated so far

  num_evals : int
    number of genomes scored so far

  start_time : float
    start time

  elapsed_time : float
    elapsed time
  """
  def __init__(self,
    instance : KnapsackInstance,
    config : RunConfig,
    inspector : Inspector=None,
    ):
    if instance.num_items < 1:
      raise ConfigurationError("the knapsack instance has no items, so genomes would have length 0")
    self.instance = instance
    self.config = config
    self.inspector = inspector if inspector is not None else BestTracker()

    # initialize some state variables
    self.population = None
    self.state = RunState()
    self.num_gens = 0
    self.num_evals = 0
    self.start_time, self.elapsed_time = 0, 0

    self._seed_seq = None
    self._stop_requested = threading.Event()
    self._parallel = None

  def stop(self):
    """
    Asks the running `evolve` to end after the current step; it then returns the
    best found so far. A request made before `evolve` starts is discarded. Safe to call from another thread or a signal handler.
    """
    self._stop_requested.set()

  def _must_terminate(self) -> bool:
    """
    Determines whether the generation budget is spent

    Returns
    -------
    bool
      True if no further generation should be bred, else False
    """
    self.elapsed_time = time.time() - self.start_time
    return self.num_gens >= max(self.config.max_generations, 1)

  def _check_stop(self):
    if self._stop_requested.is_set():
      raise _StopRequested

  def _evaluate(self, genomes: np.ndarray) -> Population:
    """
    Scores every genome. Blocks of rows are scored on the joblib workers when
    parallel evaluation is on; the scores are the same either way.
    """
    step = self.config.evaluation_block_size
    instance = self.instance
    tasks = (
      delayed(score_block)(genomes[i:i + step], instance.weights, instance.values, instance.capacity)
      for i in range(0, len(genomes), step)
    )
    if self._parallel is not None and self.config.parallel_evaluation:
      blocks = self._parallel(tasks)
    else:
      blocks = [fun(*args, **kwargs) for fun, args, kwargs in tasks]
    self.num_evals += len(genomes)
    return Population(genomes, [score for block in blocks for score in block])

  def _initialize_population(self):
    """
    Generates a random initial population and evaluates it
    """
    rng = np.random.default_rng(self._seed_seq.spawn(1)[0])
    genomes = random_genomes(self.config.population_size, self.instance.num_items, rng)
    self.population = self._evaluate(genomes)

  def _breed(self) -> np.ndarray:
    """
    Builds the offspring genomes of the next generation.

    Offspring are split into fixed-size batches, each with its own random stream
    spawned from the run seed, so a seeded run breeds the same children whether
    the batches run here or on the workers.
    """
    size = self.config.population_size
    step = self.config.breeding_batch_size
    counts = [min(step, size - start) for start in range(0, size, step)]
    seeds = self._seed_seq.spawn(len(counts))
    tasks = (
      delayed(_breed_batch)(self.population, self.config.tournament_size, count, seed)
      for count, seed in zip(counts, seeds)
    )
    if self._parallel is not None and self.config.parallel_breeding:
      batches = self._parallel(tasks)
    else:
      batches = [fun(*args, **kwargs) for fun, args, kwargs in tasks]
    return np.concatenate(batches)

  def _inspect(self):
    self.state = self.inspector.inspect(self.state, self.population)
    self.num_gens += 1
    logger.debug(
      "[Evolution] generation {}/{} best={} best_ever={}",
      self.num_gens - 1, self.config.max_generations,
      self.state.best_of_generation.score if self.state.best_of_generation else None,
      self.state.best_ever.score if self.state.best_ever else None,
    )

  def _perform_generation(self):
    """
    Performs one generation: offspring breeding, then evaluation and inspection of the offspring
    """
    offspring = self._breed()
    self._check_stop()
    self.population = self._evaluate(offspring)
    self._check_stop()
    self._inspect()

  def _result(self, interrupted: bool) -> RunResult:
    return RunResult(
      best_ever=self.state.best_ever,
      best_final=self.state.best_of_generation,
      generations_completed=self.num_gens,
      interrupted=interrupted,
      records=self.state.records,
    )

  def evolve(self) -> RunResult:
    """
    Runs the evolution until the generation budget is spent or a stop is requested;
    first, a random population is initialized and evaluated, then each generation
    breeds a full replacement population from the previous one.

    A stop (`stop()` or Ctrl-C) is not an error: the result is returned with
    `interrupted` set and holds the best individuals found up to that point.
    """
    # a second call starts a fresh run from the same seed
    self.population = None
    self.state = RunState()
    self.num_gens = 0
    self.num_evals = 0
    self._seed_seq = np.random.SeedSequence(self.config.seed)
    self._stop_requested.clear()

    self.start_time = time.time()
    logger.info(
      "[Evolution] starting: items={} capacity={} population={} generations={} tournament={}",
      self.instance.num_items, self.instance.capacity, self.config.population_size,
      self.config.max_generations, self.config.tournament_size,
    )
    interrupted = False
    use_workers = self.config.parallel_evaluation or self.config.parallel_breeding
    try:
      with Parallel(n_jobs=self.config.n_jobs if use_workers else 1) as parallel:
        self._parallel = parallel if use_workers else None
        self._check_stop()
        self._initialize_population()
        self._check_stop()
        self._inspect()

        # generational loop
        while not self._must_terminate():
          self._check_stop()
          self._perform_generation()
    except (KeyboardInterrupt, _StopRequested):
      interrupted = True
      logger.warning("[Evolution] stopped after {} generations; keeping the best found so far", self.num_gens)
    finally:
      self._parallel = None
      self.elapsed_time = time.time() - self.start_time
      flush = getattr(self.inspector, "flush", None)
      if flush is not None:
        flush()

    result = self._result(interrupted)
    logger.info(
      "[Evolution] finished in {:.2f}s: best_ever={} best_final={}",
      self.elapsed_time,
      result.best_ever.score if result.best_ever else None,
      result.best_final.score if result.best_final else None,
    )
    return result


def build_engine(config: Union[RunConfig, dict], instance: KnapsackInstance,
  inspector: Inspector=None, progress_stream: TextIO=None) -> Evolution:
  """
  Validates a configuration against an instance and returns a ready-to-run engine

  When `progress_stream` is given, the inspector is wrapped in a ProgressReporter
  writing generation records there every `config.report_every` generations.

  Raises
  ------
  ConfigurationError
    if the configuration is invalid or the instance has no items
  """
  if not isinstance(config, RunConfig):
    try:
      config = RunConfig(**config)
    except ValidationError as e:
      raise ConfigurationError(str(e)) from e
  if progress_stream is not None:
    inspector = ProgressReporter(inspector, stream=progress_stream, flush_every=config.report_every)
  return Evolution(instance, config, inspector)
