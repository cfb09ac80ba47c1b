import argparse
import json
import sys

from loguru import logger

from knapsack_ga.evo import build_engine
from knapsack_ga.exceptions import KnapsackGAError
from knapsack_ga.instance import KnapsackInstance


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Evolve a solution to a 0/1 knapsack instance with a tournament-selection GA"
    )
    parser.add_argument("instance", help="Path to the knapsack instance file")
    parser.add_argument("--tournament-size", type=int, default=2)
    parser.add_argument("--population-size", type=int, default=1000)
    parser.add_argument("--max-generations", type=int, default=1000)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--n-jobs", type=int, default=-1)
    parser.add_argument(
        "--no-parallel", action="store_true", help="Evaluate the population sequentially"
    )
    parser.add_argument(
        "--parallel-breeding", action="store_true", help="Also breed offspring on the workers"
    )
    parser.add_argument("--report-every", type=int, default=10)
    parser.add_argument(
        "--json", action="store_true", help="Print the run result as JSON instead of progress text"
    )
    parser.add_argument("--log-level", default="WARNING")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logger.remove()
    logger.add(sys.stderr, level=args.log_level)

    try:
        instance = KnapsackInstance.from_file(args.instance)
        config = dict(
            tournament_size=args.tournament_size,
            population_size=args.population_size,
            max_generations=args.max_generations,
            seed=args.seed,
            n_jobs=args.n_jobs,
            parallel_evaluation=not args.no_parallel,
            parallel_breeding=args.parallel_breeding,
            report_every=args.report_every,
        )
        engine = build_engine(config, instance, progress_stream=None if args.json else sys.stdout)
    except (KnapsackGAError, OSError) as e:
        logger.error(f"Could not start the run: {e}")
        return 2

    if not args.json:
        print(f"Running on knapsack at: {args.instance}")
        print(f"Running with tournament size: {args.tournament_size}")
    result = engine.evolve()

    if args.json:
        print(json.dumps(result.to_dict()))
    else:
        print(f"Best in final generation {result.best_final}")
        print(f"Best in overall run: {result.best_ever}")
    return 130 if result.interrupted else 0


if __name__ == "__main__":
    sys.exit(main())
