"""
This is the main module used to run simulations of the network of locales
"""
# pylint: disable=import-error
import argparse
import datetime as dt
from concurrent import futures
import logging
import logging.config
from pathlib import Path
import sys
import time
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

import numpy as np  # type: ignore
import pandas as pd  # type: ignore

from spatial_epi_sim.common import Issue, IssueSeverity, log_issue
from . import common, loaders
from . import simulation as sim

# Default logger, used if module not called as __main__
logger = logging.getLogger(__name__)

HEADER_TITLE = "spatial_epi_sim run"


def main(argv):
    """
    Main function to run the network of locales simulation
    """
    t0 = time.time()

    args = build_args(argv)
    setup_logger(args)
    logger.info("Parameters\n%s", "\n".join(f"\t{key}={value}" for key, value in args._get_kwargs()))  # pylint: disable=protected-access

    issues: List[Issue] = []

    info = common.get_repo_info()
    if not info.git_sha:
        log_issue(
            logger,
            "Not running from a git repo, so no git_sha associated with the run",
            IssueSeverity.HIGH,
            issues,
        )
    elif info.is_dirty:
        log_issue(logger, "Running out of a dirty git repo", IssueSeverity.HIGH, issues)

    parameters = loaders.readConfig(args.config) if args.config else loaders.readParameters({})
    if args.seed is not None:
        parameters = parameters._replace(seed=args.seed)
    if parameters.seed is None:
        parameters = parameters._replace(seed=int(np.random.SeedSequence().entropy % 2 ** 63))
        logger.info("No seed given, using %s", parameters.seed)

    regions = None
    connectivity = None
    setupMethod = "random locales"
    if args.regions is not None:
        regions = loaders.readRegions(pd.read_csv(args.regions))
        setupMethod = "regions"
        if args.connectivity is not None:
            connectivity = loaders.readConnectivity(pd.read_csv(args.connectivity), regions)
            setupMethod = "regions with connectivity"
    elif args.connectivity is not None:
        raise ValueError("--connectivity requires --regions")

    setupSeed, *trialSeeds = np.random.SeedSequence(parameters.seed).spawn(parameters.trials + 1)
    model = sim.createModel(parameters, np.random.default_rng(setupSeed), regions, connectivity, issues)

    results = runSimulation(model, trialSeeds, max_workers=None if not args.workers else args.workers)

    args.output.mkdir(parents=True, exist_ok=True)
    logger.info("Writing output to %s", args.output)
    for i, result in enumerate(results):
        csvFile = args.output / f"{args.prefix}-{i}.csv"
        result.output.to_csv(csvFile, index=False)
        writeHeader(
            args.output / f"{args.prefix}-{i}.header",
            parameters,
            {
                "log.file.name": csvFile.name,
                "setup.method": setupMethod,
                "trial": i,
                "git.sha": info.git_sha,
                "git.dirty": info.is_dirty,
            },
            issues,
        )
    if len(results) > 1:
        aggregateResults(results).output.to_csv(args.output / f"{args.prefix}-summary.csv", index=False)

    if args.plot:
        from spatial_epi_sim import visualisation  # pylint: disable=import-outside-toplevel
        fig = visualisation.plot_locales(results[0].output)
        fig.savefig(args.output / f"{args.prefix}-0.png")

    logger.info("Took %.2fs to run the simulation.", time.time() - t0)
    return results


class Result(NamedTuple):
    """
    This object contains the results of a simulation and a small description
    """
    output: pd.DataFrame
    description: str = "A dataframe of the compartments, tests and alert level of each locale over time"


def runSimulation(
        model: sim.Model,
        seeds: Sequence[np.random.SeedSequence],
        max_workers: Optional[int] = None,
) -> List[Result]:
    """Run a pre-created model once per seed

    :param model: object representing the network of locales
    :param seeds: one SeedSequence per trial
    :param max_workers: maximum number of processes to spawn when running multiple simulations
    :return: Result runs for all trials of the simulation, in the same order as the seeds
    """
    outputs: Dict[int, pd.DataFrame] = {}
    with futures.ProcessPoolExecutor(max_workers=max_workers) as executor:
        delayed: Dict[futures.Future, int] = {}
        for i, seq in enumerate(seeds):
            delayed[executor.submit(sim.basicSimulation, model, np.random.default_rng(seq))] = i

        for t, future in enumerate(futures.as_completed(delayed), start=1):
            logger.info("Running simulation (%s/%s)", t, len(seeds))
            outputs[delayed[future]] = future.result()

    return [Result(output=outputs[i], description="An individual model run") for i in range(len(seeds))]


def aggregateResults(results: List[Result]) -> Result:
    """Aggregate results from runs

    :param results: result runs from runSimulation
    :return: Mean and standard deviation of every column, by tick and locale. Runs that stopped early only contribute to
             the ticks they ran for
    """
    combined = pd.concat([result.output.astype({"who": str}) for result in results], ignore_index=True)
    grouped = combined.groupby(["ticks", "who"])
    agg = grouped.mean().join(grouped.std(), lsuffix=".mean", rsuffix=".std")
    return Result(output=agg.reset_index(), description="Mean and stddev for all the runs")


def writeHeader(path: Path, parameters: loaders.Parameters, extra: Dict[str, Any], issues: List[Issue]):
    """
    Writes the run-level record: a title line, a timestamp line and then one ``name,value`` row for every parameter and
    extra value. Parameter names use dots instead of underscores. Issues are appended as ``issue,<description>`` rows.

    :param path: path of the header file
    :param parameters: the run parameters
    :param extra: other values describing the run
    :param issues: issues found while setting the run up
    """
    rows = [[name.replace("_", "."), value] for name, value in loaders.parametersToDict(parameters).items()]
    rows.extend([name, value] for name, value in extra.items())
    rows.extend(["issue", issue.description] for issue in issues)
    with open(path, "w", newline="") as fp:
        fp.write(f"{HEADER_TITLE}\n")
        fp.write(f"{dt.datetime.now().isoformat(timespec='seconds')}\n")
        pd.DataFrame(rows).to_csv(fp, header=False, index=False)


def readHeader(path: Path) -> Dict[str, str]:
    """Reads the name,value rows of a header written by :meth:`writeHeader`

    :param path: path of the header file
    :return: the values, as strings
    """
    df = pd.read_csv(path, skiprows=2, header=None, names=["name", "value"], dtype=str, keep_default_na=False)
    return dict(zip(df.name, df.value))


def setup_logger(args: Optional[argparse.Namespace] = None) -> None:
    """
    Configure package-level logger instance.

    :param args: argparse.Namespace
        args.logfile (pathlib.Path) is used to create a logfile if present
        args.quiet and args.debug control logging level to sys.stderr

    This function can be called without args, in which case it configures the
    package logger to write INFO and above to STDERR.

    When called with args, it uses args.logfile to determine if logs (by
    default, INFO and above) should be written to a file, and the path of
    that file. args.quiet and args.debug are used to control reporting
    level.
    """
    # Dictionary to define logging configuration
    logconf = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s",
            },
        },
        "handlers": {
            "stderr": {
                "level": "INFO",
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "stream": "ext://sys.stderr",
            },
        },
        "loggers": {__package__: {"handlers": ["stderr"], "level": "DEBUG"}},
    }

    # If args.logpath is specified, add logfile
    if args is not None and args.logfile is not None:
        logdir = args.logfile.parents[0]
        # If the logfile is going in another directory, we must
        # create/check if the directory is there
        try:
            if not logdir == Path.cwd():
                logdir.mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.error("Could not create %s for logging", logdir, exc_info=True)
            raise SystemExit(1)  # pylint: disable=raise-missing-from
        # Add logfile configuration
        logconf["handlers"]["logfile"] = {  # type: ignore
            "class": "logging.FileHandler",
            "level": "INFO",
            "formatter": "standard",
            "filename": str(args.logfile),
            "encoding": "utf8",
        }
        logconf["loggers"][__package__]["handlers"].append("logfile")  # type: ignore

    # Set STDERR/logfile levels if args.quiet/args.debug specified
    if args is not None and args.quiet:
        logconf["handlers"]["stderr"]["level"] = "WARNING"  # type: ignore
    elif args is not None and args.debug:
        logconf["handlers"]["stderr"]["level"] = "DEBUG"  # type: ignore
        if "logfile" in logconf["handlers"]:  # type: ignore
            logconf["handlers"]["logfile"]["level"] = "DEBUG"  # type: ignore

    # Configure logger
    logging.config.dictConfig(logconf)


def build_args(argv):
    """Return parsed CLI arguments as argparse.Namespace.

    :param argv: CLI arguments
    :type argv: list
    """

    parser = argparse.ArgumentParser(
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        description="Simulates a disease spreading through a network of locales with adaptive alert levels",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        type=Path,
        help="YAML file with the model parameters. Defaults are used for anything not in it",
    )
    parser.add_argument(
        "--regions",
        default=None,
        type=Path,
        help="CSV file with the columns name, x, y and pop. Replaces the randomly generated locales",
    )
    parser.add_argument(
        "--connectivity",
        default=None,
        type=Path,
        help="CSV file with the columns source, target and weight. Replaces the generated network (needs --regions)",
    )
    parser.add_argument(
        "-o",
        "--output",
        default=Path("output"),
        type=Path,
        help="Directory where the per tick CSV and the header of each run are written",
    )
    parser.add_argument(
        "--prefix",
        default="run",
        help="Prefix of the output file names",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Overrides the seed in the config file",
    )
    parser.add_argument(
        "--plot",
        action="store_true",
        help="Save a plot of the first run next to its CSV",
    )
    parser.add_argument(
        "-l",
        "--logfile",
        dest="logfile",
        default=None,
        type=Path,
        help="Path for logging output",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        dest="quiet",
        action="store_true",
        help="Prints only warnings to stderr",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Provide debug output to STDERR"
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=0,
        help="Defaults to the number of CPUs in the machine",
    )

    return parser.parse_args(argv)


if __name__ == "__main__":
    # The logger name inherits from the package, if called as __main__
    logger = logging.getLogger(f"{__package__}.{__name__}")
    main(sys.argv[1:])
