"""
This module runs the network of locales. The main type is the `Model` class, a data object with the network, the
locales and the run parameters. It's created by :meth:`createModel` and run by :meth:`basicSimulation`, which doesn't
make changes to the model, so the same model can be used for several trials.

Each tick runs in a strict order:

1. Surveillance: every locale is tested (:mod:`spatial_epi_sim.surveillance`).
2. If due, the alert policy sets new alert levels (:mod:`spatial_epi_sim.alerts`).
3. Network-wide aggregates are computed (:meth:`aggregate`).
4. Every locale draws its flows from the state all locales had at the start of this step, then all locales are
   updated. Reading a snapshot means the order in which locales are processed doesn't change what they see.
5. The new state is recorded and passed on to the hooks.
6. The tick counter advances.

The run stops once there is nobody left in E, P or I, or when ``endTick`` is reached.
"""
# pylint: disable=import-error
import copy
import logging
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence

import networkx as nx  # type: ignore
import numpy as np  # type: ignore
import pandas as pd  # type: ignore

from spatial_epi_sim import alerts, loaders, network
from spatial_epi_sim.common import Issue, Lazy
from spatial_epi_sim.locales import Locale, applyFlows, blendedCfr, computeFlows, effectiveInfectious
from spatial_epi_sim.surveillance import runSurveillance

logger = logging.getLogger(__name__)

NodeName = str

RESULT_COLUMNS = [
    "ticks", "who", "pop.0", "susceptible", "exposed", "presymptomatic", "infected", "recovered", "dead", "tests",
    "tests.positive", "new.tests", "new.tests.positive", "new.exposed", "new.presymptomatic", "new.infected",
    "new.cases", "new.recovered", "new.dead", "alert.level",
]
RESULT_DTYPES = {"who": "category"}


class Model(NamedTuple):
    """
    This type has all the data needed to run the model
    """
    parameters: loaders.Parameters
    graph: nx.DiGraph
    locales: Dict[NodeName, Locale]


class Aggregates(NamedTuple):
    """
    Network-wide values, recomputed from the locales every tick
    """
    meanR0: float
    meanTransCoeff: float
    S: int
    E: int
    P: int
    I: int
    R: int
    D: int
    tests: int
    testsPositive: int
    newTests: int
    newTestsPositive: int
    cfr: float


Hook = Callable[[int, Dict[NodeName, Locale], Aggregates], None]


def populationSizes(parameters: loaders.Parameters, generator: np.random.Generator) -> List[int]:
    r"""
    Draws the population of each locale from a Gamma distribution with mean :math:`\mu = \text{population} /
    \text{numLocales}` and standard deviation :math:`\sigma = \text{popVarianceMultiplier} \cdot \mu`, that is, shape
    :math:`\mu^2 / \sigma^2` and rate :math:`\mu / \sigma^2`.

    The draws are rescaled so they add up to ``population`` exactly: the rescaled values are rounded down and the people
    left over are handed out one each to the locales with the largest fractional parts.

    :param parameters: run parameters
    :param generator: random number generator used for the model
    :return: the population of each locale
    """
    mean = parameters.population / parameters.numLocales
    variance = (parameters.popVarianceMultiplier * mean) ** 2
    if variance == 0.0:
        draws = np.ones(parameters.numLocales)
    else:
        shape = mean ** 2 / variance
        rate = mean / variance
        draws = generator.gamma(shape, 1.0 / rate, size=parameters.numLocales)

    scaled = draws * parameters.population / draws.sum()
    sizes = np.floor(scaled).astype(int)
    leftover = parameters.population - int(sizes.sum())
    for i in np.argsort(-(scaled - sizes), kind="stable")[:leftover]:
        sizes[i] += 1

    assert int(sizes.sum()) == parameters.population
    return [int(size) for size in sizes]


def createModel(
        parameters: loaders.Parameters,
        generator: np.random.Generator,
        regions: Optional[Dict[NodeName, loaders.Region]] = None,
        connectivity: Optional[pd.DataFrame] = None,
        issues: Optional[List[Issue]] = None,
) -> Model:
    """
    Creates the locales and the network connecting them. There are two ways of doing it:

    1. Generated (``regions=None``) -- ``numLocales`` locales are placed at random, their populations are drawn by
       :meth:`populationSizes` and they are connected by :meth:`spatial_epi_sim.network.buildNetwork`.
    2. Structured -- the locales are taken from `regions`. They are connected using the weights in `connectivity` when
       given, otherwise by their positions.

    Every locale starts at ``initialAlertLevel``, with everybody susceptible.

    :param parameters: run parameters
    :param generator: random number generator used to build the model
    :param regions: regions, as read by :meth:`spatial_epi_sim.loaders.readRegions`
    :param connectivity: region pair weights, as read by :meth:`spatial_epi_sim.loaders.readConnectivity`
    :param issues: list of issues, it will be modified in-place
    :return: the model
    """
    if issues is None:
        issues = []
    if connectivity is not None and regions is None:
        raise ValueError("A connectivity table can only be used together with a regions table")

    if regions is None:
        names = [f"locale-{i}" for i in range(parameters.numLocales)]
        positions = network.randomPositions(names, generator)
        sizes = dict(zip(names, populationSizes(parameters, generator)))
    else:
        logger.info("Using %s regions, population and num_locales are ignored", len(regions))
        positions = {name: (region.x, region.y) for name, region in regions.items()}
        sizes = {name: region.pop for name, region in regions.items()}

    if connectivity is None:
        graph = network.buildNetwork(positions, generator, parameters.connectionsPerLocale)
    else:
        graph = network.graphFromConnectivity(regions, connectivity, issues)

    locales = {
        name: Locale(name, x, y, sizes[name], parameters.timeHorizon) for name, (x, y) in positions.items()
    }
    alerts.applyAlertLevels(
        locales,
        graph,
        {name: parameters.initialAlertLevel for name in locales},
        parameters,
    )
    logger.info("Locales: %s, Population: %s", len(locales), sum(sizes.values()))
    return Model(parameters=parameters, graph=graph, locales=locales)


COMPARTMENT_SPLIT = ("E", "P", "I")


def seedInitialInfections(
        locales: Dict[NodeName, Locale],
        count: int,
        method: loaders.SeedingMethod,
        generator: np.random.Generator,
):
    """
    Moves `count` susceptible people into E, P or I (chosen uniformly for each case), in place. Each case goes to a
    locale chosen among those with susceptibles left, either:

    1. ``uniform-random`` -- uniformly.
    2. ``uniform-by-population`` -- with probability proportional to its susceptibles.

    :param locales: the locales
    :param count: number of cases
    :param method: how to choose locales
    :param generator: random number generator used for the model
    """
    names = list(locales)
    susceptibles = np.array([locales[name].state.S for name in names], dtype=float)
    if count > susceptibles.sum():
        raise ValueError(f"Cannot seed {count} cases in a population of {int(susceptibles.sum())} susceptibles")

    for _ in range(count):
        if method == loaders.SeedingMethod.UNIFORM_BY_POPULATION:
            probabilities = susceptibles / susceptibles.sum()
        else:
            available = (susceptibles > 0).astype(float)
            probabilities = available / available.sum()
        i = int(generator.choice(len(names), p=probabilities))
        compartment = COMPARTMENT_SPLIT[int(generator.integers(len(COMPARTMENT_SPLIT)))]

        locale = locales[names[i]]
        state = locale.state
        locale.state = state._replace(S=state.S - 1, **{compartment: getattr(state, compartment) + 1})
        susceptibles[i] -= 1


def aggregate(locales: Iterable[Locale], parameters: loaders.Parameters) -> Aggregates:
    """
    Computes the network-wide aggregates. R0 and the transmission coefficient are averaged weighting each locale by its
    living population. The case fatality rate is blended using the symptomatic cases of the whole network (see
    :meth:`spatial_epi_sim.locales.blendedCfr`).

    :param locales: the locales
    :param parameters: run parameters
    :return: the aggregates
    """
    totals = {"S": 0, "E": 0, "P": 0, "I": 0, "R": 0, "D": 0}
    tests = testsPositive = newTests = newTestsPositive = 0
    living = 0
    weightedR0 = 0.0
    weightedTransCoeff = 0.0
    for locale in locales:
        for compartment in totals:
            totals[compartment] += getattr(locale.state, compartment)
        tests += locale.tests
        testsPositive += locale.testsPositive
        newTests += locale.newTests[0] if locale.newTests else 0
        newTestsPositive += locale.newTestsPositive[0] if locale.newTestsPositive else 0
        living += locale.living
        weightedR0 += locale.r0 * locale.living
        weightedTransCoeff += locale.transCoeff * locale.living

    return Aggregates(
        meanR0=weightedR0 / living if living else 0.0,
        meanTransCoeff=weightedTransCoeff / living if living else 0.0,
        tests=tests,
        testsPositive=testsPositive,
        newTests=newTests,
        newTestsPositive=newTestsPositive,
        cfr=blendedCfr(totals["I"], parameters.cfr0, parameters.cfr1, parameters.icuCap, parameters.pIcu),
        **totals,
    )


def transitionAllLocales(
        locales: Dict[NodeName, Locale],
        graph: nx.DiGraph,
        cfr: float,
        parameters: loaders.Parameters,
        generator: np.random.Generator,
):
    """
    Runs one tick of the compartmental model in every locale, in place. All the flows are drawn from the pre-tick
    snapshot before any locale is updated.

    :param locales: the locales
    :param graph: the network of locales
    :param cfr: case fatality rate for this tick
    :param parameters: run parameters
    :param generator: random number generator used for the model
    """
    snapshot = {name: locale.state for name, locale in locales.items()}
    flows = {}
    for name, locale in locales.items():
        effP, effI = effectiveInfectious(graph, name, snapshot)
        flows[name] = computeFlows(snapshot[name], locale.transCoeff, effP, effI, cfr, parameters, generator)

    for name, locale in locales.items():
        locale.state = applyFlows(snapshot[name], flows[name])
        locale.lastFlows = flows[name]


def basicSimulation(
        model: Model,
        generator: np.random.Generator,
        hooks: Sequence[Hook] = (),
) -> pd.DataFrame:
    """Run the simulation of a disease spreading through the network of locales.

    :param model: the model to run, it isn't modified
    :param generator: seeded random number generator to use in this simulation
    :param hooks: functions called at the end of every tick with the tick, the locales and the aggregates. They must
                  not change the locales
    :return: one row per locale per tick, with the columns in `RESULT_COLUMNS`
    """
    parameters = model.parameters
    locales = copy.deepcopy(model.locales)
    graph = model.graph.copy()

    seedInitialInfections(locales, parameters.initialInfected, parameters.seedingMethod, generator)

    history = []
    tick = 0
    while tick < parameters.endTick:
        runSurveillance(locales.values(), parameters, generator)
        if alerts.isDue(tick, parameters):
            alerts.updateAlertLevels(locales, graph, parameters, generator)
        aggregates = aggregate(locales.values(), parameters)
        transitionAllLocales(locales, graph, aggregates.cfr, parameters, generator)

        history.append(localesToPandas(tick, locales))
        for hook in hooks:
            hook(tick, locales, aggregates)
        logger.debug("Tick %s/%s. Status: %s", tick, parameters.endTick, Lazy(lambda: aggregates._asdict()))

        tick += 1
        if sum(locale.state.active for locale in locales.values()) == 0:
            logger.info("No active cases left after %s ticks", tick)
            break

    return pd.concat(history, ignore_index=True)


def localesToPandas(tick: int, locales: Dict[NodeName, Locale]) -> pd.DataFrame:
    """
    Converts the locales into a pandas DataFrame, one row per locale

    :param tick: tick that will be inserted into every row
    :param locales: the locales
    :return: a pandas dataframe representation of the locales
    """
    rows = []
    for name, locale in locales.items():
        state, flows = locale.state, locale.lastFlows
        rows.append([
            tick,
            name,
            locale.pop0,
            state.S,
            state.E,
            state.P,
            state.I,
            state.R,
            state.D,
            locale.tests,
            locale.testsPositive,
            locale.newTests[0] if locale.newTests else 0,
            locale.newTestsPositive[0] if locale.newTestsPositive else 0,
            flows.newExposed,
            flows.newPresymptomatic,
            flows.newInfected,
            flows.newInfected,
            flows.newRecovered,
            flows.newDead,
            locale.alertLevel,
        ])
    return pd.DataFrame(rows, columns=RESULT_COLUMNS).astype(RESULT_DTYPES)
