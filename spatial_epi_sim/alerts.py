"""
Alert level policies. Every ``timeHorizon`` ticks, once the clock has passed ``startLiftingQuarantine``, the configured
policy chooses a new alert level (0 to 4) for every locale:

- ``static`` -- levels never change.
- ``local-random`` -- each locale moves one level up, one level down or stays put, at random.
- ``local`` -- each locale looks at the positivity rate of its own recent tests.
- ``global`` -- the positivity rate of the whole network sets a single level for every locale.

In the ``local`` and ``global`` policies the positivity rate is mapped to a target level through the trigger table (the
highest level whose trigger the rate exceeds). Raising the level is immediate, but it's lowered one level per evaluation
at most. A window without any tests drops the level to 0.

Once new levels are chosen, :meth:`applyAlertLevels` updates the locales' R0 and the flow rate of every connection,
which is set by the more restrictive of its two ends.
"""
import logging
from typing import Callable, Dict, Sequence

import networkx as nx  # type: ignore
import numpy as np  # type: ignore

from spatial_epi_sim import loaders
from spatial_epi_sim.common import Lazy
from spatial_epi_sim.locales import Locale
from spatial_epi_sim.surveillance import networkWindowTotals, windowTotals

logger = logging.getLogger(__name__)

NodeName = str
Policy = Callable[[Dict[NodeName, Locale], loaders.Parameters, np.random.Generator], Dict[NodeName, int]]


def isDue(tick: int, parameters: loaders.Parameters) -> bool:
    """Whether the alert policy should be evaluated at this tick

    :param tick: current tick
    :param parameters: run parameters
    :return: True if the policy runs in this tick
    """
    return tick > parameters.startLiftingQuarantine and tick % parameters.timeHorizon == 0


def targetLevel(rate: float, triggers: Sequence[float]) -> int:
    """The highest alert level whose trigger is exceeded by the positivity rate (0 if none is).

    >>> targetLevel(0.015, [0.0, 0.01, 0.02, 0.03, 0.04])
    1
    >>> targetLevel(0.0, [0.0, 0.01, 0.02, 0.03, 0.04])
    0
    >>> targetLevel(0.5, [0.0, 0.01, 0.02, 0.03, 0.04])
    4
    """
    target = 0
    for level, trigger in enumerate(triggers):
        if rate > trigger:
            target = level
    return target


def nextLevel(current: int, tests: int, positive: int, triggers: Sequence[float]) -> int:
    """
    Chooses the next alert level from the tests in the window. Levels go up straight to the target but down by one
    level at a time.

    :param current: current alert level
    :param tests: number of tests in the window
    :param positive: number of positive tests in the window
    :param triggers: positivity rate triggers, per level
    :return: the new alert level
    """
    if tests == 0:
        return 0
    target = targetLevel(positive / tests, triggers)
    if target < current:
        return current - 1
    return target


def staticPolicy(
        locales: Dict[NodeName, Locale],
        parameters: loaders.Parameters,  # pylint: disable=unused-argument
        generator: np.random.Generator,  # pylint: disable=unused-argument
) -> Dict[NodeName, int]:
    return {name: locale.alertLevel for name, locale in locales.items()}


def localRandomPolicy(
        locales: Dict[NodeName, Locale],
        parameters: loaders.Parameters,  # pylint: disable=unused-argument
        generator: np.random.Generator,
) -> Dict[NodeName, int]:
    """Random walk of each locale's level, one step at most, within [0, 4]"""
    levels = {}
    for name, locale in locales.items():
        step = int(generator.integers(-1, 2))
        levels[name] = min(max(locale.alertLevel + step, 0), loaders.MAX_ALERT_LEVEL)
    return levels


def localPolicy(
        locales: Dict[NodeName, Locale],
        parameters: loaders.Parameters,
        generator: np.random.Generator,  # pylint: disable=unused-argument
) -> Dict[NodeName, int]:
    """Each locale responds to the positivity rate of its own tests"""
    levels = {}
    for name, locale in locales.items():
        tests, positive = windowTotals(locale)
        levels[name] = nextLevel(locale.alertLevel, tests, positive, parameters.levels.trigger)
    return levels


def globalPolicy(
        locales: Dict[NodeName, Locale],
        parameters: loaders.Parameters,
        generator: np.random.Generator,  # pylint: disable=unused-argument
) -> Dict[NodeName, int]:
    """Every locale gets the level chosen from the positivity rate of the whole network"""
    if not locales:
        return {}
    current = max(locale.alertLevel for locale in locales.values())
    tests, positive = networkWindowTotals(locales.values())
    level = nextLevel(current, tests, positive, parameters.levels.trigger)
    return {name: level for name in locales}


POLICIES: Dict[loaders.AlertPolicy, Policy] = {
    loaders.AlertPolicy.STATIC: staticPolicy,
    loaders.AlertPolicy.LOCAL_RANDOM: localRandomPolicy,
    loaders.AlertPolicy.LOCAL: localPolicy,
    loaders.AlertPolicy.GLOBAL: globalPolicy,
}


def applyAlertLevels(
        locales: Dict[NodeName, Locale],
        graph: nx.DiGraph,
        levels: Dict[NodeName, int],
        parameters: loaders.Parameters,
):
    """
    Sets the alert levels of the locales and recomputes everything derived from them, in place: each locale's R0 and
    transmission coefficient, and each connection's flow rate (the lower flow multiplier of its two ends).

    :param locales: the locales
    :param graph: the network of locales
    :param levels: new alert level of each locale
    :param parameters: run parameters
    """
    assert levels.keys() == locales.keys(), "missing locales"
    for name, level in levels.items():
        locales[name].setAlertLevel(level, parameters)

    flow = parameters.levels.flow
    for source, target, data in graph.edges(data=True):
        data["flow_rate"] = min(flow[locales[source].alertLevel], flow[locales[target].alertLevel])


def updateAlertLevels(
        locales: Dict[NodeName, Locale],
        graph: nx.DiGraph,
        parameters: loaders.Parameters,
        generator: np.random.Generator,
):
    """Runs the configured policy and applies the levels it chose, in place.

    :param locales: the locales
    :param graph: the network of locales
    :param parameters: run parameters
    :param generator: random number generator used for the model
    """
    before = {name: locale.alertLevel for name, locale in locales.items()}
    levels = POLICIES[parameters.alertPolicy](locales, parameters, generator)
    applyAlertLevels(locales, graph, levels, parameters)
    logger.debug(
        "Alert levels (%s): %s",
        parameters.alertPolicy.value,
        Lazy(lambda: {name: f"{before[name]}->{level}" for name, level in levels.items() if before[name] != level}),
    )
