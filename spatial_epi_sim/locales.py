"""
Locales are the regions of the model. Each one runs its own stochastic compartmental model with the compartments:

1. Susceptible (S) -- can catch the disease at any moment.
2. Exposed (E) -- infected, but not yet infectious.
3. Presymptomatic (P) -- infectious at a reduced rate (``relInfPresym``), no symptoms yet.
4. Infected (I) -- infectious and symptomatic.
5. Recovered (R)
6. Dead (D)

People move through the compartments in that order, except that leaving I leads to either R or D. The only
interaction between locales is through the infectious pressure of their neighbours (see :meth:`effectiveInfectious`).

A tick is computed in two steps: :meth:`computeFlows` draws the number of people moving between compartments, and
:meth:`applyFlows` returns the new state. Neither of them modify their inputs.
"""
import logging
from collections import deque
from typing import Deque, Dict, NamedTuple, Tuple

import networkx as nx  # type: ignore
import numpy as np  # type: ignore

from spatial_epi_sim import loaders
from spatial_epi_sim.sampler import binomial, clampProbability

logger = logging.getLogger(__name__)

NodeName = str


class LocaleState(NamedTuple):
    """
    Number of people in each compartment of a locale
    """
    S: int
    E: int
    P: int
    I: int
    R: int
    D: int

    @property
    def living(self) -> int:
        """People still alive"""
        return self.S + self.E + self.P + self.I + self.R

    @property
    def active(self) -> int:
        """People carrying the disease (E, P and I)"""
        return self.E + self.P + self.I


class Flows(NamedTuple):
    """
    People moving between compartments in one tick
    """
    newExposed: int = 0
    newPresymptomatic: int = 0
    newInfected: int = 0
    newRecovered: int = 0
    newDead: int = 0


class Locale:
    """
    A simulated region. Compartments are replaced (never edited) once per tick by the simulation, while the alert level
    is only changed by the alert policies through :meth:`setAlertLevel`, which also recomputes R0 and the transmission
    coefficient.

    :param name: unique name of the locale
    :param x: horizontal position
    :param y: vertical position
    :param pop0: initial population
    :param windowLength: number of ticks kept in the rolling testing windows
    """

    def __init__(self, name: NodeName, x: float, y: float, pop0: int, windowLength: int):
        if pop0 < 0:
            raise ValueError(f"population of {name} must be >= 0, got {pop0}")
        self.name = name
        self.x = x
        self.y = y
        self.pop0 = int(pop0)
        self.state = LocaleState(S=self.pop0, E=0, P=0, I=0, R=0, D=0)
        self.lastFlows = Flows()
        self.tests = 0
        self.testsPositive = 0
        # Most recent tick first
        self.newTests: Deque[int] = deque(maxlen=windowLength)
        self.newTestsPositive: Deque[int] = deque(maxlen=windowLength)
        self._alertLevel = 0
        self._r0 = 0.0
        self._transCoeff = 0.0

    @property
    def alertLevel(self) -> int:
        return self._alertLevel

    @property
    def r0(self) -> float:
        return self._r0

    @property
    def transCoeff(self) -> float:
        return self._transCoeff

    @property
    def living(self) -> int:
        return self.pop0 - self.state.D

    def setAlertLevel(self, level: int, parameters: loaders.Parameters):
        """Sets the alert level and the values derived from it.

        :param level: new alert level, from 0 to 4
        :param parameters: run parameters, with the R0 per level table
        """
        if not 0 <= level <= loaders.MAX_ALERT_LEVEL:
            raise ValueError(f"alert level must be between 0 and {loaders.MAX_ALERT_LEVEL}, got {level}")
        self._alertLevel = int(level)
        self._r0 = parameters.levels.r0[self._alertLevel]
        self._transCoeff = transmissionCoefficient(self._r0, parameters)

    def __repr__(self):
        return f"Locale({self.name!r}, pop0={self.pop0}, state={self.state}, alertLevel={self.alertLevel})"


def transmissionCoefficient(r0: float, parameters: loaders.Parameters) -> float:
    r"""
    The per tick transmission coefficient giving the reproduction number `r0`. An infection spends on average
    :math:`1 / \text{presymToInf}` ticks in P, infecting at the reduced rate, then :math:`1 / \text{infToRecov}` ticks in
    I, so:

    .. math::

        \text{transCoeff} = \frac{R_0}{\text{relInfPresym} / \text{presymToInf} + 1 / \text{infToRecov}}

    A rate of zero means people never leave that compartment, which makes the coefficient zero.

    :param r0: basic reproduction number
    :param parameters: run parameters
    :return: transmission coefficient
    """
    if parameters.presymToInf == 0.0 or parameters.infToRecov == 0.0:
        return 0.0
    return r0 / (parameters.relInfPresym / parameters.presymToInf + 1.0 / parameters.infToRecov)


def blendedCfr(totalInfected: int, cfr0: float, cfr1: float, icuCap: float, pIcu: float) -> float:
    """
    Case fatality rate adjusted for ICU capacity. Cases that fit in the ICU (``icuCap / pIcu`` of them) die at the rate
    `cfr0`; the rest at `cfr1`.

    >>> blendedCfr(100, 0.01, 0.02, 500, 0.0125)
    0.01
    >>> round(blendedCfr(80000, 0.01, 0.02, 500, 0.0125), 6)
    0.015

    :param totalInfected: number of symptomatic cases across the network
    :param cfr0: case fatality rate with ICU care available
    :param cfr1: case fatality rate once the ICU is full
    :param icuCap: number of ICU beds
    :param pIcu: proportion of symptomatic cases needing an ICU bed
    :return: the blended case fatality rate
    """
    if pIcu == 0.0 or totalInfected * pIcu <= icuCap:
        return cfr0
    capacity = icuCap / pIcu
    return (cfr0 * capacity + cfr1 * (totalInfected - capacity)) / totalInfected


def effectiveInfectious(
        graph: nx.DiGraph,
        name: NodeName,
        snapshot: Dict[NodeName, LocaleState],
) -> Tuple[float, float]:
    """
    The presymptomatic and symptomatic counts a locale is exposed to: its own, plus those of each neighbour with an
    incoming connection, scaled by the connection's weight and flow rate.

    :param graph: the network of locales
    :param name: the receiving locale
    :param snapshot: the pre-tick state of every locale
    :return: effective P and I counts
    """
    own = snapshot[name]
    effP = float(own.P)
    effI = float(own.I)
    for source, _, data in graph.in_edges(name, data=True):
        neighbour = snapshot[source]
        flow = data["flow_rate"] * data["weight"]
        effP += flow * neighbour.P
        effI += flow * neighbour.I
    return effP, effI


# pylint: disable=too-many-arguments
def computeFlows(
        state: LocaleState,
        transCoeff: float,
        effP: float,
        effI: float,
        cfr: float,
        parameters: loaders.Parameters,
        generator: np.random.Generator,
) -> Flows:
    """
    Draws the number of people moving between compartments in one tick. The draws are always made in the same order:
    exposures, E to P, P to I, leaving I, and then recoveries among those leaving I.

    A locale with no living population is terminal: nothing is drawn and every flow is zero.

    :param state: pre-tick state of the locale
    :param transCoeff: the locale's transmission coefficient
    :param effP: effective presymptomatic count (see :meth:`effectiveInfectious`)
    :param effI: effective symptomatic count (see :meth:`effectiveInfectious`)
    :param cfr: case fatality rate for this tick
    :param parameters: run parameters
    :param generator: random number generator used for the model
    :return: the flows
    """
    living = state.living
    if living == 0:
        return Flows()

    assert transCoeff >= 0.0 and effP >= 0.0 and effI >= 0.0, f"negative pressure {transCoeff}, {effP}, {effI}"
    forceOfInfection = transCoeff * (parameters.relInfPresym * effP + effI) / living

    newExposed = binomial(state.S, clampProbability(forceOfInfection), generator)
    newPresymptomatic = binomial(state.E, parameters.exposedToPresym, generator)
    newInfected = binomial(state.P, parameters.presymToInf, generator)
    noLongerInfected = binomial(state.I, parameters.infToRecov, generator)
    newRecovered = binomial(noLongerInfected, 1.0 - cfr, generator)

    return Flows(
        newExposed=newExposed,
        newPresymptomatic=newPresymptomatic,
        newInfected=newInfected,
        newRecovered=newRecovered,
        newDead=noLongerInfected - newRecovered,
    )


def applyFlows(state: LocaleState, flows: Flows) -> LocaleState:
    """Moves people between compartments.

    :param state: pre-tick state of the locale
    :param flows: the flows drawn by :meth:`computeFlows`
    :return: the new state
    """
    noLongerInfected = flows.newRecovered + flows.newDead
    new = LocaleState(
        S=state.S - flows.newExposed,
        E=state.E + flows.newExposed - flows.newPresymptomatic,
        P=state.P + flows.newPresymptomatic - flows.newInfected,
        I=state.I + flows.newInfected - noLongerInfected,
        R=state.R + flows.newRecovered,
        D=state.D + flows.newDead,
    )
    assert min(new) >= 0, f"negative compartment in {new} after {flows}"
    return new
