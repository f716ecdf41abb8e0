"""
Testing model. Every tick a fraction of each compartment gets tested:

- symptomatic people (I) at ``testRateSymptomatic``, and they test positive
- exposed and presymptomatic people (E and P) at ``testRatePresymptomatic``
- susceptible people (S) at ``testRateGeneral``, as background testing

The results of the last ``timeHorizon`` ticks are kept in each locale's rolling windows, which are what the alert
policies look at.
"""
from typing import Iterable, NamedTuple, Tuple

import numpy as np  # type: ignore

from spatial_epi_sim import loaders
from spatial_epi_sim.locales import Locale, LocaleState
from spatial_epi_sim.sampler import binomial


class TickTests(NamedTuple):
    """
    Tests carried out in a locale in one tick
    """
    positive: int
    presymptomatic: int
    negativeBackground: int

    @property
    def total(self) -> int:
        return self.positive + self.presymptomatic + self.negativeBackground


def sampleTests(state: LocaleState, parameters: loaders.Parameters, generator: np.random.Generator) -> TickTests:
    """Draws the tests carried out in a locale in one tick.

    :param state: current state of the locale
    :param parameters: run parameters, with the testing rates
    :param generator: random number generator used for the model
    :return: the number of tests of each kind
    """
    return TickTests(
        positive=binomial(state.I, parameters.testRateSymptomatic, generator),
        presymptomatic=binomial(state.E + state.P, parameters.testRatePresymptomatic, generator),
        negativeBackground=binomial(state.S, parameters.testRateGeneral, generator),
    )


def recordTests(locale: Locale, results: TickTests):
    """Pushes the results onto the locale's windows and adds them to its lifetime totals, in place.

    :param locale: the tested locale
    :param results: results from :meth:`sampleTests`
    """
    locale.newTests.appendleft(results.total)
    locale.newTestsPositive.appendleft(results.positive)
    locale.tests += results.total
    locale.testsPositive += results.positive


def runSurveillance(locales: Iterable[Locale], parameters: loaders.Parameters, generator: np.random.Generator):
    """Tests every locale, in iteration order, updating them in place.

    :param locales: the locales
    :param parameters: run parameters
    :param generator: random number generator used for the model
    """
    for locale in locales:
        recordTests(locale, sampleTests(locale.state, parameters, generator))


def windowTotals(locale: Locale) -> Tuple[int, int]:
    """Number of tests and positive tests in the locale's rolling window.

    :param locale: the locale
    :return: (tests, positive tests)
    """
    return sum(locale.newTests), sum(locale.newTestsPositive)


def networkWindowTotals(locales: Iterable[Locale]) -> Tuple[int, int]:
    """Number of tests and positive tests in the rolling windows of all locales.

    :param locales: the locales
    :return: (tests, positive tests)
    """
    tests = 0
    positive = 0
    for locale in locales:
        localTests, localPositive = windowTotals(locale)
        tests += localTests
        positive += localPositive
    return tests, positive
