import networkx as nx
import numpy as np
import pytest

from spatial_epi_sim import locales
from spatial_epi_sim.locales import Flows, Locale, LocaleState


def test_transmissionCoefficient(make_parameters):
    parameters = make_parameters(rel_inf_presym=0.15, presym_to_inf=0.5, inf_to_recov=0.2)

    assert locales.transmissionCoefficient(2.5, parameters) == pytest.approx(2.5 / 5.3)


def test_transmissionCoefficient_zero_r0(make_parameters):
    assert locales.transmissionCoefficient(0.0, make_parameters()) == 0.0


@pytest.mark.parametrize("rates", [{"presym_to_inf": 0.0}, {"inf_to_recov": 0.0}])
def test_transmissionCoefficient_stuck_compartment(make_parameters, rates):
    assert locales.transmissionCoefficient(2.5, make_parameters(**rates)) == 0.0


def test_blendedCfr_below_capacity():
    assert locales.blendedCfr(40_000, 0.01, 0.02, 500, 0.0125) == 0.01


def test_blendedCfr_above_capacity():
    # 40000 cases fit in the ICU, the other 40000 die at cfr1
    assert locales.blendedCfr(80_000, 0.01, 0.02, 500, 0.0125) == pytest.approx(0.015)


def test_blendedCfr_no_icu_demand():
    assert locales.blendedCfr(10 ** 9, 0.01, 0.02, 0, 0.0) == 0.01


def test_blendedCfr_no_infected():
    assert locales.blendedCfr(0, 0.01, 0.02, 0, 0.5) == 0.01


@pytest.mark.parametrize("totalInfected", [1, 100, 10_000, 10 ** 7])
def test_blendedCfr_is_bounded(totalInfected):
    cfr = locales.blendedCfr(totalInfected, 0.01, 0.05, 20, 0.1)

    assert 0.01 <= cfr <= 0.05


def test_locale_starts_susceptible():
    locale = Locale("a", 0.0, 1.0, 500, 7)

    assert locale.state == LocaleState(S=500, E=0, P=0, I=0, R=0, D=0)
    assert locale.alertLevel == 0
    assert locale.tests == 0
    assert locale.living == 500
    assert locale.newTests.maxlen == 7


def test_locale_negative_population():
    with pytest.raises(ValueError):
        Locale("a", 0.0, 0.0, -1, 7)


def test_setAlertLevel(make_parameters):
    parameters = make_parameters(r0_levels=[3.0, 2.0, 1.0, 0.5, 0.0])
    locale = Locale("a", 0.0, 0.0, 100, 7)

    locale.setAlertLevel(2, parameters)

    assert locale.alertLevel == 2
    assert locale.r0 == 1.0
    assert locale.transCoeff == pytest.approx(locales.transmissionCoefficient(1.0, parameters))


@pytest.mark.parametrize("level", [-1, 5])
def test_setAlertLevel_out_of_range(make_parameters, level):
    locale = Locale("a", 0.0, 0.0, 100, 7)

    with pytest.raises(ValueError):
        locale.setAlertLevel(level, make_parameters())
    assert locale.alertLevel == 0


def test_living_excludes_dead():
    locale = Locale("a", 0.0, 0.0, 100, 7)
    locale.state = LocaleState(S=50, E=5, P=5, I=10, R=20, D=10)

    assert locale.living == 90
    assert locale.state.living == 90
    assert locale.state.active == 20


def test_effectiveInfectious():
    graph = nx.DiGraph()
    graph.add_edge("b", "a", weight=0.5, flow_rate=0.5)
    graph.add_edge("c", "a", weight=1.0, flow_rate=1.0)
    graph.add_edge("a", "b", weight=1.0, flow_rate=1.0)
    snapshot = {
        "a": LocaleState(S=100, E=0, P=2, I=4, R=0, D=0),
        "b": LocaleState(S=100, E=0, P=8, I=16, R=0, D=0),
        "c": LocaleState(S=100, E=0, P=1, I=1, R=0, D=0),
    }

    effP, effI = locales.effectiveInfectious(graph, "a", snapshot)

    assert effP == pytest.approx(2 + 0.25 * 8 + 1)
    assert effI == pytest.approx(4 + 0.25 * 16 + 1)


def test_effectiveInfectious_ignores_outgoing_connections():
    graph = nx.DiGraph()
    graph.add_edge("a", "b", weight=1.0, flow_rate=1.0)
    snapshot = {
        "a": LocaleState(S=10, E=0, P=0, I=0, R=0, D=0),
        "b": LocaleState(S=10, E=0, P=5, I=5, R=0, D=0),
    }

    assert locales.effectiveInfectious(graph, "a", snapshot) == (0.0, 0.0)


def test_computeFlows_terminal_locale_makes_no_draws(make_parameters):
    generator = np.random.default_rng(5)
    state = LocaleState(S=0, E=0, P=0, I=0, R=0, D=40)

    flows = locales.computeFlows(state, 1.0, 10.0, 10.0, 0.5, make_parameters(), generator)

    assert flows == Flows()
    assert generator.random() == np.random.default_rng(5).random()


def test_computeFlows_no_transmission(make_parameters):
    state = LocaleState(S=1000, E=0, P=20, I=20, R=0, D=0)

    flows = locales.computeFlows(state, 0.0, 20.0, 20.0, 0.01, make_parameters(), np.random.default_rng(1))

    assert flows.newExposed == 0


def test_computeFlows_certain_transitions(make_parameters):
    parameters = make_parameters(exposed_to_presym=1.0, presym_to_inf=1.0, inf_to_recov=1.0)
    state = LocaleState(S=10, E=3, P=4, I=5, R=0, D=0)

    flows = locales.computeFlows(state, 1000.0, 4.0, 5.0, 0.0, parameters, np.random.default_rng(1))

    assert flows == Flows(newExposed=10, newPresymptomatic=3, newInfected=4, newRecovered=5, newDead=0)


def test_computeFlows_everyone_dies(make_parameters):
    parameters = make_parameters(inf_to_recov=1.0)
    state = LocaleState(S=0, E=0, P=0, I=30, R=0, D=0)

    flows = locales.computeFlows(state, 0.0, 0.0, 30.0, 1.0, parameters, np.random.default_rng(1))

    assert flows.newDead == 30
    assert flows.newRecovered == 0


def test_computeFlows_never_exceeds_sources(make_parameters):
    parameters = make_parameters()
    generator = np.random.default_rng(9)
    state = LocaleState(S=5000, E=400, P=300, I=200, R=10, D=0)

    for _ in range(100):
        flows = locales.computeFlows(state, 50.0, 300.0, 200.0, 0.3, parameters, generator)
        assert 0 <= flows.newExposed <= state.S
        assert 0 <= flows.newPresymptomatic <= state.E
        assert 0 <= flows.newInfected <= state.P
        assert 0 <= flows.newRecovered + flows.newDead <= state.I


def test_applyFlows_conserves_population():
    state = LocaleState(S=100, E=10, P=8, I=6, R=3, D=1)
    flows = Flows(newExposed=7, newPresymptomatic=4, newInfected=3, newRecovered=2, newDead=1)

    new = locales.applyFlows(state, flows)

    assert new == LocaleState(S=93, E=13, P=9, I=6, R=5, D=2)
    assert sum(new) == sum(state)


def test_applyFlows_negative_compartment():
    state = LocaleState(S=1, E=0, P=0, I=0, R=0, D=0)

    with pytest.raises(AssertionError):
        locales.applyFlows(state, Flows(newExposed=2))
