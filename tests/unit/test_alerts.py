import networkx as nx
import numpy as np
import pytest

from spatial_epi_sim import alerts, loaders
from spatial_epi_sim.locales import Locale
from spatial_epi_sim.surveillance import TickTests, recordTests

TRIGGERS = [0.0, 0.01, 0.02, 0.03, 0.04]


def _locales(parameters, levels):
    result = {}
    for name, level in levels.items():
        locale = Locale(name, 0.0, 0.0, 1000, parameters.timeHorizon)
        locale.setAlertLevel(level, parameters)
        result[name] = locale
    return result


def _test(locale, tests, positive):
    recordTests(locale, TickTests(positive=positive, presymptomatic=0, negativeBackground=tests - positive))


def _ring(names):
    graph = nx.DiGraph()
    for source, target in zip(names, names[1:] + names[:1]):
        graph.add_edge(source, target, weight=1.0, flow_rate=1.0)
        graph.add_edge(target, source, weight=1.0, flow_rate=1.0)
    return graph


@pytest.mark.parametrize("tick,expected", [
    (0, False),
    (7, False),
    (14, False),
    (15, False),
    (21, True),
    (28, True),
    (29, False),
])
def test_isDue(make_parameters, tick, expected):
    parameters = make_parameters(time_horizon=7, start_lifting_quarantine=14)

    assert alerts.isDue(tick, parameters) == expected


@pytest.mark.parametrize("rate,expected", [
    (0.0, 0),
    (0.005, 0),
    (0.01, 0),
    (0.011, 1),
    (0.025, 2),
    (0.04, 3),
    (1.0, 4),
])
def test_targetLevel(rate, expected):
    assert alerts.targetLevel(rate, TRIGGERS) == expected


def test_nextLevel_raises_straight_to_target():
    assert alerts.nextLevel(0, 100, 50, TRIGGERS) == 4


def test_nextLevel_lowers_one_level_at_a_time():
    assert alerts.nextLevel(4, 100, 0, TRIGGERS) == 3


def test_nextLevel_keeps_level_on_target():
    assert alerts.nextLevel(2, 1000, 25, TRIGGERS) == 2


def test_nextLevel_no_tests():
    assert alerts.nextLevel(3, 0, 0, TRIGGERS) == 0


def test_staticPolicy(make_parameters):
    parameters = make_parameters(alert_policy="static")
    locales = _locales(parameters, {"a": 3, "b": 0})
    for locale in locales.values():
        _test(locale, 100, 100)

    assert alerts.staticPolicy(locales, parameters, np.random.default_rng(0)) == {"a": 3, "b": 0}


def test_localRandomPolicy_moves_at_most_one_level(make_parameters):
    parameters = make_parameters(alert_policy="local-random")
    generator = np.random.default_rng(4)
    locales = _locales(parameters, {"a": 0, "b": 2, "c": 4})

    for _ in range(50):
        before = {name: locale.alertLevel for name, locale in locales.items()}
        levels = alerts.localRandomPolicy(locales, parameters, generator)
        for name, level in levels.items():
            assert abs(level - before[name]) <= 1
            assert 0 <= level <= loaders.MAX_ALERT_LEVEL
            locales[name].setAlertLevel(level, parameters)


def test_localPolicy_uses_own_tests(make_parameters):
    parameters = make_parameters(alert_policy="local", trigger_levels=TRIGGERS)
    locales = _locales(parameters, {"high": 0, "low": 4, "untested": 2})
    _test(locales["high"], 100, 10)
    _test(locales["low"], 100, 0)

    levels = alerts.localPolicy(locales, parameters, np.random.default_rng(0))

    assert levels == {"high": 4, "low": 3, "untested": 0}


def test_globalPolicy_uses_network_tests(make_parameters):
    parameters = make_parameters(alert_policy="global", trigger_levels=TRIGGERS)
    locales = _locales(parameters, {"a": 0, "b": 0, "c": 0})
    _test(locales["a"], 100, 5)
    _test(locales["b"], 100, 0)
    _test(locales["c"], 100, 0)

    levels = alerts.globalPolicy(locales, parameters, np.random.default_rng(0))

    # 5 positive out of 300 tests is a rate above 0.01
    assert levels == {"a": 1, "b": 1, "c": 1}


def test_globalPolicy_lowers_from_highest_level(make_parameters):
    parameters = make_parameters(alert_policy="global", trigger_levels=TRIGGERS)
    locales = _locales(parameters, {"a": 4, "b": 1})
    _test(locales["a"], 100, 0)

    levels = alerts.globalPolicy(locales, parameters, np.random.default_rng(0))

    assert levels == {"a": 3, "b": 3}


def test_applyAlertLevels_sets_r0_and_flow_rates(make_parameters):
    parameters = make_parameters(r0_levels=[2.5, 2.0, 1.5, 1.0, 0.5], flow_levels=[1.0, 0.5, 0.25, 0.1, 0.05])
    locales = _locales(parameters, {"a": 0, "b": 0, "c": 0})
    graph = _ring(["a", "b", "c"])

    alerts.applyAlertLevels(locales, graph, {"a": 0, "b": 2, "c": 4}, parameters)

    assert [locales[name].r0 for name in "abc"] == [2.5, 1.5, 0.5]
    assert graph.edges["a", "b"]["flow_rate"] == 0.25
    assert graph.edges["b", "a"]["flow_rate"] == 0.25
    assert graph.edges["b", "c"]["flow_rate"] == 0.05
    assert graph.edges["c", "a"]["flow_rate"] == 0.05


def test_applyAlertLevels_keeps_weights(make_parameters):
    parameters = make_parameters()
    locales = _locales(parameters, {"a": 0, "b": 0})
    graph = _ring(["a", "b"])

    alerts.applyAlertLevels(locales, graph, {"a": 3, "b": 1}, parameters)

    assert all(data["weight"] == 1.0 for _, _, data in graph.edges(data=True))


def test_updateAlertLevels_runs_configured_policy(make_parameters):
    parameters = make_parameters(alert_policy="local", trigger_levels=TRIGGERS)
    locales = _locales(parameters, {"a": 0, "b": 0})
    graph = _ring(["a", "b"])
    _test(locales["a"], 10, 10)
    _test(locales["b"], 10, 0)

    alerts.updateAlertLevels(locales, graph, parameters, np.random.default_rng(0))

    assert locales["a"].alertLevel == 4
    assert locales["b"].alertLevel == 0
    assert graph.edges["a", "b"]["flow_rate"] == parameters.levels.flow[4]


def test_every_policy_is_registered():
    assert set(alerts.POLICIES) == set(loaders.AlertPolicy)
