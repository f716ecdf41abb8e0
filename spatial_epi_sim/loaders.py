"""This module contains functions and classes to read and check input files."""
# pylint: disable=import-error
import math
from enum import Enum
from pathlib import Path
from typing import Any, Dict, NamedTuple, Optional, Tuple, Union

import pandas as pd  # type: ignore
import yaml

NodeName = str

NUM_ALERT_LEVELS = 5
MAX_ALERT_LEVEL = NUM_ALERT_LEVELS - 1


class AlertPolicy(Enum):
    """
    The rule used to move alert levels up or down. The policy is fixed for a run.
    """
    STATIC = "static"
    LOCAL_RANDOM = "local-random"
    LOCAL = "local"
    GLOBAL = "global"


class SeedingMethod(Enum):
    """
    How initial cases are placed across locales.
    """
    UNIFORM_BY_POPULATION = "uniform-by-population"
    UNIFORM_RANDOM = "uniform-random"


class LevelTables(NamedTuple):
    """
    Values indexed by alert level (0 to 4)
    """
    r0: Tuple[float, ...]
    flow: Tuple[float, ...]
    trigger: Tuple[float, ...]


class Parameters(NamedTuple):
    """
    Run configuration. It's read once and never modified during a run.
    """
    population: int
    numLocales: int
    popVarianceMultiplier: float
    exposedToPresym: float
    presymToInf: float
    infToRecov: float
    relInfPresym: float
    cfr0: float
    cfr1: float
    icuCap: float
    pIcu: float
    testRateSymptomatic: float
    testRatePresymptomatic: float
    testRateGeneral: float
    levels: LevelTables
    alertPolicy: AlertPolicy
    timeHorizon: int
    startLiftingQuarantine: int
    initialAlertLevel: int
    seedingMethod: SeedingMethod
    initialInfected: int
    seed: Optional[int]
    endTick: int
    trials: int
    connectionsPerLocale: int


class Region(NamedTuple):
    """
    A named region with its position and population, as read from a regions table
    """
    name: NodeName
    x: float
    y: float
    pop: int


DEFAULTS: Dict[str, Any] = {
    "population": 1_000_000,
    "num_locales": 10,
    "pop_variance_multiplier": 0.5,
    "exposed_to_presym": 0.5,
    "presym_to_inf": 0.5,
    "inf_to_recov": 0.2,
    "rel_inf_presym": 0.15,
    "cfr0": 0.01,
    "cfr1": 0.02,
    "icu_cap": 500,
    "p_icu": 0.0125,
    "test_rate_symptomatic": 0.2,
    "test_rate_presymptomatic": 0.01,
    "test_rate_general": 0.001,
    "r0_levels": [2.5, 2.0, 1.5, 1.0, 0.5],
    "flow_levels": [1.0, 0.5, 0.25, 0.1, 0.05],
    "trigger_levels": [0.0, 0.0001, 0.001, 0.01, 0.05],
    "alert_policy": "local",
    "time_horizon": 7,
    "start_lifting_quarantine": 28,
    "initial_alert_level": 0,
    "seeding_method": "uniform-by-population",
    "initial_infected": 50,
    "seed": None,
    "end_tick": 365,
    "trials": 1,
    "connections_per_locale": 6,
}


def _assertProbability(name: str, value: float) -> float:
    value = float(value)
    if math.isnan(value) or value < 0.0 or value > 1.0:
        raise ValueError(f"{name} must be between 0 and 1, got {value}")
    return value


def _assertPositiveNumber(name: str, value: float) -> float:
    value = float(value)
    if value < 0.0 or math.isinf(value) or math.isnan(value):
        raise ValueError(f"{name} must be a positive number, got {value}")
    return value


def _readInt(name: str, value: Any, minimum: int) -> int:
    if isinstance(value, bool) or isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{name} must be an int, got {value}")
    try:
        result = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an int, got {value}") from None
    if result < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {result}")
    return result


def _readLevelTable(name: str, values: Any, nonDecreasing: bool = False) -> Tuple[float, ...]:
    """
    Reads one of the per alert level tables. It must have exactly one non-negative entry per alert level.

    :param name: name of the table, used in error messages
    :param values: a sequence of numbers (a single comma separated string is also accepted)
    :param nonDecreasing: whether values must never decrease with the alert level
    :return: the table as a tuple of floats
    """
    if isinstance(values, str):
        values = [v for v in values.replace(",", " ").split() if v]
    table = tuple(_assertPositiveNumber(name, v) for v in values)
    if len(table) != NUM_ALERT_LEVELS:
        raise ValueError(f"{name} must have {NUM_ALERT_LEVELS} entries, got {len(table)}")
    if nonDecreasing and any(a > b for a, b in zip(table, table[1:])):
        raise ValueError(f"{name} must be non-decreasing, got {table}")
    return table


def readParameters(config: Dict[str, Any]) -> Parameters:
    """
    Validates a configuration mapping and transforms it into the internal representation. Keys missing from the mapping
    take the values in `DEFAULTS`. Unknown keys are rejected, as they are most likely typos.

    :param config: a mapping from configuration names (snake_case) to values
    :return: the validated parameters
    """
    unknown = set(config) - set(DEFAULTS)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")
    raw = dict(DEFAULTS)
    raw.update(config)

    try:
        alertPolicy = AlertPolicy(raw["alert_policy"])
    except ValueError:
        raise ValueError(f"Invalid alert_policy: {raw['alert_policy']}") from None
    try:
        seedingMethod = SeedingMethod(raw["seeding_method"])
    except ValueError:
        raise ValueError(f"Invalid seeding_method: {raw['seeding_method']}") from None

    levels = LevelTables(
        r0=_readLevelTable("r0_levels", raw["r0_levels"]),
        flow=tuple(_assertProbability("flow_levels", v) for v in _readLevelTable("flow_levels", raw["flow_levels"])),
        trigger=_readLevelTable("trigger_levels", raw["trigger_levels"], nonDecreasing=True),
    )

    initialAlertLevel = _readInt("initial_alert_level", raw["initial_alert_level"], 0)
    if initialAlertLevel > MAX_ALERT_LEVEL:
        raise ValueError(f"initial_alert_level must be <= {MAX_ALERT_LEVEL}, got {initialAlertLevel}")

    return Parameters(
        population=_readInt("population", raw["population"], 1),
        numLocales=_readInt("num_locales", raw["num_locales"], 1),
        popVarianceMultiplier=_assertPositiveNumber("pop_variance_multiplier", raw["pop_variance_multiplier"]),
        exposedToPresym=_assertProbability("exposed_to_presym", raw["exposed_to_presym"]),
        presymToInf=_assertProbability("presym_to_inf", raw["presym_to_inf"]),
        infToRecov=_assertProbability("inf_to_recov", raw["inf_to_recov"]),
        relInfPresym=_assertPositiveNumber("rel_inf_presym", raw["rel_inf_presym"]),
        cfr0=_assertProbability("cfr0", raw["cfr0"]),
        cfr1=_assertProbability("cfr1", raw["cfr1"]),
        icuCap=_assertPositiveNumber("icu_cap", raw["icu_cap"]),
        pIcu=_assertProbability("p_icu", raw["p_icu"]),
        testRateSymptomatic=_assertProbability("test_rate_symptomatic", raw["test_rate_symptomatic"]),
        testRatePresymptomatic=_assertProbability("test_rate_presymptomatic", raw["test_rate_presymptomatic"]),
        testRateGeneral=_assertProbability("test_rate_general", raw["test_rate_general"]),
        levels=levels,
        alertPolicy=alertPolicy,
        timeHorizon=_readInt("time_horizon", raw["time_horizon"], 1),
        startLiftingQuarantine=_readInt("start_lifting_quarantine", raw["start_lifting_quarantine"], 0),
        initialAlertLevel=initialAlertLevel,
        seedingMethod=seedingMethod,
        initialInfected=_readInt("initial_infected", raw["initial_infected"], 0),
        seed=None if raw["seed"] is None else _readInt("seed", raw["seed"], 0),
        endTick=_readInt("end_tick", raw["end_tick"], 1),
        trials=_readInt("trials", raw["trials"], 1),
        connectionsPerLocale=_readInt("connections_per_locale", raw["connections_per_locale"], 1),
    )


def readConfig(path: Union[str, Path]) -> Parameters:
    """
    Reads a YAML configuration file

    :param path: path to a YAML file with a single mapping at the top level
    :return: the validated parameters
    """
    with open(path) as fp:
        config = yaml.safe_load(fp)
    if config is None:
        config = {}
    if not isinstance(config, dict):
        raise ValueError(f"{path} must contain a mapping")
    return readParameters(config)


def parametersToDict(parameters: Parameters) -> Dict[str, Any]:
    """
    Flattens the parameters back into their configuration names, for the run header

    :param parameters: validated parameters
    :return: a dict from configuration name to a printable value
    """
    return {
        "population": parameters.population,
        "num_locales": parameters.numLocales,
        "pop_variance_multiplier": parameters.popVarianceMultiplier,
        "exposed_to_presym": parameters.exposedToPresym,
        "presym_to_inf": parameters.presymToInf,
        "inf_to_recov": parameters.infToRecov,
        "rel_inf_presym": parameters.relInfPresym,
        "cfr0": parameters.cfr0,
        "cfr1": parameters.cfr1,
        "icu_cap": parameters.icuCap,
        "p_icu": parameters.pIcu,
        "test_rate_symptomatic": parameters.testRateSymptomatic,
        "test_rate_presymptomatic": parameters.testRatePresymptomatic,
        "test_rate_general": parameters.testRateGeneral,
        "r0_levels": " ".join(str(v) for v in parameters.levels.r0),
        "flow_levels": " ".join(str(v) for v in parameters.levels.flow),
        "trigger_levels": " ".join(str(v) for v in parameters.levels.trigger),
        "alert_policy": parameters.alertPolicy.value,
        "time_horizon": parameters.timeHorizon,
        "start_lifting_quarantine": parameters.startLiftingQuarantine,
        "initial_alert_level": parameters.initialAlertLevel,
        "seeding_method": parameters.seedingMethod.value,
        "initial_infected": parameters.initialInfected,
        "seed": parameters.seed,
        "end_tick": parameters.endTick,
        "trials": parameters.trials,
        "connections_per_locale": parameters.connectionsPerLocale,
    }


def readRegions(table: pd.DataFrame) -> Dict[NodeName, Region]:
    """Read a table of named regions with their positions and populations.

    :param table: pandas DataFrame with the columns name, x, y and pop
    :return: regions indexed by name, in table order
    """
    missing = {"name", "x", "y", "pop"} - set(table.columns)
    if missing:
        raise ValueError(f"regions table is missing columns {sorted(missing)}")
    if table.empty:
        raise ValueError("regions table must be non empty")

    regions: Dict[NodeName, Region] = {}
    for row in table.to_dict(orient="records"):
        name = str(row["name"])
        if name in regions:
            raise ValueError(f"duplicated region {name}")
        pop = float(row["pop"])
        if math.isnan(pop) or pop < 0 or not pop.is_integer():
            raise ValueError(f"invalid population {row['pop']} for region {name}")
        x, y = float(row["x"]), float(row["y"])
        if math.isnan(x) or math.isnan(y):
            raise ValueError(f"invalid position for region {name}")
        regions[name] = Region(name=name, x=x, y=y, pop=int(pop))
    return regions


def readConnectivity(table: pd.DataFrame, regions: Dict[NodeName, Region]) -> pd.DataFrame:
    """Read a table of directed region pair weights.

    :param table: pandas DataFrame with the columns source, target and weight
    :param regions: regions the table refers to
    :return: the validated edge list, with source and target as strings
    """
    missing = {"source", "target", "weight"} - set(table.columns)
    if missing:
        raise ValueError(f"connectivity table is missing columns {sorted(missing)}")

    edges = table[["source", "target", "weight"]].astype({"source": str, "target": str, "weight": float})
    unknown = (set(edges.source) | set(edges.target)) - set(regions)
    if unknown:
        raise ValueError(f"connectivity table refers to unknown regions {sorted(unknown)}")
    if (edges.source == edges.target).any():
        raise ValueError("connectivity table must not contain self loops")
    if edges.weight.isna().any() or (edges.weight <= 0.0).any():
        raise ValueError("connectivity weights must be positive")
    return edges
