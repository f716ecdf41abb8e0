"""
Builds the directed, weighted network of connections between locales.

Connections are `networkx.DiGraph` edges with the attributes:

- ``distance`` -- Euclidean distance between the locales, only used while the network is being built
- ``weight`` -- share of the source locale's outbound flow going through this edge. The outbound weights of a locale
  always add up to 1.0
- ``flow_rate`` -- movement multiplier derived from the alert levels of both ends (see :mod:`spatial_epi_sim.alerts`)

Connections are always created in pairs (A to B and B to A), but each direction is normalised by its own source, so the
two weights of a pair are usually different.
"""
# pylint: disable=import-error
import logging
import math
from typing import Dict, List, Optional, Tuple

import networkx as nx  # type: ignore
import numpy as np  # type: ignore
import pandas as pd  # type: ignore

from spatial_epi_sim import loaders
from spatial_epi_sim.common import Issue, IssueSeverity, log_issue

logger = logging.getLogger(__name__)

NodeName = str

CONNECTIONS_PER_LOCALE = 6


def randomPositions(names: List[NodeName], generator: np.random.Generator) -> Dict[NodeName, Tuple[float, float]]:
    """Place locales uniformly at random in the unit square.

    :param names: locale names
    :param generator: random number generator used for the model
    :return: position of each locale
    """
    coords = generator.random((len(names), 2))
    return {name: (float(x), float(y)) for name, (x, y) in zip(names, coords)}


def distanceMatrix(coords: np.ndarray) -> np.ndarray:
    """Pairwise Euclidean distances between the rows of `coords`

    >>> distanceMatrix(np.array([[0.0, 0.0], [3.0, 4.0]]))
    array([[0., 5.],
           [5., 0.]])
    """
    deltas = coords[:, np.newaxis, :] - coords[np.newaxis, :, :]
    return np.sqrt((deltas ** 2).sum(axis=2))


def buildNetwork(
        positions: Dict[NodeName, Tuple[float, float]],
        generator: np.random.Generator,
        connectionsPerLocale: int = CONNECTIONS_PER_LOCALE,
) -> nx.DiGraph:
    """
    Connect locales into a directed network. The steps are:

    1. Every locale, in order, gets a pair of connections to its nearest locale it's not yet connected to.
    2. Random locales get paired with their nearest unconnected locale until there are
       ``connectionsPerLocale * len(positions)`` connections (or every locale is connected to every other).
    3. While the network is split into separate components, the closest pair of locales across components is
       connected.
    4. Outbound weights (``1 / distance``) are normalised per locale.

    "Nearest" is resolved by distance and then by the order of the locales in `positions`, so the network depends only
    on the positions and the generator.

    :param positions: position of each locale, the iteration order is used to break ties
    :param generator: random number generator used for the model
    :param connectionsPerLocale: target number of connections, per locale
    :return: the network, with one node per locale (with attributes x and y)
    """
    names = list(positions)
    coords = np.array([positions[name] for name in names], dtype=float).reshape(-1, 2)
    distances = distanceMatrix(coords)
    offDiagonal = distances[~np.eye(len(names), dtype=bool)]
    if offDiagonal.size and offDiagonal.min() <= 0.0:
        raise ValueError("Two or more locales share the same position")
    # row i lists every locale by distance to i, ties broken by index
    byDistance = np.argsort(distances, axis=1, kind="stable")

    graph = nx.DiGraph()
    for name in names:
        x, y = positions[name]
        graph.add_node(name, x=x, y=y)

    def nearestNonNeighbour(i: int) -> Optional[int]:
        for j in byDistance[i]:
            if j != i and not graph.has_edge(names[i], names[j]):
                return int(j)
        return None

    def connect(i: int, j: int):
        distance = float(distances[i, j])
        graph.add_edge(names[i], names[j], distance=distance, weight=1.0 / distance, flow_rate=1.0)
        graph.add_edge(names[j], names[i], distance=distance, weight=1.0 / distance, flow_rate=1.0)

    for i in range(len(names)):
        j = nearestNonNeighbour(i)
        if j is not None:
            connect(i, j)

    target = connectionsPerLocale * len(names)
    complete = len(names) * (len(names) - 1)
    while graph.number_of_edges() < min(target, complete):
        i = int(generator.integers(len(names)))
        j = nearestNonNeighbour(i)
        if j is not None:
            connect(i, j)

    _bridgeComponents(graph, names, distances)
    normaliseWeights(graph)

    logger.info("Locales: %s, Connections: %s", graph.number_of_nodes(), graph.number_of_edges())
    return graph


def _bridgeComponents(graph: nx.DiGraph, names: List[NodeName], distances: np.ndarray):
    """Connect the network's components by adding pairs between their closest locales, in place.

    :param graph: the network
    :param names: locale names, indexed like `distances`
    :param distances: pairwise distances between locales
    """
    index = {name: i for i, name in enumerate(names)}
    components = list(nx.weakly_connected_components(graph))
    while len(components) > 1:
        inside = sorted(index[name] for name in components[0])
        outside = sorted(index[name] for component in components[1:] for name in component)
        block = distances[np.ix_(inside, outside)]
        # argmin returns the first minimum, in row-major order
        row, col = np.unravel_index(np.argmin(block), block.shape)
        i, j = inside[row], outside[col]
        distance = float(distances[i, j])
        logger.debug("Bridging components through %s and %s", names[i], names[j])
        graph.add_edge(names[i], names[j], distance=distance, weight=1.0 / distance, flow_rate=1.0)
        graph.add_edge(names[j], names[i], distance=distance, weight=1.0 / distance, flow_rate=1.0)
        components = list(nx.weakly_connected_components(graph))


def normaliseWeights(graph: nx.DiGraph):
    """Divide every outbound weight by the sum of the outbound weights of its source locale, in place.

    :param graph: the network
    """
    for node in graph.nodes():
        edges = list(graph.out_edges(node, data=True))
        total = sum(data["weight"] for _, _, data in edges)
        for _, _, data in edges:
            data["weight"] = data["weight"] / total


def graphFromConnectivity(
        regions: Dict[NodeName, loaders.Region],
        connectivity: pd.DataFrame,
        issues: List[Issue],
) -> nx.DiGraph:
    """
    Builds the network from precomputed region pair weights instead of distances. Weights are normalised per source
    region, just like the generated networks.

    :param regions: regions, as read by :meth:`spatial_epi_sim.loaders.readRegions`
    :param connectivity: edge list, as read by :meth:`spatial_epi_sim.loaders.readConnectivity`
    :param issues: list of issues, it will be modified in-place
    :return: the network
    """
    graph = nx.DiGraph()
    for name, region in regions.items():
        graph.add_node(name, x=region.x, y=region.y)

    for row in connectivity.to_dict(orient="records"):
        source, target = regions[row["source"]], regions[row["target"]]
        distance = math.hypot(source.x - target.x, source.y - target.y)
        graph.add_edge(source.name, target.name, distance=distance, weight=row["weight"], flow_rate=1.0)

    normaliseWeights(graph)

    disconnected = sorted(node for node in graph.nodes() if graph.degree(node) == 0)
    if disconnected:
        log_issue(logger, f"These regions have no connections in the network: {disconnected}", IssueSeverity.MEDIUM,
                  issues)
    logger.info("Locales: %s, Connections: %s", graph.number_of_nodes(), graph.number_of_edges())
    return graph
