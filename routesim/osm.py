"""Adapters from OpenStreetMap street graphs (osmnx) to a Network."""
import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

import geopandas as gpd
import networkx as nx
import osmnx as ox
from shapely.geometry import Point

from routesim.errors import ConstructionError
from routesim.network import WGS84, Network

logger = logging.getLogger(__name__)


def network_from_osmnx(G: nx.MultiDiGraph, crs=None, **kwargs) -> Tuple[Network, Dict[Any, int]]:
    """
    Convert a projected osmnx graph (metric CRS, lengths in meters).

    Nodes are renumbered 0..N-1 in graph order; the returned dict maps the
    OSM node id to the network node id. Parallel edges collapse to the
    shortest one and self loops are dropped. Edge speeds come from the
    ``speed_kph`` attribute (see ``ox.add_edge_speeds``) when present.
    """
    nodes = list(G.nodes)
    index = {n: i for i, n in enumerate(nodes)}

    coords = []
    for n in nodes:
        d = G.nodes[n]
        if "x" not in d or "y" not in d:
            raise ConstructionError(f"Node {n} has no projected x/y coords.")
        coords.append((float(d["x"]), float(d["y"])))

    lengths: Dict[Tuple[int, int], float] = {}
    velocities: Dict[Tuple[int, int], float] = {}
    for u, v, data in G.edges(data=True):
        if u == v:
            continue
        i, j = index[u], index[v]
        length = data.get("length")
        if length is None:
            # fallback to euclidean from node coordinates
            (xu, yu), (xv, yv) = coords[i], coords[j]
            length = math.hypot(xu - xv, yu - yv)
        length = float(length)
        if (i, j) in lengths and lengths[(i, j)] <= length:
            continue
        lengths[(i, j)] = length
        speed = data.get("speed_kph")
        if speed is not None:
            velocities[(i, j)] = float(speed) / 3.6
        else:
            velocities.pop((i, j), None)

    edges = [(i, j, length) for (i, j), length in lengths.items()]
    net = Network(len(nodes), edges, coords, velocities=velocities, crs=crs or G.graph.get("crs"), **kwargs)
    return net, index


def load_network(
    center: Tuple[float, float],
    dist: float,
    network_type: str = "drive",
    to_crs=None,
    **kwargs,
) -> Tuple[Network, Dict[Any, int]]:
    """Retrieve the street network around center (lat, lon) and convert it."""
    G = ox.graph_from_point(center, dist=dist, network_type=network_type)
    G = ox.add_edge_speeds(G)
    # Project graph to metric CRS for distance calculations
    G = ox.project_graph(G, to_crs=to_crs)
    logger.info("Retrieved %d nodes and %d edges around %s", len(G.nodes), len(G.edges), center)
    return network_from_osmnx(G, **kwargs)


def nearest_nodes(network: Network, points: Sequence[Tuple[float, float]], crs: Optional[Any] = WGS84) -> List[int]:
    """Nearest intersection for each (lon, lat) point, e.g. to place spawn or destination points."""
    if network.crs is None:
        raise ConstructionError("Network has no CRS to project points into.")
    projected = gpd.GeoSeries([Point(lon, lat) for lon, lat in points], crs=crs).to_crs(network.crs)
    result = []
    for pt in projected:
        node = min(network.intersections, key=lambda i: math.hypot(i.x - pt.x, i.y - pt.y))
        result.append(node.node_id)
    return result
