# network.py
import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

import geopandas as gpd
import networkx as nx
import numpy as np
from shapely.geometry import Point

from routesim import config
from routesim.errors import ConstructionError

if TYPE_CHECKING:
    from routesim.agent import Agent

logger = logging.getLogger(__name__)

WGS84 = "EPSG:4326"

Edge = Tuple[int, int]


# ---------------------------
# Roads and Intersections
# ---------------------------

def road_capacity(length: float, lanes: int = config.DEFAULT_LANES) -> int:
    """Number of cars that fit on a road, never less than one."""
    return max(1, math.floor(length / (config.AVG_CAR_LENGTH + config.HEADWAY)) * lanes)


@dataclass(eq=False)
class Road:
    index: int
    b_node: int
    f_node: int
    length: float
    v_max: float
    v_min: float = config.DEFAULT_VMIN
    lanes: int = config.DEFAULT_LANES
    capacity: Optional[int] = None
    cur_velocity: float = 0.0  # recomputed every iteration
    occupants: Set[int] = field(default_factory=set)  # agent ids

    def __post_init__(self):
        if self.capacity is None:
            self.capacity = road_capacity(self.length, self.lanes)
        self.v_min = min(self.v_min, self.v_max)
        if self.cur_velocity <= 0:
            self.cur_velocity = self.v_max

    @property
    def occupancy(self) -> int:
        return len(self.occupants)

    @property
    def travel_time(self) -> float:
        return self.length / self.cur_velocity

    @property
    def free_flow_time(self) -> float:
        return self.length / self.v_max

    def has_room(self) -> bool:
        return len(self.occupants) < self.capacity


@dataclass(eq=False)
class Intersection:
    node_id: int
    x: float
    y: float
    in_roads: List[int] = field(default_factory=list)  # indices into Network.roads
    out_roads: List[int] = field(default_factory=list)
    is_spawn: bool = False
    is_dest: bool = False
    lat: Optional[float] = None
    lon: Optional[float] = None

    @property
    def position(self) -> Tuple[float, float]:
        return (self.x, self.y)


# ---------------------------
# Network
# ---------------------------

class Network:
    def __init__(
        self,
        n_nodes: int,
        edges: Iterable[Tuple[int, int, float]],
        coords: Sequence[Sequence[float]],
        velocities: Optional[Mapping[Edge, float]] = None,
        capacities: Optional[Mapping[Edge, int]] = None,
        lanes: Optional[Mapping[Edge, int]] = None,
        v_min: float = config.DEFAULT_VMIN,
        crs=None,
    ):
        """
        n_nodes: number of intersections, ids 0..n_nodes-1
        edges: (i, j, length) triples, length in meters; zero lengths are skipped
        coords: one (x, y) or (x, y, z) tuple per node, metric CRS
        velocities: optional free-flow speed (m/s) per edge, falls back to 40 km/h
        capacities, lanes: optional per-edge overrides
        crs: CRS of the coordinates; when given intersections also get lat/lon
        """
        if not v_min > 0 or not math.isfinite(v_min):
            raise ConstructionError(f"v_min must be a positive finite velocity, got {v_min}")
        if n_nodes < 0:
            raise ConstructionError(f"Node count must be non-negative, got {n_nodes}")
        if len(coords) != n_nodes:
            raise ConstructionError(f"Expected {n_nodes} coordinate tuples, got {len(coords)}")

        velocities = velocities or {}
        capacities = capacities or {}
        lanes = lanes or {}

        self.crs = crs
        self.roads: List[Road] = []
        self.intersections: List[Intersection] = []
        self.spawns: Set[int] = set()  # points where agents can spawn
        self.dests: Set[int] = set()  # points that can be targets for agents

        # live agent registry; counters are reset with every new network
        self.agents: Dict[int, "Agent"] = {}
        self.agent_count = 0
        self.max_agent_id = 0

        self.graph = nx.DiGraph(crs=crs)
        for i, xy in enumerate(coords):
            if len(xy) < 2:
                raise ConstructionError(f"Coordinates of node {i} must have at least two components")
            x, y = float(xy[0]), float(xy[1])
            self.intersections.append(Intersection(node_id=i, x=x, y=y))
            self.graph.add_node(i, x=x, y=y)

        for i, j, length in edges:
            i, j, length = int(i), int(j), float(length)
            if not (0 <= i < n_nodes and 0 <= j < n_nodes):
                raise ConstructionError(f"Edge ({i}, {j}) references a node outside [0, {n_nodes})")
            if length < 0 or not math.isfinite(length):
                raise ConstructionError(f"Edge ({i}, {j}) has invalid length {length}")
            if length == 0:
                continue
            if self.graph.has_edge(i, j):
                raise ConstructionError(f"Duplicate edge ({i}, {j})")

            capacity = capacities.get((i, j))
            if capacity is not None and capacity < 1:
                raise ConstructionError(f"Edge ({i}, {j}) has capacity {capacity}, expected at least 1")

            v_max = velocities.get((i, j))
            if v_max is None or not math.isfinite(v_max) or v_max <= 0:
                v_max = config.FALLBACK_VMAX
            road = Road(
                index=len(self.roads),
                b_node=i,
                f_node=j,
                length=length,
                v_max=float(v_max),
                v_min=v_min,
                lanes=int(lanes.get((i, j), config.DEFAULT_LANES)),
                capacity=capacity,
            )
            self.roads.append(road)
            self.intersections[i].out_roads.append(road.index)
            self.intersections[j].in_roads.append(road.index)
            self.graph.add_edge(i, j, weight=length, road=road.index)

        if crs is not None and self.intersections:
            self._set_lat_lon()

        logger.info(
            "Network has been successfully initialized: %d intersections, %d roads",
            len(self.intersections), len(self.roads),
        )

    @classmethod
    def from_adjacency(cls, matrix, coords: Sequence[Sequence[float]], **kwargs) -> "Network":
        """Build from a square weight matrix; entry [i, j] is the length of road i -> j."""
        try:
            w = np.asarray(matrix, dtype=float)
        except (TypeError, ValueError) as e:
            raise ConstructionError(f"Adjacency matrix is not numeric: {e}") from e
        if w.ndim != 2 or w.shape[0] != w.shape[1]:
            raise ConstructionError(f"Adjacency matrix must be square, got shape {w.shape}")
        rows, cols = np.nonzero(w)
        edges = [(int(i), int(j), float(w[i, j])) for i, j in zip(rows, cols)]
        return cls(w.shape[0], edges, coords, **kwargs)

    def _set_lat_lon(self):
        pts = gpd.GeoSeries(
            [Point(i.x, i.y) for i in self.intersections], crs=self.crs
        ).to_crs(WGS84)
        for inter, pt in zip(self.intersections, pts):
            inter.lon, inter.lat = pt.x, pt.y

    # -----------------------
    # Spawn / destination points
    # -----------------------
    def set_spawn_dest(self, spawns: Iterable[int], dests: Iterable[int]):
        spawns, dests = list(spawns), list(dests)
        for n in spawns + dests:
            self._check_node(n)

        for inter in self.intersections:
            inter.is_spawn = False
            inter.is_dest = False
        self.spawns.clear()
        self.dests.clear()

        for n in spawns:
            self.intersections[n].is_spawn = True
            self.spawns.add(n)
        for n in dests:
            self.intersections[n].is_dest = True
            self.dests.add(n)

    def _check_node(self, node_id: int):
        if not 0 <= node_id < len(self.intersections):
            raise ConstructionError(f"Node {node_id} is outside [0, {len(self.intersections)})")

    # -----------------------
    # Lookups
    # -----------------------
    @property
    def num_roads(self) -> int:
        return len(self.roads)

    def get_road_by_nodes(self, first: int, second: int) -> Optional[Road]:
        data = self.graph.get_edge_data(first, second)
        if data is None:
            return None
        return self.roads[data["road"]]

    def get_intersection(self, node_id: int) -> Intersection:
        self._check_node(node_id)
        return self.intersections[node_id]

    def get_agent(self, agent_id: int) -> Optional["Agent"]:
        return self.agents.get(agent_id)

    def out_roads(self, node_id: int) -> List[Road]:
        return [self.roads[r] for r in self.intersections[node_id].out_roads]

    def in_roads(self, node_id: int) -> List[Road]:
        return [self.roads[r] for r in self.intersections[node_id].in_roads]

    def node_position(self, node_id: int) -> Tuple[float, float]:
        return self.intersections[node_id].position

    def occupied_roads(self) -> List[Road]:
        return [r for r in self.roads if r.occupants]

    # -----------------------
    # Agent registry
    # -----------------------
    def next_agent_id(self) -> int:
        self.max_agent_id += 1
        return self.max_agent_id

    def register_agent(self, agent):
        self.agents[agent.id] = agent
        self.agent_count += 1

    def destroy_agent(self, agent):
        del self.agents[agent.id]
        self.agent_count -= 1

    # -----------------------
    # Spatial queries
    # -----------------------
    def _distances(self, pt: Tuple[float, float]):
        for inter in self.intersections:
            yield inter.node_id, math.hypot(pt[0] - inter.x, pt[1] - inter.y)

    def nodes_in_radius(self, pt: Tuple[float, float], r: float) -> List[int]:
        return [n for n, d in self._distances(pt) if d <= r]

    def nodes_outside_radius(self, pt: Tuple[float, float], r: float) -> List[int]:
        return [n for n, d in self._distances(pt) if d > r]

    def nodes_between(self, pt: Tuple[float, float], r: float, R: float) -> List[int]:
        """Nodes in the open ring r < d < R around pt."""
        return [n for n, d in self._distances(pt) if r < d < R]


def grid_network(rows: int, cols: int, spacing: float = 100.0, **kwargs) -> Network:
    """Two-way rows x cols grid; node r * cols + c sits at (c * spacing, r * spacing)."""
    G = nx.grid_2d_graph(rows, cols).to_directed()
    coords = [(c * spacing, r * spacing) for r in range(rows) for c in range(cols)]
    edges = [(r1 * cols + c1, r2 * cols + c2, spacing) for (r1, c1), (r2, c2) in sorted(G.edges)]
    return Network(rows * cols, edges, coords, **kwargs)
