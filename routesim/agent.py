import math
from dataclasses import dataclass, field
from typing import List, Optional, Union

import networkx as nx

from routesim import config


@dataclass(frozen=True)
class AtNode:
    node: int


@dataclass(frozen=True)
class AtRoad:
    road: int  # index into Network.roads
    position: float = 0.0  # meters from the road's b_node


Location = Union[AtNode, AtRoad]


@dataclass(eq=False)
class Agent:
    id: int
    start_node: int
    dest_node: int
    private_graph: nx.DiGraph  # agent-owned copy of the network graph, weights are personal costs
    location: Optional[Location] = None
    route: List[int] = field(default_factory=list)  # node ids from the current node to dest_node
    time_estimate: float = 0.0  # estimated remaining travel time (s)
    deploy_time: float = 0.0
    required_arrival_time: Optional[float] = None
    vot_base: float = config.VOT_BASE_MEAN  # $/s
    vot_sensitivity: float = 0.0  # 1/s
    fuel_cost_per_meter: float = config.FUEL_COST_PER_METER

    def __post_init__(self):
        if self.location is None:
            self.location = AtNode(self.start_node)

    @property
    def at_node(self) -> Optional[int]:
        return self.location.node if isinstance(self.location, AtNode) else None

    @property
    def at_road(self) -> Optional[int]:
        return self.location.road if isinstance(self.location, AtRoad) else None

    @property
    def road_position(self) -> float:
        return self.location.position if isinstance(self.location, AtRoad) else 0.0

    def time_glut(self, t: float) -> float:
        """Slack until the required arrival time; negative when running late."""
        if self.required_arrival_time is None:
            return 0.0
        return self.required_arrival_time - (t + self.time_estimate)

    def value_of_time(self, t: float) -> float:
        exponent = min(-self.vot_sensitivity * self.time_glut(t), config.MAX_VOT_EXPONENT)
        return self.vot_base * math.exp(exponent)
