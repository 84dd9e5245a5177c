"""Congestion-aware, agent-based traffic simulation over a directed road network."""

from .agent import Agent, AtNode, AtRoad
from .congestion import exp_velocity, refresh_velocity, velocity
from .errors import ConstructionError, NegativeTimeStepError, RouteSimError, SpawnInfeasibleError
from .network import Intersection, Network, Road, grid_network
from .simulation import Simulation
from .snapshot import load_simulation, save_simulation

__all__ = [
    "Agent",
    "AtNode",
    "AtRoad",
    "ConstructionError",
    "Intersection",
    "NegativeTimeStepError",
    "Network",
    "Road",
    "RouteSimError",
    "Simulation",
    "SpawnInfeasibleError",
    "exp_velocity",
    "grid_network",
    "load_simulation",
    "refresh_velocity",
    "save_simulation",
    "velocity",
]
