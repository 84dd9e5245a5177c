"""Occupancy to velocity models.

A model takes ``(occupancy, capacity, v_max, v_min)`` and returns the velocity
on the road in m/s, always within ``[v_min, v_max]``.
"""
import math
from typing import Callable

from routesim.network import Road

VelocityModel = Callable[[int, int, float, float], float]


def _clamp(v: float, v_min: float, v_max: float) -> float:
    return max(v_min, min(v, v_max))


def velocity(occupancy: int, capacity: int, v_max: float, v_min: float) -> float:
    """Linear model: v_max on an empty road down to v_min at capacity."""
    if occupancy >= capacity:
        return v_min
    return _clamp((v_max - v_min) * (1.0 - occupancy / capacity) + v_min, v_min, v_max)


def exp_velocity(occupancy: int, capacity: int, v_max: float, v_min: float) -> float:
    return _clamp(v_max * math.exp(-occupancy / capacity), v_min, v_max)


def refresh_velocity(road: Road, model: VelocityModel = velocity) -> float:
    """Recompute cur_velocity from the occupant count at the start of an iteration."""
    if not road.occupants:
        road.cur_velocity = road.v_max
    else:
        road.cur_velocity = model(len(road.occupants), road.capacity, road.v_max, road.v_min)
    return road.cur_velocity
