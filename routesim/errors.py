class RouteSimError(Exception):
    """Base class for errors raised by the simulator."""


class ConstructionError(RouteSimError, ValueError):
    """Malformed network input or an out of range node reference."""


class SpawnInfeasibleError(ConstructionError):
    """No feasible origin/destination pair could be drawn from the spawn and destination sets."""


class NegativeTimeStepError(RouteSimError, RuntimeError):
    """An occupant was found beyond the end of its road while selecting the time step."""

    def __init__(self, road, agent_id, value):
        self.road = road
        self.agent_id = agent_id
        self.value = value
        super().__init__(
            f"Simulation step is negative ({value:.6g} s) on road {road.index} "
            f"({road.b_node} -> {road.f_node}) for agent {agent_id}"
        )
