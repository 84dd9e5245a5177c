# simulation.py
import logging
import math
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from routesim import config
from routesim.agent import Agent, AtNode, AtRoad
from routesim.congestion import VelocityModel, refresh_velocity, velocity
from routesim.errors import NegativeTimeStepError, SpawnInfeasibleError
from routesim.network import Network
from routesim.records import arrivals_to_frame, export_records_to_csv, records_to_frame
from routesim.routing import compute_shortest_path, estimate_time, is_route_possible, set_weights

logger = logging.getLogger(__name__)


class Simulation:
    def __init__(
        self,
        network: Network,
        time_horizon: float = math.inf,
        time_step: float = 0.0,
        dt_min: float = config.DEFAULT_DT_MIN,
        max_agents: int = config.BIG_NUM,
        max_iterations: int = config.BIG_NUM,
        initial_agents: int = 0,
        spawn_rate: float = config.SPAWN_RATE,
        fuel_cost_per_meter: float = config.FUEL_COST_PER_METER,
        velocity_model: VelocityModel = velocity,
        random_seed: Optional[int] = 0,
        run: bool = True,
    ):
        """
        network: the road network, its topology is never changed by the simulation
        time_horizon: simulated seconds to run for
        time_step: fixed step in seconds; 0 selects the variable step (see select_time_step)
        dt_min: lower bound of the variable step
        max_agents: cap on simultaneously live agents
        max_iterations: run() stops after this many iterations
        initial_agents: agents spawned before the first iteration
        spawn_rate: mean number of new agents per simulated second (Poisson)
        velocity_model: occupancy -> velocity function applied to every road
        """
        self.network = network
        self.time_horizon = float(time_horizon)
        self.time_step = float(time_step)
        self.dt_min = float(dt_min)
        self.time_step_history: List[float] = []
        self.max_agents = int(max_agents)
        self.max_iterations = int(max_iterations)
        self.spawn_rate = float(spawn_rate)
        self.fuel_cost_per_meter = float(fuel_cost_per_meter)
        self.velocity_model = velocity_model
        self.rng = np.random.default_rng(random_seed)
        self.is_running = run

        self.time_elapsed = 0.0
        self.iteration = 0

        # For output recording
        self.records: List[Dict] = []
        self.finished: List[Dict] = []

        if initial_agents > 0:
            self.spawn_agents(initial_agents)

    @classmethod
    def from_params(cls, network: Network, params: config.ModelParams, **kwargs) -> "Simulation":
        return cls(
            network,
            time_horizon=params.time_horizon,
            time_step=params.time_step,
            dt_min=params.dt_min,
            max_agents=params.max_agents,
            max_iterations=params.max_iterations,
            initial_agents=params.initial_agents,
            spawn_rate=params.spawn_rate,
            fuel_cost_per_meter=params.fuel_cost_per_meter,
            random_seed=params.seed,
            **kwargs,
        )

    # -----------------------
    # Spawning
    # -----------------------
    def spawn_new_agents(self, dt: float) -> List[Agent]:
        """Poisson arrivals for a step of length dt, capped by the free agent slots."""
        free = self.max_agents - self.network.agent_count
        if free <= 0:
            return []
        k = min(int(self.rng.poisson(self.spawn_rate * dt)), free)
        return self.spawn_agents(k)

    def spawn_agents(self, num: int) -> List[Agent]:
        num = min(num, self.max_agents - self.network.agent_count)
        return [self.spawn_agent_random() for _ in range(max(num, 0))]

    def spawn_agent_random(self) -> Agent:
        n = self.network
        spawns, dests = sorted(n.spawns), sorted(n.dests)
        if not spawns or not dests:
            raise SpawnInfeasibleError("Spawn and destination points must be set before spawning agents")

        for _ in range(config.MAX_SPAWN_RETRIES):
            start = spawns[self.rng.integers(len(spawns))]
            dest = dests[self.rng.integers(len(dests))]
            if start != dest and is_route_possible(n, start, dest):
                break
            logger.debug("Rejected spawn pair %d -> %d", start, dest)
        else:
            raise SpawnInfeasibleError(
                f"No feasible spawn/destination pair found in {config.MAX_SPAWN_RETRIES} draws"
            )

        free_flow = estimate_time(n, start, dest, free_flow=True)
        agent = Agent(
            id=n.next_agent_id(),
            start_node=start,
            dest_node=dest,
            private_graph=n.graph.copy(),
            time_estimate=free_flow,
            deploy_time=self.time_elapsed,
            vot_base=max(float(self.rng.normal(config.VOT_BASE_MEAN, config.VOT_BASE_STD)), 0.0),
            vot_sensitivity=float(self.rng.uniform(0.0, config.VOT_SENSITIVITY_MAX)),
            fuel_cost_per_meter=self.fuel_cost_per_meter,
        )
        agent.required_arrival_time = float(self.rng.normal(
            self.time_elapsed + (1.0 + config.ARRIVAL_GLUT) * free_flow,
            config.ARRIVAL_SPREAD * free_flow,
        ))
        n.register_agent(agent)
        logger.debug("Agent #%d has been created: %d -> %d", agent.id, start, dest)
        return agent

    def _destroy_agent(self, agent: Agent):
        self.network.destroy_agent(agent)
        self.finished.append(
            {
                "agent_id": agent.id,
                "start_node": agent.start_node,
                "dest_node": agent.dest_node,
                "deploy_time": agent.deploy_time,
                "arrival_time": self.time_elapsed,
                "required_arrival_time": agent.required_arrival_time,
            }
        )
        logger.debug("Agent #%d destroyed at t=%.2f", agent.id, self.time_elapsed)

    # -----------------------
    # Time step
    # -----------------------
    def current_time_step(self) -> float:
        """Length of the step that led to the current iteration."""
        if self.time_step > 0:
            return self.time_step
        return self.time_step_history[-1] if self.time_step_history else 0.0

    def select_time_step(self) -> float:
        """
        Fixed step, or the time the first occupant of any road needs to reach
        its end, bounded below by dt_min. With no occupied road the step is dt_min.
        """
        if self.time_step > 0:
            dt = self.time_step
        else:
            t_min = math.inf
            for road in self.network.occupied_roads():
                for agent_id in road.occupants:
                    agent = self.network.agents[agent_id]
                    t = (road.length - agent.road_position) / road.cur_velocity
                    if t < 0:
                        raise NegativeTimeStepError(road, agent_id, t)
                    t_min = min(t_min, t)
            dt = self.dt_min if t_min == math.inf else max(t_min, self.dt_min)
        self.time_step_history.append(dt)
        return dt

    # -----------------------
    # Agent actions
    # -----------------------
    def make_action(self, agent: Agent):
        dt = self.current_time_step()
        if isinstance(agent.location, AtRoad):
            road = self.network.roads[agent.location.road]
            pos = min(agent.location.position + road.cur_velocity * dt, road.length)
            if math.isclose(pos, road.length, rel_tol=1e-9, abs_tol=1e-9):
                pos = road.length
            if pos >= road.length:
                road.occupants.discard(agent.id)
                agent.location = AtNode(road.f_node)
            else:
                agent.location = AtRoad(road.index, pos)

        if isinstance(agent.location, AtNode):
            self._reached_intersection(agent)

    def _reached_intersection(self, agent: Agent):
        node = agent.location.node
        if node == agent.dest_node:
            self._destroy_agent(agent)
            return

        set_weights(agent, self.network, self.time_elapsed)
        if compute_shortest_path(agent, self.network) == math.inf:
            logger.debug("Agent #%d cannot reach %d from %d, waiting", agent.id, agent.dest_node, node)
            return

        next_road = self.network.get_road_by_nodes(node, agent.route[1])
        if not next_road.has_room():
            logger.debug("Agent #%d blocked at %d, road %d is full", agent.id, node, next_road.index)
            return
        next_road.occupants.add(agent.id)
        agent.location = AtRoad(next_road.index, 0.0)

    # -----------------------
    # Main loop
    # -----------------------
    def step(self):
        """
        Single iteration: refresh road velocities, spawn, let every agent that
        was live before spawning act once (in id order), advance time.
        """
        self.iteration += 1

        for road in self.network.roads:
            refresh_velocity(road, self.velocity_model)

        acting = sorted(self.network.agents)
        self.spawn_new_agents(self.time_step_history[-1] if self.time_step_history else 1.0)

        for agent_id in acting:
            agent = self.network.agents[agent_id]
            self.make_action(agent)
            self._record(agent)

        self.time_elapsed += self.select_time_step()

    def run(self, verbose: bool = False) -> bool:
        """
        Run until the time horizon. Returns False if the iteration limit is hit
        first or the simulation is not runnable.
        """
        if not self.is_running:
            return False

        while self.time_elapsed < self.time_horizon:
            if self.iteration >= self.max_iterations:
                logger.info("Iteration limit %d reached at t=%.1fs", self.max_iterations, self.time_elapsed)
                return False
            try:
                self.step()
            except NegativeTimeStepError as e:
                self.is_running = False
                logger.error("Simulation halted at iteration %d: %s", self.iteration, e)
                raise
            if verbose:
                logger.info(
                    "Iter #%d, time: %.1fs, no. of agents: %d, agents in total: %d",
                    self.iteration, self.time_elapsed, self.network.agent_count, self.network.max_agent_id,
                )
        logger.info(
            "Simulation finished at t=%.1fs: arrived=%d/%d",
            self.time_elapsed, len(self.finished), self.network.max_agent_id,
        )
        return True

    # -----------------------
    # Recording / Exporting
    # -----------------------
    def _record(self, agent: Agent):
        n = self.network
        if isinstance(agent.location, AtRoad):
            road = n.roads[agent.location.road]
            u, v, pos = road.b_node, road.f_node, agent.location.position
            p = max(0.0, min(1.0, pos / road.length))
        else:
            u = v = agent.location.node
            pos, p = 0.0, 0.0
        xu, yu = n.node_position(u)
        xv, yv = n.node_position(v)
        self.records.append(
            {
                "iteration": self.iteration,
                "time": float(self.time_elapsed),
                "agent_id": agent.id,
                "from_node": u,
                "to_node": v,
                "position": float(pos),
                "x": xu * (1 - p) + xv * p,
                "y": yu * (1 - p) + yv * p,
                "time_estimate": float(agent.time_estimate),
            }
        )

    def records_frame(self) -> pd.DataFrame:
        return records_to_frame(self.records)

    def arrivals_frame(self) -> pd.DataFrame:
        return arrivals_to_frame(self.finished)

    def export_records_to_csv(self, path="agent_positions.csv", to_wgs84=False) -> pd.DataFrame:
        return export_records_to_csv(self.records, path, crs=self.network.crs, to_wgs84=to_wgs84)
