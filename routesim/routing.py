"""Personal route costs and shortest paths.

Every agent routes on its own copy of the network graph. Before each routing
decision the copy is re-weighted with the agent's generalized cost of every
road::

    cost = travel_time * value_of_time(agent, t) + length * fuel_cost_per_meter

so agents that run late weigh time more heavily than distance. Static
queries (spawn feasibility, free-flow estimates) use the network graph, whose
weights are road lengths.
"""
import math
from typing import List, Sequence

import networkx as nx

from routesim.agent import Agent
from routesim.network import Network, Road


def set_weights(agent: Agent, network: Network, t: float):
    vot = agent.value_of_time(t)
    g = agent.private_graph
    for r in network.roads:
        g[r.b_node][r.f_node]["weight"] = r.travel_time * vot + r.length * agent.fuel_cost_per_meter


def compute_shortest_path(agent: Agent, network: Network) -> float:
    """
    Route the agent from its current node to its destination on its private graph.

    Dijkstra runs once from the destination over the reversed graph, so the
    predecessor of a node is its next hop towards the destination. Returns
    the route cost, or math.inf (and an empty route) when the destination
    cannot be reached.
    """
    node = agent.at_node
    if node is None:
        node = network.roads[agent.at_road].f_node

    pred, dist = nx.dijkstra_predecessor_and_distance(
        agent.private_graph.reverse(copy=False), agent.dest_node, weight="weight"
    )
    if node not in dist:
        agent.route = []
        return math.inf

    route = [node]
    while route[-1] != agent.dest_node:
        route.append(pred[route[-1]][0])
    agent.route = route
    agent.time_estimate = sum(r.travel_time for r in route_roads(network, route))
    return dist[node]


def route_roads(network: Network, route: Sequence[int]) -> List[Road]:
    roads = []
    for u, v in zip(route[:-1], route[1:]):
        r = network.get_road_by_nodes(u, v)
        if r is None:
            raise ValueError(f"No road between {u} and {v}")
        roads.append(r)
    return roads


def is_route_possible(network: Network, start: int, dest: int) -> bool:
    try:
        nx.shortest_path_length(network.graph, start, dest, weight="weight")
        return True
    except (nx.NetworkXNoPath, nx.NodeNotFound):
        return False


def estimate_time(network: Network, start: int, dest: int, free_flow: bool = False) -> float:
    """Travel time along the shortest (by length) static path, math.inf if there is none."""
    if start == dest:
        return 0.0
    try:
        path = nx.shortest_path(network.graph, start, dest, weight="weight")
    except (nx.NetworkXNoPath, nx.NodeNotFound):
        return math.inf
    roads = route_roads(network, path)
    if free_flow:
        return sum(r.free_flow_time for r in roads)
    return sum(r.travel_time for r in roads)


def route_distance(network: Network, route: Sequence[int]) -> float:
    return sum(r.length for r in route_roads(network, route))


def route_cost(agent: Agent, network: Network, route: Sequence[int], t: float) -> float:
    vot = agent.value_of_time(t)
    return sum(
        r.travel_time * vot + r.length * agent.fuel_cost_per_meter
        for r in route_roads(network, route)
    )
