import argparse
import logging
import math
from pathlib import Path

from routesim import config
from routesim.network import grid_network
from routesim.simulation import Simulation
from routesim.snapshot import save_simulation


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a congestion-aware traffic simulation.")
    src = parser.add_mutually_exclusive_group()
    src.add_argument("--grid", type=str, default="5x5", help="Synthetic grid network as ROWSxCOLS.")
    src.add_argument("--place", type=float, nargs=2, metavar=("LAT", "LON"),
                     help="Download the OSM drive network around this point instead of a grid.")
    parser.add_argument("--dist", type=float, default=1000.0, help="Radius in meters of the OSM download.")
    parser.add_argument("--spacing", type=float, default=100.0, help="Grid spacing in meters.")
    parser.add_argument("--dest-radius", type=float, default=None,
                        help="Destinations lie within this radius of the network center, spawns outside it.")
    parser.add_argument("--time-horizon", type=float, default=600.0, help="Simulated seconds.")
    parser.add_argument("--time-step", type=float, default=0.0, help="Fixed step in seconds, 0 for variable.")
    parser.add_argument("--dt-min", type=float, default=config.DEFAULT_DT_MIN, help="Minimum variable step.")
    parser.add_argument("--max-agents", type=int, default=200)
    parser.add_argument("--max-iterations", type=int, default=config.BIG_NUM)
    parser.add_argument("--spawn-rate", type=float, default=1.0, help="Mean new agents per second.")
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--output", type=str, default="agent_positions.csv", help="CSV of agent positions.")
    parser.add_argument("--snapshot", type=str, default=None, help="Pickle the final simulation here.")
    parser.add_argument("--verbose", action="store_true", help="Log every iteration.")
    return parser.parse_args(argv)


def build_network(args):
    if args.place is not None:
        from routesim.osm import load_network

        network, _ = load_network(tuple(args.place), args.dist)
        return network
    try:
        rows, cols = (int(v) for v in args.grid.lower().split("x"))
    except ValueError:
        raise ValueError(f"--grid must look like ROWSxCOLS, got {args.grid!r}") from None
    return grid_network(rows, cols, args.spacing)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    network = build_network(args)
    if not network.intersections:
        raise ValueError("Network has no intersections to simulate on")
    xs = [i.x for i in network.intersections]
    ys = [i.y for i in network.intersections]
    center = (sum(xs) / len(xs), sum(ys) / len(ys))
    radius = args.dest_radius
    if radius is None:
        radius = 0.25 * math.hypot(max(xs) - min(xs), max(ys) - min(ys))
    network.set_spawn_dest(network.nodes_outside_radius(center, radius), network.nodes_in_radius(center, radius))

    sim = Simulation(
        network,
        time_horizon=args.time_horizon,
        time_step=args.time_step,
        dt_min=args.dt_min,
        max_agents=args.max_agents,
        max_iterations=args.max_iterations,
        spawn_rate=args.spawn_rate,
        random_seed=args.seed,
    )
    completed = sim.run(verbose=args.verbose)

    Path(args.output).parent.mkdir(parents=True, exist_ok=True)
    sim.export_records_to_csv(args.output, to_wgs84=network.crs is not None)
    if args.snapshot:
        save_simulation(sim, args.snapshot)

    arrivals = sim.arrivals_frame()
    print(f"Simulation {'completed' if completed else 'stopped'} at t={sim.time_elapsed:.1f}s "
          f"after {sim.iteration} iterations.")
    if not arrivals.empty:
        print(f"arrived={len(arrivals)} mean travel time={arrivals['travel_time'].mean():.1f}s "
              f"mean delay={arrivals['delay'].mean():.1f}s")
    return 0 if completed else 1


if __name__ == "__main__":
    raise SystemExit(main())
