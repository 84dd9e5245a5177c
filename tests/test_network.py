import math
import unittest

from routesim.errors import ConstructionError
from routesim.network import Network, grid_network, road_capacity


def line_network(**kwargs):
    # 0 -> 1 -> 2, plus 1 -> 0
    matrix = [
        [0, 100, 0],
        [50, 0, 200],
        [0, 0, 0],
    ]
    return Network.from_adjacency(matrix, [(0, 0), (100, 0), (300, 0, 5.0)], **kwargs)


class TestConstruction(unittest.TestCase):
    def test_roads_follow_matrix_order(self):
        n = line_network()
        self.assertEqual([(r.b_node, r.f_node, r.length) for r in n.roads],
                         [(0, 1, 100.0), (1, 0, 50.0), (1, 2, 200.0)])
        self.assertEqual([r.index for r in n.roads], [0, 1, 2])
        self.assertEqual(n.num_roads, 3)
        self.assertEqual(n.intersections[1].out_roads, [1, 2])
        self.assertEqual(n.intersections[1].in_roads, [0])
        self.assertEqual(n.intersections[2].position, (300.0, 0.0))

    def test_roads_are_shared_not_copied(self):
        n = line_network()
        n.roads[2].occupants.add(7)
        self.assertIs(n.out_roads(1)[1], n.roads[2])
        self.assertIs(n.in_roads(2)[0], n.roads[2])
        self.assertIs(n.get_road_by_nodes(1, 2), n.roads[2])
        self.assertEqual(n.get_road_by_nodes(1, 2).occupancy, 1)

    def test_graph_weights_are_lengths(self):
        n = line_network()
        self.assertEqual(n.graph[1][2]["weight"], 200.0)
        self.assertEqual(n.graph[1][2]["road"], 2)
        self.assertEqual(sorted(n.graph.nodes), [0, 1, 2])

    def test_capacity_and_velocity_defaults(self):
        n = line_network(velocities={(0, 1): 10.0}, lanes={(1, 2): 2})
        self.assertEqual(n.roads[0].v_max, 10.0)
        self.assertAlmostEqual(n.roads[1].v_max, 40 / 3.6)
        self.assertEqual(n.roads[0].capacity, 16)
        self.assertEqual(n.roads[2].capacity, 66)
        self.assertEqual(n.roads[0].cur_velocity, 10.0)
        self.assertAlmostEqual(n.roads[0].travel_time, 10.0)

    def test_capacity_is_at_least_one(self):
        self.assertEqual(road_capacity(3.0), 1)
        self.assertEqual(road_capacity(60.0, lanes=2), 20)

    def test_explicit_capacity(self):
        n = line_network(capacities={(0, 1): 5})
        self.assertEqual(n.roads[0].capacity, 5)
        with self.assertRaises(ConstructionError):
            line_network(capacities={(0, 1): 0})

    def test_non_square_matrix(self):
        with self.assertRaises(ConstructionError):
            Network.from_adjacency([[0, 1, 0], [1, 0, 0]], [(0, 0), (1, 0)])

    def test_edge_out_of_range(self):
        with self.assertRaises(ConstructionError):
            Network(2, [(0, 2, 10.0)], [(0, 0), (1, 0)])

    def test_coordinate_count_mismatch(self):
        with self.assertRaises(ConstructionError):
            Network(3, [(0, 1, 10.0)], [(0, 0), (1, 0)])

    def test_negative_length(self):
        with self.assertRaises(ConstructionError):
            Network(2, [(0, 1, -1.0)], [(0, 0), (1, 0)])

    def test_infinite_length(self):
        with self.assertRaises(ConstructionError):
            Network(2, [(0, 1, math.inf)], [(0, 0), (1, 0)])
        with self.assertRaises(ConstructionError):
            Network.from_adjacency([[0, math.inf], [0, 0]], [(0, 0), (1, 0)])

    def test_nan_length(self):
        with self.assertRaises(ConstructionError):
            Network(2, [(0, 1, math.nan)], [(0, 0), (1, 0)])

    def test_v_min_must_be_positive(self):
        # a full road at zero velocity would never drain
        for v_min in (0.0, -1.0, math.inf, math.nan):
            with self.subTest(v_min=v_min), self.assertRaises(ConstructionError):
                Network(2, [(0, 1, 6.0)], [(0, 0), (6, 0)], capacities={(0, 1): 1}, v_min=v_min)

    def test_non_finite_velocity_falls_back(self):
        n = Network(3, [(0, 1, 10.0), (1, 2, 10.0)], [(0, 0), (10, 0), (20, 0)],
                    velocities={(0, 1): math.inf, (1, 2): math.nan})
        self.assertAlmostEqual(n.roads[0].v_max, 40 / 3.6)
        self.assertAlmostEqual(n.roads[1].v_max, 40 / 3.6)

    def test_duplicate_edge(self):
        with self.assertRaises(ConstructionError):
            Network(2, [(0, 1, 10.0), (0, 1, 12.0)], [(0, 0), (1, 0)])

    def test_counters_start_at_zero(self):
        n = line_network()
        self.assertEqual(n.agent_count, 0)
        self.assertEqual(n.max_agent_id, 0)
        self.assertEqual(n.agents, {})

    def test_lat_lon_from_crs(self):
        n = Network(2, [(0, 1, 10.0)], [(0.0, 0.0), (111319.49, 0.0)], crs="EPSG:3857")
        self.assertAlmostEqual(n.intersections[0].lat, 0.0, places=6)
        self.assertAlmostEqual(n.intersections[0].lon, 0.0, places=6)
        self.assertAlmostEqual(n.intersections[1].lon, 1.0, places=3)
        self.assertIsNone(line_network().intersections[0].lat)

    def test_grid_network(self):
        n = grid_network(2, 3, spacing=50.0)
        self.assertEqual(len(n.intersections), 6)
        self.assertEqual(n.num_roads, 14)
        self.assertEqual(n.intersections[5].position, (100.0, 50.0))
        self.assertEqual(n.get_road_by_nodes(0, 1).length, 50.0)
        self.assertIsNotNone(n.get_road_by_nodes(4, 1))
        self.assertIsNone(n.get_road_by_nodes(0, 4))


class TestSpawnDest(unittest.TestCase):
    def test_designation_replaces_previous_sets(self):
        n = line_network()
        n.set_spawn_dest([0, 1], [2])
        self.assertEqual(n.spawns, {0, 1})
        self.assertTrue(n.intersections[1].is_spawn)

        n.set_spawn_dest([0], [1])
        self.assertEqual(n.spawns, {0})
        self.assertEqual(n.dests, {1})
        self.assertFalse(n.intersections[1].is_spawn)
        self.assertTrue(n.intersections[1].is_dest)
        self.assertFalse(n.intersections[2].is_dest)

    def test_repeated_designation_is_idempotent(self):
        n = line_network()
        n.set_spawn_dest([0], [2])
        n.set_spawn_dest([0], [2])
        self.assertEqual(n.spawns, {0})
        self.assertEqual(n.dests, {2})

    def test_out_of_range_node(self):
        n = line_network()
        with self.assertRaises(ConstructionError):
            n.set_spawn_dest([0], [3])
        with self.assertRaises(ConstructionError):
            n.get_intersection(-1)


class TestSpatialQueries(unittest.TestCase):
    def test_radius_queries(self):
        n = line_network()
        self.assertEqual(n.nodes_in_radius((0, 0), 100), [0, 1])
        self.assertEqual(n.nodes_outside_radius((0, 0), 100), [2])
        self.assertEqual(n.nodes_between((0, 0), 50, 400), [1, 2])
        self.assertEqual(n.nodes_between((0, 0), 100, 400), [2])


if __name__ == "__main__":
    unittest.main()
