# Simulation Configuration
import math
from dataclasses import dataclass

# Vehicles
AVG_CAR_LENGTH = 5.0      # m
HEADWAY = 1.0             # m, spacing kept between queued cars
DEFAULT_LANES = 1

# Velocities (m/s)
FALLBACK_VMAX = 40 / 3.6  # used when the velocity table has no entry for an edge
DEFAULT_VMIN = 1 / 3.6

# Time stepping
DEFAULT_DT_MIN = 1.0      # s

# Spawning
SPAWN_RATE = 5.0          # avg number of vehicles per second that appear
ARRIVAL_SPREAD = 0.1      # sigma, as a share of free-flow travel time
ARRIVAL_GLUT = 0.05       # epsilon, starting time glut as a share of travel time
MAX_SPAWN_RETRIES = 100

# Agent economics
VOT_BASE_MEAN = 24.52 / 3600     # $/s
VOT_BASE_STD = 3.0 / 3600
VOT_SENSITIVITY_MAX = 8.0 / 3600  # 1/s
FUEL_COST_PER_METER = 0.15e-3     # $/m
MAX_VOT_EXPONENT = 50.0

BIG_NUM = 1000000


@dataclass
class ModelParams:
    time_horizon: float = math.inf
    time_step: float = 0.0       # 0 selects the variable time step
    dt_min: float = DEFAULT_DT_MIN
    max_agents: int = BIG_NUM
    max_iterations: int = BIG_NUM
    initial_agents: int = 0
    spawn_rate: float = SPAWN_RATE
    fuel_cost_per_meter: float = FUEL_COST_PER_METER
    seed: int = 0
