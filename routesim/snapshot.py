"""Save and restore a whole Simulation, including live agents and the random generator state.

The format is a pickle of the object graph and is not stable across versions.
"""
import logging
import pickle
from pathlib import Path
from typing import Union

from routesim.simulation import Simulation

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def dumps(sim: Simulation) -> bytes:
    return pickle.dumps(sim, protocol=pickle.HIGHEST_PROTOCOL)


def loads(data: bytes) -> Simulation:
    sim = pickle.loads(data)
    if not isinstance(sim, Simulation):
        raise TypeError(f"Expected a pickled Simulation, got {type(sim).__name__}")
    return sim


def save_simulation(sim: Simulation, path: PathLike) -> bool:
    path = Path(path)
    with path.open("wb") as f:
        pickle.dump(sim, f, protocol=pickle.HIGHEST_PROTOCOL)
    logger.info("File successfully saved as %s", path)
    return True


def load_simulation(path: PathLike) -> Simulation:
    with Path(path).open("rb") as f:
        return loads(f.read())
