import logging
from typing import Dict, List, Sequence

import geopandas as gpd
import pandas as pd
from shapely.geometry import Point

logger = logging.getLogger(__name__)

WGS84 = "EPSG:4326"

RECORD_COLUMNS = [
    "iteration",
    "time",
    "agent_id",
    "from_node",
    "to_node",
    "position",
    "x",
    "y",
    "time_estimate",
]

ARRIVAL_COLUMNS = [
    "agent_id",
    "start_node",
    "dest_node",
    "deploy_time",
    "arrival_time",
    "required_arrival_time",
]


def records_to_frame(records: Sequence[Dict]) -> pd.DataFrame:
    return pd.DataFrame(list(records), columns=RECORD_COLUMNS)


def arrivals_to_frame(finished: Sequence[Dict]) -> pd.DataFrame:
    df = pd.DataFrame(list(finished), columns=ARRIVAL_COLUMNS)
    df["travel_time"] = df["arrival_time"] - df["deploy_time"]
    df["delay"] = df["arrival_time"] - df["required_arrival_time"].astype(float)
    return df


def road_segments_frame(network) -> pd.DataFrame:
    """One row per road with the coordinates of both endpoints."""
    rows: List[Dict] = []
    for r in network.roads:
        bx, by = network.node_position(r.b_node)
        fx, fy = network.node_position(r.f_node)
        rows.append(
            {
                "road": r.index,
                "b_node": r.b_node,
                "f_node": r.f_node,
                "length": r.length,
                "v_max": r.v_max,
                "capacity": r.capacity,
                "first_x": bx,
                "first_y": by,
                "second_x": fx,
                "second_y": fy,
            }
        )
    return pd.DataFrame(rows)


def project_to_wgs84(df: pd.DataFrame, crs) -> pd.DataFrame:
    """Add lon/lat columns converted from the projected x/y columns."""
    gdf = gpd.GeoDataFrame(
        df,
        geometry=[Point(xy) for xy in zip(df["x"], df["y"])],
        crs=crs,
    ).to_crs(WGS84)
    df = df.copy()
    df["lon"] = gdf.geometry.x.to_numpy()
    df["lat"] = gdf.geometry.y.to_numpy()
    return df


def export_records_to_csv(records, path="agent_positions.csv", crs=None, to_wgs84=False) -> pd.DataFrame:
    """
    Export recorded agent positions to CSV. Projected coordinates are
    converted to lon/lat when to_wgs84 is set and the CRS is known.
    """
    df = records_to_frame(records)
    if df.empty:
        logger.warning("No records to export.")
    elif to_wgs84:
        if crs is None:
            logger.warning("Network has no CRS, exporting projected coordinates only.")
        else:
            df = project_to_wgs84(df, crs)
    df.to_csv(path, index=False)
    logger.info("Exported %d records to %s", len(df), path)
    return df
