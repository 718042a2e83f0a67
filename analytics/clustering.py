from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from core.types import Position


@dataclass
class SpatialCluster:
    centroid: Position
    size: int
    radius: float
    members: list[int]


def find_clusters(points: Sequence[Position], radius: float = 40.0, min_points: int = 3) -> list[SpatialCluster]:
    """Density-based clustering (DBSCAN) over 2D positions.

    A point with at least ``min_points`` neighbours (itself included) within
    ``radius`` is a core point; clusters grow from core points in input order,
    so the result is deterministic for a given ordered input. Noise points are
    not reported.
    """
    n = len(points)
    if n == 0 or n < min_points:
        return []

    coords = np.array([[p.x, p.y] for p in points], dtype=np.float64)
    diffs = coords[:, None, :] - coords[None, :, :]
    within = np.sqrt((diffs**2).sum(axis=-1)) <= radius
    neighbours = [np.flatnonzero(within[i]).tolist() for i in range(n)]
    is_core = [len(nb) >= min_points for nb in neighbours]

    labels = [-1] * n
    clusters: list[SpatialCluster] = []
    for seed in range(n):
        if labels[seed] != -1 or not is_core[seed]:
            continue
        label = len(clusters)
        labels[seed] = label
        members = [seed]
        queue = deque(neighbours[seed])
        while queue:
            j = queue.popleft()
            if labels[j] != -1:
                continue
            labels[j] = label
            members.append(j)
            if is_core[j]:
                queue.extend(k for k in neighbours[j] if labels[k] == -1)

        members.sort()
        member_coords = coords[members]
        center = member_coords.mean(axis=0)
        spread = float(np.sqrt(((member_coords - center) ** 2).sum(axis=1)).max())
        clusters.append(
            SpatialCluster(
                centroid=Position(x=float(center[0]), y=float(center[1])),
                size=len(members),
                radius=spread,
                members=members,
            )
        )
    return clusters
