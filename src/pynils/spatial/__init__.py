"""Spatial neighbour search used by balanced variance estimation."""

from .neighbors import KDTreeNeighborIndex, NeighborIndex

__all__ = ["KDTreeNeighborIndex", "NeighborIndex"]
