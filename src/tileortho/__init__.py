"""Tile-based batch orthomosaic generation for mobile mapping surveys.

The package splits a large survey footprint into square tiles and, tile
by tile, imports the local point cloud, trajectory and imagery data,
extracts the road surface (or the full scene), meshes and textures it
and renders a georeferenced top-down orthoimage.
"""

__version__ = "0.3.0"
