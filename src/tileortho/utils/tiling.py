"""Grid helpers for the mosaic tiler.

The mosaic grid is anchored at the upper-left corner of the extent.
Rows advance along +X and columns along -Y, so cell ``(row, column)``
spans ``[x0 + row*size, x0 + (row+1)*size]`` in X and
``[y0 - (column+1)*size, y0 - column*size]`` in Y.  These helpers are
independent of the point data; pruning empty cells happens in
:class:`tileortho.mosaic.tiler.TileGridBuilder`.
"""

import math
from typing import Iterator, Tuple


def grid_shape(x_min: float, y_min: float, x_max: float, y_max: float, size: float) -> Tuple[int, int]:
    """Return ``(rows, columns)`` needed to cover the region with cells of ``size``."""
    if size <= 0:
        raise ValueError("size must be positive")
    rows = int(math.ceil((x_max - x_min) / size))
    columns = int(math.ceil((y_max - y_min) / size))
    return rows, columns


def generate_cells(
    x_min: float, y_min: float, x_max: float, y_max: float, size: float
) -> Iterator[Tuple[int, int, Tuple[float, float, float, float]]]:
    """Yield every candidate cell covering a region, row-major.

    Parameters
    ----------
    x_min, y_min : float
        Lower left corner of the region.
    x_max, y_max : float
        Upper right corner of the region.
    size : float
        Side length of each square cell.

    Yields
    ------
    (int, int, (float, float, float, float))
        Row, column and the cell bounding box ``(xmin, ymin, xmax, ymax)``.
    """
    rows, columns = grid_shape(x_min, y_min, x_max, y_max, size)
    for row in range(rows):
        cell_x = x_min + row * size
        for column in range(columns):
            cell_y = y_max - column * size
            yield row, column, (cell_x, cell_y - size, cell_x + size, cell_y)


def tile_id(row: int, column: int, total_rows: int, total_columns: int) -> str:
    """Build the zero-padded tile name, e.g. ``X03Y5`` for 12 rows and 7 columns.

    Each field is padded to the digit count of the corresponding total.
    """
    return f"X{str(row).zfill(len(str(total_rows)))}Y{str(column).zfill(len(str(total_columns)))}"
