"""Exceptions that abort a run.

Failures of a single tile, trajectory or mask are never raised; stages
report them through :class:`tileortho.mosaic.results.StageResult`.
Everything below stops the run before (or outside) the tile loop.
"""


class TileOrthoError(Exception):
    """Base class for fatal run errors."""


class ConfigurationError(TileOrthoError):
    """A configuration value is missing or invalid."""


class ConfigurationCancelled(TileOrthoError):
    """The user cancelled while settings were being gathered."""


class SurveyOpenError(TileOrthoError):
    """The survey dataset cannot be opened."""


class SurveyReadError(TileOrthoError):
    """Data could not be read from an opened survey dataset."""


class NoTrajectoryError(TileOrthoError):
    """A road corridor run was requested on data without trajectories."""


class BoundsError(TileOrthoError):
    """The planar extent of the survey data cannot be computed."""


class GridError(TileOrthoError):
    """The tile grid could not be built."""
