class PlexnormError(Exception):
    """Base class for plexnorm errors."""


class SetupError(PlexnormError):
    """Run-level control structures could not be allocated; the whole run aborts."""


class EncodingParameterError(PlexnormError):
    """Encoder options for one input could not be determined; only that job fails."""
