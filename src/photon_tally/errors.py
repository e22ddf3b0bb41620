"""Exception hierarchy for detector construction and tallying."""


class TallyError(Exception):
    """Base class for all errors raised by photon_tally."""


class ConfigurationError(TallyError, ValueError):
    """A detector, tissue or perturbation set was configured incorrectly.

    Raised while a run is being set up, never during tallying.
    """


class UnsupportedWeightingError(TallyError, NotImplementedError):
    """An estimator was asked to use an absorption weighting it does not implement."""


class DetectorStateError(TallyError, RuntimeError):
    """A detector was used out of lifecycle order (e.g. tallied after normalize)."""
