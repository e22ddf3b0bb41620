"""Dispatch of photon records to the active detectors of a run."""

import logging
from typing import Dict, Iterable, List, Sequence

from tqdm import tqdm

from ..errors import ConfigurationError, DetectorStateError
from ..photon_data import Photon, PhotonHistory
from ..utils.config import DetectorConfig
from .base import Detector, DetectorResult, TallyKind
from .factory import create_detector

logger = logging.getLogger(__name__)


class DetectorController:
    """Owns the detectors of one run and routes photons to them.

    Detectors are split at construction into terminal detectors, called
    once per photon with its exit record, and history detectors, called for
    every consecutive pair of trajectory points. The controller does no
    numeric work itself.

    For parallel runs give every worker its own controller from
    :meth:`spawn`, :meth:`merge` the workers' raw sums and normalize once
    with the total photon count.

    Args:
        configs: One configuration per detector; names must be unique
        tissue: Tissue the run simulates

    Example:
        >>> controller = DetectorController([DetectorConfig("ROfRho")], tissue)
        >>> for photon in photons:
        ...     controller.history_tally(photon.history)
        ...     controller.termination_tally(photon)
        >>> controller.normalize_detectors(len(photons))
    """

    def __init__(self, configs: Sequence[DetectorConfig], tissue):
        self.configs = list(configs)
        self.tissue = tissue

        names = [config.name for config in self.configs]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate detector names: {duplicates}")

        self.detectors: List[Detector] = [create_detector(config, tissue) for config in self.configs]
        self._terminal = [d for d in self.detectors if d.kind is TallyKind.TERMINAL]
        self._history = [d for d in self.detectors if d.kind is TallyKind.HISTORY]
        logger.info(
            "Detector controller ready: %d terminal, %d history detectors",
            len(self._terminal), len(self._history),
        )

    @property
    def terminal_detectors(self) -> List[Detector]:
        return list(self._terminal)

    @property
    def history_detectors(self) -> List[Detector]:
        return list(self._history)

    def termination_tally(self, photon: Photon) -> None:
        """Tally a photon's terminal record in every terminal detector that accepts it."""
        for detector in self._terminal:
            if detector.contains_point(photon.dp):
                detector.tally(photon)

    def history_tally(self, history: PhotonHistory) -> None:
        """Fold a trajectory through every history detector.

        The first point only seeds the previous point; every later point is
        tallied together with its predecessor. If a tally raises partway
        through, the photon's pending second-moment sums are dropped so the
        next photon starts clean.
        """
        if not self._history:
            return
        points = iter(history.points)
        previous = next(points, None)
        if previous is None:
            return
        try:
            for current in points:
                region_index = self.tissue.get_region_index(current.position)
                for detector in self._history:
                    detector.tally(previous, current, region_index)
                previous = current
        except Exception:
            for detector in self._history:
                detector.discard_photon()
            raise
        for detector in self._history:
            detector.end_photon()

    def process(self, photons: Iterable[Photon], progress: bool = False) -> int:
        """Run a batch of photons through history and terminal tallies.

        Args:
            photons: Photon records from the transport kernel
            progress: Show a progress bar

        Returns:
            Number of photons processed
        """
        count = 0
        for photon in tqdm(photons, desc="Tallying photons", unit="photon", disable=not progress):
            self.history_tally(photon.history)
            self.termination_tally(photon)
            count += 1
        return count

    def normalize_detectors(self, num_photons: int) -> None:
        """Normalize every detector exactly once by the total photon count."""
        logger.info("Normalizing %d detectors by %d photons", len(self.detectors), num_photons)
        for detector in self.detectors:
            detector.normalize(num_photons)

    def spawn(self) -> "DetectorController":
        """Zeroed controller with the same detectors, for a parallel worker."""
        return DetectorController(self.configs, self.tissue)

    def merge(self, other: "DetectorController") -> None:
        """Add the raw sums of another controller with the same detectors."""
        if [d.name for d in other.detectors] != [d.name for d in self.detectors]:
            raise DetectorStateError("Cannot merge controllers with different detector sets")
        for mine, theirs in zip(self.detectors, other.detectors):
            mine.merge(theirs)

    def detector(self, name: str) -> Detector:
        for detector in self.detectors:
            if detector.name == name:
                return detector
        raise KeyError(f"No detector named '{name}'")

    def results(self) -> Dict[str, DetectorResult]:
        """Results of every detector keyed by name."""
        return {detector.name: detector.results() for detector in self.detectors}
