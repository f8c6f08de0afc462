"""Effective-area tables used to subtract pileup from isolation sums.

A table maps |eta| to an area through ordered upper thresholds:
the area returned is the one of the first threshold that |eta| does not
exceed, and the last entry catches everything beyond. Two sources are
supported:

  - plain text tables (``absEtaMin absEtaMax area`` per line, ``#`` comments)
  - correctionlib JSON payloads holding a binning correction on |eta|
    (cached per worker process)
"""

import logging
from pathlib import Path

import numpy as np

from egfill.analysis_config import ConfigurationError, resolve_data_path

logger = logging.getLogger(__name__)

# Cache correctionlib payloads per worker process (avoid re-reading JSON per filler).
_CORRECTIONSET_CACHE = {}
_WARN_ONCE: set[str] = set()


class EffectiveAreaTable:
    """Piecewise-constant lookup from |eta| to an effective area."""

    def __init__(self, thresholds, areas, name=""):
        thresholds = np.asarray(thresholds, dtype=np.float64)
        areas = np.asarray(areas, dtype=np.float64)
        if thresholds.ndim != 1 or thresholds.shape != areas.shape or thresholds.size == 0:
            raise ConfigurationError(
                f"Effective-area table '{name}' needs matching, non-empty threshold and area lists."
            )
        if np.any(np.diff(thresholds) <= 0):
            raise ConfigurationError(
                f"Effective-area table '{name}' thresholds are not strictly increasing: {thresholds.tolist()}"
            )
        # The last interval is open-ended.
        thresholds = thresholds.copy()
        thresholds[-1] = np.inf
        self.thresholds = thresholds
        self.areas = areas
        self.name = name

    def lookup(self, coordinate):
        """Return the area for ``|coordinate|``; accepts scalars or arrays."""
        abs_coord = np.abs(np.asarray(coordinate, dtype=np.float64))
        idx = np.searchsorted(self.thresholds, abs_coord, side="left")
        idx = np.minimum(idx, self.areas.size - 1)
        result = self.areas[idx]
        if result.ndim == 0:
            return float(result)
        return result

    def __len__(self):
        return self.areas.size

    def __repr__(self):
        return f"EffectiveAreaTable({self.name!r}, {len(self)} bins)"

    @classmethod
    def from_text(cls, path):
        """Parse an ``absEtaMin absEtaMax area`` text table."""
        path = Path(path)
        thresholds = []
        areas = []
        try:
            with open(path, "r", encoding="utf-8") as f:
                for lineno, line in enumerate(f, start=1):
                    line = line.split("#", 1)[0].strip()
                    if not line:
                        continue
                    cols = line.split()
                    if len(cols) != 3:
                        raise ConfigurationError(
                            f"{path}:{lineno}: expected 'absEtaMin absEtaMax area', got {line!r}"
                        )
                    thresholds.append(float(cols[1]))
                    areas.append(float(cols[2]))
        except OSError as e:
            raise ConfigurationError(f"Cannot read effective-area table {path}: {e}") from e

        return cls(thresholds, areas, name=path.name)


class CorrectionlibEffectiveArea:
    """Effective area evaluated from a correctionlib binning correction.

    Bin boundaries follow the payload's own binning (and its flow setting).
    With ``clip`` set, |eta| is clipped to it before evaluation so payloads
    with ``flow: error`` accept any coordinate.
    """

    def __init__(self, correction, name="", clip=None):
        self._correction = correction
        self.name = name
        self.clip = clip

    def lookup(self, coordinate):
        abs_coord = np.abs(np.asarray(coordinate, dtype=np.float64))
        if self.clip is not None:
            if np.any(abs_coord > self.clip):
                key = f"clip::{self.name}"
                if key not in _WARN_ONCE:
                    _WARN_ONCE.add(key)
                    logger.warning(
                        "Effective areas '%s': |eta| above %g clipped to the last bin.", self.name, self.clip
                    )
            abs_coord = np.minimum(abs_coord, self.clip)
        result = np.asarray(self._correction.evaluate(abs_coord), dtype=np.float64)
        if result.ndim == 0:
            return float(result)
        return result

    def __repr__(self):
        return f"CorrectionlibEffectiveArea({self.name!r})"


def _get_ceval(json_path):
    """Load (and cache) a correctionlib CorrectionSet."""
    import correctionlib

    key = str(json_path)
    ceval = _CORRECTIONSET_CACHE.get(key)
    if ceval is None:
        ceval = correctionlib.CorrectionSet.from_file(key)
        _CORRECTIONSET_CACHE[key] = ceval
    return ceval


def load_effective_area(entry):
    """Build an effective-area lookup from a configuration entry.

    ``entry`` is either a path to a text table, or a mapping
    ``{"file": <correctionlib json>, "correction": <name>, "clip": <max |eta|>}``
    (``clip`` optional).
    """
    if isinstance(entry, dict):
        try:
            json_path = resolve_data_path(entry["file"])
            correction_name = entry["correction"]
        except KeyError as e:
            raise ConfigurationError(
                f"correctionlib effective-area entry needs 'file' and 'correction': missing {e}"
            ) from e
        ceval = _get_ceval(json_path)
        try:
            correction = ceval[correction_name]
        except KeyError as e:
            raise ConfigurationError(
                f"Correction '{correction_name}' not found in {json_path}"
            ) from e
        logger.info("Effective areas '%s' loaded from %s", correction_name, json_path)
        return CorrectionlibEffectiveArea(correction, name=correction_name, clip=entry.get("clip"))

    table = EffectiveAreaTable.from_text(resolve_data_path(entry))
    logger.info("Effective areas loaded from %s (%d bins)", entry, len(table))
    return table
