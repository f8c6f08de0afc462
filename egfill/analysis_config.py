"""Configuration for the e/gamma object fillers.

Fixed output conventions (trigger buckets, matching cone) live here as module
constants. Filler parameters come from a YAML file laid out as named sections;
the packaged default is ``egfill/config.yaml``.
"""

import logging
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_CONFIG_PATH = Path(__file__).resolve().parent / "config.yaml"
_REPO_ROOT = Path(__file__).resolve().parent.parent

# Output trigger-match buckets, in the order of Electron.matchHLT.
# Names are what consumers see in the run-level label table.
ELECTRON_HLT_OBJECTS = [
    "fEl23Loose",
    "fEl27Loose",
    "fEl27Tight",
    "fEl35Loose",
    "fPh120",
    "fPh135",
    "fPh165HE10",
    "fPh175",
]
N_ELECTRON_HLT_OBJECTS = len(ELECTRON_HLT_OBJECTS)

# Angular distance below which a trigger object counts as matched.
HLT_MATCH_DR = 0.3

# Section name of the filler that publishes SuperClusterRef -> SuperCluster.
SUPERCLUSTERS_FILLER = "superClusters"

# Parameter defaults shared by candidate fillers
DEFAULT_MIN_PT = -1.
DEFAULT_MAX_ETA = 10.

# Sections that only hold parameters and are never instantiated as fillers.
PARAMETER_SECTIONS = ("common", "rho", "photons")


class ConfigurationError(ValueError):
    """Raised when the filler configuration cannot process the dataset.

    Never raised for a property of one event; the run must be restarted
    after fixing the configuration.
    """


def load_config(path=None):
    """Load a filler configuration mapping from YAML.

    With ``path=None`` the packaged default configuration is returned.
    """
    config_path = Path(path) if path is not None else _CONFIG_PATH
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigurationError(f"Configuration {config_path} is not a mapping of sections.")
    if "fillers" not in config:
        raise ConfigurationError(f"Configuration {config_path} has no 'fillers' list.")

    logger.info("Loaded filler configuration from %s", config_path)
    return config


def resolve_data_path(path):
    """Locate a data file given relative to the working directory or the repo root."""
    p = Path(path)
    if p.is_absolute() or p.exists():
        return p
    candidate = _REPO_ROOT / p
    if candidate.exists():
        return candidate
    return p
