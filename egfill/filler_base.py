"""Common interface of all fillers.

A filler turns input products of one event into one output collection.
The driver calls ``fill`` on every filler, then ``resolve`` on every filler,
so references into collections written by other fillers can only be set in
``resolve``.
"""

import logging

from egfill.analysis_config import ConfigurationError

logger = logging.getLogger(__name__)

_REQUIRED = object()

# Filler implementations by the key used in the `filler:` option.
FILLER_REGISTRY = {}


def register_filler(key):
    """Class decorator adding a filler implementation to the registry."""
    def _register(cls):
        FILLER_REGISTRY[key] = cls
        return cls
    return _register


class FillerBase:
    """Base class for fillers.

    Parameters
    - `name`: section name of this filler; also the output collection name
      and the key of its object-map store.
    - `cfg`: the full configuration mapping (all sections).
    """

    def __init__(self, name, cfg):
        self._name = name
        self._cfg = cfg
        common = cfg.get("common") or {}
        self.use_trigger = bool(common.get("useTrigger", True))

    @property
    def name(self):
        return self._name

    def get_parameter(self, key, default=_REQUIRED):
        return self.get_filler_parameter(self._name, key, default)

    def get_filler_parameter(self, section, key, default=_REQUIRED):
        """Read ``key`` from another section of the configuration."""
        sec = self._cfg.get(section)
        if sec is None:
            if default is not _REQUIRED:
                return default
            raise ConfigurationError(
                f"{self._name}: configuration section '{section}' is missing (needed for '{section}.{key}')"
            )
        if key not in sec:
            if default is not _REQUIRED:
                return default
            raise ConfigurationError(f"{self._name}: missing required option '{section}.{key}'")
        return sec[key]

    def products(self):
        """Input product labels this filler reads."""
        return []

    def fill(self, out_event, event, object_maps):
        raise NotImplementedError

    def resolve(self, object_maps):
        """Set cross-collection references once every filler has filled."""

    def branch_names(self, is_real_data):
        """Output branches to suppress, as ``!<collection>.<field>`` entries."""
        return []

    def add_output(self, root_file):
        """Write run-level objects next to the event tree."""

    def __repr__(self):
        return f"{type(self).__name__}({self._name!r})"
