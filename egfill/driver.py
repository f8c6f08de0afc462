"""Two-pass driver running every configured filler on each event.

For each event:
    1) Reset the per-event object maps.
    2) fill(): every filler, in configuration order.
    3) resolve(): every filler, only after all fills are done.

All mutable state (object maps, output event, filler bookkeeping) belongs to
one TreeFiller instance; run one instance per worker for event parallelism.
"""

import logging
import time

from egfill.analysis_config import PARAMETER_SECTIONS, ConfigurationError
from egfill.filler_base import FILLER_REGISTRY
from egfill.object_map import ObjectMaps
from egfill.records import OutputEvent

# Registers the filler implementations.
import egfill.electrons  # noqa: F401
import egfill.superclusters  # noqa: F401

logger = logging.getLogger(__name__)


class TreeFiller:
    """Builds the configured fillers and runs them event by event."""

    def __init__(self, config, log_every=1000):
        self._config = config
        self._log_every = log_every
        self.fillers = []

        names = config.get("fillers") or []
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Duplicate entries in 'fillers': {names}")

        for name in names:
            if name in PARAMETER_SECTIONS:
                raise ConfigurationError(f"'{name}' is a parameter section, not a filler.")
            section = config.get(name)
            if section is None:
                raise ConfigurationError(f"Filler '{name}' has no configuration section.")
            key = section.get("filler")
            cls = FILLER_REGISTRY.get(key)
            if cls is None:
                raise ConfigurationError(
                    f"Unknown filler '{key}' for section '{name}'. Valid: {sorted(FILLER_REGISTRY)}"
                )
            self.fillers.append(cls(name, config))
            logger.info("Configured filler %s", self.fillers[-1])

        self.object_maps = ObjectMaps(f.name for f in self.fillers)

    def products(self):
        """Union of the product labels read by all fillers, in first-use order."""
        labels = []
        for filler in self.fillers:
            for label in filler.products():
                if label not in labels:
                    labels.append(label)
        return labels

    def branch_list(self, is_real_data):
        branches = []
        for filler in self.fillers:
            branches.extend(filler.branch_names(is_real_data))
        return branches

    def process(self, event):
        """Run both passes on one event and return its OutputEvent."""
        self.object_maps.reset()
        out_event = OutputEvent(run=event.run, lumi=event.lumi, event=event.event)

        for filler in self.fillers:
            filler.fill(out_event, event, self.object_maps)

        for filler in self.fillers:
            filler.resolve(self.object_maps)

        return out_event

    def add_output(self, root_file):
        for filler in self.fillers:
            filler.add_output(root_file)

    def run(self, events, writer=None, max_events=None):
        """Process an event stream, handing each output to ``writer``.

        Returns the number of processed events.
        """
        start = time.perf_counter()
        n_events = 0
        for event in events:
            if max_events is not None and n_events >= max_events:
                break
            out_event = self.process(event)
            if writer is not None:
                writer.append(out_event)
            n_events += 1
            if self._log_every and n_events % self._log_every == 0:
                logger.info("Processed %d events", n_events)

        elapsed = time.perf_counter() - start
        rate = n_events / elapsed if elapsed > 0 else 0.
        logger.info("Processed %d events in %.2f s (%.1f events/s)", n_events, elapsed, rate)
        return n_events
