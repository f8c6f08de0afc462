"""Write filled output events to a ROOT file with uproot.

Each output collection becomes a group of jagged branches
``<collection>_<field>`` with an ``n<collection>`` counter. Branches listed
as ``!<collection>.<field>`` in the exclusion list are not written.
"""

import logging
from pathlib import Path

import awkward as ak
import numpy as np
import uproot

logger = logging.getLogger(__name__)


def parse_exclusions(branches):
    """Map ``!<collection>.<field>`` entries to ``{collection: {field, ...}}``."""
    excluded = {}
    for entry in branches:
        if not entry.startswith("!"):
            continue
        collection, _, field = entry[1:].partition(".")
        if field:
            excluded.setdefault(collection, set()).add(field)
    return excluded


class OutputWriter:
    """Accumulates output events and writes them as one tree on ``close()``."""

    def __init__(self, path, exclusions=(), tree_name="events"):
        self.path = Path(path)
        self.tree_name = tree_name
        self._excluded = parse_exclusions(exclusions)
        self._ids = {"run": [], "luminosityBlock": [], "event": []}
        # collection -> field -> list of per-event numpy arrays
        self._columns = {}
        self._dtypes = {}
        self._n_events = 0

    def append(self, out_event):
        self._ids["run"].append(out_event.run)
        self._ids["luminosityBlock"].append(out_event.lumi)
        self._ids["event"].append(out_event.event)

        for name, coll in out_event.collections.items():
            refs = {
                field: out_event.collection(target)
                for field, target in coll.record_type.REFS.items()
                if target in out_event.collections
            }
            columns = coll.to_columns(refs=refs, exclude=self._excluded.get(name, ()))
            store = self._columns.setdefault(name, {})
            # Collections that appear late are padded with empty entries.
            for field, values in columns.items():
                per_event = store.setdefault(field, [np.zeros(0, dtype=values.dtype)] * self._n_events)
                per_event.append(values)
                self._dtypes[(name, field)] = values.dtype
        self._n_events += 1

        for name, store in self._columns.items():
            for field, per_event in store.items():
                if len(per_event) < self._n_events:
                    per_event.append(np.zeros(0, dtype=self._dtypes[(name, field)]))

    def _branches(self):
        branches = {
            "run": np.asarray(self._ids["run"], dtype=np.uint32),
            "luminosityBlock": np.asarray(self._ids["luminosityBlock"], dtype=np.uint32),
            "event": np.asarray(self._ids["event"], dtype=np.uint64),
        }
        for name, store in self._columns.items():
            fields = {}
            for field, per_event in store.items():
                counts = np.asarray([len(v) for v in per_event], dtype=np.int64)
                flat = np.concatenate(per_event) if per_event else np.zeros(0, dtype=self._dtypes[(name, field)])
                fields[field] = ak.unflatten(flat, counts)
            if fields:
                branches[name] = ak.zip(fields)
        return branches

    def close(self, tree_filler=None):
        """Write the event tree and, if given, the fillers' run-level output."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with uproot.recreate(self.path) as root_file:
            root_file[self.tree_name] = self._branches()
            if tree_filler is not None:
                tree_filler.add_output(root_file)
        logger.info("Wrote %d events to %s.", self._n_events, self.path)
        return self.path

    def __len__(self):
        return self._n_events
