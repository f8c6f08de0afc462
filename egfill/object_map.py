"""Bidirectional maps between input identities and output records.

Each filler publishes its maps into its own ``ObjectMapStore``; the
``ObjectMaps`` registry holding one store per filler is owned by the
per-event driver and passed explicitly to every filler, first for filling
and then for resolving cross-collection references.
"""

import logging

from egfill.analysis_config import ConfigurationError

logger = logging.getLogger(__name__)


class ObjectMap:
    """Forward (identity -> record) and backward (record -> identity) maps.

    With ``unique=True`` both directions are kept as a bijection: a key
    already present on either side cannot be added again. With
    ``unique=False`` several records may share one source identity (many
    electrons on one super cluster): the forward entry holds the last record
    added, the backward map keeps one entry per record.
    """

    def __init__(self, source_kind, dest_kind, unique=True):
        self.source_kind = source_kind
        self.dest_kind = dest_kind
        self.unique = unique
        self.fwdMap = {}
        self.bwdMap = {}

    def add(self, source, dest):
        if not isinstance(source, self.source_kind):
            raise TypeError(f"Expected {self.source_kind.__name__} key, got {type(source).__name__}")
        if not isinstance(dest, self.dest_kind):
            raise TypeError(f"Expected {self.dest_kind.__name__} record, got {type(dest).__name__}")
        if self.unique and source in self.fwdMap:
            raise ValueError(f"{source!r} is already mapped in {self!r}")
        if dest in self.bwdMap:
            raise ValueError(f"Output record is already mapped to {self.bwdMap[dest]!r} in {self!r}")
        self.fwdMap[source] = dest
        self.bwdMap[dest] = source

    def clear(self):
        self.fwdMap.clear()
        self.bwdMap.clear()

    def __len__(self):
        return len(self.bwdMap)

    def __repr__(self):
        return f"ObjectMap({self.source_kind.__name__} <-> {self.dest_kind.__name__}, {len(self)} entries)"


class ObjectMapStore:
    """The typed maps published by one filler, keyed by (source kind, dest kind)."""

    def __init__(self):
        self._maps = {}

    def get(self, source_kind, dest_kind, unique=None):
        """Return the map for this kind pair, creating it on first use.

        ``unique`` (default True) applies when the map is created; an explicit
        value on later calls must agree with it.
        """
        key = (source_kind, dest_kind)
        omap = self._maps.get(key)
        if omap is None:
            omap = ObjectMap(source_kind, dest_kind, unique=True if unique is None else unique)
            self._maps[key] = omap
        elif unique is not None and omap.unique != unique:
            raise ValueError(f"{omap!r} was created with unique={omap.unique}")
        return omap

    def clear(self):
        for omap in self._maps.values():
            omap.clear()

    def __contains__(self, key):
        return key in self._maps

    def __len__(self):
        return len(self._maps)


class ObjectMaps:
    """Per-event registry of every filler's store."""

    def __init__(self, names=()):
        self._stores = {name: ObjectMapStore() for name in names}

    def __getitem__(self, name):
        store = self._stores.get(name)
        if store is None:
            store = ObjectMapStore()
            self._stores[name] = store
        return store

    def at(self, name):
        """Read-only access to another filler's store; it must exist."""
        try:
            return self._stores[name]
        except KeyError:
            raise ConfigurationError(
                f"No object maps published by filler '{name}'; add it to the 'fillers' list."
            ) from None

    def reset(self):
        for store in self._stores.values():
            store.clear()

    def __contains__(self, name):
        return name in self._stores

    def names(self):
        return list(self._stores)
