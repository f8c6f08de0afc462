"""Read-only view of one input event.

Products are awkward arrays keyed by label. Object collections and the value
maps aligned with them are length-1 jagged arrays (one event), so selection
code can use the same ``axis=1`` idioms as chunked columnar code. Per-event
scalars (e.g. rho) are length-1 flat arrays.
"""

from dataclasses import dataclass
from types import MappingProxyType

import awkward as ak


@dataclass(frozen=True)
class ObjectRef:
    """Stable identity of one input object: collection label + index."""

    collection: str
    index: int


@dataclass(frozen=True)
class ElectronRef(ObjectRef):
    pass


@dataclass(frozen=True)
class PhotonRef(ObjectRef):
    pass


@dataclass(frozen=True)
class SuperClusterRef(ObjectRef):
    pass


def tag_cluster_isolation(collection):
    """Attach the ``hasPFClusterIso`` capability flag to an e/gamma collection.

    Composed candidates carry their own ``ecalPFClusterIso``/``hcalPFClusterIso``;
    bare ones need the values from auxiliary per-candidate maps.
    """
    fields = set(collection.fields)
    if {"ecalPFClusterIso", "hcalPFClusterIso"} <= fields:
        flag = ak.ones_like(collection.pt, dtype=bool)
    else:
        flag = ak.zeros_like(collection.pt, dtype=bool)
    return ak.with_field(collection, flag, "hasPFClusterIso")


class Event:
    """Immutable per-event context handed to every filler."""

    def __init__(self, products, is_real_data, run=1, lumi=1, event=0):
        self._products = MappingProxyType(dict(products))
        self.is_real_data = bool(is_real_data)
        self.run = int(run)
        self.lumi = int(lumi)
        self.event = int(event)

    def has(self, label):
        return label in self._products

    def get(self, label):
        try:
            return self._products[label]
        except KeyError:
            raise KeyError(
                f"Product '{label}' not found in event {self.run}:{self.lumi}:{self.event}"
            ) from None

    def get_scalar(self, label):
        """Return a per-event scalar product as a float."""
        return float(ak.flatten(self.get(label), axis=None)[0])

    @property
    def labels(self):
        return list(self._products)

    def __repr__(self):
        kind = "data" if self.is_real_data else "mc"
        return f"Event({self.run}:{self.lumi}:{self.event}, {kind}, {len(self._products)} products)"
