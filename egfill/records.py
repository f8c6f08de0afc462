"""Output records and the per-event collections that own them.

Records are plain mutable objects compared by identity, so they can serve
as keys of the object maps. A collection owns its records for the lifetime
of one output event.
"""

from dataclasses import dataclass, field, fields

import numpy as np

from egfill.analysis_config import N_ELECTRON_HLT_OBJECTS, SUPERCLUSTERS_FILLER


@dataclass(eq=False)
class SuperCluster:
    rawPt: float = 0.
    eta: float = 0.
    phi: float = 0.

    # branch name -> numpy dtype used when writing
    BRANCHES = {
        "rawPt": np.float32,
        "eta": np.float32,
        "phi": np.float32,
    }

    REFS = {}


@dataclass(eq=False)
class Electron:
    pt: float = 0.
    eta: float = 0.
    phi: float = 0.
    mass: float = 0.
    q: int = 0
    veto: bool = False
    loose: bool = False
    medium: bool = False
    tight: bool = False
    sieie: float = 0.
    sipip: float = 0.
    hOverE: float = 0.
    chiso: float = 0.
    nhiso: float = 0.
    phoiso: float = 0.
    puiso: float = 0.
    isoPUOffset: float = 0.
    ecaliso: float = 0.
    hcaliso: float = 0.
    chisoPh: float = 0.
    nhisoPh: float = 0.
    phisoPh: float = 0.
    matchHLT: list = field(default_factory=lambda: [False] * N_ELECTRON_HLT_OBJECTS)
    # Simulation only; initialized by the filler, set by gen matching downstream.
    tauDecay: bool | None = None
    hadDecay: bool | None = None
    matchedGen: int = -1
    # Reference into the superClusters output collection, set in the resolve pass.
    superCluster: SuperCluster | None = None

    BRANCHES = {
        "pt": np.float32,
        "eta": np.float32,
        "phi": np.float32,
        "mass": np.float32,
        "q": np.int8,
        "veto": np.bool_,
        "loose": np.bool_,
        "medium": np.bool_,
        "tight": np.bool_,
        "sieie": np.float32,
        "sipip": np.float32,
        "hOverE": np.float32,
        "chiso": np.float32,
        "nhiso": np.float32,
        "phoiso": np.float32,
        "puiso": np.float32,
        "isoPUOffset": np.float32,
        "ecaliso": np.float32,
        "hcaliso": np.float32,
        "chisoPh": np.float32,
        "nhisoPh": np.float32,
        "phisoPh": np.float32,
        "matchHLT": np.uint32,
        "tauDecay": np.bool_,
        "hadDecay": np.bool_,
        "matchedGen": np.int32,
        "superCluster": np.int32,
    }

    # reference field -> output collection holding the referenced records
    REFS = {
        "superCluster": SUPERCLUSTERS_FILLER,
    }


def pt_greater(record):
    """Sort key for descending transverse momentum."""
    return -record.pt


class Collection:
    """Append-only list of output records of one type."""

    def __init__(self, record_type):
        self.record_type = record_type
        self._records = []

    def create_back(self):
        record = self.record_type()
        self._records.append(record)
        return record

    def sort(self, key):
        """Reorder records by ``key`` and return the permutation new -> old.

        The sort is stable, so ties keep their emission order.
        """
        keys = np.array([key(r) for r in self._records], dtype=np.float64)
        order = np.argsort(keys, kind="stable")
        self._records = [self._records[i] for i in order]
        return order.tolist()

    def index(self, record):
        for i, r in enumerate(self._records):
            if r is record:
                return i
        raise ValueError(f"{record!r} is not owned by this collection")

    def __getitem__(self, i):
        return self._records[i]

    def __iter__(self):
        return iter(self._records)

    def __len__(self):
        return len(self._records)

    def to_columns(self, refs=None, exclude=()):
        """Flatten records into ``{branch: numpy array}`` for writing.

        Record references (``REFS`` fields) become indices into the collection
        given in ``refs[field]`` (-1 when unset); ``matchHLT`` becomes a bit mask.
        """
        refs = refs or {}
        columns = {}
        for f in fields(self.record_type):
            name = f.name
            if name in exclude:
                continue
            dtype = self.record_type.BRANCHES[name]
            values = [getattr(r, name) for r in self._records]
            if name in self.record_type.REFS:
                target = refs.get(name)
                if target is None and any(v is not None for v in values):
                    raise ValueError(
                        f"'{name}' references collection '{self.record_type.REFS[name]}', "
                        "which is not in this output event"
                    )
                values = [-1 if v is None else target.index(v) for v in values]
            elif name == "matchHLT":
                values = [sum(1 << i for i, bit in enumerate(v) if bit) for v in values]
            columns[name] = np.asarray(values, dtype=dtype)
        return columns


class OutputEvent:
    """Output collections of one event, keyed by filler name."""

    def __init__(self, run=1, lumi=1, event=0):
        self.run = run
        self.lumi = lumi
        self.event = event
        self.collections = {}

    def collection(self, name, record_type=None):
        coll = self.collections.get(name)
        if coll is None:
            if record_type is None:
                raise KeyError(f"No output collection '{name}'")
            coll = Collection(record_type)
            self.collections[name] = coll
        return coll
