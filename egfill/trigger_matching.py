"""Trigger-object matching against labeled buckets.

The trigger-object collection is split once per event into one bucket per
configured filter label (an object carrying several labels lands in several
buckets). A candidate matches bucket *i* if any object of that bucket lies
within ``dr_max`` of it.
"""

import logging

import awkward as ak
import numpy as np
from coffea.nanoevents.methods import vector

from egfill.analysis_config import HLT_MATCH_DR, ConfigurationError

ak.behavior.update(vector.behavior)
logger = logging.getLogger(__name__)


def _as_vectors(objects):
    """View pt/eta/phi records as massless Lorentz vectors for deltaR."""
    return ak.zip(
        {
            "pt": objects.pt,
            "eta": objects.eta,
            "phi": objects.phi,
            "mass": ak.zeros_like(objects.pt),
        },
        with_name="PtEtaPhiMLorentzVector",
        behavior=vector.behavior,
    )


class TriggerObjectMatcher:
    """Match candidates to trigger objects grouped by filter label.

    Parameters
    - `filter_labels`: ordered labels, one per output bucket.
    - `n_buckets`: fixed bucket count of the output record; a label list of
      any other length is rejected.
    - `dr_max`: strict upper bound on deltaR for a match.
    """

    def __init__(self, filter_labels, n_buckets, dr_max=HLT_MATCH_DR):
        filter_labels = list(filter_labels or [])
        if len(filter_labels) != n_buckets:
            raise ConfigurationError(
                f"hltFilters has {len(filter_labels)} entries, expected {n_buckets} "
                "(one per trigger-match bucket)."
            )
        self.filter_labels = filter_labels
        self.n_buckets = n_buckets
        self.dr_max = dr_max

    def partition(self, trigger_objects):
        """Return one trigger-object array per bucket (same jagged layout as the input)."""
        counts = ak.num(trigger_objects, axis=1)
        obj_labels = ak.to_list(ak.flatten(trigger_objects.filterLabels, axis=1))
        buckets = []
        for label in self.filter_labels:
            mask = np.array([label in labels for labels in obj_labels], dtype=np.bool_)
            buckets.append(trigger_objects[ak.unflatten(mask, counts)])
        return buckets

    def match(self, candidates, buckets):
        """Return a (n_candidates, n_buckets) boolean matrix.

        ``candidates`` and every bucket are jagged arrays over the same events;
        rows follow the flattened candidate order.
        """
        cands = _as_vectors(candidates)
        n_cands = int(ak.sum(ak.num(cands, axis=1)))
        result = np.zeros((n_cands, self.n_buckets), dtype=np.bool_)
        if n_cands == 0:
            return result

        for i, bucket in enumerate(buckets):
            if int(ak.sum(ak.num(bucket, axis=1))) == 0:
                continue
            pairs = ak.cartesian({"cand": cands, "obj": _as_vectors(bucket)}, axis=1, nested=True)
            dr = pairs["cand"].deltaR(pairs["obj"])
            hit = ak.any(dr < self.dr_max, axis=2)
            result[:, i] = ak.to_numpy(ak.flatten(hit, axis=1))
        return result
