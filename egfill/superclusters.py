"""Super-cluster filler: copies every input super cluster and publishes the
SuperClusterRef <-> SuperCluster map that other fillers resolve against."""

import logging

import awkward as ak
import numpy as np

from egfill.event import SuperClusterRef
from egfill.filler_base import FillerBase, register_filler
from egfill.records import SuperCluster

logger = logging.getLogger(__name__)


@register_filler("SuperClusters")
class SuperClustersFiller(FillerBase):
    def __init__(self, name, cfg):
        super().__init__(name, cfg)
        self._superclusters_label = self.get_parameter("superClusters")

    def products(self):
        return [self._superclusters_label]

    def fill(self, out_event, event, object_maps):
        in_clusters = event.get(self._superclusters_label)
        out_clusters = out_event.collection(self.name, SuperCluster)

        eta = ak.to_numpy(ak.flatten(in_clusters.eta, axis=1)).astype(np.float64)
        phi = ak.to_numpy(ak.flatten(in_clusters.phi, axis=1)).astype(np.float64)
        raw_energy = ak.to_numpy(ak.flatten(in_clusters.rawEnergy, axis=1)).astype(np.float64)
        raw_pt = raw_energy / np.cosh(eta)

        sc_map = object_maps[self.name].get(SuperClusterRef, SuperCluster)
        for i in range(len(eta)):
            out_cluster = out_clusters.create_back()
            out_cluster.rawPt = float(raw_pt[i])
            out_cluster.eta = float(eta[i])
            out_cluster.phi = float(phi[i])
            sc_map.add(SuperClusterRef(self._superclusters_label, i), out_cluster)
