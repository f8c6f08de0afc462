"""Electron filler.

Per event:
    1) Select input electrons (pT, |eta|, veto ID), keeping their original index.
    2) Copy kinematics, ID flags, shower shapes and PF isolation sums; compute
       effective-area corrected PF cluster isolations.
    3) Take photon-side isolations from the photon sharing the electron's
       super cluster (the last such photon in collection order wins).
    4) Match to trigger-object buckets (when trigger matching is enabled).
    5) Sort the output by descending pT and publish the
       ElectronRef <-> Electron and SuperClusterRef <-> Electron maps.

The resolve pass links each output electron to the output super cluster
published by the super-cluster filler.
"""

import logging

import awkward as ak
import hist
import numpy as np

from egfill.analysis_config import (
    DEFAULT_MAX_ETA, DEFAULT_MIN_PT, ELECTRON_HLT_OBJECTS, N_ELECTRON_HLT_OBJECTS,
    SUPERCLUSTERS_FILLER, ConfigurationError,
)
from egfill.effective_area import load_effective_area
from egfill.event import ElectronRef, SuperClusterRef
from egfill.filler_base import FillerBase, register_filler
from egfill.records import Electron, SuperCluster, pt_greater
from egfill.trigger_matching import TriggerObjectMatcher

logger = logging.getLogger(__name__)

CUTFLOW_STEPS = ["all", "pt", "eta", "veto"]

# Output fields that only exist for simulation.
GEN_BRANCHES = ("tauDecay", "hadDecay", "matchedGen")


def _flat(array):
    """Flatten a one-event jagged array to a numpy array over its objects."""
    return ak.to_numpy(ak.flatten(array, axis=1))


def _last_match(keys, targets):
    """For each key, the index of the last equal entry in ``targets`` (or -1)."""
    keys = np.asarray(keys)
    targets = np.asarray(targets)
    if keys.size == 0 or targets.size == 0:
        return np.full(keys.size, -1, dtype=np.int64)
    equal = keys[:, np.newaxis] == targets[np.newaxis, :]
    last = targets.size - 1 - np.argmax(equal[:, ::-1], axis=1)
    return np.where(equal.any(axis=1), last, -1)


@register_filler("Electrons")
class ElectronsFiller(FillerBase):
    def __init__(self, name, cfg):
        super().__init__(name, cfg)

        self._comb_iso_ea = load_effective_area(self.get_parameter("combIsoEA"))
        self._ecal_iso_ea = load_effective_area(self.get_parameter("ecalIsoEA"))
        self._hcal_iso_ea = load_effective_area(self.get_parameter("hcalIsoEA"))
        self._ph_ch_iso_ea = load_effective_area(self.get_filler_parameter("photons", "chIsoEA"))
        self._ph_nh_iso_ea = load_effective_area(self.get_filler_parameter("photons", "nhIsoEA"))
        self._ph_ph_iso_ea = load_effective_area(self.get_filler_parameter("photons", "phIsoEA"))

        self._min_pt = float(self.get_parameter("minPt", DEFAULT_MIN_PT))
        self._max_eta = float(self.get_parameter("maxEta", DEFAULT_MAX_ETA))

        self._electrons_label = self.get_parameter("electrons")
        self._photons_label = self.get_filler_parameter("photons", "photons")
        self._superclusters_label = self.get_filler_parameter(SUPERCLUSTERS_FILLER, "superClusters")
        self._veto_id_label = self.get_parameter("vetoId")
        self._loose_id_label = self.get_parameter("looseId")
        self._medium_id_label = self.get_parameter("mediumId")
        self._tight_id_label = self.get_parameter("tightId")
        self._ph_ch_iso_label = self.get_filler_parameter("photons", "chIso")
        self._ph_nh_iso_label = self.get_filler_parameter("photons", "nhIso")
        self._ph_ph_iso_label = self.get_filler_parameter("photons", "phIso")
        self._ecal_iso_label = self.get_parameter("ecalIso", None)
        self._hcal_iso_label = self.get_parameter("hcalIso", None)
        self._rho_label = self.get_filler_parameter("rho", "rho")
        self._rho_central_calo_label = self.get_filler_parameter("rho", "rhoCentralCalo")

        self._trigger_objects_label = None
        self._trigger_matcher = None
        if self.use_trigger:
            self._trigger_objects_label = self.get_filler_parameter("common", "triggerObjects")
            self._trigger_matcher = TriggerObjectMatcher(
                self.get_parameter("hltFilters"), N_ELECTRON_HLT_OBJECTS,
            )
            logger.info(
                "%s: trigger matching to %d buckets: %s",
                self.name, N_ELECTRON_HLT_OBJECTS, ", ".join(self._trigger_matcher.filter_labels),
            )

        # Run-level bookkeeping, written by add_output.
        self._cutflow = hist.Hist(
            hist.axis.StrCategory(CUTFLOW_STEPS, name="cut", label="Electron selection"),
        )
        self._hlt_objects = hist.Hist(
            hist.axis.StrCategory(ELECTRON_HLT_OBJECTS, name="bucket", label="Electron HLT object"),
        )

    def products(self):
        labels = [
            self._electrons_label, self._photons_label,
            self._veto_id_label, self._loose_id_label, self._medium_id_label, self._tight_id_label,
            self._ph_ch_iso_label, self._ph_nh_iso_label, self._ph_ph_iso_label,
            self._rho_label, self._rho_central_calo_label,
        ]
        for label in (self._ecal_iso_label, self._hcal_iso_label, self._trigger_objects_label):
            if label is not None:
                labels.append(label)
        return labels

    def branch_names(self, is_real_data):
        excluded = []
        if is_real_data:
            excluded.extend(f"!{self.name}.{b}" for b in GEN_BRANCHES)
        if not self.use_trigger:
            excluded.append(f"!{self.name}.matchHLT")
        return excluded

    def hlt_object_table(self):
        """Bucket index -> human-readable bucket name."""
        return dict(enumerate(ELECTRON_HLT_OBJECTS))

    def add_output(self, root_file):
        root_file[f"{self.name}HLTObjects"] = self._hlt_objects
        root_file[f"{self.name}_cutflow"] = self._cutflow

    def select(self, in_electrons, veto_id):
        """Per-electron mask of pT, |eta| and veto-ID selection (jagged like the input)."""
        pt_mask = ~(in_electrons.pt < self._min_pt)
        eta_mask = ~(abs(in_electrons.eta) > self._max_eta)
        veto_mask = ak.values_astype(veto_id, bool)

        cumulative = [
            ak.ones_like(pt_mask),
            pt_mask,
            pt_mask & eta_mask,
            pt_mask & eta_mask & veto_mask,
        ]
        for step, mask in zip(CUTFLOW_STEPS, cumulative):
            self._cutflow.fill(cut=[step], weight=[float(ak.sum(mask))])

        return cumulative[-1]

    def _cluster_iso(self, in_electrons, aux_iso, field, has_own, index, what):
        """Raw PF cluster isolation: own value for composed electrons, aux map otherwise."""
        raw = np.zeros(index.size, dtype=np.float64)
        if has_own.any():
            raw[has_own] = _flat(in_electrons[field])[index][has_own]
        bare = ~has_own
        if bare.any():
            if aux_iso is None:
                raise ConfigurationError(
                    f"{self.name}: {what} PF cluster iso missing; set '{self.name}.{field[:4]}Iso' "
                    "for electrons without their own cluster isolation"
                )
            raw[bare] = _flat(aux_iso)[index][bare]
        return raw

    def fill(self, out_event, event, object_maps):
        in_electrons = event.get(self._electrons_label)
        photons = event.get(self._photons_label)
        veto_id = event.get(self._veto_id_label)
        loose_id = event.get(self._loose_id_label)
        medium_id = event.get(self._medium_id_label)
        tight_id = event.get(self._tight_id_label)
        ph_ch_iso = event.get(self._ph_ch_iso_label)
        ph_nh_iso = event.get(self._ph_nh_iso_label)
        ph_ph_iso = event.get(self._ph_ph_iso_label)
        ecal_iso = event.get(self._ecal_iso_label) if self._ecal_iso_label is not None else None
        hcal_iso = event.get(self._hcal_iso_label) if self._hcal_iso_label is not None else None
        rho = event.get_scalar(self._rho_label)
        rho_central_calo = event.get_scalar(self._rho_central_calo_label)

        hlt_buckets = None
        if self.use_trigger:
            hlt_buckets = self._trigger_matcher.partition(event.get(self._trigger_objects_label))

        out_electrons = out_event.collection(self.name, Electron)

        selected = self.select(in_electrons, veto_id)
        index = np.flatnonzero(_flat(selected))
        n_sel = index.size

        sc_eta = np.abs(_flat(in_electrons.eta + in_electrons.deltaEtaSC)[index])
        has_own = _flat(in_electrons.hasPFClusterIso)[index].astype(bool)

        iso_pu_offset = self._comb_iso_ea.lookup(sc_eta) * rho
        ecaliso = (
            self._cluster_iso(in_electrons, ecal_iso, "ecalPFClusterIso", has_own, index, "ECAL")
            - self._ecal_iso_ea.lookup(sc_eta) * rho_central_calo
        )
        hcaliso = (
            self._cluster_iso(in_electrons, hcal_iso, "hcalPFClusterIso", has_own, index, "HCAL")
            - self._hcal_iso_ea.lookup(sc_eta) * rho_central_calo
        )

        # Photon isolations from the photon(s) sharing the super cluster; last one wins.
        # Electrons without a super cluster (index -1) never match.
        sc_index = _flat(in_electrons.superClusterIdx)[index]
        photon_idx = _last_match(sc_index, _flat(photons.superClusterIdx))
        photon_idx[sc_index < 0] = -1
        has_photon = photon_idx >= 0
        chiso_ph = np.zeros(n_sel, dtype=np.float64)
        nhiso_ph = np.zeros(n_sel, dtype=np.float64)
        phiso_ph = np.zeros(n_sel, dtype=np.float64)
        if has_photon.any():
            matched = photon_idx[has_photon]
            matched_eta = sc_eta[has_photon]
            chiso_ph[has_photon] = _flat(ph_ch_iso)[matched] - self._ph_ch_iso_ea.lookup(matched_eta) * rho
            nhiso_ph[has_photon] = _flat(ph_nh_iso)[matched] - self._ph_nh_iso_ea.lookup(matched_eta) * rho
            phiso_ph[has_photon] = _flat(ph_ph_iso)[matched] - self._ph_ph_iso_ea.lookup(matched_eta) * rho

        match_hlt = None
        if self.use_trigger:
            match_hlt = self._trigger_matcher.match(in_electrons[selected], hlt_buckets)
            self._hlt_objects.fill(
                bucket=ELECTRON_HLT_OBJECTS, weight=match_hlt.sum(axis=0).astype(np.float64),
            )

        columns = {
            "pt": _flat(in_electrons.pt)[index],
            "eta": _flat(in_electrons.eta)[index],
            "phi": _flat(in_electrons.phi)[index],
            "mass": _flat(in_electrons.mass)[index],
            "q": _flat(in_electrons.charge)[index],
            "loose": _flat(loose_id)[index],
            "medium": _flat(medium_id)[index],
            "tight": _flat(tight_id)[index],
            "sieie": _flat(in_electrons.sieie)[index],
            "sipip": _flat(in_electrons.sipip)[index],
            "hOverE": _flat(in_electrons.hoe)[index],
            "chiso": _flat(in_electrons.sumChargedHadronPt)[index],
            "nhiso": _flat(in_electrons.sumNeutralHadronEt)[index],
            "phoiso": _flat(in_electrons.sumPhotonEt)[index],
            "puiso": _flat(in_electrons.sumPUPt)[index],
        }

        ptr_list = []
        sc_refs = []
        for k in range(n_sel):
            out_electron = out_electrons.create_back()

            out_electron.pt = float(columns["pt"][k])
            out_electron.eta = float(columns["eta"][k])
            out_electron.phi = float(columns["phi"][k])
            out_electron.mass = float(columns["mass"][k])

            out_electron.veto = True
            out_electron.loose = bool(columns["loose"][k])
            out_electron.medium = bool(columns["medium"][k])
            out_electron.tight = bool(columns["tight"][k])

            out_electron.q = int(columns["q"][k])

            out_electron.sieie = float(columns["sieie"][k])
            out_electron.sipip = float(columns["sipip"][k])
            out_electron.hOverE = float(columns["hOverE"][k])

            out_electron.chiso = float(columns["chiso"][k])
            out_electron.nhiso = float(columns["nhiso"][k])
            out_electron.phoiso = float(columns["phoiso"][k])
            out_electron.puiso = float(columns["puiso"][k])
            out_electron.isoPUOffset = float(iso_pu_offset[k])
            out_electron.ecaliso = float(ecaliso[k])
            out_electron.hcaliso = float(hcaliso[k])

            out_electron.chisoPh = float(chiso_ph[k])
            out_electron.nhisoPh = float(nhiso_ph[k])
            out_electron.phisoPh = float(phiso_ph[k])

            if match_hlt is not None:
                out_electron.matchHLT = match_hlt[k].tolist()

            if not event.is_real_data:
                out_electron.tauDecay = False
                out_electron.hadDecay = False

            ptr_list.append(ElectronRef(self._electrons_label, int(index[k])))
            sc_refs.append(
                SuperClusterRef(self._superclusters_label, int(sc_index[k])) if sc_index[k] >= 0 else None
            )

        # sort the output electrons
        original_indices = out_electrons.sort(pt_greater)

        # input <-> output mapping
        ele_ele_map = object_maps[self.name].get(ElectronRef, Electron)
        sc_ele_map = object_maps[self.name].get(SuperClusterRef, Electron, unique=False)

        for i_p, out_electron in enumerate(out_electrons):
            idx = original_indices[i_p]
            ele_ele_map.add(ptr_list[idx], out_electron)
            if sc_refs[idx] is not None:
                sc_ele_map.add(sc_refs[idx], out_electron)

    def resolve(self, object_maps):
        sc_ele_map = object_maps[self.name].get(SuperClusterRef, Electron, unique=False)
        sc_map = object_maps.at(SUPERCLUSTERS_FILLER).get(SuperClusterRef, SuperCluster).fwdMap

        for out_electron, sc_ref in sc_ele_map.bwdMap.items():
            out_electron.superCluster = sc_map[sc_ref]
