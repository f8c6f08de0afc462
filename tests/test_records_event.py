"""Tests for output records, collections and the input event view."""

import awkward as ak
import numpy as np
import pytest

from egfill.analysis_config import N_ELECTRON_HLT_OBJECTS
from egfill.event import ElectronRef, Event, PhotonRef, tag_cluster_isolation
from egfill.records import Collection, Electron, OutputEvent, SuperCluster, pt_greater


class TestRefs:
    def test_value_semantics(self):
        assert ElectronRef("Electron", 2) == ElectronRef("Electron", 2)
        assert hash(ElectronRef("Electron", 2)) == hash(ElectronRef("Electron", 2))

    def test_kinds_differ(self):
        assert ElectronRef("X", 0) != PhotonRef("X", 0)


class TestCollection:
    def test_match_hlt_default_size(self):
        assert Electron().matchHLT == [False] * N_ELECTRON_HLT_OBJECTS
        # no shared default list
        a, b = Electron(), Electron()
        a.matchHLT[0] = True
        assert not b.matchHLT[0]

    def test_sort_returns_new_to_old(self):
        coll = Collection(Electron)
        for pt in (10., 40., 20.):
            coll.create_back().pt = pt
        before = list(coll)
        order = coll.sort(pt_greater)
        assert order == [1, 2, 0]
        assert [before[i] for i in order] == list(coll)

    def test_sort_empty(self):
        assert Collection(Electron).sort(pt_greater) == []

    def test_index_by_identity(self):
        coll = Collection(SuperCluster)
        a = coll.create_back()
        b = coll.create_back()
        assert coll.index(b) == 1
        with pytest.raises(ValueError):
            coll.index(SuperCluster())
        assert coll[0] is a

    def test_to_columns_exclude(self):
        coll = Collection(Electron)
        coll.create_back().pt = 12.
        columns = coll.to_columns(exclude={"tauDecay", "hadDecay"})
        assert "tauDecay" not in columns
        assert columns["pt"].dtype == np.float32
        assert columns["superCluster"].tolist() == [-1]

    def test_reference_targets_declared_on_record(self):
        assert Electron.REFS == {"superCluster": "superClusters"}
        assert SuperCluster.REFS == {}

    def test_reference_without_target_collection(self):
        coll = Collection(Electron)
        coll.create_back().superCluster = SuperCluster()
        with pytest.raises(ValueError, match="superClusters"):
            coll.to_columns(exclude={"tauDecay", "hadDecay"})


class TestOutputEvent:
    def test_collection_created_on_first_use(self):
        out = OutputEvent()
        coll = out.collection("electrons", Electron)
        assert out.collection("electrons") is coll

    def test_unknown_collection(self):
        with pytest.raises(KeyError):
            OutputEvent().collection("photons")


class TestEvent:
    def test_products_read_only(self):
        event = Event({"rho": ak.Array([3.])}, is_real_data=False)
        with pytest.raises(TypeError):
            event._products["other"] = 1
        assert event.get_scalar("rho") == 3.

    def test_missing_product_names_event(self):
        event = Event({}, is_real_data=True, run=4, lumi=5, event=6)
        with pytest.raises(KeyError, match="4:5:6"):
            event.get("Electron")
        assert not event.has("Electron")

    def test_cluster_isolation_flag(self):
        composed = ak.Array([[{"pt": 1., "ecalPFClusterIso": 0., "hcalPFClusterIso": 0.}]])
        bare = ak.Array([[{"pt": 1.}, {"pt": 2.}]])
        assert ak.to_list(tag_cluster_isolation(composed).hasPFClusterIso) == [[True]]
        assert ak.to_list(tag_cluster_isolation(bare).hasPFClusterIso) == [[False, False]]
