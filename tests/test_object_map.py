"""Tests for the object maps and their per-event registry."""

import pytest

from egfill.analysis_config import ConfigurationError
from egfill.event import ElectronRef, SuperClusterRef
from egfill.object_map import ObjectMap, ObjectMapStore, ObjectMaps
from egfill.records import Electron, SuperCluster


class TestObjectMap:
    def test_add_fills_both_directions(self):
        omap = ObjectMap(ElectronRef, Electron)
        ref = ElectronRef("Electron", 3)
        rec = Electron()
        omap.add(ref, rec)
        assert omap.fwdMap[ref] is rec
        assert omap.bwdMap[rec] == ref
        assert len(omap) == 1

    def test_bijection(self):
        omap = ObjectMap(ElectronRef, Electron)
        pairs = [(ElectronRef("Electron", i), Electron()) for i in range(4)]
        for ref, rec in pairs:
            omap.add(ref, rec)
        for ref, rec in pairs:
            assert omap.bwdMap[omap.fwdMap[ref]] == ref
            assert omap.fwdMap[omap.bwdMap[rec]] is rec

    def test_records_keyed_by_identity(self):
        omap = ObjectMap(ElectronRef, Electron)
        a, b = Electron(), Electron()
        assert a is not b
        omap.add(ElectronRef("Electron", 0), a)
        omap.add(ElectronRef("Electron", 1), b)
        assert len(omap.bwdMap) == 2

    def test_duplicate_identity_rejected(self):
        omap = ObjectMap(ElectronRef, Electron)
        omap.add(ElectronRef("Electron", 0), Electron())
        with pytest.raises(ValueError, match="already mapped"):
            omap.add(ElectronRef("Electron", 0), Electron())

    def test_duplicate_record_rejected(self):
        omap = ObjectMap(ElectronRef, Electron)
        rec = Electron()
        omap.add(ElectronRef("Electron", 0), rec)
        with pytest.raises(ValueError, match="already mapped"):
            omap.add(ElectronRef("Electron", 1), rec)

    def test_wrong_source_kind(self):
        omap = ObjectMap(ElectronRef, Electron)
        with pytest.raises(TypeError, match="ElectronRef"):
            omap.add(SuperClusterRef("SuperCluster", 0), Electron())

    def test_wrong_dest_kind(self):
        omap = ObjectMap(ElectronRef, Electron)
        with pytest.raises(TypeError, match="Electron"):
            omap.add(ElectronRef("Electron", 0), SuperCluster())

    def test_clear(self):
        omap = ObjectMap(ElectronRef, Electron)
        omap.add(ElectronRef("Electron", 0), Electron())
        omap.clear()
        assert len(omap) == 0
        assert omap.bwdMap == {}


class TestSharedSourceMap:
    def test_records_share_one_cluster(self):
        omap = ObjectMap(SuperClusterRef, Electron, unique=False)
        ref = SuperClusterRef("SuperCluster", 0)
        first, last = Electron(), Electron()
        omap.add(ref, first)
        omap.add(ref, last)
        assert omap.fwdMap[ref] is last
        assert omap.bwdMap == {first: ref, last: ref}
        assert len(omap) == 2

    def test_duplicate_record_still_rejected(self):
        omap = ObjectMap(SuperClusterRef, Electron, unique=False)
        rec = Electron()
        omap.add(SuperClusterRef("SuperCluster", 0), rec)
        with pytest.raises(ValueError, match="already mapped"):
            omap.add(SuperClusterRef("SuperCluster", 1), rec)


class TestObjectMapStore:
    def test_get_creates_once(self):
        store = ObjectMapStore()
        omap = store.get(ElectronRef, Electron)
        assert store.get(ElectronRef, Electron) is omap
        assert (ElectronRef, Electron) in store

    def test_maps_keyed_by_kind_pair(self):
        store = ObjectMapStore()
        assert store.get(ElectronRef, Electron) is not store.get(SuperClusterRef, Electron)
        assert len(store) == 2

    def test_uniqueness_fixed_at_creation(self):
        store = ObjectMapStore()
        omap = store.get(SuperClusterRef, Electron, unique=False)
        assert store.get(SuperClusterRef, Electron) is omap
        assert omap.unique is False
        with pytest.raises(ValueError, match="unique=False"):
            store.get(SuperClusterRef, Electron, unique=True)


class TestObjectMaps:
    def test_at_missing_filler(self):
        maps = ObjectMaps(["electrons"])
        with pytest.raises(ConfigurationError, match="superClusters"):
            maps.at("superClusters")

    def test_at_known_filler(self):
        maps = ObjectMaps(["electrons", "superClusters"])
        assert maps.at("superClusters") is maps["superClusters"]

    def test_reset_keeps_stores_but_empties_maps(self):
        maps = ObjectMaps(["electrons"])
        omap = maps["electrons"].get(ElectronRef, Electron)
        omap.add(ElectronRef("Electron", 0), Electron())
        maps.reset()
        assert "electrons" in maps
        assert len(maps["electrons"].get(ElectronRef, Electron)) == 0

    def test_names(self):
        assert ObjectMaps(["a", "b"]).names() == ["a", "b"]
