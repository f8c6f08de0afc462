"""Tests for egfill.analysis_config: constants, YAML loading and data paths."""

from pathlib import Path

import pytest

from egfill.analysis_config import (
    ELECTRON_HLT_OBJECTS, N_ELECTRON_HLT_OBJECTS, PARAMETER_SECTIONS, SUPERCLUSTERS_FILLER,
    ConfigurationError, _CONFIG_PATH, _REPO_ROOT, load_config, resolve_data_path,
)


class TestYamlLoading:
    def test_config_yaml_exists(self):
        assert _CONFIG_PATH.exists(), f"config.yaml not found at {_CONFIG_PATH}"

    def test_config_lives_in_package_dir(self):
        assert _CONFIG_PATH.parent == Path(__file__).resolve().parent.parent / "egfill"

    def test_default_config_loads(self):
        cfg = load_config()
        assert cfg["fillers"] == ["superClusters", "electrons"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Cannot read"):
            load_config(tmp_path / "nope.yaml")

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "cfg.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(path)

    def test_fillers_required(self, tmp_path):
        path = tmp_path / "cfg.yaml"
        path.write_text("electrons:\n  filler: Electrons\n")
        with pytest.raises(ConfigurationError, match="fillers"):
            load_config(path)


class TestConfigConsistency:
    def test_hlt_filters_match_bucket_count(self):
        cfg = load_config()
        assert len(cfg["electrons"]["hltFilters"]) == N_ELECTRON_HLT_OBJECTS

    def test_bucket_names_unique(self):
        assert len(set(ELECTRON_HLT_OBJECTS)) == len(ELECTRON_HLT_OBJECTS)

    def test_match_hlt_fits_bitmask(self):
        assert N_ELECTRON_HLT_OBJECTS <= 32

    def test_parameter_sections_present(self):
        cfg = load_config()
        for section in PARAMETER_SECTIONS:
            assert section in cfg
            assert section not in cfg["fillers"]

    def test_supercluster_filler_configured(self):
        cfg = load_config()
        assert SUPERCLUSTERS_FILLER in cfg["fillers"]

    def test_effective_area_files_exist(self):
        cfg = load_config()
        paths = [cfg["electrons"][k] for k in ("combIsoEA", "ecalIsoEA", "hcalIsoEA")]
        paths += [cfg["photons"][k] for k in ("chIsoEA", "nhIsoEA", "phIsoEA")]
        for p in paths:
            assert resolve_data_path(p).exists(), f"missing effective-area table {p}"


class TestResolveDataPath:
    def test_repo_relative(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        resolved = resolve_data_path("data/effective_areas/el_comb_iso_ea.txt")
        assert resolved == _REPO_ROOT / "data" / "effective_areas" / "el_comb_iso_ea.txt"

    def test_absolute_untouched(self, tmp_path):
        assert resolve_data_path(tmp_path / "x.txt") == tmp_path / "x.txt"
