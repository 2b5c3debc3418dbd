"""Tests for gla_evo.config — configuration loading and validation."""

from pathlib import Path

import pytest
import yaml

from gla_evo.config import (
    MortalitySection,
    MutationSection,
    SimulationConfig,
    SimulationSection,
    apply_overrides,
    config_from_dict,
    deep_merge,
    default_config,
    load_config,
    save_config,
    validate_config,
)

CONFIG_DIR = Path(__file__).resolve().parent.parent / "configs"


# ── deep_merge tests ──────────────────────────────────────────────────

class TestDeepMerge:
    def test_simple_override(self):
        base = {'a': 1, 'b': 2}
        result = deep_merge(base, {'b': 3})
        assert result == {'a': 1, 'b': 3}

    def test_nested_merge(self):
        base = {'x': {'a': 1, 'b': 2}, 'y': 10}
        override = {'x': {'b': 3, 'c': 4}}
        result = deep_merge(base, override)
        assert result == {'x': {'a': 1, 'b': 3, 'c': 4}, 'y': 10}

    def test_override_dict_with_scalar(self):
        result = deep_merge({'a': {'nested': 1}}, {'a': 'replaced'})
        assert result == {'a': 'replaced'}

    def test_list_replaced_not_merged(self):
        result = deep_merge({'aging': [1, 2, 3]}, {'aging': [4, 5]})
        assert result == {'aging': [4, 5]}

    def test_empty_override(self):
        assert deep_merge({'a': 1}, {}) == {'a': 1}


# ── default_config tests ─────────────────────────────────────────────

class TestDefaultConfig:
    def test_creates_valid_config(self):
        assert isinstance(default_config(), SimulationConfig)

    def test_default_values(self):
        config = default_config()
        assert config.simulation.time_step == 1.0
        assert config.simulation.population_cap == 10000
        assert config.simulation.seed == 42
        assert config.initial.b_mean == 0.07
        assert config.initial.lmax_mean == 0.0
        assert config.mating.assortative is True
        assert config.mutation.mutable_b is True
        assert config.mutation.mutable_lmax is False
        assert config.mortality.force_removal_past_menopause is False
        assert config.parameters.hazard_model == 'gla'
        assert config.fertility.search_bound == 20.0

    def test_initial_size_defaults_to_cap(self):
        config = default_config()
        assert config.simulation.initial_population is None
        assert config.initial_size == config.simulation.population_cap

    def test_initial_size_explicit(self):
        config = apply_overrides(default_config(),
                                 {'simulation': {'initial_population': 250}})
        assert config.initial_size == 250

    def test_shipped_default_yaml_matches(self):
        config = load_config(CONFIG_DIR / "default.yaml")
        assert config.to_dict() == default_config().to_dict()


# ── YAML loading tests ───────────────────────────────────────────────

class TestLoadConfig:
    def test_load_from_yaml(self, tmp_path):
        config_path = tmp_path / "test.yaml"
        with open(config_path, 'w') as f:
            yaml.dump({'simulation': {'seed': 99, 'simulation_time': 50}}, f)

        config = load_config(config_path)
        assert config.simulation.seed == 99
        assert config.simulation.simulation_time == 50
        # Unspecified sections get defaults
        assert config.initial.b_mean == 0.07
        assert config.fertility.model == 'brass_polynomial'

    def test_load_with_scenario_override(self, tmp_path):
        base_path = tmp_path / "base.yaml"
        scen_path = tmp_path / "scenario.yaml"
        with open(base_path, 'w') as f:
            yaml.dump({'mutation': {'b_rate': 0.02, 'b_strength': 0.006}}, f)
        with open(scen_path, 'w') as f:
            yaml.dump({'mutation': {'b_rate': 0.1}}, f)

        config = load_config(base_path, scen_path)
        assert config.mutation.b_rate == 0.1
        assert config.mutation.b_strength == 0.006

    def test_overrides_applied_last(self, tmp_path):
        base_path = tmp_path / "base.yaml"
        with open(base_path, 'w') as f:
            yaml.dump({'simulation': {'seed': 1}}, f)
        config = load_config(base_path, overrides={'simulation': {'seed': 7}})
        assert config.simulation.seed == 7

    def test_shipped_scenario(self):
        config = load_config(CONFIG_DIR / "default.yaml",
                             CONFIG_DIR / "menopause_removal.yaml")
        assert config.mating.assortative is False
        assert config.mutation.mutable_lmax is True
        assert config.mortality.force_removal_past_menopause is True
        assert config.mortality.female_menopause_age == 48.0
        assert config.mortality.male_menopause_age is None
        assert config.simulation.population_cap == 10000

    def test_empty_yaml_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path).to_dict() == default_config().to_dict()

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "extra.yaml"
        with open(path, 'w') as f:
            yaml.dump({'simulation': {'seed': 3, 'bogus': 1}, 'nonsense': {}}, f)
        config = load_config(path)
        assert config.simulation.seed == 3
        assert not hasattr(config.simulation, 'bogus')

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_missing_scenario(self, tmp_path):
        base_path = tmp_path / "base.yaml"
        base_path.write_text("simulation:\n  seed: 1\n")
        with pytest.raises(FileNotFoundError):
            load_config(base_path, tmp_path / "nope.yaml")

    def test_invalid_yaml_value_rejected(self, tmp_path):
        path = tmp_path / "bad.yaml"
        with open(path, 'w') as f:
            yaml.dump({'initial': {'b_sd': -0.1}}, f)
        with pytest.raises(ValueError, match="b_sd"):
            load_config(path)

    def test_save_roundtrip(self, tmp_path):
        config = apply_overrides(default_config(), {
            'simulation': {'seed': 11, 'initial_population': 40},
            'mortality': {'force_removal_past_menopause': True,
                          'female_menopause_age': 45.0},
        })
        path = tmp_path / "saved.yaml"
        save_config(config, path)
        assert load_config(path).to_dict() == config.to_dict()


# ── apply_overrides tests ────────────────────────────────────────────

class TestApplyOverrides:
    def test_returns_new_config(self):
        base = default_config()
        new = apply_overrides(base, {'simulation': {'n_replicates': 4}})
        assert new.simulation.n_replicates == 4
        assert base.simulation.n_replicates == 1

    def test_sections_rebuilt_as_dataclasses(self):
        new = apply_overrides(default_config(), {'mutation': {'b_rate': 0.5}})
        assert isinstance(new.mutation, MutationSection)
        assert isinstance(new.simulation, SimulationSection)


# ── Validation tests ─────────────────────────────────────────────────

def _with(**sections):
    return config_from_dict(sections)


class TestValidation:
    def test_default_passes(self):
        validate_config(default_config())

    @pytest.mark.parametrize("sections,match", [
        ({'simulation': {'time_step': 0.0}}, "time_step"),
        ({'simulation': {'simulation_time': 0}}, "simulation_time"),
        ({'simulation': {'n_replicates': 0}}, "n_replicates"),
        ({'simulation': {'population_cap': 0}}, "population_cap"),
        ({'simulation': {'parallel_workers': 0}}, "parallel_workers"),
        ({'simulation': {'seed': -1}}, "seed"),
        ({'simulation': {'population_cap': 10, 'initial_population': 11}},
         "initial_population"),
        ({'initial': {'age_sd': -1.0}}, "age_sd"),
        ({'initial': {'lmax_sd': -1e-3}}, "lmax_sd"),
        ({'initial': {'female_proportion': 1.5}}, "female_proportion"),
        ({'parameters': {'hazard_model': 'weibull'}}, "hazard_model"),
        ({'parameters': {'aging': [0.01]}}, "aging"),
        ({'parameters': {'learning': []}}, "learning"),
        ({'parameters': {'growth': [0.1]}}, "growth"),
        ({'parameters': {'minimum_mortality': -1.0}}, "minimum_mortality"),
        ({'fertility': {'model': 'gamma'}}, "fertility.model"),
        ({'fertility': {'female': [1.0, 2.0]}}, "fertility.female"),
        ({'fertility': {'search_bound': 0.0}}, "search_bound"),
        ({'mutation': {'b_rate': -0.1}}, "b_rate"),
        ({'mutation': {'lmax_rate': 1.1}}, "lmax_rate"),
        ({'mutation': {'b_strength': -0.1}}, "b_strength"),
        ({'mortality': {'female_menopause_age': -5.0}}, "female_menopause_age"),
    ])
    def test_rejects(self, sections, match):
        with pytest.raises(ValueError, match=match):
            validate_config(_with(**sections))

    def test_gompertz_needs_no_growth(self):
        validate_config(_with(parameters={'hazard_model': 'gompertz_makeham',
                                          'growth': []}))

    def test_workers_without_replicates_warns(self):
        with pytest.warns(UserWarning, match="parallel_workers"):
            validate_config(_with(simulation={'parallel_workers': 4}))

    @pytest.mark.parametrize("p", [0.0, 1.0])
    def test_single_sex_cohort_warns(self, p):
        with pytest.warns(UserWarning, match="single-sex"):
            validate_config(_with(initial={'female_proportion': p}))

    def test_forced_removal_without_ages_warns(self):
        with pytest.warns(UserWarning, match="menopause"):
            validate_config(_with(mortality={'force_removal_past_menopause': True}))

    def test_mortality_section_defaults(self):
        m = MortalitySection()
        assert m.male_menopause_age is None
        assert m.female_menopause_age is None
