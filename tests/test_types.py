"""Tests for gla_evo.types — agent dtype, baseline vectors, transfer objects."""

import dataclasses

import numpy as np
import pytest

from gla_evo.types import (
    B_INDEX,
    LMAX_INDEX,
    RESULT_FIELDS,
    BaselineParameters,
    Couples,
    PopulationExtinctError,
    ResultRecord,
    allocate_agents,
    make_agent_dtype,
)


def _baseline():
    return BaselineParameters.from_lists(
        aging=[0.01, 0.03, 0.04],
        learning=[0.0, 40.0, 0.1],
        growth=[0.1, 0.09],
    )


# ── Agent dtype ───────────────────────────────────────────────────────

class TestAgentDtype:
    def test_fields(self):
        dt = make_agent_dtype(3, 3, 2)
        assert dt.names == ('age', 'female', 'aging', 'learning', 'growth')

    def test_subarray_shapes(self):
        dt = make_agent_dtype(4, 1, 2)
        assert dt['aging'].shape == (4,)
        assert dt['learning'].shape == (1,)
        assert dt['growth'].shape == (2,)

    def test_allocate_prefills_baseline(self):
        base = _baseline()
        agents = allocate_agents(5, base)
        assert agents.shape == (5,)
        np.testing.assert_array_equal(agents['aging'], np.tile(base.aging, (5, 1)))
        np.testing.assert_array_equal(agents['learning'], np.tile(base.learning, (5, 1)))
        np.testing.assert_array_equal(agents['growth'], np.tile(base.growth, (5, 1)))
        assert np.all(agents['age'] == 0.0)

    def test_allocate_zero(self):
        agents = allocate_agents(0, _baseline())
        assert len(agents) == 0


# ── Baseline parameters ───────────────────────────────────────────────

class TestBaselineParameters:
    def test_shape(self):
        assert _baseline().shape == (3, 3, 2)

    def test_vectors_read_only(self):
        base = _baseline()
        with pytest.raises(ValueError):
            base.aging[0] = 1.0

    def test_source_list_not_aliased(self):
        aging = np.array([0.01, 0.03, 0.04])
        base = BaselineParameters(aging, np.array([0.0]), np.array([]))
        aging[1] = 99.0
        assert base.aging[B_INDEX] == 0.03

    def test_aging_too_short(self):
        with pytest.raises(ValueError, match="aging"):
            BaselineParameters.from_lists([0.01], [0.0], [0.1])

    def test_learning_empty(self):
        with pytest.raises(ValueError, match="learning"):
            BaselineParameters.from_lists([0.01, 0.03], [], [0.1])

    def test_growth_may_be_empty(self):
        base = BaselineParameters.from_lists([0.01, 0.03], [0.0], [])
        assert base.shape == (2, 1, 0)

    def test_heritable_indices(self):
        assert B_INDEX == 1
        assert LMAX_INDEX == 0


# ── Transfer objects ──────────────────────────────────────────────────

class TestResultRecord:
    def test_field_order_matches_csv_columns(self):
        names = tuple(f.name for f in dataclasses.fields(ResultRecord))
        assert names == RESULT_FIELDS
        assert RESULT_FIELDS == ('mean_b', 'mean_lmax', 'time', 'replicate_id')

    def test_frozen(self):
        rec = ResultRecord(0.07, 0.0, 1.0, 0)
        with pytest.raises(dataclasses.FrozenInstanceError):
            rec.time = 2.0


class TestCouples:
    def test_len(self):
        c = Couples(male_idx=np.array([0, 2]), female_idx=np.array([1, 3]))
        assert len(c) == 2
        assert c.n_unmatched == 0


def test_extinct_error_is_runtime_error():
    assert issubclass(PopulationExtinctError, RuntimeError)
