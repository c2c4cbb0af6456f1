"""
Test Suite for the Evaluation Engine

Tests the public entry points end to end:
- System reliability for series, parallel, bus and standby diagrams
- Inactive block exclusion
- Detail breakdown and dict output
- Formula strings
- Degenerate input handling

Run with: pytest block_reliability/tests/test_engine.py -v
"""

import math
import os
import sys

import pytest

# Add repository root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from block_reliability import (
    Block,
    Connection,
    EngineSettings,
    evaluate_system,
    evaluateSystem,
    is_active,
    isActive,
    render_formula,
    renderFormula,
)
from block_reliability.model import Side
from block_reliability.reduction import ReductionMode
from block_reliability.run_validation import block, bus, signal, main as run_validation_main


class TestEmptySystem:
    """Test degenerate inputs."""

    def test_empty_reliability(self):
        assert evaluate_system([], []).system_reliability == 0

    def test_empty_dict(self):
        assert evaluate_system([], []).to_dict() == {
            "systemReliability": 0.0,
            "details": {"chains": [], "parallelGroups": []},
        }

    def test_empty_formula(self):
        assert render_formula([], []).to_dict() == {"general": "G = 0", "withValues": "G = 0"}

    def test_none_inputs(self):
        assert evaluate_system(None, None).system_reliability == 0
        assert render_formula(None, None).general == "G = 0"

    def test_only_reserves(self):
        blocks = [block("r", 1, 0.9, reserve=True)]
        assert evaluate_system(blocks, []).system_reliability == 0
        assert render_formula(blocks, []).with_values == "G = 0"

    def test_garbage_does_not_raise(self):
        blocks = [{"id": "a", "number": "x", "reliability": "bad"}, 42]
        connections = [{"fromBlockId": "a", "toBlockId": "zzz", "fromSide": "up"}, None]
        result = evaluate_system(blocks, connections)
        assert 0.0 <= result.system_reliability <= 1.0

    def test_unhashable_ids_do_not_raise(self):
        """List and dict ids are compared by their repr."""
        blocks = [
            {"id": ["x"], "number": 1, "reliability": 0.9},
            {"id": {"a": 1}, "number": 2, "reliability": 0.8},
        ]
        connections = [
            {"fromBlockId": ["x"], "fromSide": "right", "toBlockId": {"a": 1}, "toSide": "left"},
        ]
        assert evaluate_system(blocks, connections).system_reliability == pytest.approx(0.72, abs=1e-9)
        assert render_formula(blocks, connections).general == "G = p<sub>1</sub> × p<sub>2</sub>"
        assert is_active(["x"], blocks, connections)
        assert not is_active([], blocks, connections)


class TestSystemReliability:
    """Test the headline number."""

    def test_single_block(self):
        assert evaluate_system([block("a", 1, 0.87)], []).system_reliability == 0.87

    def test_series(self):
        result = evaluate_system(
            [block("a", 1, 0.9), block("b", 2, 0.8)],
            [signal("a", "b")],
        )
        assert result.system_reliability == pytest.approx(0.72, abs=1e-9)

    def test_parallel_bus(self):
        result = evaluate_system(
            [block("a", 1, 0.9), block("b", 2, 0.8)],
            [bus("a", "b", Side.LEFT), bus("a", "b", Side.RIGHT)],
        )
        assert result.system_reliability == pytest.approx(1 - 0.1 * 0.2, abs=1e-9)

    def test_disjoint_chains_on_shared_buses(self):
        """A perfect feeder puts every chain head on one entry bus."""
        p = [0.9, 0.8, 0.95, 0.85, 0.9]
        result = evaluate_system(
            [
                block("s", 1, 1.0),
                block("a", 2, p[0]), block("b", 3, p[1]),
                block("c", 4, p[2]), block("d", 5, p[3]), block("e", 6, p[4]),
            ],
            [
                signal("s", "a"), signal("s", "c"),
                signal("a", "b"), signal("c", "d"), signal("d", "e"),
                bus("b", "e", Side.RIGHT),
            ],
        )
        expected = 1 - (1 - p[0] * p[1]) * (1 - p[2] * p[3] * p[4])
        assert result.system_reliability == pytest.approx(expected, abs=1e-6)
        assert result.chains[0].mode == ReductionMode.SERIES_PARALLEL

    def test_bare_chain_head_is_inactive(self):
        """Without a feeder, block 3 has a left tie but no right tie and drops out."""
        blocks = [
            block("a", 1, 0.9), block("b", 2, 0.8),
            block("c", 3, 0.95), block("d", 4, 0.85), block("e", 5, 0.9),
        ]
        connections = [
            signal("a", "b"), signal("c", "d"), signal("d", "e"),
            bus("a", "c", Side.LEFT), bus("b", "e", Side.RIGHT),
        ]
        assert not is_active("c", blocks, connections)
        result = evaluate_system(blocks, connections)
        assert result.system_reliability == pytest.approx(0.9 * 0.8 * 0.85 * 0.9, abs=1e-6)
        assert result.chains[0].mode == ReductionMode.LEGACY_GROUPS

    def test_k_of_n_equal_blocks(self):
        p = 0.85
        blocks = [block("a", 1, p), block("b", 2, p), block("c", 3, p),
                  block("r1", 4, p, reserve=True), block("r2", 5, p, reserve=True)]
        connections = [signal("a", "b"), signal("b", "c")]
        n, m = 5, 3
        expected = sum(math.comb(n, k) * p ** k * (1 - p) ** (n - k) for k in range(m, n + 1))
        result = evaluate_system(blocks, connections)
        assert result.system_reliability == pytest.approx(expected, abs=1e-6)

    def test_inactive_block_excluded(self):
        """Changing an unconnected block's reliability changes nothing."""
        def run(r):
            return evaluate_system(
                [block("a", 1, 0.9), block("b", 2, 0.8), block("c", 3, r)],
                [signal("a", "b"), bus("a", "c", Side.LEFT)],
            ).system_reliability

        assert run(0.1) == run(0.99) == pytest.approx(0.72, abs=1e-9)

    def test_disconnected_clusters_in_series(self):
        """b is inactive but still feeds c, which forms its own cluster."""
        result = evaluate_system(
            [block("a", 1, 0.9), block("b", 2, 0.5), block("c", 3, 0.7)],
            [signal("b", "c")],
        )
        assert result.system_reliability == pytest.approx(0.63, abs=1e-9)
        assert [c.blocks for c in result.chains] == [["a"], ["c"]]

    def test_rounded_output(self):
        result = evaluate_system(
            [block("a", 1, 1 / 3), block("b", 2, 1 / 3)],
            [signal("a", "b")],
        )
        assert result.system_reliability == 0.111111

    def test_custom_decimals(self):
        result = evaluate_system(
            [block("a", 1, 0.91), block("b", 2, 0.93)],
            [signal("a", "b")],
            settings=EngineSettings(decimal_places=3),
        )
        assert result.system_reliability == 0.846


class TestDetails:
    """Test the per-cluster breakdown."""

    def test_chain_detail(self):
        result = evaluate_system(
            [block("a", 1, 0.9), block("b", 2, 0.8)],
            [signal("a", "b")],
        )
        chain = result.chains[0]
        assert chain.blocks == ["a", "b"]
        assert chain.reliability == pytest.approx(0.72, abs=1e-9)
        assert chain.reserves == []
        assert chain.with_reserve_reliability == chain.reliability
        assert chain.mode == ReductionMode.SERIES_PARALLEL

    def test_chain_with_reserve(self):
        result = evaluate_system(
            [block("a", 1, 0.9), block("b", 2, 0.9), block("r", 3, 0.9, reserve=True)],
            [signal("a", "b")],
        )
        chain = result.chains[0]
        assert chain.reserves == ["r"]
        assert chain.with_reserve_reliability == pytest.approx(0.972, abs=1e-9)
        assert result.system_reliability == pytest.approx(0.972, abs=1e-9)

    def test_parallel_groups(self):
        result = evaluate_system(
            [block("a", 1, 0.9), block("b", 2, 0.8)],
            [bus("a", "b", Side.LEFT), bus("a", "b", Side.RIGHT)],
        ).to_dict()
        assert result["details"]["parallelGroups"] == [{"blocks": ["a", "b"], "reliability": 0.98}]

    def test_to_dict_keys(self):
        result = evaluate_system(
            [block("a", 1, 0.9), block("r", 2, 0.9, reserve=True)], []
        ).to_dict()
        chain = result["details"]["chains"][0]
        assert set(chain) == {"blocks", "reliability", "reserves", "withReserveReliability", "mode"}
        assert result["systemReliability"] == pytest.approx(0.99, abs=1e-9)

    def test_model_objects_accepted(self):
        blocks = [Block("a", 1, 0.9), Block("b", 2, 0.8)]
        connections = [Connection("w", "a", "b", Side.RIGHT, Side.LEFT)]
        assert evaluate_system(blocks, connections).system_reliability == pytest.approx(0.72, abs=1e-9)


class TestIsActive:
    """Test the public activity flag."""

    def test_dict_inputs(self):
        blocks = [block("a", 1, 0.9), block("b", 2, 0.8), block("c", 3, 0.7)]
        connections = [signal("a", "b")]
        assert is_active("a", blocks, connections, False)
        assert is_active("b", blocks, connections, False)
        assert not is_active("c", blocks, connections, False)

    def test_reserve_flag(self):
        assert is_active("anything", [], [], True)

    def test_editor_names(self):
        assert isActive is is_active
        assert evaluateSystem is evaluate_system
        assert renderFormula is render_formula


class TestFormula:
    """Test rendered derivations."""

    def test_series(self):
        formula = render_formula(
            [block("a", 1, 0.9), block("b", 2, 0.8)],
            [signal("a", "b")],
        )
        assert formula.general == "G = p<sub>1</sub> × p<sub>2</sub>"
        assert formula.with_values == "G = 0.9 × 0.8 = 0.72"

    def test_parallel(self):
        formula = render_formula(
            [block("a", 1, 0.9), block("b", 2, 0.8)],
            [bus("a", "b", Side.LEFT), bus("a", "b", Side.RIGHT)],
        )
        assert formula.general == "G = [1 - (1 - p<sub>1</sub>) × (1 - p<sub>2</sub>)]"
        assert formula.with_values == "G = [1 - (1 - 0.9) × (1 - 0.8)] = 0.98"

    def test_clusters_joined(self):
        formula = render_formula(
            [block("a", 1, 0.9), block("b", 2, 0.5), block("c", 3, 0.7)],
            [signal("b", "c")],
        )
        assert formula.general == "G = p<sub>1</sub> × p<sub>3</sub>"
        assert formula.with_values == "G = 0.9 × 0.7 = 0.63"

    def test_redundancy_equal_blocks(self):
        formula = render_formula(
            [block("a", 1, 0.9), block("b", 2, 0.9), block("r", 3, 0.9, reserve=True)],
            [signal("a", "b")],
        )
        assert formula.general == "G<sub>np</sub> = P<sub>2,3</sub> + P<sub>3,3</sub>"
        lines = formula.with_values.split("<br/>")
        assert lines[0] == (
            "P<sub>2,3</sub> = C<sub>3</sub><sup>2</sup> × 0.9<sup>2</sup> × 0.1<sup>1</sup> = 0.243"
        )
        assert lines[1] == (
            "P<sub>3,3</sub> = C<sub>3</sub><sup>3</sup> × 0.9<sup>3</sup> × 0.1<sup>0</sup> = 0.729"
        )
        assert lines[2] == "G<sub>np</sub> = P<sub>2,3</sub> + P<sub>3,3</sub> = 0.243 + 0.729 = 0.972"

    def test_redundancy_unequal_blocks(self):
        formula = render_formula(
            [block("a", 1, 0.9), block("r", 2, 0.8, reserve=True)],
            [],
        )
        assert formula.general == "G<sub>np</sub> = P<sub>1,2</sub> + P<sub>2,2</sub>"
        assert formula.with_values == (
            "P<sub>1,2</sub> = 0.26<br/>"
            "P<sub>2,2</sub> = 0.72<br/>"
            "G<sub>np</sub> = P<sub>1,2</sub> + P<sub>2,2</sub> = 0.26 + 0.72 = 0.98"
        )
        assert "C<sub>" not in formula.with_values

    def test_formula_matches_number(self):
        """The with-values line ends with the evaluated reliability."""
        blocks = [block("a", 1, 0.9), block("b", 2, 0.8), block("c", 3, 0.95)]
        connections = [
            bus("a", "b", Side.LEFT), bus("a", "b", Side.RIGHT),
            signal("a", "c"), signal("b", "c"),
        ]
        value = evaluate_system(blocks, connections).system_reliability
        formula = render_formula(blocks, connections)
        assert formula.with_values.endswith(f"= {value:g}")


class TestSettings:
    """Test engine settings parsing."""

    def test_defaults(self):
        settings = EngineSettings()
        assert settings.decimal_places == 6
        assert settings.max_reduction_passes == 200

    def test_from_dict_falls_back(self):
        settings = EngineSettings.from_dict({"decimal_places": "4", "max_reduction_passes": -3})
        assert settings.decimal_places == 4
        assert settings.max_reduction_passes == 200

    def test_from_dict_not_a_mapping(self):
        assert EngineSettings.from_dict("junk") == EngineSettings()

    def test_mapping_accepted_by_engine(self):
        result = evaluate_system(
            [block("a", 1, 0.91), block("b", 2, 0.93)],
            [signal("a", "b")],
            settings={"decimal_places": 2},
        )
        assert result.system_reliability == 0.85

    def test_decimal_places_out_of_range(self):
        assert EngineSettings.from_dict({"decimal_places": 400}).decimal_places == 6
        result = evaluate_system([block("a", 1, 0.9)], [], settings={"decimal_places": 400})
        assert result.system_reliability == 0.9

    def test_huge_decimal_places_on_instance(self):
        """Rounding caps the precision instead of overflowing."""
        result = evaluate_system([block("a", 1, 0.9)], [], settings=EngineSettings(decimal_places=400))
        assert result.system_reliability == pytest.approx(0.9, abs=1e-12)
        assert render_formula([block("a", 1, 0.9)], [], settings=EngineSettings(decimal_places=400)).general == "G = p<sub>1</sub>"


class TestValidationScript:
    """The bundled validation script passes."""

    def test_main(self, capsys):
        assert run_validation_main() == 0
        assert "ALL CHECKS PASSED" in capsys.readouterr().out
