"""
Unit tests for hierarchy filtering and access scoping.

The key property: after filtering, ancestor roll-ups are recomputed from the
surviving leaves only and agree with aggregating those leaves by hand.
"""

import unittest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from okr_pulse.analysis import HierarchyFilter, department_allowlist_for, filter_hierarchy
from okr_pulse.models import Department, FunctionalObjective, OrgObjective, RAGStatus
from okr_pulse.rag import RAGThresholds
from okr_pulse.scoring import (
    aggregate_progress,
    functional_objective_progress,
    indicator_progress,
    key_result_outcome,
    key_result_progress,
    org_objective_progress,
)
from tests.fixtures.sample_data import create_sample_hierarchy, make_key_result


def _indicator_ids(objectives):
    return sorted(ind.id for obj in objectives for _, _, _, ind in obj.iter_indicators())


def _single_key_result(formula):
    """One KR over indicators at 100%, 40% and 80%, wrapped in a full tree."""
    kr = make_key_result([(100, 100), (40, 100), (80, 100)], formula)
    fo = FunctionalObjective('FO', key_results=[kr])
    return [OrgObjective('OO', departments=[Department('D', functional_objectives=[fo])])]


def _green_key_result(formula):
    pruned = filter_hierarchy(_single_key_result(formula), HierarchyFilter(status='green'))
    return pruned[0].departments[0].functional_objectives[0].key_results[0]


class TestFilterHierarchy(unittest.TestCase):
    """Test suite for filter_hierarchy."""

    def setUp(self):
        self.objectives = create_sample_hierarchy()

    def test_no_filter_keeps_everything(self):
        """Test no filter or an empty filter keeps the hierarchy."""
        self.assertEqual(filter_hierarchy(self.objectives), self.objectives)
        self.assertEqual(filter_hierarchy(self.objectives, HierarchyFilter()), self.objectives)

    def test_status_filter_keeps_matching_leaves(self):
        """Test a status filter keeps matching indicators and their ancestors."""
        result = filter_hierarchy(self.objectives, HierarchyFilter(status=RAGStatus.GREEN))
        self.assertEqual(_indicator_ids(result), ['I1', 'I5', 'I6', 'I7'])
        self.assertEqual([o.id for o in result], ['OO1'])
        self.assertEqual([d.id for d in result[0].departments], ['D1'])

    def test_status_filter_accepts_strings(self):
        """Test a status filter given as a string."""
        result = filter_hierarchy(self.objectives, HierarchyFilter(status='red'))
        self.assertEqual(_indicator_ids(result), ['I11', 'I4', 'I8', 'I9'])

    def test_not_set_filter(self):
        """Test filtering for indicators without data."""
        result = filter_hierarchy(self.objectives, HierarchyFilter(status=RAGStatus.NOT_SET))
        self.assertEqual(_indicator_ids(result), ['I10', 'I12', 'I3'])

    def test_source_is_not_modified(self):
        """Test filtering leaves the source hierarchy untouched."""
        before = _indicator_ids(self.objectives)
        filter_hierarchy(self.objectives, HierarchyFilter(status=RAGStatus.GREEN))
        self.assertEqual(_indicator_ids(self.objectives), before)

    def test_filtered_aggregate_matches_manual_computation(self):
        """Test filtered roll-ups match aggregating the surviving leaves by hand."""
        result = filter_hierarchy(self.objectives, HierarchyFilter(status=RAGStatus.GREEN))
        fo1, fo2 = result[0].departments[0].functional_objectives

        # FO1 = AVG(KR1 = AVG(I1), KR2 = MIN(I5))
        kr1_leaves = [indicator_progress(i) for i in fo1.key_results[0].indicators]
        kr2_leaves = [indicator_progress(i) for i in fo1.key_results[1].indicators]
        manual_fo1 = aggregate_progress(
            [aggregate_progress(kr1_leaves, 'AVG'), aggregate_progress(kr2_leaves, 'MIN')], 'AVG')
        self.assertAlmostEqual(functional_objective_progress(fo1), manual_fo1)
        self.assertAlmostEqual(manual_fo1, 85)

        # FO2 = 0.5 * KR3 + 0.5 * KR4, KR4 keeps only I7 and its formula
        # weight for that slot
        self.assertAlmostEqual(key_result_progress(fo2.key_results[1]), 100)
        self.assertAlmostEqual(functional_objective_progress(fo2), 95)
        self.assertAlmostEqual(org_objective_progress(result[0]), 90)

    def test_filtered_differs_from_global(self):
        """Test the filtered aggregate differs from the global one."""
        result = filter_hierarchy(self.objectives, HierarchyFilter(status=RAGStatus.GREEN))
        self.assertNotAlmostEqual(org_objective_progress(result[0]),
                                  org_objective_progress(self.objectives[0]))

    def test_customer_filter(self):
        """Test filtering by linked customer."""
        result = filter_hierarchy(self.objectives, HierarchyFilter(customer_id='C2'))
        self.assertEqual(_indicator_ids(result), ['I2', 'I3', 'I4'])
        # KR1 = 60 (I3 has no data), KR2 = MIN(40)
        self.assertAlmostEqual(org_objective_progress(result[0]), 50)

    def test_feature_filter(self):
        """Test filtering by linked feature."""
        result = filter_hierarchy(self.objectives, HierarchyFilter(feature_id='F2'))
        self.assertEqual(_indicator_ids(result), ['I2', 'I6'])

    def test_combined_leaf_filters(self):
        """Test status, customer and feature filters together."""
        result = filter_hierarchy(self.objectives,
                                  HierarchyFilter(status='green', customer_id='C1', feature_id='F1'))
        self.assertEqual(_indicator_ids(result), ['I1'])

    def test_department_allowlist(self):
        """Test the department allowlist keeps only listed departments."""
        result = filter_hierarchy(self.objectives, HierarchyFilter(department_ids=['D2']))
        self.assertEqual([o.id for o in result], ['OO1'])
        self.assertEqual([d.id for d in result[0].departments], ['D2'])
        self.assertAlmostEqual(org_objective_progress(result[0]), 60)

    def test_allowlist_keeps_departments_without_leaves(self):
        """Test an allowlist alone keeps departments with no leaves."""
        result = filter_hierarchy(self.objectives, HierarchyFilter(department_ids=['D4']))
        self.assertEqual([o.id for o in result], ['OO3'])

    def test_empty_allowlist_removes_everything(self):
        """Test an empty allowlist removes every objective."""
        self.assertEqual(filter_hierarchy(self.objectives, HierarchyFilter(department_ids=[])), [])

    def test_thresholds_drive_status_filter(self):
        """Test custom thresholds change which leaves match."""
        strict = RAGThresholds(green_min=95, amber_min=85)
        result = filter_hierarchy(self.objectives, HierarchyFilter(status='green'), strict)
        self.assertEqual(_indicator_ids(result), ['I7'])


class TestStableSlots(unittest.TestCase):
    """Test suite for formula references on pruned copies."""

    def test_survivors_keep_their_slots(self):
        """Test surviving indicators record their slot in the unfiltered KR."""
        kept = _green_key_result(None)
        self.assertEqual([i.id for i in kept.indicators], ['K1', 'K3'])
        self.assertEqual([i.position for i in kept.indicators], [1, 3])

    def test_positional_alias_keeps_its_indicator(self):
        """Test KPI3 still names the third indicator after KPI2 is pruned."""
        kept = _green_key_result("0.7 * KPI1 + 0.3 * KPI3")
        outcome = key_result_outcome(kept)
        self.assertFalse(outcome.fell_back)
        self.assertAlmostEqual(outcome.value, 0.7 * 100 + 0.3 * 80)

    def test_reference_to_pruned_indicator_falls_back(self):
        """Test a formula naming a pruned indicator averages the survivors."""
        kept = _green_key_result("0.7 * KPI1 + 0.3 * KPI2")
        outcome = key_result_outcome(kept)
        self.assertTrue(outcome.fell_back)
        self.assertAlmostEqual(outcome.value, 90)

    def test_formula_weights_follow_surviving_slots(self):
        """Test WEIGHTED(...) weights stay attached to their original indicators."""
        kept = _green_key_result("WEIGHTED(1, 2, 3)")
        outcome = key_result_outcome(kept)
        self.assertFalse(outcome.fell_back)
        self.assertEqual(outcome.kind.weights, (1.0, 3.0))
        self.assertAlmostEqual(outcome.value, (100 * 1 + 80 * 3) / 4)

    def test_refiltering_keeps_first_slots(self):
        """Test filtering a pruned copy again keeps the original slots."""
        once = filter_hierarchy(_single_key_result(None), HierarchyFilter(status='green'))
        twice = filter_hierarchy(once, HierarchyFilter(status='green'))
        kept = twice[0].departments[0].functional_objectives[0].key_results[0]
        self.assertEqual([i.position for i in kept.indicators], [1, 3])


class TestDepartmentAllowlist(unittest.TestCase):
    """Test suite for role-based department scoping."""

    def test_full_access_roles(self):
        """Test admins and department heads get no allowlist."""
        self.assertIsNone(department_allowlist_for('admin', ['D1']))
        self.assertIsNone(department_allowlist_for('department_head'))
        self.assertIsNone(department_allowlist_for('Admin'))

    def test_restricted_roles(self):
        """Test other roles see only their accessible departments."""
        self.assertEqual(department_allowlist_for('csm', ['D1', 'D2']), ['D1', 'D2'])
        self.assertEqual(department_allowlist_for('viewer'), [])
        self.assertEqual(department_allowlist_for(None, ['D3']), ['D3'])


if __name__ == '__main__':
    unittest.main()
