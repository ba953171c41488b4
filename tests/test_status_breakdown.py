"""
Unit tests for status breakdowns and compliance tracking.
"""

import unittest
from pathlib import Path
import sys

import pandas as pd

sys.path.insert(0, str(Path(__file__).parent.parent))

from okr_pulse.analysis import (
    BreakdownScope,
    StatusBreakdown,
    breakdown_by,
    compliance_summary,
    count_statuses,
    customer_compliance,
    flatten_indicators,
    previous_period,
)
from okr_pulse.core.config import INDICATOR_FRAME_COLUMNS
from okr_pulse.rag import RAGThresholds
from tests.fixtures.sample_data import (
    create_compliance_inputs,
    create_indicator_frame,
    create_sample_hierarchy,
)


class TestFlattenIndicators(unittest.TestCase):
    """Test suite for flatten_indicators."""

    def setUp(self):
        self.frame = flatten_indicators(create_sample_hierarchy())

    def test_one_row_per_indicator(self):
        """Test the frame has one row per indicator and fixed columns."""
        self.assertEqual(len(self.frame), 12)
        self.assertEqual(list(self.frame.columns), INDICATOR_FRAME_COLUMNS)

    def test_hierarchy_ids_and_status(self):
        """Test each row carries its ancestors, progress and status."""
        row = self.frame.set_index('indicator_id').loc['I9']
        self.assertEqual(row['department_id'], 'D2')
        self.assertEqual(row['key_result_id'], 'KR5')
        self.assertEqual(row['business_outcome'], 'Retention')
        self.assertAlmostEqual(row['progress'], 50)
        self.assertEqual(row['status'], 'red')

    def test_unset_indicators_are_not_set(self):
        """Test indicators without data are marked not set."""
        statuses = self.frame.set_index('indicator_id')['status']
        self.assertEqual(statuses['I3'], 'not-set')
        self.assertEqual(statuses['I12'], 'not-set')
        self.assertEqual(statuses['I11'], 'red')

    def test_custom_thresholds(self):
        """Test statuses in the frame follow custom thresholds."""
        frame = flatten_indicators(create_sample_hierarchy(), RAGThresholds(95, 85))
        self.assertEqual(frame.set_index('indicator_id')['status']['I1'], 'amber')

    def test_empty_hierarchy(self):
        """Test an empty hierarchy gives an empty frame with columns."""
        frame = flatten_indicators([])
        self.assertTrue(frame.empty)
        self.assertEqual(list(frame.columns), INDICATOR_FRAME_COLUMNS)


class TestCountStatuses(unittest.TestCase):
    """Test suite for count_statuses and scopes."""

    def setUp(self):
        self.objectives = create_sample_hierarchy()
        self.frame = flatten_indicators(self.objectives)

    def test_global_counts(self):
        """Test status counts and completion across the whole hierarchy."""
        counts = count_statuses(self.frame)
        self.assertEqual((counts.green, counts.amber, counts.red, counts.not_set), (4, 1, 4, 3))
        self.assertEqual(counts.completed, 9)
        self.assertEqual(counts.pending, 3)
        self.assertEqual(counts.completion_pct, 75.0)

    def test_accepts_objectives(self):
        """Test counting works on objects as well as frames."""
        self.assertEqual(count_statuses(self.objectives), count_statuses(self.frame))

    def test_department_scope(self):
        """Test counts limited to selected departments."""
        counts = count_statuses(self.frame, BreakdownScope(department_ids=['D2', 'D3']))
        self.assertEqual((counts.green, counts.amber, counts.red, counts.not_set), (0, 0, 2, 2))
        self.assertEqual(counts.completion_pct, 50.0)

    def test_customer_scope(self):
        """Test counts limited to one customer."""
        counts = count_statuses(self.frame, BreakdownScope(customer_id='C1'))
        self.assertEqual((counts.green, counts.amber, counts.red, counts.not_set), (3, 1, 1, 0))
        self.assertEqual(counts.completion_pct, 100.0)

    def test_feature_scope(self):
        """Test counts limited to one feature."""
        counts = count_statuses(self.frame, BreakdownScope(feature_id='F1'))
        self.assertEqual((counts.green, counts.amber, counts.red, counts.not_set), (1, 0, 2, 0))

    def test_period_scope(self):
        """Test counts limited to one period."""
        counts = count_statuses(self.frame, BreakdownScope(period='2026-09'))
        self.assertEqual((counts.green, counts.amber, counts.red), (1, 1, 1))

    def test_combined_scope(self):
        """Test department and customer scopes together."""
        scope = BreakdownScope(department_ids=['D1'], customer_id='C2')
        counts = count_statuses(self.frame, scope)
        self.assertEqual((counts.amber, counts.red, counts.not_set), (1, 1, 1))

    def test_empty_scope_has_zero_completion(self):
        """Test a scope matching nothing has 0% completion."""
        counts = count_statuses(self.frame, BreakdownScope(customer_id='nobody'))
        self.assertEqual(counts, StatusBreakdown())
        self.assertEqual(counts.completion_pct, 0.0)

    def test_to_dict(self):
        """Test the dict form includes the derived totals."""
        result = StatusBreakdown(green=1, amber=1, red=0, not_set=2).to_dict()
        self.assertEqual(result['completed'], 2)
        self.assertEqual(result['pending'], 2)
        self.assertEqual(result['completion_pct'], 50.0)


class TestBreakdownBy(unittest.TestCase):
    """Test suite for grouped tallies."""

    def test_by_department(self):
        """Test per-department status tallies."""
        table = breakdown_by(create_indicator_frame(), 'department_id')
        self.assertEqual(table.loc['D1', 'green'], 2)
        self.assertEqual(table.loc['D1', 'red'], 1)
        self.assertEqual(table.loc['D1', 'amber'], 0)
        self.assertEqual(table.loc['D2', 'not_set'], 1)
        self.assertEqual(table.loc['D2', 'completion_pct'], 50.0)
        self.assertEqual(table.loc['D1', 'completion_pct'], 100.0)

    def test_unknown_column(self):
        """Test grouping by a missing column raises ValueError."""
        with self.assertRaises(ValueError):
            breakdown_by(create_indicator_frame(), 'customer_name')

    def test_empty_frame(self):
        """Test grouping an empty frame."""
        table = breakdown_by(flatten_indicators([]), 'department_id')
        self.assertTrue(table.empty)
        self.assertIn('completion_pct', table.columns)


class TestCompliance(unittest.TestCase):
    """Test suite for per-customer score-entry compliance."""

    def setUp(self):
        self.rows = customer_compliance(**create_compliance_inputs()).set_index('customer_id')

    def test_expected_counts(self):
        """Test expected entries per customer."""
        self.assertEqual(self.rows['expected'].to_dict(), {'C1': 5, 'C2': 3, 'C3': 2, 'C4': 3})

    def test_filled_counts_distinct_indicators(self):
        """Test filled entries count each indicator once."""
        self.assertEqual(self.rows['filled'].to_dict(), {'C1': 5, 'C2': 1, 'C3': 0, 'C4': 0})

    def test_statuses(self):
        """Test complete, partial and pending customers."""
        self.assertEqual(self.rows['status'].to_dict(),
                         {'C1': 'complete', 'C2': 'partial', 'C3': 'pending', 'C4': 'pending'})

    def test_averages(self):
        """Test current and previous period averages."""
        self.assertEqual(self.rows.loc['C1', 'current_avg'], 70)
        self.assertEqual(self.rows.loc['C1', 'previous_avg'], 50)
        self.assertEqual(self.rows.loc['C2', 'current_avg'], 50)
        self.assertTrue(pd.isna(self.rows.loc['C3', 'current_avg']))
        self.assertEqual(self.rows.loc['C3', 'previous_avg'], 100)

    def test_unassigned_customer(self):
        """Test a customer without a CSM is Unassigned."""
        self.assertEqual(self.rows.loc['C4', 'csm_name'], 'Unassigned')

    def test_no_expected_links_but_filled_is_complete(self):
        """Test a customer with scores but no links is complete."""
        rows = customer_compliance(
            customers=[{'id': 'C9'}],
            customer_features=[],
            indicator_feature_links=[],
            scores=[{'indicator_id': 'I1', 'customer_id': 'C9', 'value': 1, 'period': '2026-09'}],
            period='2026-09',
        )
        self.assertEqual(rows.loc[0, 'status'], 'complete')

    def test_summary(self):
        """Test the compliance summary totals and CSM lists."""
        summary = compliance_summary(customer_compliance(**create_compliance_inputs()))
        self.assertEqual(summary['total_customers'], 4)
        self.assertEqual(summary['completed_customers'], 2)
        self.assertEqual(summary['pending_customers'], 2)
        self.assertEqual(summary['completion_pct'], 50)
        self.assertEqual(summary['submitted_csms'], ['Alice', 'Bob'])
        self.assertEqual(summary['pending_csms'], ['Dave'])

    def test_summary_of_nothing(self):
        """Test the summary of no customers."""
        summary = compliance_summary(customer_compliance([], {}, [], [], '2026-09'))
        self.assertEqual(summary['completion_pct'], 0)

    def test_previous_period(self):
        """Test the previous month, including across a year."""
        self.assertEqual(previous_period('2026-09'), '2026-08')
        self.assertEqual(previous_period('2026-01'), '2025-12')


if __name__ == '__main__':
    unittest.main()
