"""
Unit tests for RAG classification.

Tests both classification modes (percentage bands and the Key Result
indicator mix), threshold validation and the status/score helpers.
"""

import unittest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from okr_pulse.rag import (
    RAGStatus,
    RAGThresholds,
    band_to_rag,
    kr_status_from_indicator_mix,
    progress_to_rag,
    rag_label,
    rag_to_score,
    resolve_thresholds,
    score_to_rag,
    status_average_to_rag,
)

G, A, R, N = RAGStatus.GREEN, RAGStatus.AMBER, RAGStatus.RED, RAGStatus.NOT_SET


class TestPercentageBands(unittest.TestCase):
    """Test suite for progress_to_rag / score_to_rag."""

    def test_default_bands(self):
        """Test the default 76 / 51 band boundaries."""
        self.assertEqual(progress_to_rag(76), G)
        self.assertEqual(progress_to_rag(75), A)
        self.assertEqual(progress_to_rag(51), A)
        self.assertEqual(progress_to_rag(50), R)
        self.assertEqual(progress_to_rag(None), N)

    def test_nan_is_not_set(self):
        """Test NaN progress classifies as not set."""
        self.assertEqual(progress_to_rag(float('nan')), N)

    def test_zero_with_data_is_red(self):
        """Test 0% with data is red."""
        self.assertEqual(progress_to_rag(0), R)

    def test_above_target_is_green(self):
        """Test progress above 100 is green."""
        self.assertEqual(progress_to_rag(180), G)

    def test_score_to_rag_uses_defaults(self):
        """Test score_to_rag with the default bands."""
        self.assertEqual(score_to_rag(76), G)
        self.assertEqual(score_to_rag(60), A)
        self.assertEqual(score_to_rag(None), N)

    def test_injected_thresholds(self):
        """Test thresholds passed as objects or dicts."""
        strict = RAGThresholds(green_min=90, amber_min=70)
        self.assertEqual(progress_to_rag(85, strict), A)
        self.assertEqual(progress_to_rag(69.9, strict), R)
        self.assertEqual(progress_to_rag(85, {'green_min': 80, 'amber_min': 60}), G)

    def test_admin_table_shape(self):
        """Test thresholds built from the admin settings row."""
        thresholds = RAGThresholds.from_dict({'green_threshold': 80, 'amber_threshold': 40})
        self.assertEqual(thresholds.to_dict(), {'green_min': 80.0, 'amber_min': 40.0})
        self.assertEqual(thresholds.classify(45), A)


class TestThresholdValidation(unittest.TestCase):
    """Test suite for RAGThresholds construction."""

    def test_inverted_bands_raise(self):
        """Test an amber band above green raises ValueError."""
        with self.assertRaises(ValueError):
            RAGThresholds(green_min=50, amber_min=70)

    def test_negative_and_non_numeric_raise(self):
        """Test negative and non-numeric bands raise ValueError."""
        with self.assertRaises(ValueError):
            RAGThresholds(green_min=50, amber_min=-1)
        with self.assertRaises(ValueError):
            RAGThresholds(green_min='high', amber_min=50)

    def test_equal_bands_allowed(self):
        """Test equal bands leave no amber range."""
        thresholds = RAGThresholds(green_min=60, amber_min=60)
        self.assertEqual(thresholds.classify(60), G)
        self.assertEqual(thresholds.classify(59), R)

    def test_resolve_degrades_malformed_config(self):
        """Test malformed config falls back to defaults with a warning."""
        with self.assertLogs('okr_pulse.rag.thresholds', level='WARNING'):
            thresholds = resolve_thresholds({'green_min': 10, 'amber_min': 90})
        self.assertEqual(thresholds, RAGThresholds())

    def test_resolve_passes_through(self):
        """Test resolve_thresholds keeps objects and defaults None."""
        custom = RAGThresholds(80, 60)
        self.assertIs(resolve_thresholds(custom), custom)
        self.assertEqual(resolve_thresholds(None), RAGThresholds())

    def test_malformed_config_never_breaks_classification(self):
        """Test classification still works with a broken config."""
        self.assertEqual(progress_to_rag(76, {'green_min': 'x'}), G)


class TestIndicatorMix(unittest.TestCase):
    """Test suite for the Key Result indicator-proportion rule."""

    def test_two_of_three_red(self):
        """Test two red indicators out of three make the KR red."""
        self.assertEqual(kr_status_from_indicator_mix([R, R, G]), R)

    def test_quarter_red_quarter_amber_is_green(self):
        """Test a quarter red and a quarter amber stays green."""
        self.assertEqual(kr_status_from_indicator_mix([R, A, G, G]), G)

    def test_thirty_percent_red_is_amber(self):
        """Test 30% red indicators make the KR amber."""
        self.assertEqual(kr_status_from_indicator_mix([R, R, R] + [G] * 7), A)

    def test_half_amber_is_amber(self):
        """Test half amber indicators make the KR amber."""
        self.assertEqual(kr_status_from_indicator_mix([A, A, G, G]), A)

    def test_half_red_is_red(self):
        """Test half red indicators make the KR red."""
        self.assertEqual(kr_status_from_indicator_mix([R, G]), R)

    def test_not_set_indicators_are_not_counted(self):
        """Test not-set indicators are left out of the proportions."""
        self.assertEqual(kr_status_from_indicator_mix([R, G, G, N, N, N]), A)
        self.assertEqual(kr_status_from_indicator_mix([N, N]), N)
        self.assertEqual(kr_status_from_indicator_mix([]), N)

    def test_accepts_strings(self):
        """Test statuses given as strings in any case."""
        self.assertEqual(kr_status_from_indicator_mix(['red', 'Red', 'green']), R)

    def test_can_disagree_with_percentage_mode(self):
        """Test the mix rule can differ from the blended percentage."""
        # 100% and 20%: blended 60 is amber, but half the indicators are red
        blended = progress_to_rag((100 + 20) / 2)
        mix = kr_status_from_indicator_mix([progress_to_rag(100), progress_to_rag(20)])
        self.assertEqual(blended, A)
        self.assertEqual(mix, R)


class TestStatusHelpers(unittest.TestCase):
    """Test suite for score/label/band helpers."""

    def test_rag_to_score(self):
        """Test the numeric score of each status."""
        self.assertEqual([rag_to_score(s) for s in (G, A, R, N)], [85, 55, 25, 0])

    def test_labels(self):
        """Test the display label of each status."""
        self.assertEqual(rag_label(G), 'On Track')
        self.assertEqual(rag_label('amber'), 'At Risk')
        self.assertEqual(rag_label(R), 'Critical')
        self.assertEqual(rag_label(None), 'Not Set')

    def test_band_to_rag(self):
        """Test fractional band values map to statuses."""
        self.assertEqual(band_to_rag(1), G)
        self.assertEqual(band_to_rag(0.5), A)
        self.assertEqual(band_to_rag(0), R)
        self.assertEqual(band_to_rag(None), N)

    def test_status_average(self):
        """Test the average of status scores maps back to a status."""
        # (100 + 60) / 2 = 80 -> green; (60 + 30) / 2 = 45 -> red
        self.assertEqual(status_average_to_rag([G, A]), G)
        self.assertEqual(status_average_to_rag([A, R]), R)
        self.assertEqual(status_average_to_rag([A, A, N]), A)
        self.assertEqual(status_average_to_rag([N]), N)

    def test_from_value(self):
        """Test parsing statuses from strings."""
        self.assertEqual(RAGStatus.from_value('not_set'), N)
        self.assertEqual(RAGStatus.from_value(' Green '), G)
        with self.assertRaises(ValueError):
            RAGStatus.from_value('purple')


if __name__ == '__main__':
    unittest.main()
