# ============================================================================
# FILE: tests/unit/test_analysis.py
# ============================================================================
"""
Unit tests for criteria evaluation, trending and plots
"""

import dataclasses

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest

from delta4qa.analysis import (
    TREND_COLUMNS,
    append_trending_csv,
    beams_frame,
    classify,
    classify_beams,
    evaluate_criteria,
    plot_gamma_table,
    plot_pass_rate_trending,
    reports_frame,
    summarize_report,
)


class TestCriteria:
    """Tests for evaluate_criteria() and classify()"""

    def test_modern_report_passes(self, modern_report):
        """Test pass rates against the report's own limits"""
        df = evaluate_criteria(modern_report)
        assert list(df["metric"]) == ["Dose Deviation", "DTA", "Gamma"]
        assert list(df["status"]) == ["PASS", "PASS", "PASS"]

        status, worst = classify(df)
        assert status == "PASS"
        assert worst == pytest.approx(4.1)

    def test_failing_metric(self, modern_report):
        """Test one failing metric fails the report"""
        report = dataclasses.replace(modern_report, gamma_pass_rate=93.0)
        status, worst = classify(evaluate_criteria(report))
        assert status == "FAIL"
        assert worst == pytest.approx(-2.0)

    def test_unknown_without_margins(self):
        """Test UNKNOWN when nothing could be evaluated"""
        df = pd.DataFrame({"margin": [np.nan], "status": ["UNKNOWN"]})
        status, worst = classify(df)
        assert status == "UNKNOWN"
        assert np.isnan(worst)

    def test_classify_requires_columns(self):
        """Test a frame without margin/status is refused"""
        with pytest.raises(ValueError):
            classify(pd.DataFrame({"metric": ["Gamma"]}))

    def test_classify_beams(self, modern_report):
        """Test per-beam Gamma verdicts"""
        df = classify_beams(modern_report)
        assert list(df["name"]) == ["Arc1", "Arc2"]
        assert list(df["status"]) == ["PASS", "PASS"]

    def test_beams_frame_empty(self, legacy_report):
        """Test a report without beams gives an empty frame with columns"""
        df = beams_frame(legacy_report)
        assert df.empty
        assert "gammaPassRate" in df.columns


class TestTrending:
    """Tests for trend rows and the trend CSV"""

    def test_summarize_report(self, legacy_report):
        """Test one trend row per report dated by measurement"""
        row = summarize_report(legacy_report)
        assert row["Date"] == "2017-01-03"
        assert row["ID"] == "12345"
        assert row["gammaPassRate"] == pytest.approx(97.3)
        assert row["status"] == "PASS"

    def test_reports_frame(self, legacy_report, modern_report):
        """Test the columns of the summary frame"""
        df = reports_frame([legacy_report, modern_report])
        assert list(df.columns) == TREND_COLUMNS
        assert len(df) == 2

    def test_append_dedups_and_sorts(self, tmp_path, legacy_report, modern_report):
        """Test re-appending a run replaces it and rows stay in date order"""
        path = tmp_path / "trend" / "delta4.csv"
        append_trending_csv(path, [summarize_report(modern_report)])

        rerun = summarize_report(legacy_report)
        append_trending_csv(path, [rerun])
        rerun["gammaPassRate"] = 99.9
        df = append_trending_csv(path, [rerun])

        assert path.exists()
        assert list(df["Date"]) == ["2017-01-03", "2018-03-15"]
        assert df.loc[0, "gammaPassRate"] == pytest.approx(99.9)

        saved = pd.read_csv(path, dtype={"ID": str})
        assert list(saved["ID"]) == ["12345", "MRN0001"]


class TestPlots:
    """Tests for trend and Gamma table figures"""

    def test_trend_plot(self, legacy_report, modern_report):
        """Test a trend figure is produced"""
        fig = plot_pass_rate_trending(reports_frame([legacy_report, modern_report]))
        assert isinstance(fig, plt.Figure)
        plt.close(fig)

    def test_trend_plot_empty(self):
        """Test an empty history still gives a figure"""
        fig = plot_pass_rate_trending(pd.DataFrame(columns=TREND_COLUMNS))
        assert isinstance(fig, plt.Figure)
        plt.close(fig)

    def test_trend_plot_missing_metric(self):
        """Test an unknown metric column is refused"""
        with pytest.raises(ValueError):
            plot_pass_rate_trending(pd.DataFrame({"Date": []}), metric="gammaPassRate")

    def test_gamma_table_plot(self, modern_report):
        """Test the Gamma table heat map"""
        fig = plot_gamma_table(modern_report.gamma_table)
        assert isinstance(fig, plt.Figure)
        plt.close(fig)
