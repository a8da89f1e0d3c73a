"""Unit tests for stage results and the run report."""

from tileortho.mosaic.results import Failure, RunReport, StageResult


class TestStageResult:
    """Test suite for StageResult."""

    def test_success(self):
        """Test a successful result is ok and not degraded."""
        result = StageResult.success(3)
        assert result.ok
        assert not result.degraded

    def test_partial(self):
        """Test a value with skipped units is degraded."""
        result = StageResult(value=[1])
        result.add_failure("X0Y0", "boom")
        assert not result.ok
        assert result.degraded
        assert result.failures == [Failure("X0Y0", "boom")]

    def test_failure(self):
        """Test a failure carries no value."""
        result = StageResult.failure("traj", "too short")
        assert result.value is None
        assert str(result.failures[0]).startswith("traj")


class TestRunReport:
    """Test suite for RunReport."""

    def test_record_sets_flag(self):
        """Test recording a degraded result raises the error flag for good."""
        report = RunReport(tiles_total=2)
        report.record(StageResult.success(1))
        assert not report.error_flag

        report.record(StageResult.failure("X0Y0", "boom"))
        report.record(StageResult.success(2))

        assert report.error_flag
        assert len(report.failures) == 1

    def test_mark_failed(self):
        """Test a failed tile is listed once and flagged."""
        report = RunReport(tiles_total=2)
        report.mark_exported("X0Y0")
        report.mark_failed("X0Y1", "no mesh")
        report.mark_failed("X0Y1")

        assert report.tiles_failed == ["X0Y1"]
        assert report.error_flag
        assert report.summary().startswith("1/2 tiles exported")
