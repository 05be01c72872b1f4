"""Pure progress folding tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from algoreview.gamification.ledger import ProgressSnapshot, fold_job

NOW = datetime(2026, 5, 4, 12, 0, tzinfo=timezone.utc)


class TestFoldJob:
    def test_first_job_reference_example(self):
        """New user, 80% improvement, quality 90."""
        after = fold_job(ProgressSnapshot(), 80, 90, NOW)
        assert (after.level, after.experience, after.experience_to_next_level) == (1, 50, 100)
        assert after.total_jobs == 1
        assert after.optimized_jobs == 1
        assert after.average_improvement == 80
        assert after.average_quality == 90
        assert after.current_streak == 1
        assert after.longest_streak == 1
        assert after.last_activity_at == NOW
        assert after.score == 655

    def test_averages_never_drift(self):
        snapshot = ProgressSnapshot()
        improvements = [80, 10, 0, 55.5, 99, 33.3]
        qualities = [90, 60, 70, 75, 88, 91]
        for imp, quality in zip(improvements, qualities):
            snapshot = fold_job(snapshot, imp, quality, NOW)

        assert snapshot.total_jobs == 6
        assert snapshot.total_improvement == sum(improvements)
        assert snapshot.average_improvement == sum(improvements) / 6
        assert abs(snapshot.average_quality - sum(qualities) / 6) < 1e-9
        assert snapshot.optimized_jobs == 5

    def test_low_improvement_awards_thirty(self):
        after = fold_job(ProgressSnapshot(), 20, 50, NOW)
        assert after.experience == 30

    def test_level_up_and_streak_across_days(self):
        snapshot = ProgressSnapshot()
        for day in range(3):
            snapshot = fold_job(snapshot, 90, 80, NOW + timedelta(days=day))
        assert snapshot.level == 2
        assert snapshot.experience == 50
        assert snapshot.experience_to_next_level == 150
        assert snapshot.current_streak == 3

    def test_input_snapshot_untouched(self):
        before = ProgressSnapshot()
        fold_job(before, 80, 90, NOW)
        assert before == ProgressSnapshot()
