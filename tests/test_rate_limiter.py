import pytest

from warden.models import Verdict
from warden.rate_limiter import RateLimiter


class TestRateLimiter:
    def test_messages_up_to_threshold_are_allowed(self):
        limiter = RateLimiter(threshold=5, window_seconds=10.0)
        verdicts = [limiter.check_and_record("alice", 100.0 + i) for i in range(5)]
        assert verdicts == [Verdict.ALLOWED] * 5

    def test_message_past_threshold_is_spam(self):
        limiter = RateLimiter(threshold=5, window_seconds=10.0)
        for i in range(5):
            limiter.check_and_record("alice", 100.0 + i)
        assert limiter.check_and_record("alice", 105.0) is Verdict.SPAM_DETECTED

    def test_verdict_is_reevaluated_not_latched(self):
        limiter = RateLimiter(threshold=2, window_seconds=10.0)
        results = [limiter.check_and_record("alice", 1.0) for _ in range(4)]
        assert results == [Verdict.ALLOWED, Verdict.ALLOWED, Verdict.SPAM_DETECTED, Verdict.SPAM_DETECTED]

    def test_window_resets_after_gap(self):
        limiter = RateLimiter(threshold=5, window_seconds=10.0)
        for i in range(8):
            limiter.check_and_record("alice", 100.0 + i * 0.5)
        assert limiter.window("alice").count == 8

        assert limiter.check_and_record("alice", 110.0) is Verdict.ALLOWED
        window = limiter.window("alice")
        assert window.count == 1
        assert window.window_start == 110.0

    def test_message_just_inside_window_still_counts(self):
        limiter = RateLimiter(threshold=1, window_seconds=10.0)
        limiter.check_and_record("alice", 0.0)
        assert limiter.check_and_record("alice", 9.999) is Verdict.SPAM_DETECTED

    def test_silence_does_not_reset_window_without_a_message(self):
        limiter = RateLimiter(threshold=5, window_seconds=10.0)
        limiter.check_and_record("alice", 0.0)
        assert limiter.window("alice").window_start == 0.0
        assert len(limiter) == 1

    def test_senders_are_counted_independently(self):
        limiter = RateLimiter(threshold=1, window_seconds=10.0)
        assert limiter.check_and_record("alice", 0.0) is Verdict.ALLOWED
        assert limiter.check_and_record("bob", 0.0) is Verdict.ALLOWED
        assert limiter.check_and_record("alice", 1.0) is Verdict.SPAM_DETECTED
        assert limiter.window("bob").count == 1

    def test_tumbling_window_allows_burst_across_boundary(self):
        limiter = RateLimiter(threshold=5, window_seconds=10.0)
        first = [limiter.check_and_record("alice", 9.0) for _ in range(5)]
        second = [limiter.check_and_record("alice", 19.0) for _ in range(5)]
        assert first + second == [Verdict.ALLOWED] * 10

    def test_sweep_removes_only_expired_windows(self):
        limiter = RateLimiter(threshold=5, window_seconds=10.0)
        limiter.check_and_record("old", 0.0)
        limiter.check_and_record("fresh", 15.0)

        removed = limiter.sweep(now=20.0)

        assert removed == 1
        assert limiter.window("old") is None
        assert limiter.window("fresh") is not None

    def test_sweep_does_not_change_next_verdict(self):
        limiter = RateLimiter(threshold=1, window_seconds=10.0)
        limiter.check_and_record("alice", 0.0)
        limiter.check_and_record("alice", 1.0)
        limiter.sweep(now=12.0)
        assert limiter.check_and_record("alice", 12.0) is Verdict.ALLOWED
        assert limiter.window("alice").count == 1

    @pytest.mark.parametrize("threshold,window", [(0, 10.0), (5, 0.0), (5, -1.0)])
    def test_invalid_configuration_rejected(self, threshold, window):
        with pytest.raises(ValueError):
            RateLimiter(threshold=threshold, window_seconds=window)
