"""
Property-based tests for the rating engine.
"""

from hypothesis import given, settings, strategies as st

from src.services.elo import match_outcome, apply_floor, streak_bonus, MIN_RATING


average_strategy = st.floats(min_value=1, max_value=5000, allow_nan=False)
k_strategy = st.integers(min_value=1, max_value=100)


class TestRatingUpdate:

    @settings(max_examples=200)
    @given(winner_avg=average_strategy, loser_avg=average_strategy, k=k_strategy)
    def test_winner_never_loses_and_loser_never_gains(self, winner_avg, loser_avg, k):
        winner, loser = match_outcome(winner_avg, loser_avg, k)
        assert 0 <= winner.delta <= k
        assert -k <= loser.delta <= 0

    @settings(max_examples=200)
    @given(winner_avg=average_strategy, loser_avg=average_strategy, k=k_strategy)
    def test_deltas_are_symmetric_up_to_rounding(self, winner_avg, loser_avg, k):
        winner, loser = match_outcome(winner_avg, loser_avg, k)
        assert 0 <= winner.delta + loser.delta <= 1

    @settings(max_examples=200)
    @given(rating=st.integers(min_value=1, max_value=3000),
           opponent=average_strategy, k=k_strategy)
    def test_rating_never_drops_below_floor(self, rating, opponent, k):
        _, loser = match_outcome(opponent, rating, k)
        assert apply_floor(rating + loser.delta) >= MIN_RATING

    @settings(max_examples=100)
    @given(streak=st.integers(min_value=0, max_value=50),
           threshold=st.integers(min_value=1, max_value=10),
           per_win=st.integers(min_value=0, max_value=20),
           cap=st.integers(min_value=0, max_value=100))
    def test_streak_bonus_bounded(self, streak, threshold, per_win, cap):
        bonus = streak_bonus(streak, threshold, per_win, cap)
        assert 0 <= bonus <= cap
        if streak < threshold:
            assert bonus == 0
