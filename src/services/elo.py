import math
from dataclasses import dataclass
from typing import Iterable

MIN_RATING = 1


def round_half_up(value: float) -> int:
    """Arredonda .5 para cima (o round() do Python arredonda para o par)."""
    return int(math.floor(value + 0.5))


def team_average(ratings: Iterable[int]) -> float:
    ratings = list(ratings)
    if not ratings:
        raise ValueError("Time sem jogadores não tem média")
    return sum(ratings) / len(ratings)


def expected_score(avg_rating: float, opponent_avg_rating: float) -> float:
    """E_A = 1 / (1 + 10^((avgB - avgA) / 400))"""
    return 1 / (1 + 10 ** ((opponent_avg_rating - avg_rating) / 400))


def rating_delta(k_factor: float, actual: float, expected: float) -> int:
    return round_half_up(k_factor * (actual - expected))


def streak_bonus(win_streak: int, threshold: int, bonus_per_win: int, max_bonus: int) -> int:
    """
    Bônus por sequência de vitórias (só para quem ganhou).
    Começa em `bonus_per_win` ao atingir o threshold e cresce linearmente até o teto.
    """
    if win_streak < threshold:
        return 0
    return min(max_bonus, (win_streak - threshold + 1) * bonus_per_win)


def apply_floor(rating: int) -> int:
    return max(MIN_RATING, rating)


@dataclass(frozen=True)
class TeamOutcome:
    """Delta comum aplicado a todos os membros de um lado."""
    average: float
    expected: float
    actual: float
    delta: int


def match_outcome(winner_avg: float, loser_avg: float, k_factor: float):
    """Calcula (vencedor, perdedor) a partir das médias atuais dos dois times."""
    expected_winner = expected_score(winner_avg, loser_avg)
    expected_loser = 1 - expected_winner
    winner = TeamOutcome(winner_avg, expected_winner, 1.0, rating_delta(k_factor, 1.0, expected_winner))
    loser = TeamOutcome(loser_avg, expected_loser, 0.0, rating_delta(k_factor, 0.0, expected_loser))
    return winner, loser
