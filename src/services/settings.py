import os
from dataclasses import dataclass
from typing import Tuple
from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Variável {name} precisa ser um inteiro (recebido: {raw!r})")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "sim", "on")


@dataclass(frozen=True)
class MatchmakingConfig:
    """Regras da fila, do MMR e das votações. Valores padrão = configuração de 5v5."""
    team_size: int = 5
    min_queue_size: int = 10
    max_queue_size: int = 100
    k_factor: int = 32
    default_rating: int = 1000
    streak_threshold: int = 3
    streak_bonus_per_win: int = 5
    streak_max_bonus: int = 25
    queue_timeout_minutes: int = 60
    vote_majority_percent: int = 75
    vote_min_votes: int = 3
    group_loss_cap: int = 2
    match_check_interval_seconds: int = 30
    auto_match_creation: bool = True
    match_retention_days: int = 365
    team_names: Tuple[str, str] = ("Azul", "Vermelho")

    def __post_init__(self):
        if self.team_size < 1:
            raise ValueError("team_size precisa ser >= 1")
        if self.max_queue_size < self.players_per_match:
            raise ValueError("max_queue_size menor que o número de jogadores de uma partida")
        if self.k_factor <= 0:
            raise ValueError("k_factor precisa ser positivo")
        if not 50 <= self.vote_majority_percent <= 100:
            raise ValueError("vote_majority_percent precisa estar entre 50 e 100")
        if self.group_loss_cap < 1:
            raise ValueError("group_loss_cap precisa ser >= 1")
        if len(self.team_names) != 2 or self.team_names[0] == self.team_names[1]:
            raise ValueError("team_names precisa ter dois nomes diferentes")

    @property
    def players_per_match(self) -> int:
        return self.team_size * 2

    @property
    def match_threshold(self) -> int:
        # Nunca tenta montar partida com menos gente do que os dois times exigem
        return max(self.min_queue_size, self.players_per_match)

    @property
    def queue_timeout_seconds(self) -> int:
        return self.queue_timeout_minutes * 60

    @classmethod
    def from_env(cls) -> "MatchmakingConfig":
        team_size = _env_int("TEAM_SIZE", cls.team_size)
        return cls(
            team_size=team_size,
            min_queue_size=_env_int("MIN_QUEUE_SIZE", team_size * 2),
            max_queue_size=_env_int("MAX_QUEUE_SIZE", cls.max_queue_size),
            k_factor=_env_int("K_FACTOR", cls.k_factor),
            default_rating=_env_int("DEFAULT_RATING", cls.default_rating),
            streak_threshold=_env_int("STREAK_THRESHOLD", cls.streak_threshold),
            streak_bonus_per_win=_env_int("STREAK_BONUS_PER_WIN", cls.streak_bonus_per_win),
            streak_max_bonus=_env_int("STREAK_MAX_BONUS", cls.streak_max_bonus),
            queue_timeout_minutes=_env_int("QUEUE_TIMEOUT_MINUTES", cls.queue_timeout_minutes),
            vote_majority_percent=_env_int("VOTE_MAJORITY_PERCENT", cls.vote_majority_percent),
            vote_min_votes=_env_int("VOTE_MIN_VOTES", cls.vote_min_votes),
            group_loss_cap=_env_int("GROUP_LOSS_CAP", cls.group_loss_cap),
            match_check_interval_seconds=_env_int("MATCH_CHECK_INTERVAL_SECONDS", cls.match_check_interval_seconds),
            auto_match_creation=_env_bool("AUTO_MATCH_CREATION", cls.auto_match_creation),
            match_retention_days=_env_int("MATCH_RETENTION_DAYS", cls.match_retention_days),
            team_names=(
                os.getenv("TEAM_A_NAME", cls.team_names[0]),
                os.getenv("TEAM_B_NAME", cls.team_names[1]),
            ),
        )
