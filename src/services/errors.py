from dataclasses import dataclass, field
from typing import Optional


class MatchmakingError(Exception):
    """Base dos erros de fila/partida. A mensagem já é a que vai para o usuário."""
    default_message = "Erro no matchmaking."

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)


class AlreadyQueued(MatchmakingError):
    default_message = "Você já está na fila."


class AlreadyInMatch(MatchmakingError):
    default_message = "Você já está em uma partida em andamento."


class QueueFull(MatchmakingError):
    default_message = "Fila cheia!"


class PlayerNotFound(MatchmakingError):
    default_message = "Jogador não encontrado."


class InsufficientPlayers(MatchmakingError):
    default_message = "Jogadores insuficientes na fila."


class BalancingError(MatchmakingError):
    default_message = "Não foi possível balancear os times."


class MatchNotFound(MatchmakingError):
    default_message = "Partida não encontrada."


class InvalidMatchState(MatchmakingError):
    default_message = "A partida não está em um estado válido para esta ação."


class TeamMismatch(MatchmakingError):
    default_message = "Esse time não faz parte da partida."


class VoteKickError(MatchmakingError):
    default_message = "Votação inválida."


class PersistenceError(MatchmakingError):
    default_message = "Falha ao acessar o banco de dados."


class ReservationConflict(PersistenceError):
    """Outro processo levou parte dos jogadores selecionados antes do DELETE."""
    default_message = "Os jogadores selecionados já foram reservados por outra criação de partida."


@dataclass
class OperationResult:
    """Retorno padrão de toda operação pública: sucesso + mensagem (+ erro tipado)."""
    success: bool
    message: str
    match_id: Optional[int] = None
    error: Optional[MatchmakingError] = None
    data: dict = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str, match_id: int = None, **data) -> "OperationResult":
        return cls(True, message, match_id=match_id, data=data)

    @classmethod
    def fail(cls, error: MatchmakingError, match_id: int = None, **data) -> "OperationResult":
        return cls(False, str(error), match_id=match_id, error=error, data=data)

    @property
    def reason(self) -> Optional[str]:
        return None if self.success else self.message


@dataclass
class VoteTally:
    """Resultado de um voto: se foi contabilizado e, se a votação fechou, se passou."""
    tallied: bool
    message: str
    passed: Optional[bool] = None
    approvals: int = 0
    required: int = 0
    error: Optional[MatchmakingError] = None
