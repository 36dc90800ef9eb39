import functools
import logging
from sqlalchemy.exc import SQLAlchemyError

from src.services.coordinator import MatchCoordinator
from src.services.errors import (
    OperationResult, VoteTally, MatchmakingError, PlayerNotFound, PersistenceError
)
from src.services.notifier import Notifier
from src.services.players import PlayerDirectory, player_dict
from src.services.queue import QueueService
from src.services.ranks import rank_for, progress_to_next
from src.services.results import ResultProcessor
from src.services.settings import MatchmakingConfig
from src.services.state import ProcessingSet, GroupTracker
from src.services.votekick import VoteKickService

logger = logging.getLogger("matchmaking")


def guarded(operation):
    """Nenhuma exceção do núcleo atravessa a fachada: tudo vira OperationResult."""
    @functools.wraps(operation)
    async def wrapper(self, *args, **kwargs):
        try:
            return await operation(self, *args, **kwargs)
        except MatchmakingError as e:
            return OperationResult.fail(e)
        except SQLAlchemyError as e:
            logger.exception(f"Erro de banco em {operation.__name__}{args}: {e}")
            return OperationResult.fail(PersistenceError())
    return wrapper


def guarded_list(operation):
    """Leituras que devolvem lista: erro de banco é logado e vira lista vazia."""
    @functools.wraps(operation)
    async def wrapper(self, *args, **kwargs):
        try:
            return await operation(self, *args, **kwargs)
        except SQLAlchemyError as e:
            logger.exception(f"Erro de banco em {operation.__name__}{args}: {e}")
            return []
    return wrapper


class MatchmakingService:
    """
    Ponto de entrada do bot. Os cogs só conversam com esta classe.
    Jogadores são identificados pelo ID do Discord.
    """

    def __init__(self, session_factory, config: MatchmakingConfig = None, notifier: Notifier = None):
        self.session_factory = session_factory
        self.config = config or MatchmakingConfig.from_env()
        self.notifier = notifier or Notifier()

        self.processing = ProcessingSet()
        self.groups = GroupTracker(self.config.group_loss_cap)

        self.players = PlayerDirectory(session_factory, self.config)
        self.queue = QueueService(session_factory, self.config, self.processing)
        self.coordinator = MatchCoordinator(session_factory, self.config, self.queue, self.notifier, self.groups)
        self.results = ResultProcessor(session_factory, self.config, self.processing, self.groups, self.notifier)
        self.vote_kicks = VoteKickService(session_factory, self.config, self.notifier)

    def set_notifier(self, notifier: Notifier):
        """O notifier do Discord só existe depois que o bot sobe."""
        self.notifier = notifier
        self.coordinator.notifier = notifier
        self.results.notifier = notifier
        self.vote_kicks.notifier = notifier

    async def _require_player(self, discord_id: int):
        player = await self.players.get_by_discord_id(discord_id)
        if not player:
            raise PlayerNotFound("Jogador não registrado. Entre na fila uma vez para se registrar.")
        return player

    # --- FILA ---
    @guarded
    async def join_queue(self, discord_id: int, display_name: str, priority: int = 0) -> OperationResult:
        player = await self.players.get_or_create(discord_id, display_name)
        if not player.is_active:
            return OperationResult.fail(MatchmakingError("Seu cadastro está desativado. Fale com um administrador."))

        result = await self.queue.enqueue(player.id, priority=priority)
        if result.success and self.config.auto_match_creation \
                and result.data.get('queue_size', 0) >= self.config.match_threshold:
            created = await self.coordinator.try_create_match()
            if created.success:
                result.data['match'] = created
        return result

    @guarded
    async def leave_queue(self, discord_id: int) -> OperationResult:
        player = await self.players.get_by_discord_id(discord_id)
        if not player or not await self.queue.dequeue(player.id):
            return OperationResult.fail(MatchmakingError("Você não está na fila."))
        return OperationResult.ok(f"**{player.display_name}** saiu da fila.")

    @guarded_list
    async def queue_snapshot(self) -> list:
        return await self.queue.list()

    @guarded
    async def admin_add_to_queue(self, discord_id: int, display_name: str, priority: int = 1) -> OperationResult:
        """Admin coloca alguém na fila (por padrão na frente de quem tem prioridade 0)."""
        player = await self.players.get_or_create(discord_id, display_name)
        return await self.queue.enqueue(player.id, priority=priority)

    @guarded
    async def clear_queue(self) -> OperationResult:
        removed = await self.queue.clear()
        return OperationResult.ok(f"Fila limpa: {removed} jogadores removidos.", removed=removed)

    # --- PARTIDAS ---
    async def try_create_match(self, force: bool = False) -> OperationResult:
        return await self.coordinator.try_create_match(force=force)

    @guarded_list
    async def active_matches(self) -> list:
        return await self.coordinator.active_matches()

    @guarded
    async def get_match(self, match_id: int) -> OperationResult:
        match = await self.coordinator.get_match(match_id)
        return OperationResult.ok(f"Partida #{match_id}", match_id=match_id, match=match)

    async def report_winner(self, match_id: int, winning_team_id: int) -> OperationResult:
        return await self.results.end_match(match_id, winning_team_id)

    async def cancel_match(self, match_id: int) -> OperationResult:
        return await self.results.cancel_match(match_id)

    @guarded
    async def vote_winner(self, match_id: int, voter_discord_id: int, team_id: int) -> OperationResult:
        voter = await self._require_player(voter_discord_id)
        return await self.results.vote_winner(match_id, voter.id, team_id)

    async def archive_finished_matches(self, retention_days: int = None) -> OperationResult:
        try:
            return await self.coordinator.archive_finished_matches(retention_days)
        except SQLAlchemyError as e:
            logger.exception(f"Erro de banco ao arquivar partidas: {e}")
            return OperationResult.fail(PersistenceError())

    @guarded_list
    async def run_periodic_check(self) -> list:
        return await self.coordinator.run_periodic_check()

    # --- VOTEKICK ---
    @guarded
    async def initiate_vote_kick(self, initiator_discord_id: int, target_discord_id: int, match_id: int = None) -> OperationResult:
        initiator = await self._require_player(initiator_discord_id)
        target = await self._require_player(target_discord_id)
        return await self.vote_kicks.initiate(initiator.id, target.id, match_id)

    async def cast_vote(self, vote_kick_id: int, voter_discord_id: int, approve: bool) -> VoteTally:
        try:
            voter = await self._require_player(voter_discord_id)
        except MatchmakingError as e:
            return VoteTally(False, str(e), error=e)
        except SQLAlchemyError as e:
            logger.exception(f"Erro de banco ao buscar votante {voter_discord_id}: {e}")
            error = PersistenceError()
            return VoteTally(False, str(error), error=error)
        return await self.vote_kicks.cast_vote(vote_kick_id, voter.id, approve)

    # --- JOGADORES ---
    @guarded_list
    async def leaderboard(self, limit: int = None) -> list:
        players = await self.players.top_players(limit)
        board = []
        for position, player in enumerate(players, start=1):
            entry = player_dict(player)
            entry.update({
                'position': position,
                'wins': player.wins,
                'losses': player.losses,
                'win_streak': player.win_streak,
                'rank': rank_for(player.rating).name,
            })
            board.append(entry)
        return board

    @guarded
    async def player_profile(self, discord_id: int, history_limit: int = 5) -> OperationResult:
        player = await self._require_player(discord_id)
        history = await self.players.history(player.id, history_limit)
        total = player.wins + player.losses
        profile = player_dict(player)
        profile.update({
            'wins': player.wins,
            'losses': player.losses,
            'win_streak': player.win_streak,
            'loss_streak': player.loss_streak,
            'winrate': round(player.wins / total * 100, 1) if total else 0.0,
            'rank': rank_for(player.rating),
            'progress': progress_to_next(player.rating),
            'history': history,
        })
        return OperationResult.ok(f"Perfil de {player.display_name}", profile=profile)

    @guarded
    async def set_rating(self, discord_id: int, rating: int) -> OperationResult:
        player = await self._require_player(discord_id)
        return await self.players.set_rating(player.id, rating)

    @guarded
    async def set_active(self, discord_id: int, active: bool) -> OperationResult:
        player = await self._require_player(discord_id)
        if not active:
            await self.queue.dequeue(player.id)
        return await self.players.set_active(player.id, active)
