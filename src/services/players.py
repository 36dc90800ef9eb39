import logging
from sqlalchemy.exc import IntegrityError

from src.database.config import session_scope
from src.database.models import MatchStatus
from src.database.repositories import PlayerRepository, MatchRepository
from src.services.elo import apply_floor
from src.services.errors import OperationResult, PlayerNotFound
from src.services.settings import MatchmakingConfig

logger = logging.getLogger("jogadores")


def player_dict(player) -> dict:
    """Formato usado pelo balanceamento e pelas telas do bot."""
    return {
        'id': player.id,
        'discord_id': player.discord_id,
        'name': player.display_name,
        'rating': player.rating,
    }


class PlayerDirectory:
    """Cadastro de jogadores, indexado pelo ID do Discord."""

    def __init__(self, session_factory, config: MatchmakingConfig):
        self.session_factory = session_factory
        self.config = config

    async def get(self, player_id: int):
        async with session_scope(self.session_factory) as session:
            return await PlayerRepository.get(session, player_id)

    async def get_by_discord_id(self, discord_id: int):
        async with session_scope(self.session_factory) as session:
            return await PlayerRepository.get_by_discord_id(session, discord_id)

    async def get_or_create(self, discord_id: int, display_name: str):
        """Primeiro uso de comando ou primeira entrada na fila cria o jogador."""
        try:
            async with session_scope(self.session_factory) as session:
                player = await PlayerRepository.get_by_discord_id(session, discord_id)
                if player:
                    if display_name and player.display_name != display_name:
                        player.display_name = display_name
                    return player
                player = await PlayerRepository.create(session, discord_id, display_name, self.config.default_rating)
                logger.info(f"Novo jogador criado: {display_name} ({discord_id})")
                return player
        except IntegrityError:
            # Outro handler criou o mesmo jogador ao mesmo tempo
            async with session_scope(self.session_factory) as session:
                return await PlayerRepository.get_by_discord_id(session, discord_id)

    async def set_rating(self, player_id: int, rating: int) -> OperationResult:
        """Ajuste manual de administrador."""
        async with session_scope(self.session_factory) as session:
            player = await PlayerRepository.get(session, player_id)
            if not player:
                return OperationResult.fail(PlayerNotFound())
            old = player.rating
            player.rating = apply_floor(int(rating))
            logger.info(f"Rating de {player.display_name} alterado manualmente: {old} -> {player.rating}")
            return OperationResult.ok(f"Rating de **{player.display_name}** ajustado: {old} → {player.rating}.")

    async def set_active(self, player_id: int, active: bool) -> OperationResult:
        async with session_scope(self.session_factory) as session:
            player = await PlayerRepository.get(session, player_id)
            if not player:
                return OperationResult.fail(PlayerNotFound())
            player.is_active = active
            status = "ativado" if active else "desativado"
            return OperationResult.ok(f"Jogador **{player.display_name}** {status}.")

    async def top_players(self, limit: int = None) -> list:
        async with session_scope(self.session_factory) as session:
            return list(await PlayerRepository.get_top(session, limit))

    async def history(self, player_id: int, limit: int = 5) -> list:
        """Últimas partidas do jogador com o resultado do ponto de vista dele."""
        async with session_scope(self.session_factory) as session:
            rows = await MatchRepository.player_history(session, player_id, limit)

        history = []
        for match, team in rows:
            if match.status == MatchStatus.COMPLETED:
                outcome = "vitória" if match.winning_team_id == team.id else "derrota"
            else:
                outcome = match.status.value
            history.append({
                'match_id': match.id,
                'status': match.status.value,
                'team': team.name,
                'outcome': outcome,
                'created_at': match.created_at,
                'finished_at': match.finished_at,
            })
        return history
