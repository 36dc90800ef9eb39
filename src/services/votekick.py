import logging
import math
from sqlalchemy.exc import SQLAlchemyError

from src.database.config import session_scope
from src.database.models import VoteKickStatus, OPEN_MATCH_STATUSES
from src.database.repositories import PlayerRepository, MatchRepository, VoteRepository
from src.services.errors import (
    OperationResult, VoteTally, MatchmakingError, VoteKickError, PlayerNotFound, PersistenceError
)
from src.services.notifier import Notifier, safe_announce, VOTE_KICK_STARTED, VOTE_KICK_FINISHED
from src.services.settings import MatchmakingConfig

logger = logging.getLogger("votekick")


class VoteKickService:
    """
    Votação para tirar um jogador da partida (só o próprio time vota).
    Aqui só se decide a votação; tirar o jogador de fato fica para quem ouve o anúncio.
    """

    def __init__(self, session_factory, config: MatchmakingConfig, notifier: Notifier = None):
        self.session_factory = session_factory
        self.config = config
        self.notifier = notifier or Notifier()

    def required_votes(self, team_size: int) -> int:
        return max(
            self.config.vote_min_votes,
            math.ceil(team_size * self.config.vote_majority_percent / 100)
        )

    async def _target_team(self, session, match_id: int, target_id: int) -> dict:
        teams = await MatchRepository.get_teams(session, match_id)
        for team in teams:
            if any(p.id == target_id for p in team['players']):
                return team
        raise VoteKickError("O alvo não está nessa partida.")

    async def initiate(self, initiator_id: int, target_id: int, match_id: int = None) -> OperationResult:
        if initiator_id == target_id:
            return OperationResult.fail(VoteKickError("Você não pode votar para expulsar a si mesmo."))

        try:
            async with session_scope(self.session_factory) as session:
                initiator = await PlayerRepository.get(session, initiator_id)
                target = await PlayerRepository.get(session, target_id)
                if not initiator or not target:
                    raise PlayerNotFound("Jogador (ou alvo) não encontrado.")

                if match_id is None:
                    match_id = await PlayerRepository.open_match_of(session, initiator_id)
                    if match_id is None:
                        raise VoteKickError("Você não está em nenhuma partida em andamento.")

                match = await MatchRepository.get(session, match_id)
                if not match or match.status not in OPEN_MATCH_STATUSES:
                    raise VoteKickError(f"A partida #{match_id} não está em andamento.")

                team = await self._target_team(session, match_id, target_id)
                if not any(p.id == initiator_id for p in team['players']):
                    raise VoteKickError("Você só pode votar para expulsar jogadores do seu time.")

                if await VoteRepository.pending_vote_kick(session, match_id, target_id):
                    raise VoteKickError("Já existe uma votação aberta contra esse jogador.")

                vote_kick = await VoteRepository.create_vote_kick(session, match_id, target_id, initiator_id)
                # Quem abre a votação já conta como voto a favor
                await VoteRepository.add_vote_kick_vote(session, vote_kick.id, initiator_id, True)

                required = self.required_votes(len(team['players']))
                eligible = len(team['players']) - 1
                vote_kick_id = vote_kick.id
                target_name = target.display_name
                target_discord_id = target.discord_id
                initiator_discord_id = initiator.discord_id
        except MatchmakingError as e:
            return OperationResult.fail(e, match_id=match_id)
        except SQLAlchemyError as e:
            logger.exception(f"Erro de banco ao abrir votekick (partida {match_id}, alvo {target_id}): {e}")
            return OperationResult.fail(PersistenceError(), match_id=match_id)

        logger.info(f"Votekick #{vote_kick_id} aberto na partida #{match_id}: {initiator_id} contra {target_id}")
        await safe_announce(self.notifier, VOTE_KICK_STARTED, {
            'vote_kick_id': vote_kick_id,
            'match_id': match_id,
            'target_id': target_id,
            'target_discord_id': target_discord_id,
            'initiator_discord_id': initiator_discord_id,
            'required': required,
        })

        message = f"Votação para expulsar **{target_name}** aberta (1/{required})."
        data = {'vote_kick_id': vote_kick_id, 'required': required, 'eligible': eligible}

        # Com mínimo de 1 voto, ou time de 2, a votação pode fechar no próprio início
        if required <= 1 or eligible <= 1:
            tally = await self._close_if_decided(vote_kick_id)
            if tally and tally.passed is not None:
                message = tally.message
                data['passed'] = tally.passed

        return OperationResult.ok(message, match_id=match_id, **data)

    async def cast_vote(self, vote_kick_id: int, voter_id: int, approve: bool) -> VoteTally:
        try:
            async with session_scope(self.session_factory) as session:
                vote_kick = await VoteRepository.get_vote_kick(session, vote_kick_id, lock=True)
                if not vote_kick:
                    raise VoteKickError("Votação não encontrada.")
                if vote_kick.status != VoteKickStatus.PENDING:
                    raise VoteKickError("Essa votação já foi encerrada.")

                match = await MatchRepository.get(session, vote_kick.match_id)
                if not match or match.status not in OPEN_MATCH_STATUSES:
                    raise VoteKickError(f"A partida #{vote_kick.match_id} já terminou; a votação não vale mais.")

                team = await self._target_team(session, vote_kick.match_id, vote_kick.target_player_id)
                eligible = {p.id for p in team['players']} - {vote_kick.target_player_id}
                if voter_id not in eligible:
                    raise VoteKickError("Só os companheiros de time do alvo podem votar.")
                if await VoteRepository.has_voted(session, vote_kick_id, voter_id):
                    raise VoteKickError("Você já votou nessa votação.")

                await VoteRepository.add_vote_kick_vote(session, vote_kick_id, voter_id, approve)
                tally = await self._evaluate(session, vote_kick, team)
        except MatchmakingError as e:
            return VoteTally(False, str(e), error=e)
        except SQLAlchemyError as e:
            logger.exception(f"Erro de banco no voto do votekick #{vote_kick_id}: {e}")
            error = PersistenceError()
            return VoteTally(False, str(error), error=error)

        logger.info(f"Voto no votekick #{vote_kick_id}: jogador {voter_id} -> {'sim' if approve else 'não'}")
        if tally.passed is not None:
            await self._announce_finished(vote_kick_id, tally)
        return tally

    async def _evaluate(self, session, vote_kick, team: dict) -> VoteTally:
        """Fecha a votação se já aprovou, ou se todo mundo votou sem chegar no mínimo."""
        required = self.required_votes(len(team['players']))
        eligible = len(team['players']) - 1
        approvals, total = await VoteRepository.vote_kick_counts(session, vote_kick.id)

        if approvals >= required:
            if await VoteRepository.finish_vote_kick(session, vote_kick.id, VoteKickStatus.APPROVED):
                return VoteTally(True, "Votação aprovada: o jogador será removido da partida.",
                                 passed=True, approvals=approvals, required=required)
        elif total >= eligible:
            if await VoteRepository.finish_vote_kick(session, vote_kick.id, VoteKickStatus.REJECTED):
                return VoteTally(True, f"Votação rejeitada ({approvals}/{required}).",
                                 passed=False, approvals=approvals, required=required)

        return VoteTally(True, f"Voto registrado ({approvals}/{required}).", approvals=approvals, required=required)

    async def _close_if_decided(self, vote_kick_id: int):
        async with session_scope(self.session_factory) as session:
            vote_kick = await VoteRepository.get_vote_kick(session, vote_kick_id, lock=True)
            if not vote_kick or vote_kick.status != VoteKickStatus.PENDING:
                return None
            team = await self._target_team(session, vote_kick.match_id, vote_kick.target_player_id)
            tally = await self._evaluate(session, vote_kick, team)
        if tally.passed is not None:
            await self._announce_finished(vote_kick_id, tally)
        return tally

    async def _announce_finished(self, vote_kick_id: int, tally: VoteTally):
        async with session_scope(self.session_factory) as session:
            vote_kick = await VoteRepository.get_vote_kick(session, vote_kick_id)
            target = await PlayerRepository.get(session, vote_kick.target_player_id)
            payload = {
                'vote_kick_id': vote_kick_id,
                'match_id': vote_kick.match_id,
                'target_id': vote_kick.target_player_id,
                'target_discord_id': target.discord_id if target else None,
                'passed': tally.passed,
                'approvals': tally.approvals,
                'required': tally.required,
            }
        logger.info(f"Votekick #{vote_kick_id} encerrado: {'aprovado' if tally.passed else 'rejeitado'}")
        await safe_announce(self.notifier, VOTE_KICK_FINISHED, payload)
