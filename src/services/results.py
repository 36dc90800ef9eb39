import logging
import math
from datetime import datetime
from sqlalchemy.exc import SQLAlchemyError

from src.database.config import session_scope
from src.database.models import MatchStatus, OPEN_MATCH_STATUSES
from src.database.repositories import MatchRepository, QueueRepository, VoteRepository, PlayerRepository
from src.services.elo import team_average, match_outcome, streak_bonus, apply_floor
from src.services.errors import (
    OperationResult, MatchmakingError, MatchNotFound, InvalidMatchState, TeamMismatch,
    PlayerNotFound, PersistenceError
)
from src.services.notifier import Notifier, safe_announce, MATCH_COMPLETED, MATCH_CANCELLED
from src.services.settings import MatchmakingConfig
from src.services.state import ProcessingSet, GroupTracker

logger = logging.getLogger("resultados")


class ResultProcessor:
    """Fecha partidas: vencedor declarado (MMR + streaks) ou cancelamento (volta pra fila)."""

    def __init__(self, session_factory, config: MatchmakingConfig, processing: ProcessingSet,
                 groups: GroupTracker, notifier: Notifier = None):
        self.session_factory = session_factory
        self.config = config
        self.processing = processing
        self.groups = groups
        self.notifier = notifier or Notifier()

    async def _load_open_match(self, session, match_id: int):
        match = await MatchRepository.get(session, match_id, lock=True)
        if not match:
            raise MatchNotFound(f"Partida #{match_id} não encontrada.")
        if match.status not in OPEN_MATCH_STATUSES:
            raise InvalidMatchState(f"A partida #{match_id} já está encerrada ({match.status.value}).")
        teams = await MatchRepository.get_teams(session, match_id)
        if len(teams) != 2 or not all(t['players'] for t in teams):
            raise InvalidMatchState(f"A partida #{match_id} não tem dois times completos.")
        return match, teams

    async def end_match(self, match_id: int, winning_team_id: int) -> OperationResult:
        try:
            return await self._end_match(match_id, winning_team_id)
        except MatchmakingError as e:
            return OperationResult.fail(e, match_id=match_id)
        except SQLAlchemyError as e:
            logger.exception(f"Erro de banco ao finalizar a partida #{match_id}: {e}")
            return OperationResult.fail(PersistenceError(), match_id=match_id)

    async def _end_match(self, match_id: int, winning_team_id: int) -> OperationResult:
        async with session_scope(self.session_factory) as session:
            match, teams = await self._load_open_match(session, match_id)

            winner = next((t for t in teams if t['id'] == winning_team_id), None)
            if winner is None:
                raise TeamMismatch(f"O time {winning_team_id} não faz parte da partida #{match_id}.")
            loser = next(t for t in teams if t['id'] != winning_team_id)

            # Médias ATUAIS (o avg_rating do Time é só a foto da formação)
            winner_avg = team_average(p.rating for p in winner['players'])
            loser_avg = team_average(p.rating for p in loser['players'])
            win_outcome, loss_outcome = match_outcome(winner_avg, loser_avg, self.config.k_factor)

            changes = []
            for p in winner['players']:
                old = p.rating
                p.wins += 1
                p.win_streak += 1
                p.loss_streak = 0
                bonus = streak_bonus(
                    p.win_streak, self.config.streak_threshold,
                    self.config.streak_bonus_per_win, self.config.streak_max_bonus
                )
                p.rating = apply_floor(old + win_outcome.delta + bonus)
                changes.append({'player_id': p.id, 'discord_id': p.discord_id, 'name': p.display_name,
                                'old': old, 'new': p.rating, 'bonus': bonus, 'won': True})

            for p in loser['players']:
                old = p.rating
                p.losses += 1
                p.loss_streak += 1
                p.win_streak = 0
                p.rating = apply_floor(old + loss_outcome.delta)
                changes.append({'player_id': p.id, 'discord_id': p.discord_id, 'name': p.display_name,
                                'old': old, 'new': p.rating, 'bonus': 0, 'won': False})

            finished = await MatchRepository.transition(
                session, match_id, OPEN_MATCH_STATUSES, MatchStatus.COMPLETED,
                finished_at=datetime.utcnow(), winning_team_id=winning_team_id
            )
            if not finished:
                # Outro chamador fechou a partida no meio do caminho: nada do que foi calculado vale
                raise InvalidMatchState(f"A partida #{match_id} já foi encerrada por outra ação.")
            await VoteRepository.reject_pending_vote_kicks(session, match_id)

            channel_id = match.channel_id
            winner_ids = [p.id for p in winner['players']]
            loser_ids = [p.id for p in loser['players']]

        logger.info(
            f"Partida #{match_id} finalizada. Vencedor: {winner['name']} "
            f"(delta {win_outcome.delta:+d} / {loss_outcome.delta:+d})"
        )

        self.processing.discard_all(winner_ids + loser_ids)
        self.groups.record_win(winner_ids)
        if self.groups.record_loss(loser_ids):
            logger.info(f"Time {loser['name']} da partida #{match_id} fica junto na próxima partida.")

        await self._close_channel(match_id, channel_id)
        await safe_announce(self.notifier, MATCH_COMPLETED, {
            'match_id': match_id,
            'winner': {'id': winner['id'], 'name': winner['name']},
            'loser': {'id': loser['id'], 'name': loser['name']},
            'winner_delta': win_outcome.delta,
            'loser_delta': loss_outcome.delta,
            'changes': changes,
        })

        return OperationResult.ok(
            f"Partida #{match_id} finalizada! Vitória do time **{winner['name']}** "
            f"({win_outcome.delta:+d} / {loss_outcome.delta:+d}).",
            match_id=match_id,
            changes=changes,
            winner_delta=win_outcome.delta,
            loser_delta=loss_outcome.delta
        )

    async def cancel_match(self, match_id: int, requeue: bool = True) -> OperationResult:
        try:
            return await self._cancel_match(match_id, requeue)
        except MatchmakingError as e:
            return OperationResult.fail(e, match_id=match_id)
        except SQLAlchemyError as e:
            logger.exception(f"Erro de banco ao cancelar a partida #{match_id}: {e}")
            return OperationResult.fail(PersistenceError(), match_id=match_id)

    async def _cancel_match(self, match_id: int, requeue: bool) -> OperationResult:
        async with session_scope(self.session_factory) as session:
            match = await MatchRepository.get(session, match_id, lock=True)
            if not match:
                raise MatchNotFound(f"Partida #{match_id} não encontrada.")
            if match.status not in OPEN_MATCH_STATUSES:
                raise InvalidMatchState(f"A partida #{match_id} já está encerrada ({match.status.value}).")
            teams = await MatchRepository.get_teams(session, match_id)

            cancelled = await MatchRepository.transition(
                session, match_id, OPEN_MATCH_STATUSES, MatchStatus.CANCELLED, finished_at=datetime.utcnow()
            )
            if not cancelled:
                raise InvalidMatchState(f"A partida #{match_id} já foi encerrada por outra ação.")
            await VoteRepository.reject_pending_vote_kicks(session, match_id)

            participants = [p for t in teams for p in t['players']]
            requeued = []
            if requeue:
                # Mesma transação do cancelamento: ninguém fica fora da fila e fora da partida
                for p in participants:
                    if await QueueRepository.get_entry(session, p.id):
                        continue
                    await QueueRepository.add(session, p.id, priority=0, rating_at_join=p.rating)
                    requeued.append(p.id)

            channel_id = match.channel_id
            participant_ids = [p.id for p in participants]

        self.processing.discard_all(participant_ids)
        logger.info(f"Partida #{match_id} cancelada. {len(requeued)} jogadores voltaram para a fila.")

        await self._close_channel(match_id, channel_id)
        await safe_announce(self.notifier, MATCH_CANCELLED, {
            'match_id': match_id,
            'player_ids': participant_ids,
            'requeued': requeued,
        })

        return OperationResult.ok(
            f"Partida #{match_id} cancelada. {len(requeued)} jogadores voltaram para a fila.",
            match_id=match_id,
            requeued=requeued
        )

    async def vote_winner(self, match_id: int, voter_id: int, team_id: int) -> OperationResult:
        """
        Voto de resultado pelos próprios jogadores.
        Um voto por jogador (pode trocar); o time que chegar a metade dos
        participantes (arredondado pra cima) vence e a partida é finalizada.
        """
        try:
            async with session_scope(self.session_factory) as session:
                _, teams = await self._load_open_match(session, match_id)
                if team_id not in {t['id'] for t in teams}:
                    raise TeamMismatch(f"O time {team_id} não faz parte da partida #{match_id}.")

                participants = {p.id for t in teams for p in t['players']}
                if voter_id not in participants:
                    voter = await PlayerRepository.get(session, voter_id)
                    if not voter:
                        raise PlayerNotFound()
                    raise MatchmakingError("Apenas jogadores desta partida podem votar no resultado.")

                await VoteRepository.upsert_match_vote(session, match_id, voter_id, team_id)
                counts = await VoteRepository.match_vote_counts(session, match_id)
        except MatchmakingError as e:
            return OperationResult.fail(e, match_id=match_id)
        except SQLAlchemyError as e:
            logger.exception(f"Erro de banco ao votar na partida #{match_id}: {e}")
            return OperationResult.fail(PersistenceError(), match_id=match_id)

        required = math.ceil(len(participants) / 2)
        votes = counts.get(team_id, 0)
        team_name = next(t['name'] for t in teams if t['id'] == team_id)
        logger.info(f"Voto de resultado na partida #{match_id}: jogador {voter_id} -> {team_name} ({votes}/{required})")

        if votes >= required:
            return await self.end_match(match_id, team_id)

        return OperationResult.ok(
            f"Voto registrado para **{team_name}** ({votes}/{required}).",
            match_id=match_id,
            votes=counts,
            required=required
        )

    async def _close_channel(self, match_id: int, channel_id):
        try:
            await self.notifier.close_match_channel(match_id, channel_id)
        except Exception as e:
            logger.error(f"Falha ao apagar o canal da partida #{match_id}: {e}")
