from sqlalchemy import select, desc, delete, update, func
from sqlalchemy.ext.asyncio import AsyncSession
from src.database.models import (
    Player, QueueEntry, Match, Team, TeamPlayer, MatchVote, VoteKick, VoteKickVote,
    MatchStatus, VoteKickStatus, OPEN_MATCH_STATUSES
)
from src.services.errors import ReservationConflict
from datetime import datetime

# Todos os métodos recebem a sessão de quem chama: a transação (e o commit/rollback)
# pertence ao serviço, não ao repositório.

# --- REPOSITÓRIO DE JOGADORES ---
class PlayerRepository:

    @staticmethod
    async def get(session: AsyncSession, player_id: int):
        return await session.get(Player, player_id)

    @staticmethod
    async def get_by_discord_id(session: AsyncSession, discord_id: int):
        result = await session.execute(select(Player).where(Player.discord_id == discord_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_many(session: AsyncSession, player_ids) -> dict:
        if not player_ids:
            return {}
        result = await session.execute(select(Player).where(Player.id.in_(list(player_ids))))
        return {p.id: p for p in result.scalars().all()}

    @staticmethod
    async def create(session: AsyncSession, discord_id: int, display_name: str, rating: int):
        player = Player(
            discord_id=discord_id,
            display_name=display_name,
            rating=rating,
            wins=0,
            losses=0,
            win_streak=0,
            loss_streak=0,
            is_active=True,
            created_at=datetime.utcnow()
        )
        session.add(player)
        await session.flush()
        return player

    @staticmethod
    async def get_top(session: AsyncSession, limit: int = None):
        stmt = select(Player).where(Player.is_active.is_(True)).order_by(desc(Player.rating), desc(Player.wins), Player.id)
        if limit: stmt = stmt.limit(limit)
        result = await session.execute(stmt)
        return result.scalars().all()

    @staticmethod
    async def open_match_of(session: AsyncSession, player_id: int):
        """ID da partida não-terminal (waiting/active) em que o jogador está, ou None."""
        stmt = (
            select(Team.match_id)
            .join(TeamPlayer, TeamPlayer.team_id == Team.id)
            .join(Match, Match.id == Team.match_id)
            .where(TeamPlayer.player_id == player_id, Match.status.in_(OPEN_MATCH_STATUSES))
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def players_in_open_matches(session: AsyncSession, player_ids) -> set:
        if not player_ids:
            return set()
        stmt = (
            select(TeamPlayer.player_id)
            .join(Team, Team.id == TeamPlayer.team_id)
            .join(Match, Match.id == Team.match_id)
            .where(TeamPlayer.player_id.in_(list(player_ids)), Match.status.in_(OPEN_MATCH_STATUSES))
        )
        result = await session.execute(stmt)
        return set(result.scalars().all())

# --- REPOSITÓRIO DA FILA ---
class QueueRepository:

    @staticmethod
    def _ordered():
        # Prioridade maior primeiro, depois quem entrou antes
        return select(QueueEntry).order_by(desc(QueueEntry.priority), QueueEntry.joined_at, QueueEntry.id)

    @staticmethod
    def snapshot(entry: QueueEntry) -> dict:
        return {
            'entry_id': entry.id,
            'player_id': entry.player_id,
            'joined_at': entry.joined_at,
            'priority': entry.priority,
            'rating_at_join': entry.rating_at_join,
        }

    @staticmethod
    async def get_entry(session: AsyncSession, player_id: int):
        result = await session.execute(select(QueueEntry).where(QueueEntry.player_id == player_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def add(session: AsyncSession, player_id: int, priority: int = 0, rating_at_join: int = None, joined_at: datetime = None):
        entry = QueueEntry(
            player_id=player_id,
            priority=priority,
            rating_at_join=rating_at_join,
            joined_at=joined_at or datetime.utcnow()
        )
        session.add(entry)
        # flush aqui: a UNIQUE(player_id) estoura já dentro da operação de quem chamou
        await session.flush()
        return entry

    @staticmethod
    async def remove(session: AsyncSession, player_id: int) -> bool:
        stmt = delete(QueueEntry).where(QueueEntry.player_id == player_id).execution_options(synchronize_session=False)
        result = await session.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    async def count(session: AsyncSession) -> int:
        result = await session.execute(select(func.count(QueueEntry.id)))
        return result.scalar() or 0

    @staticmethod
    async def list_with_players(session: AsyncSession):
        stmt = (
            select(QueueEntry, Player)
            .join(Player, Player.id == QueueEntry.player_id)
            .order_by(desc(QueueEntry.priority), QueueEntry.joined_at, QueueEntry.id)
        )
        result = await session.execute(stmt)
        return result.all()

    @staticmethod
    async def _delete_exact(session: AsyncSession, entries) -> None:
        """DELETE condicional: se alguma linha sumiu no meio do caminho, a reserva é inválida."""
        ids = [e.id for e in entries]
        stmt = delete(QueueEntry).where(QueueEntry.id.in_(ids)).execution_options(synchronize_session=False)
        result = await session.execute(stmt)
        if result.rowcount != len(ids):
            raise ReservationConflict()

    @staticmethod
    async def reserve(session: AsyncSession, n: int, preferred=()) -> list:
        """
        Seleciona e remove os `n` primeiros da fila na MESMA transação.
        - PostgreSQL: SELECT ... FOR UPDATE SKIP LOCKED (concorrentes pulam as linhas travadas)
        - SQLite: a transação já abriu com BEGIN IMMEDIATE (ver database/config.py)
        `preferred` (grupo mantido) só é usado se TODOS os membros estiverem na fila.
        """
        chosen = []
        preferred = list(dict.fromkeys(preferred))

        if preferred and len(preferred) <= n:
            stmt = QueueRepository._ordered().where(QueueEntry.player_id.in_(preferred)).with_for_update(skip_locked=True)
            group_entries = list((await session.execute(stmt)).scalars().all())
            if len(group_entries) == len(preferred):
                chosen = group_entries

        remaining = n - len(chosen)
        if remaining > 0:
            stmt = QueueRepository._ordered()
            if chosen:
                stmt = stmt.where(QueueEntry.id.notin_([e.id for e in chosen]))
            stmt = stmt.limit(remaining).with_for_update(skip_locked=True)
            chosen += list((await session.execute(stmt)).scalars().all())

        if not chosen:
            return []

        snapshots = [QueueRepository.snapshot(e) for e in chosen]
        await QueueRepository._delete_exact(session, chosen)
        return snapshots

    @staticmethod
    async def pop_expired(session: AsyncSession, cutoff: datetime) -> list:
        stmt = (
            select(QueueEntry)
            .where(QueueEntry.joined_at < cutoff)
            .order_by(QueueEntry.joined_at, QueueEntry.id)
            .with_for_update(skip_locked=True)
        )
        expired = list((await session.execute(stmt)).scalars().all())
        if not expired:
            return []
        snapshots = [QueueRepository.snapshot(e) for e in expired]
        await QueueRepository._delete_exact(session, expired)
        return snapshots

    @staticmethod
    async def clear(session: AsyncSession) -> int:
        result = await session.execute(delete(QueueEntry).execution_options(synchronize_session=False))
        return result.rowcount or 0

# --- REPOSITÓRIO DE PARTIDAS ---
class MatchRepository:

    @staticmethod
    async def get(session: AsyncSession, match_id: int, lock: bool = False):
        stmt = select(Match).where(Match.id == match_id)
        if lock:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create_with_teams(session: AsyncSession, teams: list):
        """
        teams: [(nome, media, [player_ids]), (nome, media, [player_ids])]
        Cria a partida em WAITING com os dois times e os TeamPlayers.
        """
        new_match = Match(status=MatchStatus.WAITING, created_at=datetime.utcnow())
        session.add(new_match)
        await session.flush()

        team_ids = []
        for name, avg_rating, player_ids in teams:
            team = Team(match_id=new_match.id, name=name, avg_rating=avg_rating)
            session.add(team)
            await session.flush()
            team_ids.append(team.id)
            for pid in player_ids:
                session.add(TeamPlayer(team_id=team.id, player_id=pid))

        await session.flush()
        return new_match.id, team_ids

    @staticmethod
    async def get_teams(session: AsyncSession, match_id: int) -> list:
        """[{'id', 'name', 'avg_rating', 'players': [Player, ...]}] na ordem de criação."""
        result = await session.execute(select(Team).where(Team.match_id == match_id).order_by(Team.id))
        teams = [{'id': t.id, 'name': t.name, 'avg_rating': t.avg_rating, 'players': []} for t in result.scalars().all()]
        if not teams:
            return teams

        by_id = {t['id']: t for t in teams}
        stmt = (
            select(TeamPlayer.team_id, Player)
            .join(Player, Player.id == TeamPlayer.player_id)
            .where(TeamPlayer.team_id.in_(list(by_id)))
            .order_by(Player.id)
        )
        for team_id, player in (await session.execute(stmt)).all():
            by_id[team_id]['players'].append(player)
        return teams

    @staticmethod
    async def transition(session: AsyncSession, match_id: int, allowed_from, to_status: MatchStatus, **values) -> bool:
        """UPDATE condicional do status. False = outro chamador já mudou o estado."""
        stmt = (
            update(Match)
            .where(Match.id == match_id, Match.status.in_(list(allowed_from)))
            .values(status=to_status, **values)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    async def set_channel(session: AsyncSession, match_id: int, channel_id: int):
        stmt = update(Match).where(Match.id == match_id).values(channel_id=channel_id).execution_options(synchronize_session=False)
        await session.execute(stmt)

    @staticmethod
    async def list_by_status(session: AsyncSession, statuses):
        stmt = select(Match).where(Match.status.in_(list(statuses))).order_by(Match.created_at, Match.id)
        result = await session.execute(stmt)
        return result.scalars().all()

    @staticmethod
    async def player_history(session: AsyncSession, player_id: int, limit: int = 5):
        stmt = (
            select(Match, Team)
            .join(Team, Team.match_id == Match.id)
            .join(TeamPlayer, TeamPlayer.team_id == Team.id)
            .where(TeamPlayer.player_id == player_id)
            .order_by(desc(Match.created_at), desc(Match.id))
            .limit(limit)
        )
        result = await session.execute(stmt)
        return result.all()

    @staticmethod
    async def archive_finished_before(session: AsyncSession, cutoff: datetime) -> int:
        stmt = (
            update(Match)
            .where(
                Match.status.in_([MatchStatus.COMPLETED, MatchStatus.CANCELLED]),
                func.coalesce(Match.finished_at, Match.created_at) < cutoff
            )
            .values(status=MatchStatus.ARCHIVED)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount or 0

# --- REPOSITÓRIO DE VOTAÇÕES ---
class VoteRepository:

    @staticmethod
    async def upsert_match_vote(session: AsyncSession, match_id: int, player_id: int, team_id: int):
        result = await session.execute(
            select(MatchVote).where(MatchVote.match_id == match_id, MatchVote.player_id == player_id)
        )
        vote = result.scalar_one_or_none()
        if vote:
            vote.voted_team_id = team_id
        else:
            session.add(MatchVote(match_id=match_id, player_id=player_id, voted_team_id=team_id, created_at=datetime.utcnow()))
        await session.flush()

    @staticmethod
    async def match_vote_counts(session: AsyncSession, match_id: int) -> dict:
        stmt = (
            select(MatchVote.voted_team_id, func.count(MatchVote.id))
            .where(MatchVote.match_id == match_id)
            .group_by(MatchVote.voted_team_id)
        )
        result = await session.execute(stmt)
        return {team_id: count for team_id, count in result.all()}

    @staticmethod
    async def get_vote_kick(session: AsyncSession, vote_kick_id: int, lock: bool = False):
        stmt = select(VoteKick).where(VoteKick.id == vote_kick_id)
        if lock:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def pending_vote_kick(session: AsyncSession, match_id: int, target_player_id: int):
        stmt = select(VoteKick).where(
            VoteKick.match_id == match_id,
            VoteKick.target_player_id == target_player_id,
            VoteKick.status == VoteKickStatus.PENDING
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def create_vote_kick(session: AsyncSession, match_id: int, target_id: int, initiator_id: int):
        vote_kick = VoteKick(
            match_id=match_id,
            target_player_id=target_id,
            initiator_player_id=initiator_id,
            status=VoteKickStatus.PENDING,
            created_at=datetime.utcnow()
        )
        session.add(vote_kick)
        await session.flush()
        return vote_kick

    @staticmethod
    async def has_voted(session: AsyncSession, vote_kick_id: int, player_id: int) -> bool:
        result = await session.execute(
            select(VoteKickVote.id).where(VoteKickVote.vote_kick_id == vote_kick_id, VoteKickVote.player_id == player_id)
        )
        return result.first() is not None

    @staticmethod
    async def add_vote_kick_vote(session: AsyncSession, vote_kick_id: int, player_id: int, approve: bool):
        session.add(VoteKickVote(vote_kick_id=vote_kick_id, player_id=player_id, approve=approve, created_at=datetime.utcnow()))
        await session.flush()

    @staticmethod
    async def vote_kick_counts(session: AsyncSession, vote_kick_id: int):
        """(aprovações, total de votos)"""
        result = await session.execute(select(VoteKickVote.approve).where(VoteKickVote.vote_kick_id == vote_kick_id))
        votes = result.scalars().all()
        return sum(1 for v in votes if v), len(votes)

    @staticmethod
    async def finish_vote_kick(session: AsyncSession, vote_kick_id: int, status: VoteKickStatus) -> bool:
        stmt = (
            update(VoteKick)
            .where(VoteKick.id == vote_kick_id, VoteKick.status == VoteKickStatus.PENDING)
            .values(status=status, finished_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    async def reject_pending_vote_kicks(session: AsyncSession, match_id: int) -> int:
        """Partida encerrada: votações abertas nela perdem o efeito."""
        stmt = (
            update(VoteKick)
            .where(VoteKick.match_id == match_id, VoteKick.status == VoteKickStatus.PENDING)
            .values(status=VoteKickStatus.REJECTED, finished_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount or 0
