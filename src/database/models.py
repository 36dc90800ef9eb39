from sqlalchemy import Column, Integer, String, BigInteger, Boolean, DateTime, ForeignKey, UniqueConstraint, Enum as SAEnum
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
from src.database.config import Base

# --- ENUMS (Padronização) ---
class MatchStatus(enum.Enum):
    WAITING = "waiting"       # Times montados, canal da partida ainda não confirmado
    ACTIVE = "active"         # Partida rolando (votos e resultado liberados)
    COMPLETED = "completed"   # Finalizada com vencedor
    CANCELLED = "cancelled"   # Anulada
    ARCHIVED = "archived"     # Histórico antigo

# Estados em que o jogador conta como "em partida"
OPEN_MATCH_STATUSES = (MatchStatus.WAITING, MatchStatus.ACTIVE)
TERMINAL_MATCH_STATUSES = (MatchStatus.COMPLETED, MatchStatus.CANCELLED, MatchStatus.ARCHIVED)

class VoteKickStatus(enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

# --- TABELAS ---

class Player(Base):
    """Jogador (identidade do Discord + stats da liga)"""
    __tablename__ = "players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    discord_id = Column(BigInteger, nullable=False, unique=True)
    display_name = Column(String, nullable=False)

    rating = Column(Integer, nullable=False, default=1000)
    wins = Column(Integer, nullable=False, default=0)
    losses = Column(Integer, nullable=False, default=0)
    win_streak = Column(Integer, nullable=False, default=0)
    loss_streak = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    queue_entry = relationship("QueueEntry", back_populates="player", uselist=False)
    teams = relationship("TeamPlayer", back_populates="player")

class QueueEntry(Base):
    """Uma linha por jogador na fila (UNIQUE garante que não entra duas vezes)"""
    __tablename__ = "queue"

    id = Column(Integer, primary_key=True, autoincrement=True)
    player_id = Column(Integer, ForeignKey("players.id"), nullable=False, unique=True)
    joined_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    priority = Column(Integer, nullable=False, default=0)
    rating_at_join = Column(Integer, nullable=True)

    player = relationship("Player", back_populates="queue_entry")

class Match(Base):
    """A Partida"""
    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    status = Column(SAEnum(MatchStatus), nullable=False, default=MatchStatus.WAITING)
    created_at = Column(DateTime, default=datetime.utcnow)
    finished_at = Column(DateTime, nullable=True)
    # Sem FK para evitar ciclo matches <-> teams; a validação é feita no serviço
    winning_team_id = Column(Integer, nullable=True)
    channel_id = Column(BigInteger, nullable=True)  # Canal de texto da partida no Discord

    teams = relationship("Team", back_populates="match", cascade="all, delete-orphan", order_by="Team.id")

class Team(Base):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False)
    name = Column(String, nullable=False)
    avg_rating = Column(Integer, nullable=False)  # Foto da média no momento da formação

    match = relationship("Match", back_populates="teams")
    players = relationship("TeamPlayer", back_populates="team", cascade="all, delete-orphan")

class TeamPlayer(Base):
    """Tabela Pivô: quem jogou em qual time"""
    __tablename__ = "team_players"

    team_id = Column(Integer, ForeignKey("teams.id"), primary_key=True)
    player_id = Column(Integer, ForeignKey("players.id"), primary_key=True)

    team = relationship("Team", back_populates="players")
    player = relationship("Player", back_populates="teams")

class MatchVote(Base):
    """Voto de resultado (quem ganhou) dado por um participante"""
    __tablename__ = "match_votes"
    __table_args__ = (UniqueConstraint("match_id", "player_id", name="uq_match_vote_player"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    voted_team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

class VoteKick(Base):
    __tablename__ = "vote_kicks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False)
    target_player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    initiator_player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    status = Column(SAEnum(VoteKickStatus), nullable=False, default=VoteKickStatus.PENDING)
    created_at = Column(DateTime, default=datetime.utcnow)
    finished_at = Column(DateTime, nullable=True)

    votes = relationship("VoteKickVote", back_populates="vote_kick", cascade="all, delete-orphan")

class VoteKickVote(Base):
    __tablename__ = "vote_kick_votes"
    __table_args__ = (UniqueConstraint("vote_kick_id", "player_id", name="uq_vote_kick_voter"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    vote_kick_id = Column(Integer, ForeignKey("vote_kicks.id"), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    approve = Column(Boolean, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    vote_kick = relationship("VoteKick", back_populates="votes")
