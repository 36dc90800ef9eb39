import asyncio
import logging
from datetime import datetime, timedelta
from sqlalchemy.exc import IntegrityError

from src.database.config import session_scope
from src.database.repositories import PlayerRepository, QueueRepository
from src.services.errors import (
    OperationResult, MatchmakingError, AlreadyQueued, AlreadyInMatch, QueueFull,
    PlayerNotFound, ReservationConflict
)
from src.services.settings import MatchmakingConfig
from src.services.state import ProcessingSet

logger = logging.getLogger("fila")


class QueueService:
    """
    Fila compartilhada (ordem: prioridade desc, entrada asc).
    A exclusividade vem do banco (UNIQUE + reserva travada); o `processing`
    e o lock local só reduzem disputa dentro do processo.
    """

    def __init__(self, session_factory, config: MatchmakingConfig, processing: ProcessingSet = None):
        self.session_factory = session_factory
        self.config = config
        self.processing = processing if processing is not None else ProcessingSet()
        # Reserva e varredura de timeout nunca rodam juntas neste processo
        self._reservation_lock = asyncio.Lock()

    async def enqueue(self, player_id: int, priority: int = 0) -> OperationResult:
        if player_id in self.processing:
            return OperationResult.fail(AlreadyInMatch("Você está sendo colocado em uma partida agora."))

        try:
            async with session_scope(self.session_factory) as session:
                player = await PlayerRepository.get(session, player_id)
                if not player:
                    raise PlayerNotFound()
                if await QueueRepository.get_entry(session, player_id):
                    raise AlreadyQueued()

                # Checagem oficial: o flag em memória pode estar frio (restart) ou atrasado
                match_id = await PlayerRepository.open_match_of(session, player_id)
                if match_id:
                    raise AlreadyInMatch(f"Você já está na partida #{match_id}.")

                size = await QueueRepository.count(session)
                if size >= self.config.max_queue_size:
                    raise QueueFull()

                if player_id in self.processing:
                    raise AlreadyInMatch("Você está sendo colocado em uma partida agora.")

                await QueueRepository.add(session, player_id, priority=priority, rating_at_join=player.rating)
                name = player.display_name
        except MatchmakingError as e:
            return OperationResult.fail(e)
        except IntegrityError:
            # Duas entradas simultâneas: a UNIQUE(player_id) barrou a segunda
            return OperationResult.fail(AlreadyQueued())

        logger.info(f"Jogador {player_id} ({name}) entrou na fila (prioridade {priority}).")
        return OperationResult.ok(
            f"**{name}** entrou na fila ({size + 1}/{self.config.match_threshold}).",
            queue_size=size + 1
        )

    async def dequeue(self, player_id: int) -> bool:
        async with session_scope(self.session_factory) as session:
            removed = await QueueRepository.remove(session, player_id)
        if removed:
            logger.info(f"Jogador {player_id} saiu da fila.")
        return removed

    async def size(self) -> int:
        async with session_scope(self.session_factory) as session:
            return await QueueRepository.count(session)

    async def list(self) -> list:
        async with session_scope(self.session_factory) as session:
            rows = await QueueRepository.list_with_players(session)

        return [
            {
                'position': i + 1,
                'player_id': entry.player_id,
                'discord_id': player.discord_id,
                'name': player.display_name,
                'rating': player.rating,
                'rating_at_join': entry.rating_at_join,
                'joined_at': entry.joined_at,
                'priority': entry.priority,
            }
            for i, (entry, player) in enumerate(rows)
        ]

    async def contains(self, player_id: int) -> bool:
        async with session_scope(self.session_factory) as session:
            return await QueueRepository.get_entry(session, player_id) is not None

    async def select_for_match(self, n: int, preferred=()) -> list:
        """
        Reserva atômica: seleciona e remove `n` entradas numa só transação.
        Os jogadores entram no `processing` ANTES do commit, fechando a janela
        com um `enqueue` concorrente. Corrida perdida para outro processo = lista vazia.
        """
        async with self._reservation_lock:
            reserved = []
            try:
                async with session_scope(self.session_factory) as session:
                    reserved = await QueueRepository.reserve(session, n, preferred)
                    self.processing.add_all(e['player_id'] for e in reserved)
            except ReservationConflict:
                self.processing.discard_all(e['player_id'] for e in reserved)
                logger.warning(f"Reserva de {n} jogadores perdida para outra criação de partida.")
                return []
            except Exception:
                self.processing.discard_all(e['player_id'] for e in reserved)
                raise

        if reserved:
            logger.info(f"Reservados {len(reserved)} jogadores da fila: {[e['player_id'] for e in reserved]}")
        return reserved

    async def restore(self, entries: list, priority: int = 0) -> int:
        """Devolve entradas reservadas para a fila (prioridade 0, horário original de entrada)."""
        restored = 0
        async with session_scope(self.session_factory) as session:
            for e in entries:
                if await QueueRepository.get_entry(session, e['player_id']):
                    continue
                await QueueRepository.add(
                    session, e['player_id'], priority=priority,
                    rating_at_join=e.get('rating_at_join'), joined_at=e.get('joined_at')
                )
                restored += 1
        logger.info(f"{restored} jogadores devolvidos para a fila.")
        return restored

    async def timeout_sweep(self, max_age_seconds: int = None) -> list:
        """Remove (e retorna) quem está na fila há mais tempo que o limite."""
        if max_age_seconds is None:
            max_age_seconds = self.config.queue_timeout_seconds
        cutoff = datetime.utcnow() - timedelta(seconds=max_age_seconds)

        async with self._reservation_lock:
            try:
                async with session_scope(self.session_factory) as session:
                    expired = await QueueRepository.pop_expired(session, cutoff)
            except ReservationConflict:
                # Alguém (outro processo) mexeu nessas linhas; a próxima varredura pega o que sobrar
                logger.warning("Varredura de timeout concorreu com outra operação; tentando no próximo ciclo.")
                return []

        if expired:
            logger.info(f"Timeout da fila: {len(expired)} jogadores removidos.")
        return expired

    async def clear(self) -> int:
        async with self._reservation_lock:
            async with session_scope(self.session_factory) as session:
                removed = await QueueRepository.clear(session)
        logger.info(f"Fila limpa ({removed} jogadores removidos).")
        return removed
