import logging
from typing import Optional

logger = logging.getLogger("notifier")

# Eventos emitidos pelo núcleo
MATCH_CREATED = "match_created"
MATCH_COMPLETED = "match_completed"
MATCH_CANCELLED = "match_cancelled"
QUEUE_TIMEOUT = "queue_timeout"
VOTE_KICK_STARTED = "vote_kick_started"
VOTE_KICK_FINISHED = "vote_kick_finished"


class Notifier:
    """
    Saída de avisos do núcleo (canal de anúncios, DMs, canal da partida).
    Tudo aqui é "fire-and-forget": quem chama captura e loga qualquer falha.
    """

    async def announce(self, event: str, payload: dict) -> None:
        logger.info(f"[{event}] {payload}")

    async def open_match_channel(self, match: dict) -> Optional[int]:
        """Cria o canal da partida. Retorna o ID do canal ou None se não houver."""
        return None

    async def close_match_channel(self, match_id: int, channel_id: Optional[int]) -> None:
        return None


async def safe_announce(notifier: Notifier, event: str, payload: dict) -> bool:
    """Falha de aviso nunca desfaz o que já foi gravado."""
    try:
        await notifier.announce(event, payload)
        return True
    except Exception as e:
        logger.error(f"Falha ao anunciar '{event}' ({payload.get('match_id', '-')}): {e}")
        return False
