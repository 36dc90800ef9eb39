import logging
from typing import Awaitable, Callable, List, Tuple

logger = logging.getLogger("compensation")


class CompensationStack:
    """
    Lista de "desfazer" montada conforme as mutações provisórias acontecem.
    Em caso de falha, `rollback()` executa tudo em ordem inversa.
    Uma ação que falha é logada e não impede as próximas.
    """

    def __init__(self):
        self._actions: List[Tuple[str, Callable[[], Awaitable[None]]]] = []

    def push(self, description: str, action: Callable[[], Awaitable[None]]):
        self._actions.append((description, action))

    def __len__(self):
        return len(self._actions)

    def discard(self):
        """Operação concluída: nada mais a desfazer."""
        self._actions.clear()

    async def rollback(self) -> List[str]:
        failed = []
        while self._actions:
            description, action = self._actions.pop()
            try:
                await action()
                logger.info(f"Compensação executada: {description}")
            except Exception as e:
                logger.exception(f"Falha na compensação '{description}': {e}")
                failed.append(description)
        return failed
