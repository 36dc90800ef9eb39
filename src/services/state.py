"""
Estado em memória do processo.

Nada aqui é fonte de verdade: o banco (fila + partidas abertas) é que decide.
Os dois caches só fecham janelas de corrida dentro do mesmo processo e podem
começar vazios após um restart sem quebrar nenhuma regra.
"""
import logging
from typing import Dict, Iterable, List

logger = logging.getLogger("estado")


class ProcessingSet:
    """Jogadores que saíram da fila e ainda não estão gravados num Time."""

    def __init__(self):
        self._ids = set()

    def add_all(self, player_ids: Iterable[int]):
        self._ids.update(player_ids)

    def discard_all(self, player_ids: Iterable[int]):
        self._ids.difference_update(player_ids)

    def __contains__(self, player_id: int) -> bool:
        return player_id in self._ids

    def __len__(self):
        return len(self._ids)


def group_id(player_ids: Iterable[int]) -> str:
    return "-".join(str(pid) for pid in sorted(set(player_ids)))


class GroupTracker:
    """
    Retenção de grupo: o time que perdeu junto volta junto na próxima partida,
    até alguém do grupo chegar em `loss_cap` derrotas seguidas com o grupo.
    """

    def __init__(self, loss_cap: int = 2):
        self.loss_cap = loss_cap
        self._groups: Dict[str, Dict[int, int]] = {}

    def record_loss(self, player_ids: Iterable[int]) -> bool:
        """Retorna True se o grupo continua retido depois desta derrota."""
        ids = set(player_ids)
        gid = group_id(ids)
        counters = self._groups.get(gid)
        if counters is None:
            self.forget_players(ids)
            counters = {pid: 0 for pid in ids}

        for pid in counters:
            counters[pid] += 1

        if max(counters.values()) >= self.loss_cap:
            self._groups.pop(gid, None)
            logger.info(f"Grupo {gid} desfeito após {max(counters.values())} derrotas seguidas.")
            return False

        self._groups[gid] = counters
        return True

    def record_win(self, player_ids: Iterable[int]):
        self.forget_players(player_ids)

    def forget_players(self, player_ids: Iterable[int]):
        ids = set(player_ids)
        for gid in [g for g, counters in self._groups.items() if ids & counters.keys()]:
            del self._groups[gid]

    def retained_groups(self) -> List[List[int]]:
        """Grupos retidos, do mais antigo para o mais novo."""
        return [sorted(counters) for counters in self._groups.values()]

    def counters(self, player_ids: Iterable[int]) -> Dict[int, int]:
        return dict(self._groups.get(group_id(player_ids), {}))

    def clear(self):
        self._groups.clear()
