import logging
from typing import List, Tuple

from src.services.elo import round_half_up
from src.services.errors import BalancingError

logger = logging.getLogger("matchmaker")


class MatchMaker:
    """
    Responsável pelo balanceamento de times.
    Cada jogador é um dicionário {'id': ..., 'name': ..., 'rating': ...}.
    """

    @staticmethod
    def _with_ratings(players: list, default_rating: int) -> list:
        """Jogador sem rating entra com o padrão, mas fica marcado e logado."""
        prepared = []
        for p in players:
            p = dict(p)
            if p.get('rating') is None:
                logger.warning(
                    f"Jogador {p.get('id')} ({p.get('name', '?')}) sem rating no balanceamento. "
                    f"Usando padrão {default_rating}."
                )
                p['rating'] = default_rating
                p['missing_rating'] = True
            prepared.append(p)
        return prepared

    @staticmethod
    def _validate(team_a: list, team_b: list, team_size: int):
        if len(team_a) != team_size or len(team_b) != team_size:
            raise BalancingError(
                f"Times com tamanho inválido ({len(team_a)} x {len(team_b)}, esperado {team_size})."
            )
        ids = [p['id'] for p in team_a + team_b]
        if len(set(ids)) != len(ids):
            raise BalancingError("Jogador repetido entre os times.")

    @staticmethod
    def balance_teams(players: list, team_size: int, default_rating: int = 1000) -> Tuple[List[dict], List[dict]]:
        """
        Retorna (time_a, time_b).
        1. Ordena do maior rating para o menor (empate: menor id primeiro)
        2. Cada jogador vai para o time com a menor soma até agora (empate: time A).
           Time que já completou `team_size` não recebe mais ninguém.
        """
        if len(players) != team_size * 2:
            raise BalancingError(
                f"São necessários {team_size * 2} jogadores para {team_size}v{team_size} (recebidos {len(players)})."
            )

        prepared = MatchMaker._with_ratings(players, default_rating)
        sorted_players = sorted(prepared, key=lambda x: (-x['rating'], x['id']))

        team_a, team_b = [], []
        sum_a = sum_b = 0

        for p in sorted_players:
            if len(team_a) >= team_size:
                goes_to_a = False
            elif len(team_b) >= team_size:
                goes_to_a = True
            else:
                goes_to_a = sum_a <= sum_b

            if goes_to_a:
                team_a.append(p)
                sum_a += p['rating']
            else:
                team_b.append(p)
                sum_b += p['rating']

        MatchMaker._validate(team_a, team_b, team_size)
        return team_a, team_b

    @staticmethod
    def balance_with_group(group: list, others: list, team_size: int, default_rating: int = 1000) -> Tuple[List[dict], List[dict]]:
        """Grupo mantido junto vira o time A; o resto da seleção forma o time B."""
        team_a = MatchMaker._with_ratings(group, default_rating)
        team_b = sorted(MatchMaker._with_ratings(others, default_rating), key=lambda x: (-x['rating'], x['id']))
        MatchMaker._validate(team_a, team_b, team_size)
        return team_a, team_b

    @staticmethod
    def team_average(team: list) -> int:
        if not team:
            return 0
        return round_half_up(sum(p['rating'] for p in team) / len(team))
