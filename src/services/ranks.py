from collections import namedtuple

RankTier = namedtuple("RankTier", ["name", "threshold", "color", "description"])

# Faixas de elo da liga (rating mínimo de cada uma)
RANK_TIERS = (
    RankTier("Bronze", 0, 0xB9BBBE, "Início da jornada competitiva"),
    RankTier("Prata", 1000, 0x5865F2, "Subindo a escada"),
    RankTier("Ouro", 1500, 0x3BA55C, "Competidor habilidoso"),
    RankTier("Platina", 2000, 0xFAA61A, "Jogador de elite"),
    RankTier("Diamante", 2500, 0xED4245, "Topo da liga"),
)


def rank_for(rating: int, tiers=RANK_TIERS) -> RankTier:
    ordered = sorted(tiers, key=lambda t: t.threshold, reverse=True)
    for tier in ordered:
        if rating >= tier.threshold:
            return tier
    return ordered[-1]


def progress_to_next(rating: int, tiers=RANK_TIERS) -> int:
    """Percentual (0-100) até a próxima faixa. 100 na faixa mais alta."""
    ordered = sorted(tiers, key=lambda t: t.threshold)
    for current, nxt in zip(ordered, ordered[1:]):
        if current.threshold <= rating < nxt.threshold:
            span = nxt.threshold - current.threshold
            return int((rating - current.threshold) * 100 / span)
    return 100 if rating >= ordered[-1].threshold else 0
