import discord
import logging
import os
from typing import Optional

from src.services.notifier import (
    Notifier, MATCH_CREATED, MATCH_COMPLETED, MATCH_CANCELLED, QUEUE_TIMEOUT,
    VOTE_KICK_STARTED, VOTE_KICK_FINISHED
)

logger = logging.getLogger("notifier")


def format_team(team: dict) -> str:
    names = "\n".join([f"• {p['name']} ({p['rating']})" for p in team['players']])
    return f"{names}\n\n📊 **Média:** {team['avg_rating']}"


class DiscordNotifier(Notifier):
    """Avisos do núcleo no canal de anúncios + canal de texto por partida."""

    def __init__(self, bot: discord.Client, channel_id: int = None, category_name: str = None):
        self.bot = bot
        self.channel_id = channel_id or int(os.getenv("ANNOUNCE_CHANNEL_ID", "0") or 0)
        self.category_name = category_name or os.getenv("MATCH_CATEGORY_NAME", "Partidas")

    def _channel(self):
        if not self.channel_id:
            return None
        return self.bot.get_channel(self.channel_id)

    def build_embed(self, event: str, payload: dict) -> Optional[discord.Embed]:
        if event == MATCH_CREATED:
            team_a, team_b = payload['teams']
            embed = discord.Embed(title=f"⚔️ PARTIDA #{payload['match_id']} (Balanceada)", color=0x2ecc71)
            embed.add_field(name=f"🔵 Time {team_a['name']}", value=format_team(team_a), inline=True)
            embed.add_field(name=f"🔴 Time {team_b['name']}", value=format_team(team_b), inline=True)
            embed.add_field(name="\u200b", value="\u200b", inline=False)
            embed.add_field(
                name="📢 Instruções",
                value=f"ID: **{payload['match_id']}**\n`.resultado {payload['match_id']} {team_a['name']}/{team_b['name']}`",
                inline=False
            )
            if payload.get('channel_id'):
                embed.set_footer(text="Canal da partida criado para os jogadores.")
            return embed

        if event == MATCH_COMPLETED:
            embed = discord.Embed(
                title=f"✅ Partida #{payload['match_id']} Finalizada!",
                description=f"Vencedor: **TIME {payload['winner']['name']}**",
                color=0x2ecc71
            )
            lines = [
                f"{'🏆' if c['won'] else '💀'} {c['name']}: {c['old']} → **{c['new']}**"
                + (f" (+{c['bonus']} streak)" if c['bonus'] else "")
                for c in payload['changes']
            ]
            embed.add_field(name="MMR", value="\n".join(lines) or "-", inline=False)
            return embed

        if event == MATCH_CANCELLED:
            return discord.Embed(
                title=f"🚫 Partida #{payload['match_id']} ANULADA",
                description=f"{len(payload.get('requeued', []))} jogadores voltaram para a fila.",
                color=0xe74c3c
            )

        if event == QUEUE_TIMEOUT:
            return discord.Embed(
                title="⏰ Fila limpa por inatividade",
                description=f"{len(payload['player_ids'])} jogadores saíram da fila após {payload['timeout_minutes']} minutos.",
                color=0x95a5a6
            )

        if event == VOTE_KICK_STARTED:
            return discord.Embed(
                title=f"🗳️ Votekick na Partida #{payload['match_id']}",
                description=(
                    f"<@{payload['initiator_discord_id']}> abriu votação contra <@{payload['target_discord_id']}>.\n"
                    f"Votos necessários: **{payload['required']}**"
                ),
                color=0xff9900
            )

        if event == VOTE_KICK_FINISHED:
            outcome = "APROVADO" if payload['passed'] else "REJEITADO"
            return discord.Embed(
                title=f"🗳️ Votekick #{payload['vote_kick_id']} {outcome}",
                description=f"Alvo: <@{payload['target_discord_id']}> ({payload['approvals']}/{payload['required']})",
                color=0xe74c3c if payload['passed'] else 0x95a5a6
            )

        return None

    async def announce(self, event: str, payload: dict) -> None:
        await super().announce(event, payload)
        channel = self._channel()
        embed = self.build_embed(event, payload)
        if channel is None or embed is None:
            return
        await channel.send(embed=embed)

    async def open_match_channel(self, match: dict) -> Optional[int]:
        channel = self._channel()
        if channel is None or not hasattr(channel, "guild"):
            return None
        guild = channel.guild

        category = discord.utils.get(guild.categories, name=self.category_name)
        if category is None:
            category = await guild.create_category(self.category_name)

        overwrites = {guild.default_role: discord.PermissionOverwrite(view_channel=False)}
        for team in match['teams']:
            for p in team['players']:
                member = guild.get_member(p.get('discord_id') or 0)
                if member:
                    overwrites[member] = discord.PermissionOverwrite(view_channel=True, send_messages=True)

        match_channel = await guild.create_text_channel(
            f"partida-{match['match_id']}",
            category=category,
            overwrites=overwrites,
            reason=f"Partida #{match['match_id']}"
        )
        logger.info(f"Canal {match_channel.id} criado para a partida #{match['match_id']}")
        return match_channel.id

    async def close_match_channel(self, match_id: int, channel_id: Optional[int]) -> None:
        if not channel_id:
            return
        match_channel = self.bot.get_channel(channel_id)
        if match_channel is None:
            return
        try:
            await match_channel.delete(reason=f"Partida #{match_id} encerrada")
        except discord.NotFound:
            pass # Canal já apagado manualmente
