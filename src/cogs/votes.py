import discord
import logging
from discord.ext import commands

from src.services.matchmaking import MatchmakingService
from src.utils.views import BaseInteractiveView

logger = logging.getLogger("votes")


# --- VIEW: VOTEKICK ---
class VoteKickView(BaseInteractiveView):
    def __init__(self, service: MatchmakingService, vote_kick_id: int, target_name: str):
        super().__init__(timeout=600)
        self.service = service
        self.vote_kick_id = vote_kick_id
        self.target_name = target_name

    async def register(self, interaction: discord.Interaction, approve: bool):
        tally = await self.service.cast_vote(self.vote_kick_id, interaction.user.id, approve)
        if not tally.tallied:
            return await interaction.response.send_message(f"❌ {tally.message}", ephemeral=True)

        if tally.passed is None:
            return await interaction.response.send_message(f"✅ {tally.message}", ephemeral=True)

        icon = "🔨" if tally.passed else "🛡️"
        await self.close(interaction, content=f"{icon} Votekick contra **{self.target_name}**: {tally.message}")

    @discord.ui.button(label="Expulsar", style=discord.ButtonStyle.danger, emoji="👢")
    async def approve_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self.register(interaction, True)

    @discord.ui.button(label="Manter", style=discord.ButtonStyle.secondary, emoji="🤝")
    async def reject_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self.register(interaction, False)


# --- VIEW: VOTO DE RESULTADO ---
class TeamVoteButton(discord.ui.Button):
    def __init__(self, team: dict):
        super().__init__(label=f"Vitória {team['name']}", style=discord.ButtonStyle.primary, emoji="🏆")
        self.team_id = team['id']

    async def callback(self, interaction: discord.Interaction):
        await self.view.register(interaction, self.team_id)


class MatchResultView(BaseInteractiveView):
    def __init__(self, service: MatchmakingService, match: dict):
        super().__init__(timeout=3600)
        self.service = service
        self.match_id = match['match_id']
        for team in match['teams']:
            self.add_item(TeamVoteButton(team))

    async def register(self, interaction: discord.Interaction, team_id: int):
        result = await self.service.vote_winner(self.match_id, interaction.user.id, team_id)
        if not result.success:
            return await interaction.response.send_message(f"❌ {result.message}", ephemeral=True)

        # vote_winner encerrou a partida (chegou na maioria)
        if 'changes' in result.data:
            return await self.close(interaction, content=f"✅ {result.message}")
        await interaction.response.send_message(f"🗳️ {result.message}", ephemeral=True)


class Votes(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.service: MatchmakingService = bot.matchmaking

    @commands.command(name="votekick")
    async def votekick(self, ctx, alvo: discord.Member = None):
        """Abre votação para expulsar um companheiro de time da partida atual."""
        if not alvo:
            return await ctx.reply("❌ Uso: `.votekick @jogador`")

        result = await self.service.initiate_vote_kick(ctx.author.id, alvo.id)
        if not result.success:
            return await ctx.reply(f"❌ {result.message}")

        if result.data.get('passed') is not None:
            return await ctx.reply(f"🗳️ {result.message}")

        embed = discord.Embed(
            title=f"🗳️ Votekick | Partida #{result.match_id}",
            description=(
                f"{ctx.author.mention} quer expulsar {alvo.mention}.\n"
                f"Só o time de {alvo.display_name} vota. Necessário: **{result.data['required']}** votos."
            ),
            color=0xff9900
        )
        view = VoteKickView(self.service, result.data['vote_kick_id'], alvo.display_name)
        view.message = await ctx.send(embed=embed, view=view)

    @commands.command(name="votar")
    async def votar(self, ctx, match_id: int = None):
        """Abre o painel de voto do resultado de uma partida."""
        if not match_id:
            return await ctx.reply("❌ Uso: `.votar <ID>`")

        lookup = await self.service.get_match(match_id)
        if not lookup.success:
            return await ctx.reply(f"❌ {lookup.message}")

        match = lookup.data['match']
        if match['status'] not in ('waiting', 'active'):
            return await ctx.reply(f"🔒 Partida #{match_id} já encerrada.")

        embed = discord.Embed(
            title=f"🗳️ Resultado da Partida #{match_id}",
            description="Jogadores da partida: votem no time vencedor. Maioria encerra a partida.",
            color=0x3498db
        )
        view = MatchResultView(self.service, match)
        view.message = await ctx.send(embed=embed, view=view)


async def setup(bot: commands.Bot):
    await bot.add_cog(Votes(bot))
