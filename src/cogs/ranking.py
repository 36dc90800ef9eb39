import discord
from discord.ext import commands

from src.services.matchmaking import MatchmakingService
from src.services.ranks import RANK_TIERS


# --- VIEW DE PAGINAÇÃO ---
class RankingPaginationView(discord.ui.View):
    def __init__(self, players, per_page=10):
        super().__init__(timeout=120) # Botões expiram em 2 minutos
        self.players = players
        self.per_page = per_page
        self.current_page = 0
        self.total_pages = max(1, (len(players) + per_page - 1) // per_page)
        self.update_buttons()

    def update_buttons(self):
        self.prev_button.disabled = (self.current_page == 0)
        self.next_button.disabled = (self.current_page == self.total_pages - 1)
        self.counter_button.label = f"{self.current_page + 1}/{self.total_pages}"

    def create_embed(self):
        start = self.current_page * self.per_page
        batch = self.players[start:start + self.per_page]

        embed = discord.Embed(title="🏆 Ranking da Liga Interna", color=0xffd700)
        embed.description = "Classificação por **MMR** > **Vitórias**."

        lista_fmt = ""
        for p in batch:
            rank_pos = p['position']
            if rank_pos == 1: icon = "🥇"
            elif rank_pos == 2: icon = "🥈"
            elif rank_pos == 3: icon = "🥉"
            else: icon = f"`{rank_pos}.`"

            total = p['wins'] + p['losses']
            wr = (p['wins'] / total * 100) if total > 0 else 0
            streak = f" 🔥{p['win_streak']}" if p['win_streak'] >= 3 else ""

            lista_fmt += (
                f"{icon} **{p['name']}** • {p['rank']}{streak}\n"
                f"└ `{p['wins']}V` - `{p['losses']}D` ({wr:.0f}%) • **{p['rating']}** MMR\n"
            )

        if not batch:
            lista_fmt = "Nenhum jogador nesta página."

        embed.add_field(name="Jogadores", value=lista_fmt, inline=False)
        return embed

    @discord.ui.button(label="◀️", style=discord.ButtonStyle.secondary)
    async def prev_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        self.current_page -= 1
        self.update_buttons()
        await interaction.response.edit_message(embed=self.create_embed(), view=self)

    @discord.ui.button(label="1/1", style=discord.ButtonStyle.gray, disabled=True)
    async def counter_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        pass

    @discord.ui.button(label="▶️", style=discord.ButtonStyle.secondary)
    async def next_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        self.current_page += 1
        self.update_buttons()
        await interaction.response.edit_message(embed=self.create_embed(), view=self)


class Ranking(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.service: MatchmakingService = bot.matchmaking

    @commands.command(name="ranking", aliases=["top", "leaderboard"])
    async def ranking(self, ctx):
        """Mostra todos os jogadores ativos da liga (paginado)."""
        players = await self.service.leaderboard()

        if not players:
            embed = discord.Embed(title="🏆 Ranking da Liga Interna", color=0x3498db)
            embed.description = "Nenhum jogador cadastrado ainda."
            return await ctx.reply(embed=embed)

        view = RankingPaginationView(players, per_page=10)
        await ctx.reply(embed=view.create_embed(), view=view)

    @commands.command(name="perfil")
    async def perfil(self, ctx, jogador: discord.Member = None):
        """Cartão do jogador: MMR, faixa, sequência e últimas partidas."""
        target_user = jogador or ctx.author

        result = await self.service.player_profile(target_user.id)
        if not result.success:
            return await ctx.reply(f"❌ {target_user.mention}: {result.message}")

        profile = result.data['profile']
        tier = profile['rank']

        embed = discord.Embed(color=tier.color)
        embed.set_author(name=f"{target_user.display_name} • {tier.name}", icon_url=target_user.display_avatar.url)
        embed.description = f"*{tier.description}*"

        next_tier = next((t for t in RANK_TIERS if t.threshold > profile['rating']), None)
        progress = profile['progress']
        bar = "▰" * (progress // 10) + "▱" * (10 - progress // 10)
        next_label = f"{next_tier.name} ({next_tier.threshold})" if next_tier else "Topo"

        stats_block = (
            f"```yaml\n"
            f"MMR:     {profile['rating']}\n"
            f"Jogos:   {profile['wins'] + profile['losses']}\n"
            f"V/D:     {profile['wins']} - {profile['losses']}\n"
            f"Win%:    {profile['winrate']:.1f}%\n"
            f"Streak:  {profile['win_streak']}V / {profile['loss_streak']}D\n"
            f"```"
        )
        embed.add_field(name="🏆 Liga Interna", value=stats_block, inline=False)
        embed.add_field(name=f"📈 Próxima faixa: {next_label}", value=f"{bar} {progress}%", inline=False)

        history = profile['history']
        if history:
            icons = {'vitória': '🟢', 'derrota': '🔴'}
            lines = [
                f"{icons.get(h['outcome'], '⚪')} `#{h['match_id']}` {h['team']} • {h['outcome']}"
                for h in history
            ]
            embed.add_field(name="🕹️ Últimas partidas", value="\n".join(lines), inline=False)

        embed.set_footer(text=f"System ID: {profile['discord_id']}")
        await ctx.reply(embed=embed)


async def setup(bot: commands.Bot):
    await bot.add_cog(Ranking(bot))
