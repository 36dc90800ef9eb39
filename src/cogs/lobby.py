import discord
import logging
from discord.ext import commands, tasks

from src.services.matchmaking import MatchmakingService
from src.utils.discord_notifier import DiscordNotifier, format_team
from src.utils.views import BaseInteractiveView

logger = logging.getLogger("lobby")


def resolve_team(match: dict, winner: str):
    """Aceita o nome do time, 'a'/'b', '1'/'2' ou blue/red. Retorna o dict do time ou None."""
    key = winner.strip().lower()
    aliases = {'a': 0, '1': 0, 'blue': 0, 'azul': 0, 'b': 1, '2': 1, 'red': 1, 'vermelho': 1}
    for team in match['teams']:
        if team['name'].lower() == key:
            return team
    if key in aliases and len(match['teams']) == 2:
        return match['teams'][aliases[key]]
    return None


# --- VIEW: PAINEL DA FILA ---
class LobbyView(BaseInteractiveView):
    def __init__(self, lobby_cog):
        # Timeout None: o painel vive enquanto a mensagem existir
        super().__init__(timeout=None)
        self.lobby_cog = lobby_cog

    @discord.ui.button(label="Entrar", style=discord.ButtonStyle.success, emoji="⚔️", custom_id="lobby_join")
    async def join_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self.lobby_cog.process_join(interaction)

    @discord.ui.button(label="Sair", style=discord.ButtonStyle.secondary, emoji="🏃", custom_id="lobby_leave")
    async def leave_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self.lobby_cog.process_leave(interaction)

    @discord.ui.button(label="Perfil", style=discord.ButtonStyle.secondary, emoji="📊", custom_id="lobby_profile")
    async def profile_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        await interaction.response.send_message("Use `.perfil` para ver seus stats.", ephemeral=True)

    @discord.ui.button(label="Forçar Partida (Admin)", style=discord.ButtonStyle.secondary, emoji="⚡", custom_id="lobby_force", row=1)
    async def force_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        if not interaction.user.guild_permissions.administrator:
            return await interaction.response.send_message("⛔ Apenas Administradores podem forçar a partida.", ephemeral=True)

        await interaction.response.defer(ephemeral=True)
        result = await self.lobby_cog.service.try_create_match(force=True)
        prefix = "✅" if result.success else "❌"
        await interaction.followup.send(f"{prefix} {result.message}", ephemeral=True)
        await self.lobby_cog.update_lobby_message()


# --- LOBBY COG ---
class Lobby(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.service: MatchmakingService = bot.matchmaking
        self.lobby_message: discord.Message = None

        # Guarda contra duas rodadas do loop ao mesmo tempo (rodada lenta + próximo tick)
        self._check_running = False

        self.matchmaking_loop.change_interval(seconds=self.service.config.match_check_interval_seconds)

    async def cog_load(self):
        self.service.set_notifier(DiscordNotifier(self.bot))
        # Botões do painel continuam funcionando após restart
        self.bot.add_view(LobbyView(self))
        self.matchmaking_loop.start()

    async def cog_unload(self):
        self.matchmaking_loop.cancel()

    # --- LOOP AUTOMÁTICO ---
    @tasks.loop(seconds=30)
    async def matchmaking_loop(self):
        if self._check_running:
            logger.debug("Checagem anterior ainda em andamento; pulando este ciclo.")
            return

        self._check_running = True
        try:
            created = await self.service.run_periodic_check()
            if created:
                logger.info(f"Loop criou as partidas: {created}")
            await self.update_lobby_message()
        except Exception as e:
            logger.exception(f"Erro no loop de matchmaking: {e}")
        finally:
            self._check_running = False

    @matchmaking_loop.before_loop
    async def before_matchmaking_loop(self):
        await self.bot.wait_until_ready()

    # --- PAINEL ---
    async def get_queue_embed(self) -> discord.Embed:
        snapshot = await self.service.queue_snapshot()
        config = self.service.config
        count = len(snapshot)

        title = f"🏆 Fila {config.team_size}v{config.team_size} ({count}/{config.match_threshold})"
        if count == 0:
            desc = "A fila está vazia."
        else:
            lines = [
                f"`{p['position']}.` **{p['name']}** ({p['rating']})" + (" ⭐" if p['priority'] > 0 else "")
                for p in snapshot
            ]
            desc = "\n".join(lines)

        embed = discord.Embed(title=title, description=desc, color=0x3498db)
        embed.set_footer(text="Clique para entrar • A partida é montada automaticamente quando a fila enche")
        return embed

    async def update_lobby_message(self, interaction: discord.Interaction = None):
        embed = await self.get_queue_embed()
        view = LobbyView(self)
        try:
            if interaction and not interaction.response.is_done():
                await interaction.response.edit_message(embed=embed, view=view)
            elif self.lobby_message:
                await self.lobby_message.edit(embed=embed, view=view)
        except discord.NotFound:
            self.lobby_message = None
        except discord.HTTPException as e:
            logger.error(f"Falha ao atualizar o painel da fila: {e}")

    async def process_join(self, interaction: discord.Interaction):
        user = interaction.user
        result = await self.service.join_queue(user.id, user.display_name)
        if not result.success:
            return await interaction.response.send_message(f"❌ {result.message}", ephemeral=True)

        await self.update_lobby_message(interaction)
        match = result.data.get('match')
        if match:
            await interaction.followup.send(f"⚔️ {match.message}")

    async def process_leave(self, interaction: discord.Interaction):
        result = await self.service.leave_queue(interaction.user.id)
        if not result.success:
            return await interaction.response.send_message(f"❌ {result.message}", ephemeral=True)
        await self.update_lobby_message(interaction)

    # --- COMANDOS ---
    @commands.command(name="fila")
    async def fila(self, ctx):
        """Abre (ou reabre) o painel da fila neste canal."""
        if self.lobby_message:
            try: await self.lobby_message.delete()
            except discord.HTTPException: pass

        embed = await self.get_queue_embed()
        self.lobby_message = await ctx.send(embed=embed, view=LobbyView(self))

    @commands.command(name="sair")
    async def sair(self, ctx):
        result = await self.service.leave_queue(ctx.author.id)
        await ctx.reply(("🏃 " if result.success else "❌ ") + result.message)
        if result.success:
            await self.update_lobby_message()

    @commands.command(name="forcar")
    @commands.has_permissions(administrator=True)
    async def forcar(self, ctx):
        """Monta a partida com o topo da fila mesmo abaixo do mínimo configurado."""
        result = await self.service.try_create_match(force=True)
        await ctx.reply(("✅ " if result.success else "❌ ") + result.message)
        await self.update_lobby_message()

    @commands.command(name="resultado")
    @commands.has_permissions(administrator=True)
    async def resultado(self, ctx, match_id: int = None, winner: str = None):
        if not match_id or not winner:
            return await ctx.reply("❌ Uso: `.resultado <ID> <Time>`")

        lookup = await self.service.get_match(match_id)
        if not lookup.success:
            return await ctx.reply(f"❌ {lookup.message}")

        team = resolve_team(lookup.data['match'], winner)
        if not team:
            names = "/".join(t['name'] for t in lookup.data['match']['teams'])
            return await ctx.reply(f"❌ Time inválido. Use {names}.")

        result = await self.service.report_winner(match_id, team['id'])
        if result.success:
            embed = discord.Embed(title=f"✅ Partida #{match_id} Finalizada!", description=result.message, color=0x2ecc71)
            await ctx.reply(embed=embed)
        else:
            await ctx.reply(f"🔒 {result.message}")

    @commands.command(name="anular")
    @commands.has_permissions(administrator=True)
    async def anular(self, ctx, match_id: int = None):
        if not match_id:
            return await ctx.reply("❌ Uso: `.anular <ID>`")

        result = await self.service.cancel_match(match_id)
        await ctx.reply(("🚫 " if result.success else "❌ ") + result.message)
        if result.success:
            await self.update_lobby_message()

    @commands.command(name="partidas")
    async def partidas(self, ctx):
        """Lista as partidas em andamento."""
        matches = await self.service.active_matches()
        if not matches:
            return await ctx.reply("Nenhuma partida em andamento.")

        embed = discord.Embed(title="⚔️ Partidas em andamento", color=0xff9900)
        for match in matches[:10]:
            team_a, team_b = match['teams']
            embed.add_field(
                name=f"#{match['match_id']} • {team_a['name']} x {team_b['name']}",
                value=f"{format_team(team_a)}\n\n{format_team(team_b)}",
                inline=False
            )
        await ctx.reply(embed=embed)


async def setup(bot: commands.Bot):
    await bot.add_cog(Lobby(bot))
