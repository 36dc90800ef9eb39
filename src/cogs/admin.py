import discord
from discord.ext import commands
import logging

from src.services.matchmaking import MatchmakingService

logger = logging.getLogger("admin")

# --- VIEW DE CONFIRMAÇÃO ---
class ClearQueueConfirmationView(discord.ui.View):
    def __init__(self, admin_cog, ctx):
        super().__init__(timeout=60)
        self.admin_cog = admin_cog
        self.ctx = ctx
        self.message = None

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        # Apenas o Admin que iniciou o comando
        if interaction.user.id != self.ctx.author.id:
            await interaction.response.send_message("⛔ Apenas o Admin que iniciou este comando pode interagir.", ephemeral=True)
            return False
        return True

    @discord.ui.button(label="Sim, Limpar Fila", style=discord.ButtonStyle.danger)
    async def confirm_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        self.stop()
        # Desativa os botões antes de executar (evita clique duplo)
        for item in self.children:
            item.disabled = True

        result = await self.admin_cog.service.clear_queue()
        prefix = "✅" if result.success else "⛔"
        await interaction.response.edit_message(content=f"{prefix} {result.message}", view=self)

        lobby = self.admin_cog.bot.get_cog("Lobby")
        if lobby:
            await lobby.update_lobby_message()

    @discord.ui.button(label="Cancelar", style=discord.ButtonStyle.secondary)
    async def cancel_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        self.stop()
        await interaction.response.edit_message(content="❌ Operação cancelada.", view=None)

    async def on_timeout(self):
        if self.message:
            try:
                await self.message.edit(content="⏰ Confirmação expirada. Use o comando novamente.", view=None)
            except discord.HTTPException:
                pass


class Admin(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.service: MatchmakingService = bot.matchmaking

    async def cog_check(self, ctx: commands.Context) -> bool:
        # Todos os comandos deste cog são de administrador
        return isinstance(ctx.author, discord.Member) and ctx.author.guild_permissions.administrator

    async def cog_command_error(self, ctx: commands.Context, error):
        if isinstance(error, commands.CheckFailure):
            await ctx.reply("⛔ Apenas Administradores.")
        elif isinstance(error, (commands.BadArgument, commands.MissingRequiredArgument)):
            await ctx.reply(f"❌ Argumento inválido: {error}")
        else:
            logger.error(f"Erro no comando {ctx.command}: {error}")

    @commands.command(name="limpar_fila")
    async def limpar_fila(self, ctx: commands.Context):
        """Remove todo mundo da fila (pede confirmação)."""
        view = ClearQueueConfirmationView(self, ctx)
        view.message = await ctx.reply("⚠️ Tem certeza que deseja **esvaziar a fila**?", view=view)

    @commands.command(name="add_fila")
    async def add_fila(self, ctx: commands.Context, membro: discord.Member, prioridade: int = 1):
        """Coloca um jogador na fila (prioridade maior entra na frente)."""
        result = await self.service.admin_add_to_queue(membro.id, membro.display_name, priority=prioridade)
        await ctx.reply(("✅ " if result.success else "❌ ") + result.message)
        if result.success:
            logger.info(f"{ctx.author} colocou {membro} na fila com prioridade {prioridade}")

    @commands.command(name="setrating")
    async def setrating(self, ctx: commands.Context, membro: discord.Member, rating: int):
        result = await self.service.set_rating(membro.id, rating)
        await ctx.reply(("✅ " if result.success else "❌ ") + result.message)

    @commands.command(name="ativar")
    async def ativar(self, ctx: commands.Context, membro: discord.Member):
        result = await self.service.set_active(membro.id, True)
        await ctx.reply(("✅ " if result.success else "❌ ") + result.message)

    @commands.command(name="desativar")
    async def desativar(self, ctx: commands.Context, membro: discord.Member):
        """Desativa o jogador: sai da fila e some do ranking."""
        result = await self.service.set_active(membro.id, False)
        await ctx.reply(("✅ " if result.success else "❌ ") + result.message)

    @commands.command(name="arquivar")
    async def arquivar(self, ctx: commands.Context, dias: int = None):
        """Arquiva partidas finalizadas/anuladas mais antigas que N dias (padrão da config)."""
        result = await self.service.archive_finished_matches(dias)
        await ctx.reply(("🗄️ " if result.success else "❌ ") + result.message)


async def setup(bot: commands.Bot):
    await bot.add_cog(Admin(bot))
