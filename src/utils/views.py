import discord
import logging

logger = logging.getLogger("views")


class BaseInteractiveView(discord.ui.View):
    """
    Classe Base para Views interativas do bot.
    Responsável por garantir que o status 'Expirado' seja exibido
    ao invés de simplesmente remover os botões.
    """
    # O timeout padrão do Discord é 180s (3 minutos)
    def __init__(self, timeout=180, **kwargs):
        super().__init__(timeout=timeout)
        self.message = None # Atributo para armazenar a referência da mensagem

    async def on_timeout(self):
        """Função chamada quando o tempo acaba."""
        if self.message:
            self.clear_items()

            # Botão de aviso que não pode ser clicado
            timeout_button = discord.ui.Button(
                label="Tempo Expirado / Votação Encerrada",
                style=discord.ButtonStyle.gray,
                emoji="⏰",
                disabled=True
            )
            self.add_item(timeout_button)

            try:
                await self.message.edit(view=self)
            except discord.NotFound:
                pass # Mensagem já apagada
            except discord.HTTPException as e:
                logger.error(f"Erro ao editar mensagem expirada: {e}")

    async def close(self, interaction: discord.Interaction, content: str = None):
        """Encerra a view: desabilita os botões na própria mensagem."""
        for item in self.children:
            item.disabled = True
        self.stop()
        kwargs = {'view': self}
        if content is not None:
            kwargs['content'] = content
        try:
            if not interaction.response.is_done():
                await interaction.response.edit_message(**kwargs)
            elif self.message:
                await self.message.edit(**kwargs)
        except discord.HTTPException as e:
            logger.error(f"Erro ao encerrar view: {e}")
