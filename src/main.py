import discord
import os
import asyncio
import logging
import sys
from discord.ext import commands
from dotenv import load_dotenv

# Carregamento de variáveis de ambiente
load_dotenv()

# --- Configuração de Log ---
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"),
                    format='%(levelname)s:%(name)s:%(message)s')
logger = logging.getLogger("main")
# --------------------------

intents = discord.Intents.default()
intents.message_content = True
intents.members = True

class RobustBot(commands.Bot):
    def __init__(self):
        super().__init__(
            command_prefix=".",
            intents=intents,
            help_command=None,
            application_id=os.getenv("APP_ID")
        )
        self.matchmaking = None

    async def setup_hook(self):
        # Imports aqui: a config do banco lê o .env, que só foi carregado acima
        try:
            from src.database.config import init_db, engine, async_session
            from src.services.matchmaking import MatchmakingService
            from src.services.settings import MatchmakingConfig
        except ImportError as e:
            logger.error(f"Falha ao importar o núcleo do bot: {e}")
            sys.exit(1)

        logger.info("--- Iniciando Setup ---")
        try:
            config = MatchmakingConfig.from_env()
        except ValueError as e:
            logger.error(f"Configuração inválida: {e}")
            sys.exit(1)

        await init_db(engine)
        logger.info("Banco de Dados conectado.")

        # Serviço único, compartilhado por todos os cogs
        self.matchmaking = MatchmakingService(async_session, config)
        logger.info(
            f"Matchmaking pronto: {config.team_size}v{config.team_size}, "
            f"fila mínima {config.match_threshold}, K={config.k_factor}"
        )

        # Carregar Cogs
        for filename in os.listdir("./src/cogs"):
            if filename.endswith(".py") and filename != "__init__.py":
                try:
                    await self.load_extension(f"src.cogs.{filename[:-3]}")
                    logger.info(f"Cog carregada: {filename}")
                except Exception as e:
                    logger.error(f"FALHA ao carregar {filename}: {e}")

        logger.info("--- Setup Finalizado ---")

    async def on_ready(self):
        logger.info(f'Bot Online! Logado como: {self.user}')

async def main():
    # Assegura que o script seja executado a partir do diretório raiz do projeto
    if not os.path.exists("./src"):
        logger.error("Não foi possível encontrar o diretório 'src'. Execute o bot da raiz do projeto.")
        return

    token = os.getenv("DISCORD_TOKEN")
    if not token:
        logger.error("DISCORD_TOKEN não encontrado nas variáveis de ambiente (.env).")
        return

    os.makedirs("./data", exist_ok=True)
    bot = RobustBot()
    async with bot:
        await bot.start(token)

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot encerrado via interrupção manual.")
    except Exception as e:
        logger.critical(f"Erro fatal no ciclo de vida do bot: {e}")
