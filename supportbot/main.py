"""Main bot entry point - unified for both polling and webhook modes."""
import asyncio
import logging
import os
import sys

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.types import BotCommand, BotCommandScopeAllPrivateChats

from database.db import db
from supportbot.config import Config
from supportbot.container import ServiceContainer
from supportbot.handlers.updates import create_update_handlers

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


class SupportBot:
    """Owns the Bot client, the service container and the in-process sweep scheduler."""

    def __init__(self, config: Config):
        self.config = config
        self.bot: Bot = None
        self.dispatcher: Dispatcher = None
        self.container: ServiceContainer = None
        self._running = False
        self._sweeps_task: asyncio.Task | None = None
        self.started_at: float | None = None

    async def initialize(self):
        """Initialize all bot components."""
        logger.info("=" * 70)
        logger.info("🛍️ SHOP SUPPORT RELAY - INITIALIZING")
        logger.info("=" * 70)

        try:
            logger.info("📊 Initializing database...")
            await db.connect()
            await db.require_schema()
            logger.info("✅ Database initialized")

            self.bot = Bot(
                token=self.config.bot_token,
                default=DefaultBotProperties(parse_mode=ParseMode.HTML),
            )

            logger.info("🔧 Initializing services...")
            self.container = await ServiceContainer.create(self.config, self.bot)
            logger.info("✅ Services initialized")

            self.dispatcher = Dispatcher()
            self.dispatcher.include_router(create_update_handlers(self.container))
            logger.info("✅ Handlers registered")

        except Exception as e:
            logger.error(f"❌ Failed to initialize bot: {e}", exc_info=True)
            raise

    async def start(self):
        """Start background work and display info."""
        if self._running:
            logger.warning("Bot is already running")
            return

        try:
            self._running = True
            self.started_at = asyncio.get_running_loop().time()

            if self.config.sweep_interval_seconds > 0:
                self._sweeps_task = asyncio.create_task(self._sweeps_worker())
            else:
                logger.info("In-process sweeps disabled (SWEEP_INTERVAL_SECONDS=0)")

            bot_info = await self.bot.get_me()
            logger.info(f"📱 Bot username: @{bot_info.username}")
            logger.info(f"💬 Staff chat: {self.config.admin_chat_id or 'not configured'}")
            logger.info(f"🌐 Mode: {'Production (webhook)' if self.config.is_production else 'Development (polling)'}")

            await self._set_command_menu()
            logger.info("✅ BOT IS RUNNING")

        except Exception as e:
            logger.error(f"❌ Failed to start bot: {e}", exc_info=True)
            self._running = False
            raise

    async def _set_command_menu(self):
        try:
            await self.bot.set_my_commands(
                commands=[
                    BotCommand(command="start", description="Main menu"),
                    BotCommand(command="products", description="Browse products"),
                    BotCommand(command="categories", description="Browse by category"),
                    BotCommand(command="myorders", description="Your orders"),
                    BotCommand(command="track", description="Track an order"),
                    BotCommand(command="subscribe", description="Back-in-stock alerts"),
                    BotCommand(command="notifications", description="Notification settings"),
                    BotCommand(command="support", description="Contact support"),
                    BotCommand(command="help", description="Help"),
                ],
                scope=BotCommandScopeAllPrivateChats(),
            )
        except Exception as e:
            logger.warning(f"Failed to set command menu: {e}")

    async def _sweeps_worker(self):
        """Run every notification sweep on a fixed interval."""
        interval = int(self.config.sweep_interval_seconds)
        while self._running:
            try:
                await asyncio.sleep(interval)
                if not self.container:
                    continue
                results = await self.container.notifications.run_all()
                summary = ", ".join(f"{name}={r.succeeded}/{r.attempted}" for name, r in results.items())
                logger.info(f"Sweeps finished: {summary}")
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Sweeps worker error: {e}", exc_info=True)

    async def stop(self):
        """Stop the bot and cleanup."""
        if not self._running:
            logger.warning("Bot is not running")
            return

        logger.info("🛑 STOPPING BOT")
        try:
            self._running = False

            if self._sweeps_task:
                self._sweeps_task.cancel()
                self._sweeps_task = None

            if self.bot:
                await self.bot.session.close()

            await db.disconnect()
            logger.info("✅ BOT STOPPED")

        except Exception as e:
            logger.error(f"❌ Error stopping bot: {e}", exc_info=True)
            raise

    async def run_polling(self):
        """Run bot in polling mode (for local development)."""
        await self.start()

        try:
            # A webhook left over from production would swallow polled updates.
            await self.bot.delete_webhook(drop_pending_updates=False)
            logger.info("📡 Starting polling...")
            await self.dispatcher.start_polling(
                self.bot,
                allowed_updates=self.dispatcher.resolve_used_update_types(),
            )
        except KeyboardInterrupt:
            logger.info("⌨️  Received interrupt signal")
        except Exception as e:
            logger.error(f"❌ Polling error: {e}", exc_info=True)
        finally:
            await self.stop()

    def is_running(self) -> bool:
        return self._running

    def uptime_seconds(self) -> int:
        if self.started_at is None:
            return 0
        return int(asyncio.get_running_loop().time() - self.started_at)


async def main():
    """Main entry point for polling mode."""
    try:
        config = Config.from_env()
        logger.info("✅ Configuration loaded")

        bot = SupportBot(config)
        await bot.initialize()
        await bot.run_polling()

    except KeyboardInterrupt:
        logger.info("⌨️  Bot stopped by user")
    except Exception as e:
        logger.error(f"❌ Fatal error: {e}", exc_info=True)
        sys.exit(1)


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("⌨️  Bot stopped by user")


if __name__ == "__main__":
    run()
