import asyncio
import logging
import os

from dotenv import load_dotenv

from .bot import TelegramBotApp
from .bot import UnwrapCommands
from .github_source import DEFAULT_GRAPHQL_URL
from .github_source import GitHubContributionSource
from .github_source import GraphQLClient
from .github_source import RequestConfig
from .templates import TelegramCardTemplate
from .templates.snowfall import Snowfall

load_dotenv()

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
)
logger = logging.getLogger(__name__)


class ApplicationConfig:
    def __init__(self) -> None:
        self.telegram_token: str = os.getenv("TELEGRAM_TOKEN", "")
        self.github_token: str = os.getenv("GITHUB_TOKEN", "")
        self.github_graphql_url: str = os.getenv("GITHUB_GRAPHQL_URL", DEFAULT_GRAPHQL_URL)

    def validate(self) -> None:
        """Validate configuration."""
        if not self.telegram_token:
            raise ValueError("TELEGRAM_TOKEN not set!")

        # A missing GitHub token is reported per request as an authentication failure.
        if not self.github_token:
            logger.warning("GITHUB_TOKEN not set! Every lookup will fail until it is configured.")


class Application:
    def __init__(self, config: ApplicationConfig):
        self._config = config

    def build_bot(self) -> TelegramBotApp:
        github_config = RequestConfig(
            base_url=self._config.github_graphql_url,
            token=self._config.github_token,
        )
        client = GraphQLClient(github_config)
        github_source = GitHubContributionSource(client)
        template = TelegramCardTemplate(snowfall=Snowfall())
        commands = UnwrapCommands(github_source, template)
        return TelegramBotApp(self._config.telegram_token, commands)

    async def run(self) -> None:
        try:
            self._config.validate()
            bot = self.build_bot()
            await bot.run()

        except KeyboardInterrupt:
            logger.info("Application stopped by user")
        except Exception as e:
            logger.error(f"Application error: {e}")


async def main():
    config = ApplicationConfig()
    app = Application(config)
    await app.run()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
