import pytest

from gh_unwrapped.app import Application
from gh_unwrapped.app import ApplicationConfig
from gh_unwrapped.bot import TelegramBotApp
from gh_unwrapped.github_source import DEFAULT_GRAPHQL_URL


class TestApplicationConfig:
    @pytest.fixture(autouse=True)
    def clean_environment(self, monkeypatch):
        for name in ("TELEGRAM_TOKEN", "GITHUB_TOKEN", "GITHUB_GRAPHQL_URL"):
            monkeypatch.delenv(name, raising=False)

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("TELEGRAM_TOKEN", "telegram-token")
        monkeypatch.setenv("GITHUB_TOKEN", "github-token")
        monkeypatch.setenv("GITHUB_GRAPHQL_URL", "https://ghe.example.test/api/graphql")

        config = ApplicationConfig()

        assert config.telegram_token == "telegram-token"
        assert config.github_token == "github-token"
        assert config.github_graphql_url == "https://ghe.example.test/api/graphql"

    def test_defaults(self, monkeypatch):
        monkeypatch.setenv("TELEGRAM_TOKEN", "telegram-token")

        config = ApplicationConfig()
        config.validate()

        assert config.github_token == ""
        assert config.github_graphql_url == DEFAULT_GRAPHQL_URL

    def test_telegram_token_required(self):
        with pytest.raises(ValueError, match="TELEGRAM_TOKEN not set!"):
            ApplicationConfig().validate()

    def test_missing_github_token_only_warns(self, monkeypatch, caplog):
        monkeypatch.setenv("TELEGRAM_TOKEN", "telegram-token")

        ApplicationConfig().validate()

        assert "GITHUB_TOKEN not set!" in caplog.text

    def test_build_bot(self, monkeypatch):
        monkeypatch.setenv("TELEGRAM_TOKEN", "telegram-token")

        bot = Application(ApplicationConfig()).build_bot()

        assert isinstance(bot, TelegramBotApp)
