"""
Test: Settings loading from the environment.
"""
import pytest

from answerdesk.config import Settings


@pytest.fixture
def clean_env(tmp_path, monkeypatch):
    """Run from an empty directory so no .env file is picked up."""
    monkeypatch.chdir(tmp_path)
    for name in ("DATABASE_URL", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettings:
    def test_defaults(self, clean_env):
        settings = Settings()
        assert settings.database_url == "sqlite:///./answerdesk.db"
        assert settings.allowed_sheet_formats == ["image/jpeg", "image/png", "application/pdf"]
        assert settings.is_production is False

    def test_reads_prefixed_and_plain_variables(self, clean_env):
        clean_env.setenv("DATABASE_URL", "postgresql://u:p@db:5432/answerdesk")
        clean_env.setenv("LOG_LEVEL", "DEBUG")
        clean_env.setenv("ANSWERDESK_ENVIRONMENT", "production")
        clean_env.setenv("ANSWERDESK_MAX_PAGE_SIZE", "50")
        clean_env.setenv("ANSWERDESK_ROLL_CONFIDENCE_THRESHOLD", "65.5")

        settings = Settings()
        assert settings.database_url == "postgresql://u:p@db:5432/answerdesk"
        assert settings.log_level == "DEBUG"
        assert settings.is_production is True
        assert settings.max_page_size == 50
        assert settings.roll_confidence_threshold == 65.5

    def test_comma_separated_lists(self, clean_env):
        clean_env.setenv("ANSWERDESK_ALLOWED_SHEET_FORMATS", "image/png, application/pdf")
        clean_env.setenv("ANSWERDESK_CORS_ORIGINS", "https://school.test,https://admin.school.test")

        settings = Settings()
        assert settings.allowed_sheet_formats == ["image/png", "application/pdf"]
        assert settings.cors_origins == ["https://school.test", "https://admin.school.test"]

    def test_explicit_values_win(self, clean_env):
        clean_env.setenv("DATABASE_URL", "postgresql://u:p@db:5432/answerdesk")
        settings = Settings(database_url="sqlite://", log_level="WARNING")
        assert settings.database_url == "sqlite://"
        assert settings.log_level == "WARNING"

    def test_dotenv_file(self, clean_env, tmp_path):
        (tmp_path / ".env").write_text("ANSWERDESK_APP_NAME=answerdesk-staging\n")
        assert Settings().app_name == "answerdesk-staging"
