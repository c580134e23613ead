import pytest
from pydantic import ValidationError

from pathstore.config import Isolation, Settings, get_settings, reset_settings_cache


@pytest.fixture(autouse=True)
def _clean_settings(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in (
        "DATABASE_URL",
        "DB_POOL_MIN_SIZE",
        "DB_POOL_MAX_SIZE",
        "DEFAULT_ISOLATION",
        "VIEW_DEDUPE_SECONDS",
        "EVENT_PAGE_SIZE",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_settings_cache()
    yield
    reset_settings_cache()


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env()
        assert settings.pool_min_size == 2
        assert settings.pool_max_size == 10
        assert settings.default_isolation is Isolation.READ_COMMITTED
        assert settings.event_page_size == 500

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://db.internal/learn")
        monkeypatch.setenv("DB_POOL_MAX_SIZE", "25")
        monkeypatch.setenv("DEFAULT_ISOLATION", "Repeatable Read")
        settings = Settings.from_env()
        assert settings.database_url == "postgresql://db.internal/learn"
        assert settings.pool_max_size == 25
        assert settings.default_isolation is Isolation.REPEATABLE_READ

    def test_dotenv_file_is_read(self, tmp_path):
        (tmp_path / ".env").write_text("VIEW_DEDUPE_SECONDS=15\n")
        assert Settings.from_env().view_dedupe_seconds == 15

    def test_environment_wins_over_dotenv(self, monkeypatch, tmp_path):
        (tmp_path / ".env").write_text("EVENT_PAGE_SIZE=100\n")
        monkeypatch.setenv("EVENT_PAGE_SIZE", "200")
        assert Settings.from_env().event_page_size == 200

    def test_max_below_min_is_raised_to_min(self):
        settings = Settings(pool_min_size=8, pool_max_size=4)
        assert settings.pool_max_size == 8

    def test_invalid_values_are_rejected(self):
        with pytest.raises(ValidationError):
            Settings(event_page_size=5000)
        with pytest.raises(ValidationError):
            Settings(default_isolation="chaos")

    def test_get_settings_is_cached_until_reset(self, monkeypatch):
        first = get_settings()
        assert get_settings() is first
        monkeypatch.setenv("DB_POOL_MIN_SIZE", "1")
        reset_settings_cache()
        assert get_settings().pool_min_size == 1


class TestIsolation:
    def test_sql_rendering(self):
        assert Isolation.SERIALIZABLE.sql == "SERIALIZABLE"
        assert Isolation.READ_COMMITTED.sql == "READ COMMITTED"

    def test_hyphenated_and_spaced_names(self):
        assert Isolation("read-committed") is Isolation.READ_COMMITTED
        assert Isolation(" SERIALIZABLE ") is Isolation.SERIALIZABLE
        with pytest.raises(ValueError):
            Isolation("snapshot")
