import pytest

from weather_subscriptions.settings import Settings

ENV_VARS = [
    "WEATHER_API_KEY", "WEATHER_API_URL", "WEATHER_API_TIMEOUT",
    "SMTP_HOST", "SMTP_PORT", "SMTP_USER", "SMTP_PASS", "MAIL_FROM", "SMTP_TIMEOUT",
    "DATABASE_PATH", "HOST", "PORT", "BASE_URL", "CORS_ORIGINS", "STATIC_DIR",
    "SCHEDULER_ENABLED", "DAILY_SEND_HOUR", "LOG_LEVEL", "DEBUG",
]


@pytest.fixture()
def clean_env(monkeypatch, tmp_path):
    # setenv first so values loaded from a .env file are removed on teardown
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return str(tmp_path / "missing.env")


def test_defaults(clean_env):
    settings = Settings.from_env(clean_env)

    assert settings.port == 3000
    assert settings.base_url == "http://localhost:3000"
    assert settings.smtp_port == 587
    assert settings.weather_api_key is None
    assert settings.smtp_host is None
    assert settings.scheduler_enabled is True
    assert settings.daily_send_hour == 8
    assert settings.cors_origin_list == ["*"]


def test_values_from_environment(clean_env, monkeypatch):
    monkeypatch.setenv("WEATHER_API_KEY", "abc")
    monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
    monkeypatch.setenv("SMTP_USER", "weather@example.com")
    monkeypatch.setenv("SMTP_PASS", "secret")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("SCHEDULER_ENABLED", "false")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = Settings.from_env(clean_env)

    assert settings.weather_api_key == "abc"
    assert settings.smtp_password == "secret"
    assert settings.mail_from == "weather@example.com"
    assert settings.base_url == "http://localhost:8080"
    assert settings.scheduler_enabled is False
    assert settings.cors_origin_list == ["https://a.example", "https://b.example"]
    assert settings.log_level == "DEBUG"


def test_base_url_trailing_slash_removed(clean_env, monkeypatch):
    monkeypatch.setenv("BASE_URL", "https://weather.example.com/")
    assert Settings.from_env(clean_env).base_url == "https://weather.example.com"


def test_env_file_is_loaded(clean_env, monkeypatch, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("WEATHER_API_KEY=from-file\nDAILY_SEND_HOUR=7\n")

    settings = Settings.from_env(str(env_file))
    assert settings.weather_api_key == "from-file"
    assert settings.daily_send_hour == 7


@pytest.mark.parametrize("name,value", [
    ("PORT", "eighty"),
    ("DAILY_SEND_HOUR", "24"),
])
def test_invalid_values_raise(clean_env, monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError):
        Settings.from_env(clean_env)
