import pytest
from pydantic import ValidationError

from helpai.app.core.config import Settings


def test_defaults(monkeypatch) -> None:
    for name in ("OPENAI_API_KEY", "OPENAI_MODEL", "OPENAI_RPM_LIMIT", "OPENAI_TPM_LIMIT", "LLM_MIN_GAP_MS"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.openai_model == "gpt-4o-mini"
    assert settings.openai_rpm_limit == 3
    assert settings.openai_tpm_limit == 12_000
    assert settings.llm_min_gap_seconds == 0.8
    assert settings.openai_timeout_seconds == 55.0
    assert settings.has_api_key is False


def test_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-live")
    monkeypatch.setenv("OPENAI_RPM_LIMIT", "60")
    monkeypatch.setenv("OPENAI_TPM_LIMIT", "90000")
    monkeypatch.setenv("MOCK_PROVIDER", "true")

    settings = Settings(_env_file=None)

    assert settings.has_api_key is True
    assert settings.openai_rpm_limit == 60
    assert settings.openai_tpm_limit == 90_000
    assert settings.mock_provider is True


def test_whitespace_key_is_missing() -> None:
    assert Settings(_env_file=None, openai_api_key="   ").has_api_key is False


@pytest.mark.parametrize("field", ["openai_rpm_limit", "openai_tpm_limit"])
def test_limits_must_be_positive(field: str) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: 0})


def test_negative_retry_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, llm_retry_max=-1)


def test_cors_origins_accepts_host_without_json(monkeypatch) -> None:
    monkeypatch.setenv("CORS_ORIGINS", "43.163.94.63")

    settings = Settings(_env_file=None)
    assert "http://43.163.94.63" in settings.cors_origins


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ('["http://localhost:5173"]', ["http://localhost:5173"]),
        ("*", ["*"]),
        ("[]", []),
        ("", []),
    ],
)
def test_cors_origins_parsing_variants(monkeypatch, raw: str, expected: list[str]) -> None:
    monkeypatch.setenv("CORS_ORIGINS", raw)

    settings = Settings(_env_file=None)
    assert settings.cors_origins == expected
