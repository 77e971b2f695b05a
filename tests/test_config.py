import pytest

from career_watch.config import (
    RUN_REQUIRED_ENVS,
    assert_required_envs,
    load_settings,
    mask_secret,
    missing_envs,
)


def test_required_envs_cover_llm_key_and_cron_secret() -> None:
    assert "LLM_API_KEY" in RUN_REQUIRED_ENVS
    assert "CRON_SECRET" in RUN_REQUIRED_ENVS


def test_missing_envs_ignores_blank_values() -> None:
    env = {"LLM_API_KEY": "  ", "CRON_SECRET": "s3cret"}
    assert missing_envs(RUN_REQUIRED_ENVS, environ=env) == ["LLM_API_KEY"]


def test_assert_required_envs_names_missing_keys() -> None:
    with pytest.raises(ValueError, match="LLM_API_KEY, CRON_SECRET"):
        assert_required_envs(RUN_REQUIRED_ENVS, environ={})


def test_load_settings_reads_overrides(tmp_path) -> None:
    settings = load_settings(
        {
            "DB_PATH": str(tmp_path / "watch.sqlite"),
            "LLM_API_KEY": "key",
            "LLM_BASE_URL": "https://llm.example.com/v1/",
            "RECHECK_JOB_LIMIT": "3",
            "HEADLESS": "false",
        }
    )
    assert settings.db_path == tmp_path / "watch.sqlite"
    assert settings.llm_base_url == "https://llm.example.com/v1"
    assert settings.recheck_job_limit == 3
    assert settings.onboard_job_limit == 10
    assert settings.headless is False


def test_load_settings_rejects_plain_http_llm_endpoint() -> None:
    with pytest.raises(ValueError, match="LLM_BASE_URL"):
        load_settings({"LLM_BASE_URL": "http://llm.example.com"})


def test_mask_secret_keeps_edges() -> None:
    assert mask_secret("abcdefgh") == "abc***gh"
    assert mask_secret("abc") == "***"
    assert mask_secret("") == ""
