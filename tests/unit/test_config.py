"""Tests for vox_smoke.config."""

import pytest

from vox_smoke.config import (
    ConfigError,
    expand_env_vars,
    load_config,
    normalize_e164,
    parse_number_list,
)

CONFIG_YAML = """
provider:
  type: voximplant
  account_id: ${VOX_ACCOUNT_ID}
  api_key: ${VOX_API_KEY}
  application_id: "42"
  scenario_name: smoke_test
  rule_name: ${VOX_RULE_NAME}
public_base_url: ${PUBLIC_BASE_URL}
test_numbers: ${VOX_TEST_NUMBERS}
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML)
    return path


@pytest.fixture
def vox_env(monkeypatch):
    monkeypatch.setenv("VOX_ACCOUNT_ID", "acc-1")
    monkeypatch.setenv("VOX_API_KEY", "secret")
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://smoke.example.com/")
    monkeypatch.setenv("VOX_TEST_NUMBERS", "+7 999 000-00-01, 79990000002,,")
    monkeypatch.delenv("VOX_RULE_NAME", raising=False)


def test_expand_env_vars(monkeypatch):
    monkeypatch.setenv("TEST_VAR", "expanded")
    monkeypatch.delenv("MISSING", raising=False)

    assert expand_env_vars("val-${TEST_VAR}") == "val-expanded"
    assert expand_env_vars("val-${MISSING}") == "val-${MISSING}"
    assert expand_env_vars({"k": "${TEST_VAR}"}) == {"k": "expanded"}
    assert expand_env_vars(["${TEST_VAR}", 3]) == ["expanded", 3]

def test_load_config(config_file, vox_env):
    config = load_config(config_file)

    assert config.provider.account_id == "acc-1"
    assert config.provider.api_key == "secret"
    assert config.provider.rule_name is None
    assert config.public_base_url == "https://smoke.example.com"
    assert config.event_url == "https://smoke.example.com/webhooks/vox"
    assert config.test_numbers == ["+79990000001", "+79990000002"]
    assert config.default_to == "+79990000001"
    assert config.out_dir == "./out"
    assert str(config.caps_path).endswith("daily_caps_vox.json")
    assert config.batch.repeat == 2
    assert config.batch.daily_cap == 5

def test_missing_required_env(config_file, vox_env, monkeypatch):
    monkeypatch.delenv("VOX_API_KEY")
    with pytest.raises(ConfigError, match="api_key"):
        load_config(config_file)

def test_bad_public_url(config_file, vox_env, monkeypatch):
    monkeypatch.setenv("PUBLIC_BASE_URL", "smoke.example.com")
    with pytest.raises(ConfigError, match="public_base_url"):
        load_config(config_file)

def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "nope.yaml")

def test_non_mapping(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(path)

def test_batch_delay_order(tmp_path, vox_env):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML + "batch:\n  min_delay_sec: 50\n  max_delay_sec: 10\n")
    with pytest.raises(ConfigError, match="max_delay_sec"):
        load_config(path)

def test_test_to_wins_over_numbers(sample_config):
    sample_config.test_to = "+15550009"
    assert sample_config.default_to == "+15550009"

@pytest.mark.parametrize(
    "raw,expected",
    [("+1 (555) 123-4567", "+15551234567"), ("79990000001", "+79990000001"), ("sip:alice", "sip:alice")],
)
def test_normalize_e164(raw, expected):
    assert normalize_e164(raw) == expected

def test_parse_number_list():
    assert parse_number_list(None) == []
    assert parse_number_list("") == []
    assert parse_number_list(["1", " 2 ", "x"]) == ["+1", "+2"]
