import pytest
from cryptography.fernet import Fernet

from pluto_backend.config import PlutoConfig
from pluto_backend.credentials import CredentialPool, load_encrypted_keys, save_encrypted_keys
from pluto_backend.errors import ConfigurationError
from pluto_backend.tiering import ModelTiers


def test_pool_dedupes_and_drops_blanks():
    pool = CredentialPool(["a", " ", "b", "a", "", "c"])
    assert len(pool) == 3
    assert pool.current() == (0, "a")


def test_pool_advance_wraps():
    pool = CredentialPool(["a", "b"])
    assert pool.advance() == 1
    assert pool.current() == (1, "b")
    assert pool.advance() == 0
    assert pool.current() == (0, "a")


def test_pool_advance_from_stale_index_is_a_noop():
    pool = CredentialPool(["a", "b", "c"])
    pool.advance(from_index=0)
    # A second caller that also failed on key 0 must not skip key 1.
    pool.advance(from_index=0)
    assert pool.cursor == 1


def test_empty_pool_raises_configuration_error():
    pool = CredentialPool.empty()
    assert not pool
    with pytest.raises(ConfigurationError):
        pool.current()


def test_encrypted_key_file_roundtrip(tmp_path):
    key = Fernet.generate_key().decode("utf-8")
    path = tmp_path / "keys.enc"
    save_encrypted_keys(path, key, ["gsk_one", "gsk_two"])

    assert b"gsk_one" not in path.read_bytes()
    assert load_encrypted_keys(path, key) == ["gsk_one", "gsk_two"]


def test_encrypted_key_file_wrong_key(tmp_path):
    path = tmp_path / "keys.enc"
    save_encrypted_keys(path, Fernet.generate_key().decode("utf-8"), ["k"])
    with pytest.raises(ConfigurationError):
        load_encrypted_keys(path, Fernet.generate_key().decode("utf-8"))


def test_config_pool_appends_file_keys_after_env_keys(tmp_path):
    key = Fernet.generate_key().decode("utf-8")
    path = tmp_path / "keys.enc"
    save_encrypted_keys(path, key, ["file-key", "env-key"])

    cfg = PlutoConfig(completion_api_keys=["env-key"], credentials_path=str(path), fernet_key=key)
    pool = cfg.build_credential_pool()
    assert len(pool) == 2
    assert pool.current() == (0, "env-key")


def test_config_reads_key_pool_and_tiers_from_env(monkeypatch):
    monkeypatch.setenv("LLAMA_API_KEYS", "k1, k2,,k3")
    monkeypatch.setenv("LLAMA_MODELS", "big,small")
    cfg = PlutoConfig()
    assert cfg.completion_api_keys == ["k1", "k2", "k3"]
    assert list(cfg.build_model_tiers()) == ["big", "small"]


def test_model_tiers_require_at_least_one_model():
    with pytest.raises(ConfigurationError):
        ModelTiers(["", " "])
    tiers = ModelTiers(["a", "b", "a"])
    assert list(tiers) == ["a", "b"]
    assert tiers.primary == "a"
