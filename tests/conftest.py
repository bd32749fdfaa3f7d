import pytest

from config_vault import ConfigVault, MemoryStorage, VaultConfig

SECRET = "correct horse battery staple"


@pytest.fixture
def config():
    """Fast key derivation and short lock waits for tests."""
    return VaultConfig(kdf_iterations=1000, lock_timeout=0.2)


@pytest.fixture
def vault_path(tmp_path):
    return tmp_path / "secrets" / "config.vault"


@pytest.fixture
def vault(vault_path, config):
    """An open file-backed vault."""
    with ConfigVault.load(SECRET, vault_path, config=config) as handle:
        yield handle


@pytest.fixture
def memory_storage():
    return MemoryStorage(lock_timeout=0.2)
