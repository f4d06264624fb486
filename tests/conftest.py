"""
Shared test fixtures and configuration for pytest
"""
import json
import logging

import pytest

from mailwire.core.models.email import Email
from mailwire.utils.config_manager import ConfigManager, ENV_OVERRIDES, ENV_PREFIX
from mailwire.utils.console import reset_console


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep MAILWIRE_* variables of the developer machine out of tests"""
    for suffix in list(ENV_OVERRIDES) + ["PASSWORD"]:
        monkeypatch.delenv(ENV_PREFIX + suffix, raising=False)
    yield
    reset_console()


@pytest.fixture
def config_path(tmp_path):
    """Path for a throwaway config file"""
    return tmp_path / "config.json"


@pytest.fixture
def account_config_file(config_path):
    """Config file with a complete account section"""
    config_path.write_text(json.dumps({
        "account": {
            "imap_server": "imap.example.com",
            "smtp_server": "smtp.example.com",
            "username": "tester",
            "email": "tester@example.com",
        },
        "fetch": {"batch_size": 10},
    }))
    return config_path


@pytest.fixture
def config_manager(account_config_file, tmp_path):
    """ConfigManager over the account fixture, ignoring any real .env"""
    return ConfigManager(
        config_path=account_config_file,
        env_file=tmp_path / "missing.env",
    )


@pytest.fixture
def sample_email():
    """Sample outgoing message"""
    return Email.compose(
        sender="tester@example.com",
        to=["bob@example.com"],
        subject="Test Subject",
        body="Test email body",
    )


@pytest.fixture
def mailwire_caplog(caplog):
    """caplog that also sees records below the mailwire namespace"""
    caplog.set_level(logging.DEBUG, logger="mailwire")
    return caplog
