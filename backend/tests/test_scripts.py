"""
Tests for the maintenance scripts in the backend dir.
"""
from unittest.mock import patch

import pytest

import init_system_config
import toggle_2fa
from app.services.system_config_service import (
    DEFAULT_CONFIGS,
    get_config_entry,
    get_system_user_id,
    is_two_factor_enabled_for_login,
)


class TestInitSystemConfig:

    def test_seeds_once(self, session, capsys):
        assert init_system_config.initialize_system_config(session) == len(DEFAULT_CONFIGS)
        assert init_system_config.initialize_system_config(session) == 0

        out = capsys.readouterr().out
        assert "site_name: 'AlpusLinks'" in out

    def test_attributed_to_system_user(self, session):
        init_system_config.initialize_system_config(session)
        assert get_config_entry(session, "site_name").updated_by == get_system_user_id(session)


class TestToggle2FA:

    def test_enable_disable(self, session):
        assert toggle_2fa.toggle_2fa(session, True) is True
        assert is_two_factor_enabled_for_login(session) is True

        assert toggle_2fa.toggle_2fa(session, False) is False
        assert is_two_factor_enabled_for_login(session) is False

    @pytest.mark.parametrize("argv", [[], ["on"], ["enable", "now"]])
    def test_bad_arguments(self, argv, capsys):
        with patch.object(toggle_2fa, "init_db") as init_db:
            assert toggle_2fa.main(argv) == 2

        init_db.assert_not_called()
        assert "usage" in capsys.readouterr().out

    def test_main_uses_engine(self, engine, session):
        with patch.object(toggle_2fa, "init_db"), patch.object(toggle_2fa, "engine", engine):
            assert toggle_2fa.main(["enable"]) == 0

        assert is_two_factor_enabled_for_login(session) is True
