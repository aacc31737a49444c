"""Tests for fleetkeep/__main__.py and the main() entry point."""

from __future__ import annotations

import pytest
from fleetkeep import cli as cli_module
from fleetkeep.exceptions import CommandFailureError, FleetKeepError, UserError


class TestMainModule:
    """Tests for __main__ module entry point."""

    def test_main_is_importable(self):
        """Verify that __main__ module can be imported and main is callable."""
        from fleetkeep.__main__ import main

        assert callable(main)


class TestMainExitCodes:
    """Tests for exception to exit code mapping in main()."""

    @pytest.mark.parametrize(
        ("exc", "rc"),
        [
            (CommandFailureError(rc=1), 1),
            (UserError("bad input"), 2),
            (UserError("Node not found: x", rc=1), 1),
            (FleetKeepError("lock busy"), 2),
            (KeyboardInterrupt(), 130),
        ],
    )
    def test_exit_codes(self, mocker, exc: BaseException, rc: int):
        """Each failure class exits with its code."""
        mocker.patch.object(cli_module, "cli", side_effect=exc)
        with pytest.raises(SystemExit) as excinfo:
            cli_module.main()
        assert excinfo.value.code == rc

    def test_user_error_message(self, mocker, capsys):
        """User errors are printed as 'ERROR: ...' on stderr."""
        mocker.patch.object(cli_module, "cli", side_effect=UserError("bad input"))
        with pytest.raises(SystemExit):
            cli_module.main()
        assert "ERROR: bad input" in capsys.readouterr().err
