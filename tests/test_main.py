"""Tests for the command line entry point."""

import socket
from unittest.mock import patch

import pytest

from pyButtonPlatform.__main__ import build_parser, main


@pytest.fixture(autouse=True)
def _keep_root_logger():
    # main() reconfigures the root logger; keep pytest's handlers intact.
    with patch("pyButtonPlatform.__main__.setup_logging") as mock:
        yield mock


def _write_config(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


class TestParser:

    def test_config_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_options(self):
        args = build_parser().parse_args(
            ["-c", "c.yaml", "--port", "4000", "--no-announce", "-v"]
        )
        assert args.config == "c.yaml"
        assert args.port == 4000
        assert args.no_announce is True
        assert args.verbose is True

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            build_parser().parse_args(["--version"])
        assert exc.value.code == 0
        assert "pyButtonPlatform" in capsys.readouterr().out


class TestExitCodes:

    def test_missing_config_file(self, tmp_path):
        assert main(["-c", str(tmp_path / "missing.yaml")]) == 2

    def test_invalid_config(self, tmp_path):
        path = _write_config(tmp_path, "port: 80\n")
        assert main(["-c", path]) == 2

    def test_invalid_port_override(self, tmp_path):
        path = _write_config(tmp_path, "buttons: [Kitchen]\n")
        assert main(["-c", path, "--port", "80"]) == 2

    def test_start_failure(self, tmp_path):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        try:
            port = blocker.getsockname()[1]
            path = _write_config(
                tmp_path,
                f"bind_address: 127.0.0.1\nport: {port}\n"
                "buttons: [Kitchen]\n",
            )
            assert main(["-c", path, "--no-announce"]) == 1
        finally:
            blocker.close()

    def test_overrides_applied(self, tmp_path):
        path = _write_config(tmp_path, "buttons: [Kitchen]\n")
        state = str(tmp_path / "cache.yaml")
        with patch("pyButtonPlatform.__main__.ButtonPlatform") as mock_cls, \
                patch("pyButtonPlatform.__main__.asyncio.run") as mock_run:
            assert main([
                "-c", path, "--port", "4000", "--state", state,
                "--no-announce",
            ]) == 0
        config = mock_cls.call_args.args[0]
        assert config.port == 4000
        assert config.state_path == state
        assert config.announce is False
        assert config.buttons == ("Kitchen",)
        mock_run.assert_called_once()
        mock_run.call_args.args[0].close()
