import pytest

from linechat.config import Settings
from linechat.hub import ServerHub
from linechat.main import main, serve_hub
from linechat.protocol import EXIT_FAILURE


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("USE", "HOST", "PORT", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def test_argument_error_exits_one(capsys):
    assert main(["--nope"]) == EXIT_FAILURE
    assert "--nope" in capsys.readouterr().err


def test_invalid_port_exits_one(capsys):
    assert main(["--port", "abc"]) == EXIT_FAILURE
    assert "Invalid port: abc" in capsys.readouterr().err


def test_help_exits_zero(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["--help"])
    assert excinfo.value.code == 0
    assert "usage" in capsys.readouterr().out.lower()


@pytest.mark.asyncio
async def test_hub_exits_one_when_listen_fails():
    taken = ServerHub("127.0.0.1", 0)
    await taken.start()
    host, port = taken.address
    try:
        code = await serve_hub(Settings(use="server", host=host, port=port))
    finally:
        taken.stop()
    assert code == EXIT_FAILURE
