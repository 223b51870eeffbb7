import pytest

from application.messages import Cancelled, CancelToken
from application.ports import ProcessError
from core import InstallSource
from infrastructure.process import SubprocessRunner, install_command, validate_package_name


@pytest.mark.parametrize(
    "action,name,source,expected",
    [
        ("install", "ripgrep", InstallSource.CARGO, ["cargo", "install", "ripgrep"]),
        ("update", "ripgrep", InstallSource.CARGO, ["cargo", "install", "--force", "ripgrep"]),
        ("uninstall", "httpie", InstallSource.PIP, ["pip", "uninstall", "-y", "httpie"]),
        ("install", "@scope/tool", InstallSource.NPM, ["npm", "install", "-g", "@scope/tool"]),
        ("update", "jq", InstallSource.BREW, ["brew", "upgrade", "jq"]),
        ("install", "golang.org/x/tools/gopls", InstallSource.GO, ["go", "install", "golang.org/x/tools/gopls@latest"]),
    ],
)
def test_install_command(action, name, source, expected):
    assert install_command(action, name, source) == expected


def test_apt_commands_never_prompt_for_a_password():
    for action in ("install", "uninstall", "update"):
        argv = install_command(action, "jq", InstallSource.APT)
        assert argv[:3] == ["sudo", "-n", "apt"]
        assert argv[-1] == "jq"


def test_unsupported_combinations():
    assert install_command("install", "x", InstallSource.MANUAL) is None
    assert install_command("uninstall", "golang.org/x/y", InstallSource.GO) is None
    assert install_command("install", "gopls", InstallSource.GO) is None
    assert install_command("install", "rm -rf /", InstallSource.CARGO) is None


@pytest.mark.parametrize("name", ["", "-rf", "a b", "../etc", "x;ls", "a" * 215])
def test_rejects_unsafe_names(name):
    assert not validate_package_name(name)


def test_runner_streams_lines():
    lines = []
    output = SubprocessRunner().run(["sh", "-c", "echo one; echo two"], CancelToken(), on_line=lines.append)
    assert lines == ["one", "two"]
    assert output == "one\ntwo"


def test_runner_failure_carries_tail():
    with pytest.raises(ProcessError) as exc:
        SubprocessRunner().run(["sh", "-c", "echo building; echo boom >&2; exit 3"], CancelToken())
    assert exc.value.returncode == 3
    assert str(exc.value) == "sh exited with 3: boom"


def test_runner_missing_binary():
    with pytest.raises(ProcessError, match="command not found"):
        SubprocessRunner().run(["hoard-no-such-binary"], CancelToken())


def test_runner_checks_token_before_spawn():
    token = CancelToken()
    token.cancel()
    with pytest.raises(Cancelled):
        SubprocessRunner().run(["sh", "-c", "exit 0"], token)


def test_capture():
    code, out, err = SubprocessRunner().capture(["sh", "-c", "echo out; echo err >&2; exit 1"], CancelToken())
    assert (code, out, err) == (1, "out\n", "err\n")
