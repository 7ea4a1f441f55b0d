import logging
from pathlib import Path

import yaml
from pytest import fixture
from typer.testing import CliRunner, Result

from spin_sync import *
from spin_sync.tools.cli.main import app
from spin_sync.tools.config import MEMORY_URL, Config, InstanceConfig

DIVIDER = "=" * 40


class LogHandler(logging.Handler):
    """
    Handler to create a list of logs for testcases to access for verification.
    """

    test_logs: list[str]

    def __init__(self):
        super().__init__()
        self.test_logs = []

    def emit(self, record: logging.LogRecord):
        self.test_logs.append(record.getMessage())


# create and register handler
log_handler = LogHandler()
logging.getLogger("spin-sync").addHandler(log_handler)

runner = CliRunner()


@fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "store"


@fixture
def base_args(tmp_path: Path, store_path: Path) -> list[str | Path]:
    """
    Get args common to commands operating on a file store, with the joined
    session remembered in a temp state file.
    """
    return [
        "--url",
        store_path,
        "--state-file",
        tmp_path / "state.yaml",
    ]


def test_session(base_args: list[str | Path], store_path: Path):
    session_path = FileStore(store_path).get_path("my-group")

    # join a new session and draw twice
    _run([*base_args, "--session", "my-group", "session", "draw"])
    assert "Drew 'Yuji Itadori'" in _find_log("Drew")
    assert session_path.is_file()

    # session is remembered
    _run([*base_args, "session", "draw"])
    assert "Drew 'Megumi Fushiguro'" in _find_log("Drew")

    document = yaml.safe_load(session_path.read_text())
    assert document["initialized"] is True
    assert document["roster"] == list(DEFAULT_ROSTER)
    assert document["drawnSet"] == ["Megumi Fushiguro", "Yuji Itadori"]
    assert document["currentSelection"]["identifier"] == "Megumi Fushiguro"

    result = _run([*base_args, "session", "show"])
    assert "Drawn 2 of 16" in result.stdout
    assert "This time you draw: Megumi Fushiguro" in result.stdout

    # decline to reset
    _run([*base_args, "session", "reset"], input="n\n")
    document = yaml.safe_load(session_path.read_text())
    assert len(document["drawnSet"]) == 2

    _run([*base_args, "session", "reset", "-y"])
    assert _find_log("Reset") == "Reset session 'my-group'"

    document = yaml.safe_load(session_path.read_text())
    assert document["drawnSet"] == []
    assert document["currentSelection"] is None
    assert document["roster"] == list(DEFAULT_ROSTER)

    _run([*base_args, "check"])
    assert "session 'my-group' exists" in log_handler.test_logs[-1]

    # another session is created on demand
    _run([*base_args, "--session", "other-group", "check"])
    assert "session 'other-group' does not exist" in log_handler.test_logs[-1]


def test_play(base_args: list[str | Path], store_path: Path):
    start = len(log_handler.test_logs)
    _run([*base_args, "session", "play"], input="d\nd\nu\ns\nq\n")
    logs = log_handler.test_logs[start:]

    draws = [log for log in logs if log.startswith("Drew")]
    assert len(draws) == 2
    assert "Drew 'Yuji Itadori'" in draws[0]
    assert "Drew 'Megumi Fushiguro'" in draws[1]
    assert "Reverted last draw" in logs

    # default session is joined when none was requested
    session_path = FileStore(store_path).get_path(DEFAULT_SESSION_KEY)
    document = yaml.safe_load(session_path.read_text())
    assert document["drawnSet"] == ["Yuji Itadori"]


def test_watch(base_args: list[str | Path]):
    result = _run([*base_args, "session", "watch", "--duration", "0.1"])
    assert "No selection yet" in result.stdout


def test_memory(tmp_path: Path):
    """
    Nothing survives a memory store, so each invocation starts fresh.
    """
    args = ["--url", MEMORY_URL, "--state-file", tmp_path / "state.yaml"]

    _run([*args, "session", "draw"])
    _run([*args, "session", "draw"])
    assert "Drew 'Yuji Itadori'" in _find_log("Drew")


def test_config(tmp_path: Path):
    config_path = tmp_path / "test-config.yaml"
    root_data_dir = tmp_path / "root-data-dir"
    state_args = ["--state-file", tmp_path / "state.yaml"]

    # generate a config file dynamically with instance info
    Config(
        root_data_dir=root_data_dir,
        instances={
            "test-instance": InstanceConfig(),
            "memory-instance": InstanceConfig(url=MEMORY_URL, timeout=1.0),
        },
    ).dump_yaml(config_path)

    _run(
        [
            *state_args,
            "--instance",
            "test-instance",
            "--config-file",
            config_path,
            "session",
            "draw",
        ]
    )
    assert FileStore(root_data_dir / "test-instance").get_path(
        DEFAULT_SESSION_KEY
    ).is_file()

    _run(
        [
            *state_args,
            "--instance",
            "memory-instance",
            "--config-file",
            config_path,
            "check",
        ]
    )
    assert "does not exist" in log_handler.test_logs[-1]

    # missing instance in config file
    _run(
        [
            *state_args,
            "--instance",
            "nonexistent-instance",
            "--config-file",
            config_path,
            "check",
        ],
        2,
    )

    # nonexistent config file
    _run(
        [
            *state_args,
            "--instance",
            "nonexistent",
            "--config-file",
            tmp_path / "nonexistent.yaml",
            "check",
        ],
        2,
    )

    # invalid config file
    invalid_config_path = tmp_path / "test-invalid-config.yaml"
    invalid_config_path.write_text("")
    _run(
        [
            *state_args,
            "--instance",
            "nonexistent",
            "--config-file",
            invalid_config_path,
            "check",
        ],
        2,
    )


def test_bad_params(tmp_path: Path):
    state_args = ["--state-file", tmp_path / "state.yaml"]

    # no store
    _run([*state_args, "check"], 2)

    # unsupported store
    _run([*state_args, "--url", "ftp://example.com", "check"], 2)

    # bad timeout
    _run(
        [*state_args, "--url", MEMORY_URL, "--timeout", "0", "check"],
        2,
    )


def _run(
    cmd: list[str | Path],
    exit_code: int = 0,
    input: str | None = None,
) -> Result:
    """
    Run command and verify exit code.
    """

    cmd_norm = [str(c) for c in cmd]

    print(DIVIDER)
    print(f"$ spin-sync {' '.join(cmd_norm)}")

    # invoke command
    result = runner.invoke(
        app, args=cmd_norm, input=input, catch_exceptions=False
    )

    print(result.stdout.strip())
    print(DIVIDER)

    assert result.exit_code == exit_code
    return result


def _find_log(prefix: str) -> str:
    """
    Get most recent log starting with prefix.
    """
    return next(
        log for log in reversed(log_handler.test_logs) if log.startswith(prefix)
    )
