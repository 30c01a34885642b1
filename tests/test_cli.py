import json

from click.testing import CliRunner

from sosrelay.cli.main import main
from sosrelay.cli.util import INSTANCE_FLAG_FILE, get_pid_file, is_running, load_config


def test_init_creates_instance(tmp_path):
    target = tmp_path / "relay"

    result = CliRunner().invoke(main, ["init", str(target)])

    assert result.exit_code == 0, result.output
    assert (target / "config.toml").exists()
    assert (target / "data" / "sos_alerts.db").exists()
    assert (target / "logs").is_dir()
    flag = json.loads((target / INSTANCE_FLAG_FILE).read_text())
    assert flag["instance_path"] == str(target.resolve())
    assert load_config(target)["server"]["port"] == 3000


def test_init_twice_aborts(tmp_path):
    target = tmp_path / "relay"
    runner = CliRunner()
    runner.invoke(main, ["init", str(target)])

    result = runner.invoke(main, ["init", str(target)])

    assert result.exit_code != 0
    assert "Already initialized" in result.output


def test_status_requires_init(tmp_path):
    result = CliRunner().invoke(main, ["status", str(tmp_path / "missing")])

    assert result.exit_code != 0
    assert "Not initialized" in result.output


def test_status_reports_stopped(tmp_path):
    target = tmp_path / "relay"
    runner = CliRunner()
    runner.invoke(main, ["init", str(target)])

    result = runner.invoke(main, ["status", str(target)])

    assert result.exit_code == 0
    assert "Stopped" in result.output


def test_stale_pid_file_is_removed(tmp_path):
    pid_file = get_pid_file(tmp_path)
    # PIDs this large are never allocated on Linux
    pid_file.write_text("99999999")

    assert is_running(tmp_path) is False
    assert not pid_file.exists()


def test_init_creates_database_in_overridden_data_dir(tmp_path, monkeypatch):
    target = tmp_path / "relay"
    data_dir = tmp_path / "shared-data"
    monkeypatch.setenv("SOSRELAY_DATA_DIR", str(data_dir))

    result = CliRunner().invoke(main, ["init", str(target)])

    assert result.exit_code == 0, result.output
    assert (data_dir / "sos_alerts.db").exists()
    assert not (target / "data" / "sos_alerts.db").exists()
    flag = json.loads((target / INSTANCE_FLAG_FILE).read_text())
    assert flag["database_path"] == str(data_dir / "sos_alerts.db")
