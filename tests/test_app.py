import subprocess
import sys


def _help(*args):
    proc = subprocess.run(
        [sys.executable, "-m", "counter_queue.app", *args, "-h"],
        capture_output=True,
        text=True,
        check=False,
    )
    assert proc.returncode == 0
    return proc.stdout + proc.stderr


def test_app_help_runs():
    out = _help()
    assert "main entrypoint" in out
    assert "run" in out
    assert "ticket" in out
    assert "--log-level" in out


def test_run_help_runs():
    out = _help("run")
    assert "--counter" in out
    assert "--monitor-interval" in out
    assert "--store-timeout" in out


def test_ticket_help_runs():
    out = _help("ticket")
    assert "--service" in out
    assert "--auto-assign" in out
