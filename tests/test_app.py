import subprocess
import sys


def run_help(*args):
    proc = subprocess.run(
        [sys.executable, "-m", "walkin_queue.app", *args, "-h"],
        capture_output=True,
        text=True,
        check=False,
    )
    assert proc.returncode == 0
    return proc.stdout + proc.stderr


def test_app_help_runs():
    out = run_help()
    assert "main entrypoint" in out
    assert "run" in out
    assert "customer" in out
    assert "staff" in out


def test_run_help_runs():
    out = run_help("run")
    assert "arrival-rate" in out
    assert "avg-service-minutes" in out
    assert "--gui" in out


def test_staff_help_lists_counter_actions():
    proc = subprocess.run(
        [sys.executable, "-m", "walkin_queue.staff", "-h"],
        capture_output=True,
        text=True,
        check=False,
    )
    assert proc.returncode == 0
    for action in ("call-next", "serve", "complete", "verify", "predict"):
        assert action in proc.stdout
