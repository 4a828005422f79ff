"""
Tests for the hostprep command line interface.
"""

import json
import os
import tempfile
from pathlib import Path

import pytest
from click.testing import CliRunner

# Add parent directory to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from hostprep import hostprep


@pytest.fixture
def workdir():
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def run(workdir):
    """Invoke the CLI against a config whose audit log lives in workdir."""
    config_path = workdir / "config.yaml"
    config_path.write_text(f"hostprep:\n  audit_log: {workdir / 'audit.jsonl'}\n")
    runner = CliRunner()

    def invoke(*args, input=None):
        return runner.invoke(hostprep, ["--config", str(config_path), *args], input=input)

    return invoke


class TestFileCommands:
    """Test commands that create and read files."""

    def test_mkdir(self, run, workdir):
        result = run("mkdir", str(workdir / "a" / "b"))

        assert result.exit_code == 0
        assert (workdir / "a" / "b").is_dir()

    def test_mkdir_ensure_is_idempotent(self, run, workdir):
        """--ensure tolerates an existing directory."""
        assert run("mkdir", "--ensure", str(workdir / "d")).exit_code == 0
        assert run("mkdir", "--ensure", str(workdir / "d")).exit_code == 0

    def test_mkdir_existing_fails(self, run, workdir):
        """OSError is reported and the exit status is 1."""
        result = run("mkdir", str(workdir))

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_mkdir_bad_mode(self, run, workdir):
        result = run("mkdir", "--mode", "rwx", str(workdir / "d"))

        assert result.exit_code == 2

    def test_owner_and_as_user_conflict(self, run, workdir):
        result = run("touch", "--owner", "root", "--as-user", str(workdir / "f"))

        assert result.exit_code == 2
        assert not (workdir / "f").exists()

    def test_write_then_cat(self, run, workdir):
        """Standard input is written and read back."""
        path = str(workdir / "motd")

        assert run("write", path, input="hello\n").exit_code == 0
        assert run("write", "--append", path, input="world\n").exit_code == 0

        result = run("cat", path)
        assert result.exit_code == 0
        assert result.output == "hello\nworld\n"

    def test_cat_missing(self, run, workdir):
        result = run("cat", str(workdir / "missing"))

        assert result.exit_code == 1

    def test_copy(self, run, workdir):
        (workdir / "src").write_text("data")

        result = run("copy", str(workdir / "src"), str(workdir / "dst"))

        assert result.exit_code == 0
        assert (workdir / "dst").read_text() == "data"

    def test_touch_with_numeric_owner(self, run, workdir):
        """A numeric owner is treated as a uid."""
        result = run("touch", "--owner", str(os.geteuid()), str(workdir / "f"))

        assert result.exit_code == 0
        assert (workdir / "f").exists()


class TestLinkCommands:
    """Test symlink commands."""

    def test_link_readlink_realpath(self, run, workdir):
        target = workdir / "target"
        target.write_text("x")
        link = str(workdir / "link")

        assert run("link", str(target), link).exit_code == 0

        assert run("readlink", link).output.strip() == str(target)
        assert run("realpath", link).output.strip() == os.path.realpath(target)

    def test_rm_is_best_effort(self, run, workdir):
        """Removing a missing path succeeds."""
        assert run("rm", str(workdir / "missing")).exit_code == 0


class TestInfoCommands:
    """Test status and audit output."""

    def test_status(self, run):
        result = run("status")

        assert result.exit_code == 0
        assert "Non-root user" in result.output

    def test_audit_empty(self, run):
        result = run("audit")

        assert result.exit_code == 0
        assert "No audit entries found" in result.output

    def test_audit_export_after_write(self, run, workdir):
        """Mutations made through the CLI show up in the audit log."""
        run("write", str(workdir / "f"), input="x")

        result = run("audit", "--export", "json")

        entries = json.loads(result.output)
        assert entries[0]["target"] == str(workdir / "f")
        assert entries[0]["status"] == "executed"

    def test_audit_failed_filter(self, run, workdir):
        """--failed --limit shows the latest failure only."""
        run("write", str(workdir / "f"), input="x")
        run("mkdir", str(workdir))
        run("chown", str(workdir / "missing"), str(os.geteuid()))

        result = run("audit", "--failed", "--limit", "1")

        assert result.exit_code == 0
        assert "failed" in result.output
        assert "Change" in result.output
        assert "Create" not in result.output

    def test_audit_unreadable_log(self, workdir):
        """A log path that can't be read is reported, not raised."""
        (workdir / "audit.jsonl").mkdir()
        config_path = workdir / "config.yaml"
        config_path.write_text(f"hostprep:\n  audit_log: {workdir / 'audit.jsonl'}\n")

        result = CliRunner().invoke(hostprep, ["--config", str(config_path), "audit"])

        assert result.exit_code == 1
        assert "Error:" in result.output


class TestUnwritableAuditLog:
    """Test commands when the audit log directory can't be created."""

    @pytest.fixture
    def run_blocked(self, workdir):
        (workdir / "data").write_text("a regular file")
        config_path = workdir / "config.yaml"
        config_path.write_text(f"hostprep:\n  audit_log: {workdir / 'data' / 'audit.jsonl'}\n")
        runner = CliRunner()

        def invoke(*args, input=None):
            return runner.invoke(hostprep, ["--config", str(config_path), *args], input=input)

        return invoke

    def test_read_commands_still_work(self, run_blocked, workdir):
        """cat, realpath and readlink don't need the audit log."""
        (workdir / "motd").write_text("hello\n")
        os.symlink(workdir / "motd", workdir / "link")

        assert run_blocked("cat", str(workdir / "motd")).output == "hello\n"
        assert run_blocked("realpath", str(workdir / "link")).exit_code == 0
        assert run_blocked("readlink", str(workdir / "link")).output.strip() == str(workdir / "motd")

    def test_rm_still_works(self, run_blocked, workdir):
        """Best-effort delete succeeds without an audit log."""
        (workdir / "tmp").write_text("x")

        assert run_blocked("rm", str(workdir / "tmp")).exit_code == 0
        assert run_blocked("rm", str(workdir / "missing")).exit_code == 0
        assert not (workdir / "tmp").exists()

    def test_writes_still_work(self, run_blocked, workdir):
        result = run_blocked("write", str(workdir / "f"), input="x")

        assert result.exit_code == 0
        assert (workdir / "f").read_text() == "x"

    def test_audit_shows_nothing(self, run_blocked):
        result = run_blocked("audit")

        assert result.exit_code == 0
        assert "No audit entries found" in result.output


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
