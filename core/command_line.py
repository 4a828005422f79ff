"""
Shell command runner for hostprep.

Used where a filesystem effect can only be achieved by running a command
as another user, such as creating a symlink owned by the non-root user.
"""

import shlex
import subprocess
from typing import Callable, Optional

from .current_user import CurrentUser, effective_user, is_root
from .logger import AuditLogger, ActionType, ActionStatus


class CommandError(OSError):
    """A shell command exited non-zero or timed out."""

    def __init__(self, command: str, returncode: Optional[int], output: str = ""):
        self.command = command
        self.returncode = returncode
        self.output = output
        message = f"Command failed ({returncode}): {command}"
        if output.strip():
            message += f"\n{output.strip()}"
        super().__init__(message)

    def __str__(self) -> str:
        return self.args[0]


ErrorCallback = Callable[[int, str], None]


class CommandLine:
    """Runs shell commands, optionally as the non-root user."""

    def __init__(
        self,
        current_user: Optional[Callable[[], str]] = None,
        sudo: str = "sudo",
        timeout: Optional[int] = None,
        logger: Optional[AuditLogger] = None
    ):
        """
        Initialize the command runner.

        Args:
            current_user: Callable returning the non-root user name
            sudo: Program used to switch users when running as root
            timeout: Per-command timeout in seconds
            logger: Audit logger for executed commands
        """
        self.current_user = current_user or CurrentUser()
        self.sudo = sudo
        self.timeout = timeout
        self.logger = logger

    def run(self, command: str, on_error: Optional[ErrorCallback] = None) -> str:
        """
        Run a command through the shell.

        Args:
            command: Shell command line
            on_error: Called with (returncode, output) instead of raising

        Returns:
            Combined stdout and stderr

        Raises:
            CommandError: If the command fails and no on_error is given
        """
        try:
            result = subprocess.run(
                command,
                shell=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding='utf-8',
                errors='replace',
                timeout=self.timeout
            )
        except subprocess.TimeoutExpired as e:
            output = e.output or ""
            if isinstance(output, bytes):
                output = output.decode("utf-8", errors="replace")
            self._log(command, ActionStatus.FAILED, f"Timed out after {self.timeout}s")
            raise CommandError(command, None, output)

        output = result.stdout or ""

        if result.returncode != 0:
            self._log(command, ActionStatus.FAILED, f"Exit code {result.returncode}")
            if on_error is not None:
                on_error(result.returncode, output)
                return output
            raise CommandError(command, result.returncode, output)

        self._log(command, ActionStatus.EXECUTED)
        return output

    def run_as_user(self, command: str, on_error: Optional[ErrorCallback] = None) -> str:
        """Run a command as the non-root user."""
        return self.run(self.user_command(command), on_error=on_error)

    def quietly(self, command: str) -> str:
        """Run a command, ignoring a non-zero exit."""
        return self.run(command, on_error=lambda code, output: None)

    def quietly_as_user(self, command: str) -> str:
        """Run a command as the non-root user, ignoring a non-zero exit."""
        return self.run_as_user(command, on_error=lambda code, output: None)

    def user_command(self, command: str) -> str:
        """
        Wrap a command so it executes as the non-root user.

        A process that is not root and already runs as that user gets the
        command back unchanged.
        """
        user = self.current_user()
        if not is_root() and user == effective_user():
            return command
        return f"{self.sudo} -u {shlex.quote(user)} {command}"

    def _log(self, command: str, status: ActionStatus, result: Optional[str] = None) -> None:
        if self.logger is None:
            return
        try:
            self.logger.log_action(
                action_type=ActionType.EXECUTE,
                description=f"Run: {command}",
                target=command,
                status=status,
                result=result
            )
        except OSError:
            pass
