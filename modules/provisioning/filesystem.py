"""
Filesystem gateway for hostprep provisioning.

Every operation is a direct call into the OS. Mutating operations accept an
optional owner and have an ``*_as_user`` variant that hands ownership to the
non-root user.
"""

import errno
import grp
import os
import pwd
import shlex
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Optional, Union

from core.command_line import CommandLine
from core.current_user import CurrentUser
from core.logger import AuditLogger, ActionType, ActionStatus


PathLike = Union[str, os.PathLike]
Owner = Union[str, int]


class Filesystem:
    """Operations on files, directories and symlinks for provisioning."""

    def __init__(
        self,
        command_line: Optional[CommandLine] = None,
        current_user: Optional[Callable[[], str]] = None,
        logger: Optional[AuditLogger] = None
    ):
        """
        Initialize the gateway.

        Args:
            command_line: Runner used to create symlinks as the non-root user
            current_user: Callable returning the non-root user name
            logger: Audit logger receiving one entry per mutation
        """
        self.current_user = current_user or CurrentUser()
        self.cli = command_line or CommandLine(self.current_user, logger=logger)
        self.logger = logger

    # Queries

    def is_directory(self, path: PathLike) -> bool:
        return os.path.isdir(path)

    def exists(self, path: PathLike) -> bool:
        """True if the path exists. Dangling symlinks do not count."""
        return os.path.exists(path)

    def is_symlink(self, path: PathLike) -> bool:
        return os.path.islink(path)

    def read_file(self, path: PathLike, encoding: Optional[str] = "utf-8") -> Union[str, bytes]:
        """
        Read the contents of a file.

        Args:
            path: Path to the file
            encoding: Text encoding, or None to return raw bytes

        Raises:
            FileNotFoundError: If the file doesn't exist
            OSError: If the file can't be read
        """
        if encoding is None:
            with open(path, "rb") as f:
                return f.read()
        with open(path, "r", encoding=encoding, newline="") as f:
            return f.read()

    def resolve_real_path(self, path: PathLike) -> str:
        """Canonical absolute path with every symlink resolved."""
        return str(Path(path).resolve(strict=True))

    def read_symlink_target(self, path: PathLike) -> str:
        """
        Return the target a symlink points to, unresolved.

        Raises:
            OSError: If the path is missing or not a symlink
        """
        return os.fsdecode(os.readlink(path))

    # Directories

    def create_directory(self, path: PathLike, owner: Optional[Owner] = None, mode: int = 0o755) -> None:
        """
        Create a directory and any missing parents.

        Args:
            path: Directory to create
            owner: User to chown the directory to afterwards
            mode: Permission bits, masked by the process umask

        Raises:
            FileExistsError: If the path already exists
            OSError: If creation or the chown fails
        """
        with self._audit(ActionType.WRITE, f"Create directory: {path}", path, mode=format(mode, "04o")):
            os.makedirs(path, mode)

        if owner is not None:
            self.change_owner(path, owner)

    def ensure_directory_exists(self, path: PathLike, owner: Optional[Owner] = None, mode: int = 0o755) -> None:
        if not self.is_directory(path):
            self.create_directory(path, owner, mode)

    def create_directory_as_user(self, path: PathLike, mode: int = 0o755) -> None:
        self._as_user(self.create_directory, path, mode=mode)

    # Files

    def touch(self, path: PathLike, owner: Optional[Owner] = None) -> PathLike:
        """
        Create an empty file, or update the modification time of an existing one.

        Returns:
            The path that was touched
        """
        with self._audit(ActionType.WRITE, f"Touch: {path}", path):
            Path(path).touch()

        if owner is not None:
            self.change_owner(path, owner)

        return path

    def touch_as_user(self, path: PathLike) -> PathLike:
        return self._as_user(self.touch, path)

    def write_file(self, path: PathLike, contents: Union[str, bytes], owner: Optional[Owner] = None) -> None:
        """Replace the contents of a file, creating it if needed."""
        self._write(path, contents, "w", f"Write file: {path}")

        if owner is not None:
            self.change_owner(path, owner)

    def write_file_as_user(self, path: PathLike, contents: Union[str, bytes]) -> None:
        self._as_user(self.write_file, path, contents)

    def append_file(self, path: PathLike, contents: Union[str, bytes], owner: Optional[Owner] = None) -> None:
        """Append to a file, creating it if needed."""
        self._write(path, contents, "a", f"Append to file: {path}")

        if owner is not None:
            self.change_owner(path, owner)

    def append_file_as_user(self, path: PathLike, contents: Union[str, bytes]) -> None:
        self._as_user(self.append_file, path, contents)

    def copy_file(self, src: PathLike, dst: PathLike) -> None:
        """
        Copy a file's contents, overwriting the destination.

        Raises:
            FileNotFoundError: If the source doesn't exist
            OSError: If the destination can't be written
        """
        with self._audit(ActionType.WRITE, f"Copy {src} to {dst}", dst, source=str(src)):
            shutil.copyfile(src, dst)

    def copy_file_as_user(self, src: PathLike, dst: PathLike) -> None:
        self.copy_file(src, dst)
        self.change_owner(dst, self.current_user())

    # Symlinks

    def create_symlink(self, target: PathLike, link: PathLike) -> None:
        """Point ``link`` at ``target``, replacing whatever is at ``link``."""
        self._clear_link(link)

        with self._audit(ActionType.LINK, f"Link {link} -> {target}", link, link_target=str(target)):
            os.symlink(target, link)

    def create_symlink_as_user(self, target: PathLike, link: PathLike) -> None:
        """
        Point ``link`` at ``target`` with the link owned by the non-root user.

        The link is created by running ``ln -s`` as that user, since the
        ownership of a symlink can't portably be changed after creation.
        """
        self._clear_link(link)

        self.cli.run_as_user(f"ln -s {shlex.quote(os.fspath(target))} {shlex.quote(os.fspath(link))}")

    def delete(self, path: PathLike) -> None:
        """
        Remove a file or symlink, best-effort.

        A missing path is a no-op. An OSError from the unlink itself is not
        raised; it is recorded in the audit log as a failure.
        """
        if not (self.exists(path) or self.is_symlink(path)):
            self._record(ActionType.DELETE, f"Delete: {path}", path, ActionStatus.SKIPPED, "Path does not exist")
            return

        try:
            os.unlink(path)
        except OSError as e:
            self._record(ActionType.DELETE, f"Delete: {path}", path, ActionStatus.FAILED, f"Suppressed error: {e}")
            return

        self._record(ActionType.DELETE, f"Delete: {path}", path, ActionStatus.EXECUTED)

    # Ownership

    def change_owner(self, path: PathLike, user: Owner) -> None:
        """
        Change the owning user of a path. The group is left unchanged.

        Raises:
            OSError: If the user is unknown or the process lacks privilege
        """
        with self._audit(ActionType.OWNERSHIP, f"Change owner of {path} to {user}", path, user=user):
            os.chown(path, _resolve_uid(user, path), -1)

    def change_group(self, path: PathLike, group: Owner) -> None:
        """
        Change the owning group of a path. The user is left unchanged.

        Raises:
            OSError: If the group is unknown or the process lacks privilege
        """
        with self._audit(ActionType.OWNERSHIP, f"Change group of {path} to {group}", path, group=group):
            os.chown(path, -1, _resolve_gid(group, path))

    # Helpers

    def _as_user(self, operation, *args, **kwargs):
        return operation(*args, owner=self.current_user(), **kwargs)

    def _write(self, path: PathLike, contents: Union[str, bytes], mode: str, description: str) -> None:
        size = len(contents)
        with self._audit(ActionType.WRITE, description, path, size=size):
            if isinstance(contents, bytes):
                with open(path, mode + "b") as f:
                    f.write(contents)
            else:
                with open(path, mode, encoding="utf-8", newline="") as f:
                    f.write(contents)

    def _clear_link(self, link: PathLike) -> None:
        if self.exists(link) or self.is_symlink(link):
            self.delete(link)

    @contextmanager
    def _audit(self, action_type: ActionType, description: str, target: PathLike, **metadata):
        try:
            yield
        except OSError as e:
            self._record(action_type, description, target, ActionStatus.FAILED, f"Error: {e}", metadata)
            raise
        self._record(action_type, description, target, ActionStatus.EXECUTED, metadata=metadata)

    def _record(
        self,
        action_type: ActionType,
        description: str,
        target: PathLike,
        status: ActionStatus,
        result: Optional[str] = None,
        metadata: Optional[dict] = None
    ) -> None:
        if self.logger is None:
            return
        # An unwritable audit log never changes the outcome of an operation.
        try:
            self.logger.log_action(
                action_type=action_type,
                description=description,
                target=os.fspath(target),
                status=status,
                result=result,
                metadata=metadata
            )
        except OSError:
            pass


def _resolve_uid(user: Owner, path: PathLike) -> int:
    if isinstance(user, int):
        return user
    try:
        return pwd.getpwnam(user).pw_uid
    except KeyError:
        raise OSError(errno.EINVAL, f"Unknown user: {user}", os.fspath(path))


def _resolve_gid(group: Owner, path: PathLike) -> int:
    if isinstance(group, int):
        return group
    try:
        return grp.getgrnam(group).gr_gid
    except KeyError:
        raise OSError(errno.EINVAL, f"Unknown group: {group}", os.fspath(path))
