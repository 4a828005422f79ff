"""
Configuration for hostprep.

Settings are read from a YAML file, optionally namespaced under a
``hostprep`` key, and fall back to defaults when the file is missing.
"""

from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Dict, Optional, Union
import yaml


DEFAULT_CONFIG_PATH = "config.yaml"


def parse_mode(value: Union[str, int]) -> int:
    """
    Parse a permission mode given as an int or an octal string.

    "0755", "755" and "0o755" all parse to 0o755.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid mode: {value!r}")
    if isinstance(value, int):
        # Unquoted YAML like 755 arrives as a decimal int.
        if value > 0o777:
            raise ValueError(f"Mode {value!r} looks like a decimal number; quote it as an octal string")
        mode = value
    else:
        text = str(value).strip().lower()
        if text.startswith("0o"):
            text = text[2:]
        try:
            mode = int(text, 8)
        except ValueError:
            raise ValueError(f"Invalid mode: {value!r}")
    if not 0 <= mode <= 0o7777:
        raise ValueError(f"Mode out of range: {value!r}")
    return mode


@dataclass
class Config:
    """Resolved hostprep settings."""
    user: Optional[str] = None
    audit_log: str = "data/audit_log.jsonl"
    default_mode: int = 0o755
    sudo: str = "sudo"
    command_timeout: Optional[int] = None
    path: Path = field(default=Path(DEFAULT_CONFIG_PATH), repr=False, compare=False)

    @classmethod
    def load(cls, config_path: Union[str, Path] = DEFAULT_CONFIG_PATH) -> "Config":
        """Load configuration from a YAML file."""
        path = Path(config_path)
        data = cls._read(path)
        return cls.from_dict(data, path=path)

    @staticmethod
    def _read(path: Path) -> Dict[str, Any]:
        if not path.exists():
            return {}

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError):
            return {}

        if not isinstance(data, dict):
            return {}
        section = data.get("hostprep", data)
        if not isinstance(section, dict):
            return {}
        return section

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: Union[str, Path] = DEFAULT_CONFIG_PATH) -> "Config":
        """Build a Config from a plain mapping, validating values."""
        config = cls(path=Path(path))

        if data.get("user") is not None:
            config.user = str(data["user"])
        if data.get("audit_log"):
            config.audit_log = str(data["audit_log"])
        if data.get("default_mode") is not None:
            config.default_mode = parse_mode(data["default_mode"])
        if data.get("sudo"):
            config.sudo = str(data["sudo"])
        if data.get("command_timeout") is not None:
            timeout = int(data["command_timeout"])
            if timeout <= 0:
                raise ValueError("command_timeout must be > 0")
            config.command_timeout = timeout

        return config

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("path")
        data["default_mode"] = format(self.default_mode, "04o")
        return data

    def save(self) -> None:
        """Save settings, merging into any existing file."""
        config = {"hostprep": self.to_dict()}

        if self.path.exists():
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    existing = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError):
                existing = {}
            if isinstance(existing, dict):
                existing["hostprep"] = config["hostprep"]
                config = existing

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.dump(config, f, default_flow_style=False)
