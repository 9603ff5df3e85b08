"""Configuration management for restic-backup.

This module provides dataclasses for configuration and functions for
parsing the flat ``KEY=value`` configuration file. The file is written as
shell variable assignments (it used to be sourced by a shell script), so
the reader accepts the same forms: optional ``export``, unquoted, single-
or double-quoted values, ``#`` comments and ``$VAR``/``${VAR}`` expansion.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple
import os
import re


class ConfigurationError(Exception):
    """Raised when configuration file is missing, unreadable or malformed."""
    pass


class ValidationError(Exception):
    """Raised when configuration values are missing or invalid."""
    pass


# Config file search order when neither -c nor CONFIG_FILE is given
USER_CONFIG_PATH = Path.home() / ".restic/restic-backup.conf"
LOCAL_CONFIG_NAME = "restic-backup.conf"

DEFAULT_LOG_PATH = Path.home() / ".restic/restic-backup.log"

# Environment variables that override the default paths
CONFIG_FILE_ENV = "CONFIG_FILE"
LOG_FILE_ENV = "LOG_FILE"

# Retention classes in the order their flags are passed to restic
RETENTION_CLASSES: Tuple[str, ...] = (
    "last", "hourly", "daily", "weekly", "monthly", "yearly",
)

TARGET_SEPARATOR = ":"

KEY_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
VARIABLE_PATTERN = re.compile(r"\$(?:\{([A-Za-z_][A-Za-z0-9_]*)\}|([A-Za-z_][A-Za-z0-9_]*))")
EXPORT_PREFIX = "export "


@dataclass(frozen=True)
class BackupTarget:
    """A directory to back up and the tag its snapshots carry."""
    path: Path
    tag: str

    @classmethod
    def from_path(cls, path: str, tag: Optional[str] = None) -> "BackupTarget":
        target_path = Path(path)
        return cls(path=target_path, tag=tag or target_path.name)


@dataclass(frozen=True)
class RetentionPolicy:
    """Keep-counts per retention class. None means no constraint."""
    last: Optional[int] = None
    hourly: Optional[int] = None
    daily: Optional[int] = None
    weekly: Optional[int] = None
    monthly: Optional[int] = None
    yearly: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        """True when no retention class has a positive count."""
        return not self.to_restic_args()

    def to_restic_args(self) -> List[str]:
        """
        Build ``restic forget`` keep flags for every positive count.

        Returns:
            Flat argument list, e.g. ["--keep-daily", "7", "--keep-weekly", "4"]
        """
        args: List[str] = []
        for name in RETENTION_CLASSES:
            value = getattr(self, name)
            if value is not None and value > 0:
                args.extend([f"--keep-{name}", str(value)])
        return args


@dataclass
class Configuration:
    """Main configuration for restic-backup."""
    repository: str
    targets: List[BackupTarget]
    password: Optional[str] = None
    password_file: Optional[Path] = None
    auto_prune: bool = True
    retention: RetentionPolicy = field(default_factory=RetentionPolicy)

    def restic_environment(
        self,
        base: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, str]:
        """
        Return the environment restic child processes run with.

        The repository location and password material are added to a copy
        of ``base`` (the current process environment by default). The
        process environment itself is left untouched.
        """
        env = dict(os.environ if base is None else base)
        env["RESTIC_REPOSITORY"] = self.repository
        if self.password:
            env["RESTIC_PASSWORD"] = self.password
        if self.password_file is not None:
            env["RESTIC_PASSWORD_FILE"] = str(self.password_file)
        return env

    def find_target(self, tag: str) -> Optional[BackupTarget]:
        """Return the configured target carrying ``tag``, if any."""
        for target in self.targets:
            if target.tag == tag:
                return target
        return None


def _optional_string(data: Dict[str, Any], key: str) -> Optional[str]:
    """Return a non-empty string value, or None when unset or empty."""
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(
            f"Key '{key}' has invalid type: expected str, got {type(value).__name__}"
        )
    return value or None


def _parse_count(data: Dict[str, Any], key: str) -> Optional[int]:
    """Parse a retention count. Quoted digit strings are accepted."""
    value = data.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    # bool is a subclass of int
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(
            f"Key '{key}' must be a non-negative integer, got {value!r}"
        )
    if value < 0:
        raise ValidationError(
            f"Key '{key}' must be a non-negative integer, got {value}"
        )
    return value


def _parse_bool(data: Dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key)
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise ValidationError(f"Key '{key}' must be true or false, got {value!r}")


def _expand(value: str, variables: Mapping[str, str]) -> str:
    """Substitute $VAR and ${VAR}; unknown variables are left as written."""
    def replace(match: "re.Match[str]") -> str:
        name = match.group(1) or match.group(2)
        return variables.get(name, match.group(0))

    return VARIABLE_PATTERN.sub(replace, value)


def _parse_value(raw: str, variables: Mapping[str, str], line_number: int) -> str:
    """
    Unquote one assignment value the way a shell would read it.

    Single quotes are literal; double-quoted and unquoted values expand
    variables. A ``#`` after the value starts a comment.
    """
    raw = raw.strip()
    if raw[:1] in ("'", '"'):
        quote = raw[0]
        end = raw.find(quote, 1)
        if end == -1:
            raise ConfigurationError(f"Line {line_number}: unterminated {quote} quote")
        value, rest = raw[1:end], raw[end + 1:].strip()
        if rest and not rest.startswith("#"):
            raise ConfigurationError(
                f"Line {line_number}: unexpected text after quoted value: {rest!r}"
            )
        return value if quote == "'" else _expand(value, variables)

    parts = raw.split(None, 1)
    if not parts:
        return ""
    if len(parts) > 1 and not parts[1].startswith("#"):
        raise ConfigurationError(
            f"Line {line_number}: value contains unquoted whitespace: {raw!r}"
        )
    value = parts[0]
    if value.startswith("#"):
        return ""
    return _expand(value, variables)


def parse_assignments(
    content: str,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """
    Read shell-style ``KEY=value`` lines into a dict.

    Blank lines and ``#`` comments are skipped and an ``export`` prefix is
    allowed. Variables expand from earlier assignments first, then from
    ``environ`` (the process environment by default). A later assignment
    to the same key wins.

    Raises:
        ConfigurationError: If a line is not a valid assignment
    """
    environ = os.environ if environ is None else environ
    data: Dict[str, str] = {}
    for line_number, line in enumerate(content.splitlines(), start=1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith(EXPORT_PREFIX):
            line = line[len(EXPORT_PREFIX):].lstrip()
        key, sep, raw = line.partition("=")
        if not sep or not KEY_PATTERN.match(key):
            raise ConfigurationError(
                f"Line {line_number}: expected KEY=value, got {line!r}"
            )
        data[key] = _parse_value(raw, {**environ, **data}, line_number)
    return data


def parse_targets(value: str) -> List[BackupTarget]:
    """
    Split a colon-separated target list into BackupTargets.

    Order is preserved and empty segments are skipped.

    Raises:
        ValidationError: If two targets derive the same tag
    """
    targets: List[BackupTarget] = []
    seen: Dict[str, BackupTarget] = {}
    for segment in value.split(TARGET_SEPARATOR):
        segment = segment.strip()
        if not segment:
            continue
        target = BackupTarget.from_path(os.path.expanduser(segment))
        if not target.tag:
            raise ValidationError(f"Cannot derive a tag from backup target '{segment}'")
        if target.tag in seen:
            raise ValidationError(
                f"Backup targets '{seen[target.tag].path}' and '{target.path}' "
                f"share the tag '{target.tag}'"
            )
        seen[target.tag] = target
        targets.append(target)
    return targets


def parse_config_string(
    content: str,
    environ: Optional[Mapping[str, str]] = None,
) -> Configuration:
    """
    Parse configuration file content into a Configuration object.

    Args:
        content: Flat ``KEY=value`` assignments
        environ: Variables available for expansion (default os.environ)

    Returns:
        Configuration object

    Raises:
        ConfigurationError: If the content cannot be parsed
        ValidationError: If a required key is missing or a value is invalid
    """
    data = parse_assignments(content, environ)

    repository = _optional_string(data, "RESTIC_REPOSITORY")
    if repository is None:
        raise ValidationError("RESTIC_REPOSITORY not defined in config")

    password = _optional_string(data, "RESTIC_PASSWORD")
    password_file = _optional_string(data, "RESTIC_PASSWORD_FILE")
    if password is None and password_file is None:
        raise ValidationError(
            "Either RESTIC_PASSWORD or RESTIC_PASSWORD_FILE must be defined"
        )

    targets_value = _optional_string(data, "BACKUP_TARGETS")
    targets = parse_targets(targets_value) if targets_value else []
    if not targets:
        raise ValidationError("BACKUP_TARGETS not defined in config")

    retention = RetentionPolicy(**{
        name: _parse_count(data, f"KEEP_{name.upper()}")
        for name in RETENTION_CLASSES
    })

    return Configuration(
        repository=os.path.expanduser(repository),
        targets=targets,
        password=password,
        password_file=Path(os.path.expanduser(password_file)) if password_file else None,
        auto_prune=_parse_bool(data, "AUTO_PRUNE", True),
        retention=retention,
    )


def parse_config(config_path: Path) -> Configuration:
    """
    Parse a configuration file into a Configuration object.

    Raises:
        ConfigurationError: If file doesn't exist or cannot be read
        ValidationError: If a value is missing or invalid
    """
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        content = config_path.read_text(encoding="utf-8")
    except PermissionError:
        raise ConfigurationError(f"Cannot read config file: {config_path}")
    except OSError as e:
        raise ConfigurationError(f"Error reading config file {config_path}: {e}")

    return parse_config_string(content)


def resolve_config_path(
    cli_value: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
    cwd: Optional[Path] = None,
) -> Path:
    """
    Pick the config file: -c flag, CONFIG_FILE, ~/.restic, then ./ fallback.
    """
    if cli_value is not None:
        return Path(os.path.expanduser(str(cli_value)))
    environ = os.environ if environ is None else environ
    if environ.get(CONFIG_FILE_ENV):
        return Path(os.path.expanduser(environ[CONFIG_FILE_ENV]))
    if USER_CONFIG_PATH.is_file():
        return USER_CONFIG_PATH
    return (cwd or Path.cwd()) / LOCAL_CONFIG_NAME


def resolve_log_path(
    cli_value: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Path:
    """Pick the log file: -l flag, LOG_FILE, then ~/.restic default."""
    if cli_value is not None:
        return Path(os.path.expanduser(str(cli_value)))
    environ = os.environ if environ is None else environ
    if environ.get(LOG_FILE_ENV):
        return Path(os.path.expanduser(environ[LOG_FILE_ENV]))
    return DEFAULT_LOG_PATH


def _format_setting(value: Any) -> str:
    return "<not set>" if value is None else str(value)


def format_config(
    config: Configuration,
    config_path: Path,
    log_file: Path,
) -> str:
    """
    Format the active configuration for display, with the password masked.

    Args:
        config: Loaded configuration
        config_path: File the configuration was read from
        log_file: Active log file

    Returns:
        Multi-line human-readable text
    """
    lines = [
        "=== Current Configuration ===",
        "",
        f"Config file: {config_path}",
        f"Log file: {log_file}",
        "",
        "Repository:",
        f"  RESTIC_REPOSITORY: {config.repository}",
    ]

    if config.password:
        lines.append("  RESTIC_PASSWORD: ********")

    if config.password_file is not None:
        lines.append(f"  RESTIC_PASSWORD_FILE: {config.password_file}")
        if config.password_file.is_file():
            lines.append("    (file exists, password: ********)")
        else:
            lines.append("    (file not found!)")

    lines.append("")
    lines.append("Backup Targets:")
    for target in config.targets:
        if target.path.is_dir():
            lines.append(f"  ✓ {target.path} (tag: {target.tag})")
        else:
            lines.append(f"  ✗ {target.path} (not found)")

    lines.append("")
    lines.append("Retention Policy:")
    lines.append(f"  AUTO_PRUNE: {'true' if config.auto_prune else 'false'}")
    for name in RETENTION_CLASSES:
        value = getattr(config.retention, name)
        lines.append(f"  KEEP_{name.upper()}: {_format_setting(value)}")

    if config.retention.is_empty:
        lines.append(
            "  (No retention policy configured - old snapshots will not be pruned)"
        )

    lines.append("")
    return "\n".join(lines)
