"""
Environment variable management with .env file support.

Loads ``.env`` files through python-dotenv and expands ``${VAR}``
references inside provider URIs, so a CLI invocation such as
``casport migrate --source sqlite://${CASPORT_DATA}/blobs.db`` works the
same from a shell and from a configuration file.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

from dotenv import load_dotenv

_BRACED_VAR = re.compile(r"\$\{([^}:]+)(?::([?-])([^}]*))?\}")
_BARE_VAR = re.compile(r"\$([A-Z_][A-Z0-9_]*)")


class EnvManager:
    """
    Manages environment variables for casport.

    Example:
        >>> env = EnvManager()
        >>> env.load()  # Loads .env if exists
        >>> batch_size = env.get_int("CASPORT_BATCH_SIZE", 10)
    """

    def __init__(self, project_root: Path | str | None = None, auto_load: bool = True):
        """
        Initialize the environment manager.

        Args:
            project_root: Directory searched for the .env file
            auto_load: Automatically load .env file if found
        """
        self.project_root = Path(project_root) if project_root else Path.cwd()
        self._loaded = False

        if auto_load:
            self.load()

    @property
    def loaded(self) -> bool:
        """Whether a .env file has been loaded."""
        return self._loaded

    def load(self, env_file: str | Path | None = None, override: bool = False) -> bool:
        """
        Load environment variables from a .env file.

        Args:
            env_file: Path to .env file (defaults to .env in project root)
            override: Whether to override existing environment variables

        Returns:
            True if the file was loaded, False if it does not exist
        """
        env_path = self.project_root / ".env" if env_file is None else Path(env_file)

        if not env_path.exists():
            return False

        load_dotenv(env_path, override=override)
        self._loaded = True
        return True

    def get(self, key: str, default: str | None = None, required: bool = False) -> str | None:
        """
        Get an environment variable value.

        Raises:
            ValueError: If required=True and the variable is not set
        """
        value = os.environ.get(key, default)

        if required and value is None:
            msg = f"Required environment variable not set: {key}"
            raise ValueError(msg)

        return value

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Get environment variable as boolean."""
        value = (self.get(key) or "").lower()
        if value in ("true", "1", "yes", "on"):
            return True
        if value in ("false", "0", "no", "off"):
            return False
        return default

    def get_int(self, key: str, default: int = 0) -> int:
        """Get environment variable as integer."""
        try:
            return int(self.get(key, str(default)))
        except (ValueError, TypeError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        """Get environment variable as float."""
        try:
            return float(self.get(key, str(default)))
        except (ValueError, TypeError):
            return default

    def substitute(self, text: str) -> str:
        """
        Substitute environment variables in text.

        Supports ``${VAR}``, ``${VAR:-default}``, ``${VAR:?error}`` and ``$VAR``.

        Example:
            >>> os.environ["CASPORT_DATA"] = "/srv/blobs"
            >>> env.substitute("file://${CASPORT_DATA}")
            'file:///srv/blobs'
        """

        def replace(match: re.Match) -> str:
            var_name, operator, operand = match.group(1), match.group(2), match.group(3)
            value = os.environ.get(var_name)

            if operator == "-":
                return value if value is not None else operand
            if operator == "?":
                if value is None:
                    raise ValueError(operand or f"Required variable not set: {var_name}")
                return value
            return value if value is not None else match.group(0)

        text = _BRACED_VAR.sub(replace, text)
        return _BARE_VAR.sub(lambda m: os.environ.get(m.group(1), m.group(0)), text)


# Global instance
_global_env: EnvManager | None = None


def get_env() -> EnvManager:
    """Get the global environment manager instance."""
    global _global_env
    if _global_env is None:
        _global_env = EnvManager()
    return _global_env


def load_env(project_root: Path | str | None = None, override: bool = False) -> bool:
    """
    Load environment variables from a .env file using the global manager.

    Returns:
        True if a .env file was loaded
    """
    env = get_env()
    if project_root:
        env.project_root = Path(project_root)
    return env.load(override=override)
