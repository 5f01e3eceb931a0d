"""Environment-driven defaults for query runs."""

import os
from dataclasses import dataclass, field

from basequery.vault.index import DEFAULT_INCLUDE

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _flag(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in _TRUE:
        return True
    if normalized in _FALSE:
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def _globs(value: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    return tuple(part.strip() for part in value.split(",") if part.strip())


@dataclass
class QueryConfig:
    """Defaults for strictness, file selection, logging and output.

    Command-line options override these values.
    """

    strict: bool = True
    include: tuple[str, ...] = field(default=DEFAULT_INCLUDE)
    exclude: tuple[str, ...] = ()
    log_level: str = "WARNING"
    output_format: str = "json"

    @classmethod
    def from_env(cls) -> "QueryConfig":
        """Create config from environment variables.

        BASEQUERY_STRICT, BASEQUERY_INCLUDE, BASEQUERY_EXCLUDE (comma-separated
        globs), BASEQUERY_LOG_LEVEL and BASEQUERY_FORMAT; unset variables keep
        the defaults.
        """
        env = os.environ
        return cls(
            strict=_flag(env.get("BASEQUERY_STRICT"), True),
            include=_globs(env.get("BASEQUERY_INCLUDE"), DEFAULT_INCLUDE),
            exclude=_globs(env.get("BASEQUERY_EXCLUDE"), ()),
            log_level=env.get("BASEQUERY_LOG_LEVEL", "WARNING").upper(),
            output_format=env.get("BASEQUERY_FORMAT", "json").lower(),
        )
