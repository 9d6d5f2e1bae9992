"""
Typed reads of environment variables.

Every helper either returns a usable value or raises ConfigurationError
with a message naming the variable, so entry points can map all bad
configuration to a single exit code.
"""

import os
from typing import Callable, Optional, TypeVar, Union

N = TypeVar("N", int, float)


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def require_env(name: str, description: Optional[str] = None) -> str:
    """
    Return a non-empty environment variable.

    Raises:
        ConfigurationError: If the variable is unset or empty
    """
    value = os.getenv(name)
    if value:
        return value

    hint = f" ({description})" if description else ""
    raise ConfigurationError(
        f"Missing required environment variable: {name}{hint}\n"
        f"Please set {name} in your .env file or environment."
    )


def _validate_number_env(
    name: str,
    parse: Callable[[str], N],
    kind: str,
    default: Optional[N],
    min_value: Optional[Union[int, float]],
    max_value: Optional[Union[int, float]],
) -> N:
    raw = os.getenv(name)
    if not raw:
        if default is None:
            raise ConfigurationError(f"Missing required {kind} environment variable: {name}")
        return default

    try:
        value = parse(raw.strip())
    except ValueError:
        raise ConfigurationError(f"{name} must be {kind}, got '{raw}'") from None

    if min_value is not None and value < min_value:
        raise ConfigurationError(f"{name}={value} is below the minimum of {min_value}")
    if max_value is not None and value > max_value:
        raise ConfigurationError(f"{name}={value} is above the maximum of {max_value}")
    return value


def validate_int_env(name: str, default: Optional[int] = None, min_value: Optional[int] = None,
                     max_value: Optional[int] = None) -> int:
    """
    Read an integer variable such as BATCH_SIZE.

    Args:
        name: Environment variable name
        default: Returned when the variable is unset; None makes it required
        min_value: Inclusive lower bound
        max_value: Inclusive upper bound

    Raises:
        ConfigurationError: If missing without default, not an integer, or out of range
    """
    return _validate_number_env(name, int, "an integer", default, min_value, max_value)


def validate_float_env(name: str, default: Optional[float] = None, min_value: Optional[float] = None,
                       max_value: Optional[float] = None) -> float:
    """Read a float variable, e.g. a delay in seconds."""
    return _validate_number_env(name, float, "a number", default, min_value, max_value)
