from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Iterable

    from ._keys import Key


def format_path(path: Iterable[Key]) -> str:
    return " -> ".join(str(key) for key in path)


class InjectionError(RuntimeError):
    """Base class for every error raised by the container.

    `path` holds the chain of keys under construction when the failure occurred,
    outermost first. It is empty for errors raised before any resolution started.
    """

    def __init__(self, message: str, path: Iterable[Key] = ()) -> None:
        super().__init__(message)
        self.message = message
        self.path: tuple[Key, ...] = tuple(path)

    def __str__(self) -> str:
        if self.path:
            return f"{self.message} (resolution path: {format_path(self.path)})"
        return self.message


class ConfigurationError(InjectionError):
    """Invalid bindings: duplicates, incomplete statements, malformed keys or cyclic links."""


class ResolutionError(InjectionError):
    """Base class for failures while producing an instance."""


class BindingMissingError(ResolutionError, LookupError):
    def __init__(self, key: Key, path: Iterable[Key] = (), reason: str | None = None) -> None:
        msg = f"No binding for {key}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg, path)
        self.key = key


class CircularDependencyError(ResolutionError):
    pass


class ProvisionError(ResolutionError):
    """A user factory or constructor raised while providing a key."""

    def __init__(self, message: str, path: Iterable[Key] = (), cause: BaseException | None = None) -> None:
        super().__init__(message, path)
        self.cause = cause


class AmbiguousConstructorError(ResolutionError):
    pass
