from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Annotated, Any, get_args, get_origin

from ._errors import ConfigurationError


if TYPE_CHECKING:
    from collections.abc import Hashable


@dataclass(frozen=True)
class Key:
    """Identity of a dependency: an abstraction plus an optional qualifier.

    The qualifier is an opaque tag. The container never interprets it, it only
    compares it for equality, so `Key(Car)` and `Key(Car, "benz")` are unrelated.
    """

    abstraction: Any
    qualifier: Hashable | None = None

    def __post_init__(self) -> None:
        if self.abstraction is None:
            msg = "A key needs an abstraction, got None"
            raise ConfigurationError(msg)
        try:
            hash(self.abstraction)
        except TypeError as e:
            msg = f"Key abstraction {self.abstraction!r} is not hashable"
            raise ConfigurationError(msg) from e

        if self.qualifier is None:
            return
        try:
            hash(self.qualifier)
        except TypeError as e:
            msg = f"Malformed qualifier {self.qualifier!r}: qualifiers must be hashable"
            raise ConfigurationError(msg) from e
        if self.qualifier == "":
            msg = "Malformed qualifier: empty string"
            raise ConfigurationError(msg)

    @classmethod
    def of(cls, target: Any, qualifier: Hashable | None = None) -> Key:
        """Normalize a type, `Annotated[type, qualifier]` or `Key` into a `Key`.

        Example:
          Key.of(Car)                       -> Car
          Key.of(Car, "benz")               -> Car@benz
          Key.of(Annotated[Car, "benz"])    -> Car@benz

        """
        if isinstance(target, Key):
            abstraction, declared = target.abstraction, target.qualifier
        elif get_origin(target) is Annotated:
            abstraction, *metadata = get_args(target)
            declared = metadata[0] if metadata else None
        else:
            abstraction, declared = target, None

        if qualifier is not None and declared is not None and qualifier != declared:
            msg = f"Conflicting qualifiers for {target!r}: {declared!r} and {qualifier!r}"
            raise ConfigurationError(msg)

        return cls(abstraction, qualifier if qualifier is not None else declared)

    def __str__(self) -> str:
        if isinstance(self.abstraction, str):
            name = repr(self.abstraction)
        else:
            name = getattr(self.abstraction, "__name__", None) or repr(self.abstraction)
        if self.qualifier is None:
            return name
        return f"{name}@{self.qualifier}"
