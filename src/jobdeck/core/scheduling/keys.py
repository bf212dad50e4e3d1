"""Job and trigger identities.

Keys are ``(name, group)`` pairs rendered as ``"group.name"``.  A key string
without a ``.`` belongs to :data:`DEFAULT_GROUP`; otherwise everything before
the first ``.`` is the group.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeVar

from jobdeck.core.errors import ValidationError

DEFAULT_GROUP = "DEFAULT"
GROUP_SEPARATOR = "."

K = TypeVar("K", bound="_Key")


@dataclass(frozen=True, slots=True, order=True)
class _Key:
    name: str
    group: str = DEFAULT_GROUP

    def __post_init__(self) -> None:
        if not self.name:
            raise ValidationError(f"{type(self).__name__} name must not be empty", field="name")
        if not self.group:
            raise ValidationError(f"{type(self).__name__} group must not be empty", field="group")

    def __str__(self) -> str:
        return f"{self.group}{GROUP_SEPARATOR}{self.name}"

    @classmethod
    def parse(cls: type[K], value: str) -> K:
        """Parse ``"name"`` or ``"group.name"``.

        >>> JobKey.parse("SampleJob")
        JobKey(name='SampleJob', group='DEFAULT')
        >>> JobKey.parse("reports.Nightly")
        JobKey(name='Nightly', group='reports')
        """
        text = (value or "").strip()
        if not text:
            raise ValidationError(f"{cls.__name__} must not be empty", field="key", value=value)

        group, sep, name = text.partition(GROUP_SEPARATOR)
        if not sep:
            return cls(name=text)
        if not group or not name:
            raise ValidationError(
                f"Malformed {cls.__name__} {value!r}: expected 'name' or 'group.name'",
                field="key",
                value=value,
            )
        return cls(name=name, group=group)


class JobKey(_Key):
    """Identity of a stored job."""

    __slots__ = ()


class TriggerKey(_Key):
    """Identity of a stored trigger."""

    __slots__ = ()
