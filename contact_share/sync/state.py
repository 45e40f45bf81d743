"""Application state driving presentation: Loading, Loaded or Error."""

from dataclasses import dataclass
from typing import Union

from contact_share.sync.contact import Contact


@dataclass(frozen=True)
class Loading:
    """A refresh is in flight."""


@dataclass(frozen=True)
class Loaded:
    """Both contact lists fetched by the same refresh."""

    private: tuple[Contact, ...] = ()
    shared: tuple[Contact, ...] = ()


@dataclass(frozen=True)
class Error:
    """The last refresh failed."""

    error: Exception

    @property
    def message(self) -> str:
        return str(self.error) or type(self.error).__name__


AppState = Union[Loading, Loaded, Error]
