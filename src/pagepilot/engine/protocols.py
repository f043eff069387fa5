"""Collaborator protocols.

These protocols define the contract between the PagePilot pipeline and the
things it drives but does not own: the live document tree, the page session
that hosts it, and the text-generation backend.  Discovery and execution
depend only on these protocols, never on a concrete tree type, so a real
browser page, a server-rendered lxml tree, and a test double are all
interchangeable.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class DocumentNode(Protocol):
    """Minimal capability interface over one element of a live document.

    Two nodes must compare equal when they wrap the same underlying element.
    """

    @property
    def tag_name(self) -> str:
        """Lower-case tag name (``input``, ``select``, ``button`` ...)."""
        ...

    def get_attribute(self, name: str) -> str | None: ...

    def find_all(self, attrs: dict[str, str | None]) -> list[DocumentNode]:
        """Return descendants (self excluded) in document order matching *attrs*.

        Each key is an attribute name.  A string value requires an exact
        match, ``None`` only requires the attribute to be present.
        """
        ...

    def text(self) -> str:
        """Visible text content, stripped."""
        ...

    def set_value(self, value: str) -> None:
        """Assign a value and notify listeners (input + change)."""
        ...

    def select_option(self, value: str) -> None: ...

    def option_values(self) -> list[str]:
        """Choices offered by a ``select`` (option value, else option text)."""
        ...

    def click(self) -> None: ...


@runtime_checkable
class PageSession(Protocol):
    """The page hosting a document: navigation, timing, and the current root."""

    def root(self) -> DocumentNode: ...

    def url(self) -> str: ...

    def goto(self, url: str) -> None: ...

    def wait(self, seconds: float) -> None:
        """Block once for *seconds* so the page can settle."""
        ...


@runtime_checkable
class TextBackend(Protocol):
    """Text-generation collaborator -- prompt pair in, raw text out.

    Implementations raise :class:`~pagepilot.engine.backends.BackendError`
    subclasses for transport failures so the planner can tell them apart
    from unparseable replies.
    """

    def generate(self, user_prompt: str, system_prompt: str, json: bool = True) -> str: ...

    def is_available(self) -> bool: ...

    def name(self) -> str: ...
