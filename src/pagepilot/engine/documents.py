"""Concrete document trees for the pipeline.

- LxmlNode / LxmlPage: a server-rendered virtual tree parsed with lxml.  No
  JavaScript runs, so click behaviour is supplied by registered handlers.
  Used for static HTML files and as the in-process stand-in for a browser.
- PlaywrightNode / PlaywrightPage: a live Chromium page via Playwright's sync
  API.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin, urlsplit

import lxml.html

from pagepilot.models import ATTR_ACTION, DEFAULT_PAGE_TIMEOUT

if TYPE_CHECKING:
    from playwright.sync_api import ElementHandle, Page

logger = logging.getLogger("pagepilot.engine.documents")


# ---------------------------------------------------------------------------
# lxml virtual tree
# ---------------------------------------------------------------------------


class LxmlNode:
    """DocumentNode over an ``lxml.html`` element."""

    def __init__(self, element: Any, page: LxmlPage | None = None) -> None:
        self._el = element
        self._page = page

    def __eq__(self, other: object) -> bool:
        return isinstance(other, LxmlNode) and other._el is self._el

    def __hash__(self) -> int:
        return id(self._el)

    def __repr__(self) -> str:
        return f"<LxmlNode {self.tag_name} {dict(self._el.attrib)}>"

    @property
    def element(self) -> Any:
        return self._el

    @property
    def tag_name(self) -> str:
        return str(self._el.tag).lower()

    def get_attribute(self, name: str) -> str | None:
        return self._el.get(name)

    def find_all(self, attrs: dict[str, str | None]) -> list[LxmlNode]:
        predicates = []
        variables: dict[str, str] = {}
        for idx, (name, value) in enumerate(attrs.items()):
            if value is None:
                predicates.append(f"[@{name}]")
            else:
                var = f"v{idx}"
                variables[var] = value
                predicates.append(f"[@{name}=${var}]")
        matches = self._el.xpath(".//*" + "".join(predicates), **variables)
        return [LxmlNode(m, self._page) for m in matches]

    def text(self) -> str:
        return (self._el.text_content() or "").strip()

    def value(self) -> str:
        """Current form value (input value, textarea text, or selected option)."""
        tag = self.tag_name
        if tag == "textarea":
            return self._el.text or ""
        if tag == "select":
            for opt in self._el.iter("option"):
                if "selected" in opt.attrib:
                    return _option_value(opt)
            return ""
        return self._el.get("value", "")

    def set_value(self, value: str) -> None:
        if self.tag_name == "select":
            self.select_option(value)
            return
        if self.tag_name == "textarea":
            self._el.text = value
        else:
            self._el.set("value", value)
        self._notify("input")
        self._notify("change")

    def select_option(self, value: str) -> None:
        options = list(self._el.iter("option"))
        chosen = None
        for opt in options:
            if _option_value(opt) == value or (opt.text_content() or "").strip() == value:
                chosen = opt
                break
        if chosen is None:
            raise ValueError(f"No option {value!r} in select {self.get_attribute('name') or ''}".rstrip())
        for opt in options:
            if opt is chosen:
                opt.set("selected", "selected")
            elif "selected" in opt.attrib:
                del opt.attrib["selected"]
        self._notify("input")
        self._notify("change")

    def option_values(self) -> list[str]:
        return [_option_value(opt) for opt in self._el.iter("option")]

    def click(self) -> None:
        if "disabled" in self._el.attrib:
            raise RuntimeError(f"Element is disabled: {self!r}")
        self._notify("click")
        if self._page is not None:
            self._page._dispatch_click(self)

    def set_text(self, text: str) -> None:
        """Replace the element's text content (used by click handlers)."""
        for child in list(self._el):
            self._el.remove(child)
        self._el.text = text

    def _notify(self, event: str) -> None:
        if self._page is not None:
            self._page.events.append((event, self))


def _option_value(opt: Any) -> str:
    return opt.get("value") or (opt.text_content() or "").strip()


ClickHandler = Callable[["LxmlPage", LxmlNode], None]


class LxmlPage:
    """PageSession over one or more static HTML documents keyed by route."""

    def __init__(
        self,
        pages: dict[str, str],
        base_url: str = "http://localhost",
        start: str | None = None,
    ) -> None:
        if not pages:
            raise ValueError("LxmlPage needs at least one page")
        self._pages = dict(pages)
        self._base_url = base_url.rstrip("/")
        self._handlers: dict[str, ClickHandler] = {}
        self.events: list[tuple[str, LxmlNode]] = []
        self.waits: list[float] = []
        self.visited: list[str] = []
        self._route = ""
        self._doc: Any = None
        self._load(start if start is not None else next(iter(self._pages)))

    @classmethod
    def from_file(cls, path: Path, base_url: str = "http://localhost") -> LxmlPage:
        html = path.read_text(encoding="utf-8")
        return cls({"/": html}, base_url=base_url)

    def on_click(self, action_id: str, handler: ClickHandler) -> None:
        """Run *handler* whenever an element annotated with *action_id* is clicked."""
        self._handlers[action_id] = handler

    def root(self) -> LxmlNode:
        return LxmlNode(self._doc, self)

    def url(self) -> str:
        return f"{self._base_url}{self._route}"

    def goto(self, url: str) -> None:
        path = urlsplit(urljoin(self._base_url + "/", url)).path or "/"
        self.visited.append(path)
        self._load(path)

    def wait(self, seconds: float) -> None:
        # Nothing renders asynchronously in a static tree.
        self.waits.append(seconds)

    def find(self, attrs: dict[str, str | None]) -> LxmlNode | None:
        matches = self.root().find_all(attrs)
        return matches[0] if matches else None

    def _load(self, path: str) -> None:
        route = self._match_route(path)
        if route is None:
            raise ValueError(f"No page for route {path}")
        self._route = route
        self._doc = lxml.html.document_fromstring(self._pages[route])
        logger.debug("Loaded virtual page %s", route)

    def _match_route(self, path: str) -> str | None:
        if path in self._pages:
            return path
        wanted = path.rstrip("/")
        for route in self._pages:
            if route.rstrip("/") == wanted:
                return route
        return None

    def _dispatch_click(self, node: LxmlNode) -> None:
        action_id = node.get_attribute(ATTR_ACTION)
        handler = self._handlers.get(action_id) if action_id else None
        if handler is not None:
            handler(self, node)


# ---------------------------------------------------------------------------
# Playwright live page
# ---------------------------------------------------------------------------


def _css_attr_selector(attrs: dict[str, str | None]) -> str:
    parts = []
    for name, value in attrs.items():
        if value is None:
            parts.append(f"[{name}]")
        else:
            escaped = value.replace("\\", "\\\\").replace('"', '\\"')
            parts.append(f'[{name}="{escaped}"]')
    return "".join(parts) or "*"


class PlaywrightNode:
    """DocumentNode over a Playwright ``ElementHandle``."""

    def __init__(self, handle: ElementHandle) -> None:
        self._handle = handle

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PlaywrightNode):
            return False
        return bool(self._handle.evaluate("(a, b) => a === b", other._handle))

    __hash__ = None  # type: ignore[assignment]

    @property
    def tag_name(self) -> str:
        return str(self._handle.evaluate("el => el.tagName.toLowerCase()"))

    def get_attribute(self, name: str) -> str | None:
        return self._handle.get_attribute(name)

    def find_all(self, attrs: dict[str, str | None]) -> list[PlaywrightNode]:
        return [PlaywrightNode(h) for h in self._handle.query_selector_all(_css_attr_selector(attrs))]

    def text(self) -> str:
        return (self._handle.text_content() or "").strip()

    def set_value(self, value: str) -> None:
        # fill() fires "input"; frameworks listening on "change" need the second event.
        self._handle.fill(value)
        self._handle.dispatch_event("change")

    def select_option(self, value: str) -> None:
        self._handle.select_option(value)

    def option_values(self) -> list[str]:
        return list(
            self._handle.eval_on_selector_all(
                "option", "opts => opts.map(o => o.value || o.textContent.trim())"
            )
        )

    def click(self) -> None:
        self._handle.click()


class PlaywrightPage:
    """PageSession over a Playwright sync ``Page``."""

    def __init__(self, page: Page, timeout: int = DEFAULT_PAGE_TIMEOUT) -> None:
        self._page = page
        self._timeout_ms = timeout * 1000

    def root(self) -> PlaywrightNode:
        handle = self._page.query_selector("html")
        if handle is None:
            raise RuntimeError("Page has no document element")
        return PlaywrightNode(handle)

    def url(self) -> str:
        return self._page.url

    def goto(self, url: str) -> None:
        self._page.goto(url, wait_until="networkidle", timeout=self._timeout_ms)

    def wait(self, seconds: float) -> None:
        self._page.wait_for_timeout(seconds * 1000)


class PlaywrightBrowser:
    """Owns a Chromium instance for the lifetime of one CLI command."""

    def __init__(self, headless: bool = True, timeout: int = DEFAULT_PAGE_TIMEOUT) -> None:
        self._headless = headless
        self._timeout = timeout
        self._playwright: Any = None
        self._browser: Any = None

    def start(self) -> None:
        from playwright.sync_api import sync_playwright

        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.launch(headless=self._headless)

    def stop(self) -> None:
        try:
            if self._browser is not None:
                self._browser.close()
        finally:
            if self._playwright is not None:
                self._playwright.stop()
            self._browser = None
            self._playwright = None

    def open(self, url: str) -> PlaywrightPage:
        """Open *url* in a fresh page and return it as a PageSession."""
        if self._browser is None:
            raise RuntimeError("Browser not started -- call start() first")
        session = PlaywrightPage(self._browser.new_page(), timeout=self._timeout)
        session.goto(url)
        logger.debug("Opened %s", url)
        return session

    def __enter__(self) -> PlaywrightBrowser:
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()


@contextlib.contextmanager
def open_session(
    target: str,
    headless: bool = True,
    timeout: int = DEFAULT_PAGE_TIMEOUT,
    base_url: str = "http://localhost",
) -> Iterator[LxmlPage | PlaywrightPage]:
    """Yield a page session for *target*: a local HTML file or a URL."""
    path = Path(target)
    if "://" not in target and path.is_file():
        yield LxmlPage.from_file(path, base_url=base_url)
        return
    with PlaywrightBrowser(headless=headless, timeout=timeout) as browser:
        yield browser.open(target)
