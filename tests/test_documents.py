"""Unit tests for pagepilot.engine.documents."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from conftest import BASE_URL, INVOICE_HTML, SETTINGS_HTML
from pagepilot.engine.documents import (
    LxmlPage,
    PlaywrightBrowser,
    PlaywrightNode,
    PlaywrightPage,
    _css_attr_selector,
    open_session,
)


# ---------------------------------------------------------------------------
# 1. LxmlNode
# ---------------------------------------------------------------------------

class TestLxmlNode:

    def test_find_all_by_presence_and_value(self, invoice_root):
        assert len(invoice_root.find_all({"data-agent-field": None})) == 4
        found = invoice_root.find_all({"data-agent-kind": "field", "data-agent-field": "amount"})
        assert len(found) == 1
        assert found[0].tag_name == "input"

    def test_find_all_quotes_are_safe(self, invoice_root):
        assert invoice_root.find_all({"data-agent-field": "a'b\"c"}) == []

    def test_equality_is_element_identity(self, invoice_root):
        first = invoice_root.find_all({"data-agent-field": "amount"})[0]
        second = invoice_root.find_all({"data-agent-field": "amount"})[0]
        other = invoice_root.find_all({"data-agent-field": "memo"})[0]
        assert first == second
        assert hash(first) == hash(second)
        assert first != other

    def test_input_value(self, invoice_root):
        node = invoice_root.find_all({"data-agent-field": "amount"})[0]
        assert node.value() == ""
        node.set_value("42")
        assert node.value() == "42"
        assert node.get_attribute("value") == "42"

    def test_textarea_value(self, invoice_root):
        node = invoice_root.find_all({"data-agent-field": "memo"})[0]
        node.set_value("net 30")
        assert node.value() == "net 30"

    def test_select_by_value_or_label(self, invoice_root):
        node = invoice_root.find_all({"data-agent-field": "currency"})[0]
        assert node.option_values() == ["EUR", "USD"]
        node.select_option("USD")
        assert node.value() == "USD"
        node.select_option("Euro")
        assert node.value() == "EUR"

    def test_set_value_on_select_selects(self, invoice_root):
        node = invoice_root.find_all({"data-agent-field": "currency"})[0]
        node.set_value("USD")
        assert node.value() == "USD"

    def test_select_unknown_option(self, invoice_root):
        node = invoice_root.find_all({"data-agent-field": "currency"})[0]
        with pytest.raises(ValueError, match="No option 'GBP' in select currency"):
            node.select_option("GBP")

    def test_text_is_stripped(self, invoice_root):
        button = invoice_root.find_all({"data-agent-action": "invoice.create.submit"})[0]
        assert button.text() == "Create"

    def test_set_text(self, invoice_root):
        status = invoice_root.find_all({"data-agent-output": "invoice.create.status"})[0]
        status.set_text("Done")
        assert status.text() == "Done"

    def test_disabled_click_raises(self):
        page = LxmlPage({"/": '<html><body><button data-agent-action="a.b" disabled>X</button></body></html>'})
        with pytest.raises(RuntimeError, match="disabled"):
            page.find({"data-agent-action": "a.b"}).click()
        assert page.events == []


# ---------------------------------------------------------------------------
# 2. LxmlPage
# ---------------------------------------------------------------------------

class TestLxmlPage:

    def test_requires_a_page(self):
        with pytest.raises(ValueError):
            LxmlPage({})

    def test_starts_on_first_route(self, site_pages):
        assert site_pages.url() == f"{BASE_URL}/invoices/new"
        assert site_pages.visited == []

    def test_explicit_start(self):
        page = LxmlPage({"/a": INVOICE_HTML, "/b": SETTINGS_HTML}, start="/b")
        assert page.url() == "http://localhost/b"

    def test_goto_absolute_and_relative(self, site_pages):
        site_pages.goto(f"{BASE_URL}/settings")
        assert site_pages.url() == f"{BASE_URL}/settings"
        site_pages.goto("/invoices/new/")
        assert site_pages.url() == f"{BASE_URL}/invoices/new"
        assert site_pages.visited == ["/settings", "/invoices/new/"]

    def test_goto_unknown_route(self, site_pages):
        with pytest.raises(ValueError, match="No page for route /missing"):
            site_pages.goto("/missing")

    def test_goto_reloads_document(self, site_pages):
        site_pages.find({"data-agent-field": "amount"}).set_value("9")
        site_pages.goto("/invoices/new")
        assert site_pages.find({"data-agent-field": "amount"}).value() == ""

    def test_click_dispatches_handler(self, site_pages):
        site_pages.find({"data-agent-action": "invoice.create.submit"}).click()
        assert site_pages.find({"data-agent-output": "invoice.create.status"}).text() == "Invoice INV-001 created"
        assert [event for event, _ in site_pages.events] == ["click"]

    def test_fill_records_input_and_change(self, site_pages):
        site_pages.find({"data-agent-field": "amount"}).set_value("1")
        assert [event for event, _ in site_pages.events] == ["input", "change"]

    def test_wait_only_records(self, site_pages):
        site_pages.wait(0.25)
        assert site_pages.waits == [0.25]

    def test_find_returns_none(self, site_pages):
        assert site_pages.find({"data-agent-field": "nope"}) is None

    def test_from_file(self, tmp_path: Path):
        path = tmp_path / "page.html"
        path.write_text(INVOICE_HTML, encoding="utf-8")
        page = LxmlPage.from_file(path, base_url=BASE_URL)
        assert page.url() == f"{BASE_URL}/"
        assert page.find({"data-agent-action": "invoice.create"}) is not None


# ---------------------------------------------------------------------------
# 3. Playwright adapters
# ---------------------------------------------------------------------------

class TestCssSelector:

    def test_presence_and_value(self):
        assert _css_attr_selector({"data-agent-kind": "field", "data-agent-field": None}) == (
            '[data-agent-kind="field"][data-agent-field]'
        )

    def test_escapes_quotes(self):
        assert _css_attr_selector({"data-x": 'a"b'}) == '[data-x="a\\"b"]'

    def test_empty(self):
        assert _css_attr_selector({}) == "*"


class TestPlaywrightNode:

    def test_find_all_wraps_handles(self):
        handle = MagicMock()
        handle.query_selector_all.return_value = [MagicMock(), MagicMock()]
        nodes = PlaywrightNode(handle).find_all({"data-agent-field": "amount"})
        assert len(nodes) == 2
        handle.query_selector_all.assert_called_once_with('[data-agent-field="amount"]')

    def test_set_value_fills_and_fires_change(self):
        handle = MagicMock()
        PlaywrightNode(handle).set_value("150")
        handle.fill.assert_called_once_with("150")
        handle.dispatch_event.assert_called_once_with("change")

    def test_text_strips(self):
        handle = MagicMock()
        handle.text_content.return_value = "  Saved \n"
        assert PlaywrightNode(handle).text() == "Saved"

    def test_text_none(self):
        handle = MagicMock()
        handle.text_content.return_value = None
        assert PlaywrightNode(handle).text() == ""

    def test_equality_evaluated_in_page(self):
        a, b = MagicMock(), MagicMock()
        a.evaluate.return_value = True
        assert PlaywrightNode(a) == PlaywrightNode(b)
        a.evaluate.assert_called_once_with("(a, b) => a === b", b)

    def test_option_values(self):
        handle = MagicMock()
        handle.eval_on_selector_all.return_value = ["EUR", "USD"]
        assert PlaywrightNode(handle).option_values() == ["EUR", "USD"]


class TestPlaywrightPage:

    def test_goto_and_wait(self):
        page = MagicMock()
        session = PlaywrightPage(page, timeout=10)
        session.goto("http://x/settings")
        session.wait(0.5)
        page.goto.assert_called_once_with("http://x/settings", wait_until="networkidle", timeout=10000)
        page.wait_for_timeout.assert_called_once_with(500)

    def test_root_missing(self):
        page = MagicMock()
        page.query_selector.return_value = None
        with pytest.raises(RuntimeError):
            PlaywrightPage(page).root()

    def test_browser_requires_start(self):
        with pytest.raises(RuntimeError, match="not started"):
            PlaywrightBrowser().open("http://x")


# ---------------------------------------------------------------------------
# 4. open_session
# ---------------------------------------------------------------------------

class TestOpenSession:

    def test_local_file_uses_lxml(self, tmp_path: Path):
        path = tmp_path / "invoice.html"
        path.write_text(INVOICE_HTML, encoding="utf-8")
        with open_session(str(path), base_url=BASE_URL) as session:
            assert isinstance(session, LxmlPage)
            assert session.url() == f"{BASE_URL}/"

    def test_url_uses_browser(self):
        with patch("pagepilot.engine.documents.PlaywrightBrowser") as browser_cls:
            browser = browser_cls.return_value.__enter__.return_value
            with open_session("http://localhost:5173/", headless=False, timeout=5) as session:
                assert session is browser.open.return_value
        browser_cls.assert_called_once_with(headless=False, timeout=5)
        browser.open.assert_called_once_with("http://localhost:5173/")
