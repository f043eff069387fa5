"""Unit tests for pagepilot.engine.response_parser."""

from __future__ import annotations

import pytest

from pagepilot.engine.response_parser import (
    ActionOutcome,
    AnswerOutcome,
    NavigateOutcome,
    PlannerRequest,
    ResponseParseError,
    extract_json,
    extract_navigate_page,
    looks_like_selector,
    normalize_path,
    parse_response,
    validate_planner_request,
)


# ---------------------------------------------------------------------------
# 1. JSON extraction
# ---------------------------------------------------------------------------

class TestExtractJson:

    def test_fenced_block_with_language_tag(self):
        text = 'Sure!\n```json\n{"action": "a.b", "args": {}}\n```\nDone.'
        assert extract_json(text) == '{"action": "a.b", "args": {}}'

    def test_fenced_block_without_language_tag(self):
        text = '```\n{"navigate": "/x"}\n```'
        assert extract_json(text) == '{"navigate": "/x"}'

    def test_brace_scan_with_surrounding_prose(self):
        text = 'Here you go: {"action": "a.b", "args": {"n": 1}} hope that helps'
        assert extract_json(text) == '{"action": "a.b", "args": {"n": 1}}'

    def test_braces_inside_strings_are_skipped(self):
        text = 'x {"action": "a.b", "args": {"memo": "use } and { freely \\" ok"}} y'
        assert extract_json(text) == '{"action": "a.b", "args": {"memo": "use } and { freely \\" ok"}}'

    def test_no_object_returns_none(self):
        assert extract_json("I cannot help with that.") is None

    def test_unbalanced_returns_none(self):
        assert extract_json('{"action": "a.b"') is None


# ---------------------------------------------------------------------------
# 2. Outcomes
# ---------------------------------------------------------------------------

class TestParseResponse:

    def test_action_outcome(self):
        outcome = parse_response('{"action": "invoice.create", "args": {"amount": 150}}')
        assert isinstance(outcome, ActionOutcome)
        assert outcome.kind == "action"
        assert outcome.request == PlannerRequest(action="invoice.create", args={"amount": 150})

    def test_action_outcome_keeps_confirmed_flag(self):
        outcome = parse_response('{"action": "workspace.delete", "args": {}, "confirmed": false}')
        assert outcome.request.confirmed is False
        assert outcome.request.to_dict() == {"action": "workspace.delete", "args": {}, "confirmed": False}

    def test_answer_outcome(self):
        outcome = parse_response('{"action":"none","answer":"EUR and USD"}')
        assert isinstance(outcome, AnswerOutcome)
        assert outcome.text == "EUR and USD"

    def test_none_with_error_raises_error_text(self):
        with pytest.raises(ResponseParseError, match="no match"):
            parse_response('{"action":"none","args":{},"error":"no match"}')

    def test_none_without_error_uses_default(self):
        with pytest.raises(ResponseParseError, match="could not map request"):
            parse_response('{"action":"none","args":{}}')

    def test_no_json(self):
        with pytest.raises(ResponseParseError, match="Could not extract JSON"):
            parse_response("nothing to see")

    def test_malformed_json(self):
        with pytest.raises(ResponseParseError, match="Invalid JSON"):
            parse_response("```json\n{action: invoice.create}\n```")

    def test_selector_value_rejected(self):
        with pytest.raises(ResponseParseError, match="selector"):
            parse_response('{"action":"invoice.create","args":{"customer_email":"#email-field"}}')

    def test_bad_identifier_rejected(self):
        with pytest.raises(ResponseParseError, match="Invalid planner request"):
            parse_response('{"action": "Invoice.Create", "args": {}}')

    def test_undeclared_top_level_field_rejected(self):
        with pytest.raises(ResponseParseError, match="Additional properties"):
            parse_response('{"action": "a.b", "args": {}, "selector": "x"}')

    def test_missing_args_rejected(self):
        with pytest.raises(ResponseParseError, match="'args' is a required property"):
            parse_response('{"action": "a.b"}')

    def test_non_object_rejected(self):
        with pytest.raises(ResponseParseError):
            parse_response("[1, 2, 3]")


# ---------------------------------------------------------------------------
# 3. Navigation
# ---------------------------------------------------------------------------

class TestNavigation:

    def test_navigate_field(self):
        outcome = parse_response('{"navigate": "/settings"}')
        assert isinstance(outcome, NavigateOutcome)
        assert outcome.page == "/settings"

    def test_navigate_full_url_reduced_to_path(self):
        outcome = parse_response('{"navigate": "http://localhost:5173/invoices/new"}')
        assert outcome.page == "/invoices/new"

    def test_navigate_relative_segment_prefixed(self):
        assert parse_response('{"navigate": "settings/appearance"}').page == "/settings/appearance"

    def test_navigate_empty_rejected(self):
        with pytest.raises(ResponseParseError, match="must be a path"):
            parse_response('{"navigate": "  "}')

    def test_navigate_action_form_uses_known_keys(self):
        outcome = parse_response('{"action": "navigate", "args": {"route": "/invoices"}}')
        assert outcome.page == "/invoices"

    def test_navigate_action_form_falls_back_to_any_string(self):
        outcome = parse_response('{"action": "navigate", "args": {"where": "billing"}}')
        assert outcome.page == "/billing"

    def test_navigate_action_form_without_path(self):
        with pytest.raises(ResponseParseError, match="recognizable page path"):
            parse_response('{"action": "navigate", "args": {"n": 3}}')

    def test_invented_route_rejected_with_valid_routes_listed(self):
        with pytest.raises(ResponseParseError, match="/settings/appearance"):
            parse_response('{"navigate":"/appearance"}', valid_routes=["/settings/appearance"])

    def test_valid_route_ignores_trailing_slash(self):
        outcome = parse_response('{"navigate": "/settings/"}', valid_routes=["/settings"])
        assert outcome.page == "/settings/"

    def test_empty_valid_routes_disables_check(self):
        assert parse_response('{"navigate": "/anything"}', valid_routes=[]).page == "/anything"


# ---------------------------------------------------------------------------
# 4. Helpers
# ---------------------------------------------------------------------------

class TestHelpers:

    @pytest.mark.parametrize("value", [".btn-primary", "#email-field", "[name=email]", '[data-x="y"]'])
    def test_selector_like_values(self, value):
        assert looks_like_selector(value) is True

    @pytest.mark.parametrize("value", ["bob@example.com", "150", "#1 priority", "[draft]", 42, None])
    def test_plain_values(self, value):
        assert looks_like_selector(value) is False

    def test_selector_detected_in_nested_args(self):
        errors = validate_planner_request({"action": "a.b", "args": {"items": [{"sku": ".row"}]}})
        assert len(errors) == 1
        assert errors[0].startswith("args.items[0].sku:")

    def test_validate_planner_request_ok(self):
        assert validate_planner_request({"action": "a.b", "args": {"x": 1}}) == []

    def test_normalize_path(self):
        assert normalize_path("/a/b") == "/a/b"
        assert normalize_path("https://example.com") == "/"
        assert normalize_path("") is None
        assert normalize_path("../up") is None

    def test_extract_navigate_page_key_order(self):
        assert extract_navigate_page({"to": "/b", "page": "/a"}) == "/a"
        assert extract_navigate_page(None) is None
