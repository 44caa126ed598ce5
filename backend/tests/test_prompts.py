"""
Tests for the console prompt, notifier and loading indicator.
"""

import io
import logging

import pytest

from importers.prompts import (
    Cancelled,
    ConsoleLoadingIndicator,
    ConsoleSelectionPrompt,
    LoggingNotifier,
    Selected,
)
from importers.record_normalizer import normalize

from conftest import RecordingLoadingIndicator, make_item


def _prompt(answers):
    stdout = io.StringIO()
    return ConsoleSelectionPrompt(stdin=io.StringIO(answers), stdout=stdout), stdout


def _candidates():
    return [
        normalize(make_item("ITEM1", citationKey="vaswani2017")),
        normalize(make_item("ITEM2", title="Deep Residual Learning", citationKey="he2016")),
    ]


class TestConsoleSelectionPrompt:
    """Test ConsoleSelectionPrompt."""

    @pytest.mark.asyncio
    async def test_prompt_text(self):
        prompt, stdout = _prompt("  attention  \n")

        assert await prompt.prompt_text("Search", "Enter search term") == "attention"
        assert stdout.getvalue() == "Search (Enter search term): "

    @pytest.mark.asyncio
    async def test_prompt_text_dismissed(self):
        prompt, _ = _prompt("")
        assert await prompt.prompt_text("Search") is None

    @pytest.mark.asyncio
    async def test_select_by_number(self):
        prompt, stdout = _prompt("2\n")
        candidates = _candidates()

        selection = await prompt.prompt_selection("Select item", candidates)

        assert selection == Selected(candidates[1])
        assert "  1. Attention Is All You Need\n" in stdout.getvalue()
        assert "citekey: vaswani2017" in stdout.getvalue()

    @pytest.mark.asyncio
    async def test_filter_then_select(self):
        prompt, _ = _prompt("residual\n1\n")
        candidates = _candidates()

        selection = await prompt.prompt_selection("Select item", candidates)

        assert selection.item.key == "ITEM2"

    @pytest.mark.asyncio
    async def test_no_match_keeps_list(self):
        prompt, stdout = _prompt("convolution\n1\n")

        selection = await prompt.prompt_selection("Select item", _candidates())

        assert "No matching items." in stdout.getvalue()
        assert selection.item.key == "ITEM1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("answers", ["\n", ""])
    async def test_empty_answer_cancels(self, answers):
        prompt, _ = _prompt(answers)
        assert await prompt.prompt_selection("Select item", _candidates()) == Cancelled()


class TestLoadingIndicator:
    """Test open/close bookkeeping."""

    def test_open_close_idempotent(self, loading_indicators):
        indicator = RecordingLoadingIndicator("working")

        indicator.close()
        indicator.open()
        indicator.open()
        indicator.close()
        indicator.close()

        assert (indicator.shown, indicator.hidden) == (1, 1)
        assert indicator.is_open is False

    def test_console_indicator_writes_message(self):
        stream = io.StringIO()
        indicator = ConsoleLoadingIndicator("Searching...", stream=stream)

        indicator.open()
        indicator.close()

        assert stream.getvalue() == "Searching...\n"


class TestLoggingNotifier:
    """Test LoggingNotifier."""

    def test_notice_is_logged(self, caplog):
        with caplog.at_level(logging.INFO, logger="importers.prompts"):
            LoggingNotifier().notify("Imported 1 item.")

        assert "Imported 1 item." in caplog.text
