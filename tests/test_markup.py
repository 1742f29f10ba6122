"""Tests for HTML and RTF stripping.

WHY: ContentBlock.text must be plain. Over-eager stripping deletes verse
text; under-eager stripping leaks tags into every emitted format.

HOW: Literal before/after strings taken from the kinds of fragments
e-Sword and MyBible modules actually contain.
"""

import pytest

from bible_converter.core.loss import LossClass, LossReport
from bible_converter.formats.markup import record_markup_loss, strip_html, strip_markup, strip_rtf


class TestStripHtml:
    def test_inline_tags(self):
        clean = strip_html("In the <i>beginning</i> God <b>created</b>")
        assert clean.text == "In the beginning God created"
        assert clean.removed
        assert clean.tags == ("i", "b")

    def test_plain_text_untouched(self):
        clean = strip_html("  For God  so loved ")
        assert clean.text == "For God so loved"
        assert not clean.removed

    def test_entities_decoded_without_loss(self):
        clean = strip_html("Moses &amp; Aaron &#x27;said&#x27;")
        assert clean.text == "Moses & Aaron 'said'"
        assert not clean.removed

    def test_escaped_tags_do_not_leak(self):
        clean = strip_html("In the &lt;i&gt;beginning&lt;/i&gt; God")
        assert clean.text == "In the beginning God"
        assert "<" not in clean.text and ">" not in clean.text
        assert clean.tags == ("i",)

    def test_escaped_comparison_is_kept(self):
        assert strip_html("1 &lt; 2").text == "1 < 2"

    def test_breaks_become_spaces(self):
        assert strip_html("first<br/>second").text == "first second"

    @pytest.mark.parametrize(
        "raw",
        [
            "In the beginning<S>7225</S> God",
            "In the beginning<f>[1]</f> God",
            "In the beginning<n>note text</n> God",
        ],
    )
    def test_note_elements_dropped_with_content(self, raw):
        assert strip_html(raw).text == "In the beginning God"

    def test_red_letter_keeps_content(self):
        assert strip_html("<J>Follow me</J>").text == "Follow me"


class TestStripRtf:
    def test_control_words(self):
        clean = strip_rtf("{\\rtf1 The first verses of \\b Genesis\\b0 .}")
        assert clean.text == "The first verses of Genesis."
        assert clean.removed
        assert "b" in clean.tags

    def test_font_table_removed(self):
        clean = strip_rtf("{\\rtf1{\\fonttbl{\\f0 Times;}}\\f0 Text}")
        assert clean.text == "Text"

    def test_hex_and_unicode_escapes(self):
        assert strip_rtf("caf\\'e9").text == "café"
        assert strip_rtf("\\u8364?").text == "€"

    def test_par_becomes_space(self):
        assert strip_rtf("one\\par two").text == "one two"


class TestStripMarkup:
    def test_mixed_rtf_and_html(self):
        clean = strip_markup("{\\b <i>Holy</i>}")
        assert clean.text == "Holy"
        assert clean.tags == ("b", "i")

    def test_record_loss_once_per_block(self):
        report = LossReport("e-Sword", "IR", LossClass.L1)
        raw = "In the <i>beginning</i>"
        record_markup_loss(report, "Gen.1.1", raw, strip_markup(raw))
        record_markup_loss(report, "Gen.1.2", "plain", strip_markup("plain"))
        assert len(report.lost_elements) == 1
        lost = report.lost_elements[0]
        assert (lost.path, lost.element_type, lost.original_value) == ("Gen.1.1", "markup", raw)
