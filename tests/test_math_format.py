"""Tests for the render-time math notation normalizer."""

from __future__ import annotations

import unittest

from kacung_chat.math_format import normalize_delimiters, normalize_math, patch_typos


class NormalizeDelimiterTests(unittest.TestCase):
    def test_inline_parens_become_single_dollars(self) -> None:
        self.assertEqual(
            normalize_math(r"Energy is \(E = mc^2\) here."),
            "Energy is $E = mc^2$ here.",
        )

    def test_display_brackets_become_double_dollars_across_lines(self) -> None:
        text = "Before\n\\[\n\\int_0^1 x\\,dx\n\\]\nAfter"
        self.assertEqual(
            normalize_math(text), "Before\n$$\n\\int_0^1 x\\,dx\n$$\nAfter"
        )

    def test_bare_bracket_with_command_becomes_block_math(self) -> None:
        self.assertEqual(
            normalize_math(r"[ \frac{a}{b} = c ]"), r"$$\frac{a}{b} = c$$"
        )

    def test_plain_brackets_are_left_alone(self) -> None:
        text = "See [the docs](https://example.com) and [1, 2, 3]."
        self.assertEqual(normalize_math(text), text)

    def test_nested_bracket_rewrites_only_innermost_span(self) -> None:
        self.assertEqual(
            normalize_delimiters(r"[\sum [\alpha] ]"), r"[\sum $$\alpha$$ ]"
        )

    def test_empty_input_unchanged(self) -> None:
        self.assertEqual(normalize_math(""), "")

    def test_delimiter_rewrite_is_idempotent(self) -> None:
        samples = [
            r"\(a+b\) and \[c\]",
            "text $x$ and $$y$$",
            r"[ \sum_{i=1}^n i ]",
            "Line 1\n\\[\n\\alpha\n\\]",
            r"[\sum [\alpha] ]",
        ]
        for sample in samples:
            once = normalize_delimiters(sample)
            self.assertEqual(normalize_delimiters(once), once, sample)


class PatchTyposTests(unittest.TestCase):
    def test_split_tokens_are_rejoined(self) -> None:
        self.assertEqual(patch_typos(r"\partia l f"), r"\partial f")
        self.assertEqual(patch_typos(r"\delt a x"), r"\delta x")

    def test_phi_whitespace_collapses(self) -> None:
        self.assertEqual(patch_typos("\\phi   \n x"), r"\phi x")

    def test_frac_space_before_brace_removed(self) -> None:
        self.assertEqual(patch_typos(r"\frac  {1}{2}"), r"\frac{1}{2}")

    def test_normalize_math_applies_typos_after_delimiters(self) -> None:
        self.assertEqual(
            normalize_math(r"\(\partia l_t u\)"), r"$\partial_t u$"
        )


if __name__ == "__main__":
    unittest.main()
