"""Tests for outbound conversation context assembly."""

from __future__ import annotations

import unittest

from kacung_chat.context import (
    ANALYSIS_HEADER,
    DEFAULT_PERSONA_PROMPT,
    assemble_context,
    build_image_analysis_message,
)
from kacung_chat.models import ImageAttachment, Message, UploadPhase


def _image(description: str, image_id: str = "img1") -> ImageAttachment:
    return ImageAttachment(
        id=image_id,
        name=f"{image_id}.png",
        data_url="data:image/png;base64,AAAA",
        description=description,
        phase=UploadPhase.COMPLETE,
        progress=None,
        status=None,
    )


class AnalysisMessageTests(unittest.TestCase):
    def test_no_images_returns_none(self) -> None:
        self.assertIsNone(build_image_analysis_message([]))

    def test_single_image_numbered_and_hidden(self) -> None:
        message = build_image_analysis_message([_image("a red car")])
        assert message is not None
        self.assertEqual(message.role, "user")
        self.assertTrue(message.hidden)
        self.assertTrue(message.content.startswith(ANALYSIS_HEADER))
        self.assertIn("The user has provided 1 image(s).", message.content)
        self.assertIn("[IMAGE 1 ANALYSIS]:\na red car", message.content)
        self.assertIn("Image 1, Image 2, etc.", message.content)

    def test_multiple_images_keep_attachment_order(self) -> None:
        message = build_image_analysis_message(
            [_image("first", "a"), _image("second", "b")]
        )
        assert message is not None
        self.assertIn("2 image(s)", message.content)
        self.assertLess(
            message.content.index("[IMAGE 1 ANALYSIS]:\nfirst"),
            message.content.index("[IMAGE 2 ANALYSIS]:\nsecond"),
        )


class AssembleContextTests(unittest.TestCase):
    def test_text_only_turn(self) -> None:
        history = [
            Message(role="user", content="Hi"),
            Message(role="assistant", content="Halo!"),
        ]
        context = assemble_context(history, "How are you?")
        self.assertEqual(
            context,
            [
                {"role": "system", "content": DEFAULT_PERSONA_PROMPT},
                {"role": "user", "content": "Hi"},
                {"role": "assistant", "content": "Halo!"},
                {"role": "user", "content": "How are you?"},
            ],
        )

    def test_image_turn_places_analysis_before_user_text(self) -> None:
        context = assemble_context([], "What is this?", [_image("a red car")])
        self.assertEqual(len(context), 3)
        analysis, user = context[1], context[2]
        self.assertEqual(analysis["role"], "user")
        self.assertIn("IMAGE 1", analysis["content"])
        self.assertIn("a red car", analysis["content"])
        self.assertEqual(user, {"role": "user", "content": "What is this?"})

    def test_summary_follows_persona(self) -> None:
        summary = Message(role="system", content="Earlier we discussed cars.")
        context = assemble_context(
            [Message(role="user", content="old")], "new", carried_summary=summary
        )
        self.assertEqual(context[1], {"role": "system", "content": "Earlier we discussed cars."})
        self.assertEqual(context[2]["content"], "old")

    def test_custom_persona_prompt(self) -> None:
        context = assemble_context([], "hi", persona_prompt="  Be brief.  ")
        self.assertEqual(context[0], {"role": "system", "content": "Be brief."})

    def test_wire_entries_only_carry_role_and_content(self) -> None:
        history = [
            Message(role="user", content="look", images=(_image("x"),)),
            build_image_analysis_message([_image("x")]),
        ]
        context = assemble_context([m for m in history if m is not None], "more")
        for entry in context:
            self.assertEqual(set(entry), {"role", "content"})

    def test_assembly_is_deterministic(self) -> None:
        history = (Message(role="user", content="Hi"),)
        images = (_image("sunset"),)
        first = assemble_context(history, "describe", images)
        second = assemble_context(history, "describe", images)
        self.assertEqual(first, second)


if __name__ == "__main__":
    unittest.main()
