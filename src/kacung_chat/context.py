"""Outbound conversation context assembly.

Every submission rebuilds the message list sent to the completion service
from scratch: persona, optional carried summary, the full stored history, an
image-analysis note when the new turn has images, then the new user text.
"""

from __future__ import annotations

from collections.abc import Sequence

from .models import ImageAttachment, Message

DEFAULT_PERSONA_PROMPT = """Nama kamu adalah "Kacung". Kamu adalah asisten pribadi yang ramah.
ATURAN PENTING:
- JANGAN PERNAH memberitahu informasi tentang model AI kamu (seperti Mistral, Gemma, dll).
- Jangan pernah sebutkan bahwa kamu adalah model AI.
- Jika ditanya siapa kamu atau model apa kamu, jawablah bahwa kamu adalah Kacung.

IMPORTANT MATH RULES:
- Use standard LaTeX for all mathematical formulas.
- Use $...$ for inline math and $$...$$ for block math.
- NEVER use \\( \\) or \\[ \\] or bare brackets [ ].
- DO NOT put spaces inside LaTeX commands (e.g., use \\partial not \\partia l).
- If you see a complex formula, ALWAYS wrap it in $$...$$.

GENERAL RULES:
- ALWAYS respond in the same language as the user.
- If just greeted, respond naturally without excessive capability listing."""

ANALYSIS_HEADER = "[CONTEXT: IMAGE ANALYSIS]"


def persona_message(prompt: str = DEFAULT_PERSONA_PROMPT) -> Message:
    return Message(role="system", content=prompt.strip())


def build_image_analysis_message(
    images: Sequence[ImageAttachment],
) -> Message | None:
    """Summarize attachment descriptions as one hidden user-role note.

    Returns ``None`` when there are no images. Images without a description
    are still counted so that the numbering matches what the user attached.
    """
    if not images:
        return None
    blocks = [
        f"[IMAGE {index} ANALYSIS]:\n{image.description or ''}".rstrip()
        for index, image in enumerate(images, start=1)
    ]
    content = (
        f"{ANALYSIS_HEADER} The user has provided {len(images)} image(s). "
        "Here is the detailed analysis:\n\n"
        + "\n\n".join(blocks)
        + "\n\n(Refer to these as Image 1, Image 2, etc. "
        "Use this context to answer the user's questions.)"
    )
    # User role so that models attend to it as part of the conversation.
    return Message(role="user", content=content, hidden=True)


def assemble_context(
    history: Sequence[Message],
    new_text: str,
    new_images: Sequence[ImageAttachment] = (),
    carried_summary: Message | None = None,
    *,
    persona_prompt: str = DEFAULT_PERSONA_PROMPT,
) -> list[dict[str, str]]:
    """Return the ordered ``{role, content}`` list for one completion request."""
    ordered: list[Message] = [persona_message(persona_prompt)]
    if carried_summary is not None:
        ordered.append(carried_summary)
    ordered.extend(history)
    analysis = build_image_analysis_message(new_images)
    if analysis is not None:
        ordered.append(analysis)
    ordered.append(Message(role="user", content=new_text))
    return [message.to_wire() for message in ordered]
