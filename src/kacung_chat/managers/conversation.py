"""Conversation flow: submit, optimistic update, commit or fail, clear.

The controller holds the message log and the transient request feedback
(progress, status line, error) and drives the ``StateManager``. It knows
nothing about Textual; the app subscribes to its callbacks.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging
from typing import TYPE_CHECKING

from ..context import DEFAULT_PERSONA_PROMPT, assemble_context, build_image_analysis_message
from ..exceptions import CompletionError
from ..models import Message, PendingTurn
from ..progress import ProgressCrawl
from ..state import ConversationState, StateManager

if TYPE_CHECKING:
    from ..providers import CompletionClient
    from ..settings_store import SettingsStore
    from ..task_manager import TaskManager
    from .attachment import ImageUploadPipeline

LOGGER = logging.getLogger(__name__)

RESPONSE_PROGRESS_TASK = "response_progress"
PROGRESS_RESET_TASK = "progress_reset"


class ConversationController:
    """Owns the conversation log and the request lifecycle.

    Every async continuation compares the generation captured when it
    started against the current one; ``clear`` bumps it, so replies,
    failures and timers belonging to a cleared conversation are dropped.
    """

    def __init__(
        self,
        completion_client: CompletionClient,
        uploads: ImageUploadPipeline,
        task_manager: TaskManager,
        settings: SettingsStore,
        *,
        persona_prompt: str = DEFAULT_PERSONA_PROMPT,
        progress_interval_seconds: float = 0.5,
        progress_cap: int = 85,
        progress_reset_delay_seconds: float = 1.0,
        state_manager: StateManager | None = None,
    ) -> None:
        self.client = completion_client
        self.uploads = uploads
        self.task_manager = task_manager
        self.settings = settings
        self.persona_prompt = persona_prompt
        self.progress_interval_seconds = progress_interval_seconds
        self.progress_cap = progress_cap
        self.progress_reset_delay_seconds = progress_reset_delay_seconds
        self.state = state_manager or StateManager()

        self._messages: list[Message] = []
        self._carried_summary: Message | None = None
        self._error: str | None = None
        self._progress = 0
        self._status = ""
        self._generation = 0

        self._on_messages_changed: Callable[[tuple[Message, ...]], None] | None = None
        self._on_progress: Callable[[int, str], None] | None = None
        self._on_state_changed: Callable[[ConversationState], None] | None = None
        self._on_error: Callable[[str | None], None] | None = None

        self.uploads.on_error(self.report_error)

    # -- listeners -----------------------------------------------------------

    def on_messages_changed(
        self, callback: Callable[[tuple[Message, ...]], None]
    ) -> None:
        self._on_messages_changed = callback

    def on_progress(self, callback: Callable[[int, str], None]) -> None:
        """Register callback invoked with ``(progress, status)``."""
        self._on_progress = callback

    def on_state_changed(self, callback: Callable[[ConversationState], None]) -> None:
        self._on_state_changed = callback

    def on_error(self, callback: Callable[[str | None], None]) -> None:
        """Register callback for the error line; ``None`` clears it."""
        self._on_error = callback

    # -- read-only views -----------------------------------------------------

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def visible_messages(self) -> tuple[Message, ...]:
        return tuple(message for message in self._messages if not message.hidden)

    @property
    def carried_summary(self) -> Message | None:
        return self._carried_summary

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def status(self) -> str:
        return self._status

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def model(self) -> str:
        return self.settings.selected_model

    # -- operations ----------------------------------------------------------

    def can_submit(self, text: str) -> bool:
        has_content = bool(text.strip()) or bool(self.uploads.attachments)
        return (
            has_content
            and not self.uploads.is_processing
            and self.state.current
            in {ConversationState.IDLE, ConversationState.ERROR}
        )

    def select_model(self, model_key: str) -> str:
        """Switch the model used for later requests; raises ``ValueError``."""
        selected = self.settings.select_model(model_key)
        LOGGER.info(
            "chat.model.selected",
            extra={"event": "chat.model.selected", "model": selected},
        )
        return selected

    def carry_summary(self, text: str | None) -> None:
        """Set or clear the summary sent ahead of the history."""
        if text is None or not text.strip():
            self._carried_summary = None
            return
        self._carried_summary = Message(role="system", content=text.strip())

    def report_error(self, message: str | None) -> None:
        """Show an error line without changing the conversation state."""
        self._error = message
        if self._on_error:
            self._on_error(message)

    async def submit(self, text: str) -> Message | None:
        """Send one user turn and wait for the assistant reply.

        Returns the assistant message, or ``None`` when the submission was
        rejected, failed, or was discarded by a ``clear`` while in flight.
        """
        if not self.can_submit(text):
            LOGGER.debug("chat.submit.rejected", extra={"event": "chat.submit.rejected"})
            return None
        if not await self.state.transition_if(
            {ConversationState.IDLE, ConversationState.ERROR},
            ConversationState.AWAITING_RESPONSE,
        ):
            return None
        self._notify_state()

        generation = self._generation
        await self.task_manager.cancel(PROGRESS_RESET_TASK)
        history = tuple(self._messages)
        images = self.uploads.take_all()
        content = text.strip()
        turn = PendingTurn(
            user_message=Message(role="user", content=content, images=images),
            analysis_message=build_image_analysis_message(images),
            log_index=len(history),
            generation=generation,
        )
        self._messages.append(turn.user_message)
        self._notify_messages()
        self.report_error(None)
        self._set_progress(10, "Preparing context...")

        context = assemble_context(
            history,
            content,
            images,
            self._carried_summary,
            persona_prompt=self.persona_prompt,
        )
        self._set_progress(25, "Sending request to AI...")
        crawl = ProgressCrawl(
            self.task_manager,
            f"{RESPONSE_PROGRESS_TASK}:{generation}",
            read=lambda: self._crawl_value(generation),
            write=lambda value: self._set_progress(value, self._status),
            interval_seconds=self.progress_interval_seconds,
            cap=self.progress_cap,
        )
        LOGGER.info(
            "chat.request.start",
            extra={
                "event": "chat.request.start",
                "model": self.model,
                "context_messages": len(context),
                "images": len(images),
            },
        )

        failure: Exception | None = None
        reply: Message | None = None
        crawl.start()
        try:
            reply = await self.client.complete(context, self.model)
        except CompletionError as exc:
            failure = exc
        except Exception as exc:
            LOGGER.exception(
                "chat.request.crashed",
                extra={"event": "chat.request.crashed", "error_type": type(exc).__name__},
            )
            if turn.generation == self._generation:
                self._keep_attempt(turn)
                await self._fail("An error occurred")
            raise
        finally:
            await crawl.stop()

        if turn.generation != self._generation:
            LOGGER.info(
                "chat.response.discarded",
                extra={
                    "event": "chat.response.discarded",
                    "generation": turn.generation,
                    "failed": failure is not None,
                },
            )
            return None

        if failure is not None or reply is None:
            LOGGER.warning(
                "chat.request.failed",
                extra={"event": "chat.request.failed", "error": str(failure)},
            )
            self._keep_attempt(turn)
            await self._fail(str(failure) or "Failed to get response")
            return None

        self._set_progress(100, "Response received")
        self._messages[turn.log_index : turn.log_index + 1] = turn.committed(reply)
        self._notify_messages()
        await self.state.transition_to(ConversationState.IDLE)
        self._notify_state()
        self.task_manager.add(
            asyncio.create_task(self._reset_progress_later(generation)),
            name=PROGRESS_RESET_TASK,
        )
        LOGGER.info(
            "chat.request.complete",
            extra={"event": "chat.request.complete", "chars": len(reply.content)},
        )
        return reply

    async def clear(self) -> None:
        """Start a fresh conversation, abandoning anything in flight."""
        self._generation += 1
        await self.task_manager.cancel_prefix(RESPONSE_PROGRESS_TASK)
        await self.task_manager.cancel(PROGRESS_RESET_TASK)
        await self.uploads.clear()
        self._messages.clear()
        self._carried_summary = None
        await self.state.transition_to(ConversationState.IDLE)
        self.report_error(None)
        self._set_progress(0, "")
        self._notify_messages()
        self._notify_state()
        LOGGER.info(
            "chat.cleared",
            extra={"event": "chat.cleared", "generation": self._generation},
        )

    # -- internals -----------------------------------------------------------

    def _keep_attempt(self, turn: PendingTurn) -> None:
        """Keep the unanswered turn, with its image analysis, in the log."""
        self._messages[turn.log_index : turn.log_index + 1] = turn.attempted()
        self._notify_messages()

    async def _fail(self, message: str) -> None:
        await self.state.transition_to(ConversationState.ERROR)
        self.report_error(message)
        self._set_progress(0, "")
        self._notify_state()

    async def _reset_progress_later(self, generation: int) -> None:
        await asyncio.sleep(self.progress_reset_delay_seconds)
        if generation == self._generation:
            self._set_progress(0, "")

    def _crawl_value(self, generation: int) -> int | None:
        if (
            generation != self._generation
            or self.state.current != ConversationState.AWAITING_RESPONSE
        ):
            return None
        return self._progress

    def _set_progress(self, value: int, status: str) -> None:
        self._progress = value
        self._status = status
        if self._on_progress:
            self._on_progress(value, status)

    def _notify_messages(self) -> None:
        if self._on_messages_changed:
            self._on_messages_changed(self.visible_messages)

    def _notify_state(self) -> None:
        if self._on_state_changed:
            self._on_state_changed(self.state.current)
