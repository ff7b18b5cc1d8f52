"""Main Textual application for chatting with Kacung."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
import logging
import os
from pathlib import Path
import sys
from typing import Any

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.events import Paste
from textual.widgets import Button, Footer, Header, Input, Static

from .config import load_config
from .logging_utils import configure_logging
from .managers import ConversationController, ImageUploadPipeline
from .models import ImageAttachment, ImageSource, Message
from .providers import (
    CompletionClient,
    GeminiVisionClient,
    OpenRouterCompletionClient,
    VisionClient,
)
from .screens import ImageAttachScreen, ModelPickerScreen
from .settings_store import SettingsStore
from .state import ConversationState
from .task_manager import TaskManager
from .widgets.activity_bar import ActivityBar
from .widgets.attachment_tray import AttachmentTray
from .widgets.conversation import ConversationView
from .widgets.input_box import InputBox
from .widgets.message import MessageBubble
from .widgets.status_bar import StatusBar

LOGGER = logging.getLogger(__name__)

_SlashCommand = Callable[[str], Awaitable[None]]

HELP_TEXT = "/image <path> attach an image  |  /model <key> switch model  |  /clear new chat"
ACTIVE_REQUEST_TASK = "active_request"


class KacungChatApp(App[None]):
    """Chat TUI that relays to hosted language and vision models."""

    CSS = """
    Screen {
        layout: vertical;
        background: $background;
    }

    #app-root {
        layout: vertical;
        width: 100%;
        height: 1fr;
        background: $background;
    }

    #conversation {
        height: 1fr;
        padding: 1;
    }

    #error_line {
        height: auto;
        padding: 0 1;
        color: $error;
    }

    AttachmentTray {
        border-top: dashed $panel;
    }

    InputBox {
        height: auto;
        padding: 0 1 1 1;
        border-top: solid $panel;
        background: $surface;
    }

    #message_input {
        width: 1fr;
    }

    #attach_button, #send_button, #clear_button {
        margin-left: 1;
        min-width: 10;
    }

    #input_row {
        height: auto;
    }

    #status_bar {
        height: auto;
        padding: 0 1;
        border-top: solid $panel;
        background: $surface;
    }

    #activity_bar {
        height: auto;
        min-height: 1;
        border-top: dashed $panel;
        background: $surface;
    }

    MessageBubble {
        width: 85%;
        margin: 1 0;
        padding: 1 2;
        border: round $panel;
    }
    """

    DEFAULT_ACTION_DESCRIPTIONS: dict[str, str] = {
        "send_message": "Send",
        "clear_conversation": "New Chat",
        "quit": "Quit",
        "toggle_model_picker": "Model",
        "attach_image": "Image",
        "scroll_up": "Scroll Up",
        "scroll_down": "Scroll Down",
    }

    def __init__(
        self,
        config: dict[str, dict[str, Any]] | None = None,
        *,
        completion_client: CompletionClient | None = None,
        vision_client: VisionClient | None = None,
        settings_store: SettingsStore | None = None,
    ) -> None:
        self.config = config if config is not None else load_config()
        self.window_title = str(self.config["app"]["title"])
        self.window_class = str(self.config["app"]["class"])
        configure_logging(self.config["logging"])
        LOGGER.info(
            "app.python",
            extra={
                "event": "app.python",
                "executable": sys.executable,
                "version": sys.version.split()[0],
            },
        )

        openrouter_cfg = self.config["openrouter"]
        self.model_labels: dict[str, str] = dict(openrouter_cfg["model_labels"])
        settings_path = str(self.config["settings"]["path"]).strip()
        self.settings = settings_store or SettingsStore(
            list(openrouter_cfg["models"]),
            path=Path(settings_path).expanduser() if settings_path else None,
        )
        self.settings.load()

        self._task_manager = TaskManager()
        uploads_cfg = self.config["uploads"]
        self.uploads = ImageUploadPipeline(
            vision_client or GeminiVisionClient.from_config(self.config["vision"]),
            self._task_manager,
            max_image_bytes=int(uploads_cfg["max_image_bytes"]),
            progress_interval_seconds=float(uploads_cfg["progress_interval_seconds"]),
            progress_cap=int(uploads_cfg["progress_cap"]),
            status_reset_delay_seconds=float(uploads_cfg["status_reset_delay_seconds"]),
        )
        chat_cfg = self.config["chat"]
        self.controller = ConversationController(
            completion_client or OpenRouterCompletionClient.from_config(openrouter_cfg),
            self.uploads,
            self._task_manager,
            self.settings,
            persona_prompt=str(chat_cfg["persona_prompt"]),
            progress_interval_seconds=float(chat_cfg["progress_interval_seconds"]),
            progress_cap=int(chat_cfg["progress_cap"]),
            progress_reset_delay_seconds=float(chat_cfg["progress_reset_delay_seconds"]),
        )
        self.controller.on_messages_changed(self._on_messages_changed)
        self.controller.on_progress(self._on_progress)
        self.controller.on_state_changed(self._on_state_changed)
        self.controller.on_error(self._on_error)
        self.uploads.on_change(self._on_attachments_changed)

        self._slash_commands: dict[str, _SlashCommand] = {
            "/image": self._handle_image_command,
            "/model": self._handle_model_command,
            "/clear": self._handle_clear_command,
            "/help": self._handle_help_command,
        }
        self._timestamps: dict[int, str] = {}

        self._w_input: Input | None = None
        self._w_send: Button | None = None
        self._w_activity: ActivityBar | None = None
        self._w_status: StatusBar | None = None
        self._w_conversation: ConversationView | None = None
        self._w_tray: AttachmentTray | None = None
        self._w_error: Static | None = None

        self._binding_specs = self._binding_specs_from_config(self.config)
        self._apply_terminal_window_identity()
        super().__init__()

    @classmethod
    def _binding_specs_from_config(
        cls, config: dict[str, dict[str, Any]]
    ) -> list[Binding]:
        keybinds = config.get("keybinds", {})
        bindings: list[Binding] = []
        for action_name, description in cls.DEFAULT_ACTION_DESCRIPTIONS.items():
            binding_key = keybinds.get(action_name)
            if isinstance(binding_key, str) and binding_key.strip():
                bindings.append(
                    Binding(
                        key=binding_key.strip(),
                        action=action_name,
                        description=description,
                        show=True,
                    )
                )
        return bindings

    def _apply_terminal_window_identity(self) -> None:
        """Best-effort terminal title and class via OSC sequences."""
        self._emit_osc("0", self.window_title)
        self._emit_osc("2", self.window_title)
        if self.window_class.strip():
            self._emit_osc("1", self.window_class.strip())

    @staticmethod
    def _emit_osc(code: str, value: str) -> None:
        if not value.strip() or not sys.stdout.isatty():
            return
        print(f"\033]{code};{value}\007", end="", flush=True)

    @property
    def model_label(self) -> str:
        model = self.controller.model
        return self.model_labels.get(model, model)

    @property
    def show_timestamps(self) -> bool:
        return bool(self.config["ui"]["show_timestamps"])

    def compose(self) -> ComposeResult:
        yield Header(name=self.window_title)
        with Container(id="app-root"):
            yield ConversationView(id="conversation", assistant_name=self.window_title)
            yield Static("", id="error_line")
            yield AttachmentTray(id="attachment_tray")
            yield InputBox()
            yield StatusBar(id="status_bar")
            yield ActivityBar(shortcut_hints="/help commands", id="activity_bar")
        yield Footer()

    async def on_mount(self) -> None:
        """Cache widget references and register configured keybindings."""
        self.title = self.window_title
        self.sub_title = f"Model: {self.model_label}"
        for binding in self._binding_specs:
            self.bind(
                binding.key,
                binding.action,
                description=binding.description,
                show=binding.show,
                key_display=binding.key_display,
            )

        self._w_input = self.query_one("#message_input", Input)
        self._w_send = self.query_one("#send_button", Button)
        self._w_activity = self.query_one("#activity_bar", ActivityBar)
        self._w_status = self.query_one("#status_bar", StatusBar)
        self._w_conversation = self.query_one(ConversationView)
        self._w_tray = self.query_one(AttachmentTray)
        self._w_error = self.query_one("#error_line", Static)
        self._w_error.display = False
        self._w_tray.display = False
        self._update_status_bar()
        self._w_input.focus()
        LOGGER.info(
            "app.mounted",
            extra={"event": "app.mounted", "model": self.controller.model},
        )

    # -- controller listeners --------------------------------------------------

    def _timestamp(self) -> str:
        if not self.show_timestamps:
            return ""
        return datetime.now().strftime("%H:%M:%S")

    def _on_messages_changed(self, messages: tuple[Message, ...]) -> None:
        for message in messages:
            self._timestamps.setdefault(id(message), self._timestamp())
        if not messages:
            self._timestamps.clear()
        if self._w_conversation is not None:
            self.call_later(self._render_messages)

    async def _render_messages(self) -> None:
        conversation = self._w_conversation or self.query_one(ConversationView)
        messages = self.controller.visible_messages
        await conversation.show_messages(
            messages, [self._timestamps.get(id(m), "") for m in messages]
        )
        ui_cfg = self.config["ui"]
        for bubble in conversation.query(MessageBubble):
            self._style_bubble(bubble, ui_cfg)
        self._update_status_bar()

    @staticmethod
    def _style_bubble(bubble: MessageBubble, ui_cfg: dict[str, Any]) -> None:
        if bubble.role == "user":
            bubble.styles.background = str(ui_cfg["user_message_color"])
        else:
            bubble.styles.background = str(ui_cfg["assistant_message_color"])

    def _on_attachments_changed(self, attachments: tuple[ImageAttachment, ...]) -> None:
        if self._w_tray is not None:
            self.call_later(self._render_attachments)

    async def _render_attachments(self) -> None:
        tray = self._w_tray or self.query_one(AttachmentTray)
        await tray.show_attachments(self.uploads.attachments)
        self._update_status_bar()

    def _on_progress(self, value: int, status: str) -> None:
        if self._w_activity is not None:
            self._w_activity.set_progress(value, status)

    def _on_state_changed(self, state: ConversationState) -> None:
        LOGGER.info(
            "app.state.transition",
            extra={"event": "app.state.transition", "to_state": state.value},
        )
        if state == ConversationState.AWAITING_RESPONSE:
            self.sub_title = "Waiting for response..."
        else:
            self.sub_title = f"Model: {self.model_label}"
        self._update_status_bar()

    def _on_error(self, message: str | None) -> None:
        if self._w_error is None:
            return
        self._w_error.update(message or "")
        self._w_error.display = bool(message)

    def _update_status_bar(self) -> None:
        if self._w_status is None:
            return
        self._w_status.set_status(
            state=self.controller.state.current.value,
            model_label=self.model_label,
            message_count=len(self.controller.visible_messages),
            image_count=len(self.uploads.attachments),
        )
        if self._w_send is not None:
            self._w_send.disabled = (
                self.controller.state.current == ConversationState.AWAITING_RESPONSE
                or self.uploads.is_processing
            )

    # -- sending -----------------------------------------------------------------

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "message_input":
            await self.send_user_message()

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "send_button":
            await self.send_user_message()

    async def action_send_message(self) -> None:
        await self.send_user_message()

    async def send_user_message(self) -> None:
        """Run a slash command or hand the input to the controller."""
        input_widget = self._w_input or self.query_one("#message_input", Input)
        raw_text = input_widget.value.strip()

        if raw_text.startswith("/"):
            command, _, args = raw_text.partition(" ")
            handler = self._slash_commands.get(command.lower())
            if handler is not None:
                input_widget.value = ""
                await handler(args.strip())
                return

        if not self.controller.can_submit(raw_text):
            if self.uploads.is_processing:
                self.sub_title = "Wait for image analysis to finish."
            elif self.controller.state.current == ConversationState.AWAITING_RESPONSE:
                self.sub_title = "Busy. Wait for current request to finish."
            else:
                self.sub_title = "Cannot send an empty message."
            return

        input_widget.value = ""
        self._task_manager.add(
            asyncio.create_task(self.controller.submit(raw_text)),
            name=f"{ACTIVE_REQUEST_TASK}:{self.controller.generation}",
        )

    # -- images ------------------------------------------------------------------

    def _start_upload_from_path(self, path: str) -> bool:
        try:
            source = ImageSource.from_path(path)
        except OSError as exc:
            LOGGER.warning(
                "app.attachment.unreadable",
                extra={"event": "app.attachment.unreadable", "path": path, "error": str(exc)},
            )
            self.controller.report_error(f"Image not found: {path}")
            return False
        input_widget = self._w_input or self.query_one("#message_input", Input)
        hint = input_widget.value.strip()
        if hint.startswith("/"):
            hint = ""
        return self.uploads.start_upload(source, prompt_hint=hint) is not None

    def _on_image_path_dismissed(self, path: str | None) -> None:
        if path:
            self._start_upload_from_path(path)

    async def action_attach_image(self) -> None:
        self.push_screen(ImageAttachScreen(), callback=self._on_image_path_dismissed)

    async def on_input_box_attach_requested(
        self, _message: InputBox.AttachRequested
    ) -> None:
        await self.action_attach_image()

    async def on_attachment_tray_remove_requested(
        self, message: AttachmentTray.RemoveRequested
    ) -> None:
        self.uploads.remove(message.attachment_id)

    @staticmethod
    def _extract_paths_from_paste(text: str) -> list[str]:
        """Extract file paths from pasted text (common drag/drop behavior)."""
        candidates: list[str] = []
        for token in text.strip().split():
            cleaned = token.strip().strip("'\"")
            if cleaned.startswith("file://"):
                cleaned = cleaned[len("file://") :]
            if cleaned:
                candidates.append(cleaned)
        return candidates

    def on_paste(self, event: Paste) -> None:
        """Upload pasted or dropped image files; other text is left alone."""
        if not event.text:
            return
        paths = [
            path
            for path in self._extract_paths_from_paste(event.text)
            if os.path.isfile(os.path.expanduser(path))
        ]
        if not paths:
            return
        for path in paths:
            self._start_upload_from_path(path)
        event.stop()

    # -- slash commands ----------------------------------------------------------

    async def _handle_image_command(self, args: str) -> None:
        if not args:
            await self.action_attach_image()
            return
        self._start_upload_from_path(args)

    async def _handle_model_command(self, args: str) -> None:
        if not args:
            await self.action_toggle_model_picker()
            return
        self._select_model(args)

    async def _handle_clear_command(self, _args: str) -> None:
        await self.action_clear_conversation()

    async def _handle_help_command(self, _args: str) -> None:
        self.sub_title = HELP_TEXT

    # -- model picker ------------------------------------------------------------

    def _select_model(self, model_key: str) -> None:
        if self.controller.state.current == ConversationState.AWAITING_RESPONSE:
            self.sub_title = "Model switch is available only when idle."
            return
        try:
            self.controller.select_model(model_key)
        except ValueError:
            self.sub_title = f"Unknown model: {model_key}"
            return
        self.sub_title = f"Model: {self.model_label}"
        self._update_status_bar()

    def _on_model_picker_dismissed(self, selected_model: str | None) -> None:
        if selected_model is not None:
            self._select_model(selected_model)

    async def action_toggle_model_picker(self) -> None:
        if self.controller.state.current == ConversationState.AWAITING_RESPONSE:
            self.sub_title = "Model switch is available only when idle."
            return
        self.push_screen(
            ModelPickerScreen(self.model_labels, self.controller.model),
            callback=self._on_model_picker_dismissed,
        )

    async def on_status_bar_model_picker_requested(
        self, _message: StatusBar.ModelPickerRequested
    ) -> None:
        await self.action_toggle_model_picker()

    # -- clearing, scrolling, shutdown ---------------------------------------------

    async def action_clear_conversation(self) -> None:
        """Start a new chat; a reply still in flight is discarded."""
        await self.controller.clear()
        input_widget = self._w_input or self.query_one("#message_input", Input)
        input_widget.value = ""
        input_widget.focus()

    async def on_input_box_clear_requested(
        self, _message: InputBox.ClearRequested
    ) -> None:
        await self.action_clear_conversation()

    def action_scroll_up(self) -> None:
        conversation = self._w_conversation or self.query_one(ConversationView)
        conversation.scroll_relative(y=-10, animate=False)

    def action_scroll_down(self) -> None:
        conversation = self._w_conversation or self.query_one(ConversationView)
        conversation.scroll_relative(y=10, animate=False)

    async def action_quit(self) -> None:
        self.exit()

    async def on_unmount(self) -> None:
        """Cancel and await all background tasks during shutdown."""
        await self._task_manager.cancel_all()
