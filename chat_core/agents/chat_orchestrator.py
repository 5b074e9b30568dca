"""对话编排核心模块。

实现一轮对话的状态机：校验前置条件、构造请求、消费流式事件、
改写会话状态，并在回答完成后调度朗读与标题生成等后续任务。

状态流转::

    IDLE → AWAITING_RESPONSE → STREAMING → FINALIZING → IDLE
                         └──────────→ FAILED → IDLE

语音输入先经过 IDLE → TRANSCRIBING → IDLE，再按上面的流程发送转写结果。

所有状态修改都发生在调用 send_message 的同一个事件循环任务中，
流式分块经 ``async for`` 拉取后才写入会话，因此不存在交错写入。
朗读与标题生成作为独立的后台任务运行，失败只记录日志，不回滚已显示的回答。
"""

import asyncio
import logging
from contextlib import aclosing
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Coroutine, Dict, List, Optional, Set
from uuid import uuid4

from chat_core.agents.title_service import ConversationTitleService
from chat_core.config.settings import SessionConfig, SettingsProvider, settings
from chat_core.domain.audio import AudioPlaybackSink, AudioRecorder
from chat_core.domain.conversation import InMemoryConversationStore, Message
from chat_core.domain.exceptions import (
    BusinessError,
    InvalidResponseError,
    RequestCancelledError,
    RequestTimeoutError,
    UnknownError,
    ValidationError,
    describe_error,
)
from chat_core.domain.models import (
    Annotation,
    ChatMessage,
    ChatTurnRequest,
    DeltaEvent,
    DoneEvent,
    UnrecognizedEvent,
)
from chat_core.infrastructure.logging.logger import logger
from chat_core.infrastructure.storage.json_store import JsonConversationHistory
from chat_core.providers import create_provider
from chat_core.providers.base import CompletionProvider

DEFAULT_TITLE = "New Conversation"
NOT_CONFIGURED_MESSAGE = "Please configure your OpenAI API key in the settings to use this feature."

ProviderFactory = Callable[[SessionConfig], CompletionProvider]


class TurnState(str, Enum):
    IDLE = "idle"
    TRANSCRIBING = "transcribing"
    AWAITING_RESPONSE = "awaiting_response"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    FAILED = "failed"


class TurnOutcome(str, Enum):
    """send_message 的返回结果。"""

    IGNORED = "ignored"  # 空输入
    REJECTED = "rejected"  # 上一轮尚未结束
    NOT_CONFIGURED = "not_configured"
    COMPLETED = "completed"
    FAILED = "failed"


class ChatOrchestrator:
    """单个会话的编排器，也是会话状态的唯一写入方。

    Attributes:
        store: 当前会话的消息列表。
        input_message: 待发送的输入（语音转写结果也写入这里）。
        is_loading: 请求进行中标记。
        streaming_message: 流式模式下已累计的回答文本。
        conversation_title: 会话标题，由后台任务更新。
        error_message: 最近一次失败的用户可读提示。
        last_error: 最近一次失败的异常对象（已归类）。
        last_annotations: 最近一次流式回答附带的引用。
    """

    def __init__(
        self,
        settings_provider: SettingsProvider = settings,
        store: Optional[InMemoryConversationStore] = None,
        provider_factory: ProviderFactory = create_provider,
        audio_sink: Optional[AudioPlaybackSink] = None,
        recorder: Optional[AudioRecorder] = None,
    ):
        self._settings = settings_provider
        self._provider_factory = provider_factory
        self._audio_sink = audio_sink
        self._recorder = recorder
        self.store = store or InMemoryConversationStore()
        self.state = TurnState.IDLE
        self.input_message = ""
        self.is_loading = False
        self.streaming_message = ""
        self.conversation_title = DEFAULT_TITLE
        self.error_message: Optional[str] = None
        self.last_error: Optional[BaseException] = None
        self.last_annotations: List[Annotation] = []
        # 流式回答期间正在被改写的占位消息
        self._current: Optional[Message] = None
        self._background: Set[asyncio.Task] = set()
        # 标题代数：只有最新一次生成的标题允许写回
        self._title_generation = 0

    @property
    def messages(self) -> List[Message]:
        return self.store.messages()

    # ---- 一轮对话 ----

    async def send_message(
        self,
        text: Optional[str] = None,
        config: Optional[SessionConfig] = None,
    ) -> TurnOutcome:
        """发送一条用户消息并等待本轮回答结束。

        Args:
            text: 用户输入；为 None 时使用 input_message。
            config: 本轮使用的配置快照；为 None 时从 settings_provider 获取。

        Returns:
            TurnOutcome，失败时详细信息见 last_error / error_message。
        """
        raw = self.input_message if text is None else text
        if not raw.strip():
            return TurnOutcome.IGNORED
        if self.state is not TurnState.IDLE:
            self._log(logging.WARNING, "Rejected message while turn in progress", {}, state=self.state.value)
            return TurnOutcome.REJECTED

        # 按值捕获配置，之后的修改不影响本轮
        config = config or self._settings.snapshot()
        log_ctx: Dict[str, Any] = {
            "trace_id": f"tr-{uuid4().hex}",
            "model": config.model,
            "streaming": config.use_streaming_response_mode,
        }

        self.input_message = ""
        self.store.append(Message(content=raw, is_user_message=True))

        if not config.is_configured:
            self.store.append(Message(content=NOT_CONFIGURED_MESSAGE, is_user_message=False))
            self._log(logging.INFO, "API key not configured", log_ctx)
            return TurnOutcome.NOT_CONFIGURED

        provider = self._provider_factory(config)
        self._set_state(TurnState.AWAITING_RESPONSE, log_ctx)
        self.is_loading = True
        self.error_message = None
        self.last_error = None
        self.streaming_message = ""

        try:
            if config.use_streaming_response_mode:
                answer = await self._run_streaming(provider, config, raw, log_ctx)
            else:
                answer = await self._run_completion(provider, config, log_ctx)
        except BusinessError as exc:
            self._fail(exc, log_ctx)
            return TurnOutcome.FAILED
        except asyncio.CancelledError:
            self._fail(RequestCancelledError(), log_ctx)
            raise
        except Exception as exc:
            logger.exception("Unexpected error during turn", extra={"extra": log_ctx})
            self._fail(UnknownError(exc), log_ctx)
            return TurnOutcome.FAILED
        finally:
            self.is_loading = False
            self._current = None

        self._set_state(TurnState.FINALIZING, log_ctx)
        self._finalize(provider, config, answer, log_ctx)
        self._set_state(TurnState.IDLE, log_ctx)
        return TurnOutcome.COMPLETED

    async def _run_completion(
        self,
        provider: CompletionProvider,
        config: SessionConfig,
        log_ctx: Dict[str, Any],
    ) -> str:
        """普通模式：带上完整历史调用 chat/completions。"""

        history = [m for m in self.store.messages() if not m.is_error]
        request = ChatTurnRequest(
            model=config.model,
            input=[ChatMessage(role="user" if m.is_user_message else "assistant", content=m.content) for m in history],
        )
        self._log(logging.INFO, "Calling provider", log_ctx, message_count=len(history))
        try:
            async with asyncio.timeout(config.resource_timeout):
                answer = await provider.complete(request)
        except TimeoutError as e:
            raise RequestTimeoutError() from e

        self.store.append(Message(content=answer, is_user_message=False))
        self._log(logging.INFO, "Stored assistant message", log_ctx, length=len(answer))
        return answer

    async def _run_streaming(
        self,
        provider: CompletionProvider,
        config: SessionConfig,
        text: str,
        log_ctx: Dict[str, Any],
    ) -> str:
        """流式模式：先追加空占位消息，再按到达顺序用累计文本改写它。"""

        placeholder = Message(content="", is_user_message=False)
        self.store.append(placeholder)
        self._current = placeholder
        self._set_state(TurnState.STREAMING, log_ctx)
        self._log(logging.INFO, "Calling provider (stream)", log_ctx)

        accumulator = ""
        done: Optional[DoneEvent] = None
        try:
            async with asyncio.timeout(config.resource_timeout):
                async with aclosing(provider.stream_response(text, config.model)) as events:
                    async for event in events:
                        if isinstance(event, DeltaEvent):
                            accumulator += event.text
                            self.streaming_message = accumulator
                            self.store.update_last_content(accumulator)
                        elif isinstance(event, DoneEvent):
                            done = event
                            # 完成事件之后不再读取，连接随 aclosing 关闭
                            break
                        elif isinstance(event, UnrecognizedEvent):
                            continue
        except TimeoutError as e:
            raise RequestTimeoutError() from e

        if done is None:
            raise InvalidResponseError("Stream ended before the response was completed")

        # Done.text 为权威结果，无条件覆盖累计文本
        placeholder.annotations = list(done.annotations)
        self.last_annotations = list(done.annotations)
        self.streaming_message = done.text
        self.store.update_last_content(done.text)
        self._log(
            logging.INFO,
            "Stream completed",
            log_ctx,
            length=len(done.text),
            annotations=len(done.annotations),
            diverged=done.text != accumulator,
        )
        return done.text

    def _fail(self, exc: BaseException, log_ctx: Dict[str, Any]) -> None:
        self._set_state(TurnState.FAILED, log_ctx)
        self.last_error = exc
        text = describe_error(exc)
        self.error_message = text

        current = self._current
        if current is not None:
            # 保留已收到的部分内容，并明确标记为失败
            current.is_error = True
            self.store.update_last_content(f"{current.content}\n\n{text}" if current.content else text)
        else:
            self.store.append(Message(content=text, is_user_message=False, is_error=True))

        self._log(
            logging.ERROR,
            "Turn failed",
            log_ctx,
            error_code=getattr(exc, "code", type(exc).__name__),
            error=str(exc),
        )
        self._set_state(TurnState.IDLE, log_ctx)

    # ---- 后续任务 ----

    def _finalize(
        self,
        provider: CompletionProvider,
        config: SessionConfig,
        answer: str,
        log_ctx: Dict[str, Any],
    ) -> None:
        if config.tts_enabled and answer:
            self._spawn(self._speak(provider, config, answer, log_ctx), "tts")
        self._title_generation += 1
        self._spawn(
            self._update_title(provider, config, self.store.messages(), self._title_generation, log_ctx),
            "title",
        )

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.create_task(coro, name=f"chat-{name}")
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _speak(
        self,
        provider: CompletionProvider,
        config: SessionConfig,
        text: str,
        log_ctx: Dict[str, Any],
    ) -> None:
        if self._audio_sink is None:
            self._log(logging.INFO, "TTS enabled but no audio sink configured", log_ctx)
            return
        try:
            audio = await provider.generate_speech(text, model=config.tts_model, voice=config.tts_voice)
            self._audio_sink.play(audio)
        except Exception as exc:  # noqa: BLE001 - 朗读失败不影响已显示的回答
            self._log(logging.WARNING, "Speech synthesis failed", log_ctx, error=str(exc))
            return
        self._log(logging.INFO, "Speech played", log_ctx, bytes=len(audio))

    async def _update_title(
        self,
        provider: CompletionProvider,
        config: SessionConfig,
        messages: List[Message],
        generation: int,
        log_ctx: Dict[str, Any],
    ) -> None:
        # 只有欢迎语/单条消息时不生成标题
        if len(messages) < 2:
            return
        try:
            title = await ConversationTitleService(provider, model=config.title_model).generate_title(messages)
        except Exception as exc:  # noqa: BLE001 - 标题失败只记录日志
            self._log(logging.WARNING, "Failed to generate conversation title", log_ctx, error=str(exc))
            return
        if generation != self._title_generation:
            self._log(logging.INFO, "Discarded stale conversation title", log_ctx, generation=generation)
            return
        if title:
            self.conversation_title = title
            self._log(logging.INFO, "Updated conversation title", log_ctx, title=title)

    async def update_conversation_title(self, config: Optional[SessionConfig] = None) -> str:
        """立即（在当前任务中）重新生成标题，返回当前标题。"""

        config = config or self._settings.snapshot()
        if config.is_configured:
            self._title_generation += 1
            await self._update_title(
                self._provider_factory(config),
                config,
                self.store.messages(),
                self._title_generation,
                {"trace_id": f"tr-{uuid4().hex}"},
            )
        return self.conversation_title

    async def wait_for_side_effects(self) -> None:
        """等待所有后台任务（朗读、标题）结束。"""

        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ---- 语音输入 ----

    def start_recording(self) -> None:
        if self._recorder is None:
            raise ValidationError(code="NO_RECORDER", message="No audio recorder configured")
        try:
            self._recorder.start_recording()
        except Exception as exc:  # noqa: BLE001 - 录音失败转为提示
            self.last_error = exc
            self.error_message = describe_error(exc)
            self._log(logging.ERROR, "Failed to start recording", {}, error=str(exc))

    async def stop_recording(self) -> TurnOutcome:
        """停止录音，转写后作为一条消息发送。"""

        if self._recorder is None:
            raise ValidationError(code="NO_RECORDER", message="No audio recorder configured")
        path = self._recorder.stop_recording()
        if path is None:
            return TurnOutcome.IGNORED
        return await self.send_audio(path)

    async def send_audio(self, path: str | Path, config: Optional[SessionConfig] = None) -> TurnOutcome:
        if self.state is not TurnState.IDLE:
            return TurnOutcome.REJECTED
        config = config or self._settings.snapshot()
        if not config.is_configured:
            self.error_message = NOT_CONFIGURED_MESSAGE
            return TurnOutcome.NOT_CONFIGURED

        log_ctx: Dict[str, Any] = {"trace_id": f"tr-{uuid4().hex}", "audio": str(path)}
        # 转写期间占用本轮，输入框发送的消息会被拒绝
        self._set_state(TurnState.TRANSCRIBING, log_ctx)
        self.is_loading = True
        try:
            text = await self._provider_factory(config).transcribe_audio(Path(path))
        except BusinessError as exc:
            self.last_error = exc
            self.error_message = describe_error(exc)
            self._log(logging.ERROR, "Transcription failed", log_ctx, error_code=exc.code, error=exc.message)
            return TurnOutcome.FAILED
        finally:
            self.is_loading = False
            self._set_state(TurnState.IDLE, log_ctx)
        self._log(logging.INFO, "Transcribed audio", log_ctx, length=len(text))
        self.input_message = text
        return await self.send_message(config=config)

    # ---- 会话管理 ----

    def save_conversation(self, history: JsonConversationHistory) -> Optional[str]:
        """把当前会话写入历史记录，返回会话 ID；没有消息时不保存。"""

        messages = self.store.messages()
        if not messages:
            return None
        conv = history.add_conversation(title=self.conversation_title, messages=messages)
        return conv.id

    def reset_conversation(self) -> None:
        self.store.clear()
        self.input_message = ""
        self.error_message = None
        self.last_error = None
        self.streaming_message = ""
        self.last_annotations = []
        self.conversation_title = DEFAULT_TITLE
        # 重置前启动的标题任务不再写回
        self._title_generation += 1

    # ---- 辅助方法 ----

    def _set_state(self, state: TurnState, log_ctx: Dict[str, Any]) -> None:
        previous, self.state = self.state, state
        logger.debug(
            "State transition",
            extra={"extra": {**log_ctx, "from": previous.value, "to": state.value}},
        )

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
