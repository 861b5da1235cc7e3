"""
Raw event reducer.

Turns raw assistant stream records into a deduplicated, typed message map.
Processing is phased; each phase sees state mutated by the earlier ones:

    0. fresh set     - drop already-seen raw ids / local ids (first write wins)
    1. permissions   - synthesize permission messages for pending requests
    2. text          - user-text / agent-text messages
    3. tool calls    - create tool-call messages, or convert permission messages
    4. tool results  - complete or fail the matching tool-call message
    5. events        - system / event records

Not safe to call concurrently on the same ReducerState; callers serialize
reduction per conversation.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable

from pydantic import ValidationError

from ccrelay.core.messages import (
    EVENT_TYPES,
    AgentTextMessage,
    EventInfo,
    EventMessage,
    Message,
    PermissionAction,
    PermissionMessage,
    PermissionRequest,
    Platform,
    ToolCallMessage,
    ToolInfo,
    ToolPermission,
    UserTextMessage,
    now_ms,
)
from ccrelay.core.protocols import PermissionPolicy
from ccrelay.core.state import (
    AgentState,
    PermissionData,
    PermissionRequestRecord,
    RawMessage,
    ReducerResult,
    ReducerState,
)
from ccrelay.tools.registry import format_tool_for_chat

logger = logging.getLogger(__name__)

TOOL_USE_TYPES = ("tool_use", "tool_call")
SIDECHAIN_TOOLS = ("Task",)

DEFAULT_PERMISSION_ACTIONS = (
    PermissionAction(command="/approve", label="批准"),
    PermissionAction(command="/deny", label="拒绝"),
)


def allocate_id() -> str:
    """Process-unique message id."""
    return uuid.uuid4().hex[:12]


def reduce(
    state: ReducerState,
    raw_messages: Iterable[RawMessage | dict[str, Any]],
    agent_state: AgentState | dict[str, Any] | None = None,
    policy: PermissionPolicy | None = None,
    *,
    platform: Platform = Platform.WHATSAPP,
    conversation_id: str | None = None,
) -> ReducerResult:
    """
    Process a batch of raw messages.

    Args:
        state: Reducer state, mutated in place
        raw_messages: Raw stream records (models or plain dicts); may overlap
            with earlier batches
        agent_state: Optional assistant state carrying pending permission
            requests keyed by tool-use id
        policy: Optional permission policy; tool calls it gates get a
            permission message even without agent_state
        platform: Platform tag stamped on produced messages
        conversation_id: Conversation stamped on produced messages
            (defaults to state.current_conversation)

    Returns:
        ReducerResult with the messages changed by this call
    """
    ctx = _ReduceContext(
        state=state,
        platform=platform,
        conversation_id=conversation_id or state.current_conversation or "",
    )

    fresh = _collect_fresh(ctx, raw_messages)

    _permission_phase(ctx, fresh, _coerce_agent_state(agent_state), policy)
    for raw in fresh:
        ctx.guarded(raw, _text_phase)
    for raw in fresh:
        ctx.guarded(raw, _tool_call_phase)
    for raw in fresh:
        ctx.guarded(raw, _tool_result_phase)
    for raw in fresh:
        ctx.guarded(raw, _event_phase)

    state.metrics.messages_processed += len(fresh)
    state.metrics.last_update = now_ms()

    return ReducerResult(
        new_messages=[state.messages[mid] for mid in ctx.changed],
        permissions=ctx.permissions,
        has_changes=bool(ctx.changed),
        metrics=state.metrics,
    )


class _ReduceContext:
    """Per-call scratch space: change tracking and message stamping."""

    def __init__(self, state: ReducerState, platform: Platform, conversation_id: str):
        self.state = state
        self.platform = platform
        self.conversation_id = conversation_id
        # Ordered set of changed message ids
        self.changed: dict[str, None] = {}
        self.permissions: list[PermissionMessage] = []

    def store(self, message: Message) -> None:
        self.state.messages[message.id] = message
        self.changed[message.id] = None

    def touch(self, message_id: str) -> None:
        self.changed[message_id] = None

    def guarded(self, raw: RawMessage, phase) -> None:
        try:
            phase(self, raw)
        except Exception as e:
            self.state.metrics.errors += 1
            logger.warning(
                f"Failed to reduce raw message {raw.id} in {phase.__name__}: {e}",
                exc_info=True,
            )


def _coerce_agent_state(
    agent_state: AgentState | dict[str, Any] | None,
) -> AgentState | None:
    if agent_state is None or isinstance(agent_state, AgentState):
        return agent_state
    try:
        return AgentState.model_validate(agent_state)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed agent state: {e}")
        return None


def _collect_fresh(
    ctx: _ReduceContext, raw_messages: Iterable[RawMessage | dict[str, Any]]
) -> list[RawMessage]:
    """Validate and dedup the batch. Ids are recorded before any other phase."""
    state = ctx.state
    fresh: list[RawMessage] = []

    for item in raw_messages:
        if isinstance(item, RawMessage):
            raw = item
        else:
            try:
                raw = RawMessage.model_validate(item)
            except ValidationError as e:
                state.metrics.errors += 1
                logger.warning(f"Dropping malformed raw message: {e}")
                continue

        if raw.local_id and raw.local_id in state.local_ids:
            logger.debug(f"Skipping duplicate local id {raw.local_id}")
            continue
        if raw.id in state.message_ids:
            logger.debug(f"Skipping already processed raw message {raw.id}")
            continue

        state.message_ids[raw.id] = raw.id
        if raw.local_id:
            state.local_ids[raw.local_id] = raw.id
        fresh.append(raw)

    return fresh


def _tool_use_blocks(raw: RawMessage) -> list[dict[str, Any]]:
    if raw.role != "assistant":
        return []
    return [b for b in raw.blocks() if b.get("type") in TOOL_USE_TYPES]


def _permission_phase(
    ctx: _ReduceContext,
    fresh: list[RawMessage],
    agent_state: AgentState | None,
    policy: PermissionPolicy | None,
) -> None:
    state = ctx.state
    requests: dict[str, PermissionRequestRecord] = (
        dict(agent_state.requests) if agent_state else {}
    )

    if policy is not None:
        for raw in fresh:
            for block in _tool_use_blocks(raw):
                tool_id = block.get("id")
                if not tool_id or tool_id in requests:
                    continue
                name = block.get("name") or "unknown"
                tool_input = block.get("input") or {}
                if policy(name, tool_input):
                    requests[tool_id] = PermissionRequestRecord(
                        tool=name, arguments=tool_input, createdAt=raw.timestamp
                    )

    for perm_id, request in requests.items():
        if perm_id in state.tool_id_to_message_id:
            continue

        created_at = request.created_at or now_ms()
        message = PermissionMessage(
            id=allocate_id(),
            timestamp=created_at,
            platform=ctx.platform,
            conversation_id=ctx.conversation_id,
            permission=PermissionRequest(
                id=perm_id,
                tool_name=request.tool,
                input=request.arguments,
                status="pending",
            ),
            actions=[a.model_copy() for a in DEFAULT_PERMISSION_ACTIONS],
        )

        ctx.store(message)
        state.tool_id_to_message_id[perm_id] = message.id
        state.pending_permissions[perm_id] = PermissionData(
            tool_name=request.tool,
            input=request.arguments,
            created_at=created_at,
            status="pending",
        )
        ctx.permissions.append(message)
        logger.debug(f"Permission request {perm_id} for {request.tool}")


def _text_phase(ctx: _ReduceContext, raw: RawMessage) -> None:
    if raw.type == "event":
        return

    produced: list[Message] = []

    if raw.role == "user":
        blocks = raw.blocks()
        if isinstance(raw.content, list):
            texts = [b.get("text", "") for b in blocks if b.get("type") == "text"]
            if not texts and any(b.get("type") == "tool_result" for b in blocks):
                # Tool results travel in user records; phase 4 handles them
                return
            content = texts[0] if texts else ""
        else:
            content = str(raw.content)

        message = UserTextMessage(
            id=allocate_id(),
            timestamp=raw.timestamp,
            platform=ctx.platform,
            conversation_id=ctx.conversation_id,
            content=content,
            local_id=raw.local_id,
        )
        ctx.store(message)
        ctx.state.message_ids[raw.id] = message.id
        if raw.local_id:
            ctx.state.local_ids[raw.local_id] = message.id
        produced.append(message)

    elif raw.role == "assistant":
        for block in raw.blocks():
            if block.get("type") != "text":
                continue
            message = AgentTextMessage(
                id=allocate_id(),
                timestamp=raw.timestamp,
                platform=ctx.platform,
                conversation_id=ctx.conversation_id,
                content=block.get("text", ""),
                is_streaming=False,
            )
            ctx.store(message)
            produced.append(message)

    parent = (raw.model_extra or {}).get("parent_tool_use_id")
    if parent and parent in ctx.state.sidechains:
        ctx.state.sidechains[parent].extend(produced)


def _tool_call_phase(ctx: _ReduceContext, raw: RawMessage) -> None:
    state = ctx.state

    for block in _tool_use_blocks(raw):
        tool_id = block.get("id")
        if not tool_id:
            raise ValueError("tool_use block without id")

        tool = ToolInfo(
            name=block.get("name") or "unknown",
            state="running",
            input=block.get("input") or {},
            description=block.get("text") or "",
            created_at=raw.timestamp,
            started_at=raw.timestamp,
        )

        existing_id = state.tool_id_to_message_id.get(tool_id)
        if existing_id:
            existing = state.messages.get(existing_id)
            if not isinstance(existing, PermissionMessage):
                # Tool call already tracked; a later stream chunk repeated it
                continue

            perm = state.pending_permissions.get(tool_id)
            converted = ToolCallMessage(
                id=existing.id,
                timestamp=existing.timestamp,
                platform=existing.platform,
                conversation_id=existing.conversation_id,
                tool=tool,
                permission=ToolPermission(
                    id=existing.permission.id,
                    status=perm.status if perm else existing.permission.status,
                    reason=existing.permission.reason,
                    decision=perm.decision if perm else None,
                ),
                summary=format_tool_for_chat(tool),
            )
            ctx.store(converted)
            logger.debug(f"Converted permission {tool_id} into tool call")
        else:
            perm = state.pending_permissions.get(tool_id)
            if perm:
                tool.created_at = perm.created_at

            message = ToolCallMessage(
                id=allocate_id(),
                timestamp=raw.timestamp,
                platform=ctx.platform,
                conversation_id=ctx.conversation_id,
                tool=tool,
                permission=(
                    ToolPermission(
                        id=tool_id,
                        status=perm.status,
                        reason=perm.reason,
                        decision=perm.decision,
                    )
                    if perm
                    else None
                ),
                summary=format_tool_for_chat(tool),
            )
            ctx.store(message)
            state.tool_id_to_message_id[tool_id] = message.id

        if tool.name in SIDECHAIN_TOOLS:
            state.sidechains.setdefault(tool_id, [])


def _tool_result_phase(ctx: _ReduceContext, raw: RawMessage) -> None:
    state = ctx.state

    for block in raw.blocks():
        if block.get("type") != "tool_result":
            continue

        message_id = state.tool_id_to_message_id.get(block.get("tool_use_id", ""))
        if not message_id:
            logger.debug(f"Dropping orphan tool result {block.get('tool_use_id')}")
            continue

        existing = state.messages.get(message_id)
        if not isinstance(existing, ToolCallMessage):
            continue

        existing.tool.state = "error" if block.get("is_error") else "completed"
        existing.tool.completed_at = raw.timestamp
        existing.tool.result = block.get("content")
        existing.summary = format_tool_for_chat(existing.tool)
        ctx.touch(message_id)


def _event_phase(ctx: _ReduceContext, raw: RawMessage) -> None:
    if raw.role != "system" and raw.type != "event":
        return

    if isinstance(raw.content, list) and raw.content:
        first = raw.content[0]
        content_obj = first if isinstance(first, dict) else {"message": str(first)}
    elif isinstance(raw.content, dict):
        content_obj = raw.content
    elif isinstance(raw.content, str) and raw.content:
        content_obj = {"message": raw.content}
    else:
        content_obj = {}

    event_type = content_obj.get("type")
    message = content_obj.get("message")

    ctx.store(
        EventMessage(
            id=allocate_id(),
            timestamp=raw.timestamp,
            platform=ctx.platform,
            conversation_id=ctx.conversation_id,
            event=EventInfo(
                type=event_type if event_type in EVENT_TYPES else "ready",
                data=content_obj or None,
                message=str(message) if message is not None else None,
            ),
        )
    )
