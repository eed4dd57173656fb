"""
Hook event payloads

Known event kinds get their own model; unknown fields are kept on the model
and surface through extra_fields() so they can ride along in trace metadata.
"""

import json
from typing import Any, Dict, List, Optional, Type

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InputMalformed


class HookEvent(BaseModel):
    model_config = ConfigDict(extra='allow', populate_by_name=True, coerce_numbers_to_str=True)

    hook_event_name: str = ''
    session_id: Optional[str] = None
    conversation_id: Optional[str] = None
    generation_id: Optional[str] = None
    transcript_path: Optional[str] = None
    cwd: Optional[str] = None
    model: Optional[str] = None
    workspace_roots: List[str] = Field(default_factory=list)

    @field_validator('workspace_roots', mode='before')
    @classmethod
    def _roots_list(cls, value):
        if not isinstance(value, list):
            return []
        return [str(root) for root in value if root]

    def extra_fields(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})

    def trace_context(self) -> Dict[str, Any]:
        return {
            'model': self.model,
            'transcript_path': self.transcript_path,
            'conversation_id': self.conversation_id,
            'generation_id': self.generation_id,
        }

    def base_dir(self) -> Optional[str]:
        if self.cwd and self.cwd.strip():
            return self.cwd
        return self.workspace_roots[0] if self.workspace_roots else None


class ToolEvent(HookEvent):
    tool_name: str = ''
    tool_input: Dict[str, Any] = Field(default_factory=dict)
    tool_use_id: Optional[str] = None

    @field_validator('tool_input', mode='before')
    @classmethod
    def _input_mapping(cls, value):
        return value if isinstance(value, dict) else {}


class PreToolUseEvent(ToolEvent):
    pass


class PostToolUseEvent(ToolEvent):
    tool_response: Any = Field(default=None, validation_alias=AliasChoices('tool_response', 'tool_result', 'tool_output'))
    duration: Any = None


class UserPromptSubmitEvent(HookEvent):
    prompt: str = Field(default='', validation_alias=AliasChoices('user_prompt', 'prompt'))

    @field_validator('prompt', mode='before')
    @classmethod
    def _prompt_text(cls, value):
        return '' if value is None else str(value)


class StopEvent(HookEvent):
    stop_hook_active: bool = False


class SessionEvent(HookEvent):
    reason: Optional[str] = None
    trigger: Optional[str] = None
    notification: Any = None


SESSION_EVENTS = frozenset({'SessionStart', 'SessionEnd', 'PreCompact', 'SubagentStop', 'Notification'})

EVENT_MODELS: Dict[str, Type[HookEvent]] = {
    'PreToolUse': PreToolUseEvent,
    'PostToolUse': PostToolUseEvent,
    'UserPromptSubmit': UserPromptSubmitEvent,
    'Stop': StopEvent,
}
EVENT_MODELS.update({name: SessionEvent for name in SESSION_EVENTS})


def parse_event(raw: str) -> Optional[HookEvent]:
    """Validate one stdin payload; None for blank input"""
    if not raw or not raw.strip():
        return None
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise InputMalformed(f"Hook input is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise InputMalformed('Hook input must be a JSON object')

    model = EVENT_MODELS.get(str(data.get('hook_event_name') or ''), HookEvent)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise InputMalformed(f"Invalid {model.__name__} payload: {e.error_count()} error(s)") from e
