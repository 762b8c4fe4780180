from typing import Optional

from .config import TaskSettings
from .models import GroupId, ProcessingRequest, normalize_group_id

LANGUAGE_PLACEHOLDER = "{language}"


def resolve_language(group_language: Optional[str], default_language: str) -> str:
    if group_language and group_language.strip():
        return group_language.strip()
    return default_language


def format_instruction(template: str, language: str) -> str:
    return template.replace(LANGUAGE_PLACEHOLDER, language)


def build_prompt(text: str, target_language: str, template: str) -> str:
    """Single flattened prompt: templated instruction followed by the quoted text."""
    return build_request(
        text,
        target_language,
        TaskSettings(model="", prompt=template, max_tokens=0, temperature=0.0),
        group_id="-",
    ).prompt


def build_request(
    text: str,
    target_language: str,
    task: TaskSettings,
    group_id: GroupId,
) -> ProcessingRequest:
    """Build the request once; providers pick the flattened or message-pair shape."""
    return ProcessingRequest(
        system_prompt=format_instruction(task.prompt, target_language),
        user_message=text,
        model=task.model,
        max_tokens=task.max_tokens,
        temperature=task.temperature,
        group_id=normalize_group_id(group_id),
    )
