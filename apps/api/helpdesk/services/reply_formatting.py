"""Per-channel reply formatting and prompt guidance."""

import re

from helpdesk.db.enums import ChannelType

SMS_MAX_LENGTH = 1500

GREETING_PATTERN = re.compile(r"^(hi|hello|hey|dear|good morning|good afternoon|good evening)\b", re.I)
SIGNOFF_PATTERN = re.compile(r"(regards|sincerely|thank you|thanks|best|cheers)[\s,.!]*$", re.I)

CHANNEL_GUIDANCE = {
    ChannelType.EMAIL.value: (
        "You are replying by email. Use a short greeting, clear paragraphs, "
        "and end with a sign-off."
    ),
    ChannelType.SMS.value: (
        "You are replying by SMS. Use plain text only with no markdown or links "
        "unless essential. Keep it under 300 characters when possible."
    ),
    ChannelType.SLACK.value: (
        "You are replying in Slack. Be brief and conversational; simple "
        "bullet points are fine."
    ),
}
DEFAULT_GUIDANCE = "You are replying in a live chat. Be concise, friendly and direct."

_MARKDOWN_RULES = (
    (re.compile(r"```[\s\S]*?```"), ""),
    (re.compile(r"\*\*(.+?)\*\*"), r"\1"),
    (re.compile(r"__(.+?)__"), r"\1"),
    (re.compile(r"\*(.+?)\*"), r"\1"),
    (re.compile(r"~~(.+?)~~"), r"\1"),
    (re.compile(r"`(.+?)`"), r"\1"),
    (re.compile(r"\[(.+?)\]\((.+?)\)"), r"\1 (\2)"),
    (re.compile(r"^#{1,6}\s+", re.M), ""),
    (re.compile(r"^>\s+", re.M), ""),
    (re.compile(r"^[-*+]\s+", re.M), "- "),
)


def channel_guidance(channel: ChannelType | str) -> str:
    return CHANNEL_GUIDANCE.get(ChannelType(channel).value, DEFAULT_GUIDANCE)


def strip_markdown(content: str) -> str:
    for pattern, replacement in _MARKDOWN_RULES:
        content = pattern.sub(replacement, content)
    return content.strip()


def truncate(content: str, max_length: int) -> str:
    """Cut at a word boundary near `max_length`, adding an ellipsis."""
    if len(content) <= max_length:
        return content
    cut = content[: max_length - 3]
    last_space = cut.rfind(" ")
    if last_space > max_length - 20:
        cut = cut[:last_space]
    return cut + "..."


def _format_email(content: str) -> str:
    formatted = content.strip()
    if not GREETING_PATTERN.search(formatted):
        formatted = "Hello,\n\n" + formatted
    if not SIGNOFF_PATTERN.search(formatted):
        formatted = formatted + "\n\nBest regards,\nSupport Team"
    return formatted


def _format_chat(content: str) -> str:
    return re.sub(r"\n{3,}", "\n\n", content).strip()


def format_for_channel(content: str, channel: ChannelType | str) -> str:
    channel = ChannelType(channel)
    if channel == ChannelType.EMAIL:
        return _format_email(content)
    if channel == ChannelType.SMS:
        return truncate(strip_markdown(content), SMS_MAX_LENGTH)
    return _format_chat(content)


def split_message(content: str, max_length: int, separator: str = "\n\n") -> list[str]:
    """Split long content into parts no longer than `max_length`, preferring natural breaks."""
    parts = []
    remaining = content
    while len(remaining) > max_length:
        break_point = -1
        for candidate in (separator, "\n", ". ", " "):
            index = remaining.rfind(candidate, 0, max_length)
            if index >= max_length // 2:
                break_point = index + (1 if candidate == ". " else 0)
                break
        if break_point <= 0:
            break_point = max_length
        parts.append(remaining[:break_point].strip())
        remaining = remaining[break_point:].strip()
    if remaining:
        parts.append(remaining)
    return parts
