"""Prompt templates for reply generation."""

SYSTEM_COMMUNITY_MANAGER = """You are the social media community manager for {brand_name}.
Write in a {tone} tone. Reply directly to the person, in one short message.
Never promise refunds, legal outcomes or anything the brand guidelines forbid.
Respond with the reply text only."""

REPLY_PROMPT = """\
Write a reply to this {platform} {event_type} from @{username}.

MESSAGE:
{text}

DETECTED INTENT: {intent}
SENTIMENT: {sentiment}
BRAND: {brand_name}
WORDS TO USE: {do_use}
WORDS TO AVOID: {dont_use}
{extra}
Keep it under {max_length} characters."""


def brand_rules(do_use: tuple[str, ...], dont_use: tuple[str, ...]) -> str:
    """Style constraints appended to chat-style system prompts."""
    lines = []
    if do_use:
        lines.append("Prefer these words: " + ", ".join(do_use))
    if dont_use:
        lines.append("Never use these words: " + ", ".join(dont_use))
    return "\n".join(lines)
