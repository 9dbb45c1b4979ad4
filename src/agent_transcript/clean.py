"""Strip system-injected markup from user text."""

import re

COMMAND_NAME_PATTERN = re.compile(r"<command-name>(/[^<]+)</command-name>")
COMMAND_ARGS_PATTERN = re.compile(r"<command-args>([^<]*)</command-args>")
XML_BLOCK_PATTERN = re.compile(r"<([a-zA-Z_][a-zA-Z0-9_-]*)[^>]*>(.*?)</\1>", re.DOTALL)
OPEN_TAG_PATTERN = re.compile(r"<([a-zA-Z_][a-zA-Z0-9_-]*)[^>]*>")


def clean_user_text(text: str) -> str:
    """Strip system-injected XML from user text for display.

    Slash commands (containing <command-name>) are shortened to "/name args".
    All other XML block elements are removed entirely (tag + content); an
    opening tag with no matching close tag is removed on its own.
    """
    match = COMMAND_NAME_PATTERN.search(text)
    if match:
        name = match.group(1)
        args = COMMAND_ARGS_PATTERN.search(text)
        if args and args.group(1).strip():
            return f"{name} {args.group(1).strip()}"
        return name

    while True:
        stripped = XML_BLOCK_PATTERN.sub("", text)
        if stripped == text:
            break
        text = stripped
    text = OPEN_TAG_PATTERN.sub("", text)
    return text.strip()
