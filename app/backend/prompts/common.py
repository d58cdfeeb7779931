import os
import re


DEFAULT_LANGUAGE = "English"

PLACEHOLDER = re.compile(r"\{(\w+)\}")


def output_language() -> str:
    return os.getenv("PITCH_LANGUAGE", DEFAULT_LANGUAGE).strip() or DEFAULT_LANGUAGE


def fill(template: str, **values: str) -> str:
    # Single pass: substituted text is never scanned for further placeholders.
    def _lookup(match: re.Match) -> str:
        key = match.group(1)
        return str(values[key]) if key in values else match.group(0)

    return PLACEHOLDER.sub(_lookup, template)


def format_seconds(seconds: float) -> str:
    return f"{seconds:g}"
