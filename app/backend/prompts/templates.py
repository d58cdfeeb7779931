from .common import fill


FIELD_SUGGESTION_PROMPT_TEMPLATE = """You are an expert in business communication. For a pitch template named "{name}", suggest a concise, professional list of field labels for its structure, in speaking order.

Respond ONLY with JSON matching this schema exactly:
{
  "fields": [string]
}"""


def build_field_suggestion_prompt(name: str) -> str:
    return fill(FIELD_SUGGESTION_PROMPT_TEMPLATE, name=name.strip())
