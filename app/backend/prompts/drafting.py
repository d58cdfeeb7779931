from typing import Dict, Sequence

from .common import fill, format_seconds, output_language


DRAFTING_VERSION = "draft_v2"

RESEARCH_PROMPT_TEMPLATE = """You are a top-tier researcher and business speechwriter. Use web search to research the topic below in depth, then write a professional elevator pitch based on what you find.

- Research topic: {topic}
- Pitch template: {template_name}
- Speaking length: {seconds} seconds

Organise the researched material into the structure of the "{template_name}" template. The pitch must be grounded entirely in facts you found, flow naturally, be persuasive, and fit the requested speaking length.

Write the pitch in {language}. Return only the pitch text."""

TEMPLATE_PROMPT_TEMPLATE = """You are a top-tier business speaking coach. Using the information below, write a professional, confident and highly persuasive elevator pitch.

- Template name: {template_name}
- Speaking length limit: {seconds} seconds
- Structure and word allocation:
{fields}

Make the structure clear: a compelling opening, a clear problem statement, a concrete solution, a distinctive value proposition and an explicit call to action. Adapt tone and structure to the chosen template name, respect the suggested word count of every section, and keep the total within the {seconds}-second limit.

Write the pitch in {language}. Return only the pitch text."""

FEEDBACK_PROMPT_TEMPLATE = """You are an experienced speaking coach. Compare the "AI suggested script" with the "user's practiced version" below and give specific, constructive feedback on the user's practiced version.

Focus on:
1. Structure and flow
2. Persuasiveness and impact
3. Clarity and concision
4. Strength of the call to action

Reply in {language} using this format:
### Strengths
- (bullet points on what works well)

### What to improve
- (bullet points on how to revise, each with an example rewritten sentence)

---
AI suggested script:
<<<{generated_pitch}>>>

---
User's practiced version:
<<<{practiced_pitch}>>>"""

MISSING_VALUE = "(not provided)"


def format_field_lines(labels: Sequence[str], pitch_input: Dict[str, str], word_budget: Dict[str, int]) -> str:
    lines = []
    for label in labels:
        target = word_budget.get(label)
        target_text = str(target) if target is not None else "N/A"
        value = (pitch_input.get(label) or "").strip() or MISSING_VALUE
        lines.append(f"- {label} (about {target_text} words): {value}")
    return "\n".join(lines)


def build_research_prompt(topic: str, template_name: str, seconds: float) -> str:
    return fill(
        RESEARCH_PROMPT_TEMPLATE,
        topic=topic.strip(),
        template_name=template_name,
        seconds=format_seconds(seconds),
        language=output_language(),
    )


def build_template_prompt(
    template_name: str,
    seconds: float,
    labels: Sequence[str],
    pitch_input: Dict[str, str],
    word_budget: Dict[str, int],
) -> str:
    return fill(
        TEMPLATE_PROMPT_TEMPLATE,
        template_name=template_name,
        seconds=format_seconds(seconds),
        fields=format_field_lines(labels, pitch_input, word_budget),
        language=output_language(),
    )


def build_feedback_prompt(generated_pitch: str, practiced_pitch: str) -> str:
    return fill(
        FEEDBACK_PROMPT_TEMPLATE,
        generated_pitch=generated_pitch.strip(),
        practiced_pitch=practiced_pitch.strip(),
        language=output_language(),
    )
