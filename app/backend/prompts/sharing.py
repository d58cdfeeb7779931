from .common import fill, output_language


SHARING_VERSION = "share_v1"

ELIGIBILITY_PROMPT_TEMPLATE = """You are a community manager. Is the following pitch (considering the user's version and the coach's feedback) of high quality and suitable for sharing in a public community of professionals?

Respond ONLY with JSON matching this schema exactly:
{
  "shareable": boolean,
  "reason": string
}

User's pitch:
<<<{practiced_pitch}>>>

Feedback:
<<<{feedback}>>>"""

ARTIFACT_PROMPT_TEMPLATE = """You are a creative director specialising in branding and visual storytelling. Process the pitch below and generate content for a professional community platform.

Analyse this pitch:
<<<{practiced_pitch}>>>

Based on your analysis, return a JSON object with exactly these three keys:

1. "title": a short, catchy, professional title for the pitch, written in {language}.
2. "summary": a concise one-sentence summary (under 25 words) that captures the core message, written in {language}.
3. "imagePrompt": a detailed, vivid prompt in English for an image generation model. The prompt should:
   - metaphorically represent the pitch's core idea, essence or feeling;
   - follow a professional, modern business aesthetic: minimalist, abstract, high-concept;
   - use keywords such as "corporate", "professional", "sleek", "futuristic", "abstract visualization", "data art", "conceptual art";
   - avoid literal depictions of people or objects unless they are a core, unavoidable part of the concept.
   Example style: "An abstract visualization of interconnected data nodes glowing with a vibrant blue energy, representing innovation and seamless connectivity. Minimalist style, dark background, professional corporate aesthetic."

Respond ONLY with the JSON object."""


def build_eligibility_prompt(practiced_pitch: str, feedback: str) -> str:
    return fill(
        ELIGIBILITY_PROMPT_TEMPLATE,
        practiced_pitch=practiced_pitch.strip(),
        feedback=feedback.strip(),
    )


def build_artifact_prompt(practiced_pitch: str) -> str:
    return fill(
        ARTIFACT_PROMPT_TEMPLATE,
        practiced_pitch=practiced_pitch.strip(),
        language=output_language(),
    )
