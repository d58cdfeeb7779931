from .common import fill, output_language


RECORDS_VERSION = "records_v1"

TRANSCRIPTION_PROMPT_TEMPLATE = """Transcribe the attached audio recording verbatim in {language}. Output only the transcript text, with no headings or commentary."""

EVALUATION_PROMPT_TEMPLATE = """You are a professional speaking coach. Score the pitch transcript below on five dimensions (integer 1-5 each) and give overall feedback.

Transcript:
<<<{transcription}>>>

Scoring dimensions:
- audienceEngagement (Audience Engagement): is the content interesting and engaging?
- fluency (Fluency): how are the tone, rhythm and flow? (inferred from the text)
- bodyLanguage (Body Language): infer the speaker's confidence and poise from pauses and filler words in the text.
- structure (Clear Structure): is the content logically organised?
- timeManagement (Time Management): judging from its length, is it concise and punchy?

Respond ONLY with JSON matching this schema exactly:
{
  "scores": {
    "audienceEngagement": integer(1-5),
    "fluency": integer(1-5),
    "bodyLanguage": integer(1-5),
    "structure": integer(1-5),
    "timeManagement": integer(1-5)
  },
  "feedback": string (overall feedback in {language})
}"""


def build_transcription_prompt() -> str:
    return fill(TRANSCRIPTION_PROMPT_TEMPLATE, language=output_language())


def build_evaluation_prompt(transcription: str) -> str:
    return fill(
        EVALUATION_PROMPT_TEMPLATE,
        transcription=transcription.strip(),
        language=output_language(),
    )
