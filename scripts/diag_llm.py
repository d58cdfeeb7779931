#!/usr/bin/env python3
import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.backend.llm_client import OpenAIGenerationService
from app.backend.models import FieldSuggestion
from app.backend.prompts.templates import build_field_suggestion_prompt


def main() -> None:
    parser = argparse.ArgumentParser(description="Check the configured generation provider.")
    parser.add_argument("--search", action="store_true", help="Also run a grounded search call.")
    parser.add_argument("--image", action="store_true", help="Also generate one image.")
    args = parser.parse_args()

    service = OpenAIGenerationService()

    result = service.generate_text("Reply with the single word: ready")
    print(f"Text: {result.text!r}")

    suggestion = service.generate_text(build_field_suggestion_prompt("Investor Pitch"), schema=FieldSuggestion)
    print(f"Structured fields: {suggestion.data.fields}")

    if args.search:
        grounded = service.generate_text(
            "In two sentences, what is the latest news about electric aviation?",
            grounded_search=True,
        )
        print(f"Grounded text: {grounded.text[:200]!r}")
        for source in grounded.sources:
            print(f"  source: {source.title} <{source.uri}>")

    if args.image:
        image_bytes = service.generate_image("A minimalist abstract illustration of a rising line chart")
        print(f"Image bytes: {len(image_bytes)}")

    print("Generation diagnostics passed.")


if __name__ == "__main__":
    main()
