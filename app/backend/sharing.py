from __future__ import annotations

import base64
import logging
from typing import Optional

from .busy import BusyGuard
from .community import CommunityBoard
from .errors import CapabilityError, GenerationError, PitchCoachError, ValidationError
from .llm_client import GenerationService, call_generation
from .models import CommunityPitch, EligibilityVerdict, ShareArtifact, WorkflowStep, now_ms
from .pitch_workflow import PitchWorkflow
from .prompts.sharing import SHARING_VERSION, build_artifact_prompt, build_eligibility_prompt


logger = logging.getLogger("uvicorn.error")


def image_mime(image_bytes: bytes) -> str:
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


def image_data_url(image_bytes: bytes) -> str:
    encoded = base64.b64encode(image_bytes).decode("ascii")
    return f"data:{image_mime(image_bytes)};base64,{encoded}"


class SharingPipeline:
    """Two gated generation stages that turn a reviewed pitch into a community candidate.

    1. eligibility: ``{shareable, reason}``; a refusal stops the pipeline.
    2. artifact: ``{title, summary, imagePrompt}`` followed by one image.

    The candidate waits on the session until it is confirmed or cancelled.
    """

    def __init__(
        self,
        workflow: PitchWorkflow,
        community: CommunityBoard,
        generation: GenerationService,
        guard: BusyGuard,
    ) -> None:
        self._workflow = workflow
        self._community = community
        self._generation = generation
        self._guard = guard

    @property
    def candidate(self) -> Optional[CommunityPitch]:
        return self._workflow.state.share_candidate

    def initiate(self) -> CommunityPitch:
        if not self._workflow.logged_in:
            raise CapabilityError("Sharing to the community requires logging in.")

        state = self._workflow.state
        if state.step == WorkflowStep.INPUT or not state.practiced_pitch.strip():
            raise ValidationError("Practice and review a pitch before sharing it.")

        try:
            with self._guard.hold("AI review..."):
                verdict = call_generation(
                    self._generation.generate_text,
                    build_eligibility_prompt(state.practiced_pitch, state.feedback),
                    schema=EligibilityVerdict,
                ).data
                if not verdict.shareable:
                    logger.info("share_rejected reason=%s", verdict.reason)
                    raise GenerationError(
                        f"Not recommended for sharing: {verdict.reason}",
                        reason=verdict.reason,
                    )

                self._guard.relabel("Generating summary and image prompt...")
                artifact: ShareArtifact = call_generation(
                    self._generation.generate_text,
                    build_artifact_prompt(state.practiced_pitch),
                    schema=ShareArtifact,
                ).data

                self._guard.relabel("Generating share image...")
                image_bytes = call_generation(self._generation.generate_image, artifact.image_prompt)
                if not image_bytes:
                    raise GenerationError("Image generation returned no data.")
        except PitchCoachError as exc:
            logger.warning("share_failed error=%s", exc)
            raise

        candidate = CommunityPitch(
            id=now_ms(),
            title=artifact.title.strip(),
            generated_pitch=state.generated_pitch,
            practiced_pitch=state.practiced_pitch,
            feedback=state.feedback,
            sources=list(state.sources),
            template_name=state.locked_template_name,
            summary=artifact.summary.strip(),
            image_url=image_data_url(image_bytes),
        )
        state.share_candidate = candidate
        logger.info(
            "share_candidate_ready id=%s title=%s image_bytes=%s version=%s",
            candidate.id,
            candidate.title,
            len(image_bytes),
            SHARING_VERSION,
        )
        return candidate

    def confirm(self) -> CommunityPitch:
        candidate = self._workflow.state.share_candidate
        if candidate is None:
            raise ValidationError("There is no pitch waiting to be shared.")
        self._community.publish(candidate)
        self._workflow.state.share_candidate = None
        self._workflow.reset()
        return candidate

    def cancel(self) -> None:
        if self._workflow.state.share_candidate is not None:
            logger.info("share_cancelled id=%s", self._workflow.state.share_candidate.id)
        self._workflow.state.share_candidate = None
