"""
Drives workflow runs: input validation, the generation call, normalization
and persistence.

The generation call in ``generate`` is the only external I/O and the only
suspension point. The run is mutated only after the generator returned and
the result was normalized, so a failure, timeout or cancellation leaves the
run in GENERATE, ready to retry.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Optional, Protocol

from pydantic import ValidationError

from api.document_models import RawGenerationResult, SectionType
from api.workflow_models import (
    ApprovedDocument,
    ClinicalNote,
    PersonalizationProfile,
    WorkflowAction,
    WorkflowRunSnapshot,
)
from document.normalizer import normalize
from document.schema import CANONICAL_ORDER
from workflow.errors import GenerationFailed, RunNotFound, ValidationInputError
from workflow.run import WorkflowRun
from workflow.state_machine import next_state

logger = logging.getLogger(__name__)


class DocumentGenerator(Protocol):
    async def generate(
        self, note: ClinicalNote, profile: PersonalizationProfile,
    ) -> RawGenerationResult: ...


class RunStore(Protocol):
    def save_run(self, snapshot: WorkflowRunSnapshot) -> None: ...

    def get_run(self, run_id: str) -> Optional[WorkflowRunSnapshot]: ...


def _input_errors(exc: ValidationError) -> list[dict[str, Any]]:
    return [
        {
            "field": ".".join(str(part) for part in err["loc"]) or "body",
            "message": err["msg"],
        }
        for err in exc.errors()
    ]


class WorkflowController:
    """Stateless coordinator; every run it touches is passed in explicitly."""

    def __init__(
        self,
        generator: Optional[DocumentGenerator] = None,
        store: Optional[RunStore] = None,
    ) -> None:
        self._generator = generator
        self._store = store

    def _persist(self, run: WorkflowRun) -> WorkflowRun:
        if self._store is not None:
            self._store.save_run(run.to_snapshot())
        return run

    # --- Intake / Personalize ---

    def start_run(self) -> WorkflowRun:
        run = WorkflowRun()
        logger.info("Started workflow run %s", run.id)
        return self._persist(run)

    def load_run(self, run_id: str) -> WorkflowRun:
        snapshot = self._store.get_run(run_id) if self._store is not None else None
        if snapshot is None:
            raise RunNotFound(run_id)
        return WorkflowRun.from_snapshot(snapshot)

    def submit_note(
        self,
        run: WorkflowRun,
        source_text: Optional[str],
        extracted_text: Optional[str] = None,
    ) -> WorkflowRun:
        next_state(run.state, WorkflowAction.SUBMIT_NOTE)
        try:
            note = ClinicalNote(source_text=source_text or "", extracted_text=extracted_text)
        except ValidationError as exc:
            raise ValidationInputError("Invalid clinical note.", _input_errors(exc)) from exc
        run.submit_note(note)
        logger.info("Run %s: note captured (%d chars)", run.id, len(note.effective_text))
        return self._persist(run)

    def submit_profile(
        self,
        run: WorkflowRun,
        profile: PersonalizationProfile | Mapping[str, Any],
    ) -> WorkflowRun:
        next_state(run.state, WorkflowAction.SUBMIT_PROFILE)
        if not isinstance(profile, PersonalizationProfile):
            try:
                profile = PersonalizationProfile.model_validate(dict(profile))
            except ValidationError as exc:
                raise ValidationInputError(
                    "Invalid personalization profile.", _input_errors(exc),
                ) from exc
        run.submit_profile(profile)
        logger.info(
            "Run %s: profile set (language=%s, literacy=%s)",
            run.id, profile.language.value, profile.literacy.value,
        )
        return self._persist(run)

    # --- Generate ---

    async def generate(
        self,
        run: WorkflowRun,
        timeout: Optional[float] = None,
    ) -> WorkflowRun:
        """Call the generator, normalize its output and move the run to APPROVE.

        Raises GenerationFailed on any generator error or timeout. Task
        cancellation propagates; in every failure case the run stays in
        GENERATE untouched.
        """
        next_state(run.state, WorkflowAction.RECEIVE_DOCUMENT)
        if self._generator is None:
            raise GenerationFailed("No document generator is configured.")

        try:
            call = self._generator.generate(run.note, run.profile)
            if timeout is not None:
                raw = await asyncio.wait_for(call, timeout=timeout)
            else:
                raw = await call
        except asyncio.CancelledError:
            logger.info("Run %s: generation cancelled; run stays in generate", run.id)
            raise
        except asyncio.TimeoutError as exc:
            logger.warning("Run %s: generation timed out after %ss", run.id, timeout)
            raise GenerationFailed("Document generation timed out.", exc) from exc
        except Exception as exc:
            logger.exception("Run %s: generation failed", run.id)
            raise GenerationFailed("Document generation failed.", exc) from exc

        sections, provenance = normalize(raw, language=run.profile.language)
        run.receive_document(sections, provenance)
        logger.info("Run %s: document ready for approval (provenance=%s)", run.id, provenance.value)
        return self._persist(run)

    # --- Approve ---

    def edit_section(self, run: WorkflowRun, section_type: SectionType, content: str) -> WorkflowRun:
        run.edit_section(section_type, content)
        return self._persist(run)

    def approve_section(self, run: WorkflowRun, section_type: SectionType) -> WorkflowRun:
        run.approve_section(section_type)
        return self._persist(run)

    def revoke_approval(self, run: WorkflowRun, section_type: SectionType) -> WorkflowRun:
        run.revoke_approval(section_type)
        return self._persist(run)

    def approve_all(self, run: WorkflowRun) -> WorkflowRun:
        """Mark every section approved. Delivery still needs ``deliver``."""
        next_state(run.state, WorkflowAction.APPROVE_SECTION)
        for section_type in CANONICAL_ORDER:
            if not run.is_approved(section_type):
                run.approve_section(section_type)
        return self._persist(run)

    def deliver(self, run: WorkflowRun, approved_by: Optional[str] = None) -> ApprovedDocument:
        document = run.confirm_approval(approved_by=approved_by)
        logger.info("Run %s: document delivered", run.id)
        self._persist(run)
        return document

    def regenerate(self, run: WorkflowRun) -> WorkflowRun:
        run.regenerate()
        logger.info("Run %s: returned to generate", run.id)
        return self._persist(run)

    def restart(self, run: WorkflowRun) -> WorkflowRun:
        run.restart()
        logger.info("Run %s: restarted", run.id)
        return self._persist(run)

    def start_new_round(self, run: WorkflowRun) -> WorkflowRun:
        successor = run.new_round()
        logger.info(
            "Run %s: new round %d started as run %s",
            run.id, successor.round_number, successor.id,
        )
        return self._persist(successor)
