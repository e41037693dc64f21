import logging

from fastapi import APIRouter, Body, File, HTTPException, Query, Request, UploadFile

from api import settings_store
from api.document_models import SectionType, SupportedLanguage
from api.rate_limit import GENERATE_RATE_LIMIT, limiter
from api.settings_models import AppSettings, SettingsUpdate
from api.workflow_models import (
    DeliverRequest,
    DeliverResponse,
    NoteExtractionResponse,
    NoteRequest,
    RunListItem,
    RunListResponse,
    SectionEditRequest,
    WorkflowRunSnapshot,
)
from document.schema import CANONICAL_ORDER, describe
from extraction.note_extractor import NoteExtractor
from llm.client import LLMClient, LLMProvider
from llm.generator import LLMDocumentGenerator
from storage.database import get_db
from workflow import (
    ApprovalIncomplete,
    GenerationFailed,
    IllegalTransition,
    RunNotFound,
    ValidationInputError,
    WorkflowAction,
    WorkflowController,
    WorkflowError,
)
from workflow.run import WorkflowRun
from workflow.state_machine import next_state

_logger = logging.getLogger(__name__)

router = APIRouter()

_extractor = NoteExtractor()

_LANGUAGE_NAMES = {
    SupportedLanguage.ENGLISH: "English",
    SupportedLanguage.SPANISH: "Español",
    SupportedLanguage.FRENCH: "Français",
}


# --- Helpers ---


def _build_llm_client(settings: AppSettings) -> LLMClient | None:
    """Build a client for the configured provider, or None without credentials."""
    provider_str = settings.llm_provider.value
    api_key = settings_store.get_api_key_for_provider(provider_str)
    if not api_key:
        return None
    model = settings.openai_model if provider_str == LLMProvider.OPENAI.value else settings.claude_model
    return LLMClient(provider=LLMProvider(provider_str), api_key=api_key, model=model)


def _build_generator() -> tuple[LLMDocumentGenerator, float]:
    """Return the document generator and generation timeout from settings."""
    settings = settings_store.get_settings()
    client = _build_llm_client(settings)
    if client is None:
        raise HTTPException(
            status_code=400,
            detail=f"No API key configured for provider '{settings.llm_provider.value}'.",
        )
    generator = LLMDocumentGenerator(client, structured=settings.structured_output)
    return generator, settings.generation_timeout_seconds


def _controller(generator=None) -> WorkflowController:
    return WorkflowController(generator=generator, store=get_db())


def _section_type(value: str) -> SectionType:
    try:
        return SectionType(value)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown section type '{value}'. Expected one of: "
            + ", ".join(t.value for t in CANONICAL_ORDER),
        )


def _http_error(exc: WorkflowError) -> HTTPException:
    """Map a workflow error onto the HTTP status the client acts on."""
    if isinstance(exc, ValidationInputError):
        return HTTPException(status_code=400, detail={"message": str(exc), "errors": exc.errors})
    if isinstance(exc, RunNotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ApprovalIncomplete):
        return HTTPException(
            status_code=409,
            detail={"message": str(exc), "pending": [s.value for s in exc.pending]},
        )
    if isinstance(exc, IllegalTransition):
        return HTTPException(
            status_code=409,
            detail={
                "message": str(exc),
                "state": exc.state.value,
                "action": exc.action.value,
            },
        )
    if isinstance(exc, GenerationFailed):
        return HTTPException(
            status_code=502,
            detail={"message": str(exc), "retryable": exc.retryable},
        )
    return HTTPException(status_code=500, detail=str(exc))


def _load(controller: WorkflowController, run_id: str) -> WorkflowRun:
    try:
        return controller.load_run(run_id)
    except RunNotFound as e:
        raise _http_error(e) from e


# --- Meta ---


@router.get("/health")
async def health_check():
    try:
        get_db()
        return {"status": "ok"}
    except Exception:
        return {"status": "starting"}


@router.get("/languages")
async def list_languages():
    return [
        {"code": lang.value, "name": _LANGUAGE_NAMES[lang]}
        for lang in SupportedLanguage
    ]


@router.get("/sections")
async def list_sections(language: SupportedLanguage | None = Query(None)):
    """Return the seven document sections in display order.

    Titles use the settings' default language unless one is requested.
    """
    if language is None:
        language = settings_store.get_settings().default_language
    return [
        {"type": t.value, "title": describe(t).title_for(language), "position": i}
        for i, t in enumerate(CANONICAL_ORDER)
    ]


# --- Note extraction ---


@router.post("/extract/file", response_model=NoteExtractionResponse)
async def extract_file(file: UploadFile = File(...)):
    """Extract note text from a .txt, .pdf or image upload."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="No filename provided.")

    content = await file.read()
    if len(content) == 0:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")

    llm_client = None
    try:
        llm_client = _build_llm_client(settings_store.get_settings())
    except Exception:
        _logger.debug("Could not build LLM client for vision OCR", exc_info=True)

    outcome = await _extractor.extract(content, file.filename, llm_client=llm_client)
    return NoteExtractionResponse(
        filename=file.filename,
        text=outcome.text,
        method=outcome.method,
        warnings=outcome.warnings,
        manual_entry_required=outcome.manual_entry_required,
    )


# --- Runs ---


@router.post("/runs", response_model=WorkflowRunSnapshot, status_code=201)
async def create_run():
    run = _controller().start_run()
    return run.to_snapshot()


@router.get("/runs", response_model=RunListResponse)
async def list_runs(
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    state: str | None = Query(None),
):
    """Return paginated runs, newest first."""
    items, total = get_db().list_runs(offset=offset, limit=limit, state=state)
    return RunListResponse(
        items=[RunListItem(**item) for item in items],
        total=total,
        offset=offset,
        limit=limit,
    )


@router.get("/runs/{run_id}", response_model=WorkflowRunSnapshot)
async def get_run(run_id: str):
    run = _load(_controller(), run_id)
    return run.to_snapshot()


@router.delete("/runs/{run_id}")
async def delete_run(run_id: str):
    if not get_db().delete_run(run_id):
        raise HTTPException(status_code=404, detail=f"Workflow run '{run_id}' not found")
    return {"deleted": True}


@router.post("/runs/{run_id}/note", response_model=WorkflowRunSnapshot)
async def submit_note(run_id: str, body: NoteRequest = Body(...)):
    controller = _controller()
    run = _load(controller, run_id)
    try:
        controller.submit_note(run, body.source_text, body.extracted_text)
    except WorkflowError as e:
        raise _http_error(e) from e
    return run.to_snapshot()


@router.post("/runs/{run_id}/profile", response_model=WorkflowRunSnapshot)
async def submit_profile(run_id: str, body: dict = Body(...)):
    controller = _controller()
    run = _load(controller, run_id)
    try:
        controller.submit_profile(run, body)
    except WorkflowError as e:
        raise _http_error(e) from e
    return run.to_snapshot()


@router.post("/runs/{run_id}/generate", response_model=WorkflowRunSnapshot)
@limiter.limit(GENERATE_RATE_LIMIT)
async def generate_document(request: Request, run_id: str):
    """Generate, normalize and attach the seven-section document."""
    run = _load(_controller(), run_id)
    try:
        next_state(run.state, WorkflowAction.RECEIVE_DOCUMENT)
    except WorkflowError as e:
        raise _http_error(e) from e
    generator, timeout = _build_generator()
    try:
        await _controller(generator).generate(run, timeout=timeout)
    except WorkflowError as e:
        raise _http_error(e) from e
    return run.to_snapshot()


@router.patch("/runs/{run_id}/sections/{section_type}", response_model=WorkflowRunSnapshot)
async def edit_section(run_id: str, section_type: str, body: SectionEditRequest = Body(...)):
    target = _section_type(section_type)
    controller = _controller()
    run = _load(controller, run_id)
    try:
        controller.edit_section(run, target, body.content)
    except WorkflowError as e:
        raise _http_error(e) from e
    return run.to_snapshot()


@router.post("/runs/{run_id}/sections/{section_type}/approve", response_model=WorkflowRunSnapshot)
async def approve_section(run_id: str, section_type: str):
    target = _section_type(section_type)
    controller = _controller()
    run = _load(controller, run_id)
    try:
        controller.approve_section(run, target)
    except WorkflowError as e:
        raise _http_error(e) from e
    return run.to_snapshot()


@router.delete("/runs/{run_id}/sections/{section_type}/approve", response_model=WorkflowRunSnapshot)
async def revoke_approval(run_id: str, section_type: str):
    target = _section_type(section_type)
    controller = _controller()
    run = _load(controller, run_id)
    try:
        controller.revoke_approval(run, target)
    except WorkflowError as e:
        raise _http_error(e) from e
    return run.to_snapshot()


@router.post("/runs/{run_id}/approve-all", response_model=WorkflowRunSnapshot)
async def approve_all(run_id: str):
    controller = _controller()
    run = _load(controller, run_id)
    try:
        controller.approve_all(run)
    except WorkflowError as e:
        raise _http_error(e) from e
    return run.to_snapshot()


@router.post("/runs/{run_id}/deliver", response_model=DeliverResponse)
async def deliver(run_id: str, body: DeliverRequest | None = Body(None)):
    controller = _controller()
    run = _load(controller, run_id)
    approved_by = body.approved_by if body else None
    try:
        document = controller.deliver(run, approved_by=approved_by)
    except WorkflowError as e:
        raise _http_error(e) from e
    return DeliverResponse(run=run.to_snapshot(), document=document, text=document.as_text())


@router.post("/runs/{run_id}/regenerate", response_model=WorkflowRunSnapshot)
async def regenerate(run_id: str):
    controller = _controller()
    run = _load(controller, run_id)
    try:
        controller.regenerate(run)
    except WorkflowError as e:
        raise _http_error(e) from e
    return run.to_snapshot()


@router.post("/runs/{run_id}/restart", response_model=WorkflowRunSnapshot)
async def restart(run_id: str):
    controller = _controller()
    run = _load(controller, run_id)
    try:
        controller.restart(run)
    except WorkflowError as e:
        raise _http_error(e) from e
    return run.to_snapshot()


@router.post("/runs/{run_id}/new-round", response_model=WorkflowRunSnapshot, status_code=201)
async def start_new_round(run_id: str):
    """Start the next round from a delivered run; returns the new run."""
    controller = _controller()
    run = _load(controller, run_id)
    try:
        successor = controller.start_new_round(run)
    except WorkflowError as e:
        raise _http_error(e) from e
    return successor.to_snapshot()


# --- Settings ---


def _mask_api_key(key: str | None) -> str | None:
    if not key:
        return key
    if len(key) <= 12:
        return "***"
    return key[:8] + "..." + key[-4:]


def _masked(settings: AppSettings) -> AppSettings:
    return settings.model_copy(
        update={
            "claude_api_key": _mask_api_key(settings.claude_api_key),
            "openai_api_key": _mask_api_key(settings.openai_api_key),
            "aws_access_key_id": _mask_api_key(settings.aws_access_key_id),
            "aws_secret_access_key": _mask_api_key(settings.aws_secret_access_key),
        }
    )


@router.get("/settings", response_model=AppSettings)
async def get_settings():
    """Return current application settings with masked API keys."""
    return _masked(settings_store.get_settings())


@router.patch("/settings", response_model=AppSettings)
async def update_settings(update: SettingsUpdate = Body(...)):
    """Update application settings (partial update)."""
    return _masked(settings_store.update_settings(update))
