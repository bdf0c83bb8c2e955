from fastapi import APIRouter, File, Header, HTTPException, Request, UploadFile, status

from cvlens.core.config import settings
from cvlens.core.errors import CVLensError
from cvlens.core.rate_limit import rate_limit
from cvlens.schemas.api import (
    AnalyzeResponse,
    AnalyzeTextRequest,
    EnhanceSectionRequest,
    EnhanceSectionResponse,
    ObservationRespondRequest,
    ObservationRespondResponse,
    RewriteRequest,
    RewriteResponse,
)
from cvlens.schemas.cv import CV
from cvlens.services.cv_service import get_cv_service

router = APIRouter()

_READ_CHUNK_BYTES = 1024 * 64


def _raise_cv_error(exc: CVLensError) -> None:
    raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc


def _analyze_response(cv: CV) -> AnalyzeResponse:
    return AnalyzeResponse(cv=cv, observations=cv.observations, strengths=cv.strengths)


async def _read_upload(file: UploadFile) -> bytes:
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await file.read(_READ_CHUNK_BYTES)
        if not chunk:
            break
        total += len(chunk)
        if total > settings.max_upload_bytes:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"File too large. Maximum allowed size is {settings.max_upload_bytes // (1024 * 1024)} MB.",
            )
        chunks.append(chunk)
    return b"".join(chunks)


@router.post("/cv/analyze", response_model=AnalyzeResponse)
@rate_limit()
async def analyze_cv(
    request: Request,
    file: UploadFile = File(...),
    x_language: str | None = Header(default=None, alias="X-Language"),
):
    _ = request
    payload = await _read_upload(file)
    try:
        cv = await get_cv_service().analyze_document(
            payload,
            filename=file.filename,
            mime_type=file.content_type,
            language=x_language,
        )
    except CVLensError as exc:
        _raise_cv_error(exc)
    return _analyze_response(cv)


@router.post("/cv/analyze-text", response_model=AnalyzeResponse)
@rate_limit()
async def analyze_cv_text(
    request: Request,
    payload: AnalyzeTextRequest,
    x_language: str | None = Header(default=None, alias="X-Language"),
):
    _ = request
    try:
        cv = await get_cv_service().analyze_text(
            payload.text,
            file_name=payload.file_name or "pasted-text.txt",
            language=payload.language or x_language,
        )
    except CVLensError as exc:
        _raise_cv_error(exc)
    return _analyze_response(cv)


@router.get("/cv/{cv_id}", response_model=CV)
async def get_cv(cv_id: str):
    try:
        return get_cv_service().get_cv(cv_id)
    except CVLensError as exc:
        _raise_cv_error(exc)


@router.post("/cv/{cv_id}/rewrite", response_model=RewriteResponse)
@rate_limit()
async def rewrite_section(
    request: Request,
    cv_id: str,
    payload: RewriteRequest,
    x_language: str | None = Header(default=None, alias="X-Language"),
):
    _ = request
    try:
        return await get_cv_service().rewrite_section(cv_id, payload.section_id, language=x_language)
    except CVLensError as exc:
        _raise_cv_error(exc)


@router.post("/cv/{cv_id}/observations/{observation_id}/respond", response_model=ObservationRespondResponse)
async def respond_to_observation(cv_id: str, observation_id: str, payload: ObservationRespondRequest):
    try:
        return get_cv_service().respond_to_observation(cv_id, observation_id, payload.response)
    except CVLensError as exc:
        _raise_cv_error(exc)


@router.post("/cv/{cv_id}/sections/{section_id}/enhance", response_model=EnhanceSectionResponse)
@rate_limit()
async def enhance_section(
    request: Request,
    cv_id: str,
    section_id: str,
    payload: EnhanceSectionRequest,
    x_language: str | None = Header(default=None, alias="X-Language"),
):
    _ = request
    try:
        return await get_cv_service().enhance_section(
            cv_id,
            section_id,
            user_input=payload.user_input,
            selected_claims=payload.selected_claims,
            additional_text=payload.additional_text,
            observation_id=payload.observation_id,
            language=x_language,
        )
    except CVLensError as exc:
        _raise_cv_error(exc)
