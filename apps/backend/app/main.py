"""FastAPI application exposing the case document consolidation service."""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from functools import lru_cache
from pathlib import Path
from typing import Iterator, List

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, JSONResponse

from casepdf import (
    BatchCancelledError,
    DocumentRecoveryError,
    InputDocument,
    MergeOrchestrator,
    RecoverySettings,
)
from casepdf.core.utils import get_logger

from .models import CaseCreated, CaseFailure
from .storage import CaseExistsError, CaseNotFoundError, DiskCaseStore, InvalidCaseNumber

MAX_FILES = 10
MAX_FILE_BYTES = 50 * 1024 * 1024
DISCONNECT_POLL_SECONDS = 0.5
CLIENT_CLOSED_REQUEST = 499

get_logger("casepdf").setLevel(os.getenv("CASEPDF_LOG_LEVEL", "INFO").upper())
LOGGER = logging.getLogger("casepdf.backend")

app = FastAPI(title="casepdf API", version="0.1.0")


@lru_cache
def get_store() -> DiskCaseStore:
    return DiskCaseStore(Path(os.getenv("CASEPDF_STORAGE_DIR", "cases")))


def get_orchestrator() -> Iterator[MergeOrchestrator]:
    orchestrator = MergeOrchestrator(RecoverySettings.from_env())
    try:
        yield orchestrator
    finally:
        orchestrator.close()


def _failure(status_code: int, error_kind: str, message: str, document: str | None = None) -> JSONResponse:
    payload = CaseFailure(error_kind=error_kind, message=message, document=document)
    return JSONResponse(status_code=status_code, content=payload.model_dump(by_alias=True))


def _safe_filename(filename: str | None, default: str) -> str:
    """Return a display name derived from user input."""

    if not filename:
        return default
    candidate = Path(filename).name
    return candidate or default


async def _read_uploads(documents: List[UploadFile]) -> list[InputDocument]:
    if not documents:
        raise HTTPException(status_code=400, detail="At least one PDF must be provided.")
    if len(documents) > MAX_FILES:
        raise HTTPException(status_code=400, detail=f"At most {MAX_FILES} files can be uploaded.")

    inputs: list[InputDocument] = []
    for index, upload in enumerate(documents):
        contents = await upload.read(MAX_FILE_BYTES + 1)
        if len(contents) > MAX_FILE_BYTES:
            raise HTTPException(
                status_code=413,
                detail=f"File '{upload.filename}' exceeds the {MAX_FILE_BYTES // (1024 * 1024)}MB limit.",
            )
        name = _safe_filename(upload.filename, f"document_{index + 1}.pdf")
        inputs.append(InputDocument(data=contents, display_name=name, ordinal_index=index))
    return inputs


async def _merge_until_disconnect(
    request: Request,
    orchestrator: MergeOrchestrator,
    inputs: list[InputDocument],
):
    """Run the merge in a worker thread, cancelling it if the client goes away."""

    cancel_event = threading.Event()
    task = asyncio.ensure_future(run_in_threadpool(orchestrator.merge, inputs, cancel_event))
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_SECONDS)
            if done:
                return task.result()
            if await request.is_disconnected():
                LOGGER.warning("Client disconnected; cancelling merge")
                cancel_event.set()
    except asyncio.CancelledError:
        cancel_event.set()
        raise


@app.get("/health", response_class=JSONResponse)
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/cases", response_model=CaseCreated, response_model_by_alias=True)
async def create_case(
    request: Request,
    case_number: str = Form(..., description="Identifier of the case the documents belong to."),
    documents: List[UploadFile] = File(..., description="PDF files to consolidate, in order."),
    store: DiskCaseStore = Depends(get_store),
    orchestrator: MergeOrchestrator = Depends(get_orchestrator),
):
    """Recover and merge the uploaded PDFs into one stored case document."""

    case_number = case_number.strip()
    try:
        if store.exists(case_number):
            return _failure(409, "CaseExists", f"Case {case_number} already has a document.")
    except InvalidCaseNumber as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    inputs = await _read_uploads(documents)
    try:
        merged = await _merge_until_disconnect(request, orchestrator, inputs)
        record = await run_in_threadpool(
            store.save, case_number, merged, [document.display_name for document in inputs]
        )
    except DocumentRecoveryError as exc:
        LOGGER.error("Case %s rejected: %s (%s)", case_number, exc.error_kind.value, exc.display_name)
        return _failure(409, exc.error_kind.value, exc.message, exc.display_name)
    except CaseExistsError as exc:
        return _failure(409, "CaseExists", str(exc))
    except BatchCancelledError:
        return _failure(CLIENT_CLOSED_REQUEST, "Cancelled", "The request was cancelled.")
    except Exception:
        LOGGER.exception("Unexpected failure while consolidating case %s", case_number)
        return _failure(500, "InternalError", "The documents could not be processed. Please try again later.")

    return CaseCreated(
        case_number=case_number,
        document_id=record.document_id,
        url=str(request.url_for("get_case_pdf", case_number=case_number)),
        total_pages=record.total_pages,
        document_count=record.document_count,
        recovery_methods=list(record.recovery_methods),
    )


@app.get("/cases/{case_number}/pdf", name="get_case_pdf", response_class=FileResponse)
async def get_case_pdf(case_number: str, store: DiskCaseStore = Depends(get_store)) -> FileResponse:
    try:
        path = store.pdf_path(case_number)
    except InvalidCaseNumber as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except CaseNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return FileResponse(path, media_type="application/pdf", filename=f"{case_number}.pdf")
