from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from pydantic import BaseModel, Field

from . import config
from .catalog import CatalogClient
from .dependencies import get_catalog, get_import_session, get_match_engine, get_watchlist, limiter
from .importer import ImportBusyError, ImportSession
from .letterboxd import decode_csv_bytes, parse_csv
from .matching import MatchEngine
from .watchlist import WatchlistStore

router = APIRouter(prefix="/api/import", tags=["import"])

LETTERBOXD_IMPORT_LIMIT = 800
LETTERBOXD_CSV_MAX_BYTES = 5 * 1024 * 1024


class SelectRequest(BaseModel):
    selected: bool


class ManualSearchRequest(BaseModel):
    query: str | None = Field(default=None, max_length=300)


class AcceptRequest(BaseModel):
    movie_id: int = Field(ge=1)


@router.get("")
async def import_state(session: ImportSession = Depends(get_import_session)):
    return session.to_dict()


@router.post("/letterboxd")
async def upload_letterboxd_csv(
    file: UploadFile = File(...),
    session: ImportSession = Depends(get_import_session),
):
    raw = await file.read()
    if len(raw) > LETTERBOXD_CSV_MAX_BYTES:
        raise HTTPException(status_code=400, detail="CSV file is too large.")
    try:
        text = decode_csv_bytes(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    rows = parse_csv(text)
    limit_applied = len(rows) > LETTERBOXD_IMPORT_LIMIT
    try:
        session.reset(rows[:LETTERBOXD_IMPORT_LIMIT])
    except ImportBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return {**session.to_dict(), "limit_applied": limit_applied}


@router.post("/match")
@limiter.limit(config.IMPORT_RATE_LIMIT)
async def run_matching(
    request: Request,
    session: ImportSession = Depends(get_import_session),
    engine: MatchEngine = Depends(get_match_engine),
):
    if not session.rows:
        raise HTTPException(status_code=400, detail="Upload a Letterboxd CSV first.")
    try:
        await session.run_matching(engine)
    except ImportBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return session.to_dict()


@router.post("/cancel")
async def cancel_matching(session: ImportSession = Depends(get_import_session)):
    return {"cancelled": session.cancel()}


@router.put("/rows/{index}/selected")
async def set_row_selected(
    index: int,
    body: SelectRequest,
    session: ImportSession = Depends(get_import_session),
):
    try:
        result = session.set_selected(index, body.selected)
    except IndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ImportBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return result.to_dict()


@router.post("/rows/{index}/manual-search")
async def manual_search(
    index: int,
    body: ManualSearchRequest,
    session: ImportSession = Depends(get_import_session),
    catalog: CatalogClient = Depends(get_catalog),
):
    try:
        state = await session.manual_search(catalog, index, body.query)
    except IndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ImportBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return state.to_dict()


@router.post("/rows/{index}/accept")
async def accept_manual(
    index: int,
    body: AcceptRequest,
    session: ImportSession = Depends(get_import_session),
):
    try:
        candidate = session.manual_candidate(index, body.movie_id)
        result = session.accept_manual(index, candidate)
    except IndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ImportBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return result.to_dict()


@router.post("/commit")
async def commit_import(
    session: ImportSession = Depends(get_import_session),
    watchlist: WatchlistStore = Depends(get_watchlist),
):
    try:
        added = session.commit(watchlist)
    except ImportBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return {"added": added}
