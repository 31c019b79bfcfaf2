"""
Lookup API - One endpoint per cascading dropdown.
"""

from fastapi import APIRouter, Request

from ...core.errors import SessionNotFoundError
from ...core.logging import bind_context
from ...core.models import (
    DropdownOption,
    Level,
    LookupRequest,
    LookupResponse,
)


router = APIRouter()


async def _lookup(level: Level, body: LookupRequest, req: Request) -> LookupResponse:
    """
    Run one lookup against the session store and replay engine.

    With a ``session_id`` the session's state is used (unless the body carries
    a newer ``state``) and updated afterwards. Without one, a session is
    created for the resulting state.
    """
    engine = req.app.state.engine
    store = req.app.state.session_store
    selections = body.as_chain()

    if body.session_id:
        session = store.get(body.session_id)
        if session is None:
            raise SessionNotFoundError(f"Session '{body.session_id}' not found or expired")

        async with store.lock(session.id):
            state = body.state or session.state
            result = await engine.lookup(level, selections, state, session_id=session.id)
            updated = store.update(session.id, result.state)
        if updated is None:
            # Evicted or expired while the lookup ran; keep the result reachable
            updated = store.create(result.state)
            bind_context(session_id=session.id).info(
                "session dropped mid-lookup", replaced_by=updated.id
            )
        session_id = updated.id
    else:
        result = await engine.lookup(level, selections, body.state)
        session_id = store.create(result.state).id

    return LookupResponse(
        session_id=session_id,
        level=level,
        options=result.options,
        state=result.state,
    )


@router.get("/init", response_model=LookupResponse)
async def init(req: Request) -> LookupResponse:
    """
    Load the page, start a session, and return the makes.

    Returns:
        Session id, token bundle, and make options
    """
    engine = req.app.state.engine
    store = req.app.state.session_store

    state, makes = await engine.init()
    session = store.create(state)

    return LookupResponse(
        session_id=session.id,
        level=Level.MAKE,
        options=makes,
        state=state,
    )


@router.get("/makes", response_model=list[DropdownOption])
async def makes(req: Request) -> list[DropdownOption]:
    """Make options only, without a session."""
    _, options = await req.app.state.engine.init()
    return options


@router.post("/models", response_model=LookupResponse)
async def models(body: LookupRequest, req: Request) -> LookupResponse:
    """Models of ``make``."""
    return await _lookup(Level.MODEL, body, req)


@router.get("/models/{make}", response_model=LookupResponse)
async def models_by_make(
    make: str,
    req: Request,
    session_id: str | None = None,
) -> LookupResponse:
    """Path form of ``/models`` kept for older clients."""
    return await _lookup(Level.MODEL, LookupRequest(make=make, session_id=session_id), req)


@router.post("/years", response_model=LookupResponse)
async def years(body: LookupRequest, req: Request) -> LookupResponse:
    """Years of ``make`` / ``model``."""
    return await _lookup(Level.YEAR, body, req)


@router.post("/countries", response_model=LookupResponse)
async def countries(body: LookupRequest, req: Request) -> LookupResponse:
    """Countries of origin for ``make`` / ``model`` / ``year``."""
    return await _lookup(Level.COUNTRY, body, req)


@router.post("/fuel-types", response_model=LookupResponse)
async def fuel_types(body: LookupRequest, req: Request) -> LookupResponse:
    """Fuel types for the selected ``country``."""
    return await _lookup(Level.FUEL_TYPE, body, req)


@router.post("/engines", response_model=LookupResponse)
async def engines(body: LookupRequest, req: Request) -> LookupResponse:
    """Engine capacities for the selected ``fuel_type``."""
    return await _lookup(Level.ENGINE, body, req)
