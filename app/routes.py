from __future__ import annotations

import logging
import os
from pathlib import Path

from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlmodel import Session

from .bracket import (
    COURTS,
    MAX_TEAMS,
    MIN_TEAMS,
    InvalidArgument,
    Schedule,
    ScheduleCache,
    ScheduleVariant,
    clamp_team_count,
)
from .database import ScheduleStore, get_session
from .progress import (
    CompletionGrid,
    compute_progress,
    empty_completion,
    from_mapping,
    match_rows,
    outstanding_matches,
    reset_progress,
    scheduled_counts,
    to_mapping,
    toggle_match,
)

BASE_DIR = Path(__file__).resolve().parent

router = APIRouter()
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))

logger = logging.getLogger(__name__)


def _configured_variant() -> ScheduleVariant:
    raw = os.getenv("SCHEDULE_VARIANT", ScheduleVariant.FIXED_OPENING.value)
    try:
        return ScheduleVariant(raw.strip().lower())
    except ValueError:
        logger.warning("Unknown SCHEDULE_VARIANT %r; using %s", raw, ScheduleVariant.FIXED_OPENING.value)
        return ScheduleVariant.FIXED_OPENING


SCHEDULE_VARIANT = _configured_variant()
DEFAULT_TEAM_COUNT = clamp_team_count(os.getenv("DEFAULT_TEAM_COUNT", "7"))
WARM_SCHEDULE_CACHE = os.getenv("WARM_SCHEDULE_CACHE", "true").lower() in {"1", "true", "yes"}

schedule_cache = ScheduleCache()

STATUS_MESSAGES = {
    "teams": ("Team count updated.", False),
    "toggled": ("Match updated.", False),
    "reset": ("All matches marked incomplete.", False),
    "regenerated": ("Schedule regenerated and progress cleared.", False),
    "missing-match": ("That match is not part of the current schedule.", True),
}


def get_store(session: Session = Depends(get_session)) -> ScheduleStore:
    return ScheduleStore(session)


def _current_team_count(store: ScheduleStore) -> int:
    stored = store.load_team_count()
    return clamp_team_count(stored if stored is not None else DEFAULT_TEAM_COUNT)


def _generate_and_store(store: ScheduleStore, team_count: int) -> tuple[Schedule, CompletionGrid]:
    schedule = schedule_cache.get(team_count, SCHEDULE_VARIANT)
    completion = empty_completion(schedule)
    store.save(team_count, schedule, SCHEDULE_VARIANT, completion)
    store.save_completion(team_count, {})
    return schedule, completion


def _ensure_schedule(store: ScheduleStore, team_count: int) -> tuple[Schedule, CompletionGrid]:
    """Return the stored schedule for ``team_count``, generating one when absent."""
    loaded = store.load(team_count)
    if loaded is not None:
        schedule, variant = loaded
        if variant == SCHEDULE_VARIANT.value:
            return schedule, from_mapping(schedule, store.load_completion(team_count))
        logger.info("Stored schedule for %d teams uses %s; rebuilding as %s", team_count, variant, SCHEDULE_VARIANT.value)
    else:
        logger.info("No stored schedule for %d teams; generating one", team_count)
    return _generate_and_store(store, team_count)


def _save_completion(store: ScheduleStore, team_count: int, schedule: Schedule, completion: CompletionGrid) -> None:
    store.save(team_count, schedule, SCHEDULE_VARIANT, completion)
    store.save_completion(team_count, to_mapping(completion))


def _schedule_payload(team_count: int, schedule: Schedule, completion: CompletionGrid) -> dict[str, object]:
    progress = compute_progress(schedule, completion, team_count)
    scheduled = scheduled_counts(schedule, team_count)
    outstanding = outstanding_matches(schedule, completion)
    return {
        "team_count": team_count,
        "variant": SCHEDULE_VARIANT.value,
        "courts": COURTS,
        "rounds": match_rows(schedule, completion),
        "progress": progress,
        "scheduled": scheduled,
        "outstanding": outstanding,
        "finished": outstanding == 0,
    }


def _schedule_context(store: ScheduleStore) -> dict[str, object]:
    team_count = _current_team_count(store)
    schedule, completion = _ensure_schedule(store, team_count)
    context = _schedule_payload(team_count, schedule, completion)
    context.update({"min_teams": MIN_TEAMS, "max_teams": MAX_TEAMS})
    return context


def _redirect(request: Request, status: str) -> RedirectResponse:
    redirect_url = str(request.url_for("index")) + f"?status={status}"
    return RedirectResponse(redirect_url, status_code=303)


@router.get("/", response_class=HTMLResponse, name="index")
async def index(request: Request, store: ScheduleStore = Depends(get_store)):
    context = _schedule_context(store)
    status = request.query_params.get("status")
    if status in STATUS_MESSAGES:
        message, is_error = STATUS_MESSAGES[status]
        context.update({"status_message": message, "status_error": is_error})
    return templates.TemplateResponse(request, "schedule.html", context)


@router.post("/teams", response_class=HTMLResponse, name="set_team_count")
async def set_team_count(
    request: Request,
    team_count: str = Form(default=""),
    store: ScheduleStore = Depends(get_store),
):
    count = clamp_team_count(team_count)
    store.save_team_count(count)
    _ensure_schedule(store, count)
    logger.info("Team count set to %d", count)
    return _redirect(request, "teams")


@router.post(
    "/matches/{round_index}/{court_index}/toggle",
    response_class=HTMLResponse,
    name="toggle_match",
)
async def toggle_match_route(
    request: Request,
    round_index: int,
    court_index: int,
    store: ScheduleStore = Depends(get_store),
):
    team_count = _current_team_count(store)
    schedule, completion = _ensure_schedule(store, team_count)
    try:
        completion = toggle_match(schedule, completion, round_index, court_index)
    except InvalidArgument:
        raise HTTPException(status_code=404, detail="Match not found")
    _save_completion(store, team_count, schedule, completion)
    return _redirect(request, "toggled")


@router.post("/progress/reset", response_class=HTMLResponse, name="reset_progress")
async def reset_progress_route(request: Request, store: ScheduleStore = Depends(get_store)):
    team_count = _current_team_count(store)
    schedule, completion = _ensure_schedule(store, team_count)
    _save_completion(store, team_count, schedule, reset_progress(completion))
    return _redirect(request, "reset")


@router.post("/schedule/regenerate", response_class=HTMLResponse, name="regenerate_schedule")
async def regenerate_schedule(request: Request, store: ScheduleStore = Depends(get_store)):
    team_count = _current_team_count(store)
    _generate_and_store(store, team_count)
    logger.info("Regenerated schedule for %d teams", team_count)
    return _redirect(request, "regenerated")


@router.get("/api/schedule", name="schedule_state")
async def schedule_state(store: ScheduleStore = Depends(get_store)):
    team_count = _current_team_count(store)
    schedule, completion = _ensure_schedule(store, team_count)
    return JSONResponse(_schedule_payload(team_count, schedule, completion))


@router.get("/api/schedule/{team_count}", name="schedule_preview")
async def schedule_preview(team_count: int, variant: str | None = None):
    variant = variant or SCHEDULE_VARIANT.value
    try:
        schedule = schedule_cache.get(team_count, variant)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return JSONResponse(
        {
            "team_count": team_count,
            "variant": ScheduleVariant(variant).value,
            "rounds": [[list(pair) for pair in round_] for round_ in schedule],
            "scheduled": scheduled_counts(schedule, team_count),
        }
    )
