# src/clubrank/services/validation_service.py

"""Business logic for the match result validation workflow.

A reported result moves through these states:

    pending_confirmation ──confirm──────────> confirmed ─────┐
            │           ──auto-validate────> auto_validated ─┤
            │                                                │ contest
            └──contest──> contested <────────────────────────┘
                              │
                              └──resolve──> resolved

This module is the only caller of the rating engine for a match. Every
finalizing transition is a conditional UPDATE on ``status`` and
``rating_applied``; the rating writes happen in the same transaction, so a
match is rated at most once no matter how many confirm calls and sweeps race
for it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clubrank.clock import Clock, SystemClock, to_naive_utc
from clubrank.config import Settings, get_settings
from clubrank.db import models
from clubrank.exceptions import (
    AdminRequiredError,
    ContestationLimitError,
    ContestationWindowClosedError,
    DifferentClubError,
    InvalidMatchDateError,
    InvalidResolutionError,
    InvalidTransitionError,
    MatchNotFoundError,
    NotAParticipantError,
    PlayerNotFoundError,
    RatingAlreadyAppliedError,
    ReporterCannotValidateError,
    SelfOpponentError,
    WinnerMismatchError,
)
from clubrank.notifications import LoggingNotifier, NotificationKind, Notifier, dispatch
from clubrank.rating.elo_engine import EloEngine, clamp_delta
from clubrank.rating.score import parse_score
from clubrank.services import rating_store

logger = logging.getLogger(__name__)

PENDING = models.MatchStatus.PENDING_CONFIRMATION.value
CONTESTED = models.MatchStatus.CONTESTED.value
RESOLVED = models.MatchStatus.RESOLVED.value

AdminCheck = Callable[[int], Awaitable[bool]]


@dataclass
class TransitionResult:
    """Outcome of a workflow call.

    ``changed`` is False when the call was a benign no-op, for example a
    confirmation that arrived after the match had already been finalized.
    """

    match: models.Match
    outcome: str
    changed: bool = True


@dataclass
class ValidationStatus:
    """Timing information for the validation countdown of one match."""

    match_id: int
    status: str
    reported_by: int
    awaiting_player_id: int | None
    auto_validate_at: datetime
    seconds_remaining: int
    hours_remaining: int
    minutes_remaining: int
    reminder_sent: bool
    rating_applied: bool
    contest_deadline: datetime | None


class _Context:
    """Collaborators shared by the workflow operations."""

    def __init__(
        self,
        clock: Clock | None,
        notifier: Notifier | None,
        settings: Settings | None,
        engine: EloEngine | None,
    ) -> None:
        self.clock = clock or SystemClock()
        self.notifier = notifier or LoggingNotifier()
        self.settings = settings or get_settings()
        self.engine = engine or EloEngine(upset_threshold=self.settings.upset_threshold)


# ===============================================
# Helpers
# ===============================================


async def get_match(db: AsyncSession, match_id: int) -> models.Match:
    """
    Fetch a match by id.

    Raises:
        MatchNotFoundError: If the match does not exist
    """
    match = await db.get(models.Match, match_id, populate_existing=True)
    if match is None:
        raise MatchNotFoundError(match_id)
    return match


async def _get_player(db: AsyncSession, player_id: int) -> models.Player:
    player = await db.get(models.Player, player_id)
    if player is None:
        raise PlayerNotFoundError(player_id)
    return player


def guarded_match_update(match_id: int, *conditions: Any):
    return (
        update(models.Match)
        .where(models.Match.id == match_id, *conditions)
        .execution_options(synchronize_session=False)
    )


async def _finalize(
    db: AsyncSession,
    match: models.Match,
    ctx: _Context,
    *,
    from_status: str,
    to_status: str,
    now: datetime,
    extra_values: dict[str, Any] | None = None,
) -> bool:
    """
    Rate the match and move it to a finalized status in the caller's transaction.

    Returns False, with nothing written, when another transition got there
    first. The caller commits or rolls back.

    Raises:
        RatingAlreadyAppliedError: If the match already carries its rating
    """
    if match.rating_applied:
        logger.critical(
            "Refusing to rate a match twice",
            extra={"match_id": match.id, "status": match.status},
        )
        raise RatingAlreadyAppliedError(match.id)

    players = await rating_store.lock_players(db, [match.player1_id, match.player2_id])
    winner = players[match.winner_id]
    loser = players[match.loser_id]

    context = await rating_store.build_match_context(
        db, match, winner, loser, now, ctx.settings, ctx.engine
    )
    change = ctx.engine.rate(winner.current_rating, loser.current_rating, context)

    min_rating = ctx.settings.min_rating
    deltas = {
        winner.id: clamp_delta(winner.current_rating, change.winner_delta, min_rating),
        loser.id: clamp_delta(loser.current_rating, change.loser_delta, min_rating),
    }
    p1, p2 = players[match.player1_id], players[match.player2_id]

    values: dict[str, Any] = {
        "status": to_status,
        "rating_applied": True,
        "finalized_at": now,
        "player1_rating_before": p1.current_rating,
        "player1_rating_after": p1.current_rating + deltas[p1.id],
        "player2_rating_before": p2.current_rating,
        "player2_rating_after": p2.current_rating + deltas[p2.id],
        "rating_breakdown": change.breakdown.to_dict(),
        "version": models.Match.version + 1,
    }
    values.update(extra_values or {})

    result = await db.execute(
        guarded_match_update(
            match.id,
            models.Match.status == from_status,
            models.Match.rating_applied.is_(False),
        ).values(**values)
    )
    if result.rowcount != 1:
        logger.info(
            "Match finalized concurrently, skipping",
            extra={"match_id": match.id, "expected_status": from_status},
        )
        return False

    for player, won in ((winner, True), (loser, False)):
        rating_store.apply_rating_delta(
            db,
            player,
            deltas[player.id],
            models.RatingChangeReason.MATCH_RESULT,
            now,
            min_rating,
            match_id=match.id,
            details={
                "opponent_id": match.opponent_of(player.id),
                "won": won,
                "format": match.format,
            },
        )
        rating_store.record_finalized_match(player, won, now)

    logger.info(
        "Match rated",
        extra={
            "match_id": match.id,
            "to_status": to_status,
            "winner_id": winner.id,
            "winner_delta": deltas[winner.id],
            "loser_delta": deltas[loser.id],
        },
    )
    return True


# ===============================================
# Report
# ===============================================


async def report_match(
    db: AsyncSession,
    reporter_id: int,
    opponent_id: int,
    score: str,
    match_format: models.MatchFormat | str,
    played_at: datetime,
    winner_id: int | None = None,
    *,
    clock: Clock | None = None,
    notifier: Notifier | None = None,
    settings: Settings | None = None,
) -> models.Match:
    """
    Record a result reported by one of the two players.

    The score is read from the reporter's point of view. The match is stored
    with the lower player id as player1 and the score oriented to player1.

    Raises:
        SelfOpponentError: If the opponent is the reporter
        PlayerNotFoundError: If either player does not exist
        DifferentClubError: If the players belong to different clubs
        InvalidMatchDateError: If played_at is in the future or too old
        InvalidScoreError: If the score is not a finished match in the format
        WinnerMismatchError: If winner_id disagrees with the score
    """
    ctx = _Context(clock, notifier, settings, None)
    logger.info(
        "Processing match report",
        extra={"reporter_id": reporter_id, "opponent_id": opponent_id},
    )

    try:
        if reporter_id == opponent_id:
            raise SelfOpponentError(reporter_id)

        reporter = await _get_player(db, reporter_id)
        opponent = await _get_player(db, opponent_id)
        if reporter.club_id != opponent.club_id:
            raise DifferentClubError(reporter_id, opponent_id)

        now = ctx.clock.now()
        played_at = to_naive_utc(played_at)
        if played_at > now:
            raise InvalidMatchDateError("Match date cannot be in the future")
        if played_at < now - timedelta(days=ctx.settings.match_max_age_days):
            raise InvalidMatchDateError(
                f"Match date cannot be more than "
                f"{ctx.settings.match_max_age_days} days in the past"
            )

        parsed = parse_score(score, match_format)
        score_winner = reporter.id if parsed.winner_side == 1 else opponent.id
        if winner_id is not None and winner_id != score_winner:
            raise WinnerMismatchError(winner_id, score_winner)

        player1_id, player2_id = sorted((reporter.id, opponent.id))
        if reporter.id != player1_id:
            parsed = parsed.flipped()

        match = models.Match(
            club_id=reporter.club_id,
            player1_id=player1_id,
            player2_id=player2_id,
            reported_by=reporter.id,
            winner_id=score_winner,
            score=parsed.to_structured(),
            score_text=parsed.to_display_string(),
            format=parsed.match_format.value,
            played_at=played_at,
            status=PENDING,
            created_at=now,
            auto_validate_at=now + timedelta(hours=ctx.settings.auto_validate_hours),
        )
        db.add(match)
        await db.commit()
        await db.refresh(match)

    except Exception as e:
        logger.warning(
            "Match report rejected",
            extra={"reporter_id": reporter_id, "error": str(e)},
        )
        await db.rollback()
        raise

    logger.info(
        "Match reported",
        extra={"match_id": match.id, "auto_validate_at": match.auto_validate_at},
    )
    await dispatch(
        ctx.notifier,
        opponent.id,
        NotificationKind.MATCH_REPORTED,
        {
            "match_id": match.id,
            "reporter_id": reporter.id,
            "score": match.score_text,
            "auto_validate_at": match.auto_validate_at.isoformat(),
        },
    )
    return match


# ===============================================
# Confirm / auto-validate
# ===============================================


async def confirm_match(
    db: AsyncSession,
    match_id: int,
    actor_id: int,
    *,
    clock: Clock | None = None,
    notifier: Notifier | None = None,
    settings: Settings | None = None,
    engine: EloEngine | None = None,
) -> TransitionResult:
    """
    Confirm a pending result as the non-reporting player and apply the rating.

    Confirming a match that is already confirmed or auto-validated is not an
    error: the result comes back with outcome ``already_finalized``.

    Raises:
        MatchNotFoundError: If the match does not exist
        NotAParticipantError: If the actor did not play the match
        ReporterCannotValidateError: If the actor reported the match
        InvalidTransitionError: If the match is contested or resolved
    """
    ctx = _Context(clock, notifier, settings, engine)
    match = await get_match(db, match_id)

    if not match.is_participant(actor_id):
        raise NotAParticipantError(match_id, actor_id)
    if actor_id == match.reported_by:
        raise ReporterCannotValidateError(match_id, actor_id, "confirm")
    if match.status in models.FINALIZED_STATUSES:
        return TransitionResult(match, "already_finalized", changed=False)
    if match.status != PENDING:
        raise InvalidTransitionError(match_id, match.status, "confirm")

    now = ctx.clock.now()
    try:
        finalized = await _finalize(
            db,
            match,
            ctx,
            from_status=PENDING,
            to_status=models.MatchStatus.CONFIRMED.value,
            now=now,
            extra_values={"validated_by": actor_id},
        )
        if finalized:
            await db.commit()
        else:
            await db.rollback()
    except Exception as e:
        logger.error(
            "Failed to confirm match",
            extra={"match_id": match_id, "error": str(e)},
            exc_info=True,
        )
        await db.rollback()
        raise

    await db.refresh(match)
    if not finalized:
        if match.status in models.FINALIZED_STATUSES:
            return TransitionResult(match, "already_finalized", changed=False)
        raise InvalidTransitionError(match_id, match.status, "confirm")

    await dispatch(
        ctx.notifier,
        match.reported_by,
        NotificationKind.MATCH_CONFIRMED,
        {"match_id": match.id, "confirmed_by": actor_id},
    )
    return TransitionResult(match, models.MatchStatus.CONFIRMED.value)


async def auto_validate_match(
    db: AsyncSession,
    match_id: int,
    *,
    clock: Clock | None = None,
    notifier: Notifier | None = None,
    settings: Settings | None = None,
    engine: EloEngine | None = None,
) -> TransitionResult:
    """
    Finalize a pending match whose confirmation deadline has passed.

    Safe to call repeatedly: a match that is no longer pending, or not yet
    due, comes back unchanged with outcome ``skipped`` or ``not_due``.
    """
    ctx = _Context(clock, notifier, settings, engine)
    match = await get_match(db, match_id)

    if match.status != PENDING:
        return TransitionResult(match, "skipped", changed=False)

    now = ctx.clock.now()
    if now < match.auto_validate_at:
        return TransitionResult(match, "not_due", changed=False)

    try:
        finalized = await _finalize(
            db,
            match,
            ctx,
            from_status=PENDING,
            to_status=models.MatchStatus.AUTO_VALIDATED.value,
            now=now,
        )
        if finalized:
            await db.commit()
        else:
            await db.rollback()
    except Exception as e:
        logger.error(
            "Failed to auto-validate match",
            extra={"match_id": match_id, "error": str(e)},
            exc_info=True,
        )
        await db.rollback()
        raise

    await db.refresh(match)
    if not finalized:
        return TransitionResult(match, "skipped", changed=False)

    for player_id in (match.player1_id, match.player2_id):
        await dispatch(
            ctx.notifier,
            player_id,
            NotificationKind.MATCH_AUTO_VALIDATED,
            {"match_id": match.id},
        )
    return TransitionResult(match, models.MatchStatus.AUTO_VALIDATED.value)


# ===============================================
# Contest
# ===============================================


def _month_start(moment: datetime) -> datetime:
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


async def count_contestations_this_month(
    db: AsyncSession, player_id: int, now: datetime
) -> int:
    """Contestations of finalized results the player made this calendar month."""
    query = select(func.count(models.Match.id)).where(
        models.Match.contested_by == player_id,
        models.Match.contested_from.in_(models.FINALIZED_STATUSES),
        models.Match.contested_at >= _month_start(now),
    )
    return (await db.execute(query)).scalar_one()


async def _reverse_rating(
    db: AsyncSession,
    match: models.Match,
    ctx: _Context,
    now: datetime,
    actor_id: int,
) -> None:
    """Append inverse ledger entries for the snapshot deltas of a match."""
    players = await rating_store.lock_players(db, [match.player1_id, match.player2_id])
    snapshot = {
        match.player1_id: match.player1_rating_after - match.player1_rating_before,
        match.player2_id: match.player2_rating_after - match.player2_rating_before,
    }
    for player_id, applied in snapshot.items():
        rating_store.apply_rating_delta(
            db,
            players[player_id],
            -applied,
            models.RatingChangeReason.REVERSAL,
            now,
            ctx.settings.min_rating,
            match_id=match.id,
            details={"reverted_delta": applied, "contested_by": actor_id},
        )


async def _contest_once(
    db: AsyncSession,
    match: models.Match,
    actor_id: int,
    reason: str | None,
    ctx: _Context,
) -> bool:
    now = ctx.clock.now()
    status = match.status

    if status == PENDING:
        if actor_id == match.reported_by:
            raise ReporterCannotValidateError(match.id, actor_id, "contest")
        applied = False
    elif status in models.FINALIZED_STATUSES:
        deadline = match.finalized_at + timedelta(
            days=ctx.settings.contestation_window_days
        )
        if now > deadline:
            raise ContestationWindowClosedError(
                match.id, ctx.settings.contestation_window_days
            )
        # Both player rows stay locked until commit, so contests by the same
        # player are counted one at a time.
        await rating_store.lock_players(db, [match.player1_id, match.player2_id])
        used = await count_contestations_this_month(db, actor_id, now)
        if used >= ctx.settings.max_contestations_per_month:
            raise ContestationLimitError(
                actor_id, ctx.settings.max_contestations_per_month
            )
        applied = True
    else:
        raise InvalidTransitionError(match.id, status, "contest")

    result = await db.execute(
        guarded_match_update(
            match.id,
            models.Match.status == status,
            models.Match.rating_applied.is_(applied),
        ).values(
            status=CONTESTED,
            rating_applied=False,
            contested_by=actor_id,
            contested_at=now,
            contest_reason=reason,
            contested_from=status,
            version=models.Match.version + 1,
        )
    )
    if result.rowcount != 1:
        return False

    if applied:
        await _reverse_rating(db, match, ctx, now, actor_id)
    return True


async def contest_match(
    db: AsyncSession,
    match_id: int,
    actor_id: int,
    reason: str | None = None,
    *,
    clock: Clock | None = None,
    notifier: Notifier | None = None,
    settings: Settings | None = None,
) -> TransitionResult:
    """
    Dispute a result.

    While the match is pending only the non-reporting player can contest it.
    Once finalized, either player can contest within the contestation window,
    subject to the monthly limit; the applied rating change is reversed with
    compensating ledger entries.

    Raises:
        MatchNotFoundError: If the match does not exist
        NotAParticipantError: If the actor did not play the match
        ReporterCannotValidateError: If the reporter contests a pending match
        ContestationWindowClosedError: If the window after finalization passed
        ContestationLimitError: If the monthly limit is used up
        InvalidTransitionError: If the match is already contested or resolved
    """
    ctx = _Context(clock, notifier, settings, None)
    match = await get_match(db, match_id)
    if not match.is_participant(actor_id):
        raise NotAParticipantError(match_id, actor_id)

    contested = False
    try:
        # One retry covers a confirm or sweep that finalized the match between
        # our read and our update.
        for _ in range(2):
            contested = await _contest_once(db, match, actor_id, reason, ctx)
            if contested:
                break
            await db.rollback()
            await db.refresh(match)
        if not contested:
            raise InvalidTransitionError(match_id, match.status, "contest")
        await db.commit()
    except Exception as e:
        logger.warning(
            "Contestation rejected",
            extra={"match_id": match_id, "actor_id": actor_id, "error": str(e)},
        )
        await db.rollback()
        raise

    await db.refresh(match)
    logger.info(
        "Match contested",
        extra={
            "match_id": match.id,
            "actor_id": actor_id,
            "contested_from": match.contested_from,
        },
    )

    payload = {
        "match_id": match.id,
        "contested_by": actor_id,
        "reason": reason,
        "contested_from": match.contested_from,
    }
    await dispatch(
        ctx.notifier,
        match.opponent_of(actor_id),
        NotificationKind.MATCH_CONTESTED,
        payload,
    )
    admin_ids = (
        await db.execute(
            select(models.Player.id).where(
                models.Player.club_id == match.club_id,
                models.Player.is_admin.is_(True),
            )
        )
    ).scalars().all()
    for admin_id in admin_ids:
        await dispatch(
            ctx.notifier, admin_id, NotificationKind.MATCH_CONTESTED_ADMIN, payload
        )
    return TransitionResult(match, CONTESTED)


# ===============================================
# Resolve
# ===============================================


def club_admin_check(db: AsyncSession, club_id: int) -> AdminCheck:
    """Default admin check: the player is flagged admin in the match's club."""

    async def is_admin(player_id: int) -> bool:
        player = await db.get(models.Player, player_id)
        return bool(player and player.is_admin and player.club_id == club_id)

    return is_admin


async def _reinstate_snapshot(
    db: AsyncSession, match: models.Match, ctx: _Context, now: datetime, admin_id: int
) -> None:
    players = await rating_store.lock_players(db, [match.player1_id, match.player2_id])
    snapshot = {
        match.player1_id: match.player1_rating_after - match.player1_rating_before,
        match.player2_id: match.player2_rating_after - match.player2_rating_before,
    }
    for player_id, delta in snapshot.items():
        rating_store.apply_rating_delta(
            db,
            players[player_id],
            delta,
            models.RatingChangeReason.MATCH_RESULT,
            now,
            ctx.settings.min_rating,
            match_id=match.id,
            details={
                "opponent_id": match.opponent_of(player_id),
                "won": player_id == match.winner_id,
                "reinstated_by": admin_id,
            },
        )


async def resolve_contested_match(
    db: AsyncSession,
    match_id: int,
    admin_id: int,
    decision: models.ContestResolution | str,
    *,
    is_admin: AdminCheck | None = None,
    clock: Clock | None = None,
    notifier: Notifier | None = None,
    settings: Settings | None = None,
    engine: EloEngine | None = None,
) -> TransitionResult:
    """
    Close a contested match by administrator decision.

    ``reinstated`` puts the reported result back: a match contested after
    finalization gets its snapshot deltas re-applied, a match contested while
    pending is rated for the first time. ``reverted`` leaves ratings as they
    are.

    Raises:
        MatchNotFoundError: If the match does not exist
        InvalidResolutionError: If the decision is not reinstated or reverted
        AdminRequiredError: If the actor is not an administrator
        InvalidTransitionError: If the match is not contested
    """
    ctx = _Context(clock, notifier, settings, engine)
    try:
        decision = models.ContestResolution(decision)
    except ValueError as e:
        raise InvalidResolutionError(str(decision)) from e
    match = await get_match(db, match_id)

    check = is_admin or club_admin_check(db, match.club_id)
    if not await check(admin_id):
        raise AdminRequiredError(admin_id)
    if match.status != CONTESTED:
        raise InvalidTransitionError(match_id, match.status, "resolve")

    now = ctx.clock.now()
    resolution_values = {
        "resolved_by": admin_id,
        "resolved_at": now,
        "resolution": decision.value,
    }

    try:
        if (
            decision is models.ContestResolution.REINSTATED
            and match.contested_from not in models.FINALIZED_STATUSES
        ):
            resolved = await _finalize(
                db,
                match,
                ctx,
                from_status=CONTESTED,
                to_status=RESOLVED,
                now=now,
                extra_values={**resolution_values, "validated_by": admin_id},
            )
        else:
            reinstate = decision is models.ContestResolution.REINSTATED
            values: dict[str, Any] = {
                "status": RESOLVED,
                "version": models.Match.version + 1,
                **resolution_values,
            }
            if reinstate:
                values["rating_applied"] = True
            result = await db.execute(
                guarded_match_update(
                    match.id,
                    models.Match.status == CONTESTED,
                    models.Match.rating_applied.is_(False),
                ).values(**values)
            )
            resolved = result.rowcount == 1
            if resolved and reinstate:
                await _reinstate_snapshot(db, match, ctx, now, admin_id)

        if not resolved:
            await db.rollback()
            await db.refresh(match)
            raise InvalidTransitionError(match_id, match.status, "resolve")
        await db.commit()
    except Exception as e:
        logger.error(
            "Failed to resolve contested match",
            extra={"match_id": match_id, "admin_id": admin_id, "error": str(e)},
        )
        await db.rollback()
        raise

    await db.refresh(match)
    logger.info(
        "Contested match resolved",
        extra={"match_id": match.id, "admin_id": admin_id, "resolution": decision.value},
    )
    for player_id in (match.player1_id, match.player2_id):
        await dispatch(
            ctx.notifier,
            player_id,
            NotificationKind.CONTEST_RESOLVED,
            {"match_id": match.id, "resolution": decision.value},
        )
    return TransitionResult(match, RESOLVED)


# ===============================================
# Read side
# ===============================================


async def get_pending_validation(
    db: AsyncSession,
    match_id: int,
    *,
    clock: Clock | None = None,
    settings: Settings | None = None,
) -> ValidationStatus:
    """
    Countdown information for the validation UI.

    Raises:
        MatchNotFoundError: If the match does not exist
    """
    ctx = _Context(clock, None, settings, None)
    match = await get_match(db, match_id)
    now = ctx.clock.now()

    remaining = 0
    if match.status == PENDING:
        remaining = max(0, int((match.auto_validate_at - now).total_seconds()))

    contest_deadline = None
    if match.status in models.FINALIZED_STATUSES and match.finalized_at is not None:
        contest_deadline = match.finalized_at + timedelta(
            days=ctx.settings.contestation_window_days
        )

    return ValidationStatus(
        match_id=match.id,
        status=match.status,
        reported_by=match.reported_by,
        awaiting_player_id=(
            match.opponent_of(match.reported_by) if match.status == PENDING else None
        ),
        auto_validate_at=match.auto_validate_at,
        seconds_remaining=remaining,
        hours_remaining=remaining // 3600,
        minutes_remaining=(remaining % 3600) // 60,
        reminder_sent=match.reminder_sent_at is not None,
        rating_applied=match.rating_applied,
        contest_deadline=contest_deadline,
    )
