"""Quiz attempts, lockout and promotion to verified."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional

from fraterna.domain.members.models import VerificationStatus
from fraterna.domain.verification import quiz
from fraterna.infra.postgres import get_pool
from fraterna.obs import metrics as obs_metrics
from fraterna.settings import settings

logger = logging.getLogger(__name__)


class VerificationError(Exception):
	reason = "verification_error"

	def __init__(self, reason: str | None = None) -> None:
		super().__init__(reason or self.reason)
		if reason:
			self.reason = reason


class VerificationLocked(VerificationError):
	reason = "verification_locked"


class AlreadyVerified(VerificationError):
	reason = "already_verified"


class IncompleteAnswers(VerificationError):
	reason = "incomplete_answers"


@dataclass(slots=True)
class AttemptState:
	attempt_count: int = 0
	locked_until: Optional[datetime] = None

	def remaining(self) -> int:
		return max(0, settings.verification_max_attempts - self.attempt_count)

	def is_locked(self, now: datetime) -> bool:
		return self.locked_until is not None and self.locked_until > now


@dataclass(slots=True)
class AttemptResult:
	passed: bool
	correct: int
	required: int
	remaining_attempts: int
	locked: bool
	status: VerificationStatus


async def get_state(user_id: str) -> AttemptState:
	pool = await get_pool()
	row = await pool.fetchrow(
		"SELECT attempt_count, locked_until FROM verification_attempts WHERE user_id = $1::uuid",
		user_id,
	)
	if row is None:
		return AttemptState()
	return AttemptState(attempt_count=int(row["attempt_count"]), locked_until=row["locked_until"])


def _check_answers(answers: Mapping[int, int]) -> None:
	expected = {question.id for question in quiz.QUESTIONS}
	if set(int(key) for key in answers) != expected:
		raise IncompleteAnswers()


async def submit(user_id: str, answers: Mapping[int, int], *, now: Optional[datetime] = None) -> AttemptResult:
	"""Grade one attempt.

	Passing verifies the member. Each failure uses one attempt; the last one
	locks the member out and hands them to manual review.
	"""
	_check_answers(answers)
	now = now or datetime.now(timezone.utc)
	correct = quiz.grade(answers)
	required = settings.verification_required_correct
	pool = await get_pool()
	async with pool.acquire() as conn:
		async with conn.transaction():
			member = await conn.fetchrow(
				"SELECT is_verified, verification_status FROM users WHERE id = $1::uuid FOR UPDATE",
				user_id,
			)
			if member is None:
				raise VerificationError("member_not_found")
			if member["is_verified"]:
				raise AlreadyVerified()
			row = await conn.fetchrow(
				"""
				INSERT INTO verification_attempts (user_id) VALUES ($1::uuid)
				ON CONFLICT (user_id) DO UPDATE SET user_id = EXCLUDED.user_id
				RETURNING attempt_count, locked_until
				""",
				user_id,
			)
			state = AttemptState(attempt_count=int(row["attempt_count"]), locked_until=row["locked_until"])
			if state.is_locked(now) or state.remaining() == 0:
				obs_metrics.inc_verification_attempt("locked")
				raise VerificationLocked()

			if correct >= required:
				await conn.execute(
					"""
					UPDATE users SET is_verified = true, verification_status = $2, updated_at = now()
					WHERE id = $1::uuid
					""",
					user_id,
					VerificationStatus.VERIFIED.value,
				)
				await conn.execute(
					"UPDATE verification_attempts SET last_attempt_at = $2 WHERE user_id = $1::uuid",
					user_id,
					now,
				)
				obs_metrics.inc_verification_attempt("passed")
				logger.info("verification_passed", extra={"user_id": user_id})
				return AttemptResult(
					passed=True,
					correct=correct,
					required=required,
					remaining_attempts=state.remaining(),
					locked=False,
					status=VerificationStatus.VERIFIED,
				)

			state.attempt_count += 1
			locked = state.remaining() == 0
			state.locked_until = now + timedelta(days=settings.verification_lock_days) if locked else None
			await conn.execute(
				"""
				UPDATE verification_attempts
				SET attempt_count = $2, locked_until = $3, last_attempt_at = $4
				WHERE user_id = $1::uuid
				""",
				user_id,
				state.attempt_count,
				state.locked_until,
				now,
			)
			status = VerificationStatus(member["verification_status"])
			if locked:
				status = VerificationStatus.MANUAL_REVIEW
				await conn.execute(
					"UPDATE users SET verification_status = $2, updated_at = now() WHERE id = $1::uuid",
					user_id,
					status.value,
				)
	obs_metrics.inc_verification_attempt("locked_out" if locked else "failed")
	logger.info("verification_failed", extra={"user_id": user_id, "locked": locked})
	return AttemptResult(
		passed=False,
		correct=correct,
		required=required,
		remaining_attempts=state.remaining(),
		locked=locked,
		status=status,
	)
