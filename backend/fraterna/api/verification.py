"""Verification quiz endpoints. Open to authenticated but unverified members."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status

from fraterna.api.security_deps import get_member
from fraterna.domain.members.models import MemberProfile
from fraterna.domain.verification import quiz, service
from fraterna.domain.verification.schemas import QuizQuestion, QuizResponse, QuizResult, QuizSubmission
from fraterna.settings import settings

router = APIRouter()


@router.get("/verification/quiz", response_model=QuizResponse)
async def get_quiz(member: MemberProfile = Depends(get_member)) -> QuizResponse:
	state = await service.get_state(member.id)
	return QuizResponse(
		questions=[QuizQuestion(**q) for q in quiz.public_questions()],
		required_correct=settings.verification_required_correct,
		remaining_attempts=state.remaining(),
		locked=state.is_locked(datetime.now(timezone.utc)) or state.remaining() == 0,
		verified=member.is_verified,
	)


@router.post("/verification/quiz", response_model=QuizResult)
async def submit_quiz(
	payload: QuizSubmission,
	member: MemberProfile = Depends(get_member),
) -> QuizResult:
	try:
		result = await service.submit(member.id, payload.answers)
	except service.VerificationLocked as exc:
		raise HTTPException(status.HTTP_423_LOCKED, detail=exc.reason) from None
	except service.AlreadyVerified as exc:
		raise HTTPException(status.HTTP_409_CONFLICT, detail=exc.reason) from None
	except service.IncompleteAnswers as exc:
		raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=exc.reason) from None
	except service.VerificationError as exc:
		raise HTTPException(status.HTTP_404_NOT_FOUND, detail=exc.reason) from None
	return QuizResult(
		passed=result.passed,
		correct=result.correct,
		required=result.required,
		remaining_attempts=result.remaining_attempts,
		locked=result.locked,
		status=result.status.value,
	)
