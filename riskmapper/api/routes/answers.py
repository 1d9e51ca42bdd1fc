"""Answer routes — batched upsert of questionnaire answers."""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError

from riskmapper.api.deps import get_store, require_session
from riskmapper.db.models import CheckoutSession
from riskmapper.store import Store

router = APIRouter()

MAX_ANSWERS_PER_BATCH = 100


class AnswerInput(BaseModel):
    question_id: str = Field(min_length=1, max_length=50)
    answer_text: str = ""
    client_p: int | None = Field(default=None, ge=1, le=10)
    client_i: int | None = Field(default=None, ge=1, le=10)


class UpsertAnswersRequest(BaseModel):
    answers: list[AnswerInput] = Field(min_length=1, max_length=MAX_ANSWERS_PER_BATCH)


class UpsertAnswersResponse(BaseModel):
    upserted: int


@router.put("/session/{session_id}/answers", response_model=UpsertAnswersResponse)
async def upsert_answers(
    body: UpsertAnswersRequest,
    session: CheckoutSession = Depends(require_session),
    store: Store = Depends(get_store),
):
    """Save progress. Re-sending a question overwrites its previous answer."""
    try:
        upserted = await store.upsert_answers(session.id, [a.model_dump() for a in body.answers])
    except IntegrityError:
        # answers.question_id references question_definitions
        raise HTTPException(status_code=422, detail="Unknown question_id in batch")
    return UpsertAnswersResponse(upserted=upserted)
