from datetime import datetime
from enum import IntEnum

from pydantic import BaseModel, Field

from ella_rises.schemas.forms import FormModel


class SurveyQuestion(IntEnum):
    SATISFACTION = 1
    USEFULNESS = 2
    # 3 is reserved in the numbering scheme and never written or read.
    RECOMMEND = 4


PRIMARY_COMMENT_NUMBER = 1


class SurveyListItem(BaseModel):
    id: int
    participant_name: str
    event_name: str | None = None
    submitted_at: datetime
    satisfaction: int | None = None
    usefulness: int | None = None
    recommend: int | None = None


class SurveyOut(SurveyListItem):
    participant_id: int
    event_instance_id: int | None = None
    comment: str | None = None


class SurveyForm(FormModel):
    participant_id: int
    event_instance_id: int | None = None
    satisfaction: int | None = Field(default=None, ge=1, le=5)
    usefulness: int | None = Field(default=None, ge=1, le=5)
    recommend: int | None = Field(default=None, ge=1, le=5)
    comment: str | None = Field(default=None, max_length=5000)

    def responses(self) -> dict[int, int]:
        answers = {
            SurveyQuestion.SATISFACTION: self.satisfaction,
            SurveyQuestion.USEFULNESS: self.usefulness,
            SurveyQuestion.RECOMMEND: self.recommend,
        }
        return {int(question): value for question, value in answers.items() if value is not None}
