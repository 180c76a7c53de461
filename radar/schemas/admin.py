from typing import Optional

from pydantic import BaseModel, Field


class ForceCheckinRequest(BaseModel):
    patient_id: str = Field(alias="patientId")

    model_config = {"populate_by_name": True}


class TestSendRequest(BaseModel):
    to: str
    kind: str
    body: Optional[str] = None


class ToggleSchedulerRequest(BaseModel):
    enabled: bool
