from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from reputation.models.job import JobStatus


class JobCreate(BaseModel):
    project_id: str
    proposal_id: str
    client_id: str
    professional_id: str
    title: str
    description: str = ""
    agreed_price: float = Field(ge=0)
    currency: Optional[str] = None
    delivery_date: Optional[datetime] = None


class JobStatusChange(BaseModel):
    status: JobStatus
    progress_percentage: Optional[int] = Field(None, ge=0, le=100)
    message: Optional[str] = None


class MilestoneCreate(BaseModel):
    title: str
    description: Optional[str] = None
    amount: float = Field(ge=0)
    due_date: Optional[datetime] = None


class MilestoneResponse(BaseModel):
    id: str
    job_id: str
    title: str
    description: Optional[str] = None
    amount: float
    due_date: Optional[datetime] = None
    completed: bool
    completed_at: Optional[datetime] = None
    approved_by_client: bool
    approved_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class StatusUpdateResponse(BaseModel):
    id: str
    status_from: str
    status_to: str
    updated_by_user_id: str
    message: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class JobResponse(BaseModel):
    id: str
    project_id: str
    proposal_id: str
    client_id: str
    professional_id: str
    title: str
    description: str
    agreed_price: float
    currency: str
    status: str
    progress_percentage: int
    delivery_date: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    milestones: list[MilestoneResponse] = []
    status_updates: list[StatusUpdateResponse] = []

    class Config:
        from_attributes = True


class JobStatsResponse(BaseModel):
    jobs_by_status: dict[str, int]
    total_jobs: int
    total_earnings: float
