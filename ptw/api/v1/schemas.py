from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class PermitResponse(CamelModel):
    id: int
    permit_id: str
    type: str
    status: str
    description: str = ""
    location: str = ""
    work_location_id: Optional[int] = None
    department: str = ""
    requestor_name: str = ""
    contact_number: Optional[str] = None
    emergency_contact: Optional[str] = None
    additional_comments: Optional[str] = None
    created_by: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    work_started_at: Optional[datetime] = None
    work_completed_at: Optional[datetime] = None
    selected_hazards: list[str] = Field(default_factory=list)
    hazard_notes: str = "{}"
    identified_hazards: Optional[str] = None
    overall_risk: Optional[str] = None
    immediate_actions: Optional[str] = None
    before_work_starts: Optional[str] = None
    compliance_notes: Optional[str] = None
    department_head: Optional[str] = None
    department_head_approval: bool = False
    department_head_approval_date: Optional[datetime] = None
    safety_officer: Optional[str] = None
    safety_officer_approval: bool = False
    safety_officer_approval_date: Optional[datetime] = None
    maintenance_approver: Optional[str] = None
    maintenance_approval: bool = False
    maintenance_approval_date: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    map_position_x: Optional[float] = None
    map_position_y: Optional[float] = None
    performer_name: Optional[str] = None
    performer_signature: Optional[str] = None
    completed_measures: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PermitFields(CamelModel):
    """Writable permit fields; dates stay strings so the form validator reports them per field."""

    model_config = ConfigDict(extra="forbid")

    type: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    work_location_id: Optional[int] = None
    department: Optional[str] = None
    requestor_name: Optional[str] = None
    contact_number: Optional[str] = None
    emergency_contact: Optional[str] = None
    additional_comments: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    selected_hazards: Optional[list[str]] = None
    hazard_notes: Union[dict[str, Optional[str]], str, None] = None
    identified_hazards: Optional[str] = None
    overall_risk: Optional[str] = None
    immediate_actions: Optional[str] = None
    before_work_starts: Optional[str] = None
    compliance_notes: Optional[str] = None
    department_head: Optional[str] = None
    safety_officer: Optional[str] = None
    maintenance_approver: Optional[str] = None
    map_position_x: Optional[float] = None
    map_position_y: Optional[float] = None
    performer_name: Optional[str] = None
    performer_signature: Optional[str] = None
    work_started_at: Optional[str] = None
    work_completed_at: Optional[str] = None
    completed_measures: Optional[list[str]] = None


class PermitCreate(PermitFields):
    status: Optional[str] = None


class SuggestionResponse(CamelModel):
    id: int
    permit_id: int
    batch_id: Optional[str] = None
    suggestion_type: str
    field_name: Optional[str] = None
    original_value: Optional[str] = None
    suggested_value: str
    reasoning: str = ""
    priority: str = "medium"
    status: str
    applied_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class AnalysisRunResponse(CamelModel):
    id: int
    permit_id: int
    status: str
    error: Optional[str] = None
    suggestion_count: int = 0
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class UserResponse(CamelModel):
    id: int
    username: str
    full_name: str
    department: str = ""
    role: str
    is_active: bool = True
