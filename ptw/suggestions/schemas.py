from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

TextOrList = Union[str, list[str], None]


class CallbackSuggestion(BaseModel):
    type: Optional[str] = None
    field_name: Optional[str] = Field(default=None, alias="fieldName")
    original_value: Any = Field(default=None, alias="originalValue")
    suggested_value: Any = Field(default=None, alias="suggestedValue")
    title: Optional[str] = None
    reasoning: Optional[str] = None
    impact: Optional[str] = None
    priority: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CallbackRecommendations(BaseModel):
    immediate_actions: TextOrList = None
    before_work_starts: TextOrList = None
    compliance_requirements: TextOrList = None

    model_config = ConfigDict(extra="ignore")


class CallbackRiskAssessment(BaseModel):
    overall_risk: Optional[str] = Field(default=None, alias="overallRisk")
    compliance_score: Optional[float] = Field(default=None, alias="complianceScore")
    risk_factors: list[Any] = Field(default_factory=list, alias="riskFactors")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AnalysisCallback(BaseModel):
    """Body n8n posts back once a permit analysis finished (or failed)."""

    permit_id: Union[str, int] = Field(alias="permitId")
    analysis_id: Optional[int] = Field(default=None, alias="analysisId")
    analysis_complete: bool = Field(default=True, alias="analysisComplete")
    suggestions: Optional[list[CallbackSuggestion]] = None
    risk_assessment: Optional[CallbackRiskAssessment] = Field(default=None, alias="riskAssessment")
    recommendations: Optional[CallbackRecommendations] = None
    compliance_notes: TextOrList = None
    error: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")
