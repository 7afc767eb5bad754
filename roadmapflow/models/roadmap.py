"""Pydantic models for the reconciled roadmap artifact."""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator


class PriorityLevel(str, Enum):
    """MoSCoW priority buckets, strongest first."""
    MUST_HAVE = "must_have"
    SHOULD_HAVE = "should_have"
    COULD_HAVE = "could_have"
    WONT_HAVE = "wont_have"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FeatureStatus(str, Enum):
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    AT_RISK = "at_risk"


class Workstream(BaseModel):
    """Named grouping of features sharing a purpose."""
    id: str = Field(..., description="Workstream ID")
    name: str = Field(..., description="Workstream name")
    purpose: str = Field(default="", description="One sentence narrative")


class Subtask(BaseModel):
    name: str
    status: FeatureStatus = FeatureStatus.PLANNED


class RoadmapFeature(BaseModel):
    """A feature placed on the roadmap."""
    id: str = Field(..., description="Feature ID")
    name: str = Field(..., description="Feature name")
    description: Optional[str] = None
    priority: PriorityLevel = Field(default=PriorityLevel.WONT_HAVE)
    quarters: List[int] = Field(default_factory=lambda: [1], description="Quarters (1-4) the feature spans")
    dependencies: List[str] = Field(default_factory=list, description="Names of features this depends on")
    effort: Optional[int] = None
    workstream: str = Field(default="Core", description="Name of the owning workstream")
    status: FeatureStatus = FeatureStatus.PLANNED
    subtasks: List[Subtask] = Field(default_factory=list)
    risk: RiskLevel = RiskLevel.LOW
    risk_reason: Optional[str] = None
    team: str = "Cross-Functional"
    confidence: int = 75
    is_critical_path: bool = False
    prediction_rationale: Optional[str] = None

    @field_validator('quarters')
    @classmethod
    def validate_quarters(cls, quarters):
        """Quarters are a non-empty, ascending, deduplicated subset of 1-4."""
        normalized = sorted(set(quarters))
        if not normalized:
            raise ValueError("A feature must be assigned to at least one quarter")
        if normalized[0] < 1 or normalized[-1] > 4:
            raise ValueError("Quarters must be between 1 and 4")
        return normalized


class Milestone(BaseModel):
    name: str = Field(..., description="Milestone or decision gate name")
    quarter: int = Field(..., ge=1, le=4, description="Quarter of the milestone")


class AIInsight(BaseModel):
    type: str = "suggestion"
    title: str = ""
    description: str = ""
    severity: RiskLevel = RiskLevel.LOW


class RoadmapData(BaseModel):
    """Roadmap entity graph produced by the reconciler."""
    workstreams: List[Workstream] = Field(default_factory=list)
    features: List[RoadmapFeature] = Field(default_factory=list)
    milestones: List[Milestone] = Field(default_factory=list)
    summary: str = ""
    insights: List[AIInsight] = Field(default_factory=list)

    def find_feature(self, name: str) -> Optional[RoadmapFeature]:
        for feature in self.features:
            if feature.name == name:
                return feature
        return None
