"""Reconciles extraction and planning outputs into a roadmap entity graph.

The matching functions are deliberately approximate: feature names are
compared by case-insensitive substring containment in either direction,
so "Auth" matches "User Auth Flow" and vice versa.
"""

from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from ..models.roadmap import (
    AIInsight,
    FeatureStatus,
    Milestone,
    PriorityLevel,
    RiskLevel,
    RoadmapData,
    RoadmapFeature,
    Subtask,
    Workstream,
)
from .logging import get_logger
from .structured_extractor import coerce_json

logger = get_logger(__name__)

QUARTERS = ("Q1", "Q2", "Q3", "Q4")
MILESTONE_KEYWORDS = ("milestone", "release", "launch")
MILESTONE_NAME_LIMIT = 50
DEFAULT_MILESTONES = (("Alpha Launch", 2), ("Market GA", 4))
DEFAULT_SUMMARY = "Strategic project initialization and delivery plan."


def _names(items: Any) -> List[str]:
    """Feature names from a list of strings or ``{"name": ...}`` objects."""
    if isinstance(items, str):
        return [items.strip()] if items.strip() else []
    if not isinstance(items, list):
        return []
    names = []
    for item in items:
        if isinstance(item, dict):
            item = item.get("name") or item.get("feature")
        if isinstance(item, str) and item.strip():
            names.append(item.strip())
    return names


def fuzzy_match(name: str, candidate: str) -> bool:
    """Case-insensitive substring containment in either direction."""
    a = (name or "").strip().lower()
    b = (candidate or "").strip().lower()
    if not a or not b:
        return False
    return a in b or b in a


def _priority_from_keyword(value: Any) -> Optional[PriorityLevel]:
    keyword = str(value or "").lower()
    if "must" in keyword:
        return PriorityLevel.MUST_HAVE
    if "should" in keyword:
        return PriorityLevel.SHOULD_HAVE
    if "could" in keyword:
        return PriorityLevel.COULD_HAVE
    if "won" in keyword:
        return PriorityLevel.WONT_HAVE
    return None


def match_priority(name: str, extraction: Dict[str, Any], explicit: Any = None) -> PriorityLevel:
    """
    Priority bucket for a feature.

    Buckets are checked strongest first, both at the top level of the
    extraction payload and under ``priorities``. Without a bucket match
    an explicit priority keyword is used, and failing that ``wont_have``.
    """
    nested = extraction.get("priorities") if isinstance(extraction.get("priorities"), dict) else {}
    for level in PriorityLevel:
        candidates = _names(extraction.get(level.value)) + _names(nested.get(level.value))
        if any(fuzzy_match(name, candidate) for candidate in candidates):
            return level
    return _priority_from_keyword(explicit) or PriorityLevel.WONT_HAVE


def match_dependencies(name: str, extraction: Dict[str, Any], fallback: Any = None) -> List[str]:
    """Dependencies from ``feature_dependencies``, else ``fallback``, else none."""
    entries = extraction.get("feature_dependencies") or []
    if isinstance(entries, dict):
        entries = [{"feature": feature, "depends_on": deps} for feature, deps in entries.items()]

    for entry in entries if isinstance(entries, list) else []:
        if not isinstance(entry, dict):
            continue
        feature = entry.get("feature") or entry.get("name") or ""
        if fuzzy_match(name, feature):
            return _names(entry.get("depends_on") or entry.get("dependencies"))

    return _names(fallback)


def _quarter_entry(breakdown: Dict[str, Any], quarter: str) -> Any:
    return breakdown.get(quarter) or breakdown.get(quarter.lower())


def extract_milestones(planning: Dict[str, Any]) -> List[Milestone]:
    """
    Milestones per quarter.

    Explicit ``milestone_gate``/``milestone`` values win. Otherwise each
    quarter's narrative is split on ``.`` and sentences mentioning a
    milestone, release or launch are kept, cut to 50 characters. With
    nothing found the two default milestones are returned.
    """
    breakdown = planning.get("quarterly_breakdown")
    breakdown = breakdown if isinstance(breakdown, dict) else {}

    milestones: List[Milestone] = []
    for quarter_number, quarter in enumerate(QUARTERS, start=1):
        entry = _quarter_entry(breakdown, quarter)
        if isinstance(entry, dict):
            gate = entry.get("milestone_gate") or entry.get("milestone")
            if isinstance(gate, str) and gate.strip():
                milestones.append(Milestone(name=gate.strip(), quarter=quarter_number))
    if milestones:
        return milestones

    for quarter_number, quarter in enumerate(QUARTERS, start=1):
        entry = _quarter_entry(breakdown, quarter)
        if isinstance(entry, dict):
            entry = entry.get("narrative") or entry.get("description") or entry.get("summary")
        if not isinstance(entry, str):
            continue
        for sentence in entry.split("."):
            sentence = sentence.strip()
            if sentence and any(keyword in sentence.lower() for keyword in MILESTONE_KEYWORDS):
                milestones.append(Milestone(name=sentence[:MILESTONE_NAME_LIMIT], quarter=quarter_number))

    if milestones:
        return milestones
    return [Milestone(name=name, quarter=quarter) for name, quarter in DEFAULT_MILESTONES]


def _quarter_buckets(planning: Dict[str, Any]) -> Dict[int, List[str]]:
    breakdown = planning.get("quarterly_breakdown")
    breakdown = breakdown if isinstance(breakdown, dict) else {}
    buckets = {}
    for quarter_number, quarter in enumerate(QUARTERS, start=1):
        names = _names(planning.get(f"q{quarter_number}_features"))
        entry = _quarter_entry(breakdown, quarter)
        if isinstance(entry, dict):
            names += _names(entry.get("features"))
        buckets[quarter_number] = names
    return buckets


def _normalize_status(value: Any) -> FeatureStatus:
    status = str(value or "").lower()
    if "progress" in status:
        return FeatureStatus.IN_PROGRESS
    if "completed" in status or "done" in status:
        return FeatureStatus.COMPLETED
    if "block" in status:
        return FeatureStatus.BLOCKED
    if "risk" in status:
        return FeatureStatus.AT_RISK
    return FeatureStatus.PLANNED


def _normalize_risk(value: Any) -> RiskLevel:
    risk = str(value or "").lower()
    if "high" in risk:
        return RiskLevel.HIGH
    if "medium" in risk:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _by_lower_name(items: Iterable[Any]) -> Dict[str, Dict[str, Any]]:
    indexed = {}
    for item in items:
        if isinstance(item, dict) and isinstance(item.get("name"), str):
            indexed.setdefault(item["name"].strip().lower(), item)
    return indexed


def reconcile(extraction_output: Any, planning_output: Any) -> Optional[RoadmapData]:
    """
    Build a RoadmapData from the extraction and planning node outputs.

    Args:
        extraction_output: Raw text or parsed mapping from the extraction step
        planning_output: Raw text or parsed mapping from the planning step

    Returns:
        RoadmapData, or None when either input is not JSON or there is
        nothing to place on a roadmap
    """
    extraction = coerce_json(extraction_output)
    planning = coerce_json(planning_output)
    if extraction is None or planning is None:
        logger.info("Roadmap reconciliation skipped: extraction or planning output is not JSON")
        return None

    try:
        return _build_roadmap(extraction, planning)
    except (ValidationError, TypeError, ValueError, AttributeError, OverflowError) as e:
        logger.exception(f"Roadmap reconciliation failed: {e}")
        return None


def _build_roadmap(extraction: Dict[str, Any], planning: Dict[str, Any]) -> Optional[RoadmapData]:
    raw_features = extraction.get("features") or planning.get("features") or []
    raw_features = raw_features if isinstance(raw_features, list) else []
    raw_workstreams = [ws for ws in planning.get("workstreams") or [] if isinstance(ws, dict)]

    order: List[str] = []
    quarters: Dict[str, set] = {}
    owning_workstream: Dict[str, str] = {}

    def add(name: str):
        if name not in quarters:
            order.append(name)
            quarters[name] = set()

    for quarter_number, names in _quarter_buckets(planning).items():
        for name in names:
            add(name)
            quarters[name].add(quarter_number)

    for workstream in raw_workstreams:
        workstream_name = workstream.get("name") or "General"
        for name in _names(workstream.get("features")):
            add(name)
            owning_workstream.setdefault(name, workstream_name)

    for name in _names(raw_features):
        add(name)

    if not order and not raw_workstreams:
        logger.info("Roadmap reconciliation skipped: no features or workstreams")
        return None

    details = _by_lower_name(raw_features)
    metadata = _by_lower_name(planning.get("feature_metadata") or [])
    default_workstream = "General" if raw_workstreams else "Core"

    features: List[RoadmapFeature] = []
    used_ids = set()
    for index, name in enumerate(order, start=1):
        key = name.lower()
        detail = details.get(key, {})
        meta = metadata.get(key, {})

        assigned = set(quarters[name])
        for quarter in meta.get("assigned_quarters") or []:
            quarter = _as_int(quarter)
            if quarter is not None:
                assigned.add(quarter)
        assigned = {quarter for quarter in assigned if 1 <= quarter <= 4} or {1}

        feature_id = str(detail.get("id") or f"f-{index}")
        if feature_id in used_ids:
            feature_id = f"f-{index}"
        used_ids.add(feature_id)

        confidence = _as_int(meta.get("confidence_score"))
        subtasks = [
            Subtask(name=subtask.get("name") or "Process Item", status=_normalize_status(subtask.get("status")))
            for subtask in meta.get("subtasks") or []
            if isinstance(subtask, dict)
        ]

        features.append(RoadmapFeature(
            id=feature_id,
            name=name,
            description=detail.get("description"),
            priority=match_priority(name, extraction, detail.get("priority") or meta.get("priority")),
            quarters=sorted(assigned),
            dependencies=match_dependencies(name, extraction, meta.get("dependencies") or detail.get("dependencies")),
            effort=_as_int(detail.get("estimated_effort") or detail.get("effort")),
            workstream=owning_workstream.get(name, default_workstream),
            status=_normalize_status(meta.get("status")),
            subtasks=subtasks,
            risk=_normalize_risk(meta.get("risk_level")),
            risk_reason=meta.get("risk_reason"),
            team=meta.get("assigned_team") or "Cross-Functional",
            confidence=max(0, min(100, confidence)) if confidence is not None else 75,
            is_critical_path=bool(meta.get("is_critical_path")),
            prediction_rationale=meta.get("prediction_rationale"),
        ))

    workstreams = [
        Workstream(
            id=workstream.get("name") or f"ws-{index}",
            name=workstream.get("name") or "Core Operations",
            purpose=workstream.get("purpose") or "Alignment and execution target.",
        )
        for index, workstream in enumerate(raw_workstreams, start=1)
    ]

    insights = [
        AIInsight(
            type=str(insight.get("type") or "suggestion"),
            title=str(insight.get("title") or ""),
            description=str(insight.get("description") or ""),
            severity=_normalize_risk(insight.get("severity")),
        )
        for insight in planning.get("ai_insights") or []
        if isinstance(insight, dict)
    ]

    roadmap = RoadmapData(
        workstreams=workstreams,
        features=features,
        milestones=extract_milestones(planning),
        summary=planning.get("strategy") or extraction.get("vision") or DEFAULT_SUMMARY,
        insights=insights,
    )
    logger.info(f"Reconciled roadmap: {len(features)} features, {len(workstreams)} workstreams, "
                f"{len(roadmap.milestones)} milestones")
    return roadmap
