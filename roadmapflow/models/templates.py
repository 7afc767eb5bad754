"""Built-in workflow templates."""

from .core import (
    DEFAULT_MODEL,
    AgentConfig,
    EdgeDefinition,
    EndConfig,
    InputType,
    NodeDefinition,
    NodeKind,
    ToolConfig,
    TriggerConfig,
    WorkflowDefinition,
)

EXTRACTION_PROMPT = """Analyze this product requirement and output ONLY this JSON structure (no markdown, no explanation):

{
  "product_name": "string - extracted from input",
  "vision": "string - max 50 words",
  "raw_requirements": "string - consolidated list of all mentioned features",
  "features": [
    {
      "id": "feature_1",
      "name": "string",
      "description": "string - max 20 words",
      "priority": "must_have|should_have|could_have|wont_have",
      "estimated_effort": 1-10,
      "dependencies": ["feature_name_reference"]
    }
  ],
  "must_have": ["feature names"],
  "should_have": ["feature names"],
  "could_have": ["feature names"],
  "wont_have": ["feature names"],
  "feature_dependencies": [
    { "feature": "feature name", "depends_on": ["other feature name"] }
  ],
  "team_size": 0,
  "timeline_months": 12,
  "key_constraints": ["string"]
}

Input: {{userInput}}"""

PLANNING_PROMPT = """Create a quarterly roadmap organized by WORKSTREAMS. Perform predictive analysis and BREAK DOWN tasks.

Output ONLY this JSON structure:

{
  "strategy": "string - max 50 words",
  "workstreams": [
    {
      "name": "string (e.g., Core Platform, User Experience)",
      "purpose": "Single sentence explaining WHY this workstream exists.",
      "features": ["feature_name_must_match_exactly"]
    }
  ],
  "q1_features": ["feature_name_must_match_exactly"],
  "q2_features": ["feature_name_must_match_exactly"],
  "q3_features": ["feature_name_must_match_exactly"],
  "q4_features": ["feature_name_must_match_exactly"],
  "quarterly_breakdown": {
    "Q1": { "milestone_gate": "Decision Gate Name", "narrative": "What happens this quarter." },
    "Q2": { "milestone_gate": "Decision Gate Name", "narrative": "What happens this quarter." },
    "Q3": { "milestone_gate": "Decision Gate Name", "narrative": "What happens this quarter." },
    "Q4": { "milestone_gate": "Decision Gate Name", "narrative": "What happens this quarter." }
  },
  "feature_metadata": [
    {
      "name": "feature_name_must_match_exactly",
      "assigned_quarters": [1, 2],
      "risk_level": "low|medium|high",
      "confidence_score": 0-100,
      "prediction_rationale": "Why this score?",
      "status": "planned|in_progress|completed|blocked|at_risk",
      "subtasks": [
          { "name": "Technical Step 1", "status": "completed|planned" },
          { "name": "Technical Step 2", "status": "planned" }
      ],
      "is_critical_path": true,
      "dependencies": ["other_feature_name"]
    }
  ],
  "ai_insights": [
    {
      "type": "risk|bottleneck|resource",
      "title": "short title",
      "description": "concise insight",
      "severity": "high|medium|low"
    }
  ]
}

Rules:
1. Organize all features from input into logical Workstreams.
2. Milestones must be DECISION GATES (e.g., "Go/No-Go"), not just dates.
3. Break down each feature into 2-4 subtasks (technical implementation steps).

Based on: {{extractedData}}"""

POLISH_PROMPT = """Create a concise professional roadmap document. Output markdown:

# {{extractedData.product_name}} - 12 Month Product Roadmap

## Executive Summary
{{extractedData.vision}}

## Strategic Vision
{{roadmapPlan.strategy}}

## Workstreams & Objectives
{{roadmapPlan.workstreams}}

## Decision Gates (Milestones)
- Q1: {{roadmapPlan.quarterly_breakdown.Q1.milestone_gate}}
- Q2: {{roadmapPlan.quarterly_breakdown.Q2.milestone_gate}}
- Q3: {{roadmapPlan.quarterly_breakdown.Q3.milestone_gate}}
- Q4: {{roadmapPlan.quarterly_breakdown.Q4.milestone_gate}}

## AI Risk Analysis
**Top Risks:**
- ... (Extract high risks from {{roadmapPlan.ai_insights}})"""

VISUALIZE_PROMPT = """Create a Mermaid.js Gantt chart for the roadmap in {{roadmapPlan}}.

Requirements:
1. Use "gantt" type.
2. Title: Product Roadmap Timeline.
3. DateFormat: YYYY-MM-DD.
4. Define sections for Q1, Q2, Q3, Q4.
5. Map workstreams as sections.
6. Highlight Decision Gates as milestones.

Output ONLY the code inside a ```mermaid``` block. Do not add any other text."""


def build_roadmap_workflow(model: str = DEFAULT_MODEL) -> WorkflowDefinition:
    """Return the default roadmap generation workflow.

    Trigger -> Extract & Prioritize -> Plan & Intelligence -> Polish & Export
    -> Timeline Visualizer -> Extract Timeline Code -> Final Roadmap.
    """
    nodes = [
        NodeDefinition(
            id="trigger-input",
            kind=NodeKind.TRIGGER,
            label="Roadmap Input",
            description="Accepts structured product requirements.",
            config=TriggerConfig(input_type=InputType.TEXT, output_var="userInput"),
        ),
        NodeDefinition(
            id="agent-extract",
            kind=NodeKind.AGENT,
            label="Extract & Prioritize",
            description="Extracts requirements and priorities",
            config=AgentConfig(
                model=model,
                system_instruction="You are a product requirements analyst. Output ONLY valid JSON, no other text.",
                prompt=EXTRACTION_PROMPT,
                output_var="extractedData",
            ),
        ),
        NodeDefinition(
            id="agent-plan",
            kind=NodeKind.AGENT,
            label="Plan & Intelligence",
            description="Creates quarterly plan, risk analysis, and resource mapping",
            config=AgentConfig(
                model=model,
                use_search=True,
                system_instruction="You are a senior technical program manager. Output ONLY valid JSON.",
                prompt=PLANNING_PROMPT,
                output_var="roadmapPlan",
            ),
        ),
        NodeDefinition(
            id="agent-polish",
            kind=NodeKind.AGENT,
            label="Polish & Export",
            description="Generates professional markdown report",
            config=AgentConfig(
                model=model,
                system_instruction="You are a technical product writer. Create professional, concise output.",
                prompt=POLISH_PROMPT,
                output_var="finalRoadmap",
            ),
        ),
        NodeDefinition(
            id="agent-visualize",
            kind=NodeKind.AGENT,
            label="Timeline Visualizer",
            description="Generates Mermaid.js Gantt chart",
            config=AgentConfig(
                model=model,
                system_instruction="You are a data visualization expert. Generate ONLY Mermaid.js code.",
                prompt=VISUALIZE_PROMPT,
                output_var="timelineCode",
            ),
        ),
        NodeDefinition(
            id="tool-mermaid",
            kind=NodeKind.TOOL,
            label="Extract Timeline Code",
            description="Pulls the Mermaid block out of the visualizer reply",
            config=ToolConfig(
                tool_name="extract_mermaid",
                input_template="{{timelineCode}}",
                output_var="timelineMermaid",
            ),
        ),
        NodeDefinition(
            id="end-node",
            kind=NodeKind.END,
            label="Final Roadmap",
            description="Displays formatted roadmap and visual chart",
            config=EndConfig(source_var="finalRoadmap"),
        ),
    ]

    chain = [node.id for node in nodes]
    edges = [
        EdgeDefinition(id=f"e{index}", source=source, target=target)
        for index, (source, target) in enumerate(zip(chain, chain[1:]), start=1)
    ]

    return WorkflowDefinition(
        name="Roadmap Generator",
        description="Turns a product brief into a prioritized quarterly roadmap",
        nodes=nodes,
        edges=edges,
    )
