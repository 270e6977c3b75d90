#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Instruction templates for the orchestration loop.

The loop does not depend on the wording here; these are the defaults the
orchestrator sends when the caller does not supply its own.
"""

import json
from typing import Dict

from .state import OrchestrationRequest, WorkflowType

ORCHESTRATOR_SYSTEM_PROMPT = """You are the orchestrator for NetworkOS, a go-to-market intelligence platform. Your role is to:

1. Analyze incoming requests and determine the best sequence of capability calls
2. Coordinate company research, opportunity scoring, contact discovery and pitch generation
3. Decide when to enrich data and when existing data is enough
4. Optimize for both speed and quality
5. Provide strategic recommendations

Always think step-by-step:
1. What do we already know?
2. What do we need to find out?
3. Which capabilities should we use and in what order?
4. What's the expected outcome?

Be efficient and don't run unnecessary operations. When you have what the user
needs, call complete_workflow with a summary, recommendations and next steps."""

CONTINUE_PROMPT = (
    "Continue the workflow. Use the available tools, or call complete_workflow "
    "if you have enough information."
)

WORKFLOW_TEMPLATES: Dict[WorkflowType, str] = {
    WorkflowType.FULL_QUALIFICATION: """Execute a full lead qualification workflow:

{context}

Steps to complete:
1. Research the company thoroughly
2. Score the opportunity
3. Find decision makers and champions
4. Generate personalized pitches
5. Save to pipeline if score is high enough (>60)

Use tools strategically. When done, use complete_workflow to summarize.""",

    WorkflowType.QUICK_ASSESSMENT: """Perform a quick assessment of this opportunity:

{context}

Steps:
1. Quick research (basic depth)
2. Score the opportunity
3. Provide recommendations

Don't find contacts or generate pitches. Focus on speed.
Use complete_workflow when done.""",

    WorkflowType.FIND_CHAMPIONS: """Find and analyze potential champions at this company:

{context}

Steps:
1. Brief research to understand the company
2. Find contacts with focus on decision makers
3. Analyze who would champion our solutions

Use complete_workflow with recommendations on who to contact first.""",

    WorkflowType.CREATE_CAMPAIGN: """Create a multi-touch outreach campaign:

{context}

Steps:
1. Research company if needed
2. Find key contacts
3. Generate multiple pitch types (email, linkedin, call script)
4. Provide campaign strategy

Use complete_workflow with the full campaign plan.""",

    WorkflowType.ENRICH_AND_SCORE: """Enrich this existing lead and provide updated scoring:

{context}

Steps:
1. Research to enrich existing data
2. Score with full analysis
3. Recommend if this should be prioritized

Use complete_workflow with enrichment summary.""",

    WorkflowType.CUSTOM: """Analyze this request and determine the best approach:

{context}

{instructions}

Use your judgment to decide which tools to use and in what order.
Use complete_workflow when you have enough information to provide valuable recommendations.""",
}


def build_context(request: OrchestrationRequest) -> str:
    """Describe what the caller already knows and the run options."""
    data = request.input
    options = request.options
    lines = [
        f"Domain: {data.domain or 'Not provided'}",
        f"Company Name: {data.company_name or 'Unknown'}",
    ]
    if data.existing_company:
        lines.append(f"Existing Company Data: {json.dumps(data.existing_company, indent=2, default=str)}")
    else:
        lines.append("No existing company data")
    if data.existing_contacts:
        lines.append(f"Existing Contacts: {len(data.existing_contacts)} contacts on file")
    else:
        lines.append("No existing contacts")
    if data.target_roles:
        lines.append(f"Target Roles: {', '.join(data.target_roles)}")
    if data.focus_products:
        lines.append(f"Focus Products: {', '.join(data.focus_products)}")
    if data.custom_instructions:
        lines.append(f"Custom Instructions: {data.custom_instructions}")

    lines += [
        "",
        "Options:",
        f"- Depth: {options.depth}",
        f"- Save Results: {options.save_results}",
        f"- Generate Pitches: {options.generate_pitches}",
        f"- Pitch Types: {', '.join(options.pitch_types)}",
    ]
    return "\n".join(lines)


def build_instruction(request: OrchestrationRequest) -> str:
    """Initial user message for a run."""
    template = WORKFLOW_TEMPLATES.get(request.type, WORKFLOW_TEMPLATES[WorkflowType.CUSTOM])
    instructions = request.input.custom_instructions or "Analyze the opportunity and take appropriate actions."
    return template.format(context=build_context(request), instructions=instructions)
