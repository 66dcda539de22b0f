# Centralized prompts for the design week ingestion pipeline.
# - Every prompt asks for strict JSON with snake_case keys that map onto
#   app.schemas.pipeline models.
# - Prompts provided:
#   1) CLASSIFICATION_PROMPT
#   2) GENERAL_EXTRACTION_PROMPT
#   3) SECOND_PASS_PROMPT
#   4) SPECIALIZED_FOCUS + CHECKLISTS (assembled by the specialized stage)
#   5) TRANSCRIPT_PROMPTS (synchronous transcript extraction)

# =============================================================================
# SHARED GUIDES
# =============================================================================
CONFIDENCE_SCORING_GUIDE = r"""
## Confidence scoring
- 0.95-1.0: stated explicitly, with a concrete value or name
- 0.80-0.94: stated clearly but without every detail
- 0.60-0.79: implied or partially stated, needs confirmation
- 0.50-0.59: weak signal, best interpretation
Never invent facts. Omit anything below 0.50.
"""

ENTITY_JSON_SHAPE = r"""
{
  "id": "<short unique id>",
  "category": "BUSINESS|PROCESS|SCOPE|CHANNELS|SKILLS|COMMUNICATION|GUARDRAILS|INTEGRATIONS|SECURITY|DECISIONS",
  "type": "<EXACT type from the list>",
  "content": "<the extracted information>",
  "confidence": 0.9,
  "source_quote": "<short exact quote, max 50 characters>",
  "source_speaker": "<speaker if identifiable, else null>",
  "source_timestamp": <seconds into the recording, or null>,
  "structured_data": { }
}
"""

ITEM_TYPE_REFERENCE = r"""
### BUSINESS
- STAKEHOLDER: person involved (name, role, contact)
- GOAL: business objective (max 3, consolidate)
- BUSINESS_CASE: problem statement with pain points as bullets
- KPI_TARGET: measurable indicator WITH a target value
- VOLUME_EXPECTATION: case volume, normalized to monthly in structured_data
- COST_PER_CASE, PEAK_PERIODS, TIMELINE_CONSTRAINT

### PROCESS
- HAPPY_PATH_STEP: an action in the standard flow
- EXCEPTION_CASE: a non-standard scenario (trigger, action, escalation)
- CASE_TYPE, ESCALATION_TRIGGER, BUSINESS_RULE, DOCUMENT_TYPE

### SCOPE
- SCOPE_IN / SCOPE_OUT: concrete things the digital employee will / will not handle

### CHANNELS
- CHANNEL, CHANNEL_VOLUME, CHANNEL_SLA, CHANNEL_RULE

### SKILLS
- SKILL_ANSWER, SKILL_ROUTE, SKILL_APPROVE_REJECT, SKILL_REQUEST_INFO,
  SKILL_NOTIFY, SKILL_OTHER, KNOWLEDGE_SOURCE, RESPONSE_TEMPLATE

### COMMUNICATION
- BRAND_TONE, COMMUNICATION_STYLE (one consolidated entity each)

### GUARDRAILS
- GUARDRAIL_NEVER, GUARDRAIL_ALWAYS, FINANCIAL_LIMIT, LEGAL_RESTRICTION,
  COMPLIANCE_REQUIREMENT

### INTEGRATIONS
- SYSTEM_INTEGRATION, DATA_FIELD, API_ENDPOINT, SECURITY_REQUIREMENT,
  ERROR_HANDLING, TECHNICAL_CONTACT

### DECISIONS
- DECISION (a branch or condition), OPEN_ITEM, APPROVAL, RISK
"""

# =============================================================================
# STAGE 1: CLASSIFICATION
# =============================================================================
CLASSIFICATION_PROMPT = r"""
You classify uploaded content for a digital employee (AI agent) onboarding
programme. The content is a meeting recording, a transcript or a document.

Determine:
1. The content TYPE
2. Your CONFIDENCE in that type
3. The KEY INDICATORS that led to it
4. Important questions for this type that the content did NOT cover

## Content types
Sessions (meeting recordings or transcripts):
- KICKOFF_SESSION: goals, business case, volumes, success metrics, stakeholders
- PROCESS_DESIGN_SESSION: happy path, case types, channels, exceptions, scope
- SKILLS_GUARDRAILS_SESSION: skills, brand tone, never/always rules, limits
- TECHNICAL_SESSION: systems, APIs, data fields, security requirements
- SIGNOFF_SESSION: approvals, open items, decisions, risks

Documents:
- REQUIREMENTS_DOCUMENT: formal requirements or specification
- TECHNICAL_SPEC: technical specification or API documentation
- PROCESS_DOCUMENT: SOPs or workflow descriptions
- UNKNOWN: the type cannot be determined

## Confidence
- 0.9+: obvious
- 0.7-0.9: strong indicators
- 0.5-0.7: ambiguous
- below 0.5: best guess

Return ONLY:
{
  "type": "KICKOFF_SESSION",
  "confidence": 0.85,
  "key_indicators": ["phrase or topic that indicated the type"],
  "missing_questions": ["question that should have been covered but was not"]
}
"""

# =============================================================================
# STAGE 2: GENERAL EXTRACTION
# =============================================================================
GENERAL_EXTRACTION_PROMPT = (
    r"""
You extract entities useful for designing and implementing a digital employee
(AI agent) from the attached content.

## Rules
- NO DUPLICATES: extract each fact once, with its most complete wording.
- CONSOLIDATE: merge related details into one rich entity.
- Use EXACTLY the type names below (KPI_TARGET, not KPI; SCOPE_IN, not IN_SCOPE).
- Only extract what is actually present.

## Entity types
"""
    + ITEM_TYPE_REFERENCE
    + CONFIDENCE_SCORING_GUIDE
    + r"""
## Entity shape
"""
    + ENTITY_JSON_SHAPE
    + r"""
Return ONLY compact JSON:
{"entities": [...], "summary": {"total_entities": 42, "by_category": {"BUSINESS": 8}}}
"""
)

# =============================================================================
# STAGE 2b: CORRECTIVE SECOND PASS (two-pass mode)
# =============================================================================
SECOND_PASS_PROMPT = (
    r"""
You review a first-pass extraction against the attached content and correct it.

For every first-pass entity whose confidence is below 0.8, or whose type or
content looks wrong, re-read the content and either confirm it with a better
confidence, rewrite its content, or fix its type. Keep the entity "id"
unchanged so the correction can be matched. Then add any entities the first
pass missed.

Use EXACTLY these types:
"""
    + ITEM_TYPE_REFERENCE
    + CONFIDENCE_SCORING_GUIDE
    + r"""
Return ONLY:
{
  "refinements": [{"id": "<first-pass id>", "type": "...", "content": "...", "confidence": 0.9}],
  "new_entities": [<entity>, ...]
}
where each <entity> has this shape:
"""
    + ENTITY_JSON_SHAPE
)

# =============================================================================
# STAGE 3: SPECIALIZED EXTRACTION
# =============================================================================
SPECIALIZED_FOCUS = {
    "KICKOFF_SESSION": r"""
You are reviewing extraction results from a KICKOFF session. Focus on:
- Business context: is the problem defined, are current and target costs and volumes quantified?
- Success metrics: are KPIs concrete, are automation and accuracy targets set?
- Stakeholders: are decision makers and technical contacts identified, is the agent name proposed?
""",
    "PROCESS_DESIGN_SESSION": r"""
You are reviewing extraction results from a PROCESS DESIGN session. Focus on:
- Happy path: are steps in sequence, actionable, with decision points marked?
- Exceptions: are major exceptions and escalation triggers clear?
- Scope: are IN and OUT items concrete, with ambiguous items flagged?
""",
    "SKILLS_GUARDRAILS_SESSION": r"""
You are reviewing extraction results from a SKILLS & GUARDRAILS session. Focus on:
- Skills: is each skill defined, typed and backed by a knowledge source?
- Guardrails: are NEVER and ALWAYS rules clear, with financial and legal limits noted?
- Communication: are brand tone, formality and languages defined?
""",
    "TECHNICAL_SESSION": r"""
You are reviewing extraction results from a TECHNICAL session. Focus on:
- Integrations: are all systems identified with access type, data fields and API availability?
- Security: are authentication, compliance and data handling documented?
- Contacts: are system owners and API contacts listed?
""",
    "SIGNOFF_SESSION": r"""
You are reviewing extraction results from a SIGNOFF session. Focus on:
- Open items: tracked, owned and dated?
- Decisions: documented, with approvers and conditions?
- Risks: stated, mitigated and owned?
""",
    "REQUIREMENTS_DOCUMENT": r"""
You are reviewing extraction results from a REQUIREMENTS document. Focus on
functional and non-functional requirements and acceptance criteria.
""",
    "TECHNICAL_SPEC": r"""
You are reviewing extraction results from a TECHNICAL SPEC. Focus on API
documentation, data schemas and integration details.
""",
    "PROCESS_DOCUMENT": r"""
You are reviewing extraction results from a PROCESS document. Focus on process
flow, roles and exception handling.
""",
    "UNKNOWN": r"""
You are reviewing extraction results from unclassified content. Structure the
information logically and flag items that need clarification.
""",
}

CHECKLISTS = {
    "KICKOFF_SESSION": [
        "What problem are we solving? Why now?",
        "What's the current cost per case/transaction?",
        "What's the target cost after automation?",
        "What's the monthly volume?",
        "What does success look like? (KPIs)",
        "Who are the key stakeholders?",
        "What's the proposed DE name/role?",
    ],
    "PROCESS_DESIGN_SESSION": [
        "What's the happy path from start to finish?",
        "What case types exist? Volume distribution?",
        "Which channels are used? Volume per channel?",
        "What's the exception rate?",
        "When MUST this escalate to a human?",
        "What's IN scope vs OUT of scope?",
    ],
    "SKILLS_GUARDRAILS_SESSION": [
        "What skills does the DE need?",
        "What's the brand tone? Formality level?",
        "What languages are needed?",
        "What should the DE NEVER do?",
        "What should the DE ALWAYS do?",
        "Are there financial limits?",
        "Are there legal/compliance restrictions?",
    ],
    "TECHNICAL_SESSION": [
        "What systems need to be integrated?",
        "What's the access type (read/write)?",
        "What data fields are needed?",
        "Is API access available?",
        "Who's the technical contact?",
        "What are the security requirements?",
        "What are the compliance requirements?",
    ],
    "SIGNOFF_SESSION": [
        "Are all open items resolved?",
        "Are all decisions documented?",
        "Are risks identified and mitigated?",
        "Who is providing final approval?",
        "Are there any conditions on approval?",
    ],
    "REQUIREMENTS_DOCUMENT": [
        "Are functional requirements clearly defined?",
        "Are non-functional requirements specified?",
        "Are acceptance criteria included?",
        "Is scope clearly bounded?",
    ],
    "TECHNICAL_SPEC": [
        "Are API endpoints documented?",
        "Are data schemas defined?",
        "Are authentication requirements specified?",
        "Are error handling approaches documented?",
    ],
    "PROCESS_DOCUMENT": [
        "Is the process flow clearly documented?",
        "Are roles and responsibilities defined?",
        "Are exceptions and escalations covered?",
        "Are SLAs specified?",
    ],
    "UNKNOWN": [
        "Could not determine content type - consider re-uploading with more context",
    ],
}

SPECIALIZED_TASK = r"""
## Your task
1. Review each extracted entity and enhance its content or structured_data if needed.
2. Check which checklist questions the entities answer.
3. List the checklist questions that are NOT answered.
4. Add any entities that were missed.

Return ONLY:
{
  "items": [<entity>, ...],
  "checklist": {
    "questions_asked": ["..."],
    "questions_missing": ["..."],
    "coverage_score": 0.75
  }
}
"""

# =============================================================================
# SYNCHRONOUS TRANSCRIPT EXTRACTION
# =============================================================================
_TRANSCRIPT_ITEM_SHAPE = r"""
For each item return type, category (a sub-category), content, confidence,
source_quote, source_speaker and, where useful, structured_data.

Return ONLY:
{
  "items": [
    {"type": "STAKEHOLDER", "category": "decision_maker",
     "content": "John Smith - VP of Operations, responsible for sign-off",
     "confidence": 0.95, "source_quote": "John will need to approve this",
     "source_speaker": "Client PM"}
  ],
  "warnings": ["expected data that could not be found"]
}
"""

TRANSCRIPT_PROMPTS = {
    "kickoff": r"""
You extract structured information from a Design Week KICKOFF session transcript:
stakeholders (STAKEHOLDER), goals (GOAL), KPI targets (KPI_TARGET), volume
expectations (VOLUME_EXPECTATION) and timeline constraints (TIMELINE_CONSTRAINT).
""",
    "process": r"""
You extract process design information from a Design Week PROCESS session
transcript: happy path steps (HAPPY_PATH_STEP), exception cases (EXCEPTION_CASE),
business rules (BUSINESS_RULE), scope (SCOPE_IN, SCOPE_OUT), escalation triggers
(ESCALATION_TRIGGER), channels (CHANNEL) and case types (CASE_TYPE).
""",
    "technical": r"""
You extract technical information from a Design Week TECHNICAL session
transcript: system integrations (SYSTEM_INTEGRATION), data fields (DATA_FIELD),
API endpoints (API_ENDPOINT), security requirements (SECURITY_REQUIREMENT),
error handling (ERROR_HANDLING) and technical contacts (TECHNICAL_CONTACT).
""",
    "signoff": r"""
You extract sign-off information from a Design Week SIGNOFF session transcript:
decisions (DECISION), open items (OPEN_ITEM) with their owners, approvals
(APPROVAL) and risks (RISK). Clearly distinguish confirmed decisions from open items.
""",
    "persona": r"""
You extract persona and conversational design information from a Design Week
session transcript: persona traits (PERSONA_TRAIT), tone rules (TONE_RULE),
do's and don'ts (DOS_AND_DONTS), example dialogues (EXAMPLE_DIALOGUE),
escalation scripts (ESCALATION_SCRIPT), monitoring metrics (MONITORING_METRIC),
launch criteria (LAUNCH_CRITERION) and decision trees (DECISION_TREE).
""",
}


def build_transcript_prompt(session_type: str) -> str:
    return TRANSCRIPT_PROMPTS[session_type] + CONFIDENCE_SCORING_GUIDE + _TRANSCRIPT_ITEM_SHAPE
