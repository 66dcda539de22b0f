"""Extracted item taxonomy, provider-label aliases and profile placement."""

from enum import Enum
from typing import Optional


class ExtractedItemType(str, Enum):
    # Business context
    STAKEHOLDER = "STAKEHOLDER"
    GOAL = "GOAL"
    KPI_TARGET = "KPI_TARGET"
    VOLUME_EXPECTATION = "VOLUME_EXPECTATION"
    TIMELINE_CONSTRAINT = "TIMELINE_CONSTRAINT"
    BUSINESS_CASE = "BUSINESS_CASE"
    COST_PER_CASE = "COST_PER_CASE"
    PEAK_PERIODS = "PEAK_PERIODS"
    # Process
    HAPPY_PATH_STEP = "HAPPY_PATH_STEP"
    EXCEPTION_CASE = "EXCEPTION_CASE"
    BUSINESS_RULE = "BUSINESS_RULE"
    ESCALATION_TRIGGER = "ESCALATION_TRIGGER"
    CASE_TYPE = "CASE_TYPE"
    DOCUMENT_TYPE = "DOCUMENT_TYPE"
    # Scope
    SCOPE_IN = "SCOPE_IN"
    SCOPE_OUT = "SCOPE_OUT"
    # Channels
    CHANNEL = "CHANNEL"
    CHANNEL_VOLUME = "CHANNEL_VOLUME"
    CHANNEL_SLA = "CHANNEL_SLA"
    CHANNEL_RULE = "CHANNEL_RULE"
    # Skills and knowledge
    SKILL_ANSWER = "SKILL_ANSWER"
    SKILL_ROUTE = "SKILL_ROUTE"
    SKILL_APPROVE_REJECT = "SKILL_APPROVE_REJECT"
    SKILL_REQUEST_INFO = "SKILL_REQUEST_INFO"
    SKILL_NOTIFY = "SKILL_NOTIFY"
    SKILL_OTHER = "SKILL_OTHER"
    KNOWLEDGE_SOURCE = "KNOWLEDGE_SOURCE"
    RESPONSE_TEMPLATE = "RESPONSE_TEMPLATE"
    # Communication
    BRAND_TONE = "BRAND_TONE"
    COMMUNICATION_STYLE = "COMMUNICATION_STYLE"
    # Guardrails
    GUARDRAIL_NEVER = "GUARDRAIL_NEVER"
    GUARDRAIL_ALWAYS = "GUARDRAIL_ALWAYS"
    FINANCIAL_LIMIT = "FINANCIAL_LIMIT"
    LEGAL_RESTRICTION = "LEGAL_RESTRICTION"
    COMPLIANCE_REQUIREMENT = "COMPLIANCE_REQUIREMENT"
    # Technical
    SYSTEM_INTEGRATION = "SYSTEM_INTEGRATION"
    DATA_FIELD = "DATA_FIELD"
    API_ENDPOINT = "API_ENDPOINT"
    SECURITY_REQUIREMENT = "SECURITY_REQUIREMENT"
    ERROR_HANDLING = "ERROR_HANDLING"
    TECHNICAL_CONTACT = "TECHNICAL_CONTACT"
    # Sign-off
    OPEN_ITEM = "OPEN_ITEM"
    DECISION = "DECISION"
    APPROVAL = "APPROVAL"
    RISK = "RISK"
    # Persona and conversational design
    PERSONA_TRAIT = "PERSONA_TRAIT"
    TONE_RULE = "TONE_RULE"
    DOS_AND_DONTS = "DOS_AND_DONTS"
    EXAMPLE_DIALOGUE = "EXAMPLE_DIALOGUE"
    ESCALATION_SCRIPT = "ESCALATION_SCRIPT"
    MONITORING_METRIC = "MONITORING_METRIC"
    LAUNCH_CRITERION = "LAUNCH_CRITERION"
    DECISION_TREE = "DECISION_TREE"


# Labels models commonly return instead of the canonical type
TYPE_ALIASES = {
    "OBJECTIVE": "GOAL",
    "TARGET": "GOAL",
    "PROBLEM": "BUSINESS_CASE",
    "BUSINESS_CONTEXT": "BUSINESS_CASE",
    "REQUIREMENT": "BUSINESS_CASE",
    "FUNCTIONAL_REQUIREMENT": "BUSINESS_CASE",
    "NON_FUNCTIONAL_REQUIREMENT": "BUSINESS_CASE",
    "ACCEPTANCE_CRITERIA": "BUSINESS_CASE",
    "KPI": "KPI_TARGET",
    "SUCCESS_METRIC": "KPI_TARGET",
    "METRIC": "KPI_TARGET",
    "VOLUME": "VOLUME_EXPECTATION",
    "COST": "COST_PER_CASE",
    "ROLE": "STAKEHOLDER",
    "PERSON": "STAKEHOLDER",
    "CONTACT": "STAKEHOLDER",
    "TIMELINE": "TIMELINE_CONSTRAINT",
    "DEADLINE": "TIMELINE_CONSTRAINT",
    "PEAK_PERIOD": "PEAK_PERIODS",
    "PROCESS_STEP": "HAPPY_PATH_STEP",
    "WORKFLOW_STEP": "HAPPY_PATH_STEP",
    "STEP": "HAPPY_PATH_STEP",
    "PROCESS": "HAPPY_PATH_STEP",
    "PROCESS_FLOW": "HAPPY_PATH_STEP",
    "WORKFLOW": "HAPPY_PATH_STEP",
    "EXCEPTION": "EXCEPTION_CASE",
    "ERROR_CASE": "EXCEPTION_CASE",
    "EDGE_CASE": "EXCEPTION_CASE",
    "REQUEST_TYPE": "CASE_TYPE",
    "ESCALATION_RULE": "ESCALATION_TRIGGER",
    "ESCALATION": "ESCALATION_TRIGGER",
    "RULE": "BUSINESS_RULE",
    "ATTACHMENT": "DOCUMENT_TYPE",
    "IN_SCOPE": "SCOPE_IN",
    "OUT_OF_SCOPE": "SCOPE_OUT",
    "EXCLUDED": "SCOPE_OUT",
    "INPUT_CHANNEL": "CHANNEL",
    "OUTPUT_CHANNEL": "CHANNEL",
    "COMMUNICATION_CHANNEL": "CHANNEL",
    "SLA": "CHANNEL_SLA",
    "RESPONSE_TIME": "CHANNEL_SLA",
    "SKILL": "SKILL_OTHER",
    "CAPABILITY": "SKILL_OTHER",
    "ABILITY": "SKILL_OTHER",
    "ANSWER": "SKILL_ANSWER",
    "ROUTING": "SKILL_ROUTE",
    "NOTIFICATION": "SKILL_NOTIFY",
    "KNOWLEDGE": "KNOWLEDGE_SOURCE",
    "KNOWLEDGE_BASE": "KNOWLEDGE_SOURCE",
    "TEMPLATE": "RESPONSE_TEMPLATE",
    "TONE": "BRAND_TONE",
    "LANGUAGE": "COMMUNICATION_STYLE",
    "FORMALITY": "COMMUNICATION_STYLE",
    "NEVER": "GUARDRAIL_NEVER",
    "PROHIBITED": "GUARDRAIL_NEVER",
    "FORBIDDEN": "GUARDRAIL_NEVER",
    "ALWAYS": "GUARDRAIL_ALWAYS",
    "MANDATORY": "GUARDRAIL_ALWAYS",
    "REQUIRED": "GUARDRAIL_ALWAYS",
    "LIMIT": "FINANCIAL_LIMIT",
    "LEGAL": "LEGAL_RESTRICTION",
    "COMPLIANCE": "COMPLIANCE_REQUIREMENT",
    "INTEGRATION": "SYSTEM_INTEGRATION",
    "SYSTEM": "SYSTEM_INTEGRATION",
    "FIELD": "DATA_FIELD",
    "API": "API_ENDPOINT",
    "ENDPOINT": "API_ENDPOINT",
    "SECURITY": "SECURITY_REQUIREMENT",
    "AUTH_REQUIREMENT": "SECURITY_REQUIREMENT",
    "AUTHENTICATION": "SECURITY_REQUIREMENT",
    "TECH_CONTACT": "TECHNICAL_CONTACT",
    "TODO": "OPEN_ITEM",
    "ACTION_ITEM": "OPEN_ITEM",
    "PENDING": "OPEN_ITEM",
    "DECISION_POINT": "DECISION",
    "SIGN_OFF": "APPROVAL",
    "CONCERN": "RISK",
    "ISSUE": "RISK",
}


def normalize_item_type(raw_type: Optional[str]) -> Optional[ExtractedItemType]:
    """Map a provider label to the canonical type, or None if unknown."""
    if not raw_type:
        return None
    key = raw_type.strip().upper().replace("-", "_").replace(" ", "_")
    key = TYPE_ALIASES.get(key, key)
    try:
        return ExtractedItemType(key)
    except ValueError:
        return None


T = ExtractedItemType

# (profile, section) each item type is shown under
PROFILE_PLACEMENT = {
    T.STAKEHOLDER: ("business", "stakeholders"),
    T.GOAL: ("business", "goals"),
    T.KPI_TARGET: ("business", "kpis"),
    T.VOLUME_EXPECTATION: ("business", "volumes"),
    T.PEAK_PERIODS: ("business", "volumes"),
    T.TIMELINE_CONSTRAINT: ("business", "timeline"),
    T.BUSINESS_CASE: ("business", "business_case"),
    T.COST_PER_CASE: ("business", "business_case"),
    T.HAPPY_PATH_STEP: ("business", "process"),
    T.EXCEPTION_CASE: ("business", "exceptions"),
    T.CASE_TYPE: ("business", "process"),
    T.DOCUMENT_TYPE: ("business", "process"),
    T.ESCALATION_TRIGGER: ("business", "escalations"),
    T.BUSINESS_RULE: ("business", "business_rules"),
    T.SCOPE_IN: ("scope", "in_scope"),
    T.SCOPE_OUT: ("scope", "out_of_scope"),
    T.CHANNEL: ("business", "channels"),
    T.CHANNEL_VOLUME: ("business", "channels"),
    T.CHANNEL_SLA: ("business", "channels"),
    T.CHANNEL_RULE: ("business", "channels"),
    T.SKILL_ANSWER: ("business", "skills"),
    T.SKILL_ROUTE: ("business", "skills"),
    T.SKILL_APPROVE_REJECT: ("business", "skills"),
    T.SKILL_REQUEST_INFO: ("business", "skills"),
    T.SKILL_NOTIFY: ("business", "skills"),
    T.SKILL_OTHER: ("business", "skills"),
    T.KNOWLEDGE_SOURCE: ("business", "knowledge"),
    T.RESPONSE_TEMPLATE: ("business", "communication"),
    T.BRAND_TONE: ("business", "communication"),
    T.COMMUNICATION_STYLE: ("business", "communication"),
    T.GUARDRAIL_NEVER: ("business", "guardrails"),
    T.GUARDRAIL_ALWAYS: ("business", "guardrails"),
    T.FINANCIAL_LIMIT: ("business", "guardrails"),
    T.LEGAL_RESTRICTION: ("business", "guardrails"),
    T.COMPLIANCE_REQUIREMENT: ("technical", "security"),
    T.SYSTEM_INTEGRATION: ("technical", "integrations"),
    T.DATA_FIELD: ("technical", "data_fields"),
    T.API_ENDPOINT: ("technical", "integrations"),
    T.SECURITY_REQUIREMENT: ("technical", "security"),
    T.ERROR_HANDLING: ("technical", "error_handling"),
    T.TECHNICAL_CONTACT: ("technical", "contacts"),
    T.OPEN_ITEM: ("business", "open_items"),
    T.DECISION: ("business", "decisions"),
    T.APPROVAL: ("business", "decisions"),
    T.RISK: ("business", "risks"),
    T.PERSONA_TRAIT: ("business", "persona"),
    T.TONE_RULE: ("business", "persona"),
    T.DOS_AND_DONTS: ("business", "persona"),
    T.EXAMPLE_DIALOGUE: ("business", "persona"),
    T.ESCALATION_SCRIPT: ("business", "escalations"),
    T.MONITORING_METRIC: ("business", "kpis"),
    T.LAUNCH_CRITERION: ("business", "decisions"),
    T.DECISION_TREE: ("business", "process"),
}

INTEGRATION_TYPES = {T.SYSTEM_INTEGRATION}
BUSINESS_RULE_TYPES = {T.GUARDRAIL_NEVER, T.GUARDRAIL_ALWAYS}
TEST_CASE_TYPES = {T.HAPPY_PATH_STEP, T.EXCEPTION_CASE}
