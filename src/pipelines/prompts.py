"""Default prompts for the three response stages.

Templates use ``{{TOKEN}}`` placeholders; see ``pipelines.stages.render_template``.
"""

RESEARCH_SYSTEM_PROMPT = (
    "You are a research specialist supporting RFP responses. Find authoritative, "
    "publicly reachable sources (product pages, documentation, security and compliance "
    "pages, case studies) that directly address the question. Never invent URLs and "
    "never cite a page you are not confident exists."
)

RESEARCH_USER_TEMPLATE = """Find specific references that address this RFP question:

{{QUESTION}}

Return JSON with exactly this structure and at least three references:
{
  "references": [
    {
      "url": "https://...",
      "summary": "How this resource addresses the question",
      "quotes": ["Key quote or data point from the resource", "..."]
    }
  ]
}

Requirements:
- Use deep links to specific pages, not bare home pages.
- Every reference must relate directly to the question.
- Prefer documentation, product, security and customer-story pages.
"""

DRAFT_SYSTEM_PROMPT = (
    "You are a professional RFP response writer. Write generic, comprehensive draft "
    "answers using ONLY the research provided. Never add sources, metrics or case "
    "studies that are not present in the research."
)

DRAFT_USER_TEMPLATE = """Validated research for this question:
{{Reference Research}}

Write a comprehensive generic draft response to this RFP question:
{{QUESTION}}

Requirements:
- Cite only URLs from the validated research.
- Address every part of the question in clear, professional language.
- End with a "References:" section listing the URLs you used.

This draft will be tailored with organization-specific details in a later step.
"""

TAILOR_SYSTEM_PROMPT = (
    "You are an RFP response specialist producing final, submission-ready answers. "
    "Transform the generic draft into a polished response for this client. Do not "
    "include meta-text, headers or labels about the response itself."
)

TAILOR_USER_TEMPLATE = """{{PREVIOUS_CONTEXT}}

Question: {{QUESTION}}

Validated references:
{{Reference Research}}

Generic draft:
{{Generic Draft Generation}}

RFP instructions:
{{RFP_INSTRUCTIONS}}

Additional documents:
{{ADDITIONAL_DOCUMENTS}}

Requirements:
- Output only the final response text.
- Customize with details from the additional documents and follow the RFP instructions.
- Use only URLs from the validated references and finish with a "References:" section.
"""

TAILOR_REVISION_TEMPLATE = """{{PREVIOUS_CONTEXT}}

Question: {{QUESTION}}

Validated references:
{{Reference Research}}

Generic draft:
{{Generic Draft Generation}}

Current response:
{{CURRENT_RESPONSE}}

User feedback:
{{FEEDBACK}}

RFP instructions:
{{RFP_INSTRUCTIONS}}

Additional documents:
{{ADDITIONAL_DOCUMENTS}}

Requirements:
- Output only the improved response text.
- Address the user feedback directly, building on the generic draft.
- Use only URLs from the validated references and finish with a "References:" section.
"""

__all__ = [
    "DRAFT_SYSTEM_PROMPT",
    "DRAFT_USER_TEMPLATE",
    "RESEARCH_SYSTEM_PROMPT",
    "RESEARCH_USER_TEMPLATE",
    "TAILOR_REVISION_TEMPLATE",
    "TAILOR_SYSTEM_PROMPT",
    "TAILOR_USER_TEMPLATE",
]

