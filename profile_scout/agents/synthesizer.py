from __future__ import annotations

import json

from loguru import logger
from pydantic import ValidationError

from profile_scout.errors import SynthesisContractError
from profile_scout.llm_client import CompletionClient, extract_json_object
from profile_scout.models.research import Finding
from profile_scout.models.schemas import (
    ContactInfo,
    FindingOut,
    ProfileInput,
    ProfileReport,
    ResearchResult,
)
from profile_scout.services.prompt_store import render_prompt

DEFAULT_CONFIDENCE = 0.5


def _format_findings(findings: list[Finding]) -> str:
    if not findings:
        return "(no findings were accepted)"
    return "\n\n".join(
        f"Source: {finding.source}\nCategory: {finding.category.value}\n{finding.content}"
        for finding in findings
    )


def _format_contact(contact: ContactInfo | None) -> str:
    if contact is None:
        return "(none found)"
    return json.dumps(contact.model_dump())


def mean_confidence(findings: list[Finding]) -> float:
    if not findings:
        return DEFAULT_CONFIDENCE
    return round(sum(f.confidence for f in findings) / len(findings), 3)


class Synthesizer:
    """Turns the final research state into a ProfileReport with one completion call.

    Any reply that is not a JSON object satisfying ProfileReport fails the job; there
    is no fallback to a free-text narrative.
    """

    def __init__(self, llm: CompletionClient, *, temperature: float = 0.7):
        self.llm = llm
        self.temperature = temperature

    async def write_report(
        self,
        target: ProfileInput,
        findings: list[Finding],
        contact: ContactInfo | None,
    ) -> ProfileReport:
        messages = [
            {"role": "system", "content": render_prompt("synthesis.system_prompt")},
            {
                "role": "user",
                "content": render_prompt(
                    "synthesis.user_prompt",
                    name=target.name,
                    findings=_format_findings(findings),
                    contact=_format_contact(contact),
                ),
            },
        ]
        raw = await self.llm.complete(messages, self.temperature, caller="synthesizer")
        try:
            report = ProfileReport.model_validate(extract_json_object(raw))
        except (json.JSONDecodeError, ValueError, ValidationError) as exc:
            logger.error(f"Synthesis reply rejected: {exc}")
            raise SynthesisContractError(f"Profile report did not match the contract: {exc}") from exc

        # Contact found during navigation takes precedence over whatever the model echoed back.
        if contact is not None and not contact.is_empty():
            report = report.model_copy(update={"contact": contact})
        return report

    async def synthesize(
        self,
        target: ProfileInput,
        *,
        findings: list[Finding],
        contact: ContactInfo | None,
        sources: list[str],
        iterations: int,
        stop_reason: str,
    ) -> ResearchResult:
        report = await self.write_report(target, findings, contact)
        return ResearchResult(
            profile=report,
            contact=report.contact,
            sources=sources,
            findings=[FindingOut(**finding.to_dict()) for finding in findings],
            confidence=mean_confidence(findings),
            iterations=iterations,
            stop_reason=stop_reason,
        )
