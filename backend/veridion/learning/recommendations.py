"""
Improvement Recommendation Generator
====================================

Turns detected incident patterns and root-cause analyses into templated
improvement recommendations, persists them without duplicating open work,
and walks each recommendation through its review lifecycle.
"""

from __future__ import annotations

import itertools
import logging
import re
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from veridion.core.errors import InvalidTransitionError, NotFoundError
from veridion.models.incident_model import RECOMMENDATION_STATUSES, RootCauseAnalysis

logger = logging.getLogger(__name__)

MIN_PATTERN_CONFIDENCE = 50
MIN_ROOT_CAUSE_CONFIDENCE = 70
DEFAULT_CONFIDENCE = 50
DEFAULT_REDUCTION = 20
OPEN_STATUSES = ("PROPOSED", "APPROVED", "IN_PROGRESS")
DAY_ABBREVIATIONS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")

BASE_REDUCTION = {
    "PREVENTIVE": 30,
    "DETECTIVE": 20,
    "CORRECTIVE": 25,
    "PROCESS_IMPROVEMENT": 20,
    "TRAINING": 15,
    "POLICY_UPDATE": 10,
    "TECHNICAL_CONTROL": 35,
    "VENDOR_ACTION": 25,
}

ALLOWED_TRANSITIONS = {
    "PROPOSED": ("APPROVED", "REJECTED", "DEFERRED"),
    "APPROVED": ("IN_PROGRESS", "DEFERRED"),
    "IN_PROGRESS": ("IMPLEMENTED",),
    "IMPLEMENTED": ("VERIFIED",),
    "DEFERRED": ("PROPOSED",),
    "VERIFIED": (),
    "REJECTED": (),
}

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def _template(rec_type, title, description, rationale, benefit, effort, days, resources):
    return {
        "type": rec_type,
        "title": title,
        "description": description,
        "rationale": rationale,
        "expected_benefit": benefit,
        "implementation": {"effort": effort, "estimated_days": days, "required_resources": resources},
    }


# ── Templates ─────────────────────────────────────────────────────────────────
PATTERN_TEMPLATES: Dict[str, List[Dict[str, Any]]] = {
    "RECURRING": [
        _template(
            "PREVENTIVE",
            "Implement automated monitoring for {category} incidents",
            "Deploy proactive monitoring to detect early warning signs of {category} incidents before they impact services.",
            "Pattern analysis shows {count} recurring {category} incidents with average interval of {interval} days.",
            "Expected {reduction}% reduction in {category} incidents through early detection.",
            "MEDIUM", 14, ["Monitoring team", "Infrastructure access"],
        ),
        _template(
            "PROCESS_IMPROVEMENT",
            "Establish runbook for {category} incident response",
            "Create standardized runbook with automated actions for rapid response to {category} incidents.",
            "Recurring pattern detected with {count} similar incidents, enabling standardized response.",
            "Expected {reduction}% reduction in MTTR for {category} incidents.",
            "LOW", 7, ["Operations team", "Documentation"],
        ),
    ],
    "SEASONAL": [
        _template(
            "PREVENTIVE",
            "Schedule preventive maintenance before peak periods",
            "Implement scheduled maintenance windows before identified peak incident periods ({time_pattern}).",
            "Temporal pattern shows {percentage}% higher incident rate during {time_pattern}.",
            "Expected {reduction}% reduction in peak-period incidents.",
            "LOW", 3, ["Operations team"],
        ),
        _template(
            "DETECTIVE",
            "Enhance monitoring during peak periods",
            "Increase monitoring sensitivity and staffing during identified peak incident periods ({time_pattern}).",
            "Pattern analysis identifies {time_pattern} as high-incident periods.",
            "Expected {reduction}% faster detection during peak periods.",
            "LOW", 5, ["Monitoring team", "On-call schedule adjustment"],
        ),
    ],
    "CASCADE": [
        _template(
            "TECHNICAL_CONTROL",
            "Implement circuit breaker for {systems}",
            "Deploy circuit breaker pattern to prevent cascade failures between {systems}.",
            "Cascade pattern detected affecting {system_count} systems within {window} minutes.",
            "Expected prevention of cascade failures, limiting blast radius by {reduction}%.",
            "HIGH", 21, ["Development team", "Architecture review"],
        ),
        _template(
            "PROCESS_IMPROVEMENT",
            "Define dependency-aware incident escalation",
            "Implement escalation procedures that account for system dependencies identified in cascade patterns.",
            "Cascade analysis shows {systems} are interconnected with high failure correlation.",
            "Expected {reduction}% faster cascade containment through coordinated response.",
            "MEDIUM", 10, ["Operations team", "System owners"],
        ),
    ],
    "CORRELATED": [
        _template(
            "TECHNICAL_CONTROL",
            "Implement shared monitoring for correlated systems",
            "Deploy unified monitoring dashboard for correlated systems: {systems}.",
            "{systems} show {correlation}% incident correlation, suggesting shared dependencies.",
            "Expected {reduction}% improvement in cross-system incident detection.",
            "MEDIUM", 14, ["Monitoring team", "System owners"],
        ),
        _template(
            "PREVENTIVE",
            "Review shared infrastructure for {systems}",
            "Conduct infrastructure review to identify and address shared single points of failure.",
            "High correlation ({correlation}%) between {systems} incidents suggests shared failure modes.",
            "Expected identification and remediation of {count} shared failure points.",
            "MEDIUM", 10, ["Infrastructure team", "Architecture review"],
        ),
    ],
}

ROOT_CAUSE_TEMPLATES: Dict[str, List[Dict[str, Any]]] = {
    "HUMAN_ERROR": [
        _template(
            "TRAINING",
            "Conduct training on {area}",
            "Implement targeted training program to address human error patterns in {area}.",
            "Root cause analysis identified human error as primary cause in {count} incidents.",
            "Expected {reduction}% reduction in human-error incidents.",
            "MEDIUM", 14, ["Training team", "Subject matter experts"],
        ),
        _template(
            "PROCESS_IMPROVEMENT",
            "Implement pre-change checklist for {area}",
            "Create mandatory checklist to prevent common human errors in {area} operations.",
            "Pattern of human errors identified in {area}, requiring procedural safeguards.",
            "Expected {reduction}% reduction in procedural errors.",
            "LOW", 5, ["Operations team"],
        ),
    ],
    "CONFIGURATION_ERROR": [
        _template(
            "TECHNICAL_CONTROL",
            "Implement configuration validation",
            "Deploy automated configuration validation to prevent deployment of invalid configurations.",
            "Configuration errors identified as root cause in {count} incidents.",
            "Expected {reduction}% reduction in configuration-related incidents.",
            "MEDIUM", 14, ["DevOps team", "Configuration management"],
        ),
        _template(
            "PREVENTIVE",
            "Implement configuration drift detection",
            "Deploy continuous configuration monitoring to detect unauthorized or unintended changes.",
            "Configuration drift identified as contributing factor in {count} incidents.",
            "Expected early detection of {reduction}% of configuration issues.",
            "MEDIUM", 10, ["DevOps team", "Security team"],
        ),
    ],
    "CAPACITY_ISSUE": [
        _template(
            "PREVENTIVE",
            "Implement capacity planning for {resource}",
            "Establish proactive capacity monitoring and planning process for {resource}.",
            "Capacity constraints identified as root cause in {count} incidents.",
            "Expected prevention of {reduction}% of capacity-related incidents.",
            "MEDIUM", 21, ["Capacity planning team", "Infrastructure team"],
        ),
        _template(
            "TECHNICAL_CONTROL",
            "Implement auto-scaling for {resource}",
            "Deploy automatic scaling capabilities to handle demand spikes for {resource}.",
            "Recurring capacity incidents indicate need for elastic scaling.",
            "Expected {reduction}% reduction in capacity-related outages.",
            "HIGH", 28, ["Cloud team", "Architecture review"],
        ),
    ],
    "VENDOR_ISSUE": [
        _template(
            "VENDOR_ACTION",
            "Escalate recurring issues to {vendor}",
            "Formally escalate pattern of vendor-related incidents to {vendor} with documented evidence.",
            "Pattern of {count} incidents traced to {vendor} services/products.",
            "Expected vendor remediation addressing {reduction}% of related incidents.",
            "LOW", 7, ["Vendor management", "Technical documentation"],
        ),
        _template(
            "PREVENTIVE",
            "Implement vendor monitoring for {vendor}",
            "Deploy dedicated monitoring for {vendor} services to enable early detection of issues.",
            "Vendor-related incidents require improved visibility into {vendor} service health.",
            "Expected {reduction}% faster detection of vendor issues.",
            "LOW", 5, ["Monitoring team"],
        ),
    ],
    "TECHNICAL_FAILURE": [
        _template(
            "CORRECTIVE",
            "Remediate technical failure in {area}",
            "Fix the failing component behind {area} and add regression tests for the failure mode.",
            "Technical failure identified as root cause in {count} incidents.",
            "Expected {reduction}% reduction in repeat failures of this component.",
            "MEDIUM", 10, ["Development team"],
        ),
    ],
    "PROCESS_GAP": [
        _template(
            "PROCESS_IMPROVEMENT",
            "Close process gap in {area}",
            "Document and enforce the missing control step identified in {area}.",
            "Process gap identified as root cause in {count} incidents.",
            "Expected {reduction}% reduction in incidents caused by undefined procedures.",
            "LOW", 7, ["Process owner", "Operations team"],
        ),
    ],
    "EXTERNAL_FACTOR": [
        _template(
            "POLICY_UPDATE",
            "Update continuity plan for {area}",
            "Extend the business continuity plan to cover the external event affecting {area}.",
            "External factor identified as root cause in {count} incidents.",
            "Expected {reduction}% reduction in impact from comparable external events.",
            "MEDIUM", 14, ["Business continuity team"],
        ),
    ],
    "SECURITY_BREACH": [
        _template(
            "TECHNICAL_CONTROL",
            "Harden security controls for {area}",
            "Apply additional access, detection and patching controls around {area}.",
            "Security breach identified as root cause in {count} incidents.",
            "Expected {reduction}% reduction in exploitable exposure.",
            "HIGH", 21, ["Security team", "Infrastructure team"],
        ),
        _template(
            "DETECTIVE",
            "Add intrusion detection coverage for {area}",
            "Extend security monitoring and alerting to the attack path observed in {area}.",
            "Breach went undetected long enough to cause {count} incidents.",
            "Expected {reduction}% faster detection of similar intrusions.",
            "MEDIUM", 10, ["Security operations"],
        ),
    ],
    "DEPENDENCY_FAILURE": [
        _template(
            "TECHNICAL_CONTROL",
            "Add fallback for dependency {resource}",
            "Introduce timeouts, retries and a degraded mode for calls to {resource}.",
            "Dependency failure identified as root cause in {count} incidents.",
            "Expected {reduction}% reduction in outages caused by upstream failures.",
            "MEDIUM", 14, ["Development team", "Architecture review"],
        ),
    ],
    "UNKNOWN": [],
}


class RecommendationGenerator:
    def __init__(self, store=None, evidence=None):
        self.store = store
        self.evidence = evidence
        self._seq = itertools.count(1)
        self._lock = threading.Lock()

    # ── Generation ────────────────────────────────────────────────────────────
    def generate_from_patterns(self, patterns: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        recommendations = []
        for pattern in patterns:
            if pattern.get("status") != "ACTIVE":
                continue
            confidence = pattern.get("confidence_score", 0)
            if confidence < MIN_PATTERN_CONFIDENCE:
                continue

            chars = pattern.get("characteristics", {})
            systems = chars.get("affected_systems", [])
            categories = chars.get("affected_categories", [])
            for template in PATTERN_TEMPLATES.get(pattern["type"], []):
                rec = self._build(template, {
                    "category": categories[0] if categories else "General",
                    "count": len(pattern.get("related_incidents", [])),
                    "interval": round(chars.get("average_interval", 0)),
                    "systems": ", ".join(systems),
                    "system_count": len(systems),
                    "time_pattern": self.format_time_pattern(chars.get("time_patterns")),
                    "percentage": round(confidence),
                    "correlation": round(confidence),
                    "reduction": self.estimate_reduction(confidence, template["type"]),
                    "window": round(chars.get("typical_duration", 0)),
                })
                rec["source_type"] = "PATTERN"
                rec["source_id"] = pattern["id"]
                rec["impact_prediction"]["affected_patterns"] = [pattern["pattern_id"]]
                recommendations.append(rec)
        return recommendations

    def generate_from_root_cause(self, rca: RootCauseAnalysis) -> List[Dict[str, Any]]:
        recommendations = []
        for cause in rca.root_causes:
            if not cause.is_primary and cause.confidence < MIN_ROOT_CAUSE_CONFIDENCE:
                continue
            for template in ROOT_CAUSE_TEMPLATES.get(cause.category, []):
                rec = self._build(template, {
                    "area": cause.description[:50],
                    "count": 1,
                    "vendor": "Vendor" if cause.category == "VENDOR_ISSUE" else None,
                    "resource": cause.description[:30],
                    "confidence": cause.confidence,
                    "reduction": round(25 * cause.confidence / 100),
                })
                rec["source_type"] = "ROOT_CAUSE"
                rec["source_id"] = rca.id
                recommendations.append(rec)
        return recommendations

    # ── Persistence ───────────────────────────────────────────────────────────
    def save_recommendations(self, recommendations: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Persist recommendations with no open duplicate; returns the ones saved."""
        saved = []
        with self._lock:
            for rec in recommendations:
                if self.store is not None and not self._insert_if_new(rec):
                    logger.info("Skipping duplicate recommendation: %s", rec["title"])
                    continue
                self._record_generated(rec)
                saved.append(rec)
        return saved

    def _insert_if_new(self, rec: Dict[str, Any]) -> bool:
        with self.store.locked():
            if self.store.find_open_recommendation(rec["title"], OPEN_STATUSES):
                return False
            year = datetime.now(timezone.utc).year
            rec["recommendation_id"] = f"REC-{year}-{self.store.next_sequence('REC', year):04d}"
            self.store.insert_recommendation(rec)
        return True

    def _record_generated(self, rec: Dict[str, Any]) -> None:
        if self.evidence is not None:
            self.evidence.record(
                "INCIDENT.RECOMMENDATION.GENERATED",
                severity="HIGH" if rec["priority"] == "CRITICAL" else "MEDIUM",
                metadata={
                    "recommendation_id": rec["recommendation_id"],
                    "title": rec["title"],
                    "type": rec["type"],
                    "priority": rec["priority"],
                    "source_type": rec["source_type"],
                    "generated_by": rec["generated_by"],
                },
            )

    def transition_status(self, rec_id: str, status: str, changed_by: str,
                          reason: Optional[str] = None) -> Dict[str, Any]:
        if self.store is None:
            raise NotFoundError(f"Recommendation '{rec_id}' not found")
        rec = self.store.get_recommendation(rec_id)
        if rec is None:
            raise NotFoundError(f"Recommendation '{rec_id}' not found")

        status = status.upper()
        if status not in RECOMMENDATION_STATUSES:
            raise ValueError(f"Unknown recommendation status '{status}'")
        current = rec["status"]
        if status not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(current, status)

        now = datetime.now(timezone.utc).isoformat()
        entry = {"status": status, "changed_by": changed_by, "changed_at": now}
        if reason:
            entry["reason"] = reason
        rec["status_history"].append(entry)
        rec["status"] = status
        rec["updated_at"] = now

        if status == "APPROVED":
            rec["approved_by"], rec["approved_at"] = changed_by, now
        elif status == "REJECTED":
            rec["rejection_reason"] = reason
        elif status == "IMPLEMENTED":
            rec["implemented_by"], rec["implemented_at"] = changed_by, now
        elif status == "VERIFIED":
            rec["verified_by"], rec["verified_at"] = changed_by, now

        self.store.update_recommendation(rec)
        logger.info("Recommendation %s moved %s -> %s by %s", rec_id, current, status, changed_by)
        return rec

    # ── Helpers ───────────────────────────────────────────────────────────────
    @staticmethod
    def interpolate(template: str, params: Dict[str, Any]) -> str:
        def _sub(match):
            value = params.get(match.group(1))
            if value is None or value == "":
                return match.group(1)
            return str(value)
        return _PLACEHOLDER.sub(_sub, template)

    @staticmethod
    def calculate_priority(count: int, confidence: Optional[float] = None) -> str:
        confidence = DEFAULT_CONFIDENCE if not confidence else confidence
        if count >= 10 and confidence >= 80:
            return "CRITICAL"
        if count >= 5 and confidence >= 70:
            return "HIGH"
        if count >= 3 and confidence >= 50:
            return "MEDIUM"
        return "LOW"

    @staticmethod
    def estimate_reduction(confidence: float, rec_type: str) -> int:
        return round(BASE_REDUCTION[rec_type] * confidence / 100)

    @staticmethod
    def format_time_pattern(time_patterns: Optional[Dict[str, List[int]]]) -> str:
        if not time_patterns:
            return "various times"
        parts = []
        days = time_patterns.get("day_of_week") or []
        if days:
            parts.append(", ".join(DAY_ABBREVIATIONS[d] for d in days))
        hours = sorted(time_patterns.get("hour_of_day") or [])
        if hours:
            parts.append(f"{hours[0]}:00-{hours[-1]}:00")
        return " at ".join(parts) or "various times"

    def _build(self, template: Dict[str, Any], params: Dict[str, Any]) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        # stored recommendations are numbered when saved
        rec_id = None if self.store is not None else f"REC-{now.year}-{next(self._seq):04d}"
        reduction = params.get("reduction") or DEFAULT_REDUCTION
        confidence = params.get("percentage") or params.get("confidence")
        return {
            "id": f"rec-{uuid.uuid4()}",
            "recommendation_id": rec_id,
            "title": self.interpolate(template["title"], params),
            "description": self.interpolate(template["description"], params),
            "type": template["type"],
            "priority": self.calculate_priority(params.get("count") or 0, confidence),
            "source_type": "PATTERN",
            "source_id": None,
            "generated_by": "RULE_ENGINE",
            "rationale": self.interpolate(template["rationale"], params),
            "expected_benefit": self.interpolate(template["expected_benefit"], params),
            "impact_prediction": {
                "incident_reduction": reduction,
                "risk_reduction": reduction * 0.8,
                "confidence_level": params.get("percentage") or 70,
                "affected_patterns": [],
            },
            "implementation": {
                **template["implementation"],
                "required_resources": list(template["implementation"]["required_resources"]),
                "responsible_team": "TBD",
                "dependencies": [],
            },
            "status": "PROPOSED",
            "status_history": [{
                "status": "PROPOSED",
                "changed_by": "system/recommendation-engine",
                "changed_at": now.isoformat(),
            }],
            "created_at": now.isoformat(),
            "updated_at": now.isoformat(),
        }
