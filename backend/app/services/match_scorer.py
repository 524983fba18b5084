"""
Skill-match scoring between a student and a job posting.

Two formulas live here on purpose:

- `score()` is the primary scorer used for stored matches and ranking:
  70 points for required skills, 30 for preferred skills.
- `default_match_score()` is the cheap inline fallback shown on an application
  when no stored match exists yet: share of required skills the student lists.

They are not expected to agree for the same input.
"""
import json
from typing import Any, Iterable

REQUIRED_WEIGHT = 70.0
PREFERRED_WEIGHT = 30.0


def normalize_skill(s: Any) -> str:
    return str(s or "").strip().casefold()


def parse_skills(raw: Any) -> list[str]:
    """
    Parse a stored skills value into trimmed tokens, keeping order.
    Accepts a comma-delimited string, a JSON array string, or a list.
    """
    if raw is None:
        return []
    if isinstance(raw, (list, tuple, set)):
        items = [str(x) for x in raw if x is not None]
    else:
        s = str(raw).strip()
        if not s:
            return []
        items = None
        if s.startswith("[") and s.endswith("]"):
            try:
                parsed = json.loads(s)
                if isinstance(parsed, list):
                    items = [str(x) for x in parsed if x is not None]
            except ValueError:
                items = None
        if items is None:
            items = s.split(",")
    return [i.strip() for i in items if i and i.strip()]


def _token_set(skills: Iterable[Any] | None) -> set[str]:
    out: set[str] = set()
    for s in skills or []:
        n = normalize_skill(s)
        if n:
            out.add(n)
    return out


def score(candidate_skills: Iterable[Any], required_skills: Iterable[Any], preferred_skills: Iterable[Any]) -> float:
    """
    Compatibility score in [0, 100].

    A token matches only when it equals a candidate token after trim + casefold.
    An empty required set contributes 0, not the full 70.
    """
    cand = _token_set(candidate_skills)
    req = _token_set(required_skills)
    pref = _token_set(preferred_skills)

    required_score = REQUIRED_WEIGHT * len(req & cand) / max(1, len(req))
    preferred_score = PREFERRED_WEIGHT * len(pref & cand) / max(1, len(pref))

    total = required_score + preferred_score
    if total < 0.0:
        return 0.0
    if total > 100.0:
        return 100.0
    return float(total)


def match_breakdown(
    *,
    candidate_skills: Iterable[Any],
    required_skills: Iterable[Any],
    preferred_skills: Iterable[Any],
) -> dict[str, Any]:
    """
    Matched / missing skills per category, in job order.

    `related` lists required skills that only overlap a candidate skill by
    substring (e.g. "spring boot" vs "spring"). They are reported for the
    explanation text and never count towards the score.
    """
    cand_list = [normalize_skill(s) for s in candidate_skills or [] if normalize_skill(s)]
    cand = set(cand_list)

    def _dedupe(items: Iterable[Any]) -> list[str]:
        seen: set[str] = set()
        out: list[str] = []
        for s in items or []:
            n = normalize_skill(s)
            if n and n not in seen:
                seen.add(n)
                out.append(n)
        return out

    req = _dedupe(required_skills)
    pref = _dedupe(preferred_skills)

    matched_required = [s for s in req if s in cand]
    missing_required = [s for s in req if s not in cand]
    matched_preferred = [s for s in pref if s in cand]
    missing_preferred = [s for s in pref if s not in cand]

    related: list[str] = []
    for s in missing_required:
        for c in cand_list:
            if c in s or s in c:
                related.append(f"{s} (related to {c})")
                break

    return {
        "matched_required": matched_required,
        "missing_required": missing_required,
        "matched_preferred": matched_preferred,
        "missing_preferred": missing_preferred,
        "related": related,
        "total_required": len(req),
        "total_preferred": len(pref),
    }


def explain(*, score_value: float, breakdown: dict[str, Any]) -> str:
    """Short human-readable explanation stored alongside a match."""
    lines: list[str] = []
    lines.append(f"Match score: {score_value:.2f}/100")

    total_req = int(breakdown.get("total_required") or 0)
    if total_req:
        matched = breakdown.get("matched_required") or []
        lines.append(f"Required skills matched: {len(matched)}/{total_req}" + (f" ({', '.join(matched)})" if matched else ""))
        missing = breakdown.get("missing_required") or []
        if missing:
            lines.append(f"Missing required skills: {', '.join(missing)}")
    else:
        lines.append("The posting lists no required skills.")

    total_pref = int(breakdown.get("total_preferred") or 0)
    if total_pref:
        matched = breakdown.get("matched_preferred") or []
        lines.append(f"Preferred skills matched: {len(matched)}/{total_pref}" + (f" ({', '.join(matched)})" if matched else ""))

    related = breakdown.get("related") or []
    if related:
        lines.append(f"Related skills (not scored): {', '.join(related)}")
    return "\n".join(lines)


def score_with_details(
    *,
    candidate_skills: Iterable[Any],
    required_skills: Iterable[Any],
    preferred_skills: Iterable[Any],
) -> tuple[float, str]:
    """Returns (score rounded to 2 decimals, explanation)."""
    cand = list(candidate_skills or [])
    req = list(required_skills or [])
    pref = list(preferred_skills or [])
    value = round(score(cand, req, pref), 2)
    breakdown = match_breakdown(candidate_skills=cand, required_skills=req, preferred_skills=pref)
    return value, explain(score_value=value, breakdown=breakdown)


def default_match_score(student_skills: str | None, job_required_skills: str | None) -> float:
    """
    Fallback score for an application with no stored match:
    100 * (student skills equal, ignoring case, to some required skill) / (required skills).
    Works on the raw comma-delimited values; 0 when either side is empty or missing.
    """
    if not student_skills or not job_required_skills:
        return 0.0
    student = [s.strip() for s in student_skills.split(",")]
    required = [s.strip() for s in job_required_skills.split(",")]
    if not any(student) or not any(required):
        return 0.0

    required_lower = [r.lower() for r in required]
    match_count = 0
    for s in student:
        if s and s.lower() in required_lower:
            match_count += 1

    pct = 100.0 * match_count / len(required)
    return min(pct, 100.0)
