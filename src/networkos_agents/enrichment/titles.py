"""
Job title heuristics for discovered contacts.
"""

import re
from typing import List, Optional, Tuple

HIGH_PRIORITY_TITLES = [
    "CEO", "CTO", "CIO", "COO", "CMO", "CPO",
    "VP Engineering", "VP Product", "VP Marketing", "VP Technology",
    "Head of Engineering", "Head of Product", "Head of AI",
    "Director of Engineering", "Director of Product",
]

# Checked in order; the first match wins
DEPARTMENT_PATTERNS: List[Tuple[str, re.Pattern]] = [
    ("Engineering", re.compile(r"engineer|developer|architect|devops|sre|platform", re.IGNORECASE)),
    ("Product", re.compile(r"product|pm\b", re.IGNORECASE)),
    ("Marketing", re.compile(r"marketing|growth|brand|content", re.IGNORECASE)),
    ("Sales", re.compile(r"sales|account|business dev", re.IGNORECASE)),
    ("Customer Success", re.compile(r"customer|success|support", re.IGNORECASE)),
    ("Operations", re.compile(r"operations|ops\b", re.IGNORECASE)),
    ("Finance", re.compile(r"finance|cfo|accounting", re.IGNORECASE)),
    ("HR", re.compile(r"hr|people|talent|recruiting", re.IGNORECASE)),
    ("Legal", re.compile(r"legal|counsel|compliance", re.IGNORECASE)),
    ("Executive", re.compile(r"ceo|coo|founder|president", re.IGNORECASE)),
    ("IT", re.compile(r"it\b|infrastructure|security", re.IGNORECASE)),
]

SENIORITY_PATTERNS: List[Tuple[str, re.Pattern]] = [
    ("C-Level", re.compile(r"^c[eotiof]{2,3}$|chief|founder|co-founder|president", re.IGNORECASE)),
    ("VP", re.compile(r"^vp|vice president|evp|svp", re.IGNORECASE)),
    ("Director", re.compile(r"director|head of", re.IGNORECASE)),
    ("Manager", re.compile(r"manager|lead|team lead", re.IGNORECASE)),
    ("Senior", re.compile(r"senior|sr\.|principal|staff", re.IGNORECASE)),
    ("Junior", re.compile(r"junior|jr\.|entry|associate", re.IGNORECASE)),
    ("Intern", re.compile(r"intern", re.IGNORECASE)),
]

DECISION_MAKER_PATTERN = re.compile(
    r"ceo|cto|cio|coo|cpo|cmo|vp|vice president|director|head of|founder", re.IGNORECASE
)
INFLUENCER_PATTERN = re.compile(r"manager|lead|principal|staff|architect|senior", re.IGNORECASE)


def infer_department(title: Optional[str]) -> str:
    text = (title or "").strip()
    for department, pattern in DEPARTMENT_PATTERNS:
        if pattern.search(text):
            return department
    return "Other"


def infer_seniority(title: Optional[str]) -> str:
    text = (title or "").strip()
    for level, pattern in SENIORITY_PATTERNS:
        if pattern.search(text):
            return level
    return "Mid-Level"


def is_decision_maker(title: Optional[str]) -> bool:
    return bool(DECISION_MAKER_PATTERN.search(title or ""))


def is_influencer(title: Optional[str]) -> bool:
    return bool(INFLUENCER_PATTERN.search(title or ""))


def matches_target_roles(title: Optional[str], target_roles: List[str]) -> bool:
    """Case-insensitive substring match of a title against any target role."""
    text = (title or "").lower()
    return any(role.lower() in text for role in target_roles)


def generate_probable_email(first_name: Optional[str], last_name: Optional[str],
                            domain: str) -> Optional[str]:
    """
    Most common corporate email pattern, first.last@domain.

    Returns:
        The guessed address, or None when either name has no letters
    """
    first = re.sub(r"[^a-z]", "", (first_name or "").lower())
    last = re.sub(r"[^a-z]", "", (last_name or "").lower())
    if not first or not last:
        return None
    return f"{first}.{last}@{domain}"


def annotate_title(contact: dict) -> dict:
    """Fill department, seniority and role flags from the contact's title."""
    title = contact.get("title") or ""
    contact.setdefault("department", infer_department(title))
    contact.setdefault("seniority", infer_seniority(title))
    contact["decision_maker"] = bool(contact.get("decision_maker")) or is_decision_maker(title)
    contact["influencer"] = bool(contact.get("influencer")) or is_influencer(title)
    return contact
