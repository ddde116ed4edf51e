"""
Rule-based text signal classifier.

Runs independent rule families over a text blob (profanity, hate speech,
spam, off-platform contact, scams). Each family yields at most one flag and
the first matching pattern wins within a family. PII detection is a separate
operation that also returns a redacted copy of the input.

The pattern lists are a reference rule set, not a trained model; a remote
backend implementing the same :class:`TextClassifier` contract can replace
this class without touching the decision engine.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urlsplit

from rentguard.datatypes.moderation_datatypes import (
    ClassifierOutput,
    ModerationFlag,
    PIIResult,
    Severity,
)
from rentguard.util.logger import get_logger

logger = get_logger("text_classifier")

# ---------------------------------------------------------------------------
# Rule families
# ---------------------------------------------------------------------------

_PROFANITY_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\b(fuck|shit|damn|bitch|asshole|bastard|cunt|dick)\b", re.IGNORECASE),
    # Stretched spellings ("fuuuck", "shiiit")
    re.compile(r"\b(f+u+c+k+|s+h+i+t+|a+s+s+h+o+l+e+)\b", re.IGNORECASE),
]

_HATE_SPEECH_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\b(racist|sexist|homophobic|transphobic|xenophobic)\b", re.IGNORECASE),
    re.compile(r"\b(kill yourself|kys)\b", re.IGNORECASE),
]

# Four independent families; a single match is not enough to call it spam
_SPAM_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\b(click here|buy now|limited time|act fast|winner|congratulations)\b", re.IGNORECASE),
    re.compile(r"\$\$\$"),
    re.compile(r"!{3,}"),
    re.compile(r"\b(viagra|cialis|crypto|bitcoin|forex)\b", re.IGNORECASE),
]
SPAM_THRESHOLD = 2

_EXTERNAL_CONTACT_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\b(text me|call me|reach me|contact me outside|off platform|direct message)\b", re.IGNORECASE),
    re.compile(r"\b(whatsapp|telegram|wechat|signal|viber)\b", re.IGNORECASE),
]

_SCAM_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\b(wire transfer|western union|moneygram|gift card|bitcoin payment)\b", re.IGNORECASE),
    re.compile(r"\b(send money first|pay outside platform|direct payment)\b", re.IGNORECASE),
    re.compile(r"\b(too good to be true|guaranteed|no risk)\b|100% safe", re.IGNORECASE),
]

# ---------------------------------------------------------------------------
# PII patterns
# ---------------------------------------------------------------------------

_EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
_URL_RE = re.compile(r"https?://[^\s]+", re.IGNORECASE)
_PHONE_RE = re.compile(r"(\+\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}|\b\d{10}\b")
_SOCIAL_RE = re.compile(
    r"@[\w.]+|(?:instagram|facebook|twitter|whatsapp|telegram)\.com/[\w.]+",
    re.IGNORECASE,
)

EMAIL_PLACEHOLDER = "[EMAIL REMOVED]"
PHONE_PLACEHOLDER = "[PHONE REMOVED]"
CONTACT_PLACEHOLDER = "[CONTACT REMOVED]"
LINK_PLACEHOLDER = "[LINK REMOVED]"

TEXT_FLAGGED_CONFIDENCE = 0.8
TEXT_CLEAN_CONFIDENCE = 1.0


@dataclass(frozen=True, slots=True)
class _RuleFamily:
    patterns: list[re.Pattern[str]]
    flag_type: str
    severity: Severity
    confidence: float
    description: str


_FIRST_MATCH_FAMILIES: list[_RuleFamily] = [
    _RuleFamily(_PROFANITY_PATTERNS, "PROFANITY", Severity.MEDIUM, 0.9, "Profanity detected"),
    _RuleFamily(_HATE_SPEECH_PATTERNS, "HATE_SPEECH", Severity.CRITICAL, 0.85, "Potential hate speech detected"),
]

_TRAILING_FAMILIES: list[_RuleFamily] = [
    _RuleFamily(
        _EXTERNAL_CONTACT_PATTERNS,
        "EXTERNAL_CONTACT",
        Severity.HIGH,
        0.75,
        "Attempt to move communication off platform",
    ),
    _RuleFamily(_SCAM_PATTERNS, "SCAM_PATTERN", Severity.CRITICAL, 0.7, "Potential scam detected"),
]


class RuleBasedTextClassifier:
    """Local rule engine satisfying the ``TextClassifier`` contract.

    Args:
        platform_domain: Domain whose URLs are first-party and never redacted.
    """

    def __init__(self, platform_domain: str = "rentalportal.com") -> None:
        self._platform_domain = platform_domain.lower()

    @property
    def platform_domain(self) -> str:
        return self._platform_domain

    # -- content classification ----------------------------------------

    async def classify_text(self, text: str) -> ClassifierOutput:
        """Run every rule family over ``text``.

        Flags are returned in family order: profanity, hate speech, spam,
        external contact, scam. Confidence is a constant 0.8 when anything
        matched and 1.0 otherwise.
        """
        flags: List[ModerationFlag] = []

        for family in _FIRST_MATCH_FAMILIES:
            flag = self._check_family(text, family)
            if flag:
                flags.append(flag)

        spam_flag = self._check_spam(text)
        if spam_flag:
            flags.append(spam_flag)

        for family in _TRAILING_FAMILIES:
            flag = self._check_family(text, family)
            if flag:
                flags.append(flag)

        if flags:
            logger.debug(
                "[TEXT CLASSIFIER] %d flag(s): %s",
                len(flags),
                ", ".join(flag.type for flag in flags),
            )

        confidence = TEXT_FLAGGED_CONFIDENCE if flags else TEXT_CLEAN_CONFIDENCE
        return ClassifierOutput(flags=flags, confidence=confidence)

    @staticmethod
    def _check_family(text: str, family: _RuleFamily) -> Optional[ModerationFlag]:
        for pattern in family.patterns:
            if pattern.search(text):
                return ModerationFlag(
                    type=family.flag_type,
                    severity=family.severity,
                    confidence=family.confidence,
                    description=family.description,
                )
        return None

    @staticmethod
    def _check_spam(text: str) -> Optional[ModerationFlag]:
        spam_score = sum(1 for pattern in _SPAM_PATTERNS if pattern.search(text))
        if spam_score < SPAM_THRESHOLD:
            return None
        return ModerationFlag(
            type="SPAM",
            severity=Severity.HIGH,
            confidence=0.8,
            description="Spam content detected",
            details={"spam_score": spam_score},
        )

    # -- PII -------------------------------------------------------------

    async def detect_pii(self, text: str) -> PIIResult:
        """Find and redact emails, URLs, phone numbers, and social handles.

        Detectors run in that order over the progressively masked text, so an
        email address is never also reported as a social handle and digits
        inside a redacted link are not reported as a phone number. First-party
        URLs are shielded from every detector.
        """
        flags: List[ModerationFlag] = []
        shielded: List[str] = []

        def shield(match: re.Match[str]) -> str:
            shielded.append(match.group(0))
            return f"\x00{len(shielded) - 1}\x00"

        # Hide first-party links so no later pattern can match inside them
        masked = _URL_RE.sub(
            lambda m: shield(m) if self._is_platform_url(m.group(0)) else m.group(0),
            text,
        )

        masked = self._mask(
            masked, _EMAIL_RE, EMAIL_PLACEHOLDER, flags,
            "EMAIL_DETECTED", Severity.HIGH, 1.0, "Email address detected in message",
        )
        masked = self._mask(
            masked, _URL_RE, LINK_PLACEHOLDER, flags,
            "EXTERNAL_URL_DETECTED", Severity.MEDIUM, 1.0, "External URL detected",
        )
        masked = self._mask(
            masked, _PHONE_RE, PHONE_PLACEHOLDER, flags,
            "PHONE_DETECTED", Severity.HIGH, 0.9, "Phone number detected in message",
        )
        masked = self._mask(
            masked, _SOCIAL_RE, CONTACT_PLACEHOLDER, flags,
            "SOCIAL_MEDIA_DETECTED", Severity.MEDIUM, 0.85, "Social media handle/link detected",
        )

        for index, original in enumerate(shielded):
            masked = masked.replace(f"\x00{index}\x00", original)

        return PIIResult(flags=self._order_pii_flags(flags), masked_text=masked)

    @staticmethod
    def _mask(
        text: str,
        pattern: re.Pattern[str],
        placeholder: str,
        flags: List[ModerationFlag],
        flag_type: str,
        severity: Severity,
        confidence: float,
        description: str,
    ) -> str:
        masked, count = pattern.subn(placeholder, text)
        if count:
            flags.append(
                ModerationFlag(
                    type=flag_type,
                    severity=severity,
                    confidence=confidence,
                    description=description,
                    details={"count": count},
                )
            )
        return masked

    @staticmethod
    def _order_pii_flags(flags: List[ModerationFlag]) -> List[ModerationFlag]:
        order = ["EMAIL_DETECTED", "PHONE_DETECTED", "SOCIAL_MEDIA_DETECTED", "EXTERNAL_URL_DETECTED"]
        return sorted(flags, key=lambda flag: order.index(flag.type))

    def _is_platform_url(self, url: str) -> bool:
        """True when the link's host is the platform domain or one of its subdomains."""
        try:
            host = (urlsplit(url).hostname or "").rstrip(".")
        except ValueError:
            return False
        if not host:
            return False
        return host == self._platform_domain or host.endswith(f".{self._platform_domain}")

    # -- display helpers -------------------------------------------------

    def clean_text(self, text: str) -> str:
        """Replace profanity with asterisks of equal length, for display."""
        cleaned = text
        for pattern in _PROFANITY_PATTERNS:
            cleaned = pattern.sub(_asterisks, cleaned)
        return cleaned


def _asterisks(match: re.Match[str]) -> str:
    return "*" * len(match.group(0))
