from typing import Iterable, Optional

from resumerefresh.core.recipient import CapabilityTag
from resumerefresh.utils.logger import get_logger

logger = get_logger("classifier")


class CapabilityClassifier:
    """Decides whether a recipient's mail provider renders AMP-for-Email."""

    def __init__(self, supported_domains: Iterable[str]):
        self._domains = frozenset(d.strip().lower() for d in supported_domains if d and d.strip())

    @property
    def supported_domains(self) -> frozenset[str]:
        return self._domains

    @staticmethod
    def extract_domain(email: str) -> str:
        if not email or not isinstance(email, str) or "@" not in email:
            return ""
        return email.rsplit("@", 1)[1].strip().lower()

    def classify(self, email: str) -> CapabilityTag:
        domain = self.extract_domain(email)
        tag = CapabilityTag.INTERACTIVE if domain in self._domains else CapabilityTag.STATIC_ONLY

        if not domain:
            logger.warning("   ⚠️ AMP detection: no usable domain, defaulting to static")
        else:
            logger.info(f"   🔍 AMP detection: {domain} → {tag.value}")
        return tag

    def is_interactive(self, email: str) -> bool:
        return self.classify(email) == CapabilityTag.INTERACTIVE


_classifier: Optional[CapabilityClassifier] = None


def get_classifier() -> CapabilityClassifier:
    global _classifier
    if _classifier is None:
        from resumerefresh.utils.config import get_settings
        _classifier = CapabilityClassifier(get_settings().amp.supported_domains)
    return _classifier


def classify_recipient(email: str) -> CapabilityTag:
    return get_classifier().classify(email)
