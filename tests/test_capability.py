"""
Unit tests for CapabilityClassifier
"""
import logging

import pytest

from resumerefresh.classifiers.capability import CapabilityClassifier
from resumerefresh.core.recipient import CapabilityTag
from resumerefresh.utils.config import DEFAULT_AMP_DOMAINS


@pytest.fixture
def classifier():
    return CapabilityClassifier(DEFAULT_AMP_DOMAINS)


class TestExtractDomain:
    def test_takes_text_after_last_at(self):
        assert CapabilityClassifier.extract_domain('"odd@name"@Gmail.com') == "gmail.com"

    def test_lower_cases_and_strips(self):
        assert CapabilityClassifier.extract_domain("someone@  YAHOO.co.UK ") == "yahoo.co.uk"

    def test_no_at_sign(self):
        assert CapabilityClassifier.extract_domain("not-an-email") == ""

    def test_empty_and_none(self):
        assert CapabilityClassifier.extract_domain("") == ""
        assert CapabilityClassifier.extract_domain(None) == ""


class TestClassify:
    @pytest.mark.parametrize("email", [
        "a@gmail.com",
        "b@googlemail.com",
        "c@yahoo.com",
        "d@yahoo.co.jp",
        "e@mail.ru",
    ])
    def test_amp_providers_are_interactive(self, classifier, email):
        assert classifier.classify(email) == CapabilityTag.INTERACTIVE

    def test_domain_match_is_case_insensitive(self, classifier):
        assert classifier.classify("Jane@GMAIL.COM") == CapabilityTag.INTERACTIVE

    def test_other_domains_are_static(self, classifier):
        assert classifier.classify("jane@outlook.com") == CapabilityTag.STATIC_ONLY
        assert classifier.classify("jane@mail.google.com") == CapabilityTag.STATIC_ONLY

    @pytest.mark.parametrize("email", ["", "no-at-sign", "trailing@", "@", None])
    def test_malformed_input_defaults_to_static(self, classifier, email):
        assert classifier.classify(email) == CapabilityTag.STATIC_ONLY

    def test_deterministic(self, classifier):
        results = {classifier.classify("x@yahoo.ca") for _ in range(20)}
        assert results == {CapabilityTag.INTERACTIVE}

    def test_custom_allow_list(self):
        classifier = CapabilityClassifier(["Example.ORG"])
        assert classifier.classify("a@example.org") == CapabilityTag.INTERACTIVE
        assert classifier.classify("a@gmail.com") == CapabilityTag.STATIC_ONLY

    def test_logs_domain_but_not_local_part(self, classifier, caplog):
        with caplog.at_level(logging.DEBUG, logger="ResumeRefresh"):
            classifier.classify("very.private.person@gmail.com")

        text = caplog.text
        assert "gmail.com" in text
        assert "very.private.person" not in text
