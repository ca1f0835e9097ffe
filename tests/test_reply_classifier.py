from __future__ import annotations

from dataclasses import replace
from types import SimpleNamespace

from config.settings import get_settings
from models.workflow import FinalResult
from services.reply_classifier import (
    KeywordReplyClassifier,
    LLMReplyClassifier,
    build_reply_classifier,
)


def test_keyword_verdicts():
    clf = KeywordReplyClassifier()
    assert clf.classify("Yes, I can confirm she was employed here from 2019 to 2021.") == FinalResult.YES
    assert clf.classify("We have no record of this person.") == FinalResult.NO
    assert clf.classify("Per company policy we cannot disclose employment details.") == FinalResult.REFUSE_TO_DISCLOSE
    assert clf.classify("Thanks for reaching out.") == FinalResult.INCONCLUSIVE
    assert clf.classify("") == FinalResult.INCONCLUSIVE


def test_keyword_precedence():
    clf = KeywordReplyClassifier()
    # no beats yes, refusal beats both
    assert clf.classify("Yes we got your note, but there is no record of him.") == FinalResult.NO
    assert clf.classify("No record found; also our policy forbids sharing.") == FinalResult.REFUSE_TO_DISCLOSE
    # a yes keyword inside a negating phrase does not count
    assert clf.classify("I cannot confirm that.") == FinalResult.INCONCLUSIVE


def test_keywords_match_whole_words():
    assert KeywordReplyClassifier().classify("Yesterday we moved offices.") == FinalResult.INCONCLUSIVE


class _FakeLLM:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = []

    def chat(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.content))])


def test_llm_classifier_parses_fenced_json():
    llm = _FakeLLM('```json\n{"verdict": "no", "reasoning": "not in records"}\n```')
    assert LLMReplyClassifier(llm).classify("Never heard of her") == FinalResult.NO
    assert llm.calls[0]["use_case"] == "reply_classification"


def test_llm_classifier_degrades_to_inconclusive():
    assert LLMReplyClassifier(_FakeLLM("not json")).classify("hi") == FinalResult.INCONCLUSIVE
    assert LLMReplyClassifier(_FakeLLM('{"verdict": "MAYBE"}')).classify("hi") == FinalResult.INCONCLUSIVE
    assert LLMReplyClassifier(_FakeLLM(error=RuntimeError("rate limited"))).classify("hi") == FinalResult.INCONCLUSIVE

    llm = _FakeLLM('{"verdict": "YES"}')
    assert LLMReplyClassifier(llm).classify("   ") == FinalResult.INCONCLUSIVE
    assert llm.calls == []


def test_build_reply_classifier_follows_settings():
    assert isinstance(build_reply_classifier(get_settings()), KeywordReplyClassifier)
    llm = _FakeLLM('{"verdict": "YES"}')
    clf = build_reply_classifier(replace(get_settings(), reply_classifier="llm"), llm=llm)
    assert isinstance(clf, LLMReplyClassifier)
    assert clf.classify("Confirmed") == FinalResult.YES
