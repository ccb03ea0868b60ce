"""
Unit tests for the classification cascade and its tiers
"""
import asyncio
import json
from datetime import datetime

import pytest

from wayfarer.llm.dialogue_manager import LlmTier, is_echoed_plan, safe_json_parse
from wayfarer.nlp.cascade import ClassificationCascade
from wayfarer.nlp.complexity import ComplexityAssessor, assess_complexity, constraints
from wayfarer.nlp.language import is_mixed_language
from wayfarer.nlp.local_model import LocalTier, NaiveBayesIntentModel
from wayfarer.nlp.result import ClassificationResult, Err, Ok
from wayfarer.nlp.rules import RulesTier, classify_rules, detect_content_type, extract_slots, search_command
from wayfarer.utils.cache import TTLCache

from conftest import ScriptedLLM


class StubTier:
    def __init__(self, name, result, min_confidence=0.0, timeout_s=1.0, delay=0.0):
        self.name = name
        self.result = result
        self.min_confidence = min_confidence
        self.timeout_s = timeout_s
        self.delay = delay
        self.calls = 0

    async def classify(self, text, context):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def ok(intent, confidence, tier="stub"):
    return Ok(ClassificationResult(intent=intent, confidence=confidence, tier=tier))


class TestRules:
    """Deterministic last-resort tier"""

    def test_weather_with_city(self):
        r = classify_rules("Weather in Paris today?")
        assert r.intent == "weather"
        assert r.slots["city"] == "Paris"

    def test_packing(self):
        assert classify_rules("What should I pack?").intent == "packing"

    def test_flights_from_to(self):
        slots, _, _ = extract_slots("Flights from Boston to Chicago on 2026-11-02")
        assert slots["originCity"] == "Boston"
        assert slots["destinationCity"] == "Chicago"
        assert slots["departureDate"] == "2026-11-02"
        assert slots["month"] == "November"

    def test_month_is_not_a_city(self):
        slots, cities, _ = extract_slots("Trip to Rome in March")
        assert slots["city"] == "Rome"
        assert slots["month"] == "March"
        assert "March" not in cities

    def test_multiple_cities_and_seasons(self):
        _, cities, seasons = extract_slots("Should I visit Paris or Rome in summer or winter?")
        assert cities == ["Paris", "Rome"]
        assert seasons == ["summer", "winter"]

    def test_content_types(self):
        assert detect_content_type("who are you?") == "system"
        assert detect_content_type("give me a pasta recipe") == "unrelated"
        assert detect_content_type("cheapest time to visit Rome") == "budget"
        assert detect_content_type("weather in Rome") == "travel"

    def test_search_command(self):
        assert search_command("search: best time to visit Lisbon") == "best time to visit Lisbon"
        assert search_command("google airlines to Paris") == "airlines to Paris"
        assert search_command("what should I search for") is None

    def test_accented_cities(self):
        assert extract_slots("Weather in Zürich today?")[0]["city"] == "Zürich"
        assert extract_slots("Things to do in São Paulo")[0]["city"] == "São Paulo"
        assert extract_slots("Évora weather")[0]["city"] == "Évora"
        slots, _, _ = extract_slots("Flights from Kraków to Bogotá on 2026-11-02")
        assert slots["originCity"] == "Kraków"
        assert slots["destinationCity"] == "Bogotá"

    def test_may_as_modal(self):
        assert "month" not in extract_slots("May I ask about Rome?")[0]
        assert extract_slots("May we visit Rome in June?")[0]["month"] == "June"
        assert extract_slots("Rome in May")[0]["month"] == "May"

    def test_city_alias(self):
        slots, _, _ = extract_slots("weather in bombay")
        assert slots["city"] == "Mumbai"

    def test_mixed_language(self):
        assert is_mixed_language("quiero saber el tiempo en Madrid")
        assert is_mixed_language("weather in 東京")
        assert not is_mixed_language("weather in Madrid")


class TestLocalModel:
    """Naive Bayes local tier"""

    @pytest.fixture
    def tier(self):
        return LocalTier(NaiveBayesIntentModel())

    def test_predicts_seeded_phrasing(self):
        intent, conf = NaiveBayesIntentModel().predict("What airlines fly there?")
        assert intent == "destinations"
        assert conf >= 0.7

    def test_no_known_tokens(self):
        assert NaiveBayesIntentModel().predict("zzz qqq") == ("unknown", 0.0)

    async def test_no_signal_is_err(self, tier):
        assert await tier.classify("zzz qqq", {}) == Err("no_signal")

    async def test_system_short_circuit(self, tier):
        res = await tier.classify("who are you?", {})
        assert isinstance(res, Ok)
        assert res.value.intent == "system"


class TestLlmTier:
    """LLM tier result handling"""

    async def test_unavailable(self):
        res = await LlmTier(ScriptedLLM(available=False)).classify("hi", {})
        assert res == Err("llm_unavailable")

    async def test_malformed_json(self):
        res = await LlmTier(ScriptedLLM(json_replies=["not json at all"])).classify("hi", {})
        assert isinstance(res, Err) and res.reason == "malformed_json"

    async def test_embedded_json_is_extracted(self):
        raw = 'Sure! {"intent": "weather", "confidence": 0.9, "slots": {"city": "Oslo"}} hope that helps'
        res = await LlmTier(ScriptedLLM(json_replies=[raw])).classify("weather oslo", {})
        assert isinstance(res, Ok)
        assert res.value.intent == "weather"
        assert res.value.slots == {"city": "Oslo"}

    async def test_echoed_plan(self):
        raw = json.dumps({"user_input": "weather oslo", "state": {"slots": {}}})
        res = await LlmTier(ScriptedLLM(json_replies=[raw])).classify("weather oslo", {})
        assert res == Err("echoed_plan")

    def test_helpers(self):
        assert safe_json_parse("[1, 2]") == {}
        assert safe_json_parse("") == {}
        assert is_echoed_plan({"user_input": "x"})
        assert not is_echoed_plan({"user_input": "x", "intent": "weather"})


class TestCascade:
    """Tier ordering, fallthrough and caching"""

    async def test_first_ok_above_bar_wins(self):
        a = StubTier("a", ok("weather", 0.5), min_confidence=0.7)
        b = StubTier("b", ok("packing", 0.8), min_confidence=0.6)
        c = StubTier("c", ok("attractions", 0.3))
        result = await ClassificationCascade([a, b, c]).classify("what should I pack")
        assert result.intent == "packing"
        assert c.calls == 0

    async def test_failures_fall_through_to_rules(self):
        """Local and LLM tiers both failing still yields a rules answer"""
        local = StubTier("local", RuntimeError("model crashed"))
        llm = StubTier("llm", ok("weather", 0.9), timeout_s=0.01, delay=0.5)
        result = await ClassificationCascade([local, llm, RulesTier()]).classify("Weather in Paris?")
        assert result.tier == "rules"
        assert result.intent == "weather"

    async def test_all_tiers_fail(self):
        tiers = [StubTier("a", Err("x")), StubTier("b", RuntimeError("y"))]
        result = await ClassificationCascade(tiers).classify("hmm")
        assert result.intent == "unknown"
        assert result.tier == "fallback"
        assert result.confidence < 0.5

    async def test_cache_hits_skip_tiers(self):
        tier = StubTier("a", ok("weather", 0.9))
        cache = TTLCache(maxsize=10, ttl_s=60)
        cascade = ClassificationCascade([tier], cache=cache)
        await cascade.classify("Weather in Oslo")
        await cascade.classify("  weather   in OSLO ")
        assert tier.calls == 1
        cache.clear()
        await cascade.classify("Weather in Oslo")
        assert tier.calls == 2

    async def test_entities_merged_and_month_city_dropped(self):
        tier = StubTier("a", Ok(ClassificationResult(intent="packing", confidence=0.9, slots={"city": "March"})))
        result = await ClassificationCascade([tier]).classify("What to pack for Tokyo in March")
        assert result.slots["city"] == "Tokyo"
        assert result.slots["month"] == "March"

    async def test_now_resolves_current_month(self):
        cascade = ClassificationCascade([RulesTier()], now=lambda: datetime(2026, 10, 17))
        result = await cascade.classify("Weather in Paris today?")
        assert result.slots["month"] == "October"
        assert result.has_flag("immediate")

    async def test_explicit_month_beats_now_language(self):
        cascade = ClassificationCascade([RulesTier()], now=lambda: datetime(2026, 10, 17))
        result = await cascade.classify("What to wear in Paris in December?")
        assert result.slots["month"] == "December"
        result = await cascade.classify("Weather in Paris in December right now")
        assert result.slots["month"] == "December"

    async def test_what_to_wear_sets_no_month(self):
        cascade = ClassificationCascade([RulesTier()], now=lambda: datetime(2026, 10, 17))
        result = await cascade.classify("What to wear?")
        assert "month" not in result.slots
        assert not result.has_flag("immediate")

    async def test_flags(self):
        result = await ClassificationCascade([RulesTier()]).classify("cheap trip to Rome, quiero saber el precio")
        assert "budget" in result.flags
        assert "mixed_language" in result.flags


class TestComplexity:
    """Deep-research assessment"""

    def test_family_budget_trip_is_complex(self):
        text = "Plan a family trip to Lisbon with the kids on a tight budget"
        result = classify_rules(text)
        assert {"location", "budget", "group"} <= constraints(text, result)
        verdict = assess_complexity(text, result)
        assert verdict.is_complex
        assert verdict.confidence == 0.85

    def test_single_lookup_is_simple(self):
        text = "Weather in Paris today?"
        verdict = assess_complexity(text, classify_rules(text))
        assert not verdict.is_complex

    def test_many_constraints(self):
        text = "A 5-day itinerary from Rome to Florence in May with museums and wine"
        verdict = assess_complexity(text, classify_rules(text))
        assert verdict.is_complex
        assert 0.7 < verdict.confidence <= 0.95

    async def test_llm_verdict_used(self):
        reply = json.dumps({"isComplex": True, "confidence": 0.9, "reasoning": "many moving parts"})
        assessor = ComplexityAssessor(ScriptedLLM(available=True, json_replies=[reply]))
        verdict = await assessor.assess("Weather in Paris today?", classify_rules("Weather in Paris today?"))
        assert verdict.is_complex
        assert verdict.reasoning == "many moving parts"

    async def test_unusable_llm_answer_falls_back(self):
        assessor = ComplexityAssessor(ScriptedLLM(available=True, json_replies=["not json at all"]))
        verdict = await assessor.assess("Weather in Paris today?", classify_rules("Weather in Paris today?"))
        assert not verdict.is_complex
