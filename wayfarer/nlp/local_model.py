"""
Local statistical intent classifier: multinomial naive Bayes over a small
seed corpus. First cascade tier; needs no network and no model download.
"""
import math
import re
from collections import Counter, defaultdict
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from wayfarer.nlp.result import ClassificationResult, Err, Ok, Result
from wayfarer.nlp.rules import detect_content_type

_TOKEN = re.compile(r"[a-z']+")

STOPWORDS = {
    "a", "an", "the", "i", "me", "my", "we", "our", "you", "is", "are", "am", "be", "it", "its",
    "in", "on", "at", "to", "for", "of", "and", "or", "with", "about", "there", "here", "this",
    "that", "what", "which", "how", "do", "does", "should", "can", "could", "would", "will",
    "please", "tell", "like", "know", "want", "need", "some", "any", "so", "s",
}

SEED_EXAMPLES: Dict[str, List[str]] = {
    "weather": [
        "weather in paris today",
        "what is the weather like in rome",
        "is it raining in london",
        "forecast for tokyo this week",
        "how hot is it in dubai",
        "temperature in berlin now",
        "will it snow in oslo",
        "weather forecast tomorrow",
        "is it sunny in barcelona",
        "how cold does it get in chicago",
    ],
    "packing": [
        "what should i pack for tokyo",
        "what to pack for paris in march",
        "packing list for a beach trip",
        "what clothes should i bring",
        "what to wear in london",
        "do i need a jacket",
        "what should i bring in my suitcase",
        "luggage essentials for winter travel",
        "pack for a trip with kids",
    ],
    "attractions": [
        "what to do in rome",
        "things to do in barcelona",
        "top attractions in paris",
        "museums to visit in amsterdam",
        "must see sights in new york",
        "best landmarks in london",
        "sightseeing in kyoto",
        "places to see in lisbon",
        "kid friendly activities in berlin",
    ],
    "destinations": [
        "where should i go in june",
        "recommend a destination for a honeymoon",
        "best places to travel in winter",
        "where can we go for a family vacation",
        "trip to japan in april",
        "what airlines fly there",
        "which airlines fly to tokyo",
        "is lisbon a good destination in may",
        "planning a holiday in italy",
        "weekend getaway ideas",
    ],
    "flights": [
        "flights from new york to london",
        "find a flight from delhi to mumbai on june 5",
        "book a flight from boston to chicago",
        "cheapest flight from paris to rome",
        "fly from sydney to melbourne next week",
        "flight tickets from berlin to madrid",
    ],
}

MIN_KNOWN_TOKENS = 1


def tokenize(text: str) -> List[str]:
    return [t for t in _TOKEN.findall((text or "").lower()) if t not in STOPWORDS]


class IntentModel(Protocol):
    def predict(self, text: str) -> Tuple[str, float]: ...


class NaiveBayesIntentModel:
    def __init__(self, examples: Optional[Dict[str, Iterable[str]]] = None, alpha: float = 0.5):
        self.alpha = alpha
        self.counts: Dict[str, Counter] = defaultdict(Counter)
        self.doc_counts: Counter = Counter()
        self.vocab: set = set()
        self.fit(examples or SEED_EXAMPLES)

    def fit(self, examples: Dict[str, Iterable[str]]) -> None:
        for label, docs in examples.items():
            for doc in docs:
                toks = tokenize(doc)
                self.counts[label].update(toks)
                self.doc_counts[label] += 1
                self.vocab.update(toks)

    def known_tokens(self, text: str) -> List[str]:
        return [t for t in tokenize(text) if t in self.vocab]

    def posteriors(self, text: str) -> Dict[str, float]:
        toks = self.known_tokens(text)
        total_docs = sum(self.doc_counts.values())
        v = len(self.vocab)
        logp = {}
        for label, counter in self.counts.items():
            denom = sum(counter.values()) + self.alpha * v
            lp = math.log(self.doc_counts[label] / total_docs)
            for t in toks:
                lp += math.log((counter[t] + self.alpha) / denom)
            logp[label] = lp
        top = max(logp.values())
        exp = {k: math.exp(lp - top) for k, lp in logp.items()}
        z = sum(exp.values())
        return {k: e / z for k, e in exp.items()}

    def predict(self, text: str) -> Tuple[str, float]:
        if len(self.known_tokens(text)) < MIN_KNOWN_TOKENS:
            return "unknown", 0.0
        post = self.posteriors(text)
        label = max(post, key=post.get)
        return label, post[label]


class LocalTier:
    name = "local"

    def __init__(self, model: Optional[IntentModel] = None, min_confidence: float = 0.7, timeout_s: float = 3.0):
        self.model = model or NaiveBayesIntentModel()
        self.min_confidence = min_confidence
        self.timeout_s = timeout_s

    async def classify(self, text: str, context: dict) -> Result[ClassificationResult]:
        content_type = detect_content_type(text)
        if content_type == "system":
            return Ok(ClassificationResult(content_type="system", intent="system", confidence=0.9, tier=self.name))
        if content_type == "unrelated":
            return Ok(ClassificationResult(content_type="unrelated", intent="unknown", confidence=0.9, tier=self.name))

        intent, confidence = self.model.predict(text)
        if intent == "unknown":
            return Err("no_signal")
        return Ok(ClassificationResult(
            content_type=content_type,
            intent=intent,
            confidence=round(confidence, 3),
            tier=self.name,
        ))
