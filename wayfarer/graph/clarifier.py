from typing import Any, Dict, List, Optional

FLIGHT_QUESTIONS = {
    "originCity": "Which city are you flying from?",
    "destinationCity": "Where would you like to fly to?",
    "departureDate": "What date would you like to depart?",
}


def build_clarifying_question(missing: List[str], slots: Optional[Dict[str, Any]] = None) -> str:
    """
    Exactly one concise question per turn.
    """
    miss = {m.lower() for m in missing}
    if "dates" in miss and "city" in miss:
        return "Could you share the city and month/dates?"
    if "dates" in miss:
        return "Which month or travel dates?"
    if "city" in miss:
        return "Which city are you asking about?"
    for key, q in FLIGHT_QUESTIONS.items():
        if key in missing:
            return q
    return "Could you provide more details about your travel plans?"


def cities_question(cities: List[str]) -> str:
    return f"I see you've mentioned multiple cities: {', '.join(cities)}. Which one would you like information about?"


def seasons_question(seasons: List[str]) -> str:
    return f"I notice you mentioned multiple seasons ({', '.join(seasons)}). Which season are you planning to travel in?"


def unknown_question(slots: Dict[str, Any]) -> str:
    city = slots.get("city")
    if city:
        return f"What would you like to know about {city}: weather, packing, attractions, or destinations?"
    return "Could you share the city and month/dates?"
