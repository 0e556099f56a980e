"""
Services Layer

Bracket, scoring, slot and scheduling logic that:
- Accepts domain inputs (IDs, sessions, Score objects)
- Returns domain outputs (models, result objects, dicts)
- Does NOT depend on HTTP request/response objects
- Raises courtside.errors exceptions; routes translate them to status codes
"""
