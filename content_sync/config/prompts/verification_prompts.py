"""Prompt templates for oracle-backed entity verification.

The oracle is asked to fact-check one directory entry and answer with a
single JSON object. Type-specific instructions list the fields most often
wrong for that kind of entity.
"""

import json
from typing import Any

VERIFICATION_SYSTEM_PROMPT = '''You are a techno music expert and fact-checker. Your job is to verify information about electronic music artists, venues, festivals, gear, labels, releases and crews.

For each entity, you must:
1. Check if the information is factually correct
2. Identify any hallucinations or errors
3. Suggest corrections with sources
4. Find a legitimate photo URL if missing (prefer Wikimedia Commons, official websites, or properly licensed images)

IMPORTANT: Only report actual errors. If information is correct, say so.
Respond in JSON format only.'''


TYPE_INSTRUCTIONS: dict[str, str] = {
    "artist": (
        "Verify artist biography, career dates, associated labels, city/country of origin.\n"
        "Key fields to check: name, realName, city, country, active years, labels, bio accuracy.\n"
        "Look for: incorrect founding dates, wrong label associations, fabricated awards or performances."
    ),
    "venue": (
        "Verify venue details: location, capacity, opening date, sound system, closure status.\n"
        "Key fields: name, city, country, capacity, opening year, closure status.\n"
        "Common errors: wrong capacities, incorrect founding years, misattributed locations."
    ),
    "festival": (
        "Verify festival details: founding year, location, typical months, capacity.\n"
        "Key fields: name, city, country, founded year, months held, capacity.\n"
        "Watch for: wrong founding years, incorrect locations, fabricated lineups."
    ),
    "gear": (
        "Verify gear specifications: manufacturer, release year, synthesis type, polyphony.\n"
        "Key fields: name, manufacturer, releaseYear, category, technical specs.\n"
        "Common errors: wrong release years, incorrect specifications, misattributed manufacturers."
    ),
    "label": (
        "Verify label details: founding year, founders, location, active status.\n"
        "Key fields: name, city, country, founded, founders, key artists.\n"
        "Check: wrong founding years, incorrect founder attributions."
    ),
    "release": (
        "Verify release details: artist, label, year, format, tracklist.\n"
        "Key fields: title, artist, label, year, format, tracklist.\n"
        "Watch for: wrong release years, incorrect label associations, fabricated tracks."
    ),
    "crew": (
        "Verify crew/collective details: founding year, city, members, active status.\n"
        "Key fields: name, city, country, founded, members, type.\n"
        "Check: wrong founding years, incorrect member listings."
    ),
}

DEFAULT_TYPE_INSTRUCTION = "Verify all details for accuracy."

MISSING_PHOTO_INSTRUCTION = '''IMPORTANT: This entity has NO PHOTO. Please find a legitimate image URL.
Prefer: Wikimedia Commons (CC licensed), official artist/venue websites, press photos.
Include attribution info if found.'''

RESPONSE_FORMAT_INSTRUCTION = '''Respond with this exact JSON structure:
{
  "verified": true/false,
  "confidence": 0.0-1.0,
  "overall_assessment": "Brief summary of accuracy",
  "corrections": [
    {
      "field": "field_name",
      "original": "original value",
      "corrected": "correct value",
      "reason": "why this is wrong and source for correction"
    }
  ],
  "evidence": ["source URL or citation", "..."],
  "photo_url": "URL if found and entity has no photo",
  "photo_source": "Attribution info for the photo"
}

If everything is correct, return empty corrections array and verified: true.'''


def build_verification_prompt(
    entity_type: str,
    entity_id: str,
    current_data: dict[str, Any],
    has_photo: bool,
) -> str:
    """Render the user prompt for one entity."""
    sections = [
        f"Entity Type: {entity_type.upper()}",
        f"Entity ID: {entity_id}",
        "",
        "Current Data:",
        json.dumps(current_data, indent=2, default=str),
        "",
        TYPE_INSTRUCTIONS.get(entity_type, DEFAULT_TYPE_INSTRUCTION),
    ]
    if not has_photo:
        sections.extend(["", MISSING_PHOTO_INSTRUCTION])
    sections.extend(["", RESPONSE_FORMAT_INSTRUCTION])
    return "\n".join(sections)
