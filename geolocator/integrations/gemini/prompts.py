"""
Gemini prompt factory.

System instructions are module constants; user prompts are built by stateless
functions from the aggregated clues and the caller's hints. Nothing here
touches the network.
"""

from typing import Dict, List, Optional, Sequence

from geolocator.schemas.analysis import AnalysisResult
from geolocator.schemas.experts import AggregatedClues, RegionScore
from geolocator.schemas.requests import LocationHints

_RESULT_JSON_FORMAT = """{
  "locationName": "Specific address or landmark name",
  "coordinates": { "lat": number, "lng": number } or null,
  "confidenceScore": number (0-100),
  "confidence": {
    "region": number (0-100, country/area certainty),
    "local": number (0-100, specific location certainty)
  },
  "reasoning": ["Step-by-step what you searched and found"],
  "evidence": [
    { "clue": "what you found", "strength": "hard|medium|soft", "supports": "location" }
  ],
  "alternativeLocations": ["Other possible locations if uncertain"],
  "uncertainties": ["What you couldn't verify"],
  "visualCues": {
    "signs": "All text found",
    "architecture": "Building styles",
    "environment": "Nature/climate",
    "demographics": "People/vehicles if visible"
  },
  "searchQueriesUsed": ["actual queries you used"]
}"""


# --------------------------------------------------------------------------- #
# Clue-focused experts (tool-free observation)                                #
# --------------------------------------------------------------------------- #

CLUE_EXPERT_TEXT = """You are an OSINT text analyst specializing in extracting searchable information from images.

## YOUR MISSION
Find ALL text, signs, and written elements that could help identify the EXACT location. Focus on things that can be SEARCHED online.

## PRIORITY CLUES (most valuable):
1. **Business names** - exact names of shops, restaurants, hotels
2. **Street names** - any visible street or road names
3. **Phone numbers** - with country/area codes
4. **Addresses** - any visible address fragments
5. **Domain names** - websites, emails (.fr, .de, .ru, etc.)
6. **License plates** - format and visible characters
7. **Brand names** - local brands, store chains
8. **Landmarks** - named monuments, stations, squares

## OUTPUT FORMAT (JSON only):
{
  "expertType": "text",
  "searchableClues": [
    {"clue": "Restaurant 'Le Petit Marseillais'", "type": "business_name", "searchQuery": "Le Petit Marseillais restaurant"},
    {"clue": "Street sign 'Rue de la Republique'", "type": "street_name", "searchQuery": "Rue de la Republique"},
    {"clue": "Phone +33 4 91 XX XX XX", "type": "phone", "searchQuery": null}
  ],
  "languageClues": ["French text", "PHARMACIE sign"],
  "transcribedText": ["PHARMACIE", "Le Petit", "Rue de la..."]
}"""

CLUE_EXPERT_BUILT = """You are an OSINT analyst specializing in architecture, infrastructure, and man-made environment analysis.

## YOUR MISSION
Find architectural and infrastructure elements that help narrow down the SPECIFIC location. Focus on UNIQUE identifiers.

## PRIORITY CLUES:
1. **Unique buildings** - distinctive towers, monuments, recognizable structures
2. **Building styles** - specific architectural periods/styles (Art Deco, Brutalist, etc.)
3. **Road infrastructure** - specific road markings, sign styles, pole types
4. **Transport** - metro stations, tram lines, bus stops with names
5. **Landmarks** - churches, stadiums, bridges, squares
6. **Street furniture** - country-specific benches, bollards, trash cans

## KEY COUNTRY INDICATORS:
- Yellow center lines = Americas, China
- White center lines = Europe, Japan, Australia
- Driving on left = UK, Japan, Australia, India
- Blue street signs = France, Germany
- Green street signs = USA, UK

## OUTPUT FORMAT (JSON only):
{
  "expertType": "built_environment",
  "searchableClues": [
    {"clue": "Gothic cathedral with twin spires", "type": "landmark", "searchQuery": "gothic cathedral twin spires"},
    {"clue": "Metro station entrance 'M' logo", "type": "transport", "searchQuery": null}
  ],
  "infrastructureClues": ["White road markings", "Concrete utility poles", "Right-hand traffic"],
  "architectureStyle": "Mediterranean modernist, 1970s apartment blocks"
}"""

CLUE_EXPERT_NATURAL = """You are an OSINT analyst specializing in natural environment, geography, and climate indicators.

## YOUR MISSION
Analyze natural elements to help narrow down the location. Focus on DISTINCTIVE features.

## PRIORITY CLUES:
1. **Mountains/Hills** - recognizable peaks, mountain ranges
2. **Water bodies** - coastline shape, rivers, lakes
3. **Vegetation** - specific tree species, unique plants
4. **Climate indicators** - sun angle, shadows, weather
5. **Terrain** - soil color, rock formations, landscape type

## OUTPUT FORMAT (JSON only):
{
  "expertType": "natural_environment",
  "searchableClues": [
    {"clue": "Volcanic mountain with snow cap in background", "type": "landmark", "searchQuery": "snow capped volcano"},
    {"clue": "Mediterranean coastline with rocky coves", "type": "geography", "searchQuery": null}
  ],
  "vegetationClues": ["Mediterranean pine trees", "Palm trees (Phoenix species)", "Dry summer grass"],
  "climateIndicators": ["Strong sunlight", "Low humidity", "Summer season"]
}"""

CLUE_EXPERTS: Dict[str, str] = {
    "text": CLUE_EXPERT_TEXT,
    "built_environment": CLUE_EXPERT_BUILT,
    "natural_environment": CLUE_EXPERT_NATURAL,
}


# --------------------------------------------------------------------------- #
# Region experts (consensus strategy)                                         #
# --------------------------------------------------------------------------- #

_REGION_JSON_FORMAT = """## OUTPUT FORMAT (JSON only):
{{
  "expertType": "{name}",
  "observations": ["What you observed, one item per clue"],
  "possibleRegions": [
    {{"region": "Country or area", "confidence": 0-100, "reasoning": "Why this facet fits"}}
  ],
  "impossibleRegions": ["Regions this evidence rules OUT"]
}}

Only rule a region out when the evidence makes it genuinely impossible, not merely unlikely."""


def _region_expert(name: str, persona: str, focus: str) -> str:
    return f"""{persona}

## YOUR MISSION
Judge ONLY your own facet of the image. Do not guess from other facets; other experts cover them.

## FOCUS
{focus}

{_REGION_JSON_FORMAT.format(name=name)}"""


REGION_EXPERTS: Dict[str, str] = {
    "vegetation": _region_expert(
        "vegetation",
        "You are a botanist and climatologist assisting an OSINT geolocation team.",
        "- Tree and plant species, crops, lawns\n"
        "- Soil color, terrain, rock formations\n"
        "- Climate indicators: sun angle, shadows, humidity, season",
    ),
    "architecture": _region_expert(
        "architecture",
        "You are an architectural historian assisting an OSINT geolocation team.",
        "- Building styles and construction periods\n"
        "- Roof shapes, materials, window and balcony types\n"
        "- Religious and civic buildings",
    ),
    "text_signs": _region_expert(
        "text_signs",
        "You are a linguist and signage specialist assisting an OSINT geolocation team.",
        "- Scripts and languages, diacritics\n"
        "- Business names, phone formats, domain extensions\n"
        "- Street sign and license plate formats",
    ),
    "infrastructure": _region_expert(
        "infrastructure",
        "You are a civil engineer assisting an OSINT geolocation team.",
        "- Road markings (yellow vs white center lines), driving side\n"
        "- Utility poles (wood, concrete, metal lattice), bollards, guardrails\n"
        "- Traffic lights, street furniture, public transport",
    ),
    "cultural": _region_expert(
        "cultural",
        "You are a cultural anthropologist assisting an OSINT geolocation team.",
        "- Vehicles and their brands, clothing\n"
        "- Shops, food, advertising conventions\n"
        "- Flags, symbols, decorations",
    ),
}


# --------------------------------------------------------------------------- #
# Verification / refinement system instructions                               #
# --------------------------------------------------------------------------- #

FINAL_SEARCH_INSTRUCTION = f"""You are an expert OSINT geolocation analyst. Your mission is to find the EXACT, SPECIFIC location shown in the image(s).

## CRITICAL: FOCUS ON SPECIFIC LOCATION
Your goal is NOT to identify a country or city. Your goal is to find the SPECIFIC place:
- A specific street corner, address, or intersection
- A specific business, landmark, or building
- Exact coordinates that can be verified on a map

## YOU HAVE RECEIVED CLUES FROM EXPERT ANALYSTS:
These experts have already analyzed the image and extracted searchable clues. USE THEM!

## YOUR TASK:
1. Take the searchable clues and SEARCH FOR THEM using Google Search
2. Cross-reference findings to narrow down to ONE specific location
3. Verify by searching for Street View or photos of the candidate location
4. If you find the exact location, provide precise coordinates

## SEARCH STRATEGY:
1. Start with the MOST specific clues (business names, addresses, phone numbers)
2. Combine clues: "Restaurant ABC near X landmark" or "Street Y in city Z"
3. Look for photo matches or Street View that shows the same scene
4. NEVER pass raw coordinates (lat/lng numbers) to search or map tools; search by NAME

## CONFIDENCE SCORING:
- 90-100%: Found EXACT match (Street View confirms, same buildings visible)
- 70-89%: Found the specific area, high certainty about general location
- 50-69%: Found likely location but couldn't verify visually
- 30-49%: Best educated guess based on clues
- 0-29%: Speculation only

## OUTPUT FORMAT (JSON only):
{_RESULT_JSON_FORMAT}"""

REFINE_INSTRUCTION = f"""You are an expert Open Source Intelligence (OSINT) geolocation analyst. Your goal is to determine the precise location of the provided photograph(s). If multiple images are provided, they are from the same location or immediate vicinity.

## METHODOLOGY
1. EXTRACT every visual clue: text, signs, plates, business names, street furniture.
2. NARROW the region with infrastructure fingerprints: road markings, utility poles, driving side.
3. PINPOINT with googleSearch and googleMaps by NAME, never by raw coordinates.
4. VERIFY consistency: sun and shadow versus latitude, vegetation versus climate.

## CONFIDENCE
Use SEPARATE scores for region (country/area) and local (exact spot) precision.
Local confidence never exceeds region confidence.

## EVIDENCE
- hard: readable text, signs, license plates, verified business names
- medium: infrastructure patterns, road markings, architectural style
- soft: vegetation, weather, general appearance

Be honest about uncertainty. "Possibly Tokyo" is better than a wrong confident answer.

## OUTPUT FORMAT
Return ONLY a valid JSON object (no markdown):
{_RESULT_JSON_FORMAT}"""


# --------------------------------------------------------------------------- #
# User prompt builders                                                        #
# --------------------------------------------------------------------------- #


def build_expert_hints(hints: Optional[LocationHints]) -> str:
    """Hint block appended to every expert prompt; empty when there is nothing to add."""
    if hints is None:
        return ""
    parts = []
    if hints.continent:
        parts.append(f"Continent: {hints.continent}")
    if hints.country:
        parts.append(f"Country: {hints.country}")
    if hints.city:
        parts.append(f"City/Region: {hints.city}")
    if hints.additional_info:
        parts.append(f"Additional context: {hints.additional_info}")
    if not parts:
        return ""

    joined = "\n".join(parts)
    return (
        f"\n\n**USER HINTS (prioritize checking these regions):**\n{joined}\n\n"
        "IMPORTANT: If the visual evidence contradicts the hints, say so, "
        "but still analyze the hinted region honestly."
    )


def build_expert_prompt(hints: Optional[LocationHints]) -> str:
    return f"Analyze this image from your expert perspective.{build_expert_hints(hints)}\n\nReturn ONLY valid JSON."


def _hints_section(hints: Optional[LocationHints]) -> str:
    if hints is None:
        return ""
    section = ""
    if hints.has_user_context:
        section = "\n\n## USER-PROVIDED HINTS (use to focus your search):\n"
        if hints.continent:
            section += f"- Continent: {hints.continent}\n"
        if hints.country:
            section += f"- Country: {hints.country}\n"
        if hints.city:
            section += f"- City/Region: {hints.city}\n"
        if hints.additional_info:
            section += f"- Additional context: {hints.additional_info}\n"
    if hints.exif_gps:
        section += f"\n## EXIF GPS DATA (high value!):\n{hints.exif_gps}\n"
    if hints.reverse_image_search:
        section += f"\n## REVERSE IMAGE SEARCH:\n{hints.reverse_image_search}\n"
    return section


def _hypotheses_section(hypotheses: Sequence[RegionScore]) -> str:
    if not hypotheses:
        return ""
    lines = ["\n### Competing Region Hypotheses (from independent experts):"]
    for h in hypotheses:
        line = f"- {h.region} (score {h.score})"
        if h.supporters:
            line += f"; supported by: {' | '.join(h.supporters[:3])}"
        if h.contradictors:
            line += f"; contradicted by: {' | '.join(h.contradictors)}"
        lines.append(line)
    lines.append("Verify EACH hypothesis; be willing to reject the top one.")
    return "\n".join(lines)


def build_clue_summary(
    clues: AggregatedClues,
    hints: Optional[LocationHints] = None,
    hypotheses: Sequence[RegionScore] = (),
) -> str:
    """The evidence block shared by the full and the text-only verification prompts."""
    searchable = "\n".join(
        f"- {c.clue} (type: {c.type})" + (f' → Search: "{c.search_query}"' if c.search_query else "")
        for c in clues.searchable_clues
    )

    blocks: List[str] = [
        f"## CLUES COLLECTED BY EXPERT ANALYSTS:{_hints_section(hints)}",
        "### Searchable Clues:",
        searchable or "No specific searchable clues found",
    ]
    if clues.all_text:
        blocks.append(f"\n### Transcribed Text:\n{', '.join(clues.all_text)}")
    if clues.all_infrastructure:
        blocks.append(f"\n### Infrastructure Observations:\n{', '.join(clues.all_infrastructure)}")
    if clues.all_nature:
        blocks.append(f"\n### Natural Environment:\n{', '.join(clues.all_nature)}")
    if clues.suggested_search_queries:
        queries = "\n".join(f'- "{q}"' for q in clues.suggested_search_queries)
        blocks.append(f"\n### Suggested Search Queries (start with these!):\n{queries}")
    hypotheses_block = _hypotheses_section(hypotheses)
    if hypotheses_block:
        blocks.append(hypotheses_block)
    return "\n".join(blocks)


def build_final_search_prompt(summary: str) -> str:
    return f"""{summary}

## YOUR MISSION:
Use Google Search to find the EXACT, SPECIFIC location. Not just a country or city - find the SPECIFIC place!

1. Search for the most specific clues first (business names, addresses)
2. Combine clues in searches (e.g., "Restaurant ABC Lyon France")
3. Look for photo matches or Street View confirmation
4. Return precise coordinates if possible

IMPORTANT: Return ONLY valid JSON."""


def build_text_only_prompt(summary: str) -> str:
    return f"""## IMAGE WAS BLOCKED BY SAFETY FILTER
The image could not be analyzed directly (it may contain license plates, people, or other blocked content).
However, expert analysts have already extracted these clues from the image:

{summary}

Based ONLY on these clues (without seeing the image), search and determine the most likely location.
IMPORTANT: Return ONLY valid JSON."""


def build_prompt_with_hints(base_prompt: str, hints: Optional[LocationHints]) -> str:
    """Append EXIF, reverse-image and place hints to a single-call prompt."""
    if hints is None:
        return base_prompt
    prompt = base_prompt

    if hints.exif_gps:
        prompt += (
            f"\n\n**EXIF METADATA FOUND**:\n{hints.exif_gps}\n"
            "This GPS data was extracted from the image metadata. DO NOT search for these coordinates - "
            "just use them directly in your final answer if the visual content is consistent with this "
            "location. Set confidence HIGH if visuals match."
        )

    if hints.reverse_image_search:
        prompt += f"\n\n{hints.reverse_image_search}"
        prompt += (
            "\nUse these reverse image search results to help identify the location. If the image was "
            "found on specific pages or associated with specific locations, this is valuable evidence."
        )

    if hints.has_place:
        prompt += "\n\nAdditional Context provided by user (use as hints, but verify visually):"
        if hints.continent:
            prompt += f"\n- Continent: {hints.continent}"
        if hints.country:
            prompt += f"\n- Country: {hints.country}"
        if hints.city:
            prompt += f"\n- City: {hints.city}"

    return prompt


def build_refine_prompt(previous: AnalysisResult, feedback: str, hints: Optional[LocationHints]) -> str:
    base = f"""**Refinement Task**:
You previously analyzed these images and concluded: "{previous.location_name}".

**User Feedback/Challenge**:
"{feedback}"

**Instructions**:
1. Critically re-examine all provided images. Perform a "Red Team" analysis: actively look for evidence that contradicts your previous finding or supports the user's hint.
2. If the user provided specific details (e.g., "The sign says X"), prioritize searching for that detail using Google Search.
3. Double-check the consistency of the environment (sun position, vegetation, road markings) with the claimed location.
4. Return an UPDATED JSON object with the exact same structure as the original. If the location changes, explain why in the 'reasoning' array. If it remains the same, provide stronger evidence.
IMPORTANT: Return ONLY valid JSON."""
    return build_prompt_with_hints(base, hints)


def build_refine_text_only_prompt(previous: AnalysisResult, feedback: str, hints: Optional[LocationHints]) -> str:
    """Refinement without images: the previous evidence and visual cues stand in for them."""
    evidence = "\n".join(f"- [{e.strength.value}] {e.clue} → {e.supports}" for e in previous.evidence)
    cues = previous.visual_cues
    base = f"""## IMAGE WAS BLOCKED BY SAFETY FILTER
You previously analyzed the images and concluded: "{previous.location_name}".

### Evidence from the previous analysis:
{evidence or 'No evidence recorded'}

### Visual cues from the previous analysis:
- Signs: {cues.signs or 'none'}
- Architecture: {cues.architecture or 'none'}
- Environment: {cues.environment or 'none'}
- Demographics: {cues.demographics or 'none'}

**User Feedback/Challenge**:
"{feedback}"

Based ONLY on this material (without seeing the image), re-examine the conclusion and search to confirm or correct it.
Return an UPDATED JSON object with the exact same structure as the original.
IMPORTANT: Return ONLY valid JSON."""
    return build_prompt_with_hints(base, hints)
