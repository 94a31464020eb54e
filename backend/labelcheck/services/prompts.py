"""Instruction text for the extraction and scoring calls."""

SYSTEM_PROMPT = (
    "You read alcohol beverage labels for TTB compliance review and answer with a single JSON object. "
    "Use null for any field that is not printed on the label. Typography flags (isBold, isAllCaps) "
    "exist only on governmentWarning and describe the \"GOVERNMENT WARNING\" header words only."
)

EXTRACTION_PROMPT = (
    "Transcribe these fields from the label image. Use null when a field is absent or unreadable.\n\n"
    "FIELDS\n"
    "- brandName: the brand name alone, without any address.\n"
    "- classType: the regulated class/type designation (e.g. 'Straight Bourbon Whiskey', 'Vodka', "
    "'Red Wine', 'Pale Ale'). Never a fanciful or proprietary name.\n"
    "- alcoholContent: the alcohol statement as printed (e.g. '45% ALC./VOL.'). "
    "Null for beer and malt beverages, and for wine under 7% ABV.\n"
    "- netContents: the net contents statement as printed (e.g. '750 ML').\n"
    "- bottlerProducer: the bottler or producer name together with its address as printed.\n"
    "- governmentWarning: the complete health warning including the 'GOVERNMENT WARNING:' header, "
    "with isBold and isAllCaps judged from the header only.\n"
    "- countryOfOrigin: the country statement for imported products, otherwise null.\n"
    "- additivesDisclosed: booleans fdcYellowNo5, cochinealExtract, carmine, aspartame, "
    "sulfitesGe10ppm ('Contains Sulfites'). Null when the label has no additive disclosure.\n\n"
    "RULES\n"
    "- Keep the label's own capitalization and wording.\n"
    "- Each text field is an object of the form {\"text\": \"...\"}.\n"
    "- Do not guess typography for any field other than governmentWarning.\n"
)

EVALUATION_SYSTEM_PROMPT = (
    "Compare expected and extracted alcohol label data field by field. "
    "Differences in wording, case and formatting are acceptable. Answer with a single JSON object."
)

EVALUATION_INSTRUCTIONS = (
    "Score each field 1 when the extracted value is an acceptable match for the expected value "
    "and 0 otherwise.\n"
    "- brandName: a recognizable part of the expected brand is enough.\n"
    "- classType: loose similarity is fine; reject category changes such as wine versus beer.\n"
    "- alcoholContent and netContents: the numbers must match; the surrounding text may differ.\n"
    "- governmentWarning: must be one of the two standard warning texts when present.\n"
    "- A field that is null on both sides scores 1.\n"
    "Return exactly these keys: brandName, classType, alcoholContent, netContents, "
    "governmentWarning, bottlerProducer, countryOfOrigin, additivesDisclosed.\n\n"
)


def schema_instruction(schema_json: str) -> str:
    return f"Respond with JSON that conforms to this JSON Schema:\n{schema_json}"
