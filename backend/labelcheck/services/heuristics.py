"""Field-scope policy: which optional fields a given label is judged on.

TTB rules exempt some labels from some fields:

- Beer (malt beverages) does not need an alcohol statement checked.
- Wine under 7% ABV falls outside the wine labeling rules for alcohol content.
- Country of origin only applies to imported products.
- Additive disclosures only matter when the formula contains a listed additive.

Fields ruled out of scope are never allowed to fail: the evaluator forces
them to 1 and the merger defaults them to 1.
"""

import re
from dataclasses import dataclass
from typing import Optional

from ..models import FIELD_KEYS, ExpectedLabel, ExtractedLabel, FieldAccuracy, ProductType

# Keywords used to infer a beer class/type when product type is unknown
BEER_CLASS_KEYWORDS = [
    "beer",
    "ale",
    "lager",
    "porter",
    "stout",
    "malt liquor",
    "cereal beverage",
    "near beer",
    "wheat beer",
    "rye beer",
    "ice beer",
    "barley wine",
    "half and half",
    "black and tan",
]

LOW_ALCOHOL_WINE_ABV = 7.0

ABV_PATTERN = re.compile(r"\d+(\.\d+)?")


@dataclass(frozen=True)
class EvaluationFlags:
    """Which optional fields are in scope for one expected record."""
    include_alcohol: bool
    include_country: bool
    include_additives: bool

    def out_of_scope_keys(self) -> list[str]:
        keys = []
        if not self.include_alcohol:
            keys.append("alcohol_content")
        if not self.include_country:
            keys.append("country_of_origin")
        if not self.include_additives:
            keys.append("additives_disclosed")
        return keys


def parse_abv(text: Optional[str]) -> Optional[float]:
    """First number in the text, or None when there is none (not zero)."""
    if not text:
        return None
    match = ABV_PATTERN.search(text)
    if not match:
        return None
    return float(match.group(0))


def is_beer_class_type(value: Optional[str]) -> bool:
    if not value:
        return False
    normalized = value.lower()
    return any(keyword in normalized for keyword in BEER_CLASS_KEYWORDS)


def is_wine_class_type(value: Optional[str]) -> bool:
    if not value:
        return False
    return "wine" in value.lower()


def should_check_alcohol_content(expected: ExpectedLabel) -> bool:
    """Beer is exempt; so is wine below 7% ABV. Otherwise check when an ABV is given."""
    class_type = expected.text_of("class_type")
    if expected.product_type == ProductType.BEER or is_beer_class_type(class_type):
        return False

    alcohol_text = expected.text_of("alcohol_content")
    is_wine = expected.product_type == ProductType.WINE or is_wine_class_type(class_type)
    abv = parse_abv(alcohol_text)
    if is_wine and abv is not None and abv < LOW_ALCOHOL_WINE_ABV:
        return False

    return bool(alcohol_text)


def should_check_country_of_origin(expected: ExpectedLabel) -> bool:
    return bool(expected.is_imported and expected.text_of("country_of_origin"))


def should_check_additives(expected: ExpectedLabel) -> bool:
    return expected.additives_detected.any_disclosed()


def get_evaluation_flags(expected: ExpectedLabel) -> EvaluationFlags:
    return EvaluationFlags(
        include_alcohol=should_check_alcohol_content(expected),
        include_country=should_check_country_of_origin(expected),
        include_additives=should_check_additives(expected),
    )


def build_default_fields(flags: EvaluationFlags, default: int) -> FieldAccuracy:
    """Every field at ``default``, except out-of-scope fields which are 1."""
    scores = {key: default for key in FIELD_KEYS}
    for key in flags.out_of_scope_keys():
        scores[key] = 1
    return FieldAccuracy(**scores)


def apply_evaluation_overrides(fields: FieldAccuracy, flags: EvaluationFlags) -> FieldAccuracy:
    """Force out-of-scope fields to 1 regardless of what the scorer said."""
    overrides = {key: 1 for key in flags.out_of_scope_keys()}
    if not overrides:
        return fields
    return fields.model_copy(update=overrides)


def count_missing_fields(extracted: ExtractedLabel) -> int:
    return sum(1 for key in FIELD_KEYS if getattr(extracted, key) is None)
