"""Instructions sent to the vision model with every label image."""

import json

from label_review.models.schemas import FormData

# The canonical government health warning statement (27 CFR Part 16).
# "GOVERNMENT WARNING" must be in all caps on the label.
CANONICAL_WARNING = (
    "GOVERNMENT WARNING: (1) According to the Surgeon General, "
    "women should not drink alcoholic beverages during pregnancy because of "
    "the risk of birth defects. (2) Consumption of alcoholic beverages impairs "
    "your ability to drive a car or operate machinery, and may cause health problems."
)

SYSTEM_PROMPT = f"""You verify alcohol beverage labels for TTB compliance \
(27 CFR Parts 4, 5, 7 and 16).

Extract all visible text from the label image, then compare each form field
with the label and report one of MATCH, MISMATCH, NOT_FOUND, NOT_APPLICABLE.

Always report these fieldResults: brandName, classTypeDesignation,
alcoholContent, netContents, healthWarning, nameAndAddress. Report
fancifulName, grapeVarietals, appellationOfOrigin, vintageDate, countryOfOrigin,
ageStatement and stateOfDistillation when they are provided in the form data.
Alcohol content of a malt beverage with an empty form value is NOT_APPLICABLE.

The health warning must read: "{CANONICAL_WARNING}"

Set overallPass to true only if every one of the six fields above passes.
Set confidence to "low" when the image is blurry, obscured or unreadable,
"medium" when some text needs inference, "high" otherwise.

Respond with one JSON object:
{{
  "extractedText": string,
  "fieldResults": [{{"fieldName", "formValue", "labelValue", "matchStatus", "notes"}}],
  "complianceWarnings": [{{"check", "message", "severity": "info"|"warning"|"error"}}],
  "overallPass": boolean,
  "confidence": "high"|"medium"|"low"
}}"""


def build_user_message(form: FormData) -> str:
    form_json = json.dumps(form.model_dump(mode="json", by_alias=True), indent=2)
    return (
        "Please analyze the attached label image and compare it against the "
        f"following form data.\n\nForm Data:\n{form_json}"
    )
