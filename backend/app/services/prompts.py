"""
Prompt registry. Each prompt carries a version so a stored result can say
which prompt produced it.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Prompt:
    name: str
    version: str
    content: str


def prompt_tag(prompt: Prompt) -> str:
    return f"{prompt.name}@{prompt.version}"


_RESPONSE_SHAPE = """{
  "rawText": "%s",
  "description": "%s",
  "confidence": 0.0 to 1.0 (how confident you are this is a recipe with parseable data),
  "contentType": "recipe" | "ingredient_list" | "other",
  "recipeData": {
    "title": "Recipe title if found",
    "ingredients": ["ingredient 1", "ingredient 2", ...],
    "instructions": ["step 1", "step 2", ...],
    "servings": "Number of servings if found",
    "prepTime": "Prep time if found (e.g., '15 minutes')",
    "cookTime": "Cook time if found (e.g., '30 minutes')"
  }
}"""

_RULES = """Rules:
1. ALWAYS include rawText, description, confidence, and contentType
2. Only include recipeData if you can confidently extract at least a title AND (ingredients OR instructions)
3. Set confidence to 0.7+ only if you can extract meaningful structured data
4. For ingredient_list content (shopping lists, ingredient notes), still extract what you can
5. For "other" content, set confidence low and omit recipeData
6. If text is not in English, translate it to English in the extracted data
7. Clean up OCR artifacts and formatting issues in the extracted text

Respond ONLY with valid JSON, no additional text."""

RECIPE_ANALYSIS_PROMPT = Prompt(
    name="recipe_analysis",
    version="1.0",
    content=(
        "You are a recipe extraction assistant. Analyze this image and extract recipe information.\n\n"
        "Your response MUST be valid JSON with this exact structure:\n"
        + _RESPONSE_SHAPE % (
            "Full text content visible in the image, preserving line breaks",
            "Brief 1-2 sentence description of what the image contains",
        )
        + "\n\n" + _RULES
    ),
)

RECIPE_HTML_ANALYSIS_PROMPT = Prompt(
    name="recipe_html_analysis",
    version="1.0",
    content=(
        "You are a recipe extraction assistant. Analyze this raw HTML from a recipe webpage "
        "and extract recipe information.\n\n"
        "Your response MUST be valid JSON with this exact structure:\n"
        + _RESPONSE_SHAPE % (
            "Important recipe text extracted from the HTML, preserving line breaks",
            "Brief 1-2 sentence description of the recipe page",
        )
        + "\n\n" + _RULES
    ),
)
