import base64
import json
from typing import Any, Dict, List, Optional, Union

from langchain_core.messages import HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from langsmith import traceable
from pydantic import ValidationError

from env import (
    CLASSIFIER_MALFORMED_RETRIES,
    CLASSIFIER_MAX_INPUT_CHARS,
    CLASSIFIER_MAX_OUTPUT_TOKENS,
    CLASSIFIER_TEMPERATURE,
    CLASSIFIER_TIMEOUT,
    LLM_API_KEY,
    LLM_MODEL_NAME,
)
from interfaces.productModels import ClassificationResult
from logger_manager import log_debug, log_error, log_info, log_warning
from services.errors import ClassificationMalformed, ClassificationUnavailable

SUPPORTED_IMAGE_TYPES = ("image/jpeg", "image/png")

ALLERGEN_VOCABULARY = "peanuts, tree nuts, milk, eggs, wheat, soy, fish, shellfish, sesame, corn, sulfites"

RESPONSE_FORMAT = """{
  "ingredients": [
    {"name": "ingredient name in English", "allergens": ["allergen1", "allergen2"]}
  ],
  "general_allergens": ["allergens from 'may contain' or trace statements"]
}"""

TEXT_PROMPT = f"""
# INGREDIENT LIST CLASSIFICATION TASK

You are a food allergen expert. The following ingredient list was printed on a
German food product. Split it into individual ingredients, translate every
ingredient name to English and list the allergens each ingredient contains.

Use these allergen names where they apply: {ALLERGEN_VOCABULARY}.
Statements such as "kann Spuren von ... enthalten" go to "general_allergens".

Respond ONLY with JSON in exactly this format:
{RESPONSE_FORMAT}

Ingredient list:
"""

IMAGE_PROMPT = f"""
# INGREDIENT IMAGE CLASSIFICATION TASK

You are a food allergen expert. The image shows the ingredient list of a food
product. Read every ingredient, translate its name to English and list the
allergens each ingredient contains.

Use these allergen names where they apply: {ALLERGEN_VOCABULARY}.
Statements such as "may contain traces of ..." go to "general_allergens".
If no ingredient list is readable, return an empty "ingredients" array.

Respond ONLY with JSON in exactly this format:
{RESPONSE_FORMAT}
"""

RETRY_REMINDER = (
    "Your previous answer could not be parsed. Answer again with a single JSON "
    "object in the requested format and nothing else."
)


def extract_json_block(text: str) -> Any:
    """Parse `text` as JSON, falling back to the first decodable {...} block inside it."""
    text = (text or "").strip()
    if not text:
        raise ClassificationMalformed("Empty classifier response")
    try:
        return json.loads(text)
    except ValueError:
        pass

    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            data, _ = decoder.raw_decode(text, start)
            return data
        except ValueError:
            start = text.find("{", start + 1)
    raise ClassificationMalformed("No JSON object found in classifier response")


def parse_classification(text: str) -> ClassificationResult:
    data = extract_json_block(text)
    if not isinstance(data, dict) or "ingredients" not in data:
        raise ClassificationMalformed("Classifier response has no 'ingredients' field")
    try:
        return ClassificationResult.model_validate(data)
    except ValidationError as e:
        raise ClassificationMalformed(f"Classifier response has an invalid shape: {e}") from e


def _response_text(response) -> str:
    content = getattr(response, "content", response)
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(part.get("text", ""))
        return "".join(parts)
    return content if isinstance(content, str) else str(content)


class AllergenClassifierClient:
    """
    Turns ingredient text or an ingredient-list photo into structured
    ingredients with allergen tags, using a Gemini chat model.

    Raises ClassificationUnavailable when the model cannot be called and
    ClassificationMalformed when its answer cannot be parsed.
    """

    def __init__(self, llm=None, api_key: Optional[str] = LLM_API_KEY, model_name: str = LLM_MODEL_NAME,
                 timeout: float = CLASSIFIER_TIMEOUT, malformed_retries: int = CLASSIFIER_MALFORMED_RETRIES,
                 max_input_chars: int = CLASSIFIER_MAX_INPUT_CHARS):
        self._llm = llm
        self.api_key = api_key
        self.model_name = model_name
        self.timeout = timeout
        self.malformed_retries = max(0, malformed_retries)
        self.max_input_chars = max_input_chars

    def _get_llm(self):
        if self._llm is None:
            if not self.api_key:
                raise ClassificationUnavailable("LLM_API_KEY is not configured")
            self._llm = ChatGoogleGenerativeAI(
                google_api_key=self.api_key,
                model=self.model_name,
                temperature=CLASSIFIER_TEMPERATURE,
                max_output_tokens=CLASSIFIER_MAX_OUTPUT_TOKENS,
                timeout=self.timeout,
                max_retries=1,
            )
        return self._llm

    def _invoke(self, content: Union[str, List[Dict[str, Any]]]) -> str:
        llm = self._get_llm()
        try:
            response = llm.invoke([HumanMessage(content=content)])
        except Exception as e:
            log_error(f"Classifier call failed: {e}", e)
            raise ClassificationUnavailable(f"Classifier call failed: {e}") from e
        return _response_text(response)

    def _classify(self, content, with_reminder) -> ClassificationResult:
        attempts = self.malformed_retries + 1
        for attempt in range(1, attempts + 1):
            raw = self._invoke(content if attempt == 1 else with_reminder)
            log_debug(f"Classifier response (attempt {attempt}): {raw[:500]}")
            try:
                return parse_classification(raw)
            except ClassificationMalformed as e:
                if attempt == attempts:
                    log_error(f"Classifier response malformed after {attempts} attempt(s): {e}")
                    raise
                log_warning(f"Classifier response malformed, asking again: {e}")

    @traceable(name="classify_ingredient_text")
    def classify_text(self, text: str) -> ClassificationResult:
        text = (text or "").strip()
        if not text:
            raise ValueError("Ingredient text is empty")
        if len(text) > self.max_input_chars:
            log_warning(f"Ingredient text truncated from {len(text)} to {self.max_input_chars} characters")
            text = text[:self.max_input_chars]

        log_info(f"Classifying ingredient text ({len(text)} characters)")
        prompt = TEXT_PROMPT + text
        result = self._classify(prompt, prompt + "\n\n" + RETRY_REMINDER)
        log_info(f"Classifier found {len(result.ingredients)} ingredients")
        return result

    @traceable(name="classify_ingredient_image")
    def classify_image(self, image_bytes: bytes, mime_type: str) -> ClassificationResult:
        if mime_type not in SUPPORTED_IMAGE_TYPES:
            raise ClassificationMalformed(f"Unsupported image type: {mime_type}")
        if not image_bytes:
            raise ClassificationMalformed("Image is empty")

        log_info(f"Classifying ingredient image ({len(image_bytes)} bytes, {mime_type})")
        image_part = {
            "type": "image_url",
            "image_url": {"url": f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"},
        }
        content = [{"type": "text", "text": IMAGE_PROMPT}, image_part]
        with_reminder = content + [{"type": "text", "text": RETRY_REMINDER}]
        result = self._classify(content, with_reminder)
        log_info(f"Classifier found {len(result.ingredients)} ingredients in image")
        return result
