"""PCB analysis request client.

Sends one photograph to Gemini together with a fixed inspection prompt and a
response schema, and turns the JSON reply into a :class:`PcbAnalysis`.

The schema is a hint to the model, not a hard contract. The only structural
checks made here are that the reply is a JSON object carrying ``components``
and ``defects`` lists; nested fields are coerced leniently, so a bad
number or a stray record does not reject the whole reply.
"""

import json
import logging

from google.genai import types

from ..core.entities import PcbAnalysis
from ..core.exceptions import ApplicationError, MalformedResponse
from ..utils.image_utils import SUPPORTED_MIME_TYPES
from .gemini_service import GeminiService, diagnose_empty_response

logger = logging.getLogger(__name__)

INVALID_FORMAT_MESSAGE = "AI returned invalid data format. Please try again."
ANALYSIS_FAILED_MESSAGE = "Failed to analyze PCB image. Please try again."
REQUIRED_KEYS = ("components", "defects")

PCB_ANALYSIS_PROMPT = """
You are an expert AI specializing in Printed Circuit Board (PCB) inspection. Analyze the provided PCB image and return a detailed report in JSON format based on the provided schema.

**Your Task:**

1.  **Identify Key Components:** Locate major components like ICs, capacitors, resistors. For each, identify its designator (e.g., U1), a plausible Manufacturer Part Number (MPN), its bounding box, presence, and condition.
2.  **Perform Thermal & Electrical Analysis:**
    *   For each component, estimate its operating **temperature** in Celsius. If a component appears to be a significant heat source (e.g., discolored, near a heatsink), assign a higher temperature.
    *   Provide a plausible **maxVoltage** in Volts for each component based on its type and a plausible **datasheetUrl**.
3.  **Detect Manufacturing & Operational Defects:** Identify common defects.
    *   Examples: solder bridges, misalignments, missing components, or damaged (burnt, corroded) parts.
    *   Crucially, also identify **overheating** defects. If a component's temperature is abnormally high (e.g., > 70 C), create a defect of type 'overheating'. The bounding box for this defect should be slightly larger than the component itself to represent a heat zone.
    *   For each defect, provide a unique ID, defect type, bounding box, a confidence score, and a brief description.
4.  **Provide a Summary & Actionable Advice:**
    *   Write a one-sentence summary of the board's condition.
    *   Generate quick_actions, alternatives for broken parts, next_steps, and an estimated repair_cost.

Important: All bounding box coordinates (x, y, w, h) must be normalized values between 0.0 and 1.0, relative to the image dimensions.

You MUST return ONLY a single, valid JSON object that conforms to the schema. Do not include any text, explanations, or markdown formatting.
"""


def _bbox_schema() -> types.Schema:
    return types.Schema(
        type=types.Type.OBJECT,
        description="Normalized bounding box. All values are floats between 0.0 and 1.0.",
        properties={
            "x": types.Schema(type=types.Type.NUMBER, description="Top-left corner x-coordinate, normalized (0.0 to 1.0)."),
            "y": types.Schema(type=types.Type.NUMBER, description="Top-left corner y-coordinate, normalized (0.0 to 1.0)."),
            "w": types.Schema(type=types.Type.NUMBER, description="Width of the box, normalized (0.0 to 1.0)."),
            "h": types.Schema(type=types.Type.NUMBER, description="Height of the box, normalized (0.0 to 1.0)."),
        },
        required=["x", "y", "w", "h"],
    )


def build_response_schema() -> types.Schema:
    """Output schema for the analysis reply."""
    component = types.Schema(
        type=types.Type.OBJECT,
        properties={
            "designator": types.Schema(type=types.Type.STRING, description='e.g., "R17"'),
            "mpn": types.Schema(type=types.Type.STRING, description="Manufacturer Part Number"),
            "bbox": _bbox_schema(),
            "presence": types.Schema(type=types.Type.STRING, enum=["missing", "ok"]),
            "condition": types.Schema(type=types.Type.STRING, enum=["burnt", "corroded", "ok"]),
            "confidence": types.Schema(type=types.Type.NUMBER, description="Confidence score (0.0 to 1.0)"),
            "temperature": types.Schema(type=types.Type.NUMBER, description="Estimated temperature in Celsius."),
            "datasheetUrl": types.Schema(type=types.Type.STRING, description="URL to the component's datasheet."),
            "maxVoltage": types.Schema(type=types.Type.NUMBER, description="Plausible maximum voltage in Volts."),
        },
        required=["designator", "mpn", "bbox", "presence", "condition", "confidence"],
    )

    defect = types.Schema(
        type=types.Type.OBJECT,
        properties={
            "id": types.Schema(type=types.Type.STRING, description="Unique identifier for the defect, e.g., 'defect-1'"),
            "type": types.Schema(type=types.Type.STRING, description="Type of defect, e.g., 'solder_bridge'"),
            "bbox": _bbox_schema(),
            "confidence": types.Schema(type=types.Type.NUMBER, description="Confidence score (0.0 to 1.0)"),
            "description": types.Schema(type=types.Type.STRING, description="A brief description of the defect."),
        },
        required=["id", "type", "bbox", "confidence"],
    )

    replacement = types.Schema(
        type=types.Type.OBJECT,
        properties={
            "mpn": types.Schema(type=types.Type.STRING),
            "reason": types.Schema(type=types.Type.STRING),
        },
        required=["mpn", "reason"],
    )

    advice = types.Schema(
        type=types.Type.OBJECT,
        properties={
            "quick_actions": types.Schema(
                type=types.Type.ARRAY, items=types.Schema(type=types.Type.STRING),
                description="A list of immediate actions to take."),
            "alternatives": types.Schema(
                type=types.Type.ARRAY,
                description="Suggested replacements for damaged components.",
                items=types.Schema(
                    type=types.Type.OBJECT,
                    properties={
                        "original_mpn": types.Schema(type=types.Type.STRING),
                        "replacements": types.Schema(type=types.Type.ARRAY, items=replacement),
                    },
                    required=["original_mpn", "replacements"],
                ),
            ),
            "next_steps": types.Schema(
                type=types.Type.ARRAY, items=types.Schema(type=types.Type.STRING),
                description="Longer-term steps for full repair and verification."),
            "repair_cost": types.Schema(
                type=types.Type.NUMBER, description="An estimated cost for the repairs in USD."),
        },
        required=["quick_actions", "alternatives", "next_steps"],
    )

    return types.Schema(
        type=types.Type.OBJECT,
        properties={
            "components": types.Schema(type=types.Type.ARRAY, description="List of identified components.", items=component),
            "defects": types.Schema(type=types.Type.ARRAY, description="List of identified defects.", items=defect),
            "summary": types.Schema(type=types.Type.STRING, description="A one-sentence summary of the board's condition."),
            "advice": advice,
        },
        required=["components", "defects", "summary", "advice"],
    )


def parse_analysis_reply(text: str) -> PcbAnalysis:
    """Parse the model's reply text.

    Raises:
        MalformedResponse: If the text is not a JSON object with
            ``components`` and ``defects`` lists. Individual records are
            read leniently; see :meth:`PcbAnalysis.from_dict`.
    """
    json_text = (text or "").strip()
    try:
        parsed = json.loads(json_text)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse JSON response from AI ({len(json_text)} chars): {e}")
        raise MalformedResponse(f"Reply is not valid JSON: {e}", user_message=INVALID_FORMAT_MESSAGE) from e

    if not isinstance(parsed, dict):
        logger.error(f"AI response is a {type(parsed).__name__}, expected an object")
        raise MalformedResponse("Reply is not a JSON object", user_message=INVALID_FORMAT_MESSAGE)

    missing = [key for key in REQUIRED_KEYS if key not in parsed or parsed[key] is None]
    if missing:
        logger.error(f"AI response is missing required fields: {missing}")
        raise MalformedResponse(f"Reply is missing required fields: {missing}",
                                user_message=INVALID_FORMAT_MESSAGE)

    not_lists = [key for key in REQUIRED_KEYS if not isinstance(parsed[key], list)]
    if not_lists:
        logger.error(f"AI response fields are not lists: {not_lists}")
        raise MalformedResponse(f"Reply fields are not lists: {not_lists}",
                                user_message=INVALID_FORMAT_MESSAGE)

    return PcbAnalysis.from_dict(parsed)


class PcbAnalysisService(GeminiService):
    """Analysis request client: one image in, one :class:`PcbAnalysis` out."""

    def build_generation_config(self) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            response_mime_type="application/json",
            response_schema=build_response_schema(),
            temperature=self.config.analysis_temperature,
        )

    def analyze(self, image: bytes, mime_type: str) -> PcbAnalysis:
        """Analyze a PCB photograph.

        Args:
            image: Raw image bytes
            mime_type: Image mime type, e.g. ``image/png``

        Returns:
            The parsed analysis

        Raises:
            ConfigurationError: No API key; raised before any network call
            ServiceError: Transport, auth or rate-limit failure
            MalformedResponse: Reply is not usable JSON
        """
        client = self._get_client()

        if mime_type not in SUPPORTED_MIME_TYPES:
            logger.warning(f"Sending image with unsupported mime type {mime_type!r}")

        contents = [
            types.Part.from_bytes(data=image, mime_type=mime_type),
            PCB_ANALYSIS_PROMPT,
        ]

        logger.info(f"Sending PCB image for analysis ({len(image)} bytes, {mime_type}) to {self.model}")
        try:
            response = client.models.generate_content(
                model=self.model,
                contents=contents,
                config=self.build_generation_config(),
            )
            text = response.text if response is not None else None
        except ApplicationError:
            raise
        except Exception as e:
            raise self._service_error(e, "PCB analysis request", ANALYSIS_FAILED_MESSAGE) from e

        if not text:
            logger.warning(diagnose_empty_response(response, "analyze"))
            raise MalformedResponse("Empty reply from model", user_message=INVALID_FORMAT_MESSAGE)

        analysis = parse_analysis_reply(text)
        logger.info(f"Analysis received: {len(analysis.components)} components, {len(analysis.defects)} defects")
        return analysis
