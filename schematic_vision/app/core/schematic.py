"""Static profile for the schematic wayfinding session.

Reference images listed here are read from the static root and attached
ahead of any session uploads on every request. Leave ``images`` empty to rely
entirely on uploads.
"""
from typing import List, Optional

from pydantic import BaseModel, Field


class ReferenceImage(BaseModel):
    id: str
    label: str
    path: str
    caption: Optional[str] = None
    detail: str = "high"


class ModelProfile(BaseModel):
    name: str
    max_output_tokens: int = 1024
    # USD per million tokens, keys "input" and "output"
    pricing_usd_per_mtok: Optional[dict] = None


class SchematicProfile(BaseModel):
    display_name: str
    system_prompt: str
    user_instructions: List[str]
    images: List[ReferenceImage] = Field(default_factory=list)
    model: ModelProfile
    example_questions: List[str] = Field(default_factory=list)


SCHEMATIC_PROFILE = SchematicProfile(
    display_name="Custom Schematic Session",
    system_prompt=" ".join(
        [
            "You are an expert facilities wayfinding and compliance assistant.",
            "Use every schematic image provided in this conversation to answer the user question.",
            "Always reason over the visual evidence before stating an answer.",
            "When giving turn-by-turn directions, call out landmarks, path segments, and transitions clearly.",
            "If details are ambiguous or unreadable, explain the uncertainty instead of guessing.",
        ]
    ),
    user_instructions=[
        "A facilities manager is asking a question about the schematic.",
        "Return a concise, direct answer grounded in the drawing.",
        "If applicable, lay out instructions step-by-step with bullet numbers.",
        "If information is missing or unreadable, describe what else is needed.",
    ],
    images=[],
    model=ModelProfile(
        name="gpt-4.1",
        max_output_tokens=1024,
        pricing_usd_per_mtok={"input": 2.0, "output": 8.0},
    ),
    example_questions=[
        "How do I get from Stair 6 to Elevator 3? Provide clear step-by-step directions.",
        "How many restrooms include at least two lavatories, and where are they located?",
        "Identify every accessibility ramp you can find and describe their nearby landmarks.",
        "Compare the terraces and tell me which one is the largest with supporting reasoning.",
    ],
)


def get_schematic_profile() -> SchematicProfile:
    return SCHEMATIC_PROFILE
