from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AnalyzeRequest(BaseModel):
    prompt: Optional[str] = None
    question: Optional[str] = None
    # Entries are validated after truncation to the upload limit
    uploads: Optional[List[Any]] = None

    def question_text(self) -> str:
        for value in (self.prompt, self.question):
            if value and value.strip():
                return value.strip()
        return ""


class UploadSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    bytes: Optional[int] = None
    mime_type: Optional[str] = Field(None, alias="mimeType")
    strategy: str
    key: Optional[str] = None
    url: Optional[str] = None


class CostEstimate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    input_usd: float = Field(alias="inputUsd")
    output_usd: float = Field(alias="outputUsd")
    total_usd: float = Field(alias="totalUsd")


class AnalyzeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    output: str
    usage: Optional[dict] = None
    cost_estimate: Optional[CostEstimate] = Field(None, alias="costEstimate")
    model: str
    uploads_attached: int = Field(alias="uploadsAttached")
    upload_summaries: List[UploadSummary] = Field(default_factory=list, alias="uploadSummaries")


class SchematicInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    display_name: str = Field(alias="displayName")
    model: str
    example_questions: List[str] = Field(alias="exampleQuestions")
    pricing_usd_per_mtok: Optional[dict] = Field(None, alias="pricingUsdPerMTok")
    reference_images: int = Field(alias="referenceImages")
    max_upload_bytes: int = Field(alias="maxUploadBytes")
    max_upload_count: int = Field(alias="maxUploadCount")
