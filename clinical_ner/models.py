from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


# Wire names follow the MetaMapLite JSON output (all lower case).
# Strict: a mistyped value ("3" for 3, true for 1) is rejected, not coerced.

class ConceptInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True, strict=True)

    cui: str
    preferred_name: str = Field(alias="preferredname")
    semantic_types: List[str] = Field(alias="semantictypes")


class Evidence(BaseModel):
    model_config = ConfigDict(populate_by_name=True, strict=True)

    concept_info: ConceptInfo = Field(alias="conceptinfo")


class AnnotationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True, strict=True)

    matched_text: str = Field(alias="matchedtext")
    start: int = Field(ge=0)
    length: int = Field(ge=0)
    evidence: List[Evidence] = Field(alias="evlist")

    @property
    def end(self) -> int:
        return self.start + self.length


AnnotationResults = TypeAdapter(List[AnnotationResult])


# ----------------------------
# API models
# ----------------------------

class SubmitRequest(BaseModel):
    text: str


class RenderedEvidence(BaseModel):
    cui: str
    preferred_name: str
    semantic_types: str


class RenderedResult(BaseModel):
    matched_text: str
    start: int
    end: int
    evidence: List[RenderedEvidence]


class RenderedState(BaseModel):
    status: str
    loading: bool
    error: Optional[str] = None
    placeholder: Optional[str] = None
    results: List[RenderedResult] = Field(default_factory=list)


class SessionResponse(BaseModel):
    session_id: str
    state: RenderedState
