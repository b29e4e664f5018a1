"""LLM-driven entity and relation extraction from documentation chunks."""

import json

import structlog
from pydantic import BaseModel, Field, ValidationError

from docweave.llm.client import LLMClient, get_llm_client, strip_code_fences

logger = structlog.get_logger()

ENTITY_TYPES = frozenset({"Concept", "API", "Component", "Technology"})
RELATION_TYPES = frozenset({"RELATED_TO", "DEPENDS_ON", "USES", "PART_OF"})

SYSTEM_PROMPT = """You are an expert at extracting entities and relationships from technical documentation.

Extract entities and relationships from the given documentation chunk.

Entity Types:
- Concept: Technical concepts, terms, definitions
- API: API endpoints, functions, methods
- Component: System components, modules, services
- Technology: Technologies, frameworks, libraries

Relationship Types:
- RELATED_TO: General association
- DEPENDS_ON: Dependency relationship
- USES: Usage relationship
- PART_OF: Hierarchical relationship

Return ONLY a valid JSON object with this exact structure:
{
  "entities": [
    {"name": "Entity Name", "type": "Concept|API|Component|Technology", "description": "Brief description"}
  ],
  "relations": [
    {"source": "Source Entity Name", "target": "Target Entity Name",
     "type": "RELATED_TO|DEPENDS_ON|USES|PART_OF", "description": "Relationship description"}
  ]
}

If no entities or relations are found, return empty arrays.
Do not include any markdown formatting, code blocks, or explanatory text - only the JSON object."""

USER_PROMPT = """Documentation Section: {heading}

Content:
{content}

Extract all relevant entities and their relationships."""


class ExtractedEntity(BaseModel):
    name: str = Field(..., min_length=1)
    type: str
    description: str = ""


class ExtractedRelation(BaseModel):
    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    type: str
    description: str = ""


class ExtractionResult(BaseModel):
    entities: list[ExtractedEntity] = Field(default_factory=list)
    relations: list[ExtractedRelation] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.entities and not self.relations


def parse_extraction(raw: str) -> ExtractionResult:
    """
    Parse an LLM reply into an ExtractionResult.

    Unknown entity and relation types are dropped. Malformed JSON yields
    an empty result.
    """
    try:
        payload = json.loads(strip_code_fences(raw))
    except json.JSONDecodeError as e:
        logger.warning("extraction_parse_failed", error=str(e), response=raw[:200])
        return ExtractionResult()

    if not isinstance(payload, dict):
        logger.warning("extraction_parse_failed", error="not a JSON object")
        return ExtractionResult()

    entities = []
    for item in payload.get("entities") or []:
        try:
            entity = ExtractedEntity.model_validate(item)
        except ValidationError:
            continue
        if entity.type in ENTITY_TYPES:
            entities.append(entity)

    relations = []
    for item in payload.get("relations") or []:
        try:
            relation = ExtractedRelation.model_validate(item)
        except ValidationError:
            continue
        if relation.type in RELATION_TYPES:
            relations.append(relation)

    dropped = len(payload.get("entities") or []) - len(entities)
    dropped += len(payload.get("relations") or []) - len(relations)
    if dropped:
        logger.debug("extraction_items_dropped", count=dropped)

    return ExtractionResult(entities=entities, relations=relations)


class EntityExtractor:
    """Extracts entities and relations from a chunk with a chat model."""

    def __init__(self, llm: LLMClient | None = None):
        self.llm = llm or get_llm_client()

    async def extract(self, content: str, heading_path: str | None = None) -> ExtractionResult:
        """Never raises; any failure becomes an empty result."""
        user = USER_PROMPT.format(heading=heading_path or "Unknown", content=content)
        try:
            raw = await self.llm.complete(SYSTEM_PROMPT, user)
        except Exception as e:
            logger.error("entity_extraction_failed", heading_path=heading_path, error=str(e))
            return ExtractionResult()

        result = parse_extraction(raw)
        logger.debug(
            "entities_extracted",
            heading_path=heading_path,
            entities=len(result.entities),
            relations=len(result.relations),
        )
        return result
