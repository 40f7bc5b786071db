from dataclasses import asdict

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from marketintel.scheduler.cycle import CycleResult, OrgResult


class CamelModel(BaseModel):
    """Response model serialized with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ScrapeResultSummary(CamelModel):
    platform: str
    status: str
    listings_found: int
    listings_new: int
    listings_updated: int
    listings_deactivated: int
    pages_scraped: int
    duration_ms: int
    errors: list[str]


class OrgResultOut(CamelModel):
    organization_id: str
    platforms: list[ScrapeResultSummary]
    success: bool

    @classmethod
    def from_result(cls, result: OrgResult) -> "OrgResultOut":
        return cls.model_validate(asdict(result))


class CycleResultOut(CamelModel):
    processed: int
    successful_orgs: int
    total_listings: int
    duration_ms: int
    message: str
    stopped_early: bool
    results: list[OrgResultOut]

    @classmethod
    def from_result(cls, result: CycleResult) -> "CycleResultOut":
        return cls.model_validate(asdict(result))
