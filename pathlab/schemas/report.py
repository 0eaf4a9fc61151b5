from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ReportModel(BaseModel):
    """Base for report payloads: camelCase on the wire, read-only once built."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class AgeRangeItem(ReportModel):
    range_key: str = Field(description="Age span with unit suffix, e.g. '0-30d', '1-12m', '18-60y'")
    range_value: str = Field(default="", description="Range text shown for that age span")


class BucketedRange(ReportModel):
    male: list[AgeRangeItem] = Field(default_factory=list)
    female: list[AgeRangeItem] = Field(default_factory=list)


class Parameter(ReportModel):
    name: str
    value: str | int | float | None = ""
    unit: str | None = ""
    range: str | BucketedRange | None = ""
    subparameters: list["Parameter"] = Field(default_factory=list)
    visibility: str | None = None
    value_type: str | None = None
    formula: str | None = None
    iscomment: bool | None = None
    default_value: str | None = None


class Subheading(ReportModel):
    title: str
    parameter_names: list[str] = Field(default_factory=list)


class Description(ReportModel):
    heading: str = ""
    content: str = ""


class TestResult(ReportModel):
    """Entered results of one ordered test for a single registration."""
    test_name: str | None = None
    parameters: list[Parameter] = Field(default_factory=list)
    subheadings: list[Subheading] = Field(default_factory=list)
    descriptions: list[Description] = Field(default_factory=list)
    reported_on: datetime | None = None
    entered_by: str | None = None
    type: str | None = None


class PatientContext(ReportModel):
    title: str | None = None
    name: str
    age: int | float | str = 0
    day_type: str = "year"
    total_day: int | None = None
    gender: str | None = None
    patient_id: str = ""
    registration_id: int | str = ""
    doctor_name: str | None = None
    hospital_name: str | None = None
    registration_time: datetime | None = None
    sample_collected_at: datetime | None = None
    bloodtest: dict[str, TestResult] = Field(default_factory=dict)


class HistoricalEntry(ReportModel):
    registration_id: int
    reported_on: datetime
    test_key: str
    parameters: list[Parameter] = Field(default_factory=list)


class AvailableDate(ReportModel):
    date: datetime
    registration_id: int
    test_key: str
    reported_on: datetime


class ComparisonSelection(ReportModel):
    test_name: str
    slugified_test_name: str
    available_dates: list[AvailableDate] = Field(default_factory=list)
    selected_dates: list[datetime] = Field(default_factory=list)


class CombinedGroup(ReportModel):
    id: str
    name: str = ""
    tests: list[str] = Field(default_factory=list)


class ReportMode(str, Enum):
    NORMAL = "normal"
    COMBINED = "combined"
    COMPARISON = "comparison"


class RecommendationItem(ReportModel):
    heading: str
    content: str


class RecommendationSection(ReportModel):
    title: str
    description: str = ""
    items: list[RecommendationItem] = Field(default_factory=list)


class AiSuggestions(ReportModel):
    diet: RecommendationSection
    exercise: RecommendationSection


class ReportOptions(ReportModel):
    """Selection options sent by the download console for a stored registration."""
    selected_tests: list[str] = Field(default_factory=list)
    combined_groups: list[CombinedGroup] = Field(default_factory=list)
    comparison_selections: dict[str, ComparisonSelection] = Field(default_factory=dict)
    report_mode: ReportMode = ReportMode.NORMAL
    include_letterhead: bool = True
    skip_cover: bool = True
    include_suggestions: bool = False


class ReportRequest(ReportOptions):
    """Self-contained report payload: patient data and history travel with the request."""
    patient: PatientContext | None = None
    historical_data: dict[str, list[HistoricalEntry]] = Field(default_factory=dict)
    suggestions: AiSuggestions | None = None
