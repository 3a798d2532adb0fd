"""Typed models for NewRelic API responses"""
import json
from typing import Any, Dict, Iterator, List, Optional, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import DecodeError


PageT = TypeVar("PageT", bound=BaseModel)

_decoder = json.JSONDecoder()


def is_numeric(value: Any) -> bool:
    """Check if a raw JSON value is a number (booleans excluded)"""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def numeric_only(values: Optional[Dict[str, Any]]) -> Dict[str, float]:
    """Keep the numeric entries of a raw value mapping, as floats"""
    if not values:
        return {}
    return {name: float(value) for name, value in values.items() if is_numeric(value)}


class Application(BaseModel):
    """Application as listed by the inventory endpoint"""
    model_config = {"frozen": True}

    id: int
    name: str
    health_status: str = "unknown"
    application_summary: Dict[str, float] = Field(default_factory=dict)
    end_user_summary: Dict[str, float] = Field(default_factory=dict)

    @field_validator("application_summary", "end_user_summary", mode="before")
    @classmethod
    def drop_non_numeric(cls, v):
        return numeric_only(v)


class MetricName(BaseModel):
    """Queryable metric family and the value fields it exposes"""
    model_config = {"frozen": True}

    name: str
    values: List[str] = Field(default_factory=list)


class Timeslice(BaseModel):
    values: Dict[str, Any] = Field(default_factory=dict)


class MetricData(BaseModel):
    name: str
    timeslices: List[Timeslice] = Field(default_factory=list)


class MetricSample(BaseModel):
    """Numeric values of one metric family for one application and window"""
    name: str
    values: Dict[str, float]


class ApplicationPage(BaseModel):
    applications: List[Application] = Field(default_factory=list)


class MetricNamePage(BaseModel):
    metrics: List[MetricName] = Field(default_factory=list)


class MetricDataBody(BaseModel):
    metrics: List[MetricData] = Field(default_factory=list)


class MetricDataPage(BaseModel):
    metric_data: MetricDataBody = Field(default_factory=MetricDataBody)


def to_sample(data: MetricData) -> Optional[MetricSample]:
    """Convert a metric data record into a sample of its numeric values.

    Requests are made with summarize=true, so only the first timeslice
    carries data. Records without timeslices yield None.
    """
    if not data.timeslices:
        return None
    return MetricSample(name=data.name, values=numeric_only(data.timeslices[0].values))


def iter_documents(body: bytes) -> Iterator[Any]:
    """Iterate over the JSON documents of a body made of concatenated pages"""
    text = body.decode("utf-8")
    index = 0
    length = len(text)
    while True:
        while index < length and text[index].isspace():
            index += 1
        if index >= length:
            return
        try:
            document, index = _decoder.raw_decode(text, index)
        except json.JSONDecodeError as e:
            raise DecodeError(f"Malformed JSON at offset {e.pos}: {e.msg}") from e
        yield document


def decode_pages(body: bytes, model: Type[PageT]) -> List[PageT]:
    """Decode every page of a response body into the given page model"""
    pages = []
    try:
        for document in iter_documents(body):
            pages.append(model.model_validate(document))
    except UnicodeDecodeError as e:
        raise DecodeError(f"Response is not valid UTF-8: {e}") from e
    except ValidationError as e:
        raise DecodeError(f"Unexpected {model.__name__} payload: {e.error_count()} errors") from e
    return pages
