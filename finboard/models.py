"""
Data models for widget definitions, dashboard exports and persisted state.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class WidgetType(str, Enum):
    CARD = "card"
    TABLE = "table"
    CANDLE = "candle"


class FieldFormat(str, Enum):
    NUMBER = "number"
    CURRENCY = "currency"
    PERCENT = "percent"


class WidgetTypeMismatch(ValueError):
    """A widget's mapping was read through an accessor for another type."""


# ── Mappings ─────────────────────────────────────────────

class CardMapping(BaseModel):
    """Card widgets: values resolved at each path, one format for all."""
    model_config = ConfigDict(extra="forbid")

    paths: List[str] = Field(default_factory=list)
    format: FieldFormat = FieldFormat.NUMBER


class TableMapping(BaseModel):
    """Table widgets: column paths; empty means infer from rows."""
    model_config = ConfigDict(extra="forbid")

    columns: List[str] = Field(default_factory=list)


class CandleMapping(BaseModel):
    model_config = ConfigDict(extra="forbid")

    x: Optional[str] = None
    y: Optional[str] = None


# ── Widgets ──────────────────────────────────────────────

class Widget(BaseModel):
    """A stored widget definition."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    type: WidgetType
    provider: str
    endpoint: str
    params: Dict[str, Any] = Field(default_factory=dict, description="Opaque provider parameters, e.g. symbol/interval")
    refresh_ms: int = Field(default=60000, ge=0, alias="refreshMs")
    mapping: Dict[str, Any] = Field(default_factory=dict, description="Type-dependent mapping")

    def _mapping_for(self, expected: WidgetType) -> Dict[str, Any]:
        if self.type != expected:
            raise WidgetTypeMismatch(
                f"Widget {self.id} is a {self.type.value} widget, not {expected.value}"
            )
        return self.mapping

    def card_mapping(self) -> CardMapping:
        return CardMapping.model_validate(self._mapping_for(WidgetType.CARD))

    def table_mapping(self) -> TableMapping:
        return TableMapping.model_validate(self._mapping_for(WidgetType.TABLE))

    def candle_mapping(self) -> CandleMapping:
        return CandleMapping.model_validate(self._mapping_for(WidgetType.CANDLE))

    def typed_mapping(self) -> Union[CardMapping, TableMapping, CandleMapping]:
        """Parse the mapping with the model for this widget's type; raises ValidationError on a shape mismatch."""
        if self.type == WidgetType.CARD:
            return self.card_mapping()
        if self.type == WidgetType.TABLE:
            return self.table_mapping()
        return self.candle_mapping()

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class WidgetDraft(BaseModel):
    """User input for a new widget; the store assigns the id."""
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    title: Optional[str] = None
    type: WidgetType
    provider: str
    endpoint: str
    params: Optional[Dict[str, Any]] = None
    refresh_ms: Optional[int] = Field(default=None, ge=0, alias="refreshMs")
    mapping: Dict[str, Any] = Field(default_factory=dict)


class DashboardExport(BaseModel):
    """Backup/restore exchange format."""
    version: int = 1
    widgets: List[Widget] = Field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class DashboardState(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    widgets: List[Widget] = Field(default_factory=list)
    has_seen_tour: bool = Field(default=False, alias="hasSeenTour")


class PersistedState(BaseModel):
    """Layout of the single persisted record: {state: {widgets, hasSeenTour}}."""
    state: DashboardState = Field(default_factory=DashboardState)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ── Fetching ─────────────────────────────────────────────

class FetchRequest(BaseModel):
    provider: str
    endpoint: str
    params: Dict[str, Any] = Field(default_factory=dict)


class FailureKind(str, Enum):
    UNKNOWN_PROVIDER = "unknown_provider"
    AUTH = "auth"
    HTTP = "http"
    NETWORK = "network"
    INVALID_JSON = "invalid_json"
    PROVIDER_ERROR = "provider_error"


class FetchFailure(BaseModel):
    """Structured failure signal returned by the provider gateway."""
    kind: FailureKind
    message: str
    provider: Optional[str] = None
    status_code: Optional[int] = None
