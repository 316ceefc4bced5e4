from pydantic import BaseModel, Field
from typing import Dict, List, Optional

from app.domain.report_schema import ItemCategory, ReportStatus, ReportType


class ItemReport(BaseModel):
    id: str
    type: ReportType
    title: str
    description: str = ""
    summary: Optional[str] = None
    category: ItemCategory = ItemCategory.OTHER
    specs: Dict[str, str] = Field(default_factory=dict)
    distinguishing_features: List[str] = Field(default_factory=list)
    location: str = ""
    date: str = ""  # DD/MM/YYYY
    time: str = ""  # HH:MM
    image_urls: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    status: ReportStatus = ReportStatus.OPEN
    reporter_id: str
    reporter_name: str = ""
    created_at: int = 0  # epoch millis


class ReportDraft(BaseModel):
    """What the report form submits before the final AI pass."""
    type: ReportType
    title: str = ""
    description: str = ""
    category: ItemCategory = ItemCategory.OTHER
    specs: Dict[str, str] = Field(default_factory=dict)
    distinguishing_features: List[str] = Field(default_factory=list)
    location: str = ""
    date: str = ""
    time: str = ""
    image_urls: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)


class ReportUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    summary: Optional[str] = None
    category: Optional[ItemCategory] = None
    specs: Optional[Dict[str, str]] = None
    distinguishing_features: Optional[List[str]] = None
    location: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    image_urls: Optional[List[str]] = None
    tags: Optional[List[str]] = None


class ReporterRef(BaseModel):
    id: str
    name: str = ""
