"""
Evidence Stitcher - Capture Models
Version: 0.1.0

Pydantic models for capture sessions, viewport tiles, sticky element
records, integrity hashes and the final capture result.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from enum import Enum


class CaptureStage(str, Enum):
    """Capture pipeline stage"""
    INITIALIZING = "initializing"
    LOCKDOWN = "lockdown"
    WAITING_RESOURCES = "waiting_resources"
    CAPTURING = "capturing"
    STITCHING = "stitching"
    HASHING = "hashing"
    # Stages below are driven by downstream collaborators
    TIMESTAMP = "timestamp"
    UPLOADING = "uploading"
    OPENING_PREVIEW = "opening_preview"
    COMPLETE = "complete"
    # Terminal
    FAILED = "failed"
    CANCELLED = "cancelled"


class StickyClassification(str, Enum):
    """What a fixed/sticky element was recognised as"""
    HEADER = "header"
    FOOTER = "footer"
    COOKIE_BANNER = "cookie-banner"
    WIDGET = "widget"
    SIDEBAR = "sidebar"
    OTHER = "other"


class StickyAction(str, Enum):
    """What was done to a fixed/sticky element"""
    CAPTURED_ONCE = "captured-once"  # Rastered once for composition, then re-anchored
    HIDDEN = "hidden"  # visibility:hidden
    REPOSITIONED = "repositioned"  # Re-anchored to absolute document coordinates


class TruncationReason(str, Enum):
    """Why less than the full page height was captured"""
    INFINITE_SCROLL_DETECTED = "infinite_scroll_detected"
    MAX_HEIGHT_EXCEEDED = "max_height_exceeded"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class ModificationType(str, Enum):
    """Kind of DOM change recorded for the forensic log"""
    MODIFY_STYLE = "modify-style"
    HIDE = "hide"
    REPOSITION = "reposition"


class CaptureModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )


# =============================================================================
# Page geometry
# =============================================================================

class ElementRect(CaptureModel):
    """Bounding rectangle in CSS pixels, relative to the viewport"""
    top: float = 0
    left: float = 0
    width: float = 0
    height: float = 0

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def area(self) -> float:
        return self.width * self.height


class FixedElement(CaptureModel):
    """A fixed or sticky positioned element reported by the page inspector"""
    element_id: str  # Inspector handle, not the HTML id attribute
    tag_name: str
    selector: str
    html_id: str = ""
    class_name: str = ""
    text: str = ""
    position: str = "fixed"  # fixed | sticky
    z_index: int = 0
    has_bottom_offset: bool = False  # Explicit non-auto `bottom` style
    has_right_offset: bool = False  # Explicit non-auto `right` style
    rect: ElementRect = Field(default_factory=ElementRect)


class DomElement(CaptureModel):
    """One element as seen by the DOM structure signature"""
    tag_name: str
    html_id: str = ""
    class_name: str = ""
    text: str = ""
    rect: ElementRect = Field(default_factory=ElementRect)
    visible: bool = True
    in_viewport: bool = False


class PageInfo(CaptureModel):
    url: str = ""
    title: str = ""
    user_agent: str = ""


# =============================================================================
# Tiles and sticky handling
# =============================================================================

class ViewportTile(CaptureModel):
    """One captured viewport raster"""
    scroll_offset_y: int
    image_bytes: bytes = Field(exclude=True, repr=False)
    width: int  # Logical (CSS) viewport width
    height: int  # Logical (CSS) viewport height
    captured_at_physical_dpr: float = 1.0  # Raster width / logical width
    captured_at: int = 0  # epoch ms


class ElementCapture(CaptureModel):
    """Raster of a header or footer captured once for composition"""
    classification: StickyClassification
    selector: str
    image_bytes: bytes = Field(exclude=True, repr=False)
    rect: ElementRect


class StickyElementRecord(CaptureModel):
    """Reversible record of one sticky element change"""
    element_id: str
    selector: str
    classification: StickyClassification
    action: StickyAction
    original_style_snapshot: Dict[str, Optional[str]] = Field(default_factory=dict)
    bounding_rect: ElementRect = Field(default_factory=ElementRect)
    z_index: int = 0
    justification: str = ""
    timestamp: int = 0


class StickyHandlingResult(CaptureModel):
    records: List[StickyElementRecord] = Field(default_factory=list)
    header_capture: Optional[ElementCapture] = None
    footer_capture: Optional[ElementCapture] = None
    elements_by_type: Dict[str, int] = Field(default_factory=dict)
    timestamp: int = 0
    processing_time_ms: int = 0

    @property
    def header_captured(self) -> bool:
        return self.header_capture is not None

    @property
    def footer_captured(self) -> bool:
        return self.footer_capture is not None


class DOMModification(CaptureModel):
    """A single page modification, documented for the chain of custody"""
    type: ModificationType
    selector: str
    style_property: str = Field(alias="property")
    original_value: Optional[str] = None
    new_value: Optional[str] = None
    timestamp: int = 0
    forensic_reason: str = ""


# =============================================================================
# Scope and planning
# =============================================================================

class InfiniteScrollResult(CaptureModel):
    is_infinite: bool
    initial_height: int
    final_height: int
    growth_ratio: float


class ViewportPlan(CaptureModel):
    offsets: List[int]
    capped_height: int
    truncation_reason: Optional[TruncationReason] = None


class CaptureScope(CaptureModel):
    """How much of the page ended up in the image, and why"""
    model_config = ConfigDict(frozen=True)

    total_page_height: int
    captured_height: int
    was_truncated: bool
    truncation_reason: Optional[TruncationReason] = None
    infinite_scroll_detected: bool = False
    scroll_height_growth_ratio: float = 0.0


# =============================================================================
# Integrity
# =============================================================================

class OriginalStateHash(CaptureModel):
    dom_structure_hash: str
    visible_elements_hash: str
    timestamp: int
    captured_before: str = "any-modification"


class RestoredStateHash(CaptureModel):
    dom_structure_hash: str
    timestamp: int
    matches_original: bool


class IntegrityHashes(CaptureModel):
    original_state: OriginalStateHash
    captured_image: str
    restored_state: RestoredStateHash
    integrity_verified: bool


class RawCapture(CaptureModel):
    """Viewport captured before any DOM modification"""
    image_data: str  # base64
    hash: str
    captured_at: int
    modifications: List[DOMModification] = Field(default_factory=list)
    width: int
    height: int


class EnhancedCapture(CaptureModel):
    """Stitched capture taken after forensic DOM adjustments"""
    image_data: str  # base64
    hash: str
    captured_at: int
    modifications: List[DOMModification] = Field(default_factory=list)
    width: int
    height: int


class DualModeComparison(CaptureModel):
    both_available: bool
    raw_captured_first: bool
    time_difference_ms: int
    top_viewport_similarity: Optional[float] = None


class DualModeCapture(CaptureModel):
    raw: RawCapture
    enhanced: EnhancedCapture
    comparison: DualModeComparison


# =============================================================================
# Progress and result
# =============================================================================

class CaptureProgress(CaptureModel):
    stage: CaptureStage
    percent: int = Field(ge=0, le=100)
    message: str = ""
    current_tile: Optional[int] = None
    total_tiles: Optional[int] = None


class CaptureMetadata(CaptureModel):
    """Basic page metadata bundled with the evidence"""
    capture_id: str
    url: str
    title: str
    user_agent: str = ""
    collected_at: int
    viewport: Dict[str, int] = Field(default_factory=dict)
    page_size: Dict[str, int] = Field(default_factory=dict)
    viewports_captured: int = 0
    html_hash: Optional[str] = None
    image_hash: Optional[str] = None
    dom_modifications: List[DOMModification] = Field(default_factory=list)
    sticky_handling: Optional[Dict[str, Any]] = None


class StitchResult(CaptureModel):
    image_bytes: bytes = Field(exclude=True, repr=False)
    width: int
    height: int


class CaptureResult(CaptureModel):
    success: bool
    stage: CaptureStage = CaptureStage.HASHING
    image_data: Optional[str] = None  # base64
    width: Optional[int] = None
    height: Optional[int] = None
    image_hash: Optional[str] = None
    html_content: Optional[str] = None
    html_hash: Optional[str] = None
    metadata: Optional[CaptureMetadata] = None
    metadata_hash: Optional[str] = None
    duration_ms: int = 0
    integrity_hashes: Optional[IntegrityHashes] = None
    dual_mode_capture: Optional[DualModeCapture] = None
    capture_scope: Optional[CaptureScope] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None

    def to_json(self) -> Dict[str, Any]:
        """Serialise for downstream collaborators, dropping absent fields"""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# =============================================================================
# Session
# =============================================================================

@dataclass
class CaptureSession:
    """
    State of one capture attempt.

    Owned by the orchestrator and passed explicitly to every component that
    reads or mutates it. Discarded when the attempt ends.
    """
    url: str
    title: str
    started_at: float  # monotonic seconds
    started_at_ms: int  # epoch ms
    cancel_token: Any
    stage: CaptureStage = CaptureStage.INITIALIZING
    tiles: List[ViewportTile] = field(default_factory=list)
    sticky_records: List[StickyElementRecord] = field(default_factory=list)
    sticky_result: Optional[StickyHandlingResult] = None
    sticky_active: bool = False  # handle() ran and restore() has not
    dom_modifications: List[DOMModification] = field(default_factory=list)
    scope: Optional[CaptureScope] = None
    infinite_scroll: Optional[InfiniteScrollResult] = None
    viewport_width: int = 0
    viewport_height: int = 0
    original_scroll: int = 0
    overflow_state: Optional[Dict[str, Any]] = None  # Set while page overflow is locked
    rate_limiter: Any = None
    raw_capture: Optional[RawCapture] = None
    raw_image_bytes: Optional[bytes] = None
    original_state: Optional[OriginalStateHash] = None
    restored_state: Optional[RestoredStateHash] = None
