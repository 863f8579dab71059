# backend/parkspace/schemas.py
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware_utc(ts: datetime) -> datetime:
    """Normalize a datetime to timezone-aware UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


class SlotStatus(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    BOOKED = "booked"


class VehicleType(str, Enum):
    CAR = "car"
    BIKE = "bike"


class ReserveResult(str, Enum):
    SUCCESS = "success"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


# --- Layout document (stored inside a Property; camelCase kept) ---
class Slot(BaseModel):
    id: Optional[str] = None
    slotNumber: str
    status: SlotStatus = SlotStatus.AVAILABLE
    vehicleType: VehicleType = VehicleType.CAR
    pricePerHour: Optional[float] = None
    direction: Optional[str] = None
    zone: Optional[str] = None


class EntryExit(BaseModel):
    entry: str = ""
    exit: str = ""


class Dimensions(BaseModel):
    rows: int = Field(..., ge=0)
    cols: int = Field(..., ge=0)


class Layout(BaseModel):
    templateId: str
    templateName: str
    layout: List[List[int]]
    slots: Dict[str, Slot] = Field(default_factory=dict)
    entryExit: EntryExit = Field(default_factory=EntryExit)
    dimensions: Dimensions
    totalSlots: int = 0
    availableSlots: int = 0
    carSlots: int = 0
    bikeSlots: int = 0

    def to_document(self) -> dict:
        """Plain JSON-ready dict in the persisted shape."""
        return self.model_dump(mode="json", exclude_none=True)


# --- Generation / property payloads ---
class GenerationIn(BaseModel):
    carSlots: int = Field(0, ge=0)
    bikeSlots: int = Field(0, ge=0)
    pricePerHour: Optional[float] = Field(default=None, gt=0)  # adapter default when omitted
    model_config = ConfigDict(json_schema_extra={
        "example": {"carSlots": 20, "bikeSlots": 10, "pricePerHour": 30}
    })


class DxfImportIn(BaseModel):
    dxf: str = Field(..., min_length=1)
    pricePerHour: Optional[float] = Field(default=None, gt=0)
    # generated instead when the drawing has no usable polylines
    fallbackTemplate: Optional[str] = None
    carSlots: int = Field(0, ge=0)
    bikeSlots: int = Field(0, ge=0)


class PropertyIn(BaseModel):
    rental: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    address: str = ""
    carSlots: int = Field(..., ge=0)
    bikeSlots: int = Field(..., ge=0)
    pricePerHour: float = Field(..., gt=0)
    layoutData: Optional[Layout] = None


class Property(PropertyIn):
    id: str
    owner: Optional[str] = None
    approved: bool = False
    active: bool = True
    createdAt: Optional[datetime] = None


class LegacySlot(BaseModel):
    """One row per physical slot; created when a property is approved."""
    id: str
    property: str
    slotNumber: str
    type: VehicleType
    isBooked: bool = False
    pricePerHour: float


# --- Bookings ---
class Booking(BaseModel):
    id: Optional[str] = None
    user: Optional[str] = None
    property: Optional[str] = None
    slot: str
    status: str = "pending"
    startTime: Optional[datetime] = None
    endTime: datetime
    totalAmount: float = 0
    slotInfo: Optional[dict] = None
    createdAt: Optional[datetime] = None

    @field_validator("slot", mode="before")
    @classmethod
    def _slot_as_str(cls, v):
        # legacy slot ids may arrive as ints/ObjectIds
        return v if isinstance(v, str) else str(v)


class BookingIn(BaseModel):
    property: str = Field(..., min_length=1)
    slot: str = Field(..., min_length=1)
    hours: Optional[float] = Field(default=None, gt=0)
    startTime: Optional[datetime] = None
    endTime: Optional[datetime] = None
    totalAmount: float = Field(0, ge=0)
    vehicleType: Optional[VehicleType] = None


# --- Reconciler output ---
class SlotAvailability(BaseModel):
    isBooked: bool
    isAvailable: bool
    status: SlotStatus


class SlotView(BaseModel):
    """Slot listing row consumed by booking-selection UIs."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    slotNumber: str
    type: VehicleType
    pricePerHour: float
    property_id: Optional[str] = Field(default=None, alias="property")
    isBooked: bool
    isAvailable: bool
    status: SlotStatus


class TypeAvailability(BaseModel):
    total: int
    booked: int
    available: int


class AvailabilitySummary(BaseModel):
    carSlots: TypeAvailability
    bikeSlots: TypeAvailability
    isAvailable: bool


class RentalStats(BaseModel):
    totalProperties: int = 0
    totalCarSlots: int = 0
    totalBikeSlots: int = 0
    totalBookings: int = 0
    activeBookings: int = 0
    totalRevenue: float = 0.0
    monthlyRevenue: float = 0.0
    carsBooked: int = 0
    bikesBooked: int = 0
    occupancyRate: float = 0.0
    availableCarSlots: int = 0
    availableBikeSlots: int = 0


# --- Consistency checker output ---
class ValidationResult(BaseModel):
    isValid: bool
    issues: List[str] = Field(default_factory=list)
    step: str = "unknown"
    propertyId: Optional[str] = None
    propertyName: Optional[str] = None
    summary: str = ""
