# backend/parkspace/main.py
import logging
import traceback
from typing import List, Optional

from fastapi import FastAPI, Header, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from . import availability, booking, catalog, config, consistency, generators
from .editor import LayoutEditor
from .errors import (
    BookingNotFound,
    InputError,
    ParkspaceError,
    PropertyNotFound,
    SlotConflict,
    SlotNotFound,
)
from .schemas import (
    AvailabilitySummary,
    Booking,
    BookingIn,
    DxfImportIn,
    GenerationIn,
    Layout,
    Property,
    PropertyIn,
    RentalStats,
    SlotView,
    ValidationResult,
    VehicleType,
)

# ---- logging ---------------------------------------------------------------
logger = logging.getLogger("parkspace")
logger.setLevel(config.LOG_LEVEL)

# Store: SQL when DATABASE_URL is set, in-memory otherwise (same function signatures)
if config.DATABASE_URL:
    from . import db_sql as db
    db.configure(config.DATABASE_URL)
else:
    from . import db

app = FastAPI(title="Parkspace Layout & Booking API", version="0.3.0")

@app.get("/", include_in_schema=False)
def root():
    return RedirectResponse(url="/docs")

# CORS for local dev (tighten later)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------- Error mapping ----------
STATUS_BY_ERROR = {
    InputError: status.HTTP_400_BAD_REQUEST,
    PropertyNotFound: status.HTTP_404_NOT_FOUND,
    SlotNotFound: status.HTTP_404_NOT_FOUND,
    BookingNotFound: status.HTTP_404_NOT_FOUND,
    SlotConflict: status.HTTP_409_CONFLICT,
}

@app.exception_handler(ParkspaceError)
def parkspace_error(request: Request, exc: ParkspaceError):
    code = next((c for t, c in STATUS_BY_ERROR.items() if isinstance(exc, t)), status.HTTP_500_INTERNAL_SERVER_ERROR)
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=code, content={"detail": str(exc)})

def _property_or_404(property_id: str) -> Property:
    prop = db.get_property(property_id)
    if not prop:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Parking property not found")
    return prop

# ---------- Layout templates ----------
@app.get("/api/templates/categories")
def list_categories():
    return [c.to_dict() for c in catalog.TEMPLATE_CATEGORIES]

@app.post("/api/templates/generate", response_model=List[Layout])
def generate_templates(payload: GenerationIn):
    price = payload.pricePerHour or config.DEFAULT_PRICE_PER_HOUR
    return catalog.generate_all_templates(payload.carSlots, payload.bikeSlots, price)

@app.post("/api/templates/{template_id}/generate", response_model=Layout)
def generate_template(template_id: str, payload: GenerationIn):
    price = payload.pricePerHour or config.DEFAULT_PRICE_PER_HOUR
    return generators.generate(template_id, payload.carSlots, payload.bikeSlots, price)

@app.post("/api/layouts/import-dxf", response_model=Layout)
def import_dxf_layout(payload: DxfImportIn):
    price = payload.pricePerHour or config.DEFAULT_PRICE_PER_HOUR
    fallback = None
    if payload.fallbackTemplate:
        fallback = generators.generate(payload.fallbackTemplate, payload.carSlots, payload.bikeSlots, price)
    editor = LayoutEditor.blank(payload.carSlots, payload.bikeSlots, price_per_hour=price)
    editor.import_dxf(payload.dxf, fallback=fallback)
    return editor.to_layout()

# ---------- Properties ----------
@app.post("/api/properties", response_model=Property, status_code=status.HTTP_201_CREATED)
def create_property(payload: PropertyIn):
    return db.create_property(payload)

@app.get("/api/properties", response_model=List[Property])
def list_properties(approved: Optional[bool] = None, rental: Optional[str] = None):
    return db.list_properties(approved=approved, rental_id=rental)

@app.get("/api/properties/{property_id}", response_model=Property)
def get_property(property_id: str):
    return _property_or_404(property_id)

@app.post("/api/properties/{property_id}/approve", response_model=Property)
def approve_property(property_id: str, x_user_id: str = Header(..., min_length=1)):
    return db.approve_property(property_id, x_user_id)

@app.post("/api/properties/{property_id}/toggle-active", response_model=Property)
def toggle_active(property_id: str):
    prop = _property_or_404(property_id)
    return db.set_active(property_id, not prop.active)

@app.delete("/api/properties/{property_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_property(property_id: str):
    if not db.delete_property(property_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Parking property not found")
    return None

@app.put("/api/properties/{property_id}/layout", response_model=Property)
def save_layout(property_id: str, layout: Layout):
    return db.save_layout(property_id, layout)

# ---------- Slots / availability ----------
@app.get("/api/properties/{property_id}/slots", response_model=List[SlotView])
def list_property_slots(property_id: str, vehicleType: Optional[VehicleType] = Query(None)):
    prop = _property_or_404(property_id)
    return availability.list_slots(
        prop, db.list_legacy_slots(property_id), db.list_bookings(property_id=property_id),
        vehicle_type=vehicleType,
    )

@app.get("/api/properties/{property_id}/availability", response_model=AvailabilitySummary)
def property_availability(property_id: str):
    prop = _property_or_404(property_id)
    return availability.availability_summary(
        prop, db.list_legacy_slots(property_id), db.list_bookings(property_id=property_id)
    )

# ---------- Bookings ----------
@app.post("/api/bookings", response_model=Booking, status_code=status.HTTP_201_CREATED)
def create_booking(payload: BookingIn, x_user_id: str = Header(..., min_length=1)):
    try:
        return booking.create_booking(db, payload, x_user_id)
    except ParkspaceError:
        raise
    except Exception as e:
        logger.error("create_booking failed: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail=f"Booking failed: {e}")

@app.get("/api/bookings/mine", response_model=List[Booking])
def my_bookings(x_user_id: str = Header(..., min_length=1)):
    return db.list_bookings(user_id=x_user_id)

@app.post("/api/bookings/{booking_id}/cancel", response_model=Booking)
def cancel_booking(booking_id: str, x_user_id: str = Header(..., min_length=1)):
    return booking.cancel_booking(db, booking_id, x_user_id)

# ---------- Diagnostics ----------
@app.get("/api/properties/{property_id}/consistency", response_model=ValidationResult)
def check_consistency(property_id: str, step: str = Query("unknown")):
    return consistency.validate(_property_or_404(property_id), step)

@app.get("/api/properties/{property_id}/debug-layout")
def debug_layout(property_id: str):
    return {"success": True, "analysis": consistency.analyze(_property_or_404(property_id))}

@app.get("/api/rental/stats", response_model=RentalStats)
def rental_stats(x_user_id: str = Header(..., min_length=1)):
    properties = db.list_properties(rental_id=x_user_id)
    legacy = [s for p in properties for s in db.list_legacy_slots(p.id)]
    bookings = [b for p in properties for b in db.list_bookings(property_id=p.id)]
    return availability.rental_stats(properties, legacy, bookings)

from mangum import Mangum
handler = Mangum(app)
