# backend/parkspace/catalog.py
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .generators import DEFAULT_PRICE_PER_HOUR, GeneratorKind, generate, validate_generation_input
from .schemas import Layout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TemplateCategory:
    id: GeneratorKind
    name: str
    description: str
    bestFor: str
    legacy: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id.value,
            "name": self.name,
            "description": self.description,
            "bestFor": self.bestFor,
            "legacy": self.legacy,
        }


TEMPLATE_CATEGORIES: List[TemplateCategory] = [
    TemplateCategory(
        GeneratorKind.EFFICIENT_GRID, "Drive-Through Easy",
        "Every car can exit easily! No one gets trapped in the middle.",
        "Busy areas where cars need quick exit",
    ),
    TemplateCategory(
        GeneratorKind.LINEAR_FLOW, "One-Way Mall Style",
        "Like shopping mall parking - enter top, drive around, exit bottom",
        "Large spaces, smooth traffic flow",
    ),
    TemplateCategory(
        GeneratorKind.CIRCULAR_FLOW, "Circular Flow",
        "Smooth circular traffic with central access",
        "Open areas, plazas, roundabouts",
    ),
    TemplateCategory(
        GeneratorKind.SEPARATED_ZONES, "Airport Premium Style",
        "Luxury layout with wide boulevards and separate car/bike zones",
        "Premium locations, organized vehicle separation",
    ),
]

# Still invokable by id; not offered in the picker.
LEGACY_CATEGORIES: List[TemplateCategory] = [
    TemplateCategory(
        GeneratorKind.MALL_STYLE, "Mall Style Layout",
        "Repeated aisles of two parking rows with wide gaps",
        "Shopping centres", legacy=True,
    ),
    TemplateCategory(
        GeneratorKind.COMPACT_URBAN, "Compact Urban Layout",
        "High-density arrangement with minimal driving lanes",
        "Small urban lots", legacy=True,
    ),
]


def get_category(template_id) -> Optional[TemplateCategory]:
    for category in TEMPLATE_CATEGORIES + LEGACY_CATEGORIES:
        if category.id.value == template_id or category.id == template_id:
            return category
    return None


def generate_all_templates(car_slots: int, bike_slots: int,
                           price_per_hour: float = DEFAULT_PRICE_PER_HOUR,
                           categories: Optional[Sequence[TemplateCategory]] = None) -> List[Layout]:
    """
    One layout per user-facing category. A generator that fails is logged and
    left out; the others are still returned.
    """
    validate_generation_input(car_slots, bike_slots, price_per_hour)

    templates: List[Layout] = []
    for category in categories or TEMPLATE_CATEGORIES:
        try:
            templates.append(generate(category.id, car_slots, bike_slots, price_per_hour))
        except Exception as e:
            logger.error("generate_all_templates: %s failed for %s cars / %s bikes: %s",
                         category.id.value, car_slots, bike_slots, e)
    logger.info("Generated %s of %s templates for %s cars / %s bikes",
                len(templates), len(categories or TEMPLATE_CATEGORIES), car_slots, bike_slots)
    return templates
